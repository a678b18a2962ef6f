# -*- coding: utf-8 -*-

"""匹配参数与外部配置清单（位号前缀 / 设备图层 / 区域属性表）的加载。"""

from __future__ import annotations

import csv
import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

import openpyxl

from .errors import ConfigError
from .patterns import DEFAULT_MAX_LINE_LENGTH, DEFAULT_ZONE_LAYER

ZoneTable = dict[tuple[str, str], dict[str, str]]


@dataclass
class MatcherConfig:
	"""
一次匹配使用的全部可调参数。

proximity_radius / link_tolerance / ambiguity_tolerance 是经验值，
需要结合具体图纸的比例由领域人员标定。
"""

	# 位号周围搜集候选图元的半径（按图元外包框中心计）
	proximity_radius: float = 25.0
	# 两图元外包框间隙不超过该值即视为相连
	link_tolerance: float = 2.0
	# 与最近位号距离差在该值以内时视为并列最近
	ambiguity_tolerance: float = 10.0
	# 匹配时只计入短于该值的 LINE
	max_line_length: float = DEFAULT_MAX_LINE_LENGTH
	zone_layer: str = DEFAULT_ZONE_LAYER
	zone_xdata_app: str = "SMARTMARK"
	marker_layer: str = "VALVEMATCH_MARKER"
	marker_size: float = 7.0
	marker_tolerance: float = 1.0
	marker_color: int = 1
	allowed_layers: frozenset[str] = field(default_factory=frozenset)
	# 名称包含这些关键字的旧块在读取快照时被炸开
	explode_keywords: tuple[str, ...] = ("VALVE",)
	# 识别成功后是否用设备块替换原始图元
	place_devices: bool = True

	def __post_init__(self) -> None:
		for name in ("proximity_radius", "link_tolerance", "ambiguity_tolerance", "max_line_length", "marker_size"):
			v = getattr(self, name)
			if not v >= 0:
				raise ConfigError(name, f"must be >= 0, got {v!r}")
		self.allowed_layers = frozenset(normalize_layer(x) for x in self.allowed_layers if str(x).strip())
		self.explode_keywords = tuple(str(k).strip().upper() for k in self.explode_keywords if str(k).strip())

	def layer_allowed(self, layer: str) -> bool:
		return normalize_layer(layer) in self.allowed_layers


def normalize_layer(name: str) -> str:
	return str(name or "").strip().upper()


def normalize_tag_text(text: str) -> str:
	return str(text or "").strip().upper()


def _xlsx_column(path: Path) -> list[Any]:
	wb = openpyxl.load_workbook(str(path), read_only=True, data_only=True)
	try:
		ws = wb.worksheets[0]
		return [row[0] for row in ws.iter_rows(min_col=1, max_col=1, values_only=True)]
	finally:
		wb.close()


def _csv_column(path: Path) -> list[Any]:
	with open(path, "r", encoding="utf-8-sig", newline="") as f:
		return [row[0] if row else None for row in csv.reader(f)]


def load_list(path: str | Path, *, header: bool = False) -> list[str]:
	"""
读取单列清单：
- .xlsx / .xlsm：第一个工作表的第一列
- 其它（.csv / .txt）：每行第一个字段
空单元格跳过，值去空白并转大写，保持出现顺序去重。
"""
	p = Path(path)
	try:
		if p.suffix.lower() in (".xlsx", ".xlsm"):
			raw = _xlsx_column(p)
		else:
			raw = _csv_column(p)
	except Exception as exc:
		raise ConfigError(path, f"cannot read list: {exc}") from exc

	if header and raw:
		raw = raw[1:]

	out: list[str] = []
	seen: set[str] = set()
	for v in raw:
		if v is None:
			continue
		s = str(v).strip().upper()
		if not s or s in seen:
			continue
		seen.add(s)
		out.append(s)
	if not out:
		raise ConfigError(path, "list is empty")
	return out


def build_tag_regex(prefixes: Iterable[str]) -> "re.Pattern[str]":
	"""位号规则：任一前缀后跟一个或多个数字，不区分大小写。"""
	items = sorted({str(p).strip() for p in prefixes if str(p).strip()}, key=lambda s: (-len(s), s))
	if not items:
		raise ValueError("no tag prefixes")
	return re.compile(r"^(" + "|".join(re.escape(p) for p in items) + r")\d+$", re.IGNORECASE)


def load_zone_table(path: str | Path) -> ZoneTable:
	"""
读取区域属性表（JSON），两种写法均可：
- {"FAC/SUB": {"KEY": "VALUE", ...}, ...}
- [{"facility": "FAC", "sub_facility": "SUB", "attributes": {...}}, ...]
"""
	try:
		with open(path, "r", encoding="utf-8") as f:
			data = json.load(f)
	except (OSError, ValueError) as exc:
		raise ConfigError(path, f"cannot read zone table: {exc}") from exc

	table: ZoneTable = {}
	try:
		if isinstance(data, dict):
			for key, attrs in data.items():
				fac, sep, sub = str(key).partition("/")
				if not sep:
					raise ValueError(f"key {key!r} is not FACILITY/SUB_FACILITY")
				table[(fac.strip(), sub.strip())] = {str(k): str(v) for k, v in dict(attrs).items()}
		elif isinstance(data, list):
			for item in data:
				key = (str(item["facility"]).strip(), str(item["sub_facility"]).strip())
				table[key] = {str(k): str(v) for k, v in dict(item.get("attributes") or {}).items()}
		else:
			raise ValueError("zone table must be an object or a list")
	except (KeyError, TypeError, ValueError) as exc:
		raise ConfigError(path, f"malformed zone table: {exc}") from exc
	return table
