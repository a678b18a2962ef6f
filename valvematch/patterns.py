# -*- coding: utf-8 -*-

"""阀门图形模式库：加载与匹配。

模式库是一个 JSON 文件，按声明顺序求值，第一个完全满足的模式胜出，
因此作者需要把更具体的模式写在前面。示例::

	{
	  "patterns": [
	    {"name": "GATE", "counts": {"LINE": 2, "CIRCLE": 1},
	     "attributes": {"VALVE_CLASS": "ISOLATION"}},
	    {"name": "GLOBE", "counts": {"LINE": 2, "CIRCLE": [2, 2]}},
	    {"name": "CHECK", "counts": {"LINE": {"min": 2, "max": 4}, "SOLID": 1},
	     "max_line_length": 12.0}
	  ]
	}

counts 中未列出的图元类型必须不存在。
"""

from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

from .errors import ConfigError
from .model import GEOMETRY_KINDS, LINE, POLYLINE, Cluster, Primitive

DEFAULT_MAX_LINE_LENGTH = 30.0
DEFAULT_ZONE_LAYER = "AREA_ZONE"


@dataclass(frozen=True)
class CountRule:
	min: int
	max: int

	def accepts(self, n: int) -> bool:
		return self.min <= n <= self.max

	@staticmethod
	def parse(value: Any) -> "CountRule":
		if isinstance(value, bool):
			raise ValueError(f"invalid count: {value!r}")
		if isinstance(value, int):
			return CountRule(value, value)
		if isinstance(value, (list, tuple)) and len(value) == 2:
			lo, hi = int(value[0]), int(value[1])
		elif isinstance(value, dict):
			lo = int(value.get("min", 0))
			hi = int(value.get("max", lo))
		else:
			raise ValueError(f"invalid count: {value!r}")
		if lo < 0 or hi < lo:
			raise ValueError(f"invalid count range: {value!r}")
		return CountRule(lo, hi)


def _is_aci(value: Any) -> bool:
	return isinstance(value, int) and not isinstance(value, bool) and 1 <= value <= 255


@dataclass(frozen=True)
class Composition:
	"""过滤后簇的图元构成。"""

	counts: Counter
	line_lengths: tuple[float, ...] = ()
	closed_polylines: int = 0
	polyline_vertices: tuple[int, ...] = ()
	colors: frozenset = frozenset()


@dataclass(frozen=True)
class Pattern:
	name: str
	counts: dict[str, CountRule]
	max_line_length: Optional[float] = None
	closed_polylines: Optional[int] = None
	# 每条多段线的顶点数都必须等于该值
	polyline_vertices: Optional[int] = None
	# 全部图元的最终 ACI 颜色都必须在该集合内
	colors: Optional[frozenset] = None
	attributes: dict[str, str] = field(default_factory=dict)

	def matches(self, comp: Composition) -> bool:
		for kind in GEOMETRY_KINDS:
			n = comp.counts.get(kind, 0)
			rule = self.counts.get(kind)
			if rule is None:
				if n:
					return False
			elif not rule.accepts(n):
				return False
		if self.max_line_length is not None:
			if any(ln >= self.max_line_length for ln in comp.line_lengths):
				return False
		if self.closed_polylines is not None and comp.closed_polylines != self.closed_polylines:
			return False
		if self.polyline_vertices is not None and any(n != self.polyline_vertices for n in comp.polyline_vertices):
			return False
		if self.colors is not None and not comp.colors <= self.colors:
			return False
		return True

	@staticmethod
	def from_dict(d: dict[str, Any]) -> "Pattern":
		name = str(d.get("name") or "").strip()
		if not name:
			raise ValueError("pattern without name")
		raw_counts = d.get("counts")
		if not isinstance(raw_counts, dict) or not raw_counts:
			raise ValueError(f"pattern {name}: counts must be a non-empty mapping")
		counts: dict[str, CountRule] = {}
		for kind, value in raw_counts.items():
			k = str(kind).strip().upper()
			if k not in GEOMETRY_KINDS:
				raise ValueError(f"pattern {name}: unknown primitive kind {kind!r}")
			counts[k] = CountRule.parse(value)
		max_len = d.get("max_line_length")
		closed = d.get("closed_polylines")
		vertices = d.get("polyline_vertices")
		colors = d.get("colors")
		if colors is not None and (not isinstance(colors, list) or not all(_is_aci(c) for c in colors)):
			raise ValueError(f"pattern {name}: colors must be a list of ACI numbers 1..255")
		attrs = d.get("attributes") or {}
		if not isinstance(attrs, dict):
			raise ValueError(f"pattern {name}: attributes must be a mapping")
		return Pattern(
			name=name,
			counts=counts,
			max_line_length=float(max_len) if max_len is not None else None,
			closed_polylines=int(closed) if closed is not None else None,
			polyline_vertices=int(vertices) if vertices is not None else None,
			colors=frozenset(colors) if colors is not None else None,
			attributes={str(k): str(v) for k, v in attrs.items()},
		)


def load_patterns(path: str | Path) -> list[Pattern]:
	"""读取模式库；任何读取/格式错误都以 ConfigError 报告。"""
	try:
		with open(path, "r", encoding="utf-8") as f:
			data = json.load(f)
	except (OSError, ValueError) as exc:
		raise ConfigError(path, f"cannot read pattern library: {exc}") from exc

	items = data.get("patterns") if isinstance(data, dict) else data
	if not isinstance(items, list) or not items:
		raise ConfigError(path, "pattern library must contain a non-empty list of patterns")

	patterns: list[Pattern] = []
	seen: set[str] = set()
	for i, item in enumerate(items):
		if not isinstance(item, dict):
			raise ConfigError(path, f"pattern #{i} is not an object")
		try:
			p = Pattern.from_dict(item)
		except (TypeError, ValueError) as exc:
			raise ConfigError(path, f"pattern #{i}: {exc}") from exc
		if p.name in seen:
			raise ConfigError(path, f"duplicate pattern name {p.name!r}")
		seen.add(p.name)
		patterns.append(p)
	return patterns


def composition_of(
	primitives: Iterable[Primitive],
	*,
	max_line_length: float = DEFAULT_MAX_LINE_LENGTH,
	zone_layer: str = DEFAULT_ZONE_LAYER,
) -> Composition:
	"""
匹配前的几何过滤：
- LINE 仅保留长度 < max_line_length 的（长线多半是被顺带圈进来的工艺管线）
- 区域边界图层上的多段线不计入（区域边界不是设备符号）
- 文字不计入
"""
	kept = kept_primitives(primitives, max_line_length=max_line_length, zone_layer=zone_layer)
	counts = Counter(p.kind for p in kept)
	lengths = [p.length for p in kept if p.kind == LINE]
	closed = sum(1 for p in kept if p.kind == POLYLINE and p.closed)
	vertices = sorted(p.vertex_count for p in kept if p.kind == POLYLINE)
	return Composition(
		counts=counts,
		line_lengths=tuple(sorted(lengths)),
		closed_polylines=closed,
		polyline_vertices=tuple(vertices),
		colors=frozenset(p.color for p in kept),
	)


def kept_primitives(
	primitives: Iterable[Primitive],
	*,
	max_line_length: float = DEFAULT_MAX_LINE_LENGTH,
	zone_layer: str = DEFAULT_ZONE_LAYER,
) -> list[Primitive]:
	"""匹配前过滤后保留下来的图元（规则见 composition_of）。"""
	zone = zone_layer.strip().upper()
	out = []
	for p in primitives:
		if p.kind not in GEOMETRY_KINDS:
			continue
		if p.kind == LINE and p.length >= max_line_length:
			continue
		if p.kind == POLYLINE and p.layer.strip().upper() == zone:
			continue
		out.append(p)
	return out


def match_composition(comp: Composition, patterns: Sequence[Pattern]) -> Optional[Pattern]:
	for p in patterns:
		if p.matches(comp):
			return p
	return None


def match(
	cluster: Cluster,
	patterns: Sequence[Pattern],
	*,
	max_line_length: float = DEFAULT_MAX_LINE_LENGTH,
	zone_layer: str = DEFAULT_ZONE_LAYER,
) -> Optional[str]:
	"""返回第一个满足的模式名；都不满足时返回 None（未识别设备）。"""
	comp = composition_of(cluster.primitives, max_line_length=max_line_length, zone_layer=zone_layer)
	p = match_composition(comp, patterns)
	return p.name if p is not None else None
