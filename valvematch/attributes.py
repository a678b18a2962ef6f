# -*- coding: utf-8 -*-

from __future__ import annotations

import logging
from typing import Mapping, Optional, Sequence

from .geom import Point
from .model import UNKNOWN, Zone

log = logging.getLogger(__name__)


def merge(static_attrs: Mapping[str, str], zone_attrs: Mapping[str, str]) -> dict[str, str]:
	"""以类型静态属性为底，区域属性覆盖同名键。"""
	merged = dict(static_attrs)
	for k, v in zone_attrs.items():
		merged[k] = v
	return merged


def zone_metadata(entity, app_id: str = "SMARTMARK") -> tuple[str, str]:
	"""
从区域多段线的 XDATA 读取 (facility, sub_facility)。

XDATA 结构：(1001, app_id) 之后依次是两个 1000 字符串。
读取失败或缺失时回退为 UNKNOWN/UNKNOWN。
"""
	group = UNKNOWN
	subgroup = UNKNOWN
	try:
		if not entity.has_xdata(app_id):
			return group, subgroup
		tags = list(entity.get_xdata(app_id))
	except Exception as exc:
		log.debug("区域 %s 的 XDATA 无法读取：%s", getattr(entity.dxf, "handle", "?"), exc)
		return group, subgroup

	# ezdxf 返回的 tags 不含开头的 1001 标记；兼容带标记的写法
	if tags and tags[0][0] == 1001:
		tags = tags[1:]
	strings = [str(value) for code, value in tags if code == 1000]
	if len(strings) >= 1 and strings[0].strip():
		group = strings[0]
	if len(strings) >= 2 and strings[1].strip():
		subgroup = strings[1]
	return group.strip(), subgroup.strip()


def find_zone(zones: Sequence[Zone], point: Point) -> Optional[Zone]:
	for z in zones:
		if z.contains(point):
			return z
	return None


def zone_attributes(zone: Optional[Zone], table: Optional[Mapping[tuple[str, str], Mapping[str, str]]] = None) -> dict[str, str]:
	"""区域派生的属性：FACILITY / SUB_FACILITY，再叠加区域属性表中的条目。"""
	key = zone.key if zone is not None else (UNKNOWN, UNKNOWN)
	attrs = {"FACILITY": key[0], "SUB_FACILITY": key[1]}
	if table:
		attrs.update(table.get(key) or {})
	return attrs
