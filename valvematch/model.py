# -*- coding: utf-8 -*-

"""匹配过程使用的值对象：图元 / 位号 / 区域 / 标记 / 簇 / 识别记录。

这些对象都是对宿主图纸的一次性快照拷贝，不持有任何 ezdxf 实体引用。
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Optional

from .geom import BBox, Point, bbox_center, bbox_contains, is_valid_bbox

LINE = "LINE"
CIRCLE = "CIRCLE"
ARC = "ARC"
POLYLINE = "POLYLINE"
SOLID = "SOLID"
HATCH = "HATCH"
TEXT = "TEXT"

# 参与聚类的图元类型（文字永远不是设备符号的一部分）
GEOMETRY_KINDS = frozenset((LINE, CIRCLE, ARC, POLYLINE, SOLID, HATCH))

UNKNOWN = "UNKNOWN"


def sanitize_name(name: str, max_len: int = 80) -> str:
	"""把位号/类型名转换成合法的 DXF block 名。"""
	n = name.strip()
	n = re.sub(r"\s+", "_", n)
	n = re.sub(r'[<>/\\\\:;\"?*|=,`]', "_", n)
	n = re.sub(r"_+", "_", n).strip("_")
	if not n:
		n = "VALVE"
	if len(n) > max_len:
		n = n[:max_len]
	return n


@dataclass(frozen=True)
class Primitive:
	handle: str
	kind: str
	bbox: Optional[BBox]
	layer: str = "0"
	length: float = 0.0
	closed: bool = False
	vertex_count: int = 0
	color: int = 256

	@property
	def valid(self) -> bool:
		return is_valid_bbox(self.bbox)

	@property
	def center(self) -> Point:
		if self.bbox is None:
			raise ValueError(f"primitive {self.handle} has no bbox")
		return bbox_center(self.bbox)


@dataclass(frozen=True)
class Tag:
	text: str
	position: Point
	handle: str = ""


@dataclass(frozen=True)
class Zone:
	bbox: BBox
	facility: str = UNKNOWN
	sub_facility: str = UNKNOWN
	handle: str = ""

	def contains(self, p: Point) -> bool:
		return bbox_contains(self.bbox, p)

	@property
	def key(self) -> tuple[str, str]:
		return (self.facility, self.sub_facility)


@dataclass(frozen=True)
class Marker:
	handle: str
	center: Point


@dataclass(frozen=True)
class Cluster:
	primitives: tuple[Primitive, ...]

	@property
	def handles(self) -> tuple[str, ...]:
		return tuple(p.handle for p in self.primitives)

	@property
	def centroid(self) -> Point:
		"""各图元外包框中心的平均值。"""
		centers = [p.center for p in self.primitives if p.valid]
		if not centers:
			return (0.0, 0.0)
		n = float(len(centers))
		return (sum(c[0] for c in centers) / n, sum(c[1] for c in centers) / n)

	@property
	def composition(self) -> Counter:
		return Counter(p.kind for p in self.primitives)

	def __len__(self) -> int:
		return len(self.primitives)


@dataclass(frozen=True)
class MatchRecord:
	tag: str
	tag_position: Point
	pattern: str
	attributes: dict[str, str] = field(default_factory=dict)
	cluster: tuple[str, ...] = ()
	zone: tuple[str, str] = (UNKNOWN, UNKNOWN)

	@property
	def block_name(self) -> str:
		return sanitize_name(f"VALVE_{self.pattern}_{self.tag}")

	def to_dict(self) -> dict[str, Any]:
		data: dict[str, Any] = {
			"BlockName": self.block_name,
			"VALVE_TAG": self.tag,
			"VALVE_TYPE": self.pattern,
		}
		data.update(self.attributes)
		return data


@dataclass(frozen=True)
class Snapshot:
	"""一张图纸的只读快照。"""

	primitives: tuple[Primitive, ...] = ()
	texts: tuple[Tag, ...] = ()
	zones: tuple[Zone, ...] = ()
	markers: tuple[Marker, ...] = ()
	skipped: int = 0
