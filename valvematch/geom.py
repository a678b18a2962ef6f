# -*- coding: utf-8 -*-

"""二维外包框工具：所有距离判定的基础。

外包框统一用 (minx, miny, maxx, maxy) 元组表示。
"""

from __future__ import annotations

import math
from typing import Iterable, Optional

import ezdxf.bbox

BBox = tuple[float, float, float, float]
Point = tuple[float, float]


def is_valid_bbox(b: Optional[BBox]) -> bool:
	if b is None or len(b) != 4:
		return False
	if not all(math.isfinite(v) for v in b):
		return False
	return b[0] <= b[2] and b[1] <= b[3]


def bbox_center(b: BBox) -> Point:
	return ((b[0] + b[2]) * 0.5, (b[1] + b[3]) * 0.5)


def merge_bbox(bboxes: Iterable[BBox]) -> Optional[BBox]:
	it = iter(bboxes)
	try:
		minx, miny, maxx, maxy = next(it)
	except StopIteration:
		return None
	for bx0, by0, bx1, by1 in it:
		minx = min(minx, bx0)
		miny = min(miny, by0)
		maxx = max(maxx, bx1)
		maxy = max(maxy, by1)
	return (minx, miny, maxx, maxy)


def bbox_gap(a: BBox, b: BBox) -> float:
	"""两个外包框之间的最小间隙；任一轴上重叠时该轴间隙为 0。"""
	ax0, ay0, ax1, ay1 = a
	bx0, by0, bx1, by1 = b
	dx = max(0.0, ax0 - bx1, bx0 - ax1)
	dy = max(0.0, ay0 - by1, by0 - ay1)
	return math.hypot(dx, dy)


def bbox_contains(b: BBox, p: Point) -> bool:
	return b[0] <= p[0] <= b[2] and b[1] <= p[1] <= b[3]


def distance(p: Point, q: Point) -> float:
	return math.hypot(p[0] - q[0], p[1] - q[1])


def square_around(center: Point, size: float) -> list[Point]:
	"""以 center 为中心、边长 size 的正方形顶点（逆时针，从左下角开始）。"""
	half = size * 0.5
	x0 = center[0] - half
	y0 = center[1] - half
	return [(x0, y0), (x0 + size, y0), (x0 + size, y0 + size), (x0, y0 + size)]


def arc_bbox(entity) -> BBox:
	c = entity.dxf.center
	r = float(entity.dxf.radius)
	cx, cy = float(c[0]), float(c[1])

	start = float(entity.dxf.start_angle) % 360.0
	end = float(entity.dxf.end_angle) % 360.0

	def in_sweep(a: float) -> bool:
		if start <= end:
			return start <= a <= end
		return a >= start or a <= end

	angles = [start, end]
	for a in (0.0, 90.0, 180.0, 270.0):
		if in_sweep(a):
			angles.append(a)

	xs = [cx + r * math.cos(math.radians(a)) for a in angles]
	ys = [cy + r * math.sin(math.radians(a)) for a in angles]
	return (min(xs), min(ys), max(xs), max(ys))


def _points_bbox(pts: list[Point]) -> Optional[BBox]:
	if not pts:
		return None
	xs = [p[0] for p in pts]
	ys = [p[1] for p in pts]
	return (min(xs), min(ys), max(xs), max(ys))


def polyline_points(entity) -> list[Point]:
	t = entity.dxftype()
	if t == "LWPOLYLINE":
		return [(float(x), float(y)) for x, y in entity.get_points("xy")]
	if t == "POLYLINE":
		return [(float(v.dxf.location.x), float(v.dxf.location.y)) for v in entity.vertices]
	return []


def polyline_closed(entity) -> bool:
	if entity.dxftype() == "LWPOLYLINE":
		return bool(getattr(entity, "closed", False))
	return bool(getattr(entity, "is_closed", False))


def bbox2d(entity) -> Optional[BBox]:
	"""计算 ezdxf 实体的 2D 外包框；无法计算时返回 None。"""
	t = entity.dxftype()
	try:
		if t == "LINE":
			s = entity.dxf.start
			e = entity.dxf.end
			return (min(s.x, e.x), min(s.y, e.y), max(s.x, e.x), max(s.y, e.y))
		if t == "CIRCLE":
			c = entity.dxf.center
			r = float(entity.dxf.radius)
			return (c.x - r, c.y - r, c.x + r, c.y + r)
		if t == "ARC":
			return arc_bbox(entity)
		if t in ("TEXT", "MTEXT", "INSERT"):
			p = entity.dxf.insert
			return (p.x, p.y, p.x, p.y)
		if t == "POINT":
			p = entity.dxf.location
			return (p.x, p.y, p.x, p.y)
		if t in ("LWPOLYLINE", "POLYLINE"):
			return _points_bbox(polyline_points(entity))
		if t in ("SOLID", "TRACE"):
			pts = []
			for name in ("vtx0", "vtx1", "vtx2", "vtx3"):
				if entity.dxf.hasattr(name):
					v = entity.dxf.get(name)
					pts.append((float(v.x), float(v.y)))
			return _points_bbox(pts)
		if t == "HATCH":
			box = ezdxf.bbox.extents([entity], fast=True)
			if not box.has_data:
				return None
			return (box.extmin.x, box.extmin.y, box.extmax.x, box.extmax.y)
	except Exception:
		return None
	return None


def linear_length(entity) -> float:
	"""线性实体的长度（LINE / 多段线按顶点折线计）；其它类型为 0。"""
	t = entity.dxftype()
	try:
		if t == "LINE":
			s = entity.dxf.start
			en = entity.dxf.end
			return float(math.hypot(float(en.x - s.x), float(en.y - s.y)))
		if t in ("LWPOLYLINE", "POLYLINE"):
			pts = polyline_points(entity)
			if len(pts) < 2:
				return 0.0
			seq = pts + ([pts[0]] if polyline_closed(entity) else [])
			return float(sum(distance(p, q) for p, q in zip(seq, seq[1:])))
	except Exception:
		return 0.0
	return 0.0
