"""Builders for snapshot primitives used across the tests."""

import math

from valvematch.model import CIRCLE, LINE, POLYLINE, SOLID, TEXT, Primitive, Tag, Zone

_seq = [0]


def _handle(handle):
	if handle is not None:
		return handle
	_seq[0] += 1
	return f"H{_seq[0]:04d}"


def line(x0, y0, x1, y1, *, layer="VALVE", handle=None):
	return Primitive(
		handle=_handle(handle),
		kind=LINE,
		bbox=(min(x0, x1), min(y0, y1), max(x0, x1), max(y0, y1)),
		layer=layer,
		length=math.hypot(x1 - x0, y1 - y0),
	)


def circle(cx, cy, r, *, layer="VALVE", handle=None):
	return Primitive(handle=_handle(handle), kind=CIRCLE, bbox=(cx - r, cy - r, cx + r, cy + r), layer=layer)


def box(x0, y0, x1, y1, *, kind=POLYLINE, layer="VALVE", closed=True, handle=None):
	return Primitive(
		handle=_handle(handle),
		kind=kind,
		bbox=(x0, y0, x1, y1),
		layer=layer,
		closed=closed,
		vertex_count=4 if kind == POLYLINE else 0,
	)


def solid(x0, y0, x1, y1, *, layer="VALVE", handle=None):
	return Primitive(handle=_handle(handle), kind=SOLID, bbox=(x0, y0, x1, y1), layer=layer)


def broken(kind=LINE, handle=None):
	return Primitive(handle=_handle(handle), kind=kind, bbox=None, layer="VALVE")


def text(value, x, y, handle=None):
	return Tag(text=value, position=(float(x), float(y)), handle=_handle(handle))


def zone(x0, y0, x1, y1, facility="FAC1", sub="SUB1"):
	return Zone(bbox=(x0, y0, x1, y1), facility=facility, sub_facility=sub, handle=_handle(None))


def gate_symbol(cx, cy):
	"""Two short strokes touching a small circle: the GATE composition."""
	return [
		line(cx - 6, cy, cx - 1, cy),
		line(cx + 1, cy, cx + 6, cy),
		circle(cx, cy, 1.5),
	]
