# -*- coding: utf-8 -*-

"""从 ezdxf 文档读取一次匹配所需的只读快照。"""

from __future__ import annotations

import logging
from typing import Iterable

from ezdxf.document import Drawing

from .attributes import zone_metadata
from .config import MatcherConfig, normalize_layer, normalize_tag_text
from .geom import bbox2d, linear_length, polyline_closed, polyline_points
from .model import ARC, CIRCLE, HATCH, LINE, POLYLINE, SOLID, TEXT, Marker, Primitive, Snapshot, Tag, Zone

log = logging.getLogger(__name__)

KIND_BY_DXFTYPE = {
	"LINE": LINE,
	"CIRCLE": CIRCLE,
	"ARC": ARC,
	"LWPOLYLINE": POLYLINE,
	"POLYLINE": POLYLINE,
	"SOLID": SOLID,
	"TRACE": SOLID,
	"HATCH": HATCH,
	"TEXT": TEXT,
	"MTEXT": TEXT,
}


BYBLOCK = 0
BYLAYER = 256


def effective_color(entity, doc: Drawing, default: int = 7) -> int:
	"""实体最终显示的 ACI：BYLAYER 取图层颜色（关闭的图层颜色为负），BYBLOCK 或无法解析时取 default。"""
	color = int(entity.dxf.get("color", BYLAYER))
	if color == BYLAYER:
		layer_name = entity.dxf.get("layer", "0")
		if doc.layers.has_entry(layer_name):
			color = abs(int(doc.layers.get(layer_name).dxf.color))
	if color in (BYBLOCK, BYLAYER):
		return default
	return color


def text_of(entity) -> str:
	if entity.dxftype() == "MTEXT":
		return entity.plain_text()
	return entity.dxf.text or ""


def to_primitive(entity, doc: Drawing) -> Primitive:
	t = entity.dxftype()
	kind = KIND_BY_DXFTYPE[t]
	closed = False
	vertex_count = 0
	if kind == POLYLINE:
		try:
			closed = polyline_closed(entity)
			vertex_count = len(polyline_points(entity))
		except Exception:
			closed = False
	return Primitive(
		handle=str(entity.dxf.handle),
		kind=kind,
		bbox=bbox2d(entity),
		layer=str(getattr(entity.dxf, "layer", "0")),
		length=linear_length(entity),
		closed=closed,
		vertex_count=vertex_count,
		color=effective_color(entity, doc),
	)


def is_marker(prim: Primitive, config: MatcherConfig) -> bool:
	"""问题标记：标记图层上闭合的四顶点多段线。"""
	return (
		prim.kind == POLYLINE
		and prim.closed
		and prim.vertex_count == 4
		and prim.valid
		and normalize_layer(prim.layer) == normalize_layer(config.marker_layer)
	)


def explode_legacy_blocks(doc: Drawing, keywords: Iterable[str]) -> int:
	"""把名称包含关键字的旧阀门块炸开成基本图元（直接修改文档）。"""
	keys = [str(k).strip().upper() for k in keywords if str(k).strip()]
	if not keys:
		return 0
	msp = doc.modelspace()
	exploded = 0
	for insert in list(msp.query("INSERT")):
		name = str(insert.dxf.name).upper()
		if not any(k in name for k in keys):
			continue
		try:
			# 属性只是设备块的元数据，炸开时不能变成可见文字
			insert.delete_all_attribs()
			insert.explode()
		except Exception as exc:
			log.warning("无法炸开块 %s (%s)：%s", insert.dxf.name, insert.dxf.handle, exc)
			continue
		exploded += 1
	return exploded


def read_snapshot(doc: Drawing, config: MatcherConfig) -> Snapshot:
	msp = doc.modelspace()
	zone_layer = normalize_layer(config.zone_layer)

	primitives: list[Primitive] = []
	texts: list[Tag] = []
	zones: list[Zone] = []
	markers: list[Marker] = []
	skipped = 0

	for e in msp:
		t = e.dxftype()
		if t not in KIND_BY_DXFTYPE:
			continue

		if KIND_BY_DXFTYPE[t] == TEXT:
			try:
				p = e.dxf.insert
				texts.append(Tag(text=normalize_tag_text(text_of(e)), position=(float(p.x), float(p.y)), handle=str(e.dxf.handle)))
			except Exception as exc:
				log.debug("跳过无法读取的文字 %s：%s", e.dxf.handle, exc)
				skipped += 1
			continue

		prim = to_primitive(e, doc)
		if is_marker(prim, config):
			markers.append(Marker(handle=prim.handle, center=prim.center))
			continue

		if not prim.valid:
			log.debug("图元 %s (%s) 没有有效外包框", prim.handle, prim.kind)
			skipped += 1
		primitives.append(prim)

		if prim.kind == POLYLINE and prim.closed and prim.valid and normalize_layer(prim.layer) == zone_layer:
			facility, sub = zone_metadata(e, config.zone_xdata_app)
			zones.append(Zone(bbox=prim.bbox, facility=facility, sub_facility=sub, handle=prim.handle))

	log.info(
		"快照：%d 个图元，%d 条文字，%d 个区域，%d 个标记，%d 个跳过",
		len(primitives),
		len(texts),
		len(zones),
		len(markers),
		skipped,
	)
	return Snapshot(
		primitives=tuple(primitives),
		texts=tuple(texts),
		zones=tuple(zones),
		markers=tuple(markers),
		skipped=skipped,
	)
