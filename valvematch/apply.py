# -*- coding: utf-8 -*-

"""把一批修改意图应用到 ezdxf 文档。

先校验全部目标实体都存在，再统一执行；校验失败时文档不做任何改动。
文档只有在 commit() 保存后才算提交。
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from pathlib import Path
from typing import Sequence

from ezdxf.document import Drawing

from .config import MatcherConfig
from .errors import MutationError
from .geom import bbox2d, bbox_center, merge_bbox, square_around
from .model import sanitize_name
from .mutations import AddMarker, Mutation, PlaceDevice, RemoveMarker

log = logging.getLogger(__name__)

ATTRIB_HEIGHT = 2.5


def ensure_layer(doc: Drawing, name: str, *, color: int) -> str:
	if name in doc.layers:
		return name
	doc.layers.new(name, dxfattribs={"color": int(color)})
	return name


def attrib_tag(key: str) -> str:
	t = re.sub(r"[^0-9A-Za-z_\-]+", "_", str(key).strip()).strip("_").upper()
	return t or "ATTR"


def unique_block_name(doc: Drawing, name: str) -> str:
	base = sanitize_name(name)
	candidate = base
	n = 1
	while candidate in doc.blocks:
		n += 1
		candidate = f"{base}_{n}"
	return candidate


def _live_entity(doc: Drawing, handle: str):
	e = doc.entitydb.get(handle)
	if e is None or not e.is_alive:
		return None
	return e


def validate(doc: Drawing, mutations: Sequence[Mutation]) -> None:
	missing: list[str] = []
	claimed: set[str] = set()
	for m in mutations:
		if isinstance(m, RemoveMarker):
			handles: Sequence[str] = (m.handle,)
		elif isinstance(m, PlaceDevice):
			handles = m.handles
			if not handles:
				raise MutationError(f"device {m.record.tag} has no entities")
		else:
			continue
		for h in handles:
			if _live_entity(doc, h) is None:
				missing.append(h)
			elif h in claimed:
				raise MutationError(f"entity {h} is targeted twice")
			claimed.add(h)
	if missing:
		raise MutationError(f"entities not found: {', '.join(missing)}")


def add_marker(doc: Drawing, m: AddMarker, config: MatcherConfig) -> str:
	layer = ensure_layer(doc, config.marker_layer, color=config.marker_color)
	pl = doc.modelspace().add_lwpolyline(
		square_around(m.center, m.size),
		close=True,
		dxfattribs={"layer": layer, "color": int(config.marker_color)},
	)
	return str(pl.dxf.handle)


def remove_marker(doc: Drawing, m: RemoveMarker) -> None:
	doc.modelspace().delete_entity(doc.entitydb[m.handle])


def place_device(doc: Drawing, m: PlaceDevice) -> str:
	"""把簇中的图元移入新块，并在原位置插入带属性的块参照。"""
	msp = doc.modelspace()
	ents = [doc.entitydb[h] for h in m.handles]
	bb = merge_bbox(b for b in (bbox2d(e) for e in ents) if b is not None)
	base = bbox_center(bb) if bb is not None else m.record.tag_position

	name = unique_block_name(doc, m.record.block_name)
	blk = doc.blocks.new(name=name, base_point=(0, 0, 0))
	for e in ents:
		msp.move_to_layout(e, blk)
		e.translate(-base[0], -base[1], 0)

	layer = Counter(str(getattr(e.dxf, "layer", "0")) for e in ents).most_common(1)[0][0]
	ref = msp.add_blockref(name, base, dxfattribs={"layer": layer})
	x, y = m.record.tag_position
	for key, value in m.record.to_dict().items():
		if key == "BlockName":
			continue
		ref.add_attrib(
			attrib_tag(key),
			str(value),
			insert=(x, y),
			dxfattribs={"height": ATTRIB_HEIGHT, "layer": layer, "flags": 1},
		)
	return name


def apply_mutations(doc: Drawing, mutations: Sequence[Mutation], config: MatcherConfig) -> dict[str, int]:
	validate(doc, mutations)
	stats = {"markers_added": 0, "markers_removed": 0, "devices": 0}
	for m in mutations:
		if isinstance(m, AddMarker):
			add_marker(doc, m, config)
			stats["markers_added"] += 1
		elif isinstance(m, RemoveMarker):
			remove_marker(doc, m)
			stats["markers_removed"] += 1
		elif isinstance(m, PlaceDevice):
			name = place_device(doc, m)
			log.debug("位号 %s 已替换为块 %s", m.record.tag, name)
			stats["devices"] += 1
		else:
			raise MutationError(f"unknown mutation: {m!r}")
	return stats


def commit(doc: Drawing, path: str | Path) -> Path:
	out_path = Path(path).expanduser().resolve()
	out_path.parent.mkdir(parents=True, exist_ok=True)
	doc.saveas(str(out_path))
	return out_path
