# -*- coding: utf-8 -*-

"""
一次完整的阀门匹配：
- 区域：区域图层上的闭合多段线
- 位号：文字值符合前缀规则、且位于某个区域外包框内
- 每个位号：邻域候选图元 → 聚类 → 归属判定
- 全局去重归属（保证单射）后：模式匹配 → 属性合并 → 记录 / 修改意图 → 标记策略
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

from .attributes import find_zone, merge, zone_attributes
from .clustering import cluster
from .config import MatcherConfig
from .geom import Point, distance
from .marking import MarkerBook
from .model import GEOMETRY_KINDS, UNKNOWN, Cluster, MatchRecord, Primitive, Snapshot, Tag
from .mutations import AddMarker, Mutation, PlaceDevice, RemoveMarker
from .ownership import Claim, owned_cluster, resolve_claims
from .patterns import Pattern, composition_of, kept_primitives, match_composition

log = logging.getLogger(__name__)

NO_CLUSTER = "no-cluster"
UNMATCHED = "unmatched"


@dataclass(frozen=True)
class Unresolved:
	tag: Tag
	reason: str


@dataclass
class PassResult:
	records: list[MatchRecord] = field(default_factory=list)
	mutations: list[Mutation] = field(default_factory=list)
	unresolved: list[Unresolved] = field(default_factory=list)
	tags: int = 0
	created: int = 0
	flagged: int = 0
	unflagged: int = 0
	skipped: int = 0


def find_tags(snapshot: Snapshot, tag_regex: "re.Pattern[str]") -> list[Tag]:
	"""位号的身份是位置：同一位置的重复文字只保留第一条。"""
	tags = []
	positions: set = set()
	for t in snapshot.texts:
		if not t.text or not tag_regex.match(t.text):
			continue
		if not any(z.contains(t.position) for z in snapshot.zones):
			continue
		if t.position in positions:
			continue
		positions.add(t.position)
		tags.append(t)
	return tags


def candidates_for(tag: Tag, primitives: Sequence[Primitive], config: MatcherConfig) -> list[Primitive]:
	"""允许图层上、外包框中心在位号 proximity_radius 以内的几何图元。"""
	out = []
	for p in primitives:
		if p.kind not in GEOMETRY_KINDS or not p.valid:
			continue
		if not config.layer_allowed(p.layer):
			continue
		if distance(p.center, tag.position) <= config.proximity_radius:
			out.append(p)
	return out


def claim_for(tag: Tag, all_tags: Sequence[Tag], primitives: Sequence[Primitive], config: MatcherConfig) -> Optional[Claim]:
	cands = candidates_for(tag, primitives, config)
	if not cands:
		return None
	clusters = cluster(cands, config.link_tolerance)
	return owned_cluster(clusters, tag, all_tags, config.ambiguity_tolerance)


def run_pass(
	snapshot: Snapshot,
	patterns: Sequence[Pattern],
	config: MatcherConfig,
	tag_regex: "re.Pattern[str]",
	zone_table: Optional[Mapping[tuple[str, str], Mapping[str, str]]] = None,
) -> PassResult:
	result = PassResult(skipped=snapshot.skipped)
	tags = find_tags(snapshot, tag_regex)
	result.tags = len(tags)
	log.info("找到 %d 个阀门位号", len(tags))

	claims: list[Claim] = []
	for tag in tags:
		c = claim_for(tag, tags, snapshot.primitives, config)
		if c is not None:
			claims.append(c)
	owned: dict[Tag, Cluster] = resolve_claims(claims)

	outcomes: list[tuple[Point, bool]] = []
	for tag in tags:
		cl = owned.get(tag)
		record = None
		if cl is None:
			log.info("位号 %s：没有归属簇", tag.text)
			result.unresolved.append(Unresolved(tag, NO_CLUSTER))
		else:
			record = classify(tag, cl, snapshot, patterns, config, zone_table)
			if record is None:
				log.info("位号 %s：簇（%d 个图元）未匹配任何模式", tag.text, len(cl))
				result.unresolved.append(Unresolved(tag, UNMATCHED))
			else:
				log.info("位号 %s：识别为 %s", tag.text, record.pattern)
				result.records.append(record)
				if config.place_devices and record.cluster:
					result.mutations.append(PlaceDevice(record=record, handles=record.cluster))
					result.created += 1

		outcomes.append((tag.position, record is not None))

	# 标记在全部位号判定完成后统一决定
	book = MarkerBook(snapshot.markers, tolerance=config.marker_tolerance, size=config.marker_size)
	for m in book.plan(outcomes):
		if isinstance(m, AddMarker):
			result.flagged += 1
		elif isinstance(m, RemoveMarker):
			result.unflagged += 1
		result.mutations.append(m)

	return result


def classify(
	tag: Tag,
	cl: Cluster,
	snapshot: Snapshot,
	patterns: Sequence[Pattern],
	config: MatcherConfig,
	zone_table: Optional[Mapping[tuple[str, str], Mapping[str, str]]] = None,
) -> Optional[MatchRecord]:
	comp = composition_of(cl.primitives, max_line_length=config.max_line_length, zone_layer=config.zone_layer)
	pattern = match_composition(comp, patterns)
	if pattern is None:
		return None
	zone = find_zone(snapshot.zones, tag.position)
	attrs = merge(pattern.attributes, zone_attributes(zone, zone_table))
	kept = kept_primitives(cl.primitives, max_line_length=config.max_line_length, zone_layer=config.zone_layer)
	return MatchRecord(
		tag=tag.text,
		tag_position=tag.position,
		pattern=pattern.name,
		attributes=attrs,
		cluster=tuple(p.handle for p in kept),
		zone=zone.key if zone is not None else (UNKNOWN, UNKNOWN),
	)
