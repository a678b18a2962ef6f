# -*- coding: utf-8 -*-

"""位号对簇的归属判定。

一个簇归属于离其质心最近的位号；检查范围是图纸中的全部位号，而不仅是
触发搜索的那个位号，避免相邻位号“抢”走本属于别人的簇。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from .geom import distance
from .model import Cluster, Tag

DEFAULT_AMBIGUITY_TOLERANCE = 10.0


def nearest_tag_distance(point, all_tags: Sequence[Tag]) -> float:
	return min((distance(t.position, point) for t in all_tags), default=float("inf"))


def assign_owner(
	cluster: Cluster,
	origin: Tag,
	all_tags: Sequence[Tag],
	ambiguity_tolerance: float = DEFAULT_AMBIGUITY_TOLERANCE,
) -> Optional[Tag]:
	"""origin 是最近位号（或与最近位号的距离差在容差内）时返回 origin，否则返回 None。"""
	if not all_tags:
		return None
	centroid = cluster.centroid
	min_dist = nearest_tag_distance(centroid, all_tags)
	my_dist = distance(origin.position, centroid)
	if abs(my_dist - min_dist) < ambiguity_tolerance:
		return origin
	return None


@dataclass(frozen=True)
class Claim:
	tag: Tag
	cluster: Cluster
	distance: float


def owned_cluster(
	clusters: Sequence[Cluster],
	origin: Tag,
	all_tags: Sequence[Tag],
	ambiguity_tolerance: float = DEFAULT_AMBIGUITY_TOLERANCE,
) -> Optional[Claim]:
	"""在 origin 拥有的簇中取质心最近的一个。"""
	best: Optional[Claim] = None
	for cl in clusters:
		if assign_owner(cl, origin, all_tags, ambiguity_tolerance) is None:
			continue
		d = distance(origin.position, cl.centroid)
		if best is None or d < best.distance:
			best = Claim(tag=origin, cluster=cl, distance=d)
	return best


def resolve_claims(claims: Sequence[Claim]) -> dict[Tag, Cluster]:
	"""
保证一次匹配中归属关系是单射：
- 按距离升序（距离相同时按原顺序）依次授予
- 与已授予簇共享图元的申请被丢弃，该位号视为没有簇
"""
	order = sorted(range(len(claims)), key=lambda i: (claims[i].distance, i))
	taken: set[str] = set()
	granted: dict[Tag, Cluster] = {}
	for i in order:
		c = claims[i]
		if c.tag in granted:
			continue
		handles = set(c.cluster.handles)
		if handles & taken:
			continue
		taken |= handles
		granted[c.tag] = c.cluster
	return granted
