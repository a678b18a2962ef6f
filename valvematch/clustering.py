# -*- coding: utf-8 -*-

"""按外包框邻近关系把图元聚成连通簇。"""

from __future__ import annotations

import logging
from collections import deque
from typing import Iterable

from .geom import bbox_gap
from .model import Cluster, Primitive

log = logging.getLogger(__name__)


def are_close(a: Primitive, b: Primitive, tol: float) -> bool:
	return bbox_gap(a.bbox, b.bbox) <= tol


def split_valid(candidates: Iterable[Primitive]) -> tuple[list[Primitive], int]:
	"""去重并剔除没有有效外包框的图元，返回 (按 handle 排序的图元, 跳过数)。"""
	seen: dict[str, Primitive] = {}
	skipped = 0
	for p in candidates:
		if not p.valid:
			log.debug("跳过无外包框图元 %s (%s)", p.handle, p.kind)
			skipped += 1
			continue
		seen.setdefault(p.handle, p)
	return [seen[h] for h in sorted(seen)], skipped


def cluster(candidates: Iterable[Primitive], link_tolerance: float) -> list[Cluster]:
	"""
把候选图元划分为连通簇：
- 两图元外包框间隙 <= link_tolerance 即视为相连
- 从任一未访问图元开始做广度优先遍历，得到一个连通分量
- 结果与输入顺序无关：图元按 handle 规范化排序，簇按首个 handle 排序
"""
	if link_tolerance < 0:
		raise ValueError("link_tolerance must be >= 0")

	nodes, skipped = split_valid(candidates)
	if skipped:
		log.info("聚类时跳过 %d 个无效图元", skipped)
	if not nodes:
		return []

	visited = [False] * len(nodes)
	clusters: list[Cluster] = []
	for start in range(len(nodes)):
		if visited[start]:
			continue
		visited[start] = True
		queue = deque([start])
		members: list[int] = []
		while queue:
			cur = queue.popleft()
			members.append(cur)
			for j in range(len(nodes)):
				if visited[j]:
					continue
				if are_close(nodes[cur], nodes[j], link_tolerance):
					visited[j] = True
					queue.append(j)
		members.sort()
		clusters.append(Cluster(primitives=tuple(nodes[i] for i in members)))

	clusters.sort(key=lambda c: c.handles[0])
	return clusters
