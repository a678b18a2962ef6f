# -*- coding: utf-8 -*-

"""问题标记策略：未解决的位号处画一个方框，解决后再删掉。

每个位号位置只有两个状态：Unmarked / Flagged（容差内已有标记）。
"""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

from .geom import Point, distance
from .model import Marker
from .mutations import AddMarker, Mutation, RemoveMarker

UNMARKED = "Unmarked"
FLAGGED = "Flagged"


def find_marker(position: Point, markers: Iterable[Marker], tolerance: float) -> Optional[Marker]:
	for m in markers:
		if distance(m.center, position) < tolerance:
			return m
	return None


def decide(
	position: Point,
	resolved: bool,
	markers: Iterable[Marker],
	*,
	tolerance: float = 1.0,
	size: float = 7.0,
) -> Optional[Mutation]:
	existing = find_marker(position, markers, tolerance)
	if not resolved and existing is None:
		return AddMarker(center=position, size=size)
	if resolved and existing is not None:
		return RemoveMarker(handle=existing.handle)
	return None


class MarkerBook:
	"""
一次匹配中标记的两阶段决策：先收集全部位号的判定结果，再统一决定增删。

- 已有标记只要容差内还有任一未解决位号就保留
- 容差内的位号全部已解决时才删除该标记
- 未解决位号在容差内没有（保留的或本次新增的）标记时才新增
结果与位号顺序无关；对同一图纸重复执行不会产生新的增删。
"""

	def __init__(self, markers: Iterable[Marker], *, tolerance: float = 1.0, size: float = 7.0) -> None:
		self.markers: list[Marker] = list(markers)
		self.tolerance = tolerance
		self.size = size
		self._seq = 0

	def state(self, position: Point) -> str:
		return FLAGGED if find_marker(position, self.markers, self.tolerance) else UNMARKED

	def _near(self, marker: Marker, positions: Sequence[Point]) -> bool:
		return any(distance(marker.center, p) < self.tolerance for p in positions)

	def plan(self, outcomes: Sequence[tuple[Point, bool]]) -> list[Mutation]:
		"""outcomes 为 (位号位置, 是否已解决)；返回需要执行的标记增删。"""
		unresolved = [p for p, ok in outcomes if not ok]
		resolved = [p for p, ok in outcomes if ok]

		out: list[Mutation] = []
		kept: list[Marker] = []
		for m in self.markers:
			if not self._near(m, unresolved) and self._near(m, resolved):
				out.append(RemoveMarker(handle=m.handle))
			else:
				kept.append(m)

		for p in unresolved:
			if find_marker(p, kept, self.tolerance) is not None:
				continue
			out.append(AddMarker(center=p, size=self.size))
			self._seq += 1
			kept.append(Marker(handle=f"pending-{self._seq}", center=p))

		self.markers = kept
		return out
