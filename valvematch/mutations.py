# -*- coding: utf-8 -*-

"""一次匹配产生的图纸修改意图，由 valvematch.apply 统一执行。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from .geom import Point
from .model import MatchRecord


@dataclass(frozen=True)
class AddMarker:
	center: Point
	size: float


@dataclass(frozen=True)
class RemoveMarker:
	handle: str


@dataclass(frozen=True)
class PlaceDevice:
	"""用带属性的设备块替换簇中的原始图元。"""

	record: MatchRecord
	handles: tuple[str, ...]


Mutation = Union[AddMarker, RemoveMarker, PlaceDevice]
