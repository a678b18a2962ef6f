# -*- coding: utf-8 -*-

from __future__ import annotations


class ValvematchError(Exception):
	"""所有 valvematch 异常的基类。"""


class ConfigError(ValvematchError):
	"""配置（模式库 / 位号前缀 / 图层清单 / 区域属性表）无法读取或格式错误。

	属于整次匹配的致命错误：必须在任何图纸修改之前抛出。
	"""

	def __init__(self, path, message: str) -> None:
		self.path = str(path)
		super().__init__(f"{self.path}: {message}")


class MutationError(ValvematchError):
	"""修改批次中的目标实体不存在；整批不会被应用。"""
