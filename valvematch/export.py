# -*- coding: utf-8 -*-

"""把识别出的阀门记录推送到远端（Frappe 风格的 REST 接口）。

导出是匹配之后尽力而为的下游步骤：失败只报告，不回滚已保存的图纸。
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Iterable, Optional
from urllib.parse import quote

import requests

log = logging.getLogger(__name__)

TOKEN_ENV = "VALVEMATCH_API_TOKEN"
URL_ENV = "VALVEMATCH_API_URL"


@dataclass
class ExportSettings:
	base_url: str
	doctype: str = "Instrumentation Files"
	token: Optional[str] = None
	status_field: str = "status"
	status_value: str = "IN_PROCESS"
	output_field: str = "valve_output_data"
	timeout: float = 60.0

	@staticmethod
	def from_env(base_url: Optional[str] = None, **kwargs: Any) -> "ExportSettings":
		url = base_url or os.environ.get(URL_ENV) or ""
		if not url:
			raise ValueError(f"export URL missing: pass --api-url or set {URL_ENV}")
		return ExportSettings(base_url=url.rstrip("/"), token=os.environ.get(TOKEN_ENV), **kwargs)

	@property
	def resource_url(self) -> str:
		return f"{self.base_url}/api/v2/document/{quote(self.doctype)}"

	def headers(self) -> dict[str, str]:
		h = {"Accept": "application/json"}
		if self.token:
			h["Authorization"] = f"token {self.token}"
		return h


@dataclass
class ExportResult:
	ok: bool
	count: int = 0
	status_code: Optional[int] = None
	body: str = ""
	job: Optional[str] = None


def collect_device_blocks(doc) -> list[dict[str, str]]:
	"""读取模型空间中所有带 VALVE_TAG 属性的块参照：BlockName + 全部属性。"""
	out: list[dict[str, str]] = []
	for ref in doc.modelspace().query("INSERT"):
		if not ref.attribs:
			continue
		data = {"BlockName": str(ref.dxf.name)}
		is_device = False
		for att in ref.attribs:
			tag = str(att.dxf.tag).strip()
			data[tag] = str(att.dxf.text).strip()
			if tag.upper() == "VALVE_TAG":
				is_device = True
		if is_device:
			out.append(data)
	return out


def serialize_batch(records: Iterable[Any]) -> list[dict[str, Any]]:
	"""MatchRecord 或映射统一转为映射列表。"""
	batch = []
	for r in records:
		batch.append(dict(r.to_dict() if hasattr(r, "to_dict") else r))
	return batch


def fetch_current_job(session: requests.Session, settings: ExportSettings) -> Optional[str]:
	params = {
		"fields": json.dumps(["*"]),
		"filters": json.dumps([[settings.status_field, "=", settings.status_value]]),
	}
	resp = session.get(settings.resource_url, params=params, headers=settings.headers(), timeout=settings.timeout)
	resp.raise_for_status()
	data = resp.json().get("data") or []
	if not data:
		return None
	return str(data[0].get("name") or "") or None


def export_batch(
	records: Iterable[Any],
	settings: ExportSettings,
	session: Optional[requests.Session] = None,
) -> ExportResult:
	batch = serialize_batch(records)
	own_session = session is None
	s = session if session is not None else requests.Session()
	try:
		try:
			job = fetch_current_job(s, settings)
		except (requests.RequestException, ValueError) as exc:
			log.error("获取当前任务失败：%s", exc)
			return ExportResult(ok=False, count=len(batch), body=str(exc))
		if job is None:
			return ExportResult(ok=False, count=len(batch), body=f"no {settings.status_value} job found")

		payload = {settings.output_field: json.dumps(batch, ensure_ascii=False, indent=2)}
		try:
			resp = s.patch(
				f"{settings.resource_url}/{quote(job)}",
				json=payload,
				headers=settings.headers(),
				timeout=settings.timeout,
			)
		except requests.RequestException as exc:
			log.error("推送失败：%s", exc)
			return ExportResult(ok=False, count=len(batch), body=str(exc), job=job)

		return ExportResult(ok=bool(resp.ok), count=len(batch), status_code=resp.status_code, body=resp.text, job=job)
	finally:
		if own_session:
			s.close()
