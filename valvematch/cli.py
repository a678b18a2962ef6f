#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Optional, Sequence

import ezdxf

from .apply import apply_mutations, commit
from .config import MatcherConfig, build_tag_regex, load_list, load_zone_table
from .engine import PassResult, run_pass
from .errors import ConfigError, MutationError
from .export import ExportSettings, collect_device_blocks, export_batch
from .patterns import load_patterns
from .snapshot import explode_legacy_blocks, read_snapshot


def add_match_arguments(parser: argparse.ArgumentParser) -> None:
	parser.add_argument("input_dxf", help="输入 DXF")
	parser.add_argument("-o", "--output", required=True, help="输出 DXF")
	parser.add_argument("--patterns", required=True, help="阀门模式库 JSON")
	parser.add_argument("--prefixes", required=True, help="位号前缀清单（.xlsx 第一列，或 .csv/.txt）")
	parser.add_argument("--layers", required=True, help="允许的设备图层清单（.xlsx 第一列，或 .csv/.txt）")
	parser.add_argument("--list-header", action="store_true", help="前缀/图层清单的第一行是表头")
	parser.add_argument("--zone-table", default=None, help="可选：区域属性表 JSON（按 FACILITY/SUB_FACILITY 附加属性）")
	parser.add_argument("--proximity", type=float, default=25.0, help="位号周围搜集候选图元的半径")
	parser.add_argument("--link-tol", type=float, default=2.0, help="聚类时外包框间隙容差")
	parser.add_argument("--ambiguity-tol", type=float, default=10.0, help="与最近位号距离差的并列容差")
	parser.add_argument("--max-line-length", type=float, default=30.0, help="只有短于该值的直线计入符号构成")
	parser.add_argument("--zone-layer", default="AREA_ZONE", help="区域边界图层")
	parser.add_argument("--zone-app", default="SMARTMARK", help="区域元数据的 XDATA 应用名")
	parser.add_argument("--marker-layer", default="VALVEMATCH_MARKER", help="问题标记所在图层")
	parser.add_argument("--marker-size", type=float, default=7.0, help="问题标记方框边长")
	parser.add_argument("--marker-tol", type=float, default=1.0, help="判定“已标记”的位置容差")
	parser.add_argument(
		"--explode",
		action=argparse.BooleanOptionalAction,
		default=True,
		help="匹配前炸开名称含关键字的旧阀门块；用 --no-explode 关闭",
	)
	parser.add_argument("--explode-keyword", action="append", default=[], help="旧块名称关键字（可多次传入，默认 VALVE）")
	parser.add_argument(
		"--place-devices",
		action=argparse.BooleanOptionalAction,
		default=True,
		help="识别成功后用带属性的设备块替换原始图元；用 --no-place-devices 只做标记/报告",
	)
	parser.add_argument("--report-json", default=None, help="可选：输出识别报告 JSON")


def add_export_arguments(parser: argparse.ArgumentParser) -> None:
	parser.add_argument("--api-url", default=None, help="导出服务地址（默认读取环境变量 VALVEMATCH_API_URL）")
	parser.add_argument("--doctype", default="Instrumentation Files", help="导出目标文档类型")
	parser.add_argument("--timeout", type=float, default=60.0, help="HTTP 超时（秒）")


def build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(prog="valvematch", description="识别 DXF 中的阀门符号并关联位号")
	parser.add_argument("-v", "--verbose", action="count", default=0, help="输出更详细的日志（-vv 为调试级别）")
	sub = parser.add_subparsers(dest="command", required=True)

	p_match = sub.add_parser("match", help="匹配阀门并写出 DXF")
	add_match_arguments(p_match)

	p_export = sub.add_parser("export", help="导出 DXF 中已生成的阀门块")
	p_export.add_argument("input_dxf", help="输入 DXF")
	add_export_arguments(p_export)

	p_both = sub.add_parser("match-and-export", help="匹配后等待片刻再导出")
	add_match_arguments(p_both)
	add_export_arguments(p_both)
	p_both.add_argument("--settle-delay", type=float, default=3.0, help="保存图纸后、导出前的等待时间（秒）")
	return parser


def config_from_args(args: argparse.Namespace, layers: Sequence[str]) -> MatcherConfig:
	return MatcherConfig(
		proximity_radius=float(args.proximity),
		link_tolerance=float(args.link_tol),
		ambiguity_tolerance=float(args.ambiguity_tol),
		max_line_length=float(args.max_line_length),
		zone_layer=str(args.zone_layer),
		zone_xdata_app=str(args.zone_app),
		marker_layer=str(args.marker_layer),
		marker_size=float(args.marker_size),
		marker_tolerance=float(args.marker_tol),
		allowed_layers=frozenset(layers),
		explode_keywords=tuple(args.explode_keyword or ["VALVE"]) if args.explode else (),
		place_devices=bool(args.place_devices),
	)


def build_report(args: argparse.Namespace, result: PassResult, out_path: Path) -> dict:
	return {
		"input": str(Path(args.input_dxf).expanduser().resolve()),
		"output": str(out_path),
		"tags": result.tags,
		"created": result.created,
		"flagged": result.flagged,
		"unflagged": result.unflagged,
		"skipped": result.skipped,
		"records": [
			{
				"tag": r.tag,
				"pattern": r.pattern,
				"position": list(r.tag_position),
				"attributes": r.attributes,
				"cluster": list(r.cluster),
			}
			for r in result.records
		],
		"unresolved": [{"tag": u.tag.text, "position": list(u.tag.position), "reason": u.reason} for u in result.unresolved],
	}


def run_match(args: argparse.Namespace):
	"""返回 (退出码, 文档, PassResult)；配置错误时不读取也不修改图纸。"""
	try:
		patterns = load_patterns(args.patterns)
		print(f"已加载阀门模式：{len(patterns)} 个")
		prefixes = load_list(args.prefixes, header=args.list_header)
		print(f"已加载位号前缀：{len(prefixes)} 个")
		layers = load_list(args.layers, header=args.list_header)
		print(f"已加载阀门图层：{len(layers)} 个")
		zone_table = load_zone_table(args.zone_table) if args.zone_table else None
		config = config_from_args(args, layers)
		tag_regex = build_tag_regex(prefixes)
	except ConfigError as exc:
		print(f"[ERROR] 配置加载失败：{exc}", file=sys.stderr)
		return 2, None, None

	doc = ezdxf.readfile(args.input_dxf)
	if config.explode_keywords:
		n = explode_legacy_blocks(doc, config.explode_keywords)
		if n:
			print(f"已炸开旧阀门块：{n} 个")

	snapshot = read_snapshot(doc, config)
	result = run_pass(snapshot, patterns, config, tag_regex, zone_table)
	print(f"找到阀门位号：{result.tags} 个")

	try:
		stats = apply_mutations(doc, result.mutations, config)
	except MutationError as exc:
		print(f"[ERROR] 图纸修改失败，未保存：{exc}", file=sys.stderr)
		return 1, None, result

	out_path = commit(doc, args.output)
	if args.report_json:
		report_path = Path(args.report_json).expanduser().resolve()
		report_path.parent.mkdir(parents=True, exist_ok=True)
		with open(report_path, "w", encoding="utf-8") as f:
			json.dump(build_report(args, result, out_path), f, ensure_ascii=False, indent=2)

	for u in result.unresolved:
		print(f"- 未解决：{u.tag.text} ({u.reason})")
	print(
		f"已生成阀门块：{stats['devices']} 个；新增标记：{stats['markers_added']} 个；"
		f"移除标记：{stats['markers_removed']} 个；输出：{out_path}"
	)
	return 0, doc, result


def run_export(args: argparse.Namespace, batch) -> int:
	try:
		settings = ExportSettings.from_env(args.api_url, doctype=args.doctype, timeout=float(args.timeout))
	except ValueError as exc:
		print(f"[ERROR] {exc}", file=sys.stderr)
		return 2
	res = export_batch(batch, settings)
	print(f"[Response] {res.body}")
	if not res.ok:
		print(f"[ERROR] 推送失败：\n{res.body}", file=sys.stderr)
		return 1
	print(f"已导出阀门块：{res.count} 个")
	return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
	args = build_parser().parse_args(argv)
	level = logging.WARNING
	if args.verbose == 1:
		level = logging.INFO
	elif args.verbose >= 2:
		level = logging.DEBUG
	logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

	if args.command == "export":
		doc = ezdxf.readfile(args.input_dxf)
		return run_export(args, collect_device_blocks(doc))

	code, doc, result = run_match(args)
	if code != 0 or args.command == "match":
		return code

	time.sleep(max(0.0, float(args.settle_delay)))
	batch = collect_device_blocks(doc) if args.place_devices else result.records
	return run_export(args, batch)


if __name__ == "__main__":
	raise SystemExit(main())
