"""End-to-end matching passes over in-memory snapshots."""

from helpers import circle, gate_symbol, line, text, zone

from valvematch.config import MatcherConfig
from valvematch.engine import NO_CLUSTER, UNMATCHED, find_tags, run_pass
from valvematch.model import Marker, Snapshot
from valvematch.mutations import AddMarker, PlaceDevice, RemoveMarker

AREA = zone(-200, -200, 200, 200, facility="PLANT", sub="U10")


def snapshot(primitives=(), texts=(), markers=(), zones=(AREA,)):
	return Snapshot(primitives=tuple(primitives), texts=tuple(texts), zones=tuple(zones), markers=tuple(markers))


class TestFindTags:
	"""Tag discovery by prefix rule and zone containment."""

	def test_regex_and_zone(self, tag_regex):
		snap = snapshot(texts=[text("FV101", 0, 0), text("PIPE-12", 5, 5), text("XV7", 500, 500)])
		assert [t.text for t in find_tags(snap, tag_regex)] == ["FV101"]

	def test_duplicate_position_kept_once(self, tag_regex):
		snap = snapshot(texts=[text("FV101", 0, 0), text("FV101", 0, 0)])
		assert len(find_tags(snap, tag_regex)) == 1


class TestRunPass:
	"""Clustering, ownership, matching and marker decisions together."""

	def test_gate_recognized(self, config, patterns, tag_regex):
		snap = snapshot(gate_symbol(3, 3), [text("FV101", 0, 0)])
		result = run_pass(snap, patterns, config, tag_regex)

		assert result.tags == 1
		assert len(result.records) == 1
		rec = result.records[0]
		assert rec.tag == "FV101"
		assert rec.pattern == "GATE"
		assert rec.zone == ("PLANT", "U10")
		assert rec.attributes == {"VALVE_CLASS": "ISOLATION", "FACILITY": "PLANT", "SUB_FACILITY": "U10"}
		assert len(rec.cluster) == 3
		assert result.created == 1
		assert result.flagged == 0
		assert [type(m) for m in result.mutations] == [PlaceDevice]
		assert result.unresolved == []

	def test_far_tag_is_flagged(self, config, patterns, tag_regex):
		snap = snapshot(gate_symbol(2, 2), [text("FV101", 0, 0), text("FV102", 100, 100)])
		result = run_pass(snap, patterns, config, tag_regex)

		assert [r.tag for r in result.records] == ["FV101"]
		assert [(u.tag.text, u.reason) for u in result.unresolved] == [("FV102", NO_CLUSTER)]
		assert AddMarker(center=(100.0, 100.0), size=config.marker_size) in result.mutations
		assert result.flagged == 1

	def test_unmatched_cluster(self, config, patterns, tag_regex):
		snap = snapshot([circle(3, 3, 2)], [text("FV101", 0, 0)])
		result = run_pass(snap, patterns, config, tag_regex)

		assert result.records == []
		assert [u.reason for u in result.unresolved] == [UNMATCHED]
		assert result.mutations == [AddMarker(center=(0.0, 0.0), size=config.marker_size)]

	def test_cluster_owned_by_one_tag_only(self, config, patterns, tag_regex):
		# both tags are equally close to the symbol
		snap = snapshot(gate_symbol(3, 3), [text("FV101", 0, 0), text("FV102", 6, 0)])
		result = run_pass(snap, patterns, config, tag_regex)

		assert [r.tag for r in result.records] == ["FV101"]
		assert [u.tag.text for u in result.unresolved] == ["FV102"]
		devices = [m for m in result.mutations if isinstance(m, PlaceDevice)]
		assert len(devices) == 1

	def test_layer_filter(self, config, patterns, tag_regex):
		prims = [line(-3, 3, 2, 3, layer="PIPE"), line(4, 3, 9, 3, layer="PIPE"), circle(3, 3, 1.5, layer="PIPE")]
		result = run_pass(snapshot(prims, [text("FV101", 0, 0)]), patterns, config, tag_regex)
		assert result.records == []
		assert result.unresolved[0].reason == NO_CLUSTER

	def test_long_line_excluded_from_match_and_device(self, config, patterns, tag_regex):
		pipe = line(-20, 3, 20, 3)
		snap = snapshot(gate_symbol(3, 3) + [pipe], [text("FV101", 0, 0)])
		result = run_pass(snap, patterns, config, tag_regex)

		assert [r.pattern for r in result.records] == ["GATE"]
		assert pipe.handle not in result.records[0].cluster

	def test_tag_outside_zone_ignored(self, config, patterns, tag_regex):
		snap = snapshot(gate_symbol(503, 503), [text("FV101", 500, 500)])
		result = run_pass(snap, patterns, config, tag_regex)
		assert result.tags == 0
		assert result.mutations == []

	def test_zone_table_attributes(self, config, patterns, tag_regex):
		table = {("PLANT", "U10"): {"AREA": "10", "VALVE_CLASS": "ZONE"}}
		snap = snapshot(gate_symbol(3, 3), [text("FV101", 0, 0)])
		rec = run_pass(snap, patterns, config, tag_regex, table).records[0]
		assert rec.attributes["AREA"] == "10"
		assert rec.attributes["VALVE_CLASS"] == "ZONE"

	def test_without_device_placement(self, patterns, tag_regex):
		cfg = MatcherConfig(allowed_layers=frozenset({"VALVE"}), place_devices=False)
		snap = snapshot(gate_symbol(3, 3), [text("FV101", 0, 0)])
		result = run_pass(snap, patterns, cfg, tag_regex)
		assert len(result.records) == 1
		assert result.mutations == []
		assert result.created == 0


class TestMarkerLifecycle:
	"""Markers follow the resolution state across passes."""

	def test_flag_then_unflag(self, config, patterns, tag_regex):
		tag = text("FV101", 0, 0)
		first = run_pass(snapshot((), [tag]), patterns, config, tag_regex)
		assert first.mutations == [AddMarker(center=(0.0, 0.0), size=config.marker_size)]

		marker = Marker(handle="M1", center=(0.2, -0.1))
		second = run_pass(snapshot(gate_symbol(3, 3), [tag], [marker]), patterns, config, tag_regex)
		assert RemoveMarker("M1") in second.mutations
		assert second.unflagged == 1
		assert second.flagged == 0

	def test_flagged_tag_stays_flagged_without_new_marker(self, config, patterns, tag_regex):
		marker = Marker(handle="M1", center=(0.0, 0.0))
		result = run_pass(snapshot((), [text("FV101", 0, 0)], [marker]), patterns, config, tag_regex)
		assert result.mutations == []
		assert result.flagged == 0

	def test_unresolved_tag_beside_resolved_tag_stays_flagged(self, config, patterns, tag_regex):
		# FV101 loses the symbol to FV102, which sits within FV101's marker tolerance
		tags = [text("FV101", 0, 0), text("FV102", 0.5, 0)]
		first = run_pass(snapshot(gate_symbol(3, 3), tags), patterns, config, tag_regex)
		assert [r.tag for r in first.records] == ["FV102"]
		assert AddMarker(center=(0.0, 0.0), size=config.marker_size) in first.mutations
		assert first.flagged == 1

		marker = Marker(handle="M1", center=(0.0, 0.0))
		for order in (tags, list(reversed(tags))):
			second = run_pass(snapshot(gate_symbol(3, 3), order, [marker]), patterns, config, tag_regex)
			assert [u.tag.text for u in second.unresolved] == ["FV101"]
			assert not any(isinstance(m, (AddMarker, RemoveMarker)) for m in second.mutations)
			assert second.flagged == 0
			assert second.unflagged == 0


class TestDeterminism:
	"""Same drawing, same answer."""

	def test_repeated_pass(self, config, patterns, tag_regex):
		snap = snapshot(gate_symbol(3, 3) + gate_symbol(53, 3), [text("FV101", 0, 0), text("XV2", 50, 0)])
		a = run_pass(snap, patterns, config, tag_regex)
		b = run_pass(snap, patterns, config, tag_regex)
		assert a.records == b.records
		assert a.mutations == b.mutations

	def test_primitive_order_does_not_matter(self, config, patterns, tag_regex):
		prims = gate_symbol(3, 3) + gate_symbol(53, 3)
		tags = [text("FV101", 0, 0), text("XV2", 50, 0)]
		a = run_pass(snapshot(prims, tags), patterns, config, tag_regex)
		b = run_pass(snapshot(list(reversed(prims)), tags), patterns, config, tag_regex)
		assert a.records == b.records
