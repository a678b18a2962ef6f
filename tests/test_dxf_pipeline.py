"""Snapshot, pass and apply against real ezdxf documents."""

import ezdxf
import pytest

from valvematch.apply import apply_mutations, commit
from valvematch.config import MatcherConfig
from valvematch.engine import run_pass
from valvematch.errors import MutationError
from valvematch.export import collect_device_blocks
from valvematch.mutations import AddMarker, RemoveMarker
from valvematch.snapshot import explode_legacy_blocks, read_snapshot


def add_gate(msp, cx, cy, layer="VALVE"):
	msp.add_line((cx - 6, cy), (cx - 1, cy), dxfattribs={"layer": layer})
	msp.add_line((cx + 1, cy), (cx + 6, cy), dxfattribs={"layer": layer})
	msp.add_circle((cx, cy), 1.5, dxfattribs={"layer": layer})


@pytest.fixture
def drawing():
	doc = ezdxf.new()
	doc.appids.new("SMARTMARK")
	msp = doc.modelspace()
	area = msp.add_lwpolyline(
		[(-100, -100), (100, -100), (100, 100), (-100, 100)],
		close=True,
		dxfattribs={"layer": "AREA_ZONE"},
	)
	area.set_xdata("SMARTMARK", [(1000, "PLANT"), (1000, "U10")])
	msp.add_text("FV101", dxfattribs={"insert": (0, 0), "height": 2.5})
	msp.add_text("XV200", dxfattribs={"insert": (60, 60), "height": 2.5})
	add_gate(msp, 3, 3)
	return doc


def markers_in(doc, layer="VALVEMATCH_MARKER"):
	return [e for e in doc.modelspace().query("LWPOLYLINE") if e.dxf.layer == layer]


class TestReadSnapshot:
	"""Reading primitives, tags and zones from a drawing."""

	def test_contents(self, drawing, config):
		snap = read_snapshot(drawing, config)
		assert sorted(t.text for t in snap.texts) == ["FV101", "XV200"]
		assert len(snap.zones) == 1
		assert snap.zones[0].key == ("PLANT", "U10")
		kinds = sorted(p.kind for p in snap.primitives)
		assert kinds == ["CIRCLE", "LINE", "LINE", "POLYLINE"]
		assert snap.markers == ()
		assert snap.skipped == 0

	def test_effective_colors(self, config):
		doc = ezdxf.new()
		doc.layers.new("VALVE", dxfattribs={"color": 3})
		off = doc.layers.new("VALVE_OFF", dxfattribs={"color": 4})
		off.off()
		msp = doc.modelspace()
		msp.add_line((0, 0), (1, 0), dxfattribs={"layer": "VALVE"})
		msp.add_line((0, 1), (1, 1), dxfattribs={"layer": "VALVE", "color": 5})
		msp.add_line((0, 2), (1, 2), dxfattribs={"layer": "VALVE_OFF"})
		msp.add_line((0, 3), (1, 3), dxfattribs={"layer": "VALVE", "color": 0})
		snap = read_snapshot(doc, config)
		assert [p.color for p in snap.primitives] == [3, 5, 4, 7]

	def test_marker_shape(self, config):
		doc = ezdxf.new()
		msp = doc.modelspace()
		square = [(0, 0), (7, 0), (7, 7), (0, 7)]
		marker = msp.add_lwpolyline(square, close=True, dxfattribs={"layer": "VALVEMATCH_MARKER", "color": 2})
		msp.add_lwpolyline(square, close=True, dxfattribs={"layer": "VALVE"})
		msp.add_lwpolyline(square[:3], close=True, dxfattribs={"layer": "VALVEMATCH_MARKER"})
		msp.add_lwpolyline(square, close=False, dxfattribs={"layer": "VALVEMATCH_MARKER"})
		snap = read_snapshot(doc, config)
		assert [m.handle for m in snap.markers] == [marker.dxf.handle]
		assert snap.markers[0].center == pytest.approx((3.5, 3.5))
		assert len(snap.primitives) == 3


class TestApply:
	"""Applying a pass to the document."""

	def test_devices_and_markers(self, drawing, config, patterns, tag_regex):
		result = run_pass(read_snapshot(drawing, config), patterns, config, tag_regex)
		stats = apply_mutations(drawing, result.mutations, config)

		assert stats == {"markers_added": 1, "markers_removed": 0, "devices": 1}
		msp = drawing.modelspace()
		assert len(msp.query("LINE")) == 0
		assert len(msp.query("CIRCLE")) == 0

		refs = list(msp.query("INSERT"))
		assert len(refs) == 1
		assert len(drawing.blocks.get(refs[0].dxf.name)) == 3

		devices = collect_device_blocks(drawing)
		assert devices == [
			{
				"BlockName": "VALVE_GATE_FV101",
				"VALVE_TAG": "FV101",
				"VALVE_TYPE": "GATE",
				"VALVE_CLASS": "ISOLATION",
				"FACILITY": "PLANT",
				"SUB_FACILITY": "U10",
			}
		]

		marks = markers_in(drawing)
		assert len(marks) == 1
		assert marks[0].closed
		xs = [p[0] for p in marks[0].get_points("xy")]
		assert min(xs) == pytest.approx(56.5)
		assert max(xs) == pytest.approx(63.5)

	def test_marker_found_on_next_pass(self, drawing, patterns, tag_regex):
		config = MatcherConfig(allowed_layers=frozenset({"VALVE"}), place_devices=False)
		first = run_pass(read_snapshot(drawing, config), patterns, config, tag_regex)
		apply_mutations(drawing, first.mutations, config)

		add_gate(drawing.modelspace(), 63, 63)
		snap = read_snapshot(drawing, config)
		assert len(snap.markers) == 1
		second = run_pass(snap, patterns, config, tag_regex)
		assert [r.tag for r in second.records] == ["FV101", "XV200"]
		assert RemoveMarker(snap.markers[0].handle) in second.mutations

		stats = apply_mutations(drawing, second.mutations, config)
		assert stats["markers_removed"] == 1
		assert markers_in(drawing) == []

	def test_rerun_after_exploding_devices(self, drawing, config, patterns, tag_regex):
		first = run_pass(read_snapshot(drawing, config), patterns, config, tag_regex)
		apply_mutations(drawing, first.mutations, config)

		assert explode_legacy_blocks(drawing, ["VALVE"]) == 1
		second = run_pass(read_snapshot(drawing, config), patterns, config, tag_regex)
		assert [r.tag for r in second.records] == ["FV101"]
		assert not any(isinstance(m, AddMarker) for m in second.mutations)

	def test_repeated_cycles_leave_texts_unchanged(self, drawing, config, patterns, tag_regex):
		def texts():
			return sorted(e.dxf.text for e in drawing.modelspace().query("TEXT"))

		before = texts()
		for _ in range(2):
			result = run_pass(read_snapshot(drawing, config), patterns, config, tag_regex)
			apply_mutations(drawing, result.mutations, config)
			assert explode_legacy_blocks(drawing, ["VALVE"]) == 1
		assert before == ["FV101", "XV200"]
		assert texts() == before
		assert len(drawing.modelspace().query("LINE")) == 2
		assert len(drawing.modelspace().query("CIRCLE")) == 1

	def test_missing_target_leaves_document_untouched(self, drawing, config):
		before = len(drawing.modelspace())
		with pytest.raises(MutationError):
			apply_mutations(drawing, [AddMarker((0.0, 0.0), 7.0), RemoveMarker("DEAD")], config)
		assert len(drawing.modelspace()) == before
		assert markers_in(drawing) == []

	def test_commit(self, drawing, config, tmp_path):
		apply_mutations(drawing, [AddMarker((10.0, 10.0), 7.0)], config)
		out = commit(drawing, tmp_path / "out" / "result.dxf")
		assert out.exists()
		reloaded = ezdxf.readfile(str(out))
		assert len(markers_in(reloaded)) == 1


class TestExplodeLegacyBlocks:
	"""Old valve blocks are broken into primitives before matching."""

	def test_only_matching_names(self):
		doc = ezdxf.new()
		old = doc.blocks.new("OLD_VALVE_1")
		old.add_line((0, 0), (5, 0))
		pump = doc.blocks.new("PUMP")
		pump.add_circle((0, 0), 3)
		msp = doc.modelspace()
		msp.add_blockref("OLD_VALVE_1", (10, 10))
		msp.add_blockref("PUMP", (50, 50))

		assert explode_legacy_blocks(doc, ["valve"]) == 1
		assert [e.dxf.name for e in msp.query("INSERT")] == ["PUMP"]
		lines = list(msp.query("LINE"))
		assert len(lines) == 1
		assert lines[0].dxf.start.isclose((10, 10, 0))

	def test_no_keywords(self):
		doc = ezdxf.new()
		doc.blocks.new("VALVE_A").add_line((0, 0), (1, 0))
		doc.modelspace().add_blockref("VALVE_A", (0, 0))
		assert explode_legacy_blocks(doc, []) == 0

	def test_attributes_do_not_become_text(self):
		doc = ezdxf.new()
		doc.blocks.new("VALVE_GATE_FV1").add_circle((0, 0), 1.5)
		ref = doc.modelspace().add_blockref("VALVE_GATE_FV1", (5, 5))
		ref.add_attrib("VALVE_TAG", "FV1", insert=(5, 5), dxfattribs={"flags": 1})
		assert explode_legacy_blocks(doc, ["VALVE"]) == 1
		assert len(doc.modelspace().query("TEXT")) == 0
		assert len(doc.modelspace().query("CIRCLE")) == 1
