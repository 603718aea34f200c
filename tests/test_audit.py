"""Tests for the audit writer and incremental reader."""

from __future__ import annotations

import json
from pathlib import Path

from shadow_git.audit import AuditWriter, read_audit_log
from shadow_git.models import AuditEventKind


def _lines(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text().splitlines()]


class TestAuditWriter:
    def test_creates_parent_dirs_and_envelope(self, tmp_path):
        path = tmp_path / "agents" / "a1" / "audit.jsonl"
        writer = AuditWriter(path, agent="a1")
        writer.turn = 4

        assert writer.record(AuditEventKind.TOOL_CALL, tool="bash", tool_call_id="tc-1")

        (entry,) = _lines(path)
        assert entry["event"] == "tool_call"
        assert entry["agent"] == "a1"
        assert entry["turn"] == 4
        assert entry["tool"] == "bash"
        assert entry["tool_call_id"] == "tc-1"
        assert isinstance(entry["ts"], int) and entry["ts"] > 1_000_000_000_000

    def test_compact_serialization(self, tmp_path):
        path = tmp_path / "audit.jsonl"
        AuditWriter(path, agent="a1").record("turn_end", tool_result_count=2)
        assert '"event":"turn_end"' in path.read_text()

    def test_entries_keep_call_order(self, tmp_path):
        path = tmp_path / "audit.jsonl"
        writer = AuditWriter(path, agent="a1")
        for i in range(5):
            writer.turn = i
            writer.record(AuditEventKind.TURN_START)
        assert [e["turn"] for e in _lines(path)] == [0, 1, 2, 3, 4]

    def test_envelope_keys_cannot_be_overridden(self, tmp_path):
        path = tmp_path / "audit.jsonl"
        AuditWriter(path, agent="a1").record(AuditEventKind.TURN_END, agent="evil", event="x")
        (entry,) = _lines(path)
        assert entry["agent"] == "a1"
        assert entry["event"] == "turn_end"

    def test_non_json_payload_is_stringified(self, tmp_path):
        path = tmp_path / "audit.jsonl"
        AuditWriter(path, agent="a1").record(AuditEventKind.TOOL_CALL, input={"where": Path("/x")})
        assert _lines(path)[0]["input"] == {"where": "/x"}

    def test_gate_suppresses_writes(self, tmp_path):
        path = tmp_path / "audit.jsonl"
        enabled = {"on": False}
        writer = AuditWriter(path, agent="a1", gate=lambda: enabled["on"])

        assert writer.record(AuditEventKind.TURN_START) is False
        assert not path.exists()

        enabled["on"] = True
        assert writer.record(AuditEventKind.TURN_START) is True
        assert len(_lines(path)) == 1

    def test_never_raises_on_unwritable_path(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")
        writer = AuditWriter(blocker / "audit.jsonl", agent="a1")
        assert writer.record(AuditEventKind.SESSION_START) is False

    def test_unknown_kind_is_rejected_without_raising(self, tmp_path):
        path = tmp_path / "audit.jsonl"
        assert AuditWriter(path, agent="a1").record("not_a_kind") is False
        assert not path.exists()


class TestReadAuditLog:
    def test_missing_file(self, tmp_path):
        assert read_audit_log(tmp_path / "nope.jsonl") == ([], 0)

    def test_partial_trailing_line_left_for_next_read(self, tmp_path):
        path = tmp_path / "audit.jsonl"
        path.write_text('{"event":"turn_start"}\n{"event":"tur')

        entries, offset = read_audit_log(path)
        assert entries == [{"event": "turn_start"}]

        with open(path, "a") as f:
            f.write('n_end"}\n')
        more, final = read_audit_log(path, offset)
        assert more == [{"event": "turn_end"}]
        assert final == path.stat().st_size

    def test_incremental_reads(self, tmp_path):
        path = tmp_path / "audit.jsonl"
        writer = AuditWriter(path, agent="a1")
        writer.record(AuditEventKind.TURN_START)
        first, offset = read_audit_log(path)
        writer.record(AuditEventKind.TURN_END)
        second, _ = read_audit_log(path, offset)
        assert [e["event"] for e in first] == ["turn_start"]
        assert [e["event"] for e in second] == ["turn_end"]

    def test_corrupt_lines_skipped(self, tmp_path):
        path = tmp_path / "audit.jsonl"
        path.write_text('{"event":"a"}\nnot json\n[1,2]\n{"event":"b"}\n')
        entries, _ = read_audit_log(path)
        assert [e["event"] for e in entries] == ["a", "b"]

    def test_offset_past_end_restarts(self, tmp_path):
        path = tmp_path / "audit.jsonl"
        path.write_text('{"event":"a"}\n')
        entries, offset = read_audit_log(path, 10_000)
        assert [e["event"] for e in entries] == ["a"]
        assert offset == path.stat().st_size
