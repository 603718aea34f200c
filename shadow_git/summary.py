"""Read-side aggregation of every agent's audit log in a workspace.

Pollers (dashboards, orchestrators) call ``write_workspace_summary`` to get
``{workspace}/status.json``. Audit files may be appended to mid-read, so
only complete lines are consumed, and the aggregate is written to a
temporary file and renamed into place so concurrent readers never see a
half-written file.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections import Counter
from pathlib import Path
from typing import Optional, Union

from .audit import read_audit_log
from .config import AUDIT_FILENAME
from .models import AgentStatus, AgentSummary, AuditEventKind, WorkspaceSummary

logger = logging.getLogger(__name__)

SUMMARY_FILENAME = "status.json"
TOP_TOOLS = 3


def summarize_agent(agent_dir: Union[Path, str]) -> AgentSummary:
    agent_dir = Path(agent_dir)
    summary = AgentSummary(agent=agent_dir.name)
    entries, _ = read_audit_log(agent_dir / AUDIT_FILENAME)
    if not entries:
        return summary

    tools: Counter[str] = Counter()
    seen: set[str] = set()
    for entry in entries:
        event = entry.get("event")
        seen.add(event)
        if event == AuditEventKind.TURN_END.value:
            summary.turns += 1
        elif event == AuditEventKind.TOOL_CALL.value:
            summary.tool_calls += 1
            tools[str(entry.get("tool", "?"))] += 1
        elif event == AuditEventKind.TOOL_RESULT.value and entry.get("error") is True:
            summary.tool_errors += 1
        elif event == AuditEventKind.PATCH_CAPTURED.value:
            summary.patches_captured += 1
        elif event == AuditEventKind.COMMIT_ERROR.value:
            summary.commit_errors += 1

    timestamps = [e["ts"] for e in entries if isinstance(e.get("ts"), int)]
    if timestamps:
        summary.elapsed_ms = max(timestamps) - min(timestamps)
    summary.top_tools = tools.most_common(TOP_TOOLS)
    summary.last_event = entries[-1].get("event")

    if summary.last_event == AuditEventKind.SESSION_SHUTDOWN.value:
        summary.status = AgentStatus.FINISHED
    elif AuditEventKind.AGENT_END.value in seen:
        summary.status = AgentStatus.DONE
    else:
        summary.status = AgentStatus.ACTIVE
    return summary


def summarize_workspace(workspace_root: Union[Path, str]) -> WorkspaceSummary:
    root = Path(workspace_root)
    agents_dir = root / "agents"
    agents = []
    if agents_dir.is_dir():
        for agent_dir in sorted(p for p in agents_dir.iterdir() if p.is_dir()):
            agents.append(summarize_agent(agent_dir))
    return WorkspaceSummary(workspace_root=str(root), agents=agents)


def write_workspace_summary(
    workspace_root: Union[Path, str],
    output: Optional[Union[Path, str]] = None,
) -> Path:
    """Write the workspace aggregate atomically; returns the output path."""
    root = Path(workspace_root)
    target = Path(output) if output is not None else root / SUMMARY_FILENAME
    target.parent.mkdir(parents=True, exist_ok=True)

    summary = summarize_workspace(root)
    data = summary.model_dump(mode="json")
    data["totals"] = summary.totals

    fd, tmp_path = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, target)
    except OSError as exc:
        logger.error("Error writing workspace summary %s: %s", target, exc)
        Path(tmp_path).unlink(missing_ok=True)
        raise
    return target
