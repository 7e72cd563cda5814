"""Plain-text summary of an execution result for chat channels."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass
class ResultSummary:
    entry_id: str
    entry_name: str
    data: Any
    executed_at: datetime

    @property
    def title(self) -> str:
        return f"Scheduled: {self.entry_name}"


def _result_text(data: Any) -> str:
    if isinstance(data, str):
        return data
    if isinstance(data, dict):
        for key in ("content", "summary", "result", "text"):
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                return value
    return json.dumps(data, indent=2, default=str)


def format_summary(summary: ResultSummary) -> str:
    """Render a summary as plain text (title, timestamp, result body)."""
    stamp = summary.executed_at.strftime("%Y-%m-%d %H:%M %Z").strip()
    return f"{summary.title}\n{stamp}\n\n{_result_text(summary.data)}"


def split_message(text: str, limit: int) -> list[str]:
    """Split *text* into chunks of at most *limit* chars, preferring line breaks."""
    chunks: list[str] = []
    remaining = text
    while len(remaining) > limit:
        cut = remaining.rfind("\n", 0, limit)
        if cut <= 0:
            cut = limit
        chunks.append(remaining[:cut])
        remaining = remaining[cut:].lstrip("\n")
    if remaining:
        chunks.append(remaining)
    return chunks
