"""
Session Store - Append-only JSONL log of a conversation.

Every message is written as one JSON object per line, stamped with the
time it was committed. A crashed session can be resumed by replaying the
lines already on disk.
"""

import json
import logging
import time
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..llm.base import LLMMessage, ToolCall

logger = logging.getLogger(__name__)


class SessionWriteError(Exception):
    """A message could not be committed to the session log."""


def _message_to_record(message: LLMMessage) -> dict[str, Any]:
    record = {k: v for k, v in asdict(message).items() if v is not None}
    record["timestamp"] = datetime.now(timezone.utc).isoformat()
    return record


def _record_to_message(record: dict[str, Any]) -> LLMMessage:
    tool_calls = record.get("tool_calls")
    return LLMMessage(
        role=record["role"],
        content=record.get("content", ""),
        tool_calls=[ToolCall(**tc) for tc in tool_calls] if tool_calls else None,
        tool_call_id=record.get("tool_call_id"),
        name=record.get("name"),
    )


class SessionStore:
    """Durable, append-only log of the active conversation."""

    def __init__(self, session_dir: str | Path):
        self.session_dir = Path(session_dir).expanduser()
        self.session_dir.mkdir(parents=True, exist_ok=True)
        self.session_id = f"session_{int(time.time() * 1000)}"
        self.path = self.session_dir / f"{self.session_id}.jsonl"

    def append(self, message: LLMMessage) -> None:
        """Commit one message to the log.

        Raises:
            SessionWriteError: if the write fails.
        """
        line = json.dumps(_message_to_record(message), ensure_ascii=False)
        try:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
                f.flush()
        except OSError as e:
            logger.error(f"Failed to write session {self.session_id}: {e}")
            raise SessionWriteError(f"could not write to {self.path}: {e}") from e

    def load(self) -> list[LLMMessage]:
        """Read back every committed message in order."""
        if not self.path.exists():
            return []

        messages = []
        with open(self.path, encoding="utf-8") as f:
            for line_number, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    messages.append(_record_to_message(json.loads(line)))
                except (ValueError, KeyError, TypeError) as e:
                    logger.warning(f"Skipping bad line {line_number} in {self.path}: {e}")
        return messages

    def resume(self, session_id: str) -> bool:
        """Switch to an existing session log. Returns False if it doesn't exist."""
        path = self.session_dir / f"{session_id}.jsonl"
        if not path.exists():
            return False
        self.session_id = session_id
        self.path = path
        logger.info(f"Resumed session {session_id}")
        return True

    def list_sessions(self) -> list[str]:
        """Available session ids, newest first."""
        if not self.session_dir.exists():
            return []
        return sorted((p.stem for p in self.session_dir.glob("*.jsonl")), reverse=True)
