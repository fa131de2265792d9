"""
Persistent command approval store.

When the user answers "always" to a shell command prompt, the command's
pattern is saved so matching commands run without asking again in later
sessions. Stored as a JSON list at ``.clawlite/approvals.json``.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

# Tools whose subcommand is part of the approved pattern ("git push", "npm run")
TOOLS_WITH_SUBCOMMANDS = {"git", "npm", "npx", "docker", "kubectl", "cargo"}


@dataclass
class ApprovalEntry:
    """An approved command pattern."""
    pattern: str
    approved_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    count: int = 1


def extract_pattern(command: str) -> str:
    """Reusable pattern for a command.

    "git push -u origin main" -> "git push", "ls -la" -> "ls".
    """
    parts = command.split()
    if not parts:
        return ""
    if parts[0] in TOOLS_WITH_SUBCOMMANDS and len(parts) >= 2:
        return f"{parts[0]} {parts[1]}"
    return parts[0]


class ApprovalStore:
    """Remembers approved shell command patterns across sessions."""

    def __init__(self, file_path: str | Path):
        self.file_path = Path(file_path)
        self._approvals: dict[str, ApprovalEntry] = {}
        self._load()

    def _load(self) -> None:
        if not self.file_path.exists():
            return

        try:
            data = json.loads(self.file_path.read_text(encoding="utf-8"))
            for item in data:
                entry = ApprovalEntry(
                    pattern=item["pattern"],
                    approved_at=item.get("approved_at", ""),
                    count=int(item.get("count", 1)),
                )
                self._approvals[entry.pattern] = entry
        except (OSError, ValueError, TypeError, KeyError) as e:
            logger.warning(f"Ignoring unreadable approvals file {self.file_path}: {e}")
            self._approvals = {}

    def _save(self) -> None:
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        data = [asdict(entry) for entry in self._approvals.values()]
        self.file_path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def is_pre_approved(self, command: str) -> bool:
        """Check if a command starts with an approved pattern, word for word."""
        words = command.split()
        for pattern in self._approvals:
            pattern_words = pattern.split()
            if pattern_words and words[:len(pattern_words)] == pattern_words:
                return True
        return False

    def record_approval(self, command: str) -> ApprovalEntry | None:
        """Save the pattern for ``command`` so similar commands auto-approve."""
        pattern = extract_pattern(command)
        if not pattern:
            return None

        existing = self._approvals.get(pattern)
        entry = ApprovalEntry(
            pattern=pattern,
            count=existing.count + 1 if existing else 1,
        )
        self._approvals[pattern] = entry
        self._save()

        logger.info(f"Recorded approval for '{pattern}' (count={entry.count})")
        return entry

    def list_approvals(self) -> list[ApprovalEntry]:
        """Approvals, most used first."""
        return sorted(self._approvals.values(), key=lambda e: e.count, reverse=True)

    @property
    def count(self) -> int:
        return len(self._approvals)
