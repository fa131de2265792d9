"""
Skill Loader - Markdown instruction files merged into the system prompt.

Skills live in a directory of ``.md`` files with optional frontmatter:

    ---
    name: code-review
    trigger: review
    ---
    Instructions for the agent when this skill is active.

Skills without a trigger are always on. Triggered skills apply when the
user's message mentions the trigger word.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

FRONTMATTER_RE = re.compile(r"^---\s*\n(.*?)\n---\s*\n(.*)$", re.DOTALL)
SKILL_SUFFIXES = {".md", ".markdown"}


@dataclass
class Skill:
    name: str
    content: str
    file_path: Path
    trigger: Optional[str] = None


def _extract_field(meta: str, field_name: str) -> Optional[str]:
    match = re.search(rf"^{field_name}:\s*(.+)$", meta, re.MULTILINE)
    return match.group(1).strip() if match else None


class SkillLoader:
    """Loads skills from a directory and picks the ones relevant to a message."""

    def __init__(self, skills_dir: str | Path):
        self.skills_dir = Path(skills_dir).expanduser()
        self.skills: list[Skill] = []
        self._load()

    def _load(self) -> None:
        if not self.skills_dir.is_dir():
            return

        for file_path in sorted(self.skills_dir.iterdir()):
            if file_path.suffix not in SKILL_SUFFIXES or not file_path.is_file():
                continue
            try:
                raw = file_path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Skipping unreadable skill {file_path}: {e}")
                continue
            self.skills.append(self._parse(raw, file_path))

        logger.info(f"Loaded {len(self.skills)} skills from {self.skills_dir}")

    def _parse(self, raw: str, file_path: Path) -> Skill:
        match = FRONTMATTER_RE.match(raw)
        if match:
            meta, body = match.group(1), match.group(2).strip()
            return Skill(
                name=_extract_field(meta, "name") or file_path.stem,
                content=body,
                file_path=file_path,
                trigger=_extract_field(meta, "trigger") or None,
            )

        # No frontmatter: filename is the name, whole file is the instructions
        return Skill(name=file_path.stem, content=raw.strip(), file_path=file_path)

    def get_relevant(self, user_message: str) -> list[Skill]:
        lower = user_message.lower()
        return [
            skill for skill in self.skills
            if not skill.trigger or skill.trigger.lower() in lower
        ]

    def select_relevant_text(self, user_message: str) -> str:
        """System prompt addition for the skills relevant to ``user_message``."""
        relevant = self.get_relevant(user_message)
        if not relevant:
            return ""
        parts = [f"[Skill: {s.name}]\n{s.content}" for s in relevant]
        return "\n\n" + "\n\n".join(parts)

    def list_all(self) -> list[Skill]:
        return list(self.skills)

    @property
    def count(self) -> int:
        return len(self.skills)
