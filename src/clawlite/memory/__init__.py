"""Persistent state for clawlite: session logs, approvals and skills."""

from .approvals import ApprovalStore
from .session import SessionStore, SessionWriteError
from .skills import Skill, SkillLoader

__all__ = ["ApprovalStore", "SessionStore", "SessionWriteError", "Skill", "SkillLoader"]
