"""
Command-line interface for clawlite.
"""

import argparse
import asyncio
import logging
import sys

import structlog

from .agent import Agent, AgentEvent, ContextGuard
from .config import Settings, get_settings, load_settings
from .lane import LaneManager
from .llm import create_llm
from .memory import ApprovalStore, SessionStore, SkillLoader
from .tools import ApprovalDecision, build_tool_registry

structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.dev.ConsoleRenderer(colors=True),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

HELP_TEXT = """Commands:
  /help       Show this help
  /session    Show the current session id and message count
  /sessions   List saved sessions
  /tools      List available tools
  /skills     List loaded skills
  /approve    List remembered command approvals
  /quit       Exit (also /exit)"""


async def prompt_approval(command: str) -> ApprovalDecision:
    """Ask the user whether a shell command may run."""
    print(f"\n  Command: {command}")
    answer = await asyncio.to_thread(input, "  Allow? [y/N/always] ")
    answer = answer.strip().lower()

    if answer in ("always", "a"):
        return ApprovalDecision.ALWAYS
    if answer in ("y", "yes"):
        return ApprovalDecision.ONCE
    return ApprovalDecision.DENY


def print_event(event: AgentEvent) -> None:
    print(f"  {event.message}")


def build_agent(settings: Settings) -> tuple[Agent, ApprovalStore, SkillLoader]:
    """Wire the agent and its collaborators from settings."""
    primary = create_llm(settings.llm.primary, settings)
    fallback = create_llm(settings.llm.fallback, settings) if settings.llm.fallback else None

    approvals = ApprovalStore(settings.session.approvals_file)
    skills = SkillLoader(settings.skills_dir)

    agent = Agent(
        provider=primary,
        fallback=fallback,
        tool_registry=build_tool_registry(settings, approvals=approvals, confirm=prompt_approval),
        context_guard=ContextGuard(
            max_tokens=settings.llm.max_context_tokens,
            threshold=settings.llm.compact_threshold,
        ),
        session=SessionStore(settings.session.dir),
        lanes=LaneManager(),
        skills=skills,
        max_turns=settings.llm.max_turns,
        on_event=print_event,
    )
    return agent, approvals, skills


def print_banner(settings: Settings, agent: Agent, approvals: ApprovalStore, skills: SkillLoader) -> None:
    primary = settings.llm.primary
    print("\n=== clawlite ===\n")
    print(f"  Provider: {primary.provider} ({primary.model})")
    if settings.llm.fallback:
        fallback = settings.llm.fallback
        print(f"  Fallback: {fallback.provider} ({fallback.model})")
    print(f"  Context:  {settings.llm.max_context_tokens} tokens "
          f"(compact at {int(settings.llm.compact_threshold * 100)}%)")
    print(f"  Tools:    {', '.join(agent.tool_registry.list_tools()) or '(none)'}")
    print(f"  Skills:   {skills.count}")
    print(f"  Approved: {approvals.count} command patterns")
    print(f"  Session:  {agent.session.session_id}")
    print("\nType /help for commands.\n")


def handle_command(line: str, agent: Agent, approvals: ApprovalStore, skills: SkillLoader) -> bool:
    """Run a slash command. Returns False when the REPL should exit."""
    command = line.split()[0].lower()

    if command in ("/quit", "/exit"):
        return False

    if command == "/help":
        print(HELP_TEXT)
    elif command == "/session":
        print(f"  Session: {agent.session.session_id} ({agent.message_count} messages)")
    elif command == "/sessions":
        sessions = agent.session.list_sessions()
        if not sessions:
            print("  No saved sessions.")
        for session_id in sessions:
            print(f"  {session_id}")
    elif command == "/tools":
        for name in agent.tool_registry.list_tools():
            print(f"  {name}")
    elif command == "/skills":
        if not skills.count:
            print(f"  No skills loaded from {skills.skills_dir}")
        for skill in skills.list_all():
            trigger = f" (trigger: {skill.trigger})" if skill.trigger else ""
            print(f"  {skill.name}{trigger}")
    elif command == "/approve":
        entries = approvals.list_approvals()
        if not entries:
            print("  No remembered approvals.")
        for entry in entries:
            print(f"  {entry.pattern:<20} used {entry.count}x, approved {entry.approved_at}")
    else:
        print(f"  Unknown command: {command}. Type /help for commands.")

    return True


async def repl(settings: Settings, resume: str | None = None) -> None:
    """Read-eval-print loop over the agent."""
    agent, approvals, skills = build_agent(settings)

    if resume:
        if agent.resume_session(resume):
            print(f"Resumed session {resume} ({agent.message_count} messages)")
        else:
            print(f"Session not found: {resume}")

    print_banner(settings, agent, approvals, skills)

    while True:
        try:
            line = await asyncio.to_thread(input, "you > ")
        except (EOFError, KeyboardInterrupt):
            print()
            break

        line = line.strip()
        if not line:
            continue

        if line.startswith("/"):
            if not handle_command(line, agent, approvals, skills):
                break
            continue

        try:
            response = await agent.handle_message(line)
        except Exception as e:
            logger.error("Turn failed", error=str(e))
            print(f"Error: {e}")
            continue

        print(f"\nclawlite > {response}\n")


def main() -> None:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="clawlite",
        description="clawlite - a local-first coding agent for your terminal",
    )
    parser.add_argument("--config", default=None, help="Path to a JSON config file")
    parser.add_argument("--resume", default=None, metavar="SESSION_ID", help="Resume a saved session")

    args = parser.parse_args()

    settings = load_settings(args.config) if args.config else get_settings()
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=settings.log_level.upper())

    try:
        asyncio.run(repl(settings, args.resume))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
