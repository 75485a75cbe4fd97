"""
Command-line harness for the task assistant.

Usage:
    python -m taskassist --project project.json "How many tasks are done?"
    python -m taskassist --project project.json --plan "Move #5 to done"
    python -m taskassist --project project.json --interactive
"""
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from taskassist.agents.assistant import ProjectAssistant
from taskassist.core.config import get_settings
from taskassist.core.logging import setup_logging
from taskassist.models.project import ConversationTurn, Project, Role, coerce_history

logger = logging.getLogger(__name__)


def load_project(path: str) -> Project:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return Project.model_validate(data)


def load_history(path: Optional[str]) -> list[ConversationTurn]:
    if not path:
        return []
    return coerce_history(json.loads(Path(path).read_text(encoding="utf-8")))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="taskassist",
        description="Answer questions about a project or plan task changes from free text.",
    )
    parser.add_argument("utterance", nargs="*", help="Question or command (omit with --interactive)")
    parser.add_argument("--project", "-p", required=True, help="Path to a project JSON file")
    parser.add_argument("--history", help="Path to a JSON list of {role, content} turns")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--plan", action="store_true", help="Always produce a command plan")
    mode.add_argument("--ask", action="store_true", help="Always produce an answer")
    parser.add_argument("--interactive", "-i", action="store_true", help="Start a conversation session")
    parser.add_argument("--llm", action="store_true", help="Use the Claude fallback when configured")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON logs on stderr")
    return parser


def respond(
        assistant: ProjectAssistant,
        project: Project,
        utterance: str,
        history: list[ConversationTurn],
        mode: str,
) -> tuple[str, str]:
    """Returns (printable output, text to remember as the assistant turn)."""
    if mode == "plan":
        plan = assistant.generate_command_plan(project, utterance, history)
        return json.dumps(plan.to_dict(), indent=2), plan.preview_message
    if mode == "ask":
        answer = assistant.answer_question(project, utterance, history)
        return answer, answer

    reply = assistant.process_message(project, utterance, history)
    if reply.plan is not None:
        return json.dumps(reply.plan.to_dict(), indent=2), reply.plan.preview_message
    return reply.answer, reply.answer


def run_interactive(assistant: ProjectAssistant, project: Project, history: list[ConversationTurn], mode: str) -> None:
    print(f"Project: {project.name} ({len(project.tasks)} tasks). Type 'exit' to quit.")
    while True:
        try:
            utterance = input("> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            break
        if utterance.lower() in ("exit", "quit"):
            break
        if not utterance:
            continue

        output, remembered = respond(assistant, project, utterance, history, mode)
        print(output)
        history.append(ConversationTurn(role=Role.USER, content=utterance))
        history.append(ConversationTurn(role=Role.ASSISTANT, content=remembered))


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()

    setup_logging(
        log_level=args.log_level or settings.log_level,
        log_dir=settings.log_dir or None,
        json_logs=args.json_logs or settings.log_json,
        app_name="taskassist",
    )

    try:
        project = load_project(args.project)
        history = load_history(args.history)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        logger.error(f"[CLI] Could not load input: {e}")
        return 2

    assistant = ProjectAssistant.with_default_fallback() if args.llm else ProjectAssistant()
    mode = "plan" if args.plan else "ask" if args.ask else "auto"

    if args.interactive:
        run_interactive(assistant, project, history, mode)
        return 0

    utterance = " ".join(args.utterance).strip()
    if not utterance:
        parser.error("an utterance is required unless --interactive is given")

    output, _ = respond(assistant, project, utterance, history, mode)
    print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
