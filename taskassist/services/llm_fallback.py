"""
LLM Fallback - last-resort answers and plans from a language model.

The deterministic engine only gets here when no rule matched. The model is
reached through a ``TextGenerator`` so tests can inject a stub; any failure
is logged and reported as "no confident answer" (None).
"""
import json
import logging
import re
from typing import Any, Optional, Protocol, Union

from pydantic import ValidationError

from taskassist.agents.command_schema import get_command_json_schema, parse_command_data
from taskassist.agents.config import AgentConfig, agent_config
from taskassist.agents.exceptions import FallbackUnavailableError
from taskassist.agents.snapshot import ProjectContextSnapshot
from taskassist.core.config import Settings, get_settings
from taskassist.models.project import ConversationTurn
from taskassist.services.claude import ClaudeService

logger = logging.getLogger(__name__)

# Only the last few turns are forwarded to the model
HISTORY_TURNS_FOR_PROMPT = 6
# Tasks beyond this are summarized by count only
MAX_TASKS_IN_PROMPT = 50


class TextGenerator(Protocol):
    """Anything that can turn a prompt into text."""

    def complete(self, prompt: str) -> str:
        ...


class ClaudeTextGenerator:
    """TextGenerator backed by ClaudeService."""

    def __init__(self, service=None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        if service is None:
            if not self.settings.anthropic_api_key:
                raise FallbackUnavailableError("ANTHROPIC_API_KEY is not set")
            service = ClaudeService(api_key=self.settings.anthropic_api_key)
        self.service = service

    def complete(self, prompt: str) -> str:
        try:
            return self._chat(prompt)
        except Exception as e:
            raise FallbackUnavailableError(str(e)) from e

    def _chat(self, prompt: str) -> str:
        return self.service.chat(
            model=self.settings.fallback_model,
            messages=[{"role": "user", "content": prompt}],
            system=SYSTEM_PROMPT,
            max_tokens=self.settings.fallback_max_tokens,
            temperature=self.settings.fallback_temperature,
            request_type="fallback",
        )


SYSTEM_PROMPT = (
    "You are a project management assistant. Answer only from the project data "
    "you are given. Be brief and factual, refer to tasks as #<id>, and never "
    "invent tasks, people or dates."
)

ANSWER_PROMPT = """Project data (JSON):
{context}

Recent conversation:
{history}
{extra}
User question: {question}

Answer in plain text, at most a few sentences."""

PLAN_PROMPT = """Project data (JSON):
{context}

Recent conversation:
{history}

User request: {request}

If the request asks to change tasks, reply with ONLY a JSON object matching this schema:
{schema}

Use "__ME__" for the current user and "__OWNER__" for the project owner. Dates are YYYY-MM-DD.
If the request is not a change to tasks, reply with {{"type": "none"}}."""


def extract_json(text: str) -> Optional[dict]:
    """
    Extract JSON object from text that may contain markdown or other content.

    Handles various formats:
    - Pure JSON
    - JSON in ```json code blocks
    - JSON surrounded by text
    """
    if not text or not text.strip():
        return None

    text = text.strip()

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    code_block_patterns = [
        r'```json\s*\n(.*?)\n```',
        r'```\s*\n(.*?)\n```',
        r'```json(.*?)```',
        r'```(.*?)```',
    ]

    for pattern in code_block_patterns:
        match = re.search(pattern, text, re.DOTALL)
        if match:
            try:
                return json.loads(match.group(1).strip())
            except json.JSONDecodeError:
                continue

    first_brace = text.find('{')
    last_brace = text.rfind('}')
    if first_brace != -1 and last_brace > first_brace:
        try:
            return json.loads(text[first_brace:last_brace + 1])
        except json.JSONDecodeError:
            pass

    return None


def sanitize_answer(text: str, max_chars: int = 800) -> str:
    """Strip code blocks, collapse whitespace and cap the length."""
    text = re.sub(r"```.*?```", " ", text or "", flags=re.DOTALL)
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text).strip()
    if len(text) > max_chars:
        text = text[:max_chars].rstrip() + "..."
    return text


def build_project_context(snapshot: ProjectContextSnapshot) -> dict[str, Any]:
    """Compact JSON-friendly project description for prompts."""
    project = snapshot.project
    tasks = [
        {
            "id": t.id,
            "title": t.title,
            "status": t.status.value,
            "priority": t.priority.value,
            "assignee": t.assignee.name if t.assignee else None,
            "end_date": t.end_date.isoformat() if t.end_date else None,
            "overdue": snapshot.is_overdue(t),
        }
        for t in project.tasks[:MAX_TASKS_IN_PROMPT]
    ]
    return {
        "project": {"id": project.id, "name": project.name, "methodology": project.methodology.value},
        "today": snapshot.today.isoformat(),
        "owner": project.owner.name,
        "members": [m.name for m in snapshot.team()],
        "counts": {
            "total": snapshot.task_count,
            "by_status": {s.value: n for s, n in snapshot.count_by_status().items()},
            "by_priority": {p.value: n for p, n in snapshot.count_by_priority().items()},
            "overdue": len(snapshot.overdue_tasks()),
        },
        "tasks": tasks,
        "tasks_omitted": max(0, snapshot.task_count - MAX_TASKS_IN_PROMPT),
    }


def format_history(history: list[ConversationTurn]) -> str:
    lines = [f"{turn.role}: {turn.content}" for turn in history[-HISTORY_TURNS_FOR_PROMPT:]]
    return "\n".join(lines) if lines else "(none)"


class LLMFallback:
    """Asks a TextGenerator for an answer or a plan, and validates the result."""

    def __init__(self, generator: TextGenerator, config: Optional[AgentConfig] = None):
        self.generator = generator
        self.config = config or agent_config

    def answer(
            self,
            snapshot: ProjectContextSnapshot,
            utterance: str,
            history: list[ConversationTurn],
            extra_context: Union[str, dict, None] = None,
    ) -> Optional[str]:
        """A sanitized free-text answer, or None when the model gives nothing usable."""
        question = utterance
        extra = ""
        if isinstance(extra_context, str) and extra_context.strip():
            question = extra_context.strip()
        elif isinstance(extra_context, dict) and extra_context:
            extra = f"\nAdditional context (JSON):\n{json.dumps(extra_context, default=str)}\n"

        prompt = ANSWER_PROMPT.format(
            context=json.dumps(build_project_context(snapshot), default=str),
            history=format_history(history),
            extra=extra,
            question=question,
        )

        try:
            raw = self.generator.complete(prompt)
        except Exception as e:
            logger.warning(f"[FALLBACK] Answer generation failed: {e}")
            return None

        answer = sanitize_answer(raw, self.config.FALLBACK_ANSWER_MAX_CHARS)
        if not answer:
            logger.info("[FALLBACK] Empty answer from model")
            return None
        return answer

    def plan(
            self,
            snapshot: ProjectContextSnapshot,
            utterance: str,
            history: list[ConversationTurn],
    ):
        """Validated command data proposed by the model, or None."""
        prompt = PLAN_PROMPT.format(
            context=json.dumps(build_project_context(snapshot), default=str),
            history=format_history(history),
            request=utterance,
            schema=json.dumps(get_command_json_schema()),
        )

        try:
            raw = self.generator.complete(prompt)
        except Exception as e:
            logger.warning(f"[FALLBACK] Plan generation failed: {e}")
            return None

        data = extract_json(raw)
        if not isinstance(data, dict) or data.get("type") in (None, "none", "unresolved"):
            logger.info("[FALLBACK] Model proposed no command")
            return None

        try:
            command = parse_command_data(data)
        except ValidationError as e:
            logger.warning(f"[FALLBACK] Discarding invalid plan: {e.error_count()} validation errors")
            return None

        # Task ids must exist in the project
        task_ids = []
        if getattr(command, "task_id", None) is not None:
            task_ids.append(command.task_id)
        task_ids.extend(getattr(command, "target_task_ids", None) or [])
        missing = [tid for tid in task_ids if snapshot.find_task(tid) is None]
        if missing:
            logger.warning(f"[FALLBACK] Discarding plan referencing unknown tasks: {missing}")
            return None

        logger.info(f"[FALLBACK] Accepted {command.type} plan from model")
        return command


def build_default_fallback(
        settings: Optional[Settings] = None,
        config: Optional[AgentConfig] = None,
) -> Optional[LLMFallback]:
    """The Claude-backed fallback when configured, else None."""
    settings = settings or get_settings()
    config = config or agent_config
    if not (config.ENABLE_LLM_FALLBACK and settings.fallback_configured):
        logger.debug("[FALLBACK] LLM fallback not configured")
        return None
    return LLMFallback(ClaudeTextGenerator(settings=settings), config)
