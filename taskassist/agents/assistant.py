"""
Project Assistant - the public entry points of the engine.

``answer_question`` always returns a displayable string and
``generate_command_plan`` always returns a CommandPlan; internal errors are
logged and degraded, never raised to the caller. ``process_message`` routes
one utterance to whichever of the two fits.
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional, Union

from taskassist.agents.command_planner import CommandPlanner
from taskassist.agents.command_schema import CommandPlan
from taskassist.agents.config import AgentConfig, agent_config
from taskassist.agents.conversation_context import ConversationContextTracker
from taskassist.agents.entity_extractor import EntityExtractor
from taskassist.agents.intent_classifier import Intent, IntentClassifier, IntentType
from taskassist.agents.question_answering import HELP_TEXT, QuestionAnsweringEngine
from taskassist.agents.snapshot import ProjectContextSnapshot
from taskassist.core.logging import log_with_context
from taskassist.models.project import Member, Project, coerce_history

logger = logging.getLogger(__name__)

ERROR_ANSWER = "Something went wrong while answering. " + HELP_TEXT
ERROR_PLAN_REASON = "Something went wrong while preparing that change. Could you rephrase it?"


def as_project(project) -> Project:
    """Accept a Project or its plain dict form."""
    if isinstance(project, Project):
        return project
    return Project.model_validate(project)


@dataclass
class AssistantReply:
    """Either an answer or a plan, never both."""
    intent: Intent
    answer: Optional[str] = None
    plan: Optional[CommandPlan] = None

    @property
    def is_command(self) -> bool:
        return self.plan is not None

    def to_dict(self) -> dict:
        data = {"intent": self.intent.to_dict()}
        if self.plan is not None:
            data["plan"] = self.plan.to_dict()
        else:
            data["answer"] = self.answer
        return data


class ProjectAssistant:
    """
    Facade over the question answering engine and the command planner.

    All collaborators are shared between the two paths and are stateless,
    so one instance can serve concurrent calls.
    """

    def __init__(
            self,
            config: Optional[AgentConfig] = None,
            fallback=None,
            clock: Callable[[], date] = date.today,
    ):
        self.config = config or agent_config
        self.fallback = fallback
        self.clock = clock

        self.extractor = EntityExtractor(self.config)
        self.tracker = ConversationContextTracker(self.config)
        self.classifier = IntentClassifier(self.tracker)
        self.qna = QuestionAnsweringEngine(
            self.config, fallback, self.extractor, self.tracker, self.classifier
        )
        self.planner = CommandPlanner(
            self.config, fallback, self.extractor, self.tracker, self.classifier
        )

    @classmethod
    def with_default_fallback(cls, config: Optional[AgentConfig] = None) -> "ProjectAssistant":
        """Assistant wired to the Claude fallback when it is configured."""
        from taskassist.services.llm_fallback import build_default_fallback

        config = config or agent_config
        return cls(config=config, fallback=build_default_fallback(config=config))

    def answer_question(
            self,
            project: Project,
            utterance: Optional[str],
            history=None,
            extra_context: Union[str, dict, None] = None,
            current_user: Optional[Member] = None,
    ) -> str:
        try:
            return self.qna.answer(
                as_project(project),
                utterance,
                history,
                extra_context=extra_context,
                today=self.clock(),
                current_user=current_user,
            )
        except Exception:
            logger.exception(f"[ASSISTANT] answer_question failed for project {getattr(project, 'id', None)}")
            return ERROR_ANSWER

    def generate_command_plan(
            self,
            project: Project,
            utterance: Optional[str],
            history=None,
            current_user: Optional[Member] = None,
    ) -> CommandPlan:
        try:
            return self.planner.generate_plan(
                as_project(project),
                utterance,
                history,
                today=self.clock(),
                current_user=current_user,
            )
        except Exception:
            logger.exception(f"[ASSISTANT] generate_command_plan failed for project {getattr(project, 'id', None)}")
            return CommandPlan.unresolved(ERROR_PLAN_REASON)

    def classify(self, project: Project, utterance: Optional[str], history=None) -> Intent:
        """Classify without answering or planning."""
        turns = coerce_history(history)
        snapshot = ProjectContextSnapshot.from_project(as_project(project), self.clock())
        entities = self.extractor.extract(utterance, snapshot.today)
        pool = self.tracker.resolve_referents(turns)
        return self.classifier.classify(utterance, entities, pool, snapshot, turns)

    def process_message(
            self,
            project: Project,
            utterance: Optional[str],
            history=None,
            extra_context: Union[str, dict, None] = None,
            current_user: Optional[Member] = None,
    ) -> AssistantReply:
        """Answer questions and plan commands from a single utterance."""
        try:
            intent = self.classify(project, utterance, history)
        except Exception:
            logger.exception("[ASSISTANT] classification failed")
            intent = Intent(IntentType.FALLBACK, rule="error", confidence=0.0)

        log_with_context(
            logger,
            logging.INFO,
            f"[ASSISTANT] Routing {intent.intent_type.value} to {'planner' if intent.is_command else 'qna'}",
            project_id=getattr(project, "id", None),
            intent=intent.intent_type.value,
            rule=intent.rule,
        )

        if intent.is_command:
            plan = self.generate_command_plan(project, utterance, history, current_user=current_user)
            return AssistantReply(intent=intent, plan=plan)

        answer = self.answer_question(
            project, utterance, history, extra_context=extra_context, current_user=current_user
        )
        return AssistantReply(intent=intent, answer=answer)


_default_assistant: Optional[ProjectAssistant] = None


def get_assistant() -> ProjectAssistant:
    """Get or create the shared assistant (deterministic only, no LLM)."""
    global _default_assistant
    if _default_assistant is None:
        _default_assistant = ProjectAssistant()
    return _default_assistant


def answer_question(
        project: Project,
        utterance: Optional[str],
        history=None,
        extra_context: Union[str, dict, None] = None,
) -> str:
    """Answer a question about ``project``; never raises."""
    return get_assistant().answer_question(project, utterance, history, extra_context)


def generate_command_plan(project: Project, utterance: Optional[str], history=None) -> CommandPlan:
    """Plan a command against ``project``; never raises."""
    return get_assistant().generate_command_plan(project, utterance, history)
