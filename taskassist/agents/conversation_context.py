"""
Conversation Context Tracker - resolves what "them" / "it" refer to.

The referent pool is recomputed from the history on every call: the newest
assistant turn that mentions ``#<digits>`` defines it. Nothing is stored
between calls; the caller owns the history.
"""
import logging
import re
from typing import Iterable, Optional, Union

from taskassist.agents.config import AgentConfig, agent_config
from taskassist.models.project import ConversationTurn, Role, coerce_history

logger = logging.getLogger(__name__)

TASK_REF_PATTERN = re.compile(r"#(\d+)")

CLARIFICATION_MESSAGE = (
    "I'm not sure which tasks you mean. Could you please specify which task "
    "(for example \"#12\") or list the tasks first?"
)

HistoryLike = Iterable[Union[ConversationTurn, dict]]


class ConversationContextTracker:
    """Reads conversation history to recover implicit task references."""

    def __init__(self, config: Optional[AgentConfig] = None):
        self.config = config or agent_config

    def _window(self, history: Optional[HistoryLike]) -> list[ConversationTurn]:
        turns = coerce_history(history)
        window = self.config.REFERENT_HISTORY_WINDOW
        return turns[-window:] if window > 0 else turns

    def ordered_referents(self, history: Optional[HistoryLike]) -> list[int]:
        """Task ids of the newest assistant turn mentioning tasks, in order of appearance."""
        for turn in reversed(self._window(history)):
            if turn.role != Role.ASSISTANT.value:
                continue
            ids: list[int] = []
            for raw in TASK_REF_PATTERN.findall(turn.content):
                task_id = int(raw)
                if task_id not in ids:
                    ids.append(task_id)
            if ids:
                logger.debug(f"[CONTEXT] Referent pool: {ids}")
                return ids
        return []

    def resolve_referents(self, history: Optional[HistoryLike]) -> set[int]:
        """The referent pool as a set; empty when no assistant turn listed tasks."""
        return set(self.ordered_referents(history))

    def last_assistant_turn(self, history: Optional[HistoryLike]) -> Optional[ConversationTurn]:
        for turn in reversed(self._window(history)):
            if turn.role == Role.ASSISTANT.value:
                return turn
        return None

    def last_numeric_answer(self, history: Optional[HistoryLike]) -> Optional[str]:
        """Content of the last assistant turn if it stated a number (ids don't count)."""
        turn = self.last_assistant_turn(history)
        if turn is None:
            return None
        if re.search(r"\d", TASK_REF_PATTERN.sub("", turn.content)):
            return turn.content
        return None

    def was_discussing_tasks(self, history: Optional[HistoryLike]) -> bool:
        turn = self.last_assistant_turn(history)
        return turn is not None and bool(re.search(r"\btasks?\b|#\d+", turn.content, re.IGNORECASE))
