"""
Intent Classifier - ordered rule cascade over a normalized utterance.

Rules are plain ``(name, intent_type, predicate)`` tuples evaluated in order;
the first predicate that holds decides the intent. Command rules run before
question rules, and an unresolvable pronoun short-circuits the questions
with a clarification.
"""
import logging
import re
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Callable, Optional

from taskassist.agents.conversation_context import ConversationContextTracker
from taskassist.agents.entity_extractor import (
    PRIORITY_PATTERN,
    STATUS_PATTERN,
    match_priority,
    match_status,
)
from taskassist.agents.entity_schema import ExtractedEntities
from taskassist.agents.snapshot import ProjectContextSnapshot
from taskassist.models.project import ConversationTurn

logger = logging.getLogger(__name__)


class IntentType(str, Enum):
    """Every intent the assistant can recognize."""
    # Commands
    CREATE_TASK = "create_task"
    TASK_UPDATE = "task_update"
    TASK_DELETE = "task_delete"
    BULK_UPDATE = "bulk_update"
    BULK_ASSIGN = "bulk_assign"
    BULK_DELETE = "bulk_delete"
    BULK_TASK_GENERATION = "bulk_task_generation"

    # Questions
    CLARIFICATION = "clarification"
    EXPLANATION = "explanation"
    COMPARISON = "comparison"
    COUNT = "count"
    OVERVIEW = "overview"
    WEEKLY_REPORT = "weekly_report"
    OWNERSHIP = "ownership"
    TEAM_MEMBERS = "team_members"
    SPECIFIC_LOOKUP = "specific_lookup"
    ORDINAL_LOOKUP = "ordinal_lookup"
    KEYWORD_SEARCH = "keyword_search"
    DATE_LISTING = "date_listing"
    FILTERED_LISTING = "filtered_listing"
    GENERIC_LISTING = "generic_listing"
    ASSIGNMENT_FOLLOWUP = "assignment_followup"
    IDS_FOLLOWUP = "ids_followup"
    HELP = "help"
    FALLBACK = "fallback"


COMMAND_INTENTS = {
    IntentType.CREATE_TASK,
    IntentType.TASK_UPDATE,
    IntentType.TASK_DELETE,
    IntentType.BULK_UPDATE,
    IntentType.BULK_ASSIGN,
    IntentType.BULK_DELETE,
    IntentType.BULK_TASK_GENERATION,
}


@dataclass
class Intent:
    """Outcome of classification."""
    intent_type: IntentType
    rule: str
    confidence: float = 1.0

    @property
    def is_command(self) -> bool:
        return self.intent_type in COMMAND_INTENTS

    def to_dict(self) -> dict:
        data = asdict(self)
        data["intent_type"] = self.intent_type.value
        data["is_command"] = self.is_command
        return data


# A side of a comparison: ("status", TaskStatus) or ("priority", TaskPriority)
ComparisonSide = tuple[str, object]


def comparison_sides(text: str) -> Optional[tuple[ComparisonSide, ComparisonSide]]:
    """
    Split "done vs in progress" (or "compare X and Y") into two filter sides.

    Returns None unless both sides resolve to a status or priority.
    """
    text = text.lower()
    parts = re.split(r"\s+(?:vs\.?|versus|compared\s+(?:to|with)|against)\s+", text, maxsplit=1)
    if len(parts) != 2:
        match = re.search(r"\bcompare\s+(.+?)\s+(?:and|with|to)\s+(.+)$", text)
        if not match:
            return None
        parts = [match.group(1), match.group(2)]

    sides = []
    for part in parts:
        status = match_status(part)
        priority = match_priority(part)
        if status is not None and (priority is None or _starts_before(part)):
            sides.append(("status", status))
        elif priority is not None:
            sides.append(("priority", priority))
        else:
            return None
    return sides[0], sides[1]


def _starts_before(part: str) -> bool:
    """True when the status token comes before the priority token."""
    s = STATUS_PATTERN.search(part)
    p = PRIORITY_PATTERN.search(part)
    return s is not None and (p is None or s.start() < p.start())


@dataclass
class RuleContext:
    """Everything a rule predicate may look at."""
    text: str
    entities: ExtractedEntities
    referent_pool: set[int]
    snapshot: ProjectContextSnapshot
    history: list[ConversationTurn] = field(default_factory=list)
    tracker: Optional[ConversationContextTracker] = None


Predicate = Callable[[RuleContext], bool]

QUESTION_OPENER = re.compile(r"^(how|what|which|who|why|when|where|is|are|does|did)\b")

CREATE_PATTERN = re.compile(r"\b(create|add|new|make)\s+(?:a\s+)?(?:new\s+)?task\b")
UPDATE_VERB_PATTERN = re.compile(
    r"\b(move|set|mark|change|update|rename|edit|put|assign|reassign|reschedule|push|shift)\b"
)
BULK_VERB_PATTERN = re.compile(
    r"\b(move|set|mark|change|update|put|reschedule|push|shift)\b"
)
SINGULAR_PRONOUN_PATTERN = re.compile(r"\b(it|that\s+one|this\s+one|that\s+task|this\s+task)\b")
BULK_SCOPE_PATTERN = re.compile(r"\b(all|every|everything|them|these|those|tasks|overdue|past\s+due)\b")
TARGET_CLAUSE_PATTERN = re.compile(r"\b(to|as|into)\b")
SCOPE_SPLIT_PATTERN = re.compile(r"\s+(?:to|as|into)\s+")
OWNERSHIP_PATTERN = re.compile(
    r"\bwho(?:\s+is|'s|\s+are)?\s+(?:the\s+)?(?:project\s+)?owners?\b"
    r"|\bwho\s+(?:owns|manages|leads)\s+(?:the|this)\s+project\b"
    r"|\bowner\s+of\s+(?:the|this)\s+project\b"
    r"|^(?:the\s+)?(?:project\s+)?owner\??$"
)
ASSIGN_PATTERN = re.compile(r"\b(assign|reassign)\b.*\b(to|for)\b")
DELETE_PATTERN = re.compile(r"\b(delete|remove|drop|trash|erase)\b")
GENERATION_PATTERN = re.compile(
    r"\b(generate|suggest|brainstorm|draft)\b.*\btasks?\b"
    r"|\b(create|add|make)\s+(?:some\s+|more\s+)?tasks\s+(?:for|about|on|to)\b"
)


def _is_question_form(ctx: RuleContext) -> bool:
    return bool(QUESTION_OPENER.search(ctx.text))


def _is_create(ctx: RuleContext) -> bool:
    return not _is_question_form(ctx) and bool(CREATE_PATTERN.search(ctx.text))


def _has_bulk_scope(ctx: RuleContext) -> bool:
    """True when the words before the "to/as/into" clause select several tasks."""
    if len(ctx.entities.task_ids) > 1:
        return True
    scope = SCOPE_SPLIT_PATTERN.split(ctx.text, maxsplit=1)[0]
    return (
        bool(BULK_SCOPE_PATTERN.search(scope))
        or match_status(scope) is not None
        or match_priority(scope) is not None
    )


def _names_single_task(ctx: RuleContext) -> bool:
    """One task without a '#id': a singular pronoun or "the first/latest task"."""
    if ctx.entities.task_ids:
        return False
    if SINGULAR_PRONOUN_PATTERN.search(ctx.text) and not re.search(r"\ball\b", ctx.text):
        return True
    ordinal = ctx.entities.ordinal
    return ordinal is not None and ordinal.count is None


def _is_task_update(ctx: RuleContext) -> bool:
    if _is_question_form(ctx) or not UPDATE_VERB_PATTERN.search(ctx.text):
        return False
    if len(ctx.entities.task_ids) == 1 or _names_single_task(ctx):
        return True
    # "Move the CI pipeline task to review": a single target the planner must resolve or refuse
    return (
        not ctx.entities.task_ids
        and ctx.entities.quantity is None
        and bool(TARGET_CLAUSE_PATTERN.search(ctx.text))
        and not _has_bulk_scope(ctx)
    )


def _is_bulk_update(ctx: RuleContext) -> bool:
    if _is_question_form(ctx) or ctx.entities.quantity is not None:
        return False
    if not BULK_VERB_PATTERN.search(ctx.text) or not TARGET_CLAUSE_PATTERN.search(ctx.text):
        return False
    return _has_bulk_scope(ctx)


def _is_bulk_assign(ctx: RuleContext) -> bool:
    return not _is_question_form(ctx) and bool(ASSIGN_PATTERN.search(ctx.text))


def _is_task_delete(ctx: RuleContext) -> bool:
    if _is_question_form(ctx) or not DELETE_PATTERN.search(ctx.text):
        return False
    return len(ctx.entities.task_ids) == 1 or _names_single_task(ctx)


def _is_bulk_delete(ctx: RuleContext) -> bool:
    if _is_question_form(ctx) or not DELETE_PATTERN.search(ctx.text):
        return False
    return (
        bool(re.search(r"\btasks?\b", ctx.text))
        or bool(ctx.entities.task_ids)
        or ctx.entities.has_pronoun
        or ctx.entities.has_filters
        or ctx.entities.date_window is not None
    )


def _is_generation(ctx: RuleContext) -> bool:
    if _is_question_form(ctx):
        return False
    return ctx.entities.quantity is not None or bool(GENERATION_PATTERN.search(ctx.text))


COMMAND_RULES: list[tuple[str, IntentType, Predicate]] = [
    ("create_task", IntentType.CREATE_TASK, _is_create),
    ("task_update", IntentType.TASK_UPDATE, _is_task_update),
    ("bulk_update", IntentType.BULK_UPDATE, _is_bulk_update),
    ("bulk_assign", IntentType.BULK_ASSIGN, _is_bulk_assign),
    ("task_delete", IntentType.TASK_DELETE, _is_task_delete),
    ("bulk_delete", IntentType.BULK_DELETE, _is_bulk_delete),
    ("bulk_task_generation", IntentType.BULK_TASK_GENERATION, _is_generation),
]


def _needs_clarification(ctx: RuleContext) -> bool:
    return ctx.entities.has_pronoun and not ctx.entities.task_ids and not ctx.referent_pool


def _is_explanation(ctx: RuleContext) -> bool:
    asks_why = bool(re.search(
        r"^(why|how come|explain|how did you|how do you know|where do (?:these|those|the) numbers)\b",
        ctx.text,
    ))
    if not asks_why or ctx.tracker is None:
        return False
    return ctx.tracker.last_numeric_answer(ctx.history) is not None


def _is_comparison(ctx: RuleContext) -> bool:
    return comparison_sides(ctx.text) is not None


def _is_count(ctx: RuleContext) -> bool:
    return bool(re.search(r"\b(how many|count|number of|total)\b", ctx.text))


def _is_overview(ctx: RuleContext) -> bool:
    return bool(re.search(
        r"\b(overview|snapshot|summary|summarize|project (?:info|details|status|health))\b",
        ctx.text,
    ))


def _is_weekly_report(ctx: RuleContext) -> bool:
    return bool(re.search(r"\b(weekly|progress report|status report|week(?:ly)? report)\b", ctx.text))


def _is_ownership(ctx: RuleContext) -> bool:
    if ctx.entities.task_ids:
        return False
    return bool(OWNERSHIP_PATTERN.search(ctx.text))


def _is_team_members(ctx: RuleContext) -> bool:
    return bool(re.search(
        r"\b(team members?|members|who (?:is|are) (?:on|in) (?:the|this) (?:team|project)|who works)\b",
        ctx.text,
    ))


def _is_specific_lookup(ctx: RuleContext) -> bool:
    return bool(ctx.entities.task_ids)


def _is_ordinal(ctx: RuleContext) -> bool:
    return ctx.entities.ordinal is not None


def _is_keyword(ctx: RuleContext) -> bool:
    return ctx.entities.keyword is not None


def _is_date_listing(ctx: RuleContext) -> bool:
    return ctx.entities.date_window is not None


def _is_filtered_listing(ctx: RuleContext) -> bool:
    if ctx.entities.has_filters or re.search(r"\bunassigned\b", ctx.text):
        return True
    return ctx.entities.assignee_hint is not None and bool(re.search(r"\b(tasks?|assigned|working)\b", ctx.text))


def _is_generic_listing(ctx: RuleContext) -> bool:
    return bool(re.search(
        r"\b(list|show|display|see|view|give me|what are)\b.*\btasks?\b"
        r"|^(?:all\s+)?tasks\??$|\ball tasks\b|\btask list\b",
        ctx.text,
    ))


def _is_assignment_followup(ctx: RuleContext) -> bool:
    return bool(ctx.referent_pool) and bool(re.search(
        r"\bwho\b.*\b(assigned|working|responsible|owns)\b|\bassignees?\b",
        ctx.text,
    ))


def _is_ids_followup(ctx: RuleContext) -> bool:
    return bool(re.search(r"\b(ids?|numbers)\b", ctx.text))


def _is_help(ctx: RuleContext) -> bool:
    return bool(re.search(r"\b(help|what can you do|how do i|commands|examples?)\b", ctx.text))


QUESTION_RULES: list[tuple[str, IntentType, Predicate]] = [
    ("explanation", IntentType.EXPLANATION, _is_explanation),
    ("comparison", IntentType.COMPARISON, _is_comparison),
    ("count", IntentType.COUNT, _is_count),
    ("overview", IntentType.OVERVIEW, _is_overview),
    ("weekly_report", IntentType.WEEKLY_REPORT, _is_weekly_report),
    ("ownership", IntentType.OWNERSHIP, _is_ownership),
    ("team_members", IntentType.TEAM_MEMBERS, _is_team_members),
    ("specific_lookup", IntentType.SPECIFIC_LOOKUP, _is_specific_lookup),
    ("ordinal_lookup", IntentType.ORDINAL_LOOKUP, _is_ordinal),
    ("keyword_search", IntentType.KEYWORD_SEARCH, _is_keyword),
    ("date_listing", IntentType.DATE_LISTING, _is_date_listing),
    ("filtered_listing", IntentType.FILTERED_LISTING, _is_filtered_listing),
    ("generic_listing", IntentType.GENERIC_LISTING, _is_generic_listing),
    ("assignment_followup", IntentType.ASSIGNMENT_FOLLOWUP, _is_assignment_followup),
    ("ids_followup", IntentType.IDS_FOLLOWUP, _is_ids_followup),
    ("help", IntentType.HELP, _is_help),
]


def normalize(utterance: Optional[str]) -> str:
    """Lowercase, trim and collapse whitespace."""
    return re.sub(r"\s+", " ", (utterance or "").strip().lower())


class IntentClassifier:
    """Runs the command rules, the clarification guard, then the question rules."""

    def __init__(self, tracker: Optional[ConversationContextTracker] = None):
        self.tracker = tracker or ConversationContextTracker()

    def classify(
            self,
            utterance: Optional[str],
            entities: ExtractedEntities,
            referent_pool: set[int],
            snapshot: ProjectContextSnapshot,
            history: Optional[list[ConversationTurn]] = None,
    ) -> Intent:
        ctx = RuleContext(
            text=normalize(utterance),
            entities=entities,
            referent_pool=set(referent_pool or ()),
            snapshot=snapshot,
            history=list(history or []),
            tracker=self.tracker,
        )

        if not ctx.text:
            return Intent(IntentType.HELP, rule="empty", confidence=1.0)

        for name, intent_type, predicate in COMMAND_RULES:
            if predicate(ctx):
                return self._matched(name, intent_type, ctx)

        if _needs_clarification(ctx):
            return self._matched("clarification", IntentType.CLARIFICATION, ctx)

        for name, intent_type, predicate in QUESTION_RULES:
            if predicate(ctx):
                return self._matched(name, intent_type, ctx)

        logger.info(f"[CLASSIFIER] No rule matched: '{ctx.text[:60]}'")
        return Intent(IntentType.FALLBACK, rule="fallback", confidence=0.0)

    @staticmethod
    def _matched(name: str, intent_type: IntentType, ctx: RuleContext) -> Intent:
        logger.info(
            f"[CLASSIFIER] '{ctx.text[:60]}' -> {intent_type.value} (rule={name})",
            extra={"intent": intent_type.value, "rule": name, "project_id": ctx.snapshot.project.id},
        )
        return Intent(intent_type, rule=name)
