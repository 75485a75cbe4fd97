"""
Entity Extractor - pulls task ids, filters, dates and names out of an utterance.

Pure and deterministic: the same utterance (and ``today``) always yields the
same ExtractedEntities, and extraction never raises. When several status or
priority tokens appear, the leftmost one wins.
"""
import logging
import re
from datetime import date
from typing import Optional

from taskassist.agents.config import AgentConfig, agent_config
from taskassist.agents.date_windows import find_date_window
from taskassist.agents.entity_schema import (
    AssigneeSentinel,
    ExtractedEntities,
    LATEST,
    NUMBER_WORDS,
    ORDINAL_WORDS,
    OrdinalRef,
)
from taskassist.models.project import TaskPriority, TaskStatus

logger = logging.getLogger(__name__)

# =============================================================================
# TOKEN TABLES
# =============================================================================

STATUS_PATTERN = re.compile(
    r"\b(to[\s-]?do|backlog|in[\s-]?progress|review|done|completed|complete|finished)\b"
)

STATUS_SYNONYMS = {
    "todo": TaskStatus.TODO,
    "backlog": TaskStatus.TODO,
    "inprogress": TaskStatus.IN_PROGRESS,
    "review": TaskStatus.REVIEW,
    "done": TaskStatus.DONE,
    "completed": TaskStatus.DONE,
    "complete": TaskStatus.DONE,
    "finished": TaskStatus.DONE,
}

PRIORITY_PATTERN = re.compile(
    r"\b(low|medium|high|urgent|critical|blocker|p[0-3])\b(?:[\s-]priority)?"
)

PRIORITY_SYNONYMS = {
    "low": TaskPriority.LOW,
    "medium": TaskPriority.MEDIUM,
    "high": TaskPriority.HIGH,
    "urgent": TaskPriority.URGENT,
    "critical": TaskPriority.URGENT,
    "blocker": TaskPriority.URGENT,
    "p0": TaskPriority.URGENT,
    "p1": TaskPriority.HIGH,
    "p2": TaskPriority.MEDIUM,
    "p3": TaskPriority.LOW,
}

TASK_ID_PATTERN = re.compile(r"#(\d+)")

ME_PATTERN = re.compile(r"\b(?:to|for)\s+me\b|\bmyself\b|\bmy\s+tasks\b|\bassigned\s+to\s+me\b")
OWNER_PATTERN = re.compile(r"\b(?:to|for)\s+(?:the\s+)?(?:project\s+)?owner\b")

# Lookahead so overlapping "to ... to ..." candidates are all seen
NAME_CANDIDATE_PATTERN = re.compile(r"\b(to|for)\s+(?=(\S[^,.;:!?\"]*))", re.IGNORECASE)
NAME_STOP_PATTERN = re.compile(
    r"\s+\b(?:and|with|by|due|on|in|before|after|please|from|who|that|which|so|to|for|tomorrow|today)\b.*$",
    re.IGNORECASE,
)

# First words that can never start a person's name
RESERVED_NAME_WORDS = {
    "a", "an", "the", "all", "any", "every", "each", "this", "that", "these", "those",
    "them", "it", "do", "todo", "backlog", "in", "review", "done", "completed", "complete",
    "finished", "low", "medium", "high", "urgent", "critical", "blocker", "p0", "p1", "p2",
    "p3", "priority", "status", "task", "tasks", "today", "tomorrow", "tonight", "next",
    "last", "end", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday",
    "sunday", "january", "february", "march", "april", "may", "june", "july", "august",
    "september", "october", "november", "december", "jan", "feb", "mar", "apr", "jun",
    "jul", "aug", "sep", "sept", "oct", "nov", "dec", "overdue", "soon", "me", "owner",
    "project", "be", "get", "see", "show", "make", "my", "our", "your", "you", "us",
    "week", "month", "now", "later", "some", "more", "new",
}

NUMBER_TOKEN = r"(\d+|" + "|".join(NUMBER_WORDS) + r")"

ORDINAL_TOKEN = r"(" + "|".join(ORDINAL_WORDS) + r"|\d+(?:st|nd|rd|th))"
ORDINAL_SINGLE_PATTERN = re.compile(r"\b" + ORDINAL_TOKEN + r"\s+(?:task|one|item)\b")
ORDINAL_FIRST_N_PATTERN = re.compile(r"\b(?:first|top|oldest)\s+" + NUMBER_TOKEN + r"\s+tasks\b")
ORDINAL_LAST_N_PATTERN = re.compile(
    r"\b(?:last|latest|newest|most\s+recent)\s+" + NUMBER_TOKEN + r"\s+tasks\b"
)
ORDINAL_LATEST_PATTERN = re.compile(
    r"\b(?:latest|last|newest|most\s+recent|most\s+recently\s+created)\s+(?:task|one|item)\b"
)
ORDINAL_OLDEST_PATTERN = re.compile(r"\boldest\s+(?:task|one|item)\b")

VAGUE_QUANTITIES = {
    "a couple of": 2,
    "couple of": 2,
    "a few": 3,
    "few": 3,
    "several": 3,
    "multiple": 4,
    "some": 4,
}
QUANTITY_PATTERN = re.compile(
    r"\b(?:generate|create|make|add|suggest|draft|brainstorm|give\s+me)\s+(?:me\s+)?"
    r"(\d+|" + "|".join(NUMBER_WORDS) + r"|" + "|".join(VAGUE_QUANTITIES) + r")\s+"
    r"(?:[a-z-]+\s+){0,2}?tasks?\b"
)

KEYWORD_PATTERN = re.compile(
    r"\b(?:search(?:\s+for)?|look\s+for|matching|containing|mentioning|"
    r"find\s+tasks?\s+(?:about|with|containing|mentioning|titled|named|called))\s+(.+)$"
)
KEYWORD_FILLER = re.compile(r"^(?:(?:for|tasks?|with|about|containing|matching|titled|named|called|the|word)\s+)+")

QUOTED_PATTERN = re.compile(r"[\"“]([^\"”]+)[\"”]|(?:^|\s)'([^']+)'(?=\s|$|[.,!?])")

PRONOUN_PATTERN = re.compile(
    r"\b(them|it|these|those|that\s+one|this\s+one|that\s+task|this\s+task|the\s+same\s+ones?)\b"
)


# =============================================================================
# TOKEN MATCHERS (shared with the planner)
# =============================================================================

def match_status(text: str) -> Optional[TaskStatus]:
    """Leftmost status token in ``text``."""
    match = STATUS_PATTERN.search(text.lower())
    if not match:
        return None
    token = re.sub(r"[\s-]", "", match.group(1))
    return STATUS_SYNONYMS.get(token)


def match_priority(text: str) -> Optional[TaskPriority]:
    """Leftmost priority token in ``text``."""
    match = PRIORITY_PATTERN.search(text.lower())
    if not match:
        return None
    return PRIORITY_SYNONYMS.get(match.group(1))


def parse_number(token: str) -> Optional[int]:
    token = token.strip().lower()
    if token.isdigit():
        return int(token)
    if token in NUMBER_WORDS:
        return NUMBER_WORDS[token]
    if token in VAGUE_QUANTITIES:
        return VAGUE_QUANTITIES[token]
    return None


def match_assignee(text: str) -> Optional[str]:
    """
    Assignee hint: a sentinel for "me"/"owner", else a literal name.

    Names keep the user's casing. Candidates after "to" win over "for", and
    the rightmost candidate wins because assignees close the sentence.
    """
    lowered = text.lower()
    if ME_PATTERN.search(lowered):
        return AssigneeSentinel.ME.value
    if OWNER_PATTERN.search(lowered):
        return AssigneeSentinel.OWNER.value

    to_candidates = []
    for_candidates = []
    for match in NAME_CANDIDATE_PATTERN.finditer(text):
        name = _clean_name(match.group(2))
        if not name:
            continue
        if match.group(1).lower() == "to":
            to_candidates.append(name)
        else:
            for_candidates.append(name)

    if to_candidates:
        return to_candidates[-1]
    if for_candidates:
        return for_candidates[-1]
    return None


def _clean_name(fragment: str) -> Optional[str]:
    name = NAME_STOP_PATTERN.sub("", fragment.strip())
    name = re.sub(r"\s+", " ", name).strip(" '")
    if not name:
        return None
    words = name.split(" ")
    first = words[0].lower()
    if first in RESERVED_NAME_WORDS or any(ch.isdigit() for ch in name) or name.startswith("#"):
        return None
    if len(words) > 4:
        return None
    return name


def match_ordinal(text: str) -> Optional[OrdinalRef]:
    lowered = text.lower()

    match = ORDINAL_FIRST_N_PATTERN.search(lowered)
    if match:
        count = parse_number(match.group(1))
        if count:
            return OrdinalRef(position=1, count=count)

    match = ORDINAL_LAST_N_PATTERN.search(lowered)
    if match:
        count = parse_number(match.group(1))
        if count:
            return OrdinalRef(position=LATEST, count=count)

    if ORDINAL_LATEST_PATTERN.search(lowered):
        return OrdinalRef(position=LATEST)
    if ORDINAL_OLDEST_PATTERN.search(lowered):
        return OrdinalRef(position=1)

    match = ORDINAL_SINGLE_PATTERN.search(lowered)
    if match:
        token = match.group(1)
        position = ORDINAL_WORDS.get(token)
        if position is None:
            position = int(re.sub(r"\D", "", token))
        if position >= 1:
            return OrdinalRef(position=position)
    return None


def match_quantity(text: str) -> Optional[int]:
    match = QUANTITY_PATTERN.search(text.lower())
    if not match:
        return None
    return parse_number(match.group(1))


def match_quoted(text: str) -> Optional[str]:
    match = QUOTED_PATTERN.search(text)
    if not match:
        return None
    quoted = (match.group(1) or match.group(2) or "").strip()
    return quoted or None


def match_keyword(text: str, quoted: Optional[str] = None) -> Optional[str]:
    match = KEYWORD_PATTERN.search(text.lower())
    if not match:
        return None
    if quoted:
        return quoted
    keyword = KEYWORD_FILLER.sub("", match.group(1).strip())
    keyword = keyword.strip(" \"'?.!,")
    return keyword or None


# =============================================================================
# EXTRACTOR
# =============================================================================

class EntityExtractor:
    """Turns a raw utterance into ExtractedEntities."""

    def __init__(self, config: Optional[AgentConfig] = None):
        self.config = config or agent_config

    def extract(self, utterance: Optional[str], today: Optional[date] = None) -> ExtractedEntities:
        """
        Extract every entity from ``utterance``.

        Never raises: malformed or empty input yields empty entities.
        """
        text = re.sub(r"\s+", " ", (utterance or "").strip())
        if not text:
            return ExtractedEntities()

        today = today or date.today()
        lowered = text.lower()
        quoted = match_quoted(text)

        task_ids: list[int] = []
        for raw in TASK_ID_PATTERN.findall(text):
            task_id = int(raw)
            if task_id not in task_ids:
                task_ids.append(task_id)

        # Quoted titles must not leak filters or pronouns into the utterance
        unquoted = QUOTED_PATTERN.sub(" ", text) if quoted else text
        unquoted_lower = unquoted.lower()

        entities = ExtractedEntities(
            task_ids=tuple(task_ids),
            status=match_status(unquoted_lower),
            priority=match_priority(unquoted_lower),
            date_window=find_date_window(unquoted_lower, today, self.config.DUE_SOON_DAYS),
            assignee_hint=match_assignee(unquoted),
            ordinal=match_ordinal(unquoted_lower),
            quantity=match_quantity(lowered),
            keyword=match_keyword(lowered, quoted),
            quoted_text=quoted,
            has_pronoun=bool(PRONOUN_PATTERN.search(unquoted_lower)),
        )

        logger.debug(f"[EXTRACTOR] {entities.model_dump(exclude_defaults=True)}")
        return entities


_default_extractor = EntityExtractor()


def extract_entities(utterance: Optional[str], today: Optional[date] = None) -> ExtractedEntities:
    """Module-level convenience using the default configuration."""
    return _default_extractor.extract(utterance, today)
