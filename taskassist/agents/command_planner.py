"""
Command Planner - turns a command utterance into an executable CommandPlan.

Builders are deterministic and never touch the project: bulk plans are
filter descriptors resolved by the executor at apply time, except when a
pronoun points at the tasks the assistant just listed, in which case the
plan carries those ids as ``targetTaskIds``.

Anything that cannot be resolved without guessing becomes an ``unresolved``
plan carrying a clarification.
"""
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Optional

from pydantic import ValidationError

from taskassist.agents.command_schema import (
    BulkAssignCommand,
    BulkDeleteCommand,
    BulkFilters,
    BulkTaskGenerationCommand,
    BulkUpdateCommand,
    GENERATION_COUNT_LIMIT,
    CommandPlan,
    CreateTaskCommand,
    TaskChanges,
    TaskDeleteCommand,
    TaskUpdateCommand,
)
from taskassist.agents.config import AgentConfig, agent_config
from taskassist.agents.conversation_context import (
    CLARIFICATION_MESSAGE,
    ConversationContextTracker,
)
from taskassist.agents.date_windows import parse_relative_date
from taskassist.agents.entity_extractor import (
    EntityExtractor,
    match_assignee,
    match_priority,
    match_status,
)
from taskassist.agents.entity_schema import AssigneeSentinel, ExtractedEntities
from taskassist.agents.exceptions import (
    AssistantException,
    MissingCommandFieldError,
    TaskNotFoundError,
    UnresolvedReferenceError,
)
from taskassist.agents.intent_classifier import Intent, IntentClassifier, IntentType
from taskassist.agents.snapshot import ProjectContextSnapshot
from taskassist.models.project import ConversationTurn, Member, Project, Task, coerce_history

logger = logging.getLogger(__name__)

TARGET_SPLIT_PATTERN = re.compile(r"\s+(to|as|into)\s+", re.IGNORECASE)
PLURAL_PRONOUN_PATTERN = re.compile(r"\b(them|these|those|all\s+of\s+them|the\s+same\s+ones?)\b", re.IGNORECASE)
SINGULAR_PRONOUN_PATTERN = re.compile(r"\b(it|that\s+one|this\s+one|that\s+task|this\s+task)\b", re.IGNORECASE)

FIELD_HINTS = [
    ("description", re.compile(r"\bdescription\b", re.IGNORECASE)),
    ("title", re.compile(r"\b(title|name|rename)\b", re.IGNORECASE)),
    ("end_date", re.compile(r"\b(due\s+date|due|deadline|end\s+date|date|reschedule|postpone|push)\b", re.IGNORECASE)),
    ("priority", re.compile(r"\bpriority\b", re.IGNORECASE)),
    ("status", re.compile(r"\bstatus\b", re.IGNORECASE)),
]

CREATE_PREFIX_PATTERN = re.compile(
    r"^.*?\b(?:create|add|new|make)\s+(?:a\s+)?(?:new\s+)?task\b\s*[:\-]?\s*"
    r"(?:(?:called|named|titled)\s+)?",
    re.IGNORECASE,
)
CREATE_TITLE_STOP = re.compile(
    r"\s+(?:with\s|due\s|by\s|assigned\s+to\s|assign\s+(?:it\s+)?to\s|and\s+assign|for\s+me\b|"
    r"for\s+(?:the\s+)?owner\b|priority\s*[:=])",
    re.IGNORECASE,
)
DESCRIPTION_PATTERN = re.compile(r"\b(?:description|desc)\s*[:=]?\s*[\"“]([^\"”]+)[\"”]", re.IGNORECASE)
DUE_PHRASE_PATTERN = re.compile(r"\b(?:due|by|deadline)\s+(.+)$", re.IGNORECASE)

GENERATION_THEME_PATTERN = re.compile(r"\b(?:for|about|on|around|covering)\s+(?:the\s+)?(.+)$", re.IGNORECASE)
GENERATION_COMMAND_PATTERN = re.compile(
    r"\b(?:generate|create|make|add|suggest|draft|brainstorm|give\s+me)\b\s*(?:me\s+)?"
    r"(?:\d+|one|two|three|four|five|six|seven|eight|nine|ten|several|a\s+few|few|multiple|some|"
    r"a\s+couple\s+of|couple\s+of)?\s*(?:new\s+|more\s+)?tasks?\b",
    re.IGNORECASE,
)


@dataclass
class PlanContext:
    """Inputs shared by every builder for one call."""
    snapshot: ProjectContextSnapshot
    utterance: str
    text: str
    entities: ExtractedEntities
    referents: list[int] = field(default_factory=list)
    history: list[ConversationTurn] = field(default_factory=list)


# =============================================================================
# PARSING HELPERS
# =============================================================================

def _strip_value(value: str) -> str:
    return value.strip().strip("\"“”'").rstrip(".!?").strip()


def _value_for_field(field_name: str, segment: str, today: date):
    """Parse ``segment`` as a value for ``field_name``; None if it doesn't fit."""
    head = re.split(r"\s+and\s+", segment, maxsplit=1)[0]
    if field_name == "status":
        return match_status(head)
    if field_name == "priority":
        return match_priority(head)
    if field_name == "end_date":
        parsed = parse_relative_date(head, today)
        return parsed.isoformat() if parsed else None
    if field_name in ("title", "description"):
        return _strip_value(segment) or None
    return None


def parse_changes(utterance: str, today: date) -> tuple[str, dict]:
    """
    Split "<scope> to <value> [and <field> to <value>]" into scope and changes.

    Each "to/as/into" clause is parsed for the field named just before it
    (priority, due date, title...), else as a status, priority or date in
    that order. The scope is the text before the first clause that produced
    a change.
    """
    parts = TARGET_SPLIT_PATTERN.split(utterance)
    changes: dict = {}
    scope_end: Optional[int] = None

    # parts = [scope, kw, seg, kw, seg, ...]
    for i in range(2, len(parts), 2):
        previous = parts[i - 2]
        segment = parts[i]

        hinted = None
        hint_pos = -1
        for name, pattern in FIELD_HINTS:
            for m in pattern.finditer(previous):
                if m.start() > hint_pos:
                    hint_pos, hinted = m.start(), name

        value = None
        field_name = None
        if hinted and hinted not in changes:
            value = _value_for_field(hinted, segment, today)
            field_name = hinted if value is not None else None
        if value is None:
            for candidate in ("status", "priority", "end_date"):
                if candidate in changes:
                    continue
                value = _value_for_field(candidate, segment, today)
                if value is not None:
                    field_name = candidate
                    break

        if field_name is not None:
            changes[field_name] = value
            if scope_end is None:
                scope_end = i - 1

    if scope_end is None:
        return utterance, changes
    scope = "".join(
        part if j % 2 == 0 else f" {part} "
        for j, part in enumerate(parts[:scope_end])
    )
    return scope.strip(), changes


def extract_title(utterance: str, quoted: Optional[str]) -> tuple[str, str]:
    """Title for a new task, and the remainder of the utterance without it."""
    if quoted:
        remainder = re.sub(r"[\"“][^\"”]*[\"”]", " ", utterance, count=1)
        return quoted.strip(), remainder

    match = CREATE_PREFIX_PATTERN.match(utterance)
    rest = utterance[match.end():] if match else ""
    stop = CREATE_TITLE_STOP.search(rest)
    title = rest[:stop.start()] if stop else rest
    remainder = rest[stop.start():] if stop else ""
    return _strip_value(title), remainder


def describe_changes(changes: TaskChanges, snapshot: ProjectContextSnapshot) -> str:
    parts = []
    if changes.status is not None:
        parts.append(f"status to {snapshot.label(changes.status)}")
    if changes.priority is not None:
        parts.append(f"priority to {changes.priority.value}")
    if changes.end_date is not None:
        parts.append(f"due date to {changes.end_date}")
    if changes.title is not None:
        parts.append(f"title to \"{changes.title}\"")
    if changes.description is not None:
        parts.append("description")
    if changes.assignee is not None:
        parts.append(f"assignee to {describe_assignee(changes.assignee, snapshot)}")
    return ", ".join(parts)


def describe_assignee(assignee: str, snapshot: ProjectContextSnapshot) -> str:
    if assignee == AssigneeSentinel.ME.value:
        return "you"
    if assignee == AssigneeSentinel.OWNER.value:
        return f"the project owner ({snapshot.project.owner.name})"
    member = snapshot.resolve_member(assignee)
    return member.name if member else assignee


def describe_scope(filters: BulkFilters, snapshot: ProjectContextSnapshot) -> str:
    if filters.all_tasks or filters.is_empty:
        return "all tasks"
    parts = []
    if filters.status is not None:
        parts.append(snapshot.label(filters.status))
    if filters.priority is not None:
        parts.append(f"{filters.priority.value} priority")
    if filters.overdue:
        parts.append("overdue")
    if filters.assignee is not None:
        parts.append(f"assigned to {describe_assignee(filters.assignee, snapshot)}")
    return "tasks that are " + " and ".join(parts)


def affected_tasks(
        filters: BulkFilters,
        target_ids: Optional[list[int]],
        snapshot: ProjectContextSnapshot,
) -> list[Task]:
    """Tasks a plan would touch right now; only used for the preview."""
    if target_ids:
        return [t for t in (snapshot.find_task(i) for i in target_ids) if t is not None]
    if filters.all_tasks or filters.is_empty:
        return snapshot.tasks
    assignee: Optional[Member] = None
    if filters.assignee is not None:
        assignee = snapshot.resolve_member(filters.assignee)
        if assignee is None:
            return []
    tasks = snapshot.filter_tasks(status=filters.status, priority=filters.priority, assignee=assignee)
    if filters.overdue:
        tasks = [t for t in tasks if snapshot.is_overdue(t)]
    return tasks


def plural(n: int, word: str = "task") -> str:
    return word if n == 1 else f"{word}s"


# =============================================================================
# PLANNER
# =============================================================================

class CommandPlanner:
    """Builds command plans; one builder per command intent."""

    def __init__(
            self,
            config: Optional[AgentConfig] = None,
            fallback=None,
            extractor: Optional[EntityExtractor] = None,
            tracker: Optional[ConversationContextTracker] = None,
            classifier: Optional[IntentClassifier] = None,
    ):
        self.config = config or agent_config
        self.fallback = fallback
        self.extractor = extractor or EntityExtractor(self.config)
        self.tracker = tracker or ConversationContextTracker(self.config)
        self.classifier = classifier or IntentClassifier(self.tracker)

        self._builders: dict[IntentType, Callable[[PlanContext], CommandPlan]] = {
            IntentType.CREATE_TASK: self._build_create_task,
            IntentType.TASK_UPDATE: self._build_task_update,
            IntentType.TASK_DELETE: self._build_task_delete,
            IntentType.BULK_UPDATE: self._build_bulk_update,
            IntentType.BULK_ASSIGN: self._build_bulk_assign,
            IntentType.BULK_DELETE: self._build_bulk_delete,
            IntentType.BULK_TASK_GENERATION: self._build_generation,
        }

    def generate_plan(
            self,
            project: Project,
            utterance: Optional[str],
            history=None,
            today: Optional[date] = None,
            current_user: Optional[Member] = None,
    ) -> CommandPlan:
        """Plan one command against ``project``."""
        start_time = time.time()
        turns = coerce_history(history)
        snapshot = ProjectContextSnapshot.from_project(project, today, current_user)
        entities = self.extractor.extract(utterance, snapshot.today)
        referents = self.tracker.ordered_referents(turns)
        intent = self.classifier.classify(utterance, entities, set(referents), snapshot, turns)

        ctx = PlanContext(
            snapshot=snapshot,
            utterance=re.sub(r"\s+", " ", (utterance or "").strip()),
            text=re.sub(r"\s+", " ", (utterance or "").strip().lower()),
            entities=entities,
            referents=referents,
            history=turns,
        )
        plan = self.plan_for_intent(intent, ctx)

        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"[PLANNER] {intent.intent_type.value} -> {plan.command_type.value} in {duration_ms}ms",
            extra={
                "project_id": project.id,
                "intent": intent.intent_type.value,
                "command_type": plan.command_type.value,
                "duration_ms": duration_ms,
            },
        )
        return plan

    def plan_for_intent(self, intent: Intent, ctx: PlanContext) -> CommandPlan:
        builder = self._builders.get(intent.intent_type)
        if builder is None:
            return self._non_command_plan(intent, ctx)

        try:
            return builder(ctx)
        except AssistantException as e:
            logger.info(f"[PLANNER] Unresolved {intent.intent_type.value}: {e.message}", extra={"details": e.details})
            questions = [e.details["suggestion"]] if e.details.get("suggestion") else []
            return CommandPlan.unresolved(e.message, questions, attempted=intent.intent_type.value)
        except ValidationError as e:
            logger.warning(f"[PLANNER] Invalid {intent.intent_type.value} plan: {e.error_count()} errors")
            return CommandPlan.unresolved(
                "I couldn't build a valid change from that request. Could you rephrase it?",
                attempted=intent.intent_type.value,
            )

    def _non_command_plan(self, intent: Intent, ctx: PlanContext) -> CommandPlan:
        if intent.intent_type == IntentType.CLARIFICATION:
            return CommandPlan.unresolved(CLARIFICATION_MESSAGE, ["Which task ids should I use?"])

        if self.fallback is not None and ctx.text:
            command = self.fallback.plan(ctx.snapshot, ctx.utterance, ctx.history)
            if command is not None:
                return CommandPlan(
                    preview_message=f"Suggested change: {command.type.replace('_', ' ')}. Please review before applying.",
                    command_data=command,
                )

        return CommandPlan.unresolved(
            "I couldn't turn that into a task change.",
            [
                "Try a command such as \"Move #12 to done\" or \"Assign todo tasks to me\".",
            ],
        )

    # =========================================================================
    # Target resolution
    # =========================================================================

    def _single_target(self, ctx: PlanContext) -> Task:
        """The one task a single-task command refers to."""
        task_ids = ctx.entities.task_ids
        ordinal = ctx.entities.ordinal
        pronoun = SINGULAR_PRONOUN_PATTERN.search(ctx.utterance)
        if task_ids:
            task_id = task_ids[0]
        elif pronoun is not None:
            if len(ctx.referents) != 1:
                raise UnresolvedReferenceError(pronoun=pronoun.group(1), pool_size=len(ctx.referents))
            task_id = ctx.referents[0]
        elif ordinal is not None and ordinal.count is None:
            task = ctx.snapshot.task_at(ordinal.position)
            if task is None:
                n = ctx.snapshot.task_count
                raise MissingCommandFieldError(
                    "task",
                    "taskId",
                    f"The project only has {n} {plural(n)}. Which task do you mean? For example: \"#12\".",
                )
            return task
        else:
            # Titles and descriptions are never matched to guess a target
            raise UnresolvedReferenceError(pronoun=None, pool_size=len(ctx.referents))

        task = ctx.snapshot.find_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def _explicit_targets(self, ctx: PlanContext, scope: str) -> Optional[list[int]]:
        """
        Ids given explicitly (two or more #ids), by position ("the first 3
        tasks") or through a plural pronoun.

        Returns None when the command targets by filter instead.
        """
        if len(ctx.entities.task_ids) > 1:
            missing = [i for i in ctx.entities.task_ids if ctx.snapshot.find_task(i) is None]
            if missing:
                raise TaskNotFoundError(missing[0])
            return list(ctx.entities.task_ids)

        ordinal = ctx.entities.ordinal
        if ordinal is not None and ordinal.count:
            picked = ctx.snapshot.tasks_in_range(ordinal.position, ordinal.count)
            if not picked:
                raise MissingCommandFieldError("bulk", "targetTaskIds", "The project has no tasks yet.")
            return [t.id for t in picked]

        pronoun = PLURAL_PRONOUN_PATTERN.search(scope)
        if pronoun and match_status(scope) is None and match_priority(scope) is None:
            if not ctx.referents:
                raise UnresolvedReferenceError(pronoun=pronoun.group(1), pool_size=0)
            return list(ctx.referents)
        return None

    def _filters_from_scope(self, scope: str) -> BulkFilters:
        assignee = None
        if re.search(r"\bassigned\b|\bmy\s+tasks\b", scope, re.IGNORECASE):
            assignee = match_assignee(scope)
        overdue = bool(re.search(r"\b(overdue|past\s+due|late)\b", scope, re.IGNORECASE)) or None
        return BulkFilters(
            status=match_status(scope),
            priority=match_priority(scope),
            assignee=assignee,
            overdue=overdue,
        )

    # =========================================================================
    # Builders
    # =========================================================================

    def _build_create_task(self, ctx: PlanContext) -> CommandPlan:
        title, remainder = extract_title(ctx.utterance, ctx.entities.quoted_text)
        if not title:
            raise MissingCommandFieldError(
                "create_task",
                "title",
                "What should the new task be called? For example: Create task \"Write release notes\".",
            )

        end_date = None
        due = DUE_PHRASE_PATTERN.search(remainder)
        if due:
            parsed = parse_relative_date(due.group(1), ctx.snapshot.today)
            end_date = parsed.isoformat() if parsed else None

        description = DESCRIPTION_PATTERN.search(ctx.utterance)
        command = CreateTaskCommand(
            title=title,
            description=description.group(1).strip() if description else None,
            priority=match_priority(remainder),
            assignee=match_assignee(remainder),
            end_date=end_date,
        )

        details = []
        if command.priority:
            details.append(f"{command.priority.value} priority")
        if command.assignee:
            details.append(f"assigned to {describe_assignee(command.assignee, ctx.snapshot)}")
        if command.end_date:
            details.append(f"due {command.end_date}")
        preview = f"Create task \"{title}\""
        if details:
            preview += f" ({', '.join(details)})"
        return CommandPlan(preview_message=preview + ".", command_data=command)

    def _build_task_update(self, ctx: PlanContext) -> CommandPlan:
        task = self._single_target(ctx)
        _, changes = parse_changes(ctx.utterance, ctx.snapshot.today)

        if re.search(r"\b(assign|reassign)\b", ctx.text):
            assignee = match_assignee(ctx.utterance)
            if assignee is None:
                raise MissingCommandFieldError(
                    "task_update",
                    "assignee",
                    f"Who should task #{task.id} be assigned to? For example: \"Assign #{task.id} to me\".",
                )
            changes = {"assignee": assignee}
        elif re.search(r"\brename\b", ctx.text) and "title" not in changes:
            title = ctx.entities.quoted_text
            if title:
                changes["title"] = title

        if not changes:
            raise MissingCommandFieldError(
                "task_update",
                "changes",
                f"What should I change on task #{task.id}? For example: \"Move #{task.id} to done\".",
            )

        command = TaskUpdateCommand(task_id=task.id, changes=TaskChanges(**changes))
        preview = f"Update task #{task.id} ({task.title}): set {describe_changes(command.changes, ctx.snapshot)}."
        return CommandPlan(preview_message=preview, command_data=command)

    def _build_task_delete(self, ctx: PlanContext) -> CommandPlan:
        task = self._single_target(ctx)
        command = TaskDeleteCommand(task_id=task.id)
        return CommandPlan(
            preview_message=f"Delete task #{task.id} ({task.title}). This cannot be undone.",
            command_data=command,
        )

    def _build_bulk_update(self, ctx: PlanContext) -> CommandPlan:
        scope, changes = parse_changes(ctx.utterance, ctx.snapshot.today)
        if not changes:
            raise MissingCommandFieldError(
                "bulk_update",
                "updates",
                "What should I change on those tasks? For example: \"Move all tasks to review\".",
            )

        targets = self._explicit_targets(ctx, scope)
        filters = BulkFilters() if targets else self._filters_from_scope(scope)
        command = BulkUpdateCommand(filters=filters, updates=TaskChanges(**changes), target_task_ids=targets)

        affected = affected_tasks(filters, targets, ctx.snapshot)
        target_label = (
            ", ".join(f"#{i}" for i in targets) if targets else describe_scope(filters, ctx.snapshot)
        )
        preview = (
            f"Update {len(affected)} {plural(len(affected))} ({target_label}): "
            f"set {describe_changes(command.updates, ctx.snapshot)}."
        )
        return CommandPlan(preview_message=preview, command_data=command)

    def _build_bulk_assign(self, ctx: PlanContext) -> CommandPlan:
        assignee = match_assignee(ctx.utterance)
        if assignee is None:
            raise MissingCommandFieldError(
                "bulk_assign",
                "assignee",
                "Who should the tasks be assigned to? For example: \"Assign todo tasks to me\".",
            )

        # Everything before the final "to"/"for" describes which tasks
        split = list(re.finditer(r"\s+(?:to|for)\s+", ctx.utterance, re.IGNORECASE))
        scope = ctx.utterance[:split[-1].start()] if split else ctx.utterance

        targets = self._explicit_targets(ctx, scope)
        if targets:
            filters = BulkFilters()
        else:
            filters = BulkFilters(status=match_status(scope), priority=match_priority(scope))
            if filters.is_empty:
                filters = BulkFilters(all_tasks=True)

        command = BulkAssignCommand(filters=filters, assignee=assignee, target_task_ids=targets)

        affected = affected_tasks(filters, targets, ctx.snapshot)
        target_label = (
            ", ".join(f"#{i}" for i in targets) if targets else describe_scope(filters, ctx.snapshot)
        )
        who = describe_assignee(assignee, ctx.snapshot)
        preview = f"Assign {len(affected)} {plural(len(affected))} ({target_label}) to {who}."
        if assignee not in (AssigneeSentinel.ME.value, AssigneeSentinel.OWNER.value) \
                and ctx.snapshot.resolve_member(assignee) is None:
            preview += f" No project member matches \"{assignee}\" yet."
        return CommandPlan(preview_message=preview, command_data=command)

    def _build_bulk_delete(self, ctx: PlanContext) -> CommandPlan:
        scope = ctx.utterance
        targets = self._explicit_targets(ctx, scope)
        if targets:
            filters = BulkFilters()
        else:
            filters = self._filters_from_scope(scope)
            filters = BulkFilters(
                status=filters.status,
                priority=filters.priority,
                overdue=filters.overdue,
            )
            if filters.is_empty:
                if not re.search(r"\b(all|every|everything)\b", ctx.text):
                    raise MissingCommandFieldError(
                        "bulk_delete",
                        "filters",
                        "Which tasks should I delete? For example: \"Delete done tasks\" or \"Delete #12\".",
                    )
                filters = BulkFilters(all_tasks=True)

        command = BulkDeleteCommand(filters=filters, target_task_ids=targets)

        affected = affected_tasks(filters, targets, ctx.snapshot)
        target_label = (
            ", ".join(f"#{i}" for i in targets) if targets else describe_scope(filters, ctx.snapshot)
        )
        preview = f"Delete {len(affected)} {plural(len(affected))} ({target_label}). This cannot be undone."
        return CommandPlan(preview_message=preview, command_data=command)

    def _build_generation(self, ctx: PlanContext) -> CommandPlan:
        requested = ctx.entities.quantity
        if requested is not None and requested < 1:
            raise MissingCommandFieldError(
                "bulk_task_generation",
                "count",
                f"How many tasks should I generate? Pick a number from 1 to {self._generation_limit()}.",
            )
        count = requested if requested is not None else self.config.DEFAULT_GENERATION_COUNT
        count = max(1, min(count, self._generation_limit()))

        theme = None
        match = GENERATION_THEME_PATTERN.search(ctx.utterance)
        if match:
            theme = _strip_value(match.group(1))
        if not theme:
            theme = _strip_value(GENERATION_COMMAND_PATTERN.sub(" ", ctx.utterance))
        if not theme:
            theme = ctx.snapshot.project.name

        command = BulkTaskGenerationCommand(count=count, theme=theme)
        preview = f"Generate {count} {plural(count)} for \"{theme}\"."
        if requested is not None and requested > count:
            preview += f" At most {count} tasks are generated at once."
        return CommandPlan(preview_message=preview, command_data=command)

    def _generation_limit(self) -> int:
        return max(1, min(self.config.MAX_GENERATION_COUNT, GENERATION_COUNT_LIMIT))
