"""
Question Answering Engine - deterministic answers about a project.

Each question intent has its own formatter. The engine never mutates the
project; every answer is built from a per-call ProjectContextSnapshot.
Unrecognized questions go to the LLM fallback when one is configured, and
otherwise get the help text.
"""
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Optional, Union

from taskassist.agents.config import AgentConfig, agent_config
from taskassist.agents.conversation_context import (
    CLARIFICATION_MESSAGE,
    ConversationContextTracker,
)
from taskassist.agents.date_windows import week_bounds, window_for
from taskassist.agents.entity_extractor import EntityExtractor
from taskassist.agents.entity_schema import LATEST, AssigneeSentinel, ExtractedEntities
from taskassist.agents.exceptions import TaskNotFoundError
from taskassist.agents.intent_classifier import (
    Intent,
    IntentClassifier,
    IntentType,
    comparison_sides,
    normalize,
)
from taskassist.agents.snapshot import ProjectContextSnapshot
from taskassist.models.project import (
    ConversationTurn,
    Member,
    Project,
    Task,
    TaskPriority,
    TaskStatus,
    coerce_history,
)

logger = logging.getLogger(__name__)

HELP_TEXT = "\n".join([
    "I can answer questions about this project and prepare changes for you to confirm. Try:",
    "• 'How many tasks are done?'",
    "• 'List high priority tasks'",
    "• 'Show #12'",
    "• 'Which tasks are due this week?'",
    "• 'Search login'",
    "• 'Project overview' or 'Weekly progress report'",
    "• 'Create task \"Write release notes\"'",
    "• 'Move #12 to done'",
    "• 'Assign all of them to me'",
    "• 'Generate 5 tasks for onboarding'",
])

FALLBACK_PREFIX = "I'm not sure how to answer that yet. "

COMMAND_HINT = (
    "That sounds like a change to the project rather than a question. "
    "Send it as a command and I will prepare a plan for you to confirm."
)

EMPTY_PROJECT = "There are no tasks in this project yet."


@dataclass
class QuestionContext:
    """Inputs shared by every formatter for one call."""
    snapshot: ProjectContextSnapshot
    utterance: str
    text: str
    entities: ExtractedEntities
    referents: list[int] = field(default_factory=list)
    history: list[ConversationTurn] = field(default_factory=list)
    extra_context: Union[str, dict, None] = None


def plural(n: int, word: str = "task") -> str:
    return word if n == 1 else f"{word}s"


def unknown_member_message(hint: str) -> str:
    if hint == AssigneeSentinel.ME.value:
        return "I don't know which project member you are, so I can't filter by \"me\" here."
    return f"I couldn't find a project member matching \"{hint}\"."


# =============================================================================
# FORMATTERS
# =============================================================================

def format_task_line(snapshot: ProjectContextSnapshot, task: Task) -> str:
    """One bullet: '• Task #12: Title (To Do, high priority, assigned to X, due ...)'."""
    details = [snapshot.label(task.status), f"{task.priority.value} priority"]
    if task.assignee:
        details.append(f"assigned to {task.assignee.name}")
    if task.end_date:
        due = f"due {task.end_date.isoformat()}"
        if snapshot.is_overdue(task):
            due += ", overdue"
        details.append(due)
    return f"• Task #{task.id}: {task.title} ({', '.join(details)})"


def format_task_list(snapshot: ProjectContextSnapshot, tasks: list[Task], limit: int) -> str:
    """
    Detail lines for the first ``limit`` tasks.

    The remaining ids are still listed as ``#id`` tokens so a follow-up
    "assign them" sees every task.
    """
    lines = [format_task_line(snapshot, t) for t in tasks[:limit]]
    rest = tasks[limit:]
    if rest:
        lines.append("Other task IDs: " + ", ".join(f"#{t.id}" for t in rest))
    return "\n".join(lines)


def format_task_detail(snapshot: ProjectContextSnapshot, task: Task) -> str:
    lines = [
        f"Task #{task.id}: {task.title}",
        f"Status: {snapshot.label(task.status)}",
        f"Priority: {task.priority.value.capitalize()}",
        f"Assigned to: {task.assignee.name if task.assignee else 'Unassigned'}",
    ]
    if task.end_date:
        due = f"Due: {task.end_date.isoformat()}"
        if snapshot.is_overdue(task):
            due += " (OVERDUE)"
        lines.append(due)
    if task.creator:
        lines.append(f"Created by: {task.creator.name}")
    if task.description:
        lines.append(f"Description: {task.description}")
    return "\n".join(lines)


def describe_filters(
        snapshot: ProjectContextSnapshot,
        status: Optional[TaskStatus] = None,
        priority: Optional[TaskPriority] = None,
        window_label: Optional[str] = None,
        assignee: Optional[Member] = None,
        unassigned: bool = False,
) -> str:
    parts = []
    if status is not None:
        parts.append(snapshot.label(status))
    if priority is not None:
        parts.append(f"{priority.value} priority")
    if window_label == "overdue":
        parts.append("overdue")
    elif window_label:
        parts.append(f"due {window_label}")
    if assignee is not None:
        parts.append(f"assigned to {assignee.name}")
    if unassigned:
        parts.append("unassigned")
    return " and ".join(parts)


# =============================================================================
# ENGINE
# =============================================================================

class QuestionAnsweringEngine:
    """Routes a classified question to its formatter."""

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

        self._handlers: dict[IntentType, Callable[[QuestionContext], str]] = {
            IntentType.CLARIFICATION: self._clarification,
            IntentType.EXPLANATION: self._explanation,
            IntentType.COMPARISON: self._comparison,
            IntentType.COUNT: self._count,
            IntentType.OVERVIEW: self._overview,
            IntentType.WEEKLY_REPORT: self._weekly_report,
            IntentType.OWNERSHIP: self._ownership,
            IntentType.TEAM_MEMBERS: self._team_members,
            IntentType.SPECIFIC_LOOKUP: self._specific_lookup,
            IntentType.ORDINAL_LOOKUP: self._ordinal_lookup,
            IntentType.KEYWORD_SEARCH: self._keyword_search,
            IntentType.DATE_LISTING: self._date_listing,
            IntentType.FILTERED_LISTING: self._filtered_listing,
            IntentType.GENERIC_LISTING: self._generic_listing,
            IntentType.ASSIGNMENT_FOLLOWUP: self._assignment_followup,
            IntentType.IDS_FOLLOWUP: self._ids_followup,
            IntentType.HELP: self._help,
            IntentType.FALLBACK: self._fallback,
        }

    def answer(
            self,
            project: Project,
            utterance: Optional[str],
            history=None,
            extra_context: Union[str, dict, None] = None,
            today: Optional[date] = None,
            current_user: Optional[Member] = None,
    ) -> str:
        """Answer one question about ``project``."""
        start_time = time.time()
        turns = coerce_history(history)
        snapshot = ProjectContextSnapshot.from_project(project, today, current_user)
        entities = self.extractor.extract(utterance, snapshot.today)
        referents = self.tracker.ordered_referents(turns)
        intent = self.classifier.classify(utterance, entities, set(referents), snapshot, turns)

        ctx = QuestionContext(
            snapshot=snapshot,
            utterance=utterance or "",
            text=normalize(utterance),
            entities=entities,
            referents=referents,
            history=turns,
            extra_context=extra_context,
        )
        response = self.respond(intent, ctx)

        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"[QNA] Answered {intent.intent_type.value} in {duration_ms}ms",
            extra={"project_id": project.id, "intent": intent.intent_type.value, "duration_ms": duration_ms},
        )
        return response

    def respond(self, intent: Intent, ctx: QuestionContext) -> str:
        if intent.is_command:
            return COMMAND_HINT
        handler = self._handlers.get(intent.intent_type, self._fallback)
        return handler(ctx)

    # =========================================================================
    # Follow-ups and conversation
    # =========================================================================

    def _clarification(self, ctx: QuestionContext) -> str:
        return CLARIFICATION_MESSAGE

    def _help(self, ctx: QuestionContext) -> str:
        return HELP_TEXT

    def _explanation(self, ctx: QuestionContext) -> str:
        snapshot = ctx.snapshot
        previous = self.tracker.last_numeric_answer(ctx.history) or ""
        first_line = previous.strip().splitlines()[0] if previous.strip() else ""
        lines = [
            f"These numbers come from the {snapshot.task_count} {plural(snapshot.task_count)} "
            f"currently in {snapshot.project.name}, counted by their current status and priority.",
        ]
        if first_line:
            lines.append(f"My previous answer was: \"{first_line}\"")
        lines.append(
            "A task counts as overdue when its due date is before "
            f"{snapshot.today.isoformat()} and it is not {snapshot.label(TaskStatus.DONE)}."
        )
        return "\n".join(lines)

    def _assignment_followup(self, ctx: QuestionContext) -> str:
        snapshot = ctx.snapshot
        lines = ["Task assignments:"]
        for task_id in ctx.referents:
            task = snapshot.find_task(task_id)
            if task is None:
                lines.append(f"• Task #{task_id}: not found")
                continue
            who = task.assignee.name if task.assignee else "unassigned"
            lines.append(f"• Task #{task.id}: {task.title} ({who})")
        return "\n".join(lines)

    def _ids_followup(self, ctx: QuestionContext) -> str:
        ids = ctx.referents or [t.id for t in ctx.snapshot.tasks]
        if not ids:
            return EMPTY_PROJECT
        return "Task IDs: " + ", ".join(f"#{i}" for i in ids)

    # =========================================================================
    # Counts and summaries
    # =========================================================================

    def _count(self, ctx: QuestionContext) -> str:
        snapshot = ctx.snapshot
        e = ctx.entities

        if re.search(r"\bmembers?\b|\bpeople\b", ctx.text) and not re.search(r"\btasks?\b", ctx.text):
            team = snapshot.team()
            return f"The project has {len(team)} {plural(len(team), 'member')} including the owner."

        assignee = snapshot.resolve_member(e.assignee_hint)
        if e.assignee_hint and assignee is None and re.search(r"\bassigned\b|\bmy\b", ctx.text):
            return unknown_member_message(e.assignee_hint)
        unassigned = bool(re.search(r"\bunassigned\b", ctx.text))

        tasks = snapshot.filter_tasks(
            status=e.status,
            priority=e.priority,
            assignee=assignee,
            unassigned=unassigned,
            date_window=e.date_window,
        )
        description = describe_filters(
            snapshot,
            status=e.status,
            priority=e.priority,
            window_label=e.date_window.label if e.date_window else None,
            assignee=assignee,
            unassigned=unassigned,
        )
        n = len(tasks)
        if not description:
            return f"There are {n} {plural(n)} in the project."
        return f"There are {n} {plural(n)} that {'is' if n == 1 else 'are'} {description}."

    def _comparison(self, ctx: QuestionContext) -> str:
        snapshot = ctx.snapshot
        sides = comparison_sides(ctx.text)
        if sides is None:
            return self._fallback(ctx)

        results = []
        for kind, value in sides:
            if kind == "status":
                label = snapshot.label(value)
                count = len(snapshot.filter_tasks(status=value))
            else:
                label = f"{value.value.capitalize()} priority"
                count = len(snapshot.filter_tasks(priority=value))
            results.append((label, count))

        (left_label, left), (right_label, right) = results
        lines = [f"Comparison: {left_label}: {left} vs {right_label}: {right}"]
        if left == right:
            lines.append("Both have the same number of tasks.")
        else:
            more_label, fewer_label = (left_label, right_label) if left > right else (right_label, left_label)
            diff = abs(left - right)
            lines.append(f"{more_label} has {diff} more {plural(diff)} than {fewer_label}.")
        return "\n".join(lines)

    def _overview(self, ctx: QuestionContext) -> str:
        snapshot = ctx.snapshot
        project = snapshot.project
        lines = [
            f"Project Overview: {project.name}",
            f"Owner: {project.owner.name}",
            f"Methodology: {project.methodology.value.capitalize()}",
            f"Team members: {len(snapshot.team())}",
            f"Total tasks: {snapshot.task_count}",
        ]
        if project.description:
            lines.insert(1, project.description)

        lines.append("")
        lines.append("By status:")
        for status, count in snapshot.count_by_status().items():
            lines.append(f"• {snapshot.label(status)}: {count}")

        lines.append("By priority:")
        for priority, count in reversed(list(snapshot.count_by_priority().items())):
            lines.append(f"• {priority.value.capitalize()}: {count}")

        lines.append(f"Overdue: {len(snapshot.overdue_tasks())}")
        return "\n".join(lines)

    def _weekly_report(self, ctx: QuestionContext) -> str:
        snapshot = ctx.snapshot
        start, end = week_bounds(snapshot.today)
        counts = snapshot.count_by_status()
        total = snapshot.task_count
        done = counts[TaskStatus.DONE]
        rate = round(done * 100 / total) if total else 0

        this_week = snapshot.tasks_in_window(window_for("this week", snapshot.today))
        overdue = snapshot.overdue_tasks()
        limit = self.config.LIST_DETAIL_LIMIT

        lines = [
            f"Weekly Progress Report: {snapshot.project.name}",
            f"Week of {start.isoformat()} to {end.isoformat()}",
            "",
            "Status breakdown:",
        ]
        for status, count in counts.items():
            lines.append(f"• {snapshot.label(status)}: {count}")
        lines.append(f"Completion rate: {rate}% ({done} of {total} {plural(total)} done)")

        lines.append(f"Due this week: {len(this_week)}")
        if this_week:
            lines.append(format_task_list(snapshot, this_week, limit))
        lines.append(f"Overdue: {len(overdue)}")
        if overdue:
            lines.append(format_task_list(snapshot, overdue, limit))
        return "\n".join(lines)

    # =========================================================================
    # People
    # =========================================================================

    def _ownership(self, ctx: QuestionContext) -> str:
        owner = ctx.snapshot.project.owner
        if owner.email:
            return f"Project owner: {owner.name} ({owner.email})"
        return f"Project owner: {owner.name}"

    def _team_members(self, ctx: QuestionContext) -> str:
        snapshot = ctx.snapshot
        team = snapshot.team()
        lines = [f"Team members ({len(team)}):"]
        for member in team:
            suffix = " (owner)" if snapshot.project.is_owner(member) else ""
            lines.append(f"• {member.name}{suffix}")
        return "\n".join(lines)

    # =========================================================================
    # Lookups and listings
    # =========================================================================

    def _specific_lookup(self, ctx: QuestionContext) -> str:
        snapshot = ctx.snapshot
        asks_assignee = bool(re.search(r"\bwho\b.*\b(assigned|working|responsible)\b|\bassignee\b", ctx.text))
        asks_creator = bool(re.search(r"\bwho\b.*\b(created|made|added|opened)\b|\bcreator\b", ctx.text))

        blocks = []
        for task_id in ctx.entities.task_ids:
            task = snapshot.find_task(task_id)
            if task is None:
                blocks.append(TaskNotFoundError(task_id).message)
            elif asks_assignee:
                who = f"assigned to {task.assignee.name}" if task.assignee else "unassigned"
                blocks.append(f"Task #{task.id}: {task.title} is {who}.")
            elif asks_creator:
                who = f"was created by {task.creator.name}" if task.creator else "has no recorded creator"
                blocks.append(f"Task #{task.id}: {task.title} {who}.")
            else:
                blocks.append(format_task_detail(snapshot, task))
        return "\n\n".join(blocks)

    def _ordinal_lookup(self, ctx: QuestionContext) -> str:
        snapshot = ctx.snapshot
        tasks = snapshot.tasks
        ordinal = ctx.entities.ordinal
        if not tasks:
            return EMPTY_PROJECT

        if ordinal.count:
            picked = snapshot.tasks_in_range(ordinal.position, ordinal.count)
            end = "Latest" if ordinal.position == LATEST else "First"
            header = f"{end} {len(picked)} {plural(len(picked))}:"
            return header + "\n" + format_task_list(snapshot, picked, self.config.LIST_DETAIL_LIMIT)

        task = snapshot.task_at(ordinal.position)
        if task is None:
            return f"The project only has {len(tasks)} {plural(len(tasks))}."
        if ordinal.position == LATEST:
            return "Latest task:\n" + format_task_line(snapshot, task)
        return f"Task number {ordinal.position} in creation order:\n" + format_task_line(snapshot, task)

    def _keyword_search(self, ctx: QuestionContext) -> str:
        snapshot = ctx.snapshot
        keyword = ctx.entities.keyword
        needle = keyword.lower()
        hits = [t for t in snapshot.tasks if needle in t.title.lower()]
        if not hits:
            return f"Matched 0 tasks for \"{keyword}\"."
        header = f"Matched {len(hits)} {plural(len(hits))} for \"{keyword}\":"
        return header + "\n" + format_task_list(snapshot, hits, self.config.LIST_DETAIL_LIMIT)

    def _date_listing(self, ctx: QuestionContext) -> str:
        snapshot = ctx.snapshot
        e = ctx.entities
        window = e.date_window
        tasks = snapshot.filter_tasks(status=e.status, priority=e.priority, date_window=window)
        n = len(tasks)
        if window.overdue:
            header = f"Found {n} overdue {plural(n)}"
        else:
            header = f"Found {n} {plural(n)} due {window.label}"
        if not tasks:
            return header + "."
        return header + ":\n" + format_task_list(snapshot, tasks, self.config.LIST_DETAIL_LIMIT)

    def _filtered_listing(self, ctx: QuestionContext) -> str:
        snapshot = ctx.snapshot
        e = ctx.entities
        assignee = snapshot.resolve_member(e.assignee_hint)
        if e.assignee_hint and assignee is None and not e.has_filters:
            return unknown_member_message(e.assignee_hint)
        unassigned = bool(re.search(r"\bunassigned\b", ctx.text))

        tasks = snapshot.filter_tasks(
            status=e.status,
            priority=e.priority,
            assignee=assignee,
            unassigned=unassigned,
        )
        description = describe_filters(
            snapshot, status=e.status, priority=e.priority, assignee=assignee, unassigned=unassigned
        )
        n = len(tasks)
        header = f"Found {n} {plural(n)} that {'is' if n == 1 else 'are'} {description}"
        if not tasks:
            return header + "."
        return header + ":\n" + format_task_list(snapshot, tasks, self.config.LIST_DETAIL_LIMIT)

    def _generic_listing(self, ctx: QuestionContext) -> str:
        snapshot = ctx.snapshot
        tasks = snapshot.tasks
        if not tasks:
            return EMPTY_PROJECT
        n = len(tasks)
        header = f"Found {n} {plural(n)} in {snapshot.project.name}:"
        return header + "\n" + format_task_list(snapshot, tasks, self.config.LIST_DETAIL_LIMIT)

    # =========================================================================
    # Fallback
    # =========================================================================

    def _fallback(self, ctx: QuestionContext) -> str:
        if not ctx.text:
            return HELP_TEXT
        if self.fallback is not None:
            answer = self.fallback.answer(ctx.snapshot, ctx.utterance, ctx.history, ctx.extra_context)
            if answer:
                return answer
        return FALLBACK_PREFIX + HELP_TEXT
