"""
Project Context Snapshot - a read-only, per-call view of a project.

Built fresh for every call from the caller's Project. Holds the derived
indexes (tasks by id, counts by status and priority, overdue tasks) that
the question answering engine and the command planner both need.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Union

from taskassist.agents.entity_schema import LATEST, AssigneeSentinel, DateWindow
from taskassist.models.project import (
    Member,
    PHASE_LABELS,
    Project,
    Task,
    TaskPriority,
    TaskStatus,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectContextSnapshot:
    """Immutable view of a project as of ``today``."""
    project: Project
    today: date
    current_user: Optional[Member] = None
    task_by_id: dict[int, Task] = field(default_factory=dict)
    status_labels: dict[TaskStatus, str] = field(default_factory=dict)

    @classmethod
    def from_project(
            cls,
            project: Project,
            today: Optional[date] = None,
            current_user: Optional[Member] = None,
    ) -> "ProjectContextSnapshot":
        """Index a project for one call."""
        return cls(
            project=project,
            today=today or date.today(),
            current_user=current_user,
            task_by_id={t.id: t for t in project.tasks},
            status_labels=dict(PHASE_LABELS[project.methodology]),
        )

    # =========================================================================
    # Basic accessors
    # =========================================================================

    @property
    def tasks(self) -> list[Task]:
        return list(self.project.tasks)

    @property
    def task_count(self) -> int:
        return len(self.project.tasks)

    def find_task(self, task_id: int) -> Optional[Task]:
        return self.task_by_id.get(task_id)

    def label(self, status: TaskStatus) -> str:
        """Human label for a status under the project's methodology."""
        return self.status_labels.get(status, status.value)

    def is_overdue(self, task: Task) -> bool:
        return (
            task.end_date is not None
            and task.end_date < self.today
            and task.status != TaskStatus.DONE
        )

    def team(self) -> list[Member]:
        """Owner first, then members, unique by id."""
        people = [self.project.owner]
        seen = {self.project.owner.id}
        for member in self.project.members:
            if member.id not in seen:
                seen.add(member.id)
                people.append(member)
        return people

    # =========================================================================
    # Aggregates
    # =========================================================================

    def count_by_status(self) -> dict[TaskStatus, int]:
        counts = {status: 0 for status in TaskStatus}
        for task in self.project.tasks:
            counts[task.status] += 1
        return counts

    def count_by_priority(self) -> dict[TaskPriority, int]:
        counts = {priority: 0 for priority in TaskPriority}
        for task in self.project.tasks:
            counts[task.priority] += 1
        return counts

    def overdue_tasks(self) -> list[Task]:
        return [t for t in self.project.tasks if self.is_overdue(t)]

    def tasks_in_window(self, window: DateWindow) -> list[Task]:
        if window.overdue:
            return self.overdue_tasks()
        return [t for t in self.project.tasks if window.contains(t.end_date)]

    def task_at(self, position: Union[int, str]) -> Optional[Task]:
        """Task at a 1-based creation-order position, or the newest for LATEST."""
        tasks = self.project.tasks
        if not tasks:
            return None
        if position == LATEST:
            return tasks[-1]
        if 1 <= position <= len(tasks):
            return tasks[position - 1]
        return None

    def tasks_in_range(self, position: Union[int, str], count: int) -> list[Task]:
        """The first ``count`` tasks from ``position``, or the newest ``count`` for LATEST."""
        tasks = self.project.tasks
        if position == LATEST:
            return list(tasks[-count:])
        return list(tasks[position - 1:position - 1 + count])

    # =========================================================================
    # Filtering
    # =========================================================================

    def filter_tasks(
            self,
            status: Optional[TaskStatus] = None,
            priority: Optional[TaskPriority] = None,
            assignee: Optional[Member] = None,
            unassigned: bool = False,
            date_window: Optional[DateWindow] = None,
    ) -> list[Task]:
        """
        Conjunction of every predicate given; no predicate means all tasks.

        Project order (creation order) is preserved.
        """
        result = []
        for task in self.project.tasks:
            if status is not None and task.status != status:
                continue
            if priority is not None and task.priority != priority:
                continue
            if assignee is not None and (task.assignee is None or task.assignee.id != assignee.id):
                continue
            if unassigned and task.assignee is not None:
                continue
            if date_window is not None:
                if date_window.overdue:
                    if not self.is_overdue(task):
                        continue
                elif not date_window.contains(task.end_date):
                    continue
            result.append(task)
        return result

    # =========================================================================
    # Member resolution
    # =========================================================================

    def resolve_member(self, hint: Optional[str]) -> Optional[Member]:
        """
        Map an assignee hint onto a project member.

        Tries, in order: sentinel values, exact name or email, every hint
        word contained in the member's name ("Jane Doe" finds "Jane Marie
        Doe"), then a plain substring match. Returns None when nothing or
        more than one member matches at the deciding step.
        """
        if not hint:
            return None
        if hint == AssigneeSentinel.OWNER.value:
            return self.project.owner
        if hint == AssigneeSentinel.ME.value:
            return self.current_user

        needle = hint.strip().lower()
        people = self.team()

        exact = [m for m in people if m.name.lower() == needle or (m.email or "").lower() == needle]
        if exact:
            return exact[0]

        words = [w for w in re.split(r"\s+", needle) if w]
        token_matches = [
            m for m in people
            if all(w in re.split(r"\s+", m.name.lower()) for w in words)
        ]
        if len(token_matches) == 1:
            return token_matches[0]

        partial = [m for m in people if needle in m.name.lower()]
        if len(partial) == 1:
            return partial[0]

        logger.debug(f"[SNAPSHOT] No unique member for hint '{hint}' ({len(token_matches)} token matches)")
        return None
