"""
Command Planner - Test Suite

Plans are checked in their wire form (CommandPlan.to_dict) against the
sample project in conftest (Monday 2026-10-19).

Run with:
    pytest tests/agents/test_command_planner.py -v
"""
from unittest.mock import MagicMock

import pytest

from taskassist.agents.assistant import ProjectAssistant
from taskassist.agents.command_planner import extract_title, parse_changes
from taskassist.agents.command_schema import GENERATION_COUNT_LIMIT, CommandType, TaskDeleteCommand
from taskassist.agents.config import AgentConfig
from taskassist.models.project import TaskPriority, TaskStatus

from tests.conftest import TODAY


ALL_IDS = [101, 102, 103, 104, 105, 106]


def single_listing(task_id: int, title: str) -> list[dict]:
    return [
        {"role": "user", "content": "show it"},
        {"role": "assistant", "content": f"• Task #{task_id}: {title}"},
    ]


@pytest.fixture
def plan(assistant, project):
    """Plan an utterance and return its wire form."""

    def _plan(utterance, history=None) -> dict:
        return assistant.generate_command_plan(project, utterance, history).to_dict()

    return _plan


# =============================================================================
# Parsing helpers
# =============================================================================

class TestParseChanges:
    """Splitting '<scope> to <value>' clauses."""

    def test_status_clause(self):
        """A bare value after 'to' is tried as a status first."""
        assert parse_changes("Move #5 to done", TODAY) == ("Move #5", {"status": TaskStatus.DONE})

    def test_multiple_clauses(self):
        """Each clause is parsed for the field named before it."""
        scope, changes = parse_changes("Move #5 to done and priority to high", TODAY)
        assert scope == "Move #5"
        assert changes == {"status": TaskStatus.DONE, "priority": TaskPriority.HIGH}

    def test_date_clause(self):
        """Due-date phrases become ISO dates."""
        scope, changes = parse_changes("Change due date of #101 to next Friday", TODAY)
        assert scope == "Change due date of #101"
        assert changes == {"end_date": "2026-10-23"}

    def test_no_clause(self):
        """Without a clause the scope is the whole utterance."""
        assert parse_changes("Update #101", TODAY) == ("Update #101", {})


class TestExtractTitle:
    """Titles of new tasks."""

    def test_quoted_title(self):
        """Quoted text is the title; the rest is parsed for fields."""
        title, remainder = extract_title('Create task "Write tests" due tomorrow', "Write tests")
        assert title == "Write tests"
        assert "due tomorrow" in remainder

    def test_unquoted_title_stops_at_fields(self):
        """Unquoted titles end where field phrases begin."""
        title, remainder = extract_title("Create task Fix login bug due Friday", None)
        assert title == "Fix login bug"
        assert remainder.strip() == "due Friday"


# =============================================================================
# Single-task commands
# =============================================================================

class TestCreateTask:
    """create_task plans."""

    def test_quoted_title(self, plan):
        """Only the title is required."""
        assert plan('Create task "Refactor auth module"')["command_data"] == {
            "type": "create_task",
            "title": "Refactor auth module",
        }

    def test_fields_from_remainder(self, plan):
        """Priority, due date and assignee come from the rest of the sentence."""
        result = plan('Create task "Write tests" with high priority due tomorrow assigned to Jane Doe')
        assert result["command_data"] == {
            "type": "create_task",
            "title": "Write tests",
            "priority": "high",
            "assignee": "Jane Doe",
            "end_date": "2026-10-20",
        }
        assert result["preview_message"].startswith('Create task "Write tests"')

    def test_unquoted_title(self, plan):
        """Unquoted titles work too."""
        data = plan("Create task Fix login bug due Friday")["command_data"]
        assert data["title"] == "Fix login bug"
        assert data["end_date"] == "2026-10-23"

    def test_missing_title(self, plan):
        """No title, no guess."""
        data = plan("Create task")["command_data"]
        assert data["type"] == "unresolved"
        assert data["attempted"] == "create_task"


class TestTaskUpdate:
    """task_update plans."""

    def test_move_to_status(self, plan):
        """Status change by id."""
        result = plan("Move #102 to done")
        assert result["command_data"] == {"type": "task_update", "taskId": 102, "changes": {"status": "done"}}
        assert "Write onboarding docs" in result["preview_message"]

    def test_priority_change(self, plan):
        """The field named before 'to' decides what changes."""
        data = plan("Set priority of #104 to urgent")["command_data"]
        assert data["changes"] == {"priority": "urgent"}

    def test_due_date_change(self, plan):
        """Relative due dates are resolved against today."""
        data = plan("Change due date of #101 to next Friday")["command_data"]
        assert data["changes"] == {"end_date": "2026-10-23"}

    def test_assign_single_task(self, plan):
        """Assigning one task is an update of its assignee."""
        data = plan("Assign #101 to Jane Doe")["command_data"]
        assert data == {"type": "task_update", "taskId": 101, "changes": {"assignee": "Jane Doe"}}

    def test_rename(self, plan):
        """Rename uses the quoted title."""
        data = plan('Rename #101 to "Set up CI/CD"')["command_data"]
        assert data["changes"] == {"title": "Set up CI/CD"}

    def test_pronoun_with_single_referent(self, plan):
        """'it' resolves when exactly one task was just shown."""
        data = plan("Move it to done", single_listing(104, "Design dashboard"))["command_data"]
        assert data == {"type": "task_update", "taskId": 104, "changes": {"status": "done"}}

    def test_pronoun_with_many_referents(self, plan, list_history):
        """'it' over several listed tasks asks which one."""
        data = plan("Move it to done", list_history)["command_data"]
        assert data["type"] == "unresolved"
        assert "specify which task" in data["reason"]
        assert data["attempted"] == "task_update"

    def test_unknown_task(self, plan):
        """Ids outside the project are rejected."""
        data = plan("Move #999 to done")["command_data"]
        assert data["type"] == "unresolved"
        assert data["reason"] == "Task #999 was not found in this project."

    def test_no_changes(self, plan):
        """An update without a change asks what to change."""
        data = plan("Update #101")["command_data"]
        assert data["type"] == "unresolved"
        assert data["attempted"] == "task_update"

    def test_date_past_calendar_end(self, plan):
        """A due date beyond the calendar asks again instead of failing."""
        data = plan("Move #101 to in 999999999 days")["command_data"]
        assert data["type"] == "unresolved"
        assert data["attempted"] == "task_update"


class TestTaskDelete:
    """task_delete plans."""

    def test_delete_by_id(self, plan):
        """Deleting one task warns in the preview."""
        result = plan("Delete #103")
        assert result["command_data"] == {"type": "task_delete", "taskId": 103}
        assert "cannot be undone" in result["preview_message"]

    def test_pronoun_with_single_referent(self, plan):
        """'delete it' removes the one task just shown."""
        data = plan("delete it", single_listing(101, "Set up CI pipeline"))["command_data"]
        assert data == {"type": "task_delete", "taskId": 101}

    def test_pronoun_with_many_referents(self, plan, list_history):
        """'delete it' after a full listing asks which task."""
        data = plan("delete it", list_history)["command_data"]
        assert data["type"] == "unresolved"
        assert "specify which task" in data["reason"]
        assert data["attempted"] == "task_delete"

    def test_pronoun_without_listing(self, plan):
        """'delete it' with nothing shown never becomes a bulk delete."""
        data = plan("delete it")["command_data"]
        assert data["type"] == "unresolved"
        assert data["attempted"] == "task_delete"

    def test_by_position(self, plan):
        """'the first task' is the oldest task."""
        assert plan("Delete the first task")["command_data"] == {"type": "task_delete", "taskId": 101}


UNNUMBERED_TARGET_SCENARIOS = [
    ("Mark the first task as done", 101, {"status": "done"}),
    ("Mark the latest task as done", 106, {"status": "done"}),
    ("Set the priority of the second task to high", 102, {"priority": "high"}),
    ("Assign the first task to Bob", 101, {"assignee": "Bob"}),
]


class TestUnnumberedTargets:
    """Commands naming one task without a '#id' never widen to every task."""

    @pytest.mark.parametrize(
        "utterance,task_id,changes",
        UNNUMBERED_TARGET_SCENARIOS,
        ids=[s[0] for s in UNNUMBERED_TARGET_SCENARIOS],
    )
    def test_position_resolves_one_task(self, plan, utterance, task_id, changes):
        """Positions count in creation order."""
        data = plan(utterance)["command_data"]
        assert data == {"type": "task_update", "taskId": task_id, "changes": changes}

    @pytest.mark.parametrize("utterance", [
        "Set the priority of the login bug to high",
        "Move the CI pipeline task to review",
        "Mark the dashboard design as done",
    ])
    def test_title_is_not_matched(self, plan, utterance):
        """A task described by title asks for its id."""
        data = plan(utterance)["command_data"]
        assert data["type"] == "unresolved"
        assert data["attempted"] == "task_update"
        assert "specify which task" in data["reason"]

    def test_position_past_the_end(self, plan):
        """A position beyond the project asks which task."""
        data = plan("Mark the ninth task as done")["command_data"]
        assert data["type"] == "unresolved"
        assert data["reason"].startswith("The project only has 6 tasks.")

    def test_first_n_tasks(self, plan):
        """'the first 3 tasks' targets exactly those ids."""
        data = plan("Move the first 3 tasks to done")["command_data"]
        assert data["type"] == "bulk_update"
        assert data["targetTaskIds"] == [101, 102, 103]
        assert data["updates"] == {"status": "done"}

    def test_latest_n_tasks(self, plan):
        """'the last 2 tasks' targets the newest ids."""
        data = plan("Assign the last 2 tasks to me")["command_data"]
        assert data["type"] == "bulk_assign"
        assert data["targetTaskIds"] == [105, 106]


# =============================================================================
# Bulk commands
# =============================================================================

class TestBulkUpdate:
    """bulk_update plans."""

    def test_all_tasks(self, plan):
        """'all tasks' is an empty filter."""
        data = plan("Move all tasks to review")["command_data"]
        assert data == {"type": "bulk_update", "filters": {}, "updates": {"status": "review"}}

    def test_explicit_ids(self, plan):
        """Several ids become targetTaskIds."""
        data = plan("Move #101 and #102 to done")["command_data"]
        assert data["targetTaskIds"] == [101, 102]
        assert data["filters"] == {}
        assert data["updates"] == {"status": "done"}

    def test_filter_and_status(self, plan):
        """Filters come from the scope, updates from the clause."""
        data = plan("Mark high priority tasks as done")["command_data"]
        assert data["filters"] == {"priority": "high"}
        assert data["updates"] == {"status": "done"}

    def test_due_date_for_priority(self, plan):
        """Relative dates on a filtered batch."""
        data = plan("Update due date for medium priority to next Friday")["command_data"]
        assert data["type"] == "bulk_update"
        assert data["filters"] == {"priority": "medium"}
        assert data["updates"] == {"end_date": "2026-10-23"}

    def test_overdue_filter(self, plan):
        """'overdue' becomes a filter flag."""
        data = plan("Move overdue tasks to next week")["command_data"]
        assert data["filters"] == {"overdue": True}
        assert data["updates"] == {"end_date": "2026-10-26"}

    def test_pronoun_targets(self, plan, list_history):
        """'them' targets the listed tasks in order."""
        data = plan("Move them to done", list_history)["command_data"]
        assert data["targetTaskIds"] == ALL_IDS
        assert data["filters"] == {}

    def test_pronoun_without_listing(self, plan):
        """'them' without a listing asks which tasks."""
        data = plan("Move them to done")["command_data"]
        assert data["type"] == "unresolved"
        assert "specify which task" in data["reason"]


class TestBulkAssign:
    """bulk_assign plans."""

    def test_all_of_them_to_me(self, plan, list_history):
        """The referent pool becomes targetTaskIds; filters stay empty."""
        data = plan("assign all of them to me", list_history)["command_data"]
        assert data["type"] == "bulk_assign"
        assert data["assignee"] == "__ME__"
        assert data["targetTaskIds"] == ALL_IDS
        assert data["filters"] == {}

    def test_status_filter(self, plan):
        """Status filter with the ME sentinel."""
        data = plan("Assign todo tasks to me")["command_data"]
        assert data == {"type": "bulk_assign", "filters": {"status": "todo"}, "assignee": "__ME__"}

    def test_literal_name(self, plan):
        """Names are kept as typed; the preview shows the member found."""
        result = plan("assign in progress tasks to Jane Doe")
        assert result["command_data"]["filters"] == {"status": "inprogress"}
        assert result["command_data"]["assignee"] == "Jane Doe"
        assert "Jane Marie Doe" in result["preview_message"]
        assert "No project member matches" not in result["preview_message"]

    def test_owner_sentinel(self, plan):
        """'to owner' uses the OWNER sentinel."""
        data = plan("assign high priority tasks to owner")["command_data"]
        assert data["filters"] == {"priority": "high"}
        assert data["assignee"] == "__OWNER__"

    def test_no_filter_is_all(self, plan):
        """Without a filter the plan says 'all' explicitly."""
        data = plan("Assign all tasks to me")["command_data"]
        assert data["filters"] == {"all": True}
        assert "targetTaskIds" not in data

    def test_unknown_member_warns(self, plan):
        """Unknown names are kept but flagged in the preview."""
        result = plan("assign everything to Zed")
        assert result["command_data"]["assignee"] == "Zed"
        assert 'No project member matches "Zed"' in result["preview_message"]

    def test_pronoun_without_listing(self, plan):
        """'them' with nothing listed asks which tasks."""
        data = plan("assign them to me")["command_data"]
        assert data["type"] == "unresolved"
        assert "specify which task" in data["reason"]
        assert data["attempted"] == "bulk_assign"


class TestBulkDelete:
    """bulk_delete plans."""

    def test_priority_filter(self, plan):
        """Priority filter."""
        data = plan("Delete urgent tasks")["command_data"]
        assert data == {"type": "bulk_delete", "filters": {"priority": "urgent"}}

    def test_status_filter(self, plan):
        """Status filter."""
        assert plan("Delete done tasks")["command_data"]["filters"] == {"status": "done"}

    def test_overdue_filter(self, plan):
        """Overdue flag."""
        assert plan("Delete overdue tasks")["command_data"]["filters"] == {"overdue": True}

    def test_explicit_all(self, plan):
        """'all' must be said to delete everything."""
        assert plan("Delete all tasks")["command_data"]["filters"] == {"all": True}

    def test_never_implicit_all(self, plan):
        """A bare 'delete tasks' asks which ones."""
        data = plan("Delete tasks")["command_data"]
        assert data["type"] == "unresolved"
        assert data["attempted"] == "bulk_delete"

    def test_pronoun_targets(self, plan, list_history):
        """'them' deletes the listed tasks."""
        data = plan("Delete them", list_history)["command_data"]
        assert data["targetTaskIds"] == ALL_IDS


class TestGeneration:
    """bulk_task_generation plans."""

    def test_count_and_theme(self, plan):
        """Explicit count and theme."""
        assert plan("Generate 5 tasks for onboarding flow")["command_data"] == {
            "type": "bulk_task_generation",
            "count": 5,
            "theme": "onboarding flow",
        }

    def test_defaults(self, plan):
        """Default count; the project name stands in for a missing theme."""
        data = plan("Generate tasks")["command_data"]
        assert data["count"] == 3
        assert data["theme"] == "Apollo"

    def test_count_clamped(self, plan):
        """Counts above the maximum are clamped and the preview says so."""
        result = plan("Generate 50 tasks about security")
        assert result["command_data"]["count"] == 10
        assert result["command_data"]["theme"] == "security"
        assert "At most 10 tasks are generated at once." in result["preview_message"]

    def test_zero_count(self, plan):
        """Zero tasks asks for a count instead of generating one."""
        data = plan("Generate 0 tasks")["command_data"]
        assert data["type"] == "unresolved"
        assert data["attempted"] == "bulk_task_generation"
        assert "from 1 to 10" in data["reason"]

    def test_configured_maximum_above_limit(self, project):
        """A larger configured maximum still yields a valid plan."""
        assistant = ProjectAssistant(config=AgentConfig(MAX_GENERATION_COUNT=25), fallback=None, clock=lambda: TODAY)

        data = assistant.generate_command_plan(project, "Generate 20 tasks for QA").to_dict()["command_data"]

        assert data == {"type": "bulk_task_generation", "count": GENERATION_COUNT_LIMIT, "theme": "QA"}

    def test_configured_maximum_below_limit(self, project):
        """A smaller configured maximum wins."""
        assistant = ProjectAssistant(config=AgentConfig(MAX_GENERATION_COUNT=4), fallback=None, clock=lambda: TODAY)

        data = assistant.generate_command_plan(project, "Generate 8 tasks for QA").to_dict()["command_data"]

        assert data["count"] == 4

    def test_vague_quantity(self, plan):
        """'a few' means three."""
        data = plan("Suggest a few tasks for the launch")["command_data"]
        assert data["count"] == 3
        assert data["theme"] == "launch"


# =============================================================================
# Non-commands
# =============================================================================

class TestNonCommands:
    """Utterances that are not commands."""

    def test_question_is_unresolved(self, plan):
        """Questions do not become changes."""
        data = plan("How many tasks?")["command_data"]
        assert data["type"] == "unresolved"
        assert data["reason"] == "I couldn't turn that into a task change."

    def test_clarification(self, plan):
        """Unresolvable pronouns ask which task."""
        data = plan("What about them?")["command_data"]
        assert data["type"] == "unresolved"
        assert "specify which task" in data["reason"]

    def test_fallback_plan(self, config, project):
        """A configured fallback may propose a plan for unrecognized text."""
        fallback = MagicMock()
        fallback.plan.return_value = TaskDeleteCommand(task_id=101)
        assistant = ProjectAssistant(config=config, fallback=fallback, clock=lambda: TODAY)

        result = assistant.generate_command_plan(project, "get rid of the CI thing")

        assert result.command_type == CommandType.TASK_DELETE
        assert result.preview_message.startswith("Suggested change: task delete")

    def test_project_not_mutated(self, assistant, project, list_history):
        """Planning never changes the project."""
        before = project.model_dump()
        for utterance in ("Move all tasks to review", "assign all of them to me", "Delete #103"):
            assistant.generate_command_plan(project, utterance, list_history)
        assert project.model_dump() == before
