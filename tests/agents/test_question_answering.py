"""
Question Answering Engine - Test Suite

Answers are checked through ProjectAssistant.answer_question against the
sample project in conftest (Monday 2026-10-19).

Run with:
    pytest tests/agents/test_question_answering.py -v
"""
from unittest.mock import MagicMock

import pytest

from taskassist.agents.assistant import ProjectAssistant
from taskassist.agents.config import AgentConfig
from taskassist.agents.question_answering import (
    COMMAND_HINT,
    EMPTY_PROJECT,
    FALLBACK_PREFIX,
    HELP_TEXT,
    format_task_line,
)

from tests.conftest import BOB, TODAY


NUMERIC_HISTORY = [
    {"role": "user", "content": "How many tasks?"},
    {"role": "assistant", "content": "There are 6 tasks in the project."},
]


# =============================================================================
# Counts and summaries
# =============================================================================

class TestCounts:
    """Count answers honor every filter."""

    def test_count_by_status(self, assistant, project):
        """Single-task counts read naturally."""
        answer = assistant.answer_question(project, "How many tasks are done?")
        assert answer == "There are 1 task that is Done."

    def test_count_all(self, assistant, project):
        """No filter counts the whole project."""
        assert assistant.answer_question(project, "How many tasks?") == "There are 6 tasks in the project."

    def test_count_conjunction(self, assistant, project):
        """Status and priority combine."""
        answer = assistant.answer_question(project, "How many high priority tasks are in progress?")
        assert answer == "There are 2 tasks that are In Progress and high priority."

    def test_count_overdue(self, assistant, project):
        """Done tasks are never overdue."""
        answer = assistant.answer_question(project, "How many overdue tasks?")
        assert answer == "There are 1 task that is overdue."

    def test_count_by_assignee(self, assistant, project):
        """Partial names resolve to members."""
        answer = assistant.answer_question(project, "How many tasks are assigned to Jane?")
        assert answer == "There are 2 tasks that are assigned to Jane Marie Doe."

    def test_count_members(self, assistant, project):
        """Counting people counts the team, owner included."""
        answer = assistant.answer_question(project, "How many members?")
        assert answer == "The project has 3 members including the owner."

    def test_count_for_me_needs_current_user(self, assistant, project):
        """'me' only resolves when the caller says who they are."""
        answer = assistant.answer_question(project, "How many tasks are assigned to me?")
        assert "don't know which project member you are" in answer

        answer = assistant.answer_question(project, "How many tasks are assigned to me?", current_user=BOB)
        assert answer == "There are 1 task that is assigned to Bob Smith."

    def test_comparison(self, assistant, project):
        """Both sides are counted and the difference stated."""
        answer = assistant.answer_question(project, "done vs in progress")
        assert answer.startswith("Comparison: Done: 1 vs In Progress: 2")
        assert "In Progress has 1 more task than Done." in answer

    def test_overview(self, assistant, project):
        """The overview carries totals and overdue."""
        answer = assistant.answer_question(project, "project overview")
        assert answer.startswith("Project Overview: Apollo")
        assert "Total tasks: 6" in answer
        assert "• To Do: 3" in answer
        assert "Overdue: 1" in answer

    def test_weekly_report(self, assistant, project):
        """The weekly report covers the current ISO week."""
        answer = assistant.answer_question(project, "Generate weekly progress report")
        assert answer.startswith("Weekly Progress Report: Apollo")
        assert "Week of 2026-10-19 to 2026-10-25" in answer
        assert "Completion rate: 17% (1 of 6 tasks done)" in answer
        assert "Due this week: 2" in answer
        assert "Task #104" in answer
        assert "Overdue: 1" in answer


# =============================================================================
# People
# =============================================================================

class TestPeople:
    """Owner and team answers."""

    def test_ownership(self, assistant, project):
        """The owner answer never lists tasks."""
        answer = assistant.answer_question(project, "Who is the project owner?")
        assert answer == "Project owner: Alice Owner (alice@example.com)"
        assert "Task #" not in answer
        assert "Task assignments" not in answer

    def test_team_members(self, assistant, project):
        """Team listing marks the owner."""
        answer = assistant.answer_question(project, "Who is on the team?")
        assert answer.startswith("Team members (3):")
        assert "• Alice Owner (owner)" in answer
        assert "• Jane Marie Doe" in answer


# =============================================================================
# Lookups and listings
# =============================================================================

class TestLookups:
    """Specific, ordinal and keyword lookups."""

    def test_specific_lookup(self, assistant, project):
        """Full detail for one task."""
        answer = assistant.answer_question(project, "Show #103")
        assert answer.startswith("Task #103: Refactor auth tokens")
        assert "Status: To Do" in answer
        assert "Due: 2026-10-15 (OVERDUE)" in answer
        assert "Created by: Alice Owner" in answer
        assert "Description: Rotate signing keys" in answer

    def test_specific_lookup_missing(self, assistant, project):
        """Unknown ids are reported, not guessed."""
        assert assistant.answer_question(project, "Show #999") == "Task #999 was not found in this project."

    def test_lookup_assignee(self, assistant, project):
        """'Who is assigned to #N' answers with the assignee only."""
        answer = assistant.answer_question(project, "Who is assigned to #104?")
        assert answer == "Task #104: Design dashboard is assigned to Jane Marie Doe."

    def test_first_task(self, assistant, project):
        """Ordinals count in creation order."""
        answer = assistant.answer_question(project, "Show first task")
        assert answer.startswith("Task number 1 in creation order:")
        assert "Task #101" in answer

    def test_latest_task(self, assistant, project):
        """'latest' is the last created task."""
        answer = assistant.answer_question(project, "Show latest task")
        assert answer.startswith("Latest task:")
        assert "Task #106" in answer

    def test_first_n_tasks(self, assistant, project):
        """'first 3 tasks' lists exactly three."""
        answer = assistant.answer_question(project, "List first 3 tasks")
        assert answer.startswith("First 3 tasks:")
        assert "Task #103" in answer
        assert "Task #104" not in answer

    def test_ordinal_beyond_end(self, assistant, project):
        """Positions past the end are reported."""
        assert assistant.answer_question(project, "Show the tenth task") == "The project only has 6 tasks."

    def test_keyword_search(self, assistant, project):
        """Keyword search is case-insensitive on titles."""
        answer = assistant.answer_question(project, "search auth")
        assert answer.startswith('Matched 2 tasks for "auth":')
        assert "Task #103" in answer
        assert "Task #105" in answer

    def test_keyword_no_match(self, assistant, project):
        """No hits still answers."""
        assert assistant.answer_question(project, "search kubernetes") == 'Matched 0 tasks for "kubernetes".'


class TestListings:
    """Date, filtered and generic listings."""

    def test_due_this_week(self, assistant, project):
        """Window listing uses the ISO week."""
        answer = assistant.answer_question(project, "list tasks due this week")
        assert answer.startswith("Found 2 tasks due this week:")
        assert "Task #101" in answer
        assert "Task #104" in answer

    def test_due_tomorrow(self, assistant, project):
        """Single-day window."""
        answer = assistant.answer_question(project, "tasks due tomorrow")
        assert answer.startswith("Found 1 task due tomorrow:")
        assert "Task #104" in answer

    def test_overdue_listing(self, assistant, project):
        """Overdue listing flags the task."""
        answer = assistant.answer_question(project, "What is overdue?")
        assert answer.startswith("Found 1 overdue task:")
        assert "Task #103" in answer
        assert "overdue)" in answer

    def test_filtered_listing(self, assistant, project):
        """Priority filter."""
        answer = assistant.answer_question(project, "List high priority tasks")
        assert answer.startswith("Found 2 tasks that are high priority:")
        assert "Task #104" in answer
        assert "Task #105" in answer

    def test_unassigned_listing(self, assistant, project):
        """Unassigned tasks only."""
        answer = assistant.answer_question(project, "Show unassigned tasks")
        assert answer.startswith("Found 2 tasks that are unassigned:")

    def test_owner_filter(self, assistant, project):
        """'assigned to the owner' lists the owner's tasks, not the owner."""
        answer = assistant.answer_question(project, "list tasks assigned to the owner")
        assert answer.startswith("Found 1 task that is ")
        assert "Task #106" in answer
        assert "Task #104" not in answer
        assert "Project owner:" not in answer

    def test_ownership_with_task_id(self, assistant, project):
        """An owner question about one task looks the task up."""
        answer = assistant.answer_question(project, "Who is the owner of #106?")
        assert "Task #106" in answer
        assert "Project owner:" not in answer

    def test_unknown_member(self, assistant, project):
        """Unknown names are reported instead of listing everything."""
        answer = assistant.answer_question(project, "Show tasks for Zed")
        assert answer == 'I couldn\'t find a project member matching "Zed".'

    def test_generic_listing(self, assistant, project):
        """Every task appears with its id."""
        answer = assistant.answer_question(project, "List all tasks")
        assert answer.startswith("Found 6 tasks in Apollo:")
        for task_id in range(101, 107):
            assert f"Task #{task_id}" in answer

    def test_list_limit_keeps_all_ids(self, project):
        """Tasks past the detail limit are still listed by id."""
        assistant = ProjectAssistant(config=AgentConfig(LIST_DETAIL_LIMIT=2), clock=lambda: TODAY)
        answer = assistant.answer_question(project, "List all tasks")
        assert "Task #102" in answer
        assert "Task #103" not in answer
        assert "Other task IDs: #103, #104, #105, #106" in answer

    def test_task_line_format(self, snapshot):
        """One bullet per task with status, priority, assignee and due date."""
        line = format_task_line(snapshot, snapshot.find_task(104))
        assert line == "• Task #104: Design dashboard (In Progress, high priority, assigned to Jane Marie Doe, due 2026-10-20)"

    def test_empty_project(self, assistant, empty_project):
        """Empty projects answer plainly."""
        assert assistant.answer_question(empty_project, "List all tasks") == EMPTY_PROJECT
        assert assistant.answer_question(empty_project, "How many tasks?") == "There are 0 tasks in the project."


# =============================================================================
# Conversation follow-ups
# =============================================================================

class TestFollowUps:
    """Answers that depend on the previous turns."""

    def test_assignment_followup(self, assistant, project, list_history):
        """Assignees of the listed tasks."""
        answer = assistant.answer_question(project, "Who is assigned to them?", list_history)
        assert answer.startswith("Task assignments:")
        assert "• Task #101: Set up CI pipeline (unassigned)" in answer
        assert "• Task #102: Write onboarding docs (Jane Marie Doe)" in answer

    def test_ids_followup(self, assistant, project, list_history):
        """Ids of the listed tasks."""
        answer = assistant.answer_question(project, "task ids", list_history)
        assert answer == "Task IDs: #101, #102, #103, #104, #105, #106"

    def test_ids_without_history(self, assistant, project):
        """Without a listing every task is shown with its id."""
        assert "Task #" in assistant.answer_question(project, "list task ids")

    def test_explanation(self, assistant, project):
        """'why?' explains the previous numeric answer."""
        answer = assistant.answer_question(project, "why?", NUMERIC_HISTORY)
        assert "numbers come from the 6 tasks currently in Apollo" in answer
        assert 'My previous answer was: "There are 6 tasks in the project."' in answer

    def test_clarification(self, assistant, project):
        """Unresolvable pronouns ask which task."""
        history = [{"role": "user", "content": "hello"}]
        answer = assistant.answer_question(project, "What about them?", history)
        assert "specify which task" in answer


# =============================================================================
# Help and fallback
# =============================================================================

class TestHelpAndFallback:
    """Unrecognized input and commands sent as questions."""

    @pytest.mark.parametrize("utterance", ["help", "", None])
    def test_help(self, assistant, project, utterance):
        """Help and empty input return the help text."""
        assert assistant.answer_question(project, utterance) == HELP_TEXT

    def test_fallback_without_llm(self, assistant, project):
        """Without a fallback the help text is prefixed."""
        answer = assistant.answer_question(project, "What's the weather?")
        assert answer == FALLBACK_PREFIX + HELP_TEXT

    def test_fallback_with_llm(self, config, project):
        """A configured fallback answers unrecognized questions."""
        fallback = MagicMock()
        fallback.answer.return_value = "Sunny, but the sprint is cloudy."
        assistant = ProjectAssistant(config=config, fallback=fallback, clock=lambda: TODAY)

        answer = assistant.answer_question(project, "What's the weather?", [], extra_context="Is it sunny?")

        assert answer == "Sunny, but the sprint is cloudy."
        args = fallback.answer.call_args[0]
        assert args[1] == "What's the weather?"
        assert args[3] == "Is it sunny?"

    def test_fallback_llm_declines(self, config, project):
        """An empty fallback answer degrades to help."""
        fallback = MagicMock()
        fallback.answer.return_value = None
        assistant = ProjectAssistant(config=config, fallback=fallback, clock=lambda: TODAY)
        assert assistant.answer_question(project, "What's the weather?").startswith(FALLBACK_PREFIX)

    def test_deterministic_intents_skip_llm(self, config, project):
        """Recognized questions never reach the fallback."""
        fallback = MagicMock()
        assistant = ProjectAssistant(config=config, fallback=fallback, clock=lambda: TODAY)
        assistant.answer_question(project, "How many tasks?")
        fallback.answer.assert_not_called()

    def test_command_as_question(self, assistant, project):
        """Commands sent to answer_question get a hint, not a change."""
        assert assistant.answer_question(project, "Move #102 to done") == COMMAND_HINT

    def test_project_not_mutated(self, assistant, project, list_history):
        """Answering never changes the project."""
        before = project.model_dump()
        for utterance in ("List all tasks", "Who is assigned to them?", "project overview"):
            assistant.answer_question(project, utterance, list_history)
        assert project.model_dump() == before

    def test_dict_project(self, assistant, project):
        """Projects may be passed as plain dicts."""
        answer = assistant.answer_question(project.model_dump(mode="json"), "How many tasks are done?")
        assert answer == "There are 1 task that is Done."
