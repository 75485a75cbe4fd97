"""
Pytest Configuration and Shared Fixtures for All Tests

This conftest.py provides:
- A fixed "today" so date windows are reproducible
- A sample project (3 todo / 2 in progress / 1 done) with owner and members
- Assistant, extractor and tracker fixtures wired to the fixed date
- Test markers configuration
"""
import logging
import sys
from datetime import date, datetime
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from taskassist.agents.assistant import ProjectAssistant
from taskassist.agents.config import AgentConfig
from taskassist.agents.conversation_context import ConversationContextTracker
from taskassist.agents.entity_extractor import EntityExtractor
from taskassist.agents.snapshot import ProjectContextSnapshot
from taskassist.models.project import Member, Project, Task


# Monday; "this week" is 2026-10-19 .. 2026-10-25
TODAY = date(2026, 10, 19)


# =============================================================================
# Pytest Markers Configuration
# =============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (requires real API)"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow running"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests (mocked, fast)"
    )


# =============================================================================
# Sample Data
# =============================================================================

OWNER = Member(id=1, name="Alice Owner", email="alice@example.com")
JANE = Member(id=2, name="Jane Marie Doe", email="jane@example.com")
BOB = Member(id=3, name="Bob Smith", email="bob@example.com")


def build_tasks() -> list[Task]:
    """Creation order is list order."""
    return [
        Task(id=101, title="Set up CI pipeline", status="todo", priority="medium",
             end_date=date(2026, 10, 21), created_at=datetime(2026, 10, 1, 9, 0)),
        Task(id=102, title="Write onboarding docs", status="todo", priority="medium",
             assignee=JANE, end_date=date(2026, 10, 28), created_at=datetime(2026, 10, 2, 9, 0)),
        Task(id=103, title="Refactor auth tokens", status="todo", priority="medium",
             assignee=BOB, end_date=date(2026, 10, 15), description="Rotate signing keys",
             creator=OWNER, created_at=datetime(2026, 10, 3, 9, 0)),
        Task(id=104, title="Design dashboard", status="inprogress", priority="high",
             assignee=JANE, end_date=date(2026, 10, 20), created_at=datetime(2026, 10, 4, 9, 0)),
        Task(id=105, title="Auth service migration", status="inprogress", priority="high",
             created_at=datetime(2026, 10, 5, 9, 0)),
        Task(id=106, title="Release v1.0", status="done", priority="low",
             assignee=OWNER, end_date=date(2026, 10, 10), created_at=datetime(2026, 10, 6, 9, 0)),
    ]


def build_project(**overrides) -> Project:
    data = {
        "id": 7,
        "name": "Apollo",
        "owner": OWNER,
        "members": [JANE, BOB],
        "tasks": build_tasks(),
    }
    data.update(overrides)
    return Project(**data)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def config() -> AgentConfig:
    """Default tuning, independent of ASSISTANT_* environment variables."""
    return AgentConfig()


@pytest.fixture
def project() -> Project:
    return build_project()


@pytest.fixture
def empty_project() -> Project:
    return build_project(tasks=[])


@pytest.fixture
def snapshot(project) -> ProjectContextSnapshot:
    return ProjectContextSnapshot.from_project(project, TODAY)


@pytest.fixture
def extractor(config) -> EntityExtractor:
    return EntityExtractor(config)


@pytest.fixture
def tracker(config) -> ConversationContextTracker:
    return ConversationContextTracker(config)


@pytest.fixture
def assistant(config) -> ProjectAssistant:
    """Deterministic assistant (no LLM) pinned to TODAY."""
    return ProjectAssistant(config=config, fallback=None, clock=lambda: TODAY)


@pytest.fixture
def restore_root_logger():
    """setup_logging replaces root handlers; put them back afterwards."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


@pytest.fixture
def list_history(assistant, project) -> list[dict]:
    """A conversation where the assistant just listed every task."""
    answer = assistant.answer_question(project, "List all tasks", [])
    return [
        {"role": "user", "content": "List all tasks"},
        {"role": "assistant", "content": answer},
    ]
