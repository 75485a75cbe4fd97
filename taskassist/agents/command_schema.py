"""
Command Schema - Pydantic models for executable command plans.

``command_data.type`` is the tag downstream executors switch on; field
names (``taskId``, ``changes``, ``updates``, ``filters``, ``assignee``,
``targetTaskIds``, ``count``, ``theme``) are the executor's contract.
"""
from datetime import date
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

from taskassist.models.project import TaskPriority, TaskStatus

# Upper bound on bulk_task_generation.count accepted by the executor
GENERATION_COUNT_LIMIT = 10


class CommandType(str, Enum):
    """Plan tags understood by the executor."""
    CREATE_TASK = "create_task"
    TASK_UPDATE = "task_update"
    TASK_DELETE = "task_delete"
    BULK_UPDATE = "bulk_update"
    BULK_ASSIGN = "bulk_assign"
    BULK_DELETE = "bulk_delete"
    BULK_TASK_GENERATION = "bulk_task_generation"
    UNRESOLVED = "unresolved"


def _validate_iso_date(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    if isinstance(v, date):
        return v.isoformat()
    date.fromisoformat(v)
    return v


class TaskChanges(BaseModel):
    """Field changes for a single task or a batch; dates are ISO strings."""
    model_config = ConfigDict(extra="forbid")

    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    end_date: Optional[str] = Field(default=None, description="ISO date, YYYY-MM-DD")
    title: Optional[str] = None
    description: Optional[str] = None
    assignee: Optional[str] = Field(default=None, description="'__ME__', '__OWNER__' or a member name")

    @field_validator("end_date", mode="before")
    @classmethod
    def validate_end_date(cls, v):
        return _validate_iso_date(v)

    @property
    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


class BulkFilters(BaseModel):
    """Filter descriptor resolved by the executor against live data."""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    assignee: Optional[str] = None
    overdue: Optional[bool] = None
    all_tasks: Optional[bool] = Field(default=None, alias="all")

    @property
    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


# =============================================================================
# COMMAND VARIANTS
# =============================================================================

class CreateTaskCommand(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["create_task"] = "create_task"
    title: str = Field(min_length=1)
    description: Optional[str] = None
    priority: Optional[TaskPriority] = None
    assignee: Optional[str] = None
    end_date: Optional[str] = None

    @field_validator("end_date", mode="before")
    @classmethod
    def validate_end_date(cls, v):
        return _validate_iso_date(v)


class TaskUpdateCommand(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    type: Literal["task_update"] = "task_update"
    task_id: int = Field(alias="taskId", ge=1)
    changes: TaskChanges

    @model_validator(mode="after")
    def validate_changes(self) -> "TaskUpdateCommand":
        if self.changes.is_empty:
            raise ValueError("task_update requires at least one change")
        return self


class TaskDeleteCommand(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    type: Literal["task_delete"] = "task_delete"
    task_id: int = Field(alias="taskId", ge=1)


class BulkUpdateCommand(BaseModel):
    """Empty ``filters`` without ``targetTaskIds`` means every task."""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    type: Literal["bulk_update"] = "bulk_update"
    filters: BulkFilters = Field(default_factory=BulkFilters)
    updates: TaskChanges
    target_task_ids: Optional[list[int]] = Field(default=None, alias="targetTaskIds")

    @model_validator(mode="after")
    def validate_targeting(self) -> "BulkUpdateCommand":
        if self.updates.is_empty:
            raise ValueError("bulk_update requires at least one update")
        if self.target_task_ids and not self.filters.is_empty:
            raise ValueError("filters and targetTaskIds are mutually exclusive")
        return self


class BulkAssignCommand(BaseModel):
    """Exactly one of ``filters`` or ``targetTaskIds`` is populated."""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    type: Literal["bulk_assign"] = "bulk_assign"
    filters: BulkFilters = Field(default_factory=BulkFilters)
    assignee: str = Field(min_length=1)
    target_task_ids: Optional[list[int]] = Field(default=None, alias="targetTaskIds")

    @model_validator(mode="after")
    def validate_targeting(self) -> "BulkAssignCommand":
        has_filters = not self.filters.is_empty
        has_targets = bool(self.target_task_ids)
        if has_filters == has_targets:
            raise ValueError("bulk_assign needs exactly one of filters or targetTaskIds")
        return self


class BulkDeleteCommand(BaseModel):
    """Like bulk_assign, a delete never defaults to every task."""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    type: Literal["bulk_delete"] = "bulk_delete"
    filters: BulkFilters = Field(default_factory=BulkFilters)
    target_task_ids: Optional[list[int]] = Field(default=None, alias="targetTaskIds")

    @model_validator(mode="after")
    def validate_targeting(self) -> "BulkDeleteCommand":
        has_filters = not self.filters.is_empty
        has_targets = bool(self.target_task_ids)
        if has_filters == has_targets:
            raise ValueError("bulk_delete needs exactly one of filters or targetTaskIds")
        return self


class BulkTaskGenerationCommand(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["bulk_task_generation"] = "bulk_task_generation"
    count: int = Field(ge=1, le=GENERATION_COUNT_LIMIT)
    theme: str = Field(min_length=1)


class UnresolvedCommand(BaseModel):
    """A recognized command that could not be resolved without guessing."""
    model_config = ConfigDict(extra="forbid")

    type: Literal["unresolved"] = "unresolved"
    reason: str
    clarifying_questions: list[str] = Field(default_factory=list)
    attempted: Optional[str] = Field(default=None, description="Command type that was attempted")


CommandData = Annotated[
    Union[
        CreateTaskCommand,
        TaskUpdateCommand,
        TaskDeleteCommand,
        BulkUpdateCommand,
        BulkAssignCommand,
        BulkDeleteCommand,
        BulkTaskGenerationCommand,
        UnresolvedCommand,
    ],
    Field(discriminator="type"),
]

command_data_adapter: TypeAdapter = TypeAdapter(CommandData)


class CommandPlan(BaseModel):
    """A previewable, executable plan holding exactly one command variant."""

    preview_message: str
    command_data: CommandData

    @property
    def command_type(self) -> CommandType:
        return CommandType(self.command_data.type)

    @property
    def is_resolved(self) -> bool:
        return self.command_type != CommandType.UNRESOLVED

    def to_dict(self) -> dict[str, Any]:
        """Wire form: aliased names, absent optionals omitted, enums as tokens."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

    @classmethod
    def unresolved(
            cls,
            reason: str,
            clarifying_questions: Optional[list[str]] = None,
            attempted: Optional[str] = None,
    ) -> "CommandPlan":
        """Create a plan that asks for clarification instead of guessing."""
        return cls(
            preview_message=reason,
            command_data=UnresolvedCommand(
                reason=reason,
                clarifying_questions=clarifying_questions or [],
                attempted=attempted,
            ),
        )


def parse_command_data(data: dict) -> CommandData:
    """Validate a raw ``command_data`` dict (wire names accepted)."""
    return command_data_adapter.validate_python(data)


def get_command_json_schema() -> dict:
    """
    Get the JSON schema for ``command_data``.

    Adds additionalProperties: false for strict validation.
    """
    schema = command_data_adapter.json_schema(by_alias=True)

    # Ensure additionalProperties is false for all objects
    def add_additional_properties_false(obj: dict) -> dict:
        if isinstance(obj, dict):
            if obj.get("type") == "object":
                obj["additionalProperties"] = False
            for value in obj.values():
                if isinstance(value, dict):
                    add_additional_properties_false(value)
                elif isinstance(value, list):
                    for item in value:
                        if isinstance(item, dict):
                            add_additional_properties_false(item)
        return obj

    schema = add_additional_properties_false(schema)

    # Handle $defs references
    if "$defs" in schema:
        for def_schema in schema["$defs"].values():
            add_additional_properties_false(def_schema)

    return schema
