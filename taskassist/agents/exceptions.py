"""
Custom exceptions for the assistant engine.

These never cross the public entry points: the planner turns them into
``unresolved`` plans and the facade degrades them into help text.
"""
from typing import Optional, List, Dict, Any


class AssistantException(Exception):
    """Base exception for all assistant errors."""

    def __init__(
            self,
            message: str,
            component: str,
            recoverable: bool = False,
            details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.component = component
        self.recoverable = recoverable
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "component": self.component,
            "recoverable": self.recoverable,
            "details": self.details
        }


class UnresolvedReferenceError(AssistantException):
    """Raised when a pronoun cannot be mapped to concrete tasks."""

    def __init__(self, pronoun: Optional[str] = None, pool_size: int = 0):
        super().__init__(
            message="Could you please specify which task you mean? For example: \"Move #42 to done\".",
            component="conversation_context",
            recoverable=True,
            details={
                "pronoun": pronoun,
                "pool_size": pool_size,
                "suggestion": "Reference tasks by ID (#123) or list them first",
            }
        )


class TaskNotFoundError(AssistantException):
    """Raised when a referenced task ID is not part of the project."""

    def __init__(self, task_id: int):
        super().__init__(
            message=f"Task #{task_id} was not found in this project.",
            component="snapshot",
            recoverable=True,
            details={
                "task_id": task_id,
                "suggestion": "List the project's tasks to see valid IDs",
            }
        )


class MissingCommandFieldError(AssistantException):
    """Raised when a command is recognized but a required field is absent."""

    def __init__(self, command_type: str, field_name: str, hint: str):
        super().__init__(
            message=hint,
            component="command_planner",
            recoverable=True,
            details={
                "command_type": command_type,
                "field": field_name,
            }
        )


class FallbackUnavailableError(AssistantException):
    """Raised when the LLM fallback is not configured or fails."""

    def __init__(self, reason: str, errors: Optional[List[str]] = None):
        super().__init__(
            message=f"LLM fallback unavailable: {reason}",
            component="llm_fallback",
            recoverable=True,
            details={
                "reason": reason,
                "errors": errors or [],
            }
        )
