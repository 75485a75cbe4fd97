"""
Deterministic assistant engine for project task management.

This package contains the components that work together to answer
questions about a project and to plan task changes from free text.
"""
from taskassist.agents.assistant import (
    AssistantReply,
    ProjectAssistant,
    answer_question,
    generate_command_plan,
)
from taskassist.agents.command_planner import CommandPlanner
from taskassist.agents.command_schema import CommandPlan, CommandType
from taskassist.agents.config import AgentConfig, agent_config
from taskassist.agents.conversation_context import ConversationContextTracker
from taskassist.agents.entity_extractor import EntityExtractor
from taskassist.agents.entity_schema import AssigneeSentinel, ExtractedEntities
from taskassist.agents.exceptions import (
    AssistantException,
    FallbackUnavailableError,
    MissingCommandFieldError,
    TaskNotFoundError,
    UnresolvedReferenceError,
)
from taskassist.agents.intent_classifier import Intent, IntentClassifier, IntentType
from taskassist.agents.question_answering import QuestionAnsweringEngine
from taskassist.agents.snapshot import ProjectContextSnapshot

__all__ = [
    # Configuration
    "AgentConfig",
    "agent_config",
    # Exceptions
    "AssistantException",
    "UnresolvedReferenceError",
    "TaskNotFoundError",
    "MissingCommandFieldError",
    "FallbackUnavailableError",
    # Extraction and context
    "EntityExtractor",
    "ExtractedEntities",
    "AssigneeSentinel",
    "ConversationContextTracker",
    "ProjectContextSnapshot",
    # Classification
    "IntentClassifier",
    "Intent",
    "IntentType",
    # Answers and plans
    "QuestionAnsweringEngine",
    "CommandPlanner",
    "CommandPlan",
    "CommandType",
    # Entry points
    "ProjectAssistant",
    "AssistantReply",
    "answer_question",
    "generate_command_plan",
]
