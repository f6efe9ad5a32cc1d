from crm_actions.assistant.commands import (
    ACTION_TYPES,
    DESTRUCTIVE_ACTIONS,
    ActionResult,
    BulkItemOutcome,
    Command,
    ValidationResult,
    requires_confirmation,
)
from crm_actions.assistant.executor import ActionExecutor, run_action_text
from crm_actions.assistant.parser import inspect_message, parse_action
from crm_actions.assistant.resolver import ReferenceResolver
from crm_actions.assistant.validation import validate_command

__all__ = [
    "ACTION_TYPES",
    "DESTRUCTIVE_ACTIONS",
    "ActionResult",
    "BulkItemOutcome",
    "Command",
    "ValidationResult",
    "requires_confirmation",
    "ActionExecutor",
    "run_action_text",
    "inspect_message",
    "parse_action",
    "ReferenceResolver",
    "validate_command",
]
