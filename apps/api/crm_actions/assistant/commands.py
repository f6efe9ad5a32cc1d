from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from crm_actions.assistant.descriptions import describe


CONTACT_ACTIONS = (
    "create_contact",
    "update_contact",
    "delete_contact",
    "bulk_update_contacts",
    "bulk_delete_contacts",
)
COMPANY_ACTIONS = (
    "create_company",
    "update_company",
    "delete_company",
    "link_contact_to_company",
)
EMAIL_ACTIONS = ("send_email", "send_bulk_email")
EXPORT_ACTIONS = ("export_contacts", "export_companies")
ANALYTICS_ACTIONS = ("analyze_contacts", "get_contact_stats")
PIPELINE_ACTIONS = (
    "create_pipeline",
    "update_pipeline",
    "delete_pipeline",
    "add_stage",
    "update_stage",
    "delete_stage",
    "reorder_stages",
    "set_default_pipeline",
)
OPPORTUNITY_ACTIONS = (
    "create_opportunity",
    "update_opportunity",
    "move_opportunity",
    "delete_opportunity",
    "bulk_update_opportunities",
    "bulk_delete_opportunities",
)

ACTION_TYPES: frozenset[str] = frozenset(
    CONTACT_ACTIONS
    + COMPANY_ACTIONS
    + EMAIL_ACTIONS
    + EXPORT_ACTIONS
    + ANALYTICS_ACTIONS
    + PIPELINE_ACTIONS
    + OPPORTUNITY_ACTIONS
)

DESTRUCTIVE_ACTIONS: frozenset[str] = frozenset(
    {
        "delete_contact",
        "bulk_delete_contacts",
        "delete_company",
        "delete_pipeline",
        "delete_stage",
        "delete_opportunity",
        "bulk_delete_opportunities",
    }
)


def requires_confirmation(action_type: str) -> bool:
    return action_type in DESTRUCTIVE_ACTIONS


def is_known_action(action_type: str) -> bool:
    return action_type in ACTION_TYPES


class Command(BaseModel):
    """A single parsed assistant action.

    ``requires_confirmation`` and ``description`` are always derived from
    ``type`` and ``parameters``; values supplied by the caller are ignored.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: str = Field(min_length=1)
    parameters: dict[str, Any] = Field(default_factory=dict)
    requires_confirmation: bool = Field(default=False, alias="requiresConfirmation")
    description: str = ""

    @model_validator(mode="before")
    @classmethod
    def derive_flags(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        action_type = value.get("type")
        parameters = value.get("parameters")
        if parameters is None:
            parameters = {}
        derived = {key: item for key, item in value.items() if key not in {"requiresConfirmation", "description"}}
        derived["parameters"] = parameters
        if isinstance(action_type, str):
            derived["requires_confirmation"] = requires_confirmation(action_type)
            if isinstance(parameters, dict):
                derived["description"] = describe(action_type, parameters)
        return derived


class ValidationResult(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)

    @classmethod
    def from_errors(cls, errors: list[str]) -> "ValidationResult":
        return cls(valid=not errors, errors=list(errors))


class BulkItemOutcome(BaseModel):
    id: str
    success: bool
    error: str | None = None


class ActionResult(BaseModel):
    success: bool
    message: str
    data: Any = None
    error: str | None = None
    items: list[BulkItemOutcome] | None = None

    @classmethod
    def ok(cls, message: str, data: Any = None) -> "ActionResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, message: str, error: str | None = None) -> "ActionResult":
        return cls(success=False, message=message, error=error)
