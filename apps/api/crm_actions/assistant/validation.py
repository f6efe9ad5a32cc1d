from __future__ import annotations

import re
from collections.abc import Callable
from functools import partial
from typing import Any

from crm_actions.assistant.colors import is_valid_color
from crm_actions.assistant.commands import Command, ValidationResult


EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_NUMBER_STRIP_RE = re.compile(r"[,$\s]")

Rule = Callable[[dict[str, Any], list[str]], None]


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def is_valid_email(value: Any) -> bool:
    return isinstance(value, str) and EMAIL_RE.match(value.strip()) is not None


def coerce_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(_NUMBER_STRIP_RE.sub("", value))
        except ValueError:
            return None
    return None


def _require_text(key: str, label: str, params: dict[str, Any], errors: list[str]) -> None:
    if is_blank(params.get(key)):
        errors.append(f"{label} is required")


def _require_id_list(key: str, noun: str, params: dict[str, Any], errors: list[str]) -> None:
    value = params.get(key)
    if not isinstance(value, list) or not value:
        errors.append(f"{key} must be a non-empty list of {noun} IDs")
        return
    if any(not isinstance(item, str) or is_blank(item) for item in value):
        errors.append(f"{key} must contain only non-empty {noun} IDs")


def _require_object(key: str, params: dict[str, Any], errors: list[str]) -> None:
    value = params.get(key)
    if not isinstance(value, dict) or not value:
        errors.append(f"{key} must be a non-empty object of field changes")


def _require_number(key: str, label: str, params: dict[str, Any], errors: list[str]) -> None:
    value = params.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        errors.append(f"{label} is required")
    elif coerce_number(value) is None:
        errors.append(f"{label} must be a number")


def _optional_number(key: str, label: str, params: dict[str, Any], errors: list[str]) -> None:
    if key in params and params[key] is not None and coerce_number(params[key]) is None:
        errors.append(f"{label} must be a number")


def _require_stage_definitions(params: dict[str, Any], errors: list[str]) -> None:
    stages = params.get("stages")
    if not isinstance(stages, list) or not stages:
        errors.append("At least one stage is required")
        return
    for position, stage in enumerate(stages, start=1):
        name = stage.get("name") if isinstance(stage, dict) else stage
        if not isinstance(name, str) or is_blank(name):
            errors.append(f"Stage {position} name is required")
        if isinstance(stage, dict) and stage.get("color") is not None and not is_valid_color(stage.get("color")):
            errors.append(f"Invalid stage color: {stage.get('color')}")


def _require_stage_order(params: dict[str, Any], errors: list[str]) -> None:
    order = params.get("stageOrder")
    if not isinstance(order, list) or not order:
        errors.append("stageOrder must be a non-empty list of stage IDs")
        return
    if any(not isinstance(item, str) or is_blank(item) for item in order):
        errors.append("stageOrder must contain only non-empty stage IDs")
        return
    seen: set[str] = set()
    duplicates: list[str] = []
    for item in order:
        key = item.strip().lower()
        if key in seen and item not in duplicates:
            duplicates.append(item)
        seen.add(key)
    if duplicates:
        errors.append(f"stageOrder contains duplicate stages: {', '.join(duplicates)}")


def _require_recipients(params: dict[str, Any], errors: list[str]) -> None:
    value = params.get("to")
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or all(is_blank(item) for item in value):
        errors.append("Recipient (to) is required")


_ID = partial(_require_text, "id")

RULES: dict[str, list[Rule]] = {
    "create_contact": [
        partial(_require_text, "firstName", "First name"),
        partial(_require_text, "lastName", "Last name"),
    ],
    "update_contact": [partial(_ID, "Contact ID")],
    "delete_contact": [partial(_ID, "Contact ID")],
    "bulk_update_contacts": [partial(_require_id_list, "contactIds", "contact"), partial(_require_object, "updates")],
    "bulk_delete_contacts": [partial(_require_id_list, "contactIds", "contact")],
    "create_company": [partial(_require_text, "name", "Company name")],
    "update_company": [partial(_ID, "Company ID")],
    "delete_company": [partial(_ID, "Company ID")],
    "link_contact_to_company": [
        partial(_require_text, "contactId", "Contact ID"),
        partial(_require_text, "companyId", "Company ID"),
    ],
    "send_email": [
        _require_recipients,
        partial(_require_text, "subject", "Subject"),
        partial(_require_text, "body", "Body"),
    ],
    "send_bulk_email": [
        _require_recipients,
        partial(_require_text, "subject", "Subject"),
        partial(_require_text, "body", "Body"),
    ],
    "create_pipeline": [partial(_require_text, "name", "Pipeline name"), _require_stage_definitions],
    "update_pipeline": [partial(_ID, "Pipeline ID")],
    "delete_pipeline": [partial(_ID, "Pipeline ID")],
    "add_stage": [
        partial(_require_text, "pipelineId", "Pipeline ID"),
        partial(_require_text, "stageName", "Stage name"),
    ],
    "update_stage": [
        partial(_require_text, "pipelineId", "Pipeline ID"),
        partial(_require_text, "stageId", "Stage ID"),
    ],
    "delete_stage": [
        partial(_require_text, "pipelineId", "Pipeline ID"),
        partial(_require_text, "stageId", "Stage ID"),
    ],
    "reorder_stages": [partial(_require_text, "pipelineId", "Pipeline ID"), _require_stage_order],
    "set_default_pipeline": [partial(_require_text, "pipelineId", "Pipeline ID")],
    "create_opportunity": [
        partial(_require_text, "title", "Opportunity title"),
        partial(_require_number, "value", "Opportunity value"),
        partial(_require_text, "pipelineId", "Pipeline ID"),
        partial(_require_text, "stageId", "Stage ID"),
    ],
    "update_opportunity": [partial(_ID, "Opportunity ID"), partial(_optional_number, "value", "Opportunity value")],
    "move_opportunity": [partial(_ID, "Opportunity ID"), partial(_require_text, "stageId", "Stage ID")],
    "delete_opportunity": [partial(_ID, "Opportunity ID")],
    "bulk_update_opportunities": [
        partial(_require_id_list, "opportunityIds", "opportunity"),
        partial(_require_object, "updates"),
    ],
    "bulk_delete_opportunities": [partial(_require_id_list, "opportunityIds", "opportunity")],
}

_EMAIL_ACTIONS = {"send_email", "send_bulk_email"}
_COLOR_KEYS = ("stageColor", "color")


def _check_formats(command: Command, errors: list[str]) -> None:
    params = command.parameters

    email = params.get("email")
    if not is_blank(email) and not is_valid_email(email):
        errors.append(f"Invalid email format: {email}")

    updates = params.get("updates")
    if isinstance(updates, dict):
        update_email = updates.get("email")
        if not is_blank(update_email) and not is_valid_email(update_email):
            errors.append(f"Invalid email format: {update_email}")

    if command.type in _EMAIL_ACTIONS:
        recipients = params.get("to")
        if isinstance(recipients, str):
            recipients = [recipients]
        if isinstance(recipients, list):
            for recipient in recipients:
                if not is_blank(recipient) and not is_valid_email(recipient):
                    errors.append(f"Invalid recipient email: {recipient}")

    for key in _COLOR_KEYS:
        value = params.get(key)
        if not is_blank(value) and not is_valid_color(value):
            errors.append(f"Invalid stage color: {value}")


def validate_command(command: Command) -> ValidationResult:
    errors: list[str] = []
    for rule in RULES.get(command.type, []):
        rule(command.parameters, errors)
    _check_formats(command, errors)
    return ValidationResult.from_errors(errors)
