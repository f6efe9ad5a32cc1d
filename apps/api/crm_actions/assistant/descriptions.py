from __future__ import annotations

from collections.abc import Callable
from typing import Any


def pluralize(count: int, singular: str, plural: str | None = None) -> str:
    word = singular if count == 1 else (plural or f"{singular}s")
    return f"{count} {word}"


def _count(params: dict[str, Any], key: str) -> int:
    value = params.get(key)
    if isinstance(value, (list, tuple)):
        return len(value)
    if value:
        return 1
    return 0


def _text(params: dict[str, Any], key: str, default: str = "") -> str:
    value = params.get(key)
    if value is None:
        return default
    if isinstance(value, (list, tuple)):
        return ", ".join(str(item).strip() for item in value if str(item).strip()) or default
    return str(value).strip() or default


def _full_name(params: dict[str, Any]) -> str:
    name = f"{_text(params, 'firstName')} {_text(params, 'lastName')}".strip()
    return name or "new contact"


def _value(params: dict[str, Any]) -> str:
    value = params.get("value")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return f" (${value:,.0f})"
    return ""


_DESCRIBERS: dict[str, Callable[[dict[str, Any]], str]] = {
    "create_contact": lambda p: f"Create contact: {_full_name(p)}",
    "update_contact": lambda p: f"Update contact {_text(p, 'id', '(unknown)')}",
    "delete_contact": lambda p: f"Delete contact {_text(p, 'id', '(unknown)')}",
    "bulk_update_contacts": lambda p: f"Update {pluralize(_count(p, 'contactIds'), 'contact')}",
    "bulk_delete_contacts": lambda p: f"Delete {pluralize(_count(p, 'contactIds'), 'contact')}",
    "create_company": lambda p: f"Create company: {_text(p, 'name', 'new company')}",
    "update_company": lambda p: f"Update company {_text(p, 'id', '(unknown)')}",
    "delete_company": lambda p: f"Delete company {_text(p, 'id', '(unknown)')}",
    "link_contact_to_company": lambda p: (
        f"Link contact {_text(p, 'contactId', '(unknown)')} to company {_text(p, 'companyId', '(unknown)')}"
    ),
    "send_email": lambda p: f"Send email to {_text(p, 'to', '(no recipient)')}: {_text(p, 'subject', '(no subject)')}",
    "send_bulk_email": lambda p: f"Send email to {pluralize(_count(p, 'to'), 'recipient')}",
    "export_contacts": lambda p: f"Export contacts to {_text(p, 'format', 'CSV').upper()}",
    "export_companies": lambda p: f"Export companies to {_text(p, 'format', 'CSV').upper()}",
    "analyze_contacts": lambda p: "Analyze contacts",
    "get_contact_stats": lambda p: "Get contact statistics",
    "create_pipeline": lambda p: (
        f"Create pipeline: {_text(p, 'name', 'new pipeline')} with {pluralize(_count(p, 'stages'), 'stage')}"
    ),
    "update_pipeline": lambda p: f"Update pipeline {_text(p, 'id', '(unknown)')}",
    "delete_pipeline": lambda p: f"Delete pipeline {_text(p, 'id', '(unknown)')}",
    "add_stage": lambda p: (
        f"Add stage \"{_text(p, 'stageName', 'new stage')}\" to pipeline {_text(p, 'pipelineId', '(unknown)')}"
    ),
    "update_stage": lambda p: f"Update stage {_text(p, 'stageId', '(unknown)')} in pipeline {_text(p, 'pipelineId', '(unknown)')}",
    "delete_stage": lambda p: f"Delete stage {_text(p, 'stageId', '(unknown)')} from pipeline {_text(p, 'pipelineId', '(unknown)')}",
    "reorder_stages": lambda p: (
        f"Reorder {pluralize(_count(p, 'stageOrder'), 'stage')} in pipeline {_text(p, 'pipelineId', '(unknown)')}"
    ),
    "set_default_pipeline": lambda p: f"Set default pipeline: {_text(p, 'pipelineId', '(unknown)')}",
    "create_opportunity": lambda p: f"Create opportunity: {_text(p, 'title', 'new opportunity')}{_value(p)}",
    "update_opportunity": lambda p: f"Update opportunity {_text(p, 'id', '(unknown)')}",
    "move_opportunity": lambda p: f"Move opportunity {_text(p, 'id', '(unknown)')} to stage {_text(p, 'stageId', '(unknown)')}",
    "delete_opportunity": lambda p: f"Delete opportunity {_text(p, 'id', '(unknown)')}",
    "bulk_update_opportunities": lambda p: (
        f"Update {pluralize(_count(p, 'opportunityIds'), 'opportunity', 'opportunities')}"
    ),
    "bulk_delete_opportunities": lambda p: (
        f"Delete {pluralize(_count(p, 'opportunityIds'), 'opportunity', 'opportunities')}"
    ),
}


def describe(action_type: str, params: dict[str, Any]) -> str:
    describer = _DESCRIBERS.get(action_type)
    if describer is None:
        return f"Execute: {action_type.replace('_', ' ')}"
    return describer(params)
