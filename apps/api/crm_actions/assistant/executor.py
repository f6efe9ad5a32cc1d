from __future__ import annotations

import asyncio
import copy
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from crm_actions.assistant import analytics
from crm_actions.assistant.bulk import run_bulk
from crm_actions.assistant.colors import normalize_color, palette_color
from crm_actions.assistant.commands import ActionResult, Command
from crm_actions.assistant.descriptions import pluralize
from crm_actions.assistant.exports import (
    ExportDocument,
    ExportSink,
    FileStoreExportSink,
    companies_to_csv,
    contacts_to_csv,
)
from crm_actions.assistant.parser import parse_action
from crm_actions.assistant.resolver import (
    PipelineStageRef,
    ReferenceResolver,
    ResolutionError,
    is_object_id,
    match_by_name,
    ordered_stages,
)
from crm_actions.assistant.validation import coerce_number, is_blank, validate_command
from crm_actions.crm.backends import CrmBackends, CrudResult, entity_id
from crm_actions.metrics import observe_action, observe_bulk_items


logger = logging.getLogger("crm_actions.assistant.executor")
tracer = trace.get_tracer("crm_actions.assistant.executor")

Handler = Callable[[str, dict[str, Any]], Awaitable[ActionResult]]

BACKEND_ERROR_TRANSLATIONS: list[tuple[str, str]] = [
    ("firstname", "The contact's first name is missing or invalid"),
    ("lastname", "The contact's last name is missing or invalid"),
    ("e11000", "A record with the same details already exists"),
    ("duplicate key", "A record with the same details already exists"),
    ("cast to objectid failed", "The referenced record ID is not valid"),
    ("more than 20 stages", "A pipeline can have at most 20 stages"),
    ("all stages must be included", "The new stage order must include every stage of the pipeline exactly once"),
]

SUPPORTED_EXPORT_FORMATS = {"CSV"}


def translate_backend_error(error: str | None) -> str:
    if not error:
        return "Unknown error occurred"
    lowered = error.lower()
    for needle, phrase in BACKEND_ERROR_TRANSLATIONS:
        if needle in lowered:
            return phrase
    return error


def _outcome(result: CrudResult, success_message: str, failure_message: str, data: Any = None) -> ActionResult:
    if result.success:
        return ActionResult.ok(success_message, result.data if data is None else data)
    return ActionResult.fail(failure_message, translate_backend_error(result.error))


def _as_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if isinstance(value, list):
        return [str(item).strip() for item in value if str(item).strip()]
    return []


class ActionExecutor:
    """Runs validated assistant commands against the CRM capability interface.

    Confirmation of destructive commands is the caller's job; a command that
    reaches ``execute`` is treated as approved.
    """

    def __init__(
        self,
        backends: CrmBackends,
        *,
        resolver: ReferenceResolver | None = None,
        export_sink: ExportSink | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.backends = backends
        self.resolver = resolver or ReferenceResolver(backends.pipelines)
        self.export_sink = export_sink or FileStoreExportSink()
        self.timeout_seconds = timeout_seconds
        self._handlers: dict[str, Handler] = {
            "create_contact": self._create_contact,
            "update_contact": self._update_contact,
            "delete_contact": self._delete_contact,
            "bulk_update_contacts": self._bulk_update_contacts,
            "bulk_delete_contacts": self._bulk_delete_contacts,
            "create_company": self._create_company,
            "update_company": self._update_company,
            "delete_company": self._delete_company,
            "link_contact_to_company": self._link_contact_to_company,
            "send_email": self._send_email,
            "send_bulk_email": self._send_bulk_email,
            "export_contacts": self._export_contacts,
            "export_companies": self._export_companies,
            "analyze_contacts": self._analyze_contacts,
            "get_contact_stats": self._get_contact_stats,
            "create_pipeline": self._create_pipeline,
            "update_pipeline": self._update_pipeline,
            "delete_pipeline": self._delete_pipeline,
            "add_stage": self._add_stage,
            "update_stage": self._update_stage,
            "delete_stage": self._delete_stage,
            "reorder_stages": self._reorder_stages,
            "set_default_pipeline": self._set_default_pipeline,
            "create_opportunity": self._create_opportunity,
            "update_opportunity": self._update_opportunity,
            "move_opportunity": self._move_opportunity,
            "delete_opportunity": self._delete_opportunity,
            "bulk_update_opportunities": self._bulk_update_opportunities,
            "bulk_delete_opportunities": self._bulk_delete_opportunities,
        }

    def supports(self, action_type: str) -> bool:
        return action_type in self._handlers

    async def execute(self, command: Command, workspace_id: str) -> ActionResult:
        started = time.perf_counter()
        with tracer.start_as_current_span("assistant.execute") as span:
            span.set_attribute("action_type", command.type)
            span.set_attribute("workspace_id", workspace_id)
            span.set_attribute("requires_confirmation", command.requires_confirmation)
            result = await self._execute(command, workspace_id)
            span.set_attribute("success", result.success)
            if not result.success:
                span.set_status(Status(StatusCode.ERROR, result.error or result.message))

        duration = time.perf_counter() - started
        observe_action(command.type, "success" if result.success else "failure", duration)
        logger.info(
            "assistant.action_executed",
            extra={
                "action_type": command.type,
                "success": result.success,
                "duration_ms": round(duration * 1000, 2),
                "error": result.error,
            },
        )
        return result

    async def _execute(self, command: Command, workspace_id: str) -> ActionResult:
        validation = validate_command(command)
        if not validation.valid:
            return ActionResult.fail("Invalid action parameters", "; ".join(validation.errors))

        handler = self._handlers.get(command.type)
        if handler is None:
            return ActionResult.fail(f"Unknown action type: {command.type}", "Action not implemented")

        params = copy.deepcopy(command.parameters)
        try:
            if self.timeout_seconds:
                return await asyncio.wait_for(handler(workspace_id, params), timeout=self.timeout_seconds)
            return await handler(workspace_id, params)
        except asyncio.TimeoutError:
            logger.warning("assistant.action_timeout", extra={"action_type": command.type})
            return ActionResult.fail(
                "Action timed out",
                f"The CRM did not respond within {self.timeout_seconds:g} seconds",
            )
        except Exception as exc:
            logger.exception("assistant.action_failed", extra={"action_type": command.type, "error": str(exc)})
            return ActionResult.fail("Failed to execute action", str(exc) or exc.__class__.__name__)

    async def _bulk(
        self,
        action_type: str,
        ids: list[str],
        operation: Callable[[str], Awaitable[CrudResult]],
        *,
        verb: str,
        singular: str,
        plural: str | None = None,
    ) -> ActionResult:
        result = await run_bulk(ids, operation, verb=verb, singular=singular, plural=plural)
        observe_bulk_items(action_type, result.data["successCount"], result.data["failCount"])
        return result

    # Contacts

    async def _create_contact(self, workspace_id: str, params: dict[str, Any]) -> ActionResult:
        result = await self.backends.contacts.create(workspace_id, params)
        name = f"{str(params.get('firstName', '')).strip()} {str(params.get('lastName', '')).strip()}".strip()
        return _outcome(result, f"✅ Contact created: {name}", "Failed to create contact")

    async def _update_contact(self, workspace_id: str, params: dict[str, Any]) -> ActionResult:
        contact_id = str(params.pop("id")).strip()
        if not params:
            return ActionResult.fail("Failed to update contact", "No fields to update were provided")
        result = await self.backends.contacts.update(workspace_id, contact_id, params)
        return _outcome(result, "✅ Contact updated successfully", "Failed to update contact")

    async def _delete_contact(self, workspace_id: str, params: dict[str, Any]) -> ActionResult:
        contact_id = str(params["id"]).strip()
        result = await self.backends.contacts.delete(workspace_id, contact_id)
        return _outcome(result, "✅ Contact deleted successfully", "Failed to delete contact", {"id": contact_id})

    async def _bulk_update_contacts(self, workspace_id: str, params: dict[str, Any]) -> ActionResult:
        updates = params["updates"]
        return await self._bulk(
            "bulk_update_contacts",
            _as_list(params["contactIds"]),
            lambda item_id: self.backends.contacts.update(workspace_id, item_id, dict(updates)),
            verb="Updated",
            singular="contact",
        )

    async def _bulk_delete_contacts(self, workspace_id: str, params: dict[str, Any]) -> ActionResult:
        return await self._bulk(
            "bulk_delete_contacts",
            _as_list(params["contactIds"]),
            lambda item_id: self.backends.contacts.delete(workspace_id, item_id),
            verb="Deleted",
            singular="contact",
        )

    # Companies

    async def _create_company(self, workspace_id: str, params: dict[str, Any]) -> ActionResult:
        result = await self.backends.companies.create(workspace_id, params)
        return _outcome(result, f"✅ Company created: {str(params['name']).strip()}", "Failed to create company")

    async def _update_company(self, workspace_id: str, params: dict[str, Any]) -> ActionResult:
        company_id = str(params.pop("id")).strip()
        if not params:
            return ActionResult.fail("Failed to update company", "No fields to update were provided")
        result = await self.backends.companies.update(workspace_id, company_id, params)
        return _outcome(result, "✅ Company updated successfully", "Failed to update company")

    async def _delete_company(self, workspace_id: str, params: dict[str, Any]) -> ActionResult:
        company_id = str(params["id"]).strip()
        result = await self.backends.companies.delete(workspace_id, company_id)
        return _outcome(result, "✅ Company deleted successfully", "Failed to delete company", {"id": company_id})

    async def _link_contact_to_company(self, workspace_id: str, params: dict[str, Any]) -> ActionResult:
        contact_id = str(params["contactId"]).strip()
        company_id = str(params["companyId"]).strip()
        result = await self.backends.contacts.update(workspace_id, contact_id, {"company": company_id})
        return _outcome(result, "✅ Contact linked to company successfully", "Failed to link contact to company")

    # Email

    async def _send_email(self, workspace_id: str, params: dict[str, Any]) -> ActionResult:
        email = self.backends.email
        if email is None:
            return ActionResult.fail("Email sending not yet implemented", "No email service is configured")
        recipients = _as_list(params["to"])
        if len(recipients) > 1:
            return await self._send_bulk_email(workspace_id, params)
        subject, body = str(params["subject"]), str(params["body"])
        result = await email.send(workspace_id, recipients[0], subject, body)
        return _outcome(result, f"✅ Email sent to {recipients[0]}", "Failed to send email")

    async def _send_bulk_email(self, workspace_id: str, params: dict[str, Any]) -> ActionResult:
        email = self.backends.email
        if email is None:
            return ActionResult.fail("Bulk email sending not yet implemented", "No email service is configured")
        subject, body = str(params["subject"]), str(params["body"])
        return await self._bulk(
            "send_bulk_email",
            _as_list(params["to"]),
            lambda recipient: email.send(workspace_id, recipient, subject, body),
            verb="Sent",
            singular="email",
        )

    # Exports and analytics

    async def _export(
        self,
        workspace_id: str,
        params: dict[str, Any],
        *,
        noun: str,
        singular: str,
        fetch: Callable[[str], Awaitable[CrudResult]],
        render: Callable[[list[dict[str, Any]]], str],
    ) -> ActionResult:
        export_format = str(params.get("format") or "CSV").strip().upper()
        if export_format not in SUPPORTED_EXPORT_FORMATS:
            return ActionResult.fail(
                f"Unsupported export format: {export_format}", "Only CSV format is currently supported"
            )

        result = await fetch(workspace_id)
        if not result.success or not isinstance(result.data, list):
            return ActionResult.fail(
                f"Failed to fetch {noun} for export", translate_backend_error(result.error)
            )

        rows = [item for item in result.data if isinstance(item, dict)]
        document = ExportDocument(filename=f"{noun}-export.csv", content=render(rows), row_count=len(rows))
        file_id = await asyncio.to_thread(self.export_sink.deliver, workspace_id, document)
        return ActionResult.ok(
            f"✅ Exported {pluralize(len(rows), singular, noun)} to CSV",
            {"count": len(rows), "fileId": file_id, "filename": document.filename},
        )

    async def _export_contacts(self, workspace_id: str, params: dict[str, Any]) -> ActionResult:
        return await self._export(
            workspace_id,
            params,
            noun="contacts",
            singular="contact",
            fetch=self.backends.contacts.list,
            render=contacts_to_csv,
        )

    async def _export_companies(self, workspace_id: str, params: dict[str, Any]) -> ActionResult:
        return await self._export(
            workspace_id,
            params,
            noun="companies",
            singular="company",
            fetch=self.backends.companies.list,
            render=companies_to_csv,
        )

    async def _list_contacts(self, workspace_id: str) -> list[dict[str, Any]] | str:
        result = await self.backends.contacts.list(workspace_id)
        if not result.success or not isinstance(result.data, list):
            return translate_backend_error(result.error)
        return [item for item in result.data if isinstance(item, dict)]

    async def _analyze_contacts(self, workspace_id: str, params: dict[str, Any]) -> ActionResult:
        contacts = await self._list_contacts(workspace_id)
        if isinstance(contacts, str):
            return ActionResult.fail("Failed to fetch contacts for analysis", contacts)
        return ActionResult.ok("✅ Contact analysis complete", analytics.analyze_contacts(contacts))

    async def _get_contact_stats(self, workspace_id: str, params: dict[str, Any]) -> ActionResult:
        contacts = await self._list_contacts(workspace_id)
        if isinstance(contacts, str):
            return ActionResult.fail("Failed to fetch contact statistics", contacts)
        return ActionResult.ok("✅ Contact statistics retrieved", analytics.contact_stats(contacts))

    # Pipelines and stages

    async def _create_pipeline(self, workspace_id: str, params: dict[str, Any]) -> ActionResult:
        stages: list[dict[str, Any]] = []
        for index, raw in enumerate(params.get("stages") or []):
            stage = dict(raw) if isinstance(raw, dict) else {"name": raw}
            stage["name"] = str(stage["name"]).strip()
            stage["color"] = normalize_color(stage.get("color")) or palette_color(index)
            stage.setdefault("order", index)
            stages.append(stage)
        payload = {**params, "name": str(params["name"]).strip(), "stages": stages}
        result = await self.backends.pipelines.create(workspace_id, payload)
        return _outcome(
            result,
            f"✅ Pipeline created: {payload['name']} ({pluralize(len(stages), 'stage')})",
            "Failed to create pipeline",
        )

    async def _update_pipeline(self, workspace_id: str, params: dict[str, Any]) -> ActionResult:
        ref = await self.resolver.resolve_pipeline(workspace_id, str(params.pop("id")))
        if isinstance(ref, ResolutionError):
            return ActionResult.fail("Failed to update pipeline", ref.error)
        patch = {key: value for key, value in params.items() if key != "stages"}
        if not patch:
            return ActionResult.fail("Failed to update pipeline", "No fields to update were provided")
        result = await self.backends.pipelines.update(workspace_id, ref.pipeline_id, patch)
        return _outcome(result, "✅ Pipeline updated successfully", "Failed to update pipeline")

    async def _delete_pipeline(self, workspace_id: str, params: dict[str, Any]) -> ActionResult:
        ref = await self.resolver.resolve_pipeline(workspace_id, str(params["id"]))
        if isinstance(ref, ResolutionError):
            return ActionResult.fail("Failed to delete pipeline", ref.error)
        result = await self.backends.pipelines.delete(workspace_id, ref.pipeline_id)
        return _outcome(
            result, "✅ Pipeline deleted successfully", "Failed to delete pipeline", {"id": ref.pipeline_id}
        )

    async def _add_stage(self, workspace_id: str, params: dict[str, Any]) -> ActionResult:
        pipeline_query = str(params["pipelineId"])
        color = normalize_color(params.get("stageColor"))
        if color is None:
            ref = await self.resolver.load_pipeline(workspace_id, pipeline_query)
        else:
            ref = await self.resolver.resolve_pipeline(workspace_id, pipeline_query)
        if isinstance(ref, ResolutionError):
            return ActionResult.fail("Failed to add stage", ref.error)
        if color is None:
            color = palette_color(len(ordered_stages(ref.pipeline or {})))

        stage_name = str(params["stageName"]).strip()
        stage: dict[str, Any] = {"name": stage_name, "color": color}
        order = coerce_number(params.get("order"))
        if order is not None:
            stage["order"] = int(order)
        result = await self.backends.pipelines.add_stage(workspace_id, ref.pipeline_id, stage)
        return _outcome(result, f'✅ Stage "{stage_name}" added to pipeline', "Failed to add stage")

    async def _update_stage(self, workspace_id: str, params: dict[str, Any]) -> ActionResult:
        ref = await self.resolver.resolve_pipeline_and_stage(
            workspace_id, str(params["pipelineId"]), str(params["stageId"]), fallback_to_first_stage=False
        )
        if isinstance(ref, ResolutionError):
            return ActionResult.fail("Failed to update stage", ref.error)

        patch: dict[str, Any] = {}
        name = params.get("name") or params.get("newName") or params.get("stageName")
        if name and str(name).strip():
            patch["name"] = str(name).strip()
        color = normalize_color(params.get("color") or params.get("stageColor"))
        if color is not None:
            patch["color"] = color
        order = coerce_number(params.get("order"))
        if order is not None:
            patch["order"] = int(order)
        if not patch:
            return ActionResult.fail("Failed to update stage", "No fields to update were provided")

        result = await self.backends.pipelines.update_stage(workspace_id, ref.pipeline_id, ref.stage_id, patch)
        return _outcome(result, "✅ Stage updated successfully", "Failed to update stage")

    async def _delete_stage(self, workspace_id: str, params: dict[str, Any]) -> ActionResult:
        ref = await self.resolver.resolve_pipeline_and_stage(
            workspace_id, str(params["pipelineId"]), str(params["stageId"]), fallback_to_first_stage=False
        )
        if isinstance(ref, ResolutionError):
            return ActionResult.fail("Failed to delete stage", ref.error)
        result = await self.backends.pipelines.delete_stage(workspace_id, ref.pipeline_id, ref.stage_id)
        return _outcome(result, "✅ Stage deleted successfully", "Failed to delete stage")

    async def _reorder_stages(self, workspace_id: str, params: dict[str, Any]) -> ActionResult:
        ref = await self.resolver.load_pipeline(workspace_id, str(params["pipelineId"]))
        if isinstance(ref, ResolutionError):
            return ActionResult.fail("Failed to reorder stages", ref.error)

        stages = ordered_stages(ref.pipeline or {})
        by_id = {entity_id(stage): stage for stage in stages}
        ordered_ids: list[str] = []
        unknown: list[str] = []
        for entry in _as_list(params["stageOrder"]):
            stage = by_id.get(entry) if is_object_id(entry) else None
            if stage is None:
                stage = match_by_name(stages, entry)
            if stage is None:
                unknown.append(entry)
                continue
            ordered_ids.append(str(entity_id(stage)))

        if unknown:
            return ActionResult.fail("Failed to reorder stages", f"Unknown stages in stageOrder: {', '.join(unknown)}")
        repeated = sorted({str(by_id[item].get("name")) for item in ordered_ids if ordered_ids.count(item) > 1})
        if repeated:
            return ActionResult.fail(
                "Failed to reorder stages", f"stageOrder lists a stage more than once: {', '.join(repeated)}"
            )
        missing = [stage.get("name") for stage in stages if entity_id(stage) not in ordered_ids]
        if missing:
            return ActionResult.fail(
                "Failed to reorder stages", f"stageOrder is missing stages: {', '.join(str(name) for name in missing)}"
            )

        result = await self.backends.pipelines.reorder_stages(workspace_id, ref.pipeline_id, ordered_ids)
        arrow = " → ".join(str(by_id[item].get("name")) for item in ordered_ids)
        return _outcome(result, f"✅ Stages reordered: {arrow}", "Failed to reorder stages")

    async def _set_default_pipeline(self, workspace_id: str, params: dict[str, Any]) -> ActionResult:
        ref = await self.resolver.resolve_pipeline(workspace_id, str(params["pipelineId"]))
        if isinstance(ref, ResolutionError):
            return ActionResult.fail("Failed to set default pipeline", ref.error)
        result = await self.backends.pipelines.update(workspace_id, ref.pipeline_id, {"isDefault": True})
        return _outcome(result, "✅ Default pipeline updated", "Failed to set default pipeline")

    # Opportunities

    async def _resolve_placement(
        self, workspace_id: str, stage: str, pipeline: str | None
    ) -> PipelineStageRef | ResolutionError:
        if pipeline:
            return await self.resolver.resolve_pipeline_and_stage(workspace_id, pipeline, stage)
        if is_object_id(stage):
            return PipelineStageRef(pipeline_id="", stage_id=stage.strip())
        return ResolutionError(f'Stage "{stage}" cannot be resolved without a pipelineId')

    async def _resolve_placement_fields(
        self, workspace_id: str, fields: dict[str, Any]
    ) -> dict[str, Any] | ResolutionError:
        """Rewrite name references in ``fields["pipelineId"]``/``fields["stageId"]`` to IDs in place."""
        stage = fields.get("stageId")
        pipeline = fields.get("pipelineId")
        if not is_blank(stage):
            ref = await self._resolve_placement(workspace_id, str(stage), None if is_blank(pipeline) else str(pipeline))
            if isinstance(ref, ResolutionError):
                return ref
            fields["stageId"] = ref.stage_id
            if ref.pipeline_id:
                fields["pipelineId"] = ref.pipeline_id
        elif not is_blank(pipeline):
            pipeline_ref = await self.resolver.resolve_pipeline(workspace_id, str(pipeline))
            if isinstance(pipeline_ref, ResolutionError):
                return pipeline_ref
            fields["pipelineId"] = pipeline_ref.pipeline_id
        return fields

    async def _create_opportunity(self, workspace_id: str, params: dict[str, Any]) -> ActionResult:
        ref = await self.resolver.resolve_pipeline_and_stage(
            workspace_id, str(params["pipelineId"]), str(params["stageId"])
        )
        if isinstance(ref, ResolutionError):
            return ActionResult.fail("Failed to create opportunity", ref.error)
        payload = {
            **params,
            "title": str(params["title"]).strip(),
            "value": coerce_number(params["value"]),
            "pipelineId": ref.pipeline_id,
            "stageId": ref.stage_id,
        }
        result = await self.backends.opportunities.create(workspace_id, payload)
        return _outcome(result, f"✅ Opportunity created: {payload['title']}", "Failed to create opportunity")

    async def _update_opportunity(self, workspace_id: str, params: dict[str, Any]) -> ActionResult:
        opportunity_id = str(params.pop("id")).strip()
        if "value" in params and params["value"] is not None:
            params["value"] = coerce_number(params["value"])
        placement = await self._resolve_placement_fields(workspace_id, params)
        if isinstance(placement, ResolutionError):
            return ActionResult.fail("Failed to update opportunity", placement.error)
        if not params:
            return ActionResult.fail("Failed to update opportunity", "No fields to update were provided")
        result = await self.backends.opportunities.update(workspace_id, opportunity_id, params)
        return _outcome(result, "✅ Opportunity updated successfully", "Failed to update opportunity")

    async def _move_opportunity(self, workspace_id: str, params: dict[str, Any]) -> ActionResult:
        opportunity_id = str(params["id"]).strip()
        pipeline = params.get("pipelineId")
        ref = await self._resolve_placement(workspace_id, str(params["stageId"]), str(pipeline) if pipeline else None)
        if isinstance(ref, ResolutionError):
            return ActionResult.fail("Failed to move opportunity", ref.error)
        result = await self.backends.opportunities.move(
            workspace_id, opportunity_id, ref.stage_id, ref.pipeline_id or None
        )
        return _outcome(result, "✅ Opportunity moved successfully", "Failed to move opportunity")

    async def _delete_opportunity(self, workspace_id: str, params: dict[str, Any]) -> ActionResult:
        opportunity_id = str(params["id"]).strip()
        result = await self.backends.opportunities.delete(workspace_id, opportunity_id)
        return _outcome(
            result, "✅ Opportunity deleted successfully", "Failed to delete opportunity", {"id": opportunity_id}
        )

    async def _bulk_update_opportunities(self, workspace_id: str, params: dict[str, Any]) -> ActionResult:
        updates = dict(params["updates"])
        if "value" in updates and updates["value"] is not None:
            updates["value"] = coerce_number(updates["value"])
        placement = await self._resolve_placement_fields(workspace_id, updates)
        if isinstance(placement, ResolutionError):
            return ActionResult.fail("Failed to update opportunities", placement.error)
        return await self._bulk(
            "bulk_update_opportunities",
            _as_list(params["opportunityIds"]),
            lambda item_id: self.backends.opportunities.update(workspace_id, item_id, dict(updates)),
            verb="Updated",
            singular="opportunity",
            plural="opportunities",
        )

    async def _bulk_delete_opportunities(self, workspace_id: str, params: dict[str, Any]) -> ActionResult:
        return await self._bulk(
            "bulk_delete_opportunities",
            _as_list(params["opportunityIds"]),
            lambda item_id: self.backends.opportunities.delete(workspace_id, item_id),
            verb="Deleted",
            singular="opportunity",
            plural="opportunities",
        )


async def run_action_text(text: str, workspace_id: str, executor: ActionExecutor) -> ActionResult | None:
    """Parse the first action block in ``text`` and execute it; ``None`` when there is nothing to run."""
    command = parse_action(text)
    if command is None:
        return None
    return await executor.execute(command, workspace_id)
