from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import pytest

from crm_actions.assistant.commands import Command
from crm_actions.assistant.executor import ActionExecutor, run_action_text, translate_backend_error
from crm_actions.assistant.exports import ExportDocument
from crm_actions.crm.backends import CrudResult
from crm_actions.crm.memory import InMemoryCrmStore


WORKSPACE_ID = "ws-executor"


class RecordingSink:
    def __init__(self) -> None:
        self.documents: list[tuple[str, ExportDocument]] = []

    def deliver(self, workspace_id: str, document: ExportDocument) -> str:
        self.documents.append((workspace_id, document))
        return f"file-{len(self.documents)}"


class RecordingBackend:
    """Delegates to a real backend while recording every call made through it."""

    def __init__(self, inner: Any) -> None:
        self.inner = inner
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    def __getattr__(self, name: str) -> Any:
        target = getattr(self.inner, name)

        async def recorded(*args: Any) -> Any:
            self.calls.append((name, args))
            return await target(*args)

        return recorded


class FlakyContacts:
    def __init__(self, failing: set[str]) -> None:
        self.failing = failing
        self.deleted: list[str] = []

    async def delete(self, workspace_id: str, entity_id: str) -> CrudResult:
        self.deleted.append(entity_id)
        await asyncio.sleep(0)
        if entity_id in self.failing:
            return CrudResult.fail("Contact not found.")
        return CrudResult.ok()


class SlowContacts:
    async def create(self, workspace_id: str, fields: dict[str, Any]) -> CrudResult:
        await asyncio.sleep(1)
        return CrudResult.ok(fields)


class ExplodingContacts:
    async def create(self, workspace_id: str, fields: dict[str, Any]) -> CrudResult:
        raise RuntimeError("database unavailable")


def _text(action: str, params: dict[str, Any]) -> str:
    return f"On it.\n```action\n{json.dumps({'action': action, 'params': params})}\n```"


def _command(action: str, params: dict[str, Any]) -> Command:
    return Command(type=action, parameters=params)


@pytest.fixture()
def store() -> InMemoryCrmStore:
    return InMemoryCrmStore()


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def executor(store: InMemoryCrmStore, sink: RecordingSink) -> ActionExecutor:
    return ActionExecutor(store.backends(), export_sink=sink)


async def _pipeline(store: InMemoryCrmStore, name: str, stages: list[str]) -> dict[str, Any]:
    result = await store.pipelines.create(WORKSPACE_ID, {"name": name, "stages": [{"name": item} for item in stages]})
    assert result.success
    return result.data


def _stage_id(pipeline: dict[str, Any], name: str) -> str:
    return next(stage["_id"] for stage in pipeline["stages"] if stage["name"] == name)


def _stored_pipeline(store: InMemoryCrmStore, pipeline_id: str) -> dict[str, Any]:
    return store.rows(WORKSPACE_ID, "pipelines")[pipeline_id]


@pytest.mark.asyncio
async def test_create_contact_from_assistant_text(executor: ActionExecutor, store: InMemoryCrmStore) -> None:
    text = _text("create_contact", {"firstName": "John", "lastName": "Doe", "email": "john@example.com"})

    result = await run_action_text(text, WORKSPACE_ID, executor)

    assert result is not None
    assert result.success is True
    assert "John Doe" in result.message
    assert result.data["email"] == "john@example.com"
    assert len(store.rows(WORKSPACE_ID, "contacts")) == 1


@pytest.mark.asyncio
async def test_invalid_parameters_never_reach_backend(store: InMemoryCrmStore, sink: RecordingSink) -> None:
    contacts = RecordingBackend(store.contacts)
    backends = store.backends()
    backends.contacts = contacts
    executor = ActionExecutor(backends, export_sink=sink)

    result = await run_action_text(_text("delete_contact", {}), WORKSPACE_ID, executor)

    assert result is not None
    assert result.success is False
    assert result.message == "Invalid action parameters"
    assert result.error == "Contact ID is required"
    assert contacts.calls == []


@pytest.mark.asyncio
async def test_bulk_delete_reports_partial_failure(store: InMemoryCrmStore, sink: RecordingSink) -> None:
    contacts = FlakyContacts({"b"})
    backends = store.backends()
    backends.contacts = contacts  # type: ignore[assignment]
    executor = ActionExecutor(backends, export_sink=sink)

    result = await run_action_text(_text("bulk_delete_contacts", {"contactIds": ["a", "b", "c"]}), WORKSPACE_ID, executor)

    assert result is not None
    assert result.success is False
    assert result.data == {"successCount": 2, "failCount": 1}
    assert result.message == "Deleted 2 contacts, 1 failed"
    assert sorted(contacts.deleted) == ["a", "b", "c"]
    assert [(item.id, item.success) for item in result.items or []] == [("a", True), ("b", False), ("c", True)]


@pytest.mark.asyncio
async def test_add_stage_normalizes_color_and_resolves_pipeline_name(
    store: InMemoryCrmStore, sink: RecordingSink
) -> None:
    pipeline = await _pipeline(store, "Sales", ["Lead", "Won"])
    pipelines = RecordingBackend(store.pipelines)
    backends = store.backends()
    backends.pipelines = pipelines
    executor = ActionExecutor(backends, export_sink=sink)

    result = await run_action_text(
        _text("add_stage", {"pipelineId": "Sales", "stageName": "Demo", "stageColor": "red"}), WORKSPACE_ID, executor
    )

    assert result is not None
    assert result.success is True
    assert result.message == '✅ Stage "Demo" added to pipeline'
    add_stage_calls = [args for name, args in pipelines.calls if name == "add_stage"]
    assert add_stage_calls == [(WORKSPACE_ID, pipeline["_id"], {"name": "Demo", "color": "#EF4444"})]


@pytest.mark.asyncio
async def test_text_without_action_block_runs_nothing(executor: ActionExecutor) -> None:
    assert await run_action_text("Your pipeline looks healthy.", WORKSPACE_ID, executor) is None


@pytest.mark.asyncio
async def test_unknown_action_type_is_not_implemented(executor: ActionExecutor) -> None:
    result = await executor.execute(_command("launch_rocket", {}), WORKSPACE_ID)

    assert result.success is False
    assert result.message == "Unknown action type: launch_rocket"
    assert result.error == "Action not implemented"


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_failed_result(store: InMemoryCrmStore, sink: RecordingSink) -> None:
    backends = store.backends()
    backends.contacts = ExplodingContacts()  # type: ignore[assignment]
    executor = ActionExecutor(backends, export_sink=sink)

    result = await executor.execute(_command("create_contact", {"firstName": "A", "lastName": "B"}), WORKSPACE_ID)

    assert result.success is False
    assert result.message == "Failed to execute action"
    assert result.error == "database unavailable"


@pytest.mark.asyncio
async def test_slow_backend_times_out(store: InMemoryCrmStore, sink: RecordingSink) -> None:
    backends = store.backends()
    backends.contacts = SlowContacts()  # type: ignore[assignment]
    executor = ActionExecutor(backends, export_sink=sink, timeout_seconds=0.01)

    result = await executor.execute(_command("create_contact", {"firstName": "A", "lastName": "B"}), WORKSPACE_ID)

    assert result.success is False
    assert result.message == "Action timed out"
    assert result.error == "The CRM did not respond within 0.01 seconds"


@pytest.mark.asyncio
async def test_execution_is_logged(executor: ActionExecutor, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    await executor.execute(_command("get_contact_stats", {}), WORKSPACE_ID)

    records = [record for record in caplog.records if record.getMessage() == "assistant.action_executed"]
    assert records
    assert getattr(records[-1], "action_type", None) == "get_contact_stats"
    assert getattr(records[-1], "success", None) is True


@pytest.mark.asyncio
async def test_update_contact_translates_backend_validation_error(
    executor: ActionExecutor, store: InMemoryCrmStore
) -> None:
    created = await store.contacts.create(WORKSPACE_ID, {"firstName": "Jane", "lastName": "Roe"})

    result = await executor.execute(
        _command("update_contact", {"id": created.data["_id"], "firstName": ""}), WORKSPACE_ID
    )

    assert result.success is False
    assert result.message == "Failed to update contact"
    assert result.error == "The contact's first name is missing or invalid"
    assert result.data is None


@pytest.mark.asyncio
async def test_update_contact_requires_changes(executor: ActionExecutor) -> None:
    result = await executor.execute(_command("update_contact", {"id": "c1"}), WORKSPACE_ID)

    assert result.success is False
    assert result.error == "No fields to update were provided"


@pytest.mark.asyncio
async def test_delete_contact_returns_deleted_id(executor: ActionExecutor, store: InMemoryCrmStore) -> None:
    created = await store.contacts.create(WORKSPACE_ID, {"firstName": "Jane", "lastName": "Roe"})

    result = await executor.execute(_command("delete_contact", {"id": created.data["_id"]}), WORKSPACE_ID)

    assert result.success is True
    assert result.data == {"id": created.data["_id"]}
    assert store.rows(WORKSPACE_ID, "contacts") == {}


@pytest.mark.asyncio
async def test_bulk_update_contacts_applies_same_patch(executor: ActionExecutor, store: InMemoryCrmStore) -> None:
    first = await store.contacts.create(WORKSPACE_ID, {"firstName": "A", "lastName": "One"})
    second = await store.contacts.create(WORKSPACE_ID, {"firstName": "B", "lastName": "Two"})

    result = await executor.execute(
        _command(
            "bulk_update_contacts",
            {"contactIds": [first.data["_id"], second.data["_id"]], "updates": {"status": "customer"}},
        ),
        WORKSPACE_ID,
    )

    assert result.success is True
    assert result.message == "Updated 2 contacts"
    assert {row["status"] for row in store.rows(WORKSPACE_ID, "contacts").values()} == {"customer"}


@pytest.mark.asyncio
async def test_link_contact_to_company(executor: ActionExecutor, store: InMemoryCrmStore) -> None:
    contact = await store.contacts.create(WORKSPACE_ID, {"firstName": "Jane", "lastName": "Roe"})
    company = await executor.execute(_command("create_company", {"name": "Acme"}), WORKSPACE_ID)
    assert company.message == "✅ Company created: Acme"

    result = await executor.execute(
        _command("link_contact_to_company", {"contactId": contact.data["_id"], "companyId": company.data["_id"]}),
        WORKSPACE_ID,
    )

    assert result.success is True
    assert result.data["company"] == {"_id": company.data["_id"], "name": "Acme"}


@pytest.mark.asyncio
async def test_send_email_uses_email_backend(executor: ActionExecutor, store: InMemoryCrmStore) -> None:
    single = await executor.execute(
        _command("send_email", {"to": "jane@example.com", "subject": "Hello", "body": "Hi Jane"}), WORKSPACE_ID
    )
    bulk = await executor.execute(
        _command("send_bulk_email", {"to": ["a@example.com", "b@example.com"], "subject": "News", "body": "..."}),
        WORKSPACE_ID,
    )

    assert single.message == "✅ Email sent to jane@example.com"
    assert bulk.message == "Sent 2 emails"
    assert [message["to"] for message in store.email.outbox] == ["jane@example.com", "a@example.com", "b@example.com"]


@pytest.mark.asyncio
async def test_send_email_without_email_backend(store: InMemoryCrmStore, sink: RecordingSink) -> None:
    backends = store.backends()
    backends.email = None
    executor = ActionExecutor(backends, export_sink=sink)

    result = await executor.execute(
        _command("send_email", {"to": "jane@example.com", "subject": "Hello", "body": "Hi"}), WORKSPACE_ID
    )

    assert result.success is False
    assert result.message == "Email sending not yet implemented"


@pytest.mark.asyncio
async def test_export_contacts_delivers_csv(
    executor: ActionExecutor, store: InMemoryCrmStore, sink: RecordingSink
) -> None:
    company = await store.companies.create(WORKSPACE_ID, {"name": "Acme"})
    await store.contacts.create(
        WORKSPACE_ID,
        {"firstName": "Jane", "lastName": "Roe", "email": "jane@acme.io", "company": company.data["_id"], "status": "lead"},
    )

    result = await executor.execute(_command("export_contacts", {}), WORKSPACE_ID)

    assert result.success is True
    assert result.message == "✅ Exported 1 contact to CSV"
    assert result.data == {"count": 1, "fileId": "file-1", "filename": "contacts-export.csv"}
    workspace_id, document = sink.documents[0]
    assert workspace_id == WORKSPACE_ID
    lines = document.content.splitlines()
    assert lines[0] == '"First Name","Last Name","Email","Phone","Company","Job Title","Status","Source"'
    assert lines[1] == '"Jane","Roe","jane@acme.io","","Acme","","lead",""'


@pytest.mark.asyncio
async def test_export_rejects_unsupported_format(executor: ActionExecutor, sink: RecordingSink) -> None:
    result = await executor.execute(_command("export_companies", {"format": "pdf"}), WORKSPACE_ID)

    assert result.success is False
    assert result.message == "Unsupported export format: PDF"
    assert sink.documents == []


@pytest.mark.asyncio
async def test_contact_analytics(executor: ActionExecutor, store: InMemoryCrmStore) -> None:
    await store.contacts.create(
        WORKSPACE_ID, {"firstName": "A", "lastName": "One", "status": "lead", "source": "web", "email": "a@x.io"}
    )
    await store.contacts.create(WORKSPACE_ID, {"firstName": "B", "lastName": "Two", "status": "customer"})

    analysis = await executor.execute(_command("analyze_contacts", {}), WORKSPACE_ID)
    stats = await executor.execute(_command("get_contact_stats", {}), WORKSPACE_ID)

    assert analysis.data == {
        "totalContacts": 2,
        "byStatus": {"lead": 1, "customer": 1},
        "bySource": {"web": 1, "unknown": 1},
        "withEmail": 1,
        "withPhone": 0,
        "withCompany": 0,
    }
    assert stats.data == {"total": 2, "active": 0, "leads": 1, "customers": 1, "archived": 0}


@pytest.mark.asyncio
async def test_create_pipeline_assigns_palette_colors(executor: ActionExecutor) -> None:
    result = await executor.execute(
        _command("create_pipeline", {"name": "Sales", "stages": ["Lead", {"name": "Won", "color": "green"}]}),
        WORKSPACE_ID,
    )

    assert result.success is True
    assert result.message == "✅ Pipeline created: Sales (2 stages)"
    assert [(stage["name"], stage["color"]) for stage in result.data["stages"]] == [
        ("Lead", "#3B82F6"),
        ("Won", "#10B981"),
    ]


@pytest.mark.asyncio
async def test_add_stage_without_color_uses_next_palette_entry(
    executor: ActionExecutor, store: InMemoryCrmStore
) -> None:
    pipeline = await _pipeline(store, "Sales", ["Lead", "Won"])

    result = await executor.execute(_command("add_stage", {"pipelineId": "sales", "stageName": "Demo"}), WORKSPACE_ID)

    assert result.success is True
    stages = _stored_pipeline(store, pipeline["_id"])["stages"]
    assert stages[-1]["name"] == "Demo"
    assert stages[-1]["color"] == "#F59E0B"


@pytest.mark.asyncio
async def test_update_stage_by_names(executor: ActionExecutor, store: InMemoryCrmStore) -> None:
    pipeline = await _pipeline(store, "Sales", ["Lead", "Won"])

    result = await executor.execute(
        _command("update_stage", {"pipelineId": "Sales", "stageId": "lead", "name": "Prospect", "color": "purple"}),
        WORKSPACE_ID,
    )

    assert result.success is True
    stage = _stored_pipeline(store, pipeline["_id"])["stages"][0]
    assert (stage["name"], stage["color"]) == ("Prospect", "#8B5CF6")


@pytest.mark.asyncio
async def test_delete_stage_does_not_fall_back(executor: ActionExecutor, store: InMemoryCrmStore) -> None:
    pipeline = await _pipeline(store, "Sales", ["Lead", "Won"])

    result = await executor.execute(_command("delete_stage", {"pipelineId": "Sales", "stageId": "Demo"}), WORKSPACE_ID)

    assert result.success is False
    assert result.message == "Failed to delete stage"
    assert result.error == 'Stage "Demo" not found in pipeline "Sales". Available stages: "Lead", "Won"'
    assert len(_stored_pipeline(store, pipeline["_id"])["stages"]) == 2


@pytest.mark.asyncio
async def test_reorder_stages_by_name(executor: ActionExecutor, store: InMemoryCrmStore) -> None:
    pipeline = await _pipeline(store, "Sales", ["Lead", "Qualified", "Won"])

    result = await executor.execute(
        _command("reorder_stages", {"pipelineId": "Sales", "stageOrder": ["Won", "Lead", "Qualified"]}), WORKSPACE_ID
    )

    assert result.success is True
    assert result.message == "✅ Stages reordered: Won → Lead → Qualified"
    assert [stage["name"] for stage in _stored_pipeline(store, pipeline["_id"])["stages"]] == ["Won", "Lead", "Qualified"]


@pytest.mark.asyncio
async def test_reorder_stages_requires_full_permutation(
    store: InMemoryCrmStore, sink: RecordingSink
) -> None:
    pipeline = await _pipeline(store, "Sales", ["Lead", "Qualified", "Won"])
    pipelines = RecordingBackend(store.pipelines)
    backends = store.backends()
    backends.pipelines = pipelines
    executor = ActionExecutor(backends, export_sink=sink)
    won_id = _stage_id(pipeline, "Won")

    missing = await executor.execute(
        _command("reorder_stages", {"pipelineId": "Sales", "stageOrder": ["Won", "Lead"]}), WORKSPACE_ID
    )
    unknown = await executor.execute(
        _command("reorder_stages", {"pipelineId": "Sales", "stageOrder": ["Won", "Lead", "Qualified", "Closed"]}),
        WORKSPACE_ID,
    )
    repeated = await executor.execute(
        _command("reorder_stages", {"pipelineId": "Sales", "stageOrder": ["Won", won_id, "Lead", "Qualified"]}),
        WORKSPACE_ID,
    )

    assert missing.error == "stageOrder is missing stages: Qualified"
    assert unknown.error == "Unknown stages in stageOrder: Closed"
    assert repeated.error == "stageOrder lists a stage more than once: Won"
    assert [name for name, _ in pipelines.calls if name == "reorder_stages"] == []


@pytest.mark.asyncio
async def test_set_default_pipeline_by_name(executor: ActionExecutor, store: InMemoryCrmStore) -> None:
    sales = await _pipeline(store, "Sales", ["Lead"])
    renewals = await _pipeline(store, "Renewals", ["Lead"])

    result = await executor.execute(_command("set_default_pipeline", {"pipelineId": "Renewals"}), WORKSPACE_ID)

    assert result.success is True
    assert _stored_pipeline(store, renewals["_id"])["isDefault"] is True
    assert _stored_pipeline(store, sales["_id"])["isDefault"] is False


@pytest.mark.asyncio
async def test_opportunity_lifecycle_with_names(executor: ActionExecutor, store: InMemoryCrmStore) -> None:
    pipeline = await _pipeline(store, "Sales", ["Lead", "Won"])

    created = await executor.execute(
        _command(
            "create_opportunity",
            {"title": "Acme renewal", "value": "$5,000", "pipelineId": "Sales", "stageId": "Negotiation"},
        ),
        WORKSPACE_ID,
    )
    assert created.success is True
    assert created.message == "✅ Opportunity created: Acme renewal"
    assert created.data["value"] == 5000.0
    assert created.data["stageId"] == _stage_id(pipeline, "Lead")

    moved = await executor.execute(
        _command("move_opportunity", {"id": created.data["_id"], "stageId": "Won", "pipelineId": "Sales"}),
        WORKSPACE_ID,
    )
    assert moved.success is True
    assert moved.data["stageId"] == _stage_id(pipeline, "Won")

    blocked = await executor.execute(_command("delete_pipeline", {"id": "Sales"}), WORKSPACE_ID)
    assert blocked.success is False
    assert blocked.error == "Cannot delete pipeline with 1 active deals. Move or delete deals first."

    deleted = await executor.execute(_command("delete_opportunity", {"id": created.data["_id"]}), WORKSPACE_ID)
    assert deleted.success is True
    assert deleted.data == {"id": created.data["_id"]}


@pytest.mark.asyncio
async def test_move_by_stage_name_needs_pipeline(executor: ActionExecutor) -> None:
    result = await executor.execute(_command("move_opportunity", {"id": "o1", "stageId": "Won"}), WORKSPACE_ID)

    assert result.success is False
    assert result.message == "Failed to move opportunity"
    assert result.error == 'Stage "Won" cannot be resolved without a pipelineId'


@pytest.mark.asyncio
async def test_bulk_update_opportunities_coerces_value(executor: ActionExecutor, store: InMemoryCrmStore) -> None:
    pipeline = await _pipeline(store, "Sales", ["Lead"])
    ids = []
    for title in ("One", "Two"):
        created = await store.opportunities.create(
            WORKSPACE_ID,
            {"title": title, "value": 1, "pipelineId": pipeline["_id"], "stageId": _stage_id(pipeline, "Lead")},
        )
        ids.append(created.data["_id"])

    result = await executor.execute(
        _command("bulk_update_opportunities", {"opportunityIds": ids + ["missing"], "updates": {"value": "1,000"}}),
        WORKSPACE_ID,
    )

    assert result.success is False
    assert result.data == {"successCount": 2, "failCount": 1}
    assert result.message == "Updated 2 opportunities, 1 failed"
    assert {row["value"] for row in store.rows(WORKSPACE_ID, "opportunities").values()} == {1000.0}


@pytest.mark.asyncio
async def test_update_opportunity_resolves_lone_pipeline_name(store: InMemoryCrmStore, sink: RecordingSink) -> None:
    sales = await _pipeline(store, "Sales", ["Lead"])
    opportunities = RecordingBackend(store.opportunities)
    backends = store.backends()
    backends.opportunities = opportunities
    executor = ActionExecutor(backends, export_sink=sink)

    await executor.execute(_command("update_opportunity", {"id": "o1", "pipelineId": "sales"}), WORKSPACE_ID)
    missing = await executor.execute(
        _command("update_opportunity", {"id": "o1", "pipelineId": "Renewals"}), WORKSPACE_ID
    )

    assert opportunities.calls == [("update", (WORKSPACE_ID, "o1", {"pipelineId": sales["_id"]}))]
    assert missing.success is False
    assert missing.message == "Failed to update opportunity"
    assert missing.error == 'Pipeline "Renewals" not found. Available pipelines: "Sales"'


@pytest.mark.asyncio
async def test_bulk_update_opportunities_resolves_placement_once(
    store: InMemoryCrmStore, sink: RecordingSink
) -> None:
    pipeline = await _pipeline(store, "Sales", ["Lead", "Won"])
    pipelines = RecordingBackend(store.pipelines)
    opportunities = RecordingBackend(store.opportunities)
    backends = store.backends()
    backends.pipelines = pipelines
    backends.opportunities = opportunities
    executor = ActionExecutor(backends, export_sink=sink)

    await executor.execute(
        _command(
            "bulk_update_opportunities",
            {"opportunityIds": ["o1", "o2"], "updates": {"pipelineId": "Sales", "stageId": "won"}},
        ),
        WORKSPACE_ID,
    )

    expected_patch = {"pipelineId": pipeline["_id"], "stageId": _stage_id(pipeline, "Won")}
    assert [name for name, _ in pipelines.calls] == ["list"]
    assert opportunities.calls == [
        ("update", (WORKSPACE_ID, "o1", expected_patch)),
        ("update", (WORKSPACE_ID, "o2", expected_patch)),
    ]


def test_translate_backend_error() -> None:
    assert translate_backend_error("Validation failed: lastName: Required") == "The contact's last name is missing or invalid"
    assert translate_backend_error("E11000 duplicate key error") == "A record with the same details already exists"
    assert translate_backend_error("Invalid stage order. All stages must be included.") == (
        "The new stage order must include every stage of the pipeline exactly once"
    )
    assert translate_backend_error("Pipeline not found.") == "Pipeline not found."
    assert translate_backend_error(None) == "Unknown error occurred"
