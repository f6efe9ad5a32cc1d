from __future__ import annotations

import copy
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any

from crm_actions.crm.backends import CrmBackends, CrudResult


MAX_STAGES_PER_PIPELINE = 20
DEFAULT_STAGE_COLOR = "#3B82F6"


def new_object_id() -> str:
    return uuid.uuid4().hex[:24]


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _required_error(fields: list[str]) -> str:
    return "Validation failed: " + "; ".join(f"{name}: Required" for name in fields)


class InMemoryEntityBackend:
    required_fields: tuple[str, ...] = ()

    def __init__(self, store: "InMemoryCrmStore", collection: str) -> None:
        self.store = store
        self.collection = collection

    def _rows(self, workspace_id: str) -> dict[str, dict[str, Any]]:
        return self.store.rows(workspace_id, self.collection)

    def _missing(self, fields: dict[str, Any]) -> list[str]:
        return [name for name in self.required_fields if _is_blank(fields.get(name))]

    def _present(self, workspace_id: str, row: dict[str, Any]) -> dict[str, Any]:
        return copy.deepcopy(row)

    async def create(self, workspace_id: str, fields: dict[str, Any]) -> CrudResult:
        missing = self._missing(fields)
        if missing:
            return CrudResult.fail(_required_error(missing))
        now = utcnow_iso()
        row = {**copy.deepcopy(fields), "_id": new_object_id(), "workspaceId": workspace_id}
        row.setdefault("createdAt", now)
        row["updatedAt"] = now
        self._rows(workspace_id)[row["_id"]] = row
        return CrudResult.ok(self._present(workspace_id, row))

    async def update(self, workspace_id: str, entity_id: str, patch: dict[str, Any]) -> CrudResult:
        row = self._rows(workspace_id).get(entity_id)
        if row is None:
            return CrudResult.fail(f"{self.store.label(self.collection)} not found.")
        blanked = [name for name in self.required_fields if name in patch and _is_blank(patch[name])]
        if blanked:
            return CrudResult.fail(_required_error(blanked))
        for key, value in patch.items():
            if key in {"_id", "workspaceId"}:
                continue
            row[key] = copy.deepcopy(value)
        row["updatedAt"] = utcnow_iso()
        return CrudResult.ok(self._present(workspace_id, row))

    async def delete(self, workspace_id: str, entity_id: str) -> CrudResult:
        rows = self._rows(workspace_id)
        if entity_id not in rows:
            return CrudResult.fail(f"{self.store.label(self.collection)} not found.")
        del rows[entity_id]
        return CrudResult.ok()

    async def list(self, workspace_id: str) -> CrudResult:
        rows = sorted(self._rows(workspace_id).values(), key=lambda item: item["createdAt"])
        return CrudResult.ok([self._present(workspace_id, row) for row in rows])


class InMemoryContactBackend(InMemoryEntityBackend):
    required_fields = ("firstName", "lastName")

    def _present(self, workspace_id: str, row: dict[str, Any]) -> dict[str, Any]:
        payload = copy.deepcopy(row)
        company_id = payload.get("company")
        if isinstance(company_id, str):
            company = self.store.rows(workspace_id, "companies").get(company_id)
            if company is not None:
                payload["company"] = {"_id": company["_id"], "name": company.get("name")}
        return payload


class InMemoryCompanyBackend(InMemoryEntityBackend):
    required_fields = ("name",)


class InMemoryPipelineBackend(InMemoryEntityBackend):
    required_fields = ("name",)

    def _pipeline(self, workspace_id: str, pipeline_id: str) -> dict[str, Any] | None:
        return self._rows(workspace_id).get(pipeline_id)

    def _build_stage(self, stage: dict[str, Any], order: int) -> dict[str, Any]:
        return {
            "_id": new_object_id(),
            "name": str(stage.get("name", "")).strip(),
            "color": stage.get("color") or DEFAULT_STAGE_COLOR,
            "order": stage.get("order", order),
        }

    async def create(self, workspace_id: str, fields: dict[str, Any]) -> CrudResult:
        stages = fields.get("stages") or []
        if not isinstance(stages, list) or not stages:
            return CrudResult.fail(_required_error(["stages"]))
        if len(stages) > MAX_STAGES_PER_PIPELINE:
            return CrudResult.fail(f"Pipeline cannot have more than {MAX_STAGES_PER_PIPELINE} stages.")
        if any(not isinstance(stage, dict) or _is_blank(stage.get("name")) for stage in stages):
            return CrudResult.fail(_required_error(["stages.name"]))
        payload = {**fields, "stages": [self._build_stage(stage, index) for index, stage in enumerate(stages)]}
        payload.setdefault("isDefault", False)
        result = await super().create(workspace_id, payload)
        if result.success and payload["isDefault"]:
            self._make_default(workspace_id, result.data["_id"])
        return result

    async def update(self, workspace_id: str, entity_id: str, patch: dict[str, Any]) -> CrudResult:
        result = await super().update(workspace_id, entity_id, {k: v for k, v in patch.items() if k != "stages"})
        if result.success and patch.get("isDefault") is True:
            self._make_default(workspace_id, entity_id)
            result = CrudResult.ok(self._present(workspace_id, self._rows(workspace_id)[entity_id]))
        return result

    async def delete(self, workspace_id: str, entity_id: str) -> CrudResult:
        deals = [
            row
            for row in self.store.rows(workspace_id, "opportunities").values()
            if row.get("pipelineId") == entity_id
        ]
        if deals:
            return CrudResult.fail(f"Cannot delete pipeline with {len(deals)} active deals. Move or delete deals first.")
        return await super().delete(workspace_id, entity_id)

    def _make_default(self, workspace_id: str, pipeline_id: str) -> None:
        for row in self._rows(workspace_id).values():
            row["isDefault"] = row["_id"] == pipeline_id

    async def add_stage(self, workspace_id: str, pipeline_id: str, stage: dict[str, Any]) -> CrudResult:
        pipeline = self._pipeline(workspace_id, pipeline_id)
        if pipeline is None:
            return CrudResult.fail("Pipeline not found.")
        if _is_blank(stage.get("name")):
            return CrudResult.fail(_required_error(["name"]))
        if len(pipeline["stages"]) >= MAX_STAGES_PER_PIPELINE:
            return CrudResult.fail(f"Pipeline cannot have more than {MAX_STAGES_PER_PIPELINE} stages.")
        pipeline["stages"].append(self._build_stage(stage, len(pipeline["stages"])))
        pipeline["updatedAt"] = utcnow_iso()
        return CrudResult.ok(self._present(workspace_id, pipeline))

    async def update_stage(
        self, workspace_id: str, pipeline_id: str, stage_id: str, patch: dict[str, Any]
    ) -> CrudResult:
        pipeline = self._pipeline(workspace_id, pipeline_id)
        if pipeline is None:
            return CrudResult.fail("Pipeline not found.")
        stage = next((item for item in pipeline["stages"] if item["_id"] == stage_id), None)
        if stage is None:
            return CrudResult.fail("Stage not found.")
        for key in ("name", "color", "order"):
            if key in patch:
                stage[key] = patch[key]
        pipeline["updatedAt"] = utcnow_iso()
        return CrudResult.ok(self._present(workspace_id, pipeline))

    async def delete_stage(self, workspace_id: str, pipeline_id: str, stage_id: str) -> CrudResult:
        pipeline = self._pipeline(workspace_id, pipeline_id)
        if pipeline is None:
            return CrudResult.fail("Pipeline not found.")
        remaining = [item for item in pipeline["stages"] if item["_id"] != stage_id]
        if len(remaining) == len(pipeline["stages"]):
            return CrudResult.fail("Stage not found.")
        deals = [
            row
            for row in self.store.rows(workspace_id, "opportunities").values()
            if row.get("stageId") == stage_id
        ]
        if deals:
            return CrudResult.fail(f"Cannot delete stage with {len(deals)} deals. Move deals first.")
        pipeline["stages"] = remaining
        pipeline["updatedAt"] = utcnow_iso()
        return CrudResult.ok(self._present(workspace_id, pipeline))

    async def reorder_stages(self, workspace_id: str, pipeline_id: str, stage_order: list[str]) -> CrudResult:
        pipeline = self._pipeline(workspace_id, pipeline_id)
        if pipeline is None:
            return CrudResult.fail("Pipeline not found.")
        by_id = {item["_id"]: item for item in pipeline["stages"]}
        if sorted(stage_order) != sorted(by_id):
            return CrudResult.fail("Invalid stage order. All stages must be included.")
        reordered = []
        for index, stage_id in enumerate(stage_order):
            stage = by_id[stage_id]
            stage["order"] = index
            reordered.append(stage)
        pipeline["stages"] = reordered
        pipeline["updatedAt"] = utcnow_iso()
        return CrudResult.ok(self._present(workspace_id, pipeline))


class InMemoryOpportunityBackend(InMemoryEntityBackend):
    required_fields = ("title", "pipelineId", "stageId")

    def _check_placement(self, workspace_id: str, pipeline_id: Any, stage_id: Any) -> str | None:
        pipeline = self.store.rows(workspace_id, "pipelines").get(str(pipeline_id))
        if pipeline is None:
            return "Pipeline not found."
        if not any(stage["_id"] == stage_id for stage in pipeline["stages"]):
            return "Stage not found in pipeline."
        return None

    async def create(self, workspace_id: str, fields: dict[str, Any]) -> CrudResult:
        missing = self._missing(fields)
        if fields.get("value") is None:
            missing.append("value")
        if missing:
            return CrudResult.fail(_required_error(missing))
        error = self._check_placement(workspace_id, fields["pipelineId"], fields["stageId"])
        if error:
            return CrudResult.fail(error)
        payload = {"status": "open", **fields}
        return await super().create(workspace_id, payload)

    async def update(self, workspace_id: str, entity_id: str, patch: dict[str, Any]) -> CrudResult:
        row = self._rows(workspace_id).get(entity_id)
        if row is not None and ("stageId" in patch or "pipelineId" in patch):
            error = self._check_placement(
                workspace_id, patch.get("pipelineId", row.get("pipelineId")), patch.get("stageId", row.get("stageId"))
            )
            if error:
                return CrudResult.fail(error)
        return await super().update(workspace_id, entity_id, patch)

    async def move(
        self, workspace_id: str, opportunity_id: str, stage_id: str, pipeline_id: str | None = None
    ) -> CrudResult:
        patch: dict[str, Any] = {"stageId": stage_id}
        if pipeline_id:
            patch["pipelineId"] = pipeline_id
        return await self.update(workspace_id, opportunity_id, patch)


class InMemoryEmailBackend:
    def __init__(self) -> None:
        self.outbox: list[dict[str, Any]] = []

    async def send(self, workspace_id: str, to: str, subject: str, body: str) -> CrudResult:
        message = {
            "_id": new_object_id(),
            "workspaceId": workspace_id,
            "to": to,
            "subject": subject,
            "body": body,
            "sentAt": utcnow_iso(),
        }
        self.outbox.append(message)
        return CrudResult.ok(copy.deepcopy(message))


class InMemoryCrmStore:
    _labels = {
        "contacts": "Contact",
        "companies": "Company",
        "pipelines": "Pipeline",
        "opportunities": "Opportunity",
    }

    def __init__(self) -> None:
        self._data: dict[str, dict[str, dict[str, dict[str, Any]]]] = defaultdict(lambda: defaultdict(dict))
        self.contacts = InMemoryContactBackend(self, "contacts")
        self.companies = InMemoryCompanyBackend(self, "companies")
        self.pipelines = InMemoryPipelineBackend(self, "pipelines")
        self.opportunities = InMemoryOpportunityBackend(self, "opportunities")
        self.email = InMemoryEmailBackend()

    def rows(self, workspace_id: str, collection: str) -> dict[str, dict[str, Any]]:
        return self._data[workspace_id][collection]

    def label(self, collection: str) -> str:
        return self._labels.get(collection, collection.title())

    def backends(self) -> CrmBackends:
        return CrmBackends(
            contacts=self.contacts,
            companies=self.companies,
            pipelines=self.pipelines,
            opportunities=self.opportunities,
            email=self.email,
        )

    def clear(self) -> None:
        self._data.clear()
        self.email.outbox.clear()
