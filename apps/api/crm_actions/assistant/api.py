from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, Response

from crm_actions import files_stub
from crm_actions.assistant.commands import ACTION_TYPES, ActionResult, Command, requires_confirmation
from crm_actions.assistant.executor import ActionExecutor
from crm_actions.assistant.exports import FileStoreExportSink
from crm_actions.assistant.parser import inspect_message
from crm_actions.assistant.schemas import (
    ActionTypeRead,
    AssistantMessageRequest,
    AssistantMessageResponse,
    ExecuteActionRequest,
    ParseActionRequest,
    ParseActionResponse,
)
from crm_actions.context import get_correlation_id
from crm_actions.core.config import get_settings
from crm_actions.crm import CrmBackends, HttpCrmClient, InMemoryCrmStore


logger = logging.getLogger("crm_actions.assistant.api")

router = APIRouter(prefix="/api/assistant", tags=["assistant"])
workspace_router = APIRouter(prefix="/api/workspaces/{workspace_id}/assistant", tags=["assistant"])

_memory_store = InMemoryCrmStore()


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def error_response(
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    payload = ErrorEnvelope(
        code=code,
        message=message,
        details=details,
        correlation_id=get_correlation_id(),
    )
    return JSONResponse(status_code=status_code, content=payload.__dict__)


def _confirmation_required(command: Command) -> JSONResponse:
    return error_response(
        status_code=status.HTTP_409_CONFLICT,
        code="assistant_confirmation_required",
        message=f"{command.description} requires confirmation",
        details=command.model_dump(by_alias=True),
    )


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_memory_store() -> InMemoryCrmStore:
    return _memory_store


async def get_crm_backends(
    request: Request,
    store: InMemoryCrmStore = Depends(get_memory_store),
) -> AsyncIterator[CrmBackends]:
    settings = get_settings()
    if settings.crm_backend.lower() != "http":
        yield store.backends()
        return

    client = HttpCrmClient(
        settings.crm_api_base_url,
        token=_bearer_token(request) or settings.crm_api_token,
        timeout=settings.crm_http_timeout_seconds,
        page_size=settings.crm_list_page_size,
    )
    try:
        yield client.backends()
    finally:
        await client.aclose()


def get_action_executor(backends: CrmBackends = Depends(get_crm_backends)) -> ActionExecutor:
    settings = get_settings()
    return ActionExecutor(
        backends,
        export_sink=FileStoreExportSink(ttl_seconds=settings.export_ttl_seconds),
        timeout_seconds=settings.action_timeout_seconds,
    )


@router.get("/actions", response_model=list[ActionTypeRead])
def list_action_types() -> list[ActionTypeRead]:
    return [
        ActionTypeRead(type=action_type, requires_confirmation=requires_confirmation(action_type))
        for action_type in sorted(ACTION_TYPES)
    ]


@router.post("/actions/parse", response_model=ParseActionResponse)
def parse_action_text(payload: ParseActionRequest) -> ParseActionResponse | JSONResponse:
    outcome = inspect_message(payload.text)
    if outcome.status == "malformed":
        return error_response(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code="assistant_action_malformed",
            message="Action block could not be parsed",
            details=outcome.error,
        )
    return ParseActionResponse(status=outcome.status, command=outcome.command)


@workspace_router.post("/actions", response_model=ActionResult)
async def execute_action(
    workspace_id: str,
    payload: ExecuteActionRequest,
    executor: ActionExecutor = Depends(get_action_executor),
) -> ActionResult | JSONResponse:
    command = payload.command
    if command.requires_confirmation and not payload.confirmed:
        return _confirmation_required(command)
    return await executor.execute(command, workspace_id)


@workspace_router.post("/messages", response_model=AssistantMessageResponse)
async def handle_assistant_message(
    workspace_id: str,
    payload: AssistantMessageRequest,
    executor: ActionExecutor = Depends(get_action_executor),
) -> AssistantMessageResponse | JSONResponse:
    outcome = inspect_message(payload.text)
    if outcome.status == "malformed":
        return error_response(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code="assistant_action_malformed",
            message="Action block could not be parsed",
            details=outcome.error,
        )
    command = outcome.command
    if command is None:
        return AssistantMessageResponse()
    if command.requires_confirmation and not payload.confirmed:
        logger.info("assistant.confirmation_requested", extra={"action_type": command.type})
        return AssistantMessageResponse(command=command, confirmation_required=True)
    result = await executor.execute(command, workspace_id)
    return AssistantMessageResponse(command=command, result=result)


@workspace_router.get("/exports/{file_id}", response_model=None)
def download_export(workspace_id: str, file_id: uuid.UUID) -> Response | JSONResponse:
    try:
        stored = files_stub.get_file(file_id)
        if stored.workspace_id != workspace_id:
            raise FileNotFoundError(f"file_id not found: {file_id}")
        return Response(
            content=stored.read_bytes(),
            media_type=stored.content_type,
            headers={"Content-Disposition": f'attachment; filename="{stored.filename}"'},
        )
    except FileNotFoundError as exc:
        return error_response(
            status_code=status.HTTP_404_NOT_FOUND,
            code="assistant_export_not_found",
            message=str(exc),
            details=str(exc),
        )
