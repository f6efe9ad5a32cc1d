from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from crm_actions.assistant.commands import ActionResult, Command


class ParseActionRequest(BaseModel):
    text: str


class ParseActionResponse(BaseModel):
    status: Literal["absent", "parsed"]
    command: Command | None = None


class ExecuteActionRequest(BaseModel):
    command: Command
    confirmed: bool = False


class AssistantMessageRequest(BaseModel):
    text: str
    confirmed: bool = False


class AssistantMessageResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    command: Command | None = None
    result: ActionResult | None = None
    confirmation_required: bool = Field(default=False, alias="confirmationRequired")


class ActionTypeRead(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str
    requires_confirmation: bool = Field(alias="requiresConfirmation")
