from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import ValidationError

from crm_actions.assistant.commands import Command, is_known_action
from crm_actions.metrics import observe_parse_failure


logger = logging.getLogger("crm_actions.assistant.parser")

ACTION_BLOCK_RE = re.compile(r"```action[ \t]*\r?\n(.*?)\r?\n?[ \t]*```", re.DOTALL)

ParseStatus = Literal["absent", "malformed", "parsed"]


class ActionParseError(ValueError):
    pass


@dataclass(frozen=True)
class ParseOutcome:
    status: ParseStatus
    command: Command | None = None
    error: str | None = None


def extract_action_block(text: str) -> str | None:
    if not isinstance(text, str):
        return None
    match = ACTION_BLOCK_RE.search(text)
    if match is None:
        return None
    return match.group(1)


def parse_action_body(body: str) -> Command:
    try:
        payload: Any = json.loads(body)
    except json.JSONDecodeError as exc:
        raise ActionParseError(f"action block is not valid JSON: {exc.msg}") from exc
    except RecursionError as exc:
        raise ActionParseError("action block is nested too deeply") from exc

    if not isinstance(payload, dict):
        raise ActionParseError("action block must be a JSON object")

    action_type = payload.get("action")
    if not isinstance(action_type, str) or not action_type.strip():
        raise ActionParseError("action block is missing the 'action' name")

    params = payload.get("params")
    if params is None:
        params = {}
    if not isinstance(params, dict):
        raise ActionParseError("'params' must be a JSON object")

    try:
        return Command(type=action_type.strip(), parameters=params)
    except ValidationError as exc:
        raise ActionParseError(str(exc.errors()[0].get("msg", "invalid action block"))) from exc


def inspect_message(text: str) -> ParseOutcome:
    body = extract_action_block(text)
    if body is None:
        return ParseOutcome(status="absent")

    try:
        command = parse_action_body(body)
    except ActionParseError as exc:
        observe_parse_failure()
        logger.warning("assistant.parse_failed", extra={"reason": str(exc)})
        return ParseOutcome(status="malformed", error=str(exc))

    if not is_known_action(command.type):
        logger.info("assistant.unknown_action", extra={"action_type": command.type})
    return ParseOutcome(status="parsed", command=command)


def parse_action(text: str) -> Command | None:
    return inspect_message(text).command
