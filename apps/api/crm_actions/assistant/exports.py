from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from typing import Any, Protocol

from crm_actions import files_stub


CSV_CONTENT_TYPE = "text/csv; charset=utf-8"

CONTACT_COLUMNS: list[tuple[str, str]] = [
    ("First Name", "firstName"),
    ("Last Name", "lastName"),
    ("Email", "email"),
    ("Phone", "phone"),
    ("Company", "company"),
    ("Job Title", "jobTitle"),
    ("Status", "status"),
    ("Source", "source"),
]

COMPANY_COLUMNS: list[tuple[str, str]] = [
    ("Name", "name"),
    ("Industry", "industry"),
    ("Website", "website"),
    ("Phone", "phone"),
    ("Employee Count", "employeeCount"),
    ("Status", "status"),
]


@dataclass(frozen=True)
class ExportDocument:
    filename: str
    content: str
    row_count: int
    content_type: str = CSV_CONTENT_TYPE


class ExportSink(Protocol):
    def deliver(self, workspace_id: str, document: ExportDocument) -> str: ...


class FileStoreExportSink:
    """Stores exports in the file stub; the returned ID is served by the download route."""

    def __init__(self, ttl_seconds: float | None = None) -> None:
        self.ttl_seconds = ttl_seconds

    def deliver(self, workspace_id: str, document: ExportDocument) -> str:
        file_id = files_stub.store_bytes(
            document.content.encode("utf-8-sig"),
            document.filename,
            document.content_type,
            workspace_id=workspace_id,
            ttl_seconds=self.ttl_seconds,
        )
        return str(file_id)


def _cell(entity: dict[str, Any], key: str) -> str:
    value = entity.get(key)
    if key == "company" and isinstance(value, dict):
        value = value.get("name")
    if value is None or value is False:
        return ""
    if isinstance(value, (list, tuple)):
        return "; ".join(str(item) for item in value)
    return str(value)


def render_csv(entities: list[dict[str, Any]], columns: list[tuple[str, str]]) -> str:
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\r\n")
    writer.writerow([header for header, _ in columns])
    for entity in entities:
        writer.writerow([_cell(entity, key) for _, key in columns])
    return output.getvalue()


def contacts_to_csv(contacts: list[dict[str, Any]]) -> str:
    return render_csv(contacts, CONTACT_COLUMNS)


def companies_to_csv(companies: list[dict[str, Any]]) -> str:
    return render_csv(companies, COMPANY_COLUMNS)
