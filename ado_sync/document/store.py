"""Reading and writing work item documents as YAML."""

import logging
import shutil
import time
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from ado_sync.document.models import Document, RemoteMetadata, WorkItem
from ado_sync.document.validator import ValidationIssue, issues_from_validation_error
from ado_sync.errors import DocumentValidationError

logger = logging.getLogger(__name__)

YAML_WIDTH = 120

# Always written, even when unset, so a linked item shows its full sync state
_REQUIRED_REMOTE_KEYS = ("workItemId", "url", "rev", "lastSyncedAt")


def parse_document(text: str) -> Document:
    """
    Parse YAML text into a ``Document``.

    Raises:
        DocumentValidationError: If the text is not YAML, is empty, or does
            not match the document schema.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        issue = ValidationIssue(path="", message=str(e), code="YAML_SYNTAX")
        raise DocumentValidationError([issue], message=f"Invalid YAML: {e}") from e

    if data is None:
        issue = ValidationIssue(path="", message="Empty YAML document", code="EMPTY_DOCUMENT")
        raise DocumentValidationError([issue], message="Empty YAML document")

    try:
        return Document.model_validate(data)
    except ValidationError as e:
        raise DocumentValidationError(issues_from_validation_error(e)) from e


def load_document(path: str | Path) -> Document:
    path = Path(path)
    logger.debug(f"Loading work item document from {path}")
    return parse_document(path.read_text(encoding="utf-8"))


def _clean_remote(remote: RemoteMetadata) -> dict[str, Any]:
    data = remote.model_dump(by_alias=True, exclude_none=True)
    cleaned = {key: data.get(key) for key in _REQUIRED_REMOTE_KEYS}
    for key, value in data.items():
        if key in cleaned or value == []:
            continue
        cleaned[key] = value
    return cleaned


def _clean_item(item: WorkItem) -> dict[str, Any]:
    data = item.model_dump(by_alias=True, exclude_none=True, exclude={"remote", "children"})
    cleaned = {key: value for key, value in data.items() if value != []}

    if item.remote is not None:
        cleaned["_ado"] = _clean_remote(item.remote)
    if item.children:
        cleaned["children"] = [_clean_item(child) for child in item.children]
    return cleaned


def _clean_document(doc: Document) -> dict[str, Any]:
    return {
        "schemaVersion": doc.schema_version,
        "hierarchyType": doc.hierarchy_type.value,
        "project": doc.project.model_dump(by_alias=True, exclude_none=True),
        "workItems": [_clean_item(item) for item in doc.work_items],
    }


def serialize_document(doc: Document) -> str:
    """
    Render a document as YAML.

    Keys keep the model's field order, unset values and empty lists are
    left out, and every ``_ado`` block lists ``workItemId``, ``url``,
    ``rev`` and ``lastSyncedAt``.
    """
    return yaml.safe_dump(
        _clean_document(doc),
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=YAML_WIDTH,
    )


def save_document(path: str | Path, doc: Document) -> Path:
    path = Path(path)
    path.write_text(serialize_document(doc), encoding="utf-8")
    logger.info(f"Saved work item document to {path}")
    return path


def backup_document(path: str | Path) -> Path:
    """Copy ``path`` to ``<path>.backup.<epoch milliseconds>`` and return the copy's path."""
    path = Path(path)
    backup_path = path.with_name(f"{path.name}.backup.{int(time.time() * 1000)}")
    shutil.copyfile(path, backup_path)
    logger.info(f"Backed up {path} to {backup_path}")
    return backup_path
