"""Field-level comparison of local work items with their Azure DevOps counterparts."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ado_sync.core.hierarchy import flatten
from ado_sync.document.models import Document, WorkItem
from ado_sync.work_items.field_map import local_value, remote_value
from ado_sync.work_items.models import AdoWorkItem

logger = logging.getLogger(__name__)

COMPARE_FIELDS: tuple[str, ...] = (
    "title",
    "description",
    "state",
    "priority",
    "assigned_to",
    "area_path",
    "iteration_path",
    "acceptance_criteria",
    "effort",
    "story_points",
    "business_value",
    "value_area",
    "target_date",
    "remaining_work",
    "original_estimate",
    "completed_work",
    "activity",
    "tags",
)


class DiffStatus(str, Enum):
    NEW = "new"
    MODIFIED = "modified"
    DELETED = "deleted"
    UNCHANGED = "unchanged"
    CONFLICT = "conflict"


@dataclass
class FieldChange:
    field: str
    local_value: Any
    remote_value: Any


@dataclass
class WorkItemDiff:
    local_id: str
    remote_id: int | None
    status: DiffStatus
    changes: list[FieldChange] = field(default_factory=list)


@dataclass
class DiffSummary:
    new: int = 0
    modified: int = 0
    unchanged: int = 0
    conflict: int = 0
    deleted: int = 0

    @property
    def has_unresolved(self) -> bool:
        return self.conflict > 0


def values_equal(a: Any, b: Any) -> bool:
    """
    Compare a local and a remote value.

    None matches only None, strings compare with surrounding whitespace
    ignored and lists compare as sorted multisets.
    """
    if a is None or b is None:
        return a is None and b is None

    if isinstance(a, list) and isinstance(b, list):
        return len(a) == len(b) and sorted(a) == sorted(b)

    if isinstance(a, str) and isinstance(b, str):
        return a.strip() == b.strip()

    return a == b


def diff_work_item(local: WorkItem, remote: AdoWorkItem | None) -> WorkItemDiff:
    """Classify one local item against its remote record (None if it has none)."""
    if remote is None:
        changes = [
            FieldChange(field=name, local_value=local_value(local, name), remote_value=None)
            for name in COMPARE_FIELDS
            if local_value(local, name) is not None
        ]
        return WorkItemDiff(
            local_id=local.local_id, remote_id=None, status=DiffStatus.NEW, changes=changes
        )

    changes = []
    for name in COMPARE_FIELDS:
        local_val = local_value(local, name)
        remote_val = remote_value(remote.fields, name)
        if not values_equal(local_val, remote_val):
            changes.append(FieldChange(field=name, local_value=local_val, remote_value=remote_val))

    status = DiffStatus.UNCHANGED
    if changes:
        local_revision = local.remote_revision
        if local_revision and remote.rev > local_revision:
            status = DiffStatus.CONFLICT
        else:
            status = DiffStatus.MODIFIED

    return WorkItemDiff(
        local_id=local.local_id, remote_id=remote.id, status=status, changes=changes
    )


def diff_document(doc: Document, remote_by_id: dict[int, AdoWorkItem]) -> list[WorkItemDiff]:
    """Diff every item in pre-order; items without a fetched remote record count as new."""
    diffs = []
    for flat in flatten(doc):
        remote_id = flat.item.remote_id
        remote = remote_by_id.get(remote_id) if remote_id else None
        diffs.append(diff_work_item(flat.item, remote))
    return diffs


def has_local_changes(local: WorkItem, remote: AdoWorkItem) -> bool:
    return bool(diff_work_item(local, remote).changes)


def summarize(diffs: list[WorkItemDiff]) -> DiffSummary:
    summary = DiffSummary()
    for diff in diffs:
        setattr(summary, diff.status.value, getattr(summary, diff.status.value) + 1)
    return summary


def _format_value(value: Any) -> str:
    if value is None:
        return "(empty)"
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    if isinstance(value, str) and len(value) > 50:
        return value[:47] + "..."
    return str(value)


def format_field_change(change: FieldChange) -> str:
    """Render a change as ``field: remote → local``."""
    return f"{change.field}: {_format_value(change.remote_value)} → {_format_value(change.local_value)}"
