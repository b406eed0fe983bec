"""Static mapping between local work item attributes and Azure DevOps fields."""

from dataclasses import dataclass
from typing import Any

from ado_sync.document.models import WorkItem
from ado_sync.work_items.models import JsonPatchOperation


@dataclass(frozen=True)
class FieldMapping:
    local: str  # attribute on document.models.WorkItem
    remote: str  # Azure DevOps field reference name


FIELD_MAPPINGS: tuple[FieldMapping, ...] = (
    FieldMapping("title", "System.Title"),
    FieldMapping("description", "System.Description"),
    FieldMapping("state", "System.State"),
    FieldMapping("assigned_to", "System.AssignedTo"),
    FieldMapping("area_path", "System.AreaPath"),
    FieldMapping("iteration_path", "System.IterationPath"),
    FieldMapping("priority", "Microsoft.VSTS.Common.Priority"),
    FieldMapping("effort", "Microsoft.VSTS.Scheduling.Effort"),
    FieldMapping("story_points", "Microsoft.VSTS.Scheduling.StoryPoints"),
    FieldMapping("business_value", "Microsoft.VSTS.Common.BusinessValue"),
    FieldMapping("acceptance_criteria", "Microsoft.VSTS.Common.AcceptanceCriteria"),
    FieldMapping("value_area", "Microsoft.VSTS.Common.ValueArea"),
    FieldMapping("target_date", "Microsoft.VSTS.Scheduling.TargetDate"),
    FieldMapping("remaining_work", "Microsoft.VSTS.Scheduling.RemainingWork"),
    FieldMapping("original_estimate", "Microsoft.VSTS.Scheduling.OriginalEstimate"),
    FieldMapping("completed_work", "Microsoft.VSTS.Scheduling.CompletedWork"),
    FieldMapping("activity", "Microsoft.VSTS.Common.Activity"),
    FieldMapping("tags", "System.Tags"),
)

REMOTE_BY_LOCAL: dict[str, str] = {m.local: m.remote for m in FIELD_MAPPINGS}
LOCAL_BY_REMOTE: dict[str, str] = {m.remote: m.local for m in FIELD_MAPPINGS}

WORK_ITEM_TYPE_FIELD = "System.WorkItemType"
CHANGED_DATE_FIELD = "System.ChangedDate"
TAG_SEPARATOR = "; "


def parse_tags(value: str | None) -> list[str]:
    """Split a ``;``-delimited tag string into trimmed, non-empty tags."""
    if not value:
        return []
    return [tag.strip() for tag in value.split(";") if tag.strip()]


def join_tags(tags: list[str]) -> str:
    return TAG_SEPARATOR.join(tags)


def identity_name(value: Any, prefer_display: bool = True) -> str | None:
    """Name of an identity field value (dict from the API or a plain string)."""
    if value is None:
        return None
    if isinstance(value, dict):
        if prefer_display:
            return value.get("displayName") or value.get("uniqueName")
        return value.get("uniqueName") or value.get("displayName")
    return str(value)


def remote_value(fields: dict[str, Any], local_name: str) -> Any:
    """
    Read the remote counterpart of a local attribute from a fields dict.

    The assignee is reduced to its display name and tags are parsed into a
    list (None when there are none), so the result compares directly with
    the local attribute.
    """
    raw = fields.get(REMOTE_BY_LOCAL[local_name])
    if local_name == "assigned_to":
        return raw.get("displayName") if isinstance(raw, dict) else raw
    if local_name == "tags":
        return parse_tags(raw) or None
    return raw


def local_value(item: WorkItem, local_name: str) -> Any:
    """Local attribute value, with an empty tag list read as unset."""
    value = getattr(item, local_name)
    if local_name == "tags" and not value:
        return None
    return value


def to_remote_fields(item: WorkItem) -> dict[str, Any]:
    """Translate every set local attribute into its Azure DevOps field."""
    fields: dict[str, Any] = {}
    for mapping in FIELD_MAPPINGS:
        value = local_value(item, mapping.local)
        if value is None:
            continue
        if mapping.local == "tags":
            value = join_tags(value)
        fields[mapping.remote] = value
    return fields


def build_field_operations(fields: dict[str, Any], op: str = "add") -> list[JsonPatchOperation]:
    return [
        JsonPatchOperation(op=op, path=f"/fields/{reference_name}", value=value)
        for reference_name, value in fields.items()
    ]
