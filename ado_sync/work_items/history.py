"""Field change history from the work item updates API."""

import logging
from typing import Any

from ado_sync.client import AdoClient
from ado_sync.document.models import HistoryEntry
from ado_sync.work_items.field_map import identity_name
from ado_sync.work_items.models import WorkItemUpdate

logger = logging.getLogger(__name__)

UPDATES_PAGE_SIZE = 200

# Fields Azure DevOps changes on every revision
BOOKKEEPING_FIELDS = frozenset(
    {
        "System.Rev",
        "System.Watermark",
        "System.ChangedDate",
        "System.ChangedBy",
        "System.RevisedDate",
        "System.AuthorizedDate",
        "System.AuthorizedAs",
        "System.PersonId",
        "System.CommentCount",
    }
)


def _display(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, dict):
        return identity_name(value) or ""
    return str(value)


def flatten_updates(updates: list[WorkItemUpdate]) -> list[HistoryEntry]:
    """One ``HistoryEntry`` per changed field, oldest update first."""
    entries: list[HistoryEntry] = []
    for update in updates:
        if not update.fields:
            continue

        changed = update.fields.get("System.ChangedDate")
        date = str(changed.newValue) if changed and changed.newValue else update.revisedDate

        for field_name, change in update.fields.items():
            if field_name in BOOKKEEPING_FIELDS:
                continue
            entries.append(
                HistoryEntry(
                    date=date,
                    field=field_name,
                    old_value=_display(change.oldValue),
                    new_value=_display(change.newValue),
                    changed_by=update.revisedBy.name,
                )
            )
    return entries


class HistoryClient:
    """Client for the Azure DevOps work item updates API."""

    def __init__(self, client: AdoClient):
        self.client = client

    def get_updates(self, work_item_id: int) -> list[WorkItemUpdate]:
        url = f"{self.client.project_api_url}/wit/workitems/{work_item_id}/updates"
        updates: list[WorkItemUpdate] = []
        skip = 0

        while True:
            data = self.client.get(url, params={"$top": UPDATES_PAGE_SIZE, "$skip": skip}) or {}
            page = [WorkItemUpdate(**entry) for entry in data.get("value", [])]
            updates.extend(page)
            if len(page) < UPDATES_PAGE_SIZE:
                break
            skip += UPDATES_PAGE_SIZE

        return updates

    def get_history(self, work_item_id: int) -> list[HistoryEntry]:
        """Field-level change history of a work item, oldest first."""
        history = flatten_updates(self.get_updates(work_item_id))
        logger.debug(f"Retrieved {len(history)} history entries for work item {work_item_id}")
        return history
