"""Client methods for Azure DevOps Work Items API operations."""

import logging
import re
from typing import Any

from ado_sync.client import AdoClient
from ado_sync.config import MAX_BATCH_SIZE
from ado_sync.document.models import (
    Comment,
    HistoryEntry,
    LinkedPullRequest,
    RemoteMetadata,
    utc_timestamp,
)
from ado_sync.work_items.batch_client import BatchClient
from ado_sync.work_items.comments_client import CommentsClient
from ado_sync.work_items.crud_client import CrudClient
from ado_sync.work_items.field_map import identity_name
from ado_sync.work_items.history import HistoryClient
from ado_sync.work_items.models import AdoWorkItem, ExpandLevel, WorkItemRelationType
from ado_sync.work_items.pull_requests_client import PullRequestsClient

logger = logging.getLogger(__name__)

_WORK_ITEM_ID = re.compile(r"/workItems/(\d+)$", re.IGNORECASE)


def _related_ids(work_item: AdoWorkItem, rel: WorkItemRelationType) -> list[int]:
    ids = []
    for relation in work_item.relations or []:
        if relation.rel != rel.value:
            continue
        match = _WORK_ITEM_ID.search(relation.url)
        if match:
            ids.append(int(match.group(1)))
    return ids


def get_child_ids(work_item: AdoWorkItem) -> list[int]:
    """IDs of the work item's children, in relation order."""
    return _related_ids(work_item, WorkItemRelationType.CHILD)


def get_parent_id(work_item: AdoWorkItem) -> int | None:
    parents = _related_ids(work_item, WorkItemRelationType.PARENT)
    return parents[0] if parents else None


def has_parent_link(work_item: AdoWorkItem) -> bool:
    return any(
        relation.rel == WorkItemRelationType.PARENT.value for relation in work_item.relations or []
    )


class WorkItemsClient:
    """Facade over the work item CRUD, batch, comments, pull request and history clients."""

    def __init__(self, client: AdoClient):
        """
        Initialize the WorkItemsClient.

        Args:
            client: The AdoClient instance to use for API calls.
        """
        self.client = client
        self.crud_client = CrudClient(client)
        self.batch_client = BatchClient(client)
        self.comments_client = CommentsClient(client)
        self.pull_requests_client = PullRequestsClient(client)
        self.history_client = HistoryClient(client)

    @property
    def organization(self) -> str:
        return self.client.organization

    @property
    def project(self) -> str:
        return self.client.project

    def create_work_item(self, work_item_type: str, fields: dict[str, Any]) -> AdoWorkItem:
        return self.crud_client.create_work_item(work_item_type, fields)

    def get_work_item(
        self, work_item_id: int, expand: ExpandLevel | None = None
    ) -> AdoWorkItem:
        return self.crud_client.get_work_item(work_item_id, expand=expand)

    def update_work_item(
        self,
        work_item_id: int,
        fields: dict[str, Any],
        expected_revision: int | None = None,
    ) -> AdoWorkItem:
        return self.crud_client.update_work_item(
            work_item_id, fields, expected_revision=expected_revision
        )

    def add_parent_link(self, child_id: int, parent_id: int) -> AdoWorkItem:
        return self.crud_client.add_parent_link(child_id, parent_id)

    def remove_relation(self, work_item_id: int, relation_index: int) -> AdoWorkItem:
        return self.crud_client.remove_relation(work_item_id, relation_index)

    def get_work_items_batch(
        self,
        work_item_ids: list[int],
        expand: ExpandLevel = ExpandLevel.RELATIONS,
        batch_size: int = MAX_BATCH_SIZE,
    ) -> list[AdoWorkItem]:
        return self.batch_client.get_work_items_batch(
            work_item_ids, expand=expand, batch_size=batch_size
        )

    def get_all_comments(self, work_item_id: int) -> list[Comment]:
        return self.comments_client.get_all_comments(work_item_id)

    def add_comment(self, work_item_id: int, text: str) -> Comment:
        return self.comments_client.add_comment(work_item_id, text)

    def get_linked_pull_requests(self, work_item: AdoWorkItem) -> list[LinkedPullRequest]:
        return self.pull_requests_client.get_linked_pull_requests(work_item)

    def get_history(self, work_item_id: int) -> list[HistoryEntry]:
        return self.history_client.get_history(work_item_id)

    def extract_remote_metadata(self, work_item: AdoWorkItem) -> RemoteMetadata:
        """Base sync metadata (id, url, revision, state, assignee) stamped with the current time."""
        return RemoteMetadata(
            remote_id=work_item.id,
            url=self.client.work_item_web_url(work_item.id),
            revision=work_item.rev,
            last_synced_at=utc_timestamp(),
            remote_state=work_item.fields.get("System.State"),
            remote_assignee=identity_name(work_item.fields.get("System.AssignedTo")),
        )
