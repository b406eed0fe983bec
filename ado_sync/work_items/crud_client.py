"""CRUD client methods for Azure DevOps Work Items API operations."""

import logging
from typing import Any
from urllib.parse import quote

from opentelemetry import trace

from ado_sync.client import JSON_PATCH_CONTENT_TYPE, AdoClient
from ado_sync.work_items.field_map import build_field_operations
from ado_sync.work_items.models import (
    AdoWorkItem,
    ExpandLevel,
    JsonPatchOperation,
    WorkItemRelationType,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def _patch_document(operations: list[JsonPatchOperation]) -> list[dict[str, Any]]:
    return [op.model_dump(exclude_none=True, by_alias=True) for op in operations]


class CrudClient:
    """Client for Azure DevOps Work Items CRUD operations."""

    def __init__(self, client: AdoClient):
        """
        Initialize the CrudClient.

        Args:
            client: The AdoClient instance to use for API calls.
        """
        self.client = client

    def _work_item_url(self, work_item_id: int) -> str:
        return f"{self.client.project_api_url}/wit/workitems/{work_item_id}"

    def create_work_item(self, work_item_type: str, fields: dict[str, Any]) -> AdoWorkItem:
        """
        Create a new work item in Azure DevOps.

        Args:
            work_item_type: The type of work item to create (e.g., "Bug", "Task").
            fields: Azure DevOps field reference name -> value.

        Returns:
            The created AdoWorkItem.
        """
        operations = build_field_operations(fields)
        url = f"{self.client.project_api_url}/wit/workitems/${quote(work_item_type)}"

        logger.info(
            f"Creating work item of type '{work_item_type}' in project "
            f"'{self.client.project}' with {len(operations)} fields"
        )

        with tracer.start_as_current_span("create_work_item") as span:
            span.set_attribute("work_item.type", work_item_type)
            span.set_attribute("work_item.project", self.client.project)
            span.set_attribute("work_item.field_count", len(operations))

            data = self.client.post(
                url, json=_patch_document(operations), content_type=JSON_PATCH_CONTENT_TYPE
            )
            span.set_attribute("work_item.id", data.get("id"))

        logger.info(f"Successfully created work item ID: {data.get('id')}")
        return AdoWorkItem(**data)

    def get_work_item(
        self, work_item_id: int, expand: ExpandLevel | None = None
    ) -> AdoWorkItem:
        """
        Get a single work item by ID.

        Args:
            work_item_id: The ID of the work item.
            expand: Optional ``$expand`` level, e.g. ``ExpandLevel.RELATIONS``.
        """
        params = {"$expand": expand.value} if expand else None

        logger.debug(f"Getting work item {work_item_id}")

        with tracer.start_as_current_span("get_work_item") as span:
            span.set_attribute("work_item.id", work_item_id)
            data = self.client.get(self._work_item_url(work_item_id), params=params)

        return AdoWorkItem(**data)

    def update_work_item(
        self,
        work_item_id: int,
        fields: dict[str, Any],
        expected_revision: int | None = None,
    ) -> AdoWorkItem:
        """
        Update fields of an existing work item.

        Args:
            work_item_id: The ID of the work item to update.
            fields: Azure DevOps field reference name -> value.
            expected_revision: When given, a leading ``test /rev`` operation
                makes the server reject the write if the item has moved on.

        Raises:
            AdoConcurrencyError: If the revision test fails on the server.
        """
        operations = build_field_operations(fields)
        if expected_revision is not None:
            operations.insert(0, JsonPatchOperation(op="test", path="/rev", value=expected_revision))

        logger.info(f"Updating work item {work_item_id} with {len(operations)} operations")

        with tracer.start_as_current_span("update_work_item") as span:
            span.set_attribute("work_item.id", work_item_id)
            span.set_attribute("work_item.operations_count", len(operations))
            if expected_revision is not None:
                span.set_attribute("work_item.expected_revision", expected_revision)

            data = self.client.patch(
                self._work_item_url(work_item_id),
                json=_patch_document(operations),
                content_type=JSON_PATCH_CONTENT_TYPE,
            )

        logger.info(f"Successfully updated work item {work_item_id}")
        return AdoWorkItem(**data)

    def add_parent_link(self, child_id: int, parent_id: int) -> AdoWorkItem:
        """Attach ``parent_id`` as the parent of ``child_id``."""
        operation = JsonPatchOperation(
            op="add",
            path="/relations/-",
            value={
                "rel": WorkItemRelationType.PARENT.value,
                "url": self.client.work_item_api_url(parent_id),
            },
        )

        logger.info(f"Linking work item {child_id} to parent {parent_id}")

        with tracer.start_as_current_span("add_parent_link") as span:
            span.set_attribute("work_item.id", child_id)
            span.set_attribute("work_item.parent_id", parent_id)
            data = self.client.patch(
                self._work_item_url(child_id),
                json=_patch_document([operation]),
                content_type=JSON_PATCH_CONTENT_TYPE,
            )

        return AdoWorkItem(**data)

    def remove_relation(self, work_item_id: int, relation_index: int) -> AdoWorkItem:
        """Remove the relation at ``relation_index`` from a work item."""
        operation = JsonPatchOperation(op="remove", path=f"/relations/{relation_index}")

        logger.info(f"Removing relation {relation_index} from work item {work_item_id}")
        data = self.client.patch(
            self._work_item_url(work_item_id),
            json=_patch_document([operation]),
            content_type=JSON_PATCH_CONTENT_TYPE,
        )
        return AdoWorkItem(**data)
