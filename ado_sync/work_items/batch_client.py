"""Batch read of Azure DevOps work items."""

import logging

from opentelemetry import trace

from ado_sync.client import AdoClient
from ado_sync.config import MAX_BATCH_SIZE
from ado_sync.utils.patterns import chunk
from ado_sync.work_items.models import AdoWorkItem, ExpandLevel

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class BatchClient:
    """Client for batch Azure DevOps Work Items API operations."""

    def __init__(self, client: AdoClient):
        """
        Initialize the BatchClient.

        Args:
            client: The AdoClient instance to use for API calls.
        """
        self.client = client

    def get_work_items_batch(
        self,
        work_item_ids: list[int],
        expand: ExpandLevel = ExpandLevel.RELATIONS,
        batch_size: int = MAX_BATCH_SIZE,
    ) -> list[AdoWorkItem]:
        """
        Get multiple work items, one ``workitemsbatch`` request per chunk.

        Args:
            work_item_ids: IDs to retrieve.
            expand: ``$expand`` level for every item.
            batch_size: IDs per request, capped at 200.

        Returns:
            The work items found, in response order. IDs that no longer exist
            are omitted rather than failing the whole request.
        """
        if not work_item_ids:
            logger.info("No work item IDs provided, returning empty list")
            return []

        size = max(1, min(batch_size, MAX_BATCH_SIZE))
        url = f"{self.client.project_api_url}/wit/workitemsbatch"
        results: list[AdoWorkItem] = []

        with tracer.start_as_current_span("get_work_items_batch") as span:
            span.set_attribute("work_item.requested_count", len(work_item_ids))
            span.set_attribute("work_item.batch_size", size)

            for ids in chunk(work_item_ids, size):
                logger.debug(f"Fetching batch of {len(ids)} work items")
                body = {"ids": ids, "$expand": expand.value, "errorPolicy": "Omit"}
                data = self.client.post(url, json=body) or {}
                results.extend(
                    AdoWorkItem(**item) for item in data.get("value", []) if item is not None
                )

            span.set_attribute("work_item.returned_count", len(results))

        logger.info(
            f"Retrieved {len(results)} work items out of {len(work_item_ids)} requested"
        )
        return results
