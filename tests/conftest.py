"""Shared fixtures for the ado-sync test suite."""

import os
from unittest.mock import Mock

import pytest

from ado_sync.client import AdoClient
from ado_sync.config import AdoSyncConfig
from ado_sync.document.models import Document, RemoteMetadata, WorkItem
from ado_sync.work_items.client import WorkItemsClient
from ado_sync.work_items.models import AdoWorkItem

ORGANIZATION = "contoso"
PROJECT = "Fabrikam"
BASE_URL = f"https://dev.azure.com/{ORGANIZATION}"
API_URL = f"{BASE_URL}/{PROJECT}/_apis"

MOCKED_FACADE_METHODS = (
    "create_work_item",
    "get_work_item",
    "update_work_item",
    "add_parent_link",
    "get_work_items_batch",
    "get_all_comments",
    "get_linked_pull_requests",
    "get_history",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep credentials and overrides from the developer's shell out of the tests."""
    for name in list(os.environ):
        if name.startswith("ADO_") or name == "AZURE_DEVOPS_EXT_PAT":
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config():
    return AdoSyncConfig(organization=ORGANIZATION, project=PROJECT, pat="test-pat")


@pytest.fixture
def ado_client():
    """An AdoClient stand-in with real URL helpers and mocked HTTP verbs."""
    client = Mock(spec=AdoClient)
    client.organization = ORGANIZATION
    client.project = PROJECT
    client.base_url = BASE_URL
    client.project_api_url = API_URL
    client.work_item_web_url.side_effect = (
        lambda work_item_id: f"{BASE_URL}/{PROJECT}/_workitems/edit/{work_item_id}"
    )
    client.work_item_api_url.side_effect = (
        lambda work_item_id: f"{API_URL}/wit/workItems/{work_item_id}"
    )
    client.pull_request_web_url.side_effect = (
        lambda repository, pr_id: f"{BASE_URL}/{PROJECT}/_git/{repository}/pullrequest/{pr_id}"
    )
    return client


@pytest.fixture
def work_items(ado_client):
    """A WorkItemsClient whose remote operations are mocks; metadata extraction stays real."""
    facade = WorkItemsClient(ado_client)
    for name in MOCKED_FACADE_METHODS:
        setattr(facade, name, Mock(name=name))
    return facade


@pytest.fixture
def make_item():
    def _make(
        local_id: str,
        type: str = "Product Backlog Item",
        title: str | None = None,
        remote_id: int | None = None,
        rev: int | None = None,
        children: list[WorkItem] | None = None,
        **attributes,
    ) -> WorkItem:
        remote = None
        if remote_id is not None:
            remote = RemoteMetadata(
                remote_id=remote_id,
                url=f"{BASE_URL}/{PROJECT}/_workitems/edit/{remote_id}",
                revision=rev,
                last_synced_at="2024-01-01T00:00:00.000Z",
            )
        return WorkItem(
            type=type,
            local_id=local_id,
            title=title or f"Item {local_id}",
            remote=remote,
            children=children or [],
            **attributes,
        )

    return _make


@pytest.fixture
def make_document():
    def _make(items: list[WorkItem], hierarchy_type: str = "simple", **project) -> Document:
        return Document(
            schema_version="1.0",
            hierarchy_type=hierarchy_type,
            project={"organization": ORGANIZATION, "project": PROJECT, **project},
            work_items=items,
        )

    return _make


@pytest.fixture
def make_remote():
    def _make(
        work_item_id: int,
        rev: int = 1,
        type: str = "Product Backlog Item",
        title: str | None = None,
        fields: dict | None = None,
        relations: list[dict] | None = None,
    ) -> AdoWorkItem:
        all_fields = {
            "System.WorkItemType": type,
            "System.Title": title or f"Remote {work_item_id}",
            "System.State": "New",
            "System.ChangedDate": "2024-02-01T10:00:00Z",
        }
        all_fields.update(fields or {})
        return AdoWorkItem(
            id=work_item_id,
            rev=rev,
            fields=all_fields,
            relations=relations,
            url=f"{API_URL}/wit/workItems/{work_item_id}",
        )

    return _make
