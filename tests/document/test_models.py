import re

import pytest
from pydantic import ValidationError

from ado_sync.document.models import Document, RemoteMetadata, WorkItem, utc_timestamp


def minimal_item(**overrides):
    data = {"type": "Task", "id": "task-1", "title": "Write tests"}
    data.update(overrides)
    return data


class TestWorkItemModel:
    def test_loads_camel_case_keys(self):
        item = WorkItem.model_validate(
            minimal_item(
                assignedTo="Jane",
                areaPath="Fabrikam\\Web",
                remainingWork=4,
                _ado={"workItemId": 12, "rev": 3, "lastSyncedAt": "2024-01-01T00:00:00.000Z"},
            )
        )

        assert item.assigned_to == "Jane"
        assert item.area_path == "Fabrikam\\Web"
        assert item.remaining_work == 4
        assert item.remote_id == 12
        assert item.remote_revision == 3

    def test_ado_block_without_work_item_id_is_unlinked(self):
        item = WorkItem.model_validate(minimal_item(_ado={"workItemId": None, "rev": None}))

        assert item.remote is None, "An _ado block without workItemId should load as absent"
        assert item.remote_id is None

    @pytest.mark.parametrize(
        "overrides",
        [
            {"id": "has space"},
            {"id": ""},
            {"title": ""},
            {"title": "x" * 256},
            {"priority": 5},
            {"priority": 0},
            {"remainingWork": -1},
            {"storyPoints": -0.5},
            {"valueArea": "Strategic"},
        ],
    )
    def test_rejects_invalid_values(self, overrides):
        with pytest.raises(ValidationError):
            WorkItem.model_validate(minimal_item(**overrides))

    def test_accepts_fractional_estimates(self):
        item = WorkItem.model_validate(minimal_item(originalEstimate=2.5, completedWork=0))

        assert item.original_estimate == 2.5
        assert item.completed_work == 0

    def test_any_activity_is_accepted_by_the_model(self):
        item = WorkItem.model_validate(minimal_item(type="Task", activity="Deployment"))

        assert item.activity == "Deployment"

    def test_unknown_type_is_accepted_by_the_model(self):
        item = WorkItem.model_validate(minimal_item(type="Test Case"))

        assert item.type == "Test Case", "Type membership is checked by the validator, not the model"

    def test_children_nest(self):
        item = WorkItem.model_validate(
            {
                "type": "Product Backlog Item",
                "id": "pbi-1",
                "title": "Story",
                "children": [minimal_item()],
            }
        )

        assert item.children[0].local_id == "task-1"


class TestDocumentModel:
    def test_requires_at_least_one_item(self):
        with pytest.raises(ValidationError):
            Document.model_validate(
                {
                    "schemaVersion": "1.0",
                    "hierarchyType": "simple",
                    "project": {"organization": "contoso", "project": "Fabrikam"},
                    "workItems": [],
                }
            )

    def test_rejects_unknown_schema_version(self):
        with pytest.raises(ValidationError):
            Document.model_validate(
                {
                    "schemaVersion": "2.0",
                    "hierarchyType": "simple",
                    "project": {"organization": "contoso", "project": "Fabrikam"},
                    "workItems": [minimal_item()],
                }
            )

    def test_remote_metadata_defaults(self):
        metadata = RemoteMetadata(remote_id=5)

        assert metadata.comments == [] and metadata.linked_pull_requests == []
        assert metadata.history == []
        assert metadata.revision is None


def test_utc_timestamp_format():
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z", utc_timestamp())
