"""Data models for the local YAML work item document."""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

SCHEMA_VERSION = "1.0"

NonNegativeNumber = Annotated[int, Field(ge=0)] | Annotated[float, Field(ge=0)]


def utc_timestamp() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


class WorkItemType(str, Enum):
    """Work item types understood by the hierarchy rules."""

    EPIC = "Epic"
    FEATURE = "Feature"
    PRODUCT_BACKLOG_ITEM = "Product Backlog Item"
    USER_STORY = "User Story"
    TASK = "Task"
    BUG = "Bug"
    ISSUE = "Issue"


class HierarchyType(str, Enum):
    """Which level a document starts at."""

    FULL = "full"  # Epic -> Feature -> PBI/Story/Bug -> Task
    MEDIUM = "medium"  # Feature -> PBI/Story/Bug -> Task
    SIMPLE = "simple"  # PBI/Story/Bug -> Task


class Comment(BaseModel):
    """A work item comment as stored in the document."""

    id: int
    author: str
    date: str
    text: str


class LinkedPullRequest(BaseModel):
    """A pull request linked to a work item."""

    id: int
    title: str
    status: str
    url: str
    repository: str | None = None


class HistoryEntry(BaseModel):
    """One field change from the work item's update history."""

    model_config = ConfigDict(populate_by_name=True)

    date: str
    field: str
    old_value: str = Field(..., alias="oldValue")
    new_value: str = Field(..., alias="newValue")
    changed_by: str = Field(..., alias="changedBy")


class RemoteMetadata(BaseModel):
    """Azure DevOps bookkeeping stored under ``_ado`` after a sync."""

    model_config = ConfigDict(populate_by_name=True)

    remote_id: int = Field(..., alias="workItemId", description="Azure DevOps work item ID")
    url: str | None = None
    revision: int | None = Field(None, alias="rev", description="Last known server revision")
    last_synced_at: str | None = Field(None, alias="lastSyncedAt")
    etag: str | None = None
    remote_state: str | None = Field(None, alias="state")
    remote_assignee: str | None = Field(None, alias="assignedTo")
    comments: list[Comment] = Field(default_factory=list)
    linked_pull_requests: list[LinkedPullRequest] = Field(default_factory=list, alias="linkedPRs")
    history: list[HistoryEntry] = Field(default_factory=list)


class WorkItem(BaseModel):
    """A work item in the local document. Children are nested in order."""

    model_config = ConfigDict(populate_by_name=True)

    type: str = Field(..., description="Work item type, e.g. 'Epic' or 'Task'")
    local_id: str = Field(..., alias="id", min_length=1, pattern=r"^[a-zA-Z0-9_-]+$")
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    state: str | None = None
    priority: int | None = Field(None, ge=1, le=4)
    tags: list[str] = Field(default_factory=list)
    assigned_to: str | None = Field(None, alias="assignedTo")
    area_path: str | None = Field(None, alias="areaPath")
    iteration_path: str | None = Field(None, alias="iterationPath")

    # Epic / Feature
    value_area: Literal["Business", "Architectural"] | None = Field(None, alias="valueArea")
    business_value: NonNegativeNumber | None = Field(None, alias="businessValue")
    target_date: str | None = Field(None, alias="targetDate")

    # PBI / User Story
    acceptance_criteria: str | None = Field(None, alias="acceptanceCriteria")
    effort: NonNegativeNumber | None = None
    story_points: NonNegativeNumber | None = Field(None, alias="storyPoints")

    # Task
    activity: str | None = None
    remaining_work: NonNegativeNumber | None = Field(None, alias="remainingWork")
    original_estimate: NonNegativeNumber | None = Field(None, alias="originalEstimate")
    completed_work: NonNegativeNumber | None = Field(None, alias="completedWork")

    remote: RemoteMetadata | None = Field(None, alias="_ado")
    children: list["WorkItem"] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _drop_unlinked_metadata(cls, data: Any) -> Any:
        # An _ado block without a workItemId means "not linked yet"
        if isinstance(data, dict):
            ado = data.get("_ado")
            if isinstance(ado, dict) and ado.get("workItemId") is None:
                data = {key: value for key, value in data.items() if key != "_ado"}
        return data

    @property
    def remote_id(self) -> int | None:
        return self.remote.remote_id if self.remote else None

    @property
    def remote_revision(self) -> int | None:
        return self.remote.revision if self.remote else None


class ProjectSettings(BaseModel):
    """Target organization and project, plus optional default paths."""

    model_config = ConfigDict(populate_by_name=True)

    organization: str = Field(..., min_length=1)
    project: str = Field(..., min_length=1)
    area_path: str | None = Field(None, alias="areaPath")
    iteration_path: str | None = Field(None, alias="iterationPath")


class Document(BaseModel):
    """Root of a work item YAML file."""

    model_config = ConfigDict(populate_by_name=True)

    schema_version: Literal["1.0"] = Field(SCHEMA_VERSION, alias="schemaVersion")
    hierarchy_type: HierarchyType = Field(..., alias="hierarchyType")
    project: ProjectSettings
    work_items: list[WorkItem] = Field(..., alias="workItems", min_length=1)


WorkItem.model_rebuild()
