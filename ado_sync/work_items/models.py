"""Data models for Azure DevOps Work Items REST responses."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ExpandLevel(str, Enum):
    """Values of the ``$expand`` query parameter."""

    NONE = "None"
    RELATIONS = "Relations"
    FIELDS = "Fields"
    LINKS = "Links"
    ALL = "All"


class WorkItemRelationType(str, Enum):
    """Relation types used by ado-sync."""

    PARENT = "System.LinkTypes.Hierarchy-Reverse"
    CHILD = "System.LinkTypes.Hierarchy-Forward"
    RELATED = "System.LinkTypes.Related"
    ARTIFACT_LINK = "ArtifactLink"


class JsonPatchOperation(BaseModel):
    """Represents a single JSON Patch operation."""

    op: str = Field(..., description="The operation type: add, remove, replace, test")
    path: str = Field(..., description="The JSON path to the target location")
    value: Any | None = Field(None, description="The value to be used in the operation")
    from_: str | None = Field(
        None, alias="from", description="The source path for move/copy operations"
    )


class WorkItemRelation(BaseModel):
    """Represents a relationship from a work item to another resource."""

    rel: str = Field(..., description="The relationship type")
    url: str = Field(..., description="The URL of the related resource")
    attributes: dict[str, Any] | None = Field(
        None, description="Additional attributes of the relation"
    )


class AdoWorkItem(BaseModel):
    """Represents a work item as returned by Azure DevOps."""

    id: int = Field(..., description="The work item ID")
    rev: int = Field(0, description="The revision number")
    fields: dict[str, Any] = Field(default_factory=dict, description="Field reference name -> value")
    relations: list[WorkItemRelation] | None = Field(None, description="Related resources")
    url: str | None = Field(None, description="The REST URL of the work item")
    links: dict[str, Any] | None = Field(None, alias="_links", description="Hypermedia links")

    @property
    def work_item_type(self) -> str | None:
        return self.fields.get("System.WorkItemType")

    @property
    def title(self) -> str | None:
        return self.fields.get("System.Title")

    @property
    def changed_date(self) -> str | None:
        return self.fields.get("System.ChangedDate")


class IdentityRef(BaseModel):
    """A user reference as embedded in comments and updates."""

    id: str | None = None
    displayName: str | None = None
    uniqueName: str | None = None

    @property
    def name(self) -> str:
        return self.displayName or self.uniqueName or ""


class CommentResponse(BaseModel):
    """One comment from the comments API."""

    id: int
    text: str = ""
    createdBy: IdentityRef = Field(default_factory=IdentityRef)
    createdDate: str = ""


class CommentsPage(BaseModel):
    """One page of the comments API."""

    totalCount: int | None = None
    count: int = 0
    comments: list[CommentResponse] = Field(default_factory=list)
    continuationToken: str | None = None


class PullRequestResponse(BaseModel):
    """The subset of a pull request that ado-sync records."""

    pullRequestId: int
    title: str = ""
    status: str = ""
    repository: dict[str, Any] = Field(default_factory=dict)


class FieldUpdate(BaseModel):
    oldValue: Any | None = None
    newValue: Any | None = None


class WorkItemUpdate(BaseModel):
    """One entry of a work item's update (history) list."""

    id: int
    rev: int | None = None
    revisedBy: IdentityRef = Field(default_factory=IdentityRef)
    revisedDate: str = ""
    fields: dict[str, FieldUpdate] | None = None
