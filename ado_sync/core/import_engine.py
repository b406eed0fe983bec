"""Import of an Azure DevOps work item tree into a local document."""

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from opentelemetry import trace
from pydantic import ValidationError

from ado_sync.config import AdoSyncConfig
from ado_sync.document.models import (
    SCHEMA_VERSION,
    Document,
    HierarchyType,
    ProjectSettings,
    WorkItem,
    WorkItemType,
)
from ado_sync.errors import AdoSyncError, ImportFailedError
from ado_sync.telemetry import get_telemetry_manager
from ado_sync.utils.html import html_to_text
from ado_sync.work_items.client import WorkItemsClient, get_child_ids
from ado_sync.work_items.field_map import FIELD_MAPPINGS, WORK_ITEM_TYPE_FIELD, identity_name, parse_tags
from ado_sync.work_items.models import AdoWorkItem, ExpandLevel

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_MAX_DEPTH = 10

TYPE_PREFIXES: dict[str, str] = {
    WorkItemType.EPIC.value: "epic",
    WorkItemType.FEATURE.value: "feat",
    WorkItemType.PRODUCT_BACKLOG_ITEM.value: "pbi",
    WorkItemType.USER_STORY.value: "story",
    WorkItemType.TASK.value: "task",
    WorkItemType.BUG.value: "bug",
    WorkItemType.ISSUE.value: "issue",
}

# Rich-text fields stored as plain text locally
HTML_FIELDS = frozenset({"description", "acceptance_criteria"})

_WHITESPACE = re.compile(r"\s+")


@dataclass
class ImportResult:
    remote_id: int
    local_id: str
    type: str
    title: str
    success: bool
    error: str | None = None
    child_count: int = 0


@dataclass
class ImportRunResult:
    document: Document
    results: list[ImportResult] = field(default_factory=list)

    @property
    def failed(self) -> list[ImportResult]:
        return [result for result in self.results if not result.success]


@dataclass
class _ImportContext:
    max_depth: int
    filter_tag: str | None
    filter_type: str | None
    include_comments: bool
    include_prs: bool
    results: list[ImportResult] = field(default_factory=list)

    @property
    def filtering(self) -> bool:
        return bool(self.filter_tag or self.filter_type)


def local_id_for(work_item_type: str, remote_id: int) -> str:
    """Local id for an imported item, e.g. ``pbi-42`` or ``custom-type-7``."""
    prefix = TYPE_PREFIXES.get(work_item_type) or _WHITESPACE.sub("-", work_item_type.lower())
    return f"{prefix}-{remote_id}"


def _collect_types(item: WorkItem, types: set[str]):
    types.add(item.type)
    for child in item.children:
        _collect_types(child, types)


def detect_hierarchy_type(root: WorkItem) -> HierarchyType:
    """Infer the hierarchy level from the types present in an imported tree."""
    types: set[str] = set()
    _collect_types(root, types)

    has_epic = WorkItemType.EPIC.value in types
    has_feature = WorkItemType.FEATURE.value in types
    has_backlog_item = (
        WorkItemType.PRODUCT_BACKLOG_ITEM.value in types or WorkItemType.USER_STORY.value in types
    )

    if has_epic and has_feature and has_backlog_item:
        return HierarchyType.FULL
    if has_feature and has_backlog_item:
        return HierarchyType.MEDIUM
    return HierarchyType.SIMPLE


def matches_import_filter(item: WorkItem, filter_tag: str | None, filter_type: str | None) -> bool:
    """Type must match exactly; the tag is compared case-insensitively."""
    if filter_type and item.type != filter_type:
        return False
    if filter_tag:
        wanted = filter_tag.lower()
        return any(tag.lower() == wanted for tag in item.tags)
    return True


def _local_attributes(remote: AdoWorkItem) -> dict[str, Any]:
    attributes: dict[str, Any] = {}
    for mapping in FIELD_MAPPINGS:
        raw = remote.fields.get(mapping.remote)
        if raw is None:
            continue

        if mapping.local == "assigned_to":
            value = identity_name(raw)
        elif mapping.local == "tags":
            value = parse_tags(raw) or None
        elif mapping.local in HTML_FIELDS:
            value = html_to_text(raw)
        else:
            value = raw

        if value is None or value == "":
            continue
        attributes[mapping.local] = value
    return attributes


class ImportEngine:
    """Builds a new document from a remote work item and everything below it."""

    def __init__(self, work_items_client: WorkItemsClient, config: AdoSyncConfig | None = None):
        self.work_items = work_items_client
        self.config = config or AdoSyncConfig()
        self.telemetry = get_telemetry_manager()

    def import_tree(
        self,
        root_id: int,
        max_depth: int = DEFAULT_MAX_DEPTH,
        filter_tag: str | None = None,
        filter_type: str | None = None,
        include_comments: bool = True,
        include_prs: bool = True,
        organization: str | None = None,
        project: str | None = None,
    ) -> ImportRunResult:
        """
        Fetch ``root_id`` and its descendants depth-first into a new document.

        Items deeper than ``max_depth`` below the root are left out. The tag
        and type filters select among the root's direct children only; a
        selected child keeps its whole subtree.

        Raises:
            ImportFailedError: If the root work item cannot be fetched.
        """
        context = _ImportContext(
            max_depth=max_depth,
            filter_tag=filter_tag,
            filter_type=filter_type,
            include_comments=include_comments,
            include_prs=include_prs,
        )

        logger.info(f"Importing work item tree rooted at #{root_id} (max depth {max_depth})")

        with tracer.start_as_current_span("import_work_items") as span:
            span.set_attribute("work_item.id", root_id)
            span.set_attribute("sync.max_depth", max_depth)
            if filter_tag:
                span.set_attribute("sync.filter_tag", filter_tag)
            if filter_type:
                span.set_attribute("sync.filter_type", filter_type)

            root = self._fetch_tree(root_id, 0, context, is_root=True)
            if root is None:
                raise ImportFailedError(root_id, message=f"Work item {root_id} is beyond max depth")

            span.set_attribute("sync.item_count", len(context.results))

        document = Document(
            schema_version=SCHEMA_VERSION,
            hierarchy_type=detect_hierarchy_type(root),
            project=ProjectSettings(
                organization=organization or self.work_items.organization,
                project=project or self.work_items.project,
            ),
            work_items=[root],
        )

        failed = sum(1 for result in context.results if not result.success)
        logger.info(f"Imported {len(context.results) - failed} work item(s), {failed} failed")
        return ImportRunResult(document=document, results=context.results)

    def _fetch_tree(
        self,
        remote_id: int,
        depth: int,
        context: _ImportContext,
        is_root: bool = False,
    ) -> WorkItem | None:
        if depth > context.max_depth:
            return None

        try:
            remote = self.work_items.get_work_item(remote_id, expand=ExpandLevel.RELATIONS)
            item = self._to_local(remote)
        except (AdoSyncError, ValidationError) as e:
            if is_root:
                raise ImportFailedError(remote_id, original_exception=e) from e

            logger.error(f"Failed to import work item #{remote_id}: {e}")
            context.results.append(
                ImportResult(
                    remote_id=remote_id,
                    local_id=f"ado-{remote_id}",
                    type="Unknown",
                    title="Failed to fetch",
                    success=False,
                    error=str(e),
                )
            )
            self.telemetry.record_sync_outcome("import", "create", False)
            return None

        self._attach_discussion(item, remote, context)

        child_ids = get_child_ids(remote)
        context.results.append(
            ImportResult(
                remote_id=remote_id,
                local_id=item.local_id,
                type=item.type,
                title=item.title,
                success=True,
                child_count=len(child_ids),
            )
        )
        self.telemetry.record_sync_outcome("import", "create", True)

        apply_filter = is_root and context.filtering
        for child_id in child_ids:
            child = self._fetch_tree(child_id, depth + 1, context)
            if child is None:
                continue
            if apply_filter and not matches_import_filter(
                child, context.filter_tag, context.filter_type
            ):
                logger.debug(f"Filtered out {child.local_id}")
                continue
            item.children.append(child)

        return item

    def _to_local(self, remote: AdoWorkItem) -> WorkItem:
        work_item_type = remote.fields.get(WORK_ITEM_TYPE_FIELD) or "Unknown"
        return WorkItem(
            type=work_item_type,
            local_id=local_id_for(work_item_type, remote.id),
            remote=self.work_items.extract_remote_metadata(remote),
            **_local_attributes(remote),
        )

    def _attach_discussion(self, item: WorkItem, remote: AdoWorkItem, context: _ImportContext):
        if context.include_comments:
            try:
                item.remote.comments = self.work_items.get_all_comments(remote.id)
            except AdoSyncError as e:
                logger.warning(f"Could not fetch comments for #{remote.id}: {e}")

        if context.include_prs:
            try:
                item.remote.linked_pull_requests = self.work_items.get_linked_pull_requests(remote)
            except AdoSyncError as e:
                logger.warning(f"Could not fetch pull requests for #{remote.id}: {e}")
