"""Push, pull and combined synchronization between a document and Azure DevOps."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from opentelemetry import trace

from ado_sync.config import MAX_BATCH_SIZE, AdoSyncConfig, ConflictStrategy
from ado_sync.core.diff_engine import DiffStatus, FieldChange, diff_document, has_local_changes
from ado_sync.core.hierarchy import FlatItem, build_local_id_index, flatten
from ado_sync.document.models import Document, RemoteMetadata, WorkItem
from ado_sync.document.validator import ensure_valid
from ado_sync.errors import AdoApiError, AdoSyncError
from ado_sync.telemetry import get_telemetry_manager
from ado_sync.utils.patterns import matches_filter
from ado_sync.work_items.client import WorkItemsClient
from ado_sync.work_items.field_map import (
    CHANGED_DATE_FIELD,
    REMOTE_BY_LOCAL,
    WORK_ITEM_TYPE_FIELD,
    to_remote_fields,
)
from ado_sync.work_items.models import AdoWorkItem, ExpandLevel

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DRY_RUN_PREFIX = "[DRY RUN]"


class SyncAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    SKIP = "skip"
    CONFLICT = "conflict"


class ItemSyncState(str, Enum):
    """Per-item state reported by ``SyncEngine.status``."""

    NEW = "new"
    PENDING = "pending"
    CONFLICT = "conflict"
    SYNCED = "synced"


@dataclass
class ConflictInfo:
    local_id: str
    remote_id: int
    local_revision: int | None
    remote_revision: int
    remote_changed_at: str | None
    local_synced_at: str


@dataclass
class SyncResult:
    """Outcome of reconciling one work item."""

    local_id: str
    action: SyncAction
    success: bool
    remote_id: int | None = None
    url: str | None = None
    message: str | None = None
    error: str | None = None
    conflict: ConflictInfo | None = None


@dataclass
class SyncSummary:
    created: int = 0
    updated: int = 0
    skipped: int = 0
    conflicts: int = 0
    failed: int = 0

    @property
    def has_failures(self) -> bool:
        return self.failed > 0 or self.conflicts > 0


@dataclass
class SyncRunResult:
    pull_results: list[SyncResult] = field(default_factory=list)
    push_results: list[SyncResult] = field(default_factory=list)

    @property
    def summary(self) -> SyncSummary:
        return summarize_results(self.pull_results + self.push_results)


@dataclass
class ItemStatus:
    local_id: str
    title: str
    type: str
    state: ItemSyncState
    remote_id: int | None = None
    last_synced_at: str | None = None
    changes: list[FieldChange] = field(default_factory=list)


@dataclass
class _Decision:
    action: SyncAction
    reason: str
    remote: AdoWorkItem | None = None
    conflict: ConflictInfo | None = None


def summarize_results(results: list[SyncResult]) -> SyncSummary:
    """Count results per action; conflicts and failed results also set ``has_failures``."""
    summary = SyncSummary()
    for result in results:
        if result.action == SyncAction.CONFLICT:
            summary.conflicts += 1
        elif not result.success:
            summary.failed += 1
        elif result.action == SyncAction.CREATE:
            summary.created += 1
        elif result.action == SyncAction.UPDATE:
            summary.updated += 1
        else:
            summary.skipped += 1
    return summary


def _merge_metadata(previous: RemoteMetadata | None, fresh: RemoteMetadata) -> RemoteMetadata:
    """Take the fresh base metadata, keeping previously pulled comments, PRs and history."""
    if previous is None:
        return fresh
    return fresh.model_copy(
        update={
            "comments": previous.comments,
            "linked_pull_requests": previous.linked_pull_requests,
            "history": previous.history,
        }
    )


class SyncEngine:
    """
    Reconciles a ``Document`` with Azure DevOps.

    Items are processed one at a time in document order. A failure on one
    item is recorded in its ``SyncResult`` and never aborts the run. The
    document is mutated in place; persisting it is up to the caller.
    """

    def __init__(self, work_items_client: WorkItemsClient, config: AdoSyncConfig | None = None):
        self.work_items = work_items_client
        self.config = config or AdoSyncConfig()
        self.telemetry = get_telemetry_manager()

    # ------------------------------------------------------------------
    # push

    def push(
        self,
        doc: Document,
        dry_run: bool = False,
        force: bool = False,
        create_only: bool = False,
        update_only: bool = False,
        filter_pattern: str | None = None,
    ) -> list[SyncResult]:
        """
        Send local changes to Azure DevOps.

        Args:
            doc: The document to push; it is mutated with new remote metadata.
            dry_run: Decide every action but send nothing.
            force: Overwrite remote changes instead of reporting a conflict.
            create_only: Only create items that have no remote counterpart.
            update_only: Only update items that already have one.
            filter_pattern: Glob on local ids (``*`` and ``?``) selecting items.

        Raises:
            DocumentValidationError: If the document is invalid. Nothing is sent.
        """
        ensure_valid(doc)

        items = [flat for flat in flatten(doc) if matches_filter(flat.item.local_id, filter_pattern)]
        logger.info(
            f"Pushing {len(items)} work item(s) to {doc.project.organization}/{doc.project.project}"
            f"{' (dry run)' if dry_run else ''}"
        )

        results: list[SyncResult] = []
        with tracer.start_as_current_span("push_work_items") as span:
            span.set_attribute("sync.item_count", len(items))
            span.set_attribute("sync.dry_run", dry_run)
            span.set_attribute("sync.force", force)

            for flat in items:
                result = self._push_item(doc, flat, dry_run, force, create_only, update_only)
                self.telemetry.record_sync_outcome("push", result.action.value, result.success)
                results.append(result)

            summary = summarize_results(results)
            span.set_attribute("sync.created", summary.created)
            span.set_attribute("sync.updated", summary.updated)
            span.set_attribute("sync.conflicts", summary.conflicts)
            span.set_attribute("sync.failed", summary.failed)

        logger.info(
            f"Push finished: {summary.created} created, {summary.updated} updated, "
            f"{summary.skipped} skipped, {summary.conflicts} conflict(s), {summary.failed} failed"
        )
        return results

    def _push_item(
        self,
        doc: Document,
        flat: FlatItem,
        dry_run: bool,
        force: bool,
        create_only: bool,
        update_only: bool,
    ) -> SyncResult:
        item = flat.item
        try:
            decision = self._decide(item, force, create_only, update_only)
        except AdoSyncError as e:
            # Only a 404 counts as deleted remotely
            logger.error(f"Could not fetch work item {item.remote_id} for {item.local_id}: {e}")
            return SyncResult(
                local_id=item.local_id,
                action=SyncAction.UPDATE,
                success=False,
                remote_id=item.remote_id,
                error=str(e),
            )
        logger.debug(f"{item.local_id}: {decision.action.value} ({decision.reason})")

        if dry_run:
            return SyncResult(
                local_id=item.local_id,
                action=decision.action,
                success=True,
                remote_id=item.remote_id,
                message=f"{DRY_RUN_PREFIX} Would {decision.action.value}: {decision.reason}",
                conflict=decision.conflict,
            )

        if decision.action == SyncAction.SKIP:
            return SyncResult(
                local_id=item.local_id,
                action=SyncAction.SKIP,
                success=True,
                remote_id=item.remote_id,
                message=decision.reason,
            )

        if decision.action == SyncAction.CONFLICT:
            logger.warning(f"Conflict on {item.local_id}: {decision.reason}")
            return SyncResult(
                local_id=item.local_id,
                action=SyncAction.CONFLICT,
                success=False,
                remote_id=item.remote_id,
                error=decision.reason,
                conflict=decision.conflict,
            )

        try:
            if decision.action == SyncAction.CREATE:
                return self._create(doc, flat)
            return self._update(item, decision.remote)
        except AdoSyncError as e:
            logger.error(f"Failed to {decision.action.value} {item.local_id}: {e}")
            return SyncResult(
                local_id=item.local_id,
                action=decision.action,
                success=False,
                remote_id=item.remote_id,
                error=str(e),
            )

    def _decide(
        self, item: WorkItem, force: bool, create_only: bool, update_only: bool
    ) -> _Decision:
        remote_id = item.remote_id

        if remote_id is None:
            if update_only:
                return _Decision(SyncAction.SKIP, "Update-only mode, skipping new item")
            return _Decision(SyncAction.CREATE, "New item")

        if create_only:
            return _Decision(SyncAction.SKIP, "Create-only mode, skipping existing item")

        try:
            remote = self.work_items.get_work_item(remote_id, expand=ExpandLevel.RELATIONS)
        except AdoApiError as e:
            if e.status_code != 404:
                raise
            logger.debug(f"Work item {remote_id} for {item.local_id} not found: {e}")
            if update_only:
                return _Decision(SyncAction.SKIP, "ADO item not found, skipping in update-only mode")
            return _Decision(SyncAction.CREATE, "ADO item deleted - recreating")

        local_revision = item.remote_revision
        if not force and local_revision and remote.rev > local_revision:
            return _Decision(
                SyncAction.CONFLICT,
                "ADO modified since last sync",
                remote=remote,
                conflict=ConflictInfo(
                    local_id=item.local_id,
                    remote_id=remote_id,
                    local_revision=local_revision,
                    remote_revision=remote.rev,
                    remote_changed_at=remote.fields.get(CHANGED_DATE_FIELD),
                    local_synced_at=item.remote.last_synced_at or "unknown",
                ),
            )

        if has_local_changes(item, remote):
            return _Decision(SyncAction.UPDATE, "Local changes detected", remote=remote)
        return _Decision(SyncAction.SKIP, "No changes", remote=remote)

    def _creation_fields(self, doc: Document, item: WorkItem) -> dict[str, Any]:
        fields = to_remote_fields(item)
        defaults = self.config.defaults

        fallbacks = {
            "area_path": defaults.area_path or doc.project.area_path,
            "iteration_path": defaults.iteration_path or doc.project.iteration_path,
            "state": defaults.state,
            "priority": defaults.priority,
        }
        for local_name, value in fallbacks.items():
            if value is not None:
                fields.setdefault(REMOTE_BY_LOCAL[local_name], value)
        return fields

    def _create(self, doc: Document, flat: FlatItem) -> SyncResult:
        item = flat.item
        previous = item.remote

        created = self.work_items.create_work_item(item.type, self._creation_fields(doc, item))
        item.remote = _merge_metadata(previous, self.work_items.extract_remote_metadata(created))

        parent_id = flat.parent.remote_id if flat.parent else None
        if parent_id is not None:
            self.work_items.add_parent_link(created.id, parent_id)

        self._refresh_metadata(item, created.id)
        logger.info(f"Created work item #{created.id} for {item.local_id}")

        return SyncResult(
            local_id=item.local_id,
            action=SyncAction.CREATE,
            success=True,
            remote_id=created.id,
            url=item.remote.url,
            message=f"Created work item #{created.id}",
        )

    def _update(self, item: WorkItem, remote: AdoWorkItem) -> SyncResult:
        self.work_items.update_work_item(
            remote.id, to_remote_fields(item), expected_revision=remote.rev
        )
        self._refresh_metadata(item, remote.id)
        logger.info(f"Updated work item #{remote.id} for {item.local_id}")

        return SyncResult(
            local_id=item.local_id,
            action=SyncAction.UPDATE,
            success=True,
            remote_id=remote.id,
            url=item.remote.url,
            message=f"Updated work item #{remote.id}",
        )

    def _refresh_metadata(self, item: WorkItem, remote_id: int):
        fetched = self.work_items.get_work_item(remote_id)
        item.remote = _merge_metadata(item.remote, self.work_items.extract_remote_metadata(fetched))

    # ------------------------------------------------------------------
    # pull

    def _chunk_size(self) -> int:
        return min(self.config.sync.batch_size, MAX_BATCH_SIZE)

    def _fetch_remote(
        self, items: list[WorkItem], expand: ExpandLevel = ExpandLevel.RELATIONS
    ) -> dict[int, AdoWorkItem]:
        remote_ids = [item.remote_id for item in items if item.remote_id is not None]
        if not remote_ids:
            return {}
        fetched = self.work_items.get_work_items_batch(
            remote_ids, expand=expand, batch_size=self._chunk_size()
        )
        return {work_item.id: work_item for work_item in fetched}

    def pull(
        self,
        doc: Document,
        include_comments: bool | None = None,
        include_prs: bool | None = None,
        include_history: bool | None = None,
    ) -> list[SyncResult]:
        """
        Refresh remote metadata of every linked item.

        Flags left as None fall back to ``config.sync``. Local field values
        are never changed; only ``remote`` is refreshed.
        """
        ensure_valid(doc)

        sync_config = self.config.sync
        include_comments = sync_config.include_comments if include_comments is None else include_comments
        include_prs = sync_config.include_prs if include_prs is None else include_prs
        include_history = sync_config.include_history if include_history is None else include_history

        linked = [flat.item for flat in flatten(doc) if flat.item.remote_id is not None]
        if not linked:
            logger.info("No linked work items to pull")
            return []

        logger.info(f"Pulling {len(linked)} work item(s) from Azure DevOps")
        results: list[SyncResult] = []

        with tracer.start_as_current_span("pull_work_items") as span:
            span.set_attribute("sync.item_count", len(linked))
            span.set_attribute("sync.include_comments", include_comments)
            span.set_attribute("sync.include_prs", include_prs)
            span.set_attribute("sync.include_history", include_history)

            remote_by_id = self._fetch_remote(linked)

            for item in linked:
                result = self._pull_item(
                    item, remote_by_id.get(item.remote_id), include_comments, include_prs, include_history
                )
                self.telemetry.record_sync_outcome("pull", result.action.value, result.success)
                results.append(result)

            span.set_attribute("sync.failed", sum(1 for r in results if not r.success))

        return results

    def _pull_item(
        self,
        item: WorkItem,
        remote: AdoWorkItem | None,
        include_comments: bool,
        include_prs: bool,
        include_history: bool,
    ) -> SyncResult:
        remote_id = item.remote_id

        if remote is None:
            logger.warning(f"Work item #{remote_id} ({item.local_id}) not found in Azure DevOps")
            return SyncResult(
                local_id=item.local_id,
                action=SyncAction.SKIP,
                success=False,
                remote_id=remote_id,
                error="Work item not found in Azure DevOps",
            )

        try:
            metadata = _merge_metadata(item.remote, self.work_items.extract_remote_metadata(remote))
            if include_comments:
                metadata.comments = self.work_items.get_all_comments(remote_id)
            if include_prs:
                metadata.linked_pull_requests = self.work_items.get_linked_pull_requests(remote)
            if include_history:
                metadata.history = self.work_items.get_history(remote_id)
            item.remote = metadata
        except AdoSyncError as e:
            logger.error(f"Failed to pull {item.local_id}: {e}")
            return SyncResult(
                local_id=item.local_id,
                action=SyncAction.SKIP,
                success=False,
                remote_id=remote_id,
                error=str(e),
            )

        return SyncResult(
            local_id=item.local_id,
            action=SyncAction.UPDATE,
            success=True,
            remote_id=remote_id,
            url=metadata.url,
            message=f"Pulled updates for #{remote_id}",
        )

    # ------------------------------------------------------------------
    # sync, diff, status

    def sync(
        self,
        doc: Document,
        strategy: ConflictStrategy | str | None = None,
        dry_run: bool = False,
    ) -> SyncRunResult:
        """Pull, then push. ``yaml-wins`` forces the push over remote changes."""
        strategy = ConflictStrategy(strategy or self.config.sync.conflict_strategy)
        logger.info(f"Starting sync with strategy '{strategy.value}'")

        pull_results = self.pull(doc)
        push_results = self.push(
            doc, dry_run=dry_run, force=strategy == ConflictStrategy.PREFER_LOCAL
        )
        return SyncRunResult(pull_results=pull_results, push_results=push_results)

    def diff(self, doc: Document):
        """Field-level differences for every item, in document order."""
        ensure_valid(doc)
        items = [flat.item for flat in flatten(doc)]
        return diff_document(doc, self._fetch_remote(items, expand=ExpandLevel.NONE))

    def status(self, doc: Document) -> list[ItemStatus]:
        """
        Sync state of every item.

        Unlinked items are ``new``. Linked items missing remotely or with
        local changes are ``pending``, items changed on both sides are
        ``conflict`` and the rest are ``synced``.
        """
        ensure_valid(doc)
        flat_items = flatten(doc)
        remote_by_id = self._fetch_remote([flat.item for flat in flat_items], expand=ExpandLevel.NONE)
        diffs = {d.local_id: d for d in diff_document(doc, remote_by_id)}

        statuses = []
        for flat in flat_items:
            item = flat.item
            remote_id = item.remote_id
            changes: list[FieldChange] = []

            if remote_id is None:
                state = ItemSyncState.NEW
            elif remote_id not in remote_by_id:
                state = ItemSyncState.PENDING
            else:
                item_diff = diffs[item.local_id]
                changes = item_diff.changes
                if item_diff.status == DiffStatus.CONFLICT:
                    state = ItemSyncState.CONFLICT
                elif item_diff.status == DiffStatus.MODIFIED:
                    state = ItemSyncState.PENDING
                else:
                    state = ItemSyncState.SYNCED

            statuses.append(
                ItemStatus(
                    local_id=item.local_id,
                    title=item.title,
                    type=item.type,
                    state=state,
                    remote_id=remote_id,
                    last_synced_at=item.remote.last_synced_at if item.remote else None,
                    changes=changes,
                )
            )
        return statuses

    # ------------------------------------------------------------------
    # link / unlink

    def link(self, doc: Document, local_id: str, remote_id: int, force: bool = False) -> WorkItem:
        """
        Attach an existing Azure DevOps work item to a local item.

        Raises:
            AdoSyncError: If the local item does not exist, or is already
                linked and ``force`` is not set. Errors from fetching the
                remote item propagate.
        """
        item = build_local_id_index(doc).get(local_id)
        if item is None:
            raise AdoSyncError(
                f"Local item not found: {local_id}", error_code="LOCAL_ITEM_NOT_FOUND"
            )
        if item.remote_id is not None and not force:
            raise AdoSyncError(
                f"Item '{local_id}' is already linked to work item #{item.remote_id}",
                error_code="ALREADY_LINKED",
                context={"local_id": local_id, "remote_id": item.remote_id},
            )

        remote = self.work_items.get_work_item(remote_id, expand=ExpandLevel.RELATIONS)
        remote_type = remote.fields.get(WORK_ITEM_TYPE_FIELD)
        if remote_type != item.type:
            logger.warning(
                f"Type mismatch linking {local_id}: local is '{item.type}', remote is '{remote_type}'"
            )

        item.remote = self.work_items.extract_remote_metadata(remote)
        logger.info(f"Linked {local_id} to work item #{remote_id}")
        return item

    def unlink(self, doc: Document, local_id: str) -> int | None:
        """Drop the remote link of a local item. Returns the id it was linked to, if any."""
        item = build_local_id_index(doc).get(local_id)
        if item is None:
            raise AdoSyncError(
                f"Local item not found: {local_id}", error_code="LOCAL_ITEM_NOT_FOUND"
            )

        previous = item.remote_id
        if previous is None:
            logger.warning(f"Item '{local_id}' is not linked to any work item")
            return None

        item.remote = None
        logger.info(f"Unlinked {local_id} from work item #{previous}")
        return previous
