"""Traversal and structural queries over a work item document."""

from collections.abc import Iterable
from dataclasses import dataclass

from ado_sync.document.models import Document, HierarchyType, WorkItem, WorkItemType

ROOT_TYPES: dict[str, list[str]] = {
    HierarchyType.FULL.value: [WorkItemType.EPIC.value],
    HierarchyType.MEDIUM.value: [WorkItemType.FEATURE.value],
    HierarchyType.SIMPLE.value: [
        WorkItemType.PRODUCT_BACKLOG_ITEM.value,
        WorkItemType.USER_STORY.value,
        WorkItemType.BUG.value,
    ],
}

CHILD_TYPES: dict[str, list[str]] = {
    WorkItemType.EPIC.value: [WorkItemType.FEATURE.value],
    WorkItemType.FEATURE.value: [
        WorkItemType.PRODUCT_BACKLOG_ITEM.value,
        WorkItemType.USER_STORY.value,
        WorkItemType.BUG.value,
    ],
    WorkItemType.PRODUCT_BACKLOG_ITEM.value: [WorkItemType.TASK.value],
    WorkItemType.USER_STORY.value: [WorkItemType.TASK.value],
    WorkItemType.BUG.value: [WorkItemType.TASK.value],
    WorkItemType.ISSUE.value: [WorkItemType.TASK.value],
    WorkItemType.TASK.value: [],
}


@dataclass
class FlatItem:
    """A work item together with its parent and depth (roots are depth 0)."""

    item: WorkItem
    parent: WorkItem | None
    depth: int


def flatten(doc: Document) -> list[FlatItem]:
    """Pre-order traversal: every parent comes before its children."""
    result: list[FlatItem] = []

    def traverse(items: list[WorkItem], parent: WorkItem | None, depth: int):
        for item in items:
            result.append(FlatItem(item=item, parent=parent, depth=depth))
            if item.children:
                traverse(item.children, item, depth + 1)

    traverse(doc.work_items, None, 0)
    return result


def flatten_reverse(doc: Document) -> list[FlatItem]:
    """Post-order traversal: children come before their parent."""
    result: list[FlatItem] = []

    def traverse(items: list[WorkItem], parent: WorkItem | None, depth: int):
        for item in items:
            if item.children:
                traverse(item.children, item, depth + 1)
            result.append(FlatItem(item=item, parent=parent, depth=depth))

    traverse(doc.work_items, None, 0)
    return result


def items_at_depth(doc: Document, depth: int) -> list[WorkItem]:
    result: list[WorkItem] = []

    def traverse(items: list[WorkItem], current: int):
        for item in items:
            if current == depth:
                result.append(item)
            elif item.children and current < depth:
                traverse(item.children, current + 1)

    traverse(doc.work_items, 0)
    return result


def max_depth(doc: Document) -> int:
    """Depth of the deepest item; 0 for a document without children."""

    def depth_of(items: list[WorkItem], current: int) -> int:
        deepest = current
        for item in items:
            if item.children:
                deepest = max(deepest, depth_of(item.children, current + 1))
        return deepest

    return depth_of(doc.work_items, 0)


def _walk(items: Iterable[WorkItem]):
    for item in items:
        yield item
        if item.children:
            yield from _walk(item.children)


def find_by_local_id(doc: Document, local_id: str) -> WorkItem | None:
    return next((item for item in _walk(doc.work_items) if item.local_id == local_id), None)


def find_by_remote_id(doc: Document, remote_id: int) -> WorkItem | None:
    return next((item for item in _walk(doc.work_items) if item.remote_id == remote_id), None)


def ancestors(doc: Document, local_id: str) -> list[WorkItem]:
    """Chain from the root down to the item's parent; empty for roots and unknown ids."""

    def search(items: list[WorkItem], path: list[WorkItem]) -> list[WorkItem] | None:
        for item in items:
            if item.local_id == local_id:
                return path
            if item.children:
                found = search(item.children, [*path, item])
                if found is not None:
                    return found
        return None

    return search(doc.work_items, []) or []


def descendants(item: WorkItem) -> list[WorkItem]:
    """All items below ``item`` in pre-order, excluding ``item`` itself."""
    return list(_walk(item.children))


def count_items(items: list[WorkItem]) -> int:
    return sum(1 for _ in _walk(items))


def valid_root_types(hierarchy_type: HierarchyType | str) -> list[str]:
    key = hierarchy_type.value if isinstance(hierarchy_type, HierarchyType) else hierarchy_type
    return list(ROOT_TYPES.get(key, []))


def valid_child_types(parent_type: str) -> list[str]:
    return list(CHILD_TYPES.get(parent_type, []))


def build_local_id_index(doc: Document) -> dict[str, WorkItem]:
    return {item.local_id: item for item in _walk(doc.work_items)}


def build_remote_id_index(doc: Document) -> dict[int, WorkItem]:
    return {item.remote_id: item for item in _walk(doc.work_items) if item.remote_id}
