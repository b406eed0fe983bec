"""Validation of work item documents: schema, unique ids and nesting rules."""

import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from ado_sync.core.hierarchy import valid_child_types, valid_root_types
from ado_sync.document.models import Document, WorkItem, WorkItemType
from ado_sync.errors import DocumentValidationError

logger = logging.getLogger(__name__)

KNOWN_TYPES = {t.value for t in WorkItemType}
KNOWN_ACTIVITIES = {
    "Deployment",
    "Design",
    "Development",
    "Documentation",
    "Requirements",
    "Testing",
}


@dataclass
class ValidationIssue:
    """A single validation error or warning, addressed by document path."""

    path: str
    message: str
    code: str


@dataclass
class ValidationResult:
    valid: bool
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    def raise_for_errors(self):
        """Raise ``DocumentValidationError`` if any error was found."""
        if not self.valid:
            raise DocumentValidationError(self.errors)


def _format_loc(loc: tuple[Any, ...]) -> str:
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path


def issues_from_validation_error(error: ValidationError) -> list[ValidationIssue]:
    """Convert a pydantic ``ValidationError`` into validation issues."""
    return [
        ValidationIssue(path=_format_loc(err["loc"]), message=err["msg"], code=err["type"])
        for err in error.errors()
    ]


def _check_unique_ids(items: list[WorkItem], path: str, seen: set[str], errors: list):
    for index, item in enumerate(items):
        item_path = f"{path}[{index}]"
        if item.local_id in seen:
            errors.append(
                ValidationIssue(
                    path=f"{item_path}.id",
                    message=f'Duplicate local ID: "{item.local_id}"',
                    code="DUPLICATE_ID",
                )
            )
        seen.add(item.local_id)
        if item.children:
            _check_unique_ids(item.children, f"{item_path}.children", seen, errors)


def _check_types(items: list[WorkItem], path: str, errors: list):
    for index, item in enumerate(items):
        item_path = f"{path}[{index}]"
        if item.type not in KNOWN_TYPES:
            errors.append(
                ValidationIssue(
                    path=f"{item_path}.type",
                    message=f'Unknown work item type "{item.type}". '
                    f"Expected one of: {', '.join(t.value for t in WorkItemType)}",
                    code="INVALID_TYPE",
                )
            )
        if item.children:
            _check_types(item.children, f"{item_path}.children", errors)


def _check_hierarchy(
    items: list[WorkItem],
    path: str,
    allowed: list[str],
    hierarchy_type: str,
    errors: list,
    warnings: list,
):
    for index, item in enumerate(items):
        item_path = f"{path}[{index}]"

        if item.type not in allowed:
            errors.append(
                ValidationIssue(
                    path=f"{item_path}.type",
                    message=f'Invalid work item type "{item.type}" for hierarchy '
                    f'"{hierarchy_type}". Expected one of: {", ".join(allowed)}',
                    code="INVALID_HIERARCHY_TYPE",
                )
            )

        if item.children:
            child_allowed = valid_child_types(item.type)
            if not child_allowed:
                warnings.append(
                    ValidationIssue(
                        path=f"{item_path}.children",
                        message=f'Work item type "{item.type}" typically doesn\'t have children',
                        code="UNEXPECTED_CHILDREN",
                    )
                )
            _check_hierarchy(
                item.children,
                f"{item_path}.children",
                child_allowed,
                hierarchy_type,
                errors,
                warnings,
            )


def _check_task_children(items: list[WorkItem], path: str, warnings: list):
    for index, item in enumerate(items):
        item_path = f"{path}[{index}]"
        if item.children:
            if item.type == WorkItemType.TASK.value:
                warnings.append(
                    ValidationIssue(
                        path=f"{item_path}.children",
                        message="Tasks typically should not have children",
                        code="TASK_WITH_CHILDREN",
                    )
                )
            _check_task_children(item.children, f"{item_path}.children", warnings)


def _check_activities(items: list[WorkItem], path: str, warnings: list):
    # Process templates may add their own activities
    for index, item in enumerate(items):
        item_path = f"{path}[{index}]"
        if item.activity is not None and item.activity not in KNOWN_ACTIVITIES:
            warnings.append(
                ValidationIssue(
                    path=f"{item_path}.activity",
                    message=f'Unknown activity "{item.activity}"',
                    code="UNKNOWN_ACTIVITY",
                )
            )
        if item.children:
            _check_activities(item.children, f"{item_path}.children", warnings)


def check_remote_consistency(doc: Document) -> list[ValidationIssue]:
    """Warn about linked items that have no recorded revision."""
    warnings: list[ValidationIssue] = []

    def check(items: list[WorkItem], path: str):
        for index, item in enumerate(items):
            item_path = f"{path}[{index}]"
            if item.remote and not item.remote.revision:
                warnings.append(
                    ValidationIssue(
                        path=f"{item_path}._ado",
                        message=f'Work item "{item.local_id}" has ADO ID but no revision number',
                        code="MISSING_REV",
                    )
                )
            if item.children:
                check(item.children, f"{item_path}.children")

    check(doc.work_items, "workItems")
    return warnings


def validate_document(doc: Document) -> ValidationResult:
    """
    Validate a loaded document.

    The field schema is re-checked (models can be mutated after loading),
    then ids must be unique, types known, and nesting must follow the
    document's hierarchy type. Hierarchy problems are reported, not fixed.
    """
    try:
        Document.model_validate(doc.model_dump(by_alias=True))
    except ValidationError as e:
        return ValidationResult(valid=False, errors=issues_from_validation_error(e))

    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []

    _check_unique_ids(doc.work_items, "workItems", set(), errors)
    _check_types(doc.work_items, "workItems", errors)
    hierarchy_type = doc.hierarchy_type.value
    _check_hierarchy(
        doc.work_items,
        "workItems",
        valid_root_types(hierarchy_type),
        hierarchy_type,
        errors,
        warnings,
    )
    _check_task_children(doc.work_items, "workItems", warnings)
    _check_activities(doc.work_items, "workItems", warnings)

    if errors:
        logger.debug(f"Document validation found {len(errors)} error(s)")
    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)


def validate_data(data: Any) -> ValidationResult:
    """Validate raw parsed YAML (schema first, then the document rules)."""
    try:
        doc = Document.model_validate(data)
    except ValidationError as e:
        return ValidationResult(valid=False, errors=issues_from_validation_error(e))
    return validate_document(doc)


def ensure_valid(doc: Document) -> ValidationResult:
    """
    Validate ``doc`` and raise if it has errors.

    Raises:
        DocumentValidationError: With the list of issues found
    """
    result = validate_document(doc)
    result.raise_for_errors()
    return result
