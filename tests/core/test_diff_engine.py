from ado_sync.core.diff_engine import (
    COMPARE_FIELDS,
    DiffStatus,
    FieldChange,
    WorkItemDiff,
    diff_document,
    diff_work_item,
    format_field_change,
    has_local_changes,
    summarize,
    values_equal,
)


class TestValuesEqual:
    def test_none_only_equals_none(self):
        assert values_equal(None, None)
        assert not values_equal(None, "")
        assert not values_equal(0, None)

    def test_strings_ignore_surrounding_whitespace(self):
        assert values_equal("  Title ", "Title")
        assert not values_equal("Title", "title")

    def test_lists_ignore_order(self):
        assert values_equal(["b", "a"], ["a", "b"])
        assert not values_equal(["a"], ["a", "b"])

    def test_numbers_compare_by_value(self):
        assert values_equal(3, 3.0)
        assert not values_equal(3, 5)


class TestDiffWorkItem:
    def test_item_without_remote_is_new_with_every_set_field(self, make_item):
        item = make_item("pbi-1", title="Login page", state="New", priority=2, tags=["ui"])

        diff = diff_work_item(item, None)

        assert diff.status == DiffStatus.NEW, f"Expected NEW, got {diff.status}"
        assert diff.remote_id is None
        changed = [change.field for change in diff.changes]
        assert changed == ["title", "state", "priority", "tags"], (
            f"Expected changes for every set field in comparison order, got {changed}"
        )
        assert all(change.remote_value is None for change in diff.changes)

    def test_identical_values_are_unchanged(self, make_item, make_remote):
        item = make_item(
            "pbi-1",
            title="  Login page ",
            state="Active",
            tags=["ui", "frontend"],
            assigned_to="Jane Doe",
            remote_id=10,
            rev=3,
        )
        remote = make_remote(
            10,
            rev=3,
            title="Login page",
            fields={
                "System.State": "Active",
                "System.Tags": "frontend; ui",
                "System.AssignedTo": {"displayName": "Jane Doe", "uniqueName": "jane@contoso.com"},
            },
        )

        diff = diff_work_item(item, remote)

        assert diff.status == DiffStatus.UNCHANGED, f"Expected UNCHANGED, got {diff.changes}"
        assert diff.changes == []

    def test_empty_tags_match_missing_remote_tags(self, make_item, make_remote):
        item = make_item("pbi-1", title="A", state="New", remote_id=10, rev=1)
        remote = make_remote(10, rev=1, title="A", fields={"System.Tags": ""})

        assert diff_work_item(item, remote).status == DiffStatus.UNCHANGED

    def test_field_difference_with_same_revision_is_modified(self, make_item, make_remote):
        item = make_item("pbi-1", title="New title", state="New", remote_id=10, rev=5)
        remote = make_remote(10, rev=5, title="Old title")

        diff = diff_work_item(item, remote)

        assert diff.status == DiffStatus.MODIFIED, f"Expected MODIFIED, got {diff.status}"
        assert diff.changes == [
            FieldChange(field="title", local_value="New title", remote_value="Old title")
        ]

    def test_field_difference_with_newer_remote_revision_is_conflict(self, make_item, make_remote):
        item = make_item("pbi-1", title="Local", state="New", remote_id=10, rev=1)
        remote = make_remote(10, rev=5, title="Remote")

        diff = diff_work_item(item, remote)

        assert diff.status == DiffStatus.CONFLICT, f"Expected CONFLICT, got {diff.status}"

    def test_revision_bump_without_field_changes_is_unchanged(self, make_item, make_remote):
        item = make_item("pbi-1", title="Same", state="New", remote_id=10, rev=1)
        remote = make_remote(10, rev=9, title="Same")

        assert diff_work_item(item, remote).status == DiffStatus.UNCHANGED

    def test_missing_local_revision_never_conflicts(self, make_item, make_remote):
        item = make_item("pbi-1", title="Local", state="New", remote_id=10, rev=None)
        remote = make_remote(10, rev=7, title="Remote")

        assert diff_work_item(item, remote).status == DiffStatus.MODIFIED

    def test_has_local_changes(self, make_item, make_remote):
        item = make_item("pbi-1", title="Same", state="New", remote_id=10, rev=1)

        assert not has_local_changes(item, make_remote(10, title="Same"))
        assert has_local_changes(item, make_remote(10, title="Different"))


class TestDiffDocument:
    def test_diffs_every_item_in_document_order(self, make_item, make_document, make_remote):
        child = make_item("task-1", type="Task", title="T", state="New", remote_id=11, rev=1)
        parent = make_item("pbi-1", title="P", state="New", remote_id=10, rev=1, children=[child])
        unlinked = make_item("pbi-2", title="U")
        doc = make_document([parent, unlinked])
        remote_by_id = {10: make_remote(10, title="P"), 11: make_remote(11, type="Task", title="T2")}

        diffs = diff_document(doc, remote_by_id)

        statuses = [(d.local_id, d.status) for d in diffs]
        assert statuses == [
            ("pbi-1", DiffStatus.UNCHANGED),
            ("task-1", DiffStatus.MODIFIED),
            ("pbi-2", DiffStatus.NEW),
        ], f"Unexpected statuses {statuses}"

    def test_linked_item_missing_from_remote_map_is_new(self, make_item, make_document):
        doc = make_document([make_item("pbi-1", remote_id=10, rev=1)])

        diffs = diff_document(doc, {})

        assert diffs[0].status == DiffStatus.NEW


class TestSummaries:
    def test_summarize_counts_statuses(self):
        diffs = [
            WorkItemDiff("a", None, DiffStatus.NEW),
            WorkItemDiff("b", 1, DiffStatus.MODIFIED),
            WorkItemDiff("c", 2, DiffStatus.MODIFIED),
            WorkItemDiff("d", 3, DiffStatus.UNCHANGED),
        ]

        summary = summarize(diffs)

        assert (summary.new, summary.modified, summary.unchanged) == (1, 2, 1)
        assert summary.conflict == 0 and summary.deleted == 0
        assert not summary.has_unresolved, "No conflicts means nothing unresolved"

    def test_conflict_is_unresolved(self):
        summary = summarize([WorkItemDiff("a", 1, DiffStatus.CONFLICT)])

        assert summary.conflict == 1
        assert summary.has_unresolved

    def test_format_field_change(self):
        change = FieldChange(field="state", local_value="Active", remote_value="New")

        assert format_field_change(change) == "state: New → Active"

    def test_format_field_change_empty_and_lists(self):
        change = FieldChange(field="tags", local_value=["ui", "api"], remote_value=None)

        assert format_field_change(change) == "tags: (empty) → ui, api"

    def test_format_field_change_truncates_long_strings(self):
        long_text = "x" * 60
        change = FieldChange(field="description", local_value=long_text, remote_value="short")

        formatted = format_field_change(change)

        assert formatted == f"description: short → {'x' * 47}...", f"Unexpected: {formatted}"

    def test_compare_fields_cover_every_mapped_attribute(self):
        assert len(COMPARE_FIELDS) == 18
        assert COMPARE_FIELDS[0] == "title" and COMPARE_FIELDS[-1] == "tags"
