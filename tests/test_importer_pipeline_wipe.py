import pytest

from community_app.importer.pipeline import (
    MEMBERS,
    MEMBERSHIPS,
    SUBMITTED_MEMBERS,
    BatchWriter,
    execute_wipe,
    plan_wipe,
    reference_cleanup_patch,
)
from community_app.store import InMemoryContentStore, TransactionCommitError


def test_reference_cleanup_patch_unsets_and_filters():
    document = {
        "_id": "doc.1",
        "_type": "post",
        "post": {"_type": "reference", "_ref": "member.a"},
        "actionGroups": [
            {"_type": "reference", "_ref": "member.a", "_key": "k1"},
            {"_type": "reference", "_ref": "group.keep", "_key": "k2"},
        ],
        "forums": [{"_type": "reference", "_ref": "member.b", "_key": "k3"}],
        "title": "Untouched",
    }

    patch = reference_cleanup_patch(document, {"member.a", "member.b"})

    assert patch.doc_id == "doc.1"
    assert sorted(patch.unset) == ["forums", "post"]
    assert patch.set_values == {"actionGroups": [{"_type": "reference", "_ref": "group.keep", "_key": "k2"}]}


def test_reference_cleanup_patch_returns_none_when_clean():
    assert reference_cleanup_patch({"_id": "doc.1", "title": "x"}, {"member.a"}) is None


def test_store_refuses_to_delete_referenced_member(store):
    with pytest.raises(TransactionCommitError):
        store.transaction().delete("member.nairobi").commit()


def test_wipe_members_cleans_membership_references_first(store):
    writer = BatchWriter(store)

    plan = plan_wipe(store, MEMBERS)
    summary = execute_wipe(plan, writer)

    assert summary.found == 4
    assert summary.deleted == 4
    assert summary.references_cleaned == 1
    assert store.count_of_type("post") == 0
    assert "post" not in store.get_document("membership.existing")


def test_wipe_memberships(store):
    summary = execute_wipe(plan_wipe(store, MEMBERSHIPS), BatchWriter(store))

    assert summary.as_dict()["deleted"] == 1
    assert store.count_of_type("priorityMembership") == 0
    assert store.count_of_type("post") == 4


def test_wipe_submitted_members_only(store):
    plan = plan_wipe(store, SUBMITTED_MEMBERS)

    assert plan.ids == ["member.pending"]
    execute_wipe(plan, BatchWriter(store))
    assert store.get_document("member.pending") is None
    assert store.get_document("member.test-university") is not None


def test_wipe_dry_run_reports_without_writing(store):
    before = store.ping()

    summary = execute_wipe(plan_wipe(store, MEMBERS), BatchWriter(store, dry_run=True))

    assert summary.dry_run
    assert summary.deleted == 4
    assert summary.references_cleaned == 1
    assert store.ping() == before
    assert store.commits == []


def test_wipe_empty_target_is_noop():
    empty = InMemoryContentStore()
    summary = execute_wipe(plan_wipe(empty, MEMBERSHIPS), BatchWriter(empty))
    assert summary.found == 0
    assert empty.commits == []
