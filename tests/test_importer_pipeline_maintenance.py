import pytest

from community_app.importer.pipeline import (
    BatchWriter,
    CategoryNotFound,
    canonical_region_id,
    fix_missing_keys,
    load_names,
    normalize_regions,
    plan_key_repairs,
    plan_region_remap,
    resolve_category,
    tag_members,
)
from community_app.importer.pipeline.tagging import TagSummary
from community_app.store.documents import get_category_kind, reference


@pytest.fixture
def legacy_regions(store):
    store.add({"_id": "region.legacy-ssa", "_type": "region", "title": "Sub-Saharan Africa"})
    store.add({"_id": "region.odd", "_type": "region", "title": "Martian Plains"})
    store.add({"_id": "region.unused", "_type": "region", "title": "Eastern Europe"})
    store.add({"_id": "country.ghana", "_type": "country", "title": "Ghana", "region": reference("region.legacy-ssa")})
    store.add({"_id": "country.mars", "_type": "country", "title": "Mars", "region": reference("region.odd")})
    store.add({"_id": "country.nowhere", "_type": "country", "title": "Nowhere"})
    return store


@pytest.mark.parametrize(
    "title, expected",
    [
        ("Africa", "region.africa"),
        ("Sub-Saharan Africa", "region.africa"),
        ("Latin America & the Caribbean", "region.lac"),
        ("Asia–Pacific", "region.asia-pacific"),
        ("Middle East", "region.western-asia"),
        ("Martian Plains", None),
        ("", None),
    ],
)
def test_canonical_region_id(title, expected):
    assert canonical_region_id(title) == expected


def test_plan_region_remap_counts(legacy_regions):
    plan = plan_region_remap(legacy_regions)

    assert plan.counts() == {"already_canonical": 6, "need_remap": 1, "missing_region": 1, "unknown_title": 1}
    assert plan.remaps[0].country_id == "country.ghana"
    assert plan.remaps[0].to_id == "region.africa"


def test_normalize_regions_dry_run_writes_nothing(legacy_regions):
    summary = normalize_regions(legacy_regions, BatchWriter(legacy_regions, dry_run=True), delete_extras=True)

    assert summary.dry_run
    assert summary.patched == 0
    assert summary.deleted_extras == []
    assert legacy_regions.commits == []


def test_normalize_regions_apply_remaps_and_deletes_unused(legacy_regions):
    summary = normalize_regions(legacy_regions, BatchWriter(legacy_regions), delete_extras=True)

    assert summary.upserted == 6
    assert summary.patched == 1
    assert sorted(region["_id"] for region in summary.deleted_extras) == ["region.legacy-ssa", "region.unused"]
    assert legacy_regions.get_document("country.ghana")["region"]["_ref"] == "region.africa"
    assert legacy_regions.get_document("region.odd") is not None
    assert legacy_regions.get_document("region.legacy-ssa") is None


def test_load_names_dedupes_and_skips_blank_lines(tmp_path):
    names_file = tmp_path / "names.txt"
    names_file.write_text("Test University\n\n  nairobi \nTest University\n", encoding="utf-8")

    assert load_names(names_file) == ["Test University", "nairobi"]


def test_resolve_category_lookup_and_creation(store):
    kind = get_category_kind("actionGroup")

    assert resolve_category(store, kind, "sdg publishers") == ("group.publishers", False)
    with pytest.raises(CategoryNotFound):
        resolve_category(store, kind, "Open Access Week")

    placeholder, created = resolve_category(store, kind, "Open Access Week", create=True, dry_run=True)
    assert created and placeholder.startswith("dry-run.")
    assert store.find_category_by_title("actionGroup", "Open Access Week") is None

    new_id, created = resolve_category(store, kind, "Open Access Week", create=True, dry_run=False)
    assert created
    assert store.get_document(new_id)["title"] == "Open Access Week"


def test_tag_members_links_each_member_once(store):
    kind = get_category_kind("actionGroup")
    names = ["Test University", "nairobi", "Unknown Org"]

    outcomes = tag_members(store, names, kind, "group.publishers", BatchWriter(store))

    assert [(o.note, o.strategy) for o in outcomes] == [("Updated", "exact"), ("Updated", "prefix"), ("NotFound", "")]
    refs = store.get_document("member.nairobi")["actionGroups"]
    assert [ref["_ref"] for ref in refs] == ["group.publishers"]
    assert refs[0]["_key"]

    again = tag_members(store, names, kind, "group.publishers", BatchWriter(store))
    summary = TagSummary(group_id="group.publishers", group_title="SDG Publishers", outcomes=again)
    assert summary.counts() == {"Updated": 0, "DryRun": 0, "Already": 2, "NotFound": 1}
    assert len(store.get_document("member.nairobi")["actionGroups"]) == 1


def test_tag_members_dry_run(store):
    kind = get_category_kind("actionGroup")

    outcomes = tag_members(store, ["Test University"], kind, "group.publishers", BatchWriter(store, dry_run=True))

    assert outcomes[0].note == "DryRun"
    assert "actionGroups" not in store.get_document("member.test-university")


def test_fix_missing_keys_preserves_existing_keys(store):
    store.add(
        {
            "_id": "member.keys",
            "_type": "post",
            "title": "Keyless",
            "actionGroups": [
                {"_type": "reference", "_ref": "group.publishers"},
                {"_type": "reference", "_ref": "group.other", "_key": "keep-me"},
            ],
        }
    )

    assert len(plan_key_repairs(store, "actionGroups")) == 1

    patches, summary = fix_missing_keys(store, "actionGroups", BatchWriter(store))

    assert [patch.doc_id for patch in patches] == ["member.keys"]
    assert summary.written == 1
    items = store.get_document("member.keys")["actionGroups"]
    assert all(item.get("_key") for item in items)
    assert items[1]["_key"] == "keep-me"
    assert plan_key_repairs(store, "actionGroups") == []
