import json
import logging

import pytest

from catalog.normalizer import plan_for
from catalog.schema import ENTITY_TABLES, RELATION_TABLES
from collection.service import CollectionMaterializer, list_entries
from igdb.errors import (
    AuthError,
    InvalidDocumentError,
    NormalizationTransactionError,
)


def _row_counts(store):
    counts = {kind: store.count(kind) for kind in ENTITY_TABLES}
    counts.update({name: store.count_relation(name) for name in RELATION_TABLES})
    return counts


def _game_42():
    return {
        "id": 42,
        "name": "Foo",
        "genres": [{"id": 5, "name": "Platformer"}],
        "involved_companies": [{"id": 9, "company": 3, "developer": True}],
    }


def test_game_42_scenario(store, catalog, normalizer):
    catalog.add("companies", {"id": 3, "name": "Nintendo", "slug": "nintendo"})

    result = normalizer.normalize(_game_42())

    assert result.id == 42
    assert store.get_row("genre", 5)["name"] == "Platformer"
    assert store.get_row("company", 3)["name"] == "Nintendo"
    involved = store.get_row("involved_company", 9)
    assert involved["company_id"] == 3
    assert involved["developer"] is True
    game = store.get_row("game", 42)
    assert game["name"] == "Foo"
    assert game["genres"] == [5]
    assert game["involved_companies"] == [9]
    assert store.related_ids("game_genre_relations", 42) == [5]
    assert store.related_ids("game_involved_company_relations", 42) == [9]
    assert len(catalog.calls_to("companies")) == 1

    before = _row_counts(store)
    normalizer.normalize(_game_42())

    assert _row_counts(store) == before
    assert len(catalog.calls_to("companies")) == 1


def test_normalizing_twice_is_idempotent(store, catalog, normalizer):
    document = {
        "id": 7,
        "name": "Twice",
        "summary": "Same input",
        "cover": {"id": 70, "image_id": "co70", "width": 264, "height": 352},
        "genres": [{"id": 5, "name": "Platformer"}, {"id": 12, "name": "RPG"}],
        "themes": [{"id": 1, "name": "Action"}],
        "screenshots": [{"id": 300, "image_id": "sc300"}],
        "websites": [{"id": 400, "url": "https://example.com", "trusted": True}],
    }

    normalizer.normalize(document)
    first_counts = _row_counts(store)
    first_game = store.get_row("game", 7)

    normalizer.normalize(document)

    assert _row_counts(store) == first_counts
    assert store.get_row("game", 7) == first_game
    assert store.related_ids("game_genre_relations", 7) == [5, 12]


def test_relation_rows_are_written_after_their_sub_entities(store, catalog, normalizer, monkeypatch):
    catalog.add("genres", {"id": 5, "name": "Platformer"})
    catalog.add("companies", {"id": 3, "name": "Nintendo"})
    writes = []
    original_upsert = store.upsert
    original_link = store.link

    def recording_upsert(conn, kind, entity_id, fields):
        writes.append(("upsert", kind, entity_id))
        return original_upsert(conn, kind, entity_id, fields)

    def recording_link(conn, relation, root_id, sub_id):
        writes.append(("link", relation, root_id, sub_id))
        return original_link(conn, relation, root_id, sub_id)

    monkeypatch.setattr(store, "upsert", recording_upsert)
    monkeypatch.setattr(store, "link", recording_link)

    document = {
        "id": 11,
        "name": "Out of order",
        "involved_companies": [{"id": 9, "company": 3, "publisher": True}],
        "cover": 77,
        "genres": [5],
        "release_dates": [{"id": 600, "date": 700000000, "platform": 19, "game": 11}],
    }
    normalizer.normalize(document)

    sub_kinds = {ref.relation: ref.kind for ref in plan_for("game").relations}
    upserted = set()
    for entry in writes:
        if entry[0] == "upsert":
            upserted.add((entry[1], entry[2]))
            continue
        _, relation, root_id, sub_id = entry
        sub_kind = sub_kinds[relation]
        assert (sub_kind, sub_id) in upserted
        assert ("game", root_id) in upserted

    assert writes.index(("upsert", "company", 3)) < writes.index(("upsert", "involved_company", 9))
    assert store.get_row("game", 11)["cover_id"] == 77
    assert store.get_row("cover", 77) is not None


def test_bare_stub_never_overwrites_full_fields(store, catalog, normalizer):
    normalizer.normalize({"id": 1, "name": "First", "cover": 77})
    assert store.get_row("cover", 77)["image_id"] is None

    normalizer.normalize(
        {"id": 2, "name": "Second", "cover": {"id": 77, "image_id": "co77", "width": 264}}
    )
    normalizer.normalize({"id": 3, "name": "Third", "cover": 77})

    cover = store.get_row("cover", 77)
    assert cover["image_id"] == "co77"
    assert cover["width"] == 264


def test_stored_complete_entity_is_not_fetched_again(store, catalog, normalizer):
    normalizer.normalize({"id": 1, "name": "A", "genres": [{"id": 5, "name": "Platformer"}]})

    normalizer.normalize({"id": 2, "name": "B", "genres": [5]})

    assert catalog.calls_to("genres") == []
    assert store.related_ids("game_genre_relations", 2) == [5]
    assert store.get_row("genre", 5)["name"] == "Platformer"


def test_stored_company_referenced_by_bare_id_is_linked_without_rewrite(
    store, catalog, normalizer
):
    catalog.add("companies", {"id": 3, "name": "Nintendo", "slug": "nintendo"})
    normalizer.normalize(_game_42())

    normalizer.normalize(
        {
            "id": 43,
            "name": "Bar",
            "genres": [5],
            "involved_companies": [{"id": 10, "company": 3, "publisher": True}],
        }
    )

    assert store.get_row("involved_company", 10)["company_id"] == 3
    assert store.get_row("company", 3)["name"] == "Nintendo"
    assert store.related_ids("game_genre_relations", 43) == [5]
    assert store.count("company") == 1
    assert len(catalog.calls_to("companies")) == 1


def test_blank_required_field_is_filled_from_catalog(store, catalog, normalizer):
    catalog.add("genres", {"id": 5, "name": "Platformer"})

    result = normalizer.normalize(
        {"id": 1, "name": "Nulls", "genres": [{"id": 5, "name": None, "slug": "platformer"}]}
    )

    genre = store.get_row("genre", 5)
    assert genre["name"] == "Platformer"
    assert genre["slug"] == "platformer"
    assert store.related_ids("game_genre_relations", 1) == [5]
    assert result.skipped == []


@pytest.mark.parametrize("blank", [None, ""])
def test_blank_required_field_never_overwrites_stored_value(store, catalog, normalizer, blank):
    normalizer.normalize({"id": 1, "name": "A", "genres": [{"id": 5, "name": "Platformer"}]})

    normalizer.normalize({"id": 2, "name": "B", "genres": [{"id": 5, "name": blank}]})

    assert store.get_row("genre", 5)["name"] == "Platformer"
    assert store.related_ids("game_genre_relations", 2) == [5]
    assert catalog.calls_to("genres") == []


def test_blank_required_field_reuses_earlier_node_in_document(store, catalog, normalizer):
    normalizer.normalize(
        {
            "id": 1,
            "name": "Duplicates",
            "genres": [{"id": 5, "name": "Platformer"}, {"id": 5, "name": None, "slug": "plat"}],
        }
    )

    genre = store.get_row("genre", 5)
    assert genre["name"] == "Platformer"
    assert genre["slug"] == "plat"
    assert catalog.calls_to("genres") == []


def test_unresolvable_stub_is_fetched_once_per_document(store, catalog, normalizer):
    result = normalizer.normalize(
        {
            "id": 1,
            "name": "Orphans",
            "involved_companies": [
                {"id": 9, "company": 4, "developer": True},
                {"id": 10, "company": 4, "publisher": True},
            ],
        }
    )

    assert len(catalog.calls_to("companies")) == 1
    assert [(s.kind, s.entity_id) for s in result.skipped] == [("company", 4)]
    assert store.get_row("involved_company", 10)["company_id"] is None


def test_unresolvable_stub_is_skipped_with_warning(store, catalog, normalizer, caplog):
    catalog.add("genres", {"id": 5, "name": "Platformer"})

    with caplog.at_level(logging.WARNING, logger="catalog.normalizer"):
        result = normalizer.normalize({"id": 1, "name": "Partial", "genres": [5, 6]})

    assert store.related_ids("game_genre_relations", 1) == [5]
    assert store.get_row("genre", 6) is None
    assert store.get_row("game", 1)["genres"] == [5, 6]
    assert [(s.kind, s.entity_id) for s in result.skipped] == [("genre", 6)]
    assert "Skipping genre 6" in caplog.text


def test_unresolvable_single_reference_leaves_column_unset(store, catalog, normalizer):
    result = normalizer.normalize(
        {"id": 1, "name": "Orphan", "involved_companies": [{"id": 9, "company": 4}]}
    )

    assert store.get_row("involved_company", 9)["company_id"] is None
    assert store.get_row("company", 4) is None
    assert ("company", 4) in [(s.kind, s.entity_id) for s in result.skipped]


def test_malformed_references_are_skipped(store, catalog, normalizer):
    result = normalizer.normalize(
        {
            "id": 1,
            "name": "Messy",
            "genres": [{"name": "No id"}, "abc", {"id": 5, "name": "Platformer"}],
        }
    )

    assert store.related_ids("game_genre_relations", 1) == [5]
    assert [s.reason for s in result.skipped] == ["malformed reference"] * 2


@pytest.mark.parametrize(
    "document",
    [
        {"name": "No id"},
        {"id": "abc", "name": "Bad id"},
        {"id": 1},
        {"id": 1, "name": ""},
        ["not", "a", "mapping"],
    ],
)
def test_invalid_root_is_rejected(store, normalizer, document):
    with pytest.raises(InvalidDocumentError):
        normalizer.normalize(document)

    assert store.count("game") == 0


def test_auth_failure_during_stub_resolution_aborts_sync(store, catalog, normalizer):
    catalog.errors[("genres", 5)] = AuthError("credentials revoked")

    with pytest.raises(AuthError):
        normalizer.normalize({"id": 1, "name": "Blocked", "genres": [5]})

    assert store.count("game") == 0


def test_write_failure_rolls_back_whole_batch(store, normalizer, monkeypatch):
    def failing_link(conn, relation, root_id, sub_id):
        raise RuntimeError("constraint exploded")

    monkeypatch.setattr(store, "link", failing_link)

    with pytest.raises(NormalizationTransactionError, match="constraint exploded"):
        normalizer.normalize(_game_42() | {"involved_companies": []})

    assert store.count("game") == 0
    assert store.count("genre") == 0


def test_raw_data_replaced_on_each_sync(store, normalizer):
    normalizer.normalize({"id": 1, "name": "Game", "summary": "old"})
    normalizer.normalize({"id": 1, "name": "Game", "summary": "new", "rating": 80.5})

    row = store.get_row("game", 1)
    assert row["summary"] == "new"
    assert json.loads(row["raw_data"]) == {
        "id": 1,
        "name": "Game",
        "summary": "new",
        "rating": 80.5,
    }


def test_legacy_category_fills_game_type(store, normalizer):
    normalizer.normalize({"id": 1, "name": "Old", "category": 0})

    assert store.get_row("game", 1)["game_type"] == 0


def test_platform_normalization(store, normalizer):
    result = normalizer.normalize_platform(
        {
            "id": 19,
            "name": "Super Nintendo Entertainment System",
            "abbreviation": "SNES",
            "generation": 4,
            "platform_logo": {"id": 50, "image_id": "pl1"},
            "platform_family": {"id": 5, "name": "Nintendo"},
            "platform_type": {"id": 1, "name": "Console"},
            "websites": [{"id": 70, "url": "https://nintendo.com", "trusted": True}],
            "versions": [5],
        }
    )

    assert result.kind == "platform"
    row = store.get_row("platform", 19)
    assert row["platform_logo_id"] == 50
    assert row["platform_family_id"] == 5
    assert row["platform_type_id"] == 1
    assert row["versions"] == [5]
    assert row["websites"] == [70]
    assert store.related_ids("platform_website_relations", 19) == [70]


def test_platform_version_normalization(store, normalizer):
    normalizer.normalize_platform_version(
        {
            "id": 5,
            "name": "SNES PAL",
            "main_manufacturer": {
                "id": 30,
                "manufacturer": True,
                "company": {"id": 3, "name": "Nintendo"},
            },
            "companies": [30],
            "platform_version_release_dates": [
                {"id": 90, "date": 700000000, "human": "1992"}
            ],
        }
    )

    row = store.get_row("platform_version", 5)
    assert row["main_manufacturer_id"] == 30
    assert store.get_row("platform_version_company", 30)["company_id"] == 3
    assert store.related_ids("platform_version_company_relations", 5) == [30]
    assert store.related_ids("platform_version_release_date_relations", 5) == [90]


def test_plan_orders_dependencies_before_dependents():
    plan = plan_for("game")

    assert "game" not in plan.order
    assert plan.kinds[-1] == "game"
    assert plan.order.index("company_logo") < plan.order.index("company")
    assert plan.order.index("company") < plan.order.index("involved_company")
    assert {ref.relation for ref in plan.relations} >= {
        "game_genre_relations",
        "game_involved_company_relations",
    }


def test_plan_requires_aggregate_root():
    with pytest.raises(ValueError):
        plan_for("genre")


def test_delete_root_keeps_sub_entities(store, catalog, normalizer):
    catalog.add("companies", {"id": 3, "name": "Nintendo"})
    normalizer.normalize(_game_42())

    assert store.delete_root("game", 42) is True

    assert store.count("game") == 0
    assert store.count_relation("game_genre_relations") == 0
    assert store.count_relation("game_involved_company_relations") == 0
    assert store.count("genre") == 1
    assert store.count("company") == 1
    assert store.delete_root("game", 42) is False


def test_delete_root_removes_collection_entries_for_game(store, catalog, normalizer):
    catalog.add("companies", {"id": 3, "name": "Nintendo"})
    normalizer.normalize(_game_42())
    normalizer.normalize({"id": 7, "name": "Other"})
    materializer = CollectionMaterializer(store)
    materializer.materialize("u1", 42)
    materializer.materialize("u2", 42)
    kept = materializer.materialize("u1", 7)

    store.delete_root("game", 42)

    assert [entry["id"] for entry in list_entries(store, "u1")] == [kept["id"]]
    assert list_entries(store, "u2") == []


def test_sync_fetches_root_document(store, catalog, normalizer):
    catalog.add("games", {"id": 42, "name": "Foo", "genres": [{"id": 5, "name": "Platformer"}]})

    result = normalizer.sync("game", 42)

    assert result.id == 42
    assert store.get_row("game", 42)["name"] == "Foo"
    assert "involved_companies.company.*" in catalog.calls_to("games")[0]
