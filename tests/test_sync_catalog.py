import pandas as pd
import pytest

from igdb.errors import AuthError, ServerError
from scripts.sync_catalog import read_source_ids, sync_ids


def test_read_source_ids_from_csv(tmp_path):
    path = tmp_path / "games.csv"
    path.write_text("Name,IGDB ID\nFoo,42\nBar,42.0\nBaz,\nQux,abc\nZed,7\n", encoding="utf-8")

    assert read_source_ids(path) == [42, 7]


def test_read_source_ids_from_xlsx(tmp_path):
    path = tmp_path / "games.xlsx"
    pd.DataFrame({"id": ["3", "5", "3"], "name": ["a", "b", "c"]}).to_excel(
        path, index=False
    )

    assert read_source_ids(path) == [3, 5]


def test_read_source_ids_requires_id_column(tmp_path):
    path = tmp_path / "games.csv"
    path.write_text("Name\nFoo\n", encoding="utf-8")

    with pytest.raises(ValueError):
        read_source_ids(path)


def test_sync_ids_collects_failures(store, catalog, normalizer):
    catalog.add("games", {"id": 1, "name": "One", "genres": [5]})
    catalog.errors[("games", 3)] = ServerError("IGDB unavailable")

    summary = sync_ids(normalizer, [1, 2, 3])

    assert summary["synced"] == [1]
    assert set(summary["failed"]) == {2, 3}
    assert "IGDB unavailable" in summary["failed"][3]
    assert summary["skipped_references"] == 1
    assert store.get_row("game", 1)["name"] == "One"


def test_sync_ids_stops_on_auth_failure(catalog, normalizer):
    catalog.errors[("games", 1)] = AuthError("invalid client secret")

    with pytest.raises(AuthError):
        sync_ids(normalizer, [1, 2])


def test_sync_ids_rejects_non_root_kind(normalizer):
    with pytest.raises(ValueError):
        sync_ids(normalizer, [1], kind="genre")
