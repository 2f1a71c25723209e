import pytest

from igdb.fields import (
    build_query,
    field_list,
    fields_for,
    search_clause,
    where_id,
    where_ids,
)


def test_leaf_kind_selects_all_fields():
    assert fields_for("cover") == "*"
    assert fields_for("genre") == "*"


def test_company_expands_its_logo():
    assert field_list("company") == ("*", "logo.*")


def test_game_fields_expand_nested_references_recursively():
    fields = field_list("game")

    assert fields[0] == "*"
    for expected in (
        "cover.*",
        "genres.*",
        "screenshots.*",
        "videos.*",
        "keywords.*",
        "involved_companies.*",
        "involved_companies.company.*",
        "involved_companies.company.logo.*",
        "alternative_names.*",
    ):
        assert expected in fields
    assert len(fields) == len(set(fields))


def test_nested_company_matches_standalone_company_fetch():
    standalone = field_list("company")
    prefix = "involved_companies.company."
    nested = tuple(
        "*" if item == prefix + "*" else item[len(prefix):]
        for item in field_list("game")
        if item.startswith(prefix)
    )

    assert nested == standalone


def test_platform_version_companies_reach_company_logo():
    fields = field_list("platform_version")

    assert "main_manufacturer.company.logo.*" in fields
    assert "companies.company.*" in fields
    assert "platform_version_release_dates.*" in fields


def test_build_query_layout():
    query = build_query("genre", "where id = 5", limit=1)

    assert query == "fields *; where id = 5; limit 1;"


def test_build_query_without_where_and_with_trailing_semicolon():
    assert build_query("theme", limit=10) == "fields *; limit 10;"
    assert build_query("theme", "where id = 1;", limit=2) == "fields *; where id = 1; limit 2;"


@pytest.mark.parametrize("limit, expected", [(0, 20), (-3, 20), ("x", 20), (900, 500)])
def test_build_query_clamps_limit(limit, expected):
    assert build_query("cover", None, limit).endswith(f"limit {expected};")


def test_where_helpers():
    assert where_id("42") == "where id = 42"
    assert where_ids([1, 2, 3]) == "where id = (1, 2, 3)"
    with pytest.raises(ValueError):
        where_ids([])


def test_search_clause_escapes_quotes():
    assert search_clause(' Zelda "Oracle" ') == 'search "Zelda \\"Oracle\\""'
