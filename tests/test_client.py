from urllib.error import URLError

import pytest

from igdb.client import IGDBClient, cover_url_from_cover
from igdb.errors import ClientError, NotFoundError, RateLimitError, ServerError
from tests.catalog_helpers import ScriptedOpener, http_error, make_context


def _client(outcomes, *, max_retries=3, backoff=1.0):
    opener = ScriptedOpener(outcomes)
    sleeps: list[float] = []
    context = make_context()
    client = IGDBClient(
        context,
        user_agent="CatalogTests/1.0",
        max_retries=max_retries,
        backoff=backoff,
        opener=opener,
        sleep=sleeps.append,
    )
    return client, opener, sleeps, context


def test_request_posts_plain_text_query_with_auth_headers():
    client, opener, _sleeps, _context = _client([[{"id": 1}]])

    result = client.request("games", "fields *; where id = 1; limit 1;")

    assert result == [{"id": 1}]
    request = opener.requests[0]
    assert request.full_url == "https://api.igdb.com/v4/games"
    assert request.get_method() == "POST"
    assert request.data == b"fields *; where id = 1; limit 1;"
    assert request.get_header("Client-id") == "client"
    assert request.get_header("Authorization") == "Bearer token"
    assert request.get_header("Content-type") == "text/plain"
    assert request.get_header("User-agent") == "CatalogTests/1.0"


def test_empty_array_and_empty_body_are_valid_results():
    client, _opener, _sleeps, _context = _client([[], b""])

    assert client.request("games", "fields *;") == []
    assert client.request("games", "fields *;") == []


def test_single_object_is_wrapped_in_list():
    client, _opener, _sleeps, _context = _client([{"id": 7, "name": "Solo"}])

    assert client.request("games", "fields *;") == [{"id": 7, "name": "Solo"}]


def test_rate_limited_requests_back_off_exponentially_then_succeed():
    client, opener, sleeps, _context = _client(
        [http_error(429), http_error(429), [{"id": 1}]]
    )

    assert client.request("games", "fields *;") == [{"id": 1}]
    assert sleeps == [2.0, 4.0]
    assert len(opener.requests) == 3


def test_retry_after_header_extends_backoff():
    client, _opener, sleeps, _context = _client(
        [http_error(429, headers={"Retry-After": "7"}), []]
    )

    client.request("games", "fields *;")

    assert sleeps == [7.0]


def test_rate_limit_exhaustion_raises_rate_limit_error():
    client, opener, sleeps, _context = _client([http_error(429)] * 3)

    with pytest.raises(RateLimitError):
        client.request("games", "fields *;")
    assert len(opener.requests) == 3
    assert sleeps == [2.0, 4.0]


def test_client_errors_are_not_retried():
    client, opener, sleeps, context = _client([http_error(400, b"Syntax Error")])

    with pytest.raises(ClientError) as excinfo:
        client.request("games", "fields nonsense")

    assert excinfo.value.status == 400
    assert "Syntax Error" in str(excinfo.value)
    assert len(opener.requests) == 1
    assert sleeps == []
    assert context.tokens.invalidated == 0


def test_unauthorized_invalidates_cached_token():
    client, _opener, _sleeps, context = _client([http_error(401)])

    with pytest.raises(ClientError) as excinfo:
        client.request("games", "fields *;")

    assert excinfo.value.status == 401
    assert context.tokens.invalidated == 1


def test_server_errors_retry_with_linear_backoff():
    client, opener, sleeps, _context = _client(
        [http_error(502), URLError("timed out"), [{"id": 3}]], backoff=0.5
    )

    assert client.request("games", "fields *;") == [{"id": 3}]
    assert sleeps == [0.5, 1.0]
    assert len(opener.requests) == 3


def test_server_error_exhaustion_raises_server_error():
    client, _opener, sleeps, _context = _client([http_error(500)] * 3)

    with pytest.raises(ServerError):
        client.request("games", "fields *;")
    assert sleeps == [1.0, 2.0]


def test_invalid_json_raises_server_error():
    client, _opener, _sleeps, _context = _client([b"<html>"])

    with pytest.raises(ServerError):
        client.request("games", "fields *;")


def test_every_attempt_waits_for_a_rate_limiter_slot():
    client, _opener, _sleeps, context = _client([http_error(503), []])
    slots = []
    original = context.limiter.await_slot

    def counting_slot():
        slots.append(1)
        return original()

    context.limiter.await_slot = counting_slot
    client.request("games", "fields *;")

    assert len(slots) == 2


def test_get_game_raises_not_found_for_empty_result():
    client, opener, _sleeps, _context = _client([[]])

    with pytest.raises(NotFoundError):
        client.get_game(99)
    assert "where id = 99;" in opener.bodies[0]
    assert opener.bodies[0].endswith("limit 1;")


def test_search_platforms_matches_name_or_alternative_name():
    client, opener, _sleeps, _context = _client([[]])

    client.search_platforms('Super "NES"')

    body = opener.bodies[0]
    assert 'where name ~ *"Super \\"NES\\""* | alternative_name ~ *"Super \\"NES\\""*;' in body
    assert opener.requests[0].full_url.endswith("/platforms")


def test_get_parent_platform_queries_versions():
    client, opener, _sleeps, _context = _client([[{"id": 19, "name": "SNES"}]])

    assert client.get_parent_platform(5)["id"] == 19
    assert "where versions = (5);" in opener.bodies[0]


def test_cover_url_from_cover():
    assert (
        cover_url_from_cover({"image_id": "co1abc"})
        == "https://images.igdb.com/igdb/image/upload/t_cover_big/co1abc.jpg"
    )
    assert cover_url_from_cover("sc9", "t_screenshot_med").endswith(
        "/t_screenshot_med/sc9.jpg"
    )
    assert cover_url_from_cover({"image_id": None}) == ""
    assert cover_url_from_cover(None) == ""
