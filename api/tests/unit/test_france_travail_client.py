"""
Tests unitarios para client.py (paginación por Range de France Travail).

Verifica:
- Construcción del entête Range respetando los límites 1000 / 1149.
- Lectura del total desde Content-Range.
- Manejo de 200/206/204/401/429/5xx y del rate-limit propio.
"""
from __future__ import annotations

import pytest
import requests

from offres.infrastructure.external.france_travail.client import (
    FranceTravailClient,
    build_range_header,
    clean_filters,
    parse_total_from_content_range,
)
from offres.shared.exceptions.integration import FranceTravailFetchError

SEARCH_URL = "https://api.example/offres/search"


class _FakeResponse:
    def __init__(self, status_code: int, payload=None, headers=None, text: str = "") -> None:
        self.status_code = status_code
        self._payload = payload
        self.headers = headers or {}
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class _FakeSession:
    def __init__(self, responses) -> None:
        self.responses = list(responses)
        self.calls: list[dict] = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class _FakeTokenCache:
    def __init__(self) -> None:
        self.generation = 1
        self.invalidations = 0

    def get_token(self) -> str:
        return f"tok-{self.generation}"

    def invalidate(self) -> None:
        self.invalidations += 1
        self.generation += 1


def _client(session, tokens=None, **kwargs):
    sleeps: list[float] = []
    kwargs.setdefault("request_delay_s", 0)
    client = FranceTravailClient(
        tokens or _FakeTokenCache(),
        search_url=SEARCH_URL,
        session=session,
        sleep=sleeps.append,
        monotonic=lambda: 100.0,
        **kwargs,
    )
    return client, sleeps


def _page(n: int, total: int, start: int = 0) -> _FakeResponse:
    items = [{"id": f"o{start + i}"} for i in range(n)]
    return _FakeResponse(
        206,
        {"resultats": items},
        headers={"Content-Range": f"offres {start}-{start + n - 1}/{total}"},
    )


class TestRangeHeader:
    def test_first_page(self) -> None:
        assert build_range_header(0, 149) == "offres 0-149"

    def test_from_is_clamped_to_1000(self) -> None:
        assert build_range_header(1100, 1249) == "offres 1000-1149"

    def test_to_is_clamped_to_1149(self) -> None:
        assert build_range_header(1000, 1200) == "offres 1000-1149"

    def test_to_never_below_from(self) -> None:
        assert build_range_header(10, 5) == "offres 10-10"


class TestContentRange:
    @pytest.mark.parametrize(
        "header, expected",
        [
            ("offres 0-149/3021", 3021),
            ("offres 0-0/1", 1),
            ("offres 1000-1149/ 1150", 1150),
            ("offres */*", None),
            ("basura", None),
            ("", None),
            (None, None),
        ],
    )
    def test_parse_total(self, header, expected) -> None:
        assert parse_total_from_content_range(header) == expected

    def test_clean_filters_drops_empty_values(self) -> None:
        assert clean_filters({"departement": "31", "motsCles": "", "codeROME": None, "range": 5}) == {
            "departement": "31",
            "range": "5",
        }


class TestFetchPage:
    def test_partial_content_returns_items_and_total(self) -> None:
        session = _FakeSession([_page(150, 3021)])
        client, _ = _client(session)

        page = client.fetch_page({"departement": "31"}, 0, 150)

        assert len(page.items) == 150
        assert page.total == 3021
        call = session.calls[0]
        assert call["url"] == SEARCH_URL
        assert call["params"] == {"departement": "31"}
        assert call["headers"]["Range"] == "offres 0-149"
        assert call["headers"]["Authorization"] == "Bearer tok-1"

    def test_ok_without_content_range_has_unknown_total(self) -> None:
        session = _FakeSession([_FakeResponse(200, {"resultats": [{"id": "a"}]})])
        client, _ = _client(session)

        page = client.fetch_page({}, 0, 150)

        assert page.items == [{"id": "a"}]
        assert page.total is None

    def test_no_content_is_empty_page(self) -> None:
        session = _FakeSession([_FakeResponse(204)])
        client, _ = _client(session)

        page = client.fetch_page({"departement": "976"})

        assert page.items == []
        assert page.total == 0

    def test_page_size_is_capped_at_150(self) -> None:
        session = _FakeSession([_page(150, 500)])
        client, _ = _client(session)

        client.fetch_page({}, 150, 500)

        assert session.calls[0]["headers"]["Range"] == "offres 150-299"

    def test_unauthorized_refreshes_token_once(self) -> None:
        tokens = _FakeTokenCache()
        session = _FakeSession([_FakeResponse(401, text="expired"), _page(3, 3)])
        client, _ = _client(session, tokens=tokens)

        page = client.fetch_page({})

        assert len(page.items) == 3
        assert tokens.invalidations == 1
        assert session.calls[1]["headers"]["Authorization"] == "Bearer tok-2"

    def test_second_unauthorized_raises(self) -> None:
        session = _FakeSession([_FakeResponse(401), _FakeResponse(401)])
        client, _ = _client(session)

        with pytest.raises(FranceTravailFetchError) as exc_info:
            client.fetch_page({})

        assert exc_info.value.upstream_status == 401

    def test_rate_limited_respects_retry_after(self) -> None:
        session = _FakeSession([_FakeResponse(429, headers={"Retry-After": "2"}), _page(1, 1)])
        client, sleeps = _client(session)

        page = client.fetch_page({})

        assert page.total == 1
        assert sleeps == [2.0]

    @pytest.mark.parametrize(
        "retry_after, expected",
        [("-5", 0.0), ("86400", 20.0), ("nan", 1.0)],
    )
    def test_retry_after_is_clamped(self, retry_after: str, expected: float) -> None:
        session = _FakeSession([_FakeResponse(429, headers={"Retry-After": retry_after}), _page(1, 1)])
        client, sleeps = _client(session, min_backoff_s=1.0, max_backoff_s=20.0)

        page = client.fetch_page({})

        assert page.total == 1
        assert sleeps == [expected]

    def test_server_errors_back_off_then_fail(self) -> None:
        session = _FakeSession([_FakeResponse(503, text="down")] * 4)
        client, sleeps = _client(session, max_retries=3, min_backoff_s=1.0, max_backoff_s=20.0)

        with pytest.raises(FranceTravailFetchError) as exc_info:
            client.fetch_page({})

        assert exc_info.value.upstream_status == 503
        assert len(session.calls) == 4
        assert sleeps == [1.0, 2.0, 4.0]

    def test_client_error_is_not_retried(self) -> None:
        session = _FakeSession([_FakeResponse(400, text="bad param")])
        client, sleeps = _client(session)

        with pytest.raises(FranceTravailFetchError) as exc_info:
            client.fetch_page({"departement": "xx"})

        assert exc_info.value.upstream_status == 400
        assert sleeps == []

    def test_network_error_raises_fetch_error(self) -> None:
        session = _FakeSession([requests.Timeout("slow")])
        client, _ = _client(session)

        with pytest.raises(FranceTravailFetchError):
            client.fetch_page({})

    def test_non_json_body_raises(self) -> None:
        session = _FakeSession([_FakeResponse(200, None, text="<html>")])
        client, _ = _client(session)

        with pytest.raises(FranceTravailFetchError):
            client.fetch_page({})

    def test_consecutive_requests_are_throttled(self) -> None:
        session = _FakeSession([_page(1, 1), _page(1, 1)])
        client, sleeps = _client(session, request_delay_s=0.35)

        client.fetch_page({})
        client.fetch_page({})

        assert sleeps == [pytest.approx(0.35)]
