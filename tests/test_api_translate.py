"""Tests for the translation endpoint."""

from httpx import AsyncClient

from manaquery.config import MAX_INPUT_LENGTH
from manaquery.main import app
from manaquery.services.rate_limiter import RateLimiter, get_rate_limiter


class TestTranslateSuccess:
    async def test_returns_camel_case_result(self, client: AsyncClient) -> None:
        response = await client.post("/translate", json={"query": "red creatures"})

        assert response.status_code == 200
        data = response.json()
        assert data["originalQuery"] == "red creatures"
        assert data["scryfallQuery"] == "c:r t:creature game:paper"
        assert data["success"] is True
        assert data["source"] == "deterministic"
        assert data["explanation"]["confidence"] == 1.0
        assert isinstance(data["responseTimeMs"], int)
        assert "X-Request-Id" in response.headers

    async def test_structured_filters(self, client: AsyncClient) -> None:
        response = await client.post(
            "/translate",
            json={"query": "red creatures", "filters": {"colorIdentity": ["g"]}},
        )

        assert response.status_code == 200
        assert response.json()["scryfallQuery"] == "id<=g t:creature f:commander game:paper"

    async def test_second_request_served_from_cache(self, client: AsyncClient) -> None:
        await client.post("/translate", json={"query": "red creatures"})
        response = await client.post("/translate", json={"query": "Red Creatures"})

        assert response.status_code == 200
        data = response.json()
        assert data["source"] == "cache"
        assert data["originalQuery"] == "Red Creatures"

    async def test_use_cache_false(self, client: AsyncClient) -> None:
        await client.post("/translate", json={"query": "red creatures"})
        response = await client.post(
            "/translate", json={"query": "red creatures", "useCache": False}
        )

        assert response.json()["source"] == "deterministic"


class TestTranslateErrors:
    async def test_blank_query(self, client: AsyncClient) -> None:
        response = await client.post("/translate", json={"query": "   "})

        assert response.status_code == 400
        data = response.json()
        assert data["success"] is False
        assert "Query is required" in data["error"]

    async def test_oversized_query(self, client: AsyncClient) -> None:
        response = await client.post(
            "/translate", json={"query": "a" * (MAX_INPUT_LENGTH + 1)}
        )

        assert response.status_code == 400
        assert response.json()["success"] is False

    async def test_malformed_json(self, client: AsyncClient) -> None:
        response = await client.post(
            "/translate",
            content=b'{"query": "red',
            headers={"content-type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Request body is not valid JSON", "success": False}

    async def test_unsupported_filter_format(self, client: AsyncClient) -> None:
        response = await client.post(
            "/translate",
            json={"query": "red creatures", "filters": {"format": "not-a-format"}},
        )

        assert response.status_code == 400
        assert "Unsupported format" in response.json()["error"]

    async def test_unknown_filter_field(self, client: AsyncClient) -> None:
        response = await client.post(
            "/translate",
            json={"query": "red creatures", "filters": {"power": 3}},
        )

        assert response.status_code == 400

    async def test_operator_spam(self, client: AsyncClient) -> None:
        response = await client.post("/translate", json={"query": "t: t: t: t:"})

        assert response.status_code == 400
        assert "repeated empty operators" in response.json()["error"]


class TestRateLimiting:
    async def test_session_limit_returns_429(self, client: AsyncClient) -> None:
        limiter = RateLimiter(session_limit=1, ip_limit=5, global_limit=10)
        app.dependency_overrides[get_rate_limiter] = lambda: limiter
        headers = {"x-session-id": "abc"}

        first = await client.post("/translate", json={"query": "red creatures"}, headers=headers)
        second = await client.post("/translate", json={"query": "red creatures"}, headers=headers)

        assert first.status_code == 200
        assert second.status_code == 429
        assert second.json()["success"] is False
        assert int(second.headers["Retry-After"]) >= 1

    async def test_other_session_unaffected(self, client: AsyncClient) -> None:
        limiter = RateLimiter(session_limit=1, ip_limit=5, global_limit=10)
        app.dependency_overrides[get_rate_limiter] = lambda: limiter

        await client.post("/translate", json={"query": "red creatures"}, headers={"x-session-id": "a"})
        response = await client.post(
            "/translate", json={"query": "red creatures"}, headers={"x-session-id": "b"}
        )

        assert response.status_code == 200

    async def test_forwarded_ip_limited(self, client: AsyncClient) -> None:
        limiter = RateLimiter(session_limit=1, ip_limit=1, global_limit=10)
        app.dependency_overrides[get_rate_limiter] = lambda: limiter
        headers = {"x-forwarded-for": "203.0.113.7, 10.0.0.1"}

        await client.post("/translate", json={"query": "red creatures"}, headers=headers)
        blocked = await client.post("/translate", json={"query": "red creatures"}, headers=headers)
        other = await client.post(
            "/translate",
            json={"query": "red creatures"},
            headers={"x-forwarded-for": "198.51.100.2"},
        )

        assert blocked.status_code == 429
        assert other.status_code == 200
        assert limiter.entry("ip:203.0.113.7").count == 1

    async def test_rejected_input_still_counts(self, client: AsyncClient) -> None:
        limiter = RateLimiter(session_limit=1, ip_limit=5, global_limit=10)
        app.dependency_overrides[get_rate_limiter] = lambda: limiter
        headers = {"x-session-id": "abc"}

        await client.post("/translate", json={"query": "t: t: t: t:"}, headers=headers)
        response = await client.post(
            "/translate", json={"query": "red creatures"}, headers=headers
        )

        assert response.status_code == 429


class TestPreflight:
    async def test_options_returns_cors_headers(self, client: AsyncClient) -> None:
        response = await client.options("/translate")

        assert response.status_code == 204
        assert "POST" in response.headers["Access-Control-Allow-Methods"]
        assert "x-session-id" in response.headers["Access-Control-Allow-Headers"]
