"""Tests for live validation and clause relaxation."""

import asyncio

import httpx
import pytest
import respx

from manaquery.services.scryfall_validator import (
    LiveOutcome,
    ScryfallValidator,
    has_speculative_clause,
    relax_speculative_clauses,
)

BASE_URL = "https://api.scryfall.test"
SEARCH_URL = f"{BASE_URL}/cards/search"


@pytest.fixture
def validator() -> ScryfallValidator:
    return ScryfallValidator(base_url=BASE_URL, backoff=0.0)


def search_results(total: int) -> httpx.Response:
    return httpx.Response(200, json={"object": "list", "total_cards": total, "data": []})


def not_found() -> httpx.Response:
    return httpx.Response(404, json={"object": "error", "code": "not_found"})


class TestRelaxSpeculativeClauses:
    def test_strips_reprint_and_price(self) -> None:
        result = relax_speculative_clauses("t:creature is:reprint usd<10")

        assert result.relaxed_query == "t:creature"
        assert "is:reprint" in result.removed
        assert "usd<10" in result.removed

    def test_no_speculative_clause_is_noop(self) -> None:
        result = relax_speculative_clauses("c:r t:creature")

        assert result.relaxed_query == "c:r t:creature"
        assert result.removed == []

    def test_format_and_identity_are_speculative(self) -> None:
        result = relax_speculative_clauses("t:creature f:modern id:wu")

        assert result.relaxed_query == "t:creature"
        assert result.removed == ["f:modern", "id:wu"]

    @pytest.mark.parametrize(
        ("query", "clause"),
        [("f:modern t:creature", "f:modern"), ("is:reprint t:creature", "is:reprint")],
    )
    def test_leading_clause_is_relaxed(self, query: str, clause: str) -> None:
        result = relax_speculative_clauses(query)

        assert result.relaxed_query == "t:creature"
        assert result.removed == [clause]

    def test_negated_clause_is_kept(self) -> None:
        result = relax_speculative_clauses("t:creature -f:modern")

        assert result.relaxed_query == "t:creature -f:modern"
        assert result.removed == []

    def test_has_speculative_clause(self) -> None:
        assert has_speculative_clause("t:creature usd<=5")
        assert not has_speculative_clause("t:creature")


class TestValidate:
    @respx.mock
    async def test_results_classified_ok(self, validator: ScryfallValidator) -> None:
        respx.get(SEARCH_URL).mock(return_value=search_results(100))

        result = await validator.validate("t:creature")

        assert result.ok
        assert result.total_cards == 100
        assert not result.zero_results
        assert not result.overly_broad

    @respx.mock
    async def test_not_found_is_zero_results(self, validator: ScryfallValidator) -> None:
        respx.get(SEARCH_URL).mock(return_value=not_found())

        result = await validator.validate("t:creature pow>=99")

        assert result.zero_results
        assert not result.ok

    @respx.mock
    async def test_large_result_set_is_overly_broad(self, validator: ScryfallValidator) -> None:
        respx.get(SEARCH_URL).mock(return_value=search_results(20000))

        result = await validator.validate("t:creature")

        assert result.overly_broad

    @respx.mock
    async def test_sends_query_with_extras(self, validator: ScryfallValidator) -> None:
        route = respx.get(SEARCH_URL).mock(return_value=search_results(1))

        await validator.validate("c:r t:creature")

        request = route.calls.last.request
        assert request.url.params["q"] == "c:r t:creature"
        assert request.url.params["extras"] == "true"

    @respx.mock
    async def test_bad_request_reports_details(self, validator: ScryfallValidator) -> None:
        respx.get(SEARCH_URL).mock(
            return_value=httpx.Response(
                400, json={"object": "error", "details": "Unknown keyword 'foo'"}
            )
        )

        result = await validator.validate("foo:bar")

        assert not result.ok
        assert result.status == 400
        assert result.error == "Unknown keyword 'foo'"

    @respx.mock
    async def test_retryable_status_retried(self, validator: ScryfallValidator) -> None:
        route = respx.get(SEARCH_URL).mock(
            side_effect=[httpx.Response(503), search_results(5)]
        )

        result = await validator.validate("t:creature")

        assert result.ok
        assert route.call_count == 2

    @respx.mock
    async def test_network_failure_degrades(self, validator: ScryfallValidator) -> None:
        route = respx.get(SEARCH_URL).mock(side_effect=httpx.ConnectError("unreachable"))

        result = await validator.validate("t:creature")

        assert not result.ok
        assert result.status == 500
        assert route.call_count == validator.max_retries + 1


class TestValidateAndRelax:
    @respx.mock
    async def test_results_leave_query_unchanged(self, validator: ScryfallValidator) -> None:
        respx.get(SEARCH_URL).mock(return_value=search_results(42))

        outcome = await validator.validate_and_relax("c:r t:creature")

        assert outcome.query == "c:r t:creature"
        assert not outcome.changed

    @respx.mock
    async def test_relaxes_until_results(self, validator: ScryfallValidator) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            if "is:reprint" in request.url.params["q"]:
                return not_found()
            return search_results(50)

        respx.get(SEARCH_URL).mock(side_effect=respond)

        outcome = await validator.validate_and_relax("t:creature is:reprint usd<10")

        assert outcome.query == "t:creature usd<10"
        assert outcome.removed == ["is:reprint"]
        assert outcome.validation is not None
        assert outcome.validation.total_cards == 50

    @respx.mock
    async def test_relaxes_leading_clause(self, validator: ScryfallValidator) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            if "f:modern" in request.url.params["q"]:
                return not_found()
            return search_results(8)

        respx.get(SEARCH_URL).mock(side_effect=respond)

        outcome = await validator.validate_and_relax("f:modern t:creature")

        assert outcome.query == "t:creature"
        assert outcome.removed == ["f:modern"]

    @respx.mock
    async def test_falls_back_to_base_query(self, validator: ScryfallValidator) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            if request.url.params["q"] == "c:r game:paper":
                return search_results(12)
            return not_found()

        respx.get(SEARCH_URL).mock(side_effect=respond)

        outcome = await validator.validate_and_relax(
            'o:"xyzzy" is:reprint', fallback_query="c:r game:paper"
        )

        assert outcome.used_fallback
        assert outcome.query == "c:r game:paper"
        assert outcome.removed == ["is:reprint"]

    @respx.mock
    async def test_network_failure_mid_relaxation_keeps_query(
        self, validator: ScryfallValidator
    ) -> None:
        respx.get(SEARCH_URL).mock(
            side_effect=[not_found(), *[httpx.ConnectError("down")] * 3]
        )

        outcome = await validator.validate_and_relax("t:creature is:reprint")

        assert outcome.query == "t:creature is:reprint"
        assert not outcome.changed

    async def test_deadline_abandons_validation(
        self, validator: ScryfallValidator, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def slow(query: str, fallback_query: str | None) -> LiveOutcome:
            await asyncio.sleep(5)
            raise AssertionError("deadline should have fired")

        monkeypatch.setattr(validator, "_validate_and_relax", slow)

        outcome = await validator.validate_and_relax("t:creature", deadline=0.01)

        assert outcome.timed_out
        assert outcome.query == "t:creature"
        assert outcome.validation is None
