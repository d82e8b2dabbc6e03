"""Tests for the admin feedback queue and rule endpoints."""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from manaquery.db.operations import create_rule
from manaquery.main import app
from manaquery.services.rule_learning import (
    DeterministicRuleSynthesizer,
    FeedbackProcessor,
    get_rule_synthesizer,
)


@pytest.fixture(autouse=True)
def deterministic_synthesizer(client: AsyncClient):
    """Re-triggered items are processed without a model."""
    app.dependency_overrides[get_rule_synthesizer] = DeterministicRuleSynthesizer


async def _submit(client: AsyncClient, query: str) -> str:
    response = await client.post(
        "/feedback", json={"originalQuery": query, "issueDescription": "bad results"}
    )
    return response.json()["id"]


class TestFeedbackQueue:
    async def test_empty_queue(self, client: AsyncClient) -> None:
        response = await client.get("/admin/feedback")

        assert response.status_code == 200
        assert response.json() == []

    async def test_unknown_status_filter_rejected(self, client: AsyncClient) -> None:
        response = await client.get("/admin/feedback", params={"status": "lost"})

        assert response.status_code == 400

    async def test_retrigger_skipped_item(self, client: AsyncClient, session: AsyncSession) -> None:
        feedback_id = await _submit(client, "xyzzy plugh")
        await FeedbackProcessor(session, DeterministicRuleSynthesizer()).process_one(feedback_id)

        response = await client.post(f"/admin/feedback/{feedback_id}/retrigger")

        assert response.status_code == 200
        assert response.json() == {"status": "skipped"}

    async def test_retrigger_pending_item_conflicts(self, client: AsyncClient) -> None:
        feedback_id = await _submit(client, "red creatures")

        response = await client.post(f"/admin/feedback/{feedback_id}/retrigger")

        assert response.status_code == 409
        assert response.json()["success"] is False

    async def test_retrigger_missing_item(self, client: AsyncClient) -> None:
        response = await client.post("/admin/feedback/missing/retrigger")

        assert response.status_code == 404
        assert response.json() == {"error": "Feedback not found", "success": False}

    async def test_archive_completed_item(
        self, client: AsyncClient, session: AsyncSession
    ) -> None:
        feedback_id = await _submit(client, "red creatures")
        await FeedbackProcessor(session, DeterministicRuleSynthesizer()).process_one(feedback_id)

        response = await client.post(f"/admin/feedback/{feedback_id}/archive")
        queue = await client.get("/admin/feedback", params={"status": "archived"})

        assert response.status_code == 200
        assert response.json() == {"status": "archived"}
        assert [item["id"] for item in queue.json()] == [feedback_id]

    async def test_archive_pending_item_conflicts(self, client: AsyncClient) -> None:
        feedback_id = await _submit(client, "red creatures")

        response = await client.post(f"/admin/feedback/{feedback_id}/archive")

        assert response.status_code == 409


class TestRules:
    async def test_learned_rule_listed(self, client: AsyncClient, session: AsyncSession) -> None:
        feedback_id = await _submit(client, "red creatures")
        await FeedbackProcessor(session, DeterministicRuleSynthesizer()).process_one(feedback_id)

        response = await client.get("/admin/rules")

        assert response.status_code == 200
        rules = response.json()
        assert len(rules) == 1
        assert rules[0]["pattern"] == "red creatures"
        assert rules[0]["scryfallSyntax"] == "c:r t:creature game:paper"
        assert rules[0]["isActive"] is True
        assert rules[0]["sourceFeedbackId"] == feedback_id

    async def test_deactivate_rule(self, client: AsyncClient, session: AsyncSession) -> None:
        rule_id = (await create_rule(session, "mass removal", "otag:board-wipe")).id
        await session.commit()

        first = await client.patch(f"/admin/rules/{rule_id}", json={"isActive": False})
        second = await client.patch(f"/admin/rules/{rule_id}", json={"isActive": False})

        assert first.json() == {"status": "inactive"}
        assert second.json() == {"status": "inactive"}

    async def test_inactive_rule_not_used(
        self, client: AsyncClient, session: AsyncSession
    ) -> None:
        rule_id = (await create_rule(session, "mass removal", "otag:board-wipe")).id
        await session.commit()

        active = await client.post(
            "/translate", json={"query": "mass removal", "useCache": False}
        )
        await client.patch(f"/admin/rules/{rule_id}", json={"isActive": False})
        inactive = await client.post(
            "/translate", json={"query": "mass removal", "useCache": False}
        )

        assert active.json()["scryfallQuery"] == "otag:board-wipe game:paper"
        assert inactive.json()["source"] != "pattern_match"

    async def test_toggle_missing_rule(self, client: AsyncClient) -> None:
        response = await client.patch("/admin/rules/missing", json={"isActive": True})

        assert response.status_code == 404
