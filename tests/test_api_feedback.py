"""Tests for the feedback endpoint."""

from httpx import AsyncClient


class TestSubmitFeedback:
    async def test_creates_pending_item(self, client: AsyncClient) -> None:
        response = await client.post(
            "/feedback",
            json={
                "originalQuery": "  cheap red dragons ",
                "translatedQuery": "c:r t:dragon game:paper",
                "issueDescription": "price filter missing",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["id"]
        assert data["originalQuery"] == "cheap red dragons"
        assert data["translatedQuery"] == "c:r t:dragon game:paper"
        assert data["processingStatus"] == "pending"
        assert data["processedAt"] is None

    async def test_item_visible_in_admin_queue(self, client: AsyncClient) -> None:
        created = await client.post(
            "/feedback",
            json={"originalQuery": "blue instants", "issueDescription": "got sorceries"},
        )

        response = await client.get("/admin/feedback", params={"status": "pending"})

        assert response.status_code == 200
        assert [item["id"] for item in response.json()] == [created.json()["id"]]

    async def test_missing_description_rejected(self, client: AsyncClient) -> None:
        response = await client.post("/feedback", json={"originalQuery": "blue instants"})

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert "issueDescription" in response.json()["error"]
