"""Integration tests for /api/leaderboard."""

import pytest


class TestLeaderboard:
    """Test GET /api/leaderboard."""

    @pytest.mark.asyncio
    async def test_defaults_to_creators(self, client, signup):
        account = await signup()
        await client.post("/api/characters/mint", headers=account["headers"])

        response = await client.get("/api/leaderboard")

        assert response.status_code == 200
        board = response.json()["data"]
        assert len(board) == 1
        assert board[0]["username"] == account["user"]["username"]
        assert board[0]["character_count"] == 1
        assert board[0]["rank"] == 1

    @pytest.mark.asyncio
    async def test_gardeners(self, client, signup):
        owner = await signup()
        gardener = await signup()
        minted = await client.post("/api/characters/mint", headers=owner["headers"])
        character_id = minted.json()["data"]["id"]
        await client.post(f"/api/characters/{character_id}/water", headers=gardener["headers"])

        response = await client.get("/api/leaderboard?type=gardeners")

        assert response.json()["data"] == [
            {
                "username": gardener["user"]["username"],
                "solana_address": gardener["user"]["solana_address"],
                "waters_given": 1,
                "rank": 1,
            }
        ]

    @pytest.mark.asyncio
    async def test_empty_loved_board(self, client):
        response = await client.get("/api/leaderboard?type=loved&limit=5")

        assert response.status_code == 200
        assert response.json() == {"success": True, "data": []}

    @pytest.mark.asyncio
    async def test_invalid_type(self, client):
        response = await client.get("/api/leaderboard?type=authors")

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Invalid leaderboard type"}


class TestUserStats:
    """Test GET /api/leaderboard/user/{address}."""

    @pytest.mark.asyncio
    async def test_user_stats(self, client, signup):
        account = await signup()
        await client.post("/api/characters/mint", headers=account["headers"])
        address = account["user"]["solana_address"]

        response = await client.get(f"/api/leaderboard/user/{address}")

        assert response.status_code == 200
        stats = response.json()["data"]
        assert stats["user"]["username"] == account["user"]["username"]
        assert stats["characters"]["total"] == 1
        assert stats["waters"] == {"given": 0, "received": 0}
        assert stats["lore"] == {"submissions": 0}

    @pytest.mark.asyncio
    async def test_unknown_user(self, client):
        response = await client.get("/api/leaderboard/user/NoSuchAddress")

        assert response.status_code == 404
        assert response.json()["error"] == "User not found"
