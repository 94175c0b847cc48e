"""Tests for user profile routes."""

from unittest.mock import AsyncMock, patch

TEST_USER_ID = "usr_TEST_ONLY_000000"

USER = {
    "id": TEST_USER_ID,
    "email": "seller@example.com",
    "name": "Seller",
    "wallet_address": "0x" + "ab" * 20,
    "is_onboarding_complete": False,
}


class TestProfile:
    def test_get_profile(self, client, auth_headers):
        with patch("app.routes.users.get_user", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = USER
            response = client.get("/users/me", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["id"] == TEST_USER_ID

    def test_update_profile(self, client, auth_headers):
        with patch("app.routes.users.update_user", new_callable=AsyncMock) as mock_update:
            mock_update.return_value = {**USER, "bio": "Hello"}
            response = client.put("/users/me", headers=auth_headers, json={"bio": "Hello"})

        assert response.status_code == 200
        assert mock_update.call_args.args[2] == {"bio": "Hello"}

    def test_update_nothing(self, client, auth_headers):
        response = client.put("/users/me", headers=auth_headers, json={})
        assert response.status_code == 400

    def test_update_bad_wallet(self, client, auth_headers):
        response = client.put("/users/me", headers=auth_headers, json={"wallet_address": "0x12"})
        assert response.status_code == 422

    def test_delete_account(self, client, auth_headers):
        with patch("app.routes.users.delete_user", new_callable=AsyncMock) as mock_delete:
            mock_delete.return_value = True
            response = client.delete("/users/me", headers=auth_headers)

        assert response.status_code == 200
        mock_delete.assert_awaited_once()


class TestOnboarding:
    def test_complete_onboarding(self, client, auth_headers):
        with patch("app.routes.users.get_user", new_callable=AsyncMock) as mock_get, patch(
            "app.routes.users.is_username_available", new_callable=AsyncMock
        ) as mock_available, patch("app.routes.users.update_user", new_callable=AsyncMock) as mock_update:
            mock_get.return_value = USER
            mock_available.return_value = True
            mock_update.return_value = {**USER, "username": "seller_1", "is_onboarding_complete": True}
            response = client.post(
                "/users/onboarding",
                headers=auth_headers,
                json={"username": "seller_1", "name": "Seller"},
            )

        assert response.status_code == 200
        assert response.json()["is_onboarding_complete"] is True
        assert mock_update.call_args.args[2]["is_onboarding_complete"] is True

    def test_username_taken(self, client, auth_headers):
        with patch("app.routes.users.get_user", new_callable=AsyncMock) as mock_get, patch(
            "app.routes.users.is_username_available", new_callable=AsyncMock
        ) as mock_available:
            mock_get.return_value = USER
            mock_available.return_value = False
            response = client.post(
                "/users/onboarding",
                headers=auth_headers,
                json={"username": "taken", "name": "Seller"},
            )

        assert response.status_code == 409

    def test_invalid_username(self, client, auth_headers):
        response = client.post(
            "/users/onboarding",
            headers=auth_headers,
            json={"username": "no spaces!", "name": "Seller"},
        )
        assert response.status_code == 422


class TestLookups:
    def test_check_username(self, client):
        with patch("app.routes.users.is_username_available", new_callable=AsyncMock) as mock_available:
            mock_available.return_value = True
            response = client.get("/users/check-username?username=free_name")

        assert response.status_code == 200
        assert response.json()["available"] is True

    def test_by_wallet_requires_auth(self, client):
        response = client.get("/users/by-wallet?address=0x" + "ab" * 20)
        assert response.status_code == 401

    def test_by_wallet(self, client, auth_headers):
        with patch("app.routes.users.get_user_by_wallet", new_callable=AsyncMock) as mock_lookup:
            mock_lookup.return_value = USER
            response = client.get("/users/by-wallet?address=0x" + "AB" * 20, headers=auth_headers)

        assert response.status_code == 200
