"""Contract tests for /auth, /users and the error envelope."""

import pytest

from rukun.models.user import UserStatus


class TestRegisterAndLogin:
    def test_register(self, client):
        response = client.post(
            "/auth/register",
            json={
                "email": "siti@example.com",
                "username": "siti_aminah",
                "password": "rahasia123",
                "address": "Blok A No. 3",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["user"]["username"] == "siti_aminah"
        assert data["user"]["role"] == "warga"
        assert data["user"]["status"] == "active"
        assert "password_hash" not in data["user"]
        assert data["iuran_created"] >= 1

    def test_register_validation_envelope(self, client):
        response = client.post(
            "/auth/register",
            json={"email": "siti@example.com", "username": "siti", "password": "rahasia123"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "validation_error"

    def test_register_duplicate(self, client, warga):
        response = client.post(
            "/auth/register",
            json={
                "email": "lain@example.com",
                "username": warga.username,
                "password": "rahasia123",
            },
        )
        assert response.status_code == 409
        assert response.json() == {
            "error": {"code": "conflict", "message": "Username is already taken"}
        }

    def test_login_and_me(self, client, warga):
        response = client.post(
            "/auth/login", json={"identifier": warga.username, "password": "password123"}
        )

        assert response.status_code == 200
        token = response.json()["access_token"]
        assert response.json()["token_type"] == "bearer"

        me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["id"] == warga.id

    def test_login_wrong_password(self, client, warga):
        response = client.post(
            "/auth/login", json={"identifier": warga.username, "password": "salah12345"}
        )
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "unauthorized"


class TestAuthentication:
    def test_missing_token(self, client):
        response = client.get("/auth/me")
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "unauthorized"

    def test_invalid_token(self, client):
        response = client.get("/auth/me", headers={"Authorization": "Bearer rusak.token"})
        assert response.status_code == 401

    def test_deleted_user_token(self, client, make_user, auth_headers):
        user = make_user("hapus_saya", is_deleted=True)
        response = client.get("/auth/me", headers=auth_headers(user))
        assert response.status_code == 401


class TestOwnProfile:
    def test_push_token(self, client, warga, auth_headers):
        response = client.put(
            "/auth/push-token",
            json={"pushToken": "ExponentPushToken[baru]"},
            headers=auth_headers(warga),
        )
        assert response.status_code == 200

    def test_change_password(self, client, warga, auth_headers):
        response = client.put(
            "/auth/password",
            json={"old_password": "password123", "new_password": "baru12345"},
            headers=auth_headers(warga),
        )
        assert response.status_code == 200

        login = client.post(
            "/auth/login", json={"identifier": warga.username, "password": "baru12345"}
        )
        assert login.status_code == 200

    def test_profile_with_image(self, client, warga, auth_headers):
        response = client.put(
            "/auth/profile",
            data={"position": "Ketua Pemuda"},
            files={"image": ("avatar.png", b"\x89PNG", "image/png")},
            headers=auth_headers(warga),
        )

        assert response.status_code == 200
        assert response.json()["position"] == "Ketua Pemuda"
        assert response.json()["image_url"].startswith("/uploads/")


class TestUsersApi:
    """Officer-only resident management."""

    def test_resident_forbidden(self, client, warga, auth_headers):
        response = client.get("/users", headers=auth_headers(warga))
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "forbidden"

    def test_list_with_pagination(self, client, admin, make_user, auth_headers):
        for _ in range(3):
            make_user()

        response = client.get("/users?limit=2", headers=auth_headers(admin))

        assert response.status_code == 200
        body = response.json()
        assert len(body["data"]) == 2
        assert body["pagination"] == {"total": 4, "total_pages": 2, "current": 1}
        assert body["data"][0]["unpaid_iuran_count"] == 0

    def test_status_change(self, client, admin, warga, auth_headers):
        response = client.patch(
            f"/users/{warga.id}/status",
            json={"status": "away", "statusNote": "Merantau"},
            headers=auth_headers(admin),
        )

        assert response.status_code == 200
        assert response.json()["user"]["status"] == UserStatus.AWAY.value
        assert response.json()["user"]["status_note"] == "Merantau"

    @pytest.mark.parametrize("role_fixture", ["bendahara", "warga"])
    def test_delete_requires_admin(self, request, client, warga, auth_headers, role_fixture):
        actor = request.getfixturevalue(role_fixture)
        response = client.delete(f"/users/{warga.id}", headers=auth_headers(actor))
        assert response.status_code == 403

    def test_delete_and_restore(self, client, admin, warga, auth_headers):
        deleted = client.delete(f"/users/{warga.id}", headers=auth_headers(admin))
        assert deleted.status_code == 200
        assert deleted.json() == {"deleted_unpaid_iuran": 0}

        restored = client.post(f"/users/{warga.id}/restore", headers=auth_headers(admin))
        assert restored.status_code == 200
        assert restored.json()["user"]["is_deleted"] is False

    def test_unknown_user(self, client, admin, auth_headers):
        response = client.get("/users/999", headers=auth_headers(admin))
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "not_found"
