"""
API tests for the credential and sharing endpoints.
"""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient


async def _create_credential(client: AsyncClient, account: dict, name: str = "mail", password: str = "hunter2") -> dict:
    response = await client.post(
        "/api/v1/credentials",
        json={"account_name": name, "password": password, "service_url": "https://mail.example"},
        headers=account["headers"],
    )
    assert response.status_code == 201, response.text
    return response.json()


async def _share(client: AsyncClient, owner: dict, credential_id: int, recipient: dict, pin: str = "1234", **extra):
    return await client.post(
        "/api/v1/sharing",
        json={"credential_id": credential_id, "recipient_id": recipient["id"], "pin": pin, **extra},
        headers=owner["headers"],
    )


# ============== Root Endpoints ==============


class TestRootEndpoints:
    @pytest.mark.asyncio
    async def test_health_check(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_root_endpoint(self, client: AsyncClient):
        response = await client.get("/")
        assert response.status_code == 200
        assert response.json()["name"] == "Credential Vault API"

    @pytest.mark.asyncio
    async def test_security_headers(self, client: AsyncClient, alice):
        response = await client.get("/api/v1/users/me", headers=alice["headers"])
        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["x-frame-options"] == "DENY"
        assert response.headers["cache-control"] == "no-store"
        assert "default-src 'none'" in response.headers["content-security-policy"]


# ============== Users ==============


class TestUsersAPI:
    @pytest.mark.asyncio
    async def test_me(self, client: AsyncClient, alice):
        response = await client.get("/api/v1/users/me", headers=alice["headers"])
        assert response.status_code == 200
        data = response.json()
        assert data["username"] == "alice"
        assert data["has_pin"] is True

    @pytest.mark.asyncio
    async def test_set_pin_requires_password(self, client: AsyncClient, carol):
        response = await client.post(
            "/api/v1/users/me/pin",
            json={"pin": "1234", "password": "wrong-password"},
            headers=carol["headers"],
        )
        assert response.status_code == 401

        me = await client.get("/api/v1/users/me", headers=carol["headers"])
        assert me.json()["has_pin"] is False

    @pytest.mark.asyncio
    async def test_set_pin_format(self, client: AsyncClient, carol):
        response = await client.post(
            "/api/v1/users/me/pin",
            json={"pin": "12ab", "password": "carol-password"},
            headers=carol["headers"],
        )
        assert response.status_code == 422
        assert response.json()["code"] == "INVALID_PIN_FORMAT"

    @pytest.mark.asyncio
    async def test_recent_activity(self, client: AsyncClient, alice):
        response = await client.get("/api/v1/users/me/activity", headers=alice["headers"])
        assert response.status_code == 200
        actions = [entry["action"] for entry in response.json()]
        assert set(actions) == {"register", "set_pin"}

    @pytest.mark.asyncio
    async def test_recent_activity_limit(self, client: AsyncClient, alice):
        for name in ("a", "b", "c", "d", "e", "f"):
            await _create_credential(client, alice, name=name)

        response = await client.get("/api/v1/users/me/activity", headers=alice["headers"])
        assert len(response.json()) == 5

        response = await client.get("/api/v1/users/me/activity?limit=2", headers=alice["headers"])
        assert len(response.json()) == 2


# ============== Credentials ==============


class TestCredentialsAPI:
    @pytest.mark.asyncio
    async def test_create_and_list(self, client: AsyncClient, alice):
        created = await _create_credential(client, alice)
        assert created["account_name"] == "mail"
        assert created["is_shared"] is False
        assert "password" not in created
        assert "encrypted_secret" not in created

        response = await client.get("/api/v1/credentials", headers=alice["headers"])
        assert response.status_code == 200
        assert [c["id"] for c in response.json()] == [created["id"]]

    @pytest.mark.asyncio
    async def test_list_is_private(self, client: AsyncClient, alice, bob):
        await _create_credential(client, alice)
        response = await client.get("/api/v1/credentials", headers=bob["headers"])
        assert response.json() == []

    @pytest.mark.asyncio
    async def test_requires_authentication(self, client: AsyncClient):
        response = await client.get("/api/v1/credentials")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_reveal(self, client: AsyncClient, alice):
        created = await _create_credential(client, alice, password="p@ss word ✓")

        response = await client.post(
            f"/api/v1/credentials/{created['id']}/reveal",
            json={"pin": "1234"},
            headers=alice["headers"],
        )

        assert response.status_code == 200
        assert response.json() == {"id": created["id"], "password": "p@ss word ✓"}
        assert response.headers["cache-control"] == "no-store"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body,status_code,code",
        [
            ({}, 400, "MISSING_PIN"),
            ({"pin": ""}, 400, "MISSING_PIN"),
            ({"pin": "9999"}, 401, "INVALID_PIN"),
        ],
    )
    async def test_reveal_pin_errors(self, client: AsyncClient, alice, body, status_code, code):
        created = await _create_credential(client, alice)
        response = await client.post(
            f"/api/v1/credentials/{created['id']}/reveal",
            json=body,
            headers=alice["headers"],
        )
        assert response.status_code == status_code
        assert response.json()["code"] == code
        assert "hunter2" not in response.text

    @pytest.mark.asyncio
    async def test_reveal_without_configured_pin(self, client: AsyncClient, carol):
        created = await _create_credential(client, carol)
        response = await client.post(
            f"/api/v1/credentials/{created['id']}/reveal",
            json={"pin": "1234"},
            headers=carol["headers"],
        )
        assert response.status_code == 403
        assert response.json()["needs_pin"] is True

    @pytest.mark.asyncio
    async def test_reveal_someone_elses_credential(self, client: AsyncClient, alice, bob):
        created = await _create_credential(client, alice)
        response = await client.post(
            f"/api/v1/credentials/{created['id']}/reveal",
            json={"pin": "1234"},
            headers=bob["headers"],
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_unshared(self, client: AsyncClient, alice):
        created = await _create_credential(client, alice)
        response = await client.delete(f"/api/v1/credentials/{created['id']}", headers=alice["headers"])
        assert response.status_code == 200
        assert response.json() == {"id": created["id"], "deleted": True, "revoked_shares": 0}

        listing = await client.get("/api/v1/credentials", headers=alice["headers"])
        assert listing.json() == []

    @pytest.mark.asyncio
    async def test_delete_shared_needs_confirmation(self, client: AsyncClient, alice, bob):
        created = await _create_credential(client, alice)
        assert (await _share(client, alice, created["id"], bob)).status_code == 201

        refused = await client.delete(f"/api/v1/credentials/{created['id']}", headers=alice["headers"])
        assert refused.status_code == 409
        body = refused.json()
        assert body["requires_confirmation"] is True
        assert body["share_count"] == 1

        confirmed = await client.delete(
            f"/api/v1/credentials/{created['id']}?confirm=true", headers=alice["headers"]
        )
        assert confirmed.status_code == 200
        assert confirmed.json()["revoked_shares"] == 1

        shared_with_bob = await client.get("/api/v1/sharing/shared-with-me", headers=bob["headers"])
        assert shared_with_bob.json() == []


# ============== Sharing ==============


class TestSharingAPI:
    @pytest.mark.asyncio
    async def test_full_sharing_lifecycle(self, client: AsyncClient, alice, bob):
        created = await _create_credential(client, alice)

        response = await _share(client, alice, created["id"], bob)
        assert response.status_code == 201
        grant = response.json()
        assert grant["accepted"] is False
        assert grant["account_name"] == "mail"
        assert grant["owner_username"] == "alice"
        assert grant["recipient_username"] == "bob"
        assert "access_token" not in grant

        listing = await client.get("/api/v1/credentials", headers=alice["headers"])
        assert listing.json()[0]["is_shared"] is True

        shares = await client.get(f"/api/v1/credentials/{created['id']}/shares", headers=alice["headers"])
        assert [s["id"] for s in shares.json()] == [grant["id"]]

        incoming = await client.get("/api/v1/sharing/shared-with-me", headers=bob["headers"])
        assert [s["id"] for s in incoming.json()] == [grant["id"]]

        count = await client.get("/api/v1/sharing/count", headers=alice["headers"])
        assert count.json() == {"active_shares": 1}

        accepted = await client.post(
            f"/api/v1/sharing/{grant['id']}/accept", json={"pin": "1234"}, headers=bob["headers"]
        )
        assert accepted.status_code == 200
        assert accepted.json()["accepted"] is True

        again = await client.post(
            f"/api/v1/sharing/{grant['id']}/accept", json={"pin": "1234"}, headers=bob["headers"]
        )
        assert again.status_code == 409

        revoked = await client.request(
            "DELETE", f"/api/v1/sharing/{grant['id']}", json={"pin": "1234"}, headers=alice["headers"]
        )
        assert revoked.status_code == 204

        outgoing = await client.get("/api/v1/sharing/shared-by-me", headers=alice["headers"])
        assert outgoing.json() == []
        listing = await client.get("/api/v1/credentials", headers=alice["headers"])
        assert listing.json()[0]["is_shared"] is False

    @pytest.mark.asyncio
    async def test_recipient_cannot_reveal_shared_secret(self, client: AsyncClient, alice, bob):
        created = await _create_credential(client, alice)
        grant = (await _share(client, alice, created["id"], bob)).json()
        await client.post(f"/api/v1/sharing/{grant['id']}/accept", json={"pin": "1234"}, headers=bob["headers"])

        response = await client.post(
            f"/api/v1/credentials/{created['id']}/reveal", json={"pin": "1234"}, headers=bob["headers"]
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_share_with_self(self, client: AsyncClient, alice):
        created = await _create_credential(client, alice)
        response = await _share(client, alice, created["id"], alice)
        assert response.status_code == 400
        assert response.json()["code"] == "SELF_SHARE_REJECTED"

    @pytest.mark.asyncio
    async def test_share_requires_pin(self, client: AsyncClient, alice, bob):
        created = await _create_credential(client, alice)
        response = await _share(client, alice, created["id"], bob, pin="0000")
        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_PIN"

    @pytest.mark.asyncio
    async def test_share_with_past_expiration(self, client: AsyncClient, alice, bob):
        created = await _create_credential(client, alice)
        past = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
        response = await _share(client, alice, created["id"], bob, expires_at=past)
        assert response.status_code == 422
        assert response.json()["code"] == "INVALID_SHARE_EXPIRATION"

    @pytest.mark.asyncio
    async def test_share_with_explicit_expiration(self, client: AsyncClient, alice, bob):
        created = await _create_credential(client, alice)
        expires = datetime.now(timezone.utc) + timedelta(days=2)
        response = await _share(client, alice, created["id"], bob, expires_at=expires.isoformat())
        assert response.status_code == 201

        returned = datetime.fromisoformat(response.json()["expires_at"])
        if returned.tzinfo is None:
            returned = returned.replace(tzinfo=timezone.utc)
        assert abs(returned - expires) < timedelta(seconds=1)

    @pytest.mark.asyncio
    async def test_only_recipient_accepts(self, client: AsyncClient, alice, bob, carol):
        created = await _create_credential(client, alice)
        grant = (await _share(client, alice, created["id"], bob)).json()

        response = await client.post(
            f"/api/v1/sharing/{grant['id']}/accept", json={"pin": "1234"}, headers=alice["headers"]
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_recipient_can_drop_a_share(self, client: AsyncClient, alice, bob):
        created = await _create_credential(client, alice)
        grant = (await _share(client, alice, created["id"], bob)).json()

        response = await client.request(
            "DELETE", f"/api/v1/sharing/{grant['id']}", json={"pin": "1234"}, headers=bob["headers"]
        )
        assert response.status_code == 204

        count = await client.get("/api/v1/sharing/count", headers=alice["headers"])
        assert count.json() == {"active_shares": 0}

    @pytest.mark.asyncio
    async def test_unrelated_user_cannot_revoke(self, client: AsyncClient, alice, bob, carol):
        await client.post(
            "/api/v1/users/me/pin",
            json={"pin": "5555", "password": "carol-password"},
            headers=carol["headers"],
        )
        created = await _create_credential(client, alice)
        grant = (await _share(client, alice, created["id"], bob)).json()

        response = await client.request(
            "DELETE", f"/api/v1/sharing/{grant['id']}", json={"pin": "5555"}, headers=carol["headers"]
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_shares_of_foreign_credential(self, client: AsyncClient, alice, bob):
        created = await _create_credential(client, alice)
        response = await client.get(f"/api/v1/credentials/{created['id']}/shares", headers=bob["headers"])
        assert response.status_code == 404
