import json
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from svix.webhooks import Webhook

from app.configs.app_settings import settings
from app.custom_error import UserNotFoundError
from app.main import app
from app.models.clerk_webhook_models import ClerkWebhookEvent
from app.models.user_models import UserRole
from app.services.clerk_webhook_services import ClerkWebhookService
from app.services.user_services import UserService
from app.utils.service_handlers import get_marketplace_store

WEBHOOK_SECRET = "whsec_MfKQ9r8GKYqrTwjUPD8ILPZIo2LaLaSw"


def clerk_user(clerk_id="user_123", email="sam@bidbuild.ae", user_type=None, public_role=None) -> dict:
    return {
        "id": clerk_id,
        "primary_email_address_id": "idn_primary",
        "email_addresses": [
            {"id": "idn_other", "email_address": "old@bidbuild.ae"},
            {"id": "idn_primary", "email_address": email},
        ],
        "unsafe_metadata": {"userType": user_type} if user_type else {},
        "public_metadata": {"role": public_role} if public_role else {},
    }


def event(event_type: str, data: dict) -> ClerkWebhookEvent:
    return ClerkWebhookEvent(data=data, object="event", type=event_type)


class TestClerkWebhookService:
    async def test_created_contractor(self, store):
        service = ClerkWebhookService(store)

        assert await service.handle_user_created(event("user.created", clerk_user(user_type="contractor")))

        user = await UserService(store).get_user("user_123")
        assert user.role == UserRole.CONTRACTOR
        assert user.email == "sam@bidbuild.ae"

    async def test_created_defaults_to_homeowner(self, store):
        service = ClerkWebhookService(store)

        await service.handle_user_created(event("user.created", clerk_user()))

        actor = await UserService(store).resolve_actor("user_123")
        assert actor.role == UserRole.HOMEOWNER

    async def test_admin_only_from_public_metadata(self, store):
        service = ClerkWebhookService(store)

        await service.handle_user_created(event("user.created", clerk_user(user_type="admin")))
        assert (await UserService(store).get_user("user_123")).role == UserRole.HOMEOWNER

        await service.handle_user_updated(event("user.updated", clerk_user(public_role="admin")))
        assert (await UserService(store).get_user("user_123")).role == UserRole.ADMIN

    async def test_created_without_email(self, store):
        service = ClerkWebhookService(store)
        data = clerk_user()
        data["email_addresses"] = []

        assert not await service.handle_user_created(event("user.created", data))
        assert store.users == {}

    async def test_deleted(self, store):
        service = ClerkWebhookService(store)
        await service.handle_user_created(event("user.created", clerk_user()))

        assert await service.handle_user_deleted(event("user.deleted", {"id": "user_123"}))
        with pytest.raises(UserNotFoundError):
            await UserService(store).get_user("user_123")


class TestClerkWebhookRoute:
    @pytest.fixture
    def client(self, store, monkeypatch):
        monkeypatch.setattr(settings, "CLERK_WEBHOOK_SECRET", WEBHOOK_SECRET)
        app.dependency_overrides[get_marketplace_store] = lambda: store
        with TestClient(app) as test_client:
            yield test_client
        app.dependency_overrides.clear()

    def signed_headers(self, body: str) -> dict:
        msg_id = "msg_test"
        timestamp = datetime.now(timezone.utc)
        signature = Webhook(WEBHOOK_SECRET).sign(msg_id, timestamp, body)
        return {
            "svix-id": msg_id,
            "svix-timestamp": str(int(timestamp.timestamp())),
            "svix-signature": signature,
            "content-type": "application/json",
        }

    def test_signed_user_created(self, client, store):
        body = json.dumps({"data": clerk_user(user_type="contractor"), "object": "event", "type": "user.created"})

        response = client.post("/api/v1/clerk/webhooks", content=body, headers=self.signed_headers(body))

        assert response.status_code == 200
        assert [user["role"] for user in store.users.values()] == ["contractor"]

    def test_bad_signature_is_400(self, client, store):
        body = json.dumps({"data": clerk_user(), "object": "event", "type": "user.created"})
        headers = self.signed_headers(body)
        headers["svix-signature"] = "v1,invalidsignature"

        response = client.post("/api/v1/clerk/webhooks", content=body, headers=headers)

        assert response.status_code == 400
        assert store.users == {}
