from fastapi import APIRouter, Request, Depends
from app.stores.base_store import MarketplaceStore
from app.utils.service_handlers import get_marketplace_store
from app.services.clerk_webhook_services import ClerkWebhookService
from app.models.clerk_webhook_models import ClerkWebhookEvent
from app.configs.app_settings import settings
from app.custom_error import WebhookError
from svix.webhooks import Webhook, WebhookVerificationError
import logging

logger = logging.getLogger(__name__)

clerk_webhook_router = APIRouter(prefix="/clerk", tags=["Webhooks"])


async def get_clerk_webhook_service(store: MarketplaceStore = Depends(get_marketplace_store)) -> ClerkWebhookService:
    """Dependency to get ClerkWebhookService instance"""
    return ClerkWebhookService(store)


@clerk_webhook_router.post("/webhooks")
async def clerk_webhook(request: Request, webhook_service: ClerkWebhookService = Depends(get_clerk_webhook_service)):
    """Keep the users table in sync with Clerk (user.created / user.updated / user.deleted)"""

    if not settings.CLERK_WEBHOOK_SECRET:
        raise WebhookError("Webhook secret not configured")

    # Get the raw body and headers
    body = await request.body()
    headers = request.headers

    try:
        # This will raise an exception if verification fails
        payload = Webhook(settings.CLERK_WEBHOOK_SECRET).verify(body, headers)
    except WebhookVerificationError as e:
        logger.error(f"Webhook verification failed: {str(e)}")
        raise WebhookError("Invalid webhook signature")

    event = ClerkWebhookEvent(**payload)

    if event.type == "user.created":
        await webhook_service.handle_user_created(event)
    elif event.type == "user.updated":
        await webhook_service.handle_user_updated(event)
    elif event.type == "user.deleted":
        await webhook_service.handle_user_deleted(event)
    else:
        logger.info(f"Unhandled webhook event type: {event.type}")

    return {"status": "success"}
