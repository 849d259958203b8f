from app.stores.base_store import MarketplaceStore
from app.models.clerk_webhook_models import ClerkWebhookEvent
from app.models.user_models import UserCreate, UserRole
from app.custom_error import ServerError
from typing import Optional
import logging

logger = logging.getLogger(__name__)


class ClerkWebhookService:
    def __init__(self, store: MarketplaceStore):
        self.store = store

    def _get_primary_email(self, user_data: dict) -> Optional[str]:
        """Extract primary email using primary_email_address_id"""

        primary_email_id = user_data.get("primary_email_address_id")
        email_addresses = user_data.get("email_addresses", [])

        # Find the email with matching ID
        for email in email_addresses:
            if email.get("id") == primary_email_id:
                return email.get("email_address")

        # Fallback: return first email if primary not found
        if email_addresses:
            return email_addresses[0].get("email_address")

        return None

    def _get_role(self, user_data: dict) -> Optional[UserRole]:
        """Role picked at sign-up (unsafe_metadata.userType); admin is only ever granted through public_metadata"""
        public_metadata = user_data.get("public_metadata") or {}
        if public_metadata.get("role") == UserRole.ADMIN.value:
            return UserRole.ADMIN

        user_type = (user_data.get("unsafe_metadata") or {}).get("userType")
        if user_type == UserRole.CONTRACTOR.value:
            return UserRole.CONTRACTOR
        if user_type == UserRole.HOMEOWNER.value:
            return UserRole.HOMEOWNER
        return None

    # --------------------------------------------------------------------------------------------------------------------

    async def handle_user_created(self, event: ClerkWebhookEvent) -> bool:
        """Handle user.created webhook event"""

        try:
            user_data = event.data
            clerk_user_id = user_data.get("id")
            primary_email = self._get_primary_email(user_data)

            if not primary_email:
                logger.error(f"No email found for user {clerk_user_id}")
                return False

            role = self._get_role(user_data) or UserRole.HOMEOWNER  # default to homeowner
            user_record = UserCreate(clerk_user_id=clerk_user_id, email=primary_email, role=role).model_dump(mode="json")

            result = await self.store.insert_user(user_record)

            if result:
                logger.info(f"✅ User created: {clerk_user_id} ({role.value})")
                return True

            logger.error(f"❌ Failed to create user: {clerk_user_id}")
            return False

        except Exception as e:
            logger.error(f"Error handling user.created webhook: {str(e)}")
            raise ServerError(f"Webhook processing failed: {str(e)}")

    # --------------------------------------------------------------------------------------------------------------------

    async def handle_user_updated(self, event: ClerkWebhookEvent) -> bool:
        """Handle user.updated webhook event"""

        try:
            user_data = event.data
            clerk_user_id = user_data.get("id")

            update_data = {}
            primary_email = self._get_primary_email(user_data)
            if primary_email:
                update_data["email"] = primary_email
            role = self._get_role(user_data)
            if role:
                update_data["role"] = role.value

            if not update_data:
                return False

            result = await self.store.update_user_by_clerk_id(clerk_user_id, update_data)

            if result:
                logger.info(f"✅ User updated: {clerk_user_id}")
                return True

            logger.error(f"❌ Failed to update user: {clerk_user_id}")
            return False

        except Exception as e:
            logger.error(f"Error handling user.updated webhook: {str(e)}")
            raise ServerError(f"Webhook processing failed: {str(e)}")

    # --------------------------------------------------------------------------------------------------------------------

    async def handle_user_deleted(self, event: ClerkWebhookEvent) -> bool:
        """Handle user.deleted webhook event"""

        try:
            clerk_user_id = event.data.get("id")
            deleted = await self.store.delete_user_by_clerk_id(clerk_user_id)

            if deleted:
                logger.info(f"✅ User deleted: {clerk_user_id}")
            else:
                logger.error(f"❌ Failed to delete user: {clerk_user_id}")
            return deleted

        except Exception as e:
            logger.error(f"Error handling user.deleted webhook: {str(e)}")
            raise ServerError(f"Webhook processing failed: {str(e)}")
