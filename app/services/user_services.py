from app.stores.base_store import MarketplaceStore
from app.models.user_models import Actor, UserResponse
from app.custom_error import UserNotFoundError, ServerError
import logging

# recall __name__ is a special variable in Python that represents the name of the current module.
logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, store: MarketplaceStore):
        self.store = store

    async def get_user(self, clerk_user_id: str) -> UserResponse:
        """Look up the marketplace user behind a clerk user id"""
        try:
            record = await self.store.get_user_by_clerk_id(clerk_user_id)

            if not record:
                raise UserNotFoundError()

            return UserResponse(**record)

        except Exception as e:
            logger.error(f"Error getting user - {str(e)}")
            if isinstance(e, UserNotFoundError):
                raise e
            raise ServerError("Failed to get user")

    # -----------------------------------------------------------------------------------------------------------------------

    async def resolve_actor(self, clerk_user_id: str) -> Actor:
        """Turn an authenticated clerk id into the (id, role) pair the services act on"""
        user = await self.get_user(clerk_user_id)
        return Actor(id=user.id, role=user.role)
