from fastapi import Depends
from fastapi_clerk_auth import ClerkConfig, ClerkHTTPBearer, HTTPAuthorizationCredentials
from app.configs.app_settings import settings
from app.custom_error import AuthenticationError, PermissionDeniedError
from app.models.user_models import Actor, UserRole
from app.services.user_services import UserService
from app.stores.base_store import MarketplaceStore
from app.utils.service_handlers import get_marketplace_store
from typing import Callable, Optional


# "clerk_auth_guard" runs first (as an instance of ClerkHTTPBearer) to:
# - Read the Authorization: Bearer <JWT> header from the incoming request.
# - validate the JWT (using the JWKS URL in "clerk_config").
# - return the decoded HTTPAuthorizationCredentials if successful.
# Clerk puts the user ID in the 'sub' claim; get_current_actor then maps it to the marketplace user and role.

clerk_config = ClerkConfig(jwks_url=settings.CLERK_JWKS_URL)
clerk_auth_guard = ClerkHTTPBearer(config=clerk_config)
# same check for routes that anonymous visitors may also call: no token yields None instead of a 403
optional_clerk_auth_guard = ClerkHTTPBearer(config=clerk_config, auto_error=False)


async def get_current_clerk_user_id(credentials: Optional[HTTPAuthorizationCredentials] = Depends(clerk_auth_guard)) -> str:
    """Extract clerk user ID from JWT token"""

    if not credentials:
        raise AuthenticationError("Authentication required")

    clerk_user_id = credentials.decoded.get("sub")

    if not clerk_user_id:
        raise AuthenticationError("Invalid token: user ID not found")

    return clerk_user_id


async def get_current_actor(
    clerk_user_id: str = Depends(get_current_clerk_user_id),
    store: MarketplaceStore = Depends(get_marketplace_store),
) -> Actor:
    """Authenticated actor (marketplace user id + role) for the services"""
    return await UserService(store).resolve_actor(clerk_user_id)


async def get_optional_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_clerk_auth_guard),
    store: MarketplaceStore = Depends(get_marketplace_store),
) -> Optional[Actor]:
    """Actor for a valid token, None for anonymous visitors or a token that did not verify"""
    if not credentials or not credentials.decoded:
        return None

    clerk_user_id = credentials.decoded.get("sub")
    if not clerk_user_id:
        return None

    return await UserService(store).resolve_actor(clerk_user_id)


def require_roles(*allowed_roles: UserRole) -> Callable:
    """Capability check evaluated before a service is called: actor.role must be one of allowed_roles"""

    async def role_guard(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed_roles:
            allowed = ", ".join(role.value for role in allowed_roles)
            raise PermissionDeniedError(f"This action requires one of the roles: {allowed}")
        return actor

    return role_guard
