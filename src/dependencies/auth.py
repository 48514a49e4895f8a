from typing import Annotated, List, Optional

from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.api.auth.models import DecodedToken
from src.config.constants import UserRole
from src.dependencies.firebase import auth
from src.shared.exceptions import ForbiddenException, UnauthorizedException

security = HTTPBearer(auto_error=False)
optional_security = HTTPBearer(auto_error=False)


async def verify_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
) -> DecodedToken:
    if not credentials or not credentials.credentials:
        raise UnauthorizedException(detail="Authentication token is missing")

    try:
        decoded_token_dict = auth.verify_id_token(credentials.credentials)
        return DecodedToken(**decoded_token_dict)
    except Exception as e:
        raise UnauthorizedException(detail=f"Invalid authentication credentials: {e}")


async def get_current_user(
    decoded_token: Annotated[DecodedToken, Depends(verify_token)],
) -> DecodedToken:
    return decoded_token


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(optional_security),
) -> Optional[DecodedToken]:
    """
    Extract user information from Bearer token if provided.
    Anonymous visitors (no token or an invalid one) get None, so activity
    tracking and recommendations keep working for them.
    """
    if not credentials or not credentials.credentials:
        return None

    try:
        return DecodedToken(**auth.verify_id_token(credentials.credentials))
    except Exception:
        return None


class RoleChecker:
    def __init__(self, allowed_roles: List[UserRole]):
        self.allowed_roles = allowed_roles

    async def __call__(
        self,
        current_user: Annotated[DecodedToken, Depends(get_current_user)],
    ) -> DecodedToken:
        if current_user.role not in self.allowed_roles:
            raise ForbiddenException(
                "You do not have permission to perform this action."
            )
        return current_user
