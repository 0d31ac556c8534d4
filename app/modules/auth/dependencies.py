"""
Authentication dependencies for FastAPI.

Tokens are issued by the identity service; this API only verifies them and
reads the store the caller acts for from the `store_id` claim.
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt

from app.modules.auth.schemas import AuthContext
from app.core.config import settings

# Security scheme
security = HTTPBearer()


class AuthDependencies:
    """Reusable authentication dependencies."""

    @staticmethod
    def get_auth_context(
        credentials: HTTPAuthorizationCredentials = Depends(security)
    ) -> AuthContext:
        """
        Decode the bearer token into an AuthContext.
        The token must carry `sub` and a positive integer `store_id`.
        """
        credentials_exception = HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

        try:
            payload = jwt.decode(
                credentials.credentials,
                settings.APP_SECRET_STRING,
                algorithms=[settings.ALGORITHM]
            )
            user_id = payload.get("sub")
            if user_id is None:
                raise credentials_exception
        except jwt.PyJWTError:
            raise credentials_exception

        store_id = payload.get("store_id")
        if store_id is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="A store must be selected"
            )
        if isinstance(store_id, bool) or not isinstance(store_id, int) or store_id <= 0:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid store id"
            )

        return AuthContext(user_id=str(user_id), store_id=store_id, role=payload.get("role"))

    @staticmethod
    def require_role(allowed_roles: list[str]):
        """
        Dependency requiring one of the given roles in the current store.
        """
        def role_checker(auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)):
            if auth_context.role not in allowed_roles:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"One of these roles is required: {', '.join(allowed_roles)}"
                )
            return auth_context
        return role_checker

    @staticmethod
    def require_bookkeeper():
        """Owners and accountants may record entries and sign reports."""
        return AuthDependencies.require_role(["owner", "accountant"])

    @staticmethod
    def require_any_role():
        """Any active role in the store."""
        return AuthDependencies.require_role(["owner", "accountant", "seller", "viewer"])


get_auth_context = AuthDependencies.get_auth_context
