from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
import logging

from app.schemas.auth import TokenData
from app.core.config import settings

logger = logging.getLogger(__name__)

security = HTTPBearer()


async def verify_token(credentials: HTTPAuthorizationCredentials = Depends(security)) -> TokenData:
    """Verify JWT token and return user data"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    options = {"verify_aud": bool(settings.jwt_audience)}
    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options=options,
        )
    except JWTError as e:
        logger.info("JWT rejected: %s", e)
        raise credentials_exception

    user_id = payload.get("sub")
    if not user_id:
        raise credentials_exception

    return TokenData(
        user_id=user_id,
        email=payload.get("email"),
        name=(payload.get("user_metadata") or {}).get("name") or payload.get("name"),
    )


async def get_current_user(token_data: TokenData = Depends(verify_token)) -> TokenData:
    """Get current authenticated user"""
    return token_data
