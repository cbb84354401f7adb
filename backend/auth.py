"""
Bearer-token authentication.

Tokens are issued outside this service; here they are only resolved to a
user id.  Configure up to five users with API_TOKEN_USER1..API_TOKEN_USER5.
"""

from fastapi import Security, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import os
from typing import Dict, Optional
from dotenv import load_dotenv

# Load .env file
load_dotenv()

BEARER_SCHEME = HTTPBearer(auto_error=False)


def get_valid_tokens() -> Dict[str, str]:
    """Load token → user id pairs from environment variables"""
    tokens = {}

    for i in range(1, 6):
        token = os.getenv(f"API_TOKEN_USER{i}")
        if token:
            tokens[token] = f"user{i}"

    if not tokens:
        # Development fallback (never use in production)
        if os.getenv("ENVIRONMENT") == "development":
            tokens["dev-token-insecure"] = "user1"
        else:
            raise ValueError("No API tokens configured! Set API_TOKEN_USER1 in environment")

    return tokens


VALID_TOKENS = get_valid_tokens()


async def verify_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(BEARER_SCHEME),
) -> str:
    """
    Resolve the bearer credential to a user id

    Usage in FastAPI routes:
        @app.get("/protected")
        async def protected_route(user: str = Depends(verify_bearer_token)):
            return {"user": user}
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization header. Use 'Authorization: Bearer <token>'.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = VALID_TOKENS.get(credentials.credentials)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token or user not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


async def verify_admin_token(user: str = Security(verify_bearer_token)) -> str:
    """Admin-only routes (only user1 is admin)"""
    if user != "user1":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )

    return user
