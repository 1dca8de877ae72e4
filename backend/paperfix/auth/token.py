"""
JWT Token Verification — shared-secret bearer tokens

Tokens are issued by the login service and signed with HS256 using
JWT_SECRET. Required claims:

  sub    user id (UUID) — becomes the document owner id
  email  informational
  exp    expiry (verified)
  aud    must equal JWT_AUDIENCE

Ownership checks happen in the services; this module only proves who
the caller is.
"""

from __future__ import annotations

import logging
import time
from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import BaseModel

from paperfix.core.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# HTTP Bearer extractor
# ---------------------------------------------------------------------------

bearer_scheme = HTTPBearer(auto_error=True)


# ---------------------------------------------------------------------------
# Verified token payload
# ---------------------------------------------------------------------------

class TokenPayload(BaseModel):
    """Parsed, validated JWT claims — passed to route handlers."""
    user_id: UUID
    email:   str
    exp:     int


# ---------------------------------------------------------------------------
# Issue (login service, dev tooling and tests)
# ---------------------------------------------------------------------------

def create_access_token(
    user_id:     UUID,
    email:       str = "",
    expires_in:  int = 3600,
) -> str:
    now = int(time.time())
    claims = {
        "sub":   str(user_id),
        "email": email,
        "aud":   settings.jwt_audience,
        "iat":   now,
        "exp":   now + expires_in,
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


# ---------------------------------------------------------------------------
# Main verification function
# ---------------------------------------------------------------------------

def verify_token(token: str) -> TokenPayload:
    """
    Verify signature, expiry and audience, then extract the user id.

    Raises:
        HTTPException(401): any verification failure.
    """
    if not settings.jwt_secret:
        logger.error("JWT_SECRET is not configured; rejecting all tokens")
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, detail="Authentication unavailable")

    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options={"verify_exp": True},
        )
    except ExpiredSignatureError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, detail="Token has expired")
    except JWTError as exc:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, detail=f"Invalid token: {exc}")

    try:
        user_id = UUID(str(claims.get("sub", "")))
    except ValueError:
        raise HTTPException(
            status.HTTP_401_UNAUTHORIZED,
            detail="Token subject is not a valid user id",
        )

    return TokenPayload(
        user_id=user_id,
        email=claims.get("email", ""),
        exp=claims["exp"],
    )


# ---------------------------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------------------------

async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
) -> TokenPayload:
    """
    FastAPI dependency that extracts and validates the Bearer token:

        @router.get("/documents/{document_id}")
        async def get_doc(user: TokenPayload = Depends(get_current_user)):
            ...
    """
    return verify_token(credentials.credentials)
