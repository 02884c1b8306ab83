"""Signed unsubscribe tokens and the URLs that carry them."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, TypedDict
from urllib.parse import quote

from jose import JWTError, jwt

from src.core.config import settings

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
TOKEN_TYPE = "unsubscribe"


class UnsubscribeClaims(TypedDict):
    user_id: str
    email: str


def generate_unsubscribe_token(user_id: str, email: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(days=settings.UNSUBSCRIBE_TOKEN_TTL_DAYS)
    to_encode = {"sub": str(user_id), "email": email, "type": TOKEN_TYPE, "exp": expire}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def validate_unsubscribe_token(token: str) -> Optional[UnsubscribeClaims]:
    """Decode a token; None when the signature, expiry or type is wrong."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning(f"Unsubscribe token validation failed: {e}")
        return None

    if payload.get("type") != TOKEN_TYPE:
        logger.warning(f"Invalid token type: {payload.get('type')}")
        return None

    user_id = payload.get("sub")
    email = payload.get("email")
    if not user_id or not email:
        return None
    return {"user_id": user_id, "email": email}


def generate_unsubscribe_page_url(user_id: str, email: str) -> str:
    """Footer link; leads to a confirmation page."""
    token = generate_unsubscribe_token(user_id, email)
    return f"{settings.APP_DOMAIN}/unsubscribe?token={quote(token)}"


def generate_one_click_unsubscribe_url(user_id: str, email: str) -> str:
    """Target of the List-Unsubscribe header (RFC 8058 one-click POST)."""
    token = generate_unsubscribe_token(user_id, email)
    return f"{settings.APP_DOMAIN}/api/subscriptions/one-click-unsubscribe?token={quote(token)}"


def generate_list_unsubscribe_headers(user_id: str, email: str) -> dict[str, str]:
    return {
        "List-Unsubscribe": f"<{generate_one_click_unsubscribe_url(user_id, email)}>",
        "List-Unsubscribe-Post": "List-Unsubscribe=One-Click",
    }
