"""
Shared authentication helpers.
Provides signed session-cookie tokens and identity/role enforcement.
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Tuple, Optional, Any, Dict

import jwt
from flask import g, jsonify, Response
from dotenv import load_dotenv

# Load .env only once here
load_dotenv()

# Load secrets & configs
SESSION_SECRET = os.getenv("SESSION_SECRET")
if not SESSION_SECRET:
    raise RuntimeError("SESSION_SECRET is missing. Set it in .env")

TOKEN_EXPIRATION_MINUTES = int(os.getenv("TOKEN_EXPIRATION_MINUTES", 1440))  # Default 24 hours
COOKIE_SECURE = os.getenv("COOKIE_SECURE", "false").lower() == "true"

# Session cookie names
ACCESS_TOKEN_COOKIE = "access_token"
ADMIN_COOKIE = "admin"
ADMIN_USERINFO_COOKIE = "admin_userinfo"
SESSION_COOKIES = (ACCESS_TOKEN_COOKIE, ADMIN_COOKIE, ADMIN_USERINFO_COOKIE)

# Profile fields carried by an identity
IDENTITY_FIELDS = ("sub", "email", "name", "picture")


# --- SIGNED COOKIE VALUES ---
def sign_cookie_value(name: str, value: Any) -> str:
    """
    Wrap a cookie value in an HS256-signed JWT.

    The cookie name is bound into the token so a value signed for one
    cookie is rejected when presented under another.

    Args:
        name (str): The cookie name the value is issued for.
        value (Any): JSON-serialisable payload (str, dict, ...).

    Returns:
        str: Encoded JWT string.
    """
    now = datetime.now(timezone.utc)

    payload = {
        "cookie": name,
        "val": value,
        "exp": now + timedelta(minutes=TOKEN_EXPIRATION_MINUTES),
        "iat": now
    }

    return jwt.encode(payload, SESSION_SECRET, algorithm="HS256")


def unsign_cookie_value(name: str, token: Optional[str]) -> Optional[Any]:
    """
    Validate a signed cookie value.

    Args:
        name (str): The cookie name the token was presented under.
        token (str): JWT string from the cookie jar.

    Returns:
        The signed value if the signature, expiry and cookie name check
        out, None otherwise.
    """
    if not token:
        return None
    try:
        payload = jwt.decode(token, SESSION_SECRET, algorithms=["HS256"])
    except jwt.PyJWTError:
        return None

    if payload.get("cookie") != name:
        return None
    return payload.get("val")


def set_session_cookie(response: Response, name: str, value: Any) -> Response:
    """Attach a signed, HttpOnly session cookie to the response."""
    response.set_cookie(
        name,
        sign_cookie_value(name, value),
        max_age=TOKEN_EXPIRATION_MINUTES * 60,
        httponly=True,
        samesite="Lax",
        secure=COOKIE_SECURE,
    )
    return response


def clear_session_cookies(response: Response, names=SESSION_COOKIES) -> Response:
    for name in names:
        response.delete_cookie(name, httponly=True, samesite="Lax", secure=COOKIE_SECURE)
    return response


def identity_from_profile(profile: Dict[str, Any]) -> Dict[str, Any]:
    """
    Reduce a provider profile or user document to the identity claims.

    Args:
        profile (dict): Userinfo response or stored user document.

    Returns:
        dict: {sub, email, name, picture}; missing fields are omitted.
    """
    return {k: profile[k] for k in IDENTITY_FIELDS if profile.get(k) is not None}


# --- IDENTITY ENFORCEMENT ---
def require_identity(admin: bool = False) -> Tuple[Optional[Dict[str, Any]], bool, Optional[Response], Optional[int]]:
    """
    Check the identity resolved for the current request.

    Args:
        admin (bool): Whether the caller must also hold the admin flag.

    Returns:
        tuple: (identity, is_admin, error_response, status_code)
               If successful, error_response and status_code are None.
               If failed, identity is None.
    """
    ctx = g.get("session")
    identity = ctx.identity if ctx else None
    is_admin = bool(ctx and ctx.is_admin)

    if not identity or not identity.get("sub"):
        return None, False, jsonify({"error": "Not authenticated"}), 401

    if admin and not is_admin:
        return None, False, jsonify({"error": "Admin only"}), 403

    return identity, is_admin, None, None
