"""
Authentication service route handlers.

Provides routes for:
- Current identity (/api/profile)
- Stored user profile (/api/user-profile)
- Google access-token login (/api/login/accessToken)
- Admin password login (/api/admin/login)
- Logout (/api/logout)

Cookie signing is delegated to `auth_service.utils`; identity resolution
for every request happens in `auth_service.session`.
"""

import logging
from datetime import datetime, timezone
from typing import Tuple, Dict, Any

from argon2 import PasswordHasher
from argon2.exceptions import VerificationError, InvalidHashError
from flask import Blueprint, request, jsonify, Response, make_response
from pymongo.errors import PyMongoError

from eventapp.database.db_connection import get_db, USERS_COLLECTION
from eventapp.auth_service.identity import IdentityError, get_identity_verifier
from eventapp.auth_service.utils import (
    ACCESS_TOKEN_COOKIE,
    ADMIN_COOKIE,
    ADMIN_USERINFO_COOKIE,
    clear_session_cookies,
    identity_from_profile,
    require_identity,
    set_session_cookie,
)

auth_bp = Blueprint("auth", __name__)
ph = PasswordHasher()


# --- REQUEST LOGGING ---
@auth_bp.before_request
def before_request() -> None:
    """
    Log every incoming request method and path to the authentication service.
    Cookies and headers are not logged since they carry session tokens.
    """
    logging.info(f"[Auth] Incoming {request.method} {request.path}")


@auth_bp.after_request
def after_request(response: Response) -> Response:
    """
    Log the response status code for every request.

    Args:
        response (Response): The Flask response object.

    Returns:
        Response: The passed-through response object.
    """
    logging.info(f"[Auth] Response {response.status}")
    return response


def _serialize_user(user: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(user)
    for key in ("createdAt", "lastLoginAt"):
        if isinstance(out.get(key), datetime):
            out[key] = out[key].isoformat()
    return out


# --- PROFILE ---
@auth_bp.route("/api/profile", methods=["GET"])
def get_profile() -> Tuple[Response, int]:
    """
    Return the identity resolved for this request.

    Returns:
        200: {sub, email, name, picture, isAdmin}.
        401: No identity.
    """
    identity, is_admin, err, code = require_identity()
    if err:
        return err, code

    return jsonify({**identity, "isAdmin": is_admin}), 200


@auth_bp.route("/api/user-profile", methods=["GET"])
def get_user_profile() -> Tuple[Response, int]:
    """
    Return the stored user document for the current identity.

    The password hash and internal id are never returned.

    Returns:
        200: User document plus "role" ("admin" or "user").
        401: No identity.
        500: Database error.
    """
    identity, _, err, code = require_identity()
    if err:
        return err, code

    try:
        user = get_db()[USERS_COLLECTION].find_one(
            {"sub": identity["sub"]},
            projection={"_id": 0, "passwordHash": 0},
        )
    except PyMongoError as e:
        logging.error(f"Database error reading user profile: {e}")
        return jsonify({"error": "Server error"}), 500

    user = _serialize_user(user or {})
    user["role"] = "admin" if user.get("isAdmin") else "user"
    return jsonify(user), 200


# --- LOGOUT ---
@auth_bp.route("/api/logout", methods=["POST"])
def logout() -> Tuple[Response, int]:
    """
    Clear every session cookie.

    Returns:
        204: Always.
    """
    response = make_response("", 204)
    clear_session_cookies(response)
    return response, 204


# --- GOOGLE LOGIN ---
@auth_bp.route("/api/login/accessToken", methods=["POST"])
def login_access_token() -> Tuple[Response, int]:
    """
    Exchange a Google access token for a session cookie.

    Expects a JSON body with:
    - access_token (str)

    The user is upserted by email on every successful login.

    Returns:
        204: access_token cookie set.
        400: Missing access_token.
        401: Token rejected by the identity provider or incomplete profile.
        500: Database error.
    """
    data: Dict[str, Any] = request.get_json(silent=True) or {}
    access_token = data.get("access_token")

    if not access_token or not isinstance(access_token, str):
        return jsonify({"error": "Missing access_token"}), 400

    try:
        userinfo = get_identity_verifier().fetch_userinfo(access_token)
    except IdentityError as e:
        logging.warning(f"[Auth] Access token login failed: {e}")
        return jsonify({"error": "Invalid token"}), 401

    sub = userinfo.get("sub")
    email = userinfo.get("email")
    if not sub or not email:
        return jsonify({"error": "Invalid token"}), 401

    now = datetime.now(timezone.utc)
    try:
        get_db()[USERS_COLLECTION].update_one(
            {"email": email},
            {
                "$set": {
                    "sub": sub,
                    "email": email,
                    "name": userinfo.get("name"),
                    "picture": userinfo.get("picture"),
                    "lastLoginAt": now,
                },
                "$setOnInsert": {"createdAt": now},
            },
            upsert=True,
        )
    except PyMongoError as e:
        logging.error(f"Database error storing user {email}: {e}")
        return jsonify({"error": "Login failed"}), 500

    response = make_response("", 204)
    set_session_cookie(response, ACCESS_TOKEN_COOKIE, access_token)
    return response, 204


# --- ADMIN LOGIN ---
@auth_bp.route("/api/admin/login", methods=["POST"])
def admin_login() -> Tuple[Response, int]:
    """
    Authenticate an admin with email and password.

    Expects a JSON body with:
    - email (str)
    - password (str)

    Returns:
        204: admin and admin_userinfo cookies set.
        400: Missing credentials.
        401: Unknown email or wrong password.
        403: Account is not an admin.
        500: Admin account not fully provisioned, or database error.
    """
    data: Dict[str, Any] = request.get_json(silent=True) or {}
    email: str = str(data.get("email") or "").strip().lower()
    password: str = str(data.get("password") or "")

    if not email or not password:
        return jsonify({"error": "Missing credentials"}), 400

    users = get_db()[USERS_COLLECTION]
    try:
        user = users.find_one({"email": email})
    except PyMongoError as e:
        logging.error(f"Database error during admin login: {e}")
        return jsonify({"error": "Server error"}), 500

    if not user:
        return jsonify({"error": "Invalid credentials"}), 401
    if not user.get("isAdmin"):
        return jsonify({"error": "Admin only"}), 403
    if not user.get("passwordHash"):
        return jsonify({"error": "Admin password not set"}), 500
    if not user.get("sub"):
        return jsonify({"error": "Admin sub not set"}), 500

    # Verify password against hash
    try:
        ph.verify(user["passwordHash"], password)
    except (VerificationError, InvalidHashError):
        return jsonify({"error": "Invalid credentials"}), 401

    try:
        users.update_one({"_id": user["_id"]}, {"$set": {"lastLoginAt": datetime.now(timezone.utc)}})
    except PyMongoError as e:
        logging.error(f"Database error updating admin {email}: {e}")
        return jsonify({"error": "Server error"}), 500

    response = make_response("", 204)
    set_session_cookie(response, ADMIN_COOKIE, "1")
    set_session_cookie(response, ADMIN_USERINFO_COOKIE, identity_from_profile(user))
    return response, 204
