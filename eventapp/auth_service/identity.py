"""
Identity verification against an external OpenID Connect provider.

The rest of the service only relies on the contract "given a bearer
credential, resolve to a profile record or fail"; the Flask app holds the
verifier in ``app.config["IDENTITY_VERIFIER"]`` so tests and other
providers can swap it out.
"""

import logging
import os
from typing import Dict, Any

import requests
from dotenv import load_dotenv
from flask import current_app

load_dotenv()

GOOGLE_DISCOVERY_URL = os.getenv(
    "GOOGLE_DISCOVERY_URL", "https://accounts.google.com/.well-known/openid-configuration"
)
IDENTITY_TIMEOUT_SECONDS = float(os.getenv("IDENTITY_TIMEOUT_SECONDS", 10))


class IdentityError(Exception):
    """Raised when a bearer credential cannot be resolved to a profile."""


class GoogleIdentityVerifier:
    """
    Resolves Google access tokens to userinfo profiles.

    Each call reads the discovery document to locate the userinfo
    endpoint, then calls it with the bearer token.
    """

    def __init__(self, discovery_url: str = GOOGLE_DISCOVERY_URL, timeout: float = IDENTITY_TIMEOUT_SECONDS):
        self.discovery_url = discovery_url
        self.timeout = timeout

    def _fetch_json(self, url: str, **kwargs) -> Dict[str, Any]:
        try:
            resp = requests.get(url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise IdentityError(f"Request to {url} failed: {e}") from e

        if not resp.ok:
            raise IdentityError(f"{resp.status_code} {resp.reason}")

        try:
            return resp.json()
        except ValueError as e:
            raise IdentityError(f"Invalid JSON from {url}") from e

    def fetch_userinfo(self, access_token: str) -> Dict[str, Any]:
        """
        Exchange an access token for the provider's userinfo profile.

        Args:
            access_token (str): OAuth bearer token issued by the provider.

        Returns:
            dict: Userinfo claims (sub, email, name, picture, ...).

        Raises:
            IdentityError: On any network, HTTP or payload failure.
        """
        discovery = self._fetch_json(self.discovery_url)
        userinfo_endpoint = discovery.get("userinfo_endpoint")
        if not userinfo_endpoint:
            raise IdentityError("Discovery document has no userinfo_endpoint")

        userinfo = self._fetch_json(
            userinfo_endpoint,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if not isinstance(userinfo, dict):
            raise IdentityError("Unexpected userinfo payload")

        logging.debug(f"[Identity] Resolved sub={userinfo.get('sub')}")
        return userinfo


def get_identity_verifier():
    """Return the verifier configured on the running app."""
    verifier = current_app.config.get("IDENTITY_VERIFIER")
    if verifier is None:
        verifier = GoogleIdentityVerifier()
        current_app.config["IDENTITY_VERIFIER"] = verifier
    return verifier
