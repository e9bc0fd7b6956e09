import os

# Must be set before the auth utils are imported
os.environ["SESSION_SECRET"] = "test_secret"
os.environ.setdefault("MONGODB_URL", "mongodb://localhost:27017")

import pytest

from eventapp.gateway.server import create_app
from eventapp.auth_service.utils import (
    ACCESS_TOKEN_COOKIE,
    ADMIN_COOKIE,
    ADMIN_USERINFO_COOKIE,
    sign_cookie_value,
)


@pytest.fixture
def identity_verifier(mocker):
    """
    Stand-in for the Google verifier; set fetch_userinfo.return_value or
    side_effect per test.
    """
    return mocker.MagicMock()


@pytest.fixture
def app(identity_verifier):
    app = create_app(identity_verifier=identity_verifier)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def mock_db(mocker):
    """
    Mocks the database handle with one MagicMock per collection.

    Returns:
        dict: {"events": MagicMock, "users": MagicMock}
    """
    collections = {"events": mocker.MagicMock(), "users": mocker.MagicMock()}
    db = mocker.MagicMock()
    db.__getitem__.side_effect = collections.__getitem__

    mocker.patch("eventapp.events_service.routes.get_db", return_value=db)
    mocker.patch("eventapp.auth_service.routes.get_db", return_value=db)

    return collections


@pytest.fixture
def login_as(client):
    """
    Install signed session cookies on the test client.

    Usage:
        login_as({"sub": "adminSub"}, admin=True)
    """
    def _login(userinfo, admin=False):
        client.set_cookie(ADMIN_USERINFO_COOKIE, sign_cookie_value(ADMIN_USERINFO_COOKIE, userinfo))
        if admin:
            client.set_cookie(ADMIN_COOKIE, sign_cookie_value(ADMIN_COOKIE, "1"))
        return client

    return _login


@pytest.fixture
def google_login(client):
    """Install a signed access_token cookie as a Google login would."""
    def _login(access_token="google-token"):
        client.set_cookie(ACCESS_TOKEN_COOKIE, sign_cookie_value(ACCESS_TOKEN_COOKIE, access_token))
        return client

    return _login
