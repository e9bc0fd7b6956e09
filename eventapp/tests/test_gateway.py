import pytest

from eventapp.gateway.server import create_app


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json() == {"status": "ok"}


def test_root_without_static_dir(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.get_json()["status"] == "gateway_ok"


def test_unknown_route_returns_json(client):
    response = client.get("/nope")
    assert response.status_code == 404
    assert "error" in response.get_json()


def test_database_failure_returns_json_500(client, mocker, login_as):
    mocker.patch("eventapp.events_service.routes.get_db", side_effect=RuntimeError("MONGODB_URL is not set"))
    login_as({"sub": "u1"})

    response = client.post("/api/events/0123456789abcdef01234567/attend")
    assert response.status_code == 500
    assert response.get_json() == {"error": "Internal Server Error"}


@pytest.fixture
def spa_client(tmp_path, identity_verifier):
    (tmp_path / "index.html").write_text("<html>spa</html>")
    (tmp_path / "app.js").write_text("console.log('hi')")
    app = create_app(identity_verifier=identity_verifier, static_dir=str(tmp_path))
    app.config["TESTING"] = True
    return app.test_client()


def test_spa_serves_assets(spa_client):
    response = spa_client.get("/app.js")
    assert response.status_code == 200
    assert b"console.log" in response.data


def test_spa_falls_back_to_index(spa_client):
    response = spa_client.get("/events/123")
    assert response.status_code == 200
    assert b"spa" in response.data


def test_spa_does_not_shadow_api(spa_client, mocker):
    db = mocker.MagicMock()
    db.__getitem__.return_value.find.return_value = []
    mocker.patch("eventapp.events_service.routes.get_db", return_value=db)

    assert spa_client.get("/api/events").get_json() == []
    assert spa_client.get("/api/unknown").status_code == 404
