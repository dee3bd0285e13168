import pytest
from fastapi import status

from core.auth import get_auth_service


def bearer(session):
    return {"Authorization": f"Bearer {session.access_token}"}


class TestHealthEndpoints:
    """Test health check endpoints."""

    def test_healthcheck(self, test_client):
        response = test_client.get("/healthcheck")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "Caption Gallery API"
        assert "timestamp" in data

    def test_ping(self, test_client):
        response = test_client.get("/monitoring/ping")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["message"] == "pong"

    def test_detailed(self, test_client):
        response = test_client.get("/monitoring/detailed")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["components"]["database"]["status"] == "healthy"
        assert data["components"]["database"]["info"]["database_type"] == "sqlite"
        assert data["components"]["sessions"]["active_sessions"] == 0

    def test_security_and_correlation_headers(self, test_client):
        response = test_client.get("/healthcheck")

        assert "X-Correlation-ID" in response.headers
        assert "X-Process-Time" in response.headers
        assert response.headers["X-Content-Type-Options"] == "nosniff"


class TestGalleryEndpoint:
    """Test the public gallery listing."""

    def test_first_page(self, test_client, worked_example_store):
        response = test_client.get("/captions")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["page"] == 1
        assert data["total_pages"] == 2
        assert data["loading"] is False
        assert data["error"] is None
        assert data["has_previous"] is False
        assert data["has_next"] is True
        assert [card["id"] for card in data["captions"]] == ["C4", "C3"]
        assert data["captions"][0]["image_url"] == "https://img.example.com/4.png"
        assert data["captions"][0]["image_alt"] == "Image for caption: Caption C4"

    def test_second_page(self, test_client, worked_example_store):
        data = test_client.get("/captions", params={"page": 2}).json()

        assert [card["id"] for card in data["captions"]] == ["C1"]
        assert data["has_previous"] is True
        assert data["has_next"] is False

    def test_page_past_the_end(self, test_client, worked_example_store):
        response = test_client.get("/captions", params={"page": 9})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["captions"] == []
        assert data["error"] is None

    def test_store_failure_yields_empty_page(self, test_client, worked_example_store):
        worked_example_store.fail_reads = True

        response = test_client.get("/captions")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["captions"] == []
        assert data["loading"] is False
        assert "connection refused" in data["error"]

    def test_invalid_page(self, test_client, caption_store):
        response = test_client.get("/captions", params={"page": 0})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"
        assert caption_store.calls == []

    def test_gallery_is_public(self, test_client, worked_example_store):
        response = test_client.get("/captions")

        assert response.status_code == status.HTTP_200_OK


class TestProtectedRoute:
    """Test the gated route."""

    def test_anonymous_is_rejected(self, test_client):
        response = test_client.get("/protected")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        error = response.json()["error"]
        assert error["code"] == "AUTHENTICATION_REQUIRED"
        assert error["details"]["sign_in_url"] == "/auth/sign-in?next=/protected"

    def test_signed_in_user_gets_content(self, test_client, sign_in):
        session = sign_in()

        response = test_client.get("/protected", headers=bearer(session))

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status_label"] == "Signed in as grace@example.com"
        assert data["user"]["email"] == "grace@example.com"
        assert data["protected_content_visible"] is True
        assert data["create_form_visible"] is True

    def test_sign_out_hides_protected_content(self, test_client, sign_in):
        session = sign_in()
        assert test_client.get("/protected", headers=bearer(session)).status_code == 200

        response = test_client.post("/auth/sign-out", headers=bearer(session))
        assert response.status_code == status.HTTP_200_OK

        assert test_client.get("/protected", headers=bearer(session)).status_code == 401
        response = test_client.post(
            "/captions",
            json={"content": "Too late", "image_url": "https://img.example.com/a.png"},
            headers=bearer(session),
        )
        assert response.status_code == 401


class TestCreateCaption:
    """Test the protected caption form."""

    def test_anonymous_cannot_create(self, test_client, caption_store):
        response = test_client.post(
            "/captions",
            json={"content": "Hello", "image_url": "https://img.example.com/a.png"},
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert caption_store.calls == []

    def test_create_caption(self, test_client, caption_store, sign_in):
        session = sign_in()

        response = test_client.post(
            "/captions",
            json={"content": "A fine dog", "image_url": "https://img.example.com/dog.png"},
            headers=bearer(session),
        )

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["content"] == "A fine dog"
        assert data["image_url"] == "https://img.example.com/dog.png"
        assert data["profile_id"] == session.user.id
        assert data["is_public"] is True
        assert data["image_id"] == caption_store.images[-1].id

        gallery = test_client.get("/captions").json()
        assert gallery["captions"][0]["id"] == data["id"]

    @pytest.mark.parametrize(
        "payload,field",
        [
            ({"content": "", "image_url": "https://img.example.com/a.png"}, "content"),
            ({"content": "Hello", "image_url": ""}, "image_url"),
            ({"image_url": "https://img.example.com/a.png"}, "content"),
        ],
    )
    def test_validation_happens_before_store(self, test_client, caption_store, sign_in, payload, field):
        session = sign_in()

        response = test_client.post("/captions", json=payload, headers=bearer(session))

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        error = response.json()["error"]
        assert error["details"]["field"] == field
        assert "required" in error["message"]
        assert caption_store.calls == []

    def test_caption_insert_failure_reports_orphan(self, test_client, caption_store, sign_in):
        session = sign_in()
        caption_store.fail_caption_insert = True

        response = test_client.post(
            "/captions",
            json={"content": "Hello", "image_url": "https://img.example.com/a.png"},
            headers=bearer(session),
        )

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        error = response.json()["error"]
        assert error["code"] == "CAPTION_CREATE_FAILED"
        assert error["details"]["stage"] == "caption"
        assert error["details"]["orphaned_image_id"] == caption_store.images[-1].id


class TestSessionWebSocket:
    """Test the session WebSocket."""

    def test_initial_state_anonymous(self, test_client):
        with test_client.websocket_connect("/ws/session?client_id=tab-1") as websocket:
            message = websocket.receive_json()

        assert message["type"] == "session"
        assert message["signed_in"] is False
        assert message["status_label"] == "Sign in to access the gated route."
        assert message["create_form_visible"] is False

    def test_ping_pong(self, test_client):
        with test_client.websocket_connect("/ws/session") as websocket:
            websocket.receive_json()
            websocket.send_json({"type": "ping"})

            assert websocket.receive_json() == {"type": "pong"}

    def test_sign_in_is_pushed(self, test_client, sign_in):
        with test_client.websocket_connect("/ws/session?client_id=tab-7") as websocket:
            websocket.receive_json()

            sign_in(client_id="tab-7")
            message = websocket.receive_json()

        assert message["type"] == "session_change"
        assert message["event"] == "SIGNED_IN"
        assert message["signed_in"] is True
        assert message["protected_content_visible"] is True

    def test_sign_out_is_pushed(self, test_client, sign_in):
        session = sign_in()
        url = f"/ws/session?token={session.access_token}"

        with test_client.websocket_connect(url) as websocket:
            initial = websocket.receive_json()
            assert initial["signed_in"] is True
            assert initial["status_label"] == "Signed in as grace@example.com"

            get_auth_service().sign_out(session.access_token)
            message = websocket.receive_json()

        assert message["event"] == "SIGNED_OUT"
        assert message["signed_in"] is False
        assert message["create_form_visible"] is False
        assert message["user"] is None

    def test_status_request(self, test_client, sign_in):
        session = sign_in()

        with test_client.websocket_connect(f"/ws/session?token={session.access_token}") as websocket:
            websocket.receive_json()
            websocket.send_json({"type": "status"})
            message = websocket.receive_json()

        assert message["type"] == "session"
        assert message["user"]["id"] == session.user.id
