"""
Integration tests for the fake login surface.

Tests / and /login using FastAPI TestClient against a temp SQLite database.
"""

from fastapi.testclient import TestClient
from sqlmodel import select

from conftest import ATTACKER_IP, FakeClock, count_rows, drain
from honeytrap.models.records import CredentialAttempt, RequestLog


class TestLoginPage:
    def test_serves_login_form(self, test_client: TestClient) -> None:
        response = test_client.get("/")

        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert "SecureCorp Portal - Sign In" in response.text


class TestLoginSubmission:
    """Test that every submission is captured and rejected."""

    def test_json_submission_rejected(self, test_client: TestClient) -> None:
        response = test_client.post("/login", json={"username": "admin", "password": "admin123"})

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid username or password"}

    def test_form_submission_rejected(self, test_client: TestClient) -> None:
        response = test_client.post("/login", data={"username": "admin", "password": "admin123"})

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid username or password"}

    def test_attempt_is_captured(self, test_client: TestClient) -> None:
        test_client.post("/login", json={"username": "  root ", "password": "toor"})
        drain(test_client)

        store = test_client.app.state.store
        with store.session() as session:
            attempts = session.exec(select(CredentialAttempt)).all()

        assert len(attempts) == 1
        assert attempts[0].ip_address == ATTACKER_IP
        assert attempts[0].username_attempted == "root"
        assert attempts[0].password_attempted == "toor"
        assert attempts[0].password_length == 4
        assert attempts[0].user_agent == "pytest-agent/1.0"

    def test_long_password_truncated(self, test_client: TestClient) -> None:
        test_client.post("/login", json={"username": "admin", "password": "x" * 400})
        drain(test_client)

        store = test_client.app.state.store
        with store.session() as session:
            attempt = session.exec(select(CredentialAttempt)).one()

        assert attempt.password_length == 255

    def test_missing_fields(self, test_client: TestClient) -> None:
        response = test_client.post("/login", json={"username": "admin"})

        assert response.status_code == 400
        assert response.json() == {"error": "Username and password are required"}

        drain(test_client)
        assert count_rows(test_client.app.state.store, CredentialAttempt) == 0

    def test_malformed_body_counts_as_missing(self, test_client: TestClient) -> None:
        response = test_client.post(
            "/login",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400

    def test_multipart_without_boundary_counts_as_missing(self, test_client: TestClient) -> None:
        response = test_client.post(
            "/login",
            content=b"garbage",
            headers={"Content-Type": "multipart/form-data"},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Username and password are required"}
        assert "boundary" not in response.text

    def test_falsy_json_values_count_as_missing(self, test_client: TestClient) -> None:
        response = test_client.post("/login", json={"username": False, "password": 0})

        assert response.status_code == 400
        assert response.json() == {"error": "Username and password are required"}

        drain(test_client)
        assert count_rows(test_client.app.state.store, CredentialAttempt) == 0

    def test_same_answer_for_any_credentials(self, test_client: TestClient) -> None:
        bodies = [
            test_client.post("/login", json={"username": u, "password": p}).json()
            for u, p in [("admin", "3591"), ("root", "root"), ("x", "y")]
        ]

        assert all(b == bodies[0] for b in bodies)


class TestLoginRateLimiting:
    """Test the per-IP login limiter through the endpoint."""

    def test_sixth_attempt_rejected(self, test_client: TestClient) -> None:
        for _ in range(5):
            response = test_client.post("/login", json={"username": "a", "password": "b"})
            assert response.status_code == 401

        response = test_client.post("/login", json={"username": "a", "password": "b"})

        assert response.status_code == 429
        assert response.json() == {"error": "Too many login attempts. Please try again later."}
        assert int(response.headers["Retry-After"]) >= 1

        drain(test_client)
        assert count_rows(test_client.app.state.store, CredentialAttempt) == 5

    def test_limit_applies_before_validation(self, test_client: TestClient) -> None:
        for _ in range(5):
            assert test_client.post("/login", json={}).status_code == 400

        assert test_client.post("/login", json={}).status_code == 429

    def test_limit_is_per_ip(self, test_client: TestClient) -> None:
        for _ in range(5):
            test_client.post("/login", json={"username": "a", "password": "b"})

        response = test_client.post(
            "/login",
            json={"username": "a", "password": "b"},
            headers={"X-Forwarded-For": "198.51.100.77"},
        )

        assert response.status_code == 401

    def test_window_reset_restores_access(self, test_client: TestClient) -> None:
        clock = FakeClock()
        limiter = test_client.app.state.login_limiter
        limiter.clock = clock
        for _ in range(6):
            test_client.post("/login", json={"username": "a", "password": "b"})

        clock.advance(61)
        response = test_client.post("/login", json={"username": "a", "password": "b"})

        assert response.status_code == 401

    def test_rejected_requests_still_logged(self, test_client: TestClient) -> None:
        for _ in range(7):
            test_client.post("/login", json={"username": "a", "password": "b"})
        drain(test_client)

        store = test_client.app.state.store
        assert count_rows(store, RequestLog, RequestLog.request_path == "/login") == 7
