# Overview: Pytest coverage for signup, login, sessions, email verification and password reset.

"""
Authentication API tests.

Verifies:
- Signup for customers and vendors, with strong-password rules
- Login issues a bearer token; logout revokes it
- Email verification and password reset through emailed tokens
- Deactivated accounts cannot log in
"""

import pytest

from conftest import PASSWORD, auth_headers
from rentmarket.services import email_service, settings_service


@pytest.fixture
def outbox(monkeypatch):
    """Capture tokens handed to the verification and reset emails."""
    sent = []
    monkeypatch.setattr(email_service, "send_verification_email", lambda user, token: sent.append(("verify", user.email, token)))
    monkeypatch.setattr(email_service, "send_password_reset_email", lambda user, token: sent.append(("reset", user.email, token)))
    monkeypatch.setattr(email_service, "send_welcome_email", lambda user: sent.append(("welcome", user.email, None)))
    return sent


def _login(client, email, password=PASSWORD):
    return client.post("/api/auth/login", json={"email": email, "password": password})


class TestSignup:

    def test_customer_signup(self, client, db_session, outbox):
        response = client.post("/api/auth/signup", json={
            "email": "  New.User@Example.com ",
            "password": PASSWORD,
            "first_name": "New",
            "last_name": "User",
            "phone": "+91 98765 43210",
        })
        assert response.status_code == 201
        user = response.get_json()["user"]
        assert user["email"] == "new.user@example.com"
        assert user["role"] == "CUSTOMER"
        assert user["email_verified"] is False
        assert user["customer_profile"]["phone"] == "+91 98765 43210"
        assert [kind for kind, _, _ in outbox] == ["verify"]

    def test_vendor_signup_needs_company(self, client, db_session, outbox):
        payload = {"email": "v@example.com", "password": PASSWORD, "first_name": "Vee", "role": "vendor"}
        assert client.post("/api/auth/signup", json=payload).status_code == 400

        payload["company_name"] = "Vee Rentals"
        response = client.post("/api/auth/signup", json=payload)
        assert response.status_code == 201
        assert response.get_json()["user"]["vendor_profile"]["company_name"] == "Vee Rentals"

    def test_admin_signup_refused(self, client, db_session, outbox):
        payload = {"email": "root@example.com", "password": PASSWORD, "first_name": "Root", "role": "ADMIN"}
        assert client.post("/api/auth/signup", json=payload).status_code == 400

    def test_duplicate_email_is_409(self, client, db_session, customer_user, outbox):
        payload = {"email": "CUSTOMER@rental.com", "password": PASSWORD, "first_name": "Dup"}
        assert client.post("/api/auth/signup", json=payload).status_code == 409

    @pytest.mark.parametrize("password", ["short1A", "alllowercase1", "ALLUPPERCASE1", "NoDigitsHere"])
    def test_weak_passwords_rejected(self, client, db_session, outbox, password):
        payload = {"email": "weak@example.com", "password": password, "first_name": "Weak"}
        response = client.post("/api/auth/signup", json=payload)
        assert response.status_code == 400
        assert "Password must" in response.get_json()["error"]

    def test_registration_can_be_disabled(self, client, db_session, outbox):
        settings_service.update_settings({"allow_registration": False})
        payload = {"email": "late@example.com", "password": PASSWORD, "first_name": "Late"}
        response = client.post("/api/auth/signup", json=payload)
        assert response.status_code == 400
        assert response.get_json()["error"] == "Registration is currently disabled"


class TestSessions:

    def test_login_me_logout(self, client, db_session, customer_user):
        response = _login(client, "customer@rental.com")
        assert response.status_code == 200
        token = response.get_json()["token"]

        me = client.get("/api/auth/me", headers=auth_headers(token))
        assert me.status_code == 200
        assert me.get_json()["user"]["email"] == "customer@rental.com"

        assert client.post("/api/auth/logout", headers=auth_headers(token)).status_code == 200
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401

    @pytest.mark.parametrize("email,password", [
        ("customer@rental.com", "WrongPassword1"),
        ("nobody@rental.com", PASSWORD),
    ])
    def test_bad_credentials(self, client, db_session, customer_user, email, password):
        response = _login(client, email, password)
        assert response.status_code == 401
        assert response.get_json()["error"] == "Invalid credentials"

    def test_missing_credentials(self, client, db_session):
        assert client.post("/api/auth/login", json={"email": "x@y.z"}).status_code == 400

    def test_deactivated_user_cannot_login(self, client, db_session, customer_user):
        customer_user.is_active = False
        db_session.commit()
        assert _login(client, "customer@rental.com").status_code == 401

    @pytest.mark.parametrize("header", [None, "Token abc", "Bearer ", "Bearer not-a-real-token"])
    def test_me_rejects_bad_headers(self, client, db_session, header):
        headers = {"Authorization": header} if header else {}
        assert client.get("/api/auth/me", headers=headers).status_code == 401


class TestEmailTokens:

    def test_verify_email(self, client, db_session, outbox):
        client.post("/api/auth/signup", json={"email": "verify@example.com", "password": PASSWORD, "first_name": "Vera"})
        token = outbox[0][2]

        response = client.post("/api/auth/verify-email", json={"token": token})
        assert response.status_code == 200
        assert response.get_json()["user"]["email_verified"] is True
        assert outbox[-1][0] == "welcome"

        # Tokens are single use
        assert client.post("/api/auth/verify-email", json={"token": token}).status_code == 400

    def test_verify_email_requires_token(self, client, db_session):
        assert client.post("/api/auth/verify-email", json={}).status_code == 400

    def test_resend_verification_is_silent_for_unknown_accounts(self, client, db_session, outbox):
        response = client.post("/api/auth/resend-verification", json={"email": "ghost@example.com"})
        assert response.status_code == 200
        assert outbox == []

    def test_password_reset_revokes_sessions(self, client, db_session, customer_user, outbox):
        old_token = _login(client, "customer@rental.com").get_json()["token"]

        response = client.post("/api/auth/forgot-password", json={"email": "customer@rental.com"})
        assert response.status_code == 200
        kind, _, reset_token = outbox[-1]
        assert kind == "reset"

        weak = client.post("/api/auth/reset-password", json={"token": reset_token, "password": "weak"})
        assert weak.status_code == 400

        response = client.post("/api/auth/reset-password", json={"token": reset_token, "password": "NewPassword456!"})
        assert response.status_code == 200
        assert client.get("/api/auth/me", headers=auth_headers(old_token)).status_code == 401
        assert _login(client, "customer@rental.com").status_code == 401
        assert _login(client, "customer@rental.com", "NewPassword456!").status_code == 200

    def test_forgot_password_is_silent_for_unknown_accounts(self, client, db_session, outbox):
        response = client.post("/api/auth/forgot-password", json={"email": "ghost@example.com"})
        assert response.status_code == 200
        assert outbox == []

    def test_reset_with_bad_token(self, client, db_session):
        response = client.post("/api/auth/reset-password", json={"token": "nope", "password": "NewPassword456!"})
        assert response.status_code == 400
