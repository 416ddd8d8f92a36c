# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/rentmarket/routes/auth.py
"""
Authentication API routes

- Self-service signup for customers and vendors
- Email verification and password reset by emailed token
- Session management with bearer tokens
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service, email_service, session_service
from ..services.auth_service import PasswordValidationError
from ..validation import ValidationError, ConflictError
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/signup")
def signup_route():
    """
    Register a CUSTOMER or VENDOR account.

    Body: email, password, first_name, last_name, role, company_name
    (vendors), gstin, phone, address.

    A verification email is sent; login works before verification.
    """
    try:
        data = request.get_json(silent=True) or {}
        user, token = auth_service.signup(data)
        if token:
            email_service.send_verification_email(user, token)
        return jsonify({
            "user": user.to_dict(),
            "message": "Account created. Check your email to verify your address.",
        }), 201
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to sign up user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in Authorization header for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"error": "email and password required"}), 400

        user = auth_service.authenticate(email, password)
        if not user:
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "session": session.to_dict(),
            "message": "Login successful",
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """
    Revoke session token (logout).

    WHY: Explicit logout prevents token reuse.
    """
    try:
        session_service.revoke_session(g.session_token, reason="User logout")
        return jsonify({"message": "Logout successful"}), 200
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200


@auth_bp.post("/verify-email")
def verify_email_route():
    try:
        data = request.get_json(silent=True) or {}
        token = data.get("token") or request.args.get("token")
        if not token:
            return jsonify({"error": "token is required"}), 400
        user = auth_service.verify_email(token)
        email_service.send_welcome_email(user)
        return jsonify({"user": user.to_dict(), "message": "Email verified"}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to verify email")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/resend-verification")
def resend_verification_route():
    """Always answers the same way so the endpoint cannot probe for accounts."""
    try:
        data = request.get_json(silent=True) or {}
        issued = auth_service.resend_verification(data.get("email"))
        if issued:
            user, token = issued
            email_service.send_verification_email(user, token)
        return jsonify({"message": "If the account exists and is unverified, a new email has been sent."}), 200
    except Exception:
        current_app.logger.exception("Failed to resend verification email")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/forgot-password")
def forgot_password_route():
    """Always answers the same way so the endpoint cannot probe for accounts."""
    try:
        data = request.get_json(silent=True) or {}
        issued = auth_service.request_password_reset(data.get("email"))
        if issued:
            user, token = issued
            email_service.send_password_reset_email(user, token)
        return jsonify({"message": "If an account exists for that email, a reset link has been sent."}), 200
    except Exception:
        current_app.logger.exception("Failed to start password reset")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/reset-password")
def reset_password_route():
    try:
        data = request.get_json(silent=True) or {}
        token = data.get("token")
        password = data.get("password")
        if not token or not password:
            return jsonify({"error": "token and password are required"}), 400
        auth_service.reset_password(token, password)
        return jsonify({"message": "Password updated. Please log in again."}), 200
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to reset password")
        return jsonify({"error": "Internal server error"}), 500
