# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

- Self-registration with password strength validation
- Login by email or username, returning a bearer session token
- Logout revokes the presented token
- Email verification by token
- Password reset by emailed token; a reset ends every session
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..services.auth_service import PasswordValidationError
from ..validation import ValidationError, NotFoundError, ConflictError
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
def register_route():
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.register_user(
            email=data.get("email"),
            username=data.get("username"),
            password=data.get("password"),
            full_name=data.get("full_name"),
        )
    except (ValidationError, PasswordValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "user": user.to_dict(),
        "message": "Registration successful. Please verify your email.",
    }), 201


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in Authorization header for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        identifier = data.get("emailOrUsername") or data.get("username") or data.get("email")
        password = data.get("password")

        if not all([identifier, password]):
            return jsonify({"error": "email/username and password required"}), 400

        user = auth_service.authenticate(identifier, password)
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
    token = request.headers.get("Authorization", "").split(" ", 1)[1].strip()
    session_service.revoke_session(token, reason="User logout")
    return jsonify({"message": "Logout successful"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200


@auth_bp.put("/profile")
@require_auth
def update_profile_route():
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.update_profile(
            g.current_user,
            full_name=data.get("full_name"),
            email=data.get("email"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409

    return jsonify({"user": user.to_dict()}), 200


@auth_bp.put("/password")
@require_auth
def change_password_route():
    data = request.get_json(silent=True) or {}
    try:
        auth_service.change_password(
            g.current_user,
            data.get("current_password"),
            data.get("new_password"),
        )
    except (ValidationError, PasswordValidationError) as e:
        return jsonify({"error": str(e)}), 400

    # Other devices have to log in again
    session_service.revoke_all_user_sessions(g.current_user.id, reason="Password changed")
    return jsonify({"message": "Password changed successfully"}), 200


@auth_bp.get("/verify-email")
def verify_email_route():
    try:
        user = auth_service.verify_email(request.args.get("token", ""))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify({"user": user.to_dict(), "message": "Email verified successfully"}), 200


RESET_REQUESTED_MESSAGE = "If that email exists, a password reset link has been sent."


@auth_bp.post("/forgot-password")
def forgot_password_route():
    """Always answers the same way so account existence is not revealed."""
    data = request.get_json(silent=True) or {}
    try:
        auth_service.request_password_reset(data.get("email"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to process password reset request")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"message": RESET_REQUESTED_MESSAGE}), 200


@auth_bp.post("/reset-password")
def reset_password_route():
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.reset_password(data.get("token"), data.get("password"))
    except (ValidationError, PasswordValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to reset password")
        return jsonify({"error": "Internal server error"}), 500

    session_service.revoke_all_user_sessions(user.id, reason="Password reset")
    return jsonify({"message": "Password has been reset successfully"}), 200
