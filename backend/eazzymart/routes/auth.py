# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/eazzymart/routes/auth.py
"""
Authentication API routes

- Customer self-registration (staff accounts are created by admins)
- Bearer session tokens (see session_service)
- Email OTP send/verify
"""

from flask import Blueprint, request, g

from ..decorators import require_auth
from ..errors import DomainError
from ..responses import ok, fail, domain_error, server_error
from ..services import auth_service
from ..services import otp_service
from ..services import session_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
def register_route():
    """
    Customer self-registration.

    Request body:
    {
        "username": "juandelacruz",   (6-50 chars)
        "password": "********",       (min 8 chars)
        "email": "juan@example.com",  (optional)
        "firstname": "...", "lastname": "...", "gender": "...",
        "birth_date": "YYYY-MM-DD"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        user = auth_service.register_customer(data)
        return ok("Registration successful", 201, user=user.to_dict())
    except DomainError as e:
        return domain_error(e)
    except Exception:
        return server_error("Failed to register user")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate and create a session token.

    The token goes in the Authorization header (Bearer) for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username") or data.get("email")
        password = data.get("password")

        if not all([username, password]):
            return fail("username/email and password required", 400)

        user = auth_service.authenticate(username, password)
        if not user:
            return fail("Invalid credentials", 401)

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return ok(
            "Login successful",
            user=user.to_dict(),
            token=token,
            session=session.to_dict(),
        )
    except DomainError as e:
        return domain_error(e)
    except Exception:
        return server_error("Failed to login user")


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        session_service.revoke_session(g.session_token)
        return ok("Logout successful")
    except Exception:
        return server_error("Failed to logout user")


@auth_bp.get("/me")
@require_auth
def me_route():
    return ok("OK", user=g.current_user.to_dict())


@auth_bp.post("/otp/send")
def send_otp_route():
    """Mail a 6-digit code to the address. The code is never echoed back."""
    try:
        data = request.get_json(silent=True) or {}
        otp_service.send_otp(data.get("email"))
        return ok("OTP sent to your email")
    except DomainError as e:
        return domain_error(e)
    except Exception:
        return server_error("Failed to send OTP")


@auth_bp.post("/otp/verify")
def verify_otp_route():
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        if not otp_service.verify_otp(email, data.get("otp") or data.get("code")):
            return fail("Invalid or expired OTP", 400)
        user = auth_service.mark_verified(email)
        return ok("OTP verified", verified=True, user=user.to_dict() if user else None)
    except DomainError as e:
        return domain_error(e)
    except Exception:
        return server_error("Failed to verify OTP")
