# Overview: Flask API routes for user administration; admin-only account management.

from flask import Blueprint, request, g

from ..decorators import require_auth, require_role
from ..errors import DomainError
from ..models.auth import ROLE_ADMIN, ROLE_CUSTOMER
from ..responses import ok, fail, domain_error, server_error
from ..services import auth_service


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_users_route():
    users = auth_service.list_users(role=request.args.get("role"))
    return ok("OK", users=[u.to_dict() for u in users], count=len(users))


@users_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_user_route():
    """Create any account, including cashier/admin staff."""
    try:
        data = request.get_json(silent=True) or {}
        user = auth_service.create_user(
            data.get("username"),
            data.get("password"),
            email=data.get("email"),
            role=data.get("role") or ROLE_CUSTOMER,
            firstname=data.get("firstname"),
            lastname=data.get("lastname"),
            gender=data.get("gender"),
            birth_date=data.get("birth_date"),
            is_verified=bool(data.get("is_verified", False)),
        )
        return ok("User created", 201, user=user.to_dict())
    except DomainError as e:
        return domain_error(e)
    except Exception:
        return server_error("Failed to create user")


@users_bp.put("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_user_route(user_id: int):
    try:
        data = request.get_json(silent=True) or {}
        if user_id == g.current_user.id and data.get("is_active") is False:
            return fail("You cannot deactivate your own account", 400)
        user = auth_service.update_user(user_id, data)
        return ok("User updated", user=user.to_dict())
    except DomainError as e:
        return domain_error(e)
    except Exception:
        return server_error("Failed to update user")


@users_bp.delete("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_user_route(user_id: int):
    try:
        if user_id == g.current_user.id:
            return fail("You cannot delete your own account", 400)
        auth_service.delete_user(user_id)
        return ok("User deleted")
    except DomainError as e:
        return domain_error(e)
    except Exception:
        return server_error("Failed to delete user")
