# Overview: Flask API routes for reports; staff-only sales summaries and the legacy sales view.

from flask import Blueprint, request

from ..decorators import require_auth, require_role
from ..errors import DomainError, ValidationError
from ..models.auth import STAFF_ROLES
from ..responses import ok, domain_error, server_error
from ..services import reporting_service
from ..time_utils import parse_iso_date


reports_bp = Blueprint("reports", __name__)


def _date_arg(name: str):
    try:
        return parse_iso_date(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be YYYY-MM-DD") from None


@reports_bp.get("/api/reports/sales")
@require_auth
@require_role(*STAFF_ROLES)
def sales_report_route():
    """Query params: start, end (YYYY-MM-DD, inclusive)."""
    try:
        start, end = _date_arg("start"), _date_arg("end")
        if start and end and start > end:
            raise ValidationError("start must be on or before end")
        return ok("OK", **reporting_service.sales_summary(start=start, end=end))
    except DomainError as e:
        return domain_error(e)
    except Exception:
        return server_error("Failed to build sales report")


@reports_bp.get("/api/sales")
@require_auth
@require_role(*STAFF_ROLES)
def legacy_sales_route():
    """Flat order rows for older admin screens; read-only."""
    try:
        rows = reporting_service.legacy_sales_view(status=request.args.get("status"))
        return ok("OK", sales=rows, count=len(rows))
    except Exception:
        return server_error("Failed to list sales")
