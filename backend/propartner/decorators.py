# Overview: Request decorators for API routes.

from functools import wraps

from flask import current_app, g, jsonify, request

from .errors import NotFound
from .services.tenant_service import require_org as load_org


def require_org(f):
    """
    Establish tenant context from the request.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.org_id: The organization ID (tenant context) - REQUIRED
    - g.organization: The active Organization row

    Returns 400 if the tenant header is missing or not an integer, 404 if
    the organization does not exist or is deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        header = current_app.config.get("TENANT_HEADER", "X-Org-Id")
        raw = request.headers.get(header)

        if not raw:
            return jsonify({"error": f"{header} header required", "kind": "TenantRequired"}), 400

        try:
            org_id = int(raw)
        except ValueError:
            return jsonify({"error": f"{header} must be an integer", "kind": "TenantRequired"}), 400

        try:
            org = load_org(org_id)
        except NotFound as e:
            current_app.logger.warning("Request for unknown organization %s on %s", org_id, request.path)
            return jsonify(e.to_dict()), e.status_code

        g.org_id = org.id
        g.organization = org

        return f(*args, **kwargs)

    return decorated_function
