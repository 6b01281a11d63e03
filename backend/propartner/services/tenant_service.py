"""
Multi-Tenant Service: Tenant Validation and Scoping Helpers

WHY: Centralize tenant scoping for reuse across services and routes.
Every operation is scoped to a tenant (organization), and cross-tenant
access must be explicitly denied.

INVARIANTS:
1. Services receive org_id as an explicit argument
2. Entity IDs from client input are always resolved together with org_id
3. An entity owned by another organization is reported as NotFound,
   exactly like a missing one (no existence leak)

USAGE:
    from propartner.services.tenant_service import get_scoped

    article = get_scoped(Article, org_id, article_id, lock=True)
"""

from __future__ import annotations

import logging

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import Organization
from .concurrency import lock_for_update


logger = logging.getLogger(__name__)


class TenantAccessError(ValidationError):
    """Raised when an operation is called without an org_id."""

    kind = "TenantRequired"


def require_org(org_id: int) -> Organization:
    """Return the active organization, or raise NotFound."""
    org = db.session.query(Organization).filter_by(id=org_id).first()
    if org is None or not org.is_active:
        raise NotFound(f"Organization {org_id} not found")
    return org


def get_scoped(model, org_id: int, entity_id: int, *, lock: bool = False, label: str | None = None):
    """
    Load one tenant-owned row by id.

    Args:
        model: Mapped class carrying an org_id column
        org_id: Tenant performing the operation
        entity_id: Row id from client input
        lock: Take a row-level lock for a read-modify-write unit
        label: Entity name used in the NotFound message

    Raises:
        NotFound: if the row does not exist or belongs to another tenant
    """
    name = label or model.__name__
    if org_id is None:
        raise TenantAccessError("org_id is required")

    query = db.session.query(model).filter_by(id=entity_id, org_id=org_id)
    if lock:
        query = lock_for_update(query)
    entity = query.first()

    if entity is None:
        if db.session.query(model.id).filter_by(id=entity_id).first() is not None:
            logger.warning(
                "Cross-tenant access denied: org %s requested %s %s", org_id, name, entity_id
            )
        raise NotFound(f"{name} {entity_id} not found")
    return entity
