# phm_app_pkg/public_health/scope.py
from enum import Enum

from flask import current_app

from .. import db
from ..errors import AuthorizationError, ValidationError
from ..models import Jurisdiction


class ScopeMode(str, Enum):
    # `all` on the wire means the requested node plus all of its descendants.
    SUBTREE = 'all'
    EXACT = 'exact'


ALL_JURISDICTIONS = 'all'


def resolve(requested, viewer_jurisdiction, scope_mode):
    """
    Compute the jurisdiction ids a worklist request is restricted to.

    Returns None when `requested` is 'all' (no restriction beyond what the
    viewer can already see). Otherwise the requested jurisdiction must sit in
    the viewer's own subtree; the result is either that single id (exact) or
    its whole subtree.
    """
    scope_mode = ScopeMode(scope_mode)
    if requested is None or str(requested) == ALL_JURISDICTIONS:
        return None

    try:
        jurisdiction_id = int(requested)
    except (TypeError, ValueError):
        raise ValidationError('jurisdiction', f"Jurisdiction must be 'all' or an id, got '{requested}'.")

    if jurisdiction_id not in viewer_jurisdiction.subtree_ids:
        current_app.logger.warning(
            f"[Worklist] Jurisdiction {jurisdiction_id} is outside of the subtree of {viewer_jurisdiction.path}."
        )
        raise AuthorizationError('jurisdiction', f"Jurisdiction {jurisdiction_id} is not available to this user.")

    if scope_mode is ScopeMode.EXACT:
        return {jurisdiction_id}

    jurisdiction = db.get_or_404(Jurisdiction, jurisdiction_id)
    return jurisdiction.subtree_ids
