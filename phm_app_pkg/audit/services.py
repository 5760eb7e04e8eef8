# phm_app_pkg/audit/services.py
import datetime

from flask import request, g, has_request_context
from ..models import AuditLog


def _actor():
    """User id, username, IP and user agent of the current request (or the 'system' actor)."""
    user_id, user_username, ip_address, user_agent = None, "system", None, None
    if has_request_context():
        current_user = getattr(g, 'current_user', None)
        if current_user is not None:
            user_id = current_user.id
            user_username = current_user.username
        ip_address = request.remote_addr
        user_agent = request.user_agent.string if request.user_agent else None
    return user_id, user_username, ip_address, user_agent


def create_audit_log(connection, action, target_model=None, target_id=None, change_details=None):
    """
    Writes an audit log row on `connection`.
    Called from mapper events, where the session is mid-flush and must not be
    used, so the row is inserted with a Core statement on the flush connection.
    """
    user_id, user_username, ip_address, user_agent = _actor()
    connection.execute(
        AuditLog.__table__.insert().values(
            action=action,
            target_model=target_model,
            target_id=str(target_id) if target_id is not None else None,
            change_details=change_details,
            user_id=user_id,
            user_username=user_username,
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=datetime.datetime.utcnow()
        )
    )
