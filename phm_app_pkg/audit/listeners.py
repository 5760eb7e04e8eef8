# phm_app_pkg/audit/listeners.py
from sqlalchemy import event
from sqlalchemy.orm import attributes
from ..models import UserFilter
from .services import create_audit_log


@event.listens_for(UserFilter, 'after_insert')
def after_user_filter_insert(mapper, connection, target):
    """Listen for newly saved filters."""
    create_audit_log(
        connection,
        action="USER_FILTER_CREATE",
        target_model="UserFilter",
        target_id=target.id,
        change_details={"name": target.name, "owner_id": target.user_id}
    )


@event.listens_for(UserFilter, 'after_update')
def after_user_filter_update(mapper, connection, target):
    """Listen for renamed or overwritten filters."""
    changes = {}
    for key in ('name', 'contents'):
        history = attributes.get_history(target, key)
        if history.has_changes():
            changes[key] = {
                "new": history.added[0] if history.added else None,
                "old": history.deleted[0] if history.deleted else None
            }
    if changes:
        create_audit_log(
            connection,
            action="USER_FILTER_UPDATE",
            target_model="UserFilter",
            target_id=target.id,
            change_details=changes
        )


@event.listens_for(UserFilter, 'after_delete')
def after_user_filter_delete(mapper, connection, target):
    create_audit_log(
        connection,
        action="USER_FILTER_DELETE",
        target_model="UserFilter",
        target_id=target.id,
        change_details={"name": target.name, "owner_id": target.user_id}
    )


def register_audit_listeners(app):
    """Called by the app factory; importing this module attaches the listeners."""
    app.logger.debug("Audit listeners registered.")
