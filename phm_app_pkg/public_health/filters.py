# phm_app_pkg/public_health/filters.py
"""
The fixed filter pipeline applied to every worklist request:
tab -> jurisdiction scope -> assigned user -> free-text search.
"""
from flask import current_app
from sqlalchemy import String, cast, or_

from ..models import Patient
from .tabs import Workflow, is_transfer_tab, parse_tab, tab_criteria

ASSIGNED_USER_ALL = 'all'
ASSIGNED_USER_NONE = 'none'

# Columns a search term is matched against, as a prefix.
SEARCH_COLUMNS = (
    Patient.first_name,
    Patient.last_name,
    Patient.user_defined_id_statelocal,
    Patient.user_defined_id_cdc,
    Patient.user_defined_id_nndss,
)


def transfer_query(user, workflow, tab, exclude_purged=None):
    """Records moved into or out of the user's jurisdiction subtree."""
    workflow = Workflow(workflow)
    if tab.value == 'transferred_in':
        query = user.jurisdiction.transferred_in_patients()
    else:
        query = user.jurisdiction.transferred_out_patients()
    query = query.filter(Patient.isolation.is_(workflow is Workflow.ISOLATION))

    if exclude_purged is None:
        exclude_purged = current_app.config.get('TRANSFER_TABS_EXCLUDE_PURGED', True)
    if exclude_purged:
        query = query.filter(Patient.purged.is_(False))
    return query


def base_query(user, workflow, tab, now=None, settings=None):
    """Records of `workflow` that the user may see and that belong to `tab`."""
    tab = parse_tab(workflow, getattr(tab, 'value', tab))
    if is_transfer_tab(tab):
        return transfer_query(user, workflow, tab)
    return user.viewable_patients.filter(tab_criteria(workflow, tab, now=now, settings=settings))


def filter_by_jurisdiction(query, tab, jurisdiction_ids):
    # Transfer tabs are defined by where records moved from/to, not by the scope filter.
    if jurisdiction_ids is None or is_transfer_tab(tab):
        return query
    return query.filter(Patient.jurisdiction_id.in_(jurisdiction_ids))


def filter_by_assigned_user(query, assigned_user):
    if assigned_user == ASSIGNED_USER_ALL:
        return query
    if assigned_user == ASSIGNED_USER_NONE:
        return query.filter(Patient.assigned_user.is_(None))
    return query.filter(Patient.assigned_user == int(assigned_user))


def filter_by_search(query, search):
    """Keep records where any identifying field starts with `search`. Blank terms are ignored."""
    if search is None or not search.strip():
        return query
    matches = [column.startswith(search, autoescape=True) for column in SEARCH_COLUMNS]
    matches.append(cast(Patient.date_of_birth, String).startswith(search, autoescape=True))
    return query.filter(or_(*matches))


def apply(query, tab, jurisdiction_ids, assigned_user, search):
    query = filter_by_jurisdiction(query, tab, jurisdiction_ids)
    query = filter_by_assigned_user(query, assigned_user)
    return filter_by_search(query, search)
