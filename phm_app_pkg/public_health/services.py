# phm_app_pkg/public_health/services.py
"""
Worklist query orchestration.

A request is validated into a WorklistRequest and then run through the
pipeline: tab -> filters -> advanced filter -> sort -> paginate -> project.
Invalid filtering parameters reject the whole request; sort and pagination
parameters fall back to defaults instead.
"""
import datetime
import json
from dataclasses import dataclass
from typing import Optional

from flask import current_app
from sqlalchemy.orm import selectinload
from werkzeug.exceptions import NotFound

from ..errors import AdvancedFilterError, ValidationError
from ..models import Patient
from ..utils import parse_int
from ..advanced_filters.services import apply_advanced_filter, get_user_filter
from ..advanced_filters.statements import parse_statements
from . import filters, scope, sorting
from .linelist import paginate, project
from .tabs import ClassifierSettings, Workflow, parse_tab, workflow_criteria


@dataclass
class WorklistRequest:
    workflow: Workflow
    tab: object
    jurisdiction: str
    scope: scope.ScopeMode
    assigned_user: str
    search: Optional[str] = None
    entries: int = 15
    page: int = 0
    order: Optional[str] = None
    direction: Optional[str] = None
    # Raw advanced filter statements, or the id of one of the caller's saved filters.
    filter: Optional[list] = None
    filter_id: Optional[int] = None


def _parse_workflow(value):
    try:
        return Workflow(value)
    except ValueError:
        raise ValidationError('workflow', f"Unknown workflow '{value}'.")


def _parse_tab(workflow, value):
    try:
        return parse_tab(workflow, value)
    except ValueError:
        raise ValidationError('tab', f"Unknown {workflow.value} tab '{value}'.")


def _parse_jurisdiction(value):
    if value is None:
        raise ValidationError('jurisdiction', "Jurisdiction is required.")
    value = str(value)
    if value != scope.ALL_JURISDICTIONS and parse_int(value) is None:
        raise ValidationError('jurisdiction', f"Jurisdiction must be 'all' or an id, got '{value}'.")
    return value


def _parse_scope(value):
    try:
        return scope.ScopeMode(value)
    except ValueError:
        raise ValidationError('scope', f"Scope must be 'all' or 'exact', got '{value}'.")


def _parse_assigned_user(value):
    if value in (filters.ASSIGNED_USER_ALL, filters.ASSIGNED_USER_NONE):
        return value
    max_assigned_user = current_app.config.get('WORKLIST_MAX_ASSIGNED_USER', 9999)
    number = parse_int(value)
    if number is None or not 1 <= number <= max_assigned_user:
        raise ValidationError('user', f"User must be 'all', 'none' or between 1 and {max_assigned_user}.")
    return number


MAX_PAGINATION_VALUE = 2 ** 31 - 1


def _parse_non_negative(value, default):
    number = parse_int(value)
    if number is None or not 0 <= number <= MAX_PAGINATION_VALUE:
        return default
    return number


def _parse_filter(value):
    if value is None or value == '':
        return None
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            raise AdvancedFilterError(None, "Advanced filter is not valid JSON.")
    if not isinstance(value, list):
        raise AdvancedFilterError(None, "A filter must be a list of statements.")
    return value


def parse_worklist_request(args):
    """Build a WorklistRequest from query string args or a JSON body."""
    workflow = _parse_workflow(args.get('workflow'))
    filter_id = args.get('filter_id')
    if filter_id is not None and filter_id != '':
        filter_id = parse_int(filter_id)
        if filter_id is None:
            raise ValidationError('filter_id', "Saved filter id must be an integer.")
    else:
        filter_id = None
    search = args.get('search')

    return WorklistRequest(
        workflow=workflow,
        tab=_parse_tab(workflow, args.get('tab')),
        jurisdiction=_parse_jurisdiction(args.get('jurisdiction')),
        scope=_parse_scope(args.get('scope')),
        assigned_user=_parse_assigned_user(args.get('user')),
        search=str(search) if search is not None else None,
        entries=_parse_non_negative(args.get('entries'), current_app.config.get('WORKLIST_DEFAULT_ENTRIES', 15)),
        page=_parse_non_negative(args.get('page'), 0),
        order=args.get('order'),
        direction=args.get('direction'),
        filter=_parse_filter(args.get('filter')),
        filter_id=filter_id,
    )


def _active_statements(user, worklist_request):
    """Statements submitted with the request, else those of the referenced saved filter."""
    if worklist_request.filter is not None:
        return parse_statements(worklist_request.filter)
    if worklist_request.filter_id is None:
        return []
    user_filter = get_user_filter(user, worklist_request.filter_id)
    if user_filter is None:
        raise NotFound(f"Saved filter {worklist_request.filter_id} not found.")
    return parse_statements(user_filter.contents or [])


def query_worklist(user, worklist_request, now=None):
    now = now or datetime.datetime.utcnow()
    settings = ClassifierSettings.from_config()
    workflow, tab = worklist_request.workflow, worklist_request.tab

    jurisdiction_ids = scope.resolve(worklist_request.jurisdiction, user.jurisdiction, worklist_request.scope)
    statements = _active_statements(user, worklist_request)

    query = filters.base_query(user, workflow, tab, now=now, settings=settings)
    query = filters.apply(query, tab, jurisdiction_ids, worklist_request.assigned_user, worklist_request.search)
    query = apply_advanced_filter(query, statements, now=now)
    query = sorting.sort(query, worklist_request.order, worklist_request.direction)
    query = query.options(
        selectinload(Patient.jurisdiction),
        selectinload(Patient.transferred_from_jurisdiction)
    )

    page = paginate(query, worklist_request.entries, worklist_request.page)
    current_app.logger.info(
        f"[Worklist] User {user.id} {workflow.value}/{tab.value}: {len(page.items)} of {page.total} "
        f"(page {worklist_request.page}, {len(statements)} advanced statements)."
    )
    return project(page.items, workflow, tab, page.total, now=now, settings=settings)


def count_tab(user, workflow, tab, now=None):
    """Size of a tab for the user, without any scope, search or pagination."""
    workflow = _parse_workflow(workflow)
    tab = _parse_tab(workflow, tab)
    query = filters.base_query(user, workflow, tab, now=now or datetime.datetime.utcnow())
    return {"total": query.count()}


def workflow_counts(user):
    return {
        workflow.value: user.viewable_patients.filter(workflow_criteria(workflow)).count()
        for workflow in Workflow
    }


def self_reporting(user):
    """Records that report for themselves, the candidates for heading a household."""
    patients = user.enrolled_patients if user.has_role('enroller') else user.viewable_patients
    rows = patients.filter(Patient.responder_id == Patient.id).with_entities(
        Patient.id, Patient.first_name, Patient.last_name, Patient.age, Patient.user_defined_id_statelocal
    ).order_by(Patient.id.asc()).all()
    return [
        {"id": row[0], "first_name": row[1], "last_name": row[2], "age": row[3], "state_id": row[4]}
        for row in rows
    ]
