# phm_app_pkg/public_health/sorting.py
from sqlalchemy import case, func
from sqlalchemy.orm import aliased

from ..models import Jurisdiction, Patient

ASCENDING = 'asc'
DESCENDING = 'desc'

# Clinical severity of the exposure risk assessment, lowest first.
RISK_LEVEL_RANK = {
    'No Identified Risk': 0,
    'Low': 1,
    'Medium': 2,
    'High': 3,
}

risk_rank = case(RISK_LEVEL_RANK, value=Patient.exposure_risk_assessment, else_=None)


def normalize_direction(direction):
    """Anything but exactly 'asc' sorts descending."""
    return ASCENDING if direction == ASCENDING else DESCENDING


def _columns(*columns):
    return lambda query: (query, list(columns))


def _current_jurisdiction(attribute):
    def join(query):
        current = aliased(Jurisdiction)
        query = query.outerjoin(current, current.id == Patient.jurisdiction_id)
        return query, [getattr(current, attribute)]
    return join


def _transferred_from(query):
    source = aliased(Jurisdiction)
    query = query.outerjoin(source, source.id == Patient.latest_transfer_from)
    return query, [source.path]


SORT_KEYS = {
    'name': _columns(Patient.last_name, Patient.first_name),
    'jurisdiction': _current_jurisdiction('name'),
    'transferred_from': _transferred_from,
    'transferred_to': _current_jurisdiction('path'),
    'assigned_user': _columns(Patient.assigned_user),
    'state_local_id': _columns(Patient.user_defined_id_statelocal),
    'sex': _columns(Patient.sex),
    'dob': _columns(Patient.date_of_birth),
    'end_of_monitoring': _columns(Patient.last_date_of_exposure),
    'risk_level': _columns(risk_rank),
    'monitoring_plan': _columns(Patient.monitoring_plan),
    'public_health_action': _columns(Patient.public_health_action),
    'expected_purge_date': _columns(func.coalesce(Patient.closed_at, Patient.updated_at)),
    'reason_for_closure': _columns(Patient.monitoring_reason),
    'closed_at': _columns(Patient.closed_at),
    'transferred_at': _columns(Patient.latest_transfer_at),
    'latest_report': _columns(Patient.latest_assessment_at),
}


def sort(query, key, direction):
    """
    Order `query` by one of SORT_KEYS.

    Missing and unknown keys keep primary key order. NULLs go last whatever
    the direction, and the primary key breaks ties so pages never overlap.
    """
    if not key or key not in SORT_KEYS:
        return query.order_by(Patient.id.asc())

    ascending = normalize_direction(direction) == ASCENDING
    query, columns = SORT_KEYS[key](query)
    ordering = [(column.asc() if ascending else column.desc()).nullslast() for column in columns]
    ordering.append(Patient.id.asc() if ascending else Patient.id.desc())
    return query.order_by(*ordering)
