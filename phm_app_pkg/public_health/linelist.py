# phm_app_pkg/public_health/linelist.py
import datetime
from dataclasses import dataclass
from email.utils import format_datetime

from .tabs import ExposureTab, IsolationTab, Workflow, classify, parse_tab, status_label

# Fields present on every linelist, whatever the tab.
COMMON_FIELDS = ('name', 'state_local_id', 'sex', 'dob')

_EXPOSURE_ACTIVE = ('jurisdiction', 'assigned_user', 'end_of_monitoring', 'risk_level', 'monitoring_plan', 'latest_report')
_ISOLATION_ACTIVE = ('jurisdiction', 'assigned_user', 'monitoring_plan', 'latest_report')
_CLOSED = ('jurisdiction', 'assigned_user', 'expected_purge_date', 'reason_for_closure', 'closed_at')

# Tab-specific columns, in display order, for every (workflow, tab) pair.
LINELIST_FIELDS = {
    (Workflow.EXPOSURE, ExposureTab.ALL): (
        'jurisdiction', 'assigned_user', 'end_of_monitoring', 'risk_level', 'monitoring_plan', 'latest_report', 'status'),
    (Workflow.EXPOSURE, ExposureTab.SYMPTOMATIC): _EXPOSURE_ACTIVE,
    (Workflow.EXPOSURE, ExposureTab.NON_REPORTING): _EXPOSURE_ACTIVE,
    (Workflow.EXPOSURE, ExposureTab.ASYMPTOMATIC): _EXPOSURE_ACTIVE,
    (Workflow.EXPOSURE, ExposureTab.PUI): (
        'jurisdiction', 'assigned_user', 'end_of_monitoring', 'risk_level', 'public_health_action', 'latest_report'),
    (Workflow.EXPOSURE, ExposureTab.CLOSED): _CLOSED,
    (Workflow.EXPOSURE, ExposureTab.TRANSFERRED_IN): (
        'transferred_from', 'end_of_monitoring', 'risk_level', 'monitoring_plan', 'transferred_at'),
    (Workflow.EXPOSURE, ExposureTab.TRANSFERRED_OUT): (
        'transferred_to', 'end_of_monitoring', 'risk_level', 'monitoring_plan', 'transferred_at'),
    (Workflow.ISOLATION, IsolationTab.ALL): (
        'jurisdiction', 'assigned_user', 'monitoring_plan', 'latest_report', 'status'),
    (Workflow.ISOLATION, IsolationTab.REQUIRING_REVIEW): _ISOLATION_ACTIVE,
    (Workflow.ISOLATION, IsolationTab.NON_REPORTING): _ISOLATION_ACTIVE,
    (Workflow.ISOLATION, IsolationTab.REPORTING): _ISOLATION_ACTIVE,
    (Workflow.ISOLATION, IsolationTab.CLOSED): _CLOSED,
    (Workflow.ISOLATION, IsolationTab.TRANSFERRED_IN): ('transferred_from', 'monitoring_plan', 'transferred_at'),
    (Workflow.ISOLATION, IsolationTab.TRANSFERRED_OUT): ('transferred_to', 'monitoring_plan', 'transferred_at'),
}


@dataclass
class Page:
    items: list
    total: int


def paginate(query, entries, page):
    """Slice an ordered query. `total` counts the whole filtered set."""
    total = query.order_by(None).count()
    if entries == 0 or entries * page >= total:
        return Page(items=[], total=total)
    items = query.limit(entries).offset(entries * page).all()
    return Page(items=items, total=total)


def fields_for(workflow, tab):
    workflow = Workflow(workflow)
    tab = parse_tab(workflow, getattr(tab, 'value', tab))
    return list(COMMON_FIELDS) + list(LINELIST_FIELDS[(workflow, tab)])


def _rfc2822(value):
    if value is None:
        return ''
    return format_datetime(value.replace(tzinfo=datetime.timezone.utc))


def _jurisdiction_attr(jurisdiction, attribute):
    return getattr(jurisdiction, attribute) if jurisdiction is not None else ''


_FIELD_VALUES = {
    'jurisdiction': lambda p, ctx: _jurisdiction_attr(p.jurisdiction, 'name'),
    'transferred_from': lambda p, ctx: _jurisdiction_attr(p.transferred_from_jurisdiction, 'path'),
    'transferred_to': lambda p, ctx: _jurisdiction_attr(p.jurisdiction, 'path'),
    'assigned_user': lambda p, ctx: p.assigned_user if p.assigned_user is not None else '',
    'end_of_monitoring': lambda p, ctx: p.end_of_monitoring or '',
    'risk_level': lambda p, ctx: p.exposure_risk_assessment or '',
    'monitoring_plan': lambda p, ctx: p.monitoring_plan or '',
    'public_health_action': lambda p, ctx: p.public_health_action or '',
    'expected_purge_date': lambda p, ctx: p.expected_purge_date or '',
    'reason_for_closure': lambda p, ctx: p.monitoring_reason or '',
    'closed_at': lambda p, ctx: _rfc2822(p.closed_at),
    'transferred_at': lambda p, ctx: _rfc2822(p.latest_transfer_at),
    'latest_report': lambda p, ctx: _rfc2822(p.latest_assessment_at),
    'status': lambda p, ctx: status_label(
        classify(p, ctx['workflow'], now=ctx['now'], settings=ctx['settings']), ctx['workflow']),
}


def project(patients, workflow, tab, total, now=None, settings=None):
    """
    Build the linelist payload for one page of patients.

    Every record carries the same keys: the common fields plus the ones the
    (workflow, tab) table lists. Nothing else is emitted.
    """
    workflow = Workflow(workflow)
    tab = parse_tab(workflow, getattr(tab, 'value', tab))
    specific = LINELIST_FIELDS[(workflow, tab)]
    ctx = {'workflow': workflow, 'now': now, 'settings': settings}

    linelist = []
    for patient in patients:
        details = {
            'id': patient.id,
            'name': patient.displayed_name,
            'state_local_id': patient.user_defined_id_statelocal or '',
            'sex': patient.sex or '',
            'dob': patient.date_of_birth.isoformat() if patient.date_of_birth else '',
        }
        for field in specific:
            details[field] = _FIELD_VALUES[field](patient, ctx)
        linelist.append(details)

    return {'linelist': linelist, 'fields': list(COMMON_FIELDS) + list(specific), 'total': total}
