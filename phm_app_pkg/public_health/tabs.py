# phm_app_pkg/public_health/tabs.py
"""
Tab classification for the public health dashboard.

Every monitoree that is not purged belongs to exactly one partition tab of
its workflow. The rules exist twice: as plain predicates over a Patient
(`classify`) and as SQLAlchemy criteria (`tab_criteria`) used to build the
worklist queries. Both are written from the same rule table below and the
test-suite checks that they agree.
"""
import datetime
from dataclasses import dataclass
from enum import Enum

from flask import current_app
from sqlalchemy import and_, or_, func

from ..models import Patient


class Workflow(str, Enum):
    EXPOSURE = 'exposure'
    ISOLATION = 'isolation'


class ExposureTab(str, Enum):
    ALL = 'all'
    SYMPTOMATIC = 'symptomatic'
    NON_REPORTING = 'non_reporting'
    ASYMPTOMATIC = 'asymptomatic'
    PUI = 'pui'
    CLOSED = 'closed'
    TRANSFERRED_IN = 'transferred_in'
    TRANSFERRED_OUT = 'transferred_out'


class IsolationTab(str, Enum):
    ALL = 'all'
    REQUIRING_REVIEW = 'requiring_review'
    NON_REPORTING = 'non_reporting'
    REPORTING = 'reporting'
    CLOSED = 'closed'
    TRANSFERRED_IN = 'transferred_in'
    TRANSFERRED_OUT = 'transferred_out'


TABS = {
    Workflow.EXPOSURE: ExposureTab,
    Workflow.ISOLATION: IsolationTab,
}

TRANSFER_TABS = frozenset({'transferred_in', 'transferred_out'})

# Status names that differ from the tab id; everything else uses the tab id.
_STATUS_NAMES = {
    ExposureTab.PUI: 'under_investigation',
}


@dataclass(frozen=True)
class ClassifierSettings:
    reporting_period: datetime.timedelta
    symptom_onset_days: int
    fever_free_hours: int

    @classmethod
    def from_config(cls, config=None):
        config = config if config is not None else current_app.config
        return cls(
            reporting_period=datetime.timedelta(minutes=config.get('REPORTING_PERIOD_MINUTES', 1440)),
            symptom_onset_days=config.get('ISOLATION_SYMPTOM_ONSET_DAYS', 10),
            fever_free_hours=config.get('ISOLATION_FEVER_FREE_HOURS', 24),
        )


@dataclass(frozen=True)
class _Cutoffs:
    """Moments the temporal rules compare against, computed once per request."""
    today: datetime.date
    reported_since: datetime.datetime
    onset_before: datetime.date
    fever_free_since: datetime.datetime

    @classmethod
    def at(cls, now, settings):
        return cls(
            today=now.date(),
            reported_since=now - settings.reporting_period,
            onset_before=now.date() - datetime.timedelta(days=settings.symptom_onset_days),
            fever_free_since=now - datetime.timedelta(hours=settings.fever_free_hours),
        )


def tabs_for(workflow):
    return TABS[Workflow(workflow)]


def parse_tab(workflow, value):
    """Return the tab enum member for `value`, raising ValueError when the workflow has no such tab."""
    return tabs_for(workflow)(value)


def is_transfer_tab(tab):
    return getattr(tab, 'value', tab) in TRANSFER_TABS


def partition_tabs(workflow):
    """Tabs that split the workflow's active records, i.e. all but `all` and the transfer tabs."""
    return [tab for tab in tabs_for(workflow) if tab.value != 'all' and not is_transfer_tab(tab)]


# --- Python predicates ---

def _has_public_health_action(patient):
    return patient.public_health_action is not None and patient.public_health_action != 'None'


def _recently_reported(patient, cut):
    if patient.latest_assessment_at is not None:
        return patient.latest_assessment_at >= cut.reported_since
    return patient.created_at is not None and patient.created_at >= cut.reported_since


def _meets_recovery_definition(patient, cut):
    if patient.extended_isolation is not None and patient.extended_isolation >= cut.today:
        return False
    if patient.symptom_onset is not None:
        fever_free = (patient.latest_fever_or_fever_reducer_at is None
                      or patient.latest_fever_or_fever_reducer_at <= cut.fever_free_since)
        return patient.symptom_onset <= cut.onset_before and fever_free
    return patient.first_positive_lab_at is not None and patient.first_positive_lab_at <= cut.onset_before


_EXPOSURE_RULES = {
    ExposureTab.CLOSED: lambda p, cut: not p.monitoring,
    ExposureTab.PUI: lambda p, cut: p.monitoring and _has_public_health_action(p),
    ExposureTab.SYMPTOMATIC: lambda p, cut: (
        p.monitoring and not _has_public_health_action(p) and p.symptom_onset is not None),
    ExposureTab.ASYMPTOMATIC: lambda p, cut: (
        p.monitoring and not _has_public_health_action(p) and p.symptom_onset is None
        and _recently_reported(p, cut)),
    ExposureTab.NON_REPORTING: lambda p, cut: (
        p.monitoring and not _has_public_health_action(p) and p.symptom_onset is None
        and not _recently_reported(p, cut)),
}

_ISOLATION_RULES = {
    IsolationTab.CLOSED: lambda p, cut: not p.monitoring,
    IsolationTab.REQUIRING_REVIEW: lambda p, cut: p.monitoring and _meets_recovery_definition(p, cut),
    IsolationTab.REPORTING: lambda p, cut: (
        p.monitoring and not _meets_recovery_definition(p, cut) and _recently_reported(p, cut)),
    IsolationTab.NON_REPORTING: lambda p, cut: (
        p.monitoring and not _meets_recovery_definition(p, cut) and not _recently_reported(p, cut)),
}

_RULES = {
    Workflow.EXPOSURE: _EXPOSURE_RULES,
    Workflow.ISOLATION: _ISOLATION_RULES,
}


def classify(patient, workflow, now=None, settings=None):
    """
    Return the partition tab `patient` belongs to within `workflow`.

    Purged records and records of the other workflow belong to no tab and
    yield None. Exactly one rule matches any other record; anything else is a
    broken rule table and raises.
    """
    workflow = Workflow(workflow)
    if patient.purged or bool(patient.isolation) != (workflow is Workflow.ISOLATION):
        return None
    now = now or datetime.datetime.utcnow()
    cut = _Cutoffs.at(now, settings or ClassifierSettings.from_config())

    matches = [tab for tab, rule in _RULES[workflow].items() if rule(patient, cut)]
    if len(matches) != 1:
        raise RuntimeError(f"Patient {patient.id} matched {len(matches)} {workflow.value} tabs: {matches}")
    return matches[0]


def status_label(tab, workflow):
    """Humanized status shown on the `all` tabs, without the workflow prefix."""
    if tab is None:
        return ''
    name = _STATUS_NAMES.get(tab, tab.value)
    status = f"{Workflow(workflow).value}_{name}"
    return status.replace('_', ' ').replace('exposure ', '').replace('isolation ', '')


# --- SQL criteria ---

def _sql_has_public_health_action():
    return func.coalesce(Patient.public_health_action, 'None') != 'None'


def _sql_recently_reported(cut, reported=True):
    if reported:
        return or_(
            and_(Patient.latest_assessment_at.isnot(None), Patient.latest_assessment_at >= cut.reported_since),
            and_(Patient.latest_assessment_at.is_(None), Patient.created_at >= cut.reported_since),
        )
    return or_(
        and_(Patient.latest_assessment_at.isnot(None), Patient.latest_assessment_at < cut.reported_since),
        and_(Patient.latest_assessment_at.is_(None), Patient.created_at < cut.reported_since),
    )


def _sql_meets_recovery_definition(cut):
    # Each branch guards its own NULLs so the expression is never NULL and can be negated.
    return and_(
        or_(Patient.extended_isolation.is_(None), Patient.extended_isolation < cut.today),
        or_(
            and_(
                Patient.symptom_onset.isnot(None),
                Patient.symptom_onset <= cut.onset_before,
                or_(Patient.latest_fever_or_fever_reducer_at.is_(None),
                    Patient.latest_fever_or_fever_reducer_at <= cut.fever_free_since),
            ),
            and_(
                Patient.symptom_onset.is_(None),
                Patient.first_positive_lab_at.isnot(None),
                Patient.first_positive_lab_at <= cut.onset_before,
            ),
        ),
    )


def workflow_criteria(workflow):
    """Records of the workflow that have not been purged."""
    return and_(
        Patient.isolation.is_(Workflow(workflow) is Workflow.ISOLATION),
        Patient.purged.is_(False),
    )


def tab_criteria(workflow, tab, now=None, settings=None):
    """SQL criterion selecting the records `classify` maps to `tab` (or the whole workflow for `all`)."""
    workflow = Workflow(workflow)
    tab = parse_tab(workflow, getattr(tab, 'value', tab))
    if is_transfer_tab(tab):
        raise ValueError(f"'{tab.value}' depends on the viewer's jurisdiction; use transfer_query().")

    base = workflow_criteria(workflow)
    if tab.value == 'all':
        return base

    now = now or datetime.datetime.utcnow()
    cut = _Cutoffs.at(now, settings or ClassifierSettings.from_config())
    monitoring = Patient.monitoring.is_(True)

    if workflow is Workflow.EXPOSURE:
        no_action = ~_sql_has_public_health_action()
        criteria = {
            ExposureTab.CLOSED: Patient.monitoring.is_(False),
            ExposureTab.PUI: and_(monitoring, _sql_has_public_health_action()),
            ExposureTab.SYMPTOMATIC: and_(monitoring, no_action, Patient.symptom_onset.isnot(None)),
            ExposureTab.ASYMPTOMATIC: and_(monitoring, no_action, Patient.symptom_onset.is_(None),
                                           _sql_recently_reported(cut, reported=True)),
            ExposureTab.NON_REPORTING: and_(monitoring, no_action, Patient.symptom_onset.is_(None),
                                            _sql_recently_reported(cut, reported=False)),
        }
    else:
        recovered = _sql_meets_recovery_definition(cut)
        criteria = {
            IsolationTab.CLOSED: Patient.monitoring.is_(False),
            IsolationTab.REQUIRING_REVIEW: and_(monitoring, recovered),
            IsolationTab.REPORTING: and_(monitoring, ~recovered, _sql_recently_reported(cut, reported=True)),
            IsolationTab.NON_REPORTING: and_(monitoring, ~recovered, _sql_recently_reported(cut, reported=False)),
        }
    return and_(base, criteria[tab])
