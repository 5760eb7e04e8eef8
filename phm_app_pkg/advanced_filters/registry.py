# phm_app_pkg/advanced_filters/registry.py
"""
Static registry of the fields the advanced filter can be built from.

Each entry names the Patient attribute it reads (so criteria can be built
against the Patient table or an alias of it), the statement type and the
operators/options the statement may use.
"""
import datetime
from dataclasses import dataclass, field as dataclass_field

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import aliased

from ..models import Patient

BOOLEAN = 'boolean'
SELECT = 'select'
NUMBER = 'number'
DATE = 'date'
RELATIVE = 'relative'
SEARCH = 'search'

EXACT_MATCH = 'Exact Match'
CONTAINS = 'Contains'


@dataclass(frozen=True)
class FilterField:
    name: str
    title: str
    type: str
    attribute: str = None
    description: str = ''
    options: tuple = ()
    # Select option that stands for "no value recorded".
    blank_option: str = None
    allow_range: bool = False
    has_timestamp: bool = False
    # Search fields whose stored value is itself a comma separated list.
    multi_valued: bool = False
    # Search fields that match the whole household of a matching record.
    household: bool = False
    # Boolean fields: builds the (never NULL) criterion for "true".
    expression: object = dataclass_field(default=None, compare=False, repr=False)

    def column(self, entity=Patient):
        return getattr(entity, self.attribute)

    def to_dict(self):
        return {
            "name": self.name,
            "title": self.title,
            "type": self.type,
            "description": self.description,
            "options": list(self.options),
            "allowRange": self.allow_range,
            "hasTimestamp": self.has_timestamp,
        }


def _within_last_day(attribute):
    def build(now):
        column = getattr(Patient, attribute)
        return and_(column.isnot(None), column >= now - datetime.timedelta(hours=24))
    return build


def _flag(attribute):
    return lambda now: getattr(Patient, attribute).is_(True)


def _head_of_household(now):
    dependent = aliased(Patient)
    responders = select(dependent.responder_id).where(
        dependent.responder_id.isnot(None),
        dependent.id != dependent.responder_id
    )
    return and_(
        Patient.responder_id.isnot(None),
        Patient.id == Patient.responder_id,
        Patient.id.in_(responders)
    )


def _household_member(now):
    return and_(Patient.responder_id.isnot(None), Patient.id != Patient.responder_id)


def _self_reporter(now):
    return and_(Patient.responder_id.isnot(None), Patient.id == Patient.responder_id)


_FIELDS = [
    # boolean
    FilterField('sent-today', 'Sent Notification in last 24 hours', BOOLEAN,
                description='Monitorees who have been sent a notification in the last 24 hours',
                expression=_within_last_day('last_assessment_reminder_sent')),
    FilterField('responded-today', 'Reported in last 24 hours', BOOLEAN,
                description='Monitorees who had a report created in the last 24 hours',
                expression=_within_last_day('latest_assessment_at')),
    FilterField('paused', 'Notifications Paused', BOOLEAN,
                description='Monitorees who have paused notifications',
                expression=_flag('pause_notifications')),
    FilterField('continuous-exposure', 'Continuous Exposure', BOOLEAN,
                description='Monitorees who have continuous exposure enabled',
                expression=_flag('continuous_exposure')),
    FilterField('hoh', 'Head of Household', BOOLEAN,
                description='Monitorees who report on behalf of other household members',
                expression=_head_of_household),
    FilterField('household-member', 'Household Member', BOOLEAN,
                description='Monitorees whose reports are submitted by another household member',
                expression=_household_member),
    FilterField('self-reporter', 'Self Reporter', BOOLEAN,
                description='Monitorees who report for themselves',
                expression=_self_reporter),

    # select
    FilterField('preferred-contact-method', 'Preferred Contact Method', SELECT, 'preferred_contact_method',
                options=('Unknown', 'E-mailed Web Link', 'SMS Texted Weblink', 'Telephone call',
                         'SMS Text-message', 'Opt-out'),
                blank_option='Unknown'),
    FilterField('preferred-contact-time', 'Preferred Contact Time', SELECT, 'preferred_contact_time',
                options=('Unknown', 'Morning', 'Afternoon', 'Evening'),
                blank_option='Unknown'),
    FilterField('risk-exposure', 'Exposure Risk Assessment', SELECT, 'exposure_risk_assessment',
                options=('Unknown', 'High', 'Medium', 'Low', 'No Identified Risk'),
                blank_option='Unknown'),
    FilterField('monitoring-plan', 'Monitoring Plan', SELECT, 'monitoring_plan',
                options=('None', 'Daily active monitoring', 'Self-monitoring with public health supervision',
                         'Self-monitoring with delegated supervision', 'Self-observation')),
    FilterField('case-status', 'Case Status', SELECT, 'case_status',
                options=('Confirmed', 'Probable', 'Suspect', 'Unknown', 'Not a Case')),
    FilterField('sex', 'Sex', SELECT, 'sex',
                options=('Female', 'Male', 'Unknown')),

    # number
    FilterField('age', 'Age', NUMBER, 'age',
                description='Current age of monitoree', allow_range=True),
    FilterField('assigned-user', 'Assigned User', NUMBER, 'assigned_user',
                description='Monitorees with the given assigned user number'),

    # date
    FilterField('enrolled', 'Enrolled (Date)', DATE, 'created_at',
                description='Monitorees enrolled in system during specified date range', has_timestamp=True),
    FilterField('latest-report', 'Latest Report (Date)', DATE, 'latest_assessment_at',
                description='Monitorees with latest report during specified date range', has_timestamp=True),
    FilterField('last-date-exposure', 'Last Date of Exposure (Date)', DATE, 'last_date_of_exposure',
                description='Monitorees who have a last date of exposure during specified date range'),
    FilterField('symptom-onset', 'Symptom Onset (Date)', DATE, 'symptom_onset',
                description='Monitorees who have a symptom onset date during specified date range'),

    # relative date
    FilterField('enrolled-relative', 'Enrolled (Relative Date)', RELATIVE, 'created_at',
                description='Monitorees enrolled in system during specified date range (relative to the current date)',
                has_timestamp=True),
    FilterField('latest-report-relative', 'Latest Report (Relative Date)', RELATIVE, 'latest_assessment_at',
                description='Monitorees with latest report during specified date range (relative to the current date)',
                has_timestamp=True),
    FilterField('last-date-exposure-relative', 'Last Date of Exposure (Relative Date)', RELATIVE,
                'last_date_of_exposure',
                description='Monitorees who have a last date of exposure during specified date range (relative to the current date)'),
    FilterField('symptom-onset-relative', 'Symptom Onset (Relative Date)', RELATIVE, 'symptom_onset',
                description='Monitorees who have a symptom onset date during specified date range (relative to the current date)'),

    # search
    FilterField('close-contact-with-known-case-id', 'Close Contact with a Known Case (Text)', SEARCH,
                'contact_of_known_case_id',
                description='Monitorees and their households with a known Case ID',
                options=(EXACT_MATCH, CONTAINS), multi_valued=True, household=True),
    FilterField('telephone-number', 'Telephone Number (Text)', SEARCH, 'primary_telephone',
                description='Monitorees with specified 10 digit telephone number',
                options=(EXACT_MATCH, CONTAINS)),
    FilterField('email', 'Email (Text)', SEARCH, 'email',
                description='Monitorees with specified email address',
                options=(EXACT_MATCH, CONTAINS)),
]

FILTER_FIELDS = {filter_field.name: filter_field for filter_field in _FIELDS}


def get_field(name):
    """Look up a field by name; returns None for unknown names."""
    return FILTER_FIELDS.get(name)


def describe_fields():
    return [filter_field.to_dict() for filter_field in sorted(_FIELDS, key=lambda f: f.title)]
