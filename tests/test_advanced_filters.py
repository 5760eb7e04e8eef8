"""
Tests for advanced filter statements: parsing, evaluation and household fan-out
"""
import datetime

import pytest

from phm_app_pkg import db
from phm_app_pkg.advanced_filters.registry import describe_fields, get_field
from phm_app_pkg.advanced_filters.services import apply_advanced_filter, shift
from phm_app_pkg.advanced_filters.statements import (
    NumberStatement, RelativeDateStatement, SearchStatement, parse_statement, parse_statements,
)
from phm_app_pkg.errors import AdvancedFilterError
from phm_app_pkg.models import Patient

DAY = datetime.timedelta(days=1)


def statement(name, value, **options):
    raw = {'filterOption': {'name': name}, 'value': value}
    raw.update(options)
    return raw


def matching(statements, now):
    return {patient.id for patient in apply_advanced_filter(Patient.query, statements, now=now).all()}


class TestParsing:

    def test_number_defaults_to_equal(self):
        parsed = parse_statement(statement('age', 30))
        assert parsed == NumberStatement(field=get_field('age'), operator='equal', value=30)

    def test_between_needs_a_range_field(self):
        with pytest.raises(AdvancedFilterError) as excinfo:
            parse_statement(statement('assigned-user', {'firstBound': 1, 'secondBound': 5}, numberOption='between'))
        assert excinfo.value.field == 'assigned-user'

    def test_unknown_field_is_named(self):
        with pytest.raises(AdvancedFilterError) as excinfo:
            parse_statement(statement('shoe-size', 42))
        assert excinfo.value.field == 'shoe-size'

    @pytest.mark.parametrize('name', [['age'], {'name': 'age'}, 7])
    def test_field_reference_must_be_a_name(self, name):
        with pytest.raises(AdvancedFilterError) as excinfo:
            parse_statement(statement(name, 3))
        assert excinfo.value.field is None

    def test_number_too_large_to_store(self):
        with pytest.raises(AdvancedFilterError) as excinfo:
            parse_statement(statement('age', 10 ** 30))
        assert excinfo.value.field == 'age'

    def test_value_of_wrong_type(self):
        with pytest.raises(AdvancedFilterError) as excinfo:
            parse_statement(statement('paused', 'yes'))
        assert excinfo.value.field == 'paused'
        with pytest.raises(AdvancedFilterError):
            parse_statement(statement('age', '30'))

    def test_select_option_must_be_listed(self):
        with pytest.raises(AdvancedFilterError) as excinfo:
            parse_statement(statement('sex', 'Robot'))
        assert excinfo.value.field == 'sex'

    def test_future_is_rejected_for_timestamps(self):
        custom = {'operator': 'less-than', 'number': 2, 'unit': 'days', 'when': 'future'}
        with pytest.raises(AdvancedFilterError) as excinfo:
            parse_statement(statement('latest-report-relative', custom, relativeOption='custom'))
        assert excinfo.value.field == 'latest-report-relative'
        parsed = parse_statement(statement('symptom-onset-relative', custom, relativeOption='custom'))
        assert parsed.when == 'future'

    def test_relative_keyword(self):
        parsed = parse_statement(statement('enrolled-relative', 'today', relativeOption='today'))
        assert parsed == RelativeDateStatement(field=get_field('enrolled-relative'), option='today')

    def test_search_splits_on_commas(self):
        parsed = parse_statement(statement('email', 'a@example.org, b@example.org ,',
                                           additionalFilterOption='Contains'))
        assert parsed == SearchStatement(field=get_field('email'),
                                         values=('a@example.org', 'b@example.org'), mode='Contains')

    def test_blank_rows_are_skipped(self):
        contents = [{'filterOption': None, 'value': None}, statement('paused', True)]
        assert len(parse_statements(contents)) == 1

    def test_contents_must_be_a_list(self):
        with pytest.raises(AdvancedFilterError):
            parse_statements({'filterOption': {'name': 'paused'}})

    def test_option_descriptions(self):
        names = {option['name'] for option in describe_fields()}
        assert {'age', 'hoh', 'close-contact-with-known-case-id', 'enrolled-relative'} <= names


class TestNumberAndSelect:

    def test_equal_and_between(self, make_patient, now):
        twenty = make_patient(age=20)
        thirty = make_patient(age=30)
        make_patient(age=50)
        make_patient()
        assert matching([statement('age', 30)], now) == {thirty.id}
        between = statement('age', {'firstBound': 18, 'secondBound': 30}, numberOption='between')
        assert matching([between], now) == {twenty.id, thirty.id}
        assert matching([statement('age', 30, numberOption='less-than')], now) == {twenty.id}

    def test_unknown_option_matches_missing_values(self, make_patient, now):
        missing = make_patient()
        blank = make_patient(exposure_risk_assessment='')
        make_patient(exposure_risk_assessment='High')
        assert matching([statement('risk-exposure', 'Unknown')], now) == {missing.id, blank.id}

    def test_statements_are_combined_with_and(self, make_patient, now):
        both = make_patient(age=30, sex='Female')
        make_patient(age=30, sex='Male')
        make_patient(age=40, sex='Female')
        assert matching([statement('age', 30), statement('sex', 'Female')], now) == {both.id}


class TestBoolean:

    def test_paused(self, make_patient, now):
        paused = make_patient(pause_notifications=True)
        active = make_patient()
        assert matching([statement('paused', True)], now) == {paused.id}
        assert matching([statement('paused', False)], now) == {active.id}

    def test_responded_today_false_includes_never_reported(self, make_patient, now):
        reported = make_patient(latest_assessment_at=now - datetime.timedelta(hours=2))
        never = make_patient()
        stale = make_patient(latest_assessment_at=now - 3 * DAY)
        assert matching([statement('responded-today', True)], now) == {reported.id}
        assert matching([statement('responded-today', False)], now) == {never.id, stale.id}

    def test_household_roles(self, make_patient, now):
        head = make_patient()
        head.responder_id = head.id
        loner = make_patient()
        loner.responder_id = loner.id
        db.session.commit()
        member = make_patient(responder_id=head.id)

        assert matching([statement('hoh', True)], now) == {head.id}
        assert matching([statement('household-member', True)], now) == {member.id}
        assert matching([statement('self-reporter', True)], now) == {head.id, loner.id}


class TestDates:

    def test_enrolled_within_covers_whole_end_day(self, make_patient, now):
        inside = make_patient(created_at=datetime.datetime(2024, 5, 10, 23, 59))
        make_patient(created_at=datetime.datetime(2024, 5, 11, 0, 0))
        make_patient(created_at=datetime.datetime(2024, 5, 1, 12, 0))
        within = statement('enrolled', {'start': '2024-05-05', 'end': '2024-05-10'}, dateOption='within')
        assert matching([within], now) == {inside.id}

    def test_symptom_onset_before_and_after(self, make_patient, now):
        early = make_patient(symptom_onset=datetime.date(2024, 4, 1))
        same_day = make_patient(symptom_onset=datetime.date(2024, 4, 10))
        late = make_patient(symptom_onset=datetime.date(2024, 4, 20))
        assert matching([statement('symptom-onset', '2024-04-10', dateOption='before')], now) == {early.id}
        assert matching([statement('symptom-onset', '2024-04-10', dateOption='after')], now) == {late.id}
        assert same_day.id not in matching([statement('symptom-onset', '2024-04-10', dateOption='after')], now)

    def test_malformed_date(self):
        with pytest.raises(AdvancedFilterError) as excinfo:
            parse_statement(statement('enrolled', 'last tuesday', dateOption='before'))
        assert excinfo.value.field == 'enrolled'
        with pytest.raises(AdvancedFilterError):
            parse_statement(statement('enrolled', '2024-05-10garbage', dateOption='before'))

    def test_date_with_time_suffix(self):
        parsed = parse_statement(statement('symptom-onset', '2024-05-10T00:00:00.000Z', dateOption='after'))
        assert parsed.value == datetime.date(2024, 5, 10)

    @pytest.mark.usefixtures('app')
    def test_last_representable_day_on_a_timestamp(self, now):
        raw = statement('enrolled', {'start': '2024-05-05', 'end': '9999-12-31'}, dateOption='within')
        with pytest.raises(AdvancedFilterError) as excinfo:
            apply_advanced_filter(Patient.query, [raw], now=now)
        assert excinfo.value.field == 'enrolled'


class TestRelativeDates:

    def test_last_three_days(self, make_patient, now):
        today = now.date()
        yesterday = make_patient(last_date_of_exposure=today - DAY)
        make_patient(last_date_of_exposure=today - 5 * DAY)
        make_patient(last_date_of_exposure=today + DAY)
        make_patient()
        custom = {'operator': 'less-than', 'number': 3, 'unit': 'days', 'when': 'past'}
        raw = statement('last-date-exposure-relative', custom, relativeOption='custom')
        assert matching([raw], now) == {yesterday.id}

    def test_more_than_a_week_ago(self, make_patient, now):
        old = make_patient(last_date_of_exposure=now.date() - 10 * DAY)
        make_patient(last_date_of_exposure=now.date() - 2 * DAY)
        custom = {'operator': 'more-than', 'number': 1, 'unit': 'weeks', 'when': 'past'}
        raw = statement('last-date-exposure-relative', custom, relativeOption='custom')
        assert matching([raw], now) == {old.id}

    def test_today_on_a_timestamp(self, make_patient, now):
        start_of_today = datetime.datetime.combine(now.date(), datetime.time.min)
        reported_today = make_patient(latest_assessment_at=start_of_today)
        make_patient(latest_assessment_at=start_of_today - datetime.timedelta(hours=1))
        raw = statement('latest-report-relative', 'today', relativeOption='today')
        assert matching([raw], now) == {reported_today.id}

    @pytest.mark.usefixtures('app')
    @pytest.mark.parametrize('unit', ['days', 'weeks', 'months'])
    def test_window_outside_the_calendar(self, now, unit):
        custom = {'operator': 'less-than', 'number': 100000000, 'unit': unit, 'when': 'past'}
        raw = statement('last-date-exposure-relative', custom, relativeOption='custom')
        with pytest.raises(AdvancedFilterError) as excinfo:
            apply_advanced_filter(Patient.query, [raw], now=now)
        assert excinfo.value.field == 'last-date-exposure-relative'

    def test_month_shift_is_clamped(self):
        assert shift(datetime.date(2024, 3, 31), 1, 'months', sign=-1) == datetime.date(2024, 2, 29)
        assert shift(datetime.date(2024, 1, 31), 1, 'months') == datetime.date(2024, 2, 29)
        assert shift(datetime.date(2024, 12, 15), 2, 'months') == datetime.date(2025, 2, 15)
        assert shift(datetime.date(2024, 1, 10), 2, 'weeks', sign=-1) == datetime.date(2023, 12, 27)


class TestSearch:

    @pytest.fixture
    def household(self, make_patient):
        head = make_patient()
        head.responder_id = head.id
        db.session.commit()
        member = make_patient(responder_id=head.id, contact_of_known_case_id='123, 456')
        relative = make_patient(responder_id=head.id)
        other = make_patient(contact_of_known_case_id='1456')
        return head, member, relative, other

    def test_exact_case_id_fans_out_to_the_household(self, household, now):
        head, member, relative, other = household
        raw = statement('close-contact-with-known-case-id', '456', additionalFilterOption='Exact Match')
        assert matching([raw], now) == {head.id, member.id, relative.id}

    def test_contains_case_id(self, household, now):
        head, member, relative, other = household
        raw = statement('close-contact-with-known-case-id', '45', additionalFilterOption='Contains')
        assert matching([raw], now) == {head.id, member.id, relative.id, other.id}

    def test_household_ids(self, household):
        head, member, relative, other = household
        expected = {head.id, member.id, relative.id}
        assert head.household_ids == expected
        assert member.household_ids == expected
        assert other.household_ids == {other.id}

    def test_telephone_is_not_fanned_out(self, make_patient, now):
        head = make_patient(primary_telephone='+15555550111')
        head.responder_id = head.id
        db.session.commit()
        make_patient(responder_id=head.id, primary_telephone='+15555550199')
        raw = statement('telephone-number', '+15555550111', additionalFilterOption='Exact Match')
        assert matching([raw], now) == {head.id}

    def test_contains_escapes_wildcards(self, make_patient, now):
        make_patient(email='ada@example.org')
        raw = statement('email', '%', additionalFilterOption='Contains')
        assert matching([raw], now) == set()
