"""
Tests for worklist ordering
"""
import datetime

from phm_app_pkg.models import Patient
from phm_app_pkg.public_health.linelist import paginate
from phm_app_pkg.public_health.sorting import normalize_direction, sort


def ordered_ids(key, direction):
    return [patient.id for patient in sort(Patient.query, key, direction).all()]


class TestDirection:

    def test_only_exact_asc_is_ascending(self):
        assert normalize_direction('asc') == 'asc'
        assert normalize_direction('desc') == 'desc'
        assert normalize_direction('ASC') == 'desc'
        assert normalize_direction(None) == 'desc'
        assert normalize_direction('sideways') == 'desc'


class TestNulls:
    """NULLs sort last in both directions"""

    def test_assigned_user(self, make_patient):
        three = make_patient(assigned_user=3)
        missing = make_patient()
        one = make_patient(assigned_user=1)
        assert ordered_ids('assigned_user', 'asc') == [one.id, three.id, missing.id]
        assert ordered_ids('assigned_user', 'desc') == [three.id, one.id, missing.id]

    def test_latest_report(self, make_patient, now):
        never = make_patient()
        older = make_patient(latest_assessment_at=now - datetime.timedelta(days=2))
        newer = make_patient(latest_assessment_at=now - datetime.timedelta(hours=1))
        assert ordered_ids('latest_report', 'asc') == [older.id, newer.id, never.id]
        assert ordered_ids('latest_report', 'desc') == [newer.id, older.id, never.id]


class TestKeys:

    def test_name_sorts_by_last_then_first(self, make_patient):
        smith_bob = make_patient(last_name='Smith', first_name='Bob')
        adams = make_patient(last_name='Adams', first_name='Zed')
        smith_al = make_patient(last_name='Smith', first_name='Al')
        assert ordered_ids('name', 'asc') == [adams.id, smith_al.id, smith_bob.id]
        assert ordered_ids('name', 'desc') == [smith_bob.id, smith_al.id, adams.id]

    def test_risk_level_uses_clinical_rank(self, make_patient):
        high = make_patient(exposure_risk_assessment='High')
        unknown = make_patient()
        low = make_patient(exposure_risk_assessment='Low')
        none_identified = make_patient(exposure_risk_assessment='No Identified Risk')
        medium = make_patient(exposure_risk_assessment='Medium')
        assert ordered_ids('risk_level', 'asc') == [none_identified.id, low.id, medium.id, high.id, unknown.id]
        assert ordered_ids('risk_level', 'desc') == [high.id, medium.id, low.id, none_identified.id, unknown.id]

    def test_jurisdiction_name(self, make_patient):
        county_2 = make_patient('County 2')
        county_1 = make_patient('County 1')
        assert ordered_ids('jurisdiction', 'asc') == [county_1.id, county_2.id]

    def test_ties_are_broken_by_id(self, make_patient):
        first, second, third = (make_patient(sex='Female') for _ in range(3))
        assert ordered_ids('sex', 'asc') == [first.id, second.id, third.id]
        assert ordered_ids('sex', 'desc') == [third.id, second.id, first.id]

    def test_unknown_or_missing_key_keeps_primary_key_order(self, make_patient):
        patients = [make_patient(last_name=name) for name in ('C', 'A', 'B')]
        expected = [patient.id for patient in patients]
        assert ordered_ids('favourite_colour', 'asc') == expected
        assert ordered_ids(None, 'desc') == expected
        assert ordered_ids('', 'asc') == expected

    def test_joins_do_not_change_the_total(self, make_patient, jurisdictions):
        make_patient('County 1', latest_transfer_from=jurisdictions['County 3'].id)
        make_patient('County 2')
        make_patient('County 3')
        for key in ('jurisdiction', 'transferred_from', 'transferred_to'):
            assert paginate(sort(Patient.query, key, 'asc'), 2, 0).total == 3
