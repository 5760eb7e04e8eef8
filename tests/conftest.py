"""
Pytest configuration for all tests.

Every test gets a fresh app bound to an in-memory SQLite database, a small
jurisdiction tree, users with tokens and a patient factory:

    USA
    ├── State 1
    │   ├── County 1
    │   └── County 2
    └── State 2
        └── County 3
"""
import datetime

import pytest

from phm_app_pkg import create_app, db
from phm_app_pkg.models import Jurisdiction, Patient, Permission, Role, User
from phm_app_pkg.public_health.tabs import ClassifierSettings
from phm_app_pkg.utils import create_access_token

EPI_PERMISSIONS = ('public_health:read', 'patient:update', 'user_filter:manage', 'user:logout')
ENROLLER_PERMISSIONS = ('patient:update', 'user:logout')


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def now():
    return datetime.datetime.utcnow().replace(microsecond=0)


@pytest.fixture
def settings():
    return ClassifierSettings(
        reporting_period=datetime.timedelta(minutes=1440),
        symptom_onset_days=10,
        fever_free_hours=24,
    )


@pytest.fixture
def jurisdictions(app):
    usa = Jurisdiction(name='USA')
    db.session.add(usa)
    db.session.flush()
    state_1 = Jurisdiction(name='State 1', parent=usa)
    state_2 = Jurisdiction(name='State 2', parent=usa)
    db.session.add_all([state_1, state_2])
    db.session.flush()
    county_1 = Jurisdiction(name='County 1', parent=state_1)
    county_2 = Jurisdiction(name='County 2', parent=state_1)
    county_3 = Jurisdiction(name='County 3', parent=state_2)
    db.session.add_all([county_1, county_2, county_3])
    db.session.commit()
    return {
        'USA': usa, 'State 1': state_1, 'State 2': state_2,
        'County 1': county_1, 'County 2': county_2, 'County 3': county_3,
    }


def _role(name, permission_names):
    permissions = []
    for permission_name in permission_names:
        permission = Permission.query.filter_by(name=permission_name).first()
        if permission is None:
            permission = Permission(name=permission_name)
            db.session.add(permission)
        permissions.append(permission)
    role = Role(name=name, permissions=permissions)
    db.session.add(role)
    return role


@pytest.fixture
def users(jurisdictions):
    epi = _role('public_health', EPI_PERMISSIONS)
    enroller = _role('enroller', ENROLLER_PERMISSIONS)

    def make(username, jurisdiction, role):
        user = User(username=username, email=f"{username}@example.org",
                    jurisdiction_id=jurisdictions[jurisdiction].id, roles=[role])
        user.set_password('password123')
        db.session.add(user)
        return user

    created = {
        'usa_epi': make('usa_epi', 'USA', epi),
        'state1_epi': make('state1_epi', 'State 1', epi),
        'state2_epi': make('state2_epi', 'State 2', epi),
        'county1_epi': make('county1_epi', 'County 1', epi),
        'enroller': make('enroller', 'State 1', enroller),
    }
    db.session.commit()
    return created


@pytest.fixture
def auth_headers(users):
    def headers(username):
        user = users[username]
        token = create_access_token(user_id=user.id, user_permissions=user.get_permissions())
        return {'Authorization': f'Bearer {token}'}
    return headers


@pytest.fixture
def make_patient(jurisdictions, now):
    """Exposure monitoree in County 1, enrolled five days ago and never reported, unless overridden."""
    counter = {'n': 0}

    def make(jurisdiction='County 1', **kwargs):
        counter['n'] += 1
        kwargs.setdefault('first_name', f"First{counter['n']}")
        kwargs.setdefault('last_name', f"Last{counter['n']}")
        kwargs.setdefault('created_at', now - datetime.timedelta(days=5))
        kwargs.setdefault('updated_at', kwargs['created_at'])
        patient = Patient(jurisdiction_id=jurisdictions[jurisdiction].id, **kwargs)
        db.session.add(patient)
        db.session.commit()
        return patient
    return make
