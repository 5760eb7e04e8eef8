from . import db # Imports the db instance from __init__.py
from werkzeug.security import generate_password_hash, check_password_hash
from flask import current_app
from email.utils import format_datetime
from sqlalchemy import or_
import datetime

# --- Association Tables (Many-to-Many) ---
user_roles = db.Table('user_roles',
    db.Column('user_id', db.Integer, db.ForeignKey('users.id'), primary_key=True),
    db.Column('role_id', db.Integer, db.ForeignKey('roles.id'), primary_key=True)
)

role_permissions = db.Table('role_permissions',
    db.Column('role_id', db.Integer, db.ForeignKey('roles.id'), primary_key=True),
    db.Column('permission_id', db.Integer, db.ForeignKey('permissions.id'), primary_key=True)
)

# --- Model Definitions ---

class Jurisdiction(db.Model):
    """
    A node of the public health organisational hierarchy.
    `path` holds the names of all ancestors and the node itself, joined by
    PATH_SEPARATOR, so that descendants always share their ancestor's path
    as a prefix.
    """
    __tablename__ = 'jurisdictions'
    PATH_SEPARATOR = ', '

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    parent_id = db.Column(db.Integer, db.ForeignKey('jurisdictions.id'), nullable=True, index=True)
    path = db.Column(db.String(1024), unique=True, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)

    parent = db.relationship(
        'Jurisdiction',
        remote_side=[id],
        backref=db.backref('children', lazy='dynamic')
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if not self.path:
            parent = self.parent
            if parent is None and self.parent_id is not None:
                parent = db.session.get(Jurisdiction, self.parent_id)
            self.path = f"{parent.path}{self.PATH_SEPARATOR}{self.name}" if parent else self.name

    @property
    def subtree_ids(self):
        """Ids of this jurisdiction and every descendant."""
        rows = db.session.query(Jurisdiction.id).filter(or_(
            Jurisdiction.id == self.id,
            Jurisdiction.path.startswith(f"{self.path}{self.PATH_SEPARATOR}", autoescape=True)
        )).all()
        return {row.id for row in rows}

    def transferred_in_patients(self):
        """Records now in this subtree whose latest transfer came from outside it."""
        subtree = self.subtree_ids
        return Patient.query.filter(
            Patient.jurisdiction_id.in_(subtree),
            Patient.latest_transfer_from.isnot(None),
            Patient.latest_transfer_from.notin_(subtree)
        )

    def transferred_out_patients(self):
        """Records whose latest transfer left this subtree for another one."""
        subtree = self.subtree_ids
        return Patient.query.filter(
            Patient.latest_transfer_from.in_(subtree),
            Patient.jurisdiction_id.notin_(subtree)
        )

    def __repr__(self):
        return f'<Jurisdiction {self.path}>'


class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    hashed_password = db.Column(db.String(200), nullable=False)
    full_name = db.Column(db.String(120), nullable=True)
    is_active = db.Column(db.Boolean, default=True)
    jurisdiction_id = db.Column(db.Integer, db.ForeignKey('jurisdictions.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    jurisdiction = db.relationship('Jurisdiction', backref=db.backref('users', lazy='dynamic'))
    roles = db.relationship('Role', secondary=user_roles, lazy='subquery',
                            backref=db.backref('users', lazy=True))

    def set_password(self, password):
        self.hashed_password = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.hashed_password, password)

    def get_permissions(self):
        perms = set()
        for role in self.roles:
            for perm in role.permissions:
                perms.add(perm.name)
        return list(perms)

    def has_role(self, role_name):
        return any(role.name == role_name for role in self.roles)

    @property
    def viewable_patients(self):
        """Every record inside the user's home jurisdiction subtree."""
        return Patient.query.filter(Patient.jurisdiction_id.in_(self.jurisdiction.subtree_ids))

    @property
    def enrolled_patients(self):
        return Patient.query.filter(Patient.creator_id == self.id)

    def to_dict(self, include_permissions=True, include_roles=True):
        data = {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "full_name": self.full_name,
            "is_active": self.is_active,
            "jurisdiction_id": self.jurisdiction_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None
        }
        if include_roles:
            data["roles"] = [role.name for role in self.roles]
        if include_permissions:
            data["permissions"] = self.get_permissions()
        return data

    def __repr__(self):
        return f'<User {self.username}>'

class TokenBlacklist(db.Model):
    """
    Model for storing blacklisted JWT tokens (e.g., after logout).
    """
    __tablename__ = 'token_blacklist'
    id = db.Column(db.Integer, primary_key=True)
    jti = db.Column(db.String(36), nullable=False, unique=True, index=True) # JWT ID
    expires_at = db.Column(db.DateTime, nullable=False) # Should match token's expiry

    def __repr__(self):
        return f'<TokenBlacklist jti:{self.jti}>'

class Role(db.Model):
    __tablename__ = 'roles'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(80), unique=True, nullable=False)
    description = db.Column(db.String(255))
    permissions = db.relationship('Permission', secondary=role_permissions, lazy='subquery',
                                  backref=db.backref('roles', lazy=True))
    def __repr__(self):
        return f'<Role {self.name}>'

class Permission(db.Model):
    __tablename__ = 'permissions'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(80), unique=True, nullable=False)
    description = db.Column(db.String(255))
    def __repr__(self):
        return f'<Permission {self.name}>'


class Patient(db.Model):
    """A monitoree followed in either the exposure or the isolation workflow."""
    __tablename__ = 'patients'
    id = db.Column(db.Integer, primary_key=True)

    # Identity
    first_name = db.Column(db.String(200), nullable=True, index=True)
    last_name = db.Column(db.String(200), nullable=True, index=True)
    date_of_birth = db.Column(db.Date, nullable=True)
    age = db.Column(db.Integer, nullable=True)
    sex = db.Column(db.String(50), nullable=True)
    user_defined_id_statelocal = db.Column(db.String(200), nullable=True, index=True)
    user_defined_id_cdc = db.Column(db.String(200), nullable=True)
    user_defined_id_nndss = db.Column(db.String(200), nullable=True)
    email = db.Column(db.String(200), nullable=True)
    primary_telephone = db.Column(db.String(50), nullable=True)

    # Workflow and lifecycle
    isolation = db.Column(db.Boolean, default=False, nullable=False, index=True)
    monitoring = db.Column(db.Boolean, default=True, nullable=False, index=True)
    purged = db.Column(db.Boolean, default=False, nullable=False, index=True)
    jurisdiction_id = db.Column(db.Integer, db.ForeignKey('jurisdictions.id'), nullable=False, index=True)
    assigned_user = db.Column(db.Integer, nullable=True, index=True)
    creator_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    responder_id = db.Column(db.Integer, db.ForeignKey('patients.id'), nullable=True, index=True)

    # Exposure
    last_date_of_exposure = db.Column(db.Date, nullable=True)
    continuous_exposure = db.Column(db.Boolean, default=False, nullable=False)
    exposure_risk_assessment = db.Column(db.String(200), nullable=True)
    symptom_onset = db.Column(db.Date, nullable=True)
    contact_of_known_case = db.Column(db.Boolean, default=False, nullable=False)
    contact_of_known_case_id = db.Column(db.String(200), nullable=True)

    # Isolation
    case_status = db.Column(db.String(200), nullable=True)
    latest_fever_or_fever_reducer_at = db.Column(db.DateTime, nullable=True)
    first_positive_lab_at = db.Column(db.Date, nullable=True)
    extended_isolation = db.Column(db.Date, nullable=True)

    # Plan and actions
    monitoring_plan = db.Column(db.String(200), nullable=True)
    public_health_action = db.Column(db.String(200), default='None', nullable=False)
    preferred_contact_method = db.Column(db.String(200), nullable=True)
    preferred_contact_time = db.Column(db.String(200), nullable=True)
    pause_notifications = db.Column(db.Boolean, default=False, nullable=False)

    # Closure
    closed_at = db.Column(db.DateTime, nullable=True)
    monitoring_reason = db.Column(db.String(200), nullable=True)

    # Transfers
    latest_transfer_at = db.Column(db.DateTime, nullable=True)
    latest_transfer_from = db.Column(db.Integer, db.ForeignKey('jurisdictions.id'), nullable=True, index=True)

    # Reports
    latest_assessment_at = db.Column(db.DateTime, nullable=True)
    last_assessment_reminder_sent = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow, nullable=False)

    jurisdiction = db.relationship('Jurisdiction', foreign_keys=[jurisdiction_id])
    transferred_from_jurisdiction = db.relationship('Jurisdiction', foreign_keys=[latest_transfer_from])
    creator = db.relationship('User', foreign_keys=[creator_id])
    responder = db.relationship(
        'Patient',
        remote_side=[id],
        backref=db.backref('dependents', lazy='dynamic')
    )

    @property
    def displayed_name(self):
        return f"{self.last_name or ''}, {self.first_name or ''}"

    @property
    def end_of_monitoring(self):
        """ISO date monitoring is expected to end, or 'Continuous Exposure'."""
        if self.continuous_exposure:
            return 'Continuous Exposure'
        period = datetime.timedelta(days=current_app.config.get('MONITORING_PERIOD_DAYS', 14))
        if self.last_date_of_exposure:
            return (self.last_date_of_exposure + period).isoformat()
        if self.created_at:
            return (self.created_at.date() + period).isoformat()
        return None

    @property
    def expected_purge_date(self):
        """RFC 2822 timestamp after which a closed record becomes purgeable."""
        if self.monitoring:
            return None
        closed = self.closed_at or self.updated_at
        if not closed:
            return None
        purgeable_after = datetime.timedelta(minutes=current_app.config.get('PURGEABLE_AFTER_MINUTES', 20160))
        return format_datetime((closed + purgeable_after).replace(tzinfo=datetime.timezone.utc))

    @property
    def status(self):
        from .public_health.tabs import classify, Workflow
        workflow = Workflow.ISOLATION if self.isolation else Workflow.EXPOSURE
        return classify(self, workflow)

    @property
    def household_ids(self):
        """Ids of the household: the responder and everyone it reports for."""
        head_id = self.responder_id or self.id
        rows = db.session.query(Patient.id).filter(
            or_(Patient.id == head_id, Patient.responder_id == head_id)
        ).all()
        return {row.id for row in rows}

    def __repr__(self):
        return f'<Patient {self.id} - {self.displayed_name}>'


class UserFilter(db.Model):
    """A named advanced filter saved by (and only visible to) its owner."""
    __tablename__ = 'user_filters'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'name', name='uq_user_filters_user_id_name'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    contents = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    user = db.relationship('User', backref=db.backref('user_filters', lazy='dynamic'))

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "contents": self.contents or [],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None
        }

    def __repr__(self):
        return f'<UserFilter {self.id} "{self.name}" owner:{self.user_id}>'


class AuditLog(db.Model):
    __tablename__ = 'audit_logs'
    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(100), nullable=False, index=True)
    target_model = db.Column(db.String(100), nullable=True)
    target_id = db.Column(db.String(36), nullable=True)
    change_details = db.Column(db.JSON, nullable=True)
    user_id = db.Column(db.Integer, nullable=True)
    user_username = db.Column(db.String(80), nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, nullable=False)

    def __repr__(self):
        return f'<AuditLog {self.action} {self.target_model}:{self.target_id}>'
