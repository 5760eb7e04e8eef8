# phm_app_pkg/advanced_filters/services.py
import calendar
import datetime

from flask import current_app
from sqlalchemy import String, and_, literal, or_, select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import aliased

from .. import db
from ..errors import AdvancedFilterError, ValidationError
from ..models import Patient, UserFilter
from .statements import (
    BooleanStatement, DateStatement, NumberStatement, RelativeDateStatement,
    SearchStatement, SelectStatement, parse_statements,
)
from . import registry

MAX_FILTER_NAME_LENGTH = 255


# --- Date arithmetic ---

def shift(value, number, unit, sign=1):
    """Move a date/datetime by `number` days, weeks or months (month ends are clamped)."""
    if unit == 'days':
        return value + sign * datetime.timedelta(days=number)
    if unit == 'weeks':
        return value + sign * datetime.timedelta(weeks=number)
    month_index = value.year * 12 + (value.month - 1) + sign * number
    year, month = divmod(month_index, 12)
    month += 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def _day_start(day):
    return datetime.datetime.combine(day, datetime.time.min)


# --- Criteria per statement type ---

def _boolean_criterion(statement, now):
    criterion = statement.field.expression(now)
    return criterion if statement.value else ~criterion


def _select_criterion(statement, now):
    column = statement.field.column()
    if statement.field.blank_option is not None and statement.value == statement.field.blank_option:
        return or_(column.is_(None), column == '', column == statement.value)
    return column == statement.value


def _number_criterion(statement, now):
    column = statement.field.column()
    if statement.operator == 'between':
        first, second = statement.bounds
        return and_(column >= first, column <= second)
    return {
        'less-than': lambda: column < statement.value,
        'less-than-equal': lambda: column <= statement.value,
        'equal': lambda: column == statement.value,
        'greater-than-equal': lambda: column >= statement.value,
        'greater-than': lambda: column > statement.value,
    }[statement.operator]()


def _date_criterion(statement, now):
    column = statement.field.column()
    one_day = datetime.timedelta(days=1)
    if statement.field.has_timestamp:
        if statement.operator == 'within':
            return and_(column >= _day_start(statement.start), column < _day_start(statement.end + one_day))
        if statement.operator == 'before':
            return column < _day_start(statement.value)
        return column >= _day_start(statement.value + one_day)

    if statement.operator == 'within':
        return and_(column >= statement.start, column <= statement.end)
    if statement.operator == 'before':
        return column < statement.value
    return column > statement.value


_KEYWORD_OFFSETS = {'yesterday': -1, 'today': 0, 'tomorrow': 1}


def _relative_criterion(statement, now):
    column = statement.field.column()
    timestamped = statement.field.has_timestamp
    today = now.date()

    if statement.option in _KEYWORD_OFFSETS:
        day = today + datetime.timedelta(days=_KEYWORD_OFFSETS[statement.option])
        if timestamped:
            return and_(column >= _day_start(day), column < _day_start(day + datetime.timedelta(days=1)))
        return column == day

    anchor = now if timestamped else today
    past = statement.when == 'past'
    boundary = shift(anchor, statement.number, statement.unit, sign=-1 if past else 1)

    if statement.operator == 'less-than':
        # Inside the window between the boundary and now/today.
        if past:
            return and_(column > boundary, column <= anchor)
        return and_(column >= anchor, column < boundary)
    # more-than: beyond the boundary.
    return column < boundary if past else column > boundary


def _search_match(statement, entity):
    column = statement.field.column(entity)
    if statement.mode == registry.CONTAINS:
        return or_(*[column.contains(value, autoescape=True) for value in statement.values])
    if statement.field.multi_valued:
        # ",12,45," contains ",45," when 45 is one of the stored ids.
        normalized = literal(',', String) + func.replace(column, ' ', '', type_=String) + literal(',', String)
        return or_(*[normalized.contains(f",{value.replace(' ', '')},", autoescape=True)
                     for value in statement.values])
    return column.in_(statement.values)


def _search_criterion(statement, now):
    match = _search_match(statement, Patient)
    if not statement.field.household:
        return match
    member = aliased(Patient)
    households = select(member.responder_id).where(
        _search_match(statement, member),
        member.responder_id.isnot(None)
    )
    return or_(match, Patient.responder_id.in_(households), Patient.id.in_(households))


_CRITERIA = {
    BooleanStatement: _boolean_criterion,
    SelectStatement: _select_criterion,
    NumberStatement: _number_criterion,
    DateStatement: _date_criterion,
    RelativeDateStatement: _relative_criterion,
    SearchStatement: _search_criterion,
}


def statement_criterion(statement, now=None):
    now = now or datetime.datetime.utcnow()
    try:
        return _CRITERIA[type(statement)](statement, now)
    except (OverflowError, ValueError):
        # Date arithmetic left the supported calendar range (years 1 to 9999).
        raise AdvancedFilterError(statement.field.name, f"'{statement.field.title}' reaches a date outside the supported range.")


def apply_advanced_filter(query, statements, now=None):
    """
    Narrow `query` by every statement (logical AND).
    `statements` may be parsed statements or the raw saved contents.
    """
    if statements and isinstance(statements[0], dict):
        statements = parse_statements(statements)
    now = now or datetime.datetime.utcnow()
    for statement in statements:
        query = query.filter(statement_criterion(statement, now))
    return query


# --- Saved filters ---

def list_user_filters(user):
    return UserFilter.query.filter_by(user_id=user.id).order_by(UserFilter.id.asc()).all()


def get_user_filter(user, filter_id):
    """The caller's own filter, or None. Other users' filters are never returned."""
    return UserFilter.query.filter_by(id=filter_id, user_id=user.id).first()


def _validate_name(name):
    if not isinstance(name, str) or not name.strip():
        raise ValidationError('name', "Filter name is required.")
    name = name.strip()
    if len(name) > MAX_FILTER_NAME_LENGTH:
        raise ValidationError('name', f"Filter name must be at most {MAX_FILTER_NAME_LENGTH} characters.")
    return name


def _name_taken(user, name, exclude_id=None):
    query = UserFilter.query.filter_by(user_id=user.id, name=name)
    if exclude_id is not None:
        query = query.filter(UserFilter.id != exclude_id)
    return query.first() is not None


def _commit_filter(user_filter, action):
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        current_app.logger.warning(f"[UserFilter] Duplicate name '{user_filter.name}' for user {user_filter.user_id} on {action}.")
        raise ValidationError('name', "Filter name is already taken.")


def create_user_filter(user, name, contents):
    name = _validate_name(name)
    parse_statements(contents)

    max_filters = current_app.config.get('MAX_USER_FILTERS', 25)
    if UserFilter.query.filter_by(user_id=user.id).count() >= max_filters:
        raise ValidationError('name', f"You may only save up to {max_filters} filters.")
    if _name_taken(user, name):
        raise ValidationError('name', "Filter name is already taken.")

    user_filter = UserFilter(user_id=user.id, name=name, contents=contents)
    db.session.add(user_filter)
    _commit_filter(user_filter, 'create')
    current_app.logger.info(f"[UserFilter] Created filter {user_filter.id} '{name}' for user {user.id}.")
    return user_filter


def update_user_filter(user, filter_id, contents=None, name=None):
    """Replace the statements and/or the name. Missing contents keep the stored ones; the last write wins."""
    user_filter = get_user_filter(user, filter_id)
    if user_filter is None:
        return None
    if contents is not None:
        parse_statements(contents)
    if name is not None:
        name = _validate_name(name)
        if _name_taken(user, name, exclude_id=user_filter.id):
            raise ValidationError('name', "Filter name is already taken.")
        user_filter.name = name
    if contents is not None:
        user_filter.contents = contents
    _commit_filter(user_filter, 'update')
    current_app.logger.info(f"[UserFilter] Updated filter {user_filter.id} for user {user.id}.")
    return user_filter


def delete_user_filter(user, filter_id):
    user_filter = get_user_filter(user, filter_id)
    if user_filter is None:
        return False
    db.session.delete(user_filter)
    db.session.commit()
    current_app.logger.info(f"[UserFilter] Deleted filter {filter_id} for user {user.id}.")
    return True
