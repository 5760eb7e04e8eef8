# phm_app_pkg/advanced_filters/statements.py
"""
Typed advanced filter statements.

Saved filters store statements in the shape the dashboard submits them:

    {"filterOption": {"name": "age", ...}, "value": 30, "numberOption": "equal",
     "dateOption": null, "relativeOption": null, "additionalFilterOption": null}

`parse_statement` turns one of those into a statement class that owns a
value of the right shape. Anything that does not fit the field definition
raises AdvancedFilterError naming the field.
"""
import datetime
from dataclasses import dataclass
from typing import Optional, Tuple

from ..errors import AdvancedFilterError
from ..utils import parse_iso_date
from . import registry

NUMBER_OPERATORS = ('less-than', 'less-than-equal', 'equal', 'greater-than-equal', 'greater-than', 'between')
DATE_OPERATORS = ('within', 'before', 'after')
RELATIVE_KEYWORDS = ('today', 'tomorrow', 'yesterday')
RELATIVE_OPERATORS = ('less-than', 'more-than')
RELATIVE_UNITS = ('days', 'weeks', 'months')
RELATIVE_WHEN = ('past', 'future')


@dataclass(frozen=True)
class BooleanStatement:
    field: registry.FilterField
    value: bool


@dataclass(frozen=True)
class SelectStatement:
    field: registry.FilterField
    value: str


@dataclass(frozen=True)
class NumberStatement:
    field: registry.FilterField
    operator: str
    value: Optional[float] = None
    # (first, second) bounds, only for `between`
    bounds: Optional[Tuple[float, float]] = None


@dataclass(frozen=True)
class DateStatement:
    field: registry.FilterField
    operator: str
    start: Optional[datetime.date] = None
    end: Optional[datetime.date] = None
    # the single date of `before` / `after`
    value: Optional[datetime.date] = None


@dataclass(frozen=True)
class RelativeDateStatement:
    field: registry.FilterField
    # today / tomorrow / yesterday / custom
    option: str
    operator: Optional[str] = None
    number: Optional[int] = None
    unit: Optional[str] = None
    when: Optional[str] = None


@dataclass(frozen=True)
class SearchStatement:
    field: registry.FilterField
    values: Tuple[str, ...]
    mode: str


def statement_field_name(raw):
    """Field name of a raw statement, or None for a blank (not yet chosen) row."""
    if not isinstance(raw, dict):
        return None
    option = raw.get('filterOption')
    if isinstance(option, dict):
        return option.get('name')
    if isinstance(option, str):
        return option
    return raw.get('name')


def is_blank(raw):
    return isinstance(raw, dict) and statement_field_name(raw) is None


def _is_number(value):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    # Integers must bind as a 64-bit database integer.
    return isinstance(value, float) or -2 ** 63 <= value < 2 ** 63


def _parse_boolean(field, raw):
    value = raw.get('value')
    if not isinstance(value, bool):
        raise AdvancedFilterError(field.name, f"'{field.title}' expects true or false.")
    return BooleanStatement(field=field, value=value)


def _parse_select(field, raw):
    value = raw.get('value')
    if value not in field.options:
        raise AdvancedFilterError(field.name, f"'{value}' is not an option of '{field.title}'.")
    return SelectStatement(field=field, value=value)


def _parse_number(field, raw):
    operator = raw.get('numberOption') or 'equal'
    if operator not in NUMBER_OPERATORS:
        raise AdvancedFilterError(field.name, f"Unknown number operator '{operator}'.")
    value = raw.get('value')

    if operator == 'between':
        if not field.allow_range:
            raise AdvancedFilterError(field.name, f"'{field.title}' does not support 'between'.")
        if not isinstance(value, dict) or not _is_number(value.get('firstBound')) \
                or not _is_number(value.get('secondBound')):
            raise AdvancedFilterError(field.name, "'between' expects numeric firstBound and secondBound.")
        return NumberStatement(field=field, operator=operator,
                               bounds=(value['firstBound'], value['secondBound']))

    if not _is_number(value):
        raise AdvancedFilterError(field.name, f"'{field.title}' expects a number.")
    return NumberStatement(field=field, operator=operator, value=value)


def _require_date(field, value):
    parsed = parse_iso_date(value)
    if parsed is None:
        raise AdvancedFilterError(field.name, f"'{value}' is not a valid date (YYYY-MM-DD).")
    return parsed


def _parse_date(field, raw):
    operator = raw.get('dateOption') or 'within'
    if operator not in DATE_OPERATORS:
        raise AdvancedFilterError(field.name, f"Unknown date operator '{operator}'.")
    value = raw.get('value')

    if operator == 'within':
        if not isinstance(value, dict):
            raise AdvancedFilterError(field.name, "'within' expects a start and an end date.")
        start = _require_date(field, value.get('start'))
        end = _require_date(field, value.get('end'))
        return DateStatement(field=field, operator=operator, start=start, end=end)
    return DateStatement(field=field, operator=operator, value=_require_date(field, value))


def _parse_relative(field, raw):
    value = raw.get('value')
    option = raw.get('relativeOption') or (value if isinstance(value, str) else 'custom')

    if option in RELATIVE_KEYWORDS:
        return RelativeDateStatement(field=field, option=option)
    if option != 'custom':
        raise AdvancedFilterError(field.name, f"Unknown relative date option '{option}'.")

    if not isinstance(value, dict):
        raise AdvancedFilterError(field.name, "A custom relative date needs operator, number, unit and when.")
    operator, number, unit, when = value.get('operator'), value.get('number'), value.get('unit'), value.get('when')
    if operator not in RELATIVE_OPERATORS:
        raise AdvancedFilterError(field.name, f"Unknown relative date operator '{operator}'.")
    if isinstance(number, bool) or not isinstance(number, int) or number < 0:
        raise AdvancedFilterError(field.name, "Relative date number must be a non-negative integer.")
    if unit not in RELATIVE_UNITS:
        raise AdvancedFilterError(field.name, f"Unknown relative date unit '{unit}'.")
    if when not in RELATIVE_WHEN:
        raise AdvancedFilterError(field.name, f"Relative date 'when' must be past or future, got '{when}'.")
    if when == 'future' and field.has_timestamp:
        raise AdvancedFilterError(field.name, f"'{field.title}' can only be filtered in the past.")
    return RelativeDateStatement(field=field, option='custom', operator=operator,
                                 number=number, unit=unit, when=when)


def _parse_search(field, raw):
    value = raw.get('value')
    if not isinstance(value, str):
        raise AdvancedFilterError(field.name, f"'{field.title}' expects text.")
    values = tuple(part.strip() for part in value.split(',') if part.strip())
    if not values:
        raise AdvancedFilterError(field.name, f"'{field.title}' needs at least one search value.")
    mode = raw.get('additionalFilterOption') or field.options[0]
    if mode not in field.options:
        raise AdvancedFilterError(field.name, f"Unknown search option '{mode}'.")
    return SearchStatement(field=field, values=values, mode=mode)


_PARSERS = {
    registry.BOOLEAN: _parse_boolean,
    registry.SELECT: _parse_select,
    registry.NUMBER: _parse_number,
    registry.DATE: _parse_date,
    registry.RELATIVE: _parse_relative,
    registry.SEARCH: _parse_search,
}


def parse_statement(raw):
    if not isinstance(raw, dict):
        raise AdvancedFilterError(None, "Each filter statement must be an object.")
    name = statement_field_name(raw)
    if not isinstance(name, str):
        raise AdvancedFilterError(None, "A filter field must be referenced by its name.")
    field = registry.get_field(name)
    if field is None:
        raise AdvancedFilterError(name, f"Unknown filter field '{name}'.")
    return _PARSERS[field.type](field, raw)


def parse_statements(contents):
    """Parse a saved/submitted filter; blank rows are skipped."""
    if not isinstance(contents, list):
        raise AdvancedFilterError(None, "A filter must be a list of statements.")
    return [parse_statement(raw) for raw in contents if not is_blank(raw)]
