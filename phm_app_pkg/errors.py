# phm_app_pkg/errors.py
"""
Exceptions raised by the worklist query engine and the advanced filter
evaluator. They are turned into JSON responses by the handlers registered in
the app factory.
"""


class WorklistError(Exception):
    """Base class for worklist request failures."""

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class ValidationError(WorklistError):
    """A request parameter is malformed or not allowed."""

    def __init__(self, param, message=None):
        super().__init__(message or f"Invalid value for '{param}'.")
        self.param = param


class AuthorizationError(ValidationError):
    """The caller asked for a jurisdiction outside of their own subtree.

    Surfaced exactly like a ValidationError so the response does not reveal
    whether the jurisdiction exists.
    """


class AdvancedFilterError(WorklistError):
    """An advanced filter statement does not match its field definition."""

    def __init__(self, field, message):
        super().__init__(message)
        self.field = field

    def to_dict(self):
        return {"error": self.message, "field": self.field}
