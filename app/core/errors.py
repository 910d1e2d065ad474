# app/core/errors.py


class SchedulingError(RuntimeError):
    """
    Base class for every error raised by the scheduling core and its stores.
    """


class ValidationError(SchedulingError):
    """
    Raised for malformed timeslots (`to <= from`), unparseable recurrence
    rules, unknown time zones, expansions that exceed the safety cap, and
    edit/delete requests referencing an occurrence the rule does not
    generate.

    Never retried; routes surface it as 400.
    """


class NotFoundError(SchedulingError, LookupError):
    """
    Raised when a referenced meeting or user document does not exist.
    """


class ConflictError(SchedulingError):
    """
    Raised by a store when an optimistic-concurrency check fails, i.e. the
    document changed since the snapshot the plan was computed from.

    Plans are cheap and side-effect free, so callers may recompute from a
    fresh snapshot and retry.
    """
