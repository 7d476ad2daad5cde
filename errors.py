# errors.py
"""
Error taxonomy shared by the recommendation core.

- InvalidArgument: malformed or ambiguous caller input.
- NotFound: a specific referenced record does not exist (or isn't the user's).
- UpstreamUnavailable: the database could not be reached / timed out.

"Not applicable" (well-formed request, but no curated data to recommend
from) is NOT an exception: lookups return None and bulk calls leave the
item out of their result.
"""
from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy import exc

# SQLAlchemy failures that mean "infrastructure", not "bad query"
UPSTREAM_ERRORS = (exc.OperationalError, exc.InterfaceError, exc.TimeoutError)


class TrainingCoreError(Exception):
    """Base class for everything raised on purpose by this project."""


class InvalidArgument(TrainingCoreError, ValueError):
    pass


class NotFound(TrainingCoreError, LookupError):
    pass


class UpstreamUnavailable(TrainingCoreError):
    def __init__(self, operation: str):
        super().__init__(f"Upstream unavailable during {operation}")
        self.operation = operation


@contextmanager
def upstream(operation: str):
    """
    Wrap a collaborator call so connection-level failures surface as
    UpstreamUnavailable. Everything else propagates untouched.
    """
    try:
        yield
    except UPSTREAM_ERRORS as e:
        raise UpstreamUnavailable(operation) from e
