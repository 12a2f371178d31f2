"""
Error taxonomy for the reward core
"""
import logging
from contextlib import contextmanager

from sqlalchemy import exc as sa_exc

logger = logging.getLogger(__name__)


class RewardsError(Exception):
    """Base class for every error raised by the reward core"""


class ValidationError(RewardsError):
    """Malformed input to the engine (negative amounts, unparseable dates)"""


class DataUnavailable(RewardsError):
    """The data store could not be read, or returned malformed data.

    Never to be read as "the user had no activity". `retryable` separates
    transient failures (network, timeouts, dropped connections) from schema
    problems that will fail the same way on every attempt.
    """

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class ConcurrentClaimConflict(RewardsError):
    """A compare-and-swap write lost the race; re-read the current state"""


class UserNotFound(RewardsError):
    """No profile with the given id"""

    def __init__(self, user_id: str):
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class BulkPartialFailure(RewardsError):
    """One or more users failed during a batch operation.

    Carries the full report so callers still get the successful results.
    """

    def __init__(self, report):
        failed = len(report.failures)
        super().__init__(f"{failed} of {report.total} users failed")
        self.report = report


_RETRYABLE_ERRORS = (
    sa_exc.OperationalError,
    sa_exc.InterfaceError,
    sa_exc.TimeoutError,
    sa_exc.DisconnectionError,
)


@contextmanager
def store_errors(action: str):
    """Translate SQLAlchemy failures into DataUnavailable"""
    try:
        yield
    except _RETRYABLE_ERRORS as e:
        logger.error(f"Data store unreachable while {action}: {e}")
        raise DataUnavailable(f"Data store unreachable while {action}", retryable=True) from e
    except sa_exc.DBAPIError as e:
        retryable = bool(getattr(e, "connection_invalidated", False))
        logger.error(f"Data store error while {action}: {e}")
        raise DataUnavailable(f"Data store error while {action}", retryable=retryable) from e
    except sa_exc.SQLAlchemyError as e:
        logger.error(f"Malformed data while {action}: {e}")
        raise DataUnavailable(f"Malformed data while {action}", retryable=False) from e
