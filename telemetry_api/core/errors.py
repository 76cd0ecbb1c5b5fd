"""Service exceptions and the fatal-error policy.

Low-level connection failures in the fatal set and resource ceilings end the
process; an external supervisor is expected to restart it.
"""

from __future__ import annotations

import errno
import logging
import os

logger = logging.getLogger(__name__)

# A send after the peer closed (Starlette RuntimeError) is per-connection, never fatal.
FATAL_ERRNOS = frozenset({errno.ECONNRESET, errno.EPIPE})


class TelemetryServiceError(Exception):
    """Base class for service errors."""


class FatalTransportError(TelemetryServiceError):
    """A connection failed with an I/O error the service does not recover from."""


class ResourceLimitExceeded(TelemetryServiceError):
    """Memory or connection ceiling crossed."""


def is_fatal_transport_error(exc: BaseException) -> bool:
    """True if `exc` (or anything in its cause chain) is in the fatal set."""
    seen = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, FatalTransportError):
            return True
        if isinstance(current, OSError) and current.errno in FATAL_ERRNOS:
            return True
        current = current.__cause__ or current.__context__
    return False


def terminate_process(reason: str, code: int = 1) -> None:
    logger.critical("[FATAL] Terminating process: %s", reason)
    logging.shutdown()
    os._exit(code)
