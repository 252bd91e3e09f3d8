"""Detect browsers that hung up before an export response was written."""

from __future__ import annotations

import errno

PEER_GONE_ERRNOS = frozenset(
    code
    for code in (
        errno.EPIPE,
        errno.ECONNRESET,
        errno.ECONNABORTED,
        errno.ETIMEDOUT,
        getattr(errno, "WSAECONNRESET", None),
    )
    if code is not None
)


def is_client_disconnect(exc: BaseException) -> bool:
    # ConnectionError covers broken pipes, resets and aborts.
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return True
    return isinstance(exc, OSError) and exc.errno in PEER_GONE_ERRNOS
