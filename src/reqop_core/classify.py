from __future__ import annotations

import httpx

from .errors import AttemptTimeoutError


def httpx_classifier(exc: BaseException) -> bool:
    """True when ``exc`` looks like a passing network problem worth retrying."""
    if isinstance(exc, AttemptTimeoutError):
        return True

    # ---- misconfiguration: retrying cannot help ----
    if isinstance(exc, (httpx.UnsupportedProtocol, httpx.InvalidURL, httpx.DecodingError)):
        return False

    # ---- connect / read / write / pool timeouts, resets, protocol hiccups ----
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError, httpx.ProtocolError)):
        return True
    if isinstance(exc, httpx.ProxyError):
        return True

    # ---- raw socket errors from custom transports ----
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return True

    return False
