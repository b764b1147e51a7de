"""
Genbatch-specific runtime exceptions and error classification.
"""

from __future__ import annotations

import re

import httpx

RATE_LIMIT_STATUS_CODE = 429

# Provider error bodies are inconsistent, so these only back up structured signals.
RATE_LIMIT_PATTERNS = (
    re.compile(r'"code"\s*[:=]\s*429', re.IGNORECASE),
    re.compile(r"\bHTTP\s*429\b", re.IGNORECASE),
    re.compile(r"call frequency is too high", re.IGNORECASE),
    re.compile(r"too many requests", re.IGNORECASE),
    re.compile(r"rate[\s_-]?limit", re.IGNORECASE),
)


class GenbatchError(Exception):
    """Base class for genbatch errors."""


class ConfigurationError(GenbatchError):
    """
    Raised when the engine cannot be set up.

    Notes
    -----
    The only error that is fatal to the whole engine: without a usable
    credential no job can proceed.
    """


class ProviderError(GenbatchError):
    """
    Error raised by provider adapters when a call to the provider fails.

    Parameters
    ----------
    message : str
        Human-readable error message.
    status_code : int | None, optional
        Provider or HTTP status code, when the provider returned one.
    retry_after : float | None, optional
        Seconds the provider asked callers to wait before retrying.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after


class RateLimitError(ProviderError):
    """Provider rejected the call because of rate limiting or quota."""

    def __init__(self, message: str, *, retry_after: float | None = None) -> None:
        super().__init__(message, status_code=RATE_LIMIT_STATUS_CODE, retry_after=retry_after)


class DownloadError(GenbatchError):
    """Raised when a generated artifact cannot be retrieved."""


class RowParseError(ValueError):
    """Raised when a bulk-import row cannot be converted to a job input."""


def _iter_error_chain(error: BaseException):
    seen: set[int] = set()
    to_visit: list[BaseException] = [error]
    while to_visit:
        current = to_visit.pop()
        if id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        for linked in (current.__cause__, current.__context__):
            if isinstance(linked, BaseException):
                to_visit.append(linked)


def is_rate_limit_error(*, error: BaseException) -> bool:
    """
    Detect whether an exception chain signals provider rate limiting.

    Parameters
    ----------
    error : BaseException
        Top-level exception raised by a provider call.

    Returns
    -------
    bool
        ``True`` when a structured 429 signal is found anywhere in the chain,
        or when an error message matches a known rate-limit signature.
    """
    chain = list(_iter_error_chain(error))
    for current in chain:
        if isinstance(current, RateLimitError):
            return True
        if isinstance(current, ProviderError) and current.status_code == RATE_LIMIT_STATUS_CODE:
            return True
        if (
            isinstance(current, httpx.HTTPStatusError)
            and current.response.status_code == RATE_LIMIT_STATUS_CODE
        ):
            return True
    return any(
        pattern.search(str(current)) for current in chain for pattern in RATE_LIMIT_PATTERNS
    )


def get_retry_after(*, error: BaseException) -> float | None:
    """
    Extract a provider-requested retry delay from an exception chain.

    Parameters
    ----------
    error : BaseException
        Top-level exception raised by a provider call.

    Returns
    -------
    float | None
        Delay in seconds, when a provider error in the chain carries one.
    """
    for current in _iter_error_chain(error):
        if isinstance(current, ProviderError) and current.retry_after is not None:
            return current.retry_after
    return None
