"""Retry decision for failed job attempts."""

from .models import RetryPolicy


def should_retry(attempt: int, error_message: str, policy: RetryPolicy) -> bool:
    """Return True if a failed attempt (0-based) should be tried again.

    Matching is a case-insensitive substring search of the raw error text,
    since the API reports HTTP codes and rate-limit phrases as plain messages.
    """
    if attempt >= policy.max_retries:
        return False
    message = (error_message or "").lower()
    return any(pattern.lower() in message for pattern in policy.retry_on_errors)
