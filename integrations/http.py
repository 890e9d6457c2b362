"""
Shared HTTP handling for channel clients.

Turns requests failures into ChannelUpdateError with a reason the
dispatcher records per item.
"""

from typing import Optional
import requests
import structlog

from exceptions import ChannelUpdateError

logger = structlog.get_logger(__name__)

# HTTP status -> failure reason
STATUS_REASONS = {
    400: "validation",
    404: "not_found",
    409: "validation",
    422: "validation",
    429: "rate_limited",
}


def reason_for_status(status_code: int) -> str:
    """Map an HTTP status to a failure reason."""
    if status_code in STATUS_REASONS:
        return STATUS_REASONS[status_code]
    return "upstream"


def request(
    http: requests.Session,
    channel: str,
    method: str,
    url: str,
    timeout: float = 10,
    sku: Optional[str] = None,
    **kwargs
) -> requests.Response:
    """
    Send a request and raise ChannelUpdateError on failure.

    Args:
        http: Session carrying auth headers
        channel: Channel name for the error
        method: HTTP method
        url: Full URL
        timeout: Seconds before giving up
        sku: Item being processed (error context only)

    Returns:
        Successful response

    Raises:
        ChannelUpdateError: timeout, connection error or non-2xx status
    """
    try:
        response = http.request(method, url, timeout=timeout, **kwargs)
    except requests.exceptions.Timeout as e:
        raise ChannelUpdateError(channel, "timeout", f"{channel} request timed out", {"sku": sku}) from e
    except requests.exceptions.RequestException as e:
        raise ChannelUpdateError(channel, "upstream", f"{channel} request failed: {e}", {"sku": sku}) from e

    if not response.ok:
        reason = reason_for_status(response.status_code)
        logger.warning(
            "channel_request_rejected",
            channel=channel,
            sku=sku,
            status=response.status_code,
            reason=reason
        )
        raise ChannelUpdateError(
            channel,
            reason,
            f"{channel} API error {response.status_code}: {response.text[:200]}",
            {"sku": sku, "status": response.status_code}
        )

    return response


def json_body(response: requests.Response, channel: str, sku: Optional[str] = None) -> dict:
    """
    Decoded JSON body; empty responses give {}.

    Raises:
        ChannelUpdateError: Body is not JSON (upstream)
    """
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError as e:
        raise ChannelUpdateError(
            channel,
            "upstream",
            f"{channel} returned a non-JSON response",
            {"sku": sku, "status": response.status_code}
        ) from e
