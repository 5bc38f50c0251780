"""Normalization of bridge responses into session status.

The bridge reports command failures inside the response body, usually with
HTTP 200, so the status code is never consulted. A response is classified as:

* pairing success - ``[{"success": {"username": ..., "clientkey": ...}}]``
* API error - a list whose first element carries an ``error`` object
* anything else - success without new credentials
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Mapping, Optional

from .logging import get_logger
from .models import Bridge, DecodeFailure, Status, TransportFailure

logger = get_logger("hue.results")

# Stored when the bridge sends an `error` entry whose value is null.
MISSING_ERROR_DETAILS = {"description": "bridge reported an error without details"}


def _pairing_credentials(response: Any) -> Optional[Mapping[str, Any]]:
    if not isinstance(response, list) or len(response) != 1:
        return None
    entry = response[0]
    if not isinstance(entry, Mapping):
        return None
    success = entry.get("success")
    if not isinstance(success, Mapping):
        return None
    if "username" in success and "clientkey" in success:
        return success
    return None


def _api_error(response: Any) -> Any:
    if isinstance(response, list) and response:
        first = response[0]
        if isinstance(first, Mapping) and "error" in first:
            error = first["error"]
            return MISSING_ERROR_DETAILS if error is None else error
    return None


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def update_bridge(response: Any, bridge: Bridge) -> Bridge:
    """Return ``bridge`` updated from a decoded response body."""

    credentials = _pairing_credentials(response)
    if credentials is not None:
        logger.debug("Pairing succeeded", extra={"host": bridge.host})
        return replace(
            bridge,
            username=_optional_str(credentials["username"]),
            client_key=_optional_str(credentials["clientkey"]),
            status=Status.OK,
            error=None,
        )

    error = _api_error(response)
    if error is not None:
        logger.warning("Bridge rejected command", extra={"host": bridge.host, "error": error})
        return replace(bridge, status=Status.ERROR, error=error)

    return replace(bridge, status=Status.OK, error=None)


def record_transport_failure(bridge: Bridge, reason: Any) -> Bridge:
    """Return ``bridge`` marked as failed because the HTTP exchange failed."""

    logger.warning(
        "Bridge request failed", extra={"host": bridge.host, "reason": str(reason)}
    )
    return replace(bridge, status=Status.ERROR, error=TransportFailure(reason=str(reason)))


def record_decode_failure(bridge: Bridge, body: Optional[str], reason: Any) -> Bridge:
    """Return ``bridge`` marked as failed because the body was not JSON."""

    logger.warning(
        "Bridge returned an undecodable body", extra={"host": bridge.host, "reason": str(reason)}
    )
    return replace(bridge, status=Status.ERROR, error=DecodeFailure(reason=str(reason), body=body))
