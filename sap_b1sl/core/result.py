"""
sap_b1sl.core.result - Tagged results for normalized calls
===========================================================

get/put/patch/post never raise for routine API failures. They return
either ``Ok(value)`` or ``Err(kind, message)``; :func:`parse_error` turns a
transport exception into the matching ``Err`` and logs the diagnostics.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union
from urllib.parse import urlsplit
import logging

import requests

from sap_b1sl.core.session import ServiceLayerError, decode_body

logger = logging.getLogger("sap_b1sl.client")

NETWORK_ERROR_MESSAGE = "ERROR REQUEST"


class ErrorKind(str, Enum):
    """Why a normalized call failed."""
    SERVER = "server"                # a response outside the success range
    NETWORK = "network"              # request sent, no response
    REQUEST_SETUP = "request_setup"  # request never sent


@dataclass(frozen=True)
class Ok:
    """Successful call carrying the decoded response body."""
    value: Any

    @property
    def error(self) -> bool:
        return False

    def unwrap(self) -> Any:
        return self.value

    def to_dict(self) -> Any:
        return self.value


@dataclass(frozen=True)
class Err:
    """
    Failed call.

    Attributes
    ----------
    kind : ErrorKind
        Failure category
    message : Any
        The server's response body for SERVER, ``"ERROR REQUEST"`` for
        NETWORK, the underlying exception message for REQUEST_SETUP
    status : int, optional
        HTTP status for SERVER failures
    """
    kind: ErrorKind
    message: Any
    status: Optional[int] = None

    @property
    def error(self) -> bool:
        return True

    def unwrap(self) -> Any:
        raise ServiceLayerError(f"{self.kind.value} error: {self.message}")

    def to_dict(self) -> Dict[str, Any]:
        return {"error": True, "message": self.message}


Result = Union[Ok, Err]


def _request_path(exc: BaseException) -> str:
    request = getattr(exc, "request", None)
    url = getattr(request, "url", None) or getattr(exc, "url", None)
    if not url:
        response = getattr(exc, "response", None)
        url = getattr(response, "url", None)
    if not url:
        return "?"
    return urlsplit(url).path or url


def parse_error(exc: BaseException) -> Err:
    """
    Normalize a failed call into an :class:`Err`.

    Diagnostics (status, path, headers, body) are logged at ERROR level
    whatever the debug setting.

    Parameters
    ----------
    exc : BaseException
        The exception raised by the transport

    Returns
    -------
    Err
        SERVER when a response arrived, NETWORK when the request was sent
        but nothing came back, REQUEST_SETUP otherwise.
    """
    response = getattr(exc, "response", None)
    if response is not None:
        body = getattr(exc, "body", None)
        if body is None:
            body = decode_body(response)
        logger.error("ERROR RESPONSE SERVICE LAYER")
        logger.error("URL: %s", _request_path(exc))
        logger.error("Status: %s - %s", response.status_code, response.reason)
        logger.error("Data: %s", body)
        logger.error("Headers: %s", dict(response.headers))
        return Err(ErrorKind.SERVER, body, response.status_code)

    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        logger.error("ERROR REQUEST")
        logger.error("URL: %s", _request_path(exc))
        return Err(ErrorKind.NETWORK, NETWORK_ERROR_MESSAGE)

    logger.error("Error: %s", exc)
    return Err(ErrorKind.REQUEST_SETUP, str(exc))
