"""
sap_b1sl.core - Session, configuration and request facade
==========================================================

- ServiceLayerConfig: connection configuration (host, port, version, credentials)
- RequestOptions: per-call headers, timeout and query parameters
- ServiceLayerSession: blocking transport with login and expiry tracking
- ServiceLayer: asynchronous client (query, find, get, put, patch, post)
- Ok / Err: tagged results of the normalized verbs

"""

from sap_b1sl.core.config import (
    RequestOptions,
    ServiceLayerConfig,
    config_from_env,
)

from sap_b1sl.core.session import (
    AuthenticationError,
    NotAuthenticatedError,
    ServiceLayerError,
    ServiceLayerSession,
    ServiceLayerUpstreamError,
    SessionInfo,
)

from sap_b1sl.core.result import Err, ErrorKind, Ok, Result, parse_error

from sap_b1sl.core.connection import ServiceLayer

__all__ = [
    "RequestOptions",
    "ServiceLayerConfig",
    "config_from_env",
    "AuthenticationError",
    "NotAuthenticatedError",
    "ServiceLayerError",
    "ServiceLayerSession",
    "ServiceLayerUpstreamError",
    "SessionInfo",
    "Err",
    "ErrorKind",
    "Ok",
    "Result",
    "parse_error",
    "ServiceLayer",
]
