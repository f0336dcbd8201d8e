"""
SAP Business One Service Layer client (sap_b1sl)
=================================================

An asyncio client for the session-based Service Layer REST API. It logs in,
renews the session transparently when it expires, and follows
``@odata.nextLink`` continuation links for list queries.

Usage
-----
>>> from sap_b1sl import ServiceLayer
>>>
>>> sl = ServiceLayer()
>>> await sl.create_session({
...     "host": "https://b1.example.com",
...     "port": 50000,
...     "company": "SBODEMOUS",
...     "username": "manager",
...     "password": "secret",
... })
>>> items = await sl.find("Items?$select=ItemCode,ItemName")
>>> order = await sl.get("Orders(10)")

Subpackages
-----------
- sap_b1sl.core: Configuration, session management, request facade, results
- sap_b1sl.odata: Pagination and query string helpers

"""

__version__ = "0.1.0"

# Core exports - available at package root
from sap_b1sl.core.config import RequestOptions, ServiceLayerConfig, config_from_env

from sap_b1sl.core.session import (
    AuthenticationError,
    NotAuthenticatedError,
    ServiceLayerError,
    ServiceLayerSession,
    ServiceLayerUpstreamError,
    SessionInfo,
)

from sap_b1sl.core.result import Err, ErrorKind, Ok, Result

from sap_b1sl.core.connection import ServiceLayer

# Convenience re-exports
from sap_b1sl.odata import build_query, escape_odata_literal

__all__ = [
    # Version
    "__version__",
    # Core
    "ServiceLayer",
    "ServiceLayerConfig",
    "RequestOptions",
    "config_from_env",
    "ServiceLayerSession",
    "SessionInfo",
    # Errors and results
    "ServiceLayerError",
    "AuthenticationError",
    "NotAuthenticatedError",
    "ServiceLayerUpstreamError",
    "Ok",
    "Err",
    "ErrorKind",
    "Result",
    # OData helpers
    "build_query",
    "escape_odata_literal",
]
