"""
sap_b1sl.core.connection - High-level Service Layer client
===========================================================

Asynchronous facade over :class:`ServiceLayerSession`. Every operation
first ensures the session is valid, then runs the blocking transport call
in a worker thread.
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Union

import requests

from sap_b1sl.core.config import RequestOptions, ServiceLayerConfig, config_from_env
from sap_b1sl.core.result import Ok, Result, parse_error
from sap_b1sl.core.session import Clock, ServiceLayerSession, SessionInfo
from sap_b1sl.odata.paging import collect_pages, iterate_pages


Options = Union[RequestOptions, Mapping[str, Any], None]


class ServiceLayer:
    """
    Client for the SAP Business One Service Layer.

    Each instance owns one configuration and at most one session. Calls
    may run concurrently; renewal of an expired session is not serialized,
    so concurrent calls right at the expiry boundary can each log in again
    and close the HTTP session another call is still using.

    Parameters
    ----------
    config : ServiceLayerConfig or mapping, optional
        Merged over the defaults (localhost, port 80, v2)
    clock : callable, optional
        Returns the current aware datetime; defaults to UTC now
    **overrides
        Individual config fields

    Examples
    --------
    >>> sl = ServiceLayer()
    >>> await sl.create_session({
    ...     "host": "https://b1.example.com",
    ...     "port": 50000,
    ...     "company": "SBODEMOUS",
    ...     "username": "manager",
    ...     "password": "secret",
    ... })
    >>> items = await sl.find("Items?$select=ItemCode,ItemName")
    >>> result = await sl.get("Orders(10)")
    >>> if not result.error:
    ...     print(result.value["DocTotal"])

    >>> # As async context manager, logging out on exit
    >>> async with ServiceLayer.from_env() as sl:
    ...     await sl.create_session()
    ...     partners = await sl.find("BusinessPartners")
    """

    def __init__(
        self,
        config: Union[ServiceLayerConfig, Mapping[str, Any], None] = None,
        *,
        clock: Optional[Clock] = None,
        **overrides: Any,
    ) -> None:
        self._session = ServiceLayerSession(config, clock=clock, **overrides)

    @classmethod
    def from_env(cls, *, clock: Optional[Clock] = None, **overrides: Any) -> "ServiceLayer":
        """Build a client from B1_* environment variables (see config_from_env)."""
        return cls(config_from_env(**overrides), clock=clock)

    async def close(self) -> None:
        """Log out and release the HTTP session."""
        await asyncio.to_thread(self._session.close)

    async def __aenter__(self) -> "ServiceLayer":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def config(self) -> ServiceLayerConfig:
        """The stored configuration."""
        return self._session.cfg

    @property
    def session(self) -> Optional[SessionInfo]:
        """The current session, None before the first login."""
        return self._session.info

    @property
    def is_authenticated(self) -> bool:
        return self._session.info is not None

    # ---------------- session lifecycle ----------------

    async def create_session(
        self,
        config: Union[ServiceLayerConfig, Mapping[str, Any], None] = None,
        **overrides: Any,
    ) -> None:
        """
        Log in, merging ``config`` and ``overrides`` over the stored config.

        Raises
        ------
        AuthenticationError
            If the login fails. Never normalized into a result.
        """
        await asyncio.to_thread(self._session.create_session, config, **overrides)

    async def ensure_valid_session(self) -> None:
        """
        Log in again with the stored config if the session has expired.

        Raises
        ------
        NotAuthenticatedError
            If create_session() never succeeded.
        AuthenticationError
            If the re-login fails.
        """
        info = self._session.info
        if info is not None and not info.is_expired(self._session.clock()):
            return
        await asyncio.to_thread(self._session.ensure_valid_session)

    async def logout(self) -> None:
        """End the session on the server, best effort."""
        await asyncio.to_thread(self._session.logout)

    # ---------------- reads ----------------

    async def query(self, q: str, options: Options = None) -> Any:
        """
        Raw GET returning the decoded response body.

        Unlike :meth:`get`, failures are raised, not normalized.

        Parameters
        ----------
        q : str
            Query relative to the base URL, or an absolute link
        options : RequestOptions or mapping, optional
            headers, timeout and params

        Raises
        ------
        ServiceLayerUpstreamError
            If the status is outside the success range.
        requests.RequestException
            On transport failures.
        """
        opts = RequestOptions.coerce(options)
        return await self._fetch(q, opts)

    async def _fetch(self, target: str, opts: RequestOptions) -> Any:
        await self.ensure_valid_session()
        return await asyncio.to_thread(self._session.request, "GET", target, options=opts)

    async def iterate(
        self,
        query: str,
        options: Options = None,
        *,
        max_pages: Optional[int] = None,
    ) -> AsyncIterator[List[Dict[str, Any]]]:
        """
        Yield the ``value`` array of each page of a list query.

        Each page fetch checks the session on its own, so a long walk may
        log in again midway without losing its position.
        """
        opts = RequestOptions.coerce(options)
        async for page in iterate_pages(self._fetch, query, opts, max_pages=max_pages):
            yield page

    async def find(
        self,
        query: str,
        options: Options = None,
        *,
        max_pages: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Fetch every page of a list query into one list.

        Parameters
        ----------
        query : str
            e.g. "ProductionOrders?$select=AbsoluteEntry,DocumentNumber"
        options : RequestOptions or mapping, optional
            headers and timeout apply to every page, params to the first
        max_pages : int, optional
            Stop after this many pages; must be at least 1

        Returns
        -------
        list of dict
            Records of all pages in server order, duplicates kept
        """
        return await collect_pages(self.iterate(query, options, max_pages=max_pages))

    # ---------------- normalized verbs ----------------

    async def _call(
        self,
        method: str,
        resource: str,
        data: Any = None,
        options: Options = None,
    ) -> Result:
        opts = RequestOptions.coerce(options)
        await self.ensure_valid_session()
        try:
            body = await asyncio.to_thread(
                self._session.request, method, resource, payload=data, options=opts
            )
        except (requests.RequestException, TypeError, ValueError) as exc:
            return parse_error(exc)
        return Ok(body)

    async def get(self, resource: str, options: Options = None) -> Result:
        """Get a resource, e.g. "Orders(10)"."""
        return await self._call("GET", resource, None, options)

    async def put(self, resource: str, data: Any, options: Options = None) -> Result:
        """Replace a resource."""
        return await self._call("PUT", resource, data, options)

    async def patch(self, resource: str, data: Any, options: Options = None) -> Result:
        """Update a resource partially."""
        return await self._call("PATCH", resource, data, options)

    async def post(self, resource: str, data: Any, options: Options = None) -> Result:
        """Create a resource or invoke an action."""
        return await self._call("POST", resource, data, options)
