"""
sap_b1sl.core.session - Service Layer Session Management
=========================================================

Low-level, blocking session handling for the SAP Business One Service Layer:
- Cookie-based login (B1SESSION) against the Login endpoint
- Client-side expiry tracking with a one-minute safety margin
- Transparent re-login when the tracked session has expired
- Success range of 200-299 plus 405
- Extraction of Service Layer error payloads
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union
from urllib.parse import urljoin
import json
import logging
import time

import requests
import urllib3
from requests import Response, Session
from requests.adapters import HTTPAdapter
from urllib3.exceptions import InsecureRequestWarning
from urllib3.util.retry import Retry

from sap_b1sl.core.config import RequestOptions, ServiceLayerConfig, normalize_host


Clock = Callable[[], datetime]

# Minutes subtracted from the server-declared session timeout.
SAFETY_MARGIN_MINUTES = 1


class ServiceLayerError(RuntimeError):
    """Base class for errors raised by the Service Layer client."""


class AuthenticationError(ServiceLayerError):
    """
    Raised when the Login call fails.

    Attributes
    ----------
    status : int or None
        HTTP status of the rejected login, None if no response arrived
    body : Any
        Decoded response body, if any
    url : str or None
        The login URL that was called
    """

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        body: Any = None,
        url: Optional[str] = None,
    ):
        super().__init__(message)
        self.status = status
        self.body = body
        self.url = url


class NotAuthenticatedError(ServiceLayerError):
    """Raised when an operation runs before any session was created."""


class ServiceLayerUpstreamError(requests.HTTPError):
    """
    Raised when the Service Layer answers outside the success range.

    Attributes
    ----------
    status : int
        HTTP status code
    body : Any
        Response body, decoded as JSON when possible
    url : str
        The URL that was called
    headers : dict
        Response headers
    """

    def __init__(
        self,
        status: int,
        body: Any,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        *,
        response: Optional[Response] = None,
    ):
        snippet = summarize_error(body)[:1200]
        super().__init__(
            f"Service Layer error {status} for {url}: {snippet}",
            response=response,
            request=getattr(response, "request", None),
        )
        self.status = status
        self.body = body
        self.url = url
        self.headers = headers or {}


def is_success_status(status: int) -> bool:
    """True for 2xx and for 405, which the Service Layer uses for benign answers."""
    return 200 <= status < 300 or status == 405


def decode_body(r: Response) -> Any:
    """Response body as JSON when it parses, the raw text otherwise, None when empty."""
    if not r.content:
        return None
    ctype = (r.headers.get("Content-Type") or "").lower()
    if "json" in ctype:
        try:
            return r.json()
        except ValueError:
            pass
    return r.text


def summarize_error(body: Any) -> str:
    """
    One-line summary of a Service Layer error payload.

    v1 answers ``{"error": {"code": -1, "message": {"lang": "en-us", "value": "..."}}}``,
    v2 answers ``{"error": {"code": "...", "message": "..."}}``.
    """
    if not isinstance(body, dict):
        return "" if body is None else str(body)
    err = body.get("error")
    if not isinstance(err, dict):
        return json.dumps(body, default=str)

    code = err.get("code")
    message = err.get("message")
    if isinstance(message, dict):
        message = message.get("value")

    parts = []
    if code is not None and code != "":
        parts.append(f"code={code}")
    if message:
        parts.append(f"message={message}")
    return " | ".join(parts) or json.dumps(body, default=str)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _carries_host(config: Any, overrides: Mapping[str, Any]) -> bool:
    if isinstance(config, ServiceLayerConfig):
        return True
    if isinstance(config, Mapping) and "host" in config:
        return True
    return "host" in overrides


def _with_normalized_host(cfg: ServiceLayerConfig) -> ServiceLayerConfig:
    return cfg.merge(host=normalize_host(cfg.host))


@dataclass(frozen=True)
class SessionInfo:
    """
    A live Service Layer session.

    ``expires_at`` is ``created_at + (timeout_minutes - 1) minutes``: the
    client stops trusting the session one minute before the server would.
    """
    token: str
    company_db: str
    created_at: datetime
    expires_at: datetime
    timeout_minutes: int

    @property
    def cookie(self) -> str:
        return f"B1SESSION={self.token};CompanyDB={self.company_db}"

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class ServiceLayerSession:
    """
    Blocking session manager and transport for the Service Layer.

    Owns the configuration, the current session and the underlying
    ``requests.Session``. Every request path is expected to call
    :meth:`ensure_valid_session` first; that is the only place where
    expiry is handled. Use as a context manager for automatic cleanup.

    The host of the config given here, and of any config or override
    passed to :meth:`create_session`, has exactly one trailing slash
    stripped before the base URL is built.

    Renewal is not serialized. Two threads that both find the session
    expired each log in, and each closes the ``requests.Session`` it
    replaced, which the other may still be using for an in-flight call.

    Parameters
    ----------
    cfg : ServiceLayerConfig
        Stored defaults merged under every :meth:`create_session` call
    clock : callable, optional
        Returns the current aware datetime; defaults to UTC now

    Examples
    --------
    >>> with ServiceLayerSession(cfg) as sess:
    ...     sess.create_session()
    ...     orders = sess.request("GET", "Orders?$top=5")
    """

    def __init__(
        self,
        cfg: Union[ServiceLayerConfig, Mapping[str, Any], None] = None,
        *,
        clock: Optional[Clock] = None,
        **overrides: Any,
    ) -> None:
        self.cfg = _with_normalized_host(ServiceLayerConfig().merge(cfg, **overrides))
        self.clock: Clock = clock or _utcnow
        self.logger = logging.getLogger("sap_b1sl.session")

        self.session: Optional[Session] = None
        self.info: Optional[SessionInfo] = None

    def close(self) -> None:
        """Log out if a session is live and close the HTTP session."""
        self.logout()
        if self.session is not None:
            self.session.close()
            self.session = None

    def __enter__(self) -> "ServiceLayerSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def base(self) -> str:
        return self.cfg.base_url

    # ---------------- auth/session ----------------

    def _build_session(self, cfg: ServiceLayerConfig) -> Session:
        sess = requests.Session()
        sess.verify = cfg.verify
        sess.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
        })

        # re-login on expiry is the only recovery; no transport-level retries
        adapter = HTTPAdapter(
            max_retries=Retry(total=0, raise_on_status=False),
            pool_connections=10,
            pool_maxsize=20,
        )
        sess.mount("https://", adapter)
        sess.mount("http://", adapter)

        if cfg.verify is False:
            # Service Layer hosts commonly use self-signed certificates
            urllib3.disable_warnings(InsecureRequestWarning)
        return sess

    def create_session(
        self,
        config: Union[ServiceLayerConfig, Mapping[str, Any], None] = None,
        **overrides: Any,
    ) -> SessionInfo:
        """
        Log in and replace the current session.

        ``config`` and ``overrides`` are shallow-merged over the stored
        configuration, which is updated before the login is attempted.

        Raises
        ------
        AuthenticationError
            If the login request fails or is rejected.
        """
        cfg = self.cfg.merge(config, **overrides)
        if _carries_host(config, overrides):
            cfg = _with_normalized_host(cfg)
        self.cfg = cfg
        if cfg.debug:
            self.logger.info("Config parameters: %s", cfg.redacted())

        transport = self._build_session(cfg)
        try:
            token, timeout_minutes = self._login(transport, cfg)
        except AuthenticationError:
            transport.close()
            raise

        transport.headers["Cookie"] = f"B1SESSION={token};CompanyDB={cfg.company}"
        created_at = self.clock()
        info = SessionInfo(
            token=token,
            company_db=cfg.company,
            created_at=created_at,
            expires_at=created_at + timedelta(minutes=timeout_minutes - SAFETY_MARGIN_MINUTES),
            timeout_minutes=timeout_minutes,
        )

        previous = self.session
        self.session = transport
        self.info = info
        if previous is not None:
            previous.close()

        if cfg.debug:
            self.logger.info("Cookie: %s", info.cookie)
            self.logger.info("Session timeout: %s", info.timeout_minutes)
            self.logger.info("Start session time: %s", info.created_at.isoformat())
            self.logger.info("End session time: %s", info.expires_at.isoformat())
        return info

    def _login(self, transport: Session, cfg: ServiceLayerConfig) -> Tuple[str, int]:
        url = urljoin(cfg.base_url, "Login")
        payload = {
            "CompanyDB": cfg.company,
            "Password": cfg.password,
            "UserName": cfg.username,
        }

        t0 = time.perf_counter()
        try:
            r = transport.post(url, data=json.dumps(payload), timeout=cfg.timeout)
        except requests.RequestException as exc:
            raise AuthenticationError(f"Login request to {url} failed: {exc}", url=url) from exc
        dt = (time.perf_counter() - t0) * 1000.0
        self.logger.debug("POST %s %sms", url, round(dt, 1))

        body = decode_body(r)
        if not is_success_status(r.status_code):
            raise AuthenticationError(
                f"Login rejected with status {r.status_code}: {summarize_error(body)}",
                status=r.status_code,
                body=body,
                url=url,
            )

        if not isinstance(body, dict) or not body.get("SessionId"):
            raise AuthenticationError(
                "Login response carried no SessionId",
                status=r.status_code,
                body=body,
                url=url,
            )
        try:
            timeout_minutes = int(body["SessionTimeout"])
        except (KeyError, TypeError, ValueError) as exc:
            raise AuthenticationError(
                "Login response carried no valid SessionTimeout",
                status=r.status_code,
                body=body,
                url=url,
            ) from exc
        return str(body["SessionId"]), timeout_minutes

    def ensure_valid_session(self) -> SessionInfo:
        """
        Re-login with the stored configuration if the session has expired.

        No-op while the session is still valid.

        Raises
        ------
        NotAuthenticatedError
            If no session was ever created.
        AuthenticationError
            If the re-login fails.
        """
        if self.info is None or self.session is None:
            raise NotAuthenticatedError(
                "No Service Layer session; call create_session() first"
            )
        if self.info.is_expired(self.clock()):
            if self.cfg.debug:
                self.logger.warning("The session is expired. Refreshing...")
            return self.create_session()
        return self.info

    def logout(self) -> None:
        """
        End the current session on the server, best effort.

        Failures are logged and the local session is dropped either way.
        """
        info, transport = self.info, self.session
        if info is None or transport is None:
            return
        self.info = None
        transport.headers.pop("Cookie", None)

        if info.is_expired(self.clock()):
            return
        url = urljoin(self.base, "Logout")
        try:
            r = transport.post(
                url,
                headers={"Cookie": info.cookie},
                timeout=self.cfg.timeout,
            )
        except requests.RequestException as exc:
            self.logger.warning("Logout from %s failed: %s", url, exc)
            return
        if not is_success_status(r.status_code):
            self.logger.warning("Logout from %s answered %s", url, r.status_code)

    # ---------------- helpers ----------------

    def _url(self, path: str) -> str:
        # absolute URLs and absolute paths (server-issued nextLinks) resolve as-is
        return urljoin(self.base, path)

    def _raise_for_error(self, r: Response, url: str) -> None:
        if not is_success_status(r.status_code):
            raise ServiceLayerUpstreamError(
                r.status_code, decode_body(r), url, dict(r.headers), response=r
            )

    # ---------------- public ops ----------------

    def request(
        self,
        method: str,
        path: str,
        *,
        payload: Any = None,
        options: Optional[RequestOptions] = None,
    ) -> Any:
        """
        Execute one request against the Service Layer.

        Does not check session expiry; call :meth:`ensure_valid_session`
        first.

        Parameters
        ----------
        method : str
            HTTP verb
        path : str
            Resource path relative to the base URL, e.g. "Orders(10)",
            or an absolute continuation link
        payload : Any, optional
            JSON-serializable request body
        options : RequestOptions, optional
            Per-call headers, timeout and query parameters

        Returns
        -------
        Any
            Decoded response body (None for empty bodies)

        Raises
        ------
        ServiceLayerUpstreamError
            If the status is outside 200-299 and is not 405.
        requests.RequestException
            If the request could not be sent or no response arrived.
        """
        if self.session is None:
            raise NotAuthenticatedError(
                "No Service Layer session; call create_session() first"
            )
        opts = options or RequestOptions()
        url = self._url(path)
        data = json.dumps(payload) if payload is not None else None
        timeout = opts.timeout if opts.timeout is not None else self.cfg.timeout

        t0 = time.perf_counter()
        r = self.session.request(
            method=method,
            url=url,
            params=opts.params or None,
            headers=opts.headers or None,
            data=data,
            timeout=timeout,
        )
        self._raise_for_error(r, url)
        dt = (time.perf_counter() - t0) * 1000.0
        self.logger.debug("%s %s %sms", method.upper(), url, round(dt, 1))
        return decode_body(r)
