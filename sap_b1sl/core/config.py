"""
sap_b1sl.core.config - Connection and per-call configuration
=============================================================

Configuration objects for the Service Layer client:

- ServiceLayerConfig: host, port, API version and credentials
- RequestOptions: the recognized per-call options (headers, timeout, params)
- config_from_env: build a ServiceLayerConfig from B1_* environment variables
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from dotenv import load_dotenv


def normalize_host(host: str) -> str:
    """Strip exactly one trailing slash from a host."""
    if host.endswith("/"):
        return host[:-1]
    return host


@dataclass(frozen=True)
class ServiceLayerConfig:
    """
    Connection configuration for the SAP Business One Service Layer.

    Parameters
    ----------
    host : str
        Scheme and host of the Service Layer, e.g. "https://b1.example.com"
    port : int
        Service Layer port (default: 80)
    version : str
        API version segment, "v1" or "v2" (default: "v2")
    company : str
        Company database name sent as CompanyDB
    username : str
        Service Layer user
    password : str
        Service Layer password
    debug : bool
        Log the session lifecycle (config, cookie, timestamps)
    timeout : float
        Default request deadline in seconds (default: 60.0)
    verify : bool or str
        TLS verification. Defaults to False because Service Layer hosts
        usually run on self-signed certificates.

    Examples
    --------
    >>> cfg = ServiceLayerConfig(
    ...     host="https://b1.example.com",
    ...     port=50000,
    ...     company="SBODEMOUS",
    ...     username="manager",
    ...     password="secret",
    ... )
    >>> cfg.base_url
    'https://b1.example.com:50000/b1s/v2/'
    """
    host: str = "http://localhost"
    port: int = 80
    version: str = "v2"
    company: str = ""
    username: str = ""
    password: str = ""
    debug: bool = False
    timeout: float = 60.0
    verify: Union[bool, str] = False

    @property
    def base_url(self) -> str:
        """Base URL every resource path is resolved against."""
        return f"{self.host}:{self.port}/b1s/{self.version}/"

    def merge(
        self,
        overrides: Union["ServiceLayerConfig", Mapping[str, Any], None] = None,
        **kwargs: Any,
    ) -> "ServiceLayerConfig":
        """
        Shallow-merge overrides over this config; new fields win.

        Parameters
        ----------
        overrides : ServiceLayerConfig or mapping, optional
            A full config replaces every field; a mapping replaces only
            the keys it carries.
        **kwargs
            Individual field overrides, applied last.

        Raises
        ------
        ValueError
            If a mapping or keyword names an unknown field.
        """
        values: Dict[str, Any] = {}
        if isinstance(overrides, ServiceLayerConfig):
            values.update(dataclasses.asdict(overrides))
        elif overrides is not None:
            values.update(overrides)
        values.update(kwargs)

        known = {f.name for f in dataclasses.fields(self)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValueError(f"Unknown config field(s): {', '.join(unknown)}")
        return dataclasses.replace(self, **values)

    def redacted(self) -> Dict[str, Any]:
        """Config as a dict with the password masked, for logging."""
        data = dataclasses.asdict(self)
        if data.get("password"):
            data["password"] = "***"
        return data


@dataclass(frozen=True)
class RequestOptions:
    """
    Options recognized on a single call.

    Parameters
    ----------
    headers : dict
        Extra headers merged over the session defaults for this call only
    timeout : float, optional
        Deadline in seconds; falls back to ServiceLayerConfig.timeout
    params : dict
        Query-string parameters appended to the request URL
    """
    headers: Dict[str, str] = field(default_factory=dict)
    timeout: Optional[float] = None
    params: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def coerce(
        cls, value: Union["RequestOptions", Mapping[str, Any], None]
    ) -> "RequestOptions":
        """
        Turn None, a RequestOptions or a mapping into RequestOptions.

        Raises
        ------
        ValueError
            If a mapping carries keys other than headers, timeout, params.
        """
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        if not isinstance(value, Mapping):
            raise ValueError(f"Unsupported options type: {type(value).__name__}")

        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(value) - known)
        if unknown:
            raise ValueError(f"Unknown request option(s): {', '.join(unknown)}")
        return cls(
            headers=dict(value.get("headers") or {}),
            timeout=value.get("timeout"),
            params=dict(value.get("params") or {}),
        )

    def without_params(self) -> "RequestOptions":
        """Same options with the query parameters dropped."""
        if not self.params:
            return self
        return dataclasses.replace(self, params={})


def _env_bool(raw: Optional[str], default: bool) -> bool:
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def config_from_env(
    prefix: str = "B1_",
    *,
    env_file: Optional[Union[str, Path]] = None,
    **overrides: Any,
) -> ServiceLayerConfig:
    """
    Build a ServiceLayerConfig from environment variables.

    A ``.env`` file is loaded first (the given path, or one found from the
    current directory upwards); variables already set in the environment
    are not overwritten. Explicit keyword overrides win over the environment.

    Recognized variables (with the default prefix)::

        B1_HOST, B1_PORT, B1_VERSION, B1_COMPANY, B1_USER, B1_PASS,
        B1_DEBUG, B1_TIMEOUT, B1_VERIFY_TLS

    Examples
    --------
    >>> cfg = config_from_env()                # reads B1_* variables
    >>> cfg = config_from_env(company="TEST")  # override one field
    """
    if env_file is not None:
        load_dotenv(env_file)
    else:
        load_dotenv()

    def env(name: str) -> Optional[str]:
        return os.environ.get(f"{prefix}{name}")

    defaults = ServiceLayerConfig()
    values: Dict[str, Any] = {
        "host": env("HOST") or defaults.host,
        "port": int(env("PORT") or defaults.port),
        "version": env("VERSION") or defaults.version,
        "company": env("COMPANY") or defaults.company,
        "username": env("USER") or defaults.username,
        "password": env("PASS") or defaults.password,
        "debug": _env_bool(env("DEBUG"), defaults.debug),
        "timeout": float(env("TIMEOUT") or defaults.timeout),
        "verify": _env_bool(env("VERIFY_TLS"), False),
    }
    return defaults.merge(values, **overrides)
