"""Authority clients that render permission decisions.

The IAM emulator is the only component that expands roles, resolves group
membership and evaluates conditions.  Everything else asks it through the
:class:`AuthorityClient` capability and treats the answer as final.

A client returns ``True`` (granted) or ``False`` (denied), or raises
:class:`ConnectivityError` when it could not obtain an answer at all.  Timeouts
are connectivity failures.

Example
-------
>>> client = HttpAuthorityClient("http://localhost:8080", timeout_seconds=2.0)
>>> client.check_permission(
...     "user:alice@example.com",
...     "projects/test-project/secrets/db-password",
...     "secretmanager.secrets.get",
... )
True
"""
from __future__ import annotations

import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from gcp_emulator_control_plane.principal import codec as principal_codec

logger = logging.getLogger(__name__)


class ConnectivityError(ConnectionError):
    """Raised when the authority is unreachable or cannot render a decision.

    Attributes
    ----------
    cause:
        The underlying exception, if any.
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        self.cause = cause
        super().__init__(message)


@runtime_checkable
class AuthorityClient(Protocol):
    """Capability that performs the actual permission check."""

    def check_permission(
        self,
        principal: str,
        resource: str,
        permission: str,
        *,
        timeout: float | None = None,
    ) -> bool:
        """Return ``True`` if *principal* holds *permission* on *resource*.

        Raises
        ------
        ConnectivityError
            If no decision could be obtained before *timeout* seconds.
        """
        ...


class HttpAuthorityClient:
    """Authority client for the IAM emulator's REST surface.

    Issues ``POST {base_url}/v1/{resource}:testIamPermissions`` with the
    caller's principal forwarded in the ``X-Emulator-Principal`` header.
    The permission is granted when it appears in the response's
    ``permissions`` list.

    Parameters
    ----------
    base_url:
        Root URL of the IAM emulator, e.g. ``http://localhost:8080``.
    timeout_seconds:
        Default request timeout; a per-call ``timeout`` overrides it.
    """

    def __init__(self, base_url: str, timeout_seconds: float = 2.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds

    @property
    def base_url(self) -> str:
        return self._base_url

    def check_permission(
        self,
        principal: str,
        resource: str,
        permission: str,
        *,
        timeout: float | None = None,
    ) -> bool:
        effective_timeout = self._timeout if timeout is None else timeout
        url = self._url_for(resource)
        body = json.dumps({"permissions": [permission]}).encode("utf-8")

        headers: dict[str, object] = {"Content-Type": "application/json"}
        principal_codec.inject(headers, principal)
        req = urllib.request.Request(url, data=body, headers=headers, method="POST")  # type: ignore[arg-type]

        try:
            with urllib.request.urlopen(req, timeout=effective_timeout) as resp:  # noqa: S310
                payload = resp.read()
        except urllib.error.HTTPError as exc:
            if exc.code == 403:
                logger.debug("Authority returned 403 for %s on %s", principal, resource)
                return False
            raise ConnectivityError(
                f"authority returned HTTP {exc.code} for {url}", cause=exc
            ) from exc
        except OSError as exc:
            # URLError, socket timeouts and connection resets.
            raise ConnectivityError(f"authority unreachable at {url}: {exc}", cause=exc) from exc

        try:
            decoded = json.loads(payload or b"{}")
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ConnectivityError(
                f"authority returned a malformed response from {url}", cause=exc
            ) from exc

        granted_permissions = decoded.get("permissions", []) if isinstance(decoded, dict) else None
        if not isinstance(granted_permissions, list):
            raise ConnectivityError(f"authority response from {url} has no permissions list")
        return permission in granted_permissions

    def _url_for(self, resource: str) -> str:
        quoted = urllib.parse.quote(resource.lstrip("/"), safe="/")
        return f"{self._base_url}/v1/{quoted}:testIamPermissions"


class StaticAuthorityClient:
    """In-memory authority answering from a fixed set of grants.

    Useful for demos and for wiring tests that must not touch the network.

    Parameters
    ----------
    grants:
        ``(principal, resource, permission)`` triples that are allowed.
        ``"*"`` in the resource position matches any resource.
    """

    def __init__(self, grants: Iterable[tuple[str, str, str]] = ()) -> None:
        self._grants: frozenset[tuple[str, str, str]] = frozenset(grants)

    def check_permission(
        self,
        principal: str,
        resource: str,
        permission: str,
        *,
        timeout: float | None = None,
    ) -> bool:
        return (
            (principal, resource, permission) in self._grants
            or (principal, "*", permission) in self._grants
        )
