"""Permission mediation shared by every emulator.

:class:`PermissionMediator` combines the configured :class:`IamMode` with
the answer from an :class:`AuthorityClient`.  Rows are evaluated top to
bottom and the first match wins:

============  ===============  ==================  ==========================
mode          principal empty  authority result    outcome
============  ===============  ==================  ==========================
off           any              not consulted       ALLOW
permissive    yes              not consulted       PERMISSION_DENIED
strict        yes              not consulted       PERMISSION_DENIED
permissive    no               connectivity error  ALLOW (fail-open)
strict        no               connectivity error  AUTHORITY_UNAVAILABLE
either        no               granted             ALLOW
either        no               denied              PERMISSION_DENIED
============  ===============  ==================  ==========================

Only connectivity failures depend on the mode.  An explicit denial from the
authority is never overridden.

Example
-------
>>> mediator = PermissionMediator("strict", HttpAuthorityClient("http://localhost:8080"))
>>> decision = mediator.check_carrier(
...     request.headers, "projects/p/secrets/s", "secretmanager.secrets.get"
... )
>>> decision.outcome
<Outcome.ALLOW: 'allow'>
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from gcp_emulator_control_plane.authz.authority import AuthorityClient
from gcp_emulator_control_plane.config.settings import IamMode, Settings
from gcp_emulator_control_plane.principal import codec as principal_codec

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    """Result class surfaced to the transport layer."""

    ALLOW = "allow"
    PERMISSION_DENIED = "permission_denied"
    AUTHORITY_UNAVAILABLE = "authority_unavailable"

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self]

    @property
    def grpc_code(self) -> str:
        return _GRPC_CODE[self]


_HTTP_STATUS: dict[Outcome, int] = {
    Outcome.ALLOW: 200,
    Outcome.PERMISSION_DENIED: 403,
    Outcome.AUTHORITY_UNAVAILABLE: 503,
}

_GRPC_CODE: dict[Outcome, str] = {
    Outcome.ALLOW: "OK",
    Outcome.PERMISSION_DENIED: "PERMISSION_DENIED",
    Outcome.AUTHORITY_UNAVAILABLE: "UNAVAILABLE",
}


@dataclass(frozen=True)
class Decision:
    """Immutable result of a permission check.

    Attributes
    ----------
    outcome:
        Allow, or the class of denial.
    reason:
        Human-readable explanation.
    principal, resource, permission:
        The inputs that were checked.
    mode:
        The IAM mode in force.
    authority_consulted:
        Whether the authority was called.
    """

    outcome: Outcome
    reason: str
    principal: str
    resource: str
    permission: str
    mode: IamMode
    authority_consulted: bool = False

    @property
    def allowed(self) -> bool:
        return self.outcome is Outcome.ALLOW

    def __bool__(self) -> bool:
        return self.allowed


class AuthorizationError(PermissionError):
    """Raised by :meth:`PermissionMediator.enforce` when a check is denied.

    Attributes
    ----------
    decision:
        The :class:`Decision` that caused the error.
    """

    def __init__(self, decision: Decision) -> None:
        self.decision = decision
        super().__init__(
            f"{decision.outcome.value}: {decision.reason} "
            f"(principal={decision.principal!r}, resource={decision.resource!r}, "
            f"permission={decision.permission!r})"
        )


class PermissionDeniedError(AuthorizationError):
    """The authority denied the request, or no principal was supplied."""


class AuthorityUnavailableError(AuthorizationError):
    """The authority could not be reached and the mode is strict."""


class PermissionMediator:
    """Decides whether an inbound operation may proceed.

    The mediator holds only its mode, authority and default timeout, none of
    which change after construction, so one instance may serve concurrent
    callers as long as the authority client is itself thread-safe.

    Parameters
    ----------
    mode:
        ``"off"``, ``"permissive"``, ``"strict"`` or an :class:`IamMode`.
    authority:
        The capability that renders permission decisions.
    timeout:
        Default seconds to wait for the authority; ``None`` defers to the
        client's own default.

    Raises
    ------
    ConfigError
        If *mode* is not a recognised IAM mode.
    """

    def __init__(
        self,
        mode: IamMode | str,
        authority: AuthorityClient,
        *,
        timeout: float | None = None,
    ) -> None:
        self._mode = IamMode.parse(mode)
        self._authority = authority
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings, authority: AuthorityClient) -> PermissionMediator:
        """Build a mediator from resolved process settings."""
        return cls(
            settings.iam_mode,
            authority,
            timeout=settings.authority_timeout_seconds,
        )

    @property
    def mode(self) -> IamMode:
        return self._mode

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def check(
        self,
        principal: str,
        resource: str,
        permission: str,
        *,
        timeout: float | None = None,
    ) -> Decision:
        """Evaluate one permission check.

        Parameters
        ----------
        principal:
            Caller identity as extracted from the inbound request; may be empty.
        resource:
            Full resource name, forwarded to the authority unchanged.
        permission:
            Permission string, forwarded to the authority unchanged.
        timeout:
            Seconds to wait for the authority.  Expiry, like any other
            ``OSError`` from the authority, is treated as a connectivity
            failure.

        Returns
        -------
        Decision
        """
        principal = principal or ""

        if self._mode is IamMode.OFF:
            return self._decide(
                Outcome.ALLOW, "IAM enforcement is off", principal, resource, permission
            )

        if not principal:
            return self._decide(
                Outcome.PERMISSION_DENIED,
                "no principal supplied",
                principal,
                resource,
                permission,
            )

        if not principal_codec.validate_format(principal):
            logger.debug("Forwarding malformed principal %r to the authority", principal)

        effective_timeout = self._timeout if timeout is None else timeout
        try:
            granted = self._authority.check_permission(
                principal, resource, permission, timeout=effective_timeout
            )
        except OSError as exc:
            # ConnectivityError, TimeoutError and raw transport errors alike.
            return self._on_unreachable(exc, principal, resource, permission)

        if granted:
            return self._decide(
                Outcome.ALLOW,
                "granted by authority",
                principal,
                resource,
                permission,
                consulted=True,
            )
        return self._decide(
            Outcome.PERMISSION_DENIED,
            "denied by authority",
            principal,
            resource,
            permission,
            consulted=True,
        )

    def check_carrier(
        self,
        carrier: principal_codec.Carrier | None,
        resource: str,
        permission: str,
        *,
        timeout: float | None = None,
    ) -> Decision:
        """Extract the principal from inbound headers/metadata, then :meth:`check`."""
        principal = principal_codec.extract(carrier)
        return self.check(principal, resource, permission, timeout=timeout)

    def enforce(
        self,
        principal: str,
        resource: str,
        permission: str,
        *,
        timeout: float | None = None,
    ) -> Decision:
        """Like :meth:`check` but raise on denial.

        Raises
        ------
        PermissionDeniedError
            On an explicit or missing-principal denial.
        AuthorityUnavailableError
            When strict mode fails closed.
        """
        decision = self.check(principal, resource, permission, timeout=timeout)
        if decision.outcome is Outcome.PERMISSION_DENIED:
            raise PermissionDeniedError(decision)
        if decision.outcome is Outcome.AUTHORITY_UNAVAILABLE:
            raise AuthorityUnavailableError(decision)
        return decision

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _on_unreachable(
        self,
        exc: BaseException,
        principal: str,
        resource: str,
        permission: str,
    ) -> Decision:
        if self._mode.fail_open:
            logger.warning(
                "IAM authority unavailable, allowing %s %s on %s (permissive mode): %s",
                principal,
                permission,
                resource,
                exc,
            )
            return self._decide(
                Outcome.ALLOW,
                f"authority unavailable, failing open: {exc}",
                principal,
                resource,
                permission,
                consulted=True,
            )
        return self._decide(
            Outcome.AUTHORITY_UNAVAILABLE,
            f"authority unavailable: {exc}",
            principal,
            resource,
            permission,
            consulted=True,
        )

    def _decide(
        self,
        outcome: Outcome,
        reason: str,
        principal: str,
        resource: str,
        permission: str,
        consulted: bool = False,
    ) -> Decision:
        logger.debug(
            "IAM %s: mode=%s principal=%s resource=%s permission=%s (%s)",
            outcome.value.upper(),
            self._mode.value,
            principal or "<none>",
            resource,
            permission,
            reason,
        )
        return Decision(
            outcome=outcome,
            reason=reason,
            principal=principal,
            resource=resource,
            permission=permission,
            mode=self._mode,
            authority_consulted=consulted,
        )
