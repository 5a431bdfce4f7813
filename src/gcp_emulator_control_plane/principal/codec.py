"""Principal grammar and carrier propagation.

Every emulator in the stack identifies the caller with a single string that
travels in the ``X-Emulator-Principal`` HTTP header or the
``x-emulator-principal`` gRPC metadata key.  This module is the one place
that knows the key names and the principal grammar::

    user:<email>
    serviceAccount:<email>
    group:<name>
    allUsers
    allAuthenticatedUsers

Example
-------
>>> headers = {"x-EMULATOR-principal": "user:alice@example.com"}
>>> extract(headers)
'user:alice@example.com'
>>> validate_format("user:alice@example.com")
True
>>> validate_format("admin:alice")
False
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, MutableMapping
from dataclasses import dataclass
from enum import Enum
from typing import Union

logger = logging.getLogger(__name__)

PRINCIPAL_METADATA_KEY: str = "x-emulator-principal"
PRINCIPAL_HEADER_KEY: str = "X-Emulator-Principal"

USER_PREFIX: str = "user:"
SERVICE_ACCOUNT_PREFIX: str = "serviceAccount:"
GROUP_PREFIX: str = "group:"
ALL_USERS: str = "allUsers"
ALL_AUTHENTICATED_USERS: str = "allAuthenticatedUsers"

_PREFIXES: tuple[str, ...] = (USER_PREFIX, SERVICE_ACCOUNT_PREFIX, GROUP_PREFIX)
_BARE_PRINCIPALS: frozenset[str] = frozenset([ALL_USERS, ALL_AUTHENTICATED_USERS])

# Header dicts on one side, gRPC-style ``[(key, value), ...]`` metadata on the other.
Carrier = Union[Mapping[str, object], Iterable[tuple[str, object]]]


class PrincipalKind(str, Enum):
    """The five principal forms the emulators understand."""

    USER = "user"
    SERVICE_ACCOUNT = "serviceAccount"
    GROUP = "group"
    ALL_USERS = "allUsers"
    ALL_AUTHENTICATED_USERS = "allAuthenticatedUsers"


_KIND_BY_PREFIX: dict[str, PrincipalKind] = {
    USER_PREFIX: PrincipalKind.USER,
    SERVICE_ACCOUNT_PREFIX: PrincipalKind.SERVICE_ACCOUNT,
    GROUP_PREFIX: PrincipalKind.GROUP,
}


@dataclass(frozen=True)
class Principal:
    """A parsed principal string.

    Attributes
    ----------
    kind:
        Which of the five forms the string uses.
    value:
        The part after the prefix (email or group name).  Empty for the
        bare ``allUsers`` / ``allAuthenticatedUsers`` forms.
    """

    kind: PrincipalKind
    value: str = ""

    def __str__(self) -> str:
        if self.kind in (PrincipalKind.ALL_USERS, PrincipalKind.ALL_AUTHENTICATED_USERS):
            return self.kind.value
        return f"{self.kind.value}:{self.value}"


# ---------------------------------------------------------------------------
# Grammar
# ---------------------------------------------------------------------------


def validate_format(principal: str) -> bool:
    """Return ``True`` if *principal* is a well-formed principal string.

    The same rule is applied to policy members by the policy validator, so
    both sides of the stack agree on what a principal looks like.
    """
    try:
        parse(principal)
    except ValueError:
        return False
    return True


def parse(principal: str) -> Principal:
    """Split *principal* into its kind and value.

    Raises
    ------
    ValueError
        If the string has no recognised prefix, an empty value, or more
        than one prefix (``user:group:x``).
    """
    if not isinstance(principal, str):
        raise ValueError(f"principal must be a string, got {type(principal).__name__}")

    if principal == ALL_USERS:
        return Principal(kind=PrincipalKind.ALL_USERS)
    if principal == ALL_AUTHENTICATED_USERS:
        return Principal(kind=PrincipalKind.ALL_AUTHENTICATED_USERS)

    for prefix in _PREFIXES:
        if not principal.startswith(prefix):
            continue
        value = principal[len(prefix):]
        if not value:
            raise ValueError(f"principal {principal!r} has an empty value after {prefix!r}")
        if value.startswith(_PREFIXES) or value in _BARE_PRINCIPALS:
            raise ValueError(f"principal {principal!r} has more than one prefix")
        return Principal(kind=_KIND_BY_PREFIX[prefix], value=value)

    raise ValueError(
        f"principal {principal!r} must be one of user:, serviceAccount:, group:, "
        f"{ALL_USERS} or {ALL_AUTHENTICATED_USERS}"
    )


def group_name(member: str) -> str | None:
    """Return the group name referenced by a ``group:<name>`` member, else ``None``."""
    if member.startswith(GROUP_PREFIX) and len(member) > len(GROUP_PREFIX):
        return member[len(GROUP_PREFIX):]
    return None


# ---------------------------------------------------------------------------
# Carrier propagation
# ---------------------------------------------------------------------------


def _is_principal_key(key: object) -> bool:
    return isinstance(key, str) and key.lower() == PRINCIPAL_METADATA_KEY


def _as_text(value: object) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def extract(carrier: Carrier | None) -> str:
    """Return the principal carried by an inbound header or metadata set.

    Parameters
    ----------
    carrier:
        A mapping of header names to values, or an iterable of
        ``(key, value)`` pairs as used by gRPC metadata.  ``None`` is
        treated as an empty carrier.

    Returns
    -------
    str
        The value exactly as received, or ``""`` when no principal key is
        present.
    """
    if carrier is None:
        return ""

    pairs: Iterable[tuple[object, object]]
    if isinstance(carrier, Mapping):
        pairs = carrier.items()
    else:
        pairs = carrier

    for key, value in pairs:
        if _is_principal_key(key) and value is not None:
            return _as_text(value)
    return ""


def inject(
    carrier: MutableMapping[str, object] | list[tuple[str, object]],
    principal: str,
    *,
    metadata: bool = False,
) -> None:
    """Write *principal* into an outbound carrier under the canonical key.

    Any existing entry whose key matches case-insensitively is replaced so
    that exactly one principal travels downstream.  The value is written
    verbatim.  An empty principal leaves the carrier untouched.

    Parameters
    ----------
    carrier:
        Mutable header mapping or list of metadata pairs.
    principal:
        The principal string to forward.
    metadata:
        Use the lowercase gRPC metadata key instead of the HTTP header key.
    """
    if not principal:
        return

    key = PRINCIPAL_METADATA_KEY if metadata else PRINCIPAL_HEADER_KEY

    if isinstance(carrier, MutableMapping):
        for existing in [k for k in carrier if _is_principal_key(k)]:
            del carrier[existing]
        carrier[key] = principal
        return

    carrier[:] = [pair for pair in carrier if not _is_principal_key(pair[0])]
    carrier.append((key, principal))
