"""Structural validation of IAM policy documents.

The validator never stops at the first problem.  Every check appends to a
single :class:`ValidationResult`, so one call reports the complete list of
defects in the order they were found:

1. permission format in every role
2. role names (``roles/`` prefix)
3. custom role references resolve to a defined role
4. member principal grammar and group references
5. condition expressions are non-empty

Role expansion, group resolution and CEL evaluation belong to the IAM
emulator and are not attempted here.

Example
-------
>>> result = PolicyValidator().validate(doc)
>>> result.valid
False
>>> result.errors
["role 'roles/custom.dev': invalid permission 'secretmanager.get': ..."]
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from gcp_emulator_control_plane.principal import codec as principal_codec
from gcp_emulator_control_plane.policy.model import PolicyDocument

logger = logging.getLogger(__name__)

ROLE_PREFIX: str = "roles/"
CUSTOM_ROLE_PREFIX: str = "roles/custom."
_CUSTOM_NAMESPACE: str = "custom."
_WILDCARD: str = "*"
_MIN_PERMISSION_SEGMENTS: int = 3


@dataclass
class ValidationResult:
    """Outcome of a validation pass.

    ``valid`` starts ``True`` and flips to ``False`` on the first
    :meth:`add_error`; it is never reset.
    """

    valid: bool = True
    errors: list[str] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        self.valid = False
        self.errors.append(message)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def __bool__(self) -> bool:
        return self.valid


# ---------------------------------------------------------------------------
# Single-value rules
# ---------------------------------------------------------------------------


def validate_permission(permission: str) -> str | None:
    """Return why *permission* is malformed, or ``None`` if it is well formed.

    A permission is ``service.resource.verb`` with optional further
    segments; no segment may be empty or a ``*`` wildcard.
    """
    segments = permission.split(".")
    if len(segments) < _MIN_PERMISSION_SEGMENTS:
        return (
            f"must have at least {_MIN_PERMISSION_SEGMENTS} segments "
            f"(service.resource.verb), got {len(segments)}"
        )
    for index, segment in enumerate(segments):
        if not segment:
            return f"segment {index + 1} is empty"
        if segment == _WILDCARD:
            return "wildcards are not allowed"
    return None


def validate_role_name(role: str) -> str | None:
    """Return why *role* is not a valid role name, or ``None``."""
    if not role:
        return "role name is empty"
    if not role.startswith(ROLE_PREFIX):
        return f"role name must start with {ROLE_PREFIX!r}"
    if len(role) == len(ROLE_PREFIX):
        return f"role name has nothing after {ROLE_PREFIX!r}"
    return None


def is_custom_role(role: str) -> bool:
    return role.startswith(CUSTOM_ROLE_PREFIX)


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------


class PolicyValidator:
    """Checks a :class:`PolicyDocument` for structural defects.

    The validator is stateless; a single instance may be shared.
    """

    def validate(self, doc: PolicyDocument) -> ValidationResult:
        """Run every check against *doc* and collect all defects.

        Parameters
        ----------
        doc:
            The decoded policy.

        Returns
        -------
        ValidationResult
            ``valid`` is ``True`` only when no check reported an error.

        Raises
        ------
        TypeError
            If *doc* is ``None`` or not a :class:`PolicyDocument`.
        """
        if not isinstance(doc, PolicyDocument):
            raise TypeError(
                f"validate() requires a PolicyDocument, got {type(doc).__name__}"
            )

        result = ValidationResult()
        if doc.is_empty():
            result.add_error("policy defines no roles, groups, or projects")

        self._check_permissions(doc, result)
        self._check_role_names(doc, result)
        self._check_role_references(doc, result)
        self._check_members(doc, result)
        self._check_conditions(doc, result)

        logger.debug(
            "Validated policy: %d error(s)", result.error_count
        )
        return result

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _check_permissions(self, doc: PolicyDocument, result: ValidationResult) -> None:
        for role_name, role in doc.roles.items():
            for permission in role.permissions:
                reason = validate_permission(permission)
                if reason is not None:
                    result.add_error(
                        f"role {role_name!r}: invalid permission {permission!r}: {reason}"
                    )

    def _check_role_names(self, doc: PolicyDocument, result: ValidationResult) -> None:
        for role_name in doc.roles:
            reason = validate_role_name(role_name)
            if reason is not None:
                result.add_error(f"role {role_name!r}: {reason}")

        for project_id, index, binding in doc.iter_bindings():
            where = f"project {project_id!r} binding {index}"
            if not binding.role:
                result.add_error(f"{where}: role is empty")
            elif binding.role.startswith(_CUSTOM_NAMESPACE):
                result.add_error(
                    f"{where}: custom role {binding.role!r} must start with {ROLE_PREFIX!r}"
                )
            elif is_custom_role(binding.role) and len(binding.role) == len(CUSTOM_ROLE_PREFIX):
                result.add_error(f"{where}: custom role {binding.role!r} has no name")

    def _check_role_references(self, doc: PolicyDocument, result: ValidationResult) -> None:
        for project_id, index, binding in doc.iter_bindings():
            if not is_custom_role(binding.role) or len(binding.role) == len(CUSTOM_ROLE_PREFIX):
                # Built-in roles are resolved by the IAM emulator.
                continue
            if binding.role not in doc.roles:
                result.add_error(
                    f"project {project_id!r} binding {index}: "
                    f"custom role {binding.role!r} is not defined in roles"
                )

    def _check_members(self, doc: PolicyDocument, result: ValidationResult) -> None:
        for group_name, group in doc.groups.items():
            for member in group.members:
                self._check_member(member, f"group {group_name!r}", doc, result)

        for project_id, index, binding in doc.iter_bindings():
            for member in binding.members:
                self._check_member(
                    member, f"project {project_id!r} binding {index}", doc, result
                )

    def _check_member(
        self,
        member: str,
        where: str,
        doc: PolicyDocument,
        result: ValidationResult,
    ) -> None:
        if not principal_codec.validate_format(member):
            result.add_error(f"{where}: invalid member {member!r}")
            return
        referenced = principal_codec.group_name(member)
        if referenced is not None and referenced not in doc.groups:
            result.add_error(f"{where}: member {member!r} references undefined group")

    def _check_conditions(self, doc: PolicyDocument, result: ValidationResult) -> None:
        for project_id, index, binding in doc.iter_bindings():
            if binding.condition is None:
                continue
            if not binding.condition.expression.strip():
                result.add_error(
                    f"project {project_id!r} binding {index}: condition expression is empty"
                )


def validate(doc: PolicyDocument) -> ValidationResult:
    """Validate *doc* with a default :class:`PolicyValidator`."""
    return PolicyValidator().validate(doc)
