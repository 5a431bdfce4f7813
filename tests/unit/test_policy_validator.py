"""Unit tests for policy/validator.py: PolicyValidator and single-value rules."""
from __future__ import annotations

import pytest

from gcp_emulator_control_plane.policy.codec import loads
from gcp_emulator_control_plane.policy.model import (
    Binding,
    Condition,
    Group,
    PolicyDocument,
    Project,
    Role,
)
from gcp_emulator_control_plane.policy.validator import (
    PolicyValidator,
    ValidationResult,
    validate,
    validate_permission,
    validate_role_name,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def validator() -> PolicyValidator:
    return PolicyValidator()


VALID_YAML = """\
roles:
  roles/custom.ciRunner:
    permissions:
      - secretmanager.secrets.get
      - cloudkms.cryptoKeyVersions.useToDecrypt
groups:
  developers:
    members:
      - user:alice@example.com
      - serviceAccount:ci@test-project.iam.gserviceaccount.com
  everyone:
    members:
      - group:developers
projects:
  test-project:
    bindings:
      - role: roles/custom.ciRunner
        members:
          - group:developers
        condition:
          expression: resource.name.startsWith("projects/test-project/secrets/prod-")
      - role: roles/owner
        members:
          - user:root@example.com
          - allAuthenticatedUsers
"""


def _doc(
    roles: dict[str, Role] | None = None,
    groups: dict[str, Group] | None = None,
    bindings: tuple[Binding, ...] = (),
) -> PolicyDocument:
    projects = {"p": Project(bindings=bindings)} if bindings else {}
    return PolicyDocument(roles=roles or {}, groups=groups or {}, projects=projects)


# ---------------------------------------------------------------------------
# validate_permission
# ---------------------------------------------------------------------------


class TestValidatePermission:
    @pytest.mark.parametrize(
        "permission",
        [
            "secretmanager.secrets.get",
            "cloudkms.cryptoKeys.encrypt",
            "cloudkms.cryptoKeyVersions.useToDecrypt",
            "service.resource.sub.verb",
        ],
    )
    def test_valid(self, permission: str) -> None:
        assert validate_permission(permission) is None

    @pytest.mark.parametrize(
        ("permission", "reason"),
        [
            ("secretmanager.get", "at least 3 segments"),
            ("secretmanager", "at least 3 segments"),
            ("secretmanager.*", "at least 3 segments"),
            ("secretmanager.secrets.*", "wildcards"),
            ("secretmanager..get", "empty"),
            ("secretmanager.secrets.", "empty"),
            ("", "at least 3 segments"),
        ],
    )
    def test_invalid(self, permission: str, reason: str) -> None:
        result = validate_permission(permission)
        assert result is not None
        assert reason in result


class TestValidateRoleName:
    @pytest.mark.parametrize("role", ["roles/custom.developer", "roles/owner"])
    def test_valid(self, role: str) -> None:
        assert validate_role_name(role) is None

    @pytest.mark.parametrize("role", ["custom.developer", "", "roles/", "owner"])
    def test_invalid(self, role: str) -> None:
        assert validate_role_name(role) is not None


# ---------------------------------------------------------------------------
# ValidationResult
# ---------------------------------------------------------------------------


class TestValidationResult:
    def test_new_result_is_valid(self) -> None:
        result = ValidationResult()
        assert result.valid is True
        assert result.errors == []
        assert bool(result) is True

    def test_add_error_invalidates(self) -> None:
        result = ValidationResult()
        result.add_error("test error")
        assert result.valid is False
        assert result.errors == ["test error"]
        assert result.error_count == 1
        assert bool(result) is False


# ---------------------------------------------------------------------------
# PolicyValidator
# ---------------------------------------------------------------------------


class TestPolicyValidatorValid:
    def test_valid_policy_has_no_errors(self, validator: PolicyValidator) -> None:
        result = validator.validate(loads(VALID_YAML))
        assert result.errors == []
        assert result.valid is True

    def test_builtin_role_needs_no_definition(self, validator: PolicyValidator) -> None:
        doc = _doc(bindings=(Binding(role="roles/secretmanager.admin", members=("allUsers",)),))
        assert validator.validate(doc).valid is True

    def test_module_level_validate(self) -> None:
        assert validate(loads(VALID_YAML)).valid is True


class TestPolicyValidatorDefects:
    def test_empty_document(self, validator: PolicyValidator) -> None:
        result = validator.validate(PolicyDocument())
        assert result.valid is False
        assert result.errors == ["policy defines no roles, groups, or projects"]

    def test_bad_permission(self, validator: PolicyValidator) -> None:
        doc = _doc(roles={"roles/custom.dev": Role(permissions=("secretmanager.get",))})
        result = validator.validate(doc)
        assert result.error_count == 1
        assert "'secretmanager.get'" in result.errors[0]
        assert "roles/custom.dev" in result.errors[0]

    def test_role_key_without_prefix(self, validator: PolicyValidator) -> None:
        doc = _doc(roles={"custom.dev": Role(permissions=("secretmanager.secrets.get",))})
        result = validator.validate(doc)
        assert result.errors == ["role 'custom.dev': role name must start with 'roles/'"]

    def test_binding_custom_role_without_prefix(self, validator: PolicyValidator) -> None:
        doc = _doc(bindings=(Binding(role="custom.dev", members=("allUsers",)),))
        result = validator.validate(doc)
        assert result.error_count == 1
        assert "must start with 'roles/'" in result.errors[0]

    def test_binding_empty_role(self, validator: PolicyValidator) -> None:
        doc = _doc(bindings=(Binding(role="", members=("allUsers",)),))
        assert validator.validate(doc).errors == ["project 'p' binding 0: role is empty"]

    def test_undefined_custom_role(self, validator: PolicyValidator) -> None:
        doc = _doc(bindings=(Binding(role="roles/custom.ghost", members=("allUsers",)),))
        result = validator.validate(doc)
        assert result.errors == [
            "project 'p' binding 0: custom role 'roles/custom.ghost' is not defined in roles"
        ]

    def test_invalid_member_in_group(self, validator: PolicyValidator) -> None:
        doc = _doc(groups={"devs": Group(members=("alice@example.com",))})
        result = validator.validate(doc)
        assert result.errors == ["group 'devs': invalid member 'alice@example.com'"]

    def test_undefined_group_in_binding(self, validator: PolicyValidator) -> None:
        doc = _doc(bindings=(Binding(role="roles/viewer", members=("group:ghosts",)),))
        result = validator.validate(doc)
        assert result.errors == [
            "project 'p' binding 0: member 'group:ghosts' references undefined group"
        ]

    def test_empty_condition_expression(self, validator: PolicyValidator) -> None:
        doc = _doc(
            bindings=(
                Binding(
                    role="roles/viewer",
                    members=("allUsers",),
                    condition=Condition(expression="   ", title="blank"),
                ),
            )
        )
        result = validator.validate(doc)
        assert result.errors == ["project 'p' binding 0: condition expression is empty"]

    def test_condition_syntax_is_not_checked(self, validator: PolicyValidator) -> None:
        doc = _doc(
            bindings=(
                Binding(
                    role="roles/viewer",
                    members=("allUsers",),
                    condition=Condition(expression="this is ((( not CEL"),
                ),
            )
        )
        assert validator.validate(doc).valid is True


class TestPolicyValidatorAccumulation:
    def test_two_independent_defects_both_reported(self, validator: PolicyValidator) -> None:
        doc = _doc(
            roles={"roles/custom.dev": Role(permissions=("secretmanager.*",))},
            bindings=(Binding(role="roles/custom.dev", members=("group:missing",)),),
        )
        result = validator.validate(doc)
        assert result.valid is False
        assert result.error_count == 2

    def test_errors_follow_check_order(self, validator: PolicyValidator) -> None:
        doc = _doc(
            roles={"roles/custom.dev": Role(permissions=("bad",))},
            groups={"devs": Group(members=("nobody",))},
            bindings=(
                Binding(
                    role="roles/custom.ghost",
                    members=("group:missing",),
                    condition=Condition(expression=""),
                ),
            ),
        )
        result = validator.validate(doc)
        assert result.error_count == 5
        assert "invalid permission" in result.errors[0]
        assert "not defined in roles" in result.errors[1]
        assert "invalid member 'nobody'" in result.errors[2]
        assert "undefined group" in result.errors[3]
        assert "condition expression is empty" in result.errors[4]

    def test_every_bad_permission_reported(self, validator: PolicyValidator) -> None:
        doc = _doc(roles={"roles/custom.dev": Role(permissions=("a", "b.c", "d.e.*"))})
        assert validator.validate(doc).error_count == 3


class TestPolicyValidatorContract:
    def test_none_document_raises(self, validator: PolicyValidator) -> None:
        with pytest.raises(TypeError):
            validator.validate(None)  # type: ignore[arg-type]

    def test_validator_is_reusable(self, validator: PolicyValidator) -> None:
        bad = _doc(groups={"devs": Group(members=("nobody",))})
        good = loads(VALID_YAML)
        assert validator.validate(bad).valid is False
        assert validator.validate(good).valid is True
