"""In-memory IAM policy document.

The policy file shared by the IAM, Secret Manager and KMS emulators has
three independent sections::

    roles:
      roles/custom.ciRunner:
        permissions:
          - secretmanager.secrets.get
          - secretmanager.versions.access
    groups:
      developers:
        members:
          - user:alice@example.com
          - user:bob@example.com
    projects:
      test-project:
        bindings:
          - role: roles/custom.ciRunner
            members:
              - serviceAccount:ci@test-project.iam.gserviceaccount.com
            condition:
              expression: resource.name.startsWith("projects/test-project/secrets/prod-")
              title: CI limited to production secrets

The model only describes shape.  Structural rules (permission format, role
references, member grammar) are checked by
:class:`~gcp_emulator_control_plane.policy.validator.PolicyValidator`.
"""
from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field


class ParseError(ValueError):
    """Raised when policy content cannot be decoded into the document schema.

    Attributes
    ----------
    path:
        The file the content came from, if known.
    line, column:
        1-based position of a syntax error, when the decoder reports one.
    context:
        Dotted location inside the document for shape errors
        (e.g. ``projects.test-project.bindings[0].members``).
    """

    def __init__(
        self,
        message: str,
        path: str | None = None,
        line: int | None = None,
        column: int | None = None,
        context: str | None = None,
    ) -> None:
        self.path = path
        self.line = line
        self.column = column
        self.context = context

        location = path or ""
        if line is not None:
            location += f":{line}"
            if column is not None:
                location += f":{column}"
        prefix = f"[{location}] " if location else ""
        suffix = f" (at {context})" if context else ""
        super().__init__(f"{prefix}{message}{suffix}")


@dataclass(frozen=True)
class Condition:
    """Expression that must hold for a binding to apply; evaluated by the authority."""

    expression: str
    title: str = ""
    description: str = ""


@dataclass(frozen=True)
class Binding:
    """Associates a role with member principals, optionally under a condition."""

    role: str
    members: tuple[str, ...] = ()
    condition: Condition | None = None


@dataclass(frozen=True)
class Role:
    permissions: tuple[str, ...] = ()


@dataclass(frozen=True)
class Group:
    members: tuple[str, ...] = ()


@dataclass(frozen=True)
class Project:
    bindings: tuple[Binding, ...] = ()


@dataclass(frozen=True)
class PolicyDocument:
    """A complete policy file.

    All three mappings are optional; insertion order is preserved so that
    saving a loaded document reproduces its layout.
    """

    roles: dict[str, Role] = field(default_factory=dict)
    groups: dict[str, Group] = field(default_factory=dict)
    projects: dict[str, Project] = field(default_factory=dict)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, raw: object, source: str | None = None) -> PolicyDocument:
        """Build a document from decoded YAML/JSON.

        Missing sections and ``null`` values are treated as empty; unknown
        keys are ignored.

        Raises
        ------
        ParseError
            If the content does not have the policy shape.
        """
        if not isinstance(raw, dict):
            raise ParseError(
                f"policy must be a mapping, got {_type_name(raw)}", path=source
            )

        roles: dict[str, Role] = {}
        for name, body in _mapping(raw.get("roles"), "roles", source).items():
            ctx = f"roles.{name}"
            body = _mapping(body, ctx, source)
            roles[str(name)] = Role(
                permissions=_strings(body.get("permissions"), f"{ctx}.permissions", source)
            )

        groups: dict[str, Group] = {}
        for name, body in _mapping(raw.get("groups"), "groups", source).items():
            ctx = f"groups.{name}"
            body = _mapping(body, ctx, source)
            groups[str(name)] = Group(
                members=_strings(body.get("members"), f"{ctx}.members", source)
            )

        projects: dict[str, Project] = {}
        for project_id, body in _mapping(raw.get("projects"), "projects", source).items():
            ctx = f"projects.{project_id}"
            body = _mapping(body, ctx, source)
            raw_bindings = _sequence(body.get("bindings"), f"{ctx}.bindings", source)
            projects[str(project_id)] = Project(
                bindings=tuple(
                    _binding(b, f"{ctx}.bindings[{i}]", source)
                    for i, b in enumerate(raw_bindings)
                )
            )

        return cls(roles=roles, groups=groups, projects=projects)

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, object]:
        """Return the wire shape used by both the YAML and JSON encodings."""
        projects: dict[str, object] = {}
        for project_id, project in self.projects.items():
            bindings: list[dict[str, object]] = []
            for binding in project.bindings:
                entry: dict[str, object] = {
                    "role": binding.role,
                    "members": list(binding.members),
                }
                if binding.condition is not None:
                    condition: dict[str, str] = {"expression": binding.condition.expression}
                    if binding.condition.title:
                        condition["title"] = binding.condition.title
                    if binding.condition.description:
                        condition["description"] = binding.condition.description
                    entry["condition"] = condition
                bindings.append(entry)
            projects[project_id] = {"bindings": bindings}

        return {
            "roles": {
                name: {"permissions": list(role.permissions)}
                for name, role in self.roles.items()
            },
            "groups": {
                name: {"members": list(group.members)}
                for name, group in self.groups.items()
            },
            "projects": projects,
        }

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_empty(self) -> bool:
        return not (self.roles or self.groups or self.projects)

    def iter_bindings(self) -> Iterator[tuple[str, int, Binding]]:
        """Yield ``(project_id, index, binding)`` in declaration order."""
        for project_id, project in self.projects.items():
            for index, binding in enumerate(project.bindings):
                yield project_id, index, binding

    def summary(self) -> dict[str, int]:
        return {
            "roles": len(self.roles),
            "permissions": sum(len(r.permissions) for r in self.roles.values()),
            "groups": len(self.groups),
            "projects": len(self.projects),
            "bindings": sum(len(p.bindings) for p in self.projects.values()),
        }


# ---------------------------------------------------------------------------
# Shape helpers
# ---------------------------------------------------------------------------


def _type_name(value: object) -> str:
    if value is None:
        return "null"
    return type(value).__name__


def _mapping(value: object, context: str, source: str | None) -> dict[object, object]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ParseError(
            f"expected a mapping, got {_type_name(value)}", path=source, context=context
        )
    return value


def _sequence(value: object, context: str, source: str | None) -> list[object]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ParseError(
            f"expected a list, got {_type_name(value)}", path=source, context=context
        )
    return value


def _strings(value: object, context: str, source: str | None) -> tuple[str, ...]:
    items = _sequence(value, context, source)
    for index, item in enumerate(items):
        if not isinstance(item, str):
            raise ParseError(
                f"expected a string, got {_type_name(item)}",
                path=source,
                context=f"{context}[{index}]",
            )
    return tuple(items)  # type: ignore[arg-type]


def _optional_string(body: dict[object, object], key: str, context: str, source: str | None) -> str:
    value = body.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ParseError(
            f"expected a string, got {_type_name(value)}", path=source, context=f"{context}.{key}"
        )
    return value


def _binding(raw: object, context: str, source: str | None) -> Binding:
    body = _mapping(raw, context, source)
    if "role" not in body:
        raise ParseError("binding is missing 'role'", path=source, context=context)

    condition: Condition | None = None
    if body.get("condition") is not None:
        cond_ctx = f"{context}.condition"
        cond_body = _mapping(body["condition"], cond_ctx, source)
        condition = Condition(
            expression=_optional_string(cond_body, "expression", cond_ctx, source),
            title=_optional_string(cond_body, "title", cond_ctx, source),
            description=_optional_string(cond_body, "description", cond_ctx, source),
        )

    return Binding(
        role=_optional_string(body, "role", context, source),
        members=_strings(body.get("members"), f"{context}.members", source),
        condition=condition,
    )
