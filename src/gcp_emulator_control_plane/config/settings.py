"""Process settings with Pydantic v2 validation.

Settings are resolved once at startup from four layers, highest first::

    overrides (CLI flags)  >  GCP_EMULATOR_* environment  >  config.yaml  >  defaults

The result is an immutable :class:`Settings` value that is passed
explicitly to whatever needs it.  Nothing below the CLI reads the
environment or the config file.

Example config file (``~/.gcp-emulator/config.yaml``)::

    iam-mode: strict
    trace: false
    policy-file: ./policy.yaml
    port-iam: 8080
    port-secret-manager: 9090
    port-kms: 9091

Example
-------
>>> settings = SettingsLoader().load(overrides={"iam-mode": "strict"})
>>> settings.iam_mode
<IamMode.STRICT: 'strict'>
"""
from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from enum import Enum
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

ENV_PREFIX: str = "GCP_EMULATOR_"
DEFAULT_CONFIG_PATHS: tuple[Path, ...] = (
    Path("config.yaml"),
    Path("~/.gcp-emulator/config.yaml"),
)


class ConfigError(ValueError):
    """Raised when settings are malformed; fatal at startup.

    Attributes
    ----------
    source:
        Where the bad value came from (file path, ``env``, ``flag``), if known.
    """

    def __init__(self, message: str, source: str | None = None) -> None:
        self.source = source
        prefix = f"[{source}] " if source else ""
        super().__init__(f"{prefix}{message}")


class IamMode(str, Enum):
    """How strictly the emulators enforce IAM.

    ``off`` never consults the authority, ``permissive`` allows requests
    when the authority is unreachable, ``strict`` denies them.
    """

    OFF = "off"
    PERMISSIVE = "permissive"
    STRICT = "strict"

    @classmethod
    def parse(cls, value: IamMode | str) -> IamMode:
        """Return the mode for *value*.

        Raises
        ------
        ConfigError
            If *value* is not ``off``, ``permissive`` or ``strict``.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalised = value.strip().lower()
            for mode in cls:
                if mode.value == normalised:
                    return mode
        raise ConfigError(
            f"invalid iam-mode: {value!r} (must be off, permissive, or strict)"
        )

    @property
    def enforcing(self) -> bool:
        return self is not IamMode.OFF

    @property
    def fail_open(self) -> bool:
        return self is IamMode.PERMISSIVE


class PortSettings(BaseModel):
    """Listening ports of the emulators in the stack."""

    model_config = {"frozen": True, "extra": "forbid"}

    iam: int = Field(default=8080, ge=1, le=65535)
    secret_manager: int = Field(default=9090, ge=1, le=65535)
    kms: int = Field(default=9091, ge=1, le=65535)


class Settings(BaseModel):
    """Resolved, immutable process settings."""

    model_config = {"frozen": True, "extra": "forbid"}

    iam_mode: IamMode = Field(default=IamMode.OFF)
    trace: bool = Field(default=False)
    pull_on_start: bool = Field(default=False)
    policy_file: Path = Field(default=Path("./policy.yaml"))
    authority_url: str = Field(default="http://localhost:8080")
    authority_timeout_seconds: float = Field(default=2.0, gt=0)
    ports: PortSettings = Field(default_factory=PortSettings)

    @field_validator("iam_mode", mode="before")
    @classmethod
    def parse_iam_mode(cls, value: object) -> IamMode:
        try:
            return IamMode.parse(value)  # type: ignore[arg-type]
        except ConfigError as exc:
            # Pydantic only wraps ValueError/AssertionError raised here.
            raise ValueError(str(exc)) from exc

    @field_validator("authority_url")
    @classmethod
    def validate_authority_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"authority-url must be an http(s) URL, got {value!r}")
        return value.rstrip("/")


# Flat hyphenated keys used by config files, env vars and flags, mapped to
# their location in the Settings model.
_KEY_MAP: dict[str, tuple[str, ...]] = {
    "iam-mode": ("iam_mode",),
    "trace": ("trace",),
    "pull-on-start": ("pull_on_start",),
    "policy-file": ("policy_file",),
    "authority-url": ("authority_url",),
    "authority-timeout": ("authority_timeout_seconds",),
    "port-iam": ("ports", "iam"),
    "port-secret-manager": ("ports", "secret_manager"),
    "port-kms": ("ports", "kms"),
}


def env_var_name(key: str) -> str:
    """Return the environment variable for a hyphenated settings key."""
    return ENV_PREFIX + key.upper().replace("-", "_")


class SettingsLoader:
    """Resolves layered configuration into a :class:`Settings` value.

    Parameters
    ----------
    search_paths:
        Config file locations tried in order when no explicit path is given.
        Missing files are skipped silently.
    """

    def __init__(self, search_paths: tuple[Path, ...] = DEFAULT_CONFIG_PATHS) -> None:
        self._search_paths = search_paths
        self._sources: dict[str, str] = {}
        self._config_file: Path | None = None

    @property
    def sources(self) -> dict[str, str]:
        """Which layer supplied each key on the last :meth:`load`."""
        return dict(self._sources)

    @property
    def config_file(self) -> Path | None:
        """The config file read on the last :meth:`load`, if any."""
        return self._config_file

    def load(
        self,
        config_path: str | Path | None = None,
        overrides: Mapping[str, object] | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> Settings:
        """Resolve all layers and validate the result.

        Parameters
        ----------
        config_path:
            Explicit config file.  When given it must exist.
        overrides:
            Flag values keyed by hyphenated name; ``None`` values are ignored
            so unset flags do not mask lower layers.
        environ:
            Environment mapping; defaults to :data:`os.environ`.

        Raises
        ------
        FileNotFoundError
            If *config_path* is given and does not exist.
        ConfigError
            If any layer holds an unknown key or an invalid value.
        """
        env = os.environ if environ is None else environ
        flat: dict[str, object] = {}
        self._sources = {key: "default" for key in _KEY_MAP}

        file_values, source = self._read_file(config_path)
        self._apply(flat, file_values, source)

        env_values = {
            key: env[env_var_name(key)] for key in _KEY_MAP if env_var_name(key) in env
        }
        self._apply(flat, env_values, "env")

        flag_values = {k: v for k, v in (overrides or {}).items() if v is not None}
        self._apply(flat, flag_values, "flag")

        try:
            settings = Settings.model_validate(self._nest(flat))
        except ValidationError as exc:
            raise ConfigError(self._describe(exc), self._source_of(exc)) from exc

        logger.debug(
            "Resolved settings: iam_mode=%s policy_file=%s (config file: %s)",
            settings.iam_mode.value,
            settings.policy_file,
            self._config_file or "none",
        )
        return settings

    def defaults(self) -> Settings:
        """Return settings with every default applied."""
        return Settings()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read_file(self, config_path: str | Path | None) -> tuple[dict[str, object], str | None]:
        self._config_file = None
        if config_path is not None:
            path = Path(config_path).expanduser()
            if not path.exists():
                raise FileNotFoundError(f"Config file not found: {path}")
        else:
            path = next(
                (p.expanduser() for p in self._search_paths if p.expanduser().exists()),
                None,
            )
            if path is None:
                return {}, None

        try:
            with path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
        except (yaml.YAMLError, OSError) as exc:
            raise ConfigError(f"failed to read config file: {exc}", str(path)) from exc

        if not isinstance(raw, dict):
            raise ConfigError("config file must be a YAML mapping", str(path))

        self._config_file = path
        return {str(k): v for k, v in raw.items()}, str(path)

    def _apply(
        self,
        flat: dict[str, object],
        values: Mapping[str, object],
        source: str | None,
    ) -> None:
        unknown = sorted(set(values) - set(_KEY_MAP))
        if unknown:
            raise ConfigError(
                f"unknown settings keys: {unknown}. Known keys: {sorted(_KEY_MAP)}.",
                source,
            )
        for key, value in values.items():
            flat[key] = value
            self._sources[key] = source or "default"

    @staticmethod
    def _nest(flat: Mapping[str, object]) -> dict[str, object]:
        nested: dict[str, object] = {}
        for key, value in flat.items():
            *parents, leaf = _KEY_MAP[key]
            target = nested
            for parent in parents:
                target = target.setdefault(parent, {})  # type: ignore[assignment]
            target[leaf] = value
        return nested

    def _source_of(self, exc: ValidationError) -> str | None:
        """Return the layer that supplied the first invalid value."""
        errors = exc.errors()
        if not errors:
            return None
        location = tuple(str(part) for part in errors[0]["loc"])
        for key, path in _KEY_MAP.items():
            if path == location:
                return self._sources.get(key)
        return None

    @staticmethod
    def _describe(exc: ValidationError) -> str:
        messages = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error["loc"])
            messages.append(f"{location}: {error['msg']}")
        return "; ".join(messages)
