"""Policy file load/save with format selected by extension.

``.json`` files are read and written as JSON, ``.yaml`` / ``.yml`` as YAML.
Any other extension falls back to YAML so that older ``policy.conf``-style
files keep working.

Saving is all-or-nothing: the document is written to a temporary file in
the destination directory and moved into place with :func:`os.replace`, so
a failed save leaves the previous file untouched.

Example
-------
>>> doc = load("policy.yaml")
>>> save(doc, "policy.json")
"""
from __future__ import annotations

import json
import logging
import os
import stat
import tempfile
from pathlib import Path

import yaml

from gcp_emulator_control_plane.policy.model import ParseError, PolicyDocument

logger = logging.getLogger(__name__)

DEFAULT_FILE_MODE: int = 0o644
JSON_EXTENSIONS: frozenset[str] = frozenset([".json"])
YAML_EXTENSIONS: frozenset[str] = frozenset([".yaml", ".yml"])


def detect_format(path: str | Path) -> str:
    """Return ``"json"`` or ``"yaml"`` for *path*; unknown extensions map to YAML."""
    ext = Path(path).suffix.lower()
    if ext in JSON_EXTENSIONS:
        return "json"
    return "yaml"


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def load(path: str | Path) -> PolicyDocument:
    """Load and decode a policy file.

    Parameters
    ----------
    path:
        Policy file path.  The extension selects the decoder.

    Returns
    -------
    PolicyDocument

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ParseError
        If the content is not valid YAML/JSON, is empty, or does not have
        the policy shape.  A partially decoded document is never returned.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Policy file not found: {path}")

    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ParseError(f"policy file is not valid UTF-8: {exc.reason}", path=str(path)) from exc
    ext = path.suffix.lower()
    fmt = detect_format(path)
    unknown = ext not in JSON_EXTENSIONS and ext not in YAML_EXTENSIONS

    try:
        doc = loads(text, fmt=fmt, source=str(path))
    except ParseError as exc:
        if not unknown:
            raise
        raise ParseError(
            f"failed to parse policy (unknown extension {ext or '<none>'!r}, tried YAML): "
            f"{exc.args[0]}",
            path=exc.path,
            line=exc.line,
            column=exc.column,
            context=exc.context,
        ) from exc

    summary = doc.summary()
    logger.info(
        "Loaded policy from %s (%d roles, %d groups, %d projects)",
        path,
        summary["roles"],
        summary["groups"],
        summary["projects"],
    )
    return doc


def loads(text: str, fmt: str = "yaml", source: str | None = None) -> PolicyDocument:
    """Decode policy content from a string.

    Parameters
    ----------
    text:
        Raw file content.
    fmt:
        ``"yaml"`` or ``"json"``.
    source:
        Optional identifier used in error messages.
    """
    if fmt == "json":
        raw = _decode_json(text, source)
    elif fmt == "yaml":
        raw = _decode_yaml(text, source)
    else:
        raise ValueError(f"Unknown policy format {fmt!r}; expected 'yaml' or 'json'")

    if raw is None:
        raise ParseError("policy file is empty", path=source)
    return PolicyDocument.from_dict(raw, source=source)


def _decode_json(text: str, source: str | None) -> object:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(
            f"failed to parse policy JSON: {exc.msg}",
            path=source,
            line=exc.lineno,
            column=exc.colno,
        ) from exc


def _decode_yaml(text: str, source: str | None) -> object:
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        line: int | None = None
        column: int | None = None
        mark = getattr(exc, "problem_mark", None)
        if mark is not None:
            line = mark.line + 1
            column = mark.column + 1
        problem = getattr(exc, "problem", None) or str(exc)
        raise ParseError(
            f"failed to parse policy YAML: {problem}",
            path=source,
            line=line,
            column=column,
        ) from exc


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def dumps(doc: PolicyDocument, fmt: str = "yaml") -> str:
    """Serialise *doc* to a YAML or JSON string, preserving insertion order."""
    data = doc.to_dict()
    if fmt == "json":
        return json.dumps(data, indent=2, ensure_ascii=False) + "\n"
    if fmt == "yaml":
        return yaml.safe_dump(
            data, default_flow_style=False, sort_keys=False, allow_unicode=True
        )
    raise ValueError(f"Unknown policy format {fmt!r}; expected 'yaml' or 'json'")


def save(doc: PolicyDocument, path: str | Path) -> None:
    """Write *doc* to *path*, replacing any existing file atomically.

    An existing file keeps its permission bits; a new file is created with
    mode ``0644``.

    Raises
    ------
    OSError
        If the destination directory is not writable.  The previous file,
        if any, is left as it was.
    """
    path = Path(path)
    content = dumps(doc, detect_format(path))
    try:
        mode = stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        mode = DEFAULT_FILE_MODE

    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
            fh.flush()
            os.fsync(fh.fileno())
        # mkstemp creates files 0600.
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise

    logger.info("Saved policy to %s", path)


class PolicyCodec:
    """Object wrapper around :func:`load` / :func:`save` for injection into callers.

    Example
    -------
    >>> codec = PolicyCodec()
    >>> doc = codec.load("policy.yaml")
    >>> codec.save(doc, "policy.json")
    """

    def load(self, path: str | Path) -> PolicyDocument:
        return load(path)

    def loads(self, text: str, fmt: str = "yaml", source: str | None = None) -> PolicyDocument:
        return loads(text, fmt=fmt, source=source)

    def save(self, doc: PolicyDocument, path: str | Path) -> None:
        save(doc, path)

    def dumps(self, doc: PolicyDocument, fmt: str = "yaml") -> str:
        return dumps(doc, fmt)


__all__ = [
    "ParseError",
    "PolicyCodec",
    "detect_format",
    "dumps",
    "load",
    "loads",
    "save",
]
