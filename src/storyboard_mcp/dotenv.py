"""Shared ``.env`` config file — auto-loading and single-key persistence.

Vars from ``~/.config/video-storyboard-mcp/.env`` are loaded when they
aren't already set in the process environment. The same file backs the
persisted Gemini credential (see :mod:`storyboard_mcp.credentials`).
No external dependencies.
"""

from __future__ import annotations

import os
from pathlib import Path

DEFAULT_ENV_PATH = Path.home() / ".config" / "video-storyboard-mcp" / ".env"


def _is_unset_or_placeholder(key: str, value: str | None) -> bool:
    """Return True when the current env value should be treated as unset.

    Accepts blank/whitespace values and unresolved self-placeholders that
    some MCP hosts pass through unchanged (e.g. ``${GEMINI_API_KEY}``).
    """
    if value is None:
        return True

    normalized = value.strip()
    if len(normalized) >= 2 and normalized[0] == normalized[-1] and normalized[0] in ('"', "'"):
        normalized = normalized[1:-1].strip()
    if not normalized:
        return True

    if normalized in {f"${key}", f"${{{key}}}"}:
        return True
    return normalized.startswith(f"${{{key}:-") and normalized.endswith("}")


def _split_line(line: str) -> tuple[str, str] | None:
    """Parse one ``.env`` line into (key, value), or None for comments/junk."""
    line = line.strip()
    if not line or line.startswith("#"):
        return None
    if line.startswith("export "):
        line = line[len("export ") :]
    if "=" not in line:
        return None
    key, _, value = line.partition("=")
    key = key.strip()
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
        value = value[1:-1]
    if not key:
        return None
    return key, value


def parse_dotenv(path: Path) -> dict[str, str]:
    """Parse a ``.env`` file into a dict of key-value pairs.

    Supports ``KEY=VALUE``, ``KEY="VALUE"``, ``KEY='VALUE'``,
    ``export KEY=VALUE``, blank lines, and ``#`` comments.
    No variable expansion.

    Args:
        path: Path to the ``.env`` file.

    Returns:
        Dict mapping variable names to their string values.
    """
    result: dict[str, str] = {}
    if not path.is_file():
        return result

    for line in path.read_text().splitlines():
        parsed = _split_line(line)
        if parsed:
            result[parsed[0]] = parsed[1]
    return result


def load_dotenv(path: Path | None = None) -> dict[str, str]:
    """Load vars from *path* into ``os.environ`` when existing values are unset.

    Args:
        path: Path to the ``.env`` file. Defaults to :data:`DEFAULT_ENV_PATH`.

    Returns:
        Dict of vars that were actually injected.
    """
    if path is None:
        path = DEFAULT_ENV_PATH
    parsed = parse_dotenv(path)
    injected: dict[str, str] = {}
    for key, value in parsed.items():
        if _is_unset_or_placeholder(key, os.environ.get(key)):
            os.environ[key] = value
            injected[key] = value
    return injected


def write_dotenv_value(key: str, value: str, path: Path | None = None) -> Path:
    """Set ``key`` in the ``.env`` file, replacing an existing assignment.

    Other lines (comments, unrelated keys) are kept in place. The file and
    its parent directory are created when missing.

    Returns:
        The path that was written.
    """
    if path is None:
        path = DEFAULT_ENV_PATH
    path.parent.mkdir(parents=True, exist_ok=True)

    lines = path.read_text().splitlines() if path.is_file() else []
    assignment = f'{key}="{value}"'
    replaced = False
    out: list[str] = []
    for line in lines:
        parsed = _split_line(line)
        if parsed and parsed[0] == key:
            if not replaced:
                out.append(assignment)
                replaced = True
            continue
        out.append(line)
    if not replaced:
        out.append(assignment)

    path.write_text("\n".join(out) + "\n")
    return path
