# src/procmon/identity.py
"""Script identity extraction from raw command lines.

A process named ``python`` or ``node`` says little about what it is running.
This module finds the script a command line refers to, for example
``K:\\app\\main.py`` in ``"C:\\Python39\\python.exe" K:\\app\\main.py --port 8080``,
and infers the project directory when only a bare filename is given to an
interpreter living inside a virtualenv or ``node_modules``.

Everything here is pure: no process access, no I/O.
"""

from __future__ import annotations

import re

SCRIPT_EXTENSIONS = (
    "py",
    "pyw",
    "js",
    "ts",
    "mjs",
    "cjs",
    "jsx",
    "tsx",
    "rb",
    "php",
    "pl",
    "sh",
    "ps1",
    "bat",
    "cmd",
)

_SCRIPT_SUFFIXES = tuple(f".{ext}" for ext in SCRIPT_EXTENSIONS)
_EXECUTABLE_MARKERS = ("python", "node", "bun")
_DRIVE_LETTER = re.compile(r"^[A-Za-z]:")

# Interpreter layouts that reveal a project root: <root>/.venv/Scripts/python.exe,
# <root>/venv/bin/python, <root>/node_modules/.bin/tsx
_PROJECT_ROOT_PATTERNS = (
    re.compile(
        r"^(?P<root>.+?)(?P<sep>[\\/])\.?venv[\\/](?:scripts|bin)(?:[\\/]|$)",
        re.IGNORECASE,
    ),
    re.compile(
        r"^(?P<root>.+?)(?P<sep>[\\/])node_modules[\\/]\.bin(?:[\\/]|$)",
        re.IGNORECASE,
    ),
)


def tokenize_command_line(command_line: str) -> list[str]:
    """Split a command line into tokens, respecting single and double quotes.

    A quote character opens a span that only the same character closes.
    Closing a span ends the current token. An unterminated quote runs to
    the end of the input.
    """
    tokens: list[str] = []
    current: list[str] = []
    quote_char = ""

    for char in command_line:
        if not quote_char and char in ("'", '"'):
            quote_char = char
        elif quote_char and char == quote_char:
            quote_char = ""
            if current:
                tokens.append("".join(current))
                current = []
        elif not quote_char and char.isspace():
            if current:
                tokens.append("".join(current))
                current = []
        else:
            current.append(char)

    if current:
        tokens.append("".join(current))
    return tokens


def _is_absolute(token: str) -> bool:
    return bool(_DRIVE_LETTER.match(token)) or token.startswith("/")


def _has_path(token: str) -> bool:
    return _is_absolute(token) or "/" in token or "\\" in token


def _is_executable_hint(token: str) -> bool:
    lower = token.lower()
    looks_executable = lower.endswith(".exe") or any(m in lower for m in _EXECUTABLE_MARKERS)
    return looks_executable and _is_absolute(token)


def _is_script(token: str) -> bool:
    return token.lower().endswith(_SCRIPT_SUFFIXES)


def infer_project_root(executable_path: str, script_name: str) -> str | None:
    """Infer the full script path from where its interpreter is installed.

    Args:
        executable_path: Absolute interpreter path, e.g. ``C:\\proj\\.venv\\Scripts\\python.exe``
        script_name: Bare script filename from the command line, e.g. ``main.py``

    Returns:
        The directory holding the virtualenv (or ``node_modules``) joined with
        ``script_name`` using the executable's own separator, or None when the
        executable is not inside a recognised layout.
    """
    for pattern in _PROJECT_ROOT_PATTERNS:
        match = pattern.match(executable_path)
        if match:
            return f"{match.group('root')}{match.group('sep')}{script_name}"
    return None


def extract_script_path(command_line: str | None) -> str | None:
    """Return the best-guess script path behind a command line.

    The first token that is a path to a recognised script wins outright.
    A bare script filename is only a fallback: if no full path shows up,
    the project root is inferred from the last absolute interpreter path
    seen, and failing that the bare filename is returned.
    """
    if not command_line:
        return None

    fallback: str | None = None
    executable_hint: str | None = None

    for raw in tokenize_command_line(command_line):
        token = raw.strip()
        if not token:
            continue

        if _is_executable_hint(token):
            executable_hint = token

        if _is_script(token):
            if _has_path(token):
                return token
            if fallback is None:
                fallback = token

    if fallback is not None and executable_hint is not None:
        inferred = infer_project_root(executable_hint, fallback)
        if inferred:
            return inferred

    return fallback


def format_script_name(script_path: str | None, max_length: int = 40) -> str:
    """Truncate a script path from the start, keeping the most specific tail."""
    if not script_path:
        return ""
    if len(script_path) <= max_length:
        return script_path
    return "..." + script_path[-(max_length - 3) :]


def format_command(command_line: str | None, max_length: int = 50) -> str:
    """Truncate a command line from the end for one-line display."""
    if not command_line:
        return "-"
    if len(command_line) > max_length:
        return command_line[: max_length - 3] + "..."
    return command_line
