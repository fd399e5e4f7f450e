"""Helpers shared by the plugin machinery: result checks, commands and casts."""

from __future__ import annotations

import subprocess
from collections.abc import Mapping, Sequence
from datetime import timedelta
from functools import partial
from typing import Any

_NANOS_PER_MICRO = 1_000
_NANOS_PER_MILLI = 1_000_000
_NANOS_PER_SECOND = 1_000_000_000


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, (dict, list, tuple)) and not value)


def _equal(left: Any, right: Any) -> bool:
    if _is_empty(left) and _is_empty(right):
        return True
    if isinstance(left, dict) and isinstance(right, dict):
        return left.keys() == right.keys() and all(
            _equal(value, right[key]) for key, value in left.items()
        )
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        return len(left) == len(right) and all(
            _equal(a, b) for a, b in zip(left, right)
        )
    if isinstance(left, (dict, list, tuple)) or isinstance(right, (dict, list, tuple)):
        return False
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


def verify(params: Mapping[str, Any] | None, return_val: Mapping[str, Any] | None) -> bool:
    """Return True if both mappings hold the same keys and values.

    ``None`` and empty containers are treated as equal to each other.
    """
    return _equal(
        dict(params) if params is not None else None,
        dict(return_val) if return_val is not None else None,
    )


def _env_mapping(env: Sequence[str]) -> dict[str, str]:
    mapping: dict[str, str] = {}
    for entry in env:
        name, _, value = entry.partition("=")
        mapping[name] = value
    return mapping


def new_command(
    cmd: str, args: Sequence[str] | None, env: Sequence[str] | None
) -> partial[subprocess.Popen]:
    """Return a callable that starts ``cmd`` with ``args``.

    ``env`` holds ``NAME=value`` entries; when it is empty or None the child
    inherits the current environment, otherwise it sees only those variables.
    """
    kwargs: dict[str, Any] = {}
    if env:
        kwargs["env"] = _env_mapping(env)
    return partial(subprocess.Popen, [cmd, *(args or ())], **kwargs)


def _with_fraction(whole: int, remainder: int, digits: int) -> str:
    fraction = str(remainder).rjust(digits, "0").rstrip("0")
    return f"{whole}.{fraction}" if fraction else str(whole)


def format_duration(value: timedelta | int) -> str:
    """Render a duration (a timedelta or nanoseconds) like ``1h2m3.5s``."""
    if isinstance(value, timedelta):
        nanos = (
            (value.days * 86_400 + value.seconds) * _NANOS_PER_SECOND
            + value.microseconds * _NANOS_PER_MICRO
        )
    elif isinstance(value, int) and not isinstance(value, bool):
        nanos = value
    else:
        raise TypeError(f"not a duration: {value!r}")

    sign = "-" if nanos < 0 else ""
    magnitude = abs(nanos)

    if magnitude == 0:
        return "0s"
    if magnitude < _NANOS_PER_MICRO:
        return f"{sign}{magnitude}ns"
    if magnitude < _NANOS_PER_MILLI:
        whole, rem = divmod(magnitude, _NANOS_PER_MICRO)
        return f"{sign}{_with_fraction(whole, rem, 3)}µs"
    if magnitude < _NANOS_PER_SECOND:
        whole, rem = divmod(magnitude, _NANOS_PER_MILLI)
        return f"{sign}{_with_fraction(whole, rem, 6)}ms"

    seconds, rem = divmod(magnitude, _NANOS_PER_SECOND)
    text = f"{_with_fraction(seconds % 60, rem, 9)}s"
    minutes = seconds // 60
    if minutes:
        text = f"{minutes % 60}m{text}"
        hours = minutes // 60
        if hours:
            text = f"{hours}h{text}"
    return sign + text


def cast_to_primitive_types(args: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of ``args`` with durations rendered as strings.

    Nested mappings are cast recursively; in lists only the direct elements
    are cast.
    """
    casted: dict[str, Any] = {}
    for key, value in args.items():
        if isinstance(value, timedelta):
            casted[key] = format_duration(value)
        elif isinstance(value, dict):
            casted[key] = cast_to_primitive_types(value)
        elif isinstance(value, (list, tuple)):
            casted[key] = [
                format_duration(item) if isinstance(item, timedelta) else item
                for item in value
            ]
        else:
            casted[key] = value
    return casted