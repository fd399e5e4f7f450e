"""Policies and constants that govern the plugin registry."""

from __future__ import annotations

from enum import Enum

EMPTY_POOL_CAPACITY = 0
# Built-in plugins take priorities below this; user plugins start here.
PLUGIN_PRIORITY_START = 1000


class _Policy(str, Enum):
    """A policy whose value can be looked up case-insensitively."""

    @classmethod
    def _missing_(cls, value: object) -> _Policy | None:
        if isinstance(value, str):
            lowered = value.lower()
            for member in cls:
                if member.value == lowered:
                    return member
        return None

    def __str__(self) -> str:
        return self.value


class CompatibilityPolicy(_Policy):
    """How to treat a plugin whose requirements are not met."""

    STRICT = "strict"
    LOOSE = "loose"


class VerificationPolicy(_Policy):
    """How to treat a hook whose result does not match its parameters."""

    PASS_DOWN = "passdown"
    IGNORE = "ignore"
    ABORT = "abort"
    REMOVE = "remove"


class AcceptancePolicy(_Policy):
    """Whether hooks with unknown names are registered."""

    ACCEPT = "accept"
    REJECT = "reject"


class TerminationPolicy(_Policy):
    """Whether a hook may stop the rest of the chain by setting ``terminate``."""

    STOP = "stop"
    CONTINUE = "continue"