"""Hook names and the registry that runs chains of hooks by priority."""

from __future__ import annotations

import base64
import logging
from collections.abc import Callable, Mapping
from enum import IntEnum
from typing import Any

from gatewayd.config import TerminationPolicy, VerificationPolicy
from gatewayd.errors import ErrCode, GatewayDError
from gatewayd.plugin_utils import cast_to_primitive_types, verify

HookMethod = Callable[[dict[str, Any]], "dict[str, Any] | None"]


class HookName(IntEnum):
    """The points in the gateway's life cycle at which plugins are called."""

    UNSPECIFIED = 0
    ON_CONFIG_LOADED = 1
    ON_NEW_LOGGER = 2
    ON_NEW_POOL = 3
    ON_NEW_CLIENT = 4
    ON_NEW_PROXY = 5
    ON_NEW_SERVER = 6
    ON_SIGNAL = 7
    ON_RUN = 8
    ON_BOOTING = 9
    ON_BOOTED = 10
    ON_OPENING = 11
    ON_OPENED = 12
    ON_CLOSING = 13
    ON_CLOSED = 14
    ON_TRAFFIC = 15
    ON_TRAFFIC_FROM_CLIENT = 16
    ON_TRAFFIC_TO_SERVER = 17
    ON_TRAFFIC_FROM_SERVER = 18
    ON_TRAFFIC_TO_CLIENT = 19
    ON_SHUTDOWN = 20
    ON_TICK = 21
    ON_HOOK = 1000

    @property
    def method_name(self) -> str:
        """Name of the plugin service method that handles this hook."""
        return self.name.lower()

    def __str__(self) -> str:
        return f"HOOK_NAME_{self.name}"


def hook_label(hook_name: HookName | int) -> str:
    """Return a printable name for a known or custom hook."""
    if isinstance(hook_name, HookName):
        return str(hook_name)
    try:
        return str(HookName(hook_name))
    except ValueError:
        return str(int(hook_name))


def _to_value(value: Any) -> Any:
    """Convert ``value`` to what a protobuf Struct can hold, or raise TypeError."""
    if value is None or isinstance(value, (bool, str, float)):
        return value
    if isinstance(value, int):
        return float(value)
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, Mapping):
        return _to_struct(value)
    if isinstance(value, (list, tuple)):
        return [_to_value(item) for item in value]
    raise TypeError(f"invalid type: {type(value).__name__}")


def _to_struct(mapping: Mapping[Any, Any]) -> dict[str, Any]:
    struct: dict[str, Any] = {}
    for key, value in mapping.items():
        if not isinstance(key, str):
            raise TypeError(f"invalid key type: {type(key).__name__}")
        struct[key] = _to_value(value)
    return struct


def _copy(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _copy(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_copy(item) for item in value]
    return value


class HookRegistry:
    """Holds hook methods by name and priority and runs them as a chain."""

    def __init__(
        self,
        verification: VerificationPolicy = VerificationPolicy.PASS_DOWN,
        termination: TerminationPolicy = TerminationPolicy.STOP,
        logger: logging.Logger | None = None,
    ) -> None:
        self.verification = verification
        self.termination = termination
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        self._hooks: dict[HookName | int, dict[int, HookMethod]] = {}

    def hooks(self) -> dict[HookName | int, dict[int, HookMethod]]:
        """Return the hooks, keyed by hook name and then by priority."""
        return self._hooks

    def add_hook(self, hook_name: HookName | int, priority: int, method: HookMethod) -> None:
        """Register ``method`` for ``hook_name`` at ``priority``, replacing any there."""
        chain = self._hooks.setdefault(hook_name, {})
        if priority in chain:
            self.logger.warning(
                "Hook is replaced (hookName=%s, priority=%s)",
                hook_label(hook_name),
                priority,
            )
        chain[priority] = method

    def _call(
        self, method: HookMethod, arg: dict[str, Any], hook_name: HookName | int, priority: int
    ) -> dict[str, Any]:
        try:
            result = method(arg)
        except Exception as err:
            self.logger.error(
                "Hook returned an error (hookName=%s, priority=%s): %s",
                hook_label(hook_name),
                priority,
                err,
            )
            result = None
        return result if result is not None else {}

    def run(self, args: Mapping[str, Any] | None, hook_name: HookName | int) -> dict[str, Any]:
        """Run the hooks of ``hook_name`` in priority order, chaining their results.

        The first hook gets ``args``; every later one gets the previous result.
        A result that differs from ``args`` is handled by the verification
        policy, and a result with ``terminate`` set to True stops the chain when
        the termination policy is ``STOP``.
        """
        casted = cast_to_primitive_types(args or {})

        if not casted:
            params: dict[str, Any] = {}
        else:
            try:
                params = _to_struct(casted)
            except TypeError as err:
                raise GatewayDError(ErrCode.CAST_FAILED).wrap(err) from err

        chain = self._hooks.get(hook_name, {})
        return_val: dict[str, Any] = {}
        remove_list: list[int] = []

        for idx, priority in enumerate(sorted(chain)):
            arg = params if idx == 0 else return_val
            result = self._call(chain[priority], arg, hook_name, priority)

            if verify(params, result) or self.verification == VerificationPolicy.PASS_DOWN:
                return_val = result
                if (
                    self.termination == TerminationPolicy.STOP
                    and result.get("terminate") is True
                ):
                    break
                continue

            if self.verification == VerificationPolicy.IGNORE:
                if idx == 0:
                    return_val = params
            elif self.verification == VerificationPolicy.ABORT:
                if idx == 0:
                    return casted
                return _copy(return_val)
            elif self.verification == VerificationPolicy.REMOVE:
                remove_list.append(priority)
                if idx == 0:
                    return_val = params
            else:
                return_val = result

        for priority in remove_list:
            chain.pop(priority, None)

        return _copy(return_val)