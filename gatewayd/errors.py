"""Error codes and the exception type raised throughout the package."""

from __future__ import annotations

from enum import IntEnum, auto


class ErrCode(IntEnum):
    """Identifies the kind of failure carried by a :class:`GatewayDError`."""

    NIL_CONTEXT = auto()
    NIL_POINTER = auto()
    CAST_FAILED = auto()
    POOL_EXHAUSTED = auto()
    FAILED_TO_START_PLUGIN = auto()
    FAILED_TO_GET_RPC_CLIENT = auto()
    FAILED_TO_DISPENSE_PLUGIN = auto()
    PLUGIN_NOT_READY = auto()
    FAILED_TO_PING_PLUGIN = auto()


_MESSAGES: dict[ErrCode, str] = {
    ErrCode.NIL_CONTEXT: "Context is nil",
    ErrCode.NIL_POINTER: "Nil pointer",
    ErrCode.CAST_FAILED: "Failed to cast",
    ErrCode.POOL_EXHAUSTED: "Pool is exhausted",
    ErrCode.FAILED_TO_START_PLUGIN: "Failed to start plugin",
    ErrCode.FAILED_TO_GET_RPC_CLIENT: "Failed to get RPC client",
    ErrCode.FAILED_TO_DISPENSE_PLUGIN: "Failed to dispense plugin",
    ErrCode.PLUGIN_NOT_READY: "Plugin is not ready",
    ErrCode.FAILED_TO_PING_PLUGIN: "Failed to ping plugin",
}


class GatewayDError(Exception):
    """An error with a code, a human readable message and an optional cause."""

    def __init__(
        self,
        code: ErrCode,
        message: str | None = None,
        original_error: BaseException | None = None,
    ) -> None:
        self.code = code
        self.message = message if message is not None else _MESSAGES[code]
        self.original_error = original_error
        super().__init__(self.message)
        if original_error is not None:
            self.__cause__ = original_error

    def __str__(self) -> str:
        if self.original_error is None:
            return self.message
        return f"{self.message}, error: {self.original_error}"

    def __repr__(self) -> str:
        return f"GatewayDError({self.code.name}, {self.message!r})"

    def wrap(self, err: BaseException | None) -> GatewayDError:
        """Return a new error of the same kind that carries ``err`` as its cause."""
        return GatewayDError(self.code, self.message, err)