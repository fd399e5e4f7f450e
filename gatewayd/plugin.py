"""A plugin as held by the registry, and the client that runs its process."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from gatewayd.errors import ErrCode, GatewayDError


@dataclass(frozen=True)
class Identifier:
    """Identifies a plugin; used as its key in the registry."""

    name: str = ""
    version: str = ""
    remote_url: str = ""
    checksum: str = ""


@dataclass(frozen=True)
class Requirement:
    """Another plugin that a plugin needs in order to work properly."""

    name: str = ""
    version: str = ""
    remote_url: str = ""


class PluginClient(Protocol):
    """Runs a plugin process and gives access to its RPC client.

    ``client()`` returns an object with ``dispense(name)`` and ``ping()``.
    """

    def start(self) -> Any:
        """Start the plugin process and return the address it listens on."""
        ...

    def kill(self) -> None:
        """Stop the plugin process."""
        ...

    def client(self) -> Any:
        """Return the RPC client connected to the plugin."""
        ...


@runtime_checkable
class _PluginService(Protocol):
    def get_plugin_config(self, args: Any) -> Any: ...

    def on_hook(self, args: Any) -> Any: ...


@dataclass
class Plugin:
    """A plugin, its metadata and the client that controls it."""

    id: Identifier = field(default_factory=Identifier)
    enabled: bool = False
    local_path: str = ""
    args: list[str] = field(default_factory=list)
    env: list[str] = field(default_factory=list)
    priority: int = 0
    description: str = ""
    license: str = ""
    project_url: str = ""
    authors: list[str] = field(default_factory=list)
    requires: list[Requirement] = field(default_factory=list)
    hooks: list[Any] = field(default_factory=list)
    config: dict[str, str] = field(default_factory=dict)
    client: PluginClient | None = None

    def _require_client(self) -> PluginClient:
        if self.client is None:
            raise GatewayDError(ErrCode.NIL_POINTER)
        return self.client

    def _rpc_client(self) -> Any:
        client = self._require_client()
        try:
            return client.client()
        except Exception as err:
            raise GatewayDError(ErrCode.FAILED_TO_GET_RPC_CLIENT).wrap(err) from err

    def start(self) -> Any:
        """Start the plugin and return its address."""
        client = self._require_client()
        try:
            return client.start()
        except Exception as err:
            raise GatewayDError(ErrCode.FAILED_TO_START_PLUGIN).wrap(err) from err

    def stop(self) -> None:
        """Kill the plugin process, if there is one."""
        if self.client is not None:
            self.client.kill()

    def dispense(self) -> Any:
        """Return the plugin's service client."""
        rpc_client = self._rpc_client()
        try:
            raw = rpc_client.dispense(self.id.name)
        except Exception as err:
            raise GatewayDError(ErrCode.FAILED_TO_DISPENSE_PLUGIN).wrap(err) from err
        if isinstance(raw, _PluginService):
            return raw
        raise GatewayDError(ErrCode.PLUGIN_NOT_READY)

    def ping(self) -> None:
        """Check that the plugin answers."""
        rpc_client = self._rpc_client()
        try:
            rpc_client.ping()
        except Exception as err:
            raise GatewayDError(ErrCode.FAILED_TO_PING_PLUGIN).wrap(err) from err