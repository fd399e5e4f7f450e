"""The plugin registry: loads plugins, tracks them and wires up their hooks."""

from __future__ import annotations

import binascii
import hashlib
import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Any

from packaging.version import InvalidVersion, Version

from gatewayd.config import (
    EMPTY_POOL_CAPACITY,
    PLUGIN_PRIORITY_START,
    AcceptancePolicy,
    CompatibilityPolicy,
    TerminationPolicy,
    VerificationPolicy,
)
from gatewayd.errors import GatewayDError
from gatewayd.hooks import HookName, HookRegistry, hook_label
from gatewayd.plugin import Identifier, Plugin, PluginClient, Requirement
from gatewayd.plugin_utils import new_command
from gatewayd.pool import Pool

ClientFactory = Callable[[Plugin, Callable[[], Any], "float | timedelta | None"], PluginClient]

_SHA256_SIZE = hashlib.sha256().digest_size


@dataclass
class PluginConfig:
    """A plugin entry as given in the configuration."""

    name: str = ""
    enabled: bool = False
    local_path: str = ""
    checksum: str = ""
    args: list[str] = field(default_factory=list)
    env: list[str] = field(default_factory=list)


def _string(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _decode_requirements(items: Iterable[Any]) -> list[Requirement]:
    requirements = []
    for item in items:
        if not isinstance(item, Mapping):
            raise ValueError(f"requirement is not a mapping: {item!r}")
        fields = {str(key).lower(): value for key, value in item.items()}
        values = {}
        for attr, key in (("name", "name"), ("version", "version"), ("remote_url", "remoteurl")):
            value = fields.get(key, "")
            if not isinstance(value, str):
                raise ValueError(f"requirement field {key!r} is not a string")
            values[attr] = value
        requirements.append(Requirement(**values))
    return requirements


def _decode_authors(items: Iterable[Any]) -> list[str]:
    authors = list(items)
    if not all(isinstance(author, str) for author in authors):
        raise ValueError("authors must be strings")
    return authors


def _decode_hooks(items: Iterable[Any]) -> list[HookName | int]:
    hooks: list[HookName | int] = []
    for item in items:
        if isinstance(item, bool) or not isinstance(item, (int, float)):
            raise ValueError(f"hook is not a number: {item!r}")
        number = int(item)
        try:
            hooks.append(HookName(number))
        except ValueError:
            hooks.append(number)
    return hooks


class Registry(HookRegistry):
    """Keeps loaded plugins by identifier and the hooks they registered."""

    def __init__(
        self,
        compatibility: CompatibilityPolicy = CompatibilityPolicy.LOOSE,
        verification: VerificationPolicy = VerificationPolicy.PASS_DOWN,
        acceptance: AcceptancePolicy = AcceptancePolicy.ACCEPT,
        termination: TerminationPolicy = TerminationPolicy.STOP,
        dev_mode: bool = False,
        client_factory: ClientFactory | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(verification, termination, logger)
        self.compatibility = compatibility
        self.acceptance = acceptance
        self.dev_mode = dev_mode
        self.client_factory = client_factory
        self._plugins = Pool(EMPTY_POOL_CAPACITY)

    def add(self, plugin: Plugin) -> bool:
        """Add ``plugin``; return True if one with the same id was already there."""
        try:
            _, loaded = self._plugins.get_or_put(plugin.id, plugin)
        except GatewayDError as err:
            self.logger.error("Failed to add plugin to registry: %s", err)
            return False
        return loaded

    def get(self, plugin_id: Identifier) -> Plugin | None:
        """Return the plugin with ``plugin_id``, or None."""
        plugin = self._plugins.get(plugin_id)
        return plugin if isinstance(plugin, Plugin) else None

    def list(self) -> list[Identifier]:
        """Return the identifiers of all plugins."""
        ids: list[Identifier] = []

        def collect(key: Any, _value: Any) -> bool:
            if isinstance(key, Identifier):
                ids.append(key)
            return True

        self._plugins.for_each(collect)
        return ids

    def __len__(self) -> int:
        return self._plugins.size()

    def exists(self, name: str, version: str, remote_url: str) -> bool:
        """Return True if a plugin with this name and URL has at least ``version``."""
        for plugin_id in self.list():
            if plugin_id.name != name or plugin_id.remote_url != remote_url:
                continue
            try:
                supplied = Version(version)
            except InvalidVersion as err:
                self.logger.error("Failed to parse supplied plugin version: %s", err)
                return False
            try:
                registered = Version(plugin_id.version)
            except InvalidVersion as err:
                self.logger.error("Failed to parse plugin version in registry: %s", err)
                return False
            if supplied <= registered:
                return True
            self.logger.debug(
                "Supplied plugin version is greater than the version in registry "
                "(name=%s, version=%s)",
                name,
                version,
            )
            return False
        return False

    def for_each(self, function: Callable[[Identifier, Plugin], Any]) -> None:
        """Call ``function(identifier, plugin)`` for every plugin."""

        def visit(key: Any, value: Any) -> bool:
            if isinstance(key, Identifier) and isinstance(value, Plugin):
                function(key, value)
            return True

        self._plugins.for_each(visit)

    def remove(self, plugin_id: Identifier) -> None:
        """Remove the plugin's hooks, then the plugin itself."""
        plugin = self.get(plugin_id)
        if plugin is not None:
            for chain in self.hooks().values():
                chain.pop(plugin.priority, None)
        self._plugins.remove(plugin_id)

    def shutdown(self) -> None:
        """Stop every plugin and remove it from the registry."""

        def stop(plugin_id: Identifier, plugin: Plugin) -> None:
            plugin.stop()
            self.remove(plugin_id)

        self.for_each(stop)

    def _decode_checksum(self, plugin: Plugin) -> bytes | None:
        if not plugin.id.checksum:
            self.logger.debug(
                "Checksum of plugin doesn't exist or is not set (name=%s)", plugin.id.name
            )
            return None
        try:
            checksum = binascii.unhexlify(plugin.id.checksum.encode("ascii"))
        except (binascii.Error, ValueError) as err:
            self.logger.debug("Failed to decode checksum (name=%s): %s", plugin.id.name, err)
            return None
        if len(checksum) != _SHA256_SIZE:
            self.logger.debug("Invalid checksum length (name=%s)", plugin.id.name)
            return None
        return checksum

    def _checksum_matches(self, plugin: Plugin, checksum: bytes) -> bool:
        digest = hashlib.sha256()
        try:
            with open(plugin.local_path, "rb") as binary:
                for chunk in iter(lambda: binary.read(65536), b""):
                    digest.update(chunk)
        except OSError as err:
            self.logger.debug("Failed to read plugin (name=%s): %s", plugin.id.name, err)
            return False
        if digest.digest() != checksum:
            self.logger.debug("Plugin checksum mismatch (name=%s)", plugin.id.name)
            return False
        return True

    def _requirements_met(self, plugin: Plugin) -> bool:
        if len(plugin.requires) > len(self):
            self.logger.debug(
                "The plugin has too many requirements, and not enough of them exist "
                "in the registry, so it won't work properly"
            )
        for req in plugin.requires:
            if self.exists(req.name, req.version, req.remote_url):
                continue
            self.logger.debug(
                "The plugin requirement is not met, so it won't work properly "
                "(name=%s, requirement=%s)",
                plugin.id.name,
                req.name,
            )
            if self.compatibility == CompatibilityPolicy.STRICT:
                self.logger.debug(
                    "Registry is in strict compatibility mode, so the plugin won't be "
                    "loaded (name=%s)",
                    plugin.id.name,
                )
                return False
            self.logger.debug(
                "Registry is in loose compatibility mode, so the plugin will be loaded "
                "anyway (name=%s, requirement=%s)",
                plugin.id.name,
                req.name,
            )
        return True

    def _decode_list(
        self, plugin: Plugin, metadata: Mapping[str, Any], key: str, decoder: Callable
    ) -> list:
        items = metadata.get(key)
        if not isinstance(items, (list, tuple)):
            self.logger.debug("Plugin has no %s (name=%s)", key, plugin.id.name)
            return []
        try:
            return decoder(items)
        except ValueError as err:
            self.logger.debug("Failed to decode plugin %s: %s", key, err)
            return []

    def _apply_metadata(self, plugin: Plugin, metadata: Mapping[str, Any]) -> None:
        ident = metadata.get("id")
        ident = ident if isinstance(ident, Mapping) else {}
        plugin.id = replace(
            plugin.id,
            remote_url=_string(ident.get("remoteUrl")),
            version=_string(ident.get("version")),
        )
        plugin.description = _string(metadata.get("description"))
        plugin.license = _string(metadata.get("license"))
        plugin.project_url = _string(metadata.get("projectUrl"))
        plugin.authors = self._decode_list(plugin, metadata, "authors", _decode_authors)
        plugin.hooks = self._decode_list(plugin, metadata, "hooks", _decode_hooks)

        plugin.config = {}
        config = metadata.get("config")
        if isinstance(config, Mapping):
            for key, value in config.items():
                if isinstance(value, str):
                    plugin.config[key] = value
                else:
                    self.logger.debug("Failed to decode plugin config (key=%s)", key)
        else:
            self.logger.debug("Plugin doesn't have any config (name=%s)", plugin.id.name)

    def load_plugins(
        self,
        plugins: Sequence[PluginConfig],
        start_timeout: float | timedelta | None = None,
    ) -> None:
        """Start, inspect and register every usable plugin in ``plugins``.

        A plugin's priority follows its position in ``plugins``. Plugins that
        are disabled, lack a path, fail the checksum check (outside dev mode),
        fail to start or do not answer are skipped.
        """
        for index, cfg in enumerate(plugins):
            self.logger.debug("Loading plugin (name=%s)", cfg.name)
            plugin = Plugin(
                id=Identifier(name=cfg.name, checksum=cfg.checksum),
                enabled=cfg.enabled,
                local_path=cfg.local_path,
                args=list(cfg.args),
                env=list(cfg.env),
            )

            if not plugin.enabled:
                self.logger.debug("Plugin is disabled (name=%s)", plugin.id.name)
                continue
            if not plugin.local_path:
                self.logger.debug(
                    "Local file of the plugin doesn't exist or is not set (name=%s)",
                    plugin.id.name,
                )
                continue

            if not self.dev_mode:
                checksum = self._decode_checksum(plugin)
                if checksum is None or not self._checksum_matches(plugin, checksum):
                    continue

            if self.client_factory is None:
                raise ValueError("the registry has no client factory to start plugins with")

            plugin.priority = PLUGIN_PRIORITY_START + index
            command = new_command(plugin.local_path, plugin.args, plugin.env)
            plugin.client = self.client_factory(plugin, command, start_timeout)

            try:
                plugin.start()
            except GatewayDError as err:
                self.logger.debug("Failed to start plugin (name=%s): %s", plugin.id.name, err)
                plugin.stop()
                continue

            try:
                service = plugin.dispense()
            except GatewayDError as err:
                self.logger.debug("Failed to dispense plugin (name=%s): %s", plugin.id.name, err)
                plugin.stop()
                continue

            try:
                metadata = service.get_plugin_config({})
            except Exception as err:
                self.logger.debug(
                    "Failed to get plugin metadata (name=%s): %s", plugin.id.name, err
                )
                continue
            if not isinstance(metadata, Mapping):
                self.logger.debug("Failed to get plugin metadata (name=%s)", plugin.id.name)
                continue

            plugin.requires = self._decode_list(
                plugin, metadata, "requires", _decode_requirements
            )
            if not self._requirements_met(plugin):
                plugin.stop()
                continue

            self._apply_metadata(plugin, metadata)
            self.add(plugin)
            self.logger.debug("Plugin metadata loaded (name=%s)", plugin.id.name)
            self.register_hooks(plugin.id)
            self.logger.info("Plugin is ready (name=%s)", plugin.id.name)

    def register_hooks(self, plugin_id: Identifier) -> None:
        """Register every hook that the plugin with ``plugin_id`` attaches to."""
        plugin = self.get(plugin_id)
        if plugin is None:
            raise KeyError(plugin_id)
        try:
            service = plugin.dispense()
        except GatewayDError as err:
            self.logger.debug("Failed to dispense plugin (name=%s): %s", plugin.id.name, err)
            return

        self.logger.info("Registering plugin hooks (name=%s)", plugin.id.name)
        for hook_name in plugin.hooks:
            if hook_name == HookName.UNSPECIFIED:
                self.logger.debug(
                    "Plugin hook is unspecified or invalid, so it won't work properly "
                    "(name=%s)",
                    plugin.id.name,
                )
                continue

            if isinstance(hook_name, HookName) and hook_name != HookName.ON_HOOK:
                method = getattr(service, hook_name.method_name, None)
                if method is None:
                    self.logger.debug(
                        "Plugin has no handler for hook (name=%s, hook=%s)",
                        plugin.id.name,
                        hook_label(hook_name),
                    )
                    continue
                self.logger.debug(
                    "Registering hook (hook=%s, priority=%s, name=%s)",
                    hook_label(hook_name),
                    plugin.priority,
                    plugin.id.name,
                )
                self.add_hook(hook_name, plugin.priority, method)
                continue

            if self.acceptance == AcceptancePolicy.REJECT:
                self.logger.warning(
                    "Unknown hook, skipping (hook=%s, priority=%s, name=%s)",
                    hook_label(hook_name),
                    plugin.priority,
                    plugin.id.name,
                )
                continue
            self.logger.debug(
                "Registering a custom hook (hook=%s, priority=%s, name=%s)",
                hook_label(hook_name),
                plugin.priority,
                plugin.id.name,
            )
            self.add_hook(hook_name, plugin.priority, service.on_hook)