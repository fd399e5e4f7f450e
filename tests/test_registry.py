import hashlib
import logging

import pytest

from gatewayd.config import (
    AcceptancePolicy,
    CompatibilityPolicy,
    TerminationPolicy,
    VerificationPolicy,
)
from gatewayd.hooks import HookName
from gatewayd.plugin import Identifier, Plugin
from gatewayd.registry import PluginConfig, Registry

URL = "github.com/remote/test"


class FakeService:
    def __init__(self, metadata):
        self.metadata = metadata

    def get_plugin_config(self, args):
        return self.metadata

    def on_hook(self, args):
        return args

    def on_new_logger(self, args):
        return args


class FakeRPC:
    def __init__(self, service):
        self.service = service

    def dispense(self, name):
        return self.service

    def ping(self):
        return None


class FakeClient:
    def __init__(self, service, fail_start=False):
        self.rpc = FakeRPC(service)
        self.fail_start = fail_start
        self.killed = False

    def start(self):
        if self.fail_start:
            raise RuntimeError("cannot start")
        return "127.0.0.1:12345"

    def kill(self):
        self.killed = True

    def client(self):
        return self.rpc


def metadata(hooks=(2.0,), requires=()):
    return {
        "id": {"name": "test", "version": "0.1.0", "remoteUrl": URL},
        "description": "a test plugin",
        "license": "Apache-2.0",
        "projectUrl": URL,
        "authors": ["Plugin Author"],
        "hooks": list(hooks),
        "config": {"key": "value", "number": 1.0},
        "requires": list(requires),
    }


class Factory:
    def __init__(self, meta=None, fail_start=False):
        self.service = FakeService(meta if meta is not None else metadata())
        self.fail_start = fail_start
        self.clients = []

    def __call__(self, plugin, command, start_timeout):
        client = FakeClient(self.service, self.fail_start)
        self.clients.append(client)
        return client


def make_registry(**kwargs):
    options = dict(
        compatibility=CompatibilityPolicy.LOOSE,
        verification=VerificationPolicy.PASS_DOWN,
        acceptance=AcceptancePolicy.ACCEPT,
        termination=TerminationPolicy.STOP,
        dev_mode=False,
        logger=logging.getLogger("test-registry"),
    )
    options.update(kwargs)
    return Registry(**options)


@pytest.fixture
def binary(tmp_path):
    path = tmp_path / "plugin-bin"
    path.write_bytes(b"plugin binary contents")
    return path


def test_plugin_registry():
    reg = make_registry()
    assert reg.list() == []
    ident = Identifier(name="test", version="1.0.0", remote_url=URL)
    impl = Plugin(id=ident)
    reg.add(impl)
    assert len(reg.list()) == 1
    assert reg.get(ident) is impl
    reg.remove(ident)
    assert reg.list() == []
    reg.shutdown()
    assert len(reg) == 0


def test_add_reports_existing():
    reg = make_registry()
    impl = Plugin(id=Identifier(name="test"))
    assert reg.add(impl) is False
    assert reg.add(impl) is True
    assert len(reg) == 1


def test_get_missing_returns_none():
    assert make_registry().get(Identifier(name="missing")) is None


def test_registry_add_hook():
    reg = make_registry()

    def hook(args):
        return args

    reg.add_hook(HookName.ON_NEW_LOGGER, 0, hook)
    assert reg.hooks()[HookName.ON_NEW_LOGGER][0] is hook


def test_registry_run_ignore():
    reg = make_registry(verification=VerificationPolicy.IGNORE)
    reg.add_hook(HookName.ON_NEW_LOGGER, 0, lambda args: args)
    assert reg.run({}, HookName.ON_NEW_LOGGER) == {}


def test_registry_run_pass_down():
    reg = make_registry(verification=VerificationPolicy.PASS_DOWN)
    reg.add_hook(HookName.ON_NEW_LOGGER, 0, lambda args: args)
    reg.add_hook(HookName.ON_NEW_LOGGER, 1, lambda args: {"test": "test"})
    assert reg.run({"test": "test"}, HookName.ON_NEW_LOGGER) == {"test": "test"}


def test_registry_run_pass_down_2():
    reg = make_registry(verification=VerificationPolicy.PASS_DOWN)

    def first(args):
        args["test1"] = "test1"
        return args

    def second(args):
        args["test2"] = "test2"
        return args

    reg.add_hook(HookName.ON_NEW_LOGGER, 0, first)
    reg.add_hook(HookName.ON_NEW_LOGGER, 1, second)
    result = reg.run({"test": "test"}, HookName.ON_NEW_LOGGER)
    assert result == {"test": "test", "test1": "test1", "test2": "test2"}


def test_registry_run_abort():
    reg = make_registry(verification=VerificationPolicy.ABORT)
    reg.add_hook(HookName.ON_NEW_LOGGER, 0, lambda args: args)
    reg.add_hook(HookName.ON_NEW_LOGGER, 1, lambda args: {"test": "test"})
    assert reg.run({}, HookName.ON_NEW_LOGGER) == {}


def test_registry_run_remove():
    reg = make_registry(verification=VerificationPolicy.REMOVE)
    reg.add_hook(HookName.ON_NEW_LOGGER, 0, lambda args: args)
    reg.add_hook(HookName.ON_NEW_LOGGER, 1, lambda args: {"test": "test"})
    assert reg.run({}, HookName.ON_NEW_LOGGER) == {}
    assert len(reg.hooks()[HookName.ON_NEW_LOGGER]) == 1


@pytest.mark.parametrize(
    "name, version, remote_url, expected",
    [
        ("test", "0.9.0", URL, True),
        ("test", "1.0.0", URL, True),
        ("test", "1.1.0", URL, False),
        ("test", "1.0.0", "github.com/other/test", False),
        ("other", "1.0.0", URL, False),
        ("test", "not a version", URL, False),
    ],
)
def test_exists(name, version, remote_url, expected):
    reg = make_registry()
    reg.add(Plugin(id=Identifier(name="test", version="1.0.0", remote_url=URL)))
    assert reg.exists(name, version, remote_url) is expected


def test_exists_with_bad_registered_version():
    reg = make_registry()
    reg.add(Plugin(id=Identifier(name="test", version="garbage", remote_url=URL)))
    assert reg.exists("test", "1.0.0", URL) is False


def test_for_each_visits_all():
    reg = make_registry()
    reg.add(Plugin(id=Identifier(name="a")))
    reg.add(Plugin(id=Identifier(name="b")))
    seen = []
    reg.for_each(lambda ident, plugin: seen.append((ident.name, plugin.id.name)))
    assert sorted(seen) == [("a", "a"), ("b", "b")]


def test_remove_drops_plugin_hooks():
    reg = make_registry()
    ident = Identifier(name="test")
    reg.add(Plugin(id=ident, priority=1000))
    reg.add_hook(HookName.ON_NEW_LOGGER, 1000, lambda args: args)
    reg.add_hook(HookName.ON_NEW_LOGGER, 1001, lambda args: args)
    reg.remove(ident)
    assert list(reg.hooks()[HookName.ON_NEW_LOGGER]) == [1001]
    assert len(reg) == 0


def test_shutdown_stops_plugins():
    reg = make_registry()
    client = FakeClient(FakeService(metadata()))
    reg.add(Plugin(id=Identifier(name="test"), client=client))
    reg.shutdown()
    assert client.killed is True
    assert reg.list() == []


def test_load_plugins_dev_mode(binary):
    factory = Factory(meta=metadata(hooks=(2.0, 1000.0)))
    reg = make_registry(dev_mode=True, client_factory=factory)
    reg.load_plugins([PluginConfig(name="test", enabled=True, local_path=str(binary))])

    ids = reg.list()
    assert len(ids) == 1
    plugin = reg.get(ids[0])
    assert plugin.id.version == "0.1.0"
    assert plugin.id.remote_url == URL
    assert plugin.priority == 1000
    assert plugin.license == "Apache-2.0"
    assert plugin.authors == ["Plugin Author"]
    assert plugin.config == {"key": "value"}
    assert plugin.hooks == [HookName.ON_NEW_LOGGER, HookName.ON_HOOK]
    service = factory.service
    assert reg.hooks()[HookName.ON_NEW_LOGGER][1000] == service.on_new_logger
    assert reg.hooks()[HookName.ON_HOOK][1000] == service.on_hook
    assert reg.run({"a": "b"}, HookName.ON_NEW_LOGGER) == {"a": "b"}


def test_load_plugins_reject_custom_hooks(binary):
    factory = Factory(meta=metadata(hooks=(2.0, 1000.0, 5000.0)))
    reg = make_registry(
        dev_mode=True, client_factory=factory, acceptance=AcceptancePolicy.REJECT
    )
    reg.load_plugins([PluginConfig(name="test", enabled=True, local_path=str(binary))])
    assert list(reg.hooks()) == [HookName.ON_NEW_LOGGER]


def test_load_plugins_priority_follows_position(binary):
    factory = Factory()
    reg = make_registry(dev_mode=True, client_factory=factory)
    reg.load_plugins(
        [
            PluginConfig(name="disabled", enabled=False, local_path=str(binary)),
            PluginConfig(name="test", enabled=True, local_path=str(binary)),
        ]
    )
    assert [reg.get(i).priority for i in reg.list()] == [1001]


def test_load_plugins_skips_disabled_and_pathless(binary):
    factory = Factory()
    reg = make_registry(dev_mode=True, client_factory=factory)
    reg.load_plugins(
        [
            PluginConfig(name="off", enabled=False, local_path=str(binary)),
            PluginConfig(name="nopath", enabled=True, local_path=""),
        ]
    )
    assert len(reg) == 0
    assert factory.clients == []


@pytest.mark.parametrize("checksum", ["", "zz", "abcd", hashlib.sha256(b"other").hexdigest()])
def test_load_plugins_rejects_bad_checksum(binary, checksum):
    factory = Factory()
    reg = make_registry(client_factory=factory)
    reg.load_plugins(
        [PluginConfig(name="test", enabled=True, local_path=str(binary), checksum=checksum)]
    )
    assert len(reg) == 0
    assert factory.clients == []


def test_load_plugins_accepts_matching_checksum(binary):
    factory = Factory()
    reg = make_registry(client_factory=factory)
    checksum = hashlib.sha256(binary.read_bytes()).hexdigest()
    reg.load_plugins(
        [PluginConfig(name="test", enabled=True, local_path=str(binary), checksum=checksum)]
    )
    assert len(reg) == 1
    assert reg.list()[0].checksum == checksum


def test_load_plugins_start_failure_kills_client(binary):
    factory = Factory(fail_start=True)
    reg = make_registry(dev_mode=True, client_factory=factory)
    reg.load_plugins([PluginConfig(name="test", enabled=True, local_path=str(binary))])
    assert len(reg) == 0
    assert factory.clients[0].killed is True


def test_load_plugins_without_factory_raises(binary):
    reg = make_registry(dev_mode=True)
    with pytest.raises(ValueError):
        reg.load_plugins([PluginConfig(name="test", enabled=True, local_path=str(binary))])


def test_load_plugins_strict_unmet_requirement(binary):
    requires = [{"name": "dep", "version": "1.0.0", "remoteUrl": URL}]
    factory = Factory(meta=metadata(requires=requires))
    reg = make_registry(
        dev_mode=True, client_factory=factory, compatibility=CompatibilityPolicy.STRICT
    )
    reg.load_plugins([PluginConfig(name="test", enabled=True, local_path=str(binary))])
    assert len(reg) == 0
    assert factory.clients[0].killed is True


def test_load_plugins_loose_unmet_requirement(binary):
    requires = [{"name": "dep", "version": "1.0.0", "remoteUrl": URL}]
    factory = Factory(meta=metadata(requires=requires))
    reg = make_registry(dev_mode=True, client_factory=factory)
    reg.load_plugins([PluginConfig(name="test", enabled=True, local_path=str(binary))])
    plugin = reg.get(reg.list()[0])
    assert [req.name for req in plugin.requires] == ["dep"]
    assert plugin.requires[0].remote_url == URL


def test_register_hooks_unknown_plugin_raises():
    with pytest.raises(KeyError):
        make_registry().register_hooks(Identifier(name="missing"))