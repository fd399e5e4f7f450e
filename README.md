# gatewayd

The core of a plugin-driven database gateway. It provides a registry that
starts plugins as separate processes, chains their hooks by priority, and a
small thread-safe keyed pool that the registry keeps its plugins in.

## Installation

```
pip install gatewayd
```

With the test dependencies:

```
pip install "gatewayd[test]"
```

## Modules

- `gatewayd.pool.Pool`: a keyed pool with an optional capacity (zero or
  less means unlimited). It offers `put`, `get`, `get_or_put`, `pop`,
  `remove`, `for_each`, `size`, `clear`, `capacity`, `len(pool)` and
  `key in pool`. `put` and `get_or_put` raise
  `gatewayd.errors.GatewayDError` when the pool is full
  (`ErrCode.POOL_EXHAUSTED`) or the value is `None`
  (`ErrCode.NIL_POINTER`). `for_each` takes a snapshot first and stops as
  soon as the callback returns a false value.
- `gatewayd.errors`: `ErrCode` and `GatewayDError`. `GatewayDError.wrap(err)`
  returns a new error of the same kind that carries `err` as its cause.
- `gatewayd.config`: the policies `CompatibilityPolicy` (`STRICT`,
  `LOOSE`), `VerificationPolicy` (`PASS_DOWN`, `IGNORE`, `ABORT`, `REMOVE`),
  `AcceptancePolicy` (`ACCEPT`, `REJECT`) and `TerminationPolicy` (`STOP`,
  `CONTINUE`). Each can be looked up from its string value without regard to
  case, for example `VerificationPolicy("PassDown")`.
- `gatewayd.hooks`: `HookName` and `HookRegistry`. `add_hook` registers a
  callable under a hook name (a `HookName` or any integer, for custom hooks)
  and a priority. A hook at a priority that is already taken replaces the
  old one. `run(args, hook_name)` calls the hooks in ascending priority. The
  first hook gets `args` and each later hook gets the previous result. The
  arguments are first converted to what a protobuf `Struct` can hold:
  durations become strings, integers become floats and bytes become base64
  text. Other types raise `GatewayDError` (`ErrCode.CAST_FAILED`). When a
  hook's result differs from the arguments, the `VerificationPolicy` decides
  what happens:
  - `PASS_DOWN`: the result is passed on.
  - `IGNORE`: the result is dropped.
  - `ABORT`: the chain stops and the last good value is returned.
  - `REMOVE`: the result is dropped and the hook is unregistered after the
    run.

  With `TerminationPolicy.STOP`, a result holding `"terminate": True` ends
  the chain early. A hook that raises is logged and treated as if it had
  returned an empty result.
- `gatewayd.plugin`:
  - `Identifier` and `Requirement` are frozen dataclasses.
  - `Plugin` holds a plugin's metadata and its `client`, which is any object
    following the `PluginClient` protocol: `start()`, `kill()` and
    `client()`.
  - `Plugin.start`, `stop`, `dispense` and `ping` wrap client failures in
    `GatewayDError`.
- `gatewayd.registry`: `PluginConfig` and `Registry`. `Registry` is a
  `HookRegistry` that also holds plugins keyed by `Identifier`, with `add`,
  `get`, `list`, `len(registry)`, `exists`, `for_each`, `remove` and
  `shutdown`.
  - `exists(name, version, remote_url)` is true when a plugin with that name
    and URL is registered at the given version or a later one. Versions are
    compared with `packaging.version.Version`.
  - `load_plugins(plugins, start_timeout)` walks the `PluginConfig` entries
    in order. Each plugin's priority is 1000 plus its position in the list.
    It skips plugins that are disabled or have no path. Outside development
    mode it also skips plugins whose SHA-256 checksum is missing or
    malformed, or does not match the file on disk.
  - For each remaining plugin it starts the process through the
    `client_factory`, fetches its metadata with `get_plugin_config`, checks
    its requirements against the `CompatibilityPolicy`, and registers the
    plugin.
  - `register_hooks` then attaches each hook the plugin names to the
    matching method of its service. Unknown hooks go to `on_hook` under
    `AcceptancePolicy.ACCEPT` and are skipped under `REJECT`.
- `gatewayd.plugin_utils`:
  - `verify(params, return_val)` compares two mappings, treating `None` and
    empty containers as equal.
  - `format_duration` renders a `timedelta` or a count of nanoseconds, for
    example `"123ns"` or `"1h2m3.5s"`.
  - `cast_to_primitive_types` returns a copy of a mapping with durations
    turned into such strings.
  - `new_command(cmd, args, env)` returns a callable that starts the
    process with `subprocess.Popen`.
- `gatewayd.usagereport`: the `UsageReportRequest` and `PluginInfo`
  dataclasses. `validate()` raises the first `ValidationError`.
  `validate_all()` raises a `MultiValidationError` holding every violation.

## Example

```python
from gatewayd.config import TerminationPolicy, VerificationPolicy
from gatewayd.hooks import HookName, HookRegistry

hooks = HookRegistry(VerificationPolicy.PASS_DOWN, TerminationPolicy.STOP, None)

def add_greeting(args):
    return {**args, "greeting": "hello"}

hooks.add_hook(HookName.ON_NEW_LOGGER, 0, add_greeting)
print(hooks.run({"name": "world"}, HookName.ON_NEW_LOGGER))
# {'name': 'world', 'greeting': 'hello'}
```

```python
from gatewayd.pool import Pool

pool = Pool(1)
pool.put("client1.ID", "client1")
assert pool.get("client1.ID") == "client1"
assert len(pool) == 1
```

## What this package does not do

- It has no command-line program and no server. It is a library only.
- It contains no RPC transport or handshake for talking to plugin
  processes. `Registry.load_plugins` needs a `client_factory` that builds a
  `PluginClient` from the plugin, the start command and the timeout. Without
  one it raises `ValueError` once it reaches a plugin it would start.
- It does not send usage reports. `gatewayd.usagereport` only defines and
  validates the messages.
- It does no tracing or metrics export. The registry only logs through the
  standard `logging` module.

## Running the tests

```
pytest
```