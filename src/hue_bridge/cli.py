"""Command-line client for the Hue bridge."""

from __future__ import annotations

import argparse
import json
import os
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, List, Mapping, Optional

import httpx
import yaml
from rich.console import Console
from rich.table import Table

from .client import HueClient
from .config import CONFIG_ENV_PREFIX, Config, load_config
from .errors import HueError
from .logging import configure_logging
from .metrics import write_metrics
from .models import Bridge, DecodeFailure, Status, TransportFailure, connect
from .protocol import LightUpdate

ENV_PREFIX = CONFIG_ENV_PREFIX


class CliError(Exception):
    """Raised when the CLI encounters an expected error condition."""


@dataclass(frozen=True)
class ClientConfig:
    """Settings for one CLI invocation."""

    config: Config
    output: str


CommandFunc = Callable[[ClientConfig, HueClient, Bridge, argparse.Namespace], None]


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(f"{ENV_PREFIX}{name}", default)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hue-bridge",
        description=(
            "CLI for a Hue bridge. Uses HUE_BRIDGE_* env vars for defaults and prints "
            "JSON (default), YAML or tables. Examples: `hue-bridge pair`, "
            "`hue-bridge lights color 3 --hsb 10000 254 200`, "
            "`hue-bridge stream send --group 5 --light 3=65535,0,0`."
        ),
    )
    parser.add_argument(
        "--config",
        type=Path,
        help=f"Path to a TOML config file (env: {ENV_PREFIX}CONFIG).",
    )
    parser.add_argument(
        "--host",
        help=f"IP address or hostname of the bridge (env: {ENV_PREFIX}HOST).",
    )
    parser.add_argument(
        "--username",
        help=f"Username issued by the bridge during pairing (env: {ENV_PREFIX}USERNAME).",
    )
    parser.add_argument(
        "--client-key",
        help=f"Hex client key issued during pairing (env: {ENV_PREFIX}CLIENT_KEY).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help=f"Seconds to wait for HTTP requests (env: {ENV_PREFIX}HTTP_TIMEOUT).",
    )
    parser.add_argument(
        "--stream-port",
        type=int,
        help=f"UDP port of the entertainment streaming endpoint (env: {ENV_PREFIX}STREAM_PORT).",
    )
    parser.add_argument(
        "--stream-timeout",
        type=float,
        help=(
            "Seconds to wait for the streaming handshake; the bridge stays silent when "
            f"streaming is not active (env: {ENV_PREFIX}STREAM_CONNECT_TIMEOUT)."
        ),
    )
    parser.add_argument(
        "--output",
        choices=["json", "yaml", "table"],
        default=_env("OUTPUT", "json"),
        help=f"Output format for responses (env: {ENV_PREFIX}OUTPUT).",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help=f"Log verbosity (env: {ENV_PREFIX}LOG_LEVEL).",
    )
    parser.add_argument(
        "--log-format",
        choices=["plain", "json"],
        help=f"Log output format on stderr (env: {ENV_PREFIX}LOG_FORMAT).",
    )
    parser.add_argument(
        "--metrics-file",
        type=Path,
        default=_env("METRICS_FILE"),
        help=(
            "Write Prometheus metrics for this run to a textfile-collector file "
            f"(env: {ENV_PREFIX}METRICS_FILE)."
        ),
    )

    subparsers = parser.add_subparsers(dest="command", required=False)

    pair = subparsers.add_parser(
        "pair",
        help="Request a username and client key (press the link button first)",
        description=(
            "POST /api with generateclientkey=true. Prints the new username and client key; "
            "store them, they are not persisted."
        ),
    )
    pair.add_argument("--app", default="hue_bridge", help="Application name for the devicetype.")
    pair.add_argument("--device", default="cli", help="Device name for the devicetype.")
    pair.set_defaults(func=_cmd_pair)

    info = subparsers.add_parser("info", help="Show the full bridge state (GET /api/<username>)")
    info.set_defaults(func=_cmd_info)

    _add_light_commands(subparsers)
    _add_group_commands(subparsers)
    _add_scene_commands(subparsers)
    _add_stream_commands(subparsers)
    return parser


def _add_state_arguments(parser: argparse.ArgumentParser, target: str) -> None:
    parser.add_argument(target, help=f"{target.capitalize()} identifier")
    parser.add_argument(
        "--transition",
        type=int,
        help="Transition time in milliseconds (sent in 100 ms units, remainder dropped).",
    )


def _add_color_arguments(parser: argparse.ArgumentParser) -> None:
    color = parser.add_mutually_exclusive_group(required=True)
    color.add_argument(
        "--hsb",
        nargs=3,
        type=int,
        metavar=("HUE", "SAT", "BRI"),
        help="Hue (0-65535), saturation (0-255) and brightness (0-255).",
    )
    color.add_argument(
        "--xy",
        nargs=2,
        type=float,
        metavar=("X", "Y"),
        help="CIE xy coordinates (0-0.8 each).",
    )


def _add_light_commands(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    lights = subparsers.add_parser("lights", help="Light queries and commands")
    light_sub = lights.add_subparsers(dest="light_command", required=True)

    list_cmd = light_sub.add_parser("list", help="List lights (GET /lights)")
    list_cmd.set_defaults(func=_cmd_lights_list)

    get = light_sub.add_parser("get", help="Show one light (GET /lights/<id>)")
    get.add_argument("light", help="Light identifier")
    get.set_defaults(func=_cmd_lights_get)

    on = light_sub.add_parser("on", help="Turn a light on")
    _add_state_arguments(on, "light")
    on.set_defaults(func=_cmd_lights_on)

    off = light_sub.add_parser("off", help="Turn a light off")
    _add_state_arguments(off, "light")
    off.set_defaults(func=_cmd_lights_off)

    color = light_sub.add_parser("color", help="Set a light's color")
    _add_state_arguments(color, "light")
    _add_color_arguments(color)
    color.set_defaults(func=_cmd_lights_color)

    brightness = light_sub.add_parser("brightness", help="Set a light's brightness (0-1)")
    _add_state_arguments(brightness, "light")
    brightness.add_argument("value", type=float, help="Brightness fraction between 0 and 1.")
    brightness.set_defaults(func=_cmd_lights_brightness)

    state = light_sub.add_parser("state", help="Apply a raw JSON state patch to a light")
    state.add_argument("light", help="Light identifier")
    state.add_argument("state", help='JSON object, e.g. \'{"on": true, "ct": 300}\'')
    state.set_defaults(func=_cmd_lights_state)


def _add_group_commands(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    groups = subparsers.add_parser("groups", help="Group queries and commands")
    group_sub = groups.add_subparsers(dest="group_command", required=True)

    list_cmd = group_sub.add_parser("list", help="List groups (GET /groups)")
    list_cmd.set_defaults(func=_cmd_groups_list)

    get = group_sub.add_parser("get", help="Show one group (GET /groups/<id>)")
    get.add_argument("group", help="Group identifier")
    get.set_defaults(func=_cmd_groups_get)

    on = group_sub.add_parser("on", help="Turn a group on")
    _add_state_arguments(on, "group")
    on.set_defaults(func=_cmd_groups_on)

    off = group_sub.add_parser("off", help="Turn a group off")
    _add_state_arguments(off, "group")
    off.set_defaults(func=_cmd_groups_off)

    color = group_sub.add_parser("color", help="Set a group's color")
    _add_state_arguments(color, "group")
    _add_color_arguments(color)
    color.set_defaults(func=_cmd_groups_color)

    brightness = group_sub.add_parser("brightness", help="Set a group's brightness (0-1)")
    _add_state_arguments(brightness, "group")
    brightness.add_argument("value", type=float, help="Brightness fraction between 0 and 1.")
    brightness.set_defaults(func=_cmd_groups_brightness)

    state = group_sub.add_parser("state", help="Apply a raw JSON action patch to a group")
    state.add_argument("group", help="Group identifier")
    state.add_argument("state", help="JSON object")
    state.set_defaults(func=_cmd_groups_state)

    streaming = group_sub.add_parser(
        "streaming", help="Activate or deactivate entertainment streaming for a group"
    )
    streaming.add_argument("group", help="Entertainment group identifier")
    toggle = streaming.add_mutually_exclusive_group(required=True)
    toggle.add_argument("--on", dest="active", action="store_true")
    toggle.add_argument("--off", dest="active", action="store_false")
    streaming.set_defaults(func=_cmd_groups_streaming)


def _add_scene_commands(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    scenes = subparsers.add_parser("scenes", help="Scene queries")
    scene_sub = scenes.add_subparsers(dest="scene_command", required=True)

    list_cmd = scene_sub.add_parser("list", help="List scenes (GET /scenes)")
    list_cmd.set_defaults(func=_cmd_scenes_list)

    get = scene_sub.add_parser("get", help="Show one scene (GET /scenes/<id>)")
    get.add_argument("scene", help="Scene identifier")
    get.set_defaults(func=_cmd_scenes_get)


def _add_stream_commands(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    stream = subparsers.add_parser("stream", help="Entertainment streaming")
    stream_sub = stream.add_subparsers(dest="stream_command", required=True)

    send = stream_sub.add_parser(
        "send",
        help="Open a DTLS stream, push color frames, then close it",
        description=(
            "Requires username and client key. Streaming must be active for an "
            "entertainment group (use --group to toggle it around the send)."
        ),
    )
    send.add_argument(
        "--light",
        action="append",
        dest="lights",
        required=True,
        help="Light update as <id>=<r>,<g>,<b> with 16 bit channels; repeatable.",
    )
    send.add_argument("--group", help="Entertainment group to activate before and deactivate after.")
    send.add_argument("--repeat", type=int, default=1, help="Number of frames to send.")
    send.add_argument("--interval", type=float, default=0.04, help="Seconds between frames.")
    send.set_defaults(func=_cmd_stream_send)


def _load_config(args: argparse.Namespace) -> ClientConfig:
    overrides = {
        "host": args.host,
        "username": args.username,
        "client_key": args.client_key,
        "http_timeout": args.timeout,
        "stream_port": args.stream_port,
        "stream_connect_timeout": args.stream_timeout,
        "log_level": args.log_level,
        "log_format": args.log_format,
    }
    try:
        config = load_config(overrides, args.config)
    except (OSError, ValueError) as exc:
        raise CliError(f"Failed to load configuration: {exc}") from exc
    if not config.host:
        raise CliError(f"Bridge host is required (--host, {ENV_PREFIX}HOST or the config file).")
    return ClientConfig(config=config, output=args.output or "json")


def _print_output(data: Any, output: str) -> None:
    if output == "yaml":
        yaml.safe_dump(data, sys.stdout, sort_keys=False)
    elif output == "table":
        _print_table(data, Console())
    else:
        json.dump(data, sys.stdout, indent=2)
        sys.stdout.write("\n")


def _print_table(data: Any, console: Console) -> None:
    if not data:
        console.print("[dim]No data[/]")
        return

    # Resource listings are keyed by identifier.
    if isinstance(data, dict) and all(isinstance(v, dict) for v in data.values()):
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("id", style="cyan")
        table.add_column("name", style="cyan")
        table.add_column("type", style="yellow")
        for key, item in data.items():
            table.add_row(str(key), str(item.get("name", "")), str(item.get("type", "")))
        console.print(table)
    elif isinstance(data, dict):
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="yellow")
        for key, value in data.items():
            if isinstance(value, (dict, list)):
                value_str = json.dumps(value, indent=2)
            else:
                value_str = str(value)
            table.add_row(str(key), value_str)
        console.print(table)
    else:
        console.print_json(data=data)


def _describe_error(error: Any) -> Any:
    if isinstance(error, TransportFailure):
        return {"transport": error.reason}
    if isinstance(error, DecodeFailure):
        return {"decode": error.reason}
    return error


def _session_output(bridge: Bridge, include_credentials: bool = False) -> Mapping[str, Any]:
    data = {
        "host": bridge.host,
        "status": bridge.status.value if bridge.status else None,
        "error": _describe_error(bridge.error),
    }
    if include_credentials:
        data["username"] = bridge.username
        data["clientkey"] = bridge.client_key
    return data


def _finish(config: ClientConfig, bridge: Bridge, include_credentials: bool = False) -> None:
    _print_output(_session_output(bridge, include_credentials), config.output)
    if bridge.status is Status.ERROR:
        raise CliError(f"Bridge reported an error: {_describe_error(bridge.error)}")


def _parse_json_arg(value: str) -> Any:
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as exc:
        raise CliError("Failed to parse JSON argument") from exc
    if not isinstance(parsed, dict):
        raise CliError("State must be a JSON object")
    return parsed


def _color_arg(args: argparse.Namespace) -> tuple:
    if args.hsb is not None:
        return tuple(args.hsb)
    return tuple(args.xy)


def _parse_light_update(value: str) -> LightUpdate:
    try:
        light, channels = value.split("=", 1)
        parts = [int(part) for part in channels.split(",")]
        light_id = int(light)
    except ValueError as exc:
        raise CliError(f"Light update must look like 3=65535,0,0; got {value!r}") from exc
    if len(parts) != 3:
        raise CliError(f"Light update needs exactly three channels; got {value!r}")
    for number in (light_id, *parts):
        if number < 0 or number > 0xFFFF:
            raise CliError(f"Light ids and channels must be between 0 and 65535; got {value!r}")
    return light_id, (parts[0], parts[1], parts[2])


def _cmd_pair(config: ClientConfig, client: HueClient, bridge: Bridge, args: argparse.Namespace) -> None:
    bridge = client.authorize(bridge, (args.app, args.device))
    _finish(config, bridge, include_credentials=True)


def _cmd_info(config: ClientConfig, client: HueClient, bridge: Bridge, args: argparse.Namespace) -> None:
    _print_output(client.info(bridge), config.output)


def _cmd_lights_list(config: ClientConfig, client: HueClient, bridge: Bridge, args: argparse.Namespace) -> None:
    _print_output(client.lights(bridge), config.output)


def _cmd_lights_get(config: ClientConfig, client: HueClient, bridge: Bridge, args: argparse.Namespace) -> None:
    _print_output(client.light_info(bridge, args.light), config.output)


def _cmd_lights_on(config: ClientConfig, client: HueClient, bridge: Bridge, args: argparse.Namespace) -> None:
    _finish(config, client.turn_on(bridge, args.light, args.transition))


def _cmd_lights_off(config: ClientConfig, client: HueClient, bridge: Bridge, args: argparse.Namespace) -> None:
    _finish(config, client.turn_off(bridge, args.light, args.transition))


def _cmd_lights_color(config: ClientConfig, client: HueClient, bridge: Bridge, args: argparse.Namespace) -> None:
    _finish(config, client.set_color(bridge, args.light, _color_arg(args), args.transition))


def _cmd_lights_brightness(
    config: ClientConfig, client: HueClient, bridge: Bridge, args: argparse.Namespace
) -> None:
    _finish(config, client.set_brightness(bridge, args.light, args.value, args.transition))


def _cmd_lights_state(config: ClientConfig, client: HueClient, bridge: Bridge, args: argparse.Namespace) -> None:
    _finish(config, client.set_state(bridge, args.light, _parse_json_arg(args.state)))


def _cmd_groups_list(config: ClientConfig, client: HueClient, bridge: Bridge, args: argparse.Namespace) -> None:
    _print_output(client.groups(bridge), config.output)


def _cmd_groups_get(config: ClientConfig, client: HueClient, bridge: Bridge, args: argparse.Namespace) -> None:
    _print_output(client.group_info(bridge, args.group), config.output)


def _cmd_groups_on(config: ClientConfig, client: HueClient, bridge: Bridge, args: argparse.Namespace) -> None:
    _finish(config, client.turn_group_on(bridge, args.group, args.transition))


def _cmd_groups_off(config: ClientConfig, client: HueClient, bridge: Bridge, args: argparse.Namespace) -> None:
    _finish(config, client.turn_group_off(bridge, args.group, args.transition))


def _cmd_groups_color(config: ClientConfig, client: HueClient, bridge: Bridge, args: argparse.Namespace) -> None:
    _finish(config, client.set_group_color(bridge, args.group, _color_arg(args), args.transition))


def _cmd_groups_brightness(
    config: ClientConfig, client: HueClient, bridge: Bridge, args: argparse.Namespace
) -> None:
    _finish(config, client.set_group_brightness(bridge, args.group, args.value, args.transition))


def _cmd_groups_state(config: ClientConfig, client: HueClient, bridge: Bridge, args: argparse.Namespace) -> None:
    _finish(config, client.set_group_state(bridge, args.group, _parse_json_arg(args.state)))


def _cmd_groups_streaming(
    config: ClientConfig, client: HueClient, bridge: Bridge, args: argparse.Namespace
) -> None:
    _finish(config, client.set_group_to_streaming(bridge, args.group, args.active))


def _cmd_scenes_list(config: ClientConfig, client: HueClient, bridge: Bridge, args: argparse.Namespace) -> None:
    _print_output(client.scenes(bridge), config.output)


def _cmd_scenes_get(config: ClientConfig, client: HueClient, bridge: Bridge, args: argparse.Namespace) -> None:
    _print_output(client.scene_info(bridge, args.scene), config.output)


def _cmd_stream_send(config: ClientConfig, client: HueClient, bridge: Bridge, args: argparse.Namespace) -> None:
    if args.repeat < 1:
        raise CliError("Repeat must be at least 1.")
    updates: List[LightUpdate] = [_parse_light_update(value) for value in args.lights]

    if args.group is not None:
        bridge = client.set_group_to_streaming(bridge, args.group, True)
        if bridge.status is Status.ERROR:
            _finish(config, bridge)

    try:
        bridge = client.open_streaming(bridge)
        try:
            for index in range(args.repeat):
                if index:
                    time.sleep(args.interval)
                bridge = client.stream_color(bridge, updates)
        finally:
            bridge = client.close_streaming(bridge)
    finally:
        if args.group is not None:
            bridge = client.set_group_to_streaming(bridge, args.group, False)

    _print_output({"host": bridge.host, "frames": args.repeat, "lights": len(updates)}, config.output)


def _write_metrics(path: Path) -> None:
    try:
        write_metrics(path)
    except OSError as exc:
        sys.stderr.write(f"Failed to write metrics to {path}: {exc}\n")


def main(argv: Optional[Iterable[str]] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(args=argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        config = _load_config(args)
        configure_logging(config.config)
        bridge = connect(config.config.host, config.config.username, config.config.client_key)
        with HueClient(config.config) as client:
            func: CommandFunc = args.func
            try:
                func(config, client, bridge, args)
            finally:
                if args.metrics_file is not None:
                    _write_metrics(args.metrics_file)
    except CliError as exc:  # pragma: no cover - CLI feedback path
        sys.stderr.write(f"Error: {exc}\n")
        sys.exit(1)
    except HueError as exc:  # pragma: no cover - CLI feedback path
        sys.stderr.write(f"Error: {exc}\n")
        sys.exit(1)
    except httpx.RequestError as exc:  # pragma: no cover - CLI feedback path
        sys.stderr.write(f"HTTP request failed: {exc}\n")
        sys.exit(1)


if __name__ == "__main__":
    main()
