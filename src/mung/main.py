from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Any, Callable

from . import __version__
from .config import AppConfig, load_config
from .filters import AlertFilter
from .lifecycle import Lifecycle, build_lifecycle
from .models import Alert, format_rfc3339, utc_now
from .shell import resolve_action_context


logger = logging.getLogger("mung")

Output = Callable[[str], None]


def _add_filter_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--tag", dest="tags", action="append", default=[], help="Filter by tag (repeatable, OR match)")
    p.add_argument("--source", dest="sources", action="append", default=[], help="Filter by source (repeatable, OR match)")
    p.add_argument("--session", dest="sessions", action="append", default=[], help="Filter by session (repeatable, OR match)")
    p.add_argument("--kind", dest="kinds", action="append", default=[], help="Filter by kind (repeatable, OR match)")
    p.add_argument(
        "--dedupe-key",
        dest="dedupe_keys",
        action="append",
        default=[],
        help="Filter by dedupe key (repeatable, OR match)",
    )


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="mung",
        description="File-backed pending alerts with desktop/webhook notifications",
        epilog="State directory: $MUNG_DIR (default: ~/.local/share/mung)",
    )
    p.add_argument("--config", default=None, help="Path to JSON config file. Defaults to env MUNG_CONFIG")
    p.add_argument(
        "--log-level",
        default=None,
        help="Log level (DEBUG/INFO/WARNING/ERROR). Defaults to env MUNG_LOG_LEVEL or ERROR",
    )
    sub = p.add_subparsers(dest="command", metavar="<command>")

    add = sub.add_parser("add", help="Create alert and send notification")
    add.add_argument("--title", required=True, help="Alert title")
    add.add_argument("--message", required=True, help="Alert message")
    add.add_argument("--on-click", default=None, help="Command to run when the alert is dismissed with --run")
    add.add_argument("--icon", default=None, help="Icon (emoji, icon name, or image path)")
    add.add_argument("--tag", dest="tags", action="append", default=[], help="Custom label (repeatable)")
    add.add_argument("--source", default=None, help="Alert source (e.g. ci, agent)")
    add.add_argument("--session", default=None, help="Alert session ID")
    add.add_argument("--kind", default=None, help="Alert kind (e.g. update, action)")
    add.add_argument("--dedupe-key", default=None, help="Replace previous matching alert before add")
    add.add_argument("--sound", default=None, help="Notification sound")

    done = sub.add_parser("done", help="Dismiss alert by ID")
    done.add_argument("id", help="Alert ID")
    done.add_argument("--run", action="store_true", help="Execute the alert's on_click command")

    ls = sub.add_parser("list", help="List pending alerts")
    ls.add_argument("--json", action="store_true", help="Output as JSON")
    _add_filter_args(ls)

    count = sub.add_parser("count", help="Print number of pending alerts")
    _add_filter_args(count)

    clear = sub.add_parser("clear", help="Dismiss matching alerts")
    _add_filter_args(clear)

    doctor = sub.add_parser("doctor", help="Print runtime diagnostics")
    doctor.add_argument("--json", action="store_true", help="Output diagnostics as JSON")

    sub.add_parser("version", help="Print version")
    return p


def _resolve_log_level(value: str | None) -> int:
    v = (value or "").strip().upper()
    if not v:
        return logging.ERROR
    level = logging.getLevelNamesMapping().get(v)
    if isinstance(level, int):
        return level
    return logging.ERROR


def configure_logging(config: AppConfig, cli_level: str | None = None) -> None:
    logging.basicConfig(
        level=_resolve_log_level(cli_level or config.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )
    if config.debug_lifecycle:
        logging.getLogger("mung.lifecycle").setLevel(logging.DEBUG)
    if config.debug_actions:
        logging.getLogger("mung.shell").setLevel(logging.DEBUG)
        logging.getLogger("mung.notify").setLevel(logging.DEBUG)


def _print_error(message: str) -> None:
    print(f"mung: {message}", file=sys.stderr)


def _filters_from_args(args: argparse.Namespace) -> AlertFilter:
    return AlertFilter.of(
        tags=args.tags,
        sources=args.sources,
        sessions=args.sessions,
        kinds=args.kinds,
        dedupe_keys=args.dedupe_keys,
    )


def _pad(value: str, width: int) -> str:
    return value[:width].ljust(width)


def format_alert_table(alerts: list[Alert]) -> list[str]:
    lines = [f"{_pad('ID', 26)}{_pad('TAGS', 14)}{_pad('ICON', 5)}{_pad('TITLE', 20)}AGE"]
    now = utc_now()
    for alert in alerts:
        tags = ",".join(alert.tags) if alert.tags else "-"
        lines.append(
            f"{alert.id.ljust(26)}{_pad(tags, 14)}{(alert.icon or '-').ljust(5)}{_pad(alert.title, 20)}{alert.age(now)}"
        )
    return lines


def cmd_add(lifecycle: Lifecycle, args: argparse.Namespace, output: Output) -> int:
    if not args.title.strip() or not args.message.strip():
        _print_error("add requires --title and --message")
        return 1
    result = lifecycle.create(
        args.title,
        args.message,
        on_click=args.on_click,
        icon=args.icon,
        tags=args.tags,
        source=args.source,
        session=args.session,
        kind=args.kind,
        dedupe_key=args.dedupe_key,
        sound=args.sound,
    )
    if not result.ok:
        _print_error(f"failed to save alert: {result.error}")
        return 1
    output(str(result.alert_id))
    return 0


def cmd_done(lifecycle: Lifecycle, args: argparse.Namespace, output: Output) -> int:  # noqa: ARG001
    result = lifecycle.dismiss(args.id, run=args.run)
    if not result.found:
        _print_error(f"alert not found: {args.id}")
        return 1
    return 0


def cmd_list(lifecycle: Lifecycle, args: argparse.Namespace, output: Output) -> int:
    alerts = lifecycle.list(_filters_from_args(args))
    if args.json:
        output(json.dumps([a.to_json_dict() for a in alerts], ensure_ascii=False, indent=2, sort_keys=True))
        return 0
    if not alerts:
        output("No pending alerts.")
        return 0
    for line in format_alert_table(alerts):
        output(line)
    return 0


def cmd_count(lifecycle: Lifecycle, args: argparse.Namespace, output: Output) -> int:
    output(str(lifecycle.count(_filters_from_args(args))))
    return 0


def cmd_clear(lifecycle: Lifecycle, args: argparse.Namespace, output: Output) -> int:
    result = lifecycle.clear(_filters_from_args(args))
    output(f"Cleared {result.count} alert{'' if result.count == 1 else 's'}.")
    if not result.ok:
        _print_error(f"clear failed: {result.error}")
        return 1
    return 0


def build_doctor_report(config: AppConfig, lifecycle: Lifecycle) -> dict[str, Any]:
    ctx = resolve_action_context(
        preferred_shell=config.on_click_shell,
        user_shell=os.environ.get("SHELL"),
        working_directory=config.on_click_cwd,
    )
    return {
        "timestamp": format_rfc3339(utc_now()),
        "version": __version__,
        "executable": sys.argv[0] if sys.argv else "",
        "config_path": config.config_path,
        "notification_channels": lifecycle.notifications.channel(),
        "signal_command": list(config.signal_command),
        "state": {
            "mung_dir": config.mung_dir,
            "alerts_dir": config.alerts_dir,
            "alerts_dir_exists": os.path.isdir(config.alerts_dir),
            "alert_count": lifecycle.count(),
        },
        "action_execution": {
            "shell_path": ctx.shell_path,
            "shell_args_prefix": list(ctx.shell_args_prefix),
            "working_directory": ctx.working_directory,
            "debug_actions": config.debug_actions,
            "debug_lifecycle": config.debug_lifecycle,
        },
    }


def cmd_doctor(config: AppConfig, lifecycle: Lifecycle, args: argparse.Namespace, output: Output) -> int:
    report = build_doctor_report(config, lifecycle)
    if args.json:
        output(json.dumps(report, ensure_ascii=False, indent=2, sort_keys=True))
        return 0

    state = report["state"]
    action = report["action_execution"]

    def yes_no(v: bool) -> str:
        return "yes" if v else "no"

    def on_off(v: bool) -> str:
        return "on" if v else "off"

    output("mung doctor")
    output(f"version: {report['version']}")
    output(f"executable: {report['executable']}")
    output(f"config: {report['config_path'] or '-'}")
    output(f"notification_channels: {report['notification_channels']}")
    output(f"signal_command: {' '.join(report['signal_command']) or '-'}")
    output(f"mung_dir: {state['mung_dir']}")
    output(f"alerts_dir: {state['alerts_dir']}")
    output(f"alerts_dir_exists: {yes_no(state['alerts_dir_exists'])}")
    output(f"alert_count: {state['alert_count']}")
    output(f"on_click_shell: {action['shell_path']}")
    output(f"on_click_shell_args: {' '.join(action['shell_args_prefix'])}")
    output(f"on_click_cwd: {action['working_directory'] or '-'}")
    output(f"debug_actions: {on_off(action['debug_actions'])}")
    output(f"debug_lifecycle: {on_off(action['debug_lifecycle'])}")
    return 0


def main(argv: list[str] | None = None, *, output: Output = print) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0
    if args.command == "version":
        output(f"mung {__version__}")
        return 0

    try:
        config = load_config(args.config)
    except (OSError, ValueError) as e:
        _print_error(f"invalid config: {e}")
        return 1
    configure_logging(config, args.log_level)

    lifecycle = build_lifecycle(config)
    logger.debug("command=%s mung_dir=%s notifiers=%s", args.command, config.mung_dir, lifecycle.notifications.channel())

    if args.command == "doctor":
        return cmd_doctor(config, lifecycle, args, output)

    handlers = {
        "add": cmd_add,
        "done": cmd_done,
        "list": cmd_list,
        "count": cmd_count,
        "clear": cmd_clear,
    }
    try:
        return handlers[args.command](lifecycle, args, output)
    except Exception as e:  # noqa: BLE001
        logger.exception("command crashed: command=%s", args.command)
        _print_error(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
