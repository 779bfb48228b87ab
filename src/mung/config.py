from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any, Mapping

from .shell import DEFAULT_SIGNAL_COMMAND, is_truthy, parse_command


DEFAULT_MUNG_DIR = os.path.join("~", ".local", "share", "mung")
DEFAULT_WEBHOOK_ENV = "MUNG_WEBHOOK_URL"


def _require_dict(value: Any, *, where: str) -> Mapping[str, Any]:
    if not isinstance(value, dict):
        raise ValueError(f"Expected object at {where}, got {type(value)}")
    return value


def _get_bool(d: Mapping[str, Any], key: str, default: bool) -> bool:
    v = d.get(key, default)
    if isinstance(v, str):
        return is_truthy(v)
    return bool(v)


def _get_float(d: Mapping[str, Any], key: str, default: float) -> float:
    v = d.get(key, default)
    if isinstance(v, bool):
        return default
    try:
        return float(v)
    except Exception:
        return default


def _get_str(d: Mapping[str, Any], key: str, default: str | None = None) -> str | None:
    v = d.get(key, default)
    if v is None:
        return None
    return str(v)


def _get_command(d: Mapping[str, Any], key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    v = d.get(key)
    if v is None:
        return default
    if isinstance(v, list):
        return tuple(str(x) for x in v)
    return parse_command(str(v))


@dataclass(frozen=True, slots=True)
class WebhookNotifyConfig:
    """
    Webhook 通知配置。

    webhook_env:
      - webhook URL 的环境变量名（URL 属于密钥，不落在配置文件里）
    """

    webhook_env: str = DEFAULT_WEBHOOK_ENV
    timeout_seconds: float = 10.0


@dataclass(frozen=True, slots=True)
class DesktopNotifyConfig:
    """
    桌面通知配置（notify-send）。
    """

    executable: str = "notify-send"
    urgency: str = "normal"


@dataclass(frozen=True, slots=True)
class AppConfig:
    """
    应用总配置。

    mung_dir:
      - 状态根目录，记录文件位于 <mung_dir>/alerts/
    signal_command:
      - 每次状态变化后触发的外部刷新命令（argv），空元组表示禁用
    on_click_shell / on_click_cwd:
      - 执行 on_click 命令时优先使用的 shell 与工作目录
    debug_actions / debug_lifecycle:
      - 打开对应模块的 DEBUG 日志
    """

    mung_dir: str
    signal_command: tuple[str, ...]
    on_click_shell: str | None
    on_click_cwd: str | None
    debug_actions: bool
    debug_lifecycle: bool
    log_level: str | None
    webhook: WebhookNotifyConfig | None
    desktop: DesktopNotifyConfig | None
    config_path: str | None = None

    @property
    def alerts_dir(self) -> str:
        return os.path.join(self.mung_dir, "alerts")

    def resolve_env(self, env_name: str | None, environ: Mapping[str, str] | None = None) -> str | None:
        if not env_name:
            return None
        return (environ if environ is not None else os.environ).get(env_name)


def _read_json_config(config_path: str) -> Mapping[str, Any]:
    with open(config_path, "rb") as f:
        raw = json.loads(f.read().decode("utf-8"))
    return _require_dict(raw, where="$")


def load_config(config_path: str | None = None, environ: Mapping[str, str] | None = None) -> AppConfig:
    """
    配置来源（后者覆盖前者）：
    1) 内置默认值
    2) JSON 配置文件（--config 或 $MUNG_CONFIG，可选）
    3) 环境变量（MUNG_DIR / MUNG_SIGNAL_COMMAND / MUNG_ON_CLICK_SHELL / ...）

    JSON 顶层结构（示意）：
    {
      "mung_dir": "~/.local/share/mung",
      "signal": { "command": ["sketchybar", "--trigger", "mung_alert_change"] },
      "actions": { "shell": "/bin/zsh", "cwd": "~/work" },
      "notify": {
        "webhook": { "webhook_env": "MUNG_WEBHOOK_URL" },
        "desktop": { "enabled": true }
      }
    }
    """
    env = dict(os.environ) if environ is None else dict(environ)
    config_path = config_path or env.get("MUNG_CONFIG") or None
    root: Mapping[str, Any] = _read_json_config(config_path) if config_path else {}

    signal = _require_dict(root.get("signal", {}), where="$.signal")
    actions = _require_dict(root.get("actions", {}), where="$.actions")
    debug = _require_dict(root.get("debug", {}), where="$.debug")
    notify = _require_dict(root.get("notify", {}), where="$.notify")

    mung_dir = env.get("MUNG_DIR") or _get_str(root, "mung_dir") or DEFAULT_MUNG_DIR

    signal_command = _get_command(signal, "command", DEFAULT_SIGNAL_COMMAND)
    if not _get_bool(signal, "enabled", True):
        signal_command = ()
    if "MUNG_SIGNAL_COMMAND" in env:
        signal_command = parse_command(env["MUNG_SIGNAL_COMMAND"])

    on_click_shell = env.get("MUNG_ON_CLICK_SHELL") or _get_str(actions, "shell")
    on_click_cwd = env.get("MUNG_ON_CLICK_CWD") or _get_str(actions, "cwd")

    debug_actions = is_truthy(env.get("MUNG_DEBUG_ACTIONS")) or _get_bool(debug, "actions", False)
    debug_lifecycle = is_truthy(env.get("MUNG_DEBUG_LIFECYCLE")) or _get_bool(debug, "lifecycle", False)
    log_level = env.get("MUNG_LOG_LEVEL") or _get_str(root, "log_level")

    webhook_cfg: WebhookNotifyConfig | None = WebhookNotifyConfig()
    if "webhook" in notify:
        wh = _require_dict(notify["webhook"], where="$.notify.webhook")
        webhook_cfg = None
        if _get_bool(wh, "enabled", True):
            webhook_cfg = WebhookNotifyConfig(
                webhook_env=str(wh.get("webhook_env") or DEFAULT_WEBHOOK_ENV),
                timeout_seconds=_get_float(wh, "timeout_seconds", 10.0),
            )

    desktop_cfg: DesktopNotifyConfig | None = DesktopNotifyConfig()
    if "desktop" in notify:
        dk = _require_dict(notify["desktop"], where="$.notify.desktop")
        desktop_cfg = None
        if _get_bool(dk, "enabled", True):
            desktop_cfg = DesktopNotifyConfig(
                executable=str(dk.get("executable") or "notify-send"),
                urgency=str(dk.get("urgency") or "normal"),
            )
    if "MUNG_DESKTOP_NOTIFY" in env and not is_truthy(env["MUNG_DESKTOP_NOTIFY"]):
        desktop_cfg = None
    elif is_truthy(env.get("MUNG_DESKTOP_NOTIFY")) and desktop_cfg is None:
        desktop_cfg = DesktopNotifyConfig()

    return AppConfig(
        mung_dir=os.path.expanduser(mung_dir),
        signal_command=signal_command,
        on_click_shell=on_click_shell,
        on_click_cwd=os.path.expanduser(on_click_cwd) if on_click_cwd else None,
        debug_actions=debug_actions,
        debug_lifecycle=debug_lifecycle,
        log_level=log_level,
        webhook=webhook_cfg,
        desktop=desktop_cfg,
        config_path=config_path,
    )
