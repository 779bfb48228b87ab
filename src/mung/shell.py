from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass, field
from typing import Mapping, Protocol, Sequence


logger = logging.getLogger(__name__)

DEFAULT_SIGNAL_COMMAND: tuple[str, ...] = ("sketchybar", "--trigger", "mung_alert_change")
LOGIN_SHELLS = frozenset({"bash", "zsh", "ksh", "fish"})
TRUTHY = frozenset({"1", "true", "yes", "on"})


def is_truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in TRUTHY


def parse_command(value: str | None) -> tuple[str, ...]:
    """把配置里的命令串拆成 argv；空串表示禁用。"""
    if value is None:
        return DEFAULT_SIGNAL_COMMAND
    return tuple(shlex.split(value))


class ActionRunner(Protocol):
    """
    外部信号 / 动作执行接口。两个方法都是 fire-and-forget：
    调用立即返回，结果不会回传给 lifecycle。
    """

    def fire_change_signal(self) -> None: ...

    def execute(self, command: str) -> None: ...


@dataclass(frozen=True, slots=True)
class ActionExecutionContext:
    shell_path: str
    shell_args_prefix: tuple[str, ...]
    working_directory: str | None


def _normalized(value: str | None) -> str | None:
    value = (value or "").strip()
    return value or None


def _is_executable(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.X_OK)


def _login_args(shell_path: str) -> tuple[str, ...]:
    # 登录 shell 模式下 PATH 等初始化脚本才会生效
    if os.path.basename(shell_path).lower() in LOGIN_SHELLS:
        return ("-lc",)
    return ("-c",)


def resolve_action_context(
    *,
    preferred_shell: str | None = None,
    user_shell: str | None = None,
    working_directory: str | None = None,
) -> ActionExecutionContext:
    """
    解析 on_click 命令的执行环境。

    shell 选择顺序：
    1) preferred_shell（MUNG_ON_CLICK_SHELL），需可执行
    2) user_shell（$SHELL），需可执行
    3) /bin/sh

    工作目录：仅当 working_directory 是已存在的目录时才使用。
    """
    cwd = _normalized(working_directory)
    if cwd is not None and not os.path.isdir(cwd):
        cwd = None

    for candidate in (_normalized(preferred_shell), _normalized(user_shell)):
        if candidate and _is_executable(candidate):
            return ActionExecutionContext(
                shell_path=candidate,
                shell_args_prefix=_login_args(candidate),
                working_directory=cwd,
            )

    return ActionExecutionContext(shell_path="/bin/sh", shell_args_prefix=("-c",), working_directory=cwd)


def spawn_detached(argv: Sequence[str], *, cwd: str | None = None) -> None:
    """
    后台启动进程且不等待。stdio 全部接到 /dev/null，并脱离当前会话，
    CLI 进程退出后子进程继续运行。
    """
    subprocess.Popen(  # noqa: S603
        list(argv),
        cwd=cwd,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
        close_fds=True,
    )


@dataclass(slots=True)
class ShellRunner(ActionRunner):
    signal_command: tuple[str, ...] = DEFAULT_SIGNAL_COMMAND
    preferred_shell: str | None = None
    working_directory: str | None = None
    environ: Mapping[str, str] = field(default_factory=lambda: dict(os.environ))

    def action_context(self) -> ActionExecutionContext:
        return resolve_action_context(
            preferred_shell=self.preferred_shell,
            user_shell=self.environ.get("SHELL"),
            working_directory=self.working_directory,
        )

    def fire_change_signal(self) -> None:
        if not self.signal_command:
            return
        try:
            spawn_detached(self.signal_command)
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            logger.debug("change signal failed: command=%s error=%s", " ".join(self.signal_command), e)

    def execute(self, command: str) -> None:
        if not command.strip():
            return
        ctx = self.action_context()
        argv = [ctx.shell_path, *ctx.shell_args_prefix, command]
        try:
            spawn_detached(argv, cwd=ctx.working_directory)
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            logger.debug("on_click execution failed: shell=%s error=%s", ctx.shell_path, e)
