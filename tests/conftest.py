import os
import sys

import pytest


PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC_DIR = os.path.join(PROJECT_ROOT, "src")

if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)


MUNG_ENV_VARS = (
    "MUNG_CONFIG",
    "MUNG_WEBHOOK_URL",
    "MUNG_LOG_LEVEL",
    "MUNG_DEBUG_ACTIONS",
    "MUNG_DEBUG_LIFECYCLE",
    "MUNG_ON_CLICK_SHELL",
    "MUNG_ON_CLICK_CWD",
)


@pytest.fixture()
def mung_env(monkeypatch: pytest.MonkeyPatch, tmp_path):  # noqa: ANN001, ANN201
    """
    隔离的运行环境：状态目录指向 tmp_path，关闭桌面通知与外部信号，不配置 webhook。
    """
    monkeypatch.setenv("MUNG_DIR", str(tmp_path))
    monkeypatch.setenv("MUNG_SIGNAL_COMMAND", "")
    monkeypatch.setenv("MUNG_DESKTOP_NOTIFY", "0")
    for name in MUNG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return tmp_path
