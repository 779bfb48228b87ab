"""
mungmung (mung)

以“一条告警一个 JSON 文件”的方式管理待处理的用户通知，并在
create / done / clear 时保持三方一致：本地状态目录、通知渠道、外部刷新信号。
"""

from .filters import AlertFilter
from .lifecycle import ClearResult, CreateResult, DismissResult, Lifecycle, build_lifecycle
from .models import Alert

__version__ = "0.1.0"

__all__ = [
    "Alert",
    "AlertFilter",
    "ClearResult",
    "CreateResult",
    "DismissResult",
    "Lifecycle",
    "__version__",
    "build_lifecycle",
]
