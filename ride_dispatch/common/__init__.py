# ride_dispatch/common/__init__.py
"""
Общие утилиты, константы и логгер.
"""

from ride_dispatch.common.logger import get_logger, log_info, log_error, log_warning, log_debug
from ride_dispatch.common.constants import TypeMsg, RequestStatus, Topics

__all__ = [
    "get_logger",
    "log_info",
    "log_error",
    "log_warning",
    "log_debug",
    "TypeMsg",
    "RequestStatus",
    "Topics",
]
