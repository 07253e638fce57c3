"""
工具模块

包含日志、异常处理和其他通用工具。
"""

from .logger import setup_logger, get_logger, LoggerMixin, PerformanceLogger, performance_logger
from .exceptions import (
    XiangqiAssistantError, OutOfRangeError, InvalidMoveError, BoardStateError,
    EngineUnavailableError, ProtocolDesyncError, ProcessExitedError, ConfigurationError
)

__all__ = [
    'setup_logger', 'get_logger', 'LoggerMixin', 'PerformanceLogger', 'performance_logger',
    'XiangqiAssistantError', 'OutOfRangeError', 'InvalidMoveError', 'BoardStateError',
    'EngineUnavailableError', 'ProtocolDesyncError', 'ProcessExitedError', 'ConfigurationError'
]
