"""
Xiangqi Assistant 源代码模块

- chess_assistant_core: 规则引擎、UCI引擎通信和分析会话
"""

from . import chess_assistant_core

__all__ = [
    "chess_assistant_core",
]
