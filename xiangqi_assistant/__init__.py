"""
象棋走法助手 (Xiangqi Assistant)

识别棋盘后由外部UCI引擎给出着法建议的中国象棋辅助系统。
"""

__version__ = "0.1.0"
__author__ = "Xiangqi Assistant Team"
__description__ = "中国象棋走法助手 - 规则引擎与UCI引擎分析会话"

from xiangqi_assistant.src import chess_assistant_core

__all__ = [
    "chess_assistant_core",
    "__version__",
    "__author__",
    "__description__",
]
