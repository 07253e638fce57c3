"""
象棋走法助手核心

包括规则引擎、UCI引擎通信与分析会话、配置管理和日志工具。
棋盘识别与界面叠加作为协作方，通过 ChessBoard 和 EngineSession 接入。
"""

__version__ = "0.1.0"
__author__ = "Xiangqi Assistant Team"

from .rules_engine import ChessBoard, Move, Coordinate, Side, GameState
from .engine_protocol import EngineSession, SessionState, MoveSuggestion, UciEngine
from .config import ConfigManager, EngineConfig, AnalysisConfig, SystemConfig
from .utils import setup_logger, get_logger, XiangqiAssistantError

__all__ = [
    "__version__", "__author__",
    "ChessBoard", "Move", "Coordinate", "Side", "GameState",
    "EngineSession", "SessionState", "MoveSuggestion", "UciEngine",
    "ConfigManager", "EngineConfig", "AnalysisConfig", "SystemConfig",
    "setup_logger", "get_logger", "XiangqiAssistantError"
]
