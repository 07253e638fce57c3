"""
引擎协议模块

包含UCI引擎进程通信、线路格式转换和分析会话。
"""

from .notation import (
    INITIAL_FEN, board_to_fen, fen_to_board, move_to_uci, parse_uci_move, position_arguments
)
from .uci_engine import UciEngine, EngineInfo, EngineMove, EngineOption, EngineProcessState
from .engine_session import EngineSession, SessionState, MoveSuggestion

__all__ = [
    'INITIAL_FEN', 'board_to_fen', 'fen_to_board', 'move_to_uci', 'parse_uci_move',
    'position_arguments',
    'UciEngine', 'EngineInfo', 'EngineMove', 'EngineOption', 'EngineProcessState',
    'EngineSession', 'SessionState', 'MoveSuggestion'
]
