"""
象棋规则引擎模块

包含坐标、棋子、走法等数据结构，以及棋局状态、走法合法性和终局检测。
"""

from .position import Coordinate, Side, in_palace, across_river
from .piece import Piece, PieceKind
from .move import Move
from .chess_board import ChessBoard, GameState
from .board_validator import BoardValidator

__all__ = [
    'Coordinate', 'Side', 'in_palace', 'across_river',
    'Piece', 'PieceKind', 'Move',
    'ChessBoard', 'GameState', 'BoardValidator'
]
