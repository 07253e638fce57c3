"""
象棋棋盘与规则

维护棋局状态，负责走法合法性、将军检测和终局状态判定。
"""

import threading
from dataclasses import replace
from enum import Enum
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

import numpy as np

from .position import Coordinate, Side, BOARD_FILES, BOARD_RANKS
from .piece import Piece, PieceKind, MATRIX_CODES
from .move import Move
from ..utils.exceptions import BoardStateError
from ..utils.logger import LoggerMixin


class GameState(Enum):
    """对局状态"""
    PLAYING = "playing"
    CHECK = "check"
    CHECKMATE = "checkmate"
    STALEMATE = "stalemate"


# 底线棋子排列 (从第0列到第8列)
BACK_RANK = [
    PieceKind.CHARIOT, PieceKind.HORSE, PieceKind.ELEPHANT, PieceKind.ADVISOR,
    PieceKind.GENERAL,
    PieceKind.ADVISOR, PieceKind.ELEPHANT, PieceKind.HORSE, PieceKind.CHARIOT,
]
CANNON_FILES = (1, 7)
SOLDIER_FILES = (0, 2, 4, 6, 8)

# 各方初始局面所在的行: (底线, 炮, 兵)
HOME_RANKS = {
    Side.BLACK: (0, 2, 3),
    Side.RED: (9, 7, 6),
}

_CODE_TO_KIND = {code: kind for kind, code in MATRIX_CODES.items()}


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


class ChessBoard(LoggerMixin):
    """
    象棋棋盘类

    持有棋子、走法历史和当前行棋方，是走法合法性的唯一裁判。
    规则违例一律以布尔值返回，不抛异常。
    """

    def __init__(self, initial_position: bool = True):
        """
        初始化棋盘

        Args:
            initial_position: 是否摆好开局，False 时创建空棋盘
        """
        self._pieces: Dict[Coordinate, Piece] = {}
        self._history: List[Move] = []
        self._current_player = Side.RED
        # 所有读写都经过这把锁，识别、界面、引擎桥接之间通过 snapshot() 交接
        self._lock = threading.RLock()

        if initial_position:
            self.setup_initial_position()

    # ==================== 局面管理 ====================

    def setup_initial_position(self):
        """清空状态并摆出32子开局，红方先行"""
        with self._lock:
            self._reset_state()
            for side, (back_rank, cannon_rank, soldier_rank) in HOME_RANKS.items():
                for file, kind in enumerate(BACK_RANK):
                    self._place(Piece(kind, side, Coordinate(file, back_rank)))
                for file in CANNON_FILES:
                    self._place(Piece(PieceKind.CANNON, side, Coordinate(file, cannon_rank)))
                for file in SOLDIER_FILES:
                    self._place(Piece(PieceKind.SOLDIER, side, Coordinate(file, soldier_rank)))

    def set_position(self,
                     pieces: Mapping[Coordinate, Tuple[PieceKind, Side]],
                     current_player: Side = Side.RED):
        """
        设置指定局面，清空走法历史

        Args:
            pieces: {坐标: (棋子种类, 阵营)}
            current_player: 行棋方
        """
        with self._lock:
            self._reset_state()
            for position, (kind, side) in pieces.items():
                self._place(Piece(kind, side, position))
            self._current_player = current_player

    def add_piece(self, kind: PieceKind, side: Side, position: Coordinate) -> Piece:
        """添加棋子，目标点已有棋子时抛出 BoardStateError"""
        with self._lock:
            return self._place(Piece(kind, side, position))

    def remove_piece(self, position: Coordinate) -> Optional[Piece]:
        with self._lock:
            return self._pieces.pop(position, None)

    def clear_board(self):
        """清空棋盘"""
        with self._lock:
            self._reset_state()

    reset = clear_board

    def _reset_state(self):
        self._pieces.clear()
        self._history.clear()
        self._current_player = Side.RED

    def _place(self, piece: Piece) -> Piece:
        if piece.position in self._pieces:
            raise BoardStateError(
                f"位置 {piece.position} 已有棋子",
                f"无法放置 {piece}"
            )
        self._pieces[piece.position] = piece
        return piece

    # ==================== 只读访问 ====================

    @property
    def pieces(self) -> List[Piece]:
        with self._lock:
            return list(self._pieces.values())

    @property
    def current_player(self) -> Side:
        return self._current_player

    side_to_move = current_player

    @property
    def history(self) -> List[Move]:
        with self._lock:
            return list(self._history)

    @property
    def last_move(self) -> Optional[Move]:
        with self._lock:
            return self._history[-1] if self._history else None

    @property
    def is_empty(self) -> bool:
        return not self._pieces

    def piece_at(self, position: Coordinate) -> Optional[Piece]:
        """获取指定位置的棋子"""
        return self._pieces.get(position)

    get_piece_at = piece_at

    def has_piece_at(self, position: Coordinate) -> bool:
        return position in self._pieces

    def pieces_of(self, side: Side) -> List[Piece]:
        with self._lock:
            return [piece for piece in self._pieces.values() if piece.side is side]

    def find_general(self, side: Side) -> Optional[Coordinate]:
        """找到指定阵营帅/将的位置"""
        with self._lock:
            for piece in self._pieces.values():
                if piece.kind is PieceKind.GENERAL and piece.side is side:
                    return piece.position
        return None

    def create_move(self, from_pos: Coordinate, to_pos: Coordinate) -> Optional[Move]:
        """按起点上的棋子构造走法，起点为空时返回None"""
        with self._lock:
            piece = self._pieces.get(from_pos)
            if piece is None:
                return None
            return Move(from_pos, to_pos, piece, captured=self._pieces.get(to_pos))

    # ==================== 走法合法性 ====================

    def is_legal(self, move: Move) -> bool:
        """
        验证走法是否合法

        起点无子、不是行棋方的棋子、或终点是己方棋子时返回False，
        否则按棋子种类检查走法规则。
        """
        with self._lock:
            piece = self._pieces.get(move.from_pos)
            if piece is None or piece.side is not self._current_player:
                return False
            return self._obeys_piece_rules(move)

    def _obeys_piece_rules(self, move: Move) -> bool:
        """不考虑轮次的走法规则检查"""
        piece = self._pieces.get(move.from_pos)
        if piece is None:
            return False
        if piece.kind is not move.piece.kind or piece.side is not move.piece.side:
            return False
        if move.from_pos == move.to_pos:
            return False

        target = self._pieces.get(move.to_pos)
        if target is not None and target.side is piece.side:
            return False

        kind = piece.kind
        if kind is PieceKind.CHARIOT:
            return self._validate_chariot(move)
        elif kind is PieceKind.HORSE:
            return self._validate_horse(move)
        elif kind is PieceKind.ELEPHANT:
            return self._validate_elephant(move, piece.side)
        elif kind is PieceKind.ADVISOR:
            return self._validate_advisor(move, piece.side)
        elif kind is PieceKind.GENERAL:
            return self._validate_general(move, piece.side)
        elif kind is PieceKind.CANNON:
            return self._validate_cannon(move, target)
        elif kind is PieceKind.SOLDIER:
            return self._validate_soldier(move, piece.side)

        return False

    def _validate_chariot(self, move: Move) -> bool:
        """车: 直线行走，路径上不能有子"""
        if not self._is_straight(move.from_pos, move.to_pos):
            return False
        return self._count_between(move.from_pos, move.to_pos) == 0

    def _validate_horse(self, move: Move) -> bool:
        """马: 走日字，蹩马腿时不能走（吃子同样受限）"""
        d_file = move.to_pos.file - move.from_pos.file
        d_rank = move.to_pos.rank - move.from_pos.rank
        if sorted((abs(d_file), abs(d_rank))) != [1, 2]:
            return False

        if abs(d_file) == 2:
            leg = move.from_pos.offset(_sign(d_file), 0)
        else:
            leg = move.from_pos.offset(0, _sign(d_rank))
        return leg not in self._pieces

    def _validate_elephant(self, move: Move, side: Side) -> bool:
        """相/象: 走田字，不能过河，塞象眼时不能走"""
        d_file = move.to_pos.file - move.from_pos.file
        d_rank = move.to_pos.rank - move.from_pos.rank
        if abs(d_file) != 2 or abs(d_rank) != 2:
            return False
        if move.to_pos.across_river(side):
            return False

        eye = move.from_pos.offset(d_file // 2, d_rank // 2)
        return eye not in self._pieces

    def _validate_advisor(self, move: Move, side: Side) -> bool:
        """仕/士: 斜走一步，不出九宫"""
        d_file = abs(move.to_pos.file - move.from_pos.file)
        d_rank = abs(move.to_pos.rank - move.from_pos.rank)
        if d_file != 1 or d_rank != 1:
            return False
        return move.to_pos.in_palace(side)

    def _validate_general(self, move: Move, side: Side) -> bool:
        """帅/将: 直走一步，不出九宫，且不能与对方将帅照面"""
        if not Coordinate.is_adjacent(move.from_pos, move.to_pos):
            return False
        if not move.to_pos.in_palace(side):
            return False
        return not self._would_face_general(side, move.to_pos, vacated=move.from_pos)

    def _validate_cannon(self, move: Move, target: Optional[Piece]) -> bool:
        """炮: 移动同车；吃子时中间必须恰好隔一个炮架"""
        if not self._is_straight(move.from_pos, move.to_pos):
            return False
        between = self._count_between(move.from_pos, move.to_pos)
        if target is None:
            return between == 0
        return between == 1

    def _validate_soldier(self, move: Move, side: Side) -> bool:
        """兵/卒: 一次一步，不能后退，过河后才能横走"""
        if not Coordinate.is_adjacent(move.from_pos, move.to_pos):
            return False

        d_rank = move.to_pos.rank - move.from_pos.rank
        if d_rank != 0:
            return d_rank == side.forward
        return move.from_pos.across_river(side)

    @staticmethod
    def _is_straight(from_pos: Coordinate, to_pos: Coordinate) -> bool:
        return (from_pos.file == to_pos.file) != (from_pos.rank == to_pos.rank)

    def _count_between(self, from_pos: Coordinate, to_pos: Coordinate,
                       vacated: Optional[Coordinate] = None) -> int:
        """统计同一直线上两点之间（不含端点）的棋子数"""
        step_file = _sign(to_pos.file - from_pos.file)
        step_rank = _sign(to_pos.rank - from_pos.rank)

        count = 0
        file, rank = from_pos.file + step_file, from_pos.rank + step_rank
        while (file, rank) != (to_pos.file, to_pos.rank):
            square = Coordinate(file, rank)
            if square != vacated and square in self._pieces:
                count += 1
            file += step_file
            rank += step_rank
        return count

    def _would_face_general(self, side: Side, destination: Coordinate,
                            vacated: Optional[Coordinate] = None) -> bool:
        opponent = self.find_general(side.opponent)
        if opponent is None or opponent.file != destination.file:
            return False
        return self._count_between(destination, opponent, vacated=vacated) == 0

    def generals_facing(self) -> bool:
        """两方将帅是否在同一列上直接照面"""
        with self._lock:
            red = self.find_general(Side.RED)
            black = self.find_general(Side.BLACK)
            if red is None or black is None or red.file != black.file:
                return False
            return self._count_between(red, black) == 0

    # ==================== 走子与悔棋 ====================

    def make_move(self, move: Move) -> bool:
        """
        执行走法

        合法时吃掉终点上的棋子、移动棋子、记录走法并交换行棋方。

        Returns:
            bool: 是否成功；失败时棋局保持不变
        """
        with self._lock:
            if not self.is_legal(move):
                self.log_debug(f"拒绝走法: {move!r}")
                return False

            piece = self._pieces.pop(move.from_pos)
            captured = self._pieces.pop(move.to_pos, None)
            self._pieces[move.to_pos] = piece.with_position(move.to_pos)

            self._history.append(replace(move, piece=piece, captured=captured))
            self._current_player = self._current_player.opponent
            return True

    def undo_move(self) -> bool:
        """
        撤销上一步走法

        Returns:
            bool: 是否成功；历史为空时返回False
        """
        with self._lock:
            if not self._history:
                return False

            last_move = self._history.pop()
            del self._pieces[last_move.to_pos]
            self._pieces[last_move.from_pos] = last_move.piece
            if last_move.captured is not None:
                self._pieces[last_move.to_pos] = last_move.captured

            self._current_player = self._current_player.opponent
            return True

    def annotate_last_move(self, is_check: bool, is_checkmate: bool) -> bool:
        """给最后一步补充将军/将死标注"""
        with self._lock:
            if not self._history:
                return False
            self._history[-1] = self._history[-1].with_annotations(is_check, is_checkmate)
            return True

    # ==================== 将军与终局检测 ====================

    def is_in_check(self, side: Side) -> bool:
        """
        检查指定阵营是否被将军

        逐个探测对方棋子能否按走法规则走到己方帅/将所在的点。
        """
        with self._lock:
            general = self.find_general(side)
            if general is None:
                return False

            for piece in self.pieces_of(side.opponent):
                if self._obeys_piece_rules(Move(piece.position, general, piece)):
                    return True
            return False

    def exposes_general(self, move: Move) -> bool:
        """
        试走后己方帅/将是否被将军或与对方照面

        只做临时落子，检查完毕即复原。
        """
        with self._lock:
            piece = self._pieces.get(move.from_pos)
            if piece is None or move.from_pos == move.to_pos:
                return False

            captured = self._pieces.pop(move.to_pos, None)
            del self._pieces[move.from_pos]
            self._pieces[move.to_pos] = piece.with_position(move.to_pos)
            try:
                return self.is_in_check(piece.side) or self.generals_facing()
            finally:
                del self._pieces[move.to_pos]
                self._pieces[move.from_pos] = piece
                if captured is not None:
                    self._pieces[move.to_pos] = captured

    def _iter_candidate_moves(self, side: Side, safe: bool) -> Iterator[Move]:
        # 走法枚举总是覆盖全部90个点
        for piece in self.pieces_of(side):
            for target in Coordinate.all_squares():
                move = Move(piece.position, target, piece, captured=self._pieces.get(target))
                if not self._obeys_piece_rules(move):
                    continue
                if safe and self.exposes_general(move):
                    continue
                yield move

    def has_legal_move(self, side: Side, safe: bool = False) -> bool:
        """
        指定阵营是否还有可走的棋

        Args:
            side: 阵营
            safe: 为True时排除走后自己被将军或将帅照面的走法
        """
        with self._lock:
            return next(self._iter_candidate_moves(side, safe), None) is not None

    def legal_moves(self, side: Optional[Side] = None, safe: bool = False) -> List[Move]:
        """获取指定阵营（默认行棋方）的全部走法"""
        with self._lock:
            return list(self._iter_candidate_moves(side or self._current_player, safe))

    def get_valid_moves(self, piece: Piece) -> List[Move]:
        """获取单个棋子可走的全部走法，不考虑轮次"""
        with self._lock:
            moves = []
            for target in Coordinate.all_squares():
                move = Move(piece.position, target, piece, captured=self._pieces.get(target))
                if self._obeys_piece_rules(move):
                    moves.append(move)
            return moves

    def game_state(self, side: Optional[Side] = None) -> GameState:
        """
        判定指定阵营（默认行棋方）的对局状态

        Returns:
            GameState: 被将军且无解为将死，未被将军但无子可动为困毙
        """
        with self._lock:
            side = side or self._current_player
            in_check = self.is_in_check(side)
            can_move = self.has_legal_move(side, safe=True)

            if in_check:
                return GameState.CHECK if can_move else GameState.CHECKMATE
            if not can_move:
                return GameState.STALEMATE
            return GameState.PLAYING

    update_game_state = game_state

    # ==================== 格式转换 ====================

    def to_matrix(self) -> np.ndarray:
        """
        转换为10x9矩阵，红正黑负

        Returns:
            np.ndarray: 行为rank、列为file的整数矩阵
        """
        matrix = np.zeros((BOARD_RANKS, BOARD_FILES), dtype=int)
        with self._lock:
            for position, piece in self._pieces.items():
                matrix[position.rank, position.file] = piece.matrix_code
        return matrix

    @classmethod
    def from_matrix(cls, matrix: np.ndarray, current_player: Side = Side.RED) -> 'ChessBoard':
        """
        从识别结果的10x9矩阵创建棋盘

        Args:
            matrix: 10x9的棋盘矩阵，0为空，正数为红方，负数为黑方
            current_player: 行棋方
        """
        matrix = np.asarray(matrix)
        if matrix.shape != (BOARD_RANKS, BOARD_FILES):
            raise BoardStateError(f"矩阵尺寸错误: {matrix.shape}", "应为(10, 9)")

        board = cls(initial_position=False)
        for rank in range(BOARD_RANKS):
            for file in range(BOARD_FILES):
                code = int(matrix[rank, file])
                if code == 0:
                    continue
                kind = _CODE_TO_KIND.get(abs(code))
                if kind is None:
                    raise BoardStateError(f"未知的棋子编码: {code}", f"位置 ({file}, {rank})")
                side = Side.RED if code > 0 else Side.BLACK
                board._place(Piece(kind, side, Coordinate(file, rank)))
        board._current_player = current_player
        return board

    def to_visual_string(self) -> str:
        """
        转换为可视化字符串

        Returns:
            str: 可视化的棋盘字符串
        """
        lines = ["   a  b  c  d  e  f  g  h  i"]
        with self._lock:
            for rank in range(BOARD_RANKS):
                cells = []
                for file in range(BOARD_FILES):
                    piece = self._pieces.get(Coordinate(file, rank))
                    cells.append(piece.symbol if piece else "十")
                lines.append(f"{BOARD_RANKS - 1 - rank} " + " ".join(cells))
                if rank == 4:
                    lines.append("  " + "~" * 26)
        lines.append(f"当前玩家: {self._current_player.display_name}")
        return "\n".join(lines)

    # ==================== 实用工具方法 ====================

    def copy(self) -> 'ChessBoard':
        """创建棋盘的独立副本（不共享锁）"""
        with self._lock:
            board = ChessBoard(initial_position=False)
            board._pieces = dict(self._pieces)
            board._history = list(self._history)
            board._current_player = self._current_player
            return board

    def snapshot(self) -> 'ChessBoard':
        """在锁内复制当前局面，供其他线程只读使用"""
        return self.copy()

    def __str__(self) -> str:
        return self.to_visual_string()

    def __eq__(self, other) -> bool:
        if not isinstance(other, ChessBoard):
            return False
        return (self._pieces == other._pieces and
                self._current_player == other._current_player)

    __hash__ = None
