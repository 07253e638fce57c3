"""
象棋走法数据结构

定义象棋走法的表示和转换功能。
"""

from dataclasses import dataclass, replace
from typing import Optional

from .position import Coordinate, Side
from .piece import Piece, PieceKind


CHINESE_NUMBERS = ["", "一", "二", "三", "四", "五", "六", "七", "八", "九"]

# 斜走的棋子用落点列号记录，直走的棋子用步数记录
DIAGONAL_KINDS = (PieceKind.HORSE, PieceKind.ELEPHANT, PieceKind.ADVISOR)


@dataclass(frozen=True, eq=False)
class Move:
    """
    象棋走法类

    表示一个象棋走法。captured 由棋盘在执行时填入目标点上的棋子；
    is_check / is_checkmate 是调用方在走子之后补充的标注。
    """
    from_pos: Coordinate
    to_pos: Coordinate
    piece: Piece
    captured: Optional[Piece] = None
    is_check: bool = False
    is_checkmate: bool = False

    def with_captured(self, captured: Optional[Piece]) -> 'Move':
        return replace(self, captured=captured)

    def with_annotations(self, is_check: bool, is_checkmate: bool) -> 'Move':
        return replace(self, is_check=is_check, is_checkmate=is_checkmate)

    def to_coordinate_notation(self) -> str:
        """
        转换为坐标记法

        Returns:
            str: 坐标记法字符串，如 "h2e2"
        """
        return f"{self.from_pos.to_uci()}{self.to_pos.to_uci()}"

    @property
    def notation(self) -> str:
        """
        中文纵线记法，如 "炮二平五"

        红方列号用中文数字、从红方右手起算；黑方用阿拉伯数字、从黑方右手起算。
        """
        side = self.piece.side
        from_file = self._file_label(self.from_pos.file, side)
        d_rank = self.to_pos.rank - self.from_pos.rank

        if d_rank == 0:
            return f"{self.piece.symbol}{from_file}平{self._file_label(self.to_pos.file, side)}"

        direction = "进" if d_rank * side.forward > 0 else "退"
        if self.piece.kind in DIAGONAL_KINDS:
            target = self._file_label(self.to_pos.file, side)
        else:
            target = self._number_label(abs(d_rank), side)
        return f"{self.piece.symbol}{from_file}{direction}{target}"

    @property
    def description(self) -> str:
        """走法描述，如 "红方炮 (2,3) 移动 到 (5,3)"（坐标以红方视角、自1起算）"""
        action = "吃子" if self.captured is not None else "移动"
        return (f"{self.piece.side.display_name}{self.piece.symbol} "
                f"({self.from_pos.file + 1},{10 - self.from_pos.rank}) {action} 到 "
                f"({self.to_pos.file + 1},{10 - self.to_pos.rank})")

    @staticmethod
    def _number_label(number: int, side: Side) -> str:
        return CHINESE_NUMBERS[number] if side is Side.RED else str(number)

    @classmethod
    def _file_label(cls, file: int, side: Side) -> str:
        number = 9 - file if side is Side.RED else file + 1
        return cls._number_label(number, side)

    def __str__(self) -> str:
        return self.to_coordinate_notation()

    def __repr__(self) -> str:
        return (f"Move(from_pos={self.from_pos}, to_pos={self.to_pos}, "
                f"piece={self.piece}, captured={self.captured})")

    def __eq__(self, other) -> bool:
        if not isinstance(other, Move):
            return False
        return (self.from_pos == other.from_pos and
                self.to_pos == other.to_pos and
                self.piece == other.piece)

    def __hash__(self) -> int:
        return hash((self.from_pos, self.to_pos, self.piece))

    def to_dict(self) -> dict:
        """转换为字典"""
        return {
            'from_pos': [self.from_pos.file, self.from_pos.rank],
            'to_pos': [self.to_pos.file, self.to_pos.rank],
            'piece': _piece_to_dict(self.piece),
            'captured': _piece_to_dict(self.captured) if self.captured else None,
            'is_check': self.is_check,
            'is_checkmate': self.is_checkmate
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Move':
        """从字典创建Move对象"""
        captured = data.get('captured')
        return cls(
            from_pos=Coordinate(*data['from_pos']),
            to_pos=Coordinate(*data['to_pos']),
            piece=_piece_from_dict(data['piece']),
            captured=_piece_from_dict(captured) if captured else None,
            is_check=data.get('is_check', False),
            is_checkmate=data.get('is_checkmate', False)
        )


def _piece_to_dict(piece: Piece) -> dict:
    return {
        'kind': piece.kind.name,
        'side': piece.side.value,
        'position': [piece.position.file, piece.position.rank]
    }


def _piece_from_dict(data: dict) -> Piece:
    return Piece(
        kind=PieceKind[data['kind']],
        side=Side(data['side']),
        position=Coordinate(*data['position'])
    )
