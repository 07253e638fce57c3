"""
象棋棋子数据结构
"""

from dataclasses import dataclass, replace
from enum import Enum

from .position import Coordinate, Side


class PieceKind(Enum):
    """棋子种类，值为FEN记法中的字母"""
    CHARIOT = 'R'    # 车
    HORSE = 'N'      # 马
    ELEPHANT = 'B'   # 相/象
    ADVISOR = 'A'    # 仕/士
    GENERAL = 'K'    # 帅/将
    CANNON = 'C'     # 炮
    SOLDIER = 'P'    # 兵/卒

    @classmethod
    def from_letter(cls, letter: str) -> 'PieceKind':
        return cls(letter.upper())


# 棋子名称映射 (红方, 黑方)
PIECE_NAMES = {
    PieceKind.CHARIOT: ("车", "车"),
    PieceKind.HORSE: ("马", "马"),
    PieceKind.ELEPHANT: ("相", "象"),
    PieceKind.ADVISOR: ("仕", "士"),
    PieceKind.GENERAL: ("帅", "将"),
    PieceKind.CANNON: ("炮", "炮"),
    PieceKind.SOLDIER: ("兵", "卒"),
}

# 每方各类棋子的数量上限
PIECE_LIMITS = {
    PieceKind.CHARIOT: 2,
    PieceKind.HORSE: 2,
    PieceKind.ELEPHANT: 2,
    PieceKind.ADVISOR: 2,
    PieceKind.GENERAL: 1,
    PieceKind.CANNON: 2,
    PieceKind.SOLDIER: 5,
}

# 矩阵表示中使用的整数编码，红正黑负
MATRIX_CODES = {
    PieceKind.GENERAL: 1,
    PieceKind.ADVISOR: 2,
    PieceKind.ELEPHANT: 3,
    PieceKind.HORSE: 4,
    PieceKind.CHARIOT: 5,
    PieceKind.CANNON: 6,
    PieceKind.SOLDIER: 7,
}


@dataclass(frozen=True)
class Piece:
    """
    象棋棋子

    不可变值对象，走子时通过 with_position 生成新棋子。
    """
    kind: PieceKind
    side: Side
    position: Coordinate

    @property
    def symbol(self) -> str:
        """中文棋子名"""
        red_name, black_name = PIECE_NAMES[self.kind]
        return red_name if self.side is Side.RED else black_name

    @property
    def fen_letter(self) -> str:
        """FEN字母，红方大写，黑方小写"""
        letter = self.kind.value
        return letter if self.side is Side.RED else letter.lower()

    @property
    def matrix_code(self) -> int:
        code = MATRIX_CODES[self.kind]
        return code if self.side is Side.RED else -code

    def with_position(self, new_position: Coordinate) -> 'Piece':
        """创建带新位置的棋子"""
        return replace(self, position=new_position)

    def is_in_correct_position(self) -> bool:
        """帅仕须在九宫内，相不能过河"""
        if self.kind in (PieceKind.GENERAL, PieceKind.ADVISOR):
            return self.position.in_palace(self.side)
        if self.kind is PieceKind.ELEPHANT:
            return not self.position.across_river(self.side)
        return True

    def __str__(self) -> str:
        return f"{self.side.display_name}{self.symbol}@{self.position}"
