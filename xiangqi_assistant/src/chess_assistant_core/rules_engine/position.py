"""
棋盘坐标与阵营

定义坐标、阵营以及九宫、过河等位置判定。
"""

from dataclasses import dataclass
from enum import Enum

from ..utils.exceptions import OutOfRangeError


BOARD_FILES = 9   # 列数 (0-8，从左到右)
BOARD_RANKS = 10  # 行数 (0-9，从上到下)

PALACE_FILES = (3, 4, 5)
# 九宫所在的行，紧贴各方底线
PALACE_RANKS = {
    'red': (7, 8, 9),
    'black': (0, 1, 2),
}
# 河界: 第4行与第5行之间
RIVER_LAST_BLACK_RANK = 4


class Side(Enum):
    """阵营: 红方在下方(第5-9行)，黑方在上方(第0-4行)"""
    RED = 'red'
    BLACK = 'black'

    @property
    def opponent(self) -> 'Side':
        return Side.BLACK if self is Side.RED else Side.RED

    @property
    def forward(self) -> int:
        """前进方向上行号的增量"""
        return -1 if self is Side.RED else 1

    @property
    def fen_token(self) -> str:
        return 'w' if self is Side.RED else 'b'

    @property
    def display_name(self) -> str:
        return '红方' if self is Side.RED else '黑方'


@dataclass(frozen=True)
class Coordinate:
    """
    棋盘坐标

    file 为列 (0-8，从左到右)，rank 为行 (0-9，从上到下，第0行是黑方底线)。
    越界构造抛出 OutOfRangeError。
    """
    file: int
    rank: int

    def __post_init__(self):
        if not (0 <= self.file < BOARD_FILES and 0 <= self.rank < BOARD_RANKS):
            raise OutOfRangeError(self.file, self.rank)

    def in_palace(self, side: Side) -> bool:
        """是否位于该方九宫内"""
        return self.file in PALACE_FILES and self.rank in PALACE_RANKS[side.value]

    def across_river(self, side: Side) -> bool:
        """对该方而言是否已过河"""
        if side is Side.RED:
            return self.rank <= RIVER_LAST_BLACK_RANK
        return self.rank > RIVER_LAST_BLACK_RANK

    def offset(self, d_file: int, d_rank: int) -> 'Coordinate':
        """返回偏移后的坐标，越界时抛出 OutOfRangeError"""
        return Coordinate(self.file + d_file, self.rank + d_rank)

    @staticmethod
    def is_valid(file: int, rank: int) -> bool:
        return 0 <= file < BOARD_FILES and 0 <= rank < BOARD_RANKS

    @staticmethod
    def is_adjacent(pos1: 'Coordinate', pos2: 'Coordinate') -> bool:
        """两个位置是否横向或纵向相邻"""
        d_file = abs(pos1.file - pos2.file)
        d_rank = abs(pos1.rank - pos2.rank)
        return d_file + d_rank == 1

    def to_uci(self) -> str:
        """
        转换为UCI坐标，如 "h2"

        UCI行号自下而上计数，与内部自上而下的行号相反。
        """
        return f"{chr(ord('a') + self.file)}{BOARD_RANKS - 1 - self.rank}"

    @classmethod
    def from_uci(cls, text: str) -> 'Coordinate':
        """
        从UCI坐标创建，格式错误时抛出 ValueError
        """
        if len(text) != 2 or not text[1].isdigit():
            raise ValueError(f"无效的UCI坐标: {text!r}")
        file = ord(text[0]) - ord('a')
        rank = BOARD_RANKS - 1 - int(text[1])
        return cls(file, rank)

    @classmethod
    def all_squares(cls):
        """按行优先遍历全部90个交叉点"""
        for rank in range(BOARD_RANKS):
            for file in range(BOARD_FILES):
                yield cls(file, rank)

    def __str__(self) -> str:
        return f"({self.file}, {self.rank})"


def in_palace(coord: Coordinate, side: Side) -> bool:
    return coord.in_palace(side)


def across_river(coord: Coordinate, side: Side) -> bool:
    return coord.across_river(side)
