"""
UCI线路格式转换

负责棋盘与FEN串、走法与UCI坐标串之间的互相转换。
FEN从黑方底线（内部第0行）写到红方底线（内部第9行）；
UCI坐标的行号自下而上，与内部行号相反。
"""

import logging
from typing import List, Optional, Tuple

from ..rules_engine import ChessBoard, Coordinate, Move, PieceKind, Side
from ..rules_engine.position import BOARD_FILES, BOARD_RANKS
from ..utils.exceptions import BoardStateError, OutOfRangeError

logger = logging.getLogger(__name__)

INITIAL_FEN = "rnbakabnr/9/1c5c1/p1p1p1p1p/9/9/P1P1P1P1P/1C5C1/9/RNBAKABNR w - - 0 1"


def board_to_fen(board: ChessBoard, side: Optional[Side] = None) -> str:
    """
    转换为FEN格式

    Args:
        board: 棋盘
        side: 行棋方，默认取棋盘当前行棋方

    Returns:
        str: FEN格式字符串
    """
    side = side or board.current_player
    fen_rows = []

    for rank in range(BOARD_RANKS):
        fen_row = ""
        empty_count = 0

        for file in range(BOARD_FILES):
            piece = board.piece_at(Coordinate(file, rank))
            if piece is None:
                empty_count += 1
                continue
            if empty_count > 0:
                fen_row += str(empty_count)
                empty_count = 0
            fen_row += piece.fen_letter

        if empty_count > 0:
            fen_row += str(empty_count)
        fen_rows.append(fen_row)

    return f"{'/'.join(fen_rows)} {side.fen_token} - - 0 1"


def fen_to_board(fen: str) -> ChessBoard:
    """
    从FEN格式创建棋盘

    Raises:
        BoardStateError: FEN格式无效
    """
    parts = fen.split()
    if not parts:
        raise BoardStateError("无效的FEN格式", "内容为空")

    rows = parts[0].split("/")
    if len(rows) != BOARD_RANKS:
        raise BoardStateError("无效的FEN格式", f"应包含{BOARD_RANKS}行, 实际{len(rows)}行")

    player_char = parts[1] if len(parts) > 1 else "w"
    if player_char not in ("w", "r", "b"):
        raise BoardStateError("无效的FEN格式", f"未知的行棋方标记: {player_char}")

    board = ChessBoard(initial_position=False)
    placements = {}
    for rank, row in enumerate(rows):
        file = 0
        for char in row:
            if char in "123456789":
                file += int(char)
                continue
            try:
                kind = PieceKind.from_letter(char)
                position = Coordinate(file, rank)
            except (ValueError, OutOfRangeError):
                raise BoardStateError("无效的FEN格式", f"第{rank + 1}行无法解析: {row}")
            side = Side.RED if char.isupper() else Side.BLACK
            placements[position] = (kind, side)
            file += 1
        if file != BOARD_FILES:
            raise BoardStateError("无效的FEN格式", f"第{rank + 1}行列数为{file}")

    board.set_position(placements, Side.BLACK if player_char == "b" else Side.RED)
    return board


def move_to_uci(move: Move) -> str:
    """走法转换为UCI坐标串，如 "h2e2" """
    return move.to_coordinate_notation()


def uci_to_coordinates(token: str) -> Tuple[Coordinate, Coordinate]:
    """
    解析四字符UCI坐标串

    Raises:
        ValueError: 格式错误或坐标越界
    """
    if len(token) != 4:
        raise ValueError(f"UCI走法应为4个字符: {token!r}")
    return Coordinate.from_uci(token[:2]), Coordinate.from_uci(token[2:])


def parse_uci_move(token: str, board: ChessBoard) -> Optional[Move]:
    """
    把引擎返回的走法映射为棋盘上的走法

    起点必须有子；格式错误或起点为空时返回None。
    """
    try:
        from_pos, to_pos = uci_to_coordinates(token)
    except ValueError as e:
        logger.warning(f"无法解析引擎走法 {token!r}: {e}")
        return None

    move = board.create_move(from_pos, to_pos)
    if move is None:
        logger.warning(f"引擎走法 {token} 的起点 {from_pos} 没有棋子")
    return move


def position_arguments(board: ChessBoard, include_history: bool = False,
                       side: Optional[Side] = None) -> Tuple[str, List[str]]:
    """
    生成 position 命令的参数

    Args:
        board: 棋盘
        include_history: 为True时发送走法历史前的局面加上历史走法
        side: 覆盖行棋方，仅在不发送历史时生效

    Returns:
        Tuple[str, List[str]]: (FEN, UCI走法列表)
    """
    history = board.history
    if not include_history or not history:
        return board_to_fen(board, side), []

    root = board.copy()
    while root.undo_move():
        pass
    return board_to_fen(root), [move_to_uci(move) for move in history]
