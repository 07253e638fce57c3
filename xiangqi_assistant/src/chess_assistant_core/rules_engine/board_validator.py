"""
棋局合法性验证器

检查由识别模块或外部输入得到的棋局是否可能出现在真实对局中。
"""

from collections import Counter
from typing import Any, Dict, List, Tuple

from .chess_board import ChessBoard, HOME_RANKS
from .piece import PieceKind, PIECE_LIMITS, PIECE_NAMES
from .position import Side


class BoardValidator:
    """
    棋局合法性验证器

    每项验证都返回 (是否合法, 错误信息列表)。
    """

    def validate_piece_counts(self, board: ChessBoard) -> Tuple[bool, List[str]]:
        """
        验证棋子数量

        Args:
            board: 要验证的棋盘

        Returns:
            Tuple[bool, List[str]]: (是否合法, 错误信息列表)
        """
        errors = []
        counts = Counter((piece.side, piece.kind) for piece in board.pieces)

        for side in Side:
            for kind, limit in PIECE_LIMITS.items():
                count = counts.get((side, kind), 0)
                name = f"{side.display_name}{_name_of(kind, side)}"
                if kind is PieceKind.GENERAL:
                    if count != 1:
                        errors.append(f"{name}数量错误: {count}, 应为1")
                elif count > limit:
                    errors.append(f"{name}数量超限: {count} > {limit}")

        return len(errors) == 0, errors

    def validate_piece_positions(self, board: ChessBoard) -> Tuple[bool, List[str]]:
        """
        验证棋子位置

        帅仕须在九宫内，相不能过河，兵未过河时不能退到初始行之后。
        """
        errors = []

        for piece in board.pieces:
            if not piece.is_in_correct_position():
                errors.append(f"{piece.side.display_name}{piece.symbol}位置错误: {piece.position}")
            elif piece.kind is PieceKind.SOLDIER and _behind_start(piece.position.rank, piece.side):
                errors.append(f"{piece.side.display_name}{piece.symbol}位于初始行之后: {piece.position}")

        return len(errors) == 0, errors

    def validate_generals_facing(self, board: ChessBoard) -> Tuple[bool, List[str]]:
        """验证帅将是否照面"""
        if board.generals_facing():
            return False, ["帅将照面，中间无棋子阻挡"]
        return True, []

    def validate_side_to_move(self, board: ChessBoard) -> Tuple[bool, List[str]]:
        """不行棋的一方不能处于被将军状态"""
        waiting = board.current_player.opponent
        if board.is_in_check(waiting):
            return False, [f"{waiting.display_name}未行棋却处于被将军状态"]
        return True, []

    def full_validation(self, board: ChessBoard) -> Tuple[bool, List[str]]:
        """
        完整的棋局验证

        Returns:
            Tuple[bool, List[str]]: (是否合法, 所有错误信息列表)
        """
        all_errors = []
        for validation_func in self._validations().values():
            _, errors = validation_func(board)
            all_errors.extend(errors)
        return len(all_errors) == 0, all_errors

    def get_validation_report(self, board: ChessBoard) -> Dict[str, Any]:
        """
        获取详细的验证报告

        Returns:
            Dict[str, Any]: 验证报告
        """
        report = {
            'overall_valid': True,
            'total_errors': 0,
            'validations': {}
        }

        for test_name, test_func in self._validations().items():
            is_valid, errors = test_func(board)
            report['validations'][test_name] = {
                'valid': is_valid,
                'errors': errors,
                'error_count': len(errors)
            }
            if not is_valid:
                report['overall_valid'] = False
                report['total_errors'] += len(errors)

        return report

    def _validations(self):
        return {
            'piece_counts': self.validate_piece_counts,
            'piece_positions': self.validate_piece_positions,
            'generals_facing': self.validate_generals_facing,
            'side_to_move': self.validate_side_to_move,
        }


def _name_of(kind: PieceKind, side: Side) -> str:
    red_name, black_name = PIECE_NAMES[kind]
    return red_name if side is Side.RED else black_name


def _behind_start(rank: int, side: Side) -> bool:
    soldier_rank = HOME_RANKS[side][2]
    # 后退方向上越过初始兵行
    return (rank - soldier_rank) * side.forward < 0
