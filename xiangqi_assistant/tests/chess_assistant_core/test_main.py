"""
测试命令行入口
"""

import sys
from pathlib import Path

from click.testing import CliRunner

from xiangqi_assistant.src.chess_assistant_core.config import ConfigManager
from xiangqi_assistant.src.chess_assistant_core.engine_protocol import INITIAL_FEN
from xiangqi_assistant.src.chess_assistant_core.main import apply_moves, cli
from xiangqi_assistant.src.chess_assistant_core.rules_engine import ChessBoard, Side
from xiangqi_assistant.src.chess_assistant_core.utils.exceptions import InvalidMoveError

FAKE_ENGINE = str(Path(__file__).with_name("fake_uci_engine.py").resolve())
MATE_FEN = "4k4/9/9/9/9/4RR3/9/9/9/3K5 b - - 0 1"


class TestApplyMoves:
    """apply_moves的测试"""

    def test_moves_applied(self):
        board = apply_moves(ChessBoard(), ("h2e2", "h9g7"))
        assert len(board.history) == 2
        assert board.current_player is Side.RED

    def test_refused_move(self):
        board = ChessBoard()
        try:
            apply_moves(board, ("a0a5",))
        except InvalidMoveError as e:
            assert e.move_str == "a0a5"
        else:
            raise AssertionError("应拒绝被挡住的车")

    def test_malformed_move(self):
        try:
            apply_moves(ChessBoard(), ("zz",))
        except InvalidMoveError as e:
            assert e.move_str == "zz"
        else:
            raise AssertionError("应拒绝格式错误的走法")


class TestCli:
    """命令行的测试"""

    def setup_method(self):
        self.runner = CliRunner()

    def test_show_initial(self):
        result = self.runner.invoke(cli, ['show'])
        assert result.exit_code == 0
        assert INITIAL_FEN in result.output
        assert "局面检查通过" in result.output

    def test_show_with_moves(self):
        result = self.runner.invoke(cli, ['show', '--moves', 'h2e2', '--moves', 'h9g7'])
        assert result.exit_code == 0
        assert "1C2C4" in result.output

    def test_show_illegal_move(self):
        result = self.runner.invoke(cli, ['show', '--moves', 'a0a5'])
        assert result.exit_code == 1
        assert "非法走法" in result.output

    def test_show_bad_fen(self):
        result = self.runner.invoke(cli, ['show', '--fen', 'not-a-fen'])
        assert result.exit_code == 1

    def test_show_fen_with_non_ascii_digit(self):
        fen = "rnbakabnr/²/1c5c1/p1p1p1p1p/9/9/P1P1P1P1P/1C5C1/9/RNBAKABNR w - - 0 1"
        result = self.runner.invoke(cli, ['show', '--fen', fen])
        assert result.exit_code == 1
        assert not isinstance(result.exception, ValueError)
        assert "无效的FEN格式" in result.output

    def test_moves(self):
        result = self.runner.invoke(cli, ['moves'])
        assert result.exit_code == 0
        assert "44" in result.output
        assert "h2e2" in result.output

    def test_analyze_finished_game(self):
        result = self.runner.invoke(cli, ['analyze', '--fen', MATE_FEN])
        assert result.exit_code == 0
        assert "对局已结束" in result.output

    def test_analyze_without_engine(self):
        result = self.runner.invoke(cli, ['analyze'])
        assert result.exit_code == 1
        assert "engine_path" in result.output

    def test_analyze_with_fake_engine(self, tmp_path):
        config_dir = tmp_path / "configs"
        ConfigManager(str(config_dir)).update_config(
            'engine', engine_args=[FAKE_ENGINE, "normal"], quit_grace_period=2.0)

        result = self.runner.invoke(cli, [
            '--config-dir', str(config_dir),
            'analyze', '--engine', sys.executable, '--depth', '3',
        ])
        assert result.exit_code == 0, result.output
        assert "FakeEngine" in result.output
        assert "h2e2" in result.output
        assert "炮二平五" in result.output
