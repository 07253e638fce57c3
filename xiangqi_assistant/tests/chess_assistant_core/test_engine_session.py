"""
测试EngineSession类的功能

状态转换使用脚本化的假引擎进程，取消和异常路径使用模拟的引擎客户端。
"""

import sys
import threading
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from xiangqi_assistant.src.chess_assistant_core.config import AnalysisConfig, EngineConfig
from xiangqi_assistant.src.chess_assistant_core.engine_protocol import (
    EngineInfo, EngineMove, EngineSession, SessionState, UciEngine
)
from xiangqi_assistant.src.chess_assistant_core.rules_engine import (
    ChessBoard, Coordinate, PieceKind, Side
)
from xiangqi_assistant.src.chess_assistant_core.utils.exceptions import ConfigurationError

FAKE_ENGINE = str(Path(__file__).with_name("fake_uci_engine.py").resolve())
TIMEOUT = 10


def fake_engine_config(mode: str = "normal", **overrides) -> EngineConfig:
    settings = dict(
        engine_path=sys.executable,
        engine_args=[FAKE_ENGINE, mode],
        startup_timeout=5.0,
        handshake_timeout=5.0,
        search_timeout=5.0,
        quit_grace_period=2.0,
        options={"Threads": 2},
    )
    settings.update(overrides)
    return EngineConfig(**settings)


def mock_engine() -> MagicMock:
    engine = MagicMock(spec=UciEngine)
    engine.engine_path = "mock-engine"
    engine.return_code = None
    engine.handshake.return_value = EngineInfo(name="Mock", handshake_complete=True)
    engine.is_ready.return_value = True
    engine.is_running.return_value = True
    engine.go.return_value = EngineMove(move="h2e2", depth=5, score_cp=20)
    return engine


class TestEngineSessionWithFakeEngine:
    """与假引擎进程交互的测试"""

    def setup_method(self):
        self.session = None

    def teardown_method(self):
        if self.session is not None:
            self.session.shutdown()

    def open_session(self, mode: str = "normal", **overrides) -> EngineSession:
        self.session = EngineSession(fake_engine_config(mode, **overrides))
        return self.session

    def test_state_transitions(self):
        """IDLE → STARTING → READY → ANALYZING → READY"""
        session = self.open_session()
        states = []
        suggestions = []
        session.add_state_listener(lambda state, reason: states.append(state))
        session.add_suggestion_listener(suggestions.append)
        assert session.state is SessionState.IDLE

        assert session.start().result(timeout=TIMEOUT)
        assert session.engine_info.name == "FakeEngine"
        assert "Threads" in session.engine_info.parsed_options

        suggestion = session.analyze(ChessBoard()).result(timeout=TIMEOUT)
        assert states == [
            SessionState.STARTING, SessionState.READY,
            SessionState.ANALYZING, SessionState.READY,
        ]
        assert suggestions == [None, suggestion]
        assert session.latest_suggestion is suggestion

    def test_suggestion_content(self):
        session = self.open_session()
        session.start().result(timeout=TIMEOUT)

        suggestion = session.analyze(ChessBoard(), depth=1).result(timeout=TIMEOUT)
        assert suggestion.uci_move == "h2e2"
        assert suggestion.move.from_pos == Coordinate(7, 7)
        assert suggestion.move.to_pos == Coordinate(4, 7)
        assert suggestion.move.piece.kind is PieceKind.CANNON
        assert suggestion.ponder == "h9g7"
        assert suggestion.depth == 1
        assert suggestion.nodes == 120
        assert suggestion.score_cp == 35
        assert suggestion.pv == ["h2e2", "h9g7"]
        assert "炮二平五" in suggestion.description

    def test_score_from_red_perspective(self):
        """黑方行棋时评分取反"""
        session = self.open_session()
        session.start().result(timeout=TIMEOUT)

        suggestion = session.analyze(ChessBoard(), side=Side.BLACK).result(timeout=TIMEOUT)
        assert suggestion.score_cp == -35

    def test_empty_from_square(self):
        """引擎走法起点无子时没有建议"""
        session = self.open_session()
        session.start().result(timeout=TIMEOUT)

        board = ChessBoard()
        board.remove_piece(Coordinate(7, 7))
        assert session.analyze(board).result(timeout=TIMEOUT) is None
        assert session.latest_suggestion is None
        assert session.state is SessionState.READY

    def test_top_moves(self):
        session = self.open_session()
        assert session.top_moves(3) == []

        session.start().result(timeout=TIMEOUT)
        suggestion = session.analyze(ChessBoard()).result(timeout=TIMEOUT)
        assert session.top_moves(3) == [suggestion]
        assert session.top_moves(1, depth=20) == [suggestion]
        assert session.top_moves(0) == []

    def test_process_dies_during_search(self):
        session = self.open_session("crash-on-go")
        session.start().result(timeout=TIMEOUT)

        assert session.analyze(ChessBoard()).result(timeout=TIMEOUT) is None
        assert session.state is SessionState.ERROR
        assert "意外退出" in session.error_reason
        assert not session.engine.is_running()

    def test_silent_engine(self):
        session = self.open_session("silent", startup_timeout=0.3)
        assert not session.start().result(timeout=TIMEOUT)
        assert session.state is SessionState.ERROR
        assert session.error_reason

    def test_handshake_timeout(self):
        session = self.open_session("no-uciok", handshake_timeout=0.3)
        assert not session.start().result(timeout=TIMEOUT)
        assert session.state is SessionState.ERROR
        assert not session.engine.is_running()

    def test_stop_clears_suggestion(self):
        session = self.open_session()
        session.start().result(timeout=TIMEOUT)
        session.analyze(ChessBoard()).result(timeout=TIMEOUT)

        session.stop()
        assert session.state is SessionState.IDLE
        assert session.latest_suggestion is None
        assert not session.engine.is_running()

    def test_shutdown_keeps_suggestion(self):
        session = self.open_session()
        session.start().result(timeout=TIMEOUT)
        suggestion = session.analyze(ChessBoard()).result(timeout=TIMEOUT)

        session.shutdown()
        assert session.state is SessionState.IDLE
        assert session.latest_suggestion is suggestion

    def test_restart_after_stop(self):
        session = self.open_session()
        session.start().result(timeout=TIMEOUT)
        session.stop()

        assert session.start().result(timeout=TIMEOUT)
        assert session.state is SessionState.READY

    def test_context_manager(self):
        with EngineSession(fake_engine_config()) as session:
            assert session.start().result(timeout=TIMEOUT)
        assert session.state is SessionState.IDLE
        assert not session.engine.is_running()


class TestEngineSessionWithMockEngine:
    """使用模拟引擎客户端的测试"""

    def setup_method(self):
        self.engine = mock_engine()
        self.session = EngineSession(EngineConfig(engine_path="mock-engine"), engine=self.engine)

    def teardown_method(self):
        self.session.shutdown()

    def block_search(self):
        """让第一次搜索阻塞，直到收到stop"""
        searching = threading.Event()
        release = threading.Event()

        def go(depth, movetime_ms=None, on_info=None):
            searching.set()
            release.wait(TIMEOUT)
            return EngineMove(move="h2e2", depth=depth)

        def stop():
            release.set()
            return True

        self.engine.go.side_effect = go
        self.engine.stop.side_effect = stop
        return searching, release

    def test_start_requires_engine_path(self):
        session = EngineSession(EngineConfig(), engine=self.engine)
        with pytest.raises(ConfigurationError):
            session.start()

    def test_start_applies_options(self):
        session = EngineSession(
            EngineConfig(engine_path="mock-engine", options={"Threads": 4, "Hash": 64}),
            engine=self.engine
        )
        assert session.start().result(timeout=TIMEOUT)
        self.engine.set_option.assert_any_call("Threads", 4)
        self.engine.set_option.assert_any_call("Hash", 64)
        self.engine.new_game.assert_called_once()
        session.shutdown()

    def test_analyze_before_start(self):
        future = self.session.analyze(ChessBoard())
        assert future.result(timeout=TIMEOUT) is None
        assert self.session.state is SessionState.IDLE
        self.engine.go.assert_not_called()

    def test_position_sent_for_snapshot(self):
        self.session.start().result(timeout=TIMEOUT)
        board = ChessBoard()
        board.make_move(board.create_move(Coordinate(7, 7), Coordinate(4, 7)))

        future = self.session.analyze(board, depth=9)
        # 提交后修改棋盘不影响分析
        board.undo_move()
        future.result(timeout=TIMEOUT)

        fen, moves = self.engine.set_position.call_args.args
        assert fen.split()[1] == "b"
        assert "1C2C4" in fen
        assert moves == []
        assert self.engine.go.call_args.args[0] == 9

    def test_send_move_history(self):
        session = EngineSession(EngineConfig(engine_path="mock-engine"),
                                AnalysisConfig(send_move_history=True), engine=self.engine)
        session.start().result(timeout=TIMEOUT)
        board = ChessBoard()
        board.make_move(board.create_move(Coordinate(7, 7), Coordinate(4, 7)))

        session.analyze(board).result(timeout=TIMEOUT)
        fen, moves = self.engine.set_position.call_args.args
        assert fen.split()[1] == "w"
        assert moves == ["h2e2"]
        session.shutdown()

    def test_new_analysis_stops_running_search(self):
        """新分析前对进行中的搜索发送stop，旧结果不发布"""
        searching, _ = self.block_search()
        self.session.start().result(timeout=TIMEOUT)

        first = self.session.analyze(ChessBoard(), depth=5)
        assert searching.wait(TIMEOUT)
        second = self.session.analyze(ChessBoard(), depth=7)

        self.engine.stop.assert_called_once()
        assert second.result(timeout=TIMEOUT).depth == 7
        assert first.result(timeout=TIMEOUT).depth == 5
        assert self.session.latest_suggestion.depth == 7
        assert self.session.state is SessionState.READY

    def test_finished_search_not_published_after_new_analysis(self):
        """旧任务已拿到结果但尚未发布时开始新分析，旧结果不发布"""
        self.session.start().result(timeout=TIMEOUT)
        published = []
        self.session.add_suggestion_listener(
            lambda suggestion: published.append(suggestion.uci_move if suggestion else None))

        replies = iter([EngineMove(move="h2e2", depth=5), EngineMove(move="b2e2", depth=7)])
        first_returned = threading.Event()

        def go(depth, movetime_ms=None, on_info=None):
            reply = next(replies)
            if depth == 5:
                first_returned.set()
            return reply

        self.engine.go.side_effect = go

        # 持有发布锁，让第一个任务停在发布之前
        with self.session._publish_lock:
            first = self.session.analyze(ChessBoard(), depth=5)
            assert first_returned.wait(TIMEOUT)
            second = self.session.analyze(ChessBoard(), depth=7)

        assert second.result(timeout=TIMEOUT).uci_move == "b2e2"
        assert first.result(timeout=TIMEOUT).uci_move == "h2e2"
        assert published == [None, None, "b2e2"]
        assert self.session.latest_suggestion.uci_move == "b2e2"
        assert self.session.state is SessionState.READY

    def test_new_analysis_without_stop(self):
        searching, release = self.block_search()
        session = EngineSession(EngineConfig(engine_path="mock-engine"),
                                AnalysisConfig(stop_before_analyze=False), engine=self.engine)
        session.start().result(timeout=TIMEOUT)

        session.analyze(ChessBoard(), depth=5)
        assert searching.wait(TIMEOUT)
        second = session.analyze(ChessBoard(), depth=7)
        self.engine.stop.assert_not_called()

        release.set()
        assert second.result(timeout=TIMEOUT).depth == 7
        assert session.latest_suggestion.depth == 7
        session.shutdown()

    def test_stop_analysis_keeps_engine(self):
        searching, _ = self.block_search()
        self.session.start().result(timeout=TIMEOUT)

        job = self.session.analyze(ChessBoard())
        assert searching.wait(TIMEOUT)
        self.session.stop_analysis()
        job.result(timeout=TIMEOUT)

        self.engine.stop.assert_called_once()
        self.engine.close.assert_not_called()
        assert self.session.state is SessionState.READY
        assert self.session.latest_suggestion is None

    def test_process_exit_moves_to_error(self):
        self.session.start().result(timeout=TIMEOUT)
        self.engine.go.return_value = EngineMove()
        self.engine.is_running.return_value = False

        assert self.session.analyze(ChessBoard()).result(timeout=TIMEOUT) is None
        assert self.session.state is SessionState.ERROR
        self.engine.close.assert_called()

    def test_unexpected_failure_returns_to_ready(self):
        self.session.start().result(timeout=TIMEOUT)
        self.engine.go.side_effect = RuntimeError("boom")

        assert self.session.analyze(ChessBoard()).result(timeout=TIMEOUT) is None
        assert self.session.state is SessionState.READY

    def test_no_move_from_engine(self):
        self.session.start().result(timeout=TIMEOUT)
        self.engine.go.return_value = EngineMove()

        assert self.session.analyze(ChessBoard()).result(timeout=TIMEOUT) is None
        assert self.session.state is SessionState.READY

    def test_listener_errors_do_not_break_session(self):
        def broken(*args):
            raise RuntimeError("listener")

        self.session.add_state_listener(broken)
        self.session.add_suggestion_listener(broken)
        assert self.session.start().result(timeout=TIMEOUT)
        assert self.session.analyze(ChessBoard()).result(timeout=TIMEOUT) is not None
        assert self.session.state is SessionState.READY

    def test_option_and_ready_run_on_executor(self):
        self.session.start().result(timeout=TIMEOUT)
        self.engine.set_option.return_value = True

        assert self.session.set_option("Hash", 128).result(timeout=TIMEOUT)
        self.engine.set_option.assert_called_with("Hash", 128)
        assert self.session.is_ready().result(timeout=TIMEOUT)
