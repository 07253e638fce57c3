"""
引擎分析会话

把一个UCI引擎进程包装成带状态的分析服务：所有进程读写都在单线程执行器上按顺序执行，
调用方拿到Future，界面通过监听器订阅状态和最新建议。
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional

from .notation import parse_uci_move, position_arguments
from .uci_engine import EngineInfo, EngineMove, UciEngine
from ..config.engine_config import AnalysisConfig, EngineConfig
from ..rules_engine import ChessBoard, Move, Side
from ..utils.exceptions import (
    ConfigurationError, EngineUnavailableError, ProcessExitedError
)
from ..utils.logger import LoggerMixin, performance_logger


class SessionState(Enum):
    """会话状态"""
    IDLE = "idle"
    STARTING = "starting"
    READY = "ready"
    ANALYZING = "analyzing"
    ERROR = "error"


@dataclass
class MoveSuggestion:
    """
    引擎给出的走法建议

    score_cp 和 mate 均已换算为红方视角，正数对红方有利。
    """
    move: Move
    uci_move: str
    ponder: str = ""
    depth: int = 0
    nodes: int = 0
    time_ms: int = 0
    score_cp: Optional[int] = None
    mate: Optional[int] = None
    pv: List[str] = field(default_factory=list)

    @property
    def description(self) -> str:
        if self.mate is not None:
            score = f"杀棋 {self.mate:+d}"
        elif self.score_cp is not None:
            score = f"{self.score_cp:+d}"
        else:
            score = "-"
        return f"{self.move.notation} ({self.uci_move}) 深度{self.depth} 评分{score}"


StateListener = Callable[[SessionState, Optional[str]], None]
SuggestionListener = Callable[[Optional[MoveSuggestion]], None]


class EngineSession(LoggerMixin):
    """
    引擎分析会话

    状态转换:
        IDLE → STARTING → READY / ERROR
        READY → ANALYZING → READY，引擎中途退出时 → ERROR
        任意状态 → IDLE (stop / shutdown)

    每次 analyze() 递增代号，旧任务完成时代号不符则不发布结果。
    """

    def __init__(
        self,
        engine_config: Optional[EngineConfig] = None,
        analysis_config: Optional[AnalysisConfig] = None,
        engine: Optional[UciEngine] = None
    ):
        """
        初始化分析会话

        Args:
            engine_config: 引擎配置
            analysis_config: 分析配置
            engine: 引擎客户端，默认按engine_config创建
        """
        self.engine_config = engine_config or EngineConfig()
        self.analysis_config = analysis_config or AnalysisConfig()
        self.engine = engine or UciEngine(
            startup_timeout=self.engine_config.startup_timeout,
            read_timeout=self.engine_config.handshake_timeout,
            search_timeout=self.engine_config.search_timeout,
            quit_grace_period=self.engine_config.quit_grace_period,
        )

        self._lock = threading.Lock()
        # 代号检查与发布在同一把锁内完成
        self._publish_lock = threading.RLock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._job: Optional[Future] = None
        self._generation = 0

        self._state = SessionState.IDLE
        self._error_reason: Optional[str] = None
        self._latest: Optional[MoveSuggestion] = None
        self._engine_info: Optional[EngineInfo] = None

        self._state_listeners: List[StateListener] = []
        self._suggestion_listeners: List[SuggestionListener] = []

    # ==================== 可观察状态 ====================

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def error_reason(self) -> Optional[str]:
        return self._error_reason

    @property
    def latest_suggestion(self) -> Optional[MoveSuggestion]:
        return self._latest

    @property
    def engine_info(self) -> Optional[EngineInfo]:
        return self._engine_info

    def add_state_listener(self, listener: StateListener):
        """注册状态监听器，参数为 (新状态, 错误原因)"""
        self._state_listeners.append(listener)

    def add_suggestion_listener(self, listener: SuggestionListener):
        """注册建议监听器，新分析开始时以None调用一次"""
        self._suggestion_listeners.append(listener)

    def _set_state(self, state: SessionState, reason: Optional[str] = None,
                   generation: Optional[int] = None):
        """generation不为None时，只有代号仍是最新才改变状态"""
        with self._lock:
            if generation is not None and generation != self._generation:
                return
            if self._state is state and self._error_reason == reason:
                return
            self._state = state
            self._error_reason = reason
        self.log_debug(f"会话状态: {state.value}" + (f" ({reason})" if reason else ""))
        for listener in list(self._state_listeners):
            try:
                listener(state, reason)
            except Exception:
                self.log_exception("状态监听器执行失败")

    def _publish(self, suggestion: Optional[MoveSuggestion],
                 generation: Optional[int] = None) -> bool:
        """
        发布建议并通知监听器

        Returns:
            bool: generation已过期时不发布，返回False
        """
        with self._publish_lock:
            if generation is not None and not self._is_current(generation):
                return False
            self._latest = suggestion
            for listener in list(self._suggestion_listeners):
                try:
                    listener(suggestion)
                except Exception:
                    self.log_exception("建议监听器执行失败")
        return True

    def _io(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="engine-io")
            return self._executor

    def _is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    # ==================== 启动 ====================

    def start(self, engine_path: Optional[str] = None) -> Future:
        """
        启动引擎并完成握手

        Args:
            engine_path: 引擎路径，默认取配置中的路径

        Returns:
            Future[bool]: 是否进入READY状态

        Raises:
            ConfigurationError: 未提供引擎路径
        """
        path = engine_path or self.engine_config.engine_path
        if not path:
            raise ConfigurationError("engine.engine_path", "未配置引擎路径")

        with self._lock:
            generation = self._generation
        self._set_state(SessionState.STARTING)
        return self._io().submit(self._start_engine, path, generation)

    def _start_engine(self, path: str, generation: int) -> bool:
        try:
            self.engine.start(path, args=self.engine_config.engine_args,
                              working_dir=self.engine_config.working_dir)
            info = self.engine.handshake(self.engine_config.handshake_timeout)
            if not info.handshake_complete:
                raise EngineUnavailableError(path, "UCI握手超时")
        except EngineUnavailableError as e:
            self.log_error(str(e))
            self.engine.close()
            self._set_state(SessionState.ERROR, str(e), generation)
            return False

        for name, value in self.engine_config.options.items():
            if name not in info.parsed_options:
                self.log_warning(f"引擎未声明选项: {name}")
            self.engine.set_option(name, value)
        self.engine.new_game()
        if not self.engine.is_ready(self.engine_config.startup_timeout):
            self.log_warning("引擎未响应isready")

        self._engine_info = info
        if not self._is_current(generation):
            # 启动期间会话已被停止
            self.engine.close()
            return False
        self._set_state(SessionState.READY)
        self.log_info(f"引擎就绪: {info.name or path}")
        return True

    # ==================== 分析 ====================

    def analyze(self, board: ChessBoard, side: Optional[Side] = None,
                depth: Optional[int] = None) -> Future:
        """
        分析局面，返回引擎建议

        取消尚未完成的上一次分析；配置了stop_before_analyze时，
        对正在进行的搜索直接发送stop，不经过执行器排队。

        Args:
            board: 棋盘，分析使用其快照
            side: 行棋方，默认取棋盘当前行棋方
            depth: 搜索深度，默认取配置

        Returns:
            Future[Optional[MoveSuggestion]]: 引擎建议，无建议时为None
        """
        with self._lock:
            state = self._state
            accepted = state in (SessionState.READY, SessionState.ANALYZING)
            if accepted:
                self._generation += 1
            generation = self._generation
            previous = self._job

        if not accepted:
            self.log_warning(f"会话状态为{state.value}，无法分析")
            done: Future = Future()
            done.set_result(None)
            return done

        if previous is not None and not previous.done():
            searching = previous.running()
            previous.cancel()
            if searching and self.analysis_config.stop_before_analyze:
                self.engine.stop()

        snapshot = board.snapshot()
        depth = depth or self.analysis_config.default_depth

        self._set_state(SessionState.ANALYZING)
        self._publish(None)
        job = self._io().submit(self._run_analysis, generation, snapshot, side, depth)
        with self._lock:
            if generation == self._generation:
                self._job = job
        return job

    def _run_analysis(self, generation: int, board: ChessBoard,
                      side: Optional[Side], depth: int) -> Optional[MoveSuggestion]:
        if not self._is_current(generation):
            return None

        timer = f"analysis-{generation}"
        performance_logger.start_timer(timer)
        try:
            suggestion = self._search(board, side, depth)
        except ProcessExitedError as e:
            self.log_error(str(e))
            self.engine.close()
            self._set_state(SessionState.ERROR, str(e), generation)
            return None
        except Exception:
            self.log_exception("分析失败")
            suggestion = None
        finally:
            performance_logger.end_timer(timer)

        if not self._publish(suggestion, generation):
            self.log_debug(f"丢弃过期的分析结果: {suggestion.uci_move if suggestion else None}")
            return suggestion

        self._set_state(SessionState.READY, generation=generation)
        return suggestion

    def _search(self, board: ChessBoard, side: Optional[Side], depth: int) -> Optional[MoveSuggestion]:
        fen, moves = position_arguments(board, self.analysis_config.send_move_history, side)
        self.engine.set_position(fen, moves)
        reply = self.engine.go(depth, self.analysis_config.movetime_ms,
                               on_info=self._on_info)

        if not reply.move:
            if not self.engine.is_running():
                raise ProcessExitedError(self.engine.engine_path, self.engine.return_code)
            self.log_warning("引擎没有给出着法")
            return None

        move = parse_uci_move(reply.move, board)
        if move is None:
            return None

        if reply.nodes:
            performance_logger.log_search_stats(reply.depth, reply.nodes, reply.time_ms)
        return self._to_suggestion(reply, move, side or board.current_player)

    def _on_info(self, progress: EngineMove):
        self.log_debug(f"搜索进度: 深度{progress.depth} 节点{progress.nodes} 主变{' '.join(progress.pv[:4])}")

    @staticmethod
    def _to_suggestion(reply: EngineMove, move: Move, side_to_move: Side) -> MoveSuggestion:
        # 引擎评分以行棋方为正
        sign = 1 if side_to_move is Side.RED else -1
        return MoveSuggestion(
            move=move,
            uci_move=reply.move,
            ponder=reply.ponder,
            depth=reply.depth,
            nodes=reply.nodes,
            time_ms=reply.time_ms,
            score_cp=reply.score_cp * sign if reply.score_cp is not None else None,
            mate=reply.score_mate * sign if reply.score_mate is not None else None,
            pv=list(reply.pv),
        )

    def top_moves(self, count: int, depth: Optional[int] = None) -> List[MoveSuggestion]:
        """
        获取候选着法

        UCI只返回一个最佳着法，因此最多返回最近一次的建议；depth 参数保留但不使用。
        """
        latest = self._latest
        if count <= 0 or latest is None:
            return []
        return [latest]

    def stop_analysis(self):
        """取消当前分析并让引擎停止思考，引擎保持运行"""
        with self._lock:
            self._generation += 1
            job = self._job
            self._job = None

        if job is not None and not job.done():
            searching = job.running()
            job.cancel()
            if searching:
                self.engine.stop()

        if self._state is SessionState.ANALYZING:
            self._set_state(SessionState.READY)

    # ==================== 引擎设置 ====================

    def set_option(self, name: str, value: Any = None) -> Future:
        """在执行器上发送setoption"""
        return self._io().submit(self.engine.set_option, name, value)

    def is_ready(self) -> Future:
        """在执行器上发送isready"""
        return self._io().submit(self.engine.is_ready, self.engine_config.startup_timeout)

    # ==================== 关闭 ====================

    def close(self):
        """唯一的资源释放入口：作废未完成任务，关闭引擎和执行器"""
        with self._lock:
            self._generation += 1
            job = self._job
            self._job = None
            executor = self._executor
            self._executor = None

        if job is not None and not job.done():
            job.cancel()

        self.engine.close()
        if executor is not None:
            executor.shutdown(wait=False)

    def stop(self):
        """停止会话并清除最近的建议"""
        self.close()
        self._publish(None)
        self._set_state(SessionState.IDLE)

    def shutdown(self):
        """停止会话，保留最近的建议"""
        self.close()
        self._set_state(SessionState.IDLE)

    def __enter__(self) -> 'EngineSession':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
