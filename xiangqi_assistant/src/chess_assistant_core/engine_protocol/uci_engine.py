"""
UCI 引擎通信

实现 UCI (Universal Chess Interface) 协议的客户端，通过标准输入输出驱动外部象棋引擎进程
（例如 Pikafish）。读写异常只让当次调用返回空结果，不向上抛出。
"""

import queue
import re
import subprocess
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..utils.exceptions import EngineUnavailableError, ProtocolDesyncError
from ..utils.logger import LoggerMixin


class EngineProcessState(Enum):
    """引擎进程状态"""
    NOT_STARTED = "not_started"
    STARTING = "starting"
    HANDSHAKING = "handshaking"
    READY = "ready"
    THINKING = "thinking"
    STOPPED = "stopped"


@dataclass
class EngineOption:
    """引擎通过 option 行声明的可调参数"""
    name: str
    type: str
    default: Optional[str] = None
    min: Optional[int] = None
    max: Optional[int] = None
    vars: List[str] = field(default_factory=list)


@dataclass
class EngineInfo:
    """引擎信息"""
    name: str = ""
    author: str = ""
    options: List[str] = field(default_factory=list)
    parsed_options: Dict[str, EngineOption] = field(default_factory=dict)
    handshake_complete: bool = False


@dataclass
class EngineMove:
    """引擎返回的着法及搜索统计"""
    move: str = ""
    ponder: str = ""
    depth: int = 0
    seldepth: int = 0
    nodes: int = 0
    time_ms: int = 0
    score_cp: Optional[int] = None
    score_mate: Optional[int] = None
    pv: List[str] = field(default_factory=list)


_OPTION_KEYWORDS = ("name", "type", "default", "min", "max", "var")

_INFO_PATTERNS = {
    'depth': re.compile(r"\bdepth (\d+)"),
    'seldepth': re.compile(r"\bseldepth (\d+)"),
    'nodes': re.compile(r"\bnodes (\d+)"),
    'time_ms': re.compile(r"\btime (\d+)"),
}
_SCORE_PATTERN = re.compile(r"\bscore (cp|mate) (-?\d+)")
_PV_PATTERN = re.compile(r"\bpv ((?:[a-i]\d[a-i]\d\s*)+)")

DEFAULT_SEARCH_DEPTH = 15


def parse_option_line(line: str) -> EngineOption:
    """
    解析 option 行，如 "option name Threads type spin default 1 min 1 max 1024"

    Raises:
        ProtocolDesyncError: 缺少 name 或 type
    """
    tokens = line.split()
    if not tokens or tokens[0] != "option":
        raise ProtocolDesyncError(line, "不是option行")

    values: Dict[str, List[str]] = {}
    variants: List[str] = []
    key = None
    for token in tokens[1:]:
        if token in _OPTION_KEYWORDS:
            key = token
            if key == "var":
                variants.append("")
            else:
                values.setdefault(key, [])
            continue
        if key is None:
            raise ProtocolDesyncError(line, f"意外的字段 {token}")
        if key == "var":
            variants[-1] = f"{variants[-1]} {token}".strip()
        else:
            values[key].append(token)

    name = " ".join(values.get("name", []))
    option_type = " ".join(values.get("type", []))
    if not name or not option_type:
        raise ProtocolDesyncError(line, "缺少name或type")

    def _int_or_none(field_name: str) -> Optional[int]:
        text = " ".join(values.get(field_name, []))
        try:
            return int(text)
        except ValueError:
            return None

    default = values.get("default")
    return EngineOption(
        name=name,
        type=option_type,
        default=" ".join(default) if default is not None else None,
        min=_int_or_none("min"),
        max=_int_or_none("max"),
        vars=variants,
    )


def parse_bestmove(line: str) -> Tuple[str, str]:
    """
    解析 "bestmove <move> [ponder <move>]"

    Returns:
        Tuple[str, str]: (着法, 后续预测着法)，无着法时着法为空串

    Raises:
        ProtocolDesyncError: 行中没有着法字段
    """
    parts = line.split()
    if len(parts) < 2 or parts[0] != "bestmove":
        raise ProtocolDesyncError(line, "bestmove行缺少着法")

    move = parts[1]
    if move in ("(none)", "0000"):
        move = ""
    ponder = parts[3] if len(parts) >= 4 and parts[2] == "ponder" else ""
    return move, ponder


def parse_info_line(line: str, result: EngineMove) -> bool:
    """
    从 info 行中尽量提取搜索统计，写入result

    字段可缺失、顺序任意；不符合预期的行原样忽略。

    Returns:
        bool: 是否提取到了任何字段
    """
    if not line.startswith("info") or line.startswith("info string"):
        return False

    found = False
    for attr, pattern in _INFO_PATTERNS.items():
        match = pattern.search(line)
        if match:
            setattr(result, attr, int(match.group(1)))
            found = True

    score = _SCORE_PATTERN.search(line)
    if score:
        if score.group(1) == "cp":
            result.score_cp, result.score_mate = int(score.group(2)), None
        else:
            result.score_cp, result.score_mate = None, int(score.group(2))
        found = True

    pv = _PV_PATTERN.search(line)
    if pv:
        result.pv = pv.group(1).split()
        found = True

    return found


class UciEngine(LoggerMixin):
    """
    UCI 引擎通信类

    持有一个引擎进程：后台读线程把输出逐行放入队列，写入由锁串行化。
    状态机: NOT_STARTED → STARTING → HANDSHAKING → READY ⇄ THINKING → STOPPED
    """

    def __init__(
        self,
        startup_timeout: float = 5.0,
        read_timeout: float = 1.0,
        search_timeout: float = 5.0,
        quit_grace_period: float = 5.0
    ):
        """
        初始化引擎客户端

        Args:
            startup_timeout: 等待进程首行输出的时间(秒)
            read_timeout: 握手及 isready 时每行的读取超时(秒)
            search_timeout: 搜索期间每行的读取超时(秒)
            quit_grace_period: 发送quit后等待进程自行退出的时间(秒)
        """
        self.startup_timeout = startup_timeout
        self.read_timeout = read_timeout
        self.search_timeout = search_timeout
        self.quit_grace_period = quit_grace_period

        self.engine_path = ""
        self.info = EngineInfo()

        self._process: Optional[subprocess.Popen] = None
        self._lines: Optional[queue.Queue] = None
        self._reader: Optional[threading.Thread] = None
        self._write_lock = threading.Lock()
        self._eof = False
        self._pending_bestmoves = 0
        self._state = EngineProcessState.NOT_STARTED

    @property
    def state(self) -> EngineProcessState:
        return self._state

    @property
    def return_code(self) -> Optional[int]:
        return self._process.poll() if self._process else None

    def is_running(self) -> bool:
        """检查引擎进程是否仍在运行，输出已结束视为退出"""
        return (self._process is not None and self._process.poll() is None
                and not self._eof)

    # ==================== 进程生命周期 ====================

    def start(self, engine_path: str, args: Optional[Sequence[str]] = None,
              timeout: Optional[float] = None,
              working_dir: Optional[str] = None):
        """
        启动引擎并等待首行输出

        Args:
            engine_path: 引擎可执行文件路径
            args: 额外的命令行参数
            timeout: 等待首行输出的时间(秒)，默认为startup_timeout
            working_dir: 工作目录，默认为引擎所在目录

        Raises:
            EngineUnavailableError: 进程无法启动或超时无输出
        """
        if self.is_running():
            self.log_warning(f"引擎已在运行: {self.engine_path}")
            return
        if self._process is not None:
            self._terminate()

        self.engine_path = engine_path
        self.info = EngineInfo()
        self._state = EngineProcessState.STARTING

        command = [engine_path, *(args or [])]
        cwd = working_dir
        if cwd is None and Path(engine_path).parent.is_dir():
            cwd = str(Path(engine_path).parent)

        try:
            self._process = subprocess.Popen(
                command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                cwd=cwd,
                text=True,
                encoding='utf-8',
                errors='replace',
                bufsize=1,
            )
        except OSError as e:
            self._state = EngineProcessState.STOPPED
            self._process = None
            raise EngineUnavailableError(engine_path, str(e))

        self._eof = False
        self._pending_bestmoves = 0
        self._lines = queue.Queue()
        self._reader = threading.Thread(
            target=self._read_output,
            args=(self._process.stdout, self._lines),
            name="uci-reader",
            daemon=True,
        )
        self._reader.start()

        timeout = timeout or self.startup_timeout
        first_line = self.read_line(timeout)
        if first_line is None:
            self.log_error(f"引擎 {timeout}秒内无输出: {engine_path}")
            self._terminate()
            raise EngineUnavailableError(engine_path, "启动后无输出")

        self.log_info(f"引擎已启动: {first_line}")
        self._state = EngineProcessState.HANDSHAKING

    def quit(self):
        """发送quit并等待进程退出，超时后强制结束"""
        process = self._process
        if process is None:
            self._state = EngineProcessState.STOPPED
            return

        if process.poll() is None:
            self.send("quit")
            try:
                process.wait(timeout=self.quit_grace_period)
            except subprocess.TimeoutExpired:
                self.log_warning(f"引擎未在{self.quit_grace_period}秒内退出，强制结束")
                process.kill()
                process.wait()

        self._cleanup()

    def close(self):
        """唯一的资源释放入口，可重复调用"""
        if self._process is None:
            self._state = EngineProcessState.STOPPED
            return
        self.quit()

    def _terminate(self):
        if self._process is not None and self._process.poll() is None:
            self._process.kill()
            self._process.wait()
        self._cleanup()

    def _cleanup(self):
        process = self._process
        self._process = None
        # 进程已退出，读线程随输出结束而返回
        if self._reader is not None:
            self._reader.join(timeout=1.0)
            self._reader = None
        if process is not None:
            for stream in (process.stdin, process.stdout):
                if stream is None:
                    continue
                try:
                    stream.close()
                except OSError as e:
                    self.log_debug(f"关闭管道失败: {e}")
        self._state = EngineProcessState.STOPPED
        self.log_info(f"引擎已关闭: {self.engine_path}")

    def __enter__(self) -> 'UciEngine':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # ==================== 读写 ====================

    def _read_output(self, stream, lines: queue.Queue):
        """后台读线程: 逐行读取输出，结束时放入None"""
        try:
            for raw_line in iter(stream.readline, ''):
                line = raw_line.strip()
                if line:
                    lines.put(line)
        except (OSError, ValueError) as e:
            self.log_debug(f"读取引擎输出中断: {e}")
        finally:
            lines.put(None)

    def read_line(self, timeout: float) -> Optional[str]:
        """
        读取一行输出

        Returns:
            Optional[str]: 超时或进程输出结束时返回None
        """
        if self._lines is None:
            return None
        try:
            line = self._lines.get(timeout=timeout)
        except queue.Empty:
            return None

        if line is None:
            self._eof = True
            # 保留结束标记，之后的读取立即返回
            self._lines.put(None)
            return None

        self.log_debug(f"<< {line}")
        return line

    def _drain(self):
        """丢弃上一轮遗留的输出"""
        if self._lines is None:
            return
        while True:
            try:
                line = self._lines.get_nowait()
            except queue.Empty:
                return
            if line is None:
                self._lines.put(None)
                return
            if line.startswith("bestmove") and self._pending_bestmoves > 0:
                self._pending_bestmoves -= 1
            self.log_debug(f"丢弃遗留输出: {line}")

    def send(self, command: str) -> bool:
        """
        发送一行命令并立即刷新

        Returns:
            bool: 是否写入成功
        """
        process = self._process
        if process is None or process.stdin is None:
            self.log_warning(f"引擎未运行，无法发送: {command}")
            return False

        with self._write_lock:
            try:
                process.stdin.write(command + "\n")
                process.stdin.flush()
            except (OSError, ValueError) as e:
                self.log_error(f"发送命令失败: {command}, 错误: {e}")
                return False

        self.log_debug(f">> {command}")
        return True

    # ==================== UCI 命令 ====================

    def handshake(self, timeout: Optional[float] = None) -> EngineInfo:
        """
        发送uci并收集引擎信息直到uciok

        超时未收到uciok时返回空的EngineInfo。
        """
        self._state = EngineProcessState.HANDSHAKING
        timeout = timeout or self.read_timeout
        if not self.send("uci"):
            return EngineInfo()

        name, author = "", ""
        option_lines = []
        while True:
            line = self.read_line(timeout)
            if line is None:
                self.log_warning("未收到uciok，握手失败")
                return EngineInfo()
            if line == "uciok":
                break
            if line.startswith("id name"):
                name = line[len("id name"):].strip()
            elif line.startswith("id author"):
                author = line[len("id author"):].strip()
            elif line.startswith("option"):
                option_lines.append(line)

        parsed_options = {}
        for option_line in option_lines:
            try:
                option = parse_option_line(option_line)
            except ProtocolDesyncError as e:
                self.log_debug(str(e))
                continue
            parsed_options[option.name] = option

        self.info = EngineInfo(
            name=name,
            author=author,
            options=option_lines,
            parsed_options=parsed_options,
            handshake_complete=True,
        )
        self._state = EngineProcessState.READY
        self.log_info(f"UCI握手完成: {name}, {len(option_lines)}个选项")
        return self.info

    def is_ready(self, timeout: Optional[float] = None) -> bool:
        """发送isready并等待readyok"""
        if not self.send("isready"):
            return False
        timeout = timeout or self.read_timeout
        while True:
            line = self.read_line(timeout)
            if line is None:
                return False
            if line == "readyok":
                return True

    def set_option(self, name: str, value: Any = None) -> bool:
        """设置引擎选项，value为None时按button类型发送"""
        if value is None:
            return self.send(f"setoption name {name}")
        if isinstance(value, bool):
            value = "true" if value else "false"
        return self.send(f"setoption name {name} value {value}")

    def set_position(self, fen: str, moves: Optional[Sequence[str]] = None) -> bool:
        """设置局面（使用 FEN 格式）"""
        command = f"position fen {fen}"
        if moves:
            command += " moves " + " ".join(moves)
        return self.send(command)

    def new_game(self) -> bool:
        return self.send("ucinewgame")

    def go(self, depth: Optional[int] = 15, movetime_ms: Optional[int] = None,
           on_info: Optional[Callable[[EngineMove], None]] = None) -> EngineMove:
        """
        开始思考并获取最佳着法

        深度和时间都未给出时按DEFAULT_SEARCH_DEPTH搜索。超时后发送stop，
        上一轮搜索迟到的bestmove不会作为本轮结果。

        Args:
            depth: 搜索深度
            movetime_ms: 搜索时间(毫秒)
            on_info: 每解析到一条info时的回调

        Returns:
            EngineMove: 超时或读写失败时move为空串
        """
        self._drain()

        if not depth and not movetime_ms:
            self.log_warning(f"未指定搜索深度或时间，使用默认深度 {DEFAULT_SEARCH_DEPTH}")
            depth = DEFAULT_SEARCH_DEPTH

        command = "go"
        if depth:
            command += f" depth {depth}"
        if movetime_ms:
            command += f" movetime {movetime_ms}"

        result = EngineMove()
        if not self.send(command):
            return result

        self._state = EngineProcessState.THINKING
        try:
            while True:
                line = self.read_line(self.search_timeout)
                if line is None:
                    self.log_warning("等待bestmove超时或引擎输出结束")
                    if self.is_running():
                        self._abandon_search()
                    break

                if line.startswith("bestmove") and self._pending_bestmoves > 0:
                    # 属于已放弃的搜索，此前的info也一并作废
                    self._pending_bestmoves -= 1
                    self.log_debug(f"丢弃过期的回复: {line}")
                    result = EngineMove()
                    continue

                if line.startswith("bestmove"):
                    try:
                        result.move, result.ponder = parse_bestmove(line)
                    except ProtocolDesyncError as e:
                        self.log_warning(str(e))
                    break

                if parse_info_line(line, result) and on_info is not None:
                    on_info(result)
        finally:
            if self.is_running():
                self._state = EngineProcessState.READY
            else:
                self._state = EngineProcessState.STOPPED

        return result

    def _abandon_search(self):
        """发送stop并在read_timeout内等待该次搜索的bestmove，仍未到达则记为待丢弃"""
        if not self.send("stop"):
            return
        deadline = time.monotonic() + self.read_timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            line = self.read_line(remaining)
            if line is None:
                break
            if line.startswith("bestmove"):
                if self._pending_bestmoves > 0:
                    self._pending_bestmoves -= 1
                    continue
                self.log_debug(f"已放弃的搜索返回: {line}")
                return

        if self.is_running():
            self._pending_bestmoves += 1
            self.log_warning(f"停止后未收到bestmove，待丢弃 {self._pending_bestmoves} 条")

    def stop(self) -> bool:
        """停止引擎思考，不等待回复"""
        return self.send("stop")
