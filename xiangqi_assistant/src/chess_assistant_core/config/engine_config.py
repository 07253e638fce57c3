"""
配置数据结构

定义引擎、分析和系统配置类及默认参数。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class EngineConfig:
    """UCI引擎配置"""
    engine_path: str = ""                   # 引擎可执行文件路径
    engine_args: List[str] = field(default_factory=list)
    working_dir: Optional[str] = None       # 工作目录，默认为引擎所在目录
    startup_timeout: float = 5.0            # 等待首行输出(秒)
    handshake_timeout: float = 1.0          # 握手时每行读取超时(秒)
    search_timeout: float = 5.0             # 搜索时每行读取超时(秒)
    quit_grace_period: float = 5.0          # quit后等待退出(秒)

    # 握手后发送的 setoption，如 {"Threads": 2, "Hash": 64}
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AnalysisConfig:
    """分析配置"""
    default_depth: int = 15                 # 默认搜索深度
    movetime_ms: Optional[int] = None       # 每步搜索时间(毫秒)，为空时只限深度
    stop_before_analyze: bool = True        # 新分析前是否先发送stop
    send_move_history: bool = False         # 是否以初始局面+走法历史发送position


@dataclass
class SystemConfig:
    """系统配置"""
    log_level: str = 'INFO'                 # 日志级别
    log_file: Optional[str] = None          # 日志文件，为空时不写文件
    log_dir: str = 'logs/xiangqi_assistant' # 日志目录
    log_max_size: int = 10                  # 日志文件最大大小(MB)
    log_backup_count: int = 5               # 日志备份数量
    console_output: bool = True             # 是否输出到控制台


# 默认配置实例
DEFAULT_ENGINE_CONFIG = EngineConfig()
DEFAULT_ANALYSIS_CONFIG = AnalysisConfig()
DEFAULT_SYSTEM_CONFIG = SystemConfig()
