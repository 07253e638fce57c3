"""
异常定义

定义象棋助手核心的各种异常类型。
"""


class XiangqiAssistantError(Exception):
    """
    象棋助手基础异常

    所有象棋助手相关异常的基类。
    """

    def __init__(self, message: str, error_code: str = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__

    def __str__(self):
        return f"[{self.error_code}] {self.message}"


class OutOfRangeError(XiangqiAssistantError, ValueError):
    """
    坐标越界异常

    当构造的坐标超出 9x10 棋盘范围时抛出。
    """

    def __init__(self, file: int, rank: int):
        message = f"坐标越界: ({file}, {rank}), 列应在0-8之间, 行应在0-9之间"
        super().__init__(message, "OUT_OF_RANGE")
        self.file = file
        self.rank = rank


class InvalidMoveError(XiangqiAssistantError):
    """
    非法走法异常

    棋盘本身只返回布尔值，此异常仅由命令行等外层接口在拒绝用户输入时抛出。
    """

    def __init__(self, move_str: str, reason: str = ""):
        message = f"非法走法: {move_str}"
        if reason:
            message += f" - {reason}"
        super().__init__(message, "INVALID_MOVE")
        self.move_str = move_str
        self.reason = reason


class BoardStateError(XiangqiAssistantError):
    """
    棋盘状态异常

    当摆子冲突或FEN/矩阵格式无效时抛出。
    """

    def __init__(self, state_description: str, reason: str = ""):
        message = f"棋盘状态错误: {state_description}"
        if reason:
            message += f" - {reason}"
        super().__init__(message, "BOARD_STATE_ERROR")
        self.state_description = state_description
        self.reason = reason


class EngineUnavailableError(XiangqiAssistantError):
    """
    引擎不可用异常

    当引擎进程无法启动或握手超时时抛出。
    """

    def __init__(self, engine_path: str, reason: str = ""):
        message = f"引擎不可用: {engine_path}"
        if reason:
            message += f" - {reason}"
        super().__init__(message, "ENGINE_UNAVAILABLE")
        self.engine_path = engine_path
        self.reason = reason


class ProtocolDesyncError(XiangqiAssistantError):
    """
    协议失步异常

    引擎输出的行格式不符合预期。只在解析器内部抛出，由客户端记录后忽略该行。
    """

    def __init__(self, line: str, reason: str = ""):
        message = f"无法解析的引擎输出: {line!r}"
        if reason:
            message += f" - {reason}"
        super().__init__(message, "PROTOCOL_DESYNC")
        self.line = line
        self.reason = reason


class ProcessExitedError(XiangqiAssistantError):
    """
    引擎进程意外退出异常

    会话中途进程死亡时抛出，会话随之进入错误状态。
    """

    def __init__(self, engine_path: str, return_code: int = None):
        message = f"引擎进程意外退出: {engine_path}"
        if return_code is not None:
            message += f" (退出码: {return_code})"
        super().__init__(message, "PROCESS_EXITED")
        self.engine_path = engine_path
        self.return_code = return_code


class ConfigurationError(XiangqiAssistantError):
    """
    配置错误异常

    当配置参数无效时抛出。
    """

    def __init__(self, config_name: str, reason: str = ""):
        message = f"配置错误 - {config_name}"
        if reason:
            message += f": {reason}"
        super().__init__(message, "CONFIG_ERROR")
        self.config_name = config_name
        self.reason = reason
