"""
配置管理模块

包含引擎配置、分析配置和系统配置。
"""

from .config_manager import ConfigManager
from .engine_config import EngineConfig, AnalysisConfig, SystemConfig

__all__ = ['ConfigManager', 'EngineConfig', 'AnalysisConfig', 'SystemConfig']
