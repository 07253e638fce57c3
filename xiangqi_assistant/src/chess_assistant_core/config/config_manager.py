"""
配置管理器

负责以YAML文件加载、保存和管理引擎、分析及系统配置。
"""

import copy
import json
import logging
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any, Dict, Type, TypeVar

import yaml

from .engine_config import (
    EngineConfig, AnalysisConfig, SystemConfig,
    DEFAULT_ENGINE_CONFIG, DEFAULT_ANALYSIS_CONFIG, DEFAULT_SYSTEM_CONFIG
)
from ..utils.exceptions import ConfigurationError

T = TypeVar('T')

logger = logging.getLogger(__name__)

_LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


class ConfigManager:
    """
    配置管理器

    每类配置对应配置目录下的一个YAML文件，缺失或损坏时回退到默认值。
    """

    def __init__(self, config_dir: str = "configs/xiangqi_assistant"):
        """
        初始化配置管理器

        Args:
            config_dir: 配置文件目录
        """
        self.config_dir = Path(config_dir)
        self.config_dir.mkdir(parents=True, exist_ok=True)

        self.config_files = {
            'engine': self.config_dir / 'engine_config.yaml',
            'analysis': self.config_dir / 'analysis_config.yaml',
            'system': self.config_dir / 'system_config.yaml',
        }

        self.default_configs = {
            'engine': DEFAULT_ENGINE_CONFIG,
            'analysis': DEFAULT_ANALYSIS_CONFIG,
            'system': DEFAULT_SYSTEM_CONFIG,
        }

        self.config_types = {
            'engine': EngineConfig,
            'analysis': AnalysisConfig,
            'system': SystemConfig,
        }

        self._initialize_default_configs()

    def _initialize_default_configs(self):
        """初始化默认配置文件"""
        for config_name, config_obj in self.default_configs.items():
            config_file = self.config_files[config_name]
            if not config_file.exists():
                self.save_config(config_name, config_obj)
                logger.info(f"创建默认配置文件: {config_file}")

    def _default(self, config_name: str):
        if config_name not in self.default_configs:
            raise ConfigurationError(config_name, "未知的配置名称")
        return copy.deepcopy(self.default_configs[config_name])

    def load_config(self, config_name: str, config_class: Type[T]) -> T:
        """
        加载配置

        Args:
            config_name: 配置名称
            config_class: 配置类

        Returns:
            配置对象，文件缺失或无法解析时为默认配置的副本

        Raises:
            ConfigurationError: 未知的配置名称
        """
        default = self._default(config_name)
        config_file = self.config_files[config_name]
        if not config_file.exists():
            logger.warning(f"配置文件不存在: {config_file}，使用默认配置")
            return default

        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
            config = self._dict_to_dataclass(data, config_class)
            logger.info(f"成功加载配置: {config_file}")
            return config

        except (OSError, yaml.YAMLError, TypeError, AttributeError) as e:
            logger.error(f"加载配置文件失败: {config_file}, 错误: {e}")
            return default

    def save_config(self, config_name: str, config_obj: Any):
        """
        保存配置

        Args:
            config_name: 配置名称
            config_obj: 配置对象

        Raises:
            ConfigurationError: 未知的配置名称
        """
        config_file = self.config_files.get(config_name)
        if not config_file:
            raise ConfigurationError(config_name, "未知的配置名称")

        data = asdict(config_obj)
        try:
            with open(config_file, 'w', encoding='utf-8') as f:
                yaml.safe_dump(data, f, default_flow_style=False,
                               allow_unicode=True, indent=2)
            logger.info(f"成功保存配置: {config_file}")

        except OSError as e:
            logger.error(f"保存配置文件失败: {config_file}, 错误: {e}")
            raise

    def get_engine_config(self) -> EngineConfig:
        """获取引擎配置"""
        return self.load_config('engine', EngineConfig)

    def get_analysis_config(self) -> AnalysisConfig:
        """获取分析配置"""
        return self.load_config('analysis', AnalysisConfig)

    def get_system_config(self) -> SystemConfig:
        """获取系统配置"""
        return self.load_config('system', SystemConfig)

    def update_config(self, config_name: str, **kwargs):
        """
        更新配置

        Args:
            config_name: 配置名称
            **kwargs: 要更新的配置项
        """
        config_class = self.config_types.get(config_name)
        if config_class is None:
            raise ConfigurationError(config_name, "未知的配置名称")
        config = self.load_config(config_name, config_class)

        for key, value in kwargs.items():
            if hasattr(config, key):
                setattr(config, key, value)
            else:
                logger.warning(f"配置项不存在: {key}")

        self.save_config(config_name, config)

    def reset_config(self, config_name: str):
        """重置配置为默认值"""
        self.save_config(config_name, self._default(config_name))
        logger.info(f"配置已重置为默认值: {config_name}")

    def validate_config(self, config_name: str) -> bool:
        """
        验证配置的有效性

        Args:
            config_name: 配置名称

        Returns:
            bool: 配置是否有效
        """
        config_class = self.config_types.get(config_name)
        if config_class is None:
            logger.error(f"配置验证失败: 未知的配置名称 {config_name}")
            return False
        config = self.load_config(config_name, config_class)

        if config_name == 'engine':
            return (config.startup_timeout > 0 and
                    config.handshake_timeout > 0 and
                    config.search_timeout > 0 and
                    config.quit_grace_period >= 0)
        elif config_name == 'analysis':
            return (config.default_depth > 0 and
                    (config.movetime_ms is None or config.movetime_ms > 0))
        elif config_name == 'system':
            return config.log_level.upper() in _LOG_LEVELS

        return True

    def get_all_configs(self) -> Dict[str, Any]:
        """
        获取所有配置

        Returns:
            Dict[str, Any]: 所有配置的字典
        """
        configs = {}
        for config_name, config_class in self.config_types.items():
            configs[config_name] = self.load_config(config_name, config_class)
        return configs

    def export_configs(self, export_path: str):
        """
        导出所有配置到文件，后缀为 .json 时导出JSON，否则导出YAML

        Args:
            export_path: 导出文件路径
        """
        export_data = {
            config_name: asdict(config_obj)
            for config_name, config_obj in self.get_all_configs().items()
        }

        export_file = Path(export_path)
        with open(export_file, 'w', encoding='utf-8') as f:
            if export_file.suffix == '.json':
                json.dump(export_data, f, ensure_ascii=False, indent=2)
            else:
                yaml.safe_dump(export_data, f, default_flow_style=False,
                               allow_unicode=True, indent=2)

        logger.info(f"配置已导出到: {export_path}")

    def _dict_to_dataclass(self, data: Dict[str, Any], dataclass_type: Type[T]) -> T:
        """
        将字典转换为数据类对象，忽略未知字段

        Args:
            data: 字典数据
            dataclass_type: 数据类类型

        Returns:
            数据类对象
        """
        field_names = {f.name for f in fields(dataclass_type)}
        filtered_data = {k: v for k, v in data.items() if k in field_names}
        return dataclass_type(**filtered_data)
