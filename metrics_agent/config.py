"""
配置管理模块

从 YAML 文件加载配置，命令行参数覆盖文件中的值
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

DEFAULT_CONFIG_PATH = "/etc/metrics-agent/config.yaml"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class CloudwatchConfig(BaseModel):
    """CloudWatch 指标配置"""
    namespace: str = Field(..., min_length=1, description="指标命名空间")
    service_name: str = Field(..., min_length=1, description="ServiceName 维度的值")
    region: Optional[str] = Field(default=None, description="AWS 区域，默认走 boto3 的解析链")


class SamplingConfig(BaseModel):
    """采样配置"""
    interval: float = Field(default=0.9, gt=0, description="采样间隔（秒）")
    cgroup_root: str = Field(default="/sys/fs/cgroup", description="cgroup 挂载点")


class PublishConfig(BaseModel):
    """上报配置"""
    period: int = Field(default=60, ge=1, description="聚合 / 上报周期（秒）")
    queue_size: int = Field(default=4, ge=1, description="任务间队列容量")


class LoggingConfig(BaseModel):
    """日志配置"""
    level: str = "INFO"
    file: Optional[str] = None
    max_size_mb: int = 50
    backup_count: int = 5

    @field_validator("level")
    @classmethod
    def check_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"level must be one of {', '.join(LOG_LEVELS)}, got '{v}'")
        return level


class AgentConfig(BaseModel):
    """Agent 配置模型"""
    cloudwatch: CloudwatchConfig
    sampling: SamplingConfig = Field(default_factory=SamplingConfig)
    publish: PublishConfig = Field(default_factory=PublishConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def read_config_file(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    读取配置文件

    优先级：
    1. 参数指定的路径（不存在时报错）
    2. 环境变量 METRICS_AGENT_CONFIG（不存在时报错）
    3. 默认路径 /etc/metrics-agent/config.yaml（不存在时返回空配置）
    """
    explicit = config_path is not None
    if config_path is None:
        config_path = os.getenv("METRICS_AGENT_CONFIG")
        explicit = config_path is not None
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    config_file = Path(config_path)
    if not config_file.exists():
        if explicit:
            raise FileNotFoundError(f"Config file not found: {config_path}")
        return {}

    with open(config_file, "r", encoding="utf-8") as f:
        raw_config = yaml.safe_load(f)

    if raw_config is None:
        return {}
    if not isinstance(raw_config, dict):
        raise ValueError(f"Config file must contain a mapping: {config_path}")
    return raw_config


def load_config(
    config_path: Optional[str] = None,
    overrides: Optional[Dict[str, Dict[str, Any]]] = None,
) -> AgentConfig:
    """
    加载配置

    Args:
        config_path: 配置文件路径
        overrides: 按分节覆盖的值，如 {"publish": {"period": 10}}；值为 None 的项忽略

    Returns:
        AgentConfig 实例

    Raises:
        FileNotFoundError: 指定的配置文件不存在
        yaml.YAMLError: 配置文件不是合法的 YAML
        ValueError: 配置文件或分节不是映射
        pydantic.ValidationError: 配置校验失败（如缺少 namespace）
    """
    raw_config = read_config_file(config_path)

    for section, values in (overrides or {}).items():
        current = raw_config.get(section) or {}
        if not isinstance(current, dict):
            raise ValueError(f"Config section '{section}' must be a mapping")
        merged = dict(current)
        merged.update({k: v for k, v in values.items() if v is not None})
        raw_config[section] = merged

    return AgentConfig(**raw_config)
