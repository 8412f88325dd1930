"""
配置数据模型定义 (config/schema.py)
=================================
本模块使用 Pydantic 定义 vivarium 的完整配置结构。
所有配置项都有默认值，用户只需在 config.json 中覆盖需要修改的部分。

整体配置结构（树形）：
Config (根配置)
├── sessions      - 会话生命周期配置（空闲超时、清扫间隔、销毁记录保留数）
├── environment   - 执行环境配置（解释器、沙箱根目录、执行超时）
└── logging       - 日志配置（级别）

对于 Java 开发者：
- Pydantic 的 BaseModel 类似于 Java 的 POJO/Record，但自带字段验证和默认值
- BaseSettings 类似于 Spring 的 @ConfigurationProperties，额外支持从环境变量读取配置
"""

import sys
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SessionsConfig(BaseModel):
    """会话生命周期配置。"""
    idle_timeout_minutes: float = Field(default=10, gt=0)  # 空闲超过该时长的会话会被清扫
    sweep_interval_s: float = Field(default=60, gt=0)  # 后台清扫间隔（秒）
    teardown_history: int = Field(default=100, ge=0)  # 保留最近 N 条销毁报告


class EnvironmentConfig(BaseModel):
    """
    执行环境配置。

    仅对内置的 SubprocessEnvironment 生效；自定义环境工厂可以忽略这些字段。
    """
    python: str = sys.executable  # 执行代码使用的 Python 解释器
    workdir_root: str = "~/.vivarium/sandboxes"  # 每个会话的工作目录都创建在这里
    exec_timeout_s: float = Field(default=60, gt=0)  # 单次执行超时（秒）
    max_output_chars: int = Field(default=10000, gt=0)  # stdout/stderr 截断长度


class LoggingConfig(BaseModel):
    """日志配置。"""
    level: str = "INFO"


class Config(BaseSettings):
    """
    vivarium 根配置类。

    继承自 Pydantic 的 BaseSettings，除了支持从 JSON 文件加载外，
    还支持从环境变量读取配置：
    - 环境变量前缀: VIVARIUM_
    - 嵌套分隔符: __ (双下划线)
    - 示例: VIVARIUM_SESSIONS__IDLE_TIMEOUT_MINUTES=1 可覆盖 sessions.idle_timeout_minutes
    """
    sessions: SessionsConfig = Field(default_factory=SessionsConfig)
    environment: EnvironmentConfig = Field(default_factory=EnvironmentConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def workdir_root_path(self) -> Path:
        """获取展开后的沙箱根目录绝对路径（将 ~ 展开为用户主目录）。"""
        return Path(self.environment.workdir_root).expanduser()

    model_config = SettingsConfigDict(
        env_prefix="VIVARIUM_",
        env_nested_delimiter="__",
    )
