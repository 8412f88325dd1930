"""
执行环境模块 - 会话所持有的隔离执行上下文。

本模块提供：
- Environment：执行环境能力接口（initialize / execute / terminate / release）
- SubprocessEnvironment：基于子进程 + 私有工作目录的参考实现
- make_environment_factory：根据配置构建环境工厂

二开提示：
- 接入其它沙箱（容器、WebAssembly、远程内核）只需实现 Environment 的四个方法，
  再把自定义工厂传给 SessionManager 即可
"""

from vivarium.environment.base import (
    Environment,
    EnvironmentFactory,
    ExecutionResult,
    InputFile,
)
from vivarium.environment.process import SubprocessEnvironment, make_environment_factory

__all__ = [
    "Environment",
    "EnvironmentFactory",
    "ExecutionResult",
    "InputFile",
    "SubprocessEnvironment",
    "make_environment_factory",
]
