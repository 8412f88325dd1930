"""
执行环境能力接口 (environment/base.py)

模块职责：
    定义会话所持有的"隔离执行环境"的抽象基类 Environment。
    会话管理器只依赖这四个能力：initialize、execute、terminate、release，
    不关心代码如何执行、环境如何隔离。

在架构中的位置：
    Environment 是整个系统最底层的外部能力。SessionManager 通过
    EnvironmentFactory 构建环境，Session 独占持有它，销毁时依次调用
    terminate 和 release。

设计模式对比（Java 视角）：
    相当于 Java 中的 interface + AutoCloseable：
    - initialize() 类似于资源的 open()
    - terminate() 类似于 Thread.interrupt()，中断正在进行的执行
    - release() 类似于 close()，释放资源
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Awaitable, Callable


@dataclass(frozen=True)
class InputFile:
    """随代码一起提交的输入文件（已解码的原始字节）。"""
    filename: str
    data: bytes


@dataclass
class ExecutionResult:
    """
    一次代码执行的结果。

    属性:
        success: 进程是否以 0 退出且未超时
        stdout: 标准输出（可能被截断）
        stderr: 标准错误（可能被截断）
        exit_code: 进程退出码，超时或被中断时为 None
        duration_ms: 执行耗时（毫秒）
        files: 执行结束后工作目录中存在的文件名列表
    """
    success: bool
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    duration_ms: int = 0
    files: list[str] = field(default_factory=list)


class Environment(ABC):
    """
    隔离执行环境的抽象基类。

    所有操作都可能失败（抛出异常）。调用方约定：
    - initialize() 只调用一次，失败则该环境被丢弃
    - terminate() 和 release() 在销毁时都会被尝试，即使前者失败
    """

    @abstractmethod
    async def initialize(self) -> None:
        """准备环境（可能很慢，是整个系统中最耗时的操作）。"""
        pass

    @abstractmethod
    async def execute(self, code: str, files: list[InputFile] | None = None) -> ExecutionResult:
        """在环境中执行代码。"""
        pass

    @abstractmethod
    async def terminate(self) -> None:
        """中断正在进行的执行。"""
        pass

    @abstractmethod
    async def release(self) -> None:
        """释放环境占用的全部资源。"""
        pass


# 环境工厂：无参异步可调用对象，返回一个已完成 initialize() 的环境
EnvironmentFactory = Callable[[], Awaitable[Environment]]
