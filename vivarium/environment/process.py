"""
基于子进程的执行环境 (environment/process.py)

模块职责：
    提供 SubprocessEnvironment，Environment 接口的内置参考实现：
      1. initialize：为会话创建独立的工作目录
      2. execute：把输入文件写入工作目录，用配置的 Python 解释器以子进程执行代码
      3. terminate：强制结束正在运行的子进程
      4. release：删除工作目录

    它只提供"每个会话一个私有目录 + 超时保护 + 输出截断"，
    并不承诺任何安全隔离。需要真正沙箱的部署应自行实现 Environment。

设计模式对比（Java 视角）：
    类似于 Java 的 ProcessBuilder + Files.createTempDirectory 的组合：
    - 超时控制（asyncio.wait_for，类似 Future.get(timeout)）
    - 输出格式化（stdout / stderr 分别截断）
"""

import asyncio
import shutil
import sys
import tempfile
import time
from pathlib import Path

from loguru import logger

from vivarium.config.schema import EnvironmentConfig
from vivarium.environment.base import Environment, EnvironmentFactory, ExecutionResult, InputFile
from vivarium.utils.helpers import ensure_dir, safe_filename, truncate_string


class SubprocessEnvironment(Environment):
    """
    每个会话一个工作目录、每次执行一个子进程的执行环境。

    同一环境内的执行是串行的（由 _exec_lock 保证），
    工作目录中的文件在多次执行之间保留。
    """

    def __init__(
        self,
        python: str = sys.executable,
        workdir_root: Path | None = None,
        timeout: float = 60,
        max_output_chars: int = 10000,
    ):
        """
        参数:
            python: 执行代码使用的解释器路径
            workdir_root: 工作目录的父目录，None 则使用系统临时目录
            timeout: 单次执行的最大时长（秒），超时后 kill 进程
            max_output_chars: stdout / stderr 各自的截断长度
        """
        self.python = python
        self.workdir_root = workdir_root
        self.timeout = timeout
        self.max_output_chars = max_output_chars
        self.workdir: Path | None = None
        self._process: asyncio.subprocess.Process | None = None
        self._exec_lock = asyncio.Lock()

    async def initialize(self) -> None:
        root = ensure_dir(self.workdir_root) if self.workdir_root else None
        self.workdir = Path(tempfile.mkdtemp(prefix="session-", dir=root))
        logger.debug(f"Sandbox directory created: {self.workdir}")

    async def execute(self, code: str, files: list[InputFile] | None = None) -> ExecutionResult:
        """
        执行一段 Python 代码。

        代码通过 stdin 传给解释器（`python -`），工作目录为会话目录。

        参数:
            code: Python 源码
            files: 执行前写入工作目录的输入文件

        返回:
            ExecutionResult，超时或被 terminate 中断时 success=False
        """
        if self.workdir is None:
            raise RuntimeError("Environment is not initialized")

        async with self._exec_lock:
            for f in files or []:
                (self.workdir / safe_filename(f.filename)).write_bytes(f.data)

            started = time.monotonic()
            self._process = await asyncio.create_subprocess_exec(
                self.python, "-",
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.workdir,
            )
            try:
                stdout, stderr = await asyncio.wait_for(
                    self._process.communicate(code.encode("utf-8")),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError:
                await self._kill_running()
                return ExecutionResult(
                    success=False,
                    stderr=f"Execution timed out after {self.timeout} seconds",
                    duration_ms=int((time.monotonic() - started) * 1000),
                    files=self._list_files(),
                )
            finally:
                # 调用方被取消时子进程不能脱离管理继续运行
                await self._kill_running()
                returncode = self._process.returncode
                self._process = None

            return ExecutionResult(
                success=returncode == 0,
                stdout=self._clip(stdout),
                stderr=self._clip(stderr),
                exit_code=returncode,
                duration_ms=int((time.monotonic() - started) * 1000),
                files=self._list_files(),
            )

    async def terminate(self) -> None:
        process = self._process
        if process is not None and process.returncode is None:
            logger.debug(f"Killing running process {process.pid} in {self.workdir}")
            process.kill()

    async def release(self) -> None:
        if self.workdir is None:
            return
        workdir, self.workdir = self.workdir, None
        await asyncio.to_thread(shutil.rmtree, workdir)
        logger.debug(f"Sandbox directory removed: {workdir}")

    async def _kill_running(self) -> None:
        process = self._process
        if process is not None and process.returncode is None:
            process.kill()
            await process.wait()

    def _clip(self, data: bytes | None) -> str:
        text = (data or b"").decode("utf-8", errors="replace")
        return truncate_string(text, self.max_output_chars, suffix="\n... (truncated)")

    def _list_files(self) -> list[str]:
        if self.workdir is None or not self.workdir.exists():
            return []
        return sorted(
            p.relative_to(self.workdir).as_posix()
            for p in self.workdir.rglob("*")
            if p.is_file()
        )


def make_environment_factory(config: EnvironmentConfig) -> EnvironmentFactory:
    """
    根据配置构建环境工厂。

    返回的工厂每次调用都会新建并初始化一个 SubprocessEnvironment。
    """
    root = Path(config.workdir_root).expanduser()

    async def factory() -> Environment:
        env = SubprocessEnvironment(
            python=config.python,
            workdir_root=root,
            timeout=config.exec_timeout_s,
            max_output_chars=config.max_output_chars,
        )
        await env.initialize()
        return env

    return factory
