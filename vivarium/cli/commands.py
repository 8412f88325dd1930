"""
CLI 命令模块 - vivarium 的所有命令行命令定义。

本模块使用 Typer 框架定义 vivarium 的 CLI 命令体系：
- onboard：初始化配置文件
- status：查看配置与沙箱目录状态
- exec：在指定会话中执行一段代码
- repl：交互式地在同一会话中逐条执行代码

技术栈：
- Typer：CLI 框架（基于 Click，支持类型注解自动生成帮助文档）
- Rich：终端美化输出（表格、面板、状态指示）
- prompt_toolkit：交互式输入（历史记录、行编辑）

二开提示：
- HTTP 服务层可以照搬 _run_in_session 的写法：一个进程持有一个 SessionManager，
  每个请求调用 manager.execute(session_id, code, files)
"""

import asyncio
from contextlib import nullcontext
from pathlib import Path

import typer
from loguru import logger
from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.history import FileHistory
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from vivarium import __logo__, __version__

app = typer.Typer(
    name="vivarium",
    help=f"{__logo__} vivarium - session-multiplexed code execution sandboxes",
    no_args_is_help=True,
)

console = Console()
EXIT_COMMANDS = {"exit", "quit", ":q", ":exit", ":quit"}


def version_callback(value: bool):
    """版本号回调：当用户传入 --version/-v 参数时，打印版本号并退出。"""
    if value:
        console.print(f"{__logo__} vivarium v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """vivarium CLI 根命令回调。处理全局选项（如 --version）。"""
    pass


def _setup_logging(enabled: bool, level: str) -> None:
    """按需开启 vivarium 的运行时日志（默认关闭，避免干扰执行结果输出）。"""
    if enabled:
        import sys
        logger.remove()
        logger.add(sys.stderr, level=level.upper())
        logger.enable("vivarium")
    else:
        logger.disable("vivarium")


def _print_result(result) -> None:
    """以一致的终端样式渲染一次执行结果。"""
    if result.stdout:
        console.print(result.stdout, end="" if result.stdout.endswith("\n") else "\n", markup=False)
    if result.stderr:
        console.print(Panel(result.stderr.rstrip(), title="stderr", border_style="red"))
    status = "[green]ok[/green]" if result.success else f"[red]failed (exit {result.exit_code})[/red]"
    console.print(f"[dim]{status} in {result.duration_ms}ms; files: {', '.join(result.files) or '-'}[/dim]")


def _print_sessions(manager) -> None:
    """以表格形式展示当前活跃会话。"""
    sessions = manager.list_sessions()
    if not sessions:
        console.print("No active sessions.")
        return

    table = Table(title="Sessions")
    table.add_column("ID", style="cyan")
    table.add_column("Age (min)", justify="right")
    table.add_column("Idle (min)", justify="right")
    for info in sessions:
        table.add_row(info.id, f"{info.age_minutes:.1f}", f"{info.idle_minutes:.1f}")
    console.print(table)


def _read_input_files(paths: list[Path] | None):
    from vivarium.environment.base import InputFile

    files = []
    for path in paths or []:
        if not path.is_file():
            console.print(f"[red]Input file not found: {path}[/red]")
            raise typer.Exit(1)
        files.append(InputFile(filename=path.name, data=path.read_bytes()))
    return files


# ============================================================================
# Onboard / Status
# ============================================================================


@app.command()
def onboard():
    """
    初始化 vivarium 配置。

    在 ~/.vivarium/ 下创建默认配置文件 config.json，并创建沙箱根目录。
    """
    from vivarium.config.loader import get_config_path, save_config
    from vivarium.config.schema import Config
    from vivarium.utils.helpers import get_sandboxes_path

    config_path = get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    config = Config()
    save_config(config)
    console.print(f"[green]✓[/green] Created config at {config_path}")

    sandboxes = get_sandboxes_path(config.environment.workdir_root)
    console.print(f"[green]✓[/green] Sandbox root at {sandboxes}")

    console.print(f"\n{__logo__} vivarium is ready!")
    console.print("\nNext steps:")
    console.print("  1. Run code: [cyan]vivarium exec \"print(1 + 1)\"[/cyan]")
    console.print("  2. Interactive: [cyan]vivarium repl --session demo[/cyan]")


@app.command()
def status():
    """
    显示 vivarium 状态。

    展示内容：配置文件路径、沙箱根目录、会话超时与清扫间隔、解释器。
    """
    from vivarium.config.loader import get_config_path, load_config

    config_path = get_config_path()
    config = load_config()
    root = config.workdir_root_path

    console.print(f"{__logo__} vivarium Status\n")
    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[red]✗[/red]'}")
    console.print(f"Sandbox root: {root} {'[green]✓[/green]' if root.exists() else '[red]✗[/red]'}")
    console.print(f"Idle timeout: {config.sessions.idle_timeout_minutes:g}m")
    console.print(f"Sweep interval: {config.sessions.sweep_interval_s:g}s")
    console.print(f"Python: {config.environment.python}")
    console.print(f"Exec timeout: {config.environment.exec_timeout_s:g}s")


# ============================================================================
# Execution
# ============================================================================


@app.command("exec")
def exec_code(
    code: str = typer.Argument(None, help="Python code to execute"),
    script: Path = typer.Option(None, "--script", help="Read code from this file instead"),
    files: list[Path] = typer.Option(None, "--file", "-f", help="Input file copied into the session directory"),
    session_id: str = typer.Option("cli", "--session", "-s", help="Session ID"),
    logs: bool = typer.Option(False, "--logs/--no-logs", help="Show vivarium runtime logs"),
):
    """
    在会话中执行一次代码，打印输出后销毁会话。

    参数:
        code: 要执行的代码（与 --script 二选一）
        script: 代码文件路径
        files: 执行前写入会话目录的输入文件
        session_id: 会话 ID，默认 "cli"
        logs: 是否显示运行时日志
    """
    from vivarium.config.loader import load_config
    from vivarium.session.errors import VivariumError
    from vivarium.session.manager import SessionManager

    if script is not None:
        code = script.read_text()
    if not code:
        console.print("[red]Provide code as an argument or via --script[/red]")
        raise typer.Exit(1)

    config = load_config()
    _setup_logging(logs, config.logging.level)
    inputs = _read_input_files(files)

    async def run_once():
        async with SessionManager.from_config(config) as manager:
            status_ctx = nullcontext() if logs else console.status("[dim]running...[/dim]", spinner="dots")
            with status_ctx:
                result = await manager.execute(session_id, code, inputs)
            _print_result(result)
            _print_sessions(manager)
            return result

    try:
        result = asyncio.run(run_once())
    except VivariumError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if not result.success:
        raise typer.Exit(result.exit_code or 1)


@app.command()
def repl(
    session_id: str = typer.Option("repl", "--session", "-s", help="Session ID"),
    logs: bool = typer.Option(False, "--logs/--no-logs", help="Show vivarium runtime logs"),
):
    """
    交互模式：每行输入都在同一个会话中执行。

    内置命令：
    - :sessions  列出活跃会话
    - :sweep     立即执行一次过期清扫
    - :reset     销毁当前会话（下一行代码会创建新会话）
    - exit / :q  退出并关闭管理器
    """
    from vivarium.config.loader import load_config
    from vivarium.session.errors import VivariumError
    from vivarium.session.manager import SessionManager
    from vivarium.utils.helpers import get_data_path

    config = load_config()
    _setup_logging(logs, config.logging.level)

    history_file = get_data_path() / "history" / "repl_history"
    history_file.parent.mkdir(parents=True, exist_ok=True)
    prompt = PromptSession(history=FileHistory(str(history_file)), multiline=False)

    console.print(f"{__logo__} Session [cyan]{session_id}[/cyan] (type [bold]exit[/bold] or [bold]Ctrl+D[/bold] to quit)\n")

    async def run_interactive():
        async with SessionManager.from_config(config) as manager:
            while True:
                try:
                    with patch_stdout():
                        line = await prompt.prompt_async(HTML("<b fg='ansigreen'>&gt;&gt;&gt;</b> "))
                except (EOFError, KeyboardInterrupt):
                    break

                command = line.strip()
                if not command:
                    continue
                if command.lower() in EXIT_COMMANDS:
                    break
                if command == ":sessions":
                    _print_sessions(manager)
                    continue
                if command == ":sweep":
                    console.print(f"Removed {await manager.sweep_now()} expired session(s)")
                    continue
                if command == ":reset":
                    removed = await manager.remove_session(session_id)
                    console.print("Session reset." if removed else "No active session.")
                    continue

                try:
                    _print_result(await manager.execute(session_id, line))
                except VivariumError as e:
                    console.print(f"[red]Error: {e}[/red]")

    asyncio.run(run_interactive())
    console.print("\nGoodbye!")


if __name__ == "__main__":
    app()
