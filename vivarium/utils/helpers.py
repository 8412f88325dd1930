"""
工具函数集合 - vivarium 项目全局通用的辅助函数。

本模块提供路径管理、字符串处理、时间戳等基础工具函数，
被项目中的多个模块引用。

函数分类：
- 路径管理：ensure_dir, get_data_path, get_sandboxes_path
- 字符串工具：truncate_string, safe_filename
- 时间工具：now_ms, ms_to_minutes
"""

import time
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """
    确保目录存在，不存在则递归创建。

    参数:
        path: 目标目录路径

    返回:
        创建后的目录路径（原样返回）
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """获取 vivarium 数据目录（~/.vivarium）。自动创建不存在的目录。"""
    return ensure_dir(Path.home() / ".vivarium")


def get_sandboxes_path(root: str | None = None) -> Path:
    """
    获取沙箱工作目录的根路径。

    每个会话的执行环境都会在该目录下拥有一个独立的子目录。

    参数:
        root: 自定义根路径。为 None 时使用默认路径 ~/.vivarium/sandboxes

    返回:
        展开并确保存在的根路径
    """
    if root:
        path = Path(root).expanduser()
    else:
        path = get_data_path() / "sandboxes"
    return ensure_dir(path)


def now_ms() -> int:
    """获取当前时间的毫秒级 Unix 时间戳。"""
    return int(time.time() * 1000)


def ms_to_minutes(duration_ms: int | float) -> float:
    """将毫秒时长换算为分钟（保留小数）。"""
    return duration_ms / (60 * 1000)


def truncate_string(s: str, max_len: int = 100, suffix: str = "...") -> str:
    """
    截断字符串到指定最大长度，超出时添加后缀。

    参数:
        s: 原始字符串
        max_len: 最大长度（包含后缀），默认 100
        suffix: 截断后缀，默认 "..."

    返回:
        截断后的字符串
    """
    if len(s) <= max_len:
        return s
    return s[: max_len - len(suffix)] + suffix


def safe_filename(name: str) -> str:
    """
    将字符串转换为安全的文件名（移除/替换不安全字符）。

    替换的不安全字符包括：< > : " / \\ | ? *
    另外去掉开头的点号，避免生成隐藏文件或 ".." 这样的路径片段。

    参数:
        name: 原始文件名

    返回:
        安全的文件名字符串
    """
    unsafe = '<>:"/\\|?*'
    for char in unsafe:
        name = name.replace(char, "_")
    return name.strip().lstrip(".")
