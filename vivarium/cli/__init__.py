"""CLI 模块 - 基于 Typer 的命令行入口（vivarium exec / repl / status / onboard）。"""
