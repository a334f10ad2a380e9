"""命令行入口。"""

from __future__ import annotations

import logging
from importlib.metadata import PackageNotFoundError, version as package_version
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from imgconvert.core.config import CONFIG_FILENAME, load_file_config, write_default_config
from imgconvert.core.exceptions import ImageConvertError
from imgconvert.core.options import CliArgs, resolve
from imgconvert.core.progress import ProgressUpdate
from imgconvert.core.report import build_debug_table, render_outcome, render_summary
from imgconvert.processing.pipeline import process_batch
from imgconvert.utils.logging import setup_logging

PACKAGE_NAME = "imgconvert"
CONFIG_COMMAND = "config"

# -h 留给 --height，帮助使用 -H。
CONTEXT_SETTINGS = {"help_option_names": ["--help", "-H"]}

app = typer.Typer(
    help="批量图片格式转换与压缩工具。",
    add_completion=False,
    context_settings=CONTEXT_SETTINGS,
)

console = Console(soft_wrap=True, highlight=False)


def _version() -> str:
    try:
        return package_version(PACKAGE_NAME)
    except PackageNotFoundError:
        return "0.0.0"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"imgconvert-cli version: {_version()}")
        raise typer.Exit()


def _strip_assignment(value: Optional[str]) -> Optional[str]:
    """兼容 `-q=80` 写法：短选项的值去掉开头的一个等号。"""

    if value is not None and value.startswith("="):
        return value[1:]
    return value


def _fail(message: str) -> typer.Exit:
    console.print(f"[red]Error: {escape(message)}[/red]")
    return typer.Exit(code=1)


def _build_progress_callback(progress: Progress, verbose: bool):
    task_id: Optional[int] = None

    def callback(update: ProgressUpdate) -> None:
        nonlocal task_id
        if update.total == 0:
            return
        if task_id is None:
            task_id = progress.add_task("Converting images", total=update.total)
        progress.update(task_id, completed=update.completed)
        outcome = update.outcome
        if outcome is None:
            return
        if verbose or not outcome.succeeded:
            progress.console.print(render_outcome(outcome))

    return callback


@app.command(context_settings=CONTEXT_SETTINGS)
def run_cli(  # noqa: PLR0913
    source_path: Optional[str] = typer.Argument(
        None, help=f"要处理的图片文件或目录；传入 `{CONFIG_COMMAND}` 则在当前目录写出默认配置文件"
    ),
    output_format: Optional[str] = typer.Option(
        None,
        "--format",
        "-f",
        callback=_strip_assignment,
        help="输出格式：jpeg, png, webp, avif, tiff, gif, all, none（默认 none）",
    ),
    quality: Optional[str] = typer.Option(
        None, "--quality", "-q", callback=_strip_assignment, help="输出质量 1-100（默认 85）"
    ),
    background: Optional[str] = typer.Option(
        None, "--background", "-b", callback=_strip_assignment, help="去除透明时的背景色（默认 #ffffff）"
    ),
    replace: Optional[str] = typer.Option(
        None, "--replace", "-r", callback=_strip_assignment, help="是否替换原文件 true/false（默认 false）"
    ),
    width: Optional[str] = typer.Option(
        None, "--width", "-w", callback=_strip_assignment, help="输出宽度"
    ),
    height: Optional[str] = typer.Option(
        None, "--height", "-h", callback=_strip_assignment, help="输出高度"
    ),
    output: Optional[str] = typer.Option(
        None, "--output", "-o", callback=_strip_assignment, help="输出目录"
    ),
    preset: Optional[str] = typer.Option(
        None, "--preset", "-p", callback=_strip_assignment, help="预设名称，例如 web、thumbnail、alloy"
    ),
    environment: Optional[str] = typer.Option(
        None, "--environment", "-e", callback=_strip_assignment, help="环境名称（默认 dev）"
    ),
    workers: Optional[str] = typer.Option(
        None, "--workers", "-j", callback=_strip_assignment, help="并发进程数量（默认 4）"
    ),
    debug: bool = typer.Option(False, "--debug", "-d", help="输出详细统计与调试日志"),
    force: bool = typer.Option(False, "--force", help="写出配置文件时覆盖已有文件"),
    version: Optional[bool] = typer.Option(
        None, "--version", "-v", callback=_version_callback, is_eager=True, help="显示版本号"
    ),
) -> None:
    """转换单个图片或目录下的所有图片。"""

    setup_logging(logging.DEBUG if debug else logging.WARNING)
    logger = logging.getLogger(__name__)

    if not source_path:
        raise _fail("Please provide a source file or folder.")

    if source_path == CONFIG_COMMAND:
        try:
            written = write_default_config(Path.cwd(), force=force)
        except (ImageConvertError, OSError) as exc:
            raise _fail(str(exc)) from exc
        typer.echo(f"配置文件已写入：{written}")
        return

    input_path = Path(source_path).expanduser()
    if not input_path.exists():
        raise _fail(f'The specified path "{source_path}" does not exist.')

    cli_args = CliArgs(
        format=output_format,
        quality=quality,
        background=background,
        replace=replace,
        width=width,
        height=height,
        output=str(Path(output).expanduser().resolve()) if output else None,
        preset=preset,
        environment=environment,
        workers=workers,
        debug=debug,
    )

    try:
        file_config = load_file_config(Path.cwd() / CONFIG_FILENAME)
        config = resolve(cli_args, file_config)
    except ImageConvertError as exc:
        raise _fail(str(exc)) from exc
    logger.debug("CLI 参数解析完成")

    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )

    try:
        with progress:
            result = process_batch(
                input_path,
                config,
                progress_callback=_build_progress_callback(progress, config.debug),
            )
    except ImageConvertError as exc:
        raise _fail(str(exc)) from exc

    for line in render_summary(result.statistics, result.output_location):
        console.print(line)

    if config.debug:
        console.print(build_debug_table(result.statistics))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
