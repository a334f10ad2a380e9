"""结果汇总与摘要渲染。"""

from __future__ import annotations

from collections import Counter
from pathlib import Path
from typing import Iterable, Optional

from rich.markup import escape
from rich.table import Table

from imgconvert.core.models import STATUS_CONVERTED, STATUS_FAILED, STATUS_SKIPPED, JobOutcome, RunStatistics

NO_IMAGES_MESSAGE = "No valid images were found or processed in the specified location."


def aggregate(outcomes: Iterable[JobOutcome], started: float, finished: float) -> RunStatistics:
    """汇总所有任务结果；结果顺序无关。"""

    processed = failed = skipped = 0
    total_original = total_new = 0
    per_format: Counter[str] = Counter()

    for outcome in outcomes:
        if outcome.status == STATUS_CONVERTED:
            processed += 1
            total_original += outcome.original_size
            total_new += outcome.new_size
            if outcome.output_format is not None:
                per_format[outcome.output_format.value] += 1
        elif outcome.status == STATUS_FAILED:
            failed += 1
        elif outcome.status == STATUS_SKIPPED:
            skipped += 1

    return RunStatistics(
        processed_count=processed,
        failed_count=failed,
        skipped_count=skipped,
        total_original_bytes=total_original,
        total_new_bytes=total_new,
        elapsed_seconds=max(0.0, finished - started),
        per_format=dict(per_format),
    )


def render_summary(stats: RunStatistics, output_location: Optional[Path] = None) -> list[str]:
    """把统计信息格式化为摘要行（rich markup）。"""

    lines: list[str] = []
    if stats.processed_count == 0:
        lines.append(f"[yellow]{NO_IMAGES_MESSAGE}[/yellow]")
    else:
        savings = stats.savings_percent
        savings_text = f"{savings:.2f}%" if savings is not None else "n/a"
        lines.append(
            f"[blue][green]{stats.processed_count} file(s)[/green] were processed in "
            f"[green]{stats.elapsed_seconds:.2f} seconds[/green]. "
            f"Total size reduction: [green]{savings_text}[/green].[/blue]"
        )
        if output_location is not None:
            lines.append(f"[blue]The images can be found in: [green]{escape(str(output_location))}[/green][/blue]")

    if stats.failed_count:
        lines.append(f"[red]{stats.failed_count} conversion(s) failed.[/red]")
    if stats.skipped_count:
        lines.append(f"[yellow]{stats.skipped_count} file(s) skipped.[/yellow]")
    return lines


def render_outcome(outcome: JobOutcome) -> str:
    """单个任务的进度行。"""

    target = outcome.output_format.value.upper() if outcome.output_format else "-"
    label = escape(f" [{outcome.scale_label}]") if outcome.scale_label else ""
    name = escape(outcome.source_path.name)
    message = escape(outcome.message or "")
    if outcome.status == STATUS_CONVERTED:
        savings = outcome.savings_percent
        savings_text = f"{savings:.2f}%" if savings is not None else "n/a"
        return f"[green]Processed: {name} to {target}{label} ({savings_text})[/green]"
    if outcome.status == STATUS_SKIPPED:
        return f"[yellow]Skipped {name}: {message}[/yellow]"
    return f"[red]Error processing {name} to {target}{label}: {message}[/red]"


def build_debug_table(stats: RunStatistics) -> Table:
    """--debug 模式下输出的统计表。"""

    table = Table(title="Conversion statistics")
    table.add_column("Metric")
    table.add_column("Value", justify="right")

    table.add_row("Converted", str(stats.processed_count))
    table.add_row("Failed", str(stats.failed_count))
    table.add_row("Skipped", str(stats.skipped_count))
    table.add_row("Original bytes", str(stats.total_original_bytes))
    table.add_row("New bytes", str(stats.total_new_bytes))
    savings = stats.savings_percent
    table.add_row("Savings", f"{savings:.2f}%" if savings is not None else "n/a")
    table.add_row("Elapsed", f"{stats.elapsed_seconds:.2f}s")
    for name, count in sorted(stats.per_format.items()):
        table.add_row(f"  {name}", str(count))
    return table
