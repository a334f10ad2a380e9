"""处理流水线：扫描、构建任务、并发执行转换并汇总结果。"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ProcessPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Optional, Set

from imgconvert.core.config import EffectiveConfig
from imgconvert.core.exceptions import CodecError, UnsupportedFormat
from imgconvert.core.models import (
    STATUS_CONVERTED,
    STATUS_FAILED,
    STATUS_SKIPPED,
    BatchResult,
    CandidateFile,
    ConversionJob,
    EncodeOptions,
    JobOutcome,
)
from imgconvert.core.output_manager import OutputManager
from imgconvert.core.progress import ProgressUpdate
from imgconvert.core.report import aggregate
from imgconvert.core.scanner import discover
from imgconvert.processing.planner import build_jobs
from imgconvert.processing.worker import run_job

LOGGER = logging.getLogger(__name__)


ProgressCallback = Optional[Callable[[ProgressUpdate], None]]


def process_batch(
    input_path: Path,
    config: EffectiveConfig,
    progress_callback: ProgressCallback = None,
) -> BatchResult:
    """批量转换入口。

    路径不存在或输出目录无法创建时抛出异常且不会派发任何任务；单个任务的失败
    只记录在结果中。
    """

    started = time.perf_counter()

    LOGGER.info("开始扫描输入路径 %s", input_path)
    candidates = discover(input_path)
    LOGGER.info("发现 %d 个候选图片文件", len(candidates))

    layout = OutputManager(config, input_path)
    outcomes: list[JobOutcome] = []
    jobs = _plan_jobs(candidates, config, layout, outcomes)
    total = len(jobs) + len(outcomes)
    completed = len(outcomes)

    for outcome in outcomes:
        _emit_progress(progress_callback, completed, total, outcome)

    if jobs:
        layout.prepare_directories(job.output_path for job in jobs)
        options = EncodeOptions(quality=config.quality, background=config.background)

        def record(outcome: JobOutcome) -> None:
            nonlocal completed
            outcomes.append(outcome)
            completed += 1
            _emit_progress(progress_callback, completed, total, outcome)

        # 写入任一源文件路径的任务放到最后执行，其他任务读取源文件时不会被替换。
        source_paths = {candidate.path for candidate in candidates}
        overwriting = [job for job in jobs if job.output_path in source_paths]
        others = [job for job in jobs if job.output_path not in source_paths]
        for phase in (others, overwriting):
            _execute_jobs(phase, options, config.workers, record)

    statistics = aggregate(outcomes, started, time.perf_counter())
    LOGGER.info(
        "处理完成：成功 %d，失败 %d，跳过 %d",
        statistics.processed_count,
        statistics.failed_count,
        statistics.skipped_count,
    )

    return BatchResult(
        succeeded=[o for o in outcomes if o.status == STATUS_CONVERTED],
        skipped=[o for o in outcomes if o.status == STATUS_SKIPPED],
        failed=[o for o in outcomes if o.status == STATUS_FAILED],
        statistics=statistics,
        output_location=layout.output_dir,
    )


def _plan_jobs(
    candidates: list[CandidateFile],
    config: EffectiveConfig,
    layout: OutputManager,
    outcomes: list[JobOutcome],
) -> list[ConversionJob]:
    """为所有候选文件构建任务，无法构建的文件直接记录为跳过或失败。"""

    jobs: list[ConversionJob] = []
    reserved_paths: Set[Path] = set()

    for candidate in candidates:
        try:
            planned = build_jobs(candidate, config, layout)
        except UnsupportedFormat as exc:
            LOGGER.info("跳过 %s：%s", candidate.name, exc)
            outcomes.append(JobOutcome(source_path=candidate.path, status=STATUS_SKIPPED, message=str(exc)))
            continue
        except CodecError as exc:
            LOGGER.warning("无法读取 %s：%s", candidate.name, exc)
            outcomes.append(JobOutcome(source_path=candidate.path, status=STATUS_FAILED, message=str(exc)))
            continue

        for job in planned:
            # 例如 a.jpg 与 a.jpeg 同时转换为 png 时会写入同一路径。
            if job.output_path in reserved_paths:
                outcomes.append(
                    JobOutcome(
                        source_path=candidate.path,
                        status=STATUS_SKIPPED,
                        output_format=job.output_format,
                        message=f"输出路径与其他任务冲突: {job.output_path.name}",
                        scale_label=job.scale_label,
                    )
                )
                continue
            reserved_paths.add(job.output_path)
            jobs.append(job)

    return jobs


def _emit_progress(
    callback: ProgressCallback,
    completed: int,
    total: int,
    outcome: Optional[JobOutcome] = None,
) -> None:
    if not callback:
        return
    callback(ProgressUpdate(total=total, completed=completed, outcome=outcome))


def _execute_jobs(
    jobs: list[ConversionJob],
    options: EncodeOptions,
    max_workers: int,
    record: Callable[[JobOutcome], None],
) -> None:
    """执行一组互相独立的任务，结果按完成顺序交给 record。"""

    if not jobs:
        return

    if max_workers <= 1 or len(jobs) == 1:
        for job in jobs:
            record(run_job(job, options))
        return

    with ProcessPoolExecutor(max_workers=min(max_workers, len(jobs))) as executor:
        future_map = {executor.submit(run_job, job, options): job for job in jobs}
        for future in as_completed(future_map):
            job = future_map[future]
            try:
                outcome = future.result()
            except Exception as exc:  # noqa: BLE001
                LOGGER.exception("任务执行异常：%s", exc)
                outcome = JobOutcome(
                    source_path=job.source.path,
                    status=STATUS_FAILED,
                    output_format=job.output_format,
                    message=str(exc),
                    scale_label=job.scale_label,
                )
            record(outcome)
