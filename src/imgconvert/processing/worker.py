"""并发执行的工作单元：执行单个转换任务。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from imgconvert.core.exceptions import ImageConvertError
from imgconvert.core.models import STATUS_CONVERTED, STATUS_FAILED, ConversionJob, EncodeOptions, JobOutcome
from imgconvert.core.output_manager import create_scratch_file, discard, finalize_output
from imgconvert.processing import codec

LOGGER = logging.getLogger(__name__)


def run_job(job: ConversionJob, options: EncodeOptions) -> JobOutcome:
    """在工作进程中执行单个任务；任何错误都记录为失败结果，不向外抛出。"""

    source_path = job.source.path
    scratch: Optional[Path] = None

    try:
        # 替换原文件时必须在写入前记录原始大小。
        original_size = source_path.stat().st_size
        scratch = create_scratch_file(job.output_format)
        codec.encode(
            source_path,
            scratch,
            job.output_format,
            options,
            target_size=job.target_size,
            fit=job.fit,
            density=job.density,
        )
        finalize_output(scratch, job.output_path)
        scratch = None
        new_size = job.output_path.stat().st_size
    except (ImageConvertError, OSError) as exc:
        return _failure(job, str(exc))
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("任务执行异常：%s", source_path)
        return _failure(job, f"{type(exc).__name__}: {exc}")
    finally:
        if scratch is not None:
            discard(scratch)

    return JobOutcome(
        source_path=source_path,
        status=STATUS_CONVERTED,
        output_format=job.output_format,
        output_path=job.output_path,
        original_size=original_size,
        new_size=new_size,
        scale_label=job.scale_label,
    )


def _failure(job: ConversionJob, message: str) -> JobOutcome:
    return JobOutcome(
        source_path=job.source.path,
        status=STATUS_FAILED,
        output_format=job.output_format,
        message=message or "未知错误",
        scale_label=job.scale_label,
    )
