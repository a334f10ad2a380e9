"""转换任务构建：把候选文件展开为一个或多个 ConversionJob。"""

from __future__ import annotations

import logging
import math
from typing import Optional

from imgconvert.core.config import EffectiveConfig, ScalePreset
from imgconvert.core.exceptions import UnsupportedFormat
from imgconvert.core.formats import FORMAT_ALL, FORMAT_NONE, SUPPORTED_FORMATS, ImageFormat, parse_format
from imgconvert.core.models import FIT_CONTAIN, FIT_COVER, FIT_INSIDE, CandidateFile, ConversionJob
from imgconvert.core.output_manager import OutputManager
from imgconvert.processing.codec import probe_size

LOGGER = logging.getLogger(__name__)

BASE_DENSITY = 72


def build_jobs(candidate: CandidateFile, config: EffectiveConfig, layout: OutputManager) -> list[ConversionJob]:
    """根据配置为单个候选文件生成转换任务。

    源格式或目标格式不受支持时抛出 UnsupportedFormat；多倍率预设读取源图尺寸失败时
    抛出 CodecError。两者都由调用方记录为该文件的结果，不影响其他文件。
    """

    if candidate.source_format is None:
        raise UnsupportedFormat(f"不支持的文件类型: .{candidate.extension or '?'}")

    if config.scale_preset is not None:
        return _build_scaled_jobs(candidate, config, config.scale_preset, layout)

    target_size, fit = _explicit_resize(config)
    return [
        ConversionJob(
            source=candidate,
            output_format=output_format,
            output_path=layout.destination(candidate, output_format),
            target_size=target_size,
            fit=fit,
        )
        for output_format in requested_formats(candidate, config.format)
    ]


def requested_formats(candidate: CandidateFile, requested: str) -> list[ImageFormat]:
    """all -> 全部格式；none -> 源文件格式；否则为指定格式。"""

    if requested == FORMAT_ALL:
        return list(SUPPORTED_FORMATS)
    if requested == FORMAT_NONE:
        assert candidate.source_format is not None
        return [candidate.source_format]

    output_format = parse_format(requested)
    if output_format is None:
        raise UnsupportedFormat(f"不支持的输出格式: {requested}")
    return [output_format]


def scaled_dimensions(
    size: tuple[int, int],
    reference_divisor: float,
    factor: float,
) -> tuple[int, int]:
    """以 reference_divisor 倍图为基准，计算指定倍率下的尺寸。"""

    width, height = size
    return (
        max(1, _round_half_up(width / reference_divisor * factor)),
        max(1, _round_half_up(height / reference_divisor * factor)),
    )


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _explicit_resize(config: EffectiveConfig) -> tuple[Optional[tuple[Optional[int], Optional[int]]], str]:
    if config.width is None and config.height is None:
        return None, FIT_INSIDE
    if config.width is not None and config.height is not None:
        return (config.width, config.height), FIT_COVER
    return (config.width, config.height), FIT_INSIDE


def _scaled_output_format(candidate: CandidateFile, requested: str) -> ImageFormat:
    # 多倍率预设只输出一种格式；all/none 时沿用源格式。
    if requested in (FORMAT_ALL, FORMAT_NONE):
        assert candidate.source_format is not None
        return candidate.source_format
    output_format = parse_format(requested)
    if output_format is None:
        raise UnsupportedFormat(f"不支持的输出格式: {requested}")
    return output_format


def _build_scaled_jobs(
    candidate: CandidateFile,
    config: EffectiveConfig,
    preset: ScalePreset,
    layout: OutputManager,
) -> list[ConversionJob]:
    output_format = _scaled_output_format(candidate, config.format)
    natural_size = probe_size(candidate.path)
    LOGGER.debug("%s 原始尺寸 %dx%d", candidate.name, *natural_size)

    jobs: list[ConversionJob] = []
    for target in preset.targets:
        for bucket, factor in target.scales:
            jobs.append(
                ConversionJob(
                    source=candidate,
                    output_format=output_format,
                    output_path=layout.scaled_destination(candidate, output_format, target, bucket),
                    target_size=scaled_dimensions(natural_size, preset.reference_divisor, factor),
                    fit=FIT_CONTAIN,
                    scale_label=f"{target.name}/{bucket}",
                    density=round(BASE_DENSITY * factor),
                )
            )
    return jobs
