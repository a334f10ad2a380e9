"""核心数据模型定义。"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple

from imgconvert.core.formats import ImageFormat

STATUS_CONVERTED = "converted"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"

FIT_COVER = "cover"
FIT_INSIDE = "inside"
FIT_CONTAIN = "contain"


@dataclass(frozen=True, slots=True)
class CandidateFile:
    """扫描阶段得到的候选文件。"""

    path: Path
    extension: str
    source_format: Optional[ImageFormat]

    @property
    def name(self) -> str:
        return self.path.name


@dataclass(frozen=True, slots=True)
class ConversionJob:
    """单个转换任务：一个源文件到一种格式/尺寸组合。"""

    source: CandidateFile
    output_format: ImageFormat
    output_path: Path
    target_size: Optional[Tuple[Optional[int], Optional[int]]] = None
    fit: str = FIT_INSIDE
    scale_label: Optional[str] = None
    density: Optional[int] = None


@dataclass(frozen=True, slots=True)
class EncodeOptions:
    """传给编解码器的与格式无关的参数。"""

    quality: int
    background: str


@dataclass(frozen=True, slots=True)
class JobOutcome:
    """记录单个任务的结果（成功、失败或跳过）。"""

    source_path: Path
    status: str
    output_format: Optional[ImageFormat] = None
    output_path: Optional[Path] = None
    original_size: int = 0
    new_size: int = 0
    message: Optional[str] = None
    scale_label: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == STATUS_CONVERTED

    @property
    def savings_percent(self) -> Optional[float]:
        if not self.succeeded or self.original_size <= 0:
            return None
        return (self.original_size - self.new_size) / self.original_size * 100.0


@dataclass(frozen=True, slots=True)
class RunStatistics:
    """整批任务的汇总统计。"""

    processed_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    total_original_bytes: int = 0
    total_new_bytes: int = 0
    elapsed_seconds: float = 0.0
    per_format: Dict[str, int] = field(default_factory=dict)

    @property
    def savings_percent(self) -> Optional[float]:
        if self.total_original_bytes <= 0:
            return None
        return (self.total_original_bytes - self.total_new_bytes) / self.total_original_bytes * 100.0


@dataclass(slots=True)
class BatchResult:
    """批处理的全部产出。"""

    succeeded: list[JobOutcome]
    skipped: list[JobOutcome]
    failed: list[JobOutcome]
    statistics: RunStatistics
    output_location: Optional[Path] = None

    def all_outcomes(self) -> list[JobOutcome]:
        """返回所有结果记录，方便生成汇总。"""

        return [*self.succeeded, *self.skipped, *self.failed]
