"""进度更新的数据模型。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from imgconvert.core.models import JobOutcome


@dataclass(frozen=True, slots=True)
class ProgressUpdate:
    """每完成（或跳过）一个任务时发出的进度信息。"""

    total: int
    completed: int
    outcome: Optional[JobOutcome] = None