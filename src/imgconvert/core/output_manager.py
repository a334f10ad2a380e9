"""输出目录、输出路径与原子写入。"""

from __future__ import annotations

import errno
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Iterable

from imgconvert.core.config import DEFAULT_OUTPUT_DIRNAME, EffectiveConfig, ScaleTarget
from imgconvert.core.exceptions import ImageWriteError, OutputDirectoryError
from imgconvert.core.formats import ImageFormat
from imgconvert.core.models import CandidateFile

LOGGER = logging.getLogger(__name__)

SCRATCH_PREFIX = "imgconvert_"

UNSCALED_BUCKET = "1x"


class OutputManager:
    """负责确定输出根目录、各任务的输出路径以及目录创建。"""

    def __init__(self, config: EffectiveConfig, input_path: Path) -> None:
        self.config = config
        self.input_dir = input_path if input_path.is_dir() else input_path.parent
        self.output_dir = self._resolve_output_dir()

    def _resolve_output_dir(self) -> Path:
        if self.config.replace:
            return self.input_dir
        if self.config.output_directory:
            # 相对路径以输入目录为基准；命令行参数在 CLI 层已转换为绝对路径。
            return self.input_dir / self.config.output_directory
        return self.input_dir / DEFAULT_OUTPUT_DIRNAME

    def output_extension(self, source: CandidateFile, output_format: ImageFormat) -> str:
        """同格式时沿用源扩展名（photo.jpg 仍为 .jpg），否则使用格式的标准扩展名。"""

        if source.source_format is output_format:
            return source.extension
        return output_format.extension

    def destination(self, source: CandidateFile, output_format: ImageFormat) -> Path:
        """普通（非多倍率）任务的输出路径。"""

        name = f"{source.path.stem}.{self.output_extension(source, output_format)}"
        if self.config.replace:
            return source.path.parent / name
        return self.output_dir / name

    def scaled_destination(
        self,
        source: CandidateFile,
        output_format: ImageFormat,
        target: ScaleTarget,
        bucket: str,
    ) -> Path:
        """多倍率任务的输出路径。

        directory 布局: ``<root>/<family>/<bucket>/<stem>.<ext>``；
        suffix 布局: ``<root>/<family>/<stem>@<bucket>.<ext>``，1x 使用原文件名。
        替换模式下 root 为源文件目录且省略 family 目录。
        """

        extension = self.output_extension(source, output_format)
        stem = source.path.stem
        if self.config.replace:
            root = source.path.parent
        else:
            root = self.output_dir / target.directory

        if target.layout == "suffix":
            if bucket == UNSCALED_BUCKET:
                return root / f"{stem}.{extension}"
            return root / f"{stem}@{bucket}.{extension}"
        return root / bucket / f"{stem}.{extension}"

    def prepare_directories(self, destinations: Iterable[Path]) -> None:
        """在派发任务之前创建所有输出目录（幂等）。"""

        directories = {path.parent for path in destinations}
        for directory in sorted(directories):
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise OutputDirectoryError(f"无法创建输出目录: {directory} ({exc})") from exc
        LOGGER.debug("已准备 %d 个输出目录", len(directories))


def create_scratch_file(output_format: ImageFormat) -> Path:
    """在系统临时目录中创建唯一的临时文件。"""

    fd, name = tempfile.mkstemp(prefix=SCRATCH_PREFIX, suffix=f".{output_format.extension}")
    os.close(fd)
    return Path(name)


def finalize_output(scratch: Path, destination: Path) -> None:
    """将临时文件原子地移动到最终位置。

    跨文件系统时先复制到目标目录中的临时文件，再在同一文件系统内 rename。
    """

    try:
        os.replace(scratch, destination)
        return
    except OSError as exc:
        if exc.errno != errno.EXDEV:
            raise ImageWriteError(f"写入文件失败: {destination} ({exc})") from exc

    sibling = create_scratch_file_like(destination)
    try:
        shutil.copyfile(scratch, sibling)
        os.replace(sibling, destination)
    except OSError as exc:
        discard(sibling)
        raise ImageWriteError(f"写入文件失败: {destination} ({exc})") from exc
    finally:
        discard(scratch)


def create_scratch_file_like(destination: Path) -> Path:
    fd, name = tempfile.mkstemp(prefix=f".{SCRATCH_PREFIX}", suffix=destination.suffix, dir=str(destination.parent))
    os.close(fd)
    return Path(name)


def discard(path: Path) -> None:
    """删除临时文件，文件不存在时忽略。"""

    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        LOGGER.warning("无法删除临时文件 %s: %s", path, exc)
