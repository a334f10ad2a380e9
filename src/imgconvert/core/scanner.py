"""文件扫描与筛选逻辑。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

from imgconvert.core.exceptions import PathNotFound
from imgconvert.core.formats import EXTENSION_TO_FORMAT, format_for_extension
from imgconvert.core.models import CandidateFile

LOGGER = logging.getLogger(__name__)

IMAGE_EXTENSIONS = frozenset(EXTENSION_TO_FORMAT)


def _extension_of(path: Path) -> str:
    return path.suffix.lower().lstrip(".")


def _iter_directory_files(directory: Path) -> Iterator[Path]:
    """遍历目录的直接子项（不递归），只返回普通文件。"""

    for entry in directory.iterdir():
        if entry.is_file():
            yield entry


def _to_candidate(path: Path) -> CandidateFile:
    extension = _extension_of(path)
    return CandidateFile(path=path, extension=extension, source_format=format_for_extension(extension))


def discover(input_path: Path) -> list[CandidateFile]:
    """返回输入路径下的候选文件列表。

    单个文件原样返回（扩展名不在此处过滤）；目录只扫描直接子项，
    排除子目录与不支持的扩展名，并按文件名排序以保证结果稳定。
    """

    if not input_path.exists():
        raise PathNotFound(f"指定的路径不存在: {input_path}")

    if not input_path.is_dir():
        return [_to_candidate(input_path)]

    collected: list[CandidateFile] = []
    for candidate in _iter_directory_files(input_path):
        if _extension_of(candidate) not in IMAGE_EXTENSIONS:
            LOGGER.debug("忽略不支持的文件: %s", candidate.name)
            continue
        collected.append(_to_candidate(candidate))

    collected.sort(key=lambda item: (item.path.name.lower(), item.path.name))
    LOGGER.debug("在 %s 中发现 %d 个候选文件", input_path, len(collected))
    return collected
