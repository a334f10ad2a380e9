"""支持的图像格式与扩展名映射。"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ImageFormat(str, Enum):
    """可作为输出目标的图像格式。"""

    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"
    AVIF = "avif"
    TIFF = "tiff"
    GIF = "gif"

    @property
    def extension(self) -> str:
        return CANONICAL_EXTENSIONS[self]

    @property
    def pillow_name(self) -> str:
        return self.value.upper()

    @property
    def supports_alpha(self) -> bool:
        return self is not ImageFormat.JPEG


FORMAT_ALL = "all"
FORMAT_NONE = "none"

SUPPORTED_FORMATS: tuple[ImageFormat, ...] = tuple(ImageFormat)

CANONICAL_EXTENSIONS = {
    ImageFormat.JPEG: "jpg",
    ImageFormat.PNG: "png",
    ImageFormat.WEBP: "webp",
    ImageFormat.AVIF: "avif",
    ImageFormat.TIFF: "tiff",
    ImageFormat.GIF: "gif",
}

EXTENSION_TO_FORMAT = {
    "jpeg": ImageFormat.JPEG,
    "jpg": ImageFormat.JPEG,
    "png": ImageFormat.PNG,
    "webp": ImageFormat.WEBP,
    "avif": ImageFormat.AVIF,
    "tiff": ImageFormat.TIFF,
    "tif": ImageFormat.TIFF,
    "gif": ImageFormat.GIF,
}

# 用户输入的格式别名。
FORMAT_ALIASES = {"jpg": "jpeg", "tif": "tiff"}


def format_for_extension(extension: str) -> Optional[ImageFormat]:
    """根据扩展名（不含点）查找对应格式。"""

    return EXTENSION_TO_FORMAT.get(extension.lower().lstrip("."))


def parse_format(value: str) -> Optional[ImageFormat]:
    """将格式名解析为 ImageFormat，未知格式返回 None。"""

    name = FORMAT_ALIASES.get(value.lower(), value.lower())
    try:
        return ImageFormat(name)
    except ValueError:
        return None
