"""基于 Pillow 的编解码适配层。

每种输出格式对应 ``ENCODERS`` 中的一个函数，负责把图像转换为该格式可接受的
模式并给出 ``Image.save`` 的参数。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from imgconvert.core.exceptions import CodecError
from imgconvert.core.formats import ImageFormat
from imgconvert.core.models import FIT_CONTAIN, FIT_COVER, EncodeOptions
from imgconvert.utils.colors import parse_color

LOGGER = logging.getLogger(__name__)

_RESAMPLING = Image.Resampling.LANCZOS

PNG_COMPRESS_LEVEL = 9
PALETTE_COLORS = 256

SaveParams = Dict[str, Any]
Encoder = Callable[[Image.Image, EncodeOptions], Tuple[Image.Image, SaveParams]]
TargetSize = Optional[Tuple[Optional[int], Optional[int]]]


def probe_size(path: Path) -> Tuple[int, int]:
    """只读取文件头，返回图像的原始宽高（已考虑 EXIF 方向）。"""

    try:
        with Image.open(path) as img:
            width, height = img.size
            orientation = img.getexif().get(0x0112)
    except (UnidentifiedImageError, OSError) as exc:
        raise CodecError(f"无法识别图像: {path.name}") from exc

    # 方向 5-8 表示需要旋转 90 度。
    if orientation in {5, 6, 7, 8}:
        return height, width
    return width, height


def encode(
    source: Path,
    destination: Path,
    output_format: ImageFormat,
    options: EncodeOptions,
    *,
    target_size: TargetSize = None,
    fit: str = FIT_CONTAIN,
    density: Optional[int] = None,
) -> None:
    """解码 source，按需缩放后以 output_format 编码写入 destination。"""

    try:
        with Image.open(source) as img:
            img.load()
            working = ImageOps.exif_transpose(img)
            working = _apply_resize(working, target_size, fit, output_format, options.background)
            prepared, params = ENCODERS[output_format](working, options)
            if density:
                params["dpi"] = (density, density)
            prepared.save(destination, format=output_format.pillow_name, **params)
    except (UnidentifiedImageError, OSError, ValueError, KeyError) as exc:
        LOGGER.debug("编码失败 %s -> %s: %s", source, output_format.value, exc)
        raise CodecError(f"{exc}") from exc


def _has_alpha(img: Image.Image) -> bool:
    if img.mode in ("RGBA", "LA", "PA"):
        return True
    return img.mode == "P" and "transparency" in img.info


def _flatten(img: Image.Image, background: str) -> Image.Image:
    """将透明图像合成到不透明背景上。"""

    rgba = img.convert("RGBA")
    canvas = Image.new("RGBA", rgba.size, parse_color(background) + (255,))
    return Image.alpha_composite(canvas, rgba).convert("RGB")


def _apply_resize(
    img: Image.Image,
    target_size: TargetSize,
    fit: str,
    output_format: ImageFormat,
    background: str,
) -> Image.Image:
    if not target_size:
        return img

    width, height = target_size
    if width is None and height is None:
        return img

    src_w, src_h = img.size
    if width is None:
        width = max(1, round(src_w * height / src_h))
    elif height is None:
        height = max(1, round(src_h * width / src_w))
    else:
        if fit == FIT_COVER:
            return ImageOps.fit(img, (width, height), _RESAMPLING, centering=(0.5, 0.5))
        if fit == FIT_CONTAIN:
            return _apply_contain(img, (width, height), output_format, background)

    if (width, height) == img.size:
        return img
    return img.resize((width, height), _RESAMPLING)


def _apply_contain(
    img: Image.Image,
    target_size: tuple[int, int],
    output_format: ImageFormat,
    background: str,
) -> Image.Image:
    """保持比例缩放到目标尺寸内，空白处填充（支持透明的格式填充透明）。"""

    alpha = 0 if output_format.supports_alpha else 255
    canvas = Image.new("RGBA", target_size, parse_color(background) + (alpha,))

    resized = ImageOps.contain(img.convert("RGBA"), target_size, _RESAMPLING)
    offset = (
        (target_size[0] - resized.width) // 2,
        (target_size[1] - resized.height) // 2,
    )
    canvas.alpha_composite(resized, dest=offset)
    return canvas


def _encode_jpeg(img: Image.Image, options: EncodeOptions) -> Tuple[Image.Image, SaveParams]:
    if _has_alpha(img):
        img = _flatten(img, options.background)
    elif img.mode not in ("RGB", "L", "CMYK"):
        img = img.convert("RGB")
    return img, {"quality": options.quality, "optimize": True, "progressive": True}


def _encode_png(img: Image.Image, options: EncodeOptions) -> Tuple[Image.Image, SaveParams]:
    # 调色板模式：RGBA 只能使用 FASTOCTREE 量化。
    if img.mode != "P":
        if _has_alpha(img):
            img = img.convert("RGBA").quantize(colors=PALETTE_COLORS, method=Image.Quantize.FASTOCTREE)
        else:
            img = img.convert("RGB").quantize(colors=PALETTE_COLORS, method=Image.Quantize.MEDIANCUT)
    return img, {"compress_level": PNG_COMPRESS_LEVEL, "optimize": True}


def _rgb_or_rgba(img: Image.Image) -> Image.Image:
    if img.mode in ("RGB", "RGBA"):
        return img
    return img.convert("RGBA" if _has_alpha(img) else "RGB")


def _encode_webp(img: Image.Image, options: EncodeOptions) -> Tuple[Image.Image, SaveParams]:
    return _rgb_or_rgba(img), {"quality": options.quality}


def _encode_avif(img: Image.Image, options: EncodeOptions) -> Tuple[Image.Image, SaveParams]:
    return _rgb_or_rgba(img), {"quality": options.quality}


def _encode_tiff(img: Image.Image, options: EncodeOptions) -> Tuple[Image.Image, SaveParams]:
    # LZW 为无损压缩，quality 不参与编码。
    return _rgb_or_rgba(img), {"compression": "tiff_lzw"}


def _encode_gif(img: Image.Image, options: EncodeOptions) -> Tuple[Image.Image, SaveParams]:
    if img.mode == "P":
        return img, {"optimize": True}
    if _has_alpha(img):
        # 透明度由 Pillow 的 GIF 编码器转换为透明色索引。
        return img.convert("RGBA"), {"optimize": True}
    quantized = img.convert("RGB").quantize(colors=PALETTE_COLORS, dither=Image.Dither.FLOYDSTEINBERG)
    return quantized, {"optimize": True}


ENCODERS: Dict[ImageFormat, Encoder] = {
    ImageFormat.JPEG: _encode_jpeg,
    ImageFormat.PNG: _encode_png,
    ImageFormat.WEBP: _encode_webp,
    ImageFormat.AVIF: _encode_avif,
    ImageFormat.TIFF: _encode_tiff,
    ImageFormat.GIF: _encode_gif,
}
