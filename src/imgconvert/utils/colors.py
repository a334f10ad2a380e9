"""颜色工具函数。"""

from __future__ import annotations

from typing import Tuple

from PIL import ImageColor

from imgconvert.core.exceptions import InvalidConfigurationError


def parse_color(value: str) -> Tuple[int, int, int]:
    """将颜色字符串（#fff、#ffffff、white、rgb(...)）解析为 RGB 三元组。"""

    if not value or not value.strip():
        raise InvalidConfigurationError("颜色值不能为空")

    try:
        rgb = ImageColor.getrgb(value.strip())
    except ValueError as exc:
        raise InvalidConfigurationError(f"无法解析颜色值: {value}") from exc

    return rgb[0], rgb[1], rgb[2]
