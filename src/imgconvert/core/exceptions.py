"""项目内使用的自定义异常定义。"""

from __future__ import annotations

from typing import Optional


class ImageConvertError(Exception):
    """基础异常类型。"""


class InvalidConfigurationError(ImageConvertError):
    """配置不合法时抛出。"""


class ValidationError(InvalidConfigurationError):
    """命令行或配置文件中的参数值不合法。"""

    def __init__(self, message: str, flag: Optional[str] = None) -> None:
        super().__init__(message)
        self.flag = flag


class PresetNotFound(ValidationError):
    """指定的预设不存在。"""


class EnvironmentNotFound(ValidationError):
    """指定的环境不存在。"""


class PathNotFound(ImageConvertError):
    """输入路径不存在。"""


class OutputDirectoryError(ImageConvertError):
    """无法创建输出目录。"""


class UnsupportedFormat(ImageConvertError):
    """目标格式或源文件格式不受支持。"""


class CodecError(ImageConvertError):
    """图像解码或编码失败。"""


class ImageWriteError(ImageConvertError):
    """输出写入失败。"""
