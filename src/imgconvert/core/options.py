"""参数解析：合并默认值、配置文件、预设、环境与命令行参数。

优先级从低到高::

    内置默认值 -> 配置文件顶层 -> 预设 -> 环境 -> 用户显式传入的命令行参数

较高层只有在值已定义（不为 None）时才覆盖较低层，显式的 ``false`` 也算已定义。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from imgconvert.core.config import (
    BUILTIN_ENVIRONMENTS,
    BUILTIN_PRESETS,
    DEFAULTS,
    OPTION_KEYS,
    EffectiveConfig,
    build_scale_preset,
    merge_tables,
)
from imgconvert.core.exceptions import (
    EnvironmentNotFound,
    InvalidConfigurationError,
    PresetNotFound,
    ValidationError,
)
from imgconvert.core.formats import FORMAT_ALIASES
from imgconvert.utils.colors import parse_color

LOGGER = logging.getLogger(__name__)

DEFAULT_ENVIRONMENT = "dev"

FLAG_NAMES = {
    "format": "--format",
    "quality": "--quality",
    "background": "--background",
    "replace": "--replace",
    "width": "--width",
    "height": "--height",
    "output": "--output",
    "workers": "--workers",
    "debug": "--debug",
}

TRUE_VALUES = {"true", "1", "yes", "on"}
FALSE_VALUES = {"false", "0", "no", "off"}

RawValue = Union[str, int, float, bool, None]


@dataclass(frozen=True, slots=True)
class CliArgs:
    """命令行中用户实际传入的原始值，未传入的字段为 None。"""

    format: Optional[str] = None
    quality: RawValue = None
    background: Optional[str] = None
    replace: RawValue = None
    width: RawValue = None
    height: RawValue = None
    output: Optional[str] = None
    preset: Optional[str] = None
    environment: Optional[str] = None
    workers: RawValue = None
    debug: bool = False

    def overrides(self) -> Dict[str, Any]:
        return {key: getattr(self, key) for key in OPTION_KEYS}


def resolve(cli_args: CliArgs, file_config: Mapping[str, Any]) -> EffectiveConfig:
    """构造本次运行的 EffectiveConfig，参数不合法时抛出 ValidationError。"""

    presets = merge_tables(BUILTIN_PRESETS, file_config.get("presets"))
    environments = merge_tables(BUILTIN_ENVIRONMENTS, file_config.get("environments"))

    preset_name = cli_args.preset or file_config.get("preset") or None
    environment_name = cli_args.environment or file_config.get("environment") or DEFAULT_ENVIRONMENT

    preset: Dict[str, Any] = {}
    if preset_name:
        if preset_name not in presets:
            raise PresetNotFound(
                f"未知的预设: {preset_name}（可用: {', '.join(sorted(presets))}）", flag="--preset"
            )
        preset = presets[preset_name]

    if environment_name not in environments:
        raise EnvironmentNotFound(
            f"未知的环境: {environment_name}（可用: {', '.join(sorted(environments))}）",
            flag="--environment",
        )
    environment = environments[environment_name]

    merged: Dict[str, Any] = dict(DEFAULTS)
    for layer in (file_config, preset, environment, cli_args.overrides()):
        _overlay(merged, layer)

    try:
        scale_preset = build_scale_preset(preset_name, preset) if preset_name else None
    except InvalidConfigurationError as exc:
        raise ValidationError(str(exc), flag="--preset") from exc

    config = EffectiveConfig(
        format=_parse_format(merged["format"]),
        quality=_parse_quality(merged["quality"]),
        background=_parse_background(merged["background"]),
        replace=_parse_bool(merged["replace"], "replace"),
        width=_parse_dimension(merged["width"], "width"),
        height=_parse_dimension(merged["height"], "height"),
        output_directory=str(merged["output"]) if merged["output"] else None,
        preset_name=preset_name,
        environment_name=environment_name,
        debug=cli_args.debug or _parse_bool(file_config.get("debug") or False, "debug"),
        workers=_parse_positive_int(merged["workers"], "workers"),
        scale_preset=scale_preset,
    )
    LOGGER.debug("最终配置: %s", config)
    return config


def _overlay(target: Dict[str, Any], layer: Mapping[str, Any]) -> None:
    for key in OPTION_KEYS:
        value = layer.get(key)
        if value is not None:
            target[key] = value


def _parse_format(value: Any) -> str:
    # 未知格式保留原值，由任务构建阶段按文件跳过。
    name = str(value).strip().lower()
    if not name:
        raise ValidationError("--format 不能为空", flag=FLAG_NAMES["format"])
    return FORMAT_ALIASES.get(name, name)


def _parse_int(value: Any, key: str) -> int:
    flag = FLAG_NAMES[key]
    if isinstance(value, bool):
        raise ValidationError(f"{flag} 必须是整数: {value!r}", flag=flag)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    try:
        return int(str(value).strip(), 10)
    except ValueError as exc:
        raise ValidationError(f"{flag} 必须是整数: {value!r}", flag=flag) from exc


def _parse_quality(value: Any) -> int:
    quality = _parse_int(value, "quality")
    if not 1 <= quality <= 100:
        raise ValidationError(f"--quality 必须在 1 到 100 之间: {quality}", flag="--quality")
    return quality


def _parse_positive_int(value: Any, key: str) -> int:
    number = _parse_int(value, key)
    if number <= 0:
        flag = FLAG_NAMES[key]
        raise ValidationError(f"{flag} 必须是正整数: {number}", flag=flag)
    return number


def _parse_dimension(value: Any, key: str) -> Optional[int]:
    if value is None or value == "":
        return None
    return _parse_positive_int(value, key)


def _parse_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    flag = FLAG_NAMES[key]
    raise ValidationError(f"{flag} 只接受 true 或 false: {value!r}", flag=flag)


def _parse_background(value: Any) -> str:
    text = str(value).strip()
    try:
        parse_color(text)
    except InvalidConfigurationError as exc:
        raise ValidationError(f"--background {exc}", flag="--background") from exc
    return text
