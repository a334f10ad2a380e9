"""运行配置模型、内置预设与配置文件读写。"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from imgconvert.core.exceptions import InvalidConfigurationError

LOGGER = logging.getLogger(__name__)

CONFIG_FILENAME = ".imgconverter.config"

DEFAULT_OUTPUT_DIRNAME = "compressed"


@dataclass(frozen=True, slots=True)
class ScaleTarget:
    """多倍率预设中的单个设备族。"""

    name: str
    layout: str  # directory | suffix
    directory: str
    scales: Tuple[Tuple[str, float], ...]


@dataclass(frozen=True, slots=True)
class ScalePreset:
    """多倍率资源生成预设（例如 alloy）。"""

    targets: Tuple[ScaleTarget, ...]
    reference_divisor: float = 4.0


@dataclass(frozen=True, slots=True)
class EffectiveConfig:
    """单次运行的最终配置，构造后不再修改。"""

    format: str = "none"
    quality: int = 85
    background: str = "#ffffff"
    replace: bool = False
    width: Optional[int] = None
    height: Optional[int] = None
    output_directory: Optional[str] = None
    preset_name: Optional[str] = None
    environment_name: str = "dev"
    debug: bool = False
    workers: int = 4
    scale_preset: Optional[ScalePreset] = None


# 可以出现在配置文件顶层、预设与环境中的字段。
OPTION_KEYS = ("format", "quality", "background", "replace", "width", "height", "output", "workers")

DEFAULTS: Dict[str, Any] = {
    "format": "none",
    "quality": 85,
    "background": "#ffffff",
    "replace": False,
    "width": None,
    "height": None,
    "output": None,
    "workers": 4,
}

BUILTIN_PRESETS: Dict[str, Dict[str, Any]] = {
    "web": {"format": "webp", "quality": 80},
    "thumbnail": {"width": 320, "quality": 75},
    "lossless": {"format": "png", "quality": 100},
    "alloy": {
        "format": "png",
        "output": "alloy",
        "reference_divisor": 4,
        "targets": {
            "android": {
                "layout": "directory",
                "directory": "android/images",
                "scales": {
                    "res-ldpi": 0.75,
                    "res-mdpi": 1,
                    "res-hdpi": 1.5,
                    "res-xhdpi": 2,
                    "res-xxhdpi": 3,
                    "res-xxxhdpi": 4,
                },
            },
            "iphone": {
                "layout": "suffix",
                "directory": "iphone/images",
                "scales": {"1x": 1, "2x": 2, "3x": 3},
            },
        },
    },
}

BUILTIN_ENVIRONMENTS: Dict[str, Dict[str, Any]] = {
    "dev": {},
    "prod": {"replace": True},
}

SCALE_LAYOUTS = {"directory", "suffix"}


def load_file_config(path: Path) -> Dict[str, Any]:
    """读取 JSON 配置文件；文件不存在时返回空配置。"""

    if not path.exists():
        LOGGER.debug("未找到配置文件 %s，使用内置默认值", path)
        return {}

    try:
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except json.JSONDecodeError as exc:
        raise InvalidConfigurationError(f"配置文件不是合法的 JSON: {path} ({exc})") from exc
    except OSError as exc:
        raise InvalidConfigurationError(f"无法读取配置文件: {path}") from exc

    if not isinstance(data, dict):
        raise InvalidConfigurationError(f"配置文件顶层必须是对象: {path}")

    for table in ("presets", "environments"):
        if table in data and not isinstance(data[table], dict):
            raise InvalidConfigurationError(f"配置文件中的 {table} 必须是对象")

    LOGGER.debug("已加载配置文件 %s", path)
    return data


def default_config_document() -> Dict[str, Any]:
    """生成 `imgconvert config` 写出的默认配置内容。"""

    document: Dict[str, Any] = {key: value for key, value in DEFAULTS.items()}
    document["environment"] = "dev"
    document["presets"] = json.loads(json.dumps(BUILTIN_PRESETS))
    document["environments"] = json.loads(json.dumps(BUILTIN_ENVIRONMENTS))
    return document


def write_default_config(directory: Path, *, force: bool = False) -> Path:
    """在指定目录写出默认配置文件。"""

    path = directory / CONFIG_FILENAME
    if path.exists() and not force:
        raise InvalidConfigurationError(f"配置文件已存在: {path}（使用 --force 覆盖）")

    with path.open("w", encoding="utf-8") as handle:
        json.dump(default_config_document(), handle, indent=2, ensure_ascii=False)
        handle.write("\n")
    return path


def merge_tables(
    builtin: Mapping[str, Mapping[str, Any]],
    overrides: Optional[Mapping[str, Any]],
) -> Dict[str, Dict[str, Any]]:
    """将配置文件中的预设/环境表按字段叠加到内置表上。"""

    merged = {name: dict(entry) for name, entry in builtin.items()}
    for name, entry in (overrides or {}).items():
        if not isinstance(entry, dict):
            raise InvalidConfigurationError(f"预设或环境 {name!r} 必须是对象")
        merged[name] = {**merged.get(name, {}), **entry}
    return merged


def build_scale_preset(name: str, entry: Mapping[str, Any]) -> Optional[ScalePreset]:
    """若预设包含 targets，则解析为多倍率预设。"""

    targets = entry.get("targets")
    if not targets:
        return None
    if not isinstance(targets, dict):
        raise InvalidConfigurationError(f"预设 {name!r} 的 targets 必须是对象")

    try:
        divisor = float(entry.get("reference_divisor", 4))
    except (TypeError, ValueError) as exc:
        raise InvalidConfigurationError(f"预设 {name!r} 的 reference_divisor 必须是数字") from exc
    if divisor <= 0:
        raise InvalidConfigurationError(f"预设 {name!r} 的 reference_divisor 必须大于 0")

    parsed: list[ScaleTarget] = []
    for family, spec in targets.items():
        if not isinstance(spec, dict):
            raise InvalidConfigurationError(f"预设 {name!r} 中的 {family} 必须是对象")
        layout = spec.get("layout", "directory")
        if layout not in SCALE_LAYOUTS:
            raise InvalidConfigurationError(f"未知的倍率布局: {layout}")
        scales = spec.get("scales") or {}
        if not isinstance(scales, dict) or not scales:
            raise InvalidConfigurationError(f"预设 {name!r} 中的 {family} 缺少 scales")
        try:
            scale_items = tuple((str(bucket), float(factor)) for bucket, factor in scales.items())
        except (TypeError, ValueError) as exc:
            raise InvalidConfigurationError(f"预设 {name!r} 中的 {family} 倍率必须是数字") from exc
        if any(factor <= 0 for _, factor in scale_items):
            raise InvalidConfigurationError(f"预设 {name!r} 中的 {family} 倍率必须大于 0")
        parsed.append(
            ScaleTarget(
                name=str(family),
                layout=layout,
                directory=str(spec.get("directory", family)),
                scales=scale_items,
            )
        )

    return ScalePreset(targets=tuple(parsed), reference_divisor=divisor)
