"""参数解析：默认值、优先级与校验。"""

from __future__ import annotations

import pytest

from imgconvert.core.config import EffectiveConfig
from imgconvert.core.exceptions import EnvironmentNotFound, PresetNotFound, ValidationError
from imgconvert.core.options import CliArgs, resolve


def test_defaults_without_config_or_flags() -> None:
    config = resolve(CliArgs(), {})

    assert config == EffectiveConfig(
        format="none",
        quality=85,
        background="#ffffff",
        replace=False,
        width=None,
        height=None,
        output_directory=None,
        preset_name=None,
        environment_name="dev",
        debug=False,
        workers=4,
        scale_preset=None,
    )


@pytest.mark.parametrize("quality", ["0", "101", 0, 101, "-5"])
def test_quality_out_of_range_is_rejected(quality) -> None:
    with pytest.raises(ValidationError) as excinfo:
        resolve(CliArgs(quality=quality), {})
    assert excinfo.value.flag == "--quality"


@pytest.mark.parametrize("quality", ["1", "100", 50])
def test_quality_bounds_are_accepted(quality) -> None:
    assert resolve(CliArgs(quality=quality), {}).quality == int(quality)


@pytest.mark.parametrize(
    ("field", "flag"),
    [("quality", "--quality"), ("width", "--width"), ("height", "--height"), ("workers", "--workers")],
)
def test_non_integer_values_name_the_flag(field: str, flag: str) -> None:
    with pytest.raises(ValidationError) as excinfo:
        resolve(CliArgs(**{field: "abc"}), {})
    assert excinfo.value.flag == flag
    assert flag in str(excinfo.value)


@pytest.mark.parametrize("value", ["0", "-10"])
def test_dimensions_must_be_positive(value: str) -> None:
    with pytest.raises(ValidationError):
        resolve(CliArgs(width=value), {})
    with pytest.raises(ValidationError):
        resolve(CliArgs(height=value), {})


def test_replace_accepts_true_false_strings() -> None:
    assert resolve(CliArgs(replace="true"), {}).replace is True
    assert resolve(CliArgs(replace="FALSE"), {}).replace is False

    with pytest.raises(ValidationError) as excinfo:
        resolve(CliArgs(replace="maybe"), {})
    assert excinfo.value.flag == "--replace"


def test_invalid_background_is_rejected() -> None:
    with pytest.raises(ValidationError) as excinfo:
        resolve(CliArgs(background="not-a-colour"), {})
    assert excinfo.value.flag == "--background"


def test_unknown_format_is_kept_for_later_skip() -> None:
    assert resolve(CliArgs(format="BMP"), {}).format == "bmp"
    assert resolve(CliArgs(format="jpg"), {}).format == "jpeg"
    assert resolve(CliArgs(format="ALL"), {}).format == "all"


def test_config_file_values_sit_under_cli_flags() -> None:
    file_config = {"quality": 60, "format": "webp", "background": "#000000"}

    from_file = resolve(CliArgs(), file_config)
    assert from_file.quality == 60
    assert from_file.format == "webp"
    assert from_file.background == "#000000"

    overridden = resolve(CliArgs(quality="90"), file_config)
    assert overridden.quality == 90
    assert overridden.format == "webp"


def test_preset_overrides_config_file() -> None:
    config = resolve(CliArgs(preset="web"), {"format": "png", "quality": 50})

    assert config.preset_name == "web"
    assert config.format == "webp"
    assert config.quality == 80


def test_environment_overrides_preset_replace() -> None:
    file_config = {
        "presets": {"inplace": {"replace": True, "format": "png"}},
        "environments": {"safe": {"replace": False}},
    }

    dev = resolve(CliArgs(preset="inplace"), file_config)
    assert dev.replace is True
    assert dev.format == "png"

    safe = resolve(CliArgs(preset="inplace", environment="safe"), file_config)
    assert safe.replace is False

    prod = resolve(CliArgs(environment="prod"), {"replace": False})
    assert prod.replace is True


def test_top_level_replace_survives_default_environment() -> None:
    config = resolve(CliArgs(), {"replace": True})
    assert config.environment_name == "dev"
    assert config.replace is True


def test_debug_from_config_file_is_parsed_as_bool() -> None:
    assert resolve(CliArgs(), {"debug": "false"}).debug is False
    assert resolve(CliArgs(), {"debug": "yes"}).debug is True
    assert resolve(CliArgs(debug=True), {"debug": "false"}).debug is True

    with pytest.raises(ValidationError) as excinfo:
        resolve(CliArgs(), {"debug": "sometimes"})
    assert excinfo.value.flag == "--debug"


def test_cli_flag_overrides_environment() -> None:
    config = resolve(CliArgs(environment="prod", replace="false"), {})
    assert config.environment_name == "prod"
    assert config.replace is False


def test_undefined_layer_values_do_not_override() -> None:
    file_config = {"width": 640, "presets": {"plain": {"width": None}}}
    config = resolve(CliArgs(preset="plain"), file_config)
    assert config.width == 640


def test_config_file_can_select_preset_and_environment() -> None:
    config = resolve(CliArgs(), {"preset": "thumbnail", "environment": "prod"})
    assert config.preset_name == "thumbnail"
    assert config.width == 320
    assert config.replace is True


def test_config_presets_merge_with_builtins() -> None:
    file_config = {"presets": {"web": {"quality": 65}}}
    config = resolve(CliArgs(preset="web"), file_config)
    assert config.format == "webp"
    assert config.quality == 65


def test_unknown_preset_is_fatal() -> None:
    with pytest.raises(PresetNotFound) as excinfo:
        resolve(CliArgs(preset="missing"), {})
    assert excinfo.value.flag == "--preset"


def test_unknown_environment_is_fatal() -> None:
    with pytest.raises(EnvironmentNotFound) as excinfo:
        resolve(CliArgs(environment="staging"), {})
    assert excinfo.value.flag == "--environment"


def test_config_file_environments_are_available() -> None:
    config = resolve(CliArgs(environment="staging"), {"environments": {"staging": {"replace": True}}})
    assert config.environment_name == "staging"
    assert config.replace is True


def test_alloy_preset_builds_scale_targets() -> None:
    config = resolve(CliArgs(preset="alloy"), {})

    assert config.format == "png"
    assert config.output_directory == "alloy"
    assert config.scale_preset is not None
    assert config.scale_preset.reference_divisor == 4
    families = {target.name: target for target in config.scale_preset.targets}
    assert families["android"].layout == "directory"
    assert ("res-xhdpi", 2.0) in families["android"].scales
    assert families["iphone"].layout == "suffix"
    assert families["iphone"].scales == (("1x", 1.0), ("2x", 2.0), ("3x", 3.0))


def test_invalid_scale_preset_is_a_validation_error() -> None:
    file_config = {"presets": {"broken": {"targets": {"ios": {"layout": "zigzag", "scales": {"1x": 1}}}}}}
    with pytest.raises(ValidationError):
        resolve(CliArgs(preset="broken"), file_config)


def test_resolve_returns_frozen_config() -> None:
    config = resolve(CliArgs(), {})
    with pytest.raises(AttributeError):
        config.quality = 10  # type: ignore[misc]
