"""端到端：扫描、转换、原子写入与汇总统计。"""

from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image, features

from imgconvert.core.config import BUILTIN_PRESETS, EffectiveConfig, build_scale_preset
from imgconvert.core.exceptions import OutputDirectoryError, PathNotFound
from imgconvert.core.formats import SUPPORTED_FORMATS, ImageFormat
from imgconvert.core.models import STATUS_FAILED, STATUS_SKIPPED
from imgconvert.core.progress import ProgressUpdate
from imgconvert.processing import codec, pipeline
from imgconvert.processing.pipeline import process_batch

AVIF_AVAILABLE = features.check("avif")

TESTABLE_FORMATS = [fmt for fmt in SUPPORTED_FORMATS if fmt is not ImageFormat.AVIF or AVIF_AVAILABLE]


def make_config(**overrides) -> EffectiveConfig:
    overrides.setdefault("workers", 1)
    return EffectiveConfig(**overrides)


def noisy_image(size: tuple[int, int] = (64, 48), mode: str = "RGB") -> Image.Image:
    image = Image.effect_noise(size, 64).convert(mode)
    return image


@pytest.mark.parametrize("output_format", TESTABLE_FORMATS, ids=lambda fmt: fmt.value)
def test_each_format_produces_declared_format_and_accurate_size(tmp_path: Path, output_format: ImageFormat) -> None:
    source = tmp_path / "input"
    source.mkdir()
    noisy_image().save(source / "sample.png")

    result = process_batch(source, make_config(format=output_format.value, quality=70))

    assert len(result.succeeded) == 1
    outcome = result.succeeded[0]
    assert outcome.output_path == source / "compressed" / f"sample.{output_format.extension}"
    assert outcome.new_size == outcome.output_path.stat().st_size
    assert outcome.original_size == (source / "sample.png").stat().st_size

    with Image.open(outcome.output_path) as converted:
        assert converted.format == output_format.pillow_name


def test_pass_through_keeps_format_family(tmp_path: Path) -> None:
    source = tmp_path / "input"
    source.mkdir()
    noisy_image().save(source / "photo.jpg", quality=95)
    noisy_image().save(source / "shot.webp")

    result = process_batch(source, make_config(format="none", quality=60))

    formats = {}
    for outcome in result.succeeded:
        with Image.open(outcome.output_path) as converted:
            formats[outcome.output_path.name] = converted.format
    assert formats == {"photo.jpg": "JPEG", "shot.webp": "WEBP"}


@pytest.mark.skipif(not AVIF_AVAILABLE, reason="当前 Pillow 未启用 AVIF 编码")
def test_all_formats_scenario(tmp_path: Path) -> None:
    source = tmp_path / "input"
    source.mkdir()
    noisy_image().save(source / "a.png")
    (source / "b.txt").write_text("hello")
    noisy_image().save(source / "c.jpg")

    result = process_batch(source, make_config(format="all"))

    assert result.statistics.processed_count == 2 * len(SUPPORTED_FORMATS)
    assert result.failed == []
    assert result.skipped == []
    assert {o.source_path.name for o in result.succeeded} == {"a.png", "c.jpg"}
    assert result.statistics.per_format == {fmt.value: 2 for fmt in SUPPORTED_FORMATS}


def test_all_formats_with_worker_pool(tmp_path: Path) -> None:
    source = tmp_path / "input"
    source.mkdir()
    noisy_image().save(source / "a.png")
    noisy_image().save(source / "c.jpg")

    result = process_batch(source, make_config(format="all", workers=3))

    expected = len(TESTABLE_FORMATS) * 2
    assert result.statistics.processed_count == expected
    assert len(result.all_outcomes()) == 2 * len(SUPPORTED_FORMATS)
    for outcome in result.succeeded:
        assert outcome.output_path.exists()


def test_empty_directory_reports_nothing_processed(tmp_path: Path) -> None:
    (tmp_path / "notes.txt").write_text("hello")

    result = process_batch(tmp_path, make_config())

    assert result.statistics.processed_count == 0
    assert result.statistics.savings_percent is None
    assert result.all_outcomes() == []
    assert not (tmp_path / "compressed").exists()


def test_missing_path_is_fatal(tmp_path: Path) -> None:
    with pytest.raises(PathNotFound):
        process_batch(tmp_path / "missing", make_config())


def test_corrupted_file_does_not_abort_batch(tmp_path: Path) -> None:
    source = tmp_path / "input"
    source.mkdir()
    noisy_image().save(source / "one.png")
    (source / "two.png").write_text("not an image")
    noisy_image().save(source / "three.png")

    result = process_batch(source, make_config(format="webp"))

    assert result.statistics.processed_count == 2
    assert result.statistics.failed_count == 1
    failure = result.failed[0]
    assert failure.source_path.name == "two.png"
    assert failure.status == STATUS_FAILED
    assert failure.output_format is ImageFormat.WEBP
    assert failure.message
    assert not (source / "compressed" / "two.webp").exists()


def test_codec_failure_is_isolated(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    source = tmp_path / "input"
    source.mkdir()
    for name in ("a.png", "b.png", "c.png"):
        noisy_image().save(source / name)

    real_encode = codec.encode

    def flaky_encode(src: Path, *args, **kwargs) -> None:
        if src.name == "b.png":
            raise OSError("encoder exploded")
        real_encode(src, *args, **kwargs)

    monkeypatch.setattr(codec, "encode", flaky_encode)

    result = process_batch(source, make_config(format="jpeg"))

    assert [o.source_path.name for o in result.succeeded] == ["a.png", "c.png"]
    assert len(result.failed) == 1
    assert "encoder exploded" in (result.failed[0].message or "")
    # 失败任务不应残留临时文件或半成品。
    assert sorted(p.name for p in (source / "compressed").iterdir()) == ["a.jpg", "c.jpg"]


def test_replace_overwrites_original_after_recording_size(tmp_path: Path) -> None:
    photo = tmp_path / "photo.jpg"
    noisy_image((200, 150)).save(photo, quality=100)
    before = photo.stat().st_size

    result = process_batch(photo, make_config(format="jpeg", replace=True, quality=30))

    assert len(result.succeeded) == 1
    outcome = result.succeeded[0]
    assert outcome.output_path == photo
    assert outcome.original_size == before
    assert outcome.new_size == photo.stat().st_size
    assert outcome.new_size < before
    assert sorted(p.name for p in tmp_path.iterdir()) == ["photo.jpg"]
    assert result.output_location == tmp_path


def test_jpeg_flattens_transparency_onto_background(tmp_path: Path) -> None:
    source = tmp_path / "input"
    source.mkdir()
    Image.new("RGBA", (20, 20), (0, 0, 0, 0)).save(source / "clear.png")

    result = process_batch(source, make_config(format="jpeg", background="#ff0000", quality=100))

    with Image.open(result.succeeded[0].output_path) as converted:
        assert converted.mode == "RGB"
        red, green, blue = converted.getpixel((10, 10))
        assert red > 240 and green < 15 and blue < 15


def test_png_output_uses_palette(tmp_path: Path) -> None:
    source = tmp_path / "input"
    source.mkdir()
    noisy_image().save(source / "photo.jpg")

    result = process_batch(source, make_config(format="png"))

    with Image.open(result.succeeded[0].output_path) as converted:
        assert converted.mode == "P"


def test_explicit_resize(tmp_path: Path) -> None:
    source = tmp_path / "input"
    source.mkdir()
    noisy_image((200, 100)).save(source / "wide.png")

    width_only = process_batch(source, make_config(format="webp", width=50))
    with Image.open(width_only.succeeded[0].output_path) as converted:
        assert converted.size == (50, 25)

    both = process_batch(source, make_config(format="webp", width=40, height=40))
    with Image.open(both.succeeded[0].output_path) as converted:
        assert converted.size == (40, 40)


def test_unsupported_single_file_is_skipped(tmp_path: Path) -> None:
    notes = tmp_path / "notes.txt"
    notes.write_text("hello")

    result = process_batch(notes, make_config())

    assert result.statistics.processed_count == 0
    assert len(result.skipped) == 1
    assert result.skipped[0].status == STATUS_SKIPPED


def test_unknown_format_skips_each_file(tmp_path: Path) -> None:
    source = tmp_path / "input"
    source.mkdir()
    noisy_image().save(source / "a.png")
    noisy_image().save(source / "b.png")

    result = process_batch(source, make_config(format="bmp"))

    assert result.statistics.processed_count == 0
    assert result.statistics.skipped_count == 2


def test_colliding_outputs_are_skipped(tmp_path: Path) -> None:
    source = tmp_path / "input"
    source.mkdir()
    noisy_image().save(source / "a.jpeg")
    noisy_image().save(source / "a.jpg")

    result = process_batch(source, make_config(format="png"))

    assert result.statistics.processed_count == 1
    assert result.statistics.skipped_count == 1


def test_alloy_preset_generates_scaled_assets(tmp_path: Path) -> None:
    source = tmp_path / "input"
    source.mkdir()
    noisy_image((1200, 800), "RGBA").save(source / "splash.png")

    preset = build_scale_preset("alloy", BUILTIN_PRESETS["alloy"])
    config = make_config(format="png", output_directory="alloy", scale_preset=preset, workers=2)

    result = process_batch(source, config)

    assert result.statistics.failed_count == 0
    assert result.statistics.processed_count == 9

    iphone = source / "alloy" / "iphone" / "images"
    expected = {"splash.png": (300, 200), "splash@2x.png": (600, 400), "splash@3x.png": (900, 600)}
    for name, size in expected.items():
        with Image.open(iphone / name) as converted:
            assert converted.size == size

    with Image.open(source / "alloy" / "android" / "images" / "res-xxxhdpi" / "splash.png") as converted:
        assert converted.size == (1200, 800)


def test_alloy_preset_records_unreadable_source(tmp_path: Path) -> None:
    source = tmp_path / "input"
    source.mkdir()
    (source / "broken.png").write_text("not an image")
    noisy_image((40, 40)).save(source / "ok.png")

    preset = build_scale_preset("alloy", BUILTIN_PRESETS["alloy"])
    result = process_batch(source, make_config(format="png", scale_preset=preset))

    assert result.statistics.failed_count == 1
    assert result.failed[0].source_path.name == "broken.png"
    assert result.statistics.processed_count == 9


def test_progress_callback_sees_every_outcome(tmp_path: Path) -> None:
    source = tmp_path / "input"
    source.mkdir()
    noisy_image().save(source / "a.png")
    noisy_image().save(source / "b.png")

    updates: list[ProgressUpdate] = []
    process_batch(source, make_config(format="gif"), progress_callback=updates.append)

    assert [u.completed for u in updates] == [1, 2]
    assert all(u.total == 2 for u in updates)
    assert all(u.outcome is not None and u.outcome.succeeded for u in updates)


def test_output_directory_failure_is_fatal(tmp_path: Path) -> None:
    source = tmp_path / "input"
    source.mkdir()
    noisy_image().save(source / "a.png")
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")

    with pytest.raises(OutputDirectoryError):
        process_batch(source, make_config(output_directory=str(blocker / "nested")))

    assert not (source / "compressed").exists()


def test_jobs_writing_any_source_path_run_last(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    noisy_image().save(tmp_path / "p.gif")
    noisy_image().save(tmp_path / "p.png")

    order: list[Path] = []
    real_run_job = pipeline.run_job

    def recording_run_job(job, options):
        order.append(job.output_path)
        return real_run_job(job, options)

    monkeypatch.setattr(pipeline, "run_job", recording_run_job)

    process_batch(tmp_path, make_config(format="all", replace=True))

    sources = {tmp_path / "p.gif", tmp_path / "p.png"}
    assert len(order) == len(SUPPORTED_FORMATS)
    assert set(order[-2:]) == sources
    assert not sources & set(order[:-2])
