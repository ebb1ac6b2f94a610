import pytest

from configs import ConfigPresets, PipelineConfig


def test_defaults_are_valid():
    config = PipelineConfig()

    assert config.validate()
    assert config.video_resolution == (1280, 720)
    assert config.video_fps == 30
    assert config.hold_margin == 1.0
    assert config.stabilization_delay == 0.8
    assert config.codec_profiles == ["vp9-opus", "vp8-opus", "vp8-vorbis", "h264-aac"]


def test_save_and_load(tmp_path):
    config = ConfigPresets.high_quality()
    path = tmp_path / "configs" / "hq.json"

    config.save(str(path))
    loaded = PipelineConfig.load(str(path))

    assert loaded == config
    assert loaded.video_resolution == (1920, 1080)


@pytest.mark.parametrize(
    "overrides",
    [
        {"video_resolution": (1281, 720)},
        {"video_resolution": (160, 120)},
        {"temperature": 1.5},
        {"video_fps": 0},
        {"codec_profiles": ["av1-opus"]},
        {"codec_profiles": []},
        {"speech_retry_multiplier": 0.5},
        {"hold_margin": -1.0},
    ],
)
def test_invalid_values_are_reported(overrides):
    assert not PipelineConfig(**overrides).validate()


@pytest.mark.parametrize(
    "preset",
    [
        ConfigPresets.high_quality,
        ConfigPresets.fast_preview,
        ConfigPresets.english_presentation,
        ConfigPresets.japanese_presentation,
        ConfigPresets.mp4_compatible,
    ],
)
def test_presets_validate(preset):
    assert preset().validate()
