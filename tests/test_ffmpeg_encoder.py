import shutil
import sys

import pytest
from PIL import Image

from conftest import voiced_slide
from slidecast.exceptions import EncoderRuntimeError, EncoderUnsupportedError
from slidecast.video_generator import AudioOutput, CaptureSurface, FrameRenderer, RecordingConfig, RecordingSink, Timeline

CANVAS = (320, 240)

FAILING_FFMPEG = """#!/bin/sh
cat > /dev/null
echo "boom: encoder rejected the stream" >&2
exit 1
"""


def tracking_sink(sink):
    created = []

    def factory(profile, size, sample_rate, config):
        encoder = sink._ffmpeg_encoder(profile, size, sample_rate, config)
        created.append(encoder)
        return encoder

    sink.encoder_factory = factory
    return created


@pytest.mark.asyncio
@pytest.mark.skipif(shutil.which("ffmpeg") is None, reason="ffmpeg is not installed")
async def test_records_slides_with_ffmpeg():
    sink = RecordingSink()
    try:
        profile = sink.negotiate()
    except EncoderUnsupportedError:
        pytest.skip("ffmpeg has none of the supported encoders")
    created = tracking_sink(sink)

    timeline = Timeline(FrameRenderer(), canvas_size=CANVAS, hold_margin=0.2, stabilization_delay=0.2)
    slides = [voiced_slide(0, "first slide", 0.4), voiced_slide(1, "second slide", 0.4)]

    async with AudioOutput(sample_rate=24000, release_delay=0) as audio:
        blob = await timeline.run(slides, CaptureSurface(CANVAS), audio, sink, RecordingConfig(fps=15))

    assert blob.profile == profile
    assert len(blob.data) > 0
    epsilon = 0.3
    assert abs(blob.duration - timeline.expected_duration(slides)) <= epsilon * len(slides)
    if profile.container == "webm":
        assert blob.data.startswith(b"\x1aE\xdf\xa3")
    assert created[0]._workdir is None


@pytest.mark.asyncio
@pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell script")
async def test_nonzero_exit_raises_and_cleans_up(tmp_path):
    script = tmp_path / "ffmpeg"
    script.write_text(FAILING_FFMPEG)
    script.chmod(0o755)

    sink = RecordingSink(ffmpeg_path=str(script), probe=lambda path: {"libvpx-vp9", "libopus"})
    created = tracking_sink(sink)

    surface = CaptureSurface((32, 16))
    surface.present(Image.new("RGB", (32, 16), (9, 9, 9)))

    handle = await sink.open(surface, AudioOutput(), RecordingConfig(fps=10))
    workdir = created[0].workdir
    assert workdir.exists()

    with pytest.raises(EncoderRuntimeError, match="boom: encoder rejected the stream"):
        await sink.close(handle)

    assert not workdir.exists()
    assert created[0]._workdir is None
