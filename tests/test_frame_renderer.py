import numpy as np
import pytest
from PIL import Image

from slidecast.models import Slide
from slidecast.video_generator import FrameRenderer, fit_text, wrap_text
from slidecast.video_generator.frame_renderer import BACKGROUND, text_width


@pytest.fixture(scope="module")
def renderer():
    return FrameRenderer()


def test_render_is_deterministic(renderer):
    slide = Slide(page_index=2, title="Quarterly results", notes="Revenue grew in every region this quarter.")

    first = renderer.render(slide, (640, 360))
    second = renderer.render(slide, (640, 360))

    assert first.size == (640, 360)
    assert first.mode == "RGB"
    assert first.tobytes() == second.tobytes()


def test_layout_with_bullets_differs_from_notes_layout(renderer):
    with_notes = Slide(page_index=0, title="Agenda", notes="We start with the agenda.")
    with_bullets = Slide(page_index=0, title="Agenda", notes="We start with the agenda.", content=["Intro", "Demo"])

    assert renderer.render(with_notes, (640, 360)).tobytes() != renderer.render(with_bullets, (640, 360)).tobytes()


def test_wide_image_is_letterboxed_top_and_bottom(renderer):
    source = Image.new("RGB", (400, 100), (255, 0, 0))
    frame = renderer.render(Slide(0, "t", "n", source_image=source), (200, 200))

    pixels = np.asarray(frame)
    # 400x100 scaled by 0.5 -> 200x50, centred vertically at y=75
    assert tuple(pixels[0, 100]) == BACKGROUND
    assert tuple(pixels[199, 100]) == BACKGROUND
    assert tuple(pixels[100, 100]) == (255, 0, 0)
    assert tuple(pixels[76, 0]) == (255, 0, 0)
    assert tuple(pixels[73, 100]) == BACKGROUND


def test_tall_image_is_pillarboxed(renderer):
    source = Image.new("RGB", (100, 400), (0, 0, 255))
    frame = renderer.render(Slide(0, "t", "n", source_image=source), (400, 200))

    pixels = np.asarray(frame)
    assert tuple(pixels[100, 10]) == BACKGROUND
    assert tuple(pixels[100, 390]) == BACKGROUND
    assert tuple(pixels[100, 200]) == (0, 0, 255)


def test_passthrough_converts_non_rgb_images(renderer):
    source = Image.new("RGBA", (64, 36), (10, 20, 30, 255))
    frame = renderer.render(Slide(0, "t", "n", source_image=source), (640, 360))

    assert frame.mode == "RGB"
    assert tuple(np.asarray(frame)[180, 320]) == (10, 20, 30)


def test_invalid_canvas_size_is_rejected(renderer):
    with pytest.raises(ValueError):
        renderer.render(Slide(0, "t", "n"), (0, 720))


def test_wrap_never_overflows(renderer):
    font = renderer.font(24)
    text = "The quick brown fox jumps over the lazy dog " * 12

    lines = wrap_text(text, font, 300)

    assert len(lines) > 1
    assert all(text_width(font, line) <= 300 for line in lines)
    assert " ".join(lines) == " ".join(text.split())


def test_long_word_is_force_broken(renderer):
    font = renderer.font(24)
    word = "Pneumonoultramicroscopicsilicovolcanoconiosis" * 3

    lines = wrap_text(f"Before {word} after", font, 200)

    assert all(text_width(font, line) <= 200 for line in lines)
    assert "".join(lines).replace(" ", "").startswith("Before" + word[:5])
    assert lines[-1].endswith("after")


def test_wrapped_notes_are_capped(renderer):
    slide = Slide(0, "Title", "word " * 400)

    assert len(renderer.wrapped_lines(slide, (1280, 720))) == 5
    assert len(FrameRenderer(max_lines=2).wrapped_lines(slide, (1280, 720))) == 2


def test_fit_text_truncates_with_ellipsis(renderer):
    font = renderer.font(28)
    title = "An exceptionally long slide title that cannot possibly fit on one line"

    fitted = fit_text(title, font, 250)

    assert fitted.endswith("…")
    assert text_width(font, fitted) <= 250
    assert fit_text("Short", font, 250) == "Short"
