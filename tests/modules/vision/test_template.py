import cv2
import numpy as np
import pytest

from macroflow.modules.vision.template import find_template
from macroflow.modules.vision.utils import crop, load_image, parse_region, to_gray


def _scene():
    rng = np.random.default_rng(7)
    scene = rng.integers(0, 255, size=(120, 160, 3), dtype=np.uint8)
    template = scene[40:60, 90:120].copy()
    return scene, template


def test_finds_template_location():
    scene, template = _scene()

    match = find_template(scene, template, threshold=0.9)

    assert match.found
    assert (match.x, match.y) == (90, 40)
    assert match.score > 0.99
    assert match.center == (105, 50)


def test_crop_hint_translates_coordinates():
    scene, template = _scene()

    match = find_template(scene, template, threshold=0.9, crop_hint=(80, 30, 60, 50))

    assert match.found
    assert (match.x, match.y) == (90, 40)


def test_below_threshold_not_found():
    scene, _ = _scene()
    other = np.random.default_rng(99).integers(0, 255, size=(20, 30, 3), dtype=np.uint8)

    match = find_template(scene, other, threshold=0.9)

    assert match.found is False


def test_color_invariant_matches_grayscale_template():
    scene, template = _scene()

    match = find_template(scene, to_gray(template), threshold=0.9, color_invariant=True)

    assert match.found
    assert (match.x, match.y) == (90, 40)


def test_template_larger_than_image():
    scene, _ = _scene()

    with pytest.raises(ValueError):
        find_template(scene[:10, :10], scene[:20, :20])


def test_load_image_from_bytes_and_path(tmp_path):
    scene, _ = _scene()
    ok, encoded = cv2.imencode(".png", scene)
    assert ok

    decoded = load_image(encoded.tobytes())
    assert decoded.shape == scene.shape

    path = tmp_path / "scene.png"
    path.write_bytes(encoded.tobytes())
    assert np.array_equal(load_image(str(path)), scene)

    with pytest.raises(FileNotFoundError):
        load_image(str(tmp_path / "missing.png"))


def test_parse_region_and_crop():
    assert parse_region([1, 2, 3, 4]) == (1, 2, 3, 4)
    assert parse_region({"x": 5, "y": 6, "width": 7, "height": 8}) == (5, 6, 7, 8)
    assert parse_region(None) is None
    with pytest.raises(ValueError):
        parse_region([1, 2])

    img = np.zeros((10, 10), dtype=np.uint8)
    assert crop(img, (-5, 0, 8, 20)).shape == (10, 3)
    with pytest.raises(ValueError):
        crop(img, (20, 20, 5, 5))
