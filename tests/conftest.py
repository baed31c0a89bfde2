"""Shared test fixtures for visual recognizer tests."""

import numpy as np
import cv2
import pytest

from visual_recognizer.preprocessing import encode_png


def solid_image(color, size=64):
    """Generate a size×size RGB image filled with one color."""
    img = np.zeros((size, size, 3), dtype=np.uint8)
    img[:, :] = color
    return img


@pytest.fixture
def make_solid():
    """Factory for single-color RGB images."""
    return solid_image


@pytest.fixture
def red_image():
    """Pure red 64x64 image."""
    return solid_image([255, 0, 0])


@pytest.fixture
def blue_image():
    """Pure blue 64x64 image."""
    return solid_image([0, 0, 255])


@pytest.fixture
def red_png(red_image):
    """Pure red 64x64 image, PNG-encoded."""
    return encode_png(red_image)


@pytest.fixture
def red_square_image():
    """Generate a 200x200 red square on white background."""
    img = np.ones((200, 200, 3), dtype=np.uint8) * 255
    img[40:160, 40:160] = [200, 30, 30]  # Red square
    return img


@pytest.fixture
def blue_circle_image():
    """Generate a 200x200 blue circle on white background."""
    img = np.ones((200, 200, 3), dtype=np.uint8) * 255
    cv2.circle(img, (100, 100), 60, (30, 30, 200), -1)
    return img


@pytest.fixture
def green_rectangle_image():
    """Generate a 200x200 green rectangle on white background."""
    img = np.ones((200, 200, 3), dtype=np.uint8) * 255
    img[30:170, 60:140] = [30, 180, 30]  # Tall green rectangle
    return img


@pytest.fixture
def transparent_image():
    """Fully transparent 32x32 RGBA image."""
    img = np.zeros((32, 32, 4), dtype=np.uint8)
    img[:, :, :3] = [200, 100, 50]
    return img


@pytest.fixture
def black_image():
    """Near-black 32x32 image (every channel below 10)."""
    return solid_image([9, 9, 9], size=32)


@pytest.fixture
def noise_image():
    """Generate a 200x200 random noise image."""
    rng = np.random.RandomState(42)
    return rng.randint(0, 255, (200, 200, 3), dtype=np.uint8)


class FrameQueue:
    """FrameSource test double returning queued frames, then repeating the last."""

    def __init__(self, *frames):
        self.frames = list(frames)
        self.captures = 0

    def push(self, frame):
        self.frames.append(frame)

    def capture(self):
        self.captures += 1
        if not self.frames:
            return None
        if len(self.frames) > 1:
            return self.frames.pop(0)
        return self.frames[0]


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now=100.0):
        self.now = now

    def advance(self, seconds):
        self.now += seconds

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_source():
    """Factory for FrameQueue sources."""
    return FrameQueue
