"""Adapter interface and implementations for pixel-level ink sampling."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image

# Anything the samplers and OCR helpers accept as an image input
ImageLike = Union[Path, str, np.ndarray, Image.Image]


def _to_pil(image: ImageLike) -> Image.Image:
    if isinstance(image, (str, Path)):
        return Image.open(image).convert("RGB")
    if isinstance(image, np.ndarray):
        return Image.fromarray(image).convert("RGB")
    if isinstance(image, Image.Image):
        return image.convert("RGB")
    raise TypeError(f"Unsupported image type: {type(image).__name__}")


class BasePixelSampler(ABC):
    """Abstract interface answering "is there ink at (x, y)?".

    Stereo detection measures stroke thickness and the consolidation stage
    checks for white space between parallel lines through this interface, so
    any raster source (a scanned page, a rendered preview, a test fixture) can
    be plugged in.
    """

    width: int
    height: int

    @abstractmethod
    def is_foreground(self, x: int, y: int) -> bool:
        """Return True if pixel (x, y) is ink.  Out-of-bounds pixels are background."""
        ...

    def mask(self) -> np.ndarray:
        """Boolean ``(height, width)`` ink mask."""
        out = np.zeros((self.height, self.width), dtype=bool)
        for y in range(self.height):
            for x in range(self.width):
                out[y, x] = self.is_foreground(x, y)
        return out


class ImageSampler(BasePixelSampler):
    """Ink sampler over a raster image (Pillow / numpy).

    A pixel is ink when its gray level differs from the background gray by more
    than *threshold* (fraction of full scale).  The background defaults to the
    most frequent gray level, so light-on-dark drawings work unchanged.
    """

    def __init__(
        self,
        image: ImageLike,
        threshold: float = 0.2,
        background: int | None = None,
    ) -> None:
        """
        Args:
            image:      Path, numpy array (gray or RGB) or PIL image.
            threshold:  Minimum gray distance from the background, in [0, 1).
            background: Background gray level (0-255).  Estimated when None.
        """
        if isinstance(image, np.ndarray) and image.ndim == 2:
            gray = np.asarray(image, dtype=np.uint8)
        else:
            gray = np.array(_to_pil(image).convert("L"), dtype=np.uint8)
        self._gray = gray
        self.height, self.width = gray.shape
        if background is None:
            background = int(np.bincount(gray.ravel(), minlength=256).argmax())
        self.background = background
        self.threshold = threshold
        self._mask = np.abs(gray.astype(np.int16) - background) > threshold * 255

    def is_foreground(self, x: int, y: int) -> bool:
        x, y = int(x), int(y)
        if x < 0 or y < 0 or x >= self.width or y >= self.height:
            return False
        return bool(self._mask[y, x])

    def mask(self) -> np.ndarray:
        return self._mask.copy()


class NullSampler(BasePixelSampler):
    """No-op sampler — every pixel is background.  Disables pixel-based checks."""

    def __init__(self, width: int = 0, height: int = 0) -> None:
        self.width = width
        self.height = height

    def is_foreground(self, x: int, y: int) -> bool:  # noqa: ARG002
        return False

    def mask(self) -> np.ndarray:
        return np.zeros((self.height, self.width), dtype=bool)
