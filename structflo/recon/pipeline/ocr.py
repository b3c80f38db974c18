"""Adapter interface and implementations for OCR of atom-label crops."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Sequence

import numpy as np
from PIL import Image

from structflo.recon.pipeline.models import BBox, LabelFragment
from structflo.recon.pipeline.sampler import ImageLike, _to_pil

logger = logging.getLogger(__name__)


class BaseOCR(ABC):
    """Abstract interface for reading the text of an atom-label image crop.

    An unreadable crop yields None.  Only a missing OCR engine raises, as
    ImportError on first use.
    """

    @abstractmethod
    def extract(self, image: Image.Image) -> str | None:
        """Return the recognized text, or None if nothing was found."""
        ...


class EasyOCRExtractor(BaseOCR):
    """Text extraction via EasyOCR (lazy-loaded on first use).

    Requires easyocr (``pip install structflo-recon[ocr]``).

    Atom labels are short alphanumeric strings (``OH``, ``NO2``, ``Cl``), which
    EasyOCR's default English model reads well; the allow-list keeps it from
    hallucinating punctuation.
    """

    ALLOWLIST = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+-()"

    def __init__(self, languages: list[str] | None = None, gpu: bool = False) -> None:
        """
        Args:
            languages: EasyOCR language codes. Defaults to ['en'].
            gpu:       Use GPU if available.
        """
        self._reader = None
        self.languages = languages or ["en"]
        self.gpu = gpu

    def _load(self) -> None:
        if self._reader is None:
            import easyocr  # type: ignore[import]

            self._reader = easyocr.Reader(self.languages, gpu=self.gpu)

    def extract(self, image: Image.Image) -> str | None:
        self._load()
        try:
            result = self._reader.readtext(  # type: ignore[union-attr]
                np.array(image), detail=0, allowlist=self.ALLOWLIST
            )
        except Exception as exc:  # noqa: BLE001 - engine failures mean "no label"
            logger.debug("EasyOCR failed on %sx%s crop: %s", image.width, image.height, exc)
            return None
        text = "".join(result).strip()
        return text if text else None


class NullOCR(BaseOCR):
    """No-op OCR — always returns None. Useful for disabling label reading."""

    def extract(self, image: Image.Image) -> str | None:  # noqa: ARG002
        return None


def read_fragments(
    image: ImageLike, boxes: Sequence[BBox], ocr: BaseOCR
) -> list[LabelFragment]:
    """OCR every box of *image* and return the readable ones as fragments.

    The image is decoded once and reused for all crops.  Boxes the engine
    cannot read are skipped; a missing engine raises ImportError.
    """
    img = _to_pil(image)
    fragments = []
    for box in boxes:
        crop = img.crop((int(box.x1), int(box.y1), int(box.x2), int(box.y2)))
        text = ocr.extract(crop)
        if text is None:
            continue
        fragments.append(LabelFragment.from_bbox(text, box))
    logger.debug("Read %d of %d label boxes", len(fragments), len(boxes))
    return fragments
