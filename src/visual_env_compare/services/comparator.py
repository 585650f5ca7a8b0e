"""Comparator-Service - Perzeptueller Pixel-Diff mit numpy.

Verwendet vektorisierte numpy-Operationen statt Python-Pixel-Schleifen.
Dadurch auch bei grossen Full-Page-Screenshots (1920x10000+) schnell.

Farbabstand wie bei pixelmatch: beide Pixel werden gegen Weiss
alpha-geblendet, in den YIQ-Farbraum transformiert und der gewichtete
quadratische Abstand gegen 35215 * threshold^2 geprueft. Damit fallen
Anti-Aliasing-Rauschen und minimale Farbabweichungen nicht ins Gewicht.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import numpy as np

from ..errors import VisualCompareError
from .image_loader import RawImage, decode_file, encode_file, normalize_pair


# Maximal moeglicher YIQ-Abstand zwischen zwei Farben
MAX_YIQ_DELTA = 35215.0

DIFF_COLOR = (255, 0, 0, 255)
# Deckkraft der gedimmten, identischen Pixel im Diff-Bild
FADE_ALPHA = 0.1


@dataclass(frozen=True)
class DiffOutcome:
    """Diff-Bild und Anzahl abweichender Pixel."""

    diff_image: RawImage
    differing_pixel_count: int

    @property
    def total_pixel_count(self) -> int:
        return self.diff_image.width * self.diff_image.height


def diff(image_a: RawImage, image_b: RawImage, threshold: float = 0.1) -> DiffOutcome:
    """Vergleicht zwei gleich grosse Bilder pixelweise.

    Args:
        image_a: Erstes Bild (Referenz).
        image_b: Zweites Bild (Vergleich).
        threshold: Empfindlichkeit zwischen 0 und 1, kleiner ist strenger.

    Returns:
        DiffOutcome mit Diff-Bild (abweichende Pixel rot, identische Pixel
        blass in Graustufen) und Anzahl abweichender Pixel.

    Raises:
        DimensionMismatchError: Wenn die Bilder unterschiedlich gross sind.
        ValueError: Wenn threshold nicht in [0, 1] liegt.
    """
    if image_a.size != image_b.size:
        raise DimensionMismatchError(
            f"Bilder muessen gleich gross sein: {image_a.width}x{image_a.height} "
            f"vs. {image_b.width}x{image_b.height}"
        )
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"threshold muss zwischen 0 und 1 liegen: {threshold}")

    arr_a = image_a.to_array()

    if image_a.pixels == image_b.pixels:
        mask = np.zeros((image_a.height, image_a.width), dtype=bool)
    else:
        delta = _yiq_delta(arr_a, image_b.to_array())
        mask = delta > np.float32(MAX_YIQ_DELTA * threshold * threshold)

    diff_image = _render_diff(arr_a, mask)
    return DiffOutcome(diff_image=diff_image, differing_pixel_count=int(np.count_nonzero(mask)))


def _blended_channels(arr: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """R, G und B gegen Weiss geblendet, je eine float32-Ebene der Form h x w.

    Kanalweise statt als h x w x 3 Block, damit grosse Full-Page-Screenshots
    in parallelen Vergleichen nicht mehrere GB belegen.
    """
    alpha = arr[..., 3].astype(np.float32)
    alpha /= 255.0
    channels = []
    for c in range(3):
        channel = arr[..., c].astype(np.float32)
        channel -= 255.0
        channel *= alpha
        channel += 255.0
        channels.append(channel)
    return channels[0], channels[1], channels[2]


def _yiq_delta(arr_a: np.ndarray, arr_b: np.ndarray) -> np.ndarray:
    """Gewichteter quadratischer YIQ-Abstand pro Pixel (float32, h x w).

    YIQ ist linear in RGB, daher wird direkt die RGB-Differenz transformiert.
    """
    r_a, g_a, b_a = _blended_channels(arr_a)
    r_b, g_b, b_b = _blended_channels(arr_b)
    r_a -= r_b
    g_a -= g_b
    b_a -= b_b
    del r_b, g_b, b_b
    dr, dg, db = r_a, g_a, b_a

    dy = dr * np.float32(0.29889531) + dg * np.float32(0.58662247) + db * np.float32(0.11448223)
    delta = np.float32(0.5053) * dy * dy
    del dy
    di = dr * np.float32(0.59597799) - dg * np.float32(0.27417610) - db * np.float32(0.32180189)
    delta += np.float32(0.299) * di * di
    del di
    dq = dr * np.float32(0.21147017) - dg * np.float32(0.52261711) + db * np.float32(0.31114694)
    delta += np.float32(0.1957) * dq * dq
    return delta


def _render_diff(arr_a: np.ndarray, mask: np.ndarray) -> RawImage:
    """Erzeugt das Diff-Bild: blasse Graustufen, abweichende Pixel rot."""
    r, g, b = _blended_channels(arr_a)
    luma = r * np.float32(0.29889531) + g * np.float32(0.58662247) + b * np.float32(0.11448223)
    del r, g, b
    faded = np.clip(255.0 + (luma - 255.0) * FADE_ALPHA, 0, 255).astype(np.uint8)

    out = np.empty(arr_a.shape, dtype=np.uint8)
    out[..., 0] = faded
    out[..., 1] = faded
    out[..., 2] = faded
    out[..., 3] = 255
    out[mask] = DIFF_COLOR

    height, width = mask.shape
    return RawImage(width, height, out.tobytes())


@dataclass(frozen=True)
class DiffStats:
    """Ergebnis eines Datei-Vergleichs."""

    differing_pixel_count: int
    total_pixel_count: int
    diff_image_path: str

    @property
    def diff_percentage(self) -> float:
        if self.total_pixel_count <= 0:
            return 0.0
        return self.differing_pixel_count / self.total_pixel_count * 100


class Comparator:
    """Vergleicht zwei Screenshot-Dateien und schreibt ein Diff-Bild."""

    def __init__(self, threshold: float = 0.1) -> None:
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold muss zwischen 0 und 1 liegen: {threshold}")
        self.threshold = threshold

    def compare(
        self,
        reference_path: str,
        comparison_path: str,
        diff_output_path: str,
    ) -> DiffStats:
        """Vergleicht zwei Bilder und erzeugt ein Diff-Bild.

        Bilder unterschiedlicher Groesse werden vorher oben links auf eine
        weisse Flaeche der gemeinsamen Maximalgroesse gesetzt.

        Args:
            reference_path: Pfad zum Referenz-Screenshot (Stage/Dev).
            comparison_path: Pfad zum Vergleichs-Screenshot (Prod).
            diff_output_path: Pfad fuer das Diff-Bild (PNG oder JPEG).

        Returns:
            DiffStats mit Pixel-Zahlen und Pfad des Diff-Bilds.

        Raises:
            UnsupportedFormatError: Wenn ein Bild nicht gelesen werden kann.
        """
        reference, comparison = normalize_pair(
            decode_file(reference_path),
            decode_file(comparison_path),
        )
        outcome = diff(reference, comparison, self.threshold)
        written = encode_file(outcome.diff_image, Path(diff_output_path))

        return DiffStats(
            differing_pixel_count=outcome.differing_pixel_count,
            total_pixel_count=outcome.total_pixel_count,
            diff_image_path=written,
        )


class DimensionMismatchError(VisualCompareError, AssertionError):
    """Diff ohne vorherige Normalisierung aufgerufen (Programmierfehler)."""
    pass
