"""Image-Loader - Dekodiert Screenshots und bringt sie auf gleiche Groesse.

Alle Bilder werden in einen einheitlichen RGBA-Puffer (row-major, von oben
nach unten) ueberfuehrt. Unterschiedlich grosse Bilder werden nie
beschnitten oder verkleinert, sondern auf eine weisse Flaeche gesetzt.
Verankert wird immer oben links, fuer beide Bilder eines Vergleichs.
"""

from __future__ import annotations

import io
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from PIL import Image, UnidentifiedImageError

from ..errors import VisualCompareError


# Unterstuetzte Formate (Pillow-Namen) und ihre Hinweis-Aliase
SUPPORTED_FORMATS = {
    "png": "PNG",
    "jpeg": "JPEG",
    "jpg": "JPEG",
}

WHITE = (255, 255, 255, 255)
PAD_ANCHOR = (0, 0)


@dataclass(frozen=True)
class RawImage:
    """Dekodiertes Bild als RGBA-Bytepuffer.

    Es gilt immer: len(pixels) == width * height * 4.
    """

    width: int
    height: int
    pixels: bytes

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Ungueltige Bildgroesse: {self.width}x{self.height}")
        expected = self.width * self.height * 4
        if len(self.pixels) != expected:
            raise ValueError(
                f"Pixelpuffer hat {len(self.pixels)} Bytes, erwartet {expected}"
            )

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    @classmethod
    def from_pil(cls, image: Image.Image) -> RawImage:
        """Uebernimmt ein Pillow-Bild (wird nach RGBA konvertiert)."""
        rgba = image if image.mode == "RGBA" else image.convert("RGBA")
        return cls(rgba.width, rgba.height, rgba.tobytes())

    def to_pil(self) -> Image.Image:
        return Image.frombytes("RGBA", self.size, self.pixels)

    def to_array(self) -> np.ndarray:
        """Read-only Sicht als Array der Form (height, width, 4)."""
        return np.frombuffer(self.pixels, dtype=np.uint8).reshape(self.height, self.width, 4)

    def crop_region(self, x: int, y: int, width: int, height: int) -> RawImage:
        """Schneidet einen Ausschnitt als neues Bild aus."""
        region = self.to_array()[y:y + height, x:x + width]
        return RawImage(region.shape[1], region.shape[0], region.tobytes())


def decode(data: bytes, format_hint: str | None = None) -> RawImage:
    """Dekodiert PNG- oder JPEG-Bytes in einen RGBA-Puffer.

    JPEGs ohne Alphakanal werden mit A=255 erweitert.

    Args:
        data: Die Bilddaten.
        format_hint: Optional 'png', 'jpeg' oder 'jpg'. Ohne Hinweis
            werden beide Formate probiert.

    Returns:
        RawImage mit den Pixeldaten.

    Raises:
        UnsupportedFormatError: Wenn die Daten kein PNG/JPEG sind.
    """
    if format_hint:
        pil_format = SUPPORTED_FORMATS.get(format_hint.lower().lstrip("."))
        if pil_format is None:
            raise UnsupportedFormatError(f"Nicht unterstuetztes Format: {format_hint}")
        formats = [pil_format]
    else:
        formats = sorted(set(SUPPORTED_FORMATS.values()))

    try:
        with Image.open(io.BytesIO(data), formats=formats) as image:
            image.load()
            return RawImage.from_pil(image)
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise UnsupportedFormatError(f"Bild konnte nicht als {'/'.join(formats)} gelesen werden: {e}") from e


def decode_file(path: str | Path) -> RawImage:
    """Liest und dekodiert eine Bilddatei, die Endung dient als Format-Hinweis.

    Raises:
        UnsupportedFormatError: Bei unbekannter Endung oder ungueltigen Daten.
    """
    path = Path(path)
    return decode(path.read_bytes(), path.suffix.lstrip(".") or None)


def encode_file(image: RawImage, path: str | Path) -> str:
    """Speichert ein RawImage als PNG oder JPEG (je nach Endung).

    Returns:
        Der geschriebene Pfad als String.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    pil_format = SUPPORTED_FORMATS.get(path.suffix.lower().lstrip("."), "PNG")
    if pil_format == "JPEG":
        image.to_pil().convert("RGB").save(path, "JPEG", quality=100)
    else:
        image.to_pil().save(path, "PNG")
    return str(path)


def pad(image: RawImage, target_width: int, target_height: int) -> RawImage:
    """Setzt ein Bild oben links auf eine weisse Flaeche der Zielgroesse.

    Args:
        image: Das Ausgangsbild.
        target_width: Zielbreite (>= Bildbreite).
        target_height: Zielhoehe (>= Bildhoehe).

    Returns:
        Das unveraenderte Bild bei gleicher Groesse, sonst ein neues RawImage.

    Raises:
        ValueError: Wenn die Zielgroesse kleiner als das Bild ist.
    """
    if image.width == target_width and image.height == target_height:
        return image
    if target_width < image.width or target_height < image.height:
        raise ValueError(
            f"Padding kann nicht verkleinern: {image.width}x{image.height} "
            f"-> {target_width}x{target_height}"
        )

    canvas = Image.new("RGBA", (target_width, target_height), WHITE)
    canvas.paste(image.to_pil(), PAD_ANCHOR)
    return RawImage.from_pil(canvas)


def normalize_pair(image_a: RawImage, image_b: RawImage) -> tuple[RawImage, RawImage]:
    """Bringt zwei Bilder auf die elementweise maximale Groesse."""
    width = max(image_a.width, image_b.width)
    height = max(image_a.height, image_b.height)
    return pad(image_a, width, height), pad(image_b, width, height)


class UnsupportedFormatError(VisualCompareError, ValueError):
    """Bilddaten sind weder PNG noch JPEG."""
    pass
