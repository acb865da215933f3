"""Loading and saving of 8-bit RGBA PNG images."""

from __future__ import annotations

import enum
import io
import os

import numpy as np
from PIL import Image, UnidentifiedImageError


class Origin(enum.Enum):
    """Which image row comes first in pixel data."""

    LOWER_LEFT = "lower_left"
    UPPER_LEFT = "upper_left"


def load_png(filename: str | os.PathLike, origin: Origin) -> tuple[tuple[int, int], np.ndarray]:
    """Load a PNG file as RGBA.

    Returns ``((width, height), pixels)`` where ``pixels`` is a uint8 array of
    shape (height, width, 4). With ``Origin.LOWER_LEFT`` the first row of
    ``pixels`` is the bottom row of the image. Images without alpha get an
    opaque alpha channel; palette and grey images are expanded to RGB.
    """
    name = os.fspath(filename)
    try:
        with open(name, "rb") as stream:
            raw = stream.read()
    except OSError as exc:
        raise OSError(f"Failed to open PNG image file '{name}'.") from exc

    try:
        with Image.open(io.BytesIO(raw)) as image:
            if image.format != "PNG":
                raise ValueError(f"Failed to read PNG image from '{name}'.")
            if image.mode in ("I;16", "I;16B", "I;16L", "I"):
                wide = np.asarray(image, dtype=np.uint32)
                grey = (wide >> 8).astype(np.uint8)
                rgba = np.dstack([grey, grey, grey, np.full_like(grey, 0xFF)])
            else:
                rgba = np.asarray(image.convert("RGBA"), dtype=np.uint8)
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise ValueError(f"Failed to read PNG image from '{name}'.") from exc

    pixels = np.ascontiguousarray(rgba.reshape(rgba.shape[0], rgba.shape[1], 4))
    if origin is Origin.LOWER_LEFT:
        pixels = np.ascontiguousarray(pixels[::-1])
    height, width = pixels.shape[:2]
    return (width, height), pixels


def save_png(
    filename: str | os.PathLike, size: tuple[int, int], data, origin: Origin
) -> None:
    """Save RGBA pixel data of ``size`` (width, height) as a PNG file.

    ``data`` holds width * height RGBA pixels, in any shape that reshapes to
    (height, width, 4); rows are ordered according to ``origin``.
    """
    width, height = (int(v) for v in size)
    pixels = np.asarray(data, dtype=np.uint8)
    if pixels.size != width * height * 4:
        raise ValueError(
            f"pixel data holds {pixels.size} values, expected {width * height * 4} "
            f"for a {width}x{height} RGBA image"
        )
    pixels = pixels.reshape(height, width, 4)
    if origin is Origin.LOWER_LEFT:
        pixels = pixels[::-1]
    image = Image.frombytes("RGBA", (width, height), np.ascontiguousarray(pixels).tobytes())
    image.save(os.fspath(filename), format="PNG")