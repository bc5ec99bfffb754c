"""
imagecheck - Pixel-level image regression checks
Compares an expected reference image against the output of a routine under
test, amplifies per-channel differences into a visible diff image, and
persists diagnostic artifacts when the two do not match.

Pixels follow the libgd true-color layout:
- Packed as (alpha << 24) | (red << 16) | (green << 8) | blue.
- Alpha runs from 0 (opaque) to ALPHA_MAX (fully transparent).
- PNG I/O goes through Pillow, converting alpha the same way libgd does.
"""

import json
import logging
import os
from dataclasses import dataclass, asdict
from typing import BinaryIO, NamedTuple, Optional, Tuple, Union

import numpy as np
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

# Constants
ALPHA_MAX = 127
RED_MAX = 255
GREEN_MAX = 255
BLUE_MAX = 255
MAX_PIXEL_DIFF = 2**32 - 1  # sentinel for "images cannot be compared"
VERSION = "1.0.0"

PathOrFile = Union[str, os.PathLike, BinaryIO]


class ImageCheckError(Exception):
    """Base class for imagecheck errors"""
    pass


class ConfigError(ImageCheckError):
    """Configuration related errors"""
    pass


class ImageLoadError(ImageCheckError):
    """PNG decoding errors"""
    pass


@dataclass
class ImageCheckConfig:
    """Configuration for image checks"""
    output_dir: str = "."  # where _diff.png / _out.png artifacts land
    top_dir: str = "tests"  # root for relative test asset paths
    temp_root: Optional[str] = None  # falls back to $TMPDIR, then /tmp
    save_alpha: bool = False

    @classmethod
    def from_json(cls, path: str) -> 'ImageCheckConfig':
        """Load configuration from JSON file"""
        try:
            with open(path, 'r') as f:
                data = json.load(f)
            return cls(**data)
        except Exception as e:
            raise ConfigError(f"Failed to load config from {path}: {e}")

    def to_json(self, path: str):
        """Save configuration to JSON file"""
        with open(path, 'w') as f:
            json.dump(asdict(self), f, indent=2)


# Channel codec

def truecolor_alpha(r, g, b, a):
    """Pack four channels into a true-color pixel"""
    return (a << 24) + (r << 16) + (g << 8) + b


def get_alpha(c):
    return (c & 0x7F000000) >> 24


def get_red(c):
    return (c & 0xFF0000) >> 16


def get_green(c):
    return (c & 0x00FF00) >> 8


def get_blue(c):
    return c & 0x0000FF


def unpack_channels(pixels: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Split a packed pixel array into signed (alpha, red, green, blue) arrays"""
    p = pixels.astype(np.int64)
    return (get_alpha(p), get_red(p), get_green(p), get_blue(p))


def pack_channels(a, r, g, b) -> np.ndarray:
    """Vectorised counterpart of truecolor_alpha"""
    a, r, g, b = (np.asarray(ch, dtype=np.uint32) for ch in (a, r, g, b))
    return (a << 24) | (r << 16) | (g << 8) | b


UNCHANGED_PIXEL = truecolor_alpha(255, 255, 255, 0)


class TrueColorImage:
    """A 2-D raster of packed true-color pixels"""

    def __init__(self, pixels: np.ndarray):
        if pixels.ndim != 2:
            raise ValueError(f"Expected a 2-D pixel array, got shape {pixels.shape}")
        self.pixels = pixels.astype(np.uint32, copy=False)

    @classmethod
    def create(cls, sx: int, sy: int) -> 'TrueColorImage':
        """Create a blank (all zero) image of the given size"""
        return cls(np.zeros((sy, sx), dtype=np.uint32))

    @property
    def sx(self) -> int:
        return self.pixels.shape[1]

    @property
    def sy(self) -> int:
        return self.pixels.shape[0]

    @property
    def size(self) -> Tuple[int, int]:
        return self.sx, self.sy

    def get_pixel(self, x: int, y: int) -> int:
        return int(self.pixels[y, x])

    def set_pixel(self, x: int, y: int, color: int):
        self.pixels[y, x] = color

    def copy(self) -> 'TrueColorImage':
        return TrueColorImage(self.pixels.copy())

    @classmethod
    def from_pil(cls, img: Image.Image) -> 'TrueColorImage':
        """Convert a Pillow image, mapping 8-bit PNG alpha onto 0..ALPHA_MAX"""
        if img.mode != 'RGBA':
            img = img.convert('RGBA')
        arr = np.asarray(img, dtype=np.uint8).astype(np.uint32)
        alpha = ALPHA_MAX - (arr[..., 3] >> 1)
        return cls(pack_channels(alpha, arr[..., 0], arr[..., 1], arr[..., 2]))

    def to_pil(self, save_alpha: bool = False) -> Image.Image:
        """Convert to a Pillow image; RGB unless save_alpha is set"""
        a, r, g, b = unpack_channels(self.pixels)
        if save_alpha:
            png_alpha = 255 - ((a << 1) + (a >> 6))
            arr = np.stack([r, g, b, png_alpha], axis=-1).astype(np.uint8)
            return Image.fromarray(arr)
        arr = np.stack([r, g, b], axis=-1).astype(np.uint8)
        return Image.fromarray(arr)


def load_png(source: PathOrFile) -> TrueColorImage:
    """Decode a PNG from a path or binary file object"""
    try:
        with Image.open(source) as img:
            img.load()
            return TrueColorImage.from_pil(img)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ImageLoadError(f"Failed to decode PNG: {e}") from e


def save_png(image: TrueColorImage, dest: PathOrFile, save_alpha: bool = False):
    """Encode an image as PNG to a path or binary file object"""
    image.to_pil(save_alpha=save_alpha).save(dest, format='PNG')


# Difference amplification

def _abs_diff(c1, c2):
    return np.abs(np.asarray(c1, dtype=np.int64) - np.asarray(c2, dtype=np.int64))


def amplify_alpha(c1, c2):
    """Amplified alpha difference; any change maps to ALPHA_MAX // 2"""
    d = _abs_diff(c1, c2) * 4
    d = np.where(d != 0, d + 128, d)
    return np.where(d > ALPHA_MAX, ALPHA_MAX // 2, d)


def amplify_red(c1, c2):
    d = _abs_diff(c1, c2)
    d = np.where(d != 0, d + RED_MAX // 2, d)
    return np.minimum(d, 255)


def amplify_green(c1, c2):
    d = _abs_diff(c1, c2) * 4
    d = np.where(d != 0, d + GREEN_MAX // 2, d)
    return np.minimum(d, 255)


def amplify_blue(c1, c2):
    d = _abs_diff(c1, c2) * 4
    d = np.where(d != 0, d + BLUE_MAX // 2, d)
    return np.minimum(d, 255)


def amplify_pixel(c1: int, c2: int) -> Tuple[int, int, int, int]:
    """Amplified (alpha, red, green, blue) differences of two packed pixels"""
    return (
        int(amplify_alpha(get_alpha(c1), get_alpha(c2))),
        int(amplify_red(get_red(c1), get_red(c2))),
        int(amplify_green(get_green(c1), get_green(c2))),
        int(amplify_blue(get_blue(c1), get_blue(c2))),
    )


class DiffResult(NamedTuple):
    pixels_changed: int = 0
    max_diff: int = 0


def image_diff(expected: TrueColorImage, actual: TrueColorImage,
               diff_image: Optional[TrueColorImage] = None) -> DiffResult:
    """
    Compare two equally-sized images pixel by pixel.

    Returns the number of pixels whose packed value differs and the largest
    amplified red/green/blue difference. Alpha is amplified into the diff
    image but does not count towards max_diff. When diff_image is given,
    changed pixels receive the amplified difference and unchanged ones
    UNCHANGED_PIXEL.
    """
    changed = expected.pixels != actual.pixels
    pixels_changed = int(np.count_nonzero(changed))

    a1, r1, g1, b1 = unpack_channels(expected.pixels)
    a2, r2, g2, b2 = unpack_channels(actual.pixels)
    diff_a = amplify_alpha(a1, a2)
    diff_r = amplify_red(r1, r2)
    diff_g = amplify_green(g1, g2)
    diff_b = amplify_blue(b1, b2)

    max_diff = 0
    if pixels_changed:
        max_diff = int(max(diff_r[changed].max(), diff_g[changed].max(), diff_b[changed].max()))

    if diff_image is not None:
        amplified = pack_channels(diff_a, diff_r, diff_g, diff_b)
        diff_image.pixels[...] = np.where(changed, amplified, np.uint32(UNCHANGED_PIXEL))

    return DiffResult(pixels_changed, max_diff)


def max_pixel_diff(a: Optional[TrueColorImage], b: Optional[TrueColorImage]) -> int:
    """Largest raw difference of any channel of any pixel, or MAX_PIXEL_DIFF"""
    if a is None or b is None or a.size != b.size:
        return MAX_PIXEL_DIFF
    if a.pixels.size == 0:
        return 0
    deltas = [np.abs(c1 - c2).max() for c1, c2 in zip(unpack_channels(a.pixels), unpack_channels(b.pixels))]
    return int(max(deltas))


def artifact_names(source: str, line: int) -> Tuple[str, str]:
    """File names of the diff and actual-output artifacts for a location"""
    base = source[max(source.rfind('/'), source.rfind('\\')) + 1:]
    return f"{base}_{line}_diff.png", f"{base}_{line}_out.png"


class ImageComparator:
    """Compares images and reports mismatches through an AssertionReporter"""

    def __init__(self, reporter, config: Optional[ImageCheckConfig] = None):
        self.reporter = reporter
        self.config = config or ImageCheckConfig()

    def compare(self, location, expected: Optional[TrueColorImage],
                actual: Optional[TrueColorImage]) -> bool:
        """Return True when both images hold identical pixels"""
        if actual is None:
            self.reporter.report_error(location, "Image is NULL")
            return False
        if expected is None:
            self.reporter.report_error(location, "Expected image is NULL")
            return False

        if expected.size != actual.size:
            self.reporter.report_error(
                location,
                f"Image size mismatch: ({expected.sx}x{expected.sy}) vs. ({actual.sx}x{actual.sy})\n"
                f"       for {location.file} vs. buffer"
            )
            return False

        diff_image = TrueColorImage.create(expected.sx, expected.sy)
        result = image_diff(expected, actual, diff_image)
        if result.pixels_changed == 0:
            return True

        self.reporter.report_error(
            location,
            f"Total pixels changed: {result.pixels_changed} "
            f"with a maximum channel difference of {result.max_diff}."
        )
        self._write_artifacts(location, diff_image, actual)
        return False

    def compare_to_file(self, location, expected_path: str,
                        actual: Optional[TrueColorImage]) -> bool:
        """Compare against a reference PNG on disk"""
        expected = self._load(expected_path)
        if expected is None:
            self.reporter.report_error(location, f"Cannot open PNG <{expected_path}>")
            return False
        return self.compare(location, expected, actual)

    def _load(self, path: str) -> Optional[TrueColorImage]:
        # Relative references live under the test asset root
        if not os.path.isabs(path):
            path = os.path.join(self.config.top_dir, path)
        try:
            return load_png(path)
        except ImageLoadError as e:
            logger.debug(f"Could not load {path}: {e}")
            return None

    def _write_artifacts(self, location, diff_image: TrueColorImage, actual: TrueColorImage):
        diff_name, out_name = artifact_names(location.file, location.line)
        for name, image in ((diff_name, diff_image), (out_name, actual)):
            path = os.path.join(self.config.output_dir, name)
            try:
                with open(path, 'wb') as f:
                    save_png(image, f, save_alpha=self.config.save_alpha)
            except OSError as e:
                logger.warning(f"Could not write {path}: {e}")
                return
            logger.info(f"Wrote {path}")
