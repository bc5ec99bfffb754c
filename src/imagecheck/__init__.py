"""imagecheck package
Exporting main classes for external use.

Example:
    from imagecheck import TestSession, ImageComparator, load_png
"""
from .core import (
    ImageCheckConfig,
    ImageCheckError,
    ConfigError,
    ImageLoadError,
    TrueColorImage,
    DiffResult,
    ImageComparator,
    image_diff,
    max_pixel_diff,
    load_png,
    save_png,
    MAX_PIXEL_DIFF,
    VERSION
)
from .reporter import AssertionReporter, FailureCounter, Location
from .fixtures import FixtureIO, FixtureError
from .cli import TestSession, ImageCheckCLI, compare_images, max_diff

__all__ = [
    'ImageCheckConfig',
    'ImageCheckError',
    'ConfigError',
    'ImageLoadError',
    'TrueColorImage',
    'DiffResult',
    'ImageComparator',
    'image_diff',
    'max_pixel_diff',
    'load_png',
    'save_png',
    'MAX_PIXEL_DIFF',
    'AssertionReporter',
    'FailureCounter',
    'Location',
    'FixtureIO',
    'FixtureError',
    'TestSession',
    'ImageCheckCLI',
    'compare_images',
    'max_diff',
    'VERSION'
]
