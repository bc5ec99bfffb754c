"""
Test fixture I/O: a per-run temporary directory, temp files inside it,
test asset path building and PNG loading.
"""

import atexit
import logging
import os
import shutil
import tempfile
from typing import BinaryIO, Optional

from .core import ImageCheckConfig, ImageCheckError, ImageLoadError, TrueColorImage, load_png
from .reporter import AssertionReporter, Location

logger = logging.getLogger(__name__)

TEMP_DIR_PREFIX = "gdtest."
DEFAULT_TEMPLATE = "gdtemp.XXXXXX"
TEMPLATE_MARKER = "XXXXXX"


class FixtureError(ImageCheckError):
    """The temporary work area could not be set up"""
    pass


class FixtureIO:
    """Temp area and test asset helpers bound to one reporter"""

    def __init__(self, reporter: AssertionReporter, config: Optional[ImageCheckConfig] = None):
        self.reporter = reporter
        self.config = config or ImageCheckConfig()
        self._temp_dir: Optional[str] = None

    def _fatal(self, what: str) -> FixtureError:
        # Without a usable temp area the run cannot continue
        self.reporter.assert_condition_with_message(Location.caller(2), False, what)
        return FixtureError(what)

    def temp_dir(self) -> str:
        """The run's temporary directory, created on first use"""
        if self._temp_dir is None:
            root = self.config.temp_root or os.environ.get("TMPDIR") or "/tmp"
            try:
                path = tempfile.mkdtemp(prefix=TEMP_DIR_PREFIX, dir=root)
            except OSError as e:
                raise self._fatal(f"Cannot create temp directory under {root}: {e}") from e
            self._temp_dir = path
            atexit.register(self.cleanup)
            logger.debug(f"Created temp directory {path}")
        return self._temp_dir

    def temp_file(self, template: Optional[str] = None) -> str:
        """
        Path of a file inside temp_dir().

        A template containing XXXXXX gets a unique, already created file;
        any other template is joined to the temp directory as-is.
        """
        if template is None:
            template = DEFAULT_TEMPLATE
        tmp = self.temp_dir()

        if TEMPLATE_MARKER not in template:
            return os.path.join(tmp, template)

        prefix, _, suffix = template.partition(TEMPLATE_MARKER)
        try:
            fd, path = tempfile.mkstemp(prefix=prefix, suffix=suffix, dir=tmp)
        except OSError as e:
            raise self._fatal(f"Cannot create temp file from {template}: {e}") from e
        os.close(fd)
        return path

    def temp_fp(self) -> BinaryIO:
        """A freshly created temp file opened for binary writing"""
        path = self.temp_file()
        try:
            return open(path, 'wb')
        except OSError as e:
            raise self._fatal(f"Cannot open temp file {path}: {e}") from e

    def file_path(self, *parts: str) -> str:
        """Join path fragments under the test asset root"""
        if not parts:
            raise ValueError("file_path needs at least one path fragment")
        return os.path.join(self.config.top_dir, *parts)

    def file_open(self, *parts: str, location: Optional[Location] = None) -> Optional[BinaryIO]:
        """Open a test asset for reading; failures are counted at `location` (default: the caller)"""
        path = self.file_path(*parts)
        try:
            return open(path, 'rb')
        except OSError as e:
            self.reporter.assert_condition_with_message(
                location or Location.caller(), False, f"Cannot open {path}: {e}")
            return None

    def image_from_png(self, filename: str) -> Optional[TrueColorImage]:
        """Load a PNG; relative names are resolved under the asset root"""
        if os.path.isabs(filename):
            try:
                fp = open(filename, 'rb')
            except OSError:
                return None
        else:
            fp = self.file_open(filename, location=Location.caller())
            if fp is None:
                return None

        with fp:
            try:
                return load_png(fp)
            except ImageLoadError as e:
                logger.debug(f"{filename}: {e}")
                return None

    def cleanup(self):
        """Remove the temp directory and everything in it"""
        if self._temp_dir is None:
            return
        shutil.rmtree(self._temp_dir, ignore_errors=True)
        logger.debug(f"Removed temp directory {self._temp_dir}")
        self._temp_dir = None
