#!/usr/bin/env python3
"""
Unit tests for temp area and test asset helpers
"""

import io
import os
import shutil
import tempfile
import unittest

from PIL import Image

from imagecheck.core import ImageCheckConfig, truecolor_alpha
from imagecheck.fixtures import FixtureError, FixtureIO
from imagecheck.reporter import AssertionReporter


class TestFixtureIO(unittest.TestCase):
    """Test FixtureIO against scratch directories"""

    def setUp(self):
        self.root = tempfile.mkdtemp()
        self.top = os.path.join(self.root, "assets")
        os.makedirs(os.path.join(self.top, "png"))
        Image.new('RGB', (3, 2), (10, 20, 30)).save(os.path.join(self.top, "png", "ref.png"))

        self.stream = io.StringIO()
        self.reporter = AssertionReporter(stream=self.stream)
        self.config = ImageCheckConfig(top_dir=self.top, temp_root=self.root)
        self.fixtures = FixtureIO(self.reporter, self.config)

    def tearDown(self):
        self.fixtures.cleanup()
        shutil.rmtree(self.root)

    def test_temp_dir(self):
        tmp = self.fixtures.temp_dir()
        self.assertTrue(os.path.isdir(tmp))
        self.assertEqual(os.path.dirname(tmp), self.root)
        self.assertTrue(os.path.basename(tmp).startswith("gdtest."))
        self.assertEqual(self.fixtures.temp_dir(), tmp)

    def test_temp_file_default(self):
        path = self.fixtures.temp_file()
        self.assertTrue(os.path.isfile(path))
        self.assertEqual(os.path.dirname(path), self.fixtures.temp_dir())
        self.assertTrue(os.path.basename(path).startswith("gdtemp."))

    def test_temp_file_unique(self):
        self.assertNotEqual(self.fixtures.temp_file("x.XXXXXX.png"),
                            self.fixtures.temp_file("x.XXXXXX.png"))

    def test_temp_file_template_suffix(self):
        path = self.fixtures.temp_file("img.XXXXXX.png")
        self.assertTrue(os.path.basename(path).startswith("img."))
        self.assertTrue(path.endswith(".png"))

    def test_temp_file_plain_name(self):
        path = self.fixtures.temp_file("plain.png")
        self.assertEqual(path, os.path.join(self.fixtures.temp_dir(), "plain.png"))
        self.assertFalse(os.path.exists(path))

    def test_temp_fp(self):
        with self.fixtures.temp_fp() as fp:
            fp.write(b"data")
            self.assertTrue(os.path.isfile(fp.name))

    def test_cleanup(self):
        tmp = self.fixtures.temp_dir()
        self.fixtures.temp_file()
        self.fixtures.cleanup()
        self.assertFalse(os.path.exists(tmp))
        self.fixtures.cleanup()  # idempotent

    def test_temp_dir_failure_is_fatal(self):
        config = ImageCheckConfig(temp_root=os.path.join(self.root, "missing"))
        fixtures = FixtureIO(self.reporter, config)
        with self.assertRaises(FixtureError):
            fixtures.temp_dir()
        self.assertEqual(self.reporter.failure_count(), 1)
        self.assertIn("Cannot create temp directory", self.stream.getvalue())

    def test_file_path(self):
        self.assertEqual(self.fixtures.file_path("png", "ref.png"),
                         os.path.join(self.top, "png", "ref.png"))
        with self.assertRaises(ValueError):
            self.fixtures.file_path()

    def test_file_open(self):
        with self.fixtures.file_open("png", "ref.png") as fp:
            self.assertEqual(fp.read(8), b"\x89PNG\r\n\x1a\n")
        self.assertEqual(self.reporter.failure_count(), 0)

    def test_file_open_missing(self):
        self.assertIsNone(self.fixtures.file_open("png", "missing.png"))
        self.assertEqual(self.reporter.failure_count(), 1)

    def test_image_from_png_relative(self):
        img = self.fixtures.image_from_png("png/ref.png")
        self.assertEqual(img.size, (3, 2))
        self.assertEqual(img.get_pixel(2, 1), truecolor_alpha(10, 20, 30, 0))

    def test_image_from_png_absolute(self):
        img = self.fixtures.image_from_png(os.path.join(self.top, "png", "ref.png"))
        self.assertEqual(img.size, (3, 2))

    def test_image_from_png_missing_reports_caller(self):
        self.assertIsNone(self.fixtures.image_from_png("png/missing.png"))
        self.assertEqual(self.reporter.failure_count(), 1)
        output = self.stream.getvalue()
        self.assertIn(os.path.basename(__file__) + ":", output)
        self.assertNotIn(os.path.join("imagecheck", "fixtures.py"), output)

    def test_file_open_missing_reports_caller(self):
        self.fixtures.file_open("png", "missing.png")
        self.assertIn(os.path.basename(__file__) + ":", self.stream.getvalue())

    def test_image_from_png_absolute_missing(self):
        self.assertIsNone(self.fixtures.image_from_png(os.path.join(self.root, "none.png")))
        self.assertEqual(self.reporter.failure_count(), 0)

    def test_image_from_png_not_png(self):
        with open(os.path.join(self.top, "junk.png"), 'wb') as f:
            f.write(b"junk")
        self.assertIsNone(self.fixtures.image_from_png("junk.png"))


if __name__ == '__main__':
    unittest.main(verbosity=2)
