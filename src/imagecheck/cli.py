#!/usr/bin/env python3
"""
cli.py - Entry point for imagecheck
Test-session wiring, convenience functions and the command-line interface
for comparing rendered PNGs against reference images.
"""

import argparse
import json
import logging
import os
import sys
from typing import List, Optional, TextIO

from tabulate import tabulate

from .core import (
    ImageCheckConfig,
    ImageComparator,
    ImageLoadError,
    TrueColorImage,
    load_png,
    max_pixel_diff,
    VERSION
)
from .fixtures import FixtureIO
from .reporter import AssertionReporter, FailureCounter, Location

__all__ = [
    'TestSession',
    'ImageCheckCLI',
    'compare_images',
    'max_diff',
    'main'
]

# Configure module logger
logger = logging.getLogger(__name__)


class TestSession:
    """
    One test run: a single failure counter shared by the reporter,
    the comparator and the fixture helpers.

    Example:
        >>> session = TestSession()
        >>> img = session.fixtures.image_from_png('png/expected.png')
        >>> session.assert_image_equal(img, render())
        >>> sys.exit(session.exit_code())
    """
    __test__ = False  # not a pytest test class

    def __init__(self, config: ImageCheckConfig = None, stream: Optional[TextIO] = None):
        self.config = config or ImageCheckConfig()
        self.counter = FailureCounter()
        self.reporter = AssertionReporter(self.counter, stream)
        self.fixtures = FixtureIO(self.reporter, self.config)
        self.comparator = ImageComparator(self.reporter, self.config)

    def check(self, condition, message=None) -> bool:
        """Assert a condition at the caller's location"""
        location = Location.caller()
        if message is None:
            return self.reporter.assert_condition(location, condition)
        return self.reporter.assert_condition_with_message(location, condition, message)

    def assert_image_equal(self, expected: Optional[TrueColorImage],
                           actual: Optional[TrueColorImage]) -> bool:
        return self.comparator.compare(Location.caller(), expected, actual)

    def assert_image_file(self, expected_path: str, actual: Optional[TrueColorImage]) -> bool:
        return self.comparator.compare_to_file(Location.caller(), expected_path, actual)

    def failure_count(self) -> int:
        return self.reporter.failure_count()

    def exit_code(self) -> int:
        return 0 if self.failure_count() == 0 else 1

    def close(self):
        self.fixtures.cleanup()

    def __enter__(self) -> 'TestSession':
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


def compare_images(expected_path: str, actual_path: str, config: ImageCheckConfig = None,
                   session: TestSession = None, line: int = 0) -> bool:
    """
    Convenience function to compare two PNG files

    Args:
        expected_path: Path to the reference image
        actual_path: Path to the image under test
        config: Optional ImageCheckConfig object
        session: Optional TestSession to count failures in
        line: Line number used to name the diagnostic artifacts

    Returns:
        True if both images hold identical pixels. On mismatch
        <actual>_<line>_diff.png and <actual>_<line>_out.png are written
        to config.output_dir.

    Example:
        >>> if not compare_images('ref.png', 'render.png'):
        ...     print("render.png differs from ref.png")
    """
    if session is None:
        session = TestSession(config)
    location = Location(actual_path, line)
    try:
        actual = load_png(actual_path)
    except ImageLoadError as e:
        logger.debug(f"Could not load {actual_path}: {e}")
        actual = None
    # Command-line paths are relative to the working directory, not top_dir
    return session.comparator.compare_to_file(location, os.path.abspath(expected_path), actual)


def max_diff(path_a: str, path_b: str) -> int:
    """
    Largest raw channel difference between two PNG files

    Returns:
        The unamplified maximum over all channels and pixels, or
        MAX_PIXEL_DIFF if the sizes differ.
    """
    return max_pixel_diff(load_png(path_a), load_png(path_b))


class ImageCheckCLI:
    """Command-line interface for imagecheck"""

    def __init__(self):
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            description='imagecheck - Image regression checks',
            formatter_class=argparse.RawDescriptionHelpFormatter
        )
        parser.add_argument('--version', action='version', version=f'imagecheck v{VERSION}')

        subparsers = parser.add_subparsers(dest='command', help='Available commands')

        # Compare command
        cmp_parser = subparsers.add_parser('compare', help='Compare an image against a reference, or a batch')
        cmp_parser.add_argument('expected', nargs='?', help='Path to reference image (single)')
        cmp_parser.add_argument('actual', nargs='?', help='Path to image under test (single)')
        cmp_parser.add_argument('--batch', help='Path to JSON list of {"expected": path, "actual": path}')
        cmp_parser.add_argument('--out-dir', help='Directory for diff/out artifacts')
        cmp_parser.add_argument('--config', help='Path to configuration file')
        cmp_parser.add_argument('--verbose', action='store_true', help='Enable verbose logging')

        # Max diff command
        max_parser = subparsers.add_parser('maxdiff', help='Print the largest raw channel difference')
        max_parser.add_argument('image_a', help='Path to first image')
        max_parser.add_argument('image_b', help='Path to second image')
        max_parser.add_argument('--verbose', action='store_true', help='Enable verbose logging')

        # Config command
        config_parser = subparsers.add_parser('config', help='Generate default configuration file')
        config_parser.add_argument('--out', required=True, help='Output path for configuration file')

        return parser

    def run(self, args=None) -> int:
        args = self.parser.parse_args(args)

        if not args.command:
            self.parser.print_help()
            return 1

        if hasattr(args, 'verbose') and args.verbose:
            logging.getLogger().setLevel(logging.DEBUG)

        try:
            if args.command == 'compare':
                return self._compare(args)
            elif args.command == 'maxdiff':
                return self._max_diff(args)
            elif args.command == 'config':
                return self._generate_config(args)
        except Exception as e:
            logger.error(f"Error: {e}")
            return 1
        return 1

    def _load_config(self, args) -> ImageCheckConfig:
        if args.config:
            config = ImageCheckConfig.from_json(args.config)
        else:
            config = ImageCheckConfig()
        if args.out_dir:
            os.makedirs(args.out_dir, exist_ok=True)
            config.output_dir = args.out_dir
        return config

    def _compare(self, args) -> int:
        config = self._load_config(args)

        with TestSession(config) as session:
            if args.batch:
                with open(args.batch, 'r') as f:
                    batch_list = json.load(f)
                rows = []
                for line, item in enumerate(batch_list, start=1):
                    logger.info(f"Comparing {item['actual']} against {item['expected']}")
                    ok = compare_images(item['expected'], item['actual'], session=session, line=line)
                    rows.append([line, item['expected'], item['actual'], "PASS" if ok else "FAIL"])
                headers = ["#", "Expected", "Actual", "Status"]
                print(tabulate(rows, headers=headers, tablefmt="grid"))
                print(f"{session.failure_count()} failure(s)")
            elif args.expected and args.actual:
                ok = compare_images(args.expected, args.actual, session=session)
                if ok:
                    logger.info(f"{args.actual} matches {args.expected}")
                else:
                    logger.warning(f"{args.actual} does not match {args.expected}")
            else:
                logger.error("Must provide EXPECTED and ACTUAL or --batch")
                return 1
            return session.exit_code()

    def _max_diff(self, args) -> int:
        print(max_diff(args.image_a, args.image_b))
        return 0

    def _generate_config(self, args) -> int:
        config = ImageCheckConfig()
        config.to_json(args.out)
        logger.info(f"Default configuration saved to {args.out}")
        return 0


def main(argv: Optional[List[str]] = None):
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    cli = ImageCheckCLI()
    sys.exit(cli.run(argv))


if __name__ == '__main__':
    main()
