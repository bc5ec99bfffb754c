"""
Failure accounting for image regression tests.
Every failed assertion is written to a diagnostic stream as
"<file>:<line>: <message>" and counted, so a runner can turn the
final count into a process exit status.
"""

import sys
import threading
from typing import Callable, NamedTuple, Optional, TextIO, Union

Message = Union[str, Callable[[], str]]


class Location(NamedTuple):
    """Source file and line an assertion was made from"""
    file: str
    line: int

    def __str__(self) -> str:
        return f"{self.file}:{self.line}"

    @classmethod
    def caller(cls, depth: int = 1) -> 'Location':
        """Location of the frame `depth` levels above the caller"""
        frame = sys._getframe(depth + 1)
        return cls(frame.f_code.co_filename, frame.f_lineno)


class FailureCounter:
    """Running count of failures for one test run"""

    def __init__(self):
        self._value = 0
        self.lock = threading.Lock()

    @property
    def value(self) -> int:
        return self._value

    def increment(self) -> int:
        with self.lock:
            self._value += 1
            return self._value


class AssertionReporter:
    """Emits located failure messages and counts them"""

    def __init__(self, counter: Optional[FailureCounter] = None, stream: Optional[TextIO] = None):
        self.counter = counter if counter is not None else FailureCounter()
        self._stream = stream

    @property
    def stream(self) -> TextIO:
        # Resolved lazily so redirected/captured stderr is honoured
        return self._stream if self._stream is not None else sys.stderr

    def assert_condition(self, location: Location, condition) -> bool:
        if condition:
            return True
        self._fail(location, f"Assert failed in <{location}>")
        return False

    def assert_condition_with_message(self, location: Location, condition, message: Message) -> bool:
        """
        Like assert_condition but with a caller supplied message.

        `message` may be a zero-argument callable; it is only called when
        the condition fails.
        """
        if condition:
            return True
        self._fail(location, message() if callable(message) else message)
        return False

    def report_error(self, location: Location, message: str) -> int:
        """Unconditionally report a failure; returns a nonzero marker"""
        self._fail(location, message)
        return 1

    def failure_count(self) -> int:
        return self.counter.value

    def _fail(self, location: Location, message: str):
        line = f"{location.file}:{location.line}: {message}"
        if not line.endswith("\n"):
            line += "\n"
        with self.counter.lock:
            stream = self.stream
            stream.write(line)
            stream.flush()
        self.counter.increment()
