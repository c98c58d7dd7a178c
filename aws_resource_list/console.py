"""
Console output for aws-resource-list.

OutputWriter tees every emitted line to the terminal and, when configured,
to an output file. Logging is routed through the same writer.
"""
import sys
import logging
import threading
from pathlib import Path
from typing import Optional, TextIO

from aws_resource_list.errors import OutputFileError


class OutputWriter:
    """Line-oriented writer fanning out to stdout/stderr and an optional file."""

    def __init__(
        self,
        output_file: Optional[Path] = None,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None
    ):
        """
        Initialize writer.

        Args:
            output_file: File to append every line to (optional)
            stdout: Normal output stream (default: sys.stdout)
            stderr: Diagnostic stream (default: sys.stderr)
        """
        self.output_file = output_file
        self.stdout = stdout if stdout is not None else sys.stdout
        self.stderr = stderr if stderr is not None else sys.stderr
        self._file: Optional[TextIO] = None
        self._lock = threading.Lock()

    def open(self) -> 'OutputWriter':
        """
        Open the output file for appending.

        Raises:
            OutputFileError: If the file cannot be created or appended to
        """
        if self.output_file is not None and self._file is None:
            try:
                self._file = open(self.output_file, 'a', encoding='utf-8')
            except OSError as e:
                raise OutputFileError(f"Cannot write to output file: {self.output_file} ({e.strerror})") from e
        return self

    def close(self):
        """Close the output file, if open."""
        with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None

    def __enter__(self) -> 'OutputWriter':
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def _emit(self, stream: TextIO, text: str):
        lines = text.splitlines() or ['']
        with self._lock:
            for line in lines:
                stream.write(line + '\n')
                if self._file is not None:
                    self._file.write(line + '\n')
            stream.flush()
            if self._file is not None:
                self._file.flush()

    def out(self, text: str):
        """Write text to the normal output stream."""
        self._emit(self.stdout, text)

    def err(self, text: str):
        """Write text to the diagnostic stream."""
        self._emit(self.stderr, text)


class PrefixFormatter(logging.Formatter):
    """Formats records as `[LOG]`, `[WARN]` or `[ERROR]` lines, one prefix per line."""

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno >= logging.ERROR:
            prefix = '[ERROR]'
        elif record.levelno >= logging.WARNING:
            prefix = '[WARN]'
        else:
            prefix = '[LOG]'
        lines = record.getMessage().splitlines() or ['']
        return '\n'.join(f"{prefix} {line}" for line in lines)


class WriterHandler(logging.Handler):
    """Logging handler that writes through an OutputWriter's error stream."""

    def __init__(self, writer: OutputWriter):
        super().__init__()
        self.writer = writer

    def emit(self, record: logging.LogRecord):
        try:
            self.writer.err(self.format(record))
        except Exception:
            self.handleError(record)


def configure_logging(writer: OutputWriter, verbose: bool = False) -> logging.Logger:
    """
    Route package logging through the writer.

    Args:
        writer: Writer receiving diagnostic lines
        verbose: Emit debug lines when True, otherwise warnings and errors only

    Returns:
        The configured package logger
    """
    logger = logging.getLogger('aws_resource_list')
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = WriterHandler(writer)
    handler.setFormatter(PrefixFormatter())
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.propagate = False
    return logger
