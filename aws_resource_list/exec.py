"""
Command execution for aws-resource-list.

Runs the aws and jq CLIs as child processes, retries transient aws failures
with exponential backoff, and tracks live children so an interrupt can
terminate them.
"""
import shlex
import logging
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Set

from aws_resource_list.config import ListerConfig


logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5
INITIAL_DELAY = 1.0

# Exit code reported for commands that could not be started
EXIT_NOT_STARTED = 127


@dataclass
class CommandResult:
    """Outcome of one external command."""
    args: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def retry_with_backoff(
    operation: Callable[[], CommandResult],
    max_attempts: int = MAX_ATTEMPTS,
    initial_delay: float = INITIAL_DELAY,
    sleep: Callable[[float], object] = time.sleep,
    should_stop: Optional[Callable[[], bool]] = None
) -> CommandResult:
    """
    Run operation until it succeeds or max_attempts is reached.

    The delay before the second attempt is initial_delay and doubles before
    every further attempt.

    Args:
        operation: Callable returning a CommandResult
        max_attempts: Attempt ceiling
        initial_delay: Seconds to wait after the first failure
        sleep: Sleep function (injectable for tests)
        should_stop: Returns True when retrying must stop early

    Returns:
        The first successful result, or the last failed one
    """
    delay = initial_delay
    attempt = 0

    while True:
        result = operation()
        attempt += 1
        result.attempts = attempt

        if result.ok:
            return result

        command = ' '.join(result.args)
        if attempt >= max_attempts:
            logger.error(f"Command failed after {attempt} attempts: {command} (exit {result.returncode})")
            return result

        if should_stop is not None and should_stop():
            logger.warning(f"Not retrying cancelled command: {command}")
            return result

        logger.warning(
            f"aws command failed (exit {result.returncode}). "
            f"Retrying in {delay:g}s... (attempt {attempt + 1}/{max_attempts})"
        )
        sleep(delay)
        delay *= 2


class ProcessRegistry:
    """Thread-safe set of running child processes."""

    def __init__(self):
        self._procs: Set[subprocess.Popen] = set()
        self._lock = threading.Lock()

    def add(self, proc: subprocess.Popen):
        with self._lock:
            self._procs.add(proc)

    def discard(self, proc: subprocess.Popen):
        with self._lock:
            self._procs.discard(proc)

    def __len__(self) -> int:
        with self._lock:
            return len(self._procs)

    def terminate_all(self) -> int:
        """
        Terminate every live child.

        Returns:
            Number of processes signalled
        """
        with self._lock:
            procs = list(self._procs)

        count = 0
        for proc in procs:
            if proc.poll() is None:
                proc.terminate()
                count += 1
        return count


class CommandRunner:
    """Executes aws/jq commands for one configuration."""

    max_attempts = MAX_ATTEMPTS
    initial_delay = INITIAL_DELAY

    def __init__(
        self,
        config: ListerConfig,
        registry: Optional[ProcessRegistry] = None,
        cancel_event: Optional[threading.Event] = None,
        aws_binary: str = 'aws',
        jq_binary: str = 'jq'
    ):
        self.config = config
        self.registry = registry if registry is not None else ProcessRegistry()
        self.cancel_event = cancel_event if cancel_event is not None else threading.Event()
        self.aws_binary = aws_binary
        self.jq_binary = jq_binary

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def run(self, args: List[str], input_text: Optional[str] = None) -> CommandResult:
        """
        Run one command and capture its output.

        Args:
            args: Command as list of arguments
            input_text: Text fed to the command's stdin (optional)

        Returns:
            CommandResult (returncode 127 if the command could not start)
        """
        if self.cancelled:
            return CommandResult(args=args, returncode=EXIT_NOT_STARTED, stderr="cancelled")

        try:
            proc = subprocess.Popen(
                args,
                stdin=subprocess.PIPE if input_text is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True
            )
        except OSError as e:
            logger.debug(f"Could not start {args[0]}: {e}")
            return CommandResult(args=args, returncode=EXIT_NOT_STARTED, stderr=str(e))

        self.registry.add(proc)
        try:
            stdout, stderr = proc.communicate(input=input_text)
        finally:
            self.registry.discard(proc)

        return CommandResult(args=args, returncode=proc.returncode, stdout=stdout, stderr=stderr)

    def aws_command(self, args: List[str]) -> List[str]:
        """Full aws command line, including the profile selection."""
        return [self.aws_binary] + self.config.profile_args() + list(args)

    def run_aws_once(self, args: List[str]) -> CommandResult:
        """Run an aws command without retries (preflight checks)."""
        command = self.aws_command(args)
        logger.debug(f"Running: {shlex.join(command)}")
        return self.run(command)

    def run_aws(self, args: List[str]) -> CommandResult:
        """
        Run an aws command, retrying failures with exponential backoff.

        Args:
            args: aws sub-command and its arguments

        Returns:
            Successful result, or the last failed result after retries
        """
        command = self.aws_command(args)

        def attempt() -> CommandResult:
            logger.debug(f"Running: {shlex.join(command)}")
            return self.run(command)

        return retry_with_backoff(
            attempt,
            max_attempts=self.max_attempts,
            initial_delay=self.initial_delay,
            sleep=self.cancel_event.wait,
            should_stop=lambda: self.cancelled
        )

    def run_jq(self, jq_filter: str, input_text: str) -> CommandResult:
        """Pipe JSON text through `jq -r`."""
        return self.run([self.jq_binary, '-r', jq_filter], input_text=input_text)
