"""
Pytest configuration for unit tests.

Isolates tests from the caller's AWS environment and provides a scripted
stand-in for the aws CLI.
"""
import logging
import pytest
from typing import Callable, Dict, List, Optional, Tuple

from aws_resource_list import config as config_module
from aws_resource_list.config import ListerConfig
from aws_resource_list.exec import CommandResult, CommandRunner


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep AWS_PROFILE and personal defaults files out of every test."""
    monkeypatch.delenv("AWS_PROFILE", raising=False)
    monkeypatch.delenv("AWS_RESOURCE_LIST_CONFIG", raising=False)
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", tmp_path / "no-such-defaults.yaml")


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo configure_logging so caplog sees package records."""
    yield
    logger = logging.getLogger("aws_resource_list")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


class FakeAws:
    """
    Scripted replacement for CommandRunner.run.

    Responses are matched on a prefix of the command (after the binary and
    any --profile arguments, so a jq call matches ['-r', filter]); unmatched
    commands succeed with empty output.
    """

    def __init__(self):
        self.calls: List[List[str]] = []
        self.inputs: List[Optional[str]] = []
        self.responses: Dict[Tuple[str, ...], List[CommandResult]] = {}
        self.handler: Optional[Callable[[List[str]], Optional[CommandResult]]] = None

    def respond(
        self,
        prefix: List[str],
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        replace: bool = False
    ):
        """Queue a response; the last queued response for a prefix repeats."""
        if replace:
            self.responses.pop(tuple(prefix), None)
        self.responses.setdefault(tuple(prefix), []).append(
            CommandResult(args=list(prefix), returncode=returncode, stdout=stdout, stderr=stderr)
        )

    @staticmethod
    def _strip(args: List[str]) -> List[str]:
        rest = list(args[1:])
        if rest[:1] == ['--profile']:
            rest = rest[2:]
        return rest

    def listing_calls(self) -> List[List[str]]:
        """Recorded calls other than preflight and region queries."""
        skip = (['--version'], ['configure'], ['sts'], ['ec2', 'describe-regions'])
        return [
            call for call in self.calls
            if call[0] == 'aws'
            and not any(self._strip(call)[:len(prefix)] == prefix for prefix in skip)
        ]

    def __call__(self, args: List[str], input_text: Optional[str] = None) -> CommandResult:
        self.calls.append(list(args))
        self.inputs.append(input_text)

        if self.handler is not None:
            handled = self.handler(list(args))
            if handled is not None:
                return handled

        stripped = self._strip(args)
        for prefix in sorted(self.responses, key=len, reverse=True):
            if tuple(stripped[:len(prefix)]) == prefix:
                queue = self.responses[prefix]
                template = queue.pop(0) if len(queue) > 1 else queue[0]
                return CommandResult(
                    args=list(args),
                    returncode=template.returncode,
                    stdout=template.stdout,
                    stderr=template.stderr
                )

        return CommandResult(args=list(args), returncode=0)


@pytest.fixture
def fake_aws():
    """Scripted aws CLI."""
    return FakeAws()


@pytest.fixture
def make_runner(fake_aws):
    """Build a CommandRunner whose commands go to fake_aws and whose retries do not sleep."""
    def _make(config: ListerConfig) -> CommandRunner:
        runner = CommandRunner(config)
        runner.run = fake_aws
        runner.initial_delay = 0
        return runner
    return _make
