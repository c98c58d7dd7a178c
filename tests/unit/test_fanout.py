"""
Unit tests for the region fan-out scheduler.
"""
import io
import threading
import time
import pytest
from unittest.mock import Mock

from aws_resource_list.config import ListerConfig
from aws_resource_list.console import OutputWriter
from aws_resource_list.exec import CommandResult
from aws_resource_list.fanout import RegionFanOut
from aws_resource_list.services import ServiceDispatcher, ServiceKind


class ConcurrencyProbe:
    """aws stand-in that holds each call open and records overlap."""

    def __init__(self, hold: float = 0.1, failing_regions=()):
        self.hold = hold
        self.failing_regions = set(failing_regions)
        self.active = 0
        self.peak = 0
        self.regions = []
        self._lock = threading.Lock()

    def __call__(self, args):
        region = args[args.index('--region') + 1]
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
            self.regions.append(region)

        time.sleep(self.hold)

        with self._lock:
            self.active -= 1

        if region in self.failing_regions:
            return CommandResult(args=args, returncode=255, stderr="ServiceUnavailable")
        return CommandResult(args=args, returncode=0, stdout=f'{{"Region": "{region}"}}')


class RecordingEvent(threading.Event):
    """Event whose timed waits return immediately but are recorded."""

    def __init__(self):
        super().__init__()
        self.waits = []

    def wait(self, timeout=None):
        self.waits.append(timeout)
        return super().wait(0)


def make_fanout(make_runner, concurrency=2, launch_delay=0.0):
    stdout = io.StringIO()
    writer = OutputWriter(stdout=stdout, stderr=io.StringIO())
    runner = make_runner(ListerConfig(service='ec2', all_regions=True, concurrency=concurrency))
    dispatcher = ServiceDispatcher(runner, writer)
    return RegionFanOut(dispatcher, concurrency, launch_delay), stdout


class TestRegionFanOut:

    @pytest.mark.parametrize("concurrency", [1, 2, 4])
    def test_active_jobs_never_exceed_limit(self, fake_aws, make_runner, concurrency):
        probe = ConcurrencyProbe(hold=0.05)
        fake_aws.handler = probe
        fanout, _ = make_fanout(make_runner, concurrency=concurrency)
        regions = [f"r{i}" for i in range(8)]

        report = fanout.run(ServiceKind.EC2, regions)

        assert probe.peak <= concurrency
        assert report.peak_concurrency <= concurrency
        assert sorted(probe.regions) == sorted(regions)

    def test_two_slots_three_regions(self, fake_aws, make_runner):
        """-a -c 2 ec2 with regions r1, r2, r3."""
        probe = ConcurrencyProbe(hold=0.2)
        fake_aws.handler = probe
        fanout, stdout = make_fanout(make_runner, concurrency=2)

        report = fanout.run(ServiceKind.EC2, ['r1', 'r2', 'r3'])

        assert probe.peak == 2
        assert report.launched == ['r1', 'r2', 'r3']
        assert report.failed == []
        output = stdout.getvalue()
        for region in ('r1', 'r2', 'r3'):
            assert f"### REGION: {region} ###" in output
            assert f"=== EC2 Instances in region: {region} ===" in output

    def test_region_failure_is_isolated(self, fake_aws, make_runner):
        probe = ConcurrencyProbe(hold=0.0, failing_regions={'r2'})
        fake_aws.handler = probe
        fanout, stdout = make_fanout(make_runner, concurrency=2)

        report = fanout.run(ServiceKind.EC2, ['r1', 'r2', 'r3'])

        assert report.failed == ['r2']
        assert report.succeeded == ['r1', 'r3']
        assert '"Region": "r1"' in stdout.getvalue()
        assert '"Region": "r3"' in stdout.getvalue()
        # r2 retried up to the ceiling
        assert probe.regions.count('r2') == 5

    def test_job_exception_is_isolated(self, make_runner):
        fanout, _ = make_fanout(make_runner, concurrency=2)

        def dispatch(kind, region):
            if region == 'r1':
                raise RuntimeError("boom")
            return True

        fanout.dispatcher.dispatch = dispatch

        report = fanout.run(ServiceKind.EC2, ['r1', 'r2'])

        assert report.failed == ['r1']
        assert report.succeeded == ['r2']

    def test_region_output_is_ordered_within_job(self, fake_aws, make_runner):
        fake_aws.handler = ConcurrencyProbe(hold=0.01)
        fanout, stdout = make_fanout(make_runner, concurrency=3)

        fanout.run(ServiceKind.EC2, ['r1', 'r2', 'r3'])

        lines = stdout.getvalue().splitlines()
        for region in ('r1', 'r2', 'r3'):
            marker = lines.index(f"### REGION: {region} ###")
            header = lines.index(f"=== EC2 Instances in region: {region} ===")
            body = lines.index(f'{{"Region": "{region}"}}')
            assert marker < header < body

    def test_waits_between_launches(self, fake_aws, make_runner):
        fake_aws.handler = ConcurrencyProbe(hold=0.0)
        fanout, _ = make_fanout(make_runner, concurrency=3, launch_delay=0.25)
        event = RecordingEvent()
        fanout.cancel_event = event

        fanout.run(ServiceKind.EC2, ['r1', 'r2', 'r3'])

        assert event.waits == [0.25, 0.25, 0.25]

    def test_no_jobs_after_cancel(self, fake_aws, make_runner):
        probe = ConcurrencyProbe(hold=0.0)
        fake_aws.handler = probe
        fanout, _ = make_fanout(make_runner, concurrency=2)
        fanout.cancel_event.set()

        report = fanout.run(ServiceKind.EC2, ['r1', 'r2'])

        assert report.launched == []
        assert probe.regions == []

    def test_cancel_terminates_children(self, make_runner):
        fanout, _ = make_fanout(make_runner)
        proc = Mock()
        proc.poll.return_value = None
        fanout.registry.add(proc)

        assert fanout.cancel() == 1
        assert fanout.cancel_event.is_set()
        proc.terminate.assert_called_once()

    def test_rejects_zero_concurrency(self, make_runner):
        runner = make_runner(ListerConfig(service='ec2'))
        dispatcher = ServiceDispatcher(runner, OutputWriter(stdout=io.StringIO(), stderr=io.StringIO()))

        with pytest.raises(ValueError):
            RegionFanOut(dispatcher, 0, 0.0)
