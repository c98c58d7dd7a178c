"""
Region fan-out for aws-resource-list.

Runs the same service dispatch in every region with at most `concurrency`
region jobs active at once. A failing region never cancels its siblings.
"""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Dict, List

from aws_resource_list.services import ServiceDispatcher, ServiceKind


logger = logging.getLogger(__name__)

# Seconds between checks for a free slot
ADMISSION_POLL_INTERVAL = 0.5


@dataclass
class FanOutReport:
    """Summary of one fan-out run."""
    launched: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    peak_concurrency: int = 0

    @property
    def succeeded(self) -> List[str]:
        return [region for region in self.launched if region not in self.failed]


class RegionFanOut:
    """
    Bounded scheduler for per-region jobs.

    Responsibilities:
    1. Admit a region job only when fewer than `concurrency` are active
    2. Wait `launch_delay` seconds after each launch
    3. Collect per-region failures without cancelling other regions
    4. On interrupt, stop admitting jobs and terminate running children
    """

    def __init__(self, dispatcher: ServiceDispatcher, concurrency: int, launch_delay: float):
        """
        Initialize fan-out scheduler.

        Args:
            dispatcher: Dispatcher run once per region
            concurrency: Maximum simultaneously active region jobs
            launch_delay: Seconds to wait after launching each job
        """
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")

        self.dispatcher = dispatcher
        self.concurrency = concurrency
        self.launch_delay = launch_delay

        runner = dispatcher.runner
        self.cancel_event = runner.cancel_event
        self.registry = runner.registry

        self._slots = threading.BoundedSemaphore(concurrency)
        self._lock = threading.Lock()
        self._active = 0

    def _acquire_slot(self) -> bool:
        """Block until a slot is free; False if cancelled while waiting."""
        while not self.cancel_event.is_set():
            if self._slots.acquire(timeout=ADMISSION_POLL_INTERVAL):
                return True
        return False

    def _run_region(self, kind: ServiceKind, region: str, report: FanOutReport) -> bool:
        with self._lock:
            self._active += 1
            report.peak_concurrency = max(report.peak_concurrency, self._active)

        try:
            self.dispatcher.writer.out(f"\n### REGION: {region} ###")
            return self.dispatcher.dispatch(kind, region)
        finally:
            with self._lock:
                self._active -= 1
            self._slots.release()

    def run(self, kind: ServiceKind, regions: List[str]) -> FanOutReport:
        """
        Dispatch kind in every region.

        Args:
            kind: Service to list
            regions: Ordered region names

        Returns:
            FanOutReport with launched and failed regions
        """
        logger.debug(
            f"Running in all-regions mode (concurrency={self.concurrency}, sleep={self.launch_delay})"
        )

        report = FanOutReport()
        futures: Dict[Future, str] = {}
        pool = ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix='region')

        try:
            for region in regions:
                if not self._acquire_slot():
                    break

                futures[pool.submit(self._run_region, kind, region, report)] = region
                report.launched.append(region)

                if self.launch_delay > 0:
                    self.cancel_event.wait(self.launch_delay)

            wait(futures)
        except KeyboardInterrupt:
            self.cancel()
            pool.shutdown(wait=False, cancel_futures=True)
            raise

        pool.shutdown(wait=True)

        for future, region in futures.items():
            try:
                ok = future.result()
            except Exception as e:
                logger.error(f"Region job {region} raised: {e}")
                ok = False

            if not ok:
                report.failed.append(region)

        if report.failed:
            logger.warning(f"Listing failed in {len(report.failed)} region(s): {', '.join(report.failed)}")

        return report

    def cancel(self) -> int:
        """
        Stop admitting jobs and terminate running child processes.

        Returns:
            Number of child processes signalled
        """
        self.cancel_event.set()
        terminated = self.registry.terminate_all()
        if terminated:
            logger.debug(f"Terminated {terminated} running command(s)")
        return terminated
