import logging
import threading
import time
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from dataclasses import dataclass, field

from .constants import APP_NAME, DEFAULT_WORKERS
from .errors import SyncError
from .registry import Registry
from .sync import SyncEngine, SyncResult, SyncStatus, cleanup_stale, stale_after

logger = logging.getLogger(APP_NAME)


@dataclass
class SyncReport:
    """Aggregate outcome of a sync-all request.

    Attributes:
        results (list[SyncResult]): One result per repository, in config order.
    """

    results: list[SyncResult] = field(default_factory=list)

    @property
    def succeeded(self) -> list[SyncResult]:
        return [r for r in self.results if r.status is SyncStatus.SUCCESS]

    @property
    def failed(self) -> list[SyncResult]:
        return [r for r in self.results if r.status is SyncStatus.FAILED]

    @property
    def skipped(self) -> list[SyncResult]:
        return [r for r in self.results if r.status is SyncStatus.SKIPPED]

    @property
    def ok(self) -> bool:
        return not self.failed


class Scheduler:
    """Runs syncs on a bounded worker pool, at most one per repository.

    A request for a repository that is already syncing is rejected with a
    skipped result instead of waiting; the running sync already covers
    whatever upstream state existed when it started, and the next trigger
    picks up anything newer.

    Attributes:
        registry (Registry): The shared repository registry.
        engine (SyncEngine): Performs the clone/fetch work.
    """

    def __init__(
        self, registry: Registry, engine: SyncEngine, workers: int = DEFAULT_WORKERS
    ):
        self.registry = registry
        self.engine = engine
        self._pool = ThreadPoolExecutor(
            max_workers=max(1, workers), thread_name_prefix="gitit-sync"
        )
        cleanup_stale(registry.mirror_dir, stale_after(engine.timeout))

    def __enter__(self) -> "Scheduler":
        return self

    def __exit__(self, *exc: object) -> None:
        self.shutdown()

    def _run_one(self, name: str) -> SyncResult:
        """Claims, syncs and records one repository. Never raises SyncError."""
        if not self.registry.begin_sync(name):
            logger.info(f"SKIPPED {name}: already syncing")
            return SyncResult.skipped(name, "already syncing")

        start = time.monotonic()
        result = SyncResult.failed(name, "interrupted")
        try:
            state = self.registry.get(name)
            result = self.engine.sync(state.repo, state.local_path)
            logger.info(
                f"SYNCED {name}: {'cloned' if result.cloned else 'fetched'}"
                f"{'' if result.changed else ' (no changes)'} in {result.duration:.1f}s"
            )
        except SyncError as e:
            logger.error(f"FAILED {name}: {e}")
            result = SyncResult.failed(name, str(e), time.monotonic() - start)
        except Exception as e:
            logger.exception(f"FAILED {name}: unexpected error")
            result = SyncResult.failed(
                name, f"unexpected error: {e}", time.monotonic() - start
            )
        finally:
            self.registry.complete_sync(name, result)
        return result

    def trigger(self, name: str) -> Future:
        """Schedules a sync without waiting for it (webhook entry point).

        Raises:
            RepoNotFound: If no repository has that name.
        """
        self.registry.get(name)
        return self._pool.submit(self._run_one, name)

    def sync_by_name(self, name: str) -> SyncResult:
        """Syncs one repository and waits for the outcome.

        Raises:
            RepoNotFound: If no repository has that name.
        """
        return self.trigger(name).result()

    def sync_all(self) -> SyncReport:
        """Syncs every repository in parallel and waits for all of them."""
        futures = {n: self._pool.submit(self._run_one, n) for n in self.registry.names()}
        report = SyncReport()
        for name, future in futures.items():
            try:
                report.results.append(future.result())
            except CancelledError:
                report.results.append(SyncResult.failed(name, "cancelled"))
        logger.info(
            f"SYNC ALL: {len(report.succeeded)} ok, {len(report.failed)} failed, "
            f"{len(report.skipped)} skipped"
        )
        return report

    def run_periodic(self, interval: float, stop: threading.Event) -> None:
        """Syncs everything every `interval` seconds until `stop` is set."""
        while not stop.is_set():
            self.sync_all()
            stop.wait(interval)

    def shutdown(self, cancel: bool = True) -> None:
        """Stops the worker pool.

        Args:
            cancel (bool): Abort running clones/fetches and drop queued syncs.
                           Running git processes are killed; the atomic
                           clone/fetch protocol keeps every mirror intact.
        """
        if cancel:
            self.engine.cancel.set()
        self._pool.shutdown(wait=True, cancel_futures=cancel)
