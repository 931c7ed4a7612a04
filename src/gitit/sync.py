import logging
import os
import shutil
import tempfile
import threading
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .config import RepoConfig
from .constants import APP_NAME, STALE_CLONE_AGE, STALE_CLONE_GRACE, TEMP_CLONE_SUFFIX
from .errors import GitCommandError, SyncError
from .git_wrapper import GitRepo

logger = logging.getLogger(APP_NAME)


class SyncStatus(Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class SyncResult:
    """The outcome of one sync request.

    Attributes:
        name (str): The repository name.
        status (SyncStatus): Success, failure, or skipped (already syncing).
        reason (str | None): Why the sync failed or was skipped.
        cloned (bool): Whether the mirror was created by this sync.
        changed (bool): Whether any ref moved, appeared or disappeared.
        duration (float): Wall-clock seconds spent.
    """

    name: str
    status: SyncStatus
    reason: str | None = None
    cloned: bool = False
    changed: bool = False
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status is SyncStatus.SUCCESS

    @classmethod
    def failed(cls, name: str, reason: str, duration: float = 0.0) -> "SyncResult":
        return cls(name=name, status=SyncStatus.FAILED, reason=reason, duration=duration)

    @classmethod
    def skipped(cls, name: str, reason: str) -> "SyncResult":
        return cls(name=name, status=SyncStatus.SKIPPED, reason=reason)


class SyncEngine:
    """Clones or fetches a single mirror without ever exposing a partial state.

    Attributes:
        timeout (float | None): Seconds a clone or fetch may take.
        cancel (threading.Event): Set to abort every running network command.
    """

    def __init__(
        self, timeout: float | None = None, cancel: threading.Event | None = None
    ):
        self.timeout = timeout or None
        self.cancel = cancel or threading.Event()

    def sync(self, repo: RepoConfig, path: Path) -> SyncResult:
        """Brings the mirror at `path` up to date with `repo.url`.

        Callers must hold the registry's sync claim for `repo.name`.

        Args:
            repo (RepoConfig): The repository to sync.
            path (Path): The mirror directory.

        Returns:
            SyncResult: A successful result.

        Raises:
            SyncError: If the clone or fetch failed. The mirror is left as it
                       was before the call (absent, for a first clone).
        """
        start = time.monotonic()
        if path.exists():
            changed = self._fetch(repo, path)
            cloned = False
        else:
            self._clone(repo, path)
            changed = cloned = True

        return SyncResult(
            name=repo.name,
            status=SyncStatus.SUCCESS,
            cloned=cloned,
            changed=changed,
            duration=time.monotonic() - start,
        )

    def _finish(self, repo: RepoConfig, mirror: GitRepo) -> None:
        if repo.head:
            mirror.set_head(repo.head)
        mirror.update_server_info()

    def _clone(self, repo: RepoConfig, path: Path) -> None:
        """Clones into a temporary directory, then renames it into place."""
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = Path(
            tempfile.mkdtemp(prefix=f".{path.name}.", suffix=TEMP_CLONE_SUFFIX, dir=path.parent)
        )
        logger.info(f"CLONE {repo.name}: {repo.url} -> {path}")
        try:
            mirror = GitRepo.clone_mirror(
                repo.url, tmp, timeout=self.timeout, cancel=self.cancel
            )
            self._finish(repo, mirror)
            os.rename(tmp, path)
        except (GitCommandError, TimeoutError, InterruptedError, OSError, ValueError) as e:
            raise SyncError(f"clone of {repo.url} failed: {e}") from e
        finally:
            if tmp.exists():
                shutil.rmtree(tmp, ignore_errors=True)

    def _fetch(self, repo: RepoConfig, path: Path) -> bool:
        """Fetches into an existing mirror; returns whether any ref changed."""
        try:
            mirror = GitRepo(path)
        except ValueError as e:
            raise SyncError(f"corrupt local store: {e}") from e
        if not mirror.is_bare():
            raise SyncError(f"corrupt local store: {path} is not a bare repository")

        logger.info(f"FETCH {repo.name}: {repo.url}")
        try:
            before = mirror.list_refs()
            mirror.fetch_mirror(repo.url, timeout=self.timeout, cancel=self.cancel)
            after = mirror.list_refs()
            # Recorded only once the fetch succeeded.
            mirror.set_remote_url(repo.url)
            self._finish(repo, mirror)
        except (GitCommandError, TimeoutError, InterruptedError, OSError) as e:
            raise SyncError(f"fetch of {repo.url} failed: {e}") from e
        return before != after


def stale_after(timeout: float | None) -> float:
    """Returns the age at which a temporary clone can no longer be in progress.

    A clone is killed once `timeout` passes, so anything older than the
    timeout plus a grace period was abandoned by a crashed process.
    """
    if not timeout:
        return STALE_CLONE_AGE
    return timeout + STALE_CLONE_GRACE


def cleanup_stale(mirror_dir: Path, max_age: float = STALE_CLONE_AGE) -> list[Path]:
    """Removes temporary clone directories left behind by a crashed process.

    Other processes may be cloning into the same directory, so only
    temporary clones older than `max_age` seconds are removed.

    Args:
        mirror_dir (Path): The directory holding the mirrors.
        max_age (float): Minimum age, by modification time, of a removed clone.

    Returns:
        list[Path]: The directories that were removed.
    """
    if not mirror_dir.is_dir():
        return []
    now = time.time()
    removed = []
    for entry in mirror_dir.glob(f".*{TEMP_CLONE_SUFFIX}"):
        try:
            if not entry.is_dir():
                continue
            age = now - entry.stat().st_mtime
        except OSError:
            continue
        if age <= max_age:
            logger.debug(f"CLEANUP: Keeping recent clone {entry} ({age:.0f}s old)")
            continue
        logger.warning(f"CLEANUP: Removing stale clone {entry} ({age / 3600:.1f}h old)")
        shutil.rmtree(entry, ignore_errors=True)
        removed.append(entry)
    return removed
