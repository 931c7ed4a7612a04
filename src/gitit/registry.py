import logging
import threading
import time
from collections.abc import Iterable
from dataclasses import dataclass, replace
from pathlib import Path

from .config import Config, RepoConfig, validate_repo_name
from .constants import APP_NAME, MIRROR_SUFFIX
from .errors import RepoNotFound
from .sync import SyncResult, SyncStatus

logger = logging.getLogger(APP_NAME)


def mirror_path(mirror_dir: Path, name: str) -> Path:
    """Derives the mirror directory for a repository name.

    The name is validated again here so that no caller can build a path
    outside `mirror_dir` from an unchecked name.

    Raises:
        ConfigError: If the name is not a valid repository name.
    """
    return mirror_dir / f"{validate_repo_name(name)}{MIRROR_SUFFIX}"


@dataclass
class MirrorState:
    """Runtime state of one mirrored repository.

    Attributes:
        repo (RepoConfig): The configuration entry.
        local_path (Path): Where the bare mirror lives (or will live).
        last_sync_time (float | None): Unix time the last sync finished.
        last_sync_result (SyncResult | None): Outcome of the last sync.
        sync_in_progress (bool): Whether a sync currently holds the claim.
    """

    repo: RepoConfig
    local_path: Path
    last_sync_time: float | None = None
    last_sync_result: SyncResult | None = None
    sync_in_progress: bool = False

    @property
    def name(self) -> str:
        return self.repo.name

    @property
    def present(self) -> bool:
        """Whether a mirror exists on disk (clones only appear when complete)."""
        return self.local_path.is_dir()

    @property
    def status(self) -> str:
        if self.sync_in_progress:
            return "syncing"
        if self.last_sync_result is None:
            return "unknown"
        return self.last_sync_result.status.value


class Registry:
    """The single source of truth for which repositories exist and their state.

    All mutations happen under one lock; readers receive copies, so a snapshot
    never changes under them.
    """

    def __init__(self, repos: Iterable[RepoConfig], mirror_dir: Path):
        self.mirror_dir = mirror_dir
        self._lock = threading.Lock()
        self._states: dict[str, MirrorState] = {}
        for repo in repos:
            self._states[repo.name] = MirrorState(
                repo=repo, local_path=mirror_path(mirror_dir, repo.name)
            )

    @classmethod
    def from_config(cls, config: Config) -> "Registry":
        return cls(config.repos, config.server.mirror_dir)

    def _state(self, name: str) -> MirrorState:
        try:
            return self._states[name]
        except KeyError:
            raise RepoNotFound(f"repository {name!r} not found") from None

    def names(self) -> list[str]:
        return list(self._states)

    def get(self, name: str) -> MirrorState:
        """Returns a snapshot of one repository's state.

        Raises:
            RepoNotFound: If no repository has that name.
        """
        with self._lock:
            return replace(self._state(name))

    def list(self) -> list[MirrorState]:
        """Returns snapshots of every repository, in configuration order."""
        with self._lock:
            return [replace(s) for s in self._states.values()]

    def begin_sync(self, name: str) -> bool:
        """Atomically claims the sync slot for a repository.

        Returns:
            bool: True if the caller now owns the slot, False if a sync for
                  this repository is already running.

        Raises:
            RepoNotFound: If no repository has that name.
        """
        with self._lock:
            state = self._state(name)
            if state.sync_in_progress:
                return False
            state.sync_in_progress = True
            return True

    def complete_sync(self, name: str, result: SyncResult) -> None:
        """Releases the sync slot and records the outcome.

        Args:
            name (str): The repository name.
            result (SyncResult): The outcome; skipped results are ignored
                                 because they never held the slot.
        """
        if result.status is SyncStatus.SKIPPED:
            return
        with self._lock:
            state = self._state(name)
            if not state.sync_in_progress:
                logger.warning(f"complete_sync for {name} without a claim")
            state.sync_in_progress = False
            state.last_sync_result = result
            state.last_sync_time = time.time()
