"""Read-only browsing queries over the mirrored repositories.

This is the contract the presentation layer consumes: every function takes
repository names, refs and slash-separated paths, and returns plain
dataclasses or raises a typed `GititError`. Nothing here writes to a mirror
or triggers a sync, even when an object turns out to be corrupt.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from .constants import APP_NAME, DEFAULT_LOG_LIMIT
from .diff import Change, DiffStat, diff_stat, diff_trees, render_patch
from .errors import NotADirectory, NotAFile, RepoNotSynced
from .objects import CommitRef, EntryMode, TreeEntry, is_binary
from .registry import MirrorState, Registry
from .store import ObjectStore

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class DirectoryListing:
    repo: str
    ref: str
    commit: str
    path: str
    entries: list[TreeEntry]


@dataclass(frozen=True)
class FileContent:
    """A blob at a path, with the metadata callers need to render it.

    Attributes:
        size (int): Length of `data` in bytes; truncation is up to the caller.
    """

    repo: str
    ref: str
    commit: str
    path: str
    oid: str
    mode: EntryMode
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def is_binary(self) -> bool:
        return is_binary(self.data)


@dataclass(frozen=True)
class CommitDetail:
    """A commit with its changes against its first parent.

    Attributes:
        stat (DiffStat): Line counts over `changes`; binary files count as zero.
    """

    commit: CommitRef
    changes: list[Change]
    stat: DiffStat


@dataclass(frozen=True)
class RepoSummary:
    name: str
    title: str
    url: str
    synced: bool


def split_path(path: str) -> list[str]:
    """Splits a slash-separated path, ignoring empty segments."""
    return [segment for segment in path.split("/") if segment]


class BrowseService:
    """Answers browsing queries for the repositories in a registry.

    Attributes:
        registry (Registry): Where repositories and mirror paths are looked up.
        open_store (Callable[[Path], ObjectStore]): Opens a mirror for reading.
    """

    def __init__(
        self,
        registry: Registry,
        open_store: Callable[[Path], ObjectStore] = ObjectStore.open,
    ):
        self.registry = registry
        self.open_store = open_store

    def _store(self, repo: str) -> ObjectStore:
        state = self.registry.get(repo)
        if not state.present:
            raise RepoNotSynced(f"repository {repo!r} has not been synced yet")
        logger.debug(f"QUERY {repo}: reading {state.local_path}")
        return self.open_store(state.local_path)

    def _lookup(
        self, repo: str, ref: str, path: str
    ) -> tuple[ObjectStore, str, TreeEntry]:
        store = self._store(repo)
        commit_id = store.resolve_ref(ref)
        commit = store.read_commit(commit_id)
        entry = store.resolve_path(commit.tree, split_path(path))
        return store, commit_id, entry

    @staticmethod
    def _file(
        store: ObjectStore,
        repo: str,
        ref: str,
        commit_id: str,
        path: str,
        entry: TreeEntry,
    ) -> FileContent:
        if not entry.is_blob:
            kind = "a submodule" if entry.mode is EntryMode.SUBMODULE else "not a file"
            raise NotAFile(f"'{path or '/'}' is {kind}")
        return FileContent(
            repo=repo,
            ref=ref,
            commit=commit_id,
            path=path,
            oid=entry.oid,
            mode=entry.mode,
            data=store.read_blob(entry.oid),
        )

    def list_repos(self) -> list[RepoSummary]:
        """Lists the configured repositories, in configuration order."""
        return [
            RepoSummary(
                name=s.name, title=s.repo.title, url=s.repo.url, synced=s.present
            )
            for s in self.registry.list()
        ]

    def mirror_status(self, repo: str) -> MirrorState:
        return self.registry.get(repo)

    def browse(self, repo: str, ref: str, path: str) -> DirectoryListing | FileContent:
        """Returns a directory listing or a file, depending on what `path` names.

        Raises:
            RepoNotFound, RepoNotSynced: If the repository cannot be queried.
            RefNotFound, PathNotFound, NotADirectory: If the ref or path is bad.
            NotAFile: If the path names a submodule.
        """
        store, commit_id, entry = self._lookup(repo, ref, path)
        clean = "/".join(split_path(path))
        if entry.is_dir:
            return DirectoryListing(
                repo=repo,
                ref=ref,
                commit=commit_id,
                path=clean,
                entries=store.read_tree(entry.oid),
            )
        return self._file(store, repo, ref, commit_id, clean, entry)

    def list_directory(self, repo: str, ref: str, path: str = "") -> DirectoryListing:
        result = self.browse(repo, ref, path)
        if not isinstance(result, DirectoryListing):
            raise NotADirectory(f"'{result.path}' is not a directory")
        return result

    def read_file(self, repo: str, ref: str, path: str) -> FileContent:
        store, commit_id, entry = self._lookup(repo, ref, path)
        clean = "/".join(split_path(path))
        return self._file(store, repo, ref, commit_id, clean, entry)

    def commit_log(
        self,
        repo: str,
        ref: str = "HEAD",
        limit: int = DEFAULT_LOG_LIMIT,
        first_parent: bool = True,
    ) -> list[CommitRef]:
        """Returns up to `limit` commits reachable from `ref`, newest first."""
        store = self._store(repo)
        start = store.resolve_ref(ref)
        return list(store.history(start, limit=limit, first_parent=first_parent))

    def show_commit(self, repo: str, ref: str = "HEAD") -> CommitDetail:
        """Returns a commit and its changes against its first parent.

        A root commit is compared against the empty tree.
        """
        store = self._store(repo)
        commit = store.read_commit(store.resolve_ref(ref))
        parent_tree = (
            store.read_commit(commit.parents[0]).tree if commit.parents else None
        )
        changes = diff_trees(store, parent_tree, commit.tree)
        return CommitDetail(
            commit=commit, changes=changes, stat=diff_stat(store, changes)
        )

    def diff(self, repo: str, commit_a: str, commit_b: str) -> list[Change]:
        """Returns the paths that differ between two commits, sorted by path.

        Changes are labelled from `commit_a` to `commit_b`: a path only in
        `commit_b` is added.
        """
        store = self._store(repo)
        tree_a = store.read_commit(store.resolve_ref(commit_a)).tree
        tree_b = store.read_commit(store.resolve_ref(commit_b)).tree
        return diff_trees(store, tree_a, tree_b)

    def patch(self, repo: str, commit_a: str, commit_b: str) -> str:
        """Returns the unified text diff between two commits."""
        store = self._store(repo)
        tree_a = store.read_commit(store.resolve_ref(commit_a)).tree
        tree_b = store.read_commit(store.resolve_ref(commit_b)).tree
        return render_patch(store, diff_trees(store, tree_a, tree_b))
