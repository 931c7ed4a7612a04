import heapq
import itertools
import logging
from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Protocol

from .constants import APP_NAME, OID_RE
from .errors import (
    CorruptObject,
    GitCommandError,
    NotADirectory,
    ObjectNotFound,
    PathNotFound,
    RefNotFound,
)
from .git_wrapper import GitRepo
from .objects import CommitRef, EntryMode, TreeEntry, parse_commit, parse_tree

logger = logging.getLogger(APP_NAME)


class ObjectSource(Protocol):
    """Hash-keyed access to a content-addressed object database."""

    def read(self, oid: str) -> tuple[str, bytes] | None:
        """Returns the type tag and raw content of an object, or None if absent."""
        ...

    def resolve(self, ref: str) -> str | None:
        """Returns the commit a ref, tag or (short) hash points at, or None."""
        ...


def _is_safe_ref(ref: str) -> bool:
    """Rejects strings git could read as an option or that break batch input."""
    if not ref or ref.startswith("-"):
        return False
    return not any(c.isspace() or ord(c) < 32 or ord(c) == 127 for c in ref)


class GitObjectSource:
    """An `ObjectSource` reading a repository through the git CLI."""

    def __init__(self, repo: GitRepo):
        self.repo = repo

    def read(self, oid: str) -> tuple[str, bytes] | None:
        try:
            return self.repo.cat_file(oid)
        except GitCommandError as e:
            raise CorruptObject(f"cannot read {oid}: {e}") from e

    def resolve(self, ref: str) -> str | None:
        if not _is_safe_ref(ref):
            return None
        return self.repo.rev_parse(ref)


class ObjectStore:
    """Read-only structural queries over a mirrored object store.

    Every method is side-effect free; an `ObjectStore` holds no cursor or
    cache, so one instance may serve concurrent queries.

    Attributes:
        source (ObjectSource): The backend objects are read from.
    """

    def __init__(self, source: ObjectSource):
        self.source = source

    @classmethod
    def open(cls, path: Path) -> "ObjectStore":
        """Opens the bare repository at `path` through the git CLI.

        Raises:
            CorruptObject: If the directory is not a bare repository.
        """
        try:
            repo = GitRepo(path)
        except ValueError as e:
            raise CorruptObject(str(e)) from e
        return cls(GitObjectSource(repo))

    def _read(self, oid: str, expected: str) -> bytes:
        if not isinstance(oid, str) or not OID_RE.match(oid):
            raise ObjectNotFound(f"invalid object id {oid!r}")
        found = self.source.read(oid)
        if found is None:
            raise ObjectNotFound(f"object {oid} not found")
        kind, raw = found
        if kind != expected:
            raise ObjectNotFound(f"object {oid} is a {kind}, not a {expected}")
        return raw

    def resolve_ref(self, ref: str) -> str:
        """Resolves a branch, tag, 'HEAD' or short/full hash to a commit id.

        Raises:
            RefNotFound: If the ref does not resolve to a commit.
        """
        oid = self.source.resolve(ref)
        if oid is None:
            raise RefNotFound(f"ref {ref!r} not found")
        return oid

    def read_commit(self, oid: str) -> CommitRef:
        """Reads and parses a commit object.

        Raises:
            ObjectNotFound: If the object is absent or not a commit.
            CorruptObject: If the commit is malformed.
        """
        return parse_commit(oid, self._read(oid, "commit"))

    def read_tree(self, oid: str) -> list[TreeEntry]:
        """Reads a tree object's entries in git tree order.

        Raises:
            ObjectNotFound: If the object is absent or not a tree.
            CorruptObject: If the tree is malformed.
        """
        return parse_tree(self._read(oid, "tree"), hash_size=len(oid) // 2)

    def read_blob(self, oid: str) -> bytes:
        """Reads a blob's content. No size limit is applied."""
        return self._read(oid, "blob")

    def resolve_path(self, root_tree: str, path: Sequence[str]) -> TreeEntry:
        """Descends from `root_tree` one path segment at a time.

        Args:
            root_tree (str): The hash of the tree to start from.
            path (Sequence[str]): Path segments; empty for the root itself.

        Returns:
            TreeEntry: The entry the path names. The root is reported as a
                       directory entry with an empty name.

        Raises:
            PathNotFound: If a segment does not exist.
            NotADirectory: If a non-final segment is not a tree.
        """
        current = TreeEntry(name="", mode=EntryMode.DIRECTORY, oid=root_tree)
        walked: list[str] = []
        for segment in path:
            if not current.is_dir:
                raise NotADirectory(f"'{'/'.join(walked)}' is not a directory")
            match = next(
                (e for e in self.read_tree(current.oid) if e.name == segment), None
            )
            walked.append(segment)
            if match is None:
                raise PathNotFound(f"path '{'/'.join(walked)}' not found")
            current = match
        return current

    def walk_path(self, root_tree: str, path: Sequence[str]) -> str:
        """Returns the hash of the object `path` names below `root_tree`."""
        return self.resolve_path(root_tree, path).oid

    def history(
        self, start: str, limit: int | None = None, first_parent: bool = True
    ) -> Iterator[CommitRef]:
        """Lazily walks history from `start`, newest commit first.

        Commits are ordered by committer time through a priority queue, and a
        visited set ensures a commit reachable along several paths is yielded
        once. Each call starts a fresh traversal.

        Args:
            start (str): The commit to start from (included in the output).
            limit (int | None): Maximum number of commits to yield.
            first_parent (bool): Follow only first parents when True, every
                                 parent otherwise.

        Yields:
            CommitRef: The commits, in non-increasing timestamp order.
        """
        if limit is not None and limit <= 0:
            return

        order = itertools.count()
        seen = {start}
        head = self.read_commit(start)
        queue = [(-head.timestamp, next(order), head)]
        produced = 0

        while queue:
            _, _, commit = heapq.heappop(queue)
            yield commit
            produced += 1
            if limit is not None and produced >= limit:
                return

            parents = commit.parents[:1] if first_parent else commit.parents
            for parent_id in parents:
                if parent_id in seen:
                    continue
                seen.add(parent_id)
                parent = self.read_commit(parent_id)
                heapq.heappush(queue, (-parent.timestamp, next(order), parent))
