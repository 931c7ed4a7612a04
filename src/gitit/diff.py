import difflib
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum

from .objects import EntryMode, TreeEntry, is_binary
from .store import ObjectStore


class ChangeKind(Enum):
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


@dataclass(frozen=True)
class Change:
    """A path that differs between two trees.

    Attributes:
        path (str): Slash-separated path from the repository root.
        kind (ChangeKind): Whether the path was added, removed or modified.
        old (TreeEntry | None): The entry on the old side, None when added.
        new (TreeEntry | None): The entry on the new side, None when removed.
    """

    path: str
    kind: ChangeKind
    old: TreeEntry | None = None
    new: TreeEntry | None = None

    def reversed(self) -> "Change":
        """The same change seen from the other side."""
        kind = {
            ChangeKind.ADDED: ChangeKind.REMOVED,
            ChangeKind.REMOVED: ChangeKind.ADDED,
        }.get(self.kind, self.kind)
        return Change(path=self.path, kind=kind, old=self.new, new=self.old)


def _walk(
    store: ObjectStore, old_tree: str | None, new_tree: str | None, prefix: str
) -> Iterator[Change]:
    if old_tree == new_tree:
        return
    old = {e.name: e for e in store.read_tree(old_tree)} if old_tree else {}
    new = {e.name: e for e in store.read_tree(new_tree)} if new_tree else {}

    for name in old.keys() | new.keys():
        o, n = old.get(name), new.get(name)
        if o is not None and n is not None and o.oid == n.oid and o.mode == n.mode:
            continue
        path = prefix + name
        o_dir = o is not None and o.is_dir
        n_dir = n is not None and n.is_dir

        if o_dir or n_dir:
            # A file replaced by a directory (or the reverse) is one removal
            # plus one subtree of additions.
            yield from _walk(
                store, o.oid if o_dir else None, n.oid if n_dir else None, path + "/"
            )
            if o is not None and not o_dir:
                yield Change(path, ChangeKind.REMOVED, old=o)
            if n is not None and not n_dir:
                yield Change(path, ChangeKind.ADDED, new=n)
        elif o is None:
            yield Change(path, ChangeKind.ADDED, new=n)
        elif n is None:
            yield Change(path, ChangeKind.REMOVED, old=o)
        else:
            yield Change(path, ChangeKind.MODIFIED, old=o, new=n)


def diff_trees(
    store: ObjectStore, old_tree: str | None, new_tree: str | None
) -> list[Change]:
    """Compares two trees recursively.

    Subtrees with identical hashes on both sides are skipped without being
    read, so the cost is proportional to the size of the change rather than
    the size of the repository.

    Args:
        store (ObjectStore): The store both trees live in.
        old_tree (str | None): The old root tree; None for the empty tree.
        new_tree (str | None): The new root tree; None for the empty tree.

    Returns:
        list[Change]: One record per differing path, sorted by path.
    """
    return sorted(_walk(store, old_tree, new_tree, ""), key=lambda c: c.path)


@dataclass(frozen=True)
class DiffStat:
    """Line counts for a set of changes.

    Attributes:
        added (int): Lines added across all text changes.
        removed (int): Lines removed across all text changes.
        summary (str): One character per hunk line (' ', '+' or '-'), in
                       patch order, for rendering a change bar.
    """

    added: int = 0
    removed: int = 0
    summary: str = ""


def _blob_lines(store: ObjectStore, entry: TreeEntry | None) -> list[str] | None:
    """Returns the text lines of a blob entry, or None if it is binary."""
    if entry is None:
        return []
    if entry.mode is EntryMode.SUBMODULE:
        return [f"Subproject commit {entry.oid}\n"]
    data = store.read_blob(entry.oid)
    if is_binary(data):
        return None
    return data.decode("utf-8", "replace").splitlines(keepends=True)


def _hunks(store: ObjectStore, change: Change) -> list[str] | None:
    """Returns the unified diff of one change, or None if either side is binary."""
    old_lines = _blob_lines(store, change.old)
    new_lines = _blob_lines(store, change.new)
    if old_lines is None or new_lines is None:
        return None
    a_path = f"a/{change.path}" if change.old else "/dev/null"
    b_path = f"b/{change.path}" if change.new else "/dev/null"
    return list(difflib.unified_diff(old_lines, new_lines, a_path, b_path))


def render_patch(store: ObjectStore, changes: list[Change]) -> str:
    """Renders changes as a unified diff in the style of `git diff`."""
    out = []
    for change in changes:
        out.append(f"diff --git a/{change.path} b/{change.path}\n")
        if change.kind is ChangeKind.ADDED:
            out.append(f"new file mode {change.new.mode.octal}\n")
        elif change.kind is ChangeKind.REMOVED:
            out.append(f"deleted file mode {change.old.mode.octal}\n")
        elif change.old.mode != change.new.mode:
            out.append(f"old mode {change.old.mode.octal}\n")
            out.append(f"new mode {change.new.mode.octal}\n")

        lines = _hunks(store, change)
        if lines is None:
            a_path = f"a/{change.path}" if change.old else "/dev/null"
            b_path = f"b/{change.path}" if change.new else "/dev/null"
            out.append(f"Binary files {a_path} and {b_path} differ\n")
            continue

        for line in lines:
            out.append(line if line.endswith("\n") else line + "\n\\ No newline at end of file\n")
    return "".join(out)


def diff_stat(store: ObjectStore, changes: list[Change]) -> DiffStat:
    """Counts added and removed lines, skipping binary blobs."""
    added = removed = 0
    summary = []
    for change in changes:
        lines = _hunks(store, change)
        if not lines:
            continue
        # The first two lines are the ---/+++ file header.
        for line in lines[2:]:
            origin = line[:1]
            if origin == "+":
                added += 1
            elif origin == "-":
                removed += 1
            elif origin != " ":
                continue
            summary.append(origin)
    return DiffStat(added=added, removed=removed, summary="".join(summary))
