"""Shared fixtures: an in-memory object database and real upstream repositories."""

import hashlib
import os
import shutil
import subprocess
from pathlib import Path

import pytest

from gitit.objects import tree_sort_key
from gitit.store import ObjectStore

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")

GIT_ENV = {
    "GIT_AUTHOR_NAME": "Ada Lovelace",
    "GIT_AUTHOR_EMAIL": "ada@example.com",
    "GIT_COMMITTER_NAME": "Ada Lovelace",
    "GIT_COMMITTER_EMAIL": "ada@example.com",
    "GIT_CONFIG_NOSYSTEM": "1",
    "GIT_CONFIG_GLOBAL": os.devnull,
}


class FakeSource:
    """An `ObjectSource` holding real git object encodings in a dict.

    Attributes:
        objects (dict[str, tuple[str, bytes]]): Objects keyed by hash.
        refs (dict[str, str]): Full ref names mapped to commit hashes.
        reads (list[str]): Every hash read, in order, for access assertions.
    """

    def __init__(self) -> None:
        self.objects: dict[str, tuple[str, bytes]] = {}
        self.refs: dict[str, str] = {}
        self.reads: list[str] = []

    def add(self, kind: str, raw: bytes) -> str:
        oid = hashlib.sha1(f"{kind} {len(raw)}".encode() + b"\0" + raw).hexdigest()
        self.objects[oid] = (kind, raw)
        return oid

    def blob(self, data: bytes | str) -> str:
        return self.add("blob", data.encode() if isinstance(data, str) else data)

    def tree(self, entries: dict[str, tuple[str, str]]) -> str:
        """Builds a tree from `{name: (octal mode, oid)}`."""
        items = sorted(
            entries.items(), key=lambda kv: tree_sort_key(kv[0], kv[1][0] == "40000")
        )
        raw = b"".join(
            f"{mode} {name}".encode() + b"\0" + bytes.fromhex(oid)
            for name, (mode, oid) in items
        )
        return self.add("tree", raw)

    def files(self, mapping: dict[str, bytes | str]) -> str:
        """Builds nested trees from `{"dir/file.txt": content}`."""
        nested: dict[str, dict | bytes | str] = {}
        for path, content in mapping.items():
            *dirs, leaf = path.split("/")
            node = nested
            for d in dirs:
                node = node.setdefault(d, {})
            node[leaf] = content
        return self._build(nested)

    def _build(self, node: dict) -> str:
        entries = {}
        for name, value in node.items():
            if isinstance(value, dict):
                entries[name] = ("40000", self._build(value))
            else:
                entries[name] = ("100644", self.blob(value))
        return self.tree(entries)

    def commit(
        self,
        tree: str,
        parents: tuple[str, ...] | list[str] = (),
        message: str = "change",
        time: int = 1_600_000_000,
    ) -> str:
        lines = [f"tree {tree}"]
        lines += [f"parent {p}" for p in parents]
        lines.append(f"author Ada Lovelace <ada@example.com> {time} +0100")
        lines.append(f"committer Ada Lovelace <ada@example.com> {time} +0100")
        raw = ("\n".join(lines) + "\n\n" + message + "\n").encode()
        return self.add("commit", raw)

    def read(self, oid: str) -> tuple[str, bytes] | None:
        self.reads.append(oid)
        return self.objects.get(oid)

    def resolve(self, ref: str) -> str | None:
        for candidate in (ref, f"refs/heads/{ref}", f"refs/tags/{ref}"):
            if candidate in self.refs:
                return self.refs[candidate]
        if len(ref) >= 4:
            matches = [
                oid
                for oid, (kind, _) in self.objects.items()
                if kind == "commit" and oid.startswith(ref)
            ]
            if len(matches) == 1:
                return matches[0]
        return None


@pytest.fixture
def fake() -> FakeSource:
    return FakeSource()


@pytest.fixture
def store(fake: FakeSource) -> ObjectStore:
    return ObjectStore(fake)


def git(cwd: Path, *args: str, env: dict | None = None) -> str:
    """Runs git in `cwd` with a fixed identity and no user configuration."""
    full_env = {**os.environ, **GIT_ENV, **(env or {})}
    res = subprocess.run(
        ["git", *args], cwd=cwd, env=full_env, check=True, capture_output=True, text=True
    )
    return res.stdout.strip()


class Upstream:
    """A non-bare repository standing in for a remote."""

    def __init__(self, path: Path) -> None:
        self.path = path
        path.mkdir(parents=True)
        git(path, "init", "-q")
        git(path, "symbolic-ref", "HEAD", "refs/heads/main")
        self.clock = 1_600_000_000

    @property
    def url(self) -> str:
        return str(self.path)

    def commit(self, files: dict[str, str | None], message: str = "change") -> str:
        """Writes (or deletes, for None) files and commits them."""
        for name, content in files.items():
            target = self.path / name
            if content is None:
                git(self.path, "rm", "-q", name)
            else:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(content)
        git(self.path, "add", "-A")
        self.clock += 60
        date = f"{self.clock} +0000"
        git(
            self.path,
            "commit",
            "-q",
            "-m",
            message,
            env={"GIT_AUTHOR_DATE": date, "GIT_COMMITTER_DATE": date},
        )
        return self.head()

    def head(self, ref: str = "HEAD") -> str:
        return git(self.path, "rev-parse", ref)


@pytest.fixture
def upstream(tmp_path: Path) -> Upstream:
    return Upstream(tmp_path / "upstream")
