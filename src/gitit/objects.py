"""Git object model and parsers for raw commit and tree encodings.

The parsers operate on the exact bytes stored in the object database (the
content after the `<type> <size>\\0` header), so any backend that can hand
out raw objects can feed the browsing layer.
"""

import codecs
import datetime
import re
from dataclasses import dataclass
from enum import Enum

from .constants import BINARY_SNIFF_BYTES, OID_RE
from .errors import CorruptObject

_SIGNATURE_RE = re.compile(rb"^(.*?) ?<([^<>]*)> (-?\d+) ([+-])(\d{2})(\d{2})$")


class EntryMode(Enum):
    """The kind of object a tree entry points at."""

    FILE = "file"
    EXECUTABLE = "executable"
    DIRECTORY = "directory"
    SYMLINK = "symlink"
    SUBMODULE = "submodule"

    @classmethod
    def from_octal(cls, raw: bytes) -> "EntryMode":
        """Maps a tree entry's octal mode to its kind.

        Raises:
            CorruptObject: If the mode is not one git writes.
        """
        if raw == b"40000":
            return cls.DIRECTORY
        if raw == b"100755":
            return cls.EXECUTABLE
        if raw == b"120000":
            return cls.SYMLINK
        if raw == b"160000":
            return cls.SUBMODULE
        # Old repositories carry group-writable modes such as 100664.
        if raw.startswith(b"100") and len(raw) == 6:
            return cls.FILE
        raise CorruptObject(f"unknown tree entry mode {raw!r}")

    @property
    def octal(self) -> str:
        return {
            EntryMode.FILE: "100644",
            EntryMode.EXECUTABLE: "100755",
            EntryMode.DIRECTORY: "40000",
            EntryMode.SYMLINK: "120000",
            EntryMode.SUBMODULE: "160000",
        }[self]


@dataclass(frozen=True)
class TreeEntry:
    """One entry of a tree object.

    Attributes:
        name (str): The entry name (undecodable bytes kept as surrogates).
        mode (EntryMode): What the entry points at.
        oid (str): The hash of the target object.
    """

    name: str
    mode: EntryMode
    oid: str

    @property
    def is_dir(self) -> bool:
        return self.mode is EntryMode.DIRECTORY

    @property
    def is_blob(self) -> bool:
        return self.mode in (EntryMode.FILE, EntryMode.EXECUTABLE, EntryMode.SYMLINK)

    @property
    def sort_key(self) -> bytes:
        return tree_sort_key(self.name, self.is_dir)


def tree_sort_key(name: str, is_dir: bool) -> bytes:
    """Returns the key git orders tree entries by.

    Names compare byte-wise, with directories compared as if their name
    ended in '/'. So 'foo.c' sorts before the directory 'foo', which sorts
    before 'foo0'.
    """
    raw = name.encode("utf-8", "surrogateescape")
    return raw + b"/" if is_dir else raw


@dataclass(frozen=True)
class Signature:
    """An author or committer line.

    Attributes:
        name (str): The person's name.
        email (str): The person's email address.
        time (int): Seconds since the epoch.
        offset (int): Timezone offset in minutes east of UTC.
    """

    name: str
    email: str
    time: int
    offset: int

    @property
    def when(self) -> datetime.datetime:
        tz = datetime.timezone(datetime.timedelta(minutes=self.offset))
        return datetime.datetime.fromtimestamp(self.time, tz)


@dataclass(frozen=True)
class CommitRef:
    """A parsed commit object.

    Attributes:
        id (str): The commit hash.
        tree (str): The hash of the root tree.
        parents (tuple[str, ...]): Parent hashes, first parent first.
        author (Signature): Who wrote the change.
        committer (Signature): Who recorded the commit.
        message (str): The full commit message.
    """

    id: str
    tree: str
    parents: tuple[str, ...]
    author: Signature
    committer: Signature
    message: str

    @property
    def timestamp(self) -> int:
        """The committer time, which orders history traversal."""
        return self.committer.time

    @property
    def short_id(self) -> str:
        return self.id[:7]

    @property
    def summary(self) -> str:
        return self.message.split("\n", 1)[0]

    @property
    def description(self) -> str:
        _, _, rest = self.message.partition("\n")
        return rest.strip("\n")


def _parse_signature(raw: bytes, encoding: str) -> Signature:
    match = _SIGNATURE_RE.match(raw)
    if not match:
        raise CorruptObject(f"malformed signature {raw!r}")
    name, email, ts, sign, hours, minutes = match.groups()
    offset = int(hours) * 60 + int(minutes)
    return Signature(
        name=name.decode(encoding, "replace"),
        email=email.decode(encoding, "replace"),
        time=int(ts),
        offset=-offset if sign == b"-" else offset,
    )


def _check_oid(value: bytes, what: str) -> str:
    oid = value.decode("ascii", "replace")
    if not OID_RE.match(oid):
        raise CorruptObject(f"malformed {what} id {value!r}")
    return oid


def _commit_encoding(headers: list[tuple[bytes, bytes]]) -> str:
    for key, value in headers:
        if key == b"encoding":
            try:
                return codecs.lookup(value.decode("ascii")).name
            except (LookupError, UnicodeDecodeError):
                break
    return "utf-8"


def parse_commit(oid: str, raw: bytes) -> CommitRef:
    """Parses the raw content of a commit object.

    Args:
        oid (str): The commit's hash.
        raw (bytes): The object content.

    Returns:
        CommitRef: The parsed commit.

    Raises:
        CorruptObject: If a required header is missing or malformed.
    """
    header_block, sep, body = raw.partition(b"\n\n")
    if not sep:
        header_block = header_block.rstrip(b"\n")

    headers: list[tuple[bytes, bytes]] = []
    for line in header_block.split(b"\n"):
        if line.startswith(b" ") and headers:
            # Continuation of a multi-line header (gpgsig, mergetag).
            key, value = headers[-1]
            headers[-1] = (key, value + b"\n" + line[1:])
            continue
        key, sep, value = line.partition(b" ")
        if not sep:
            raise CorruptObject(f"malformed commit header in {oid}: {line!r}")
        headers.append((key, value))

    encoding = _commit_encoding(headers)
    tree = None
    parents = []
    author = committer = None
    for key, value in headers:
        if key == b"tree":
            if tree is not None:
                raise CorruptObject(f"commit {oid} has more than one tree")
            tree = _check_oid(value, "tree")
        elif key == b"parent":
            parents.append(_check_oid(value, "parent"))
        elif key == b"author":
            author = _parse_signature(value, encoding)
        elif key == b"committer":
            committer = _parse_signature(value, encoding)

    if tree is None or author is None or committer is None:
        raise CorruptObject(f"commit {oid} is missing a required header")

    return CommitRef(
        id=oid,
        tree=tree,
        parents=tuple(parents),
        author=author,
        committer=committer,
        message=body.decode(encoding, "replace"),
    )


def parse_tree(raw: bytes, hash_size: int = 20) -> list[TreeEntry]:
    """Parses the raw content of a tree object.

    Each entry is encoded as `<octal mode> <name>\\0<binary hash>`.

    Args:
        raw (bytes): The object content.
        hash_size (int): Binary hash length (20 for SHA-1, 32 for SHA-256).

    Returns:
        list[TreeEntry]: The entries, in git tree order.

    Raises:
        CorruptObject: If an entry is truncated or malformed.
    """
    entries = []
    pos = 0
    while pos < len(raw):
        space = raw.find(b" ", pos)
        nul = raw.find(b"\0", space + 1)
        if space < 0 or nul < 0 or nul + 1 + hash_size > len(raw):
            raise CorruptObject("truncated tree entry")

        mode = EntryMode.from_octal(raw[pos:space])
        name = raw[space + 1 : nul]
        if not name or b"/" in name:
            raise CorruptObject(f"invalid tree entry name {name!r}")

        oid = raw[nul + 1 : nul + 1 + hash_size].hex()
        entries.append(
            TreeEntry(name=name.decode("utf-8", "surrogateescape"), mode=mode, oid=oid)
        )
        pos = nul + 1 + hash_size

    entries.sort(key=lambda e: e.sort_key)
    return entries


def is_binary(data: bytes) -> bool:
    """Applies git's heuristic: a NUL in the first 8000 bytes means binary."""
    return b"\0" in data[:BINARY_SNIFF_BYTES]
