import logging
import os
import subprocess
import threading
import time
from pathlib import Path

from .constants import APP_NAME, MIRROR_REFSPEC, NETWORK_ENV
from .errors import GitCommandError

logger = logging.getLogger(APP_NAME)

POLL_INTERVAL = 0.2
"""float: Seconds between cancellation checks while a network command runs."""


def _communicate(
    cmd: list[str],
    cwd: Path | None,
    timeout: float | None,
    cancel: threading.Event | None,
) -> str:
    """Runs a long git command that can be timed out or cancelled.

    The child process is killed as soon as the deadline passes or the cancel
    event is set, so a stalled network transfer never outlives its caller.

    Args:
        cmd (list[str]): The git arguments (without the leading 'git').
        cwd (Path | None): Working directory for the command.
        timeout (float | None): Seconds before the command is killed.
        cancel (threading.Event | None): Event that aborts the command when set.

    Returns:
        str: The stripped stdout of the command.

    Raises:
        TimeoutError: If the deadline passed.
        InterruptedError: If the cancel event was set.
        GitCommandError: If git exited with a non-zero status.
    """
    if cancel is not None and cancel.is_set():
        raise InterruptedError(f"git {cmd[0]} cancelled")
    env = os.environ.copy()
    env.update(NETWORK_ENV)
    proc = subprocess.Popen(
        ["git", *cmd],
        cwd=cwd,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        env=env,
    )
    deadline = time.monotonic() + timeout if timeout else None

    while True:
        try:
            out, err = proc.communicate(timeout=POLL_INTERVAL)
            break
        except subprocess.TimeoutExpired:
            if cancel is not None and cancel.is_set():
                proc.kill()
                proc.communicate()
                raise InterruptedError(f"git {cmd[0]} cancelled")
            if deadline is not None and time.monotonic() > deadline:
                proc.kill()
                proc.communicate()
                raise TimeoutError(f"git {cmd[0]} timed out after {timeout}s")

    if proc.returncode != 0:
        raise GitCommandError(cmd, err or "")
    return out.strip()


class GitRepo:
    """A wrapper around the Git command-line interface for a bare mirror.

    Read commands run through `subprocess.run` and are independent of each
    other, so any number of threads may query the same mirror. Network
    commands go through `_communicate` and honour a timeout and a cancel event.

    Attributes:
        path (Path): The file system path to the bare repository.
    """

    def __init__(self, path: Path):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the bare repository directory.

        Raises:
            ValueError: If the path does not look like a bare repository.
        """
        self.path = path
        if not (self.path / "HEAD").is_file() or not (self.path / "objects").is_dir():
            raise ValueError(f"Not a bare git repository: {self.path}")

    @classmethod
    def clone_mirror(
        cls,
        url: str,
        dest: Path,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> "GitRepo":
        """Creates a bare mirror clone of `url` at `dest`.

        Args:
            url (str): The upstream URL.
            dest (Path): Target directory; must be absent or empty.
            timeout (float | None): Seconds before the clone is killed.
            cancel (threading.Event | None): Event that aborts the clone.

        Returns:
            GitRepo: The wrapper for the new mirror.
        """
        _communicate(
            ["clone", "--mirror", "--quiet", "--", url, str(dest)],
            None,
            timeout,
            cancel,
        )
        return cls(dest)

    def _run(self, args: list[str], env: dict | None = None) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            env (dict | None, optional): Environment variables to pass to the
                                         subprocess. Defaults to None.

        Returns:
            str: The stripped stdout of the command.

        Raises:
            GitCommandError: If the git command returns a non-zero exit code.
        """
        try:
            res = subprocess.run(
                ["git", *args],
                cwd=self.path,
                capture_output=True,
                text=True,
                check=True,
                env=env,
            )
            return res.stdout.strip()
        except subprocess.CalledProcessError as e:
            raise GitCommandError(args, e.stderr or "") from e

    def _run_raw(self, args: list[str], stdin: bytes | None = None) -> bytes:
        """Executes a Git command and returns its unmodified binary stdout."""
        try:
            res = subprocess.run(
                ["git", *args],
                cwd=self.path,
                input=stdin,
                capture_output=True,
                check=True,
            )
            return res.stdout
        except subprocess.CalledProcessError as e:
            stderr = e.stderr.decode("utf-8", "replace") if e.stderr else ""
            raise GitCommandError(args, stderr) from e

    def _run_network(
        self,
        args: list[str],
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> str:
        """Executes a network-bound Git command (fetch) in the repository."""
        return _communicate(args, self.path, timeout, cancel)

    def is_bare(self) -> bool:
        """Checks that git itself recognises the mirror as a bare repository."""
        try:
            return self._run(["rev-parse", "--is-bare-repository"]) == "true"
        except GitCommandError as e:
            logger.debug(f"Bare check failed for {self.path}: {e}")
            return False

    def rev_parse(self, rev: str) -> str | None:
        """Resolves a revision (tag, branch, short hash) to a full commit hash.

        Tags are peeled, so the result always names a commit.

        Args:
            rev (str): The revision to parse (e.g., 'HEAD', 'main', 'v1.0').

        Returns:
            str | None: The full hash, or None if the revision did not resolve.
        """
        try:
            return self._run(["rev-parse", "--verify", "--quiet", f"{rev}^{{commit}}"])
        except GitCommandError as e:
            logger.debug(f"rev-parse failed for '{rev}': {e}")
            return None

    def cat_file(self, oid: str) -> tuple[str, bytes] | None:
        """Reads one raw object from the object database.

        Args:
            oid (str): The full object id.

        Returns:
            tuple[str, bytes] | None: The object type and its raw content, or
                                      None if the object does not exist.

        Raises:
            GitCommandError: If git failed or answered with an unexpected header.
        """
        out = self._run_raw(["cat-file", "--batch"], stdin=f"{oid}\n".encode())
        header, _, rest = out.partition(b"\n")
        fields = header.decode("ascii", "replace").split()

        if len(fields) == 2 and fields[1] in ("missing", "ambiguous"):
            return None
        if len(fields) != 3 or not fields[2].isdigit():
            raise GitCommandError(["cat-file", "--batch"], f"bad header {header!r}")

        size = int(fields[2])
        if len(rest) < size:
            raise GitCommandError(["cat-file", "--batch"], f"short read for {oid}")
        return fields[1], rest[:size]

    def list_refs(self) -> dict[str, str]:
        """Returns every reference in the mirror mapped to its object id."""
        output = self._run(["for-each-ref", "--format=%(objectname) %(refname)"])
        refs = {}
        for line in output.splitlines():
            oid, _, name = line.partition(" ")
            refs[name] = oid
        return refs

    def set_remote_url(self, url: str, remote: str = "origin") -> None:
        """Points a remote at `url`, creating it with a mirror refspec if missing."""
        try:
            self._run(["remote", "set-url", remote, url])
        except GitCommandError:
            self._run(["remote", "add", "--mirror=fetch", remote, url])

    def fetch_mirror(
        self,
        url: str,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        """Fetches every upstream ref from `url`, pruning refs deleted upstream.

        The URL is passed on the command line with the mirror refspec, so the
        repository config is not touched. `--atomic` makes the ref updates a
        single transaction: an interrupted or failed fetch leaves every local
        ref at its previous value.
        """
        self._run_network(
            ["fetch", "--prune", "--atomic", "--quiet", url, MIRROR_REFSPEC],
            timeout=timeout,
            cancel=cancel,
        )

    def set_head(self, branch: str) -> None:
        """Points the mirror's HEAD at a local branch."""
        self._run(["symbolic-ref", "HEAD", f"refs/heads/{branch}"])

    def update_server_info(self) -> None:
        """Refreshes info/refs so the mirror can be served over dumb HTTP."""
        self._run(["update-server-info"])
