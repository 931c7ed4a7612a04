"""Exception hierarchy shared by the sync engine and the browsing layer.

Every error raised on purpose by gitit derives from `GititError`, so the
presentation layer can catch one type and map the subclasses to its own
responses (for an HTTP front end: `QueryError` and most `ObjectStoreError`
subclasses are "not found", `CorruptObject` is a server error).
"""


class GititError(Exception):
    """Base class for all gitit errors."""


class ConfigError(GititError):
    """A configuration file or a single repository entry is invalid."""


class GitCommandError(GititError):
    """A git subprocess exited with a non-zero status.

    Attributes:
        args_list (list[str]): The git arguments that were executed.
        stderr (str): The captured standard error of the command.
    """

    def __init__(self, args_list: list[str], stderr: str):
        self.args_list = args_list
        self.stderr = stderr.strip()
        super().__init__(f"git {' '.join(args_list)}: {self.stderr or 'failed'}")


class SyncError(GititError):
    """Cloning or fetching a repository failed; the mirror kept its prior state."""


class ObjectStoreError(GititError):
    """Base class for failures reading a mirrored object store."""


class RefNotFound(ObjectStoreError):
    """A branch, tag or hash did not resolve to a commit."""


class ObjectNotFound(ObjectStoreError):
    """An object is absent or has a different type than requested."""


class CorruptObject(ObjectStoreError):
    """An object exists but its encoding is malformed."""


class PathNotFound(ObjectStoreError):
    """A path segment does not exist in the tree being walked."""


class NotADirectory(ObjectStoreError):
    """A path expected to name a tree names something else."""


class NotAFile(ObjectStoreError):
    """A path expected to name a blob names a tree or a submodule."""


class QueryError(GititError):
    """Base class for failures locating the repository a query targets."""


class RepoNotFound(QueryError):
    """No repository with the requested name is configured."""


class RepoNotSynced(QueryError):
    """The repository is configured but has no mirror on disk yet."""
