"""gitit: Mirror remote Git repositories and browse them read-only.

This package provides the sync engine that keeps bare mirrors up to date,
the registry and scheduler that coordinate syncs across repositories, and
the browsing layer that reads trees, blobs, history and diffs straight from
the mirrored object stores.
"""

from . import (
    browse,
    cli,
    config,
    constants,
    daemon,
    diff,
    errors,
    git_wrapper,
    objects,
    registry,
    scheduler,
    store,
    sync,
)

__all__ = [
    "browse",
    "cli",
    "config",
    "constants",
    "daemon",
    "diff",
    "errors",
    "git_wrapper",
    "objects",
    "registry",
    "scheduler",
    "store",
    "sync",
]
