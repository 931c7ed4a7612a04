import logging
import re
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_MIRROR_DIR,
    DEFAULT_SYNC_INTERVAL,
    DEFAULT_SYNC_TIMEOUT,
    DEFAULT_WORKERS,
    MIRROR_SUFFIX,
    REPO_NAME_RE,
)
from .errors import ConfigError

logger = logging.getLogger(APP_NAME)


def parse_time(value: int | str) -> int:
    """Converts human-readable time strings (e.g., '1hr', '30m') to seconds."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid time format '{value}'")
    if isinstance(value, int):
        if value < 0:
            raise ValueError(f"Invalid time format '{value}'")
        return value
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(s|sec|m|min|h|hr)s?$", str(value).strip().lower()
    )
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {"s": 1, "sec": 1, "m": 60, "min": 60, "h": 3600, "hr": 3600}
    return int(num * multiplier[unit])


def validate_repo_name(name: str) -> str:
    """Checks that a repository name is safe to use as a directory name.

    Args:
        name (str): The configured repository name.

    Returns:
        str: The name, unchanged.

    Raises:
        ConfigError: If the name could escape the mirror directory or collide
                     with the mirror naming scheme.
    """
    if not isinstance(name, str) or not REPO_NAME_RE.match(name):
        raise ConfigError(f"Invalid repository name {name!r}")
    if ".." in name or name.endswith(MIRROR_SUFFIX):
        raise ConfigError(f"Invalid repository name {name!r}")
    return name


@dataclass(frozen=True)
class RepoConfig:
    """A repository to mirror.

    Attributes:
        name (str): Unique key, also the stem of the mirror directory.
        url (str): The upstream URL passed to git.
        title (str): Human-readable title for the repository index.
        head (str | None): Branch the mirror's HEAD is pointed at after each
                           sync. None keeps whatever HEAD upstream advertises.
    """

    name: str
    url: str
    title: str
    head: str | None = None

    @classmethod
    def from_dict(cls, name: str, data: Any) -> "RepoConfig":
        """Builds a validated entry from a `[repos.<name>]` TOML table.

        Raises:
            ConfigError: If the entry is malformed.
        """
        validate_repo_name(name)
        if not isinstance(data, dict):
            raise ConfigError(f"[repos.{name}] must be a table")

        unknown = set(data) - {"url", "title", "head"}
        if unknown:
            logger.warning(
                f"Unknown config keys in [repos.{name}]: {', '.join(sorted(unknown))}. Ignoring."
            )

        url = data.get("url")
        if not isinstance(url, str) or not url.strip():
            raise ConfigError(f"[repos.{name}] is missing a url")
        if url.startswith("-"):
            raise ConfigError(f"[repos.{name}] has an invalid url {url!r}")

        title = data.get("title", name)
        if not isinstance(title, str):
            raise ConfigError(f"[repos.{name}].title must be a string")

        head = data.get("head")
        if head is not None and (
            not isinstance(head, str) or not head or head.startswith("-") or ".." in head
        ):
            raise ConfigError(f"[repos.{name}] has an invalid head {head!r}")

        return cls(name=name, url=url.strip(), title=title, head=head)


@dataclass
class ServerConfig:
    """Server and sync settings.

    Attributes:
        address (str): Listen address for the (external) web front end.
        mirror_dir (Path): Directory holding one bare mirror per repository.
        workers (int): Maximum number of repositories synced in parallel.
        sync_interval (int): Seconds between periodic syncs; 0 disables them.
        sync_timeout (int): Seconds a single clone or fetch may take.
    """

    address: str = "127.0.0.1:8080"
    mirror_dir: Path = DEFAULT_MIRROR_DIR
    workers: int = DEFAULT_WORKERS
    sync_interval: int = DEFAULT_SYNC_INTERVAL
    sync_timeout: int = DEFAULT_SYNC_TIMEOUT


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        server (ServerConfig): Server and sync settings.
        repos (list[RepoConfig]): Valid repository entries, in file order.
        errors (list[ConfigError]): Entries that were rejected while loading.
    """

    server: ServerConfig = field(default_factory=ServerConfig)
    repos: list[RepoConfig] = field(default_factory=list)
    errors: list[ConfigError] = field(default_factory=list)

    @classmethod
    def load(cls, path: Path = CONFIG_FILE) -> "Config":
        """Loads and validates the configuration file.

        A broken repository entry only disables that entry; it is logged and
        recorded in `errors`.

        Args:
            path (Path): Path to the TOML file.

        Returns:
            Config: The validated configuration.

        Raises:
            ConfigError: If the file is missing or is not valid TOML.
        """
        if not path.exists():
            raise ConfigError(f"Missing config file: {path}")

        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Config syntax error in {path}: {e}") from e

        instance = cls.from_dict(data)

        # Relative mirror directories are anchored at the config file.
        if not instance.server.mirror_dir.is_absolute():
            instance.server.mirror_dir = path.parent / instance.server.mirror_dir
        return instance

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        """Builds a configuration from already-parsed TOML data."""
        instance = cls()

        unknown = set(data) - {"server", "repos"}
        if unknown:
            logger.warning(
                f"Unknown config sections: {', '.join(sorted(unknown))}. Ignoring."
            )

        if "server" in data:
            instance.server = cls._update_server(instance.server, data["server"])

        seen: set[str] = set()
        for name, entry in data.get("repos", {}).items():
            try:
                repo = RepoConfig.from_dict(name, entry)
                # TOML tables cannot repeat, but names may differ only in case.
                if name.lower() in seen:
                    raise ConfigError(f"Duplicate repository name {name!r}")
            except ConfigError as e:
                logger.error(f"CONFIG ERROR: {e}. Skipping entry.")
                instance.errors.append(e)
                continue
            seen.add(name.lower())
            instance.repos.append(repo)

        return instance

    @staticmethod
    def _update_server(instance: ServerConfig, updates: Any) -> ServerConfig:
        """Updates the server dataclass, warning on invalid keys and values."""
        if not isinstance(updates, dict):
            logger.warning("Config error in [server]: not a table. Using defaults.")
            return instance

        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates: dict[str, Any] = {}

        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [server]: {', '.join(sorted(invalid_keys))}. Ignoring."
            )

        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k in ["sync_interval", "sync_timeout"]:
                    filtered_updates[k] = parse_time(v)
                elif k == "mirror_dir":
                    filtered_updates[k] = Path(v)
                elif k == "workers":
                    if isinstance(v, bool) or not isinstance(v, int) or v < 1:
                        raise ValueError(f"Invalid worker count '{v}'")
                    filtered_updates[k] = v
                else:
                    filtered_updates[k] = str(v)
            except (TypeError, ValueError) as e:
                logger.warning(
                    f"Config error in [server].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)
