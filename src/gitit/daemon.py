import logging
import signal
import sys
import threading
from logging.handlers import RotatingFileHandler
from types import FrameType

from .config import Config
from .constants import APP_NAME, LOG_FILE
from .registry import Registry
from .scheduler import Scheduler
from .sync import SyncEngine

logger = logging.getLogger(APP_NAME)

MAX_LOG_SIZE = 5 * 1024 * 1024


def setup_logging(interactive: bool, verbose: bool = False) -> None:
    """Configures the logging subsystem.

    Args:
        interactive (bool): If True, logs to stderr only. If False, also logs
                            to a rotating file under the state directory.
        verbose (bool): Whether to include debug messages.
    """
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    # Always log to stderr (captured by systemd or the terminal).
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if not interactive:
        try:
            LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                LOG_FILE, maxBytes=MAX_LOG_SIZE, backupCount=5
            )
        except OSError as e:
            logger.warning(f"Could not open log file {LOG_FILE}: {e}")
            return
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def build_scheduler(config: Config) -> Scheduler:
    """Wires a registry, engine and scheduler from a loaded configuration."""
    registry = Registry.from_config(config)
    engine = SyncEngine(timeout=config.server.sync_timeout)
    return Scheduler(registry, engine, workers=config.server.workers)


def _cancel_on_stop(stop: threading.Event, cancel: threading.Event) -> None:
    stop.wait()
    if not cancel.is_set():
        logger.info("Stop requested, aborting running syncs...")
    cancel.set()


def run(config: Config, stop: threading.Event | None = None) -> None:
    """The periodic sync loop.

    Syncs every configured repository on the configured interval until
    SIGINT/SIGTERM (or `stop`) arrives. Running clones and fetches are
    aborted as soon as the stop arrives, not after they finish.

    Args:
        config (Config): The loaded configuration.
        stop (threading.Event | None): Event ending the loop; one is created
                                       and wired to the signals if omitted.
                                       It is set when `run` returns.
    """
    if stop is None:
        stop = threading.Event()

        def handle_signal(signum: int, _frame: FrameType | None) -> None:
            logger.info(f"Received signal {signum}, shutting down...")
            stop.set()

        signal.signal(signal.SIGTERM, handle_signal)
        signal.signal(signal.SIGINT, handle_signal)

    interval = config.server.sync_interval
    if interval <= 0:
        logger.warning("sync_interval is not set; running a single pass.")

    scheduler = build_scheduler(config)
    watcher = threading.Thread(
        target=_cancel_on_stop,
        args=(stop, scheduler.engine.cancel),
        name="gitit-stop",
        daemon=True,
    )
    watcher.start()
    try:
        if interval > 0:
            logger.info(
                f"Watching {len(config.repos)} repositories every {interval}s."
            )
            scheduler.run_periodic(interval, stop)
        else:
            scheduler.sync_all()
    finally:
        scheduler.shutdown(cancel=True)
        stop.set()
        watcher.join()
