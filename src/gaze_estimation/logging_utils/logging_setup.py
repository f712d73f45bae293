# logging_setup.py
"""
Crash-resilient logging with a dedicated writer process.
- The main process logs via QueueHandler to a non-daemon writer process.
- Writer owns a RotatingFileHandler with fsync on every emit (durability).
- Library modules only call get_logger(); nothing is written to disk until
  an entry script calls start_logging().
"""

from __future__ import annotations
import atexit
import logging
import os
from datetime import datetime
from pathlib import Path
from multiprocessing import Process, Queue, get_start_method, current_process
from logging.handlers import RotatingFileHandler, QueueHandler

# ------------------------- Paths & constants -------------------------

LOG_DIR = Path(os.environ.get("GAZE_ESTIMATION_LOG_DIR", Path.home() / "GazeEstimationLogs"))

# Set by _init_log_paths() when logging starts
LOG_PATH: Path | None = None

# Last-resort traceback mirror
CRASH_PATH: Path | None = None

# Main logger name used across the package
LOGGER_NAME = "gaze_estimation"

logging_fmt_console = logging.Formatter("[%(levelname)s] %(message)s")
logging_fmt_file = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s %(message)s")

# ------------------------- Module-level state -------------------------

_queue: Queue | None = None
_writer_proc: Process | None = None


# ------------------------- Writer process target -------------------------

def _writer_main(queue: Queue, log_path: str, crash_path: str):
    """
    Runs in a separate process. Receives LogRecord objects from the Queue and
    writes them to disk with fsync for durability.
    """
    import time

    class FsyncRotatingFileHandler(RotatingFileHandler):
        def emit(self, record: logging.LogRecord) -> None:
            super().emit(record)
            try:
                self.flush()
                if self.stream and hasattr(self.stream, "fileno"):
                    os.fsync(self.stream.fileno())
            except OSError:
                # Never raise from logging
                pass

    log = logging.getLogger(__name__)
    log.setLevel(logging.DEBUG)

    fh = FsyncRotatingFileHandler(log_path, maxBytes=5_000_000, backupCount=5)
    fh.setFormatter(logging_fmt_file)
    log.addHandler(fh)

    try:
        while True:
            rec = queue.get()  # blocking
            if rec == "__STOP__":
                break
            log.handle(rec)
    except Exception:
        try:
            with open(crash_path, "a", buffering=1, encoding="utf-8") as f:
                f.write(f"Log writer crashed at: {time.strftime('%Y-%m-%d %H:%M:%S')}\n")
        except OSError:
            pass
    finally:
        for h in list(log.handlers):
            h.flush()
            h.close()


# ------------------------- Public API -------------------------

def start_logging(level: int = logging.INFO, console: bool = True) -> None:
    """
    Start the dedicated writer process and install a QueueHandler in the current process.
    Call once from the entry script, inside:
        if __name__ == "__main__":
            start_logging()
    """
    global _queue, _writer_proc

    if _queue is not None:
        return

    # Only the main process is allowed to spawn the writer
    if current_process().name != "MainProcess":
        return

    _init_log_paths()
    LOG_DIR.mkdir(parents=True, exist_ok=True)

    try:
        if get_start_method(allow_none=True) != "spawn":
            import multiprocessing as mp
            mp.set_start_method("spawn", force=True)
    except RuntimeError:
        # Already set; that's fine
        pass

    _queue = Queue()

    _writer_proc = Process(
        target=_writer_main,
        args=(_queue, str(LOG_PATH), str(CRASH_PATH)),
        name="LogWriter",
    )
    _writer_proc.daemon = False
    _writer_proc.start()

    _install_queue_handler(level)
    if console:
        _install_console_handler()

    atexit.register(shutdown_logging)


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Return the package logger ('gaze_estimation') or a child under it,
    so all children inherit the handlers attached to 'gaze_estimation'.
    """
    if not name or name == LOGGER_NAME:
        return logging.getLogger(LOGGER_NAME)
    if name.startswith(LOGGER_NAME + "."):
        return logging.getLogger(name)

    return logging.getLogger(f"{LOGGER_NAME}.{name}")


def shutdown_logging(timeout: float = 2.0) -> None:
    """
    Ask the writer to stop, flush, and close. Safe to call multiple times.
    """
    global _queue, _writer_proc

    _remove_handlers(QueueHandler)

    if _queue is not None:
        _queue.put("__STOP__")

    if _writer_proc is not None:
        _writer_proc.join(timeout)
        if _writer_proc.is_alive():
            _writer_proc.terminate()

    _writer_proc = None
    _queue = None


def install_crash_hooks() -> None:
    """
    Mirrors uncaught exceptions to the package logger and also to CRASH_PATH.
    Call this once in the entry script after start_logging().
    """
    import sys, traceback, faulthandler

    _init_log_paths()
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    faulthandler.enable(open(CRASH_PATH, "a", buffering=1, encoding="utf-8"))

    def _excepthook(exc_type, exc, tb):
        get_logger().critical("UNCAUGHT EXCEPTION", exc_info=(exc_type, exc, tb))
        with open(CRASH_PATH, "a", buffering=1, encoding="utf-8") as f:
            traceback.print_exception(exc_type, exc, tb, file=f)

    sys.excepthook = _excepthook


# ------------------------- Internal helpers -------------------------

def _init_log_paths() -> None:
    """Timestamp the log and crash files once, on the first start_logging()/install_crash_hooks()."""
    global LOG_PATH, CRASH_PATH
    if LOG_PATH is not None:
        return
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    LOG_PATH = LOG_DIR / f"gaze_estimation_{timestamp}.log"
    CRASH_PATH = LOG_DIR / f"crash_{timestamp}.log"



def _install_queue_handler(level: int) -> None:
    if _queue is None:
        return
    lg = logging.getLogger(LOGGER_NAME)
    lg.setLevel(level)
    if not any(isinstance(h, QueueHandler) for h in lg.handlers):
        lg.addHandler(QueueHandler(_queue))


def _install_console_handler() -> None:
    lg = logging.getLogger(LOGGER_NAME)
    if not any(type(h) is logging.StreamHandler for h in lg.handlers):
        sh = logging.StreamHandler()
        sh.setFormatter(logging_fmt_console)
        lg.addHandler(sh)


def _remove_handlers(handler_type: type) -> None:
    lg = logging.getLogger(LOGGER_NAME)
    for h in list(lg.handlers):
        if isinstance(h, handler_type):
            lg.removeHandler(h)
            h.flush()
            h.close()
