from __future__ import annotations

import logging
import threading
from datetime import datetime
from pathlib import Path


LOG_DIR = Path("/data/logs")
LOG_PREFIX = "taskseries"


def _safe_level(level: str | None, default: str = "INFO") -> int:
    raw = (level or default).strip().upper()
    return getattr(logging, raw, logging.INFO)


class DailyDateFileHandler(logging.Handler):
    """Write logs to <base_dir>/taskseries-YYYY-MM-DD.log.

    The handler checks the date on each emit and rolls over to a new file
    when the local date changes.
    """

    def __init__(self, *, base_dir: Path = LOG_DIR, prefix: str = LOG_PREFIX, level: int = logging.INFO):
        super().__init__(level=level)
        self.base_dir = Path(base_dir)
        self.prefix = str(prefix)
        self._lock = threading.RLock()
        self._current_date = self._today()
        self._stream = None
        self._open_for_date(self._current_date)

    def _today(self) -> str:
        return datetime.now().strftime("%Y-%m-%d")

    def _path_for_date(self, date_str: str) -> Path:
        return self.base_dir / f"{self.prefix}-{date_str}.log"

    def _open_for_date(self, date_str: str) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        path = self._path_for_date(date_str)
        # Line-buffered text mode.
        self._stream = open(path, "a", encoding="utf-8", buffering=1)

    def _close_stream(self) -> None:
        if self._stream:
            try:
                self._stream.flush()
                self._stream.close()
            except OSError:
                pass
        self._stream = None

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
        except Exception:
            self.handleError(record)
            return

        with self._lock:
            try:
                today = self._today()
                if today != self._current_date:
                    self._close_stream()
                    self._current_date = today
                    self._open_for_date(today)

                if not self._stream:
                    self._open_for_date(self._current_date)

                self._stream.write(msg + "\n")
            except Exception:
                self.handleError(record)

    def close(self) -> None:
        with self._lock:
            self._close_stream()
        super().close()


_FILE_HANDLER: DailyDateFileHandler | None = None


def setup_logging(*, level: str = "INFO", log_dir: str | Path | None = None) -> None:
    """Attach a stdout handler and a daily file handler.

    Safe to call multiple times.
    """

    global _FILE_HANDLER

    lvl = _safe_level(level)

    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root = logging.getLogger()
    root.setLevel(lvl)

    if not any(isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler) for h in root.handlers):
        sh = logging.StreamHandler()
        sh.setLevel(lvl)
        sh.setFormatter(formatter)
        root.addHandler(sh)

    if _FILE_HANDLER is None:
        fh = DailyDateFileHandler(base_dir=Path(log_dir) if log_dir else LOG_DIR, level=lvl)
        fh.setFormatter(formatter)
        root.addHandler(fh)
        _FILE_HANDLER = fh
    else:
        _FILE_HANDLER.setLevel(lvl)
        _FILE_HANDLER.setFormatter(formatter)

    # Framework loggers propagate to root so they also hit the file.
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi", "apscheduler"):
        logging.getLogger(name).propagate = True


def apply_log_level(level: str) -> None:
    """Update log levels at runtime."""
    lvl = _safe_level(level)
    logging.getLogger().setLevel(lvl)
    for lg in ("taskseries", "taskseries.crud", "taskseries.recurrence", "taskseries.auth"):
        logging.getLogger(lg).setLevel(lvl)
    if _FILE_HANDLER is not None:
        _FILE_HANDLER.setLevel(lvl)
