"""Process-wide logging setup and the per-run transcript buffer."""
import asyncio
import logging
import os
from typing import List, Optional

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

_configured = False


def setup_logging(level: Optional[str] = None):
    """Configure the root logger once per process."""
    global _configured
    if _configured:
        return
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=LOG_FORMAT)
    # httpx logs every request at INFO, which floods the run transcript
    logging.getLogger("httpx").setLevel(logging.WARNING)
    _configured = True


class RunLog:
    """Collects the log lines of a single run so they can be shipped as a transcript."""

    def __init__(self):
        self._lines: List[str] = []

    def append(self, line: str):
        self._lines.append(line)

    def flush(self) -> str:
        """Return the transcript collected so far and start a new one."""
        transcript = "\n".join(self._lines)
        self._lines = []
        return transcript

    def __len__(self) -> int:
        return len(self._lines)


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class RunLogHandler(logging.Handler):
    """Forwards formatted records into a RunLog.

    With a task given, only records logged from that task are kept, so
    concurrent request handling in service mode stays out of the transcript.
    """

    def __init__(self, run_log: RunLog, level: int = logging.INFO,
                 task: Optional[asyncio.Task] = None):
        super().__init__(level)
        self.run_log = run_log
        self.task = task
        self.setFormatter(logging.Formatter("%(message)s"))

    def filter(self, record: logging.LogRecord) -> bool:
        if self.task is not None and _current_task() is not self.task:
            return False
        return super().filter(record)

    def emit(self, record: logging.LogRecord):
        try:
            line = self.format(record)
            if record.levelno >= logging.ERROR:
                line = "❌ " + line
            self.run_log.append(line)
        except Exception:
            self.handleError(record)
