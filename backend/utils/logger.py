# status: complete

import logging
import os
import re
import threading
import time
from pathlib import Path


class RepeatedMessageAggregator(logging.Filter):
    """
    Collapses bursts of identical retry/wait log lines into periodic summaries.
    Step loops log the same "retrying in ..." line many times per run; only the
    first occurrence inside a window is emitted, the rest are counted.
    """

    _PATTERN = re.compile(r"^\[(RETRY|EXECUTOR)\] (Waiting|Retrying)")

    def __init__(self, flush_interval=30):
        super().__init__()
        self.flush_interval = flush_interval
        self.message_counts = {}
        self.last_flush = time.time()
        self.lock = threading.Lock()

    def filter(self, record):
        if record.levelno > logging.INFO:
            return True

        message = record.getMessage()
        if not self._PATTERN.match(message):
            return True

        key = (record.name, message)

        with self.lock:
            current_time = time.time()

            if current_time - self.last_flush >= self.flush_interval:
                self._flush_aggregated_logs()
                self.last_flush = current_time

            if key not in self.message_counts:
                self.message_counts[key] = {'count': 1, 'first_seen': current_time, 'last_seen': current_time}
                return True

            self.message_counts[key]['count'] += 1
            self.message_counts[key]['last_seen'] = current_time
            return False

    def _flush_aggregated_logs(self):
        """Emit summary lines for messages suppressed since the last flush"""
        for (name, message), data in self.message_counts.items():
            if data['count'] > 1:
                duration = data['last_seen'] - data['first_seen']
                logging.getLogger(name).info(
                    f"{message} [repeated {data['count']}x over {duration:.1f}s]"
                )

        self.message_counts.clear()


def setup_logger():
    """Setup logger that outputs to <TASKPILOT_LOG_DIR>/taskpilot.log and stderr"""
    logs_dir = Path(os.getenv("TASKPILOT_LOG_DIR", "logs"))
    logs_dir.mkdir(parents=True, exist_ok=True)

    level_name = os.getenv("TASKPILOT_LOG_LEVEL", "DEBUG").upper()
    level = getattr(logging, level_name, logging.DEBUG)

    file_handler = logging.FileHandler(logs_dir / "taskpilot.log", encoding='utf-8')
    file_handler.setLevel(level)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)

    aggregator = RepeatedMessageAggregator(flush_interval=30)
    file_handler.addFilter(aggregator)
    stream_handler.addFilter(aggregator)

    logging.basicConfig(
        level=level,
        format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
        handlers=[file_handler, stream_handler]
    )


def get_logger(name):
    """Get logger for a module"""
    return logging.getLogger(name)


setup_logger()
