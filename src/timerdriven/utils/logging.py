from __future__ import annotations

import logging

_LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


def setup_logging(level: int | str = logging.INFO):
    logging.basicConfig(level=level, format=_LOG_FORMAT)
    # APScheduler 每次执行任务都会打 INFO 日志，tick 很频繁时过于嘈杂
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    return logging.getLogger("timerdriven")
