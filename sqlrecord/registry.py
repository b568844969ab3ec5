"""
Process-wide shared :class:`Executor`.

Applications that prefer explicit wiring construct ``Executor(config)`` once
and pass it around; :func:`get_instance` is the convenience accessor for
code that wants one shared instance without plumbing it through.
"""

import threading
from typing import Optional

from sqlrecord.config import ExecutorConfig
from sqlrecord.executor import Executor

_instance: Optional[Executor] = None
_instance_lock = threading.Lock()


def get_instance() -> Executor:
    """
    Return the shared executor, building it from ``SQLRECORD_*`` env vars on first call.

    If construction fails the error propagates and nothing is stored, so the
    next call tries again.
    """
    global _instance
    if _instance is None:
        with _instance_lock:
            if _instance is None:
                _instance = Executor(ExecutorConfig.from_env())
    return _instance
