"""fanout: run one command template on many hosts concurrently and aggregate the failures."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

from fanout.dispatcher import BatchDispatcher
from fanout.listeners import CapturingListener, ListenerChain, LoggingListener, OutputListener
from fanout.models import BatchResult, LaunchError, OutputType, TaskResult, TaskState
from fanout.runner import ProcessRunner
from fanout.template import HostParameters, resolve
from fanout.tokenizer import tokenize

try:
    __version__ = version("fanout")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"

__all__ = [
    "BatchDispatcher",
    "BatchResult",
    "CapturingListener",
    "HostParameters",
    "LaunchError",
    "ListenerChain",
    "LoggingListener",
    "OutputListener",
    "OutputType",
    "ProcessRunner",
    "TaskResult",
    "TaskState",
    "__version__",
    "resolve",
    "tokenize",
]
