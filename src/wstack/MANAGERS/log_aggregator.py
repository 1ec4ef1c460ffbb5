"""
Log aggregation for foreground runs: follows every container and prints
its output prefixed with the container name.
"""
import re
import threading
from typing import Callable, Dict, List

from ..ENGINE.client import ENGINE_ERRORS, EngineClient, describe_error
from ..ENGINE.context import CancelContext
from ..logger import logger

ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;?]*[ -/]*[@-~]")


def clean_line(line: str) -> str:
    """Strips ANSI escape sequences and trailing whitespace."""
    return ANSI_ESCAPE.sub("", line).rstrip()


class LogAggregator:
    """
    Tails the logs of several containers at once until closed or cancelled.
    """
    def __init__(self, engine: EngineClient, ctx: CancelContext, write: Callable[[str], None] = print):
        """
        :param engine: Open engine connection.
        :param ctx: Closing the context closes every log stream.
        :param write: Receives one formatted line at a time.
        """
        self.engine = engine
        self.ctx = ctx
        self.write = write
        self._streams: Dict[str, object] = {}
        self._threads: List[threading.Thread] = []
        self._lock = threading.Lock()
        self._width = 0
        self._closed = False

    def follow(self, names: List[str]):
        """
        Starts one tailing thread per container and returns immediately.
        """
        self._width = max((len(n) for n in names), default=0)
        for name in names:
            thread = threading.Thread(target=self._tail, args=(name,), name=f"wstack-logs-{name}", daemon=True)
            self._threads.append(thread)
            thread.start()

    def _emit(self, name: str, line: str):
        with self._lock:
            self.write(f"{name:<{self._width}} | {clean_line(line)}")

    def _tail(self, name: str):
        try:
            stream = self.engine.logs(name)
        except ENGINE_ERRORS as e:
            logger.warning("Cannot follow container logs", container=name, err=describe_error(e))
            return

        with self._lock:
            if self._closed:
                stream.close()
                return
            self._streams[name] = stream
        handle = self.ctx.on_cancel(stream.close)
        buffer = ""
        try:
            for chunk in stream:
                if isinstance(chunk, bytes):
                    chunk = chunk.decode("utf-8", errors="replace")
                buffer += chunk
                *lines, buffer = buffer.split("\n")
                for line in lines:
                    self._emit(name, line)
        except ENGINE_ERRORS as e:
            if not self.ctx.cancelled:
                logger.warning("Log stream ended", container=name, err=describe_error(e))
        finally:
            self.ctx.remove_callback(handle)
            if buffer:
                self._emit(name, buffer)

    def close(self, timeout: float = 5.0):
        """
        Closes every log stream and waits for the tailing threads.
        """
        with self._lock:
            self._closed = True
            streams = list(self._streams.values())
            self._streams.clear()
        for stream in streams:
            stream.close()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []
