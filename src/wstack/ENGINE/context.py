# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Cancellation context shared by every worker of one invocation.
"""
import threading
import time
from typing import Callable, Dict, Optional

from ..logger import logger

# Upper bound on how long cancel() waits for its callbacks.
CALLBACK_GRACE = 2.0


class CancelContext:
    """
    A cancellable context with an optional deadline.

    Workers poll :attr:`cancelled` between blocking calls and register
    callbacks (typically ``stream.close``) that run once on cancellation,
    so a worker blocked on a read is released promptly.
    """

    def __init__(self, timeout: Optional[float] = None):
        """
        :param timeout: Seconds until the context cancels itself. None means no deadline.
        """
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: Dict[int, Callable[[], None]] = {}
        self._next_id = 0
        self._timer: Optional[threading.Timer] = None
        self.reason = ""
        self.deadline = time.monotonic() + timeout if timeout is not None else None

        if timeout is not None:
            self._timer = threading.Timer(timeout, self.cancel, kwargs={"reason": "deadline exceeded"})
            self._timer.daemon = True
            self._timer.start()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled"):
        """
        Cancels the context and runs every registered callback exactly once.

        Each callback runs in its own thread so a slow or failing one does not
        hold back the rest. Returns once they finish or after
        :data:`CALLBACK_GRACE` seconds, whichever comes first.
        """
        with self._lock:
            if self._event.is_set():
                return
            self.reason = reason
            self._event.set()
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()
        if self._timer is not None:
            self._timer.cancel()
        threads = []
        for callback in callbacks:
            thread = threading.Thread(target=_run_callback, args=(callback,), name="cancel-callback", daemon=True)
            thread.start()
            threads.append(thread)
        give_up = time.monotonic() + CALLBACK_GRACE
        for thread in threads:
            thread.join(max(0.0, give_up - time.monotonic()))

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Blocks until cancelled or ``timeout`` elapses.

        :return: True if the context was cancelled.
        """
        return self._event.wait(timeout)

    def on_cancel(self, callback: Callable[[], None]) -> int:
        """
        Registers ``callback`` to run on cancellation. Runs it immediately if
        the context is already cancelled.

        :return: A handle for :meth:`remove_callback`.
        """
        with self._lock:
            if not self._event.is_set():
                handle = self._next_id
                self._next_id += 1
                self._callbacks[handle] = callback
                return handle
        _run_callback(callback)
        return -1

    def remove_callback(self, handle: int):
        with self._lock:
            self._callbacks.pop(handle, None)

    def release(self):
        """
        Stops the deadline timer.
        """
        if self._timer is not None:
            self._timer.cancel()


def _run_callback(callback: Callable[[], None]):
    try:
        callback()
    except Exception as e:
        logger.warning("Cancel callback failed", callback=getattr(callback, "__qualname__", repr(callback)), err=str(e))
