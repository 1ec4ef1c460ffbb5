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
Progress presentation sinks.

Workers never touch presentation state directly: every update is a
:class:`ProcessState` message delivered through :meth:`ProgressSink.send`,
which serializes delivery with a lock.
"""
import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional

from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn

from ..logger import logger
from ..MODELS.progress import TICK_ICON, ProcessState


class ProgressSink(ABC):
    """
    Base class for progress sinks. Subclasses implement :meth:`_deliver`.
    """

    def __init__(self):
        self._lock = threading.Lock()

    def send(self, state: ProcessState):
        with self._lock:
            self._deliver(state)

    @abstractmethod
    def _deliver(self, state: ProcessState):
        """Presents one message. Called with the sink lock held."""

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class LogProgressSink(ProgressSink):
    """
    Writes every message as a structured log line. Used for non-interactive output.
    """

    def _deliver(self, state: ProcessState):
        fields = {state.type: state.name, "state": state.state}
        if state.detail:
            fields["detail"] = state.detail
        if state.percent is not None:
            fields["percent"] = state.percent
        if state.done and state.icon and state.icon != TICK_ICON:
            logger.error("progress", **fields)
        else:
            logger.info("progress", **fields)


class RichProgressSink(ProgressSink):
    """
    Renders one spinner line per image or container in the terminal.
    """

    def __init__(self, console: Optional[Console] = None):
        super().__init__()
        self.progress = Progress(
            SpinnerColumn(finished_text=""),
            TextColumn("{task.fields[icon]}"),
            TextColumn("[bold]{task.fields[state]}[/bold] {task.fields[kind]} {task.description}"),
            BarColumn(),
            TextColumn("{task.fields[detail]}", markup=False),
            console=console,
            transient=False,
        )
        self.tasks: Dict[str, TaskID] = {}
        self._started = False

    def _deliver(self, state: ProcessState):
        if not self._started:
            self.progress.start()
            self._started = True

        fields = {
            "icon": state.icon,
            "state": state.state,
            "kind": state.type,
            "detail": state.detail[:80],
        }
        key = f"{state.type}:{state.name}"
        task = self.tasks.get(key)
        if task is None:
            task = self.progress.add_task(state.name, total=100, **fields)
            self.tasks[key] = task
        else:
            self.progress.update(task, **fields)

        if state.percent is not None:
            self.progress.update(task, completed=state.percent)
        if state.done:
            total = 100 if state.percent is None else state.percent
            self.progress.update(task, completed=total, total=total or 100)
            self.progress.stop_task(task)

    def close(self):
        with self._lock:
            if self._started:
                self.progress.stop()
                self._started = False
