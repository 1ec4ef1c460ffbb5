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
Build log interpreter.

The engine answers a build with one of two wire formats:

1. Classic: line-delimited JSON with ``stream``, ``status``, ``error``,
   ``errorDetail`` and ``progressDetail`` fields.
2. BuildKit trace: records with id ``moby.buildkit.trace`` whose ``aux``
   carries a base64 protobuf ``StatusResponse`` (a graph of vertices), plus
   ``moby.buildkit.v1`` records and plain messages.

Both are reduced to :class:`BuildLogEvent`. The format is chosen once per
build operation, never guessed per line.
"""
import base64
import binascii
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from google.protobuf.message import DecodeError

from ..logger import logger
from ..MODELS.progress import BuildLogEvent
from ..UTILS.json_message import decode_message, error_message
from .buildkit_status import StatusResponse

TRACE_ID = "moby.buildkit.trace"
V1_ID = "moby.buildkit.v1"

STEP_KEYWORDS = ("Pulling", "Building", "Running", "Executing")


class BuildLogFormat(str, Enum):
    CLASSIC = "classic"
    TRACE = "trace"


def decode_classic(record: Dict[str, Any]) -> Optional[BuildLogEvent]:
    """
    Decodes one classic build record.

    :return: An error event, a step event, or None if the record carries nothing worth showing.
    """
    message = error_message(record)
    if message is not None:
        return BuildLogEvent.failure(message)

    stream = record.get("stream")
    if isinstance(stream, str) and stream.strip():
        stream = stream.strip()
        if stream.startswith("Step") or stream.startswith("DEBUG:"):
            return BuildLogEvent(step=stream)
        if any(k in stream for k in STEP_KEYWORDS + ("Successfully",)):
            return BuildLogEvent(step=stream)

    status = record.get("status")
    if isinstance(status, str) and status.strip():
        return BuildLogEvent(step=status.strip())

    return None


def parse_status_response(data: bytes) -> List[Dict[str, Any]]:
    """
    Extracts the vertices of a serialized StatusResponse.

    :raises DecodeError: If the payload is not a valid StatusResponse.
    """
    response = StatusResponse.FromString(data)
    return [
        {
            "name": vertex.name,
            "error": vertex.error,
            "progressGroup": vertex.HasField("progressGroup"),
        }
        for vertex in response.vertexes
    ]


def _trace_vertexes(aux: Any) -> List[Dict[str, Any]]:
    if isinstance(aux, dict):
        return [v for v in aux.get("vertexes") or [] if isinstance(v, dict)]
    if not isinstance(aux, str):
        return []
    try:
        payload = base64.b64decode(aux, validate=True)
        return parse_status_response(payload)
    except (binascii.Error, DecodeError):
        return []


def _decode_trace_vertexes(record: Dict[str, Any]) -> Optional[BuildLogEvent]:
    vertexes = _trace_vertexes(record.get("aux"))
    if not vertexes:
        return None
    latest = vertexes[-1]
    if latest.get("error"):
        return BuildLogEvent.failure(str(latest["error"]))
    name = latest.get("name") or ""
    if not name:
        return None
    if latest.get("progressGroup"):
        name = f"{name} (in progress)"
    return BuildLogEvent(step=name)


def _decode_v1(record: Dict[str, Any]) -> Optional[BuildLogEvent]:
    aux = record.get("aux")
    if not isinstance(aux, dict):
        return None
    if isinstance(aux.get("error"), str) and aux["error"]:
        return BuildLogEvent.failure(aux["error"])
    if isinstance(aux.get("step"), str) and aux["step"]:
        return BuildLogEvent(step=aux["step"])
    return None


def _decode_generic(record: Dict[str, Any]) -> Optional[BuildLogEvent]:
    message = error_message(record)
    if message is not None:
        return BuildLogEvent.failure(message)

    stream = record.get("stream")
    if isinstance(stream, str) and stream.strip():
        stream = stream.strip()
        if "error" in stream.lower():
            return BuildLogEvent.failure(stream)
        if stream.startswith("Step") or any(k in stream for k in STEP_KEYWORDS):
            return BuildLogEvent(step=stream)

    progress = record.get("progress")
    if isinstance(progress, str) and progress.strip():
        return BuildLogEvent(step=progress.strip())
    return None


def decode_trace(record: Dict[str, Any]) -> Optional[BuildLogEvent]:
    """
    Decodes one record of a BuildKit build.
    The most recently updated vertex stands for the current progress.
    """
    record_id = record.get("id")
    if record_id == TRACE_ID:
        return _decode_trace_vertexes(record)
    if record_id == V1_ID:
        return _decode_v1(record)
    return _decode_generic(record)


DECODERS: Dict[BuildLogFormat, Callable[[Dict[str, Any]], Optional[BuildLogEvent]]] = {
    BuildLogFormat.CLASSIC: decode_classic,
    BuildLogFormat.TRACE: decode_trace,
}


def interpret(lines: Iterable[str], fmt: BuildLogFormat) -> Iterator[BuildLogEvent]:
    """
    Turns a raw build response into build log events.
    Records that are not JSON objects are skipped; the end of the stream ends iteration.

    :param lines: JSON lines as received from the engine.
    :param fmt: Wire format of this build.
    """
    decode = DECODERS[fmt]
    for line in lines:
        record = decode_message(line)
        if record is None:
            logger.debug("Skipping unparseable build record", record=line[:200])
            continue
        event = decode(record)
        if event is not None:
            yield event
