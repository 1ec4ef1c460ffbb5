import base64
import json

from wstack.BUILDERS.build_log import (
    BuildLogFormat, decode_classic, decode_trace, interpret, parse_status_response,
)
from wstack.BUILDERS.buildkit_status import ProgressGroup, StatusResponse, Vertex


def _vertex(name="", error="", progress_group=False):
    vertex = Vertex(name=name, error=error, digest="sha256:" + name.replace(" ", ""))
    if progress_group:
        vertex.progressGroup.CopyFrom(ProgressGroup(id="pg", name=name))
    return vertex


def _status(*vertexes):
    return StatusResponse(vertexes=list(vertexes)).SerializeToString()


def _trace(*vertexes):
    return {"id": "moby.buildkit.trace", "aux": base64.b64encode(_status(*vertexes)).decode()}


def test_classic_error_wins_over_stream():
    event = decode_classic({"stream": "Step 1/3 : FROM golang", "error": "boom"})
    assert event.error == "boom"
    assert event.step == ""


def test_classic_error_detail():
    event = decode_classic({"errorDetail": {"message": "no space left"}})
    assert event.is_error
    assert event.error == "no space left"


def test_classic_steps():
    assert decode_classic({"stream": "Step 2/5 : COPY . .\n"}).step == "Step 2/5 : COPY . ."
    assert decode_classic({"stream": "DEBUG: cache hit"}).step == "DEBUG: cache hit"
    assert decode_classic({"stream": "Successfully built 1234"}).step == "Successfully built 1234"
    assert decode_classic({"status": "Downloading"}).step == "Downloading"


def test_classic_ignores_noise():
    assert decode_classic({"stream": " ---> abc123\n"}) is None
    assert decode_classic({"stream": "\n"}) is None
    assert decode_classic({"aux": {"ID": "sha256:abc"}}) is None


def test_trace_last_vertex_wins():
    record = _trace(_vertex(name="[build 1/4] FROM golang"), _vertex(name="[build 2/4] COPY go.mod"))
    assert decode_trace(record).step == "[build 2/4] COPY go.mod"


def test_trace_vertex_error():
    record = _trace(_vertex(name="[build 3/4] RUN go build", error="exit code: 2"))
    event = decode_trace(record)
    assert event.error == "exit code: 2"
    assert event.step == ""


def test_trace_in_progress_suffix():
    record = _trace(_vertex(name="pulling golang", progress_group=True))
    assert decode_trace(record).step == "pulling golang (in progress)"


def test_trace_garbled_payload_is_skipped():
    assert decode_trace({"id": "moby.buildkit.trace", "aux": "%%% not base64"}) is None
    assert decode_trace({"id": "moby.buildkit.trace", "aux": base64.b64encode(b"\x0a\x7f").decode()}) is None


def test_trace_v1_and_generic_records():
    assert decode_trace({"id": "moby.buildkit.v1", "aux": {"step": "resolve"}}).step == "resolve"
    assert decode_trace({"id": "moby.buildkit.v1", "aux": {"error": "denied"}}).error == "denied"
    assert decode_trace({"stream": "ERROR: failed to solve"}).error == "ERROR: failed to solve"
    assert decode_trace({"stream": "Running in 1234"}).step == "Running in 1234"
    assert decode_trace({"progress": "[===>  ] 10MB/20MB"}).step == "[===>  ] 10MB/20MB"
    assert decode_trace({"error": "daemon says no"}).error == "daemon says no"


def test_parse_status_response_fields():
    vertexes = parse_status_response(_status(_vertex(name="a", progress_group=True), _vertex(name="b", error="bad")))
    assert [v["name"] for v in vertexes] == ["a", "b"]
    assert vertexes[0]["progressGroup"] and not vertexes[1]["progressGroup"]
    assert vertexes[1]["error"] == "bad"


def test_trace_group_without_id_still_in_progress():
    vertex = Vertex(name="exporting layers")
    vertex.progressGroup.SetInParent()
    assert decode_trace(_trace(vertex)).step == "exporting layers (in progress)"


def test_interpret_skips_unparseable_lines():
    lines = [
        "not json",
        json.dumps({"stream": "Step 1/2 : FROM scratch"}),
        "[1, 2]",
        json.dumps({"stream": " ---> 123"}),
        json.dumps({"error": "failed"}),
    ]
    events = list(interpret(lines, BuildLogFormat.CLASSIC))
    assert [e.step for e in events] == ["Step 1/2 : FROM scratch", ""]
    assert events[-1].error == "failed"


def test_interpret_empty_stream():
    assert list(interpret([], BuildLogFormat.TRACE)) == []
