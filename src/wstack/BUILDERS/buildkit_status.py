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
Protobuf messages of the BuildKit status stream.

Only the part of ``moby.buildkit.v1.StatusResponse`` the build log reads is
declared: vertices with their name, error and progress group. Other fields
are kept as unknown fields by the parser. Timestamps use a wire-compatible
local message so the module needs no well-known-type imports.
"""
from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

PACKAGE = "moby.buildkit.v1"

_Field = descriptor_pb2.FieldDescriptorProto


def _field(name, number, field_type, type_name=None, repeated=False):
    field = _Field(
        name=name,
        number=number,
        type=field_type,
        label=_Field.LABEL_REPEATED if repeated else _Field.LABEL_OPTIONAL,
    )
    if type_name:
        field.type_name = f".{PACKAGE}.{type_name}"
    return field


def _file() -> descriptor_pb2.FileDescriptorProto:
    proto = descriptor_pb2.FileDescriptorProto(
        name="wstack/buildkit_status.proto", package=PACKAGE, syntax="proto3",
    )
    proto.message_type.add(name="Timestamp", field=[
        _field("seconds", 1, _Field.TYPE_INT64),
        _field("nanos", 2, _Field.TYPE_INT32),
    ])
    proto.message_type.add(name="ProgressGroup", field=[
        _field("id", 1, _Field.TYPE_STRING),
        _field("name", 2, _Field.TYPE_STRING),
        _field("weak", 3, _Field.TYPE_BOOL),
    ])
    proto.message_type.add(name="Vertex", field=[
        _field("digest", 1, _Field.TYPE_STRING),
        _field("inputs", 2, _Field.TYPE_STRING, repeated=True),
        _field("name", 3, _Field.TYPE_STRING),
        _field("cached", 4, _Field.TYPE_BOOL),
        _field("started", 5, _Field.TYPE_MESSAGE, "Timestamp"),
        _field("completed", 6, _Field.TYPE_MESSAGE, "Timestamp"),
        _field("error", 7, _Field.TYPE_STRING),
        _field("progressGroup", 8, _Field.TYPE_MESSAGE, "ProgressGroup"),
    ])
    proto.message_type.add(name="StatusResponse", field=[
        _field("vertexes", 1, _Field.TYPE_MESSAGE, "Vertex", repeated=True),
    ])
    return proto


# A private pool keeps these names clear of any BuildKit bindings loaded elsewhere.
_pool = descriptor_pool.DescriptorPool()
_pool.AddSerializedFile(_file().SerializeToString())

Timestamp = message_factory.GetMessageClass(_pool.FindMessageTypeByName(f"{PACKAGE}.Timestamp"))
ProgressGroup = message_factory.GetMessageClass(_pool.FindMessageTypeByName(f"{PACKAGE}.ProgressGroup"))
Vertex = message_factory.GetMessageClass(_pool.FindMessageTypeByName(f"{PACKAGE}.Vertex"))
StatusResponse = message_factory.GetMessageClass(_pool.FindMessageTypeByName(f"{PACKAGE}.StatusResponse"))
