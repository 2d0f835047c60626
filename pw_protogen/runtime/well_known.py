# Copyright 2024 The Pigweed Authors
#
# Licensed under the Apache License, Version 2.0 (the "License"); you may not
# use this file except in compliance with the License. You may obtain a copy of
# the License at
#
#     https://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS, WITHOUT
# WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the
# License for the specific language governing permissions and limitations under
# the License.
"""Codecs for the google.protobuf well-known types used by generated code.

Wrapper types such as StringValue are exposed to generated code as their
single scalar value; these codecs encode and decode that value directly.
"""

import dataclasses
import datetime
from typing import Any

from pw_protogen.runtime import wire

_EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)


@dataclasses.dataclass
class Timestamp:
    """google.protobuf.Timestamp: seconds and nanoseconds since the epoch."""

    seconds: int = 0
    nanos: int = 0

    type_url = 'type.googleapis.com/google.protobuf.Timestamp'

    @staticmethod
    def encode(
        message: 'Timestamp', writer: wire.Writer | None = None
    ) -> wire.Writer:
        if writer is None:
            writer = wire.Writer()
        if message.seconds != 0:
            writer.write_uint32(8).write_int64(message.seconds)
        if message.nanos != 0:
            writer.write_uint32(16).write_int32(message.nanos)
        return writer

    @staticmethod
    def decode(
        data: bytes | wire.Reader, length: int | None = None
    ) -> 'Timestamp':
        reader = wire.Reader.create(data)
        end = reader.len if length is None else reader.pos + length
        message = Timestamp()
        while reader.pos < end:
            tag = reader.read_uint32()
            match tag >> 3:
                case 1:
                    message.seconds = reader.read_int64()
                case 2:
                    message.nanos = reader.read_int32()
                case _:
                    reader.skip_type(tag & 7)
        return message


@dataclasses.dataclass
class Empty:
    """google.protobuf.Empty, the request or response of methods without one."""

    type_url = 'type.googleapis.com/google.protobuf.Empty'

    @staticmethod
    def encode(
        message: 'Empty', writer: wire.Writer | None = None
    ) -> wire.Writer:
        del message
        return wire.Writer() if writer is None else writer

    @staticmethod
    def decode(data: bytes | wire.Reader, length: int | None = None) -> 'Empty':
        reader = wire.Reader.create(data)
        end = reader.len if length is None else reader.pos + length
        while reader.pos < end:
            reader.skip_type(reader.read_uint32() & 7)
        return Empty()

    @staticmethod
    def from_json(obj: Any) -> 'Empty':
        del obj
        return Empty()

    @staticmethod
    def to_json(message: 'Empty') -> dict[str, Any]:
        del message
        return {}

    @staticmethod
    def from_partial(obj: Any) -> 'Empty':
        del obj
        return Empty()


def to_timestamp(value: datetime.datetime) -> Timestamp:
    """Converts a datetime to a Timestamp; naive datetimes are UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    delta = value - _EPOCH
    seconds = delta.days * 86400 + delta.seconds
    return Timestamp(seconds, delta.microseconds * 1000)


def from_timestamp(timestamp: Timestamp) -> datetime.datetime:
    """Converts a Timestamp to an aware UTC datetime.

    Precision below one microsecond is dropped.
    """
    return _EPOCH + datetime.timedelta(
        seconds=timestamp.seconds, microseconds=timestamp.nanos // 1000
    )


class _Wrapper:
    """Codec for a wrapper message holding one scalar in field 1."""

    def __init__(
        self, name: str, method: str, wire_type: wire.WireType, default: Any
    ) -> None:
        self.name = name
        self.type_url = f'type.googleapis.com/google.protobuf.{name}'
        self._method = method
        self._tag = (1 << 3) | wire_type
        self._default = default

    def __repr__(self) -> str:
        return f'well_known.{self.name}'

    def encode(
        self, value: Any, writer: wire.Writer | None = None
    ) -> wire.Writer:
        if writer is None:
            writer = wire.Writer()
        if value != self._default:
            writer.write_uint32(self._tag)
            getattr(writer, f'write_{self._method}')(value)
        return writer

    def decode(
        self, data: bytes | wire.Reader, length: int | None = None
    ) -> Any:
        """Returns the unwrapped value, or its default if it is absent."""
        reader = wire.Reader.create(data)
        end = reader.len if length is None else reader.pos + length
        value = self._default
        while reader.pos < end:
            tag = reader.read_uint32()
            if tag == self._tag:
                value = getattr(reader, f'read_{self._method}')()
            else:
                reader.skip_type(tag & 7)
        return value


DoubleValue = _Wrapper('DoubleValue', 'double', wire.WireType.FIXED64, 0.0)
FloatValue = _Wrapper('FloatValue', 'float', wire.WireType.FIXED32, 0.0)
Int64Value = _Wrapper('Int64Value', 'int64', wire.WireType.VARINT, 0)
UInt64Value = _Wrapper('UInt64Value', 'uint64', wire.WireType.VARINT, 0)
Int32Value = _Wrapper('Int32Value', 'int32', wire.WireType.VARINT, 0)
UInt32Value = _Wrapper('UInt32Value', 'uint32', wire.WireType.VARINT, 0)
BoolValue = _Wrapper('BoolValue', 'bool', wire.WireType.VARINT, False)
StringValue = _Wrapper(
    'StringValue', 'string', wire.WireType.LENGTH_DELIMITED, ''
)
BytesValue = _Wrapper(
    'BytesValue', 'bytes', wire.WireType.LENGTH_DELIMITED, b''
)
