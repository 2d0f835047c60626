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
"""Protobuf binary wire format reader and writer.

Generated decode() methods read through a Reader; generated encode() methods
write through a chainable Writer, using fork() and ldelim() to length-prefix
nested messages and packed fields.
"""

import enum
import struct
from typing import TypeVar

MAX_SAFE_INTEGER = 2**53 - 1

_MASK_32 = (1 << 32) - 1
_MASK_64 = (1 << 64) - 1
_MAX_VARINT_BYTES = 10

_EnumT = TypeVar('_EnumT', bound=enum.Enum)


class WireType(enum.IntEnum):
    VARINT = 0
    FIXED64 = 1
    LENGTH_DELIMITED = 2
    START_GROUP = 3
    END_GROUP = 4
    FIXED32 = 5


class DecodeError(Exception):
    """The input is not a valid protobuf encoding."""


def _to_signed(value: int, bits: int) -> int:
    if value >> (bits - 1) & 1:
        return value - (1 << bits)
    return value


def _zigzag_encode(value: int, bits: int) -> int:
    return ((value << 1) ^ (value >> (bits - 1))) & ((1 << bits) - 1)


def _zigzag_decode(value: int) -> int:
    return (value >> 1) ^ -(value & 1)


class Reader:
    """Reads protobuf values from a buffer, advancing pos."""

    def __init__(self, data: bytes | bytearray | memoryview) -> None:
        self.buf = bytes(data)
        self.pos = 0
        self.len = len(self.buf)

    @classmethod
    def create(
        cls, data: 'bytes | bytearray | memoryview | Reader'
    ) -> 'Reader':
        if isinstance(data, Reader):
            return data
        return cls(data)

    def _varint(self) -> int:
        result = 0
        for shift in range(0, 7 * _MAX_VARINT_BYTES, 7):
            if self.pos >= self.len:
                raise DecodeError('Truncated varint')
            byte = self.buf[self.pos]
            self.pos += 1
            result |= (byte & 0x7F) << shift
            if not byte & 0x80:
                return result
        raise DecodeError('Varint is longer than 10 bytes')

    def _take(self, size: int) -> bytes:
        end = self.pos + size
        if size < 0 or end > self.len:
            raise DecodeError(
                f'Read of {size} bytes at offset {self.pos} is out of range '
                f'for a {self.len} byte buffer'
            )
        data = self.buf[self.pos : end]
        self.pos = end
        return data

    def read_uint32(self) -> int:
        return self._varint() & _MASK_32

    def read_int32(self) -> int:
        return _to_signed(self._varint() & _MASK_32, 32)

    def read_sint32(self) -> int:
        return _zigzag_decode(self._varint() & _MASK_32)

    def read_uint64(self) -> int:
        return self._varint() & _MASK_64

    def read_int64(self) -> int:
        return _to_signed(self._varint() & _MASK_64, 64)

    def read_sint64(self) -> int:
        return _zigzag_decode(self._varint() & _MASK_64)

    def read_bool(self) -> bool:
        return self._varint() != 0

    def read_fixed32(self) -> int:
        return struct.unpack('<I', self._take(4))[0]

    def read_sfixed32(self) -> int:
        return struct.unpack('<i', self._take(4))[0]

    def read_fixed64(self) -> int:
        return struct.unpack('<Q', self._take(8))[0]

    def read_sfixed64(self) -> int:
        return struct.unpack('<q', self._take(8))[0]

    def read_float(self) -> float:
        return struct.unpack('<f', self._take(4))[0]

    def read_double(self) -> float:
        return struct.unpack('<d', self._take(8))[0]

    def read_bytes(self) -> bytes:
        return self._take(self._varint())

    def read_string(self) -> str:
        try:
            return self.read_bytes().decode('utf-8')
        except UnicodeDecodeError as err:
            raise DecodeError(f'Invalid UTF-8 in string field: {err}') from err

    def skip(self, length: int | None = None) -> 'Reader':
        """Skips length bytes, or one varint if no length is given."""
        if length is None:
            self._varint()
        else:
            self._take(length)
        return self

    def skip_type(self, wire_type: int) -> 'Reader':
        """Skips a value of the given wire type."""
        match wire_type:
            case WireType.VARINT:
                self.skip()
            case WireType.FIXED64:
                self.skip(8)
            case WireType.LENGTH_DELIMITED:
                self.skip(self._varint())
            case WireType.START_GROUP:
                while True:
                    wire_type = self.read_uint32() & 7
                    if wire_type == WireType.END_GROUP:
                        break
                    self.skip_type(wire_type)
            case WireType.FIXED32:
                self.skip(4)
            case _:
                raise DecodeError(
                    f'Invalid wire type {wire_type} at offset {self.pos}'
                )
        return self


class Writer:
    """Accumulates protobuf-encoded values.

    Every write returns the writer so that calls can be chained:

      writer.write_uint32(10).write_string('hello')
    """

    def __init__(self) -> None:
        self._buf = bytearray()
        self._forks: list[bytearray] = []

    @classmethod
    def create(cls) -> 'Writer':
        return cls()

    def _varint(self, value: int) -> 'Writer':
        while True:
            bits = value & 0x7F
            value >>= 7
            if not value:
                self._buf.append(bits)
                return self
            self._buf.append(0x80 | bits)

    def write_uint32(self, value: int) -> 'Writer':
        return self._varint(value & _MASK_32)

    def write_int32(self, value: int) -> 'Writer':
        # Negative values are sign-extended to 64 bits.
        return self._varint(value & _MASK_64)

    def write_sint32(self, value: int) -> 'Writer':
        return self._varint(_zigzag_encode(value, 32))

    def write_uint64(self, value: int) -> 'Writer':
        return self._varint(value & _MASK_64)

    def write_int64(self, value: int) -> 'Writer':
        return self._varint(value & _MASK_64)

    def write_sint64(self, value: int) -> 'Writer':
        return self._varint(_zigzag_encode(value, 64))

    def write_bool(self, value: bool) -> 'Writer':
        return self._varint(1 if value else 0)

    def _fixed(self, fmt: str, value) -> 'Writer':
        self._buf += struct.pack(fmt, value)
        return self

    def write_fixed32(self, value: int) -> 'Writer':
        return self._fixed('<I', value & _MASK_32)

    def write_sfixed32(self, value: int) -> 'Writer':
        return self._fixed('<i', value)

    def write_fixed64(self, value: int) -> 'Writer':
        return self._fixed('<Q', value & _MASK_64)

    def write_sfixed64(self, value: int) -> 'Writer':
        return self._fixed('<q', value)

    def write_float(self, value: float) -> 'Writer':
        return self._fixed('<f', value)

    def write_double(self, value: float) -> 'Writer':
        return self._fixed('<d', value)

    def write_bytes(self, value: bytes | bytearray) -> 'Writer':
        self._varint(len(value))
        self._buf += value
        return self

    def write_string(self, value: str) -> 'Writer':
        return self.write_bytes(value.encode('utf-8'))

    def fork(self) -> 'Writer':
        """Starts a length-delimited record, finished by ldelim()."""
        self._forks.append(self._buf)
        self._buf = bytearray()
        return self

    def ldelim(self) -> 'Writer':
        """Writes the data since the matching fork() with a length prefix."""
        if not self._forks:
            raise ValueError('ldelim() called without a matching fork()')
        record = self._buf
        self._buf = self._forks.pop()
        return self.write_bytes(record)

    def finish(self) -> bytes:
        if self._forks:
            raise ValueError(f'{len(self._forks)} fork() calls were not closed')
        return bytes(self._buf)


def to_enum(enum_type: type[_EnumT], number: int) -> _EnumT | int:
    """Converts a decoded number to an enum member.

    Numbers the enum does not declare are kept as plain ints so that they
    survive re-encoding.
    """
    try:
        return enum_type(number)
    except ValueError:
        return number


def long_to_number(value: int) -> int:
    """Checks that a 64-bit value fits the 53-bit safe integer range."""
    if value > MAX_SAFE_INTEGER or value < -MAX_SAFE_INTEGER:
        raise OverflowError(
            f'Value {value} is larger than MAX_SAFE_INTEGER '
            f'({MAX_SAFE_INTEGER})'
        )
    return value
