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
"""Tests for the wire format Reader and Writer."""

import enum
import unittest

from pw_protogen.runtime import wire


class _Color(enum.IntEnum):
    RED = 0
    BLUE = 2


class WriterTest(unittest.TestCase):
    """Tests encoding individual values."""

    def test_varints(self) -> None:
        self.assertEqual(wire.Writer().write_uint32(0).finish(), b'\x00')
        self.assertEqual(wire.Writer().write_uint32(300).finish(), b'\xac\x02')
        self.assertEqual(
            wire.Writer().write_int32(-1).finish(), b'\xff' * 9 + b'\x01'
        )
        self.assertEqual(
            wire.Writer().write_uint64(2**64 - 1).finish(),
            b'\xff' * 9 + b'\x01',
        )

    def test_zigzag(self) -> None:
        for value, encoded in ((0, 0), (-1, 1), (1, 2), (-2, 3)):
            with self.subTest(value=value):
                self.assertEqual(
                    wire.Writer().write_sint32(value).finish(), bytes([encoded])
                )
        self.assertEqual(
            wire.Writer().write_sint64(-(2**63)).finish(),
            b'\xff' * 9 + b'\x01',
        )

    def test_fixed_width(self) -> None:
        self.assertEqual(
            wire.Writer().write_fixed32(1).finish(), b'\x01\x00\x00\x00'
        )
        self.assertEqual(
            wire.Writer().write_sfixed64(-1).finish(), b'\xff' * 8
        )
        self.assertEqual(
            wire.Writer().write_double(1.0).finish(),
            b'\x00\x00\x00\x00\x00\x00\xf0\x3f',
        )

    def test_chained_writes(self) -> None:
        data = wire.Writer().write_uint32(10).write_string('hi').finish()
        self.assertEqual(data, b'\x0a\x02hi')

    def test_fork_and_ldelim(self) -> None:
        writer = wire.Writer()
        writer.write_uint32(10).fork()
        writer.write_uint32(8).write_uint32(150)
        writer.write_uint32(18).fork().write_string('x').ldelim()
        writer.ldelim()

        self.assertEqual(
            writer.finish(), b'\x0a\x07\x08\x96\x01\x12\x02\x01x'
        )

    def test_empty_fork(self) -> None:
        data = wire.Writer().write_uint32(10).fork().ldelim().finish()
        self.assertEqual(data, b'\x0a\x00')

    def test_unbalanced_forks(self) -> None:
        with self.assertRaises(ValueError):
            wire.Writer().ldelim()
        with self.assertRaises(ValueError):
            wire.Writer().fork().finish()


class ReaderTest(unittest.TestCase):
    """Tests decoding individual values."""

    def test_varints(self) -> None:
        self.assertEqual(wire.Reader(b'\xac\x02').read_uint32(), 300)
        self.assertEqual(
            wire.Reader(b'\xff' * 9 + b'\x01').read_int32(), -1
        )
        self.assertEqual(
            wire.Reader(b'\xff' * 9 + b'\x01').read_int64(), -1
        )
        self.assertEqual(
            wire.Reader(b'\xff' * 9 + b'\x01').read_uint64(), 2**64 - 1
        )

    def test_zigzag(self) -> None:
        reader = wire.Reader(b'\x00\x01\x02\x03')
        self.assertEqual(
            [reader.read_sint32() for _ in range(4)], [0, -1, 1, -2]
        )

    def test_values_written_by_writer(self) -> None:
        writer = wire.Writer()
        writer.write_sint64(-(2**40)).write_sfixed32(-7).write_float(0.5)
        writer.write_bool(True).write_bytes(b'\x00\x01').write_fixed64(2**63)

        reader = wire.Reader(writer.finish())
        self.assertEqual(reader.read_sint64(), -(2**40))
        self.assertEqual(reader.read_sfixed32(), -7)
        self.assertEqual(reader.read_float(), 0.5)
        self.assertTrue(reader.read_bool())
        self.assertEqual(reader.read_bytes(), b'\x00\x01')
        self.assertEqual(reader.read_fixed64(), 2**63)
        self.assertEqual(reader.pos, reader.len)

    def test_create_reuses_reader(self) -> None:
        reader = wire.Reader(b'')
        self.assertIs(wire.Reader.create(reader), reader)
        self.assertIsInstance(wire.Reader.create(bytearray(b'x')), wire.Reader)

    def test_truncated_input(self) -> None:
        with self.assertRaises(wire.DecodeError):
            wire.Reader(b'\x80').read_uint32()
        with self.assertRaises(wire.DecodeError):
            wire.Reader(b'\x05abc').read_bytes()
        with self.assertRaises(wire.DecodeError):
            wire.Reader(b'\x00\x00').read_fixed32()

    def test_overlong_varint(self) -> None:
        with self.assertRaises(wire.DecodeError):
            wire.Reader(b'\xff' * 11).read_uint64()

    def test_invalid_utf8(self) -> None:
        with self.assertRaises(wire.DecodeError):
            wire.Reader(b'\x01\xff').read_string()

    def test_skip_type(self) -> None:
        writer = wire.Writer()
        writer.write_uint64(2**63)
        writer.write_fixed64(1)
        writer.write_bytes(b'abc')
        writer.write_fixed32(1)
        # A group holding one varint field.
        writer.write_uint32((5 << 3) | 3).write_uint32(8).write_uint32(1)
        writer.write_uint32((5 << 3) | 4)
        writer.write_uint32(99)

        reader = wire.Reader(writer.finish())
        for wire_type in (
            wire.WireType.VARINT,
            wire.WireType.FIXED64,
            wire.WireType.LENGTH_DELIMITED,
            wire.WireType.FIXED32,
        ):
            reader.skip_type(wire_type)
        reader.skip_type(reader.read_uint32() & 7)
        self.assertEqual(reader.read_uint32(), 99)

    def test_invalid_wire_type(self) -> None:
        with self.assertRaises(wire.DecodeError):
            wire.Reader(b'\x00').skip_type(7)


class ConversionTest(unittest.TestCase):
    def test_to_enum(self) -> None:
        self.assertIs(wire.to_enum(_Color, 2), _Color.BLUE)
        self.assertEqual(wire.to_enum(_Color, 5), 5)

    def test_long_to_number(self) -> None:
        self.assertEqual(
            wire.long_to_number(wire.MAX_SAFE_INTEGER), wire.MAX_SAFE_INTEGER
        )
        self.assertEqual(wire.long_to_number(-(2**53) + 1), -(2**53) + 1)
        with self.assertRaises(OverflowError):
            wire.long_to_number(2**53)
        with self.assertRaises(OverflowError):
            wire.long_to_number(-(2**53))


if __name__ == '__main__':
    unittest.main()
