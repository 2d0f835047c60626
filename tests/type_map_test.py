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
"""Tests for the proto type map."""

import unittest

from protogen_testing import USERS_PROTO, all_files, file_proto

from pw_protogen.errors import UnresolvedTypeError
from pw_protogen.type_map import build_type_map, module_name, visit


class TypeMapTest(unittest.TestCase):
    """Tests building and querying a TypeMap."""

    def setUp(self) -> None:
        self._type_map = build_type_map(all_files(USERS_PROTO))

    def test_top_level_message(self) -> None:
        entry = self._type_map['.pgt.users.User']
        self.assertEqual(entry.module, 'pgt/users')
        self.assertEqual(entry.type_name, 'User')
        self.assertFalse(entry.is_enum())
        self.assertEqual(entry.file.name, 'pgt/users.proto')

    def test_nested_type_name_is_composed(self) -> None:
        entry = self._type_map['.pgt.users.User.AttributesEntry']
        self.assertEqual(entry.type_name, 'User_AttributesEntry')

    def test_enum(self) -> None:
        entry = self._type_map['.pgt.users.Role']
        self.assertTrue(entry.is_enum())
        self.assertEqual(
            [v.name for v in self._type_map.enum('.pgt.users.Role').value],
            ['ROLE_UNSPECIFIED', 'ROLE_ADMIN', 'ROLE_MEMBER'],
        )

    def test_well_known_types_map_to_runtime(self) -> None:
        for name in ('.google.protobuf.Timestamp', '.google.protobuf.Empty'):
            self.assertEqual(
                self._type_map[name].module, 'pw_protogen/runtime/well_known'
            )
        self.assertEqual(
            self._type_map['.google.protobuf.StringValue'].module,
            'google/protobuf/wrappers',
        )

    def test_unknown_name_raises(self) -> None:
        with self.assertRaises(UnresolvedTypeError):
            _ = self._type_map['.pgt.users.Missing']

        with self.assertRaises(KeyError):
            _ = self._type_map['.pgt.users.Missing']

    def test_get_returns_default_for_unknown_name(self) -> None:
        self.assertIsNone(self._type_map.get('.pgt.users.Missing'))
        self.assertIn('.pgt.users.User', self._type_map)
        self.assertNotIn('.pgt.users.Missing', self._type_map)

    def test_kind_checks(self) -> None:
        with self.assertRaises(UnresolvedTypeError):
            self._type_map.message('.pgt.users.Role')
        with self.assertRaises(UnresolvedTypeError):
            self._type_map.enum('.pgt.users.User')

    def test_no_package(self) -> None:
        type_map = build_type_map(
            [
                file_proto(
                    'name: "bare.proto" '
                    'message_type { name: "Outer" '
                    '  nested_type { name: "Inner" } }'
                )
            ]
        )
        self.assertEqual(type_map['.Outer'].module, 'bare')
        self.assertEqual(type_map['.Outer.Inner'].type_name, 'Outer_Inner')

    def test_duplicate_name_keeps_last(self) -> None:
        first = file_proto('name: "a.proto" message_type { name: "Same" }')
        second = file_proto('name: "b.proto" message_type { name: "Same" }')

        with self.assertLogs('pw_protogen.type_map', level='WARNING'):
            type_map = build_type_map([first, second])

        self.assertEqual(len(type_map), 1)
        self.assertEqual(type_map['.Same'].module, 'b')

    def test_iteration_follows_visiting_order(self) -> None:
        type_map = build_type_map([file_proto(USERS_PROTO)])
        self.assertEqual(
            list(type_map)[:4],
            [
                '.pgt.users.Role',
                '.pgt.users.Address',
                '.pgt.users.User',
                '.pgt.users.User.AttributesEntry',
            ],
        )


class VisitTest(unittest.TestCase):
    """Tests walking the types of a file."""

    def test_enums_before_messages_at_each_level(self) -> None:
        file = file_proto(
            'name: "v.proto" '
            'message_type { name: "A" '
            '  nested_type { name: "B" } enum_type { name: "E" } } '
            'enum_type { name: "Top" }'
        )
        seen = []
        visit(
            file,
            lambda _, type_name, proto_name: seen.append(
                ('message', type_name, proto_name)
            ),
            lambda _, type_name, proto_name: seen.append(
                ('enum', type_name, proto_name)
            ),
        )
        self.assertEqual(
            seen,
            [
                ('enum', 'Top', 'Top'),
                ('message', 'A', 'A'),
                ('enum', 'A_E', 'A.E'),
                ('message', 'A_B', 'A.B'),
            ],
        )

    def test_module_name(self) -> None:
        self.assertEqual(
            module_name(file_proto('name: "x/y/z.proto"')), 'x/y/z'
        )


if __name__ == '__main__':
    unittest.main()
