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
"""Tests for identifier helpers and the output buffer."""

import unittest

from pw_protogen import names
from pw_protogen.output_file import OutputFile


class NamesTest(unittest.TestCase):
    def test_snake_case(self) -> None:
        self.assertEqual(names.snake_case('BatchGetUsers'), 'batch_get_users')
        self.assertEqual(names.snake_case('HTTPServer'), 'http_server')
        self.assertEqual(names.snake_case('Outer_Inner'), 'outer_inner')
        self.assertEqual(names.snake_case('getV2'), 'get_v2')

    def test_json_name(self) -> None:
        self.assertEqual(names.json_name('zip_code'), 'zipCode')
        self.assertEqual(names.json_name('a__b'), 'aB')
        self.assertEqual(names.json_name('id'), 'id')

    def test_singular(self) -> None:
        self.assertEqual(names.singular('users'), 'user')
        self.assertEqual(names.singular('s'), 's')
        self.assertEqual(names.singular('data'), 'data')

    def test_safe_identifier(self) -> None:
        self.assertEqual(names.safe_identifier('from'), 'from_')
        self.assertEqual(names.safe_identifier('None'), 'None_')
        self.assertEqual(
            names.safe_identifier('encode', frozenset(['encode'])), 'encode_'
        )
        self.assertEqual(names.safe_identifier('name'), 'name')

    def test_modules(self) -> None:
        self.assertEqual(names.module_alias('pgt/my-users'), 'pgt_my_users')
        self.assertEqual(names.module_import_path('pgt/users'), 'pgt.users')


class OutputFileTest(unittest.TestCase):
    """Tests OutputFile."""

    def test_indentation_and_imports(self) -> None:
        output = OutputFile('pkg/a.py', 'pkg/a')
        output.write_banner('a.py generated')
        output.write_line(f'def f() -> {output.stdlib("typing")}.Any:')
        with output.indent():
            output.write_line(f'return {output.reference("pkg/b", "B")}()')
        output.write_line()
        output.write_line(f'x = {output.reference("pkg/a", "A")}')
        output.write_line(f'w = {output.runtime("wire")}.Writer()')

        self.assertEqual(
            output.content(),
            '# a.py generated\n'
            '"""Generated protobuf bindings; do not edit."""\n'
            '\n'
            'from __future__ import annotations\n'
            '\n'
            'import typing\n'
            '\n'
            'from pw_protogen.runtime import wire\n'
            '\n'
            'import pkg.b as pkg_b\n'
            '\n'
            'def f() -> typing.Any:\n'
            '    return pkg_b.B()\n'
            '\n'
            'x = A\n'
            'w = wire.Writer()\n',
        )
        self.assertEqual(output.name(), 'pkg/a.py')
        self.assertEqual(output.module(), 'pkg/a')


if __name__ == '__main__':
    unittest.main()
