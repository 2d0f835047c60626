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
"""Defines a class used to write code to an output buffer."""

from pw_protogen import names

RUNTIME_PACKAGE = 'pw_protogen.runtime'


class OutputFile:
    """A buffer to which generated Python source is written.

    Besides the indented body, the file tracks the modules the body refers to
    and renders them as import statements above it.

    Example:

    ```
    output = OutputFile('hello.py', 'hello')
    output.write_line('def main() -> None:')
    with output.indent():
        output.write_line(f'{output.stdlib("sys")}.exit(0)')

    print(output.content())
    ```
    """

    INDENT_WIDTH = 4

    def __init__(self, filename: str, module: str = '') -> None:
        self._filename: str = filename
        self._module: str = module
        self._banner: list[str] = []
        self._content: list[str] = []
        self._indentation: int = 0
        self._stdlib_imports: set[str] = set()
        self._runtime_imports: set[str] = set()
        self._module_imports: dict[str, str] = {}

    def write_line(self, line: str = '') -> None:
        if line:
            self._content.append(' ' * self._indentation)
            self._content.append(line)
        self._content.append('\n')

    def write_banner(self, line: str) -> None:
        self._banner.append(f'# {line}' if line else '#')

    def indent(self) -> 'OutputFile._IndentationContext':
        """Increases the indentation level of the output."""
        return self._IndentationContext(self)

    def stdlib(self, module: str) -> str:
        """Imports a standard library module and returns its name."""
        self._stdlib_imports.add(module)
        return module

    def runtime(self, module: str) -> str:
        """Imports a pw_protogen runtime module and returns its name."""
        self._runtime_imports.add(module)
        return module

    def reference(self, module: str, name: str) -> str:
        """Returns an expression naming a symbol from a generated module."""
        if module == self._module:
            return name

        alias = names.module_alias(module)
        self._module_imports[alias] = names.module_import_path(module)
        return f'{alias}.{name}'

    def name(self) -> str:
        return self._filename

    def module(self) -> str:
        return self._module

    def content(self) -> str:
        lines = list(self._banner)
        lines.append('"""Generated protobuf bindings; do not edit."""')
        lines.append('')
        lines.append('from __future__ import annotations')
        lines.append('')

        if self._stdlib_imports:
            lines.extend(f'import {m}' for m in sorted(self._stdlib_imports))
            lines.append('')

        if self._runtime_imports:
            imported = ', '.join(sorted(self._runtime_imports))
            lines.append(f'from {RUNTIME_PACKAGE} import {imported}')
            lines.append('')

        if self._module_imports:
            lines.extend(
                f'import {path} as {alias}'
                for alias, path in sorted(self._module_imports.items())
            )
            lines.append('')

        return '\n'.join(lines) + '\n' + ''.join(self._content)

    class _IndentationContext:
        """Context that increases the output's indentation when it is active."""

        def __init__(self, output: 'OutputFile'):
            self._output = output

        def __enter__(self):
            self._output._indentation += OutputFile.INDENT_WIDTH

        def __exit__(self, typ, value, traceback):
            self._output._indentation -= OutputFile.INDENT_WIDTH
