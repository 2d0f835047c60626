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
"""Naming helpers for generated Python identifiers."""

import keyword
import re

_CAMEL_BOUNDARY = re.compile(r'((?<=[a-z0-9])[A-Z]|(?<!^)[A-Z](?=[a-z]))')


def snake_case(name: str) -> str:
    """Converts CamelCase or Mixed_Case names to snake_case."""
    words = [_CAMEL_BOUNDARY.sub(r'_\1', part) for part in name.split('_')]
    return '_'.join(word.lower() for word in words if word)


def json_name(field_name: str) -> str:
    """Derives the JSON name of a field the way protoc does.

    Underscores are removed and the following letter is capitalized.
    """
    result = []
    capitalize_next = False
    for char in field_name:
        if char == '_':
            capitalize_next = True
        elif capitalize_next:
            result.append(char.upper())
            capitalize_next = False
        else:
            result.append(char)
    return ''.join(result)


def singular(name: str) -> str:
    """Drops a trailing plural 's'."""
    if len(name) > 1 and name.endswith('s'):
        return name[:-1]
    return name


def safe_identifier(name: str, reserved: frozenset[str] = frozenset()) -> str:
    """Appends an underscore to names that are keywords or reserved."""
    if keyword.iskeyword(name):
        return name + '_'
    if name in reserved:
        return name + '_'
    return name


def module_alias(module: str) -> str:
    """Alias under which a generated module is imported by another one."""
    return module.replace('/', '_').replace('.', '_').replace('-', '_')


def module_import_path(module: str) -> str:
    return module.replace('/', '.')
