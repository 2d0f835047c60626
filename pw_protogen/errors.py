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
"""Errors raised while generating code from proto descriptors."""


class CodegenError(Exception):
    """A fatal problem with the input descriptors; generation is aborted."""

    def __init__(
        self,
        error_message: str,
        proto_path: str = '',
        field: str | None = None,
    ):
        super().__init__(f'pw_protogen codegen error: {error_message}')
        self.error_message = error_message
        self.proto_path = proto_path
        self.field = field

    def formatted_message(self) -> str:
        lines = [f'pw_protogen codegen error: {self.error_message}']

        if self.proto_path:
            lines.append(f'    at {self.proto_path}')

        if self.field is not None:
            lines.append(f'    in field {self.field}')

        return '\n'.join(lines)

    def __str__(self) -> str:
        return self.formatted_message()


class UnresolvedTypeError(CodegenError, KeyError):
    """A descriptor referenced a type that is not in the input file set."""

    def __init__(self, type_name: str, proto_path: str = ''):
        super().__init__(
            f'type {type_name} is not defined in any input file', proto_path
        )
        self.type_name = type_name


class UnhandledFieldError(CodegenError):
    """A field's type and label do not match any known field shape."""
