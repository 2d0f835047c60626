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
"""Generates Python enums and their JSON conversion functions."""

from google.protobuf import descriptor_pb2

from pw_protogen import fields, names
from pw_protogen.options import GenerationOptions
from pw_protogen.output_file import OutputFile

UNRECOGNIZED = 'UNRECOGNIZED'
UNRECOGNIZED_NUMBER = -1
UNKNOWN = 'UNKNOWN'


def enum_function_name(type_name: str, suffix: str) -> str:
    """Name of a module-level enum helper, e.g. user_kind_from_json."""
    return f'{names.snake_case(type_name)}_{suffix}'


def generate_enum(
    enum_desc: descriptor_pb2.EnumDescriptorProto,
    type_name: str,
    options: GenerationOptions,
    output: OutputFile,
) -> None:
    """Creates a Python enum class for a proto enum."""
    enum_module = output.stdlib('enum')
    if options.string_enums:
        output.write_line(f'class {type_name}(str, {enum_module}.Enum):')
    else:
        output.write_line(f'class {type_name}({enum_module}.IntEnum):')

    with output.indent():
        for value in enum_desc.value:
            member = fields.enum_member_name(value.name)
            if options.string_enums:
                output.write_line(f"{member} = '{value.name}'")
            else:
                output.write_line(f'{member} = {value.number}')

        if options.add_unrecognized_enum:
            if options.string_enums:
                output.write_line(f"{UNRECOGNIZED} = '{UNRECOGNIZED}'")
            else:
                output.write_line(f'{UNRECOGNIZED} = {UNRECOGNIZED_NUMBER}')


def generate_from_json_for_enum(
    enum_desc: descriptor_pb2.EnumDescriptorProto,
    type_name: str,
    options: GenerationOptions,
    output: OutputFile,
) -> None:
    """Creates the function converting a JSON name or number to the enum."""
    typing = output.stdlib('typing')
    function = enum_function_name(type_name, 'from_json')

    output.write_line(f'def {function}(obj: {typing}.Any) -> {type_name}:')
    with output.indent():
        output.write_line('match obj:')
        with output.indent():
            for value in enum_desc.value:
                member = fields.enum_member_name(value.name)
                output.write_line(f"case {value.number} | '{value.name}':")
                with output.indent():
                    output.write_line(f'return {type_name}.{member}')

            output.write_line('case _:')
            with output.indent():
                if options.add_unrecognized_enum:
                    output.write_line(f'return {type_name}.{UNRECOGNIZED}')
                else:
                    output.write_line('raise ValueError(')
                    with output.indent():
                        output.write_line(
                            f"f'Unrecognized enum value {{obj!r}} for enum "
                            f"{type_name}'"
                        )
                    output.write_line(')')


def generate_to_json_for_enum(
    enum_desc: descriptor_pb2.EnumDescriptorProto,
    type_name: str,
    options: GenerationOptions,
    output: OutputFile,
) -> None:
    """Creates the function returning the JSON name of an enum value.

    Values the enum does not declare are named 'UNKNOWN'.
    """
    raw_type = 'str' if options.string_enums else 'int'
    function = enum_function_name(type_name, 'to_json')

    output.write_line(f'def {function}(obj: {type_name} | {raw_type}) -> str:')
    with output.indent():
        output.write_line('match obj:')
        with output.indent():
            seen: set[int] = set()
            for value in enum_desc.value:
                # Numeric aliases share the first name declared for their
                # number.
                if not options.string_enums:
                    if value.number in seen:
                        continue
                    seen.add(value.number)
                member = fields.enum_member_name(value.name)
                output.write_line(f'case {type_name}.{member}:')
                with output.indent():
                    output.write_line(f"return '{value.name}'")

            output.write_line('case _:')
            with output.indent():
                output.write_line(f"return '{UNKNOWN}'")


def generate_code_for_enum(
    enum_desc: descriptor_pb2.EnumDescriptorProto,
    type_name: str,
    options: GenerationOptions,
    output: OutputFile,
) -> None:
    """Writes an enum and, if enabled, its JSON conversion functions."""
    generate_enum(enum_desc, type_name, options, output)

    if options.output_json_methods:
        output.write_line()
        output.write_line()
        generate_from_json_for_enum(enum_desc, type_name, options, output)
        output.write_line()
        output.write_line()
        generate_to_json_for_enum(enum_desc, type_name, options, output)
