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
"""Generates one Python module per .proto file."""

import logging
import os
import sys
from typing import Iterable

from google.protobuf import descriptor_pb2
from google.protobuf.compiler import plugin_pb2

from pw_protogen import codegen_enums, codegen_messages, codegen_services
from pw_protogen import fields, type_map as type_map_lib
from pw_protogen.errors import CodegenError
from pw_protogen.options import GenerationOptions
from pw_protogen.output_file import OutputFile
from pw_protogen.type_map import TypeMap

_LOG = logging.getLogger(__name__)

PLUGIN_NAME = 'pw_protogen'
PLUGIN_VERSION = '0.0.1'


def output_filename(file: descriptor_pb2.FileDescriptorProto) -> str:
    """The path of the module generated for a proto file."""
    return file.name.removesuffix('.proto') + '.py'


def generate_file(
    type_map: TypeMap,
    file: descriptor_pb2.FileDescriptorProto,
    options: GenerationOptions,
) -> OutputFile:
    """Generates the module for a proto file.

    All enums are written before any message, since message attributes
    default to enum members. Services follow the messages.

    Raises:
      CodegenError: A type or field of the file cannot be generated.
    """
    output = OutputFile(output_filename(file), type_map_lib.module_name(file))
    output.write_banner(
        f'{os.path.basename(output.name())} automatically generated by '
        f'{PLUGIN_NAME} {PLUGIN_VERSION}'
    )
    output.write_banner(f'source: {file.name}')

    package_prefix = f'{file.package}.' if file.package else ''
    enums: list[tuple[descriptor_pb2.EnumDescriptorProto, str]] = []
    messages: list[tuple[descriptor_pb2.DescriptorProto, str, str]] = []

    type_map_lib.visit(
        file,
        lambda message, type_name, proto_name: messages.append(
            (message, type_name, package_prefix + proto_name)
        ),
        lambda enum_desc, type_name, _: enums.append((enum_desc, type_name)),
    )

    sections = 0
    for enum_desc, type_name in enums:
        if sections:
            output.write_line()
            output.write_line()
        sections += 1
        codegen_enums.generate_code_for_enum(
            enum_desc, type_name, options, output
        )

    for message, type_name, full_name in messages:
        proto_fields = fields.classify_message(
            type_map, message, options, file.syntax
        )
        if sections:
            output.write_line()
            output.write_line()
        sections += 1
        codegen_messages.generate_message_class(
            type_map, type_name, full_name, proto_fields, options, output
        )

    if file.service:
        if sections:
            output.write_line()
            output.write_line()
        codegen_services.generate_services(type_map, file, options, output)

    _LOG.debug(
        'Generated %s: %d enums, %d messages, %d services',
        output.name(),
        len(enums),
        len(messages),
        len(file.service),
    )
    return output


def process_proto_files(
    proto_files: Iterable[descriptor_pb2.FileDescriptorProto],
    files_to_generate: Iterable[str],
    options: GenerationOptions,
) -> list[OutputFile] | None:
    """Generates modules for the named files.

    The type map is built from every file, including dependencies that are
    not generated. Returns None if any file fails to generate.
    """
    proto_files = list(proto_files)
    type_map = type_map_lib.build_type_map(proto_files)
    by_name = {file.name: file for file in proto_files}

    outputs = []
    for name in files_to_generate:
        try:
            outputs.append(generate_file(type_map, by_name[name], options))
        except CodegenError as e:
            print(e.formatted_message(), file=sys.stderr)
            return None

    return outputs


def process_proto_request(
    req: plugin_pb2.CodeGeneratorRequest,
    res: plugin_pb2.CodeGeneratorResponse,
    options: GenerationOptions,
) -> bool:
    """Handles a protoc CodeGeneratorRequest message.

    Generates code for the files in the request and writes the output to the
    specified CodeGeneratorResponse message. Nothing is written if any file
    fails.

    Args:
      req: A CodeGeneratorRequest for a proto compilation.
      res: A CodeGeneratorResponse to populate with the plugin's output.
      options: Resolved generation options.
    """
    output_files = process_proto_files(
        req.proto_file, req.file_to_generate, options
    )
    if output_files is None:
        return False

    for output_file in output_files:
        fd = res.file.add()
        fd.name = output_file.name()
        fd.content = output_file.content()

    return True
