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
"""pw_protogen compiler plugin.

This file implements a protobuf compiler plugin which generates Python modules
with dataclass messages, their binary and JSON codecs, and service clients.

Parameters are passed as a comma-separated list of key=value pairs:

  protoc --plugin=protoc-gen-pw_protogen --pw_protogen_out=out \\
      --pw_protogen_opt=context=true,force_long=string foo.proto
"""

from argparse import ArgumentParser, ArgumentTypeError, Namespace
import logging
from shlex import shlex
import sys

from google.protobuf.compiler import plugin_pb2

from pw_protogen import codegen, log
from pw_protogen.options import (
    ClientImplOption,
    EnvOption,
    LongOption,
    OneofOption,
    options_from_args,
)


def _bool(value: str) -> bool:
    match value.lower():
        case 'true':
            return True
        case 'false':
            return False
    raise ArgumentTypeError(f'expected true or false, got {value!r}')


def _log_level(value: str) -> int:
    try:
        return log.level_from_name(value)
    except ValueError as e:
        raise ArgumentTypeError(str(e)) from e


def _argument_parser() -> ArgumentParser:
    parser = ArgumentParser(prog='protoc-gen-pw_protogen')

    def flag(name: str, default: bool, help_text: str) -> None:
        parser.add_argument(
            f'--{name}',
            type=_bool,
            default=default,
            metavar='true|false',
            help=help_text,
        )

    flag(
        'context',
        False,
        'Pass a request context to service methods and generate batch '
        'accessors backed by DataLoaders',
    )
    flag(
        'use_optionals',
        False,
        'Make message and explicit-presence fields keyword-only',
    )
    flag(
        'use_date',
        True,
        'Represent google.protobuf.Timestamp as datetime.datetime',
    )
    flag(
        'lower_case_service_methods',
        False,
        'Name service methods in snake_case',
    )
    flag('output_encode_methods', True, 'Generate encode and decode')
    flag(
        'output_json_methods',
        True,
        'Generate from_json, to_json and from_partial',
    )
    flag('string_enums', False, 'Generate enums whose values are their names')
    flag(
        'return_observable',
        False,
        'Controllers return async iterators for unary methods',
    )
    flag(
        'unrecognized_enum',
        True,
        'Add an UNRECOGNIZED member to every enum',
    )
    flag('controller', False, 'Generate controller and client protocols')

    parser.add_argument(
        '--force_long',
        type=LongOption,
        default=LongOption.NUMBER,
        help='Representation of 64-bit integers: number, long or string',
    )
    parser.add_argument(
        '--oneof',
        type=OneofOption,
        default=OneofOption.PROPERTIES,
        help='Represent oneofs as independent properties or as unions',
    )
    parser.add_argument(
        '--output_client_impl',
        type=ClientImplOption,
        default=ClientImplOption.DEFAULT,
        help='Client implementation to generate: none, default or web',
    )
    parser.add_argument(
        '--env',
        type=EnvOption,
        default=EnvOption.BOTH,
        help='Representation of bytes fields: bytes, bytearray or both',
    )
    parser.add_argument(
        '--log_level',
        type=_log_level,
        default=logging.WARNING,
        help='Minimum level of the logs written to stderr',
    )

    return parser


def parse_parameter_options(parameter: str) -> Namespace:
    """Parses parameters passed through from protoc.

    These parameters come in via passing `--${NAME}_opt` parameters to protoc,
    where protoc-gen-${NAME} is the supplied name of the plugin. Each
    key=value item becomes a --key=value argument.
    """
    # protoc passes the custom arguments in shell quoted form, separated by
    # commas. Use shlex to split them, correctly handling quoted sections, with
    # equivalent options to IFS=","
    lex = shlex(parameter)
    lex.whitespace_split = True
    lex.whitespace = ','
    lex.commenters = ''
    args = [f'--{item.strip()}' for item in lex if item.strip()]

    return _argument_parser().parse_args(args)


def process_proto_request(
    req: plugin_pb2.CodeGeneratorRequest, res: plugin_pb2.CodeGeneratorResponse
) -> bool:
    """Handles a protoc CodeGeneratorRequest message.

    Generates code for the files in the request and writes the output to the
    specified CodeGeneratorResponse message.

    Args:
      req: A CodeGeneratorRequest for a proto compilation.
      res: A CodeGeneratorResponse to populate with the plugin's output.
    """
    args = parse_parameter_options(req.parameter)
    return codegen.process_proto_request(req, res, options_from_args(args))


def main() -> int:
    """Protobuf compiler plugin entrypoint.

    Reads a CodeGeneratorRequest proto from stdin and writes a
    CodeGeneratorResponse to stdout.
    """
    data = sys.stdin.buffer.read()
    request = plugin_pb2.CodeGeneratorRequest.FromString(data)
    response = plugin_pb2.CodeGeneratorResponse()

    log.install(parse_parameter_options(request.parameter).log_level)

    # Declare that this plugin supports optional fields in proto3.
    response.supported_features |= (  # type: ignore[attr-defined]
        response.FEATURE_PROTO3_OPTIONAL
    )  # type: ignore[attr-defined]

    if not process_proto_request(request, response):
        print('pw_protogen failed to generate protobuf code', file=sys.stderr)
        return 1

    sys.stdout.buffer.write(response.SerializeToString())
    return 0


if __name__ == '__main__':
    sys.exit(main())
