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
"""Options controlling the shape of the generated code."""

import argparse
import dataclasses
from dataclasses import dataclass
import enum
import logging

_LOG = logging.getLogger(__name__)


class LongOption(enum.Enum):
    """Representation of 64-bit integer fields."""

    NUMBER = 'number'
    LONG = 'long'
    STRING = 'string'


class EnvOption(enum.Enum):
    """Representation of bytes fields."""

    BYTES = 'bytes'
    BYTEARRAY = 'bytearray'
    BOTH = 'both'


class OneofOption(enum.Enum):
    PROPERTIES = 'properties'
    UNIONS = 'unions'


class ClientImplOption(enum.Enum):
    NONE = 'none'
    DEFAULT = 'default'
    WEB = 'web'


@dataclass(frozen=True)
class GenerationOptions:
    """Fully resolved generation options.

    Instances are built once per run by resolve_options(), which applies every
    implication between flags. Code generators only read these values.
    """

    use_context: bool = False
    force_long: LongOption = LongOption.NUMBER
    use_optionals: bool = False
    use_date: bool = True
    oneof: OneofOption = OneofOption.PROPERTIES
    lower_case_service_methods: bool = False
    output_encode_methods: bool = True
    output_json_methods: bool = True
    string_enums: bool = False
    output_client_impl: ClientImplOption = ClientImplOption.DEFAULT
    return_observable: bool = False
    add_unrecognized_enum: bool = True
    env: EnvOption = EnvOption.BOTH
    controller: bool = False


def resolve_options(**requested) -> GenerationOptions:
    """Builds GenerationOptions from requested values, applying implications.

    Controller mode turns service method names to snake_case and disables the
    codecs, the client implementation and datetime timestamps. Observable
    returns exist only in controller mode. String enums cannot be encoded to
    the wire, so they are honored only without encode methods. The web client
    takes no request context.
    """
    options = GenerationOptions(**requested)
    changes: dict = {}

    if options.controller:
        changes.update(
            lower_case_service_methods=True,
            output_encode_methods=False,
            output_json_methods=False,
            output_client_impl=ClientImplOption.NONE,
            use_date=False,
        )
    elif options.return_observable:
        _LOG.warning('return_observable is only used with controller=true')
        changes['return_observable'] = False

    encode_methods = changes.get(
        'output_encode_methods', options.output_encode_methods
    )
    json_methods = changes.get(
        'output_json_methods', options.output_json_methods
    )
    client_impl = changes.get('output_client_impl', options.output_client_impl)

    if options.string_enums and encode_methods:
        _LOG.warning(
            'string_enums requires output_encode_methods=false; '
            'generating numeric enums'
        )
        changes['string_enums'] = False

    if client_impl is ClientImplOption.DEFAULT and not encode_methods:
        _LOG.warning('The default client needs encode methods; disabling it')
        changes['output_client_impl'] = ClientImplOption.NONE
    elif client_impl is ClientImplOption.WEB and not (
        encode_methods and json_methods
    ):
        _LOG.warning(
            'The web client needs encode and JSON methods; disabling it'
        )
        changes['output_client_impl'] = ClientImplOption.NONE

    if (
        changes.get('output_client_impl', client_impl)
        is ClientImplOption.WEB
        and options.use_context
    ):
        _LOG.warning('The web client does not pass a context; ignoring it')
        changes['use_context'] = False

    return dataclasses.replace(options, **changes)


def options_from_args(args: argparse.Namespace) -> GenerationOptions:
    """Converts parsed plugin parameters into resolved options."""
    return resolve_options(
        use_context=args.context,
        force_long=args.force_long,
        use_optionals=args.use_optionals,
        use_date=args.use_date,
        oneof=args.oneof,
        lower_case_service_methods=args.lower_case_service_methods,
        output_encode_methods=args.output_encode_methods,
        output_json_methods=args.output_json_methods,
        string_enums=args.string_enums,
        output_client_impl=args.output_client_impl,
        return_observable=args.return_observable,
        add_unrecognized_enum=args.unrecognized_enum,
        env=args.env,
        controller=args.controller,
    )
