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
"""Recognizes batch RPCs that can back a per-key accessor.

A method named Batch<Something> whose request has exactly one field, which is
repeated, and whose response has exactly one field, which is repeated or a
map, is a batch method. For each one, generated clients gain an accessor that
loads a single key through a request-coalescing DataLoader.
"""

from dataclasses import dataclass
import enum
import logging

from google.protobuf import descriptor_pb2

from pw_protogen import fields, names
from pw_protogen.fields import FieldKind, ProtoField
from pw_protogen.options import GenerationOptions
from pw_protogen.type_map import TypeEntry, TypeMap

_LOG = logging.getLogger(__name__)

BATCH_PREFIX = 'Batch'
GET_PREFIX = 'Get'

# Names used inside generated accessors.
_ACCESSOR_LOCALS = frozenset(
    ['self', 'ctx', 'keys', 'load_batch', 'loader', 'response']
)


class BatchStatus(enum.Enum):
    NOT_BATCH = 1
    BATCH = 2
    # Shaped like a batch method, but a per-key accessor would be incorrect.
    REJECTED = 3


@dataclass(frozen=True)
class BatchMethod:
    """A detected batch method and the accessor synthesized for it."""

    method: descriptor_pb2.MethodDescriptorProto
    unique_identifier: str
    single_method_name: str
    request: TypeEntry
    input_field: ProtoField
    output_field: ProtoField
    map_type: bool

    @property
    def input_field_name(self) -> str:
        return self.input_field.attr

    @property
    def output_field_name(self) -> str:
        return self.output_field.attr

    @property
    def key_name(self) -> str:
        """Name of the accessor's parameter: the singular input field."""
        return names.safe_identifier(
            names.singular(self.input_field.name), _ACCESSOR_LOCALS
        )

    def output_element(self) -> ProtoField:
        """The field describing one value of the response."""
        if self.map_type:
            assert self.output_field.map_value is not None
            return self.output_field.map_value
        return self.output_field


@dataclass(frozen=True)
class BatchDetection:
    status: BatchStatus
    batch_method: BatchMethod | None = None
    reason: str = ''


def service_full_name(
    file: descriptor_pb2.FileDescriptorProto,
    service: descriptor_pb2.ServiceDescriptorProto,
) -> str:
    if file.package:
        return f'{file.package}.{service.name}'
    return service.name


def method_name(name: str, options: GenerationOptions) -> str:
    """The Python name of a service method."""
    if options.lower_case_service_methods:
        name = names.snake_case(name)
    return names.safe_identifier(name)


def single_method_name(batch_method_name: str) -> str:
    """Derives the per-key accessor name: BatchGetUsers -> GetUser."""
    base = batch_method_name.removeprefix(BATCH_PREFIX)
    base = base.removeprefix(GET_PREFIX) or base
    return GET_PREFIX + names.singular(base)


def _single_repeated_field(message: descriptor_pb2.DescriptorProto) -> bool:
    return len(message.field) == 1 and fields.is_repeated(message.field[0])


def detect_batch_method(
    type_map: TypeMap,
    file: descriptor_pb2.FileDescriptorProto,
    service: descriptor_pb2.ServiceDescriptorProto,
    method: descriptor_pb2.MethodDescriptorProto,
    options: GenerationOptions,
) -> BatchDetection:
    """Decides whether a method is a batch method.

    Methods that match the name and shape rule but cannot be served by a
    per-key accessor are REJECTED rather than generated: the request field
    must hold plain keys, and a map response must be keyed by the same type
    as the request keys.
    """
    if not method.name.startswith(BATCH_PREFIX):
        return BatchDetection(BatchStatus.NOT_BATCH)
    if method.client_streaming or method.server_streaming:
        return BatchDetection(BatchStatus.NOT_BATCH)

    request = type_map[method.input_type]
    response = type_map[method.output_type]
    request_desc = type_map.message(method.input_type)
    response_desc = type_map.message(method.output_type)

    if not (
        _single_repeated_field(request_desc)
        and _single_repeated_field(response_desc)
    ):
        return BatchDetection(BatchStatus.NOT_BATCH)

    input_field = fields.classify(
        type_map,
        request_desc,
        request_desc.field[0],
        options,
        request.file.syntax,
    )
    output_field = fields.classify(
        type_map,
        response_desc,
        response_desc.field[0],
        options,
        response.file.syntax,
    )

    def reject(reason: str) -> BatchDetection:
        _LOG.warning(
            '%s.%s looks like a batch method but cannot be batched: %s',
            service_full_name(file, service),
            method.name,
            reason,
        )
        return BatchDetection(BatchStatus.REJECTED, reason=reason)

    if input_field.kind not in (FieldKind.SCALAR, FieldKind.ENUM):
        return reject(
            f'request field {input_field.name} must be a repeated scalar or '
            'enum to be used as keys'
        )

    map_type = output_field.kind is FieldKind.MAP
    if map_type:
        assert output_field.map_key is not None
        key_type = fields.scalar_python_type(
            output_field.map_key.field_type, options
        )
        input_type = (
            fields.scalar_python_type(input_field.field_type, options)
            if input_field.kind is FieldKind.SCALAR
            else 'int'
        )
        if key_type != input_type:
            return reject(
                f'response map {output_field.name} is keyed by {key_type} '
                f'but request field {input_field.name} holds {input_type}'
            )

    accessor = single_method_name(method.name)
    existing = {method_name(m.name, options) for m in service.method}
    if method_name(accessor, options) in existing:
        return reject(
            f'accessor {accessor} would replace a method of the same name'
        )

    return BatchDetection(
        BatchStatus.BATCH,
        BatchMethod(
            method=method,
            unique_identifier=(
                f'{service_full_name(file, service)}.{method.name}'
            ),
            single_method_name=accessor,
            request=request,
            input_field=input_field,
            output_field=output_field,
            map_type=map_type,
        ),
    )
