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
"""Classifies proto fields into the shapes the code generators handle.

Every field is classified exactly once into a ProtoField, which records its
FieldKind (what values it holds) and its Cardinality (how many and with what
presence). The code generators match on those two values instead of
re-inspecting the descriptor.
"""

from dataclasses import dataclass
import enum
import logging

from google.protobuf import descriptor_pb2

from pw_protogen import names
from pw_protogen.errors import UnhandledFieldError
from pw_protogen.options import (
    EnvOption,
    GenerationOptions,
    LongOption,
    OneofOption,
)
from pw_protogen.output_file import OutputFile
from pw_protogen.type_map import TypeEntry, TypeMap

_LOG = logging.getLogger(__name__)

FieldDescriptorProto = descriptor_pb2.FieldDescriptorProto

WIRE_VARINT = 0
WIRE_FIXED64 = 1
WIRE_LENGTH_DELIMITED = 2
WIRE_FIXED32 = 5

TIMESTAMP_TYPE = '.google.protobuf.Timestamp'
EMPTY_TYPE = '.google.protobuf.Empty'

# Wrapper messages are handled as their single scalar value.
WRAPPER_TYPES: dict[str, int] = {
    '.google.protobuf.DoubleValue': FieldDescriptorProto.TYPE_DOUBLE,
    '.google.protobuf.FloatValue': FieldDescriptorProto.TYPE_FLOAT,
    '.google.protobuf.Int64Value': FieldDescriptorProto.TYPE_INT64,
    '.google.protobuf.UInt64Value': FieldDescriptorProto.TYPE_UINT64,
    '.google.protobuf.Int32Value': FieldDescriptorProto.TYPE_INT32,
    '.google.protobuf.UInt32Value': FieldDescriptorProto.TYPE_UINT32,
    '.google.protobuf.BoolValue': FieldDescriptorProto.TYPE_BOOL,
    '.google.protobuf.StringValue': FieldDescriptorProto.TYPE_STRING,
    '.google.protobuf.BytesValue': FieldDescriptorProto.TYPE_BYTES,
}

# Suffix of the Reader.read_* / Writer.write_* method for each scalar type.
_TYPE_METHODS: dict[int, str] = {
    FieldDescriptorProto.TYPE_DOUBLE: 'double',
    FieldDescriptorProto.TYPE_FLOAT: 'float',
    FieldDescriptorProto.TYPE_INT64: 'int64',
    FieldDescriptorProto.TYPE_UINT64: 'uint64',
    FieldDescriptorProto.TYPE_INT32: 'int32',
    FieldDescriptorProto.TYPE_FIXED64: 'fixed64',
    FieldDescriptorProto.TYPE_FIXED32: 'fixed32',
    FieldDescriptorProto.TYPE_BOOL: 'bool',
    FieldDescriptorProto.TYPE_STRING: 'string',
    FieldDescriptorProto.TYPE_BYTES: 'bytes',
    FieldDescriptorProto.TYPE_UINT32: 'uint32',
    FieldDescriptorProto.TYPE_ENUM: 'int32',
    FieldDescriptorProto.TYPE_SFIXED32: 'sfixed32',
    FieldDescriptorProto.TYPE_SFIXED64: 'sfixed64',
    FieldDescriptorProto.TYPE_SINT32: 'sint32',
    FieldDescriptorProto.TYPE_SINT64: 'sint64',
}

_LONG_TYPES = frozenset(
    [
        FieldDescriptorProto.TYPE_INT64,
        FieldDescriptorProto.TYPE_UINT64,
        FieldDescriptorProto.TYPE_SINT64,
        FieldDescriptorProto.TYPE_FIXED64,
        FieldDescriptorProto.TYPE_SFIXED64,
    ]
)

# Names of generated message members that fields must not shadow, and the
# names the class body refers to for attribute defaults.
RESERVED_ATTRIBUTES = frozenset(
    [
        'encode',
        'decode',
        'from_json',
        'to_json',
        'from_partial',
        'type_url',
        'bytearray',
        'dataclasses',
        'dict',
        'list',
    ]
)


class FieldKind(enum.Enum):
    """What kind of value a field holds."""

    SCALAR = 1
    ENUM = 2
    MESSAGE = 3
    MAP = 4
    WRAPPER = 5
    TIMESTAMP = 6


class Cardinality(enum.Enum):
    """How many values a field holds and how its presence is tracked."""

    # One value; the default value is not written to the wire.
    SINGULAR = 1
    # One value or None: proto3 optional fields and oneof members rendered as
    # independent properties.
    OPTIONAL = 2
    REPEATED = 3
    # A member of a oneof rendered as one tagged-union attribute.
    UNION = 4


@dataclass(frozen=True)
class ProtoField:
    """A classified message field."""

    descriptor: descriptor_pb2.FieldDescriptorProto
    attr: str
    json_name: str
    kind: FieldKind
    cardinality: Cardinality
    packed: bool = False
    type_entry: TypeEntry | None = None
    oneof_attr: str | None = None
    wrapped_type: int = 0
    map_key: 'ProtoField | None' = None
    map_value: 'ProtoField | None' = None

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def number(self) -> int:
        return self.descriptor.number

    @property
    def field_type(self) -> int:
        """The scalar type of this field, looking through wrappers."""
        if self.kind is FieldKind.WRAPPER:
            return self.wrapped_type
        return self.descriptor.type

    def is_long(self) -> bool:
        return self.field_type in _LONG_TYPES

    def is_bytes(self) -> bool:
        return self.field_type == FieldDescriptorProto.TYPE_BYTES

    def tag(self, wire_type: int | None = None) -> int:
        """The encoded tag of this field.

        Without a wire type, the tag of a single unpacked value is returned.
        """
        if wire_type is None:
            wire_type = (
                basic_wire_type(self.descriptor.type)
                if self.kind in (FieldKind.SCALAR, FieldKind.ENUM)
                else WIRE_LENGTH_DELIMITED
            )
        return field_tag(self.number, wire_type)

    def has_default_elision(self) -> bool:
        """True if the field is skipped when it holds its default value."""
        return self.cardinality is Cardinality.SINGULAR and self.kind in (
            FieldKind.SCALAR,
            FieldKind.ENUM,
        )


def basic_wire_type(field_type: int) -> int:
    """Returns the wire type used for a single value of a field type."""
    match field_type:
        case (
            FieldDescriptorProto.TYPE_DOUBLE
            | FieldDescriptorProto.TYPE_FIXED64
            | FieldDescriptorProto.TYPE_SFIXED64
        ):
            return WIRE_FIXED64
        case (
            FieldDescriptorProto.TYPE_FLOAT
            | FieldDescriptorProto.TYPE_FIXED32
            | FieldDescriptorProto.TYPE_SFIXED32
        ):
            return WIRE_FIXED32
        case (
            FieldDescriptorProto.TYPE_INT32
            | FieldDescriptorProto.TYPE_UINT32
            | FieldDescriptorProto.TYPE_SINT32
            | FieldDescriptorProto.TYPE_INT64
            | FieldDescriptorProto.TYPE_UINT64
            | FieldDescriptorProto.TYPE_SINT64
            | FieldDescriptorProto.TYPE_BOOL
            | FieldDescriptorProto.TYPE_ENUM
        ):
            return WIRE_VARINT
        case (
            FieldDescriptorProto.TYPE_STRING
            | FieldDescriptorProto.TYPE_BYTES
            | FieldDescriptorProto.TYPE_MESSAGE
        ):
            return WIRE_LENGTH_DELIMITED

    raise UnhandledFieldError(f'unsupported field type {field_type}')


def is_packable(field_type: int) -> bool:
    """True for scalar types that may be packed into one length-delimited
    record when repeated."""
    return basic_wire_type(field_type) != WIRE_LENGTH_DELIMITED


def field_tag(number: int, wire_type: int) -> int:
    return (number << 3) | wire_type


def type_method(field_type: int) -> str:
    """Suffix of the wire.Reader/wire.Writer method for a scalar type."""
    try:
        return _TYPE_METHODS[field_type]
    except KeyError:
        raise UnhandledFieldError(
            f'unsupported field type {field_type}'
        ) from None


def is_message(field: descriptor_pb2.FieldDescriptorProto) -> bool:
    return field.type == FieldDescriptorProto.TYPE_MESSAGE


def is_enum(field: descriptor_pb2.FieldDescriptorProto) -> bool:
    return field.type == FieldDescriptorProto.TYPE_ENUM


def is_repeated(field: descriptor_pb2.FieldDescriptorProto) -> bool:
    return field.label == FieldDescriptorProto.LABEL_REPEATED


def is_within_oneof(field: descriptor_pb2.FieldDescriptorProto) -> bool:
    return field.HasField('oneof_index')


def is_within_oneof_that_should_be_union(
    options: GenerationOptions, field: descriptor_pb2.FieldDescriptorProto
) -> bool:
    return (
        is_within_oneof(field)
        and options.oneof is OneofOption.UNIONS
        and not field.proto3_optional
    )


def is_timestamp(field: descriptor_pb2.FieldDescriptorProto) -> bool:
    return field.type_name == TIMESTAMP_TYPE


def is_value_type(field: descriptor_pb2.FieldDescriptorProto) -> bool:
    return field.type_name in WRAPPER_TYPES


def is_empty_type(type_name: str) -> bool:
    return type_name == EMPTY_TYPE


def detect_map_type(
    type_map: TypeMap, field: descriptor_pb2.FieldDescriptorProto
) -> tuple[
    descriptor_pb2.FieldDescriptorProto, descriptor_pb2.FieldDescriptorProto
] | None:
    """Returns the (key, value) fields if the field is a map, else None."""
    if not (is_repeated(field) and is_message(field)):
        return None

    entry = type_map.message(field.type_name)
    if not entry.options.map_entry:
        return None

    if len(entry.field) != 2:
        raise UnhandledFieldError(
            f'map entry {field.type_name} must have exactly two fields',
            field=field.name,
        )

    fields = sorted(entry.field, key=lambda f: f.number)
    return fields[0], fields[1]


def is_packed(
    field: descriptor_pb2.FieldDescriptorProto, syntax: str
) -> bool:
    """True if a repeated scalar field is written packed."""
    if not is_repeated(field) or not is_packable(field.type):
        return False
    if field.options.HasField('packed'):
        return field.options.packed
    # protoc leaves the syntax of proto2 files empty.
    return syntax not in ('', 'proto2')


def scalar_python_type(field_type: int, options: GenerationOptions) -> str:
    """The Python type of a value of a scalar field type."""
    match field_type:
        case FieldDescriptorProto.TYPE_DOUBLE | FieldDescriptorProto.TYPE_FLOAT:
            return 'float'
        case FieldDescriptorProto.TYPE_BOOL:
            return 'bool'
        case FieldDescriptorProto.TYPE_STRING:
            return 'str'
        case FieldDescriptorProto.TYPE_BYTES:
            if options.env is EnvOption.BYTEARRAY:
                return 'bytearray'
            return 'bytes'

    if field_type in _LONG_TYPES:
        return 'str' if options.force_long is LongOption.STRING else 'int'

    if field_type in _TYPE_METHODS:
        return 'int'

    raise UnhandledFieldError(f'unsupported field type {field_type}')


def scalar_default(field_type: int, options: GenerationOptions) -> str:
    """A Python expression for the default value of a scalar field type."""
    match scalar_python_type(field_type, options):
        case 'float':
            return '0.0'
        case 'bool':
            return 'False'
        case 'bytes':
            return "b''"
        case 'bytearray':
            return 'bytearray()'
        case 'str':
            return "'0'" if field_type in _LONG_TYPES else "''"
        case _:
            return '0'


def enum_default_member(
    enum_desc: descriptor_pb2.EnumDescriptorProto,
) -> str:
    """Name of the default member: the one numbered 0, else the first."""
    for value in enum_desc.value:
        if value.number == 0:
            return enum_member_name(value.name)
    return enum_member_name(enum_desc.value[0].name)


def enum_default_number(
    enum_desc: descriptor_pb2.EnumDescriptorProto,
) -> int:
    for value in enum_desc.value:
        if value.number == 0:
            return 0
    return enum_desc.value[0].number


def enum_member_name(value_name: str) -> str:
    return names.safe_identifier(value_name)


def default_value(
    type_map: TypeMap,
    field: descriptor_pb2.FieldDescriptorProto,
    options: GenerationOptions,
    output: OutputFile,
) -> str:
    """A Python expression for the default value of a singular field.

    Message, wrapper and timestamp fields default to None.
    """
    if is_enum(field):
        entry = type_map[field.type_name]
        enum_ref = output.reference(entry.module, entry.type_name)
        member = enum_default_member(type_map.enum(field.type_name))
        return f'{enum_ref}.{member}'
    if is_message(field):
        return 'None'
    return scalar_default(field.type, options)


def classify(
    type_map: TypeMap,
    message: descriptor_pb2.DescriptorProto,
    field: descriptor_pb2.FieldDescriptorProto,
    options: GenerationOptions,
    syntax: str = 'proto3',
) -> ProtoField:
    """Computes the shape of one field of a message."""
    attr = names.safe_identifier(field.name, RESERVED_ATTRIBUTES)
    json_name = (
        field.json_name
        if field.HasField('json_name')
        else names.json_name(field.name)
    )

    if field.type == FieldDescriptorProto.TYPE_GROUP:
        raise UnhandledFieldError(
            'groups are not supported', message.name, field.name
        )
    if field.type not in _TYPE_METHODS and not is_message(field):
        raise UnhandledFieldError(
            f'unsupported field type {field.type}', message.name, field.name
        )

    if is_repeated(field):
        cardinality = Cardinality.REPEATED
    elif is_within_oneof_that_should_be_union(options, field):
        cardinality = Cardinality.UNION
    elif field.proto3_optional or is_within_oneof(field):
        cardinality = Cardinality.OPTIONAL
    else:
        cardinality = Cardinality.SINGULAR

    oneof_attr = None
    if is_within_oneof(field):
        oneof_name = message.oneof_decl[field.oneof_index].name
        oneof_attr = names.safe_identifier(oneof_name, RESERVED_ATTRIBUTES)

    type_entry = type_map[field.type_name] if field.type_name else None

    map_fields = detect_map_type(type_map, field)
    if map_fields is not None:
        assert type_entry is not None
        entry_desc = type_map.message(field.type_name)
        key, value = (
            classify(type_map, entry_desc, map_field, options, syntax)
            for map_field in map_fields
        )
        if key.kind is not FieldKind.SCALAR:
            raise UnhandledFieldError(
                'map keys must be scalars', message.name, field.name
            )
        return ProtoField(
            field,
            attr,
            json_name,
            FieldKind.MAP,
            cardinality,
            type_entry=type_entry,
            map_key=key,
            map_value=value,
        )

    if is_timestamp(field):
        kind = FieldKind.TIMESTAMP
    elif is_value_type(field):
        kind = FieldKind.WRAPPER
    elif is_message(field):
        kind = FieldKind.MESSAGE
    elif is_enum(field):
        kind = FieldKind.ENUM
    else:
        kind = FieldKind.SCALAR

    return ProtoField(
        field,
        attr,
        json_name,
        kind,
        cardinality,
        packed=is_packed(field, syntax),
        type_entry=type_entry,
        oneof_attr=oneof_attr,
        wrapped_type=WRAPPER_TYPES.get(field.type_name, 0),
    )


def classify_message(
    type_map: TypeMap,
    message: descriptor_pb2.DescriptorProto,
    options: GenerationOptions,
    syntax: str = 'proto3',
) -> list[ProtoField]:
    """Classifies every field of a message, in declaration order."""
    return [
        classify(type_map, message, field, options, syntax)
        for field in message.field
    ]
