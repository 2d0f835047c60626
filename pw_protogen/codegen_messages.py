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
"""Generates Python dataclasses and their codecs for proto messages.

Each message becomes a dataclass with five static methods: encode and decode
for the binary wire format, from_json and to_json for the canonical JSON
mapping, and from_partial, which builds a complete message from a mapping or
message holding some of its fields.
"""

from google.protobuf import descriptor_pb2

from pw_protogen import fields
from pw_protogen.codegen_enums import enum_function_name
from pw_protogen.fields import Cardinality, FieldKind, ProtoField
from pw_protogen.options import EnvOption, GenerationOptions, LongOption
from pw_protogen.output_file import OutputFile
from pw_protogen.type_map import TypeMap

TYPE_URL_PREFIX = 'type.googleapis.com/'

_FieldDescriptorProto = descriptor_pb2.FieldDescriptorProto


def _type_ref(field: ProtoField, output: OutputFile) -> str:
    assert field.type_entry is not None
    return output.reference(field.type_entry.module, field.type_entry.type_name)


def _enum_function(field: ProtoField, suffix: str, output: OutputFile) -> str:
    assert field.type_entry is not None
    return output.reference(
        field.type_entry.module,
        enum_function_name(field.type_entry.type_name, suffix),
    )


def _wrapper_codec(field: ProtoField, output: OutputFile) -> str:
    wrapper = field.descriptor.type_name.rsplit('.', 1)[-1]
    return f'{output.runtime("well_known")}.{wrapper}'


def value_type(
    field: ProtoField, options: GenerationOptions, output: OutputFile
) -> str:
    """The Python type of one value of a field (one element if repeated)."""
    match field.kind:
        case FieldKind.SCALAR | FieldKind.WRAPPER:
            return fields.scalar_python_type(field.field_type, options)
        case FieldKind.ENUM | FieldKind.MESSAGE:
            return _type_ref(field, output)
        case FieldKind.TIMESTAMP:
            if options.use_date:
                return f'{output.stdlib("datetime")}.datetime'
            return f'{output.runtime("well_known")}.Timestamp'
        case FieldKind.MAP:
            assert field.map_key is not None and field.map_value is not None
            key = value_type(field.map_key, options, output)
            value = value_type(field.map_value, options, output)
            return f'dict[{key}, {value}]'


def annotation(
    field: ProtoField, options: GenerationOptions, output: OutputFile
) -> str:
    """The annotation of a field's dataclass attribute."""
    element = value_type(field, options, output)

    if field.kind is FieldKind.MAP:
        return element
    if field.cardinality is Cardinality.REPEATED:
        return f'list[{element}]'
    if field.has_default_elision():
        return element
    return f'{element} | None'


def _attribute_default(
    type_map: TypeMap,
    field: ProtoField,
    options: GenerationOptions,
    output: OutputFile,
) -> str:
    dataclasses_module = output.stdlib('dataclasses')

    if field.kind is FieldKind.MAP:
        return f'{dataclasses_module}.field(default_factory=dict)'
    if field.cardinality is Cardinality.REPEATED:
        return f'{dataclasses_module}.field(default_factory=list)'

    if field.has_default_elision():
        default = fields.default_value(
            type_map, field.descriptor, options, output
        )
        if default == 'bytearray()':
            return f'{dataclasses_module}.field(default_factory=bytearray)'
        return default

    if options.use_optionals:
        return f'{dataclasses_module}.field(default=None, kw_only=True)'
    return 'None'


def generate_message_class(
    type_map: TypeMap,
    type_name: str,
    full_name: str,
    proto_fields: list[ProtoField],
    options: GenerationOptions,
    output: OutputFile,
) -> None:
    """Creates the dataclass for a message, including its codec methods."""
    output.write_line(f'@{output.stdlib("dataclasses")}.dataclass')
    output.write_line(f'class {type_name}:')

    with output.indent():
        declared_oneofs: set[str] = set()
        for field in proto_fields:
            if field.cardinality is Cardinality.UNION:
                assert field.oneof_attr is not None
                if field.oneof_attr in declared_oneofs:
                    continue
                declared_oneofs.add(field.oneof_attr)
                oneof_type = f'{output.runtime("oneof")}.Oneof'
                default = (
                    f'{output.stdlib("dataclasses")}.field('
                    'default=None, kw_only=True)'
                    if options.use_optionals
                    else 'None'
                )
                output.write_line(
                    f'{field.oneof_attr}: {oneof_type} | None = {default}'
                )
                continue

            output.write_line(
                f'{field.attr}: {annotation(field, options, output)} = '
                f'{_attribute_default(type_map, field, options, output)}'
            )

        if proto_fields:
            output.write_line()
        output.write_line(f"type_url = '{TYPE_URL_PREFIX}{full_name}'")

        if options.output_encode_methods:
            output.write_line()
            generate_encode(type_name, proto_fields, options, output)
            output.write_line()
            generate_decode(type_name, proto_fields, options, output)

        if options.output_json_methods:
            output.write_line()
            generate_from_json(type_name, proto_fields, options, output)
            output.write_line()
            generate_to_json(type_name, proto_fields, options, output)
            output.write_line()
            generate_from_partial(type_name, proto_fields, output)


def _nondefault_check(
    field: ProtoField, value: str, options: GenerationOptions
) -> str:
    """A condition that is true when a scalar or enum is not its default."""
    if field.kind is FieldKind.ENUM:
        assert field.type_entry is not None
        enum_desc = field.type_entry.descriptor
        assert isinstance(enum_desc, descriptor_pb2.EnumDescriptorProto)
        default = fields.enum_default_number(enum_desc)
        return f'{value} != {default}'

    match field.field_type:
        case _FieldDescriptorProto.TYPE_BOOL:
            return value
        case _FieldDescriptorProto.TYPE_BYTES:
            return f'len({value}) != 0'
        case _FieldDescriptorProto.TYPE_STRING:
            return f"{value} != ''"

    if field.is_long() and options.force_long is LongOption.STRING:
        return f"{value} != '0'"
    return f'{value} != 0'


def _scalar_write(
    field: ProtoField, value: str, options: GenerationOptions
) -> str:
    """The Writer call writing one scalar or enum value, without its tag."""
    method = fields.type_method(field.field_type)
    if field.is_long() and options.force_long is LongOption.STRING:
        value = f'int({value})'
    return f'write_{method}({value})'


def _length_delimited_write(
    field: ProtoField,
    value: str,
    tag: int,
    options: GenerationOptions,
    output: OutputFile,
) -> str:
    """A statement writing one message, wrapper or timestamp value."""
    fork = f'writer.write_uint32({tag}).fork()'

    match field.kind:
        case FieldKind.MESSAGE:
            codec = _type_ref(field, output)
        case FieldKind.WRAPPER:
            codec = _wrapper_codec(field, output)
            if field.is_long() and options.force_long is LongOption.STRING:
                value = f'int({value})'
        case FieldKind.TIMESTAMP:
            well_known = output.runtime('well_known')
            codec = f'{well_known}.Timestamp'
            if options.use_date:
                value = f'{well_known}.to_timestamp({value})'
        case _:
            raise AssertionError(f'{field.kind} is not length-delimited')

    return f'{codec}.encode({value}, {fork}).ldelim()'


def _write_value(
    field: ProtoField,
    value: str,
    options: GenerationOptions,
    output: OutputFile,
) -> str:
    """A statement writing one tagged value of a non-map field."""
    tag = field.tag()
    if field.kind in (FieldKind.SCALAR, FieldKind.ENUM):
        write = _scalar_write(field, value, options)
        return f'writer.write_uint32({tag}).{write}'
    return _length_delimited_write(field, value, tag, options, output)


def generate_encode(
    type_name: str,
    proto_fields: list[ProtoField],
    options: GenerationOptions,
    output: OutputFile,
) -> None:
    """Creates the encode() method of a message.

    Fields are written in declaration order. Singular scalars and enums at
    their default value are not written; fields with explicit presence are
    written whenever they are set.
    """
    wire = output.runtime('wire')

    output.write_line('@staticmethod')
    output.write_line('def encode(')
    with output.indent():
        output.write_line(
            f'message: {type_name}, writer: {wire}.Writer | None = None'
        )
    output.write_line(f') -> {wire}.Writer:')

    with output.indent():
        output.write_line('if writer is None:')
        with output.indent():
            output.write_line(f'writer = {wire}.Writer()')

        for field in proto_fields:
            value = f'message.{field.attr}'

            match field.cardinality:
                case Cardinality.REPEATED:
                    _encode_repeated(field, value, options, output)
                    continue
                case Cardinality.UNION:
                    oneof_value = f'message.{field.oneof_attr}'
                    output.write_line(
                        f'if {oneof_value} is not None and '
                        f"{oneof_value}.case == '{field.name}':"
                    )
                    value = f'{oneof_value}.value'
                case Cardinality.SINGULAR if field.has_default_elision():
                    condition = _nondefault_check(field, value, options)
                    output.write_line(f'if {condition}:')
                case _:
                    output.write_line(f'if {value} is not None:')

            with output.indent():
                output.write_line(_write_value(field, value, options, output))

        output.write_line('return writer')


def _encode_repeated(
    field: ProtoField,
    value: str,
    options: GenerationOptions,
    output: OutputFile,
) -> None:
    if field.kind is FieldKind.MAP:
        entry = _type_ref(field, output)
        output.write_line(f'for key, value in {value}.items():')
        with output.indent():
            output.write_line(f'{entry}.encode(')
            with output.indent():
                output.write_line(f'{entry}(key=key, value=value),')
                output.write_line(f'writer.write_uint32({field.tag()}).fork(),')
            output.write_line(').ldelim()')
        return

    if field.packed:
        output.write_line(f'if {value}:')
        with output.indent():
            tag = field.tag(fields.WIRE_LENGTH_DELIMITED)
            output.write_line(f'writer.write_uint32({tag}).fork()')
            output.write_line(f'for v in {value}:')
            with output.indent():
                write = _scalar_write(field, 'v', options)
                output.write_line(f'writer.{write}')
            output.write_line('writer.ldelim()')
        return

    output.write_line(f'for v in {value}:')
    with output.indent():
        output.write_line(_write_value(field, 'v', options, output))


def _long_value(
    field: ProtoField,
    value: str,
    options: GenerationOptions,
    output: OutputFile,
) -> str:
    """Converts a decoded 64-bit integer to its configured representation."""
    if not field.is_long():
        return value
    match options.force_long:
        case LongOption.NUMBER:
            return f'{output.runtime("wire")}.long_to_number({value})'
        case LongOption.STRING:
            return f'str({value})'
    return value


def _bytes_value(
    field: ProtoField, value: str, options: GenerationOptions
) -> str:
    if field.is_bytes() and options.env is EnvOption.BYTEARRAY:
        return f'bytearray({value})'
    return value


def _read_value(
    field: ProtoField, options: GenerationOptions, output: OutputFile
) -> str:
    """An expression reading one value of a field from `reader`."""
    length = 'reader.read_uint32()'

    match field.kind:
        case FieldKind.SCALAR:
            value = f'reader.read_{fields.type_method(field.field_type)}()'
            value = _long_value(field, value, options, output)
            return _bytes_value(field, value, options)
        case FieldKind.ENUM:
            wire = output.runtime('wire')
            enum_type = _type_ref(field, output)
            return f'{wire}.to_enum({enum_type}, reader.read_int32())'
        case FieldKind.MESSAGE | FieldKind.MAP:
            return f'{_type_ref(field, output)}.decode(reader, {length})'
        case FieldKind.WRAPPER:
            value = f'{_wrapper_codec(field, output)}.decode(reader, {length})'
            value = _long_value(field, value, options, output)
            return _bytes_value(field, value, options)
        case FieldKind.TIMESTAMP:
            well_known = output.runtime('well_known')
            value = f'{well_known}.Timestamp.decode(reader, {length})'
            if options.use_date:
                return f'{well_known}.from_timestamp({value})'
            return value


def generate_decode(
    type_name: str,
    proto_fields: list[ProtoField],
    options: GenerationOptions,
    output: OutputFile,
) -> None:
    """Creates the decode() method of a message.

    The message starts out with every field at its default. Unknown fields
    are skipped. Repeated scalars are accepted both packed and unpacked.
    """
    wire = output.runtime('wire')

    output.write_line('@staticmethod')
    output.write_line('def decode(')
    with output.indent():
        output.write_line(
            f'data: bytes | bytearray | {wire}.Reader, '
            'length: int | None = None'
        )
    output.write_line(f') -> {type_name}:')

    with output.indent():
        output.write_line(f'reader = {wire}.Reader.create(data)')
        output.write_line(
            'end = reader.len if length is None else reader.pos + length'
        )
        output.write_line(f'message = {type_name}()')
        output.write_line('while reader.pos < end:')
        with output.indent():
            output.write_line('tag = reader.read_uint32()')
            output.write_line('match tag >> 3:')
            with output.indent():
                for field in proto_fields:
                    output.write_line(f'case {field.number}:')
                    with output.indent():
                        _decode_field(field, options, output)
                output.write_line('case _:')
                with output.indent():
                    output.write_line('reader.skip_type(tag & 7)')
        output.write_line('return message')


def _decode_field(
    field: ProtoField, options: GenerationOptions, output: OutputFile
) -> None:
    target = f'message.{field.attr}'
    value = _read_value(field, options, output)

    match field.cardinality:
        case Cardinality.REPEATED if field.kind is FieldKind.MAP:
            output.write_line(f'entry = {value}')
            output.write_line('if entry.value is not None:')
            with output.indent():
                output.write_line(f'{target}[entry.key] = entry.value')
        case Cardinality.REPEATED if fields.is_packable(field.descriptor.type):
            output.write_line(f'if tag & 7 == {fields.WIRE_LENGTH_DELIMITED}:')
            with output.indent():
                output.write_line('end2 = reader.read_uint32() + reader.pos')
                output.write_line('while reader.pos < end2:')
                with output.indent():
                    output.write_line(f'{target}.append({value})')
            output.write_line('else:')
            with output.indent():
                output.write_line(f'{target}.append({value})')
        case Cardinality.REPEATED:
            output.write_line(f'{target}.append({value})')
        case Cardinality.UNION:
            oneof = output.runtime('oneof')
            output.write_line(
                f'message.{field.oneof_attr} = '
                f"{oneof}.Oneof('{field.name}', {value})"
            )
        case _:
            output.write_line(f'{target} = {value}')


def _scalar_from_json(
    field: ProtoField,
    value: str,
    options: GenerationOptions,
    output: OutputFile,
) -> str:
    match fields.scalar_python_type(field.field_type, options):
        case 'bytes':
            return f'{output.runtime("json_format")}.bytes_from_base64({value})'
        case 'bytearray':
            json_format = output.runtime('json_format')
            return f'bytearray({json_format}.bytes_from_base64({value}))'
        case python_type:
            return f'{python_type}({value})'


def _from_json_value(
    field: ProtoField,
    value: str,
    options: GenerationOptions,
    output: OutputFile,
) -> str:
    """An expression converting one JSON value to a field value."""
    match field.kind:
        case FieldKind.SCALAR | FieldKind.WRAPPER:
            return _scalar_from_json(field, value, options, output)
        case FieldKind.ENUM:
            return f'{_enum_function(field, "from_json", output)}({value})'
        case FieldKind.MESSAGE:
            return f'{_type_ref(field, output)}.from_json({value})'
        case FieldKind.TIMESTAMP:
            json_format = output.runtime('json_format')
            if options.use_date:
                return f'{json_format}.datetime_from_json({value})'
            return f'{json_format}.timestamp_from_json({value})'
    raise AssertionError(f'No JSON conversion for {field.kind}')


def _map_key_from_json(
    field: ProtoField, key: str, options: GenerationOptions
) -> str:
    """Converts a JSON object key back to a map key."""
    match fields.scalar_python_type(field.field_type, options):
        case 'str':
            return key
        case 'bool':
            return f"{key} == 'true'"
    return f'int({key})'


def generate_from_json(
    type_name: str,
    proto_fields: list[ProtoField],
    options: GenerationOptions,
    output: OutputFile,
) -> None:
    """Creates the from_json() method of a message.

    Properties that are missing or null leave the field at its default.
    """
    typing = output.stdlib('typing')

    output.write_line('@staticmethod')
    output.write_line(f'def from_json(obj: {typing}.Any) -> {type_name}:')
    with output.indent():
        output.write_line(f'message = {type_name}()')

        for field in proto_fields:
            source = f"obj['{field.json_name}']"
            output.write_line(f"if obj.get('{field.json_name}') is not None:")

            with output.indent():
                match field.cardinality:
                    case Cardinality.REPEATED if field.kind is FieldKind.MAP:
                        assert field.map_key and field.map_value
                        key = _map_key_from_json(field.map_key, 'key', options)
                        value = _from_json_value(
                            field.map_value, 'value', options, output
                        )
                        output.write_line(f'message.{field.attr} = {{')
                        with output.indent():
                            output.write_line(f'{key}: {value}')
                            output.write_line(
                                f'for key, value in {source}.items()'
                            )
                        output.write_line('}')
                    case Cardinality.REPEATED:
                        value = _from_json_value(field, 'e', options, output)
                        output.write_line(
                            f'message.{field.attr} = '
                            f'[{value} for e in {source}]'
                        )
                    case Cardinality.UNION:
                        value = _from_json_value(field, source, options, output)
                        oneof = output.runtime('oneof')
                        output.write_line(
                            f'message.{field.oneof_attr} = '
                            f"{oneof}.Oneof('{field.name}', {value})"
                        )
                    case _:
                        value = _from_json_value(field, source, options, output)
                        output.write_line(f'message.{field.attr} = {value}')

        output.write_line('return message')


def _to_json_value(
    field: ProtoField,
    value: str,
    options: GenerationOptions,
    output: OutputFile,
) -> str:
    """An expression converting one field value to JSON, the inverse of
    _from_json_value."""
    match field.kind:
        case FieldKind.SCALAR | FieldKind.WRAPPER:
            if field.is_bytes():
                json_format = output.runtime('json_format')
                return f'{json_format}.base64_from_bytes({value})'
            if field.is_long() and options.force_long is LongOption.LONG:
                return f'str({value})'
            return value
        case FieldKind.ENUM:
            return f'{_enum_function(field, "to_json", output)}({value})'
        case FieldKind.MESSAGE:
            return f'{_type_ref(field, output)}.to_json({value})'
        case FieldKind.TIMESTAMP:
            json_format = output.runtime('json_format')
            if options.use_date:
                return f'{json_format}.datetime_to_json({value})'
            return f'{json_format}.timestamp_to_json({value})'
    raise AssertionError(f'No JSON conversion for {field.kind}')


def generate_to_json(
    type_name: str,
    proto_fields: list[ProtoField],
    options: GenerationOptions,
    output: OutputFile,
) -> None:
    """Creates the to_json() method of a message.

    Unset optional fields are omitted; repeated and map fields are always
    present.
    """
    typing = output.stdlib('typing')

    output.write_line('@staticmethod')
    output.write_line(
        f'def to_json(message: {type_name}) -> dict[str, {typing}.Any]:'
    )
    with output.indent():
        output.write_line(f'obj: dict[str, {typing}.Any] = {{}}')

        for field in proto_fields:
            target = f"obj['{field.json_name}']"
            source = f'message.{field.attr}'

            match field.cardinality:
                case Cardinality.REPEATED if field.kind is FieldKind.MAP:
                    assert field.map_value is not None
                    json_format = output.runtime('json_format')
                    value = _to_json_value(
                        field.map_value, 'value', options, output
                    )
                    output.write_line(f'{target} = {{')
                    with output.indent():
                        output.write_line(
                            f'{json_format}.map_key_to_json(key): {value}'
                        )
                        output.write_line(f'for key, value in {source}.items()')
                    output.write_line('}')
                case Cardinality.REPEATED:
                    value = _to_json_value(field, 'e', options, output)
                    if value == 'e':
                        output.write_line(f'{target} = list({source})')
                    else:
                        output.write_line(
                            f'{target} = [{value} for e in {source}]'
                        )
                case Cardinality.UNION:
                    oneof_value = f'message.{field.oneof_attr}'
                    output.write_line(
                        f'if {oneof_value} is not None and '
                        f"{oneof_value}.case == '{field.name}':"
                    )
                    with output.indent():
                        value = _to_json_value(
                            field, f'{oneof_value}.value', options, output
                        )
                        output.write_line(f'{target} = {value}')
                case _:
                    output.write_line(f'if {source} is not None:')
                    with output.indent():
                        value = _to_json_value(field, source, options, output)
                        output.write_line(f'{target} = {value}')

        output.write_line('return obj')


def _from_partial_value(
    field: ProtoField, value: str, output: OutputFile
) -> str:
    if field.kind is FieldKind.MESSAGE:
        return f'{_type_ref(field, output)}.from_partial({value})'
    return value


def generate_from_partial(
    type_name: str,
    proto_fields: list[ProtoField],
    output: OutputFile,
) -> None:
    """Creates the from_partial() method of a message.

    The input holds native values keyed by attribute name, so only nested
    messages, lists and maps are rebuilt.
    """
    typing = output.stdlib('typing')
    json_format = output.runtime('json_format')

    output.write_line('@staticmethod')
    output.write_line(f'def from_partial(obj: {typing}.Any) -> {type_name}:')
    with output.indent():
        output.write_line(f'obj = {json_format}.partial_fields(obj)')
        output.write_line(f'message = {type_name}()')

        read_oneofs: set[str] = set()
        for field in proto_fields:
            source = f"obj['{field.attr}']"

            if field.cardinality is Cardinality.UNION:
                oneof_attr = field.oneof_attr
                assert oneof_attr is not None
                local = f'oneof_{oneof_attr}'
                if oneof_attr not in read_oneofs:
                    read_oneofs.add(oneof_attr)
                    output.write_line(
                        f'{local} = {json_format}.partial_oneof('
                        f"obj.get('{oneof_attr}'))"
                    )
                output.write_line(
                    f'if {local} is not None '
                    f"and {local}.case == '{field.name}' "
                    f'and {local}.value is not None:'
                )
                with output.indent():
                    value = _from_partial_value(field, f'{local}.value', output)
                    oneof = output.runtime('oneof')
                    output.write_line(
                        f'message.{oneof_attr} = '
                        f"{oneof}.Oneof('{field.name}', {value})"
                    )
                continue

            output.write_line(f"if obj.get('{field.attr}') is not None:")
            with output.indent():
                if field.kind is FieldKind.MAP:
                    assert field.map_value is not None
                    value = _from_partial_value(
                        field.map_value, 'value', output
                    )
                    output.write_line(f'message.{field.attr} = {{')
                    with output.indent():
                        output.write_line(f'key: {value}')
                        output.write_line(f'for key, value in {source}.items()')
                        output.write_line('if value is not None')
                    output.write_line('}')
                elif field.cardinality is Cardinality.REPEATED:
                    value = _from_partial_value(field, 'e', output)
                    if value == 'e':
                        output.write_line(
                            f'message.{field.attr} = list({source})'
                        )
                    else:
                        output.write_line(
                            f'message.{field.attr} = '
                            f'[{value} for e in {source}]'
                        )
                else:
                    value = _from_partial_value(field, source, output)
                    output.write_line(f'message.{field.attr} = {value}')

        output.write_line('return message')
