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
"""Builds the table of every message and enum type in a generation run."""

from collections.abc import Callable, Iterable, Iterator, Mapping
import logging
from typing import NamedTuple, Union

from google.protobuf import descriptor_pb2

from pw_protogen.errors import UnresolvedTypeError

_LOG = logging.getLogger(__name__)

TYPE_SEPARATOR = '_'

Descriptor = Union[
    descriptor_pb2.DescriptorProto, descriptor_pb2.EnumDescriptorProto
]


class TypeEntry(NamedTuple):
    """Where a proto type is generated and what it is called there."""

    module: str
    type_name: str
    descriptor: Descriptor
    file: descriptor_pb2.FileDescriptorProto

    def is_enum(self) -> bool:
        return isinstance(self.descriptor, descriptor_pb2.EnumDescriptorProto)


class TypeMap(Mapping[str, TypeEntry]):
    """Immutable mapping of fully-qualified proto names to TypeEntry.

    Keys have a leading dot, as in FieldDescriptorProto.type_name:
    '.package.Outer.Inner'. Entries are stored in visiting order.
    """

    def __init__(self, entries: Iterable[tuple[str, TypeEntry]]) -> None:
        self._names: tuple[str, ...] = ()
        self._entries: tuple[TypeEntry, ...] = ()
        self._index: dict[str, int] = {}

        names: list[str] = []
        values: list[TypeEntry] = []
        for name, entry in entries:
            if name in self._index:
                _LOG.warning('Type %s is defined more than once', name)
                values[self._index[name]] = entry
                continue
            self._index[name] = len(values)
            names.append(name)
            values.append(entry)

        self._names = tuple(names)
        self._entries = tuple(values)

    def __getitem__(self, proto_name: str) -> TypeEntry:
        index = self._index.get(proto_name)
        if index is None:
            raise UnresolvedTypeError(proto_name)
        return self._entries[index]

    def __contains__(self, proto_name: object) -> bool:
        return proto_name in self._index

    def __iter__(self) -> Iterator[str]:
        return iter(self._names)

    def __len__(self) -> int:
        return len(self._entries)

    def message(self, proto_name: str) -> descriptor_pb2.DescriptorProto:
        """Returns the descriptor of a message type."""
        entry = self[proto_name]
        if entry.is_enum():
            raise UnresolvedTypeError(f'{proto_name} (expected a message)')
        assert isinstance(entry.descriptor, descriptor_pb2.DescriptorProto)
        return entry.descriptor

    def enum(self, proto_name: str) -> descriptor_pb2.EnumDescriptorProto:
        """Returns the descriptor of an enum type."""
        entry = self[proto_name]
        if not entry.is_enum():
            raise UnresolvedTypeError(f'{proto_name} (expected an enum)')
        assert isinstance(entry.descriptor, descriptor_pb2.EnumDescriptorProto)
        return entry.descriptor


# Well-known files whose types the runtime package provides.
RUNTIME_MODULES = {
    'google/protobuf/empty.proto': 'pw_protogen/runtime/well_known',
    'google/protobuf/timestamp.proto': 'pw_protogen/runtime/well_known',
}


def module_name(file: descriptor_pb2.FileDescriptorProto) -> str:
    """The generated module of a proto file: its path without '.proto'."""
    return RUNTIME_MODULES.get(file.name, file.name.removesuffix('.proto'))


def visit(
    parent: descriptor_pb2.FileDescriptorProto | descriptor_pb2.DescriptorProto,
    message_fn: Callable[
        [descriptor_pb2.DescriptorProto, str, str], None
    ],
    enum_fn: Callable[
        [descriptor_pb2.EnumDescriptorProto, str, str], None
    ] | None = None,
    type_prefix: str = '',
    proto_prefix: str = '',
) -> None:
    """Walks the types of a file or message depth-first.

    At each level, enums are visited before messages, and each message is
    followed by its nested types. The callbacks receive the descriptor, its
    composed Python name (Outer_Inner) and its dotted proto name (Outer.Inner).
    """
    if enum_fn is not None:
        for enum_desc in parent.enum_type:
            enum_fn(
                enum_desc,
                type_prefix + enum_desc.name,
                proto_prefix + enum_desc.name,
            )

    messages = (
        parent.message_type
        if isinstance(parent, descriptor_pb2.FileDescriptorProto)
        else parent.nested_type
    )
    for message in messages:
        type_name = type_prefix + message.name
        proto_name = proto_prefix + message.name
        message_fn(message, type_name, proto_name)
        visit(
            message,
            message_fn,
            enum_fn,
            type_name + TYPE_SEPARATOR,
            proto_name + '.',
        )


def build_type_map(
    files: Iterable[descriptor_pb2.FileDescriptorProto],
) -> TypeMap:
    """Indexes every message and enum of every file.

    The result is complete before any code is generated; lookups of names
    that are not in it raise UnresolvedTypeError.
    """
    entries: list[tuple[str, TypeEntry]] = []

    for file in files:
        module = module_name(file)
        prefix = f'.{file.package}.' if file.package else '.'

        def add(descriptor, type_name: str, proto_name: str) -> None:
            entries.append(
                (
                    prefix + proto_name,
                    TypeEntry(module, type_name, descriptor, file),
                )
            )

        visit(file, add, add)

    type_map = TypeMap(entries)
    _LOG.debug('Indexed %d proto types', len(type_map))
    return type_map
