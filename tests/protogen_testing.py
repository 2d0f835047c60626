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
"""Utilities for tests that generate and import code."""

import importlib
from pathlib import Path
import sys
import tempfile
from types import ModuleType
from typing import Iterable

from google.protobuf import (
    descriptor_pb2,
    descriptor_pool,
    empty_pb2,
    message_factory,
    text_format,
    timestamp_pb2,
    wrappers_pb2,
)

from pw_protogen import codegen
from pw_protogen.options import GenerationOptions, resolve_options
from pw_protogen.output_file import OutputFile

USERS_PROTO = """\
name: "pgt/users.proto"
package: "pgt.users"
syntax: "proto3"
dependency: "google/protobuf/timestamp.proto"
dependency: "google/protobuf/wrappers.proto"
enum_type {
  name: "Role"
  value { name: "ROLE_UNSPECIFIED" number: 0 }
  value { name: "ROLE_ADMIN" number: 1 }
  value { name: "ROLE_MEMBER" number: 2 }
}
message_type {
  name: "Address"
  field {
    name: "street" number: 1 label: LABEL_OPTIONAL type: TYPE_STRING
    json_name: "street"
  }
  field {
    name: "zip_code" number: 2 label: LABEL_OPTIONAL type: TYPE_UINT32
    json_name: "zipCode"
  }
}
message_type {
  name: "User"
  field {
    name: "id" number: 1 label: LABEL_OPTIONAL type: TYPE_STRING
    json_name: "id"
  }
  field {
    name: "age" number: 2 label: LABEL_OPTIONAL type: TYPE_INT32
    json_name: "age"
  }
  field {
    name: "balance" number: 3 label: LABEL_OPTIONAL type: TYPE_INT64
    json_name: "balance"
  }
  field {
    name: "scores" number: 4 label: LABEL_REPEATED type: TYPE_SINT32
    json_name: "scores"
  }
  field {
    name: "role" number: 5 label: LABEL_OPTIONAL type: TYPE_ENUM
    type_name: ".pgt.users.Role" json_name: "role"
  }
  field {
    name: "avatar" number: 6 label: LABEL_OPTIONAL type: TYPE_BYTES
    json_name: "avatar"
  }
  field {
    name: "created_at" number: 7 label: LABEL_OPTIONAL type: TYPE_MESSAGE
    type_name: ".google.protobuf.Timestamp" json_name: "createdAt"
  }
  field {
    name: "nickname" number: 8 label: LABEL_OPTIONAL type: TYPE_MESSAGE
    type_name: ".google.protobuf.StringValue" json_name: "nickname"
  }
  field {
    name: "attributes" number: 9 label: LABEL_REPEATED type: TYPE_MESSAGE
    type_name: ".pgt.users.User.AttributesEntry" json_name: "attributes"
  }
  field {
    name: "address" number: 10 label: LABEL_OPTIONAL type: TYPE_MESSAGE
    type_name: ".pgt.users.Address" json_name: "address"
  }
  field {
    name: "email" number: 11 label: LABEL_OPTIONAL type: TYPE_STRING
    oneof_index: 0 json_name: "email"
  }
  field {
    name: "phone" number: 12 label: LABEL_OPTIONAL type: TYPE_STRING
    oneof_index: 0 json_name: "phone"
  }
  field {
    name: "ratio" number: 13 label: LABEL_OPTIONAL type: TYPE_DOUBLE
    json_name: "ratio"
  }
  field {
    name: "active" number: 14 label: LABEL_OPTIONAL type: TYPE_BOOL
    json_name: "active"
  }
  field {
    name: "roles" number: 15 label: LABEL_REPEATED type: TYPE_ENUM
    type_name: ".pgt.users.Role" json_name: "roles"
  }
  field {
    name: "friends" number: 16 label: LABEL_REPEATED type: TYPE_MESSAGE
    type_name: ".pgt.users.User" json_name: "friends"
  }
  nested_type {
    name: "AttributesEntry"
    field {
      name: "key" number: 1 label: LABEL_OPTIONAL type: TYPE_STRING
      json_name: "key"
    }
    field {
      name: "value" number: 2 label: LABEL_OPTIONAL type: TYPE_STRING
      json_name: "value"
    }
    options { map_entry: true }
  }
  oneof_decl { name: "contact" }
}
message_type {
  name: "BatchGetUsersRequest"
  field {
    name: "ids" number: 1 label: LABEL_REPEATED type: TYPE_STRING
    json_name: "ids"
  }
}
message_type {
  name: "BatchGetUsersResponse"
  field {
    name: "users" number: 1 label: LABEL_REPEATED type: TYPE_MESSAGE
    type_name: ".pgt.users.User" json_name: "users"
  }
}
message_type {
  name: "GetProfileRequest"
  field {
    name: "id" number: 1 label: LABEL_OPTIONAL type: TYPE_STRING
    json_name: "id"
  }
}
service {
  name: "UserService"
  method {
    name: "BatchGetUsers"
    input_type: ".pgt.users.BatchGetUsersRequest"
    output_type: ".pgt.users.BatchGetUsersResponse"
  }
  method {
    name: "GetProfile"
    input_type: ".pgt.users.GetProfileRequest"
    output_type: ".pgt.users.User"
  }
  method {
    name: "WatchUsers"
    input_type: ".pgt.users.GetProfileRequest"
    output_type: ".pgt.users.User"
    server_streaming: true
  }
  method {
    name: "UploadUsers"
    input_type: ".pgt.users.User"
    output_type: ".pgt.users.BatchGetUsersResponse"
    client_streaming: true
  }
}
"""

# Imports a message from another file and holds a map of messages.
DIRECTORY_PROTO = """\
name: "pgt/directory.proto"
package: "pgt.directory"
syntax: "proto3"
dependency: "pgt/users.proto"
dependency: "google/protobuf/empty.proto"
message_type {
  name: "Directory"
  field {
    name: "owner" number: 1 label: LABEL_OPTIONAL type: TYPE_MESSAGE
    type_name: ".pgt.users.User" json_name: "owner"
  }
  field {
    name: "members" number: 2 label: LABEL_REPEATED type: TYPE_MESSAGE
    type_name: ".pgt.directory.Directory.MembersEntry" json_name: "members"
  }
  field {
    name: "default_role" number: 3 label: LABEL_OPTIONAL type: TYPE_ENUM
    type_name: ".pgt.users.Role" json_name: "defaultRole"
  }
  nested_type {
    name: "MembersEntry"
    field {
      name: "key" number: 1 label: LABEL_OPTIONAL type: TYPE_INT64
      json_name: "key"
    }
    field {
      name: "value" number: 2 label: LABEL_OPTIONAL type: TYPE_MESSAGE
      type_name: ".pgt.users.User" json_name: "value"
    }
    options { map_entry: true }
  }
}
message_type {
  name: "BatchLookupRequest"
  field {
    name: "keys" number: 1 label: LABEL_REPEATED type: TYPE_INT64
    json_name: "keys"
  }
}
message_type {
  name: "BatchLookupResponse"
  field {
    name: "entries" number: 1 label: LABEL_REPEATED type: TYPE_MESSAGE
    type_name: ".pgt.directory.BatchLookupResponse.EntriesEntry"
    json_name: "entries"
  }
  nested_type {
    name: "EntriesEntry"
    field {
      name: "key" number: 1 label: LABEL_OPTIONAL type: TYPE_INT64
      json_name: "key"
    }
    field {
      name: "value" number: 2 label: LABEL_OPTIONAL type: TYPE_MESSAGE
      type_name: ".pgt.users.User" json_name: "value"
    }
    options { map_entry: true }
  }
}
service {
  name: "DirectoryService"
  method {
    name: "BatchLookup"
    input_type: ".pgt.directory.BatchLookupRequest"
    output_type: ".pgt.directory.BatchLookupResponse"
  }
  method {
    name: "Ping"
    input_type: ".google.protobuf.Empty"
    output_type: ".google.protobuf.Empty"
  }
}
"""

# Proto2 scalars: unpacked repeated fields and explicit presence.
LEGACY_PROTO = """\
name: "pgt/legacy.proto"
package: "pgt.legacy"
message_type {
  name: "Reading"
  field {
    name: "samples" number: 1 label: LABEL_REPEATED type: TYPE_INT32
    json_name: "samples"
  }
  field {
    name: "label" number: 2 label: LABEL_OPTIONAL type: TYPE_STRING
    json_name: "label"
  }
  field {
    name: "serial" number: 3 label: LABEL_OPTIONAL type: TYPE_FIXED64
    json_name: "serial"
  }
  field {
    name: "offset" number: 4 label: LABEL_OPTIONAL type: TYPE_SFIXED32
    json_name: "offset"
  }
  field {
    name: "gain" number: 5 label: LABEL_OPTIONAL type: TYPE_FLOAT
    json_name: "gain"
  }
  field {
    name: "delta" number: 6 label: LABEL_OPTIONAL type: TYPE_SINT64
    json_name: "delta"
  }
}
"""


def file_proto(text: str) -> descriptor_pb2.FileDescriptorProto:
    """Parses a FileDescriptorProto from its text format."""
    return text_format.Parse(text, descriptor_pb2.FileDescriptorProto())


def well_known_files() -> list[descriptor_pb2.FileDescriptorProto]:
    """The well-known type files protoc passes along with user files."""
    files = []
    for module in (empty_pb2, timestamp_pb2, wrappers_pb2):
        file = descriptor_pb2.FileDescriptorProto()
        module.DESCRIPTOR.CopyToProto(file)
        files.append(file)
    return files


def all_files(*texts: str) -> list[descriptor_pb2.FileDescriptorProto]:
    return well_known_files() + [file_proto(text) for text in texts]


def options(**kwargs) -> GenerationOptions:
    return resolve_options(**kwargs)


def generate(
    files: Iterable[descriptor_pb2.FileDescriptorProto],
    generate_names: Iterable[str],
    generation_options: GenerationOptions | None = None,
) -> dict[str, OutputFile]:
    """Generates code, failing the test if generation reports an error."""
    outputs = codegen.process_proto_files(
        files, generate_names, generation_options or options()
    )
    if outputs is None:
        raise AssertionError('Code generation failed')
    return {output.name(): output for output in outputs}


def message_class(
    files: Iterable[descriptor_pb2.FileDescriptorProto], full_name: str
):
    """Returns a google.protobuf message class built from descriptors."""
    pool = descriptor_pool.DescriptorPool()
    for file in files:
        pool.Add(file)
    return message_factory.GetMessageClass(
        pool.FindMessageTypeByName(full_name)
    )


class GeneratedModules:
    """Generates modules into a temporary directory and imports them.

    Example:

    ```
    with GeneratedModules(all_files(USERS_PROTO), ['pgt/users.proto']) as gen:
        users = gen.module('pgt/users.proto')
    ```
    """

    def __init__(
        self,
        files: Iterable[descriptor_pb2.FileDescriptorProto],
        generate_names: Iterable[str],
        generation_options: GenerationOptions | None = None,
    ) -> None:
        self.outputs = generate(files, generate_names, generation_options)
        self._directory = tempfile.TemporaryDirectory()
        self._module_names: list[str] = []

    def __enter__(self) -> 'GeneratedModules':
        root = Path(self._directory.name)
        for name, output in self.outputs.items():
            path = root / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(output.content())
            self._module_names.append(_module_name(name))

        sys.path.insert(0, self._directory.name)
        importlib.invalidate_caches()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        sys.path.remove(self._directory.name)

        # Drop the generated modules and their namespace packages so that
        # other tests can generate modules with the same names.
        for module_name in self._module_names:
            parts = module_name.split('.')
            for i in range(len(parts), 0, -1):
                sys.modules.pop('.'.join(parts[:i]), None)

        self._directory.cleanup()

    def source(self, proto_name: str) -> str:
        return self.outputs[proto_name.removesuffix('.proto') + '.py'].content()

    def module(self, proto_name: str) -> ModuleType:
        return importlib.import_module(_module_name(proto_name))


def _module_name(path: str) -> str:
    return path.removesuffix('.proto').removesuffix('.py').replace('/', '.')
