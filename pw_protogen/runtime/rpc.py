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
"""Shapes shared by generated service clients."""

from collections.abc import AsyncIterable, AsyncIterator, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

T = TypeVar('T')


class RpcError(Exception):
    """An RPC completed without the expected response."""


@dataclass(frozen=True)
class ServiceDefinition:
    service_name: str


@dataclass(frozen=True)
class UnaryMethodDefinition:
    """Describes one method for transports that take method descriptors."""

    method_name: str
    service: ServiceDefinition
    request_stream: bool
    response_stream: bool
    serialize: Callable[[Any], bytes]
    deserialize: Callable[[bytes], Any]

    def full_name(self) -> str:
        return f'/{self.service.service_name}/{self.method_name}'


async def single(data: bytes) -> AsyncIterator[bytes]:
    """A request stream containing one encoded request."""
    yield data


async def encode_stream(
    requests: AsyncIterable[T], encode: Callable[[T], bytes]
) -> AsyncIterator[bytes]:
    async for request in requests:
        yield encode(request)


async def first_response(responses: AsyncIterable[bytes]) -> bytes:
    """Returns the first response of a call that produces one response."""
    async for response in responses:
        return response
    raise RpcError('The call completed without a response')
