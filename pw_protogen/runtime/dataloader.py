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
"""Request-coalescing cache used by generated batch accessors.

A DataLoader collects the keys requested during one asyncio loop iteration and
resolves them with a single call to its batch load function. Loaders are owned
by a DataLoaders context, which lives as long as one logical request; loaders
are never shared between contexts.
"""

import asyncio
from collections.abc import Awaitable, Callable, Hashable, Iterable, Sequence
from dataclasses import dataclass
import logging
from typing import Any, Generic, TypeVar

_LOG = logging.getLogger(__name__)

K = TypeVar('K')
V = TypeVar('V')
T = TypeVar('T')

BatchLoadFn = Callable[[list[K]], Awaitable[Sequence[V | Exception]]]


@dataclass(frozen=True)
class DataLoaderOptions:
    """Options for the loaders created by generated code.

    Attributes:
      cache: Whether results are memoized per key for the loader's lifetime.
      max_batch_size: Largest number of keys passed to one batch call.
    """

    cache: bool = True
    max_batch_size: int | None = None


def cache_key(key: Any) -> Hashable:
    """Cache key for a load key; unhashable keys such as messages use repr."""
    try:
        hash(key)
    except TypeError:
        return repr(key)
    return key


class DataLoader(Generic[K, V]):
    """Coalesces individual loads into batch calls."""

    def __init__(
        self,
        batch_load_fn: BatchLoadFn,
        *,
        options: DataLoaderOptions | None = None,
        cache_key_fn: Callable[[K], Hashable] = cache_key,
    ) -> None:
        """Creates a loader.

        Args:
          batch_load_fn: Async function loading a list of keys. It must return
              one value (or Exception) per key, in the order of the keys.
          options: Caching and batch size options.
          cache_key_fn: Maps a key to the hashable value it is cached under.
        """
        self._batch_load_fn = batch_load_fn
        self._options = options or DataLoaderOptions()
        self._cache_key_fn = cache_key_fn
        self._cache: dict[Hashable, asyncio.Future] = {}
        self._queue: list[tuple[K, asyncio.Future]] = []
        self._tasks: set[asyncio.Task] = set()

    def load(self, key: K) -> 'asyncio.Future[V]':
        """Requests the value for a key.

        The key is queued and loaded together with every other key requested
        before the loop runs the scheduled dispatch.
        """
        loop = asyncio.get_running_loop()
        key_hash = self._cache_key_fn(key)

        if self._options.cache:
            cached = self._cache.get(key_hash)
            if cached is not None:
                return cached

        future = loop.create_future()
        if self._options.cache:
            self._cache[key_hash] = future

        self._queue.append((key, future))
        if len(self._queue) == 1:
            loop.call_soon(self._dispatch)

        return future

    def load_many(self, keys: Iterable[K]) -> 'asyncio.Future[list[V]]':
        return asyncio.gather(*(self.load(key) for key in keys))

    def prime(self, key: K, value: V) -> None:
        """Stores a value for a key unless one is already cached."""
        if not self._options.cache:
            return
        key_hash = self._cache_key_fn(key)
        if key_hash not in self._cache:
            future = asyncio.get_running_loop().create_future()
            future.set_result(value)
            self._cache[key_hash] = future

    def clear(self, key: K) -> None:
        self._cache.pop(self._cache_key_fn(key), None)

    def clear_all(self) -> None:
        self._cache.clear()

    def _dispatch(self) -> None:
        queue, self._queue = self._queue, []
        if not queue:
            return

        size = self._options.max_batch_size or len(queue)
        for start in range(0, len(queue), size):
            task = asyncio.ensure_future(
                self._load_batch(queue[start : start + size])
            )
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    def _fail(self, key: K, future: asyncio.Future, error: Exception) -> None:
        self.clear(key)
        if not future.done():
            future.set_exception(error)

    async def _load_batch(self, batch: list[tuple[K, asyncio.Future]]) -> None:
        keys = [key for key, _ in batch]
        _LOG.debug('Loading a batch of %d keys', len(keys))

        try:
            values = await self._batch_load_fn(keys)
            if len(values) != len(keys):
                raise ValueError(
                    f'Batch load function returned {len(values)} values for '
                    f'{len(keys)} keys; values must match the keys one to one '
                    'and in order'
                )
        except Exception as err:  # pylint: disable=broad-except
            for key, future in batch:
                self._fail(key, future, err)
            return

        for (key, future), value in zip(batch, values):
            if isinstance(value, Exception):
                self._fail(key, future, value)
            elif not future.done():
                future.set_result(value)


class DataLoaders:
    """The per-request context that owns DataLoader instances.

    Create one DataLoaders per logical request and pass it as the ctx argument
    of generated clients.
    """

    def __init__(self, options: DataLoaderOptions | None = None) -> None:
        self.rpc_data_loader_options = options or DataLoaderOptions()
        self._loaders: dict[str, Any] = {}

    def get_data_loader(
        self, identifier: str, constructor_fn: Callable[[], T]
    ) -> T:
        """Returns the loader for identifier, creating it on first use."""
        loader = self._loaders.get(identifier)
        if loader is None:
            loader = constructor_fn()
            self._loaders[identifier] = loader
        return loader
