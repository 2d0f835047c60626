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
"""Tests for the request-coalescing DataLoader."""

import asyncio
import unittest

from pw_protogen.runtime.dataloader import (
    DataLoader,
    DataLoaderOptions,
    DataLoaders,
    cache_key,
)


class _Backend:
    """Records batch calls and answers each key with its upper-case form."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []

    async def load(self, keys: list[str]) -> list[str | Exception]:
        self.calls.append(list(keys))
        return [
            KeyError(key) if key == 'missing' else key.upper() for key in keys
        ]


class DataLoaderTest(unittest.IsolatedAsyncioTestCase):
    """Tests DataLoader batching and caching."""

    def setUp(self) -> None:
        self._backend = _Backend()

    async def test_concurrent_loads_share_one_batch(self) -> None:
        loader = DataLoader(self._backend.load)

        values = await asyncio.gather(
            loader.load('a'), loader.load('b'), loader.load('c')
        )

        self.assertEqual(values, ['A', 'B', 'C'])
        self.assertEqual(self._backend.calls, [['a', 'b', 'c']])

    async def test_sequential_loads_use_separate_batches(self) -> None:
        loader = DataLoader(self._backend.load)

        self.assertEqual(await loader.load('a'), 'A')
        self.assertEqual(await loader.load('b'), 'B')
        self.assertEqual(self._backend.calls, [['a'], ['b']])

    async def test_repeated_keys_are_cached(self) -> None:
        loader = DataLoader(self._backend.load)

        first, second = await asyncio.gather(loader.load('a'), loader.load('a'))
        third = await loader.load('a')

        self.assertEqual((first, second, third), ('A', 'A', 'A'))
        self.assertEqual(self._backend.calls, [['a']])

    async def test_without_cache(self) -> None:
        loader = DataLoader(
            self._backend.load, options=DataLoaderOptions(cache=False)
        )

        await asyncio.gather(loader.load('a'), loader.load('a'))
        await loader.load('a')

        self.assertEqual(self._backend.calls, [['a', 'a'], ['a']])

    async def test_max_batch_size(self) -> None:
        loader = DataLoader(
            self._backend.load, options=DataLoaderOptions(max_batch_size=2)
        )

        values = await loader.load_many(['a', 'b', 'c'])

        self.assertEqual(values, ['A', 'B', 'C'])
        self.assertEqual(self._backend.calls, [['a', 'b'], ['c']])

    async def test_per_key_errors(self) -> None:
        loader = DataLoader(self._backend.load)

        found = loader.load('a')
        missing = loader.load('missing')

        self.assertEqual(await found, 'A')
        with self.assertRaises(KeyError):
            await missing

        # Failed keys are not cached.
        with self.assertRaises(KeyError):
            await loader.load('missing')
        self.assertEqual(self._backend.calls, [['a', 'missing'], ['missing']])

    async def test_length_mismatch_fails_every_key(self) -> None:
        async def short(keys: list[str]) -> list[str]:
            return keys[:-1]

        loader = DataLoader(short)
        results = await asyncio.gather(
            loader.load('a'), loader.load('b'), return_exceptions=True
        )

        for result in results:
            self.assertIsInstance(result, ValueError)

    async def test_batch_function_error_fails_every_key(self) -> None:
        async def broken(keys: list[str]) -> list[str]:
            raise ConnectionError('unavailable')

        loader = DataLoader(broken)
        results = await asyncio.gather(
            loader.load('a'), loader.load('b'), return_exceptions=True
        )

        self.assertEqual(
            [type(result) for result in results],
            [ConnectionError, ConnectionError],
        )

    async def test_prime_and_clear(self) -> None:
        loader = DataLoader(self._backend.load)

        loader.prime('a', 'primed')
        self.assertEqual(await loader.load('a'), 'primed')
        self.assertEqual(self._backend.calls, [])

        loader.clear('a')
        self.assertEqual(await loader.load('a'), 'A')

        loader.clear_all()
        self.assertEqual(await loader.load('a'), 'A')
        self.assertEqual(self._backend.calls, [['a'], ['a']])

    async def test_custom_cache_key(self) -> None:
        loader = DataLoader(self._backend.load, cache_key_fn=str.lower)

        first, second = await asyncio.gather(loader.load('a'), loader.load('A'))

        self.assertEqual((first, second), ('A', 'A'))
        self.assertEqual(self._backend.calls, [['a']])


class CacheKeyTest(unittest.TestCase):
    def test_hashable_keys_are_unchanged(self) -> None:
        self.assertEqual(cache_key(5), 5)
        self.assertEqual(cache_key('a'), 'a')

    def test_unhashable_keys_use_repr(self) -> None:
        self.assertEqual(cache_key([1, 2]), '[1, 2]')


class DataLoadersTest(unittest.TestCase):
    """Tests the per-request loader context."""

    def test_loader_created_once_per_identifier(self) -> None:
        context = DataLoaders()
        created = []

        def create() -> object:
            created.append(object())
            return created[-1]

        first = context.get_data_loader('svc.Batch', create)
        second = context.get_data_loader('svc.Batch', create)
        other = context.get_data_loader('svc.Other', create)

        self.assertIs(first, second)
        self.assertIsNot(first, other)
        self.assertEqual(len(created), 2)

    def test_contexts_do_not_share_loaders(self) -> None:
        first = DataLoaders().get_data_loader('id', object)
        second = DataLoaders().get_data_loader('id', object)
        self.assertIsNot(first, second)

    def test_options(self) -> None:
        self.assertTrue(DataLoaders().rpc_data_loader_options.cache)
        options = DataLoaderOptions(cache=False)
        self.assertIs(DataLoaders(options).rpc_data_loader_options, options)


if __name__ == '__main__':
    unittest.main()
