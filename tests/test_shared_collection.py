"""Tests for the shared collection, in-process and through the manager."""

import time

import numpy as np
import pytest

from modelshare.host import SharedCollectionProxy
from modelshare.service import COLLECTION_TYPE
from modelshare.shared import SharedCollection

ITEMS = [{"id": i, "payload": "x" * i} for i in range(10)]


class TestSharedCollection:
    def test_length_and_get(self):
        collection = SharedCollection(ITEMS)
        assert collection.length() == len(ITEMS)
        for i, item in enumerate(ITEMS):
            assert collection.get(i) == item

    def test_get_is_idempotent(self):
        collection = SharedCollection(ITEMS)
        assert collection.get(3) == collection.get(3) == ITEMS[3]

    @pytest.mark.parametrize("index", [-1, len(ITEMS), len(ITEMS) + 5])
    def test_out_of_range(self, index):
        with pytest.raises(IndexError):
            SharedCollection(ITEMS).get(index)

    def test_empty_collection(self):
        collection = SharedCollection([])
        assert collection.length() == 0
        with pytest.raises(IndexError):
            collection.get(0)

    @pytest.mark.parametrize("index", ["1", 1.0, True, None, slice(0, 2)])
    def test_non_integer_index(self, index):
        with pytest.raises(TypeError):
            SharedCollection(ITEMS).get(index)

    def test_numpy_integer_index(self):
        assert SharedCollection(ITEMS).get(np.int64(2)) == ITEMS[2]

    def test_source_mutation_does_not_leak_in(self):
        source = [1, 2, 3]
        collection = SharedCollection(source)
        source.append(4)
        source[0] = 100
        assert collection.length() == 3
        assert collection.get(0) == 1

    def test_exposes_no_mutators(self):
        collection = SharedCollection(ITEMS)
        for name in ("append", "insert", "pop", "remove", "__setitem__", "__delitem__"):
            assert not hasattr(collection, name)


class TestSharedCollectionProxy:
    def test_round_trip(self, host):
        proxy = host.create(COLLECTION_TYPE, ITEMS)
        assert isinstance(proxy, SharedCollectionProxy)
        assert proxy.length() == len(ITEMS)
        assert len(proxy) == len(ITEMS)
        for i, item in enumerate(ITEMS):
            assert proxy.get(i) == item
            assert proxy[i] == item

    def test_iteration(self, host):
        proxy = host.create(COLLECTION_TYPE, ITEMS)
        assert list(proxy) == ITEMS

    @pytest.mark.parametrize("index", [-1, len(ITEMS)])
    def test_out_of_range_keeps_index_error(self, host, index):
        proxy = host.create(COLLECTION_TYPE, ITEMS)
        with pytest.raises(IndexError):
            proxy.get(index)

    def test_slice_rejected(self, host):
        proxy = host.create(COLLECTION_TYPE, ITEMS)
        with pytest.raises(TypeError):
            proxy[0:2]

    def test_remote_errors_leave_channel_usable(self, host):
        proxy = host.create(COLLECTION_TYPE, ITEMS)
        with pytest.raises(IndexError):
            proxy.get(99)
        assert proxy.get(0) == ITEMS[0]

    def test_two_collections_are_independent(self, host):
        first = host.create(COLLECTION_TYPE, [1, 2])
        second = host.create(COLLECTION_TYPE, ["a", "b", "c"])
        assert list(first) == [1, 2]
        assert list(second) == ["a", "b", "c"]

    def test_large_element_reads_are_not_stalled(self, host):
        # Elements above 16KiB go out as separate header and body writes
        items = [bytes([i]) * 50_000 for i in range(100)]
        proxy = host.create(COLLECTION_TYPE, items)
        proxy.get(0)

        start = time.monotonic()
        for i in range(len(items)):
            assert proxy.get(i)[0] == i
        elapsed = time.monotonic() - start

        assert elapsed < 1.0

    def test_default_transport_is_local_socket(self, host):
        assert isinstance(host.address, str)
