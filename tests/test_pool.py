"""Tests for process pools reading a shared collection by reference."""

import multiprocessing
import time

import pytest

from modelshare.service import COLLECTION_TYPE
from modelshare.shared import map_shared

from fakes import element_size, first_byte, first_byte_of_copy


def test_map_shared_reads_every_element(host):
    items = [bytes([i]) * (i + 1) for i in range(20)]
    proxy = host.create(COLLECTION_TYPE, items)

    sizes = map_shared(element_size, proxy, processes=2)

    assert sizes == [len(item) for item in items]


def test_map_shared_empty_collection(host):
    proxy = host.create(COLLECTION_TYPE, [])
    assert map_shared(element_size, proxy, processes=2) == []


@pytest.mark.slow
def test_shared_reads_beat_copying_the_collection(host):
    """100 tasks reading one element each vs. 100 copies of the whole collection."""
    element_bytes = 50_000
    count = 100
    processes = 5
    items = [bytes([i % 256]) * element_bytes for i in range(count)]
    proxy = host.create(COLLECTION_TYPE, items)

    start = time.monotonic()
    shared = map_shared(first_byte, proxy, processes=processes)
    shared_elapsed = time.monotonic() - start

    ctx = multiprocessing.get_context("spawn")
    start = time.monotonic()
    with ctx.Pool(processes) as pool:
        copied = pool.map(first_byte_of_copy, [(items, i) for i in range(count)], 1)
    copied_elapsed = time.monotonic() - start

    assert shared == copied == [i % 256 for i in range(count)]
    assert shared_elapsed < copied_elapsed
