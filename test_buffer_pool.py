"""
Tests for the pixel buffer pool.

Covers bucket reuse, the per-size cap, rejection of foreign buffers and
concurrent acquire/release from several threads.
"""

import threading

import numpy as np

from photolayout.models.layout import PixelBuffer, PixelFormat
from photolayout.services.buffer_pool import PixelBufferPool, preferred_format


def test_reuse_never_allocates_more_than_needed():
    """Acquiring and releasing N <= 3 buffers of one size allocates at most N."""
    for n in (1, 2, 3):
        pool = PixelBufferPool(max_per_bucket=3)
        for _ in range(5):
            buffers = [pool.acquire(64, 48) for _ in range(n)]
            for buffer in buffers:
                assert pool.release(buffer) is True
        assert pool.allocations == n
    print("✓ Pool reuses buffers per size")


def test_acquired_buffers_are_zero_filled():
    pool = PixelBufferPool()
    buffer = pool.acquire(10, 10)
    buffer.fill((200, 10, 30))
    pool.release(buffer)

    again = pool.acquire(10, 10)
    assert again is buffer
    assert not again.pixels.any()


def test_bucket_cap_discards_extra_buffers():
    pool = PixelBufferPool(max_per_bucket=3)
    buffers = [pool.acquire(32, 32) for _ in range(5)]
    for buffer in buffers:
        pool.release(buffer)

    stats = pool.get_stats()
    assert stats["pooled_buffers"] == 3
    assert stats["discards"] == 2
    assert stats["in_use_buffers"] == 0


def test_buckets_are_keyed_by_size_and_format():
    pool = PixelBufferPool()
    small = pool.acquire(16, 16, PixelFormat.ARGB_8888)
    pool.release(small)

    other_format = pool.acquire(16, 16, PixelFormat.RGB_565)
    other_size = pool.acquire(16, 17, PixelFormat.ARGB_8888)
    assert other_format is not small
    assert other_size is not small
    assert other_format.pixels.shape == (16, 16, 3)
    assert pool.allocations == 3


def test_foreign_and_double_release_are_rejected():
    pool = PixelBufferPool()
    foreign = PixelBuffer.allocate(8, 8)
    assert pool.release(foreign) is False

    buffer = pool.acquire(8, 8)
    assert pool.release(buffer) is True
    assert pool.release(buffer) is False

    stats = pool.get_stats()
    assert stats["rejected_releases"] == 2
    assert stats["pooled_buffers"] == 1


def test_a_buffer_is_never_handed_out_twice():
    pool = PixelBufferPool()
    first = pool.acquire(20, 20)
    second = pool.acquire(20, 20)
    assert first is not second
    assert pool.owns(first) and pool.owns(second)


def test_clear_forgets_everything():
    pool = PixelBufferPool()
    held = pool.acquire(12, 12)
    spare = pool.acquire(12, 12)
    pool.release(spare)

    pool.clear()
    stats = pool.get_stats()
    assert stats["pooled_buffers"] == 0
    assert stats["in_use_buffers"] == 0
    # The held buffer is now just an ordinary buffer.
    assert pool.release(held) is False


def test_concurrent_acquire_release():
    pool = PixelBufferPool(max_per_bucket=3)
    errors = []

    def worker():
        try:
            for _ in range(200):
                buffer = pool.acquire(24, 24)
                buffer.pixels[0, 0, 0] = 1
                assert pool.release(buffer)
        except AssertionError as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert not errors
    stats = pool.get_stats()
    assert stats["in_use_buffers"] == 0
    assert stats["pooled_buffers"] <= 3


def test_rgb_565_buffers_quantize_on_write():
    buffer = PixelBuffer.allocate(2, 1, PixelFormat.RGB_565)
    buffer.write(np.array([[[255, 255, 255], [7, 3, 9]]], dtype=np.uint8))
    assert buffer.pixels[0, 0].tolist() == [248, 252, 248]
    assert buffer.pixels[0, 1].tolist() == [0, 0, 8]
    assert buffer.nbytes == 4


def test_preferred_format_switches_above_threshold():
    assert preferred_format(1000, 1000) is PixelFormat.ARGB_8888
    assert preferred_format(1001, 1000) is PixelFormat.RGB_565
    assert preferred_format(100, 100, large_raster_pixels=5000) is PixelFormat.RGB_565


if __name__ == "__main__":
    test_reuse_never_allocates_more_than_needed()
    test_bucket_cap_discards_extra_buffers()
    test_foreign_and_double_release_are_rejected()
    test_concurrent_acquire_release()
    print("All pool tests passed!")
