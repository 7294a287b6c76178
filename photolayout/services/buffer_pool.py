"""
Size-keyed pool of reusable pixel buffers.

Crops and output surfaces are allocated at a handful of recurring sizes (one
per region shape and one per display), so keeping a few spare buffers per
size avoids most allocation churn during a slideshow:
- Buckets are keyed by (width, height, format)
- At most `max_per_bucket` spare buffers are kept per bucket
- Every acquired buffer is tracked until it is released
- A single pool-wide lock serializes all operations
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Tuple

from photolayout.models.layout import PixelBuffer, PixelFormat

logger = logging.getLogger(__name__)

BucketKey = Tuple[int, int, PixelFormat]

DEFAULT_MAX_PER_BUCKET = 3


def preferred_format(width: int, height: int, large_raster_pixels: int = 1_000_000) -> PixelFormat:
    """
    Pick the pixel format for a new raster.

    Large rasters use the reduced-colour format (2 bytes/pixel instead of 4);
    smaller ones keep full alpha for quality.
    """
    if width * height > large_raster_pixels:
        return PixelFormat.RGB_565
    return PixelFormat.ARGB_8888


class PixelBufferPool:
    """
    Thread-safe pool of PixelBuffers.

    Buffers are acquired from one thread and may be released from another;
    the in-use map guarantees a buffer is never handed to two owners and that
    foreign buffers are rejected instead of polluting a bucket.
    """

    def __init__(self, max_per_bucket: int = DEFAULT_MAX_PER_BUCKET) -> None:
        self.max_per_bucket = max_per_bucket

        self._buckets: Dict[BucketKey, List[PixelBuffer]] = {}
        # id(buffer) -> buffer; holding the reference keeps ids from being recycled.
        self._in_use: Dict[int, PixelBuffer] = {}

        # Counters for get_stats()
        self.allocations = 0
        self.reuses = 0
        self.discards = 0
        self.rejected_releases = 0

        self.lock = threading.Lock()

        logger.debug(f"Pixel buffer pool initialized: max {max_per_bucket} spare buffers per size")

    def acquire(self, width: int, height: int, fmt: PixelFormat = PixelFormat.ARGB_8888) -> PixelBuffer:
        """
        Hand out a zero-filled buffer of the given size and format.

        Reuses a pooled buffer when the matching bucket has one, otherwise
        allocates a fresh buffer. An empty bucket is not an error.
        """
        if width <= 0 or height <= 0:
            raise ValueError(f"Cannot acquire a {width}x{height} buffer")

        key = (width, height, fmt)
        with self.lock:
            bucket = self._buckets.get(key)
            if bucket:
                buffer = bucket.pop()
                buffer.pixels.fill(0)
                self.reuses += 1
            else:
                buffer = PixelBuffer.allocate(width, height, fmt)
                self.allocations += 1
                logger.debug(f"Pool miss for {width}x{height} {fmt.value}; allocated a new buffer")
            self._in_use[id(buffer)] = buffer
        return buffer

    def release(self, buffer: PixelBuffer) -> bool:
        """
        Return a buffer previously handed out by `acquire`.

        Returns False (and changes nothing) for buffers this pool does not
        track as in use, including double releases. A buffer whose bucket is
        already full is dropped rather than pooled.
        """
        with self.lock:
            if self._in_use.pop(id(buffer), None) is None:
                self.rejected_releases += 1
                logger.warning(
                    f"Rejected release of untracked {buffer.width}x{buffer.height} buffer"
                )
                return False

            key = (buffer.width, buffer.height, buffer.format)
            bucket = self._buckets.setdefault(key, [])
            if len(bucket) >= self.max_per_bucket:
                self.discards += 1
            else:
                bucket.append(buffer)
        return True

    def owns(self, buffer: PixelBuffer) -> bool:
        """True while `buffer` is checked out of this pool."""
        with self.lock:
            return id(buffer) in self._in_use

    def clear(self) -> None:
        """
        Drop every pooled buffer and forget in-use tracking.

        Meant for low-memory callbacks; buffers still held by callers simply
        become ordinary buffers that a later release will reject.
        """
        with self.lock:
            pooled = sum(len(bucket) for bucket in self._buckets.values())
            in_use = len(self._in_use)
            self._buckets.clear()
            self._in_use.clear()
        logger.info(f"Pixel buffer pool cleared: {pooled} pooled buffers dropped, {in_use} in-use forgotten")

    def get_stats(self) -> dict:
        """
        Get current pool statistics.

        Returns:
            Dictionary with current state
        """
        with self.lock:
            pooled_bytes = sum(
                buffer.nbytes for bucket in self._buckets.values() for buffer in bucket
            )
            return {
                "buckets": len(self._buckets),
                "pooled_buffers": sum(len(bucket) for bucket in self._buckets.values()),
                "in_use_buffers": len(self._in_use),
                "pooled_megabytes": round(pooled_bytes / (1024 * 1024), 2),
                "allocations": self.allocations,
                "reuses": self.reuses,
                "discards": self.discards,
                "rejected_releases": self.rejected_releases,
                "max_per_bucket": self.max_per_bucket,
                "sizes": {
                    f"{w}x{h}:{fmt.value}": len(bucket)
                    for (w, h, fmt), bucket in self._buckets.items()
                },
            }
