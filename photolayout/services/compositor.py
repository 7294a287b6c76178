from __future__ import annotations

import logging
from typing import Callable, List, Sequence, Tuple

import cv2
import numpy as np
from PIL import Image, ImageOps

from photolayout.models.layout import LayoutRegion, PixelBuffer

logger = logging.getLogger(__name__)

Color = Tuple[int, int, int]


def pixel_box(region: LayoutRegion, surface_w: int, surface_h: int) -> Tuple[int, int, int, int]:
    """Integer (x0, y0, x1, y1) a non-rotated region occupies, at least one pixel each way."""
    rect = region.rect
    x0 = min(max(int(round(rect.left)), 0), surface_w - 1)
    y0 = min(max(int(round(rect.top)), 0), surface_h - 1)
    x1 = min(max(int(round(rect.right)), x0 + 1), surface_w)
    y1 = min(max(int(round(rect.bottom)), y0 + 1), surface_h)
    return x0, y0, x1, y1


def crop_size(region: LayoutRegion, surface_w: int, surface_h: int) -> Tuple[int, int]:
    """Pixel size the cropper must produce for a region."""
    if region.rotation:
        # Rotated pieces may hang off the surface; they keep their full size.
        return max(1, int(round(region.rect.width))), max(1, int(round(region.rect.height)))
    x0, y0, x1, y1 = pixel_box(region, surface_w, surface_h)
    return x1 - x0, y1 - y0


class Compositor:
    """
    Draws cropped photos into their regions on an output surface.

    Axis-aligned regions are copied straight into the canvas and outlined
    with a border-width stroke centred on the region edge, so strokes of
    neighbouring regions close the gap between them. Rotated regions
    (collages) get a border frame, are rotated about their centre and
    alpha-blended over what is already drawn, so later regions overlap
    earlier ones.
    """

    def __init__(
        self,
        border_width: int = 8,
        border_color: Color = (255, 255, 255),
        background_color: Color = (0, 0, 0),
        fallback_color: Color = (48, 48, 48),
    ) -> None:
        self.border_width = border_width
        self.border_color = tuple(border_color)
        self.background_color = tuple(background_color)
        self.fallback_color = tuple(fallback_color)

    def render(
        self,
        surface: PixelBuffer,
        regions: Sequence[LayoutRegion],
        crops: Sequence[PixelBuffer | None],
        checkpoint: Callable[[], None] | None = None,
    ) -> List[int]:
        """
        Draw every region onto `surface`, in region order.

        `crops[i]` is the photo for region i, already sized by `crop_size`;
        None paints the region with the fallback colour. `checkpoint` runs
        before each region and may raise to abandon the pass.

        Returns the indices of regions painted with the fallback colour.
        """
        canvas = np.empty((surface.height, surface.width, 3), dtype=np.uint8)
        canvas[:, :] = self.background_color

        fallback_regions: List[int] = []
        for index, region in enumerate(regions):
            if checkpoint is not None:
                checkpoint()

            piece = crops[index] if index < len(crops) else None
            if piece is None:
                fallback_regions.append(index)
                logger.warning("Region %d has no photo; painting fallback colour", index)

            if region.rotation:
                self._draw_rotated(canvas, region, piece)
            else:
                self._draw_fixed(canvas, region, piece)

        surface.write(canvas)
        return fallback_regions

    def _draw_fixed(self, canvas: np.ndarray, region: LayoutRegion, piece: PixelBuffer | None) -> None:
        surface_h, surface_w = canvas.shape[:2]
        x0, y0, x1, y1 = pixel_box(region, surface_w, surface_h)

        if piece is None:
            canvas[y0:y1, x0:x1] = self.fallback_color
        else:
            rgb = piece.as_rgb()
            canvas[y0:y1, x0:x1] = rgb[: y1 - y0, : x1 - x0]

        if self.border_width > 0:
            cv2.rectangle(
                canvas,
                (x0, y0),
                (x1 - 1, y1 - 1),
                color=self.border_color,
                thickness=self.border_width,
            )

    def _draw_rotated(self, canvas: np.ndarray, region: LayoutRegion, piece: PixelBuffer | None) -> None:
        if piece is None:
            width, height = crop_size(region, canvas.shape[1], canvas.shape[0])
            image = Image.new("RGB", (width, height), self.fallback_color)
        else:
            image = Image.fromarray(np.ascontiguousarray(piece.as_rgb()))

        if self.border_width > 0:
            image = ImageOps.expand(image, border=self.border_width, fill=self.border_color)

        rotated = image.convert("RGBA").rotate(region.rotation, resample=Image.Resampling.BICUBIC, expand=True)
        layer = np.asarray(rotated)

        cx, cy = region.rect.center
        left = int(round(cx - layer.shape[1] / 2))
        top = int(round(cy - layer.shape[0] / 2))
        self._blend(canvas, layer, left, top)

    @staticmethod
    def _blend(canvas: np.ndarray, layer: np.ndarray, left: int, top: int) -> None:
        """Alpha-blend an RGBA layer onto the canvas, clipped to the canvas."""
        surface_h, surface_w = canvas.shape[:2]
        x0, y0 = max(left, 0), max(top, 0)
        x1 = min(left + layer.shape[1], surface_w)
        y1 = min(top + layer.shape[0], surface_h)
        if x1 <= x0 or y1 <= y0:
            return

        part = layer[y0 - top : y1 - top, x0 - left : x1 - left]
        alpha = part[:, :, 3:4].astype(np.float32) / 255.0
        target = canvas[y0:y1, x0:x1].astype(np.float32)
        blended = part[:, :, :3].astype(np.float32) * alpha + target * (1.0 - alpha)
        canvas[y0:y1, x0:x1] = np.clip(np.round(blended), 0, 255).astype(np.uint8)
