import io
import json

import numpy as np
from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response
from PIL import Image, ImageOps, UnidentifiedImageError

from photolayout.api.v1.schemas import (
    PoolStats,
    RegionListResponse,
    RegionRequest,
    RegionResponse,
    TemplateDescription,
    TemplateListResponse,
)
from photolayout.models.layout import PixelBuffer
from photolayout.services.engine import LayoutEngine
from photolayout.services.errors import InsufficientPhotos, InvalidDimensions, UnknownTemplate
from photolayout.services.regions import generate_regions
from photolayout.services.templates import PSEUDO_TEMPLATES, list_templates

router = APIRouter(prefix="/api/v1")


def get_engine(request: Request) -> LayoutEngine:
    return request.app.state.layout_engine


def _decode_photo(data: bytes, filename: str | None) -> np.ndarray:
    """Decode an uploaded image into an upright RGB array."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            upright = ImageOps.exif_transpose(image)
            return np.asarray(upright.convert("RGB"))
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Could not decode image `{filename or 'upload'}`.",
        ) from exc


def _encode_png(buffer: PixelBuffer) -> bytes:
    # Four channels encode as RGBA, three as RGB.
    output = io.BytesIO()
    Image.fromarray(np.ascontiguousarray(buffer.pixels)).save(output, format="PNG")
    return output.getvalue()


@router.get("/health", tags=["health"])
async def health_check() -> dict:
    """API v1 health check endpoint."""
    return {"status": "ok", "api_version": "v1"}


@router.get(
    "/templates",
    response_model=TemplateListResponse,
    tags=["templates"],
    summary="List layout templates",
)
async def get_templates() -> TemplateListResponse:
    return TemplateListResponse(
        templates=[
            TemplateDescription(
                id=info.template.value,
                min_photos=info.min_photos,
                region_count=info.region_count,
                landscape=info.landscape_ok,
                portrait=info.portrait_ok,
                description=info.description,
            )
            for info in list_templates()
        ],
        pseudo_templates=list(PSEUDO_TEMPLATES),
    )


@router.post(
    "/regions",
    response_model=RegionListResponse,
    tags=["templates"],
    summary="Preview the regions of a template",
)
async def preview_regions(body: RegionRequest, request: Request) -> RegionListResponse:
    """
    Return the rectangles a template produces on a surface, without rendering.

    Only concrete templates are accepted; `dynamic` and `random` depend on the
    photos and have no fixed geometry.
    """
    engine = get_engine(request)
    try:
        regions = generate_regions(
            body.template,
            body.width,
            body.height,
            border_width=engine.settings.border_width,
            rng=np.random.default_rng(body.seed),
            requested_count=body.photo_count,
        )
    except UnknownTemplate as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    return RegionListResponse(
        template=body.template.strip().lower(),
        width=body.width,
        height=body.height,
        regions=[
            RegionResponse(
                left=region.rect.left,
                top=region.rect.top,
                right=region.rect.right,
                bottom=region.rect.bottom,
                aspect_ratio=region.expected_aspect_ratio,
                rotation=region.rotation,
            )
            for region in regions
        ],
    )


@router.post(
    "/layouts",
    response_class=Response,
    tags=["layouts"],
    summary="Render a multi-photo layout",
    responses={200: {"content": {"image/png": {}}}},
)
async def create_layout(
    request: Request,
    photos: list[UploadFile] = File(..., description="Photos to lay out (JPG, PNG, ...)."),
    template: str = Form("dynamic", description="Template id, `dynamic` or `random`."),
    width: int = Form(..., description="Surface width in pixels."),
    height: int = Form(..., description="Surface height in pixels."),
    seed: int | None = Form(default=None, description="Seed for reproducible random choices."),
) -> Response:
    """
    Lay out the uploaded photos and return the rendered surface as a PNG.

    The chosen template and the region -> photo assignment are returned in
    the `X-Layout-Template` and `X-Layout-Assignments` headers.
    """
    engine = get_engine(request)
    if len(photos) > engine.settings.max_upload_photos:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"At most {engine.settings.max_upload_photos} photos per layout.",
        )

    rasters = [_decode_photo(await upload.read(), upload.filename) for upload in photos]

    try:
        result = await run_in_threadpool(engine.generate_layout, rasters, template, width, height, seed=seed)
    except (InvalidDimensions, InsufficientPhotos, UnknownTemplate) as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    try:
        content = _encode_png(result.buffer)
    finally:
        engine.pool.release(result.buffer)

    return Response(
        content=content,
        media_type="image/png",
        headers={
            "X-Layout-Template": result.template.value,
            "X-Layout-Assignments": json.dumps({str(k): v for k, v in result.assignments.items()}),
        },
    )


@router.get("/pool", response_model=PoolStats, tags=["pool"], summary="Pixel buffer pool statistics")
async def pool_stats(request: Request) -> PoolStats:
    return PoolStats(**get_engine(request).get_stats())


@router.post("/pool/release", response_model=PoolStats, tags=["pool"], summary="Drop all pooled buffers")
async def release_pool(request: Request) -> PoolStats:
    """Low-memory hook: clear the pool and return the (now empty) statistics."""
    engine = get_engine(request)
    engine.release_pool()
    return PoolStats(**engine.get_stats())
