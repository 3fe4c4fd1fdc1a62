"""Virtual try-on endpoints.

Landmark detection runs on the device; the backend only applies the pixel
filters to a single frame and lists the services that offer a try-on preview.
"""

import base64
import binascii
import logging
import os
from typing import Any, Optional

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..database import get_db
from ..models import BeautyService
from ..rate_limiter import create_rate_limiter
from ..services.image_processing import ImageProcessingError, encode_frame, process_frame

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/try-on", tags=["Virtual Try-On"])

rate_limit_process = create_rate_limiter(
    limit=int(os.getenv("TRY_ON_PROCESS_RPM", "120")),
    window_seconds=60,
    key_prefix="try_on_process",
)

MAX_IMAGE_BYTES = 8 * 1024 * 1024


class FaceLandmark(BaseModel):
    x: float = Field(..., ge=0, le=1)
    y: float = Field(..., ge=0, le=1)
    z: Optional[float] = None


class TryOnFilter(BaseModel):
    type: str  # makeup, skin, hair; others are ignored
    settings: dict[str, Any] = Field(default_factory=dict)


class ProcessFrameRequest(BaseModel):
    image: str = Field(..., description="Base64 encoded PNG/JPEG, optionally as a data URL")
    landmarks: list[FaceLandmark]
    filters: list[TryOnFilter]


class ProcessFrameResponse(BaseModel):
    image: str
    width: int
    height: int


class TryOnProduct(BaseModel):
    service_id: int
    name: str
    category: str
    product_type: Optional[str] = None
    color: Optional[str] = None
    price: float


def _decode_image(value: str) -> bytes:
    if value.startswith("data:"):
        value = value.split(",", 1)[-1]
    try:
        data = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageProcessingError("Image is not valid base64") from e
    if len(data) > MAX_IMAGE_BYTES:
        raise ImageProcessingError("Image exceeds the 8MB limit")
    return data


@router.post(
    "/process",
    response_model=ProcessFrameResponse,
    dependencies=[Depends(rate_limit_process)],
)
async def process_try_on_frame(data: ProcessFrameRequest):
    """Apply try-on filters to one frame and return it as a base64 PNG"""
    try:
        frame = _decode_image(data.image)
        processed = await run_in_threadpool(
            process_frame,
            frame,
            [landmark.model_dump() for landmark in data.landmarks],
            [f.model_dump() for f in data.filters],
        )
    except ImageProcessingError as e:
        logger.warning(f"⚠️ Try-on frame rejected: {e}")
        return JSONResponse(status_code=400, content={"error": str(e)})

    height, width = processed.shape[:2]
    return ProcessFrameResponse(
        image=base64.b64encode(encode_frame(processed)).decode("ascii"),
        width=width,
        height=height,
    )


@router.get("/products", response_model=list[TryOnProduct])
async def list_try_on_products(
    category: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """Active services that support a virtual try-on preview"""
    query = db.query(BeautyService).filter(
        BeautyService.supports_try_on.is_(True), BeautyService.is_active.is_(True)
    )
    if category:
        query = query.filter(BeautyService.category == category)

    return [
        TryOnProduct(
            service_id=s.id,
            name=s.name,
            category=s.category,
            product_type=s.try_on_product_type,
            color=s.try_on_color,
            price=s.price,
        )
        for s in query.order_by(BeautyService.name).all()
    ]
