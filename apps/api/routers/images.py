"""Coloring-page generation router."""

from __future__ import annotations

import asyncio
import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from config import require_image_provider_keys, settings
from database import get_db
from routers.auth_scope import require_session
from routers.rate_limit import rate_limit
from services.credits import release_credits, try_consume
from services.errors import StoreUnavailable, store_errors
from services.generations import record_generation
from services.identity import SessionIdentity
from services.image_generation import ImageGenerationError, generate_coloring_page
from services.image_storage import IMAGE_MIME_BY_FORMAT, resolve_stored_image, store_generated_images
from services.ledger import ensure_account
from services.prompts import build_coloring_prompt

router = APIRouter()
logger = logging.getLogger(__name__)

ALLOWED_IMAGE_MIME_PREFIXES = ("image/",)


async def _release_debit(db: AsyncSession, user_id: str, cost: int) -> None:
    # A failed commit leaves the session unusable until rolled back.
    await db.rollback()
    await release_credits(db, user_id, cost)


@router.post("/coloring-page")
async def create_coloring_page(
    image: UploadFile = File(...),
    prompt_type: Literal["straight_copy", "facial_portrait", "cartoon_portrait"] = Form("straight_copy"),
    background: Literal["plain", "mindful"] = Form("plain"),
    name_message: Optional[str] = Form(None),
    activity_interest: Optional[str] = Form(None),
    output_format: str = Form("png"),
    _rate_limit: None = Depends(rate_limit("coloring_page", limit=30, window_seconds=3600)),
    auth: SessionIdentity = Depends(require_session),
    db: AsyncSession = Depends(get_db),
):
    """Spend credits on one photo-to-coloring-page generation."""
    try:
        require_image_provider_keys()
    except ValueError as exc:
        logger.error("Image provider not configured: %s", exc)
        raise HTTPException(status_code=503, detail=f"Server configuration error: {exc}") from exc

    content_type = (image.content_type or "").lower()
    if not content_type.startswith(ALLOWED_IMAGE_MIME_PREFIXES):
        raise HTTPException(status_code=400, detail="Image file is required for coloring page generation")
    image_bytes = await image.read()
    if not image_bytes:
        raise HTTPException(status_code=400, detail="Image file is required for coloring page generation")
    if len(image_bytes) > int(settings.MAX_IMAGE_UPLOAD_BYTES):
        raise HTTPException(status_code=413, detail="Image file is too large")

    name = (name_message or "").strip() or None
    background_type = None if prompt_type == "straight_copy" else background
    activity = None
    if prompt_type == "cartoon_portrait":
        activity = (activity_interest or "").strip() or None
    prompt = build_coloring_prompt(prompt_type, background_type, name, activity)

    async with store_errors("ensure_account"):
        await ensure_account(db, auth.user_id, auth.email)
        await db.commit()

    cost = max(int(settings.CREDITS_PER_GENERATION), 1)
    debit = await try_consume(db, auth.user_id, cost)
    if not debit.granted:
        raise HTTPException(
            status_code=402,
            detail="Insufficient credits. Please purchase more credits to continue.",
        )

    try:
        generated = await generate_coloring_page(image_bytes, content_type, prompt)
        stored = await asyncio.to_thread(store_generated_images, generated, output_format)
        record = await record_generation(
            db,
            user_id=auth.user_id,
            image_filename=stored[0].filename,
            prompt_type=prompt_type,
            prompt_text=prompt,
            name_message=name,
            background_type=background_type,
            activity_interest=activity,
            credits_used=cost,
        )
    except ImageGenerationError as exc:
        logger.warning("Generation failed for %s, releasing %s credit(s): %s", auth.user_id, cost, exc)
        await _release_debit(db, auth.user_id, cost)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except StoreUnavailable:
        logger.warning("Store unavailable after debit for %s, releasing %s credit(s)", auth.user_id, cost)
        await _release_debit(db, auth.user_id, cost)
        raise
    except OSError as exc:
        logger.exception("Could not store generated image for %s", auth.user_id)
        await _release_debit(db, auth.user_id, cost)
        raise HTTPException(status_code=500, detail="Failed to store generated image.") from exc
    except Exception as exc:
        logger.exception("Coloring page generation failed for %s", auth.user_id)
        await _release_debit(db, auth.user_id, cost)
        raise HTTPException(status_code=500, detail="Failed to generate coloring page.") from exc

    return {
        "generation_id": record.id,
        "images": [
            {
                "filename": item.filename,
                "b64_json": item.b64_json,
                "output_format": item.output_format,
                **({"path": item.path} if item.path else {}),
            }
            for item in stored
        ],
        "credits": {"charged": cost, "available_after": debit.available_after},
    }


@router.get("/files/{filename}")
async def get_generated_image(filename: str):
    """Serve an image saved in fs storage mode."""
    path = resolve_stored_image(filename)
    if path is None:
        raise HTTPException(status_code=404, detail="Image not found")
    media_type = IMAGE_MIME_BY_FORMAT.get(path.suffix.lstrip(".").lower(), "application/octet-stream")
    return FileResponse(path, media_type=media_type)
