"""Synchronous generation API endpoints.

- POST /api/generate - Text to image (JSON body)
- POST /api/edit - Edit an uploaded image with a prompt (multipart)
- POST /api/inpaint - Repaint the masked area of an uploaded image (multipart)
- POST /api/upscale - Upscale an uploaded image (multipart)
- POST /api/enhance-prompt - Rewrite a prompt with a chat model (nothing is stored)

These run concurrently with the queue processor; nothing here touches the queue.
Every image result is stored and recorded in history before the response is sent.
"""

import structlog
from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import Field

from sakuga.api.dependencies import get_registry, get_settings, get_storage, get_uow_factory
from sakuga.api.schemas import (
    CamelModel,
    GenerationRequest,
    HistoryEntryResponse,
    check_limits,
    validate_prompt,
)
from sakuga.models.history import GenerationType
from sakuga.services.exceptions import InvalidRequestError
from sakuga.services.generation import record_generation
from sakuga.services.providers.base import GenerationParams, GenerationResult

logger = structlog.get_logger()
router = APIRouter(prefix="/api", tags=["generation"])

UPSCALE_FACTORS = (2, 4)


# Request/Response Models


class GenerateResponse(CamelModel):
    """Images produced by one text-to-image request."""

    success: bool = True
    images: list[HistoryEntryResponse]
    total_cost: float = Field(..., description="Total cost of the batch")


class SingleImageResponse(HistoryEntryResponse):
    """History entry of the single image produced by edit, inpaint or upscale."""

    success: bool = True


class EnhancePromptRequest(CamelModel):
    prompt: str = ""
    provider: str = Field(default="openai", description="Preferred enhancer (openai or gemini)")


class EnhancePromptResponse(CamelModel):
    success: bool = True
    original: str
    enhanced: str


# Helpers


def _check_text(settings, prompt: str) -> str:
    try:
        validate_prompt(prompt)
    except ValueError as e:
        raise InvalidRequestError(str(e)) from e
    check_limits(settings, prompt=prompt)
    return prompt


async def _read_upload(upload: UploadFile, name: str) -> tuple[bytes, str]:
    data = await upload.read()
    if not data:
        raise InvalidRequestError(f"{name.capitalize()} is required")
    return data, upload.content_type or "image/png"


async def _record_single(
    uow_factory,
    storage,
    result: GenerationResult,
    *,
    prompt: str,
    generation_type: GenerationType,
    provider: str,
    model: str | None,
) -> SingleImageResponse:
    # Single-image operations keep only the first image and its full cost
    result = GenerationResult(images=result.images[:1], cost=result.cost)
    async with storage.staged() as saved:
        async with await uow_factory() as uow:
            entries = await record_generation(
                uow,
                storage,
                result,
                prompt=prompt,
                generation_type=generation_type,
                provider=provider,
                model=model,
                aspect_ratio=None,
                staged=saved,
            )
    logger.info(
        "generation.succeeded",
        type=generation_type.value,
        provider=provider,
        cost=result.cost,
    )
    return SingleImageResponse.model_validate(entries[0])


# Endpoints


@router.post("/generate", response_model=GenerateResponse)
async def generate(
    request: GenerationRequest,
    settings=Depends(get_settings),
    registry=Depends(get_registry),
    storage=Depends(get_storage),
    uow_factory=Depends(get_uow_factory),
) -> GenerateResponse:
    """Generate images immediately and record them in history.

    Raises:
        404: Unknown provider
        400: Missing API key or request over the configured limits
        502: Vendor failure or empty result
    """
    check_limits(settings, prompt=request.prompt, count=request.count)

    result = await registry.generate(
        request.provider,
        GenerationParams(
            prompt=request.prompt,
            model=request.model,
            aspect_ratio=request.aspect_ratio,
            count=request.count,
        ),
    )

    async with storage.staged() as saved:
        async with await uow_factory() as uow:
            entries = await record_generation(
                uow,
                storage,
                result,
                prompt=request.prompt,
                generation_type=GenerationType.GENERATE,
                provider=request.provider,
                model=request.model,
                aspect_ratio=request.aspect_ratio,
                requested_count=request.count,
                staged=saved,
            )

    logger.info(
        "generation.succeeded",
        type=GenerationType.GENERATE.value,
        provider=request.provider,
        images=len(entries),
        cost=result.cost,
    )
    return GenerateResponse(
        images=[HistoryEntryResponse.model_validate(e) for e in entries],
        total_cost=result.cost,
    )


@router.post("/edit", response_model=SingleImageResponse)
async def edit(
    prompt: str = Form(...),
    provider: str = Form("openai"),
    model: str | None = Form(None),
    strength: float | None = Form(None, ge=0, le=1),
    image: UploadFile = File(...),
    settings=Depends(get_settings),
    registry=Depends(get_registry),
    storage=Depends(get_storage),
    uow_factory=Depends(get_uow_factory),
) -> SingleImageResponse:
    """Edit an uploaded image according to the prompt."""
    _check_text(settings, prompt)
    image_data, mime_type = await _read_upload(image, "image")

    result = await registry.edit(
        provider,
        GenerationParams(
            prompt=prompt,
            model=model,
            image_data=image_data,
            mime_type=mime_type,
            strength=strength,
        ),
    )
    return await _record_single(
        uow_factory,
        storage,
        result,
        prompt=prompt,
        generation_type=GenerationType.EDIT,
        provider=provider,
        model=model,
    )


@router.post("/inpaint", response_model=SingleImageResponse)
async def inpaint(
    prompt: str = Form(...),
    provider: str = Form("stability"),
    image: UploadFile = File(...),
    mask: UploadFile = File(...),
    settings=Depends(get_settings),
    registry=Depends(get_registry),
    storage=Depends(get_storage),
    uow_factory=Depends(get_uow_factory),
) -> SingleImageResponse:
    """Repaint the white area of the mask according to the prompt."""
    _check_text(settings, prompt)
    image_data, mime_type = await _read_upload(image, "image")
    mask_data, _ = await _read_upload(mask, "mask")

    result = await registry.inpaint(
        provider,
        GenerationParams(
            prompt=prompt,
            image_data=image_data,
            mime_type=mime_type,
            mask_data=mask_data,
        ),
    )
    return await _record_single(
        uow_factory,
        storage,
        result,
        prompt=prompt,
        generation_type=GenerationType.INPAINT,
        provider=provider,
        model=None,
    )


@router.post("/upscale", response_model=SingleImageResponse)
async def upscale(
    provider: str = Form("stability"),
    scale: int = Form(2),
    image: UploadFile = File(...),
    registry=Depends(get_registry),
    storage=Depends(get_storage),
    uow_factory=Depends(get_uow_factory),
) -> SingleImageResponse:
    """Upscale an uploaded image by 2x or 4x."""
    if scale not in UPSCALE_FACTORS:
        raise InvalidRequestError(
            f"Scale must be one of: {', '.join(str(s) for s in UPSCALE_FACTORS)}"
        )
    image_data, mime_type = await _read_upload(image, "image")

    result = await registry.upscale(
        provider,
        GenerationParams(image_data=image_data, mime_type=mime_type, scale=scale),
    )
    return await _record_single(
        uow_factory,
        storage,
        result,
        prompt=f"Upscaled {scale}x",
        generation_type=GenerationType.UPSCALE,
        provider=provider,
        model=None,
    )


@router.post("/enhance-prompt", response_model=EnhancePromptResponse)
async def enhance_prompt(
    request: EnhancePromptRequest,
    settings=Depends(get_settings),
    registry=Depends(get_registry),
) -> EnhancePromptResponse:
    """Rewrite a prompt into a more detailed one with OpenAI or Gemini chat models.

    Raises:
        400: Empty prompt, or neither OpenAI nor Gemini has a key
        502: Vendor failure
    """
    if not request.prompt.strip():
        raise InvalidRequestError("Prompt is required")
    check_limits(settings, prompt=request.prompt)

    enhanced, provider = await registry.enhance_prompt(request.prompt, request.provider)
    logger.info(
        "prompt.enhanced",
        provider=provider,
        original_length=len(request.prompt),
        enhanced_length=len(enhanced),
    )
    return EnhancePromptResponse(original=request.prompt, enhanced=enhanced)
