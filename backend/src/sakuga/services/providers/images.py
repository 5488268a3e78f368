"""Helpers for vendors that return image URLs instead of inline data."""

import base64
import binascii

import httpx

from sakuga.services.exceptions import VendorError
from sakuga.services.providers.base import GeneratedImage


def _decode_data_uri(url: str, provider: str | None) -> GeneratedImage:
    header, _, payload = url.partition(",")
    mime_type = header[len("data:") :].split(";")[0] or "image/png"
    if ";base64" not in header:
        raise VendorError("Unsupported data URI encoding (expected base64)", provider=provider)
    try:
        base64.b64decode(payload, validate=True)
    except binascii.Error as e:
        raise VendorError(f"Invalid base64 image data: {e}", provider=provider) from e
    return GeneratedImage(image_data=payload, mime_type=mime_type)


async def fetch_image(
    client: httpx.AsyncClient, url: str, provider: str | None = None
) -> GeneratedImage:
    """Download an image and return it as base64.

    ``data:`` URIs are decoded in place. Any network or HTTP failure raises
    VendorError so the calling adapter fails instead of returning a partial batch.

    Args:
        client: HTTP client to download with
        url: Image URL (https://... or data:image/...;base64,...)
        provider: Provider id for error attribution

    Returns:
        GeneratedImage with base64 data and the served mime type (default image/png)

    Raises:
        VendorError: Download failed or returned a non-success status
    """
    if not url:
        raise VendorError("Vendor returned an empty image URL", provider=provider)

    if url.startswith("data:"):
        return _decode_data_uri(url, provider)

    try:
        response = await client.get(url)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise VendorError(
            f"Failed to fetch image ({e.response.status_code}): {url}", provider=provider
        ) from e
    except httpx.HTTPError as e:
        raise VendorError(f"Failed to fetch image: {e}", provider=provider) from e

    content_type = response.headers.get("content-type", "").split(";")[0].strip()
    mime_type = content_type if content_type.startswith("image/") else "image/png"
    return GeneratedImage(
        image_data=base64.b64encode(response.content).decode("ascii"),
        mime_type=mime_type,
    )
