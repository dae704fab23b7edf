"""Image adapters: generation, edit, and variation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from conduit.adapters.base import (
    as_mapping,
    check_file,
    new_response_id,
    set_if_present,
)
from conduit.endpoints import Endpoint
from conduit.errors import ValidationError
from conduit.files import MB, LocalFileValidator
from conduit.response import ImageResult, ResponseDto

if TYPE_CHECKING:
    from collections.abc import Mapping

    from conduit.files import FileValidator
    from conduit.request import ImageInput, UnifiedRequest

logger = logging.getLogger(__name__)

MAX_PROMPT_CHARS = 4000
MAX_IMAGE_BYTES = 4 * MB
PNG_ONLY: tuple[str, ...] = ("png",)

_DALL_E_3 = "dall-e-3"
_DALL_E_2 = "dall-e-2"
_SIZES: dict[str, tuple[str, ...]] = {
    _DALL_E_3: ("1024x1024", "1792x1024", "1024x1792"),
    _DALL_E_2: ("256x256", "512x512", "1024x1024"),
}
_MAX_N: dict[str, int] = {_DALL_E_3: 1}
_DEFAULT_MAX_N = 10

_QUALITIES = ("standard", "hd")
_STYLES = ("vivid", "natural")
# Models that accept quality/style; other models silently drop them.
_QUALITY_STYLE_MODELS = frozenset({_DALL_E_3})


def valid_sizes(model: str) -> tuple[str, ...]:
    return _SIZES.get(model, _SIZES[_DALL_E_2])


def max_images(model: str) -> int:
    return _MAX_N.get(model, _DEFAULT_MAX_N)


class _ImageAdapter:
    endpoint: Endpoint

    def __init__(self, validator: FileValidator | None = None) -> None:
        self.validator = validator or LocalFileValidator()

    def _image(self, request: UnifiedRequest) -> ImageInput:
        if request.image is None:
            raise ValidationError(
                "Image configuration is required",
                endpoint=self.endpoint.value,
                field="image",
            )
        return request.image

    def _fail(self, message: str, field: str, hint: str | None = None) -> ValidationError:
        return ValidationError(message, hint=hint, endpoint=self.endpoint.value, field=field)

    def _check_prompt(self, prompt: str | None) -> str:
        if prompt is None:
            raise self._fail("Prompt is required", "image.prompt")
        prompt = str(prompt)
        if not prompt.strip():
            raise self._fail("Prompt cannot be empty", "image.prompt")
        if len(prompt) > MAX_PROMPT_CHARS:
            raise self._fail(
                f"Prompt exceeds maximum length of {MAX_PROMPT_CHARS} characters "
                f"(got {len(prompt)})",
                "image.prompt",
            )
        return prompt

    def _check_size_and_count(self, model: str, size: str, n: int) -> None:
        sizes = valid_sizes(model)
        if size not in sizes:
            raise self._fail(
                f"Invalid size '{size}' for model '{model}'",
                "image.size",
                hint=f"Valid sizes: {', '.join(sizes)}.",
            )
        limit = max_images(model)
        if n < 1 or n > limit:
            raise self._fail(
                f"Invalid image count {n} for model '{model}'",
                "image.n",
                hint=f"Use 1 to {limit} images." if limit > 1 else "Use n=1.",
            )

    def _check_png(self, path: Any, field: str, label: str) -> None:
        check_file(
            self.validator,
            path,
            endpoint=self.endpoint,
            field=field,
            allowed_extensions=PNG_ONLY,
            max_bytes=MAX_IMAGE_BYTES,
            label=label,
        )

    def transform_response(self, payload: Mapping[str, Any]) -> ResponseDto:
        raw = as_mapping(payload)
        data = raw.get("data")
        images = tuple(
            img
            for img in (ImageResult.parse(d) for d in (data if isinstance(data, list) else ()))
            if img is not None
        )
        return ResponseDto(
            id=new_response_id(self.endpoint),
            type=self.endpoint.value,
            status="completed",
            text=None,
            images=images,
            metadata={"created": raw.get("created"), "count": len(images)},
            raw=raw,
        )


class ImageGenerationAdapter(_ImageAdapter):
    """``/images/generations``: create images from a prompt."""

    endpoint = Endpoint.IMAGE_GENERATION

    def transform_request(self, request: UnifiedRequest) -> dict[str, Any]:
        image = self._image(request)
        prompt = self._check_prompt(image.prompt)
        model = image.model or _DALL_E_2
        n = image.n if image.n is not None else 1
        size = image.size or "1024x1024"
        self._check_size_and_count(model, size, n)

        payload: dict[str, Any] = {"prompt": prompt, "model": model, "n": n, "size": size}
        if model in _QUALITY_STYLE_MODELS:
            if image.quality is not None and image.quality not in _QUALITIES:
                raise self._fail(
                    f"Invalid quality '{image.quality}'",
                    "image.quality",
                    hint="Use 'standard' or 'hd'.",
                )
            if image.style is not None and image.style not in _STYLES:
                raise self._fail(
                    f"Invalid style '{image.style}'",
                    "image.style",
                    hint="Use 'vivid' or 'natural'.",
                )
            set_if_present(payload, "quality", image.quality)
            set_if_present(payload, "style", image.style)
        elif image.quality is not None or image.style is not None:
            logger.debug("Dropping quality/style for model %s", model)

        payload["response_format"] = image.response_format or "url"
        set_if_present(payload, "user", image.user)
        return payload


class ImageEditAdapter(_ImageAdapter):
    """``/images/edits``: modify a PNG with a prompt and optional mask."""

    endpoint = Endpoint.IMAGE_EDIT

    def transform_request(self, request: UnifiedRequest) -> dict[str, Any]:
        image = self._image(request)
        if image.image is None:
            raise self._fail("Image file is required", "image.image")
        prompt = self._check_prompt(image.prompt)
        self._check_png(image.image, "image.image", "Image file")
        if image.mask is not None:
            if not str(image.mask).lower().endswith(".png"):
                raise self._fail("Mask must be in PNG format", "image.mask")
            self._check_png(image.mask, "image.mask", "Mask file")

        model = image.model or _DALL_E_2
        n = image.n if image.n is not None else 1
        size = image.size or "1024x1024"
        self._check_size_and_count(model, size, n)

        payload: dict[str, Any] = {"image": image.image, "prompt": prompt}
        set_if_present(payload, "mask", image.mask)
        payload.update({"model": model, "n": n, "size": size})
        payload["response_format"] = image.response_format or "url"
        set_if_present(payload, "user", image.user)
        return payload


class ImageVariationAdapter(_ImageAdapter):
    """``/images/variations``: produce variations of a PNG image."""

    endpoint = Endpoint.IMAGE_VARIATION

    def transform_request(self, request: UnifiedRequest) -> dict[str, Any]:
        image = self._image(request)
        if image.image is None:
            raise self._fail("Image file is required", "image.image")
        self._check_png(image.image, "image.image", "Image file")

        model = image.model or _DALL_E_2
        n = image.n if image.n is not None else 1
        size = image.size or "1024x1024"
        self._check_size_and_count(model, size, n)

        payload: dict[str, Any] = {"image": image.image, "model": model, "n": n, "size": size}
        payload["response_format"] = image.response_format or "url"
        set_if_present(payload, "user", image.user)
        return payload
