"""Endpoint routing: classify a unified request into exactly one endpoint."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from conduit.config import RoutingConfig
from conduit.endpoints import Endpoint
from conduit.errors import EndpointRoutingError

if TYPE_CHECKING:
    from collections.abc import Callable

    from conduit.request import UnifiedRequest

logger = logging.getLogger(__name__)


def _is_transcription(r: UnifiedRequest) -> bool:
    return r.audio is not None and r.audio.file is not None and r.audio.action == "transcribe"


def _is_translation(r: UnifiedRequest) -> bool:
    return r.audio is not None and r.audio.file is not None and r.audio.action == "translate"


def _is_speech(r: UnifiedRequest) -> bool:
    return r.audio is not None and r.audio.text is not None and r.audio.action == "speech"


def _is_image_generation(r: UnifiedRequest) -> bool:
    return r.image is not None and r.image.prompt is not None and r.image.image is None


def _is_image_edit(r: UnifiedRequest) -> bool:
    # A mask only makes sense for edits, so it wins over variation.
    return (
        r.image is not None
        and r.image.image is not None
        and (r.image.prompt is not None or r.image.mask is not None)
    )


def _is_image_variation(r: UnifiedRequest) -> bool:
    return (
        r.image is not None
        and r.image.image is not None
        and r.image.prompt is None
        and r.image.mask is None
    )


def _is_chat_completion(r: UnifiedRequest) -> bool:
    return r.audio_input is not None


def _is_response_api(r: UnifiedRequest) -> bool:
    return r.has_text


_PREDICATES: dict[Endpoint, Callable[[UnifiedRequest], bool]] = {
    Endpoint.AUDIO_TRANSCRIPTION: _is_transcription,
    Endpoint.AUDIO_TRANSLATION: _is_translation,
    Endpoint.AUDIO_SPEECH: _is_speech,
    Endpoint.IMAGE_GENERATION: _is_image_generation,
    Endpoint.IMAGE_EDIT: _is_image_edit,
    Endpoint.IMAGE_VARIATION: _is_image_variation,
    Endpoint.CHAT_COMPLETION: _is_chat_completion,
    Endpoint.RESPONSE_API: _is_response_api,
}


class RequestRouter:
    """Pick the endpoint that serves a unified request.

    The router holds only its immutable configuration and is safe to share
    across concurrent turns.
    """

    def __init__(self, config: RoutingConfig | None = None) -> None:
        self.config = config or RoutingConfig()
        self.priority = self._resolve_priority(self.config)

    @staticmethod
    def _resolve_priority(config: RoutingConfig) -> tuple[Endpoint, ...]:
        valid = {e.value for e in Endpoint}
        invalid = [
            str(name)
            for name in config.priority
            if str(name).strip().lower() not in valid
        ]
        if invalid and config.validate_endpoint_names:
            raise EndpointRoutingError.invalid_priority_configuration(
                "The priority list names endpoints that do not exist. "
                f"Invalid endpoints: {', '.join(invalid)}. "
                f"Valid endpoints: {', '.join(e.value for e in Endpoint)}."
            )
        if invalid:
            logger.debug("Ignoring unknown endpoints in priority list: %s", invalid)

        resolved: list[Endpoint] = []
        for name in config.priority:
            if str(name) in invalid:
                continue
            endpoint = Endpoint.parse(name)
            if endpoint not in resolved:
                resolved.append(endpoint)
        return tuple(resolved)

    def candidates(self, request: UnifiedRequest) -> list[Endpoint]:
        """Return every endpoint whose predicate matches, in priority order."""
        return [e for e in self.priority if _PREDICATES[e](request)]

    def determine_endpoint(self, request: UnifiedRequest) -> Endpoint:
        """Return the single endpoint for *request*.

        Raises:
            EndpointRoutingError: When modalities conflict and the configured
                behavior is ``"error"``.
        """
        matches = self.candidates(request)
        if not matches:
            logger.debug("No endpoint predicate matched; using response_api")
            return Endpoint.RESPONSE_API

        chosen = matches[0]
        if self.config.validate_conflicts:
            reasoning = self._conflict_reasoning(request, matches)
            if reasoning is not None:
                self._handle_conflict(matches, reasoning, chosen)

        logger.debug("Routed request to %s", chosen.value)
        return chosen

    @staticmethod
    def _conflict_reasoning(
        request: UnifiedRequest, matches: list[Endpoint]
    ) -> str | None:
        populated = request.populated_modalities()
        families = sorted({m.modality for m in matches})
        if len(populated) > 1:
            return (
                "The request populates more than one top-level modality "
                f"({', '.join(populated)}); only one of text, audio or image may be set."
            )
        if len(families) > 1:
            return (
                "Endpoints from different modalities "
                f"({', '.join(families)}) matched the same request."
            )
        return None

    def _handle_conflict(
        self, matches: list[Endpoint], reasoning: str, chosen: Endpoint
    ) -> None:
        names = [m.value for m in matches]
        behavior = self.config.conflict_behavior
        if behavior == "error":
            raise EndpointRoutingError.conflicting_endpoints(names, reasoning)
        if behavior == "warn":
            logger.warning(
                "Endpoint conflict between %s; using %s. %s",
                ", ".join(names),
                chosen.value,
                reasoning,
            )
