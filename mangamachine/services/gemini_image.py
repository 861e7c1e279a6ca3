import logging
from typing import Sequence

from google import genai
from google.genai import types

from mangamachine.core.exceptions import InvalidImageError
from mangamachine.orchestration.images import image_from_bytes
from mangamachine.orchestration.models import (
    ErrorKind,
    GenerationResult,
    GenerationSuccess,
    ImageData,
    ImageSize,
    ProviderHandle,
    ProviderName,
    ReferenceEncoding,
    ReferenceImage,
)
from mangamachine.orchestration.prompts import apply_style
from mangamachine.orchestration.retry import failure_from_exception
from mangamachine.services.provider_base import ProviderHandler, is_placeholder_credential

logger = logging.getLogger(__name__)

_SAFETY_FINISH_MARKERS = ("SAFETY", "PROHIBITED", "BLOCKLIST", "SPII")

_DEFAULT_SAFETY_SETTINGS = [
    {"category": types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT, "threshold": types.HarmBlockThreshold.BLOCK_NONE},
    {"category": types.HarmCategory.HARM_CATEGORY_HATE_SPEECH, "threshold": types.HarmBlockThreshold.BLOCK_NONE},
    {"category": types.HarmCategory.HARM_CATEGORY_HARASSMENT, "threshold": types.HarmBlockThreshold.BLOCK_NONE},
    {"category": types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT, "threshold": types.HarmBlockThreshold.BLOCK_NONE},
]


class GeminiImageProvider(ProviderHandler):
    """Gemini Flash Image behind the provider contract.

    Accepts inline reference images only; remote URLs are skipped.
    """

    def __init__(self, api_key: str | None, image_model: str = "gemini-2.5-flash-image"):
        self._image_model = image_model
        available = not is_placeholder_credential(api_key)
        self.handle = ProviderHandle(
            name=ProviderName.GEMINI,
            max_reference_images=4,
            reference_encodings=frozenset({ReferenceEncoding.INLINE}),
            response_encodings=frozenset({"inline"}),
            available=available,
        )
        self._client = genai.Client(api_key=api_key) if available else None

    def _blocked_reason(self, response: types.GenerateContentResponse) -> str | None:
        """Return a description when the response was stopped by safety filters."""
        feedback = getattr(response, "prompt_feedback", None)
        block_reason = getattr(feedback, "block_reason", None) if feedback else None
        if block_reason:
            return f"prompt blocked: {block_reason}"

        candidate = (response.candidates or [None])[0]
        if candidate is None:
            return None
        finish_reason = str(getattr(candidate, "finish_reason", "") or "").upper()
        if any(marker in finish_reason for marker in _SAFETY_FINISH_MARKERS):
            blocked_categories = []
            for rating in getattr(candidate, "safety_ratings", None) or []:
                if getattr(rating, "blocked", False):
                    blocked_categories.append(str(getattr(rating, "category", "UNKNOWN")))
            return f"content blocked by safety filters: finish_reason={finish_reason} categories={blocked_categories}"
        return None

    def _extract_image(self, response: types.GenerateContentResponse) -> ImageData | None:
        candidate = (response.candidates or [None])[0]
        if candidate is None or not candidate.content or not candidate.content.parts:
            return None

        for part in candidate.content.parts:
            inline_data = part.inline_data
            if inline_data and inline_data.data:
                return image_from_bytes(inline_data.data, inline_data.mime_type)
        return None

    def _build_contents(self, prompt: str, reference_images: Sequence[ReferenceImage]) -> list:
        contents: list = [prompt]
        for ref in self.usable_references(reference_images):
            contents.append(types.Part.from_bytes(data=ref.image.data, mime_type=ref.image.mime_type))
        return contents

    async def generate(
        self,
        prompt: str,
        reference_images: Sequence[ReferenceImage],
        language: str,
        size: ImageSize,
        style: str,
    ) -> GenerationResult:
        if self._client is None:
            return self.unavailable()

        contents = self._build_contents(apply_style(prompt, style), reference_images)
        try:
            response = await self._client.aio.models.generate_content(
                model=self._image_model,
                contents=contents,
                config=types.GenerateContentConfig(
                    image_config=types.ImageConfig(aspect_ratio=size.aspect_ratio),
                    safety_settings=_DEFAULT_SAFETY_SETTINGS,
                ),
            )
        except Exception as exc:  # noqa: BLE001
            return failure_from_exception(exc, self.name)

        try:
            image = self._extract_image(response)
        except InvalidImageError as exc:
            return self.failure(ErrorKind.INVALID_RESPONSE, str(exc))
        if image is not None:
            return GenerationSuccess(image=image, provider_used=self.name)

        blocked = self._blocked_reason(response)
        if blocked:
            logger.info("gemini.generate_image blocked model=%s reason=%s", self._image_model, blocked)
            return self.failure(ErrorKind.CONTENT_POLICY_REJECTED, blocked)

        candidate = (response.candidates or [None])[0]
        finish_reason = getattr(candidate, "finish_reason", None) if candidate else None
        return self.failure(
            ErrorKind.INVALID_RESPONSE,
            f"Gemini returned no image data (finish_reason={finish_reason or 'unknown'})",
        )
