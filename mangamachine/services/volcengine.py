import logging
from typing import Any, Sequence

import httpx

from mangamachine.core.exceptions import InvalidImageError
from mangamachine.orchestration.images import decode_base64_image, image_from_bytes
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
from mangamachine.orchestration.retry import classify_error_text, failure_from_exception
from mangamachine.services.provider_base import ProviderHandler, is_placeholder_credential

logger = logging.getLogger(__name__)

GENERATIONS_PATH = "/api/v3/images/generations"
_OVERLOAD_STATUS_CODES = {429, 503}


class VolcEngineImageProvider(ProviderHandler):
    """VolcEngine Ark Seedream image generation over plain HTTP.

    References go out as data URLs or remote URLs in the ``image`` list. The
    response is either a short-lived URL (downloaded here) or base64 JSON.
    """

    def __init__(
        self,
        api_key: str | None,
        base_url: str = "https://ark.cn-beijing.volces.com",
        image_model: str = "doubao-seedream-4-0-250828",
        timeout_seconds: float = 120.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._image_model = image_model
        self.handle = ProviderHandle(
            name=ProviderName.VOLCENGINE,
            max_reference_images=4,
            reference_encodings=frozenset({ReferenceEncoding.INLINE, ReferenceEncoding.URL}),
            response_encodings=frozenset({"url", "b64_json"}),
            available=not is_placeholder_credential(api_key),
        )
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout_seconds)

    def build_payload(
        self,
        prompt: str,
        reference_images: Sequence[ReferenceImage],
        size: ImageSize,
        style: str,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self._image_model,
            "prompt": apply_style(prompt, style),
            "response_format": "url",
            "size": size.volcengine_size,
            "stream": False,
            "watermark": False,
            "sequential_image_generation": "auto",
            "sequential_image_generation_options": {"max_images": 1},
        }
        images = [ref.url if ref.url else ref.image.to_data_url() for ref in self.usable_references(reference_images)]
        if images:
            payload["image"] = images
        return payload

    def _classify_http_error(self, response: httpx.Response) -> tuple[ErrorKind, str]:
        text = response.text
        code = ""
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            error = body.get("error") or {}
            if isinstance(error, dict):
                code = str(error.get("code") or "")
                text = str(error.get("message") or text)

        message = f"HTTP {response.status_code}: {code + ': ' if code else ''}{text}"
        if "SensitiveContent" in code or "sensitive" in text.lower():
            return ErrorKind.CONTENT_POLICY_REJECTED, message
        if response.status_code in _OVERLOAD_STATUS_CODES:
            return ErrorKind.OVERLOADED, message
        kind = classify_error_text(message)
        if kind is ErrorKind.CONTENT_POLICY_REJECTED:
            kind = ErrorKind.PROVIDER_ERROR
        return kind, message

    async def _download(self, url: str) -> ImageData:
        resp = await self._http.get(url)
        resp.raise_for_status()
        return image_from_bytes(resp.content, resp.headers.get("content-type"))

    async def generate(
        self,
        prompt: str,
        reference_images: Sequence[ReferenceImage],
        language: str,
        size: ImageSize,
        style: str,
    ) -> GenerationResult:
        if not self.handle.available:
            return self.unavailable()

        payload = self.build_payload(prompt, reference_images, size, style)
        try:
            response = await self._http.post(
                f"{self._base_url}{GENERATIONS_PATH}",
                json=payload,
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
        except httpx.TimeoutException as exc:
            return self.failure(ErrorKind.TIMEOUT, f"VolcEngine request timed out: {exc}")
        except httpx.HTTPError as exc:
            return failure_from_exception(exc, self.name)

        if response.status_code >= 400:
            kind, message = self._classify_http_error(response)
            logger.warning("volcengine.generate_image failed status=%s kind=%s", response.status_code, kind.value)
            return self.failure(kind, message)

        try:
            body = response.json()
        except ValueError:
            return self.failure(ErrorKind.INVALID_RESPONSE, "VolcEngine returned a non-JSON body")

        items = body.get("data") if isinstance(body, dict) else None
        if not items:
            error = body.get("error") if isinstance(body, dict) else None
            if isinstance(error, dict) and "SensitiveContent" in str(error.get("code", "")):
                return self.failure(ErrorKind.CONTENT_POLICY_REJECTED, str(error.get("message") or error["code"]))
            return self.failure(ErrorKind.INVALID_RESPONSE, "VolcEngine returned no image data")

        first = items[0]
        try:
            if first.get("b64_json"):
                image = decode_base64_image(first["b64_json"])
            elif first.get("url"):
                image = await self._download(first["url"])
            else:
                return self.failure(ErrorKind.INVALID_RESPONSE, "VolcEngine image entry has neither url nor b64_json")
        except InvalidImageError as exc:
            return self.failure(ErrorKind.INVALID_RESPONSE, str(exc))
        except httpx.TimeoutException as exc:
            return self.failure(ErrorKind.TIMEOUT, f"VolcEngine image download timed out: {exc}")
        except httpx.HTTPError as exc:
            return self.failure(ErrorKind.PROVIDER_ERROR, f"VolcEngine image download failed: {exc}")

        return GenerationSuccess(image=image, provider_used=self.name)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()
