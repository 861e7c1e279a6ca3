import asyncio
import io
from typing import Callable, Sequence

import httpx
import pytest
from PIL import Image

from mangamachine.orchestration.batch import BatchScheduler
from mangamachine.orchestration.cache import CacheStore
from mangamachine.orchestration.models import (
    GenerationResult,
    GenerationSuccess,
    ImageData,
    ImageSize,
    ProviderHandle,
    ProviderName,
    ReferenceEncoding,
    ReferenceImage,
)
from mangamachine.orchestration.orchestrator import GenerationOrchestrator
from mangamachine.orchestration.retry import RetryPolicy
from mangamachine.services.provider_base import ProviderHandler


def make_png(color: tuple[int, int, int] = (200, 30, 30), size: tuple[int, int] = (4, 4)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


PNG_BYTES = make_png()


class FakeSleep:
    """Records requested delays and yields control without waiting."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


class FakeProvider(ProviderHandler):
    """Scripted provider: pops results from ``script``, then succeeds.

    Script items may be results, exceptions (raised), or callables taking the
    prompt and returning a result.
    """

    def __init__(
        self,
        name: ProviderName,
        script: Sequence = (),
        *,
        available: bool = True,
        delay: float = 0.0,
        responder: Callable[[str], GenerationResult | None] | None = None,
        reference_encodings: frozenset = frozenset({ReferenceEncoding.INLINE, ReferenceEncoding.URL}),
    ):
        self.handle = ProviderHandle(
            name=name,
            max_reference_images=4,
            reference_encodings=reference_encodings,
            response_encodings=frozenset({"inline"}),
            available=available,
        )
        self.script = list(script)
        self.delay = delay
        self.responder = responder
        self.calls: list[dict] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    @property
    def call_count(self) -> int:
        return len(self.calls)

    @property
    def prompts(self) -> list[str]:
        return [call["prompt"] for call in self.calls]

    async def generate(
        self,
        prompt: str,
        reference_images: Sequence[ReferenceImage],
        language: str,
        size: ImageSize,
        style: str,
    ) -> GenerationResult:
        self.calls.append(
            {
                "prompt": prompt,
                "reference_images": list(reference_images),
                "language": language,
                "size": size,
                "style": style,
            }
        )
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if self.responder is not None:
                result = self.responder(prompt)
                if result is not None:
                    return result
            if self.script:
                item = self.script.pop(0)
                if isinstance(item, BaseException):
                    raise item
                return item
            return GenerationSuccess(image=ImageData(PNG_BYTES, "image/png"), provider_used=self.name)
        finally:
            self.in_flight -= 1

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def gemini():
    return FakeProvider(ProviderName.GEMINI)


@pytest.fixture
def volcengine():
    return FakeProvider(ProviderName.VOLCENGINE)


@pytest.fixture
def build_orchestrator(fake_sleep):
    def _build(*providers: ProviderHandler, **kwargs) -> GenerationOrchestrator:
        kwargs.setdefault("retry_policy", RetryPolicy(timeout_seconds=5.0))
        kwargs.setdefault("scheduler", BatchScheduler(sleep=fake_sleep))
        kwargs.setdefault("cache", CacheStore())
        return GenerationOrchestrator(providers, sleep=fake_sleep, **kwargs)

    return _build


@pytest.fixture
def orchestrator(build_orchestrator, gemini, volcengine):
    return build_orchestrator(gemini, volcengine)


@pytest.fixture()
async def client(monkeypatch, orchestrator):
    from mangamachine import main as main_module

    monkeypatch.setattr(main_module, "build_orchestrator", lambda config: orchestrator)
    async with main_module.app.router.lifespan_context(main_module.app):
        transport = httpx.ASGITransport(app=main_module.app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
