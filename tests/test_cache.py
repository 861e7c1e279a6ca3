"""Tests for fingerprints and the in-memory artifact cache."""

from hypothesis import given, strategies as st

from mangamachine.orchestration.cache import CacheStore
from mangamachine.orchestration.fingerprint import (
    character_set_fingerprint,
    fingerprint_namespace,
    normalize_description,
    panel_fingerprint,
    request_fingerprint,
)
from mangamachine.orchestration.models import (
    SIZE_PRESETS,
    CharacterSpec,
    GenerationRequest,
    GenerationSuccess,
    ImageData,
    ModelPreference,
    ProviderName,
    ReferenceCategory,
    ReferenceImage,
    SettingDescription,
)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def _artifact(size=10):
    return GenerationSuccess(image=ImageData(b"x" * size), provider_used=ProviderName.GEMINI)


class TestFingerprints:
    def test_whitespace_is_normalized(self):
        assert normalize_description("  a \n  cat\tsits ") == "a cat sits"

    def test_metadata_language_and_preference_ignored(self):
        a = GenerationRequest(prompt="a cat", language="en", metadata={"trace": "1"})
        b = GenerationRequest(
            prompt="a  cat",
            language="ja",
            provider_preference=ModelPreference.VOLCENGINE,
            metadata={"trace": "2"},
        )
        assert request_fingerprint(a) == request_fingerprint(b)

    def test_style_and_size_change_fingerprint(self):
        base = GenerationRequest(prompt="a cat")
        assert request_fingerprint(base) != request_fingerprint(GenerationRequest(prompt="a cat", style="webtoon"))
        assert request_fingerprint(base) != request_fingerprint(
            GenerationRequest(prompt="a cat", size=SIZE_PRESETS["square_1_1"])
        )

    def test_prompt_matters_when_description_is_shared(self):
        a = GenerationRequest(prompt="a red dragon", description="hero")
        b = GenerationRequest(prompt="a blue whale underwater", description="hero")
        assert request_fingerprint(a) != request_fingerprint(b)

    def test_description_matters_when_prompt_is_shared(self):
        a = GenerationRequest(prompt="a red dragon", description="hero")
        b = GenerationRequest(prompt="a red dragon", description="villain")
        assert request_fingerprint(a) != request_fingerprint(b)

    def test_reference_identity_matters(self):
        ref_a = ReferenceImage(ReferenceCategory.CHARACTER, "Mei", image=ImageData(b"a"))
        ref_b = ReferenceImage(ReferenceCategory.CHARACTER, "Mei", image=ImageData(b"b"))
        fa = request_fingerprint(GenerationRequest(prompt="p", reference_images=(ref_a,)))
        fb = request_fingerprint(GenerationRequest(prompt="p", reference_images=(ref_b,)))
        assert fa != fb

    def test_namespaces(self):
        size = SIZE_PRESETS["landscape_16_9"]
        assert fingerprint_namespace(panel_fingerprint(1, "d", [], "manga", size)) == "panel"
        fp = character_set_fingerprint([CharacterSpec("Mei")], SettingDescription(), "manga", size)
        assert fingerprint_namespace(fp) == "character_set"
        assert fingerprint_namespace(request_fingerprint(GenerationRequest(prompt="p"))) == "request"

    def test_panel_sequence_number_matters(self):
        size = SIZE_PRESETS["landscape_16_9"]
        assert panel_fingerprint(1, "d", [], "manga", size) != panel_fingerprint(2, "d", [], "manga", size)

    @given(prompt=st.text(min_size=1, max_size=40), style=st.sampled_from(["manga", "webtoon", "comic"]))
    def test_deterministic(self, prompt, style):
        assert request_fingerprint(GenerationRequest(prompt=prompt, style=style)) == request_fingerprint(
            GenerationRequest(prompt=prompt, style=style)
        )


class TestCacheStore:
    def test_miss_then_hit(self):
        cache = CacheStore()
        assert cache.get("panel:abc") is None
        cache.put("panel:abc", _artifact())
        assert cache.get("panel:abc").ok
        stats = cache.stats()
        assert (stats.hits, stats.misses) == (1, 1)
        assert stats.hit_rate == 0.5

    def test_entries_expire(self):
        clock = FakeClock()
        cache = CacheStore(clock=clock)
        cache.put("panel:abc", _artifact(), ttl_seconds=60)
        clock.now = 59
        assert cache.has("panel:abc")
        clock.now = 61
        assert cache.get("panel:abc") is None
        assert cache.stats().total_items == 0

    def test_purge_expired(self):
        clock = FakeClock()
        cache = CacheStore(clock=clock)
        cache.put("panel:a", _artifact(), ttl_seconds=10)
        cache.put("panel:b", _artifact(), ttl_seconds=100)
        clock.now = 50
        assert cache.purge_expired() == 1
        assert cache.has("panel:b")

    def test_evicts_oldest_down_to_eighty_percent(self):
        cache = CacheStore(max_bytes=100)
        for i in range(5):
            cache.put(f"panel:{i}", _artifact(20))
        assert cache.current_size() == 100

        cache.put("panel:new", _artifact(20))
        assert cache.current_size() <= 80
        assert not cache.has("panel:0")
        assert not cache.has("panel:1")
        assert cache.has("panel:new")

    def test_clear_resets_stats(self):
        cache = CacheStore()
        cache.put("request:a", _artifact())
        cache.get("request:a")
        cache.clear()
        stats = cache.stats()
        assert stats == type(stats)(total_items=0, total_size=0, hits=0, misses=0)

    def test_delete(self):
        cache = CacheStore()
        cache.put("request:a", _artifact())
        assert cache.delete("request:a")
        assert not cache.delete("request:a")
