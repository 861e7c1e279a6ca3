from __future__ import annotations

import re

from mangamachine.orchestration.models import ModelPreference, ProviderName

_CJK_RE = re.compile(r"[\u4e00-\u9fff]")

# Language tag -> provider with the stronger localized training.
LANGUAGE_AFFINITY: dict[str, ProviderName] = {
    "zh": ProviderName.VOLCENGINE,
    "zh-cn": ProviderName.VOLCENGINE,
    "zh-tw": ProviderName.VOLCENGINE,
    "zh-hans": ProviderName.VOLCENGINE,
    "zh-hant": ProviderName.VOLCENGINE,
}

DEFAULT_PROVIDER = ProviderName.GEMINI


def detect_language(text: str) -> str:
    """Return ``zh`` when CJK ideographs make up over 10% of the text."""
    if not text:
        return "en"
    matches = len(_CJK_RE.findall(text))
    return "zh" if matches / len(text) > 0.1 else "en"


def select_provider(language: str | None, preference: ModelPreference | str | None = None) -> ProviderName:
    """Pick the provider for a request.

    An explicit preference always wins, even for a provider that is currently
    failing; recovering from that is the fallback coordinator's job.
    """
    preference = ModelPreference(preference or ModelPreference.AUTO)
    if preference is not ModelPreference.AUTO:
        return ProviderName(preference.value)
    tag = (language or "").strip().lower().replace("_", "-")
    return LANGUAGE_AFFINITY.get(tag, DEFAULT_PROVIDER)


def alternate_provider(provider: ProviderName) -> ProviderName:
    if provider is ProviderName.GEMINI:
        return ProviderName.VOLCENGINE
    return ProviderName.GEMINI
