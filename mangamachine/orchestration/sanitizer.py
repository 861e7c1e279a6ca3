from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Sequence

Sanitizer = Callable[[str], str]

VIOLENT_TERMS = (
    "kill",
    "death",
    "blood",
    "war",
    "fight",
    "battle",
    "demon",
    "evil",
    "dark",
    "violence",
    "weapon",
    "sword",
    "knife",
    "gun",
)


@dataclass(frozen=True)
class SanitizationRule:
    pattern: str
    replacement: str
    flags: int = 0

    def apply(self, text: str) -> str:
        return re.sub(self.pattern, self.replacement, text, flags=self.flags)


DEFAULT_RULES: tuple[SanitizationRule, ...] = (
    SanitizationRule(r"[^\w\s,.-]", ""),
    SanitizationRule(r"\b(" + "|".join(VIOLENT_TERMS) + r")\b", "action", re.IGNORECASE),
)


class PromptSanitizer:
    """Rewrites prompt text that tripped a provider's content filter.

    Rules run in order; the rule table is the only thing that should change as
    provider filters evolve.
    """

    def __init__(self, rules: Sequence[SanitizationRule] = DEFAULT_RULES):
        self.rules = tuple(rules)

    def sanitize(self, text: str) -> str:
        for rule in self.rules:
            text = rule.apply(text)
        return re.sub(r"[ \t]+", " ", text).strip()

    def __call__(self, text: str) -> str:
        return self.sanitize(text)
