"""Minimal prompt assembly for panels and character sheets."""

from __future__ import annotations

import re
from typing import Iterable

from mangamachine.orchestration.models import (
    CharacterSpec,
    GenerationContext,
    PanelJob,
    ReferenceCategory,
    ReferenceImage,
    SettingDescription,
)

_SPEAKER_PREFIX_RE = re.compile(r"^([^:：]+)[:：]\s*['\"“]?([^'\"”]+)['\"”]?$")
_SAID_PREFIX_RE = re.compile(r"^([^说]+)说[:：]\s*['\"“]?([^'\"”]+)['\"”]?$")


def apply_style(prompt: str, style: str) -> str:
    if not style:
        return prompt
    return f"{style} style. {prompt}"


def clean_dialogue(dialogue: str) -> str:
    """Drop a leading speaker attribution so names never end up in bubbles."""
    if not dialogue:
        return dialogue
    text = dialogue.strip()
    text = _SPEAKER_PREFIX_RE.sub(r"\2", text)
    text = _SAID_PREFIX_RE.sub(r"\2", text)
    return text.strip("'\"“” ").strip()


def _describe_setting(setting: SettingDescription) -> str:
    parts = [p for p in (setting.location, setting.time_period) if p]
    text = ", ".join(parts)
    if setting.mood:
        text = f"{text}, mood: {setting.mood}" if text else f"mood: {setting.mood}"
    return text


def build_panel_prompt(job: PanelJob, context: GenerationContext, references: Iterable[ReferenceImage]) -> str:
    references = list(references)
    with_reference = {
        ref.name.casefold() for ref in references if ref.category is ReferenceCategory.CHARACTER
    }
    characters = " and ".join(
        f"{name} (matching the character design shown in the reference image)"
        if name.casefold() in with_reference
        else name
        for name in job.characters
    )

    lines = [f"Create a single comic panel in {context.style} style."]
    setting = _describe_setting(context.setting)
    if setting:
        lines.append(f"Setting: {setting}")

    shot = f"{job.camera_angle} shot" if job.camera_angle else "Shot"
    subject = f" of {characters}" if characters else ""
    lines.append(f"Panel {job.sequence_number}: {shot}{subject}. Scene: {job.description}")

    dialogue = clean_dialogue(job.dialogue)
    lines.append(f'Dialogue: "{dialogue}"' if dialogue else "No dialogue.")
    if job.mood:
        lines.append(f"Mood: {job.mood}")

    if any(ref.category is ReferenceCategory.CHARACTER for ref in references):
        lines.append("Keep every character consistent with the provided character reference images.")
    if any(ref.category is ReferenceCategory.SETTING for ref in references):
        lines.append("Use the provided setting reference images for environment, lighting and atmosphere.")
    return "\n".join(lines)


def build_character_prompt(
    character: CharacterSpec,
    setting: SettingDescription,
    style: str,
    has_matching_upload: bool,
) -> str:
    lines = [
        f"Character reference sheet in {style} style.",
        f"Full body character design showing front view of {character.name}.",
    ]
    if character.physical_description:
        lines.append(f"Physical appearance: {character.physical_description}")
    if character.personality:
        lines.append(f"Personality: {character.personality}")
    if character.role:
        lines.append(f"Role: {character.role}")
    setting_text = _describe_setting(setting)
    if setting_text:
        lines.append(f"Setting context: {setting_text}")
    if has_matching_upload:
        lines.append("Use the provided reference images as the basis for this character's design.")
    lines.append("Neutral pose against a plain background, for use as a consistency reference.")
    return "\n".join(lines)
