from __future__ import annotations

from typing import Sequence

from mangamachine.orchestration.models import (
    MAX_REFERENCE_IMAGES,
    PanelJob,
    ReferenceCategory,
    ReferenceImage,
)

MAX_CHARACTER_SLOTS = 2


def select_references(
    job: PanelJob,
    character_refs: Sequence[ReferenceImage],
    setting_refs: Sequence[ReferenceImage],
    max_slots: int = MAX_REFERENCE_IMAGES,
    max_character_slots: int = MAX_CHARACTER_SLOTS,
) -> list[ReferenceImage]:
    """Pick the reference images to attach to one panel.

    Characters named by the job come first, in the job's order, capped at
    ``max_character_slots``. Remaining slots go to setting references, with the
    job's own scene reference ahead of the shared ones. The output depends only
    on the inputs, which keeps panel fingerprints stable.
    """
    selected: list[ReferenceImage] = []
    seen: set[str] = set()

    characters = [ref for ref in character_refs if ref.category is ReferenceCategory.CHARACTER]
    for name in job.characters:
        if len(selected) >= min(max_character_slots, max_slots):
            break
        wanted = name.strip().casefold()
        for ref in characters:
            if ref.name.strip().casefold() == wanted and ref.identity not in seen:
                selected.append(ref)
                seen.add(ref.identity)
                break

    scene_refs = [ref for ref in setting_refs if ref.category is ReferenceCategory.SETTING]
    if job.scene_reference_id:
        scene_refs.sort(key=lambda ref: ref.ref_id != job.scene_reference_id)

    for ref in scene_refs:
        if len(selected) >= max_slots:
            break
        if ref.identity in seen:
            continue
        selected.append(ref)
        seen.add(ref.identity)

    return selected
