"""Tests for per-panel reference image selection."""

from hypothesis import given, strategies as st

from mangamachine.orchestration.models import (
    ImageData,
    PanelJob,
    ReferenceCategory,
    ReferenceImage,
)
from mangamachine.orchestration.references import select_references


def _char(name, payload=None):
    return ReferenceImage(ReferenceCategory.CHARACTER, name, image=ImageData((payload or name).encode()))


def _scene(ref_id, url=None):
    url = url or f"https://img.example/{ref_id}.png"
    return ReferenceImage(ReferenceCategory.SETTING, ref_id, url=url, ref_id=ref_id)


CHARACTERS = [_char("Mei"), _char("Kenji"), _char("Aiko")]
SCENES = [_scene("school"), _scene("park"), _scene("station")]


class TestSelectReferences:
    def test_matches_named_characters_case_insensitively(self):
        job = PanelJob(1, "they talk", characters=("kenji", "MEI"))
        selected = select_references(job, CHARACTERS, [])
        assert [ref.name for ref in selected] == ["Kenji", "Mei"]

    def test_character_slots_are_capped(self):
        job = PanelJob(1, "crowd", characters=("Mei", "Kenji", "Aiko"))
        selected = select_references(job, CHARACTERS, [])
        assert [ref.name for ref in selected] == ["Mei", "Kenji"]

    def test_scene_reference_goes_first(self):
        job = PanelJob(1, "at the park", scene_reference_id="park")
        selected = select_references(job, CHARACTERS, SCENES)
        assert [ref.ref_id for ref in selected] == ["park", "school", "station"]

    def test_total_slots_capped_at_four(self):
        job = PanelJob(1, "everyone", characters=("Mei", "Kenji"), scene_reference_id="station")
        selected = select_references(job, CHARACTERS, SCENES)
        assert len(selected) == 4
        assert selected[2].ref_id == "station"

    def test_duplicates_removed(self):
        job = PanelJob(1, "twins", characters=("Mei", "Mei"))
        selected = select_references(job, CHARACTERS, [])
        assert [ref.name for ref in selected] == ["Mei"]

    def test_category_is_respected(self):
        job = PanelJob(1, "?", characters=("school",))
        selected = select_references(job, SCENES, [])
        assert selected == []

    def test_unknown_character_ignored(self):
        job = PanelJob(1, "stranger", characters=("Nobody",))
        assert select_references(job, CHARACTERS, []) == []

    @given(
        names=st.lists(st.sampled_from(["Mei", "Kenji", "Aiko", "Nobody"]), max_size=5),
        scene=st.sampled_from([None, "school", "park", "station", "missing"]),
    )
    def test_bounded_and_deterministic(self, names, scene):
        job = PanelJob(1, "x", characters=tuple(names), scene_reference_id=scene)
        first = select_references(job, CHARACTERS, SCENES)
        assert first == select_references(job, CHARACTERS, SCENES)
        assert len(first) <= 4
        assert len({ref.identity for ref in first}) == len(first)
