from services.step_engine.checklist import is_list_item, required_inputs
from services.step_engine.models import ChecklistSection, SectionItem


def _section(catalog, step_number, section_id):
    for part_number, section in catalog.get_step(step_number).iter_sections():
        if section.id == section_id:
            return part_number, section
    raise AssertionError(f"{section_id} not in step {step_number}")


def test_definitions_require_non_blank_text(catalog):
    _, section = _section(catalog, 2, "s2_definitions")
    rows = required_inputs(section, {"believe": "to trust", "restore": "   ", "sanity": 7})
    assert [(r.label, r.satisfied) for r in rows] == [
        ("Definitions: Define: Believe", True),
        ("Definitions: Define: Restore", False),
        ("Definitions: Define: Sanity", False),
        ("Definitions: Define: Insanity", False),
    ]


def test_reading_needs_checklist_and_confirmation(catalog):
    _, section = _section(catalog, 2, "s2_reading")
    rows = required_inputs(section, {"s2_reading_checklist": {"pages_44_60": True}})
    assert [(r.field_key, r.satisfied) for r in rows] == [
        ("s2_reading_checklist", True),
        ("s2_reading_completed", False),
    ]
    assert rows[1].label == "Read With Intent and Purpose: Confirm reading completion"


def test_reading_reads_legacy_keys(catalog):
    part_number, section = _section(catalog, 1, "s1_p1_reading")
    legacy = "reading_Read With Intent and Purpose_part1"
    data = {
        f"{legacy}_checklist": {"pages_xi_43": True},
        f"{legacy}_completed": True,
    }
    rows = required_inputs(section, data, part_number)
    assert all(r.satisfied for r in rows)


def test_id_key_wins_over_legacy_key(catalog):
    _, section = _section(catalog, 2, "s2_reading")
    data = {
        "s2_reading_completed": False,
        "reading_Read With Intent and Purpose_completed": True,
    }
    rows = required_inputs(section, data)
    assert rows[1].satisfied is False


def test_completed_flag_must_be_true_not_truthy(catalog):
    _, section = _section(catalog, 2, "s2_reading")
    rows = required_inputs(section, {"s2_reading_completed": "yes"})
    assert rows[1].satisfied is False


def test_writing_mixes_list_and_text_items(catalog):
    _, section = _section(catalog, 2, "s2_writing")
    data = {
        "insanity_examples": [{"id": "insanity_examples_1", "content": "drove drunk"}],
        "higher_power": "",
        "hp_examples": [{"id": "hp_examples_1", "content": "   "}],
    }
    assert [r.satisfied for r in required_inputs(section, data)] == [True, False, False]


def test_list_section_labels(catalog):
    _, section = _section(catalog, 1, "s1_p2_powerlessness")
    rows = required_inputs(section, {}, 2)
    assert [r.label for r in rows] == ["Examples of Powerlessness: Fill in list items"]


def test_list_item_with_prompt_and_count_is_free_text(catalog):
    _, section = _section(catalog, 8, "s8_amends_list")
    item = section.items[0]
    assert not is_list_item("list", item)
    rows = required_inputs(section, {"amends_list_dynamic": "Mom, the bank"})
    assert rows[0].label == "8th Step List: List people, places, and institutions."
    assert rows[0].satisfied


def test_display_only_list_rows_have_no_requirement(catalog):
    _, section = _section(catalog, 6, "s6_defects")
    labels = [r.label for r in required_inputs(section, {})]
    assert labels == [
        "Character Defects: Detail how each character defect manifests.",
        "Character Defects: List the opposite action of the character defect.",
    ]


def test_checklist_requires_every_item():
    section = ChecklistSection(
        id="todo_a",
        type="checklist",
        title="Chores",
        items=[SectionItem(key="a"), SectionItem(key="b")],
    )
    partial = required_inputs(section, {"todo_a_checklist": {"a": True, "b": False}})
    done = required_inputs(section, {"todo_a_checklist": {"a": True, "b": True}})
    assert partial[0].label == "Chores: Complete all items"
    assert not partial[0].satisfied
    assert done[0].satisfied


def test_prayer_with_and_without_items(catalog):
    _, plain = _section(catalog, 4, "s4_prayer")
    _, with_items = _section(catalog, 11, "s11_prayer")
    assert [r.label for r in required_inputs(plain, {})] == ["Prayer: Confirm prayer completion"]
    assert [r.label for r in required_inputs(with_items, {})] == [
        "Prayer & Meditation: Confirm prayer completion",
        "Prayer & Meditation: Complete all prayer items",
    ]


def test_resentment_rows(catalog):
    _, section = _section(catalog, 4, "s4_resentments")
    empty = required_inputs(section, {})
    half = required_inputs(section, {"resentments": [{"id": "r1", "resentfulAt": "Boss", "theCause": ""}]})
    full = required_inputs(section, {"resentments": [{"id": "r1", "resentfulAt": "Boss", "theCause": "Fired me"}]})
    assert empty[0].label == "Resentment List: Add at least one resentment entry"
    assert half[0].label == "Resentment List: Complete at least one entry (Resentful At + Cause)"
    assert not half[0].satisfied
    assert full[0].satisfied


def test_malformed_field_data_reads_as_empty(catalog):
    _, section = _section(catalog, 2, "s2_writing")
    for data in (None, "garbage", {"insanity_examples": "not a list", "hp_examples": [None, 3]}):
        assert not any(r.satisfied for r in required_inputs(section, data))
