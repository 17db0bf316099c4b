from unittest.mock import AsyncMock, MagicMock

import pytest

from main import app
from services.step_engine.evaluator import EXPORT_REQUIRED
from workbook.dependencies import get_progress_repository, get_unlock_counter
from workbook.services.progress_store import ProgressStoreError
from workbook.services.unlock_attempts import UnlockAttemptCounter

API = "/api/v1"

STEP_TWO_ANSWERS = {
    "believe": "trust",
    "restore": "return",
    "sanity": "soundness",
    "insanity": "repeating the same thing",
    "s2_reading_checklist": {"pages_44_60": True},
    "s2_reading_completed": True,
    "insanity_examples": [{"id": "insanity_examples_1", "content": "drove home drunk"}],
    "higher_power": "A loving presence.",
    "hp_examples": [{"id": "hp_examples_1", "content": "got through a craving"}],
}


def _unlock(client, headers, step_number, password):
    return client.post(f"{API}/steps/{step_number}/unlock", json={"password": password}, headers=headers)


def test_requests_without_token_are_rejected(client):
    response = client.get(f"{API}/steps")
    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "AUTH_001"


def test_invalid_token_is_rejected(client):
    response = client.get(f"{API}/steps", headers={"Authorization": "Bearer nonsense"})
    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"].startswith("Bearer")


def test_health_needs_no_token(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_list_steps(client, sponsee_headers):
    response = client.get(f"{API}/steps", headers=sponsee_headers)
    assert response.status_code == 200
    body = response.json()
    assert len(body) == 12
    assert body[3]["displayTitle"] == "Step 4: Moral Inventory"


@pytest.mark.parametrize("step_number", [0, 13])
def test_unknown_step_is_404(client, sponsee_headers, step_number):
    response = client.get(f"{API}/steps/{step_number}", headers=sponsee_headers)
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "STEP_NOT_FOUND"


def test_locked_step_view_for_sponsee(client, sponsee_headers):
    response = client.get(f"{API}/steps/2", headers=sponsee_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["requiresPassword"] is True
    assert body["state"] == "locked"
    assert body["role"] == "sponsee"
    assert body["evaluation"]["missing"][0] == EXPORT_REQUIRED
    assert body["record"] is None


def test_sponsor_sees_step_without_password(client, sponsor_headers):
    body = client.get(f"{API}/steps/1", headers=sponsor_headers).json()
    assert body["requiresPassword"] is False
    assert body["state"] == "unlocked_incomplete"
    assert len(body["record"]["data"]["powerless_examples"]) == 5
    assert body["record"]["data"]["powerless_examples"][0]["id"] == "powerless_examples_1"


def test_prayer_text_on_third_step(client, sponsor_headers):
    body = client.get(f"{API}/steps/3", headers=sponsor_headers).json()
    assert body["prayer"].startswith("God, I offer myself")


def test_locked_step_rejects_writes(client, sponsee_headers):
    response = client.put(f"{API}/steps/2/fields/believe", json={"value": "x"}, headers=sponsee_headers)
    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "STEP_LOCKED"


def test_wrong_password_then_hint_after_three_attempts(client, sponsee_headers):
    first = _unlock(client, sponsee_headers, 4, "nope").json()
    second = _unlock(client, sponsee_headers, 4, "nope").json()
    third = _unlock(client, sponsee_headers, 4, "nope").json()
    assert first == {"unlocked": False, "attempts": 1, "hint": None}
    assert second["hint"] is None
    assert third == {"unlocked": False, "attempts": 3, "hint": 'Starts with "C"'}


def test_unlock_resets_attempts_and_opens_step(client, sponsee_headers, fake_redis):
    _unlock(client, sponsee_headers, 4, "wrong")
    response = _unlock(client, sponsee_headers, 4, "  COURAGE ")
    assert response.json() == {"unlocked": True, "attempts": 0, "hint": None}
    assert fake_redis.values == {}

    body = client.get(f"{API}/steps/4", headers=sponsee_headers).json()
    assert body["requiresPassword"] is False
    assert body["record"]["data"]["stepUnlocked"] is True


def test_reserved_fields_cannot_be_written(client, sponsor_headers):
    for key in ("stepUnlocked", "hasExported"):
        response = client.put(f"{API}/steps/2/fields/{key}", json={"value": True}, headers=sponsor_headers)
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "RESERVED_FIELD"


def test_field_update_returns_record_and_evaluation(client, sponsee_headers):
    _unlock(client, sponsee_headers, 2, "hope")
    response = client.put(f"{API}/steps/2/fields/believe", json={"value": "trust"}, headers=sponsee_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["record"]["data"]["believe"] == "trust"
    assert body["record"]["stepNumber"] == 2
    assert "Definitions: Define: Believe" not in body["evaluation"]["missing"]
    assert body["evaluation"]["remaining"][-1].startswith("...and ")


def test_resentment_lifecycle(client, sponsee_headers):
    _unlock(client, sponsee_headers, 4, "courage")
    view = client.get(f"{API}/steps/4", headers=sponsee_headers).json()
    blank_id = view["resentments"][0]["id"]

    patched = client.patch(
        f"{API}/steps/4/resentments/{blank_id}",
        json={"field": "resentfulAt", "value": "My boss"},
        headers=sponsee_headers,
    )
    assert patched.status_code == 200
    assert patched.json()["record"]["data"]["resentments"][0]["resentfulAt"] == "My boss"

    last = client.delete(f"{API}/steps/4/resentments/{blank_id}", headers=sponsee_headers)
    assert last.status_code == 409
    assert last.json()["detail"]["code"] == "LAST_ENTRY"

    added = client.post(f"{API}/steps/4/resentments", headers=sponsee_headers)
    assert added.status_code == 201
    resentments = added.json()["record"]["data"]["resentments"]
    assert len(resentments) == 2

    removed = client.delete(f"{API}/steps/4/resentments/{blank_id}", headers=sponsee_headers)
    assert removed.status_code == 200
    assert [e["id"] for e in removed.json()["record"]["data"]["resentments"]] == [resentments[1]["id"]]


def test_resentment_errors(client, sponsor_headers):
    client.patch(f"{API}/steps/4/resentments/r1", json={"field": "theCause", "value": "x"}, headers=sponsor_headers)
    unknown_field = client.patch(
        f"{API}/steps/4/resentments/r1", json={"field": "affectsMy.weather", "value": True}, headers=sponsor_headers
    )
    unknown_entry = client.patch(
        f"{API}/steps/4/resentments/r9", json={"field": "theCause", "value": "x"}, headers=sponsor_headers
    )
    no_inventory = client.post(f"{API}/steps/2/resentments", headers=sponsor_headers)
    assert unknown_field.status_code == 400
    assert unknown_entry.status_code == 404
    assert unknown_entry.json()["detail"]["code"] == "ENTRY_NOT_FOUND"
    assert no_inventory.status_code == 400


def test_assignment_defaults_to_now(client, sponsor_headers):
    response = client.put(f"{API}/steps/1/assignment", json={}, headers=sponsor_headers)
    assert response.status_code == 200
    assert response.json()["record"]["assignmentDate"].startswith("2025-11-21T12:00:00")


def test_complete_requires_export_and_answers(client, sponsee_headers):
    _unlock(client, sponsee_headers, 2, "hope")

    refused = client.post(f"{API}/steps/2/complete", headers=sponsee_headers)
    assert refused.status_code == 409
    detail = refused.json()["detail"]
    assert detail["code"] == "STEP_INCOMPLETE"
    assert detail["missing"][0] == EXPORT_REQUIRED

    for key, value in STEP_TWO_ANSWERS.items():
        assert client.put(f"{API}/steps/2/fields/{key}", json={"value": value}, headers=sponsee_headers).status_code == 200

    still_refused = client.post(f"{API}/steps/2/complete", headers=sponsee_headers)
    assert still_refused.json()["detail"]["missing"] == [EXPORT_REQUIRED]

    exported = client.post(f"{API}/steps/2/export", headers=sponsee_headers)
    assert exported.status_code == 200
    document = exported.json()["document"]
    assert document["documentTitle"] == "Step 2 - Higher Power - Recovery Workbook"
    assert exported.json()["evaluation"]["complete"] is True

    completed = client.post(f"{API}/steps/2/complete", headers=sponsee_headers)
    assert completed.status_code == 200
    assert completed.json()["record"]["completionDate"].startswith("2025-11-21")

    again = client.post(f"{API}/steps/2/complete", headers=sponsee_headers)
    assert again.status_code == 200
    assert client.get(f"{API}/steps/2", headers=sponsee_headers).json()["state"] == "completed"


def test_store_failure_maps_to_503(client, sponsee_headers, make_record):
    broken = MagicMock()
    broken.get = AsyncMock(return_value=make_record(2, data={"stepUnlocked": True}))
    broken.set_field = AsyncMock(side_effect=ProgressStoreError("disk full"))
    app.dependency_overrides[get_progress_repository] = lambda: broken

    response = client.put(f"{API}/steps/2/fields/believe", json={"value": "x"}, headers=sponsee_headers)
    assert response.status_code == 503
    assert response.json()["detail"]["code"] == "SAVE_FAILED"


def test_list_entry_routes(client, sponsor_headers):
    patched = client.patch(
        f"{API}/steps/1/lists/powerless_examples/0",
        json={"field": "content", "value": "Drank before work"},
        headers=sponsor_headers,
    )
    assert patched.status_code == 200
    stored = patched.json()["record"]["data"]["powerless_examples"]
    assert len(stored) == 5
    assert stored[0]["content"] == "Drank before work"

    added = client.post(f"{API}/steps/1/lists/powerless_examples", headers=sponsor_headers)
    assert added.status_code == 201
    assert added.json()["record"]["data"]["powerless_examples"][-1]["id"] == "powerless_examples_6"

    removed = client.delete(f"{API}/steps/1/lists/powerless_examples/5", headers=sponsor_headers)
    assert len(removed.json()["record"]["data"]["powerless_examples"]) == 5

    bad_field = client.patch(
        f"{API}/steps/1/lists/powerless_examples/0", json={"field": "colour", "value": "x"}, headers=sponsor_headers
    )
    bad_index = client.delete(f"{API}/steps/1/lists/powerless_examples/40", headers=sponsor_headers)
    not_a_list = client.post(f"{API}/steps/1/lists/admit", headers=sponsor_headers)
    assert bad_field.status_code == 400
    assert bad_index.status_code == 404
    assert not_a_list.json()["detail"]["code"] == "INVALID_FIELD"


def test_last_list_entry_cannot_be_removed(client, sponsor_headers):
    client.put(
        f"{API}/steps/2/fields/hp_examples",
        json={"value": [{"id": "hp_examples_1", "content": "only one"}]},
        headers=sponsor_headers,
    )
    response = client.delete(f"{API}/steps/2/lists/hp_examples/0", headers=sponsor_headers)
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "LAST_ENTRY"


def test_store_outage_before_write_is_save_failed_not_locked(client, sponsee_headers):
    broken = MagicMock()
    broken.get = AsyncMock(side_effect=ProgressStoreError("connection refused"))
    app.dependency_overrides[get_progress_repository] = lambda: broken

    response = client.put(f"{API}/steps/2/fields/believe", json={"value": "x"}, headers=sponsee_headers)
    assert response.status_code == 503
    assert response.json()["detail"]["code"] == "SAVE_FAILED"


def test_hint_uses_client_count_when_redis_is_down(client, sponsee_headers):
    async def no_redis():
        return None

    app.dependency_overrides[get_unlock_counter] = lambda: UnlockAttemptCounter(redis_getter=no_redis)

    uncounted = _unlock(client, sponsee_headers, 4, "nope").json()
    assert uncounted == {"unlocked": False, "attempts": None, "hint": None}

    second = client.post(
        f"{API}/steps/4/unlock", json={"password": "nope", "attempts": 1}, headers=sponsee_headers
    ).json()
    third = client.post(
        f"{API}/steps/4/unlock", json={"password": "nope", "attempts": 2}, headers=sponsee_headers
    ).json()
    assert second == {"unlocked": False, "attempts": 2, "hint": None}
    assert third == {"unlocked": False, "attempts": 3, "hint": 'Starts with "C"'}


def test_redis_count_wins_over_client_count(client, sponsee_headers):
    response = client.post(
        f"{API}/steps/4/unlock", json={"password": "nope", "attempts": 7}, headers=sponsee_headers
    ).json()
    assert response["attempts"] == 1
    assert response["hint"] is None


def test_step_definition_uses_camel_case_keys(client, sponsor_headers):
    step = client.get(f"{API}/steps/1", headers=sponsor_headers).json()["step"]
    part = step["parts"][0]
    assert part["partNumber"] == 1
    assert "part_number" not in part
    item = next(
        item for p in step["parts"] for s in p["sections"] for item in s["items"] if item["key"] == "powerless_examples"
    )
    assert item["hasDate"] is True
    assert item["hasRippleEffects"] is True


def test_list_edit_keeps_malformed_stored_rows(client, sponsor_headers):
    client.put(
        f"{API}/steps/2/fields/hp_examples",
        json={"value": [{"content": "written before ids existed"}, {"id": "hp_examples_2", "content": None}]},
        headers=sponsor_headers,
    )
    response = client.patch(
        f"{API}/steps/2/lists/hp_examples/1", json={"field": "content", "value": "new"}, headers=sponsor_headers
    )
    stored = response.json()["record"]["data"]["hp_examples"]
    assert [(e["id"], e["content"]) for e in stored] == [
        ("hp_examples_1", "written before ids existed"),
        ("hp_examples_2", "new"),
    ]
