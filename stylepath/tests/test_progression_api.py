import pytest


def _activity(client, user_id, day):
    return client.post(
        "/v1/progression/streak/activity",
        json={"user_id": user_id, "occurred_at": f"2024-01-{day:02d}T09:00:00Z"},
    )


def test_streak_scenario_over_http(client):
    first = _activity(client, "api-u1", 10).json()
    assert first["success"] is True
    assert first["current_streak"] == 1
    assert first["longest_streak"] == 1
    assert first["total_days_active"] == 1
    assert first["streak_increased"] is True

    second = _activity(client, "api-u1", 11).json()
    assert second["current_streak"] == 2
    assert second["longest_streak"] == 2

    third = _activity(client, "api-u1", 13).json()
    assert third["current_streak"] == 1
    assert third["longest_streak"] == 2
    assert third["streak_reset"] is True

    state = client.get("/v1/progression/streak", params={"user_id": "api-u1"}).json()
    assert state["current_streak"] == 1
    assert state["last_active_date"] == "2024-01-13"
    assert state["level"]["level"] == 1


def test_interactions_unlock_and_list(client):
    resp = client.post("/v1/progression/interactions", json={"user_id": "api-u2", "action_type": "add_item"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["stats"]["total_items_added"] == 1
    assert [a["id"] for a in body["newly_unlocked"]] == ["first_item"]

    listing = client.get(
        "/v1/progression/achievements", params={"user_id": "api-u2", "category": "wardrobe"}
    ).json()
    assert listing["unlocked_count"] == 1
    first_item = next(a for a in listing["achievements"] if a["id"] == "first_item")
    assert first_item["is_new"] is True
    assert first_item["progress_percent"] == 1.0

    nxt = client.get("/v1/progression/achievements/next", params={"user_id": "api-u2", "category": "wardrobe"}).json()
    assert nxt["achievement"]["id"] == "closet_starter"


def test_mark_seen_flow(client):
    locked = client.post("/v1/progression/achievements/first_item/seen", json={"user_id": "api-u3"})
    assert locked.status_code == 400
    assert locked.json()["code"] == "validation_error"

    client.post("/v1/progression/interactions", json={"user_id": "api-u3", "action_type": "add_item"})
    seen = client.post("/v1/progression/achievements/first_item/seen", json={"user_id": "api-u3"})
    assert seen.status_code == 200
    assert seen.json()["achievement"]["is_new"] is False

    missing = client.post("/v1/progression/achievements/nope/seen", json={"user_id": "api-u3"})
    assert missing.status_code == 404
    assert missing.json()["success"] is False


def test_style_interaction_and_read(client):
    resp = client.post(
        "/v1/progression/style/interactions",
        json={
            "user_id": "api-u4",
            "interaction": {"interaction_type": "wear", "item_ids": ["i1"], "embeddings": [[0.0, 3.0, 0.0, 4.0]]},
        },
    )
    assert resp.json() == {"success": True, "updated": True, "tags_changed": False, "interaction_count": 1}

    style = client.get("/v1/progression/style", params={"user_id": "api-u4", "include_vector": True}).json()
    assert style["style_vector"] == pytest.approx([0.0, 0.6, 0.0, 0.8])
    assert style["interaction_count"] == 1


def test_style_tag_correction_over_http(client):
    resp = client.post(
        "/v1/progression/style/interactions",
        json={
            "user_id": "api-u5",
            "interaction": {
                "interaction_type": "edit_tag",
                "item_ids": ["i9"],
                "tag_correction": {"field_changed": "style_bucket", "old_value": "classic", "new_value": "edgy"},
            },
        },
    )
    body = resp.json()
    assert body["updated"] is False
    assert body["tags_changed"] is True

    style = client.get("/v1/progression/style", params={"user_id": "api-u5"}).json()
    assert style["preferred_tags"] == ["edgy"]
    assert "style_vector" not in style


@pytest.mark.parametrize(
    "interaction",
    [
        {"interaction_type": "like", "tag_correction": {"old_value": "classic", "new_value": "edgy"}},
        {"interaction_type": "edit_tag", "vibe": "minimal"},
        {"interaction_type": "wear", "embeddings": [[1.0, 0.0, 0.0, 0.0]], "weight": 9},
    ],
)
def test_fields_of_another_interaction_type_are_rejected(client, store, interaction):
    resp = client.post(
        "/v1/progression/style/interactions", json={"user_id": "api-u8", "interaction": interaction}
    )
    assert resp.status_code == 422
    assert resp.json()["code"] == "validation_error"
    assert store.get_style_vector("api-u8") is None
    assert store.list_interactions("api-u8") == []


def test_combined_event_rejects_mismatched_interaction_fields(client):
    resp = client.post(
        "/v1/progression/events",
        json={"user_id": "api-u9", "interaction": {"interaction_type": "like", "vibe": "boho"}},
    )
    assert resp.status_code == 422


def test_combined_event(client):
    resp = client.post(
        "/v1/progression/events",
        json={
            "user_id": "api-u6",
            "action_type": "share_outfit",
            "record_activity": True,
            "interaction": {"interaction_type": "like", "embeddings": [[1.0, 0.0, 0.0, 0.0]]},
            "occurred_at": "2024-02-01T10:00:00Z",
        },
    )
    body = resp.json()
    assert body["success"] is True
    assert body["partial"] is False
    assert body["interaction"]["stats"]["total_outfits_shared"] == 1
    assert body["style"]["updated"] is True
    assert [a["id"] for a in body["newly_unlocked"]] == ["first_share"]


def test_unknown_action_type_is_rejected(client):
    resp = client.post("/v1/progression/interactions", json={"user_id": "api-u7", "action_type": "juggle"})
    assert resp.status_code == 422
    body = resp.json()
    assert body["success"] is False
    assert body["code"] == "validation_error"
    assert body["request_id"]


def test_healthz(client):
    assert client.get("/healthz").json() == {"status": "ok"}
    assert client.get("/readyz").json() == {"status": "ok", "store": "memory"}
