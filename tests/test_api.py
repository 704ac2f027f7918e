import dataclasses
import json
import time
from urllib.parse import urlencode

from fastapi.testclient import TestClient

from mindjournal.main import create_app
from mindjournal.services.init_data import sign

from conftest import BOT_TOKEN, RecordingNotifier, dev_headers

ALICE = dev_headers(100, "Alice")
BOB = dev_headers(200, "Bob", "Stone")
CAROL = dev_headers(300, "Carol")


def signed_header(user):
    fields = {"auth_date": str(int(time.time())), "user": json.dumps(user)}
    fields["hash"] = sign(dict(fields), BOT_TOKEN)
    return {"x-telegram-init-data": urlencode(fields)}


def connect_alice_to_bob(client):
    r = client.post("/api/relationships/invite", json={"inviteType": "invite_therapist"}, headers=ALICE)
    assert r.status_code == 200, r.text
    token = r.json()["token"]
    r = client.post(f"/api/relationships/invite/{token}/accept", headers=BOB)
    assert r.status_code == 200, r.text
    return r.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_requests_without_credentials_are_rejected(client):
    r = client.get("/api/entries")
    assert r.status_code == 401
    assert r.json() == {"detail": "Missing Telegram initData"}


def test_signed_init_data_authenticates(client):
    r = client.get("/api/entries", headers=signed_header({"id": 555, "first_name": "Signed"}))
    assert r.status_code == 200
    assert r.json() == []


def test_tampered_init_data_is_rejected(client):
    headers = signed_header({"id": 555, "first_name": "Signed"})
    headers["x-telegram-init-data"] = headers["x-telegram-init-data"].replace("Signed", "Signet")
    r = client.get("/api/entries", headers=headers)
    assert r.status_code == 401


def test_dev_header_is_ignored_outside_development(settings, notifier):
    prod = dataclasses.replace(settings, app_env="production")
    with TestClient(create_app(prod, notifier=notifier)) as c:
        r = c.get("/api/entries", headers=ALICE)
    assert r.status_code == 401


def test_invite_preview_and_accept(client):
    r = client.post("/api/relationships/invite", json={"inviteType": "invite_therapist"}, headers=ALICE)
    body = r.json()
    assert body["link"] == f"https://t.me/journal_test_bot?start={body['token']}"
    assert "expiresAt" in body

    preview = client.get(f"/api/relationships/invite/{body['token']}", headers=BOB).json()
    assert preview["inviter"]["name"] == "Alice"
    assert preview["inviteType"] == "invite_therapist"

    # the inviter cannot accept their own link
    r = client.post(f"/api/relationships/invite/{body['token']}/accept", headers=ALICE)
    assert r.status_code == 400

    r = client.post(f"/api/relationships/invite/{body['token']}/accept", headers=BOB)
    assert r.json()["status"] == "connected"
    assert r.json()["role"] == "therapist"

    r = client.post(f"/api/relationships/invite/{body['token']}/accept", headers=CAROL)
    assert r.status_code == 404

    clients = client.get("/api/relationships/clients", headers=BOB).json()
    assert [c["name"] for c in clients] == ["Alice"]
    therapist = client.get("/api/relationships/therapist", headers=ALICE).json()
    assert therapist["name"] == "Bob Stone"

    assert client.get("/api/relationships/clients", headers=ALICE).status_code == 403


def test_unknown_invite_type_is_rejected(client):
    r = client.post("/api/relationships/invite", json={"inviteType": "invite_friend"}, headers=ALICE)
    assert r.status_code == 400


def test_entry_access_between_client_and_therapist(client, notifier):
    connect_alice_to_bob(client)

    r = client.post("/api/entries", json={"text": "A rough day", "entryDate": "2026-03-14"}, headers=ALICE)
    assert r.status_code == 201, r.text
    entry = r.json()
    alice_id = entry["userId"]
    assert entry["entryDate"] == "2026-03-14"
    assert "therapistComments" not in entry

    # per_client is the default mode, so Bob hears about it right away
    [(recipient, text, link)] = notifier.sent
    assert recipient == "200"
    assert "*Alice* just added" in text
    assert link == f"https://app.example?startapp=entry_{entry['id']}"

    listed = client.get(f"/api/entries?clientId={alice_id}", headers=BOB).json()
    assert [e["id"] for e in listed] == [entry["id"]]

    r = client.put(
        f"/api/entries/{entry['id']}",
        json={"therapistComments": "Let's discuss", "isHighlighted": True},
        headers=BOB,
    )
    assert r.status_code == 200
    assert r.json()["therapistComments"] == "Let's discuss"

    seen_by_alice = client.get(f"/api/entries/{entry['id']}", headers=ALICE).json()
    assert "therapistComments" not in seen_by_alice
    assert seen_by_alice["isHighlighted"] is True

    assert client.put(f"/api/entries/{entry['id']}", json={"text": "edited"}, headers=BOB).status_code == 403
    assert client.delete(f"/api/entries/{entry['id']}", headers=BOB).status_code == 403
    assert client.get(f"/api/entries/{entry['id']}", headers=CAROL).status_code == 403

    assert client.delete(f"/api/entries/{entry['id']}", headers=ALICE).json() == {"success": True}
    assert client.get(f"/api/entries/{entry['id']}", headers=ALICE).status_code == 404


def test_blank_entry_is_rejected(client):
    r = client.post("/api/entries", json={"text": "  "}, headers=ALICE)
    assert r.status_code == 400


def test_month_filter(client):
    client.post("/api/entries", json={"text": "march", "entryDate": "2026-03-02"}, headers=ALICE)
    client.post("/api/entries", json={"text": "april", "entryDate": "2026-04-02"}, headers=ALICE)
    march = client.get("/api/entries?month=2026-03", headers=ALICE).json()
    assert [e["text"] for e in march] == ["march"]
    assert client.get("/api/entries?month=March", headers=ALICE).status_code == 400


def test_ratings(client):
    relation = connect_alice_to_bob(client)
    assert relation["status"] == "connected"

    r = client.post("/api/ratings", json={"date": "2026-03-14", "clientRating": 6}, headers=ALICE)
    assert r.status_code == 400

    r = client.post("/api/ratings", json={"date": "2026-03-14", "clientRating": 4}, headers=ALICE)
    assert r.status_code == 200
    rating = r.json()
    assert rating["clientRating"] == 4
    assert "therapistRating" not in rating

    r = client.post(
        "/api/ratings",
        json={"date": "2026-03-14", "therapistRating": 2, "clientId": rating["userId"]},
        headers=BOB,
    )
    assert r.json()["therapistRating"] == 2
    assert r.json()["clientRating"] == 4

    r = client.post("/api/ratings", json={"date": "2026-03-14", "therapistRating": 5}, headers=ALICE)
    assert r.status_code == 403

    [own] = client.get("/api/ratings?month=2026-03", headers=ALICE).json()
    assert own["clientRating"] == 4
    assert "therapistRating" not in own


def test_notification_settings(client):
    r = client.get("/api/notifications/settings", headers=ALICE)
    assert r.json() == {
        "enabled": True,
        "reminderTime": "20:00",
        "therapistMode": "per_client",
        "batchTime": "18:00",
    }

    r = client.put(
        "/api/notifications/settings",
        json={"reminderTime": "21:15", "therapistMode": "batch_digest"},
        headers=ALICE,
    )
    assert r.status_code == 200
    assert r.json()["reminderTime"] == "21:15"
    assert r.json()["batchTime"] == "18:00"

    r = client.put("/api/notifications/settings", json={"reminderTime": "25:00"}, headers=ALICE)
    assert r.status_code == 422


def test_disconnect(client):
    relation = connect_alice_to_bob(client)
    rel_id = relation["relationshipId"]
    assert client.delete(f"/api/relationships/{rel_id}", headers=CAROL).status_code == 403
    assert client.delete(f"/api/relationships/{rel_id}", headers=ALICE).json() == {"success": True}
    assert client.get("/api/relationships/therapist", headers=ALICE).json() is None


def telegram_message(user_id, first_name, text):
    return {
        "update_id": 1,
        "message": {
            "message_id": 1,
            "from": {"id": user_id, "first_name": first_name},
            "chat": {"id": user_id, "type": "private"},
            "text": text,
        },
    }


def test_webhook_start_redeems_invite_and_text_becomes_entry(client, notifier):
    r = client.post("/api/relationships/invite", json={"inviteType": "invite_therapist"}, headers=ALICE)
    token = r.json()["token"]

    r = client.post("/telegram/webhook", json=telegram_message(200, "Bob", f"/start {token}"))
    assert r.json() == {"ok": True}
    [connected] = notifier.texts_for("200")
    assert "You are now the therapist for *Alice*" in connected

    r = client.post("/telegram/webhook", json=telegram_message(200, "Bob", f"/start {token}"))
    assert "invalid or has expired" in notifier.texts_for("200")[-1]

    client.post("/telegram/webhook", json=telegram_message(100, "Alice", "Feeling calmer tonight"))
    [saved] = notifier.texts_for("100")
    assert saved.startswith("✅ Saved for *")
    assert "*Alice* just added" in notifier.texts_for("200")[-1]

    entries = client.get("/api/entries", headers=ALICE).json()
    assert [e["text"] for e in entries] == ["Feeling calmer tonight"]


def test_webhook_ignores_other_commands(client, notifier):
    r = client.post("/telegram/webhook", json=telegram_message(100, "Alice", "/help"))
    assert r.status_code == 200
    assert notifier.sent == []
    assert client.get("/api/entries", headers=ALICE).json() == []


def test_webhook_acknowledges_updates_it_cannot_use(client, notifier):
    blank = telegram_message(100, "Alice", "   ")
    r = client.post("/telegram/webhook", json=blank)
    assert r.status_code == 200
    assert r.json() == {"ok": True}

    no_sender_id = telegram_message(100, "Alice", "hello")
    no_sender_id["message"]["from"] = {"first_name": "Ghost"}
    r = client.post("/telegram/webhook", json=no_sender_id)
    assert r.status_code == 200

    assert notifier.sent == []
    assert client.get("/api/entries", headers=ALICE).json() == []


def test_webhook_secret(settings):
    secured = dataclasses.replace(settings, webhook_secret="s3cret")
    with TestClient(create_app(secured, notifier=RecordingNotifier())) as c:
        update = telegram_message(100, "Alice", "/start")
        assert c.post("/telegram/webhook", json=update).status_code == 401
        r = c.post(
            "/telegram/webhook", json=update, headers={"X-Telegram-Bot-Api-Secret-Token": "s3cret"}
        )
        assert r.status_code == 200
