from app.models.enums import Topic
from app.services.auth_service import AuthService
from app.utils.hashing import sha256_hex


def test_health(client):
    assert client.get("/api/health").json()["status"] == "ok"
    assert client.get("/health").json() == {"status": "ok"}


def test_register_and_login(client):
    resp = client.post("/api/auth/register", json={"username": "alice", "password": "pw"})
    assert resp.status_code == 201
    assert resp.json()["user"]["role"] == "USER"

    assert client.post("/api/auth/register", json={"username": "alice", "password": "x"}).status_code == 409
    assert client.post("/api/auth/login", json={"username": "alice", "password": "bad"}).status_code == 401

    token = client.post("/api/auth/login", json={"username": "alice", "password": "pw"}).json()["token"]
    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["username"] == "alice"


def test_routes_require_auth(client, make_user):
    _, user_headers = make_user("bob")

    assert client.get("/api/doors").status_code == 401
    assert client.get("/api/doors", headers={"Authorization": "Bearer garbage"}).status_code == 401
    assert client.post("/api/doors/unlock", headers=user_headers).status_code == 403


def test_get_door(client, make_user):
    _, headers = make_user("bob")
    door = client.get("/api/doors", headers=headers).json()
    assert door["name"]
    assert door["rfidCards"] == []


def test_pin_update(client, ctx, publisher, make_user):
    _, headers = make_user("admin", role="ADMIN")

    bad = client.patch("/api/doors/pin", json={"pin": "12", "currentPin": "1234"}, headers=headers)
    assert bad.status_code == 400
    assert "4 digits" in bad.json()["error"]

    wrong = client.patch("/api/doors/pin", json={"pin": "5678", "currentPin": "0000"}, headers=headers)
    assert wrong.status_code == 401

    numeric = client.patch("/api/doors/pin", json={"pin": 5678, "currentPin": "1234"}, headers=headers)
    assert numeric.status_code == 400
    too_long = client.patch("/api/doors/pin", json={"pin": "12345", "currentPin": "1234"}, headers=headers)
    assert too_long.status_code == 400
    assert publisher.on(Topic.CONFIG_PIN) == []

    ok = client.patch("/api/doors/pin", json={"pin": "5678", "currentPin": "1234"}, headers=headers)
    assert ok.status_code == 200
    (msg,) = publisher.on(Topic.CONFIG_PIN)
    assert msg["pinHash"] == sha256_hex("5678")
    assert publisher.on(Topic.ALERT_NEW)[0]["level"] == "INFO"


def test_enrollment_start_requires_confirmation(client, publisher, make_user, give_card):
    _, headers = make_user("admin", role="ADMIN")
    alice, _ = make_user("alice")
    give_card(alice, "A1B2C3D4")

    assert client.post("/api/doors/enrollment/start", json={}, headers=headers).status_code == 400
    assert client.post("/api/doors/enrollment/start", json={"userId": 999}, headers=headers).status_code == 404

    resp = client.post("/api/doors/enrollment/start", json={"userId": alice}, headers=headers)
    assert resp.status_code == 409
    body = resp.json()
    assert body["requireConfirmation"] is True
    assert body["existingCard"]["uid"] == "A1B2C3D4"
    assert publisher.on(Topic.ENROLLMENT) == []

    resp = client.post("/api/doors/enrollment/start",
                       json={"userId": alice, "confirmReplace": True}, headers=headers)
    assert resp.status_code == 200
    assert publisher.on(Topic.ENROLLMENT) == [
        {"action": "start", "userId": alice, "username": "alice",
         "timestamp": publisher.on(Topic.ENROLLMENT)[0]["timestamp"]},
    ]
    status = client.get("/api/doors/enrollment/status", headers=headers).json()
    assert status["active"] is True

    client.post("/api/doors/enrollment/cancel", headers=headers)
    assert client.get("/api/doors/enrollment/status", headers=headers).json() == {"active": False}


def test_card_management(client, publisher, make_user):
    _, headers = make_user("admin", role="ADMIN")
    alice, _ = make_user("alice")

    resp = client.post("/api/doors/rfid", json={"userId": alice, "uid": "a1b2c3d4"}, headers=headers)
    assert resp.status_code == 201
    card_id = resp.json()["id"]
    assert publisher.on(Topic.CONFIG_RFID)[-1]["whitelist"][0]["username"] == "alice"

    dup = client.post("/api/doors/rfid", json={"userId": alice, "uid": "11111111"}, headers=headers)
    assert dup.status_code == 409

    status = client.get(f"/api/doors/rfid/user/{alice}", headers=headers).json()
    assert status["hasCard"] is True

    assert client.delete(f"/api/doors/rfid/{card_id}", headers=headers).status_code == 204
    assert publisher.on(Topic.CONFIG_RFID)[-1]["whitelist"] == []
    assert client.post(f"/api/doors/rfid/revoke/{alice}", headers=headers).status_code == 404

    without = client.get("/api/doors/users-without-card", headers=headers).json()
    assert {u["username"] for u in without} == {"admin", "alice"}


def test_report_lost(client, publisher, push_sender, make_user, give_card):
    alice, headers = make_user("alice")
    give_card(alice, "A1B2C3D4")
    publisher.clear()

    resp = client.post("/api/doors/rfid/report-lost", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["card"]["uid"] == "A1B2C3D4"
    assert publisher.on(Topic.CONFIG_RFID)[0]["whitelist"] == []
    assert publisher.on(Topic.RFID_LOST)[0]["cardUid"] == "A1B2C3D4"
    assert publisher.on(Topic.ALERT_NEW)[0]["level"] == "WARNING"
    assert push_sender.titles() == ["RFID card lost"]

    assert client.get("/api/doors/rfid/my-card", headers=headers).json()["hasCard"] is False
    assert client.post("/api/doors/rfid/report-lost", headers=headers).status_code == 404


def test_unlock_only_sends_command(client, router, publisher, make_user):
    _, headers = make_user("admin", role="ADMIN")

    assert client.post("/api/doors/unlock", headers=headers).status_code == 200
    assert publisher.on(Topic.COMMAND)[0]["action"] == "unlock"
    assert client.get("/api/doors/history", headers=headers).json()["total"] == 0

    # the controller reports the opening it performed
    router.dispatch(Topic.DOOR_STATE, {"status": "open", "actor": "web_admin"})

    history = client.get("/api/doors/history", headers=headers).json()
    assert history["total"] == 1
    entry = history["logs"][0]
    assert entry["event"] == "door_opened"
    assert entry["method"] == "web_admin"
    assert entry["user"] is None

    denied = client.get("/api/doors/history?event=denied", headers=headers).json()
    assert denied["total"] == 0

    logs = client.get("/api/doors/logs?limit=10", headers=headers).json()
    assert [log["event"] for log in logs["logs"]] == ["door_opened"]


def test_reset_alarm(client, ctx, publisher, make_user):
    _, headers = make_user("admin", role="ADMIN")
    for _ in range(5):
        ctx.counter.record_attempt(False)

    assert client.post("/api/doors/reset-alarm", headers=headers).status_code == 200
    assert ctx.counter.count == 0
    assert publisher.on(Topic.COMMAND)[0]["action"] == "reset_alarm"


def test_alerts(client, ctx, make_user):
    _, headers = make_user("alice")
    with ctx.db.get_connection() as conn:
        alert = ctx.alerts.create_alert(conn, "gas", "WARNING", "Gas leak detected: 600 ppm")
        ctx.alerts.create_alert(conn, "fire", "CRITICAL", "Fire detected at kitchen")

    page = client.get("/api/alerts?type=gas", headers=headers).json()
    assert page["total"] == 1
    assert page["alerts"][0]["acknowledgedBy"] is None

    assert client.patch(f"/api/alerts/{alert['id']}/acknowledge", headers=headers).status_code == 200
    assert client.patch("/api/alerts/9999/acknowledge", headers=headers).status_code == 404

    page = client.get("/api/alerts?type=gas", headers=headers).json()
    assert page["alerts"][0]["acknowledgedBy"]["username"] == "alice"


def test_push_tokens(client, ctx, make_user):
    _, headers = make_user("alice")

    resp = client.post("/api/push-tokens", json={"token": "tok-1", "platform": "android"}, headers=headers)
    assert resp.status_code == 201
    client.post("/api/push-tokens", json={"token": "tok-1"}, headers=headers)
    rows = ctx.db.fetch_all("SELECT token, platform FROM push_tokens")
    assert [(r["token"], r["platform"]) for r in rows] == [("tok-1", "web")]

    assert client.delete("/api/push-tokens/tok-1", headers=headers).status_code == 204
    assert ctx.db.fetch_all("SELECT token FROM push_tokens") == []


def test_expired_and_forged_tokens_are_rejected(client, make_user):
    alice, headers = make_user("alice")
    assert client.get("/api/auth/me", headers=headers).status_code == 200

    expired = AuthService(ttl_seconds=-60).create_token(alice)
    resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {expired}"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "Token expired"

    forged = AuthService(secret_key="someone-else").create_token(alice)
    resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {forged}"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "Invalid token"


def test_change_password_and_profile(client, make_user):
    alice, headers = make_user("alice", password="secret")
    make_user("bob")

    def change(body):
        return client.patch("/api/auth/password", json=body, headers=headers)

    assert change({}).status_code == 400
    assert change({"currentPassword": "nope", "newPassword": "newpass"}).status_code == 400
    assert change({"currentPassword": "secret", "newPassword": "abc"}).status_code == 400
    assert change({"currentPassword": "secret", "newPassword": "newpass"}).status_code == 200

    assert client.post("/api/auth/login", json={"username": "alice", "password": "secret"}).status_code == 401
    assert client.post("/api/auth/login", json={"username": "alice", "password": "newpass"}).status_code == 200

    assert client.patch("/api/auth/profile", json={"username": "al"}, headers=headers).status_code == 400
    assert client.patch("/api/auth/profile", json={"username": "bob"}, headers=headers).status_code == 409
    resp = client.patch("/api/auth/profile", json={"username": "alicia"}, headers=headers)
    assert resp.json() == {"id": alice, "username": "alicia", "role": "USER"}
    assert client.get("/api/auth/me", headers=headers).json()["username"] == "alicia"


def test_user_administration(client, ctx, publisher, make_user, give_card):
    _, headers = make_user("admin", role="ADMIN")
    alice, alice_headers = make_user("alice")
    give_card(alice, "A1B2C3D4")
    with ctx.transaction() as conn:
        ctx.push.register_token(conn, alice, "tok-1", "web")
    publisher.clear()

    assert client.get("/api/auth/users", headers=alice_headers).status_code == 403
    users = client.get("/api/auth/users", headers=headers).json()
    assert [u["username"] for u in users] == ["admin", "alice"]
    assert all(u["createdAt"] for u in users)

    resp = client.patch(f"/api/auth/users/{alice}/role", json={"role": "ADMIN"}, headers=headers)
    assert resp.json() == {"id": alice, "username": "alice", "role": "ADMIN"}
    assert client.patch(f"/api/auth/users/{alice}/role", json={"role": "ROOT"}, headers=headers).status_code == 422
    assert client.patch("/api/auth/users/999/role", json={"role": "USER"}, headers=headers).status_code == 404

    assert client.delete(f"/api/auth/users/{alice}", headers=headers).status_code == 204
    assert client.delete(f"/api/auth/users/{alice}", headers=headers).status_code == 404
    (whitelist,) = publisher.on(Topic.CONFIG_RFID)
    assert whitelist["whitelist"] == []
    assert ctx.db.fetch_all("SELECT id FROM rfid_cards") == []
    assert ctx.db.fetch_all("SELECT token FROM push_tokens") == []
    assert client.get("/api/auth/me", headers=alice_headers).status_code == 401


def test_push_test_notification(client, ctx, push_sender, make_user):
    admin, headers = make_user("admin", role="ADMIN")
    alice, alice_headers = make_user("alice")
    with ctx.transaction() as conn:
        ctx.push.register_token(conn, alice, "tok-alice", "android")

    assert client.post("/api/push/test", json={}, headers=alice_headers).status_code == 403

    resp = client.post("/api/push/test", json={"userId": alice, "title": "Hi"}, headers=headers)
    assert resp.status_code == 200
    assert push_sender.sent == [("Hi", "Test notification")]

    # no registered devices
    client.post("/api/push/test", json={"userId": admin}, headers=headers)
    assert len(push_sender.sent) == 1

    client.post("/api/push/test", json={}, headers=headers)
    assert push_sender.sent[-1] == ("Test", "Test notification")


def test_raw_door_events_endpoint(client, router, make_user):
    _, headers = make_user("admin", role="ADMIN")
    _, user_headers = make_user("bob")
    router.dispatch(Topic.DOOR_STATE, {"status": "open", "actor": "rfid"})
    router.dispatch(Topic.DOOR_STATE, {"state": "closed"})

    assert client.get("/api/access-logs", headers=user_headers).status_code == 403
    page = client.get("/api/access-logs?limit=1", headers=headers).json()
    assert page["total"] == 2
    assert page["totalPages"] == 2
    assert [(e["eventType"], e["actor"]) for e in page["logs"]] == [("closed", "unknown")]
