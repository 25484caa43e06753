from app.models.enums import Topic
from app.utils.hashing import hash_uid


def test_unknown_card_is_denied_once(router, publisher, logs):
    router.dispatch(Topic.RFID_CHECK, {"uid": "00000000"})

    results = publisher.on(Topic.RFID_RESULT)
    assert len(results) == 1
    assert results[0]["allow"] is False
    assert results[0]["reason"] == "unknown_card"
    assert results[0]["username"] == "Unknown"
    assert "timestamp" in results[0]

    entries = logs()
    assert len(entries) == 1
    assert entries[0]["event"] == "access_denied"
    assert entries[0]["method"] == "invalid_rfid"


def test_active_card_is_granted(router, publisher, make_user, give_card, logs):
    alice, _ = make_user("alice")
    give_card(alice, "A1B2C3D4")
    publisher.clear()

    router.dispatch(Topic.RFID_CHECK, {"uid": "a1b2c3d4"})

    (result,) = publisher.on(Topic.RFID_RESULT)
    assert result == {
        "allow": True, "method": "rfid", "uid": "A1B2C3D4",
        "username": "alice", "timestamp": result["timestamp"],
    }
    assert logs()[-1]["user_id"] == alice


def test_rfid_auth_accepts_uid_hash(router, publisher, make_user, give_card):
    alice, _ = make_user("alice")
    give_card(alice, "A1B2C3D4")

    router.dispatch(Topic.RFID_AUTH, {"uidHash": hash_uid("A1B2C3D4")})

    (result,) = publisher.on(Topic.RFID_RESULT)
    assert result["allow"] is True


def test_revoked_card_sends_notification(router, ctx, push_sender, make_user, give_card):
    alice, _ = make_user("alice")
    give_card(alice, "A1B2C3D4")
    with ctx.transaction() as conn:
        ctx.doors.revoke_user_card(conn, alice)
        ctx.push.register_token(conn, alice, "tok-1", "web")

    router.dispatch(Topic.RFID_CHECK, {"uid": "A1B2C3D4"})

    assert push_sender.titles() == ["Access denied"]


def test_missing_uid_gets_invalid_request(router, publisher, logs):
    router.dispatch(Topic.RFID_CHECK, {})

    (result,) = publisher.on(Topic.RFID_RESULT)
    assert result["reason"] == "invalid_request"
    assert logs() == []


def test_five_failures_raise_the_alarm(router, ctx, publisher, push_sender, logs):
    for _ in range(4):
        router.dispatch(Topic.PIN_CHECK, {"pin": "0000"})
    assert ctx.counter.count == 4
    assert publisher.on(Topic.ALERT_NEW) == []

    router.dispatch(Topic.PIN_CHECK, {"pin": "9999"})

    assert ctx.counter.count == 5
    events = [e["event"] for e in logs()]
    assert events == ["access_denied"] * 5 + ["alarm_triggered"]
    (alert,) = publisher.on(Topic.ALERT_NEW)
    assert alert["level"] == "CRITICAL"
    assert "Door alarm!" in push_sender.titles()
    assert len(publisher.on(Topic.PIN_RESULT)) == 5


def test_success_clears_failures(router, ctx, publisher):
    for _ in range(3):
        router.dispatch(Topic.PIN_CHECK, {"pin": "0000"})
    router.dispatch(Topic.PIN_CHECK, {"pin": "1234"})

    assert ctx.counter.count == 0
    assert publisher.on(Topic.PIN_RESULT)[-1]["allow"] is True


def test_malformed_pin_is_not_counted(router, ctx, publisher, logs):
    router.dispatch(Topic.PIN_CHECK, {"pin": "12a4"})

    (result,) = publisher.on(Topic.PIN_RESULT)
    assert result["reason"] == "invalid_request"
    assert ctx.counter.count == 0
    assert logs() == []


def test_reset_alarm_clears_counter(router, ctx):
    for _ in range(5):
        router.dispatch(Topic.PIN_CHECK, {"pin": "0000"})
    ctx.reset_alarm()
    assert ctx.counter.count == 0


def test_scan_during_enrollment_enrolls(router, ctx, publisher, make_user, logs):
    alice, _ = make_user("alice")
    with ctx.transaction() as conn:
        ctx.enrollment.start(conn, alice)

    router.dispatch(Topic.RFID_CHECK, {"uid": "A1B2C3D4"})

    (result,) = publisher.on(Topic.ENROLLMENT_RESULT)
    assert result["success"] is True
    assert result["username"] == "alice"
    assert publisher.on(Topic.RFID_RESULT) == []
    (whitelist,) = publisher.on(Topic.CONFIG_RFID)
    assert whitelist["whitelist"] == [{"uidHash": hash_uid("A1B2C3D4"), "username": "alice"}]
    assert [e["event"] for e in logs()] == ["enrollment_success"]
    assert ctx.counter.count == 0


def test_enrollment_conflict_is_reported(router, ctx, publisher, make_user, give_card):
    alice, _ = make_user("alice")
    bob, _ = make_user("bob")
    give_card(alice, "A1B2C3D4")
    with ctx.transaction() as conn:
        ctx.enrollment.start(conn, bob)

    router.dispatch(Topic.RFID_CHECK, {"uid": "A1B2C3D4"})

    (result,) = publisher.on(Topic.ENROLLMENT_RESULT)
    assert result["success"] is False
    assert result["holder"] == "alice"
    assert publisher.on(Topic.CONFIG_RFID) == []


def test_duplicate_message_id_is_ignored(router, publisher, logs):
    assert router.dispatch(Topic.PIN_CHECK, {"pin": "0000", "messageId": "m-1"})
    assert not router.dispatch(Topic.PIN_CHECK, {"pin": "0000", "messageId": "m-1"})

    assert len(logs()) == 1
    assert len(publisher.on(Topic.PIN_RESULT)) == 1


def test_unknown_topic_and_bad_payload_are_ignored(router, publisher, logs):
    assert not router.dispatch("door/unknown", {"x": 1})
    assert not router.dispatch(Topic.PIN_CHECK, "not-json-object")
    # handled, but the payload fails validation
    router.dispatch(Topic.GAS, {"level": "lots"})

    assert publisher.messages == []
    assert logs() == []


def test_door_access_report_is_logged(router, push_sender, logs):
    router.dispatch(Topic.DOOR_ACCESS, {"event": "access_denied", "method": "invalid_pin"})

    (entry,) = logs()
    assert entry["event"] == "access_denied"
    assert entry["method"] == "invalid_pin"
    assert push_sender.titles() == ["Access denied"]


def test_door_alarm_report(router, publisher, logs):
    router.dispatch(Topic.DOOR_ALARM, {"reason": "max_attempts", "failCount": 5})

    (entry,) = logs()
    assert entry["event"] == "alarm_triggered"
    assert entry["method"] == "max_attempts"
    (alert,) = publisher.on(Topic.ALERT_NEW)
    assert alert["type"] == "door" and alert["level"] == "CRITICAL"


def test_door_state_and_abnormal_access(router, publisher, logs):
    router.dispatch(Topic.DOOR_STATE, {"status": "open", "actor": "physical_button"})
    router.dispatch(Topic.DOOR_STATE, {"status": "closed"})
    router.dispatch(Topic.DOOR_STATE, {"status": "open", "abnormal": True})

    assert [(e["event"], e["method"]) for e in logs()] == [
        ("door_opened", "physical_button"),
        ("door_closed", "system"),
        ("door_opened", "system"),
    ]
    (alert,) = publisher.on(Topic.ALERT_NEW)
    assert alert["level"] == "WARNING"


def test_gas_levels(router, publisher):
    router.dispatch(Topic.GAS, {"level": 300})
    router.dispatch(Topic.GAS, {"level": 600})
    router.dispatch(Topic.GAS, {"level": 900})
    router.dispatch(Topic.GAS, {"level": 300, "threshold": 200})

    assert [a["level"] for a in publisher.on(Topic.ALERT_NEW)] == ["WARNING", "CRITICAL", "WARNING"]


def test_fire_alert(router, publisher):
    router.dispatch(Topic.FIRE, {"detected": False})
    router.dispatch(Topic.FIRE, {"detected": True, "location": "kitchen"})

    (alert,) = publisher.on(Topic.ALERT_NEW)
    assert alert["type"] == "fire"
    assert "kitchen" in alert["message"]


def test_offline_sweep_marks_door_offline(router, ctx, push_sender):
    router.dispatch(Topic.DOOR_STATUS, {"online": True})
    router.dispatch(Topic.HEARTBEAT, {"deviceId": "sensor-1"})
    with ctx.transaction() as conn:
        assert ctx.doors.get_or_create_door(conn)["is_online"]

    seen = ctx.devices.last_seen("door")
    offline = router.sweep_offline_devices(now=seen + 31)

    assert sorted(offline) == ["door", "sensor-1"]
    assert push_sender.titles() == ["Device offline", "Device offline"]
    with ctx.transaction() as conn:
        assert not ctx.doors.get_or_create_door(conn)["is_online"]
    assert router.sweep_offline_devices(now=seen + 60) == []


def test_non_string_pin_gets_invalid_request(router, publisher, logs):
    router.dispatch(Topic.PIN_CHECK, {"pin": 1234})

    (result,) = publisher.on(Topic.PIN_RESULT)
    assert result["allow"] is False
    assert result["reason"] == "invalid_request"
    assert logs() == []


def test_failed_alarm_rolls_back_counter_and_log(router, ctx, publisher, push_sender, monkeypatch, logs):
    for _ in range(4):
        router.dispatch(Topic.PIN_CHECK, {"pin": "0000"})
    assert ctx.counter.count == 4

    def broken_alert(conn, type, level, message):
        raise RuntimeError("alerts table unavailable")

    monkeypatch.setattr(ctx.alerts, "create_alert", broken_alert)
    router.dispatch(Topic.PIN_CHECK, {"pin": "0000"})

    assert publisher.on(Topic.PIN_RESULT)[-1]["reason"] == "server_error"
    assert ctx.counter.count == 4
    assert [e["event"] for e in logs()] == ["access_denied"] * 4
    assert publisher.on(Topic.ALERT_NEW) == []
    assert "Door alarm!" not in push_sender.titles()


def test_redelivery_after_failure_is_handled(router, ctx, publisher, monkeypatch, logs):
    verify_pin = ctx.auth.verify_pin
    failures = [RuntimeError("database is locked")]

    def flaky_verify(conn, pin):
        if failures:
            raise failures.pop()
        return verify_pin(conn, pin)

    monkeypatch.setattr(ctx.auth, "verify_pin", flaky_verify)

    assert router.dispatch(Topic.PIN_CHECK, {"pin": "0000", "messageId": "m-9"})
    assert publisher.on(Topic.PIN_RESULT)[-1]["reason"] == "server_error"
    assert logs() == []
    assert ctx.counter.count == 0

    assert router.dispatch(Topic.PIN_CHECK, {"pin": "0000", "messageId": "m-9"})
    assert publisher.on(Topic.PIN_RESULT)[-1]["reason"] == "wrong_pin"
    assert [e["event"] for e in logs()] == ["access_denied"]
    assert ctx.counter.count == 1

    assert not router.dispatch(Topic.PIN_CHECK, {"pin": "0000", "messageId": "m-9"})
    assert len(logs()) == 1


def test_door_state_keeps_raw_report(router, ctx):
    router.dispatch(Topic.DOOR_STATE, {"state": "open", "actor": "rfid"})
    router.dispatch(Topic.DOOR_STATE, {"status": "closed"})

    with ctx.db.get_connection() as conn:
        page = ctx.access_log.get_door_events(conn)
    assert [(e["eventType"], e["actor"]) for e in page["logs"]] == [("closed", "unknown"), ("open", "rfid")]
