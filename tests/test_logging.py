from realmauth.logging import (
    _add_correlation_id,
    _redact_secrets,
    get_correlation_id,
    is_secret_key,
    redact_fields,
    set_correlation_id,
)


def test_set_correlation_id_generates_when_missing():
    cid = set_correlation_id()

    assert cid
    assert get_correlation_id() == cid


def test_correlation_id_added_to_events():
    set_correlation_id("req-1")

    event = _add_correlation_id(None, "info", {"event": "identity_signed_in"})

    assert event["correlation_id"] == "req-1"


def test_redact_secrets_processor():
    event = _redact_secrets(
        None,
        "info",
        {"event": "password_check", "password": "hunter2-long", "api_key": 12345, "realm": "admin"},
    )

    assert event["event"] == "password_check"
    assert event["password"] == "hu***ng"
    assert event["api_key"] == "***"
    assert event["realm"] == "admin"


def test_redact_fields_keeps_shape():
    redacted = redact_fields({"username": "payam", "Password": "x", "token": None})

    assert redacted == {"username": "payam", "Password": "[REDACTED]", "token": None}


def test_is_secret_key():
    assert is_secret_key("api-key")
    assert is_secret_key("refresh_token")
    assert not is_secret_key("username")
