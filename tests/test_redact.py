from __future__ import annotations

from pyalmond._redact import redact_for_log, redact_url


def test_redact_for_log_redacts_sensitive_keys() -> None:
    payload = {
        "CommandType": "ChangePassword",
        "Password": "pw",
        "nested": {"token": "deadbeef", "Value": "true"},
    }

    redacted = redact_for_log(payload)
    assert redacted["Password"] == "<redacted>"
    assert redacted["nested"]["token"] == "<redacted>"
    assert redacted["nested"]["Value"] == "true"
    assert payload["Password"] == "pw"


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]


def test_redact_url_hides_password_segment() -> None:
    assert redact_url("ws://10.0.0.2:7681/root/hunter2") == "ws://10.0.0.2:7681/root/<redacted>"


def test_redact_for_log_hides_password_in_payload_urls() -> None:
    redacted = redact_for_log({"Url": "wss://hub.local/admin/hunter2", "List": ("a", 1)})

    assert redacted["Url"] == "wss://hub.local/admin/<redacted>"
    assert redacted["List"] == ["a", 1]


def test_redact_for_log_summarises_binary_frames() -> None:
    assert redact_for_log(b"\xff\xfe\x00") == "<bytes:3b>"
