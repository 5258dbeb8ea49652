from app.core import sentry_init
from app.core.sentry_init import _before_send, _scrub, init_sentry


def test_scrub_filters_credentials_recursively():
    data = {"email": "a@example.org", "password": "x", "nested": [{"Authorization": "Bearer t", "ok": 1}]}
    out = _scrub(data)
    assert out["email"] == "a@example.org"
    assert out["password"] == "[Filtered]"
    assert out["nested"][0]["Authorization"] == "[Filtered]"
    assert out["nested"][0]["ok"] == 1


def test_scrub_filters_file_contents():
    assert _scrub({"file": b"%PDF-1.7 ..."})["file"] == "[Filtered]"
    assert _scrub({"docx": b"PK\x03\x04rest"})["docx"] == "[Filtered]"
    assert _scrub({"text": "x" * 6000})["text"] == "[Filtered]"
    assert _scrub({"text": "short"})["text"] == "short"


def test_before_send_strips_request_body_cookies_and_headers():
    event = {
        "request": {
            "headers": {"Authorization": "Bearer abc", "Cookie": "token=abc", "User-Agent": "pytest"},
            "cookies": {"token": "abc"},
            "data": {"password": "x"},
        },
        "extra": {"temporary_password": "Tmp"},
    }
    out = _before_send(event, {})
    assert out["request"]["headers"] == {"User-Agent": "pytest"}
    assert out["request"]["cookies"] == "[Filtered]"
    assert out["request"]["data"] == "[Filtered]"
    assert out["extra"]["temporary_password"] == "[Filtered]"


def test_init_sentry_disabled_without_dsn(monkeypatch):
    monkeypatch.delenv("SENTRY_DSN", raising=False)
    monkeypatch.delenv("SENTRY_ENABLED", raising=False)
    assert init_sentry() is False


def test_init_sentry_passes_before_send(monkeypatch):
    import sentry_sdk

    captured = {}
    monkeypatch.setenv("SENTRY_DSN", "https://key@o0.ingest.sentry.io/1")
    monkeypatch.setattr(sentry_sdk, "init", lambda **kw: captured.update(kw))

    assert init_sentry() is True
    assert captured["before_send"] is sentry_init._before_send
    assert captured["send_default_pii"] is False
