import json
import logging

from feedgraph.obs import logging as obs_logging
from feedgraph.settings import settings


def _record(msg="relationship_view_started", level=logging.INFO, **extra):
    record = logging.LogRecord("feedgraph.test", level, __file__, 1, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_log_context_binds_viewer_and_channel_then_resets():
    formatter = obs_logging.JSONLogFormatter()
    with obs_logging.log_context(request_id="req-1", channel="socket", sid="sid-1", viewer_id="alice"):
        inside = json.loads(formatter.format(_record()))
    outside = json.loads(formatter.format(_record()))

    assert inside["viewer_id"] == "alice"
    assert inside["channel"] == "socket"
    assert inside["sid"] == "sid-1"
    assert inside["request_id"] == "req-1"
    assert "viewer_id" not in outside
    assert obs_logging.current_request_id() is None


def test_formatter_redacts_secrets_and_caps_id_sets():
    formatter = obs_logging.JSONLogFormatter()
    friend_ids = {f"user-{i:03d}" for i in range(50)}
    payload = json.loads(formatter.format(_record(access_token="abc", friends=friend_ids)))

    assert payload["access_token"] == "[redacted]"
    assert payload["friends"][:2] == ["user-000", "user-001"]
    assert len(payload["friends"]) == 21
    assert payload["friends"][-1] == "+30 more"


def test_sampling_never_drops_audit_events(monkeypatch):
    monkeypatch.setattr(settings, "obs_log_sampling_rate_info", 0.0)
    sampler = obs_logging.InfoSamplingFilter()

    assert sampler.filter(_record(event="block.created")) is True
    assert sampler.filter(_record(level=logging.WARNING)) is True
    assert sampler.filter(_record()) is False
