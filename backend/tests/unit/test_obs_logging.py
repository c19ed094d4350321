import json
import logging

from chatguard.obs import logging as obs_logging


def _record(**extra) -> logging.LogRecord:
	record = logging.LogRecord("chatguard.test", logging.INFO, __file__, 1, "screened %s", ("msg",), None)
	for key, value in extra.items():
		setattr(record, key, value)
	return record


def test_formatter_redacts_message_text_and_credentials():
	formatter = obs_logging.JSONLogFormatter()
	payload = json.loads(
		formatter.format(_record(text="my password is hunter2", api_key="abc", score=91, nested={"token": "t", "ok": 1}))
	)
	assert payload["msg"] == "screened msg"
	assert payload["text"] == "[redacted]"
	assert payload["api_key"] == "[redacted]"
	assert payload["score"] == 91
	assert payload["nested"] == {"token": "[redacted]", "ok": 1}


def test_formatter_binds_request_context():
	tokens = obs_logging.bind_context(request_id="req-1", route="/api/mod/v1/screen")
	try:
		payload = json.loads(obs_logging.JSONLogFormatter().format(_record()))
		assert obs_logging.current_request_id() == "req-1"
	finally:
		obs_logging.reset_context(tokens)
	assert payload["request_id"] == "req-1"
	assert payload["route"] == "/api/mod/v1/screen"
	assert obs_logging.current_request_id() == "unknown"


def test_long_values_are_truncated():
	payload = json.loads(obs_logging.JSONLogFormatter().format(_record(reasons=["r"] * 20, detail="x" * 300)))
	assert len(payload["reasons"]) == 11
	assert payload["detail"].endswith("…")
