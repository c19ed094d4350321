import json

import pytest

from chatguard.settings import settings

ADMIN_HEADERS = {"X-Admin-Token": "test-admin-token"}
DANGEROUS = "http://192.168.1.5/app.exe"


async def _seed_block(api_client, moderation):
	response = await api_client.post("/api/mod/v1/screen", json={"text": f"get {DANGEROUS}"})
	assert response.json()["blocked_by"] == "url"
	await moderation.writer.drain()


@pytest.mark.asyncio
async def test_admin_routes_require_token(api_client):
	response = await api_client.get("/api/mod/v1/blocked-urls/stats")
	assert response.status_code == 403
	assert response.json()["detail"] == "forbidden"

	wrong = await api_client.get("/api/mod/v1/blocked-urls/stats", headers={"X-Admin-Token": "nope"})
	assert wrong.status_code == 403


@pytest.mark.asyncio
async def test_admin_routes_fail_closed_without_configured_token(api_client, monkeypatch):
	monkeypatch.setattr(settings, "obs_admin_token", None)
	response = await api_client.get("/api/mod/v1/blocked-urls/stats", headers=ADMIN_HEADERS)
	assert response.status_code == 403
	assert response.json()["detail"] == "admin_token_not_configured"


@pytest.mark.asyncio
async def test_stats_and_recent_after_a_block(api_client, moderation):
	empty = await api_client.get("/api/mod/v1/blocked-urls/stats", headers=ADMIN_HEADERS)
	assert empty.json()["total_blocked"] == 0

	await _seed_block(api_client, moderation)

	stats = await api_client.get(
		"/api/mod/v1/blocked-urls/stats",
		headers={"Authorization": "Bearer test-admin-token"},
	)
	assert stats.status_code == 200
	assert stats.json() == {
		"total_blocked": 1,
		"total_block_count": 1,
		"avg_risk_score": 100.0,
		"max_risk_score": 100,
		"sources": ["heuristic"],
	}

	recent = await api_client.get("/api/mod/v1/blocked-urls/recent", headers=ADMIN_HEADERS)
	assert recent.status_code == 200
	records = recent.json()
	assert len(records) == 1
	assert records[0]["normalized_url"] == DANGEROUS
	assert records[0]["is_active"] is True
	assert records[0]["evidence"]["heuristic"]["rules"] == ["ip_literal", "dangerous_extension", "many_digits"]


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [0, 101, "many"])
async def test_recent_limit_is_validated(api_client, limit):
	response = await api_client.get(f"/api/mod/v1/blocked-urls/recent?limit={limit}", headers=ADMIN_HEADERS)
	assert response.status_code == 422


@pytest.mark.asyncio
async def test_deactivated_url_is_no_longer_served_from_cache(api_client, moderation):
	await _seed_block(api_client, moderation)
	record_id = (await api_client.get("/api/mod/v1/blocked-urls/recent", headers=ADMIN_HEADERS)).json()[0]["id"]

	response = await api_client.post(f"/api/mod/v1/blocked-urls/{record_id}/deactivate", headers=ADMIN_HEADERS)
	assert response.status_code == 200
	assert response.json()["is_active"] is False

	stats = await api_client.get("/api/mod/v1/blocked-urls/stats", headers=ADMIN_HEADERS)
	assert stats.json()["total_blocked"] == 0

	rescreen = await api_client.post("/api/mod/v1/screen", json={"text": DANGEROUS})
	assert rescreen.json()["urls"][0]["fromCache"] is False


@pytest.mark.asyncio
async def test_deactivate_unknown_record(api_client):
	response = await api_client.post("/api/mod/v1/blocked-urls/999/deactivate", headers=ADMIN_HEADERS)
	assert response.status_code == 404
	body = response.json()
	assert body["detail"] == "blocked_url_not_found"
	assert body["request_id"]


@pytest.mark.asyncio
async def test_dlp_reload_picks_up_new_corpus(api_client, moderation, tmp_path, monkeypatch):
	corpus_path = tmp_path / "protected.json"
	corpus_path.write_text(
		json.dumps(
			[
				{"id": "a", "name": "Stout", "vector": [1, 0], "tokens": ["malt"]},
				{"id": "b", "name": "Porter", "vector": [0, 1]},
			]
		),
		encoding="utf-8",
	)
	monkeypatch.setattr(settings, "dlp_corpus_path", str(corpus_path))

	denied = await api_client.post("/api/mod/v1/dlp/reload")
	assert denied.status_code == 403

	response = await api_client.post("/api/mod/v1/dlp/reload", headers=ADMIN_HEADERS)
	assert response.status_code == 200
	body = response.json()
	assert body["corpus_entries"] == 2
	assert body["sensitive_phrases"] > 0

	screened = await api_client.post("/api/mod/v1/screen", json={"text": "more malt please"})
	assert screened.json()["blocked_by"] == "dlp"
