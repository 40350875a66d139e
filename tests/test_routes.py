"""Tests for the Flask intake surface."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from leadrelay.core.journal import Channel


def _sheet(status=200):
    r = MagicMock()
    r.ok, r.status_code, r.text = 200 <= status < 400, status, ""
    return r


class TestHealth:
    def test_healthz(self, client):
        resp = client.get("/formnew/healthz")
        assert resp.status_code == 200
        assert resp.get_data(as_text=True).startswith("OK")


class TestSubmit:

    @patch("leadrelay.agents.sheet_relay.requests.post")
    def test_json_submit(self, mock_post, client, context, form_payload):
        mock_post.return_value = _sheet(200)
        resp = client.post("/formnew/submit", json=form_payload)
        assert resp.status_code == 200
        assert resp.get_json() == {"ok": True}
        entries = context.journal.read_entries(Channel.GENERAL)
        assert len(entries) == 1
        assert entries[0]["payload"] == form_payload
        resp.close()

    @pytest.mark.parametrize("failure", [
        _sheet(500),
        requests.exceptions.Timeout("Read timed out."),
    ])
    @patch("leadrelay.agents.sheet_relay.requests.post")
    def test_ack_independent_of_sheet(self, mock_post, failure, client, context,
                                      whatsapp_payload):
        if isinstance(failure, Exception):
            mock_post.side_effect = failure
        else:
            mock_post.return_value = failure
        resp = client.post("/formnew/submit", json=whatsapp_payload)
        assert resp.status_code == 200
        assert resp.get_json() == {"ok": True}
        assert len(context.journal.read_entries(Channel.SHEET_FAIL)) == 1

    @patch("leadrelay.agents.sheet_relay.requests.post")
    def test_client_ip_from_proxy_headers(self, mock_post, client, context, whatsapp_payload):
        mock_post.return_value = _sheet(200)
        client.post("/formnew/submit", json=whatsapp_payload,
                    headers={"X-Forwarded-For": "7.7.7.7, 10.0.0.2"})
        assert context.journal.read_entries(Channel.GENERAL)[0]["ip"] == "7.7.7.7"

    @patch("leadrelay.agents.sheet_relay.requests.post")
    def test_urlencoded_submit(self, mock_post, client, context):
        mock_post.return_value = _sheet(200)
        resp = client.post("/formnew/submit", data={
            "source": "whatsapp", "name": "Noa", "tours[]": ["Colosseum", "Pantheon"],
        })
        assert resp.get_json() == {"ok": True}
        payload = context.journal.read_entries(Channel.GENERAL)[0]["payload"]
        assert payload["name"] == "Noa"
        assert payload["tours"] == ["Colosseum", "Pantheon"]
        assert len(context.journal.read_entries(Channel.WHATSAPP)) == 1

    @patch("leadrelay.agents.sheet_relay.requests.post")
    def test_non_object_json_rejected(self, mock_post, client, context):
        resp = client.post("/formnew/submit", json=["a", "b"])
        assert resp.status_code == 400
        assert resp.get_json()["ok"] is False
        mock_post.assert_not_called()
        assert context.journal.read_entries(Channel.GENERAL) == []

    @patch("leadrelay.agents.sheet_relay.requests.post")
    def test_form_replicated_after_reply(self, mock_post, client, context, fake_page,
                                         form_payload):
        mock_post.return_value = _sheet(200)
        resp = client.post("/formnew/submit", json=form_payload)
        assert resp.get_json() == {"ok": True}
        resp.close()
        assert context.dispatcher.wait_idle(timeout=5)
        assert fake_page.opened >= 1
        statuses = {e["status"] for e in context.journal.read_entries(Channel.PARTNER_FORM)}
        assert statuses == {"success_detected"}

    @patch("leadrelay.agents.sheet_relay.requests.post")
    def test_whatsapp_not_replicated(self, mock_post, client, context, fake_page,
                                     whatsapp_payload):
        mock_post.return_value = _sheet(200)
        resp = client.post("/formnew/submit", json=whatsapp_payload)
        resp.close()
        assert context.dispatcher.wait_idle(timeout=5)
        assert fake_page.opened == 0
        assert context.journal.read_entries(Channel.PARTNER_FORM) == []


    def test_malformed_sheet_url_still_acknowledged(self, client, context, whatsapp_payload):
        # Host with an empty label fails URL parsing before any connection
        context.sheet.sheet_url = "https://script..google.com/exec"
        resp = client.post("/formnew/submit", json=whatsapp_payload)
        assert resp.status_code == 200
        assert resp.get_json() == {"ok": True}
        assert len(context.journal.read_entries(Channel.GENERAL)) == 1
        assert len(context.journal.read_entries(Channel.SHEET_FAIL)) == 1


class TestCors:
    def test_origin_header(self, client):
        resp = client.get("/formnew/healthz")
        assert resp.headers["Access-Control-Allow-Origin"] == "https://saveforyourtrip.com"

    def test_preflight(self, client):
        resp = client.options("/formnew/submit", headers={
            "Origin": "https://saveforyourtrip.com",
            "Access-Control-Request-Method": "POST",
        })
        assert resp.status_code == 200
        assert "POST" in resp.headers["Access-Control-Allow-Methods"]


class TestStatus:
    @patch("leadrelay.agents.sheet_relay.requests.post")
    def test_status_counts_and_masking(self, mock_post, client, whatsapp_payload):
        mock_post.return_value = _sheet(200)
        client.post("/formnew/submit", json=whatsapp_payload)
        data = client.get("/formnew/status").get_json()
        assert data["journals"]["general"] == 1
        assert data["journals"]["whatsapp"] == 1
        assert data["replication"]["max_sessions"] == 1
        assert "TESTDEPLOY" not in str(data)

    def test_reports_running_config_not_env(self, client, monkeypatch):
        monkeypatch.delenv("SHEET_URL", raising=False)
        monkeypatch.setenv("AFFILIATE_ID", "999")
        data = client.get("/formnew/status").get_json()
        assert data["ok"] is True
        assert data["warnings"] == []
        assert data["settings"]["sheet_url"]["set"] is True
        assert data["settings"]["affiliate_id"]["value"] == "242"
        assert data["settings"]["max_browser_sessions"]["value"] == "1"
        assert data["settings"]["max_browser_sessions"]["from_default"] is False


class TestAppFactory:
    def test_routes_registered(self, app):
        endpoints = {r.endpoint for r in app.url_map.iter_rules()}
        assert {"leadrelay.submit", "leadrelay.healthz", "leadrelay.status"} <= endpoints
