"""Tests for system settings route."""


def test_system_settings_hides_secrets(client, monkeypatch):
    monkeypatch.setenv("META_APP_SECRET", "very-secret")
    monkeypatch.setenv("VOICEFLOW_API_KEY", "VF.DM.secret")
    r = client.get("/system/settings")
    assert r.status_code == 200
    data = r.json()
    assert data["app"]["environment"] == "test"
    assert data["meta"]["signature_check_enabled"] is True
    assert data["voiceflow"]["default_api_key_configured"] is True
    assert data["voiceflow"]["max_attempts"] == 3
    assert "very-secret" not in r.text
    assert "VF.DM.secret" not in r.text
