from datetime import date

import gateway
from auth import SESSION_COOKIE, create_session_token, decode_session_token, issue_token
from views import CHECK, PLACEHOLDER


def sign_in(client, user_id="alice"):
    client.cookies.set(SESSION_COOKIE, create_session_token(user_id))


def test_record_page_signed_out(client):
    response = client.get("/")
    assert response.status_code == 200
    assert 'action="/session"' in response.text
    assert 'data-signed-in="false"' in response.text
    assert "audio/webm;codecs=opus" in response.text


def test_sign_in_sets_cookie(client, test_session):
    token = issue_token(test_session, "alice")
    response = client.post("/session", data={"token": token}, follow_redirects=False)
    assert response.status_code == 303
    cookie = response.cookies.get(SESSION_COOKIE)
    assert cookie != token
    assert decode_session_token(cookie)["user_id"] == "alice"

    page = client.get("/")
    assert "Signed in as <code>alice</code>" in page.text


def test_sign_in_unknown_token(client):
    response = client.post("/session", data={"token": "nope"}, follow_redirects=False)
    assert response.status_code == 303
    assert "error=" in response.headers["location"]


def test_cookie_authorizes_api(client, test_session):
    """Test that the browser cookie is accepted in place of a bearer header."""
    sign_in(client)
    response = client.get("/api/logs?from=2024-01-01&to=2024-01-31")
    assert response.status_code == 200
    assert response.json() == {"data": []}


def test_logs_page_signed_out(client):
    response = client.get("/logs")
    assert response.status_code == 200
    assert "Please sign in to see your logs." in response.text


def test_logs_page_empty_range(client, test_session):
    sign_in(client)
    response = client.get("/logs?from=2024-01-01&to=2024-01-07")
    assert "No logs in this range." in response.text


def test_logs_page_renders_empty_payload(client, test_session):
    """Test that a log with every field omitted renders placeholders without error."""
    sign_in(client)
    gateway.upsert(test_session, "alice", date(2024, 1, 15), None, {})

    response = client.get("/logs?from=2024-01-15&to=2024-01-15")
    assert response.status_code == 200
    assert "<strong>2024-01-15</strong>" in response.text
    assert f"Mood: {PLACEHOLDER}" in response.text
    assert "Transcript</h3>" not in response.text


def test_logs_page_most_recent_first(client, test_session):
    sign_in(client)
    gateway.upsert(test_session, "alice", date(2024, 1, 14), "older", {"mood": "tired"})
    gateway.upsert(test_session, "alice", date(2024, 1, 16), "newer", {"mood": "happy", "habits": {"yoga": True}})

    text = client.get("/logs?from=2024-01-14&to=2024-01-16").text
    assert text.index("<strong>2024-01-16</strong>") < text.index("<strong>2024-01-14</strong>")
    assert f"Yoga: {CHECK}" in text


def test_logs_page_hides_other_users(client, test_session):
    gateway.upsert(test_session, "bob", date(2024, 1, 15), "bob's secret", {"mood": "sneaky"})
    sign_in(client)

    text = client.get("/logs?from=2024-01-15&to=2024-01-15").text
    assert "sneaky" not in text


def test_edit_page_seeded_from_payload(client, test_session):
    sign_in(client)
    log = gateway.upsert(
        test_session,
        "alice",
        date(2024, 1, 15),
        "hello",
        {"mood": "calm", "work": {"time_blocks": [{"label": "Email", "minutes": 30}]}},
    )

    response = client.get(f"/logs/{log.id}/edit")
    assert response.status_code == 200
    assert 'name="mood" value="calm"' in response.text
    assert "Email | 30" in response.text


def test_edit_page_unknown_log(client, test_session):
    sign_in(client)
    response = client.get("/logs/missing/edit")
    assert response.status_code == 404
    assert "Log not found" in response.text


def test_edit_page_signed_out_redirects(client):
    response = client.get("/logs/anything/edit", follow_redirects=False)
    assert response.status_code == 303


def test_save_edit_fields(client, test_session):
    sign_in(client)
    log = gateway.upsert(test_session, "alice", date(2024, 1, 15), "hello", {"mood": "calm", "energy": 3})

    response = client.post(
        f"/logs/{log.id}/edit",
        data={
            "mode": "fields",
            "log_date": "2024-01-15",
            "schema_version": "1",
            "mood": "happy",
            "energy": "8",
            "habits_workout": "on",
            "highlights": "Ran 5k",
        },
    )
    assert response.status_code == 200
    assert "Saved." in response.text

    saved = gateway.get_by_id(test_session, "alice", log.id).extracted
    assert saved["mood"] == "happy"
    assert saved["energy"] == 8
    assert saved["habits"]["workout"] is True
    assert saved["highlights"] == ["Ran 5k"]


def test_save_edit_raw_json(client, test_session):
    sign_in(client)
    log = gateway.upsert(test_session, "alice", date(2024, 1, 15), "hello", {"mood": "calm"})

    response = client.post(
        f"/logs/{log.id}/edit",
        data={"mode": "json", "log_date": "2024-01-15", "raw_json": '{"mood": "focused", "extra": true}'},
    )
    assert response.status_code == 200
    assert gateway.get_by_id(test_session, "alice", log.id).extracted == {"mood": "focused", "extra": True}


def test_save_edit_malformed_json_leaves_log(client, test_session):
    """Test that malformed JSON is reported and nothing is saved."""
    sign_in(client)
    log = gateway.upsert(test_session, "alice", date(2024, 1, 15), "hello", {"mood": "calm"})

    response = client.post(
        f"/logs/{log.id}/edit",
        data={"mode": "json", "log_date": "2024-01-15", "raw_json": "{oops"},
    )
    assert response.status_code == 400
    assert "Extracted JSON is not valid" in response.text
    assert "{oops" in response.text
    assert gateway.get_by_id(test_session, "alice", log.id).extracted == {"mood": "calm"}


def test_dashboard_series(client, test_session):
    sign_in(client)
    gateway.upsert(test_session, "alice", date(2024, 1, 14), None, {"sleep_hours": 6.5, "energy": 4})
    gateway.upsert(test_session, "alice", date(2024, 1, 15), None, {"sleep_hours": "unknown"})

    response = client.get("/dashboard?from=2024-01-01&to=2024-01-31")
    assert response.status_code == 200
    assert "6.5" in response.text
    # Focus was never reported
    assert "No data" in response.text


def test_dashboard_signed_out(client):
    response = client.get("/dashboard")
    assert response.status_code == 200
    assert "Please sign in to see your dashboard." in response.text


def test_sign_out_clears_cookie(client):
    sign_in(client)
    response = client.post("/session/logout", follow_redirects=False)
    assert response.status_code == 303
    assert "Max-Age=0" in response.headers["set-cookie"]


def test_tampered_session_cookie_is_rejected(client):
    client.cookies.set(SESSION_COOKIE, "x" + create_session_token("alice"))
    response = client.get("/api/logs?from=2024-01-01&to=2024-01-31")
    assert response.status_code == 401


def test_api_token_is_not_a_session_cookie(client, test_session):
    """Test that a raw API token placed in the session cookie grants nothing."""
    client.cookies.set(SESSION_COOKIE, issue_token(test_session, "alice"))
    response = client.get("/api/logs?from=2024-01-01&to=2024-01-31")
    assert response.status_code == 401


def test_expired_session_token():
    token = create_session_token("alice")
    assert decode_session_token(token)["user_id"] == "alice"
    assert decode_session_token(token, max_age=-1) is None


def test_save_edit_rejects_non_finite_number(client, test_session):
    sign_in(client)
    log = gateway.upsert(test_session, "alice", date(2024, 1, 15), "hello", {"mood": "calm", "energy": 3})

    response = client.post(
        f"/logs/{log.id}/edit",
        data={"mode": "fields", "log_date": "2024-01-15", "mood": "calm", "energy": "nan"},
    )
    assert response.status_code == 400
    assert gateway.get_by_id(test_session, "alice", log.id).extracted == {"mood": "calm", "energy": 3}
