from booking_ledger.core.security import create_access_token


def test_error_response_has_unified_shape(client):
    response = client.get("/bookings/me")
    assert response.status_code == 401
    body = response.json()
    assert body["error"]["code"] == "http_401"
    assert "message" in body["error"]
    assert "detail" in body
    assert "request_id" in body


def test_engine_errors_carry_their_code_and_request_id(client, auth_headers, provider_user, provider):
    response = client.post(
        "/availability/rules",
        headers={**auth_headers(provider_user), "X-Request-ID": "req-123"},
        json={"weekday": 0, "start_minutes": 600, "end_minutes": 600},
    )

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "invalid_window"
    assert response.json()["request_id"] == "req-123"
    assert response.headers["X-Request-ID"] == "req-123"


def test_validation_errors_use_validation_code(client, auth_headers, client_user):
    response = client.post("/bookings", headers=auth_headers(client_user), json={"start_at": "not-a-date"})

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "validation_error"
    assert isinstance(response.json()["detail"], list)


def test_unknown_token_subject_is_unauthorized(client):
    token = create_access_token(subject="9999")
    response = client.get("/bookings/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.headers.get("WWW-Authenticate") == "Bearer"


def test_health_endpoint_returns_ok_and_request_id(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert "x-request-id" in response.headers


def test_metrics_endpoint_exposes_engine_counters(client):
    client.get("/health")
    response = client.get("/metrics")

    assert response.status_code == 200
    assert "text/plain" in response.headers.get("content-type", "")
    body = response.text
    assert "http_requests_total" in body
    assert "http_request_duration_seconds" in body
    assert "booking_events_total" in body
    assert "availability_slots_created_total" in body
