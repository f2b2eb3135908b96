"""HTTP tests for /api/v1/rates."""

BASE = "/api/v1/rates"


def test_get_returns_defaults(client, headers, tutor_id):
    response = client.get(BASE, headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["tutor_id"] == tutor_id
    assert body["is_default"] is True
    assert body["default_rate"] == 45.0
    assert body["default_rate_display"] == "$45/hr"


def test_put_then_quote(client, headers):
    saved = client.put(
        BASE,
        json={
            "default_rate": 50,
            "subject_rates": {
                "math": {"rate": 35, "base_duration": 30},
                "piano": {"rate": 30, "base_duration": 30, "duration_prices": {"45": 40}},
            },
        },
        headers=headers,
    )
    assert saved.status_code == 200
    assert saved.json()["subject_rates"]["math"]["rate_display"] == "$35/30min"

    quote = client.post(f"{BASE}/quote", json={"subject": "math", "duration_min": 60}, headers=headers)
    assert quote.status_code == 200
    assert quote.json()["amount"] == 70.0

    explicit = client.post(f"{BASE}/quote", json={"subject": "piano", "duration_min": 45}, headers=headers)
    assert explicit.json()["amount"] == 40.0


def test_unknown_subject_is_rejected(client, headers):
    response = client.put(
        BASE, json={"subject_rates": {"chess": {"rate": 20, "base_duration": 30}}}, headers=headers
    )

    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"


def test_non_positive_rate_is_rejected(client, headers):
    response = client.put(BASE, json={"default_rate": 0}, headers=headers)
    assert response.status_code == 422
