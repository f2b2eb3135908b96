"""Prometheus scrape endpoint and request path normalization."""

from tutordesk.middleware.prometheus_middleware import normalize_path


def test_normalize_path_collapses_ids():
    assert normalize_path("/api/v1/lessons/01HZX3QK9V6M2N8P4R7T1W5Y0A/cancel") == "/api/v1/lessons/:id/cancel"
    assert normalize_path("/api/v1/billing/payments/42") == "/api/v1/billing/payments/:id"
    assert normalize_path("/api/v1/billing/summary") == "/api/v1/billing/summary"


def test_metrics_endpoint_reports_requests(client, headers):
    client.get("/api/v1/rates", headers=headers)

    response = client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    body = response.text
    assert 'endpoint="/api/v1/rates"' in body
    assert "tutordesk_service_operations_total" in body
