from services import metrics


def test_counters_render_as_prometheus_text():
    metrics.increment_initiation("live", "ok")
    metrics.increment_initiation("live", "ok")
    metrics.increment_callback("applied")
    metrics.increment_expiration(3)

    body = metrics.render_prometheus()

    assert "# TYPE payment_initiations_total counter" in body
    assert 'payment_initiations_total{mode="live",result="ok"} 2' in body
    assert 'payment_callbacks_total{outcome="applied"} 1' in body
    assert "payment_expirations_total 3" in body


def test_empty_registry_renders_empty():
    assert metrics.render_prometheus() == ""


def test_metrics_endpoint(live):
    live.client.get("/health")
    r = live.client.get("/metrics")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/plain")
    assert "http_requests_total" in r.text


def test_webhook_outcomes_are_counted(live):
    live.client.post("/v1/webhooks/mpesa/callback", json={"nope": True})
    assert metrics.get_counter("payment_callbacks_total", {"outcome": "invalid"}) == 1
