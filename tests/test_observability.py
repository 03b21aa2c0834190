from fastapi import FastAPI
from fastapi.testclient import TestClient

from mpupload.infra.observability.metrics import STORE_CALLS, metrics_app, observe_store_call
from mpupload.infra.observability.middleware import MetricsMiddleware


def build_app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(MetricsMiddleware)

    @app.get("/api/v1/objects/{oid}")
    def get_object(oid: str):
        return {"oid": oid}

    @app.get("/health")
    def health():
        return {"status": "ok"}

    app.mount("/metrics", metrics_app)
    return app


def test_metrics_route_template_label():
    app = build_app()
    client = TestClient(app)
    resp = client.get("/api/v1/objects/abc123")
    assert resp.status_code == 200

    m = client.get("/metrics")
    assert m.status_code == 200
    metrics_text = m.text
    assert "http_requests_total" in metrics_text
    assert 'route="/api/v1/objects/{oid}"' in metrics_text
    assert "http_request_duration_seconds" in metrics_text


def test_request_id_propagation():
    app = build_app()
    client = TestClient(app)

    r1 = client.get("/health")
    rid1 = r1.headers.get("X-Request-Id")
    assert rid1 is not None and len(rid1) > 0

    rid = "req-abc-123"
    r2 = client.get("/health", headers={"X-Request-Id": rid})
    assert r2.headers.get("X-Request-Id") == rid


def test_store_call_outcomes_are_counted():
    ok_before = STORE_CALLS.labels("test_op", "ok")._value.get()
    error_before = STORE_CALLS.labels("test_op", "error")._value.get()

    with observe_store_call("test_op"):
        pass
    try:
        with observe_store_call("test_op"):
            raise RuntimeError("boom")
    except RuntimeError:
        pass

    assert STORE_CALLS.labels("test_op", "ok")._value.get() == ok_before + 1
    assert STORE_CALLS.labels("test_op", "error")._value.get() == error_before + 1
