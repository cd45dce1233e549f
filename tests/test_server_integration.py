import json

import pytest
from fastapi.testclient import TestClient

from core.chaos_engine import CHAOS_HEADER
from core.metrics_registry import MetricsRegistry
from core.routes import MAX_DELAY_SECONDS, MAX_REDIRECT_HOPS
from core.server_factory import create_server
from settings.chaos_config import ChaosConfig
from settings.config_loader import ServerSettings
from tests.utils.scripted_random import scripted_factory

HIT = 0.0


def make_client(chaos=None, metrics=None, rng_factory=None):
    settings = ServerSettings(chaos=chaos or ChaosConfig())
    kwargs = {"metrics": metrics}
    if rng_factory is not None:
        kwargs["rng_factory"] = rng_factory
    return TestClient(create_server(settings, **kwargs))


@pytest.fixture
def client():
    return make_client()


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.text == "Welcome to Rucho echo server!\n"
    assert CHAOS_HEADER not in response.headers


def test_get_echoes_request(client):
    response = client.get("/get?foo=bar", headers={"X-Test": "1"})
    assert response.status_code == 200
    data = response.json()
    assert data["method"] == "GET"
    assert data["path"] == "/get"
    assert data["args"] == {"foo": "bar"}
    assert data["headers"]["x-test"] == "1"
    assert data["timing"]["duration_ms"] >= 0


@pytest.mark.parametrize("method", ["post", "put", "patch"])
def test_body_methods_echo_json(client, method):
    response = getattr(client, method)(f"/{method}", json={"name": "rucho"})
    assert response.status_code == 200
    data = response.json()
    assert data["method"] == method.upper()
    assert data["json"] == {"name": "rucho"}


def test_delete(client):
    assert client.delete("/delete").json()["method"] == "DELETE"


def test_head_get(client):
    response = client.head("/get")
    assert response.status_code == 200
    assert response.content == b""


def test_options(client):
    response = client.options("/options")
    assert response.status_code == 204
    assert "GET" in response.headers["allow"]


def test_pretty_json(client):
    response = client.get("/get?pretty=true")
    assert response.text.startswith("{\n  ")


def test_anything_accepts_any_method_and_subpath(client):
    response = client.request("DELETE", "/anything/a/b?x=1")
    data = response.json()
    assert data["method"] == "DELETE"
    assert data["path"] == "/anything/a/b"
    assert data["args"] == {"x": "1"}


@pytest.mark.parametrize("code", [200, 204, 418, 503])
def test_status_returns_requested_code(client, code):
    assert client.get(f"/status/{code}").status_code == code


@pytest.mark.parametrize("code", ["abc", "-1", "199", "600", "1000"])
def test_status_rejects_invalid_code(client, code):
    response = client.get(f"/status/{code}")
    assert response.status_code == 400
    assert "Invalid status code" in response.json()["error"]


def test_delay_zero_reports_seconds(client):
    response = client.get("/delay/0")
    assert response.status_code == 200
    assert response.json()["delay_seconds"] == 0


@pytest.mark.parametrize("n", [str(MAX_DELAY_SECONDS + 1), "abc", "-5"])
def test_delay_rejects_out_of_range(client, n):
    assert client.get(f"/delay/{n}").status_code == 400


def test_redirect_chain(client):
    response = client.get("/redirect/3", follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"] == "/redirect/2"

    response = client.get("/redirect/1", follow_redirects=False)
    assert response.headers["location"] == "/get"

    response = client.get("/redirect/3")
    assert response.status_code == 200
    assert response.json()["path"] == "/get"


def test_redirect_zero_and_limit(client):
    assert client.get("/redirect/0").status_code == 200
    response = client.get(f"/redirect/{MAX_REDIRECT_HOPS + 1}")
    assert response.status_code == 400
    assert "exceeds maximum" in response.text


def test_cookies(client):
    response = client.get("/cookies", headers={"Cookie": "a=1; b=2"})
    assert response.json()["cookies"] == {"a": "1", "b": "2"}


def test_cookies_set_and_delete(client):
    response = client.get("/cookies/set?flavor=oat", follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"] == "/cookies"
    assert "flavor=oat; Path=/" in response.headers["set-cookie"]

    response = client.get("/cookies/delete?flavor", follow_redirects=False)
    assert "flavor=; Max-Age=0" in response.headers["set-cookie"]


def test_healthz_and_endpoints(client):
    assert client.get("/healthz").text == "OK"
    paths = {e["path"] for e in client.get("/endpoints").json()["endpoints"]}
    assert {"/get", "/status/:code", "/metrics"} <= paths


def test_metrics_endpoint_reports_prior_requests():
    metrics = MetricsRegistry()
    client = make_client(metrics=metrics)
    client.get("/get")
    client.get("/status/404")
    client.get("/status/500")
    client.get("/redirect/0")

    data = client.get("/metrics").json()
    assert data["all_time"] == {
        "total_requests": 4,
        "successes": 2,
        "failures": 2,
        "endpoint_hits": {"/get": 1, "/status/:code": 2, "/redirect/:n": 1},
    }
    assert data["last_hour"] == data["all_time"]
    # The /metrics request itself is recorded once it completes
    assert metrics.endpoint_hits()["/metrics"] == 1


def test_injected_failure_end_to_end():
    metrics = MetricsRegistry()
    chaos = ChaosConfig(modes=["failure"], failure_rate=1.0, failure_codes=[503])
    client = make_client(chaos, metrics)

    response = client.get("/get")

    assert response.status_code == 503
    assert response.headers[CHAOS_HEADER] == "failure"
    assert response.headers["content-type"] == "application/json"
    expected = {"error": "Chaos failure injected", "chaos": {"type": "failure", "status_code": 503}}
    assert response.content == json.dumps(expected, indent=2).encode()
    assert metrics.total_failures == 1


def test_truncate_corruption_end_to_end():
    chaos = ChaosConfig(modes=["corruption"], corruption_rate=1.0, corruption_type="truncate")
    client = make_client(chaos)

    clean = make_client().get("/")
    response = client.get("/")

    assert response.status_code == 200
    assert response.headers[CHAOS_HEADER] == "corruption"
    assert response.content == clean.content[:len(clean.content) // 2]
    assert response.headers["content-length"] == str(len(response.content))


def test_empty_corruption_keeps_status():
    chaos = ChaosConfig(modes=["corruption"], corruption_rate=1.0, corruption_type="empty")
    response = make_client(chaos).get("/get")
    assert response.status_code == 200
    assert response.content == b""
    assert response.headers[CHAOS_HEADER] == "corruption"


def test_garbage_corruption_produces_printable_bytes():
    chaos = ChaosConfig(modes=["corruption"], corruption_rate=1.0, corruption_type="garbage")
    response = make_client(chaos).get("/endpoints")
    assert response.status_code == 200
    assert response.content
    assert all(0x21 <= b <= 0x7E for b in response.content)


def test_delay_is_reflected_in_timing_field():
    chaos = ChaosConfig(modes=["delay"], delay_rate=1.0, delay_ms=50)
    response = make_client(chaos).get("/get")
    assert response.headers[CHAOS_HEADER] == "delay"
    assert response.json()["timing"]["duration_ms"] >= 45


def test_no_chaos_header_when_inform_disabled():
    chaos = ChaosConfig(modes=["failure"], failure_rate=1.0, failure_codes=[500], inform_header=False)
    response = make_client(chaos).get("/get")
    assert response.status_code == 500
    assert CHAOS_HEADER not in response.headers


def test_scripted_rolls_reach_the_pipeline():
    chaos = ChaosConfig(modes=["delay", "corruption"], delay_rate=0.5, delay_ms=1,
                        corruption_rate=0.5, corruption_type="empty")
    client = make_client(chaos, rng_factory=scripted_factory(0.99, HIT))
    response = client.get("/get")
    assert response.headers[CHAOS_HEADER] == "corruption"
    assert response.content == b""
