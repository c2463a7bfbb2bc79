"""HTTP surface: page payloads, stale fallback, settings and investments CRUD."""

from concurrent.futures import ThreadPoolExecutor

import pytest
from fastapi.testclient import TestClient

import api.main as api_main
from core.data import DataSourceError
from core.kpis import FinancialSettings

MARCH = {"start": "2024-03-01", "end": "2024-03-05"}


class FakeWriter:
    """Client double for the write endpoints; records calls."""

    def __init__(self, investments=None, fail=None):
        self.investments = investments or []
        self.fail = fail
        self.calls = []

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self):
        self.calls.append(("close",))

    def _maybe_fail(self):
        if self.fail is not None:
            raise self.fail

    def fetch_financial_settings(self):
        self._maybe_fail()
        return FinancialSettings(average_ticket=200.0, id=1)

    def save_financial_settings(self, settings):
        self._maybe_fail()
        self.calls.append(("save", settings.average_ticket))
        return FinancialSettings(average_ticket=settings.average_ticket, id=1)

    def fetch_investments(self):
        self._maybe_fail()
        return list(self.investments)

    def add_investment(self, entry):
        self._maybe_fail()
        self.calls.append(("add", entry))

    def update_investment(self, investment_id, entry):
        self._maybe_fail()
        self.calls.append(("update", investment_id, entry))

    def delete_investment(self, investment_id):
        self._maybe_fail()
        self.calls.append(("delete", investment_id))


@pytest.fixture
def client():
    api_main._LAST_GOOD.clear()
    with TestClient(api_main.app) as c:
        yield c
    api_main._LAST_GOOD.clear()


def use_writer(monkeypatch, writer):
    monkeypatch.setattr(api_main, "get_client", lambda *a, **k: writer)
    return writer


class TestMeta:
    def test_presets(self, client):
        assert client.get("/meta/presets").json() == {"presets": ["7 Dias", "15 Dias", "30 Dias"], "default": "30 Dias"}

    def test_fields(self, client):
        fields = {f["name"]: f for f in client.get("/meta/fields").json()["fields"]}
        assert fields["documentacao"]["carry_forward"] is True
        assert fields["leads"]["aliases"][0] == "total_leads_dia"


class TestPages:
    @pytest.mark.parametrize("page", ["overview", "finance", "xray", "debug"])
    def test_demo_payload(self, client, page):
        resp = client.post(f"/{page}", json=MARCH)
        assert resp.status_code == 200
        body = resp.json()
        assert body["stale"] is False
        assert body["range"]["start"] == "2024-03-01"
        assert body["range"]["end"] == "2024-03-05"

    def test_default_range_without_body(self, client):
        body = client.post("/overview").json()
        assert body["range"]["label"] == "30 Dias"

    def test_invalid_body(self, client):
        assert client.post("/overview", json={"start": "amanhã"}).status_code == 422

    def test_failed_refresh_serves_last_good(self, client, monkeypatch):
        first = client.post("/overview", json=MARCH).json()

        def down(*args, **kwargs):
            raise DataSourceError("Erro na tabela 'dashboard_diario': timeout")

        monkeypatch.setattr(api_main, "load_dashboard_data", down)
        resp = client.post("/overview", json=MARCH)
        assert resp.status_code == 200
        body = resp.json()
        assert body["stale"] is True
        assert "timeout" in body["error"]
        assert body["summary"] == first["summary"]

    def test_failed_first_load_is_bad_gateway(self, client, monkeypatch):
        def down(*args, **kwargs):
            raise DataSourceError("unreachable")

        monkeypatch.setattr(api_main, "load_dashboard_data", down)
        resp = client.post("/finance", json=MARCH)
        assert resp.status_code == 502
        assert resp.json() == {"error": "unreachable", "type": "DataSourceError"}

    def test_unexpected_error_is_500(self, client, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("bug")

        monkeypatch.setattr(api_main, "prepare_context", broken)
        resp = client.post("/xray", json=MARCH)
        assert resp.status_code == 500
        assert resp.json()["type"] == "RuntimeError"


class TestExport:
    def test_overview_csv(self, client):
        resp = client.post("/export/overview", json=MARCH)
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert "overview_20240301_20240305.csv" in resp.headers["content-disposition"]
        lines = resp.text.strip().splitlines()
        assert lines[0].startswith("date,")
        assert len(lines) == 6

    def test_source_down(self, client, monkeypatch):
        def down(*args, **kwargs):
            raise DataSourceError("unreachable")

        monkeypatch.setattr(api_main, "load_dashboard_data", down)
        assert client.post("/export/xray", json=MARCH).status_code == 502


class TestSettings:
    def test_read_without_source(self, client):
        assert client.get("/settings").json() == {"average_ticket": 0.0, "id": None, "configured": False}

    def test_write_without_source_conflicts(self, client):
        resp = client.put("/settings", json={"average_ticket": 100})
        assert resp.status_code == 409

    def test_read_and_write(self, client, monkeypatch):
        writer = use_writer(monkeypatch, FakeWriter())
        assert client.get("/settings").json() == {"average_ticket": 200.0, "id": 1, "configured": True}
        resp = client.put("/settings", json={"average_ticket": 350})
        assert resp.json() == {"average_ticket": 350.0, "id": 1}
        assert ("save", 350.0) in writer.calls

    def test_negative_ticket_rejected(self, client):
        assert client.put("/settings", json={"average_ticket": -1}).status_code == 422


class TestInvestments:
    def test_list_splits_rejected(self, client, monkeypatch, march_investments):
        use_writer(monkeypatch, FakeWriter(investments=march_investments))
        body = client.get("/investments").json()
        assert [i["id"] for i in body["investments"]] == [10, 11]
        assert body["investments"][1]["span_days"] == 10
        assert [r["id"] for r in body["rejected"]] == [12]

    def test_create(self, client, monkeypatch):
        writer = use_writer(monkeypatch, FakeWriter())
        resp = client.post("/investments", json={"start_date": "2024-03-01", "end_date": "2024-03-03", "amount": 300, "platform": "Meta"})
        assert resp.status_code == 201
        assert resp.json()["amount"] == 300.0
        assert writer.calls[0][0] == "add"

    def test_inverted_span_is_unprocessable(self, client, monkeypatch):
        writer = use_writer(monkeypatch, FakeWriter())
        resp = client.post("/investments", json={"start_date": "2024-03-09", "end_date": "2024-03-01", "amount": 50})
        assert resp.status_code == 422
        assert resp.json()["type"] == "InvalidCostEntry"
        assert writer.calls == []

    def test_edit(self, client, monkeypatch):
        writer = use_writer(monkeypatch, FakeWriter())
        resp = client.patch("/investments/7", json={"start_date": "2024-03-01", "end_date": "2024-03-01", "amount": 10})
        assert resp.json()["id"] == 7
        assert writer.calls[0][:2] == ("update", 7)

    def test_delete_failure_surfaces(self, client, monkeypatch):
        use_writer(monkeypatch, FakeWriter(fail=DataSourceError("Falha na exclusão", status_code=403)))
        resp = client.delete("/investments/7")
        assert resp.status_code == 403
        assert resp.json()["error"] == "Falha na exclusão"

    def test_delete(self, client, monkeypatch):
        writer = use_writer(monkeypatch, FakeWriter())
        assert client.delete("/investments/7").json() == {"deleted": 7}
        assert ("delete", 7) in writer.calls

    def test_writes_need_a_source(self, client):
        assert client.delete("/investments/7").status_code == 409

    @pytest.mark.parametrize(
        "method,path,body",
        [
            ("put", "/settings", {"average_ticket": 10}),
            ("post", "/investments", {"start_date": "2024-03-01", "end_date": "2024-03-02", "amount": 1}),
            ("patch", "/investments/7", {"start_date": "2024-03-01", "end_date": "2024-03-02", "amount": 1}),
            ("delete", "/investments/7", None),
        ],
    )
    def test_unexpected_write_error_is_json_500(self, client, monkeypatch, method, path, body):
        use_writer(monkeypatch, FakeWriter(fail=RuntimeError("bug")))
        kwargs = {"json": body} if body is not None else {}
        resp = client.request(method.upper(), path, **kwargs)
        assert resp.status_code == 500
        assert resp.json() == {"error": "bug", "type": "RuntimeError"}


def test_last_good_cache_survives_concurrent_writers():
    api_main._LAST_GOOD.clear()
    keys = [("overview", str(i % 80), "x") for i in range(2000)]
    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda k: api_main._remember(k, {"k": k}), keys))
    assert len(api_main._LAST_GOOD) <= api_main._LAST_GOOD_MAX
    assert api_main._recall(keys[-1]) == {"k": keys[-1]}
    api_main._LAST_GOOD.clear()
