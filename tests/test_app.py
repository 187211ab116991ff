from datetime import datetime, timedelta, timezone
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from datastore.bucket_engine import BucketEngine, build_default_engine
from models.records import SensorValues
from services.sensor_store import SensorStore, build_default_store
from settings import get_settings


@pytest.fixture
def seeded_store(tmp_path, make_clock) -> Iterator[SensorStore]:
    clock = make_clock(datetime(2024, 1, 2, 10, 3, tzinfo=timezone.utc))
    engine = BucketEngine(tmp_path / "api.db")
    store = SensorStore(engine, timedelta(minutes=10), clock=clock)
    store.provision_sensor("cellar")
    store.provision_sensor("attic")
    for minute, temperature in ((0, 20.0), (10, 20.5), (20, 21.0)):
        clock.set(datetime(2024, 1, 2, 9, minute, tzinfo=timezone.utc))
        store.store_values("cellar", SensorValues(temperature=temperature, humidity=55.0))
    clock.set(datetime(2024, 1, 2, 9, 25, tzinfo=timezone.utc))
    yield store
    engine.close()


@pytest.fixture
def api_client(seeded_store: SensorStore, monkeypatch) -> Iterator[TestClient]:
    def build_test_store() -> SensorStore:
        return seeded_store

    build_test_store.cache_clear = lambda: None  # type: ignore[attr-defined]

    monkeypatch.setattr("app.main.build_default_store", build_test_store)
    monkeypatch.setattr("app.api.build_default_store", build_test_store)

    app = create_app()
    with TestClient(app) as client:
        yield client


def test_lifespan_closes_engine_and_clears_cache(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("SENSORSTORE_DB_PATH", str(tmp_path / "lifespan.db"))
    for cache in (get_settings, build_default_engine, build_default_store):
        cache.cache_clear()

    app = create_app()
    try:
        with TestClient(app):
            store_during = build_default_store()
            assert not store_during.engine.closed

        assert store_during.engine.closed
        store_after = build_default_store()
        assert store_after is not store_during
        assert not store_after.engine.closed
        store_after.engine.close()
    finally:
        build_default_store.cache_clear()
        build_default_engine.cache_clear()
        get_settings.cache_clear()


def test_health(api_client: TestClient) -> None:
    response = api_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_list_sensors(api_client: TestClient) -> None:
    response = api_client.get("/sensors")

    assert response.status_code == 200
    assert response.json() == {"sensors": ["attic", "cellar"]}


def test_last_value(api_client: TestClient) -> None:
    response = api_client.get("/sensors/cellar/last")

    assert response.status_code == 200
    payload = response.json()
    assert payload["timestamp"].startswith("2024-01-02T09:20:00")
    assert payload["values"] == {"Temperature": 21.0, "Humidity": 55.0}


def test_last_value_for_empty_sensor_is_not_found(api_client: TestClient) -> None:
    response = api_client.get("/sensors/attic/last")

    assert response.status_code == 404
    assert "no readings" in response.json()["detail"]


def test_unknown_sensor_is_not_found(api_client: TestClient) -> None:
    assert api_client.get("/sensors/ghost/last").status_code == 404
    assert api_client.get("/sensors/ghost/values", params={"duration": "60"}).status_code == 404


def test_values_window_in_seconds(api_client: TestClient) -> None:
    response = api_client.get("/sensors/cellar/values", params={"duration": "900"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["sensor_id"] == "cellar"
    assert payload["count"] == 2
    assert payload["start"].startswith("2024-01-02T09:10:00")
    assert payload["end"].startswith("2024-01-02T09:20:00")
    assert [reading["values"]["Temperature"] for reading in payload["readings"]] == [20.5, 21.0]


def test_values_window_accepts_iso_duration(api_client: TestClient) -> None:
    response = api_client.get("/sensors/cellar/values", params={"duration": "PT1H"})

    assert response.status_code == 200
    assert response.json()["count"] == 3


def test_values_rejects_invalid_duration(api_client: TestClient) -> None:
    response = api_client.get("/sensors/cellar/values", params={"duration": "soon"})

    assert response.status_code == 400
    assert "Invalid duration" in response.json()["detail"]


def test_corrupt_record_is_reported_as_server_error(
    api_client: TestClient, seeded_store: SensorStore
) -> None:
    with seeded_store.engine.update() as tx:
        tx.bucket(b"sensors").bucket(b"cellar").put(  # type: ignore[union-attr]
            b"2024-01-02T09:10:00Z", b"not json"
        )

    response = api_client.get("/sensors/cellar/values", params={"duration": "3600"})

    assert response.status_code == 500
    assert "Malformed" in response.json()["detail"]


@pytest.mark.parametrize("duration", ["3.5e10", "1e11"])
def test_values_window_reaching_far_back(api_client: TestClient, duration: str) -> None:
    response = api_client.get("/sensors/cellar/values", params={"duration": duration})

    assert response.status_code == 200
    assert response.json()["count"] == 3
