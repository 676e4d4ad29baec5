from datetime import datetime, timedelta

from conftest import NOW, make_reading

T0 = datetime(2024, 6, 1, 10, 0, 0)


def test_post_current_inserts_first_reading(client, store, provider):
    store.add_location("Davos")
    provider.current["Davos"] = make_reading(T0)

    response = client.post("/v1/weather/current", params={"name": "Davos"})

    assert response.status_code == 200
    data = response.json()
    assert data["location"] == "Davos"
    assert data["action"] == "inserted"
    assert data["inserted"] == 1
    assert data["reading"]["timestamp"] == "2024-06-01T10:00:00"
    assert "X-Request-ID" in response.headers


def test_post_current_backfills_after_long_gap(client, store, provider):
    davos = store.add_location("Davos")
    store.add_readings(davos, [make_reading(T0)])
    provider.current["Davos"] = make_reading(T0 + timedelta(hours=1))
    provider.year_series[("Davos", 2024)] = [make_reading(T0 + timedelta(minutes=m)) for m in (20, 40, 60)]

    data = client.post("/v1/weather/current", params={"name": "Davos"}).json()

    assert data["action"] == "backfilled"
    assert data["inserted"] == 3


def test_get_current_unknown_location_is_404(client):
    response = client.get("/v1/weather/current", params={"name": "Atlantis"})
    assert response.status_code == 404
    assert response.json()["error"] == "NOT_FOUND"


def test_provider_unavailable_is_503_and_store_untouched(client, store, provider):
    store.add_location("Davos")
    provider.unavailable = True

    response = client.get("/v1/weather/current", params={"name": "Davos"})

    assert response.status_code == 503
    assert response.json()["error"] == "SERVICE_UNAVAILABLE"
    assert store.all_readings() == []


def test_store_unavailable_is_500(client, store):
    store.unavailable = True
    response = client.get("/v1/weather/latest", params={"name": "Davos"})
    assert response.status_code == 500
    assert response.json()["error"] == "STORE_UNAVAILABLE"


def test_latest_does_not_call_provider(client, store, provider):
    davos = store.add_location("Davos")
    store.add_readings(davos, [make_reading(T0), make_reading(T0 + timedelta(minutes=20))])

    response = client.get("/v1/weather/latest", params={"name": "Davos"})

    assert response.status_code == 200
    assert response.json()["timestamp"] == "2024-06-01T10:20:00"
    assert provider.calls == []


def test_year_coverage_for_one_and_all_locations(client, store, provider):
    store.add_location("Davos")
    store.add_location("Arosa")
    provider.year_series[("Davos", 2024)] = [make_reading(T0)]

    one = client.post("/v1/weather/year/2024", params={"name": "Davos"}).json()
    everything = client.post("/v1/weather/year/2024").json()

    assert one == {"year": 2024, "inserted": {"Davos": 1}}
    assert everything == {"year": 2024, "inserted": {"Arosa": 0, "Davos": 0}}
    assert client.post("/v1/weather/year/2024", params={"name": "Atlantis"}).status_code == 404


def test_series_endpoints(client, store):
    davos = store.add_location("Davos")
    store.add_readings(davos, [
        make_reading(datetime(2024, 1, 10, 8, 0)),
        make_reading(datetime(2024, 2, 3, 8, 0)),
        make_reading(NOW - timedelta(days=1)),
    ])

    year = client.get("/v1/weather/year/2024", params={"name": "Davos"}).json()
    assert year["count"] == 3
    assert year["window"] == "year:2024"

    month = client.get("/v1/weather/month/2", params={"name": "Davos"}).json()
    assert [r["timestamp"] for r in month["readings"]] == ["2024-02-03T08:00:00"]

    week = client.get("/v1/weather/week/2", params={"name": "Davos"}).json()
    assert week["count"] == 1

    past = client.get("/v1/weather/past", params={"days": 7}).json()
    assert past["count"] == 1
    assert past["location"] is None

    span = client.get(
        "/v1/weather/span",
        params={"name": "Davos", "start": "2024-01-01T00:00:00", "end": "2024-02-03T08:00:00"},
    ).json()
    assert span["count"] == 2


def test_invalid_windows_and_unknown_locations_are_empty(client, store):
    store.add_location("Davos")
    for path, params in [
        ("/v1/weather/past", {"days": 0}),
        ("/v1/weather/past", {"days": 400}),
        ("/v1/weather/month/13", {"name": "Davos"}),
        ("/v1/weather/week/54", {"name": "Davos"}),
        ("/v1/weather/year/2024", {"name": "Atlantis"}),
    ]:
        response = client.get(path, params=params)
        assert response.status_code == 200, path
        assert response.json()["readings"] == []


def test_stats(client, store):
    davos = store.add_location("Davos")
    store.add_readings(davos, [
        make_reading(T0, temperature=10.0),
        make_reading(T0 + timedelta(minutes=20), temperature=13.0),
    ])
    params = {"name": "Davos", "start": "2024-06-01T00:00:00", "end": "2024-06-02T00:00:00"}

    data = client.get("/v1/weather/stats", params=params).json()

    assert data["count"] == 2
    assert data["temperature"] == {"mean": 11.5, "minimum": 10.0, "maximum": 13.0}

    empty = client.get("/v1/weather/stats", params={**params, "start": "2023-01-01T00:00:00", "end": "2023-01-02T00:00:00"}).json()
    assert empty["count"] == 0
    assert empty["temperature"] is None

    assert client.get("/v1/weather/stats", params={**params, "name": "Atlantis"}).status_code == 404


def test_missing_name_is_validation_error(client):
    response = client.get("/v1/weather/month/2")
    assert response.status_code == 422
    assert response.json()["error"] == "VALIDATION_ERROR"
