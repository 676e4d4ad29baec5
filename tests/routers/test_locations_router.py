from conftest import make_reading


def test_list_and_get_locations(client, store):
    store.add_location("Davos")
    store.add_location("Arosa", zip_code=7050)

    listing = client.get("/v1/locations").json()
    assert listing["count"] == 2
    assert [loc["name"] for loc in listing["locations"]] == ["Arosa", "Davos"]

    arosa = client.get("/v1/locations/Arosa").json()
    assert arosa["zip"] == 7050
    assert arosa["country"] == "CH"

    assert client.get("/v1/locations/davos").status_code == 404


def test_register_locations(client, store, provider):
    store.add_location("Davos")
    provider.add_location("Davos")
    provider.add_location("Zermatt", zip_code=3920)

    data = client.post("/v1/locations").json()

    assert data["count"] == 1
    assert data["registered"][0]["name"] == "Zermatt"
    assert data["registered"][0]["id"] is not None


def test_init_runs_once(client, store, provider):
    from datetime import datetime

    provider.add_location("Davos")
    provider.year_series[("Davos", 2024)] = [make_reading(datetime(2024, 5, 1, 12, 0))]

    first = client.post("/v1/init")
    second = client.post("/v1/init")

    assert first.status_code == 200
    assert first.json()["status"] == "initialized"
    assert second.status_code == 409
    assert len(store.all_readings()) == 1


def test_health(client, store):
    assert client.get("/health").json()["status"] == "healthy"

    detailed = client.get("/health/detailed")
    assert detailed.status_code == 200
    assert detailed.json()["checks"]["record_store"]["status"] == "healthy"

    store.unavailable = True
    assert client.get("/health/detailed").status_code == 503


def test_root_lists_endpoints(client):
    data = client.get("/").json()
    assert data["name"] == "WeatherHist API"
    assert "/v1/locations" in data["v1_endpoints"]["locations"]
