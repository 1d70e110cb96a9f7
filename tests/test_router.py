"""Tests for the /api/catalog routes and the recent-search store."""
import json
import random
from concurrent.futures import ThreadPoolExecutor

import httpx
import pytest
from fastapi.testclient import TestClient

from sflibrary.catalog.router import get_gateway, get_recent_store, get_rng
from sflibrary.catalog.store import CatalogGateway
from sflibrary.main import app
from sflibrary.storage import RECENT_STORAGE_KEY, RecentSearchStore, push_recent

from conftest import FakeGateway, book_row, contributor, make_book, make_settings


@pytest.fixture
def shelf(asimov_books):
    return asimov_books + [
        make_book(4, "The Stars My Destination", [contributor("Alfred Bester", order=1)],
                  "Galaxy", sort_title="Stars My Destination"),
    ]


@pytest.fixture
def wiring(shelf, tmp_path):
    state = {
        "gateway": FakeGateway(search={"asimov": shelf[:3]}, shelf=shelf),
        "store": RecentSearchStore(tmp_path / "recent.json"),
    }
    app.dependency_overrides[get_gateway] = lambda: state["gateway"]
    app.dependency_overrides[get_recent_store] = lambda: state["store"]
    app.dependency_overrides[get_rng] = lambda: random.Random(7)
    yield state
    app.dependency_overrides.clear()


@pytest.fixture
def client(wiring):
    return TestClient(app)


def test_health(client):
    assert client.get("/").json()["status"] == "ok"


def test_books_without_query_returns_shelf_and_discovery(client, wiring):
    body = client.get("/api/catalog/books").json()

    assert body["query"] == ""
    assert body["total"] == 4
    assert len(body["random_picks"]) == 4
    assert sorted(b["id"] for b in body["random_picks"]) == [1, 2, 3, 4]
    assert body["groups"]["author"][0] == {"name": "Isaac Asimov", "count": 3}
    assert wiring["gateway"].calls == [("all", 600)]


def test_books_search_sorted(client, wiring):
    body = client.get("/api/catalog/books", params={"q": " asimov "}).json()

    assert body["query"] == "asimov"
    assert [b["title"] for b in body["items"]] == ["Foundation", "I, Robot", "The Caves of Steel"]
    assert body["random_picks"] == []
    assert body["groups"] is None
    assert wiring["gateway"].calls == [("search", "asimov", ("title", "series", "notes"), 250)]


def test_books_search_is_repeatable(client):
    first = client.get("/api/catalog/books", params={"q": "asimov"}).json()
    second = client.get("/api/catalog/books", params={"q": "asimov"}).json()
    assert first == second


def test_suggestions_grouped_in_facet_order(client, wiring):
    body = client.get("/api/catalog/suggestions", params={"q": "asimov"}).json()

    kinds = [s["kind"] for s in body["items"]]
    assert kinds[0] == "author"
    assert body["items"][0]["display"] == "Asimov, Isaac"
    assert body["items"][0]["value"] == "Isaac Asimov"
    assert kinds.index("title") < kinds.index("series") < kinds.index("publisher")
    assert wiring["gateway"].calls == [("search", "asimov", ("title", "series"), 30)]


def test_blank_suggestion_query_skips_gateway(client, wiring):
    assert client.get("/api/catalog/suggestions", params={"q": "  "}).json()["items"] == []
    assert wiring["gateway"].calls == []


def test_gateway_error_is_reported(client, wiring):
    wiring["gateway"] = FakeGateway(error="relation \"books\" does not exist")

    response = client.get("/api/catalog/books", params={"q": "dune"})

    assert response.status_code == 500
    assert response.json() == {
        "error": "Catalog request failed",
        "details": "relation \"books\" does not exist",
    }


def test_explore_by_publisher(client):
    body = client.get("/api/catalog/explore", params={"mode": "publisher"}).json()
    assert body["mode"] == "publisher"
    assert body["items"][0] == {"name": "Gnome Press", "count": 2}


def test_explore_rejects_unknown_mode(client):
    assert client.get("/api/catalog/explore", params={"mode": "tier"}).status_code == 422


def test_recent_round_trip(client, wiring):
    assert client.get("/api/catalog/recent").json() == {"items": []}
    for term in ["dune", "foundation", " dune "]:
        client.post("/api/catalog/recent", json={"term": term})

    assert client.get("/api/catalog/recent").json() == {"items": ["dune", "foundation"]}
    saved = json.loads((wiring["store"].path).read_text(encoding="utf-8"))
    assert saved == {RECENT_STORAGE_KEY: ["dune", "foundation"]}


def test_recent_rejects_blank_term(client):
    response = client.post("/api/catalog/recent", json={"term": "   "})
    assert response.status_code == 400
    assert response.json() == {"error": "Missing search term"}


def test_push_recent_bounds():
    items = ["a", "b", "c", "d", "e", "f"]
    assert push_recent(items, "z") == ["z", "a", "b", "c", "d", "e"]
    assert push_recent(items, "d") == ["d", "a", "b", "c", "e", "f"]
    assert push_recent(items, "  ") == items


def test_store_ignores_malformed_file(tmp_path):
    path = tmp_path / "recent.json"
    path.write_text("{not json", encoding="utf-8")
    assert RecentSearchStore(path).load() == []

    path.write_text(json.dumps({RECENT_STORAGE_KEY: ["ok", "", 3, None]}), encoding="utf-8")
    assert RecentSearchStore(path).load() == ["ok"]


def test_invalid_row_is_reported_as_catalog_error(client, wiring):
    def handler(request):
        return httpx.Response(200, json=[book_row(1, None)])

    wiring["gateway"] = CatalogGateway(
        make_settings(),
        client=httpx.AsyncClient(
            transport=httpx.MockTransport(handler),
            base_url="https://catalog.example.test/rest/v1",
        ),
    )

    response = client.get("/api/catalog/books")

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Catalog request failed"
    assert body["details"].startswith("Malformed row from catalog table books")


def test_concurrent_remember_keeps_every_term(tmp_path):
    store = RecentSearchStore(tmp_path / "recent.json")
    terms = ["dune", "hyperion", "ubik", "solaris", "neuromancer", "foundation"]

    with ThreadPoolExecutor(max_workers=6) as pool:
        list(pool.map(store.remember, terms))

    assert sorted(store.load()) == sorted(terms)
    saved = json.loads(store.path.read_text(encoding="utf-8"))[RECENT_STORAGE_KEY]
    assert sorted(saved) == sorted(terms)
