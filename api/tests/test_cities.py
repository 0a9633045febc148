from __future__ import annotations

import pytest

from cities_collective.errors import NotFoundError, UnauthorizedError
from cities_collective.services import cities as city_service
from cities_collective.services import social


@pytest.fixture
def owner(make_user):
    return make_user("owner", name="Owner", is_content_creator=True)


def test_create_city_endpoint(client, owner, auth_headers):
    response = client.post(
        "/api/cities",
        json={"cityName": "Fresh Start", "population": 1200, "modsEnabled": ["zoning"]},
        headers=auth_headers(owner),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["cityName"] == "Fresh Start"
    assert body["authorUsername"] == "owner"
    assert body["modsEnabled"] == ["zoning"]
    assert body["images"] == []


def test_city_detail_counts(db, owner, make_user, make_city):
    city = make_city(owner, city_name="Counted")
    fan = make_user("fan")
    social.toggle_like(db, fan.id, city.id)
    social.toggle_favorite(db, fan.id, city.id)
    social.add_comment(db, fan.id, city.id, "Wonderful coastline")

    detail = city_service.get_city_detail(db, city.id)

    assert (detail.like_count, detail.favorite_count, detail.comment_count) == (1, 1, 1)
    assert detail.author_is_content_creator is True


def test_missing_city(client):
    response = client.get("/api/cities/9999")

    assert response.status_code == 404
    assert response.json() == {"error": "City not found"}


def test_view_and_download_counters(client, owner, make_city, auth_headers):
    city = make_city(owner)

    assert client.post(f"/api/cities/{city.id}/view").json() == {"count": 1}
    assert client.post(f"/api/cities/{city.id}/view").json() == {"count": 2}
    assert client.post(f"/api/cities/{city.id}/download-track").json() == {"count": 1}

    client.put(f"/api/cities/{city.id}/downloadable", json={"downloadable": False}, headers=auth_headers(owner))
    assert client.post(f"/api/cities/{city.id}/download-track").status_code == 404


def test_owner_edits(client, owner, make_user, make_city, auth_headers):
    city = make_city(owner, city_name="Old Name")
    headers = auth_headers(owner)

    assert client.put(f"/api/cities/{city.id}/name", json={"cityName": "New Name"}, headers=headers).status_code == 200
    assert client.put(
        f"/api/cities/{city.id}/description", json={"description": "  Coastal town  "}, headers=headers
    ).status_code == 200

    detail = client.get(f"/api/cities/{city.id}").json()
    assert (detail["cityName"], detail["description"]) == ("New Name", "Coastal town")

    stranger = auth_headers(make_user("stranger"))
    response = client.put(f"/api/cities/{city.id}/name", json={"cityName": "Mine"}, headers=stranger)
    assert response.status_code == 401


def test_delete_own_city_removes_related_rows(db, owner, make_user, make_city):
    city = make_city(owner)
    fan = make_user("fan")
    social.toggle_like(db, fan.id, city.id)
    comment, _ = social.add_comment(db, fan.id, city.id, "Sad to see it go")
    social.toggle_comment_like(db, owner.id, comment.id)

    with pytest.raises(UnauthorizedError):
        city_service.delete_city(db, city.id, fan.id)

    city_service.delete_city(db, city.id, owner.id)

    with pytest.raises(NotFoundError):
        city_service.require_city(db, city.id)
    assert social.get_city_likes(db, city.id) == 0
    assert social.get_city_comment_count(db, city.id) == 0


def test_listings(client, db, owner, make_user, make_city):
    regular = make_user("regular")
    rich = make_city(regular, city_name="Rich", money=10_000_000)
    make_city(owner, city_name="Creator City", money=5)
    liked = make_city(regular, city_name="Liked", money=None)
    social.toggle_like(db, owner.id, liked.id)

    assert [c["cityName"] for c in client.get("/api/cities/recent").json()] == ["Liked", "Creator City", "Rich"]
    assert client.get("/api/cities/top").json()[0]["id"] == rich.id
    assert client.get("/api/cities/top", params={"by": "likes"}).json()[0]["id"] == liked.id
    assert [c["cityName"] for c in client.get("/api/cities/featured").json()] == ["Creator City"]


def test_community_stats(client, db, owner, make_city):
    city = make_city(owner)
    client.post(f"/api/cities/{city.id}/view")

    stats = client.get("/api/cities/stats").json()

    assert stats["totalCities"] == 1
    assert stats["totalViews"] == 1


def test_user_profile(client, db, owner, make_user, make_city, auth_headers):
    make_city(owner, city_name="Profile City")
    fan = make_user("fan")
    social.toggle_follow(db, fan.id, owner.id)

    profile = client.get(f"/api/user/{owner.id}", headers=auth_headers(fan)).json()

    assert profile["user"]["username"] == "owner"
    assert [c["cityName"] for c in profile["cities"]] == ["Profile City"]
    assert profile["followerCount"] == 1
    assert profile["isFollowing"] is True
    assert client.get("/api/user/9999").status_code == 404
