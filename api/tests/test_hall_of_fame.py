"""Hall of Fame sync and city assignment."""

from __future__ import annotations

import httpx
import pytest

from cities_collective import models
from cities_collective.errors import NotFoundError, UnauthorizedError
from cities_collective.services import hall_of_fame

HOF_BASE_URL = "https://hof.test/api/v1"


def _screenshot(shot_id, city_name, **fields):
    shot = {
        "id": shot_id,
        "cityName": city_name,
        "cityPopulation": 12000,
        "cityMilestone": 5,
        "imageUrlThumbnail": f"https://cdn.hof.test/{shot_id}/thumb.jpg",
        "imageUrlFHD": f"https://cdn.hof.test/{shot_id}/fhd.jpg",
        "imageUrl4K": f"https://cdn.hof.test/{shot_id}/4k.jpg",
        "createdAt": "2026-03-01T12:00:00Z",
    }
    shot.update(fields)
    return shot


def _client(creators, screenshots, requests=None):
    """Fake Hall of Fame API: ``creators`` maps Creator ID to creator pk."""

    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        if request.url.path == "/api/v1/creators/me":
            creator_id = request.headers["Authorization"].removeprefix("CreatorID ")
            if creator_id not in creators:
                return httpx.Response(404, json={"error": "not found"})
            return httpx.Response(200, json={"id": creators[creator_id]})
        if request.url.path == "/api/v1/screenshots":
            return httpx.Response(200, json=screenshots.get(request.url.params["creatorId"], []))
        return httpx.Response(404)

    return hall_of_fame.HallOfFameClient(base_url=HOF_BASE_URL, transport=httpx.MockTransport(handler))


def test_refresh_upserts_and_assigns_by_name(db, make_user, make_city):
    user = make_user("builder", hof_creator_id="CID-1")
    city = make_city(user, city_name="Oak Valley")
    requests = []
    client = _client({"CID-1": "pk-1"}, {"pk-1": [_screenshot("s1", "oak valley"), _screenshot("s2", "Other")]}, requests)

    result = hall_of_fame.refresh_hall_of_fame_cache(db, client=client)

    assert (result.users_processed, result.images_upserted, result.errors) == (1, 2, 0)
    assert requests[0].headers["Authorization"] == "CreatorID CID-1"
    assert requests[1].url.params["creatorId"] == "pk-1"

    rows = {row.hof_image_id: row for row in hall_of_fame.get_user_hall_of_fame_images(db, user.id)}
    assert rows["s1"].city_id == city.id
    assert rows["s2"].city_id is None
    assert rows["s1"].image_url_4k == "https://cdn.hof.test/s1/4k.jpg"
    assert rows["s1"].city_population == 12000


def test_refresh_updates_existing_rows_and_keeps_assignment(db, make_user, make_city):
    user = make_user("builder", hof_creator_id="CID-1")
    city = make_city(user, city_name="Oak Valley")
    client = _client({"CID-1": "pk-1"}, {"pk-1": [_screenshot("s1", "Oak Valley")]})
    hall_of_fame.refresh_hall_of_fame_cache(db, client=client)

    client = _client({"CID-1": "pk-1"}, {"pk-1": [_screenshot("s1", "Renamed", cityPopulation=99000)]})
    result = hall_of_fame.refresh_hall_of_fame_cache(db, client=client)

    assert result.images_upserted == 1
    row = db.query(models.HallOfFameCache).filter_by(hof_image_id="s1").one()
    db.refresh(row)
    assert row.city_population == 99000
    assert row.city_id == city.id
    assert db.query(models.HallOfFameCache).count() == 1


def test_refresh_counts_failures_and_continues(db, make_user):
    make_user("known", hof_creator_id="CID-1")
    make_user("unknown", hof_creator_id="CID-404")
    make_user("nohof")
    client = _client({"CID-1": "pk-1"}, {"pk-1": [_screenshot("s1", "Any")]})

    result = hall_of_fame.refresh_hall_of_fame_cache(db, client=client)

    assert (result.users_processed, result.images_upserted, result.errors) == (2, 1, 1)


def test_assignment_requires_ownership(db, make_user, make_city):
    owner = make_user("owner")
    stranger = make_user("stranger")
    own_city = make_city(owner, city_name="Mine")
    other_city = make_city(stranger, city_name="Theirs")
    hall_of_fame.upsert_hall_of_fame_images(db, owner.id, [_screenshot("s1", "Unmatched")])
    image = db.query(models.HallOfFameCache).filter_by(hof_image_id="s1").one()

    with pytest.raises(UnauthorizedError):
        hall_of_fame.assign_hall_of_fame_image_to_city(db, image.id, own_city.id, user_id=stranger.id)
    with pytest.raises(UnauthorizedError):
        hall_of_fame.assign_hall_of_fame_image_to_city(db, image.id, other_city.id, user_id=owner.id)
    with pytest.raises(NotFoundError):
        hall_of_fame.assign_hall_of_fame_image_to_city(db, image.id, 9999, user_id=owner.id)

    assigned = hall_of_fame.assign_hall_of_fame_image_to_city(db, image.id, own_city.id, user_id=owner.id)
    assert assigned.city_id == own_city.id


def test_moving_image_drops_primary_flag(db, make_user, make_city):
    owner = make_user("owner")
    first = make_city(owner, city_name="First")
    second = make_city(owner, city_name="Second")
    hall_of_fame.upsert_hall_of_fame_images(db, owner.id, [_screenshot("s1", "First")])
    image = db.query(models.HallOfFameCache).filter_by(hof_image_id="s1").one()
    assert image.city_id == first.id
    image.is_primary = True
    db.commit()

    hall_of_fame.assign_hall_of_fame_image_to_city(db, image.id, second.id)
    assert (image.city_id, image.is_primary) == (second.id, False)

    hall_of_fame.unassign_hall_of_fame_image(db, image.id)
    assert image.city_id is None


def test_user_assign_endpoint(client, db, make_user, make_city, auth_headers):
    owner = make_user("owner")
    city = make_city(owner, city_name="Target")
    hall_of_fame.upsert_hall_of_fame_images(db, owner.id, [_screenshot("s1", "Somewhere")])
    image = db.query(models.HallOfFameCache).filter_by(hof_image_id="s1").one()

    response = client.post(
        f"/api/user/hall-of-fame-images/{image.id}/assign-city",
        json={"cityId": city.id},
        headers=auth_headers(owner),
    )

    assert response.status_code == 200
    assert response.json()["cityId"] == city.id
    listed = client.get(f"/api/cities/{city.id}/hall-of-fame-images").json()
    assert [item["hofImageId"] for item in listed] == ["s1"]
