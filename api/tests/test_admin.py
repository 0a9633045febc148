"""Admin endpoints, internal endpoints and the audit trail."""

from __future__ import annotations

import pytest

from cities_collective import models, settings
from cities_collective.services import hall_of_fame, social


@pytest.fixture
def admin(make_user):
    return make_user("admin", is_admin=True)


@pytest.fixture
def admin_headers(admin, auth_headers):
    return auth_headers(admin)


def _audit_actions(client, headers):
    return [entry["action"] for entry in client.get("/api/admin/audit-log", headers=headers).json()]


def test_admin_routes_reject_regular_users(client, make_user, auth_headers):
    headers = auth_headers(make_user("regular"))

    response = client.get("/api/admin/cities", headers=headers)

    assert response.status_code == 403
    assert response.json() == {"error": "Admin access required"}
    assert client.get("/api/admin/check", headers=headers).json() == {"isAdmin": False}


def test_admin_routes_require_login(client):
    assert client.get("/api/admin/cache-stats").status_code == 401


def test_check_admin(client, admin_headers):
    assert client.get("/api/admin/check", headers=admin_headers).json() == {"isAdmin": True}


def test_toggle_admin_and_audit(client, make_user, admin_headers):
    target = make_user("target")

    response = client.post(f"/api/admin/users/{target.id}/toggle-admin", json={"isAdmin": True}, headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["isAdmin"] is True
    entry = client.get("/api/admin/audit-log", headers=admin_headers).json()[0]
    assert entry["action"] == "toggle_admin"
    assert entry["targetType"] == "user"
    assert entry["targetId"] == str(target.id)


def test_admin_cannot_remove_own_access(client, admin, admin_headers):
    response = client.post(f"/api/admin/users/{admin.id}/toggle-admin", json={"isAdmin": False}, headers=admin_headers)

    assert response.status_code == 400
    assert _audit_actions(client, admin_headers) == []


def test_toggle_unknown_user(client, admin_headers):
    response = client.post("/api/admin/users/9999/toggle-content-creator", json={"isContentCreator": True}, headers=admin_headers)

    assert response.status_code == 404


def test_delete_city(client, make_user, make_city, admin_headers):
    city = make_city(make_user("owner"), city_name="Doomed")

    assert client.delete(f"/api/admin/delete-city/{city.id}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/cities/{city.id}").status_code == 404
    assert _audit_actions(client, admin_headers) == ["delete_city"]


def test_search_users_with_stats(client, make_user, make_city, admin_headers):
    builder = make_user("builder")
    make_city(builder)
    make_city(builder)

    rows = client.get("/api/admin/search-users", params={"q": "build"}, headers=admin_headers).json()

    assert [(row["username"], row["cityCount"]) for row in rows] == [("builder", 2)]


def test_comment_moderation_queue(client, db, make_user, make_city, admin_headers):
    author = make_user("author")
    city = make_city(make_user("owner"), city_name="Hilltop")
    comment, _ = social.add_comment(db, author.id, city.id, "Lovely hillside suburbs")

    page = client.get("/api/admin/comments", headers=admin_headers).json()
    assert page["total"] == 1
    assert page["items"][0]["cityName"] == "Hilltop"
    assert page["items"][0]["email"] == "author@example.com"

    assert client.delete(f"/api/admin/comments/{comment.id}", headers=admin_headers).status_code == 200
    assert social.get_city_comment_count(db, city.id) == 0
    assert _audit_actions(client, admin_headers) == ["delete_comment"]


def test_moderation_settings_roundtrip(client, admin_headers):
    defaults = client.get("/api/admin/moderation-settings", headers=admin_headers).json()
    assert "casino" in defaults["spam_indicators"]

    updated = client.put(
        "/api/admin/moderation-settings", json={"spamIndicators": ["visit my channel"]}, headers=admin_headers
    ).json()

    assert updated["spam_indicators"] == ["visit my channel"]
    assert updated["profanity_list"] == defaults["profanity_list"]


def test_cache_stats_and_flush(client, admin_headers):
    client.get("/api/cities/recent")
    client.get("/api/cities/recent")

    stats = client.get("/api/admin/cache-stats", headers=admin_headers).json()
    assert stats["enabled"] is True
    assert stats["hits"] >= 1
    assert stats["keys"] >= 1

    assert client.delete("/api/admin/cache-stats", headers=admin_headers).status_code == 200
    assert client.get("/api/admin/cache-stats", headers=admin_headers).json()["keys"] == 0


def test_fix_primary_images_endpoint(client, db, make_user, make_city, image_payload, admin_headers):
    from cities_collective.services.images import count_primaries, create_city_image

    owner = make_user("owner")
    city = make_city(owner)
    create_city_image(db, city.id, image_payload(), user_id=owner.id)
    hall_of_fame.upsert_hall_of_fame_images(
        db,
        owner.id,
        [{"id": "hof-1", "cityName": "Test City", "imageUrlThumbnail": "t", "imageUrlFHD": "f", "imageUrl4K": "k"}],
    )
    db.query(models.HallOfFameCache).update({models.HallOfFameCache.is_primary: True})
    db.commit()

    dry = client.post("/api/admin/fix-primary-images", params={"dryRun": "true"}, headers=admin_headers).json()
    assert dry == {"duplicatesFixed": 1, "primariesAssigned": 0}

    fixed = client.post("/api/admin/fix-primary-images", headers=admin_headers).json()
    assert fixed["duplicatesFixed"] == 1
    assert count_primaries(db, city.id)[city.id] == 1
    assert _audit_actions(client, admin_headers) == ["fix_primary_images"]


def test_admin_assigns_hall_of_fame_image(client, db, make_user, make_city, admin_headers):
    owner = make_user("owner")
    city = make_city(owner, city_name="Target")
    hall_of_fame.upsert_hall_of_fame_images(
        db,
        owner.id,
        [{"id": "hof-1", "cityName": "Elsewhere", "imageUrlThumbnail": "t", "imageUrlFHD": "f", "imageUrl4K": "k"}],
    )
    image = db.query(models.HallOfFameCache).one()

    response = client.post(
        f"/api/admin/hall-of-fame-images/{image.id}/assign-city", json={"cityId": city.id}, headers=admin_headers
    )

    assert response.status_code == 200
    assert response.json()["cityId"] == city.id
    listed = client.get("/api/admin/hall-of-fame-images", headers=admin_headers).json()
    assert [item["hofImageId"] for item in listed] == ["hof-1"]


# ============================================================================
# INTERNAL
# ============================================================================


def test_internal_routes_require_token(client, monkeypatch):
    monkeypatch.setattr(settings, "INTERNAL_API_TOKEN", "internal-secret")

    assert client.post("/api/internal/update-hall-of-fame-cache").status_code == 401
    wrong = client.post("/api/internal/update-hall-of-fame-cache", headers={"X-Internal-Token": "nope"})
    assert wrong.status_code == 401


def test_internal_routes_disabled_without_configured_token(client, monkeypatch):
    monkeypatch.setattr(settings, "INTERNAL_API_TOKEN", "")

    response = client.post("/api/internal/update-hall-of-fame-cache", headers={"X-Internal-Token": ""})

    assert response.status_code == 401


def test_internal_password_reset_token(client, db, monkeypatch):
    from cities_collective.services import users as user_service

    monkeypatch.setattr(settings, "INTERNAL_API_TOKEN", "internal-secret")
    headers = {"X-Internal-Token": "internal-secret"}
    user_service.create_user(db, "reset@example.com", "old-password", username="resetter")

    issued = client.post("/api/internal/password-reset-token", json={"email": "reset@example.com"}, headers=headers)
    assert issued.status_code == 200
    token = issued.json()["token"]

    confirm = client.post("/api/auth/password-reset/confirm", json={"token": token, "newPassword": "new-password"})
    assert confirm.status_code == 200

    missing = client.post("/api/internal/password-reset-token", json={"email": "nobody@example.com"}, headers=headers)
    assert missing.status_code == 404


def test_internal_refresh_without_creators(client, monkeypatch):
    monkeypatch.setattr(settings, "INTERNAL_API_TOKEN", "internal-secret")

    response = client.post("/api/internal/update-hall-of-fame-cache", headers={"X-Internal-Token": "internal-secret"})

    assert response.status_code == 200
    assert response.json() == {"usersProcessed": 0, "imagesUpserted": 0, "errors": 0}
