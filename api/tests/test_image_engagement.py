"""Per-image likes, comments and views."""

from __future__ import annotations

import pytest

from cities_collective import models
from cities_collective.errors import NotFoundError, UnauthorizedError, ValidationError
from cities_collective.services import cities as city_service
from cities_collective.services import images, social

SCREENSHOT = models.IMAGE_TYPE_SCREENSHOT
HALL_OF_FAME = models.IMAGE_TYPE_HALL_OF_FAME


@pytest.fixture
def owner(make_user):
    return make_user("owner")


@pytest.fixture
def visitor(make_user):
    return make_user("visitor")


@pytest.fixture
def city(owner, make_city):
    return make_city(owner, city_name="Harbor Point")


@pytest.fixture
def screenshot(db, owner, city, image_payload):
    return images.create_city_image(db, city.id, image_payload("harbor"), user_id=owner.id)


@pytest.fixture
def hof_image(db, city):
    row = models.HallOfFameCache(
        user_id=city.user_id,
        city_id=city.id,
        hof_image_id="hof-harbor",
        city_name=city.city_name,
        image_url_thumbnail="https://hof.test/harbor/t.jpg",
        image_url_fhd="https://hof.test/harbor/fhd.jpg",
        image_url_4k="https://hof.test/harbor/4k.jpg",
    )
    db.add(row)
    db.commit()
    return row


def _engagement_rows(db):
    return {
        model.__tablename__: db.query(model).count()
        for model in (models.ImageLike, models.ImageComment, models.ImageCommentLike, models.ImageView)
    }


# ============================================================================
# LIKES
# ============================================================================


def test_image_like_toggle(db, visitor, city, screenshot):
    first = social.toggle_image_like(db, visitor.id, screenshot.id, SCREENSHOT)
    second = social.toggle_image_like(db, visitor.id, screenshot.id, SCREENSHOT)

    assert (first.liked, first.like_count) == (True, 1)
    assert (second.liked, second.like_count) == (False, 0)
    assert social.is_image_liked_by_user(db, visitor.id, screenshot.id, SCREENSHOT) is False


def test_image_like_records_city(db, visitor, city, hof_image):
    social.toggle_image_like(db, visitor.id, hof_image.id, HALL_OF_FAME)

    like = db.query(models.ImageLike).one()
    assert like.city_id == city.id
    assert like.image_type == HALL_OF_FAME


def test_likes_are_scoped_by_image_type(db, visitor, screenshot, hof_image):
    social.toggle_image_like(db, visitor.id, screenshot.id, SCREENSHOT)

    assert social.get_image_likes(db, screenshot.id, SCREENSHOT) == 1
    assert social.get_image_likes(db, hof_image.id, HALL_OF_FAME) == 0


def test_unknown_image_type_rejected(db, visitor, screenshot):
    with pytest.raises(ValidationError):
        social.toggle_image_like(db, visitor.id, screenshot.id, "wallpaper")
    with pytest.raises(NotFoundError):
        social.toggle_image_like(db, visitor.id, 9999, SCREENSHOT)


def test_image_like_endpoints(client, visitor, screenshot, auth_headers):
    url = f"/api/images/{screenshot.id}/like"

    assert client.get(url, params={"type": "screenshot"}).json() == {"likeCount": 0, "isLiked": False}
    assert client.post(url, params={"type": "screenshot"}).status_code == 401

    toggled = client.post(url, params={"type": "screenshot"}, headers=auth_headers(visitor))
    assert toggled.json() == {"liked": True, "likeCount": 1}

    info = client.get(url, params={"type": "screenshot"}, headers=auth_headers(visitor))
    assert info.json() == {"likeCount": 1, "isLiked": True}


def test_missing_image_type_is_bad_request(client, screenshot):
    response = client.get(f"/api/images/{screenshot.id}/like")

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid image type"}


# ============================================================================
# COMMENTS
# ============================================================================


def test_image_comment_sorting_and_viewer_likes(db, owner, visitor, screenshot):
    older, _ = social.add_image_comment(db, visitor.id, screenshot.id, SCREENSHOT, "Nice coastline")
    newer, _ = social.add_image_comment(db, owner.id, screenshot.id, SCREENSHOT, "Thanks for visiting")
    social.toggle_image_comment_like(db, owner.id, older.id)

    recent = social.get_image_comments(db, screenshot.id, SCREENSHOT, viewer_id=owner.id)
    by_likes = social.get_image_comments(db, screenshot.id, SCREENSHOT, sort_by="likes")

    assert [c.id for c in recent] == [newer.id, older.id]
    assert [c.is_liked_by_user for c in recent] == [False, True]
    assert [c.id for c in by_likes] == [older.id, newer.id]
    assert by_likes[0].like_count == 1
    assert recent[1].username == "visitor"


def test_image_comment_tags_notify(db, owner, visitor, make_user, screenshot):
    mayor = make_user("mayor")

    comment, _ = social.add_image_comment(
        db, visitor.id, screenshot.id, SCREENSHOT, "Look at this @mayor", tagged_usernames=["owner"]
    )

    notifications = db.query(models.Notification).all()
    assert {n.notification_type for n in notifications} == {"image_comment_tag"}
    assert {n.user_id for n in notifications} == {owner.id, mayor.id}
    assert all(n.related_comment_id == comment.id for n in notifications)


def test_blank_image_comment_rejected(db, visitor, screenshot):
    with pytest.raises(ValidationError):
        social.add_image_comment(db, visitor.id, screenshot.id, SCREENSHOT, "   ")


def test_image_comment_like_toggle(db, owner, visitor, hof_image):
    comment, _ = social.add_image_comment(db, visitor.id, hof_image.id, HALL_OF_FAME, "Classic build")

    liked = social.toggle_image_comment_like(db, owner.id, comment.id)
    unliked = social.toggle_image_comment_like(db, owner.id, comment.id)

    assert (liked.liked, liked.like_count) == (True, 1)
    assert (unliked.liked, unliked.like_count) == (False, 0)
    with pytest.raises(NotFoundError):
        social.toggle_image_comment_like(db, owner.id, 9999)


def test_only_author_or_admin_deletes_image_comment(db, owner, visitor, make_user, screenshot):
    admin = make_user("admin", is_admin=True)
    first, _ = social.add_image_comment(db, visitor.id, screenshot.id, SCREENSHOT, "First!")
    second, _ = social.add_image_comment(db, visitor.id, screenshot.id, SCREENSHOT, "Second look")
    social.toggle_image_comment_like(db, owner.id, first.id)

    with pytest.raises(UnauthorizedError):
        social.delete_image_comment(db, first.id, owner)

    social.delete_image_comment(db, first.id, visitor)
    social.delete_image_comment(db, second.id, admin)

    assert social.get_image_comments(db, screenshot.id, SCREENSHOT) == []
    assert db.query(models.ImageCommentLike).count() == 0
    actions = [entry.action for entry in db.query(models.AuditLog).all()]
    assert actions == ["delete_image_comment"]
    with pytest.raises(NotFoundError):
        social.delete_image_comment(db, first.id, visitor)


def test_image_comment_endpoints(client, visitor, screenshot, auth_headers):
    url = f"/api/images/{screenshot.id}/comments"
    headers = auth_headers(visitor)

    created = client.post(
        url, params={"type": "screenshot"}, json={"content": "Sunset over the docks"}, headers=headers
    )
    assert created.status_code == 201
    body = created.json()
    assert body["comment"]["content"] == "Sunset over the docks"
    assert body["comment"]["imageType"] == "screenshot"
    assert body["moderated"] is False

    listed = client.get(url, params={"type": "screenshot", "sortBy": "likes"})
    assert [c["id"] for c in listed.json()] == [body["comment"]["id"]]

    comment_url = f"/api/image-comments/{body['comment']['id']}"
    assert client.post(f"{comment_url}/like", headers=headers).json() == {"liked": True, "likeCount": 1}
    assert client.delete(comment_url, headers=headers).json() == {"message": "Comment deleted"}
    assert client.get(url, params={"type": "screenshot"}).json() == []


def test_image_comment_length_limit(client, visitor, screenshot, auth_headers):
    response = client.post(
        f"/api/images/{screenshot.id}/comments",
        params={"type": "screenshot"},
        json={"content": "x" * 1001},
        headers=auth_headers(visitor),
    )

    assert response.status_code == 400


# ============================================================================
# VIEWS
# ============================================================================


def test_views_count_once_per_user(db, owner, visitor, screenshot):
    social.record_image_view(db, visitor.id, screenshot.id, SCREENSHOT)
    social.record_image_view(db, visitor.id, screenshot.id, SCREENSHOT)
    status = social.record_image_view(db, owner.id, screenshot.id, SCREENSHOT)

    assert status.view_count == 2
    assert social.get_image_views(db, screenshot.id, SCREENSHOT, viewer_id=visitor.id).viewed is True
    assert social.get_image_views(db, screenshot.id, SCREENSHOT).viewed is False


def test_view_endpoints(client, visitor, hof_image, auth_headers):
    url = f"/api/images/{hof_image.id}/view"

    assert client.post(url, params={"type": "hall_of_fame"}).status_code == 401
    recorded = client.post(url, params={"type": "hall_of_fame"}, headers=auth_headers(visitor))
    assert recorded.json() == {"viewed": True, "viewCount": 1}
    assert client.get(url, params={"type": "hall_of_fame"}).json() == {"viewed": False, "viewCount": 1}


# ============================================================================
# CLEANUP
# ============================================================================


def _engage(db, user, image_id, image_type):
    comment, _ = social.add_image_comment(db, user.id, image_id, image_type, "Neat")
    social.toggle_image_comment_like(db, user.id, comment.id)
    social.toggle_image_like(db, user.id, image_id, image_type)
    social.record_image_view(db, user.id, image_id, image_type)


def test_deleting_screenshot_removes_its_engagement(db, owner, visitor, screenshot, hof_image):
    _engage(db, visitor, screenshot.id, SCREENSHOT)
    _engage(db, visitor, hof_image.id, HALL_OF_FAME)

    images.delete_city_image(db, screenshot.id, owner.id)

    assert _engagement_rows(db) == {
        "image_likes": 1,
        "image_comments": 1,
        "image_comment_likes": 1,
        "image_views": 1,
    }
    assert db.query(models.ImageLike).one().image_type == HALL_OF_FAME


def test_deleting_city_keeps_hall_of_fame_engagement(db, owner, visitor, city, screenshot, hof_image):
    _engage(db, visitor, screenshot.id, SCREENSHOT)
    _engage(db, visitor, hof_image.id, HALL_OF_FAME)

    city_service.delete_city(db, city.id, owner.id)

    assert _engagement_rows(db) == {
        "image_likes": 1,
        "image_comments": 1,
        "image_comment_likes": 1,
        "image_views": 1,
    }
    assert db.query(models.ImageComment).one().city_id is None
    assert social.get_image_likes(db, hof_image.id, HALL_OF_FAME) == 1
