"""City screenshots and the one-primary-image-per-city rule."""

from __future__ import annotations

import threading

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from cities_collective import cache, models
from cities_collective.db import Base
from cities_collective.errors import NotFoundError, UnauthorizedError, ValidationError
from cities_collective.services import images


@pytest.fixture
def owner(make_user):
    return make_user("owner")


@pytest.fixture
def city(owner, make_city):
    return make_city(owner, city_name="Lakeshore")


@pytest.fixture
def add_image(db, owner, image_payload):
    def _add(city, name="shot"):
        return images.create_city_image(db, city.id, image_payload(name), user_id=owner.id)

    return _add


def _hof_image(db, city, hof_image_id, is_primary=False):
    row = models.HallOfFameCache(
        user_id=city.user_id,
        city_id=city.id,
        hof_image_id=hof_image_id,
        city_name=city.city_name,
        image_url_thumbnail=f"https://hof.test/{hof_image_id}/t.jpg",
        image_url_fhd=f"https://hof.test/{hof_image_id}/fhd.jpg",
        image_url_4k=f"https://hof.test/{hof_image_id}/4k.jpg",
        is_primary=is_primary,
    )
    db.add(row)
    db.commit()
    return row


def test_first_image_becomes_primary(db, city, add_image):
    first = add_image(city, "one")
    second = add_image(city, "two")

    assert first.is_primary is True
    assert second.is_primary is False
    assert (first.sort_order, second.sort_order) == (0, 1)
    assert images.count_primaries(db, city.id)[city.id] == 1


def test_first_image_respects_existing_hall_of_fame_primary(db, city, add_image):
    _hof_image(db, city, "hof-a", is_primary=True)

    upload = add_image(city)

    assert upload.is_primary is False
    assert images.count_primaries(db, city.id)[city.id] == 1


def test_set_primary_switches_images(db, city, owner, add_image):
    first = add_image(city, "one")
    second = add_image(city, "two")

    images.set_primary_image(db, second.id, city.id, owner.id)

    listed = images.get_city_images(db, city.id)
    assert [image.id for image in listed] == [second.id, first.id]
    assert [image.is_primary for image in listed] == [True, False]


def test_hall_of_fame_primary_clears_uploaded_primary(db, city, owner, add_image):
    upload = add_image(city)
    hof = _hof_image(db, city, "hof-a")

    images.set_primary_hall_of_fame_image(db, "hof-a", city.id, owner.id)

    db.refresh(upload)
    db.refresh(hof)
    assert upload.is_primary is False
    assert hof.is_primary is True
    assert images.count_primaries(db, city.id)[city.id] == 1

    images.set_primary_image(db, upload.id, city.id, owner.id)

    db.refresh(upload)
    db.refresh(hof)
    assert (upload.is_primary, hof.is_primary) == (True, False)


def test_set_primary_requires_ownership(db, city, make_user, add_image):
    image = add_image(city)
    stranger = make_user("stranger")

    with pytest.raises(UnauthorizedError):
        images.set_primary_image(db, image.id, city.id, stranger.id)


def test_set_primary_on_missing_city_is_unauthorized(db, owner):
    with pytest.raises(UnauthorizedError):
        images.set_primary_image(db, 1, 9999, owner.id)


def test_set_primary_with_image_from_other_city(db, owner, city, make_city, add_image):
    other = make_city(owner, city_name="Elsewhere")
    foreign = add_image(other)

    with pytest.raises(NotFoundError):
        images.set_primary_image(db, foreign.id, city.id, owner.id)

    db.refresh(foreign)
    assert foreign.is_primary is True


def test_deleting_primary_promotes_next_image(db, city, owner, add_image):
    first = add_image(city, "one")
    second = add_image(city, "two")
    third = add_image(city, "three")

    images.delete_city_image(db, first.id, owner.id)

    listed = images.get_city_images(db, city.id)
    assert [image.id for image in listed] == [second.id, third.id]
    assert listed[0].is_primary is True


def test_delete_requires_ownership(db, city, make_user, add_image):
    image = add_image(city)
    stranger = make_user("stranger")

    with pytest.raises(UnauthorizedError):
        images.delete_city_image(db, image.id, stranger.id)

    assert db.get(models.CityImage, image.id) is not None


def test_image_limit(db, city, add_image):
    for index in range(images.MAX_IMAGES_PER_CITY):
        add_image(city, f"shot{index}")

    with pytest.raises(ValidationError):
        add_image(city, "one-too-many")

    assert len(images.get_city_images(db, city.id)) == images.MAX_IMAGES_PER_CITY


def test_reorder_images(db, city, owner, add_image):
    first = add_image(city, "one")
    second = add_image(city, "two")
    third = add_image(city, "three")

    reordered = images.reorder_city_images(db, city.id, owner.id, [third.id, second.id, first.id])

    # the primary still leads the list
    assert [image.id for image in reordered] == [first.id, third.id, second.id]
    assert {image.id: image.sort_order for image in reordered} == {third.id: 0, second.id: 1, first.id: 2}


def test_reorder_rejects_incomplete_list(db, city, owner, add_image):
    first = add_image(city, "one")
    add_image(city, "two")

    with pytest.raises(ValidationError):
        images.reorder_city_images(db, city.id, owner.id, [first.id])


def test_unique_index_rejects_second_primary_upload(db, city, add_image):
    add_image(city, "one")
    second = add_image(city, "two")

    second.is_primary = True
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_fix_duplicates_across_tables_keeps_upload(db, city, add_image):
    upload = add_image(city)
    hof = _hof_image(db, city, "hof-a", is_primary=True)

    assert images.fix_duplicate_primary_images(db, dry_run=True) == 1
    assert images.count_primaries(db, city.id)[city.id] == 2

    assert images.fix_duplicate_primary_images(db) == 1

    db.refresh(upload)
    db.refresh(hof)
    assert (upload.is_primary, hof.is_primary) == (True, False)
    assert images.fix_duplicate_primary_images(db) == 0


def test_ensure_primary_images(db, city, add_image):
    first = add_image(city, "one")
    add_image(city, "two")
    db.query(models.CityImage).update({models.CityImage.is_primary: False})
    db.commit()

    assert images.ensure_primary_images(db, dry_run=True) == 1
    assert images.ensure_primary_images(db) == 1

    db.refresh(first)
    assert first.is_primary is True
    assert images.ensure_primary_images(db) == 0


def test_fix_primary_script(db, city, add_image, monkeypatch):
    import importlib.util
    from contextlib import contextmanager
    from pathlib import Path

    script = Path(__file__).resolve().parent.parent / "scripts" / "fix_primary_images.py"
    spec = importlib.util.spec_from_file_location("fix_primary_images", script)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    add_image(city)
    _hof_image(db, city, "hof-a", is_primary=True)

    @contextmanager
    def _scope():
        yield db

    monkeypatch.setattr(module, "session_scope", _scope)

    assert module.main(["--dry-run"]) == 0
    assert images.count_primaries(db, city.id)[city.id] == 2
    assert module.run() == (1, 0)
    assert images.count_primaries(db, city.id)[city.id] == 1


def test_image_endpoints(client, city, owner, auth_headers, image_payload):
    headers = auth_headers(owner)
    payload = image_payload("api").model_dump(by_alias=True)

    created = client.post(f"/api/cities/{city.id}/images", json=payload, headers=headers)
    assert created.status_code == 201
    assert created.json()["isPrimary"] is True

    second = client.post(f"/api/cities/{city.id}/images", json=payload, headers=headers).json()
    response = client.post(f"/api/images/{second['id']}/primary", json={"cityId": city.id}, headers=headers)
    assert response.status_code == 200

    listed = client.get(f"/api/cities/{city.id}/images").json()
    assert [image["id"] for image in listed] == [second["id"], created.json()["id"]]


def test_primary_endpoint_rejects_non_owner(client, city, add_image, make_user, auth_headers):
    image = add_image(city)
    stranger = make_user("stranger")

    response = client.post(
        f"/api/images/{image.id}/primary", json={"cityId": city.id}, headers=auth_headers(stranger)
    )

    assert response.status_code == 401
    assert "error" in response.json()


def test_concurrent_primary_changes_leave_one_primary(tmp_path, monkeypatch, image_payload):
    """Two writers flipping the primary between an upload and a HoF image."""
    monkeypatch.setattr(cache, "_redis_client", None)

    engine = create_engine(
        f"sqlite:///{tmp_path / 'primary.db'}",
        connect_args={"timeout": 30, "check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine, expire_on_commit=False)

    with Session() as setup:
        user = models.User(email="writer@example.com", username="writer", social_links={})
        setup.add(user)
        setup.commit()
        city = models.City(user_id=user.id, city_name="Contested")
        setup.add(city)
        setup.commit()
        upload = models.CityImage(city_id=city.id, sort_order=0, is_primary=True, **image_payload().model_dump())
        setup.add(upload)
        _hof_image(setup, city, "hof-contested")
        user_id, city_id, upload_id = user.id, city.id, upload.id

    rounds = 10
    barrier = threading.Barrier(2)
    errors: list[Exception] = []

    def _worker(use_hof: bool) -> None:
        barrier.wait()
        for _ in range(rounds):
            with Session() as session:
                try:
                    if use_hof:
                        images.set_primary_hall_of_fame_image(session, "hof-contested", city_id, user_id)
                    else:
                        images.set_primary_image(session, upload_id, city_id, user_id)
                except Exception as exc:  # collected and asserted below
                    errors.append(exc)

    threads = [threading.Thread(target=_worker, args=(flag,)) for flag in (False, True)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    with Session() as check:
        assert errors == []
        assert images.count_primaries(check, city_id)[city_id] == 1

    engine.dispose()
