from __future__ import annotations

import pytest

from cities_collective import cache
from cities_collective.services import cities as city_service
from cities_collective.services import social


def test_cache_hit_skips_loader():
    calls = []

    def loader():
        calls.append(1)
        return {"answer": 42}

    first = cache.cached_query(loader, "answer", (1,), tags=[cache.TAG_CITIES])
    second = cache.cached_query(loader, "answer", (1,), tags=[cache.TAG_CITIES])

    assert first == second == {"answer": 42}
    assert len(calls) == 1
    stats = cache.get_cache_stats()
    assert (stats["hits"], stats["misses"]) == (1, 1)
    assert stats["hitRate"] == 50.0
    assert stats["keys"] == 1


def test_different_args_use_different_keys():
    assert cache.make_cache_key("q", (1, "a")) != cache.make_cache_key("q", (1, "b"))
    assert cache.make_cache_key("q", (1, "a")) == cache.make_cache_key("q", (1, "a"))


def test_falsy_results_are_cached():
    calls = []

    def loader():
        calls.append(1)
        return []

    cache.cached_query(loader, "empty")
    cache.cached_query(loader, "empty")

    assert len(calls) == 1


def test_loader_errors_are_not_cached():
    attempts = []

    def loader():
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("database went away")
        return "ok"

    with pytest.raises(RuntimeError):
        cache.cached_query(loader, "flaky")

    assert cache.cached_query(loader, "flaky") == "ok"
    assert len(attempts) == 2


def test_invalidate_tags_removes_tagged_entries_only(fake_redis):
    cache.cached_query(lambda: 1, "city-list", tags=[cache.TAG_CITIES])
    cache.cached_query(lambda: 2, "user-list", tags=[cache.TAG_USERS])

    deleted = cache.invalidate_tags(cache.TAG_CITIES)

    assert deleted == 1
    assert fake_redis.exists(cache.make_cache_key("city-list")) == 0
    assert fake_redis.exists(cache.make_cache_key("user-list")) == 1


def test_like_refreshes_community_stats(db, make_user, make_city):
    owner = make_user("owner")
    city = make_city(owner)

    assert city_service.get_community_stats(db).total_likes == 0

    social.toggle_like(db, owner.id, city.id)

    assert city_service.get_community_stats(db).total_likes == 1


def test_new_city_refreshes_recent_cities(db, make_user, make_city):
    owner = make_user("owner")
    make_city(owner, city_name="First")
    assert [c.city_name for c in city_service.get_recent_cities(db)] == ["First"]

    make_city(owner, city_name="Second")

    assert [c.city_name for c in city_service.get_recent_cities(db)] == ["Second", "First"]


def test_without_redis_loader_always_runs(monkeypatch):
    monkeypatch.setattr(cache, "_redis_client", None)
    calls = []

    for _ in range(2):
        cache.cached_query(lambda: calls.append(1) or "v", "nocache")

    assert len(calls) == 2
    assert cache.get_cache_stats()["enabled"] is False
    assert cache.invalidate_city_cache(1) == 0


def test_clear_cache(fake_redis):
    cache.cached_query(lambda: 1, "one", tags=[cache.TAG_COMMUNITY])

    assert cache.clear_cache() >= 1
    assert cache.get_cache_stats()["keys"] == 0
    assert cache.get_cache_stats()["misses"] == 0


def test_cache_set_indexes_tags_for_invalidation(fake_redis):
    assert cache.cache_set("cache:manual", {"rows": [1, 2]}, ttl=60, tags=[cache.TAG_USERS]) is True
    assert cache.cache_get("cache:manual") == {"rows": [1, 2]}
    assert 0 < fake_redis.ttl("cache:manual") <= 60

    assert cache.invalidate_tags(cache.TAG_USERS) == 1
    assert cache.cache_get("cache:manual") is None
    assert fake_redis.exists(f"{cache.TAG_PREFIX}{cache.TAG_USERS}") == 0


def test_cache_get_returns_non_json_values_raw(fake_redis):
    fake_redis.set("cache:raw", "not json {")

    assert cache.cache_get("cache:raw") == "not json {"
    assert cache.cache_delete("cache:raw") is True
    assert cache.cache_delete("cache:raw") is False


def test_unserializable_value_is_not_stored(fake_redis):
    assert cache.cache_set("cache:cycle", _cyclic()) is False
    assert fake_redis.exists("cache:cycle") == 0


def _cyclic():
    value = []
    value.append(value)
    return value


def test_author_changes_refresh_cached_city_listings(db, make_user, make_city):
    from cities_collective.services import users as user_service
    from cities_collective.services.search import CitySearchFilters, search_cities

    owner = make_user("owner")
    make_city(owner, city_name="Lakeside")
    assert city_service.get_recent_cities(db)[0].author_is_content_creator is False
    assert search_cities(db, CitySearchFilters())[0].author_username == "owner"

    user_service.set_content_creator(db, owner.id, True)
    user_service.update_profile(db, owner.id, username="mayor")

    assert city_service.get_recent_cities(db)[0].author_is_content_creator is True
    assert search_cities(db, CitySearchFilters())[0].author_username == "mayor"
