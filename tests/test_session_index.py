"""Tests for `storefront/sessions/index.py`."""

import pytest

from storefront.sessions.index import ParsedKey, SessionIndex
from storefront.sessions.record import generate_session_id


def test_list_key(index):
    assert index.list_key(42) == f"{index.cache_prefix}:sessions:42"
    assert index.list_key(None) == f"{index.cache_prefix}:sessions:guest"


class TestParseKey:
    @pytest.mark.parametrize("user_id", [1, 42, 1234567])
    def test_round_trip(self, index, user_id):
        session_id = generate_session_id(user_id)
        parsed = index.parse_key(index.full_key(session_id))
        assert parsed == ParsedKey(user_id, session_id[-40:])

    @pytest.mark.parametrize("key", [
        "",
        "sessions:42:" + "a" * 40,
        "other-prefix:sessions:42:" + "a" * 40,
        "test-cache:sessions:guest:" + "a" * 40,
        "test-cache:sessions:42:" + "a" * 39,
        "test-cache:sessions:42:" + "a" * 41,
    ])
    def test_mismatch_gives_nulls(self, index, key):
        assert index.parse_key(key) == ParsedKey(None, None)

    def test_prefix_is_matched_literally(self, redis):
        dotted = SessionIndex(redis, cache_prefix="a.b", driver="redis")
        assert dotted.parse_key("axb:sessions:1:" + "a" * 40) == ParsedKey(None, None)
        assert dotted.parse_key("a.b:sessions:1:" + "a" * 40).user_id == 1


class TestMutations:
    def test_add_and_keys(self, index):
        first = index.full_key(generate_session_id(42))
        second = index.full_key(generate_session_id(42))
        index.add(42, first)
        index.add(42, second)
        index.add(42, first)
        assert index.keys(42) == sorted([first, second])
        assert index.keys(7) == []

    def test_remove_key_drops_member_and_record(self, index, redis):
        key = index.full_key(generate_session_id(42))
        redis.set(key, "payload")
        index.add(42, key)

        index.remove_key(42, key)

        assert index.keys(42) == []
        assert redis.get(key) is None

    def test_remove_key_derives_user(self, index, redis):
        key = index.full_key(generate_session_id(42))
        redis.set(key, "payload")
        index.add(42, key)

        index.remove_key(None, key)

        assert index.keys(42) == []
        assert redis.get(key) is None

    def test_remove_key_is_idempotent(self, index, redis):
        key = index.full_key(generate_session_id(42))
        redis.set(key, "payload")
        # record exists but was never indexed
        index.remove_key(42, key)
        assert redis.get(key) is None
        index.remove_key(42, key)

    def test_remove_full_id(self, index, redis):
        session_id = generate_session_id(42)
        index.add(42, index.full_key(session_id))
        index.remove_full_id(42, session_id)
        assert index.keys(42) == []

    def test_destroy_all(self, index, redis):
        keys = [index.full_key(generate_session_id(42)) for _ in range(3)]
        for key in keys:
            redis.set(key, "payload")
            index.add(42, key)
        other = index.full_key(generate_session_id(7))
        redis.set(other, "payload")
        index.add(7, other)

        index.destroy_all(42)

        assert not redis.exists(index.list_key(42), *keys)
        assert index.keys(7) == [other]
        assert redis.get(other) == "payload"


class TestDisabled:
    @pytest.fixture
    def disabled(self, redis):
        return SessionIndex(redis, cache_prefix="test-cache", driver="database")

    def test_everything_is_a_no_op(self, disabled, redis):
        key = disabled.full_key(generate_session_id(42))
        redis.sadd(disabled.list_key(42), key)
        redis.set(key, "payload")

        assert disabled.keys(42) == []
        assert disabled.add(42, disabled.full_key(generate_session_id(42))) is False
        assert disabled.remove_key(42, key) is False
        assert disabled.destroy_all(42) is False

        assert redis.smembers(disabled.list_key(42)) == {key}
        assert redis.get(key) == "payload"

    def test_parse_key_still_works(self, disabled):
        session_id = generate_session_id(5)
        assert disabled.parse_key(disabled.full_key(session_id)).user_id == 5
