from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from pilates_studio.core import lesson_lock
from pilates_studio.core.config import settings

LESSON_ID = "01HZY3D5PQ0000000000000000"
TOKEN = "01HZY3D5PQTOKEN00000000000"


@pytest.fixture
def fake_redis(monkeypatch) -> MagicMock:
    client = MagicMock()
    monkeypatch.setattr(lesson_lock, "_get_sync_redis", lambda: client)
    monkeypatch.setattr(lesson_lock, "_POLL_INTERVAL_S", 0)
    return client


def _expected_key() -> str:
    return f"{settings.lock_namespace}:lock:lesson:{LESSON_ID}:promotion"


class TestLessonLock:
    def test_acquire_sets_token_with_expiry(self, fake_redis) -> None:
        fake_redis.set.return_value = True

        assert lesson_lock.acquire_lesson_lock(LESSON_ID, TOKEN, ttl_s=7, wait_s=0) is True

        fake_redis.set.assert_called_once_with(_expected_key(), TOKEN, nx=True, ex=7)

    def test_acquire_gives_up_when_held_elsewhere(self, fake_redis) -> None:
        fake_redis.set.return_value = False

        assert lesson_lock.acquire_lesson_lock(LESSON_ID, TOKEN, wait_s=0) is False

    def test_acquire_retries_until_free(self, fake_redis) -> None:
        fake_redis.set.side_effect = [False, False, True]

        assert lesson_lock.acquire_lesson_lock(LESSON_ID, TOKEN, wait_s=5) is True
        assert fake_redis.set.call_count == 3

    def test_redis_error_fails_open(self, fake_redis) -> None:
        fake_redis.set.side_effect = ConnectionError("redis down")

        assert lesson_lock.acquire_lesson_lock(LESSON_ID, TOKEN, wait_s=0) is True

    def test_without_redis_url_lock_is_a_no_op(self, monkeypatch) -> None:
        monkeypatch.setattr(settings, "redis_url", None)

        assert lesson_lock.acquire_lesson_lock(LESSON_ID, TOKEN) is True
        lesson_lock.release_lesson_lock(LESSON_ID, TOKEN)

    def test_release_only_deletes_own_token(self, fake_redis) -> None:
        fake_redis.eval.return_value = 0

        lesson_lock.release_lesson_lock(LESSON_ID, TOKEN)

        fake_redis.delete.assert_not_called()
        script, numkeys, key, token = fake_redis.eval.call_args.args
        assert 'redis.call("get", KEYS[1]) == ARGV[1]' in script
        assert (numkeys, key, token) == (1, _expected_key(), TOKEN)

    def test_context_manager_releases_with_its_token(self, fake_redis) -> None:
        fake_redis.set.return_value = True

        with lesson_lock.lesson_lock(LESSON_ID) as acquired:
            assert acquired is True

        stored_token = fake_redis.set.call_args.args[1]
        assert fake_redis.eval.call_args.args[2:] == (_expected_key(), stored_token)

    def test_fail_open_does_not_remove_another_holders_mutex(self, fake_redis) -> None:
        held = {_expected_key(): "other-holder"}

        def compare_and_delete(script, numkeys, key, token):
            if held.get(key) != token:
                return 0
            del held[key]
            return 1

        fake_redis.set.side_effect = TimeoutError("redis timed out")
        fake_redis.eval.side_effect = compare_and_delete

        with lesson_lock.lesson_lock(LESSON_ID) as acquired:
            assert acquired is True

        assert held == {_expected_key(): "other-holder"}

    def test_context_manager_skips_release_when_blocked(self, fake_redis, monkeypatch) -> None:
        fake_redis.set.return_value = False
        monkeypatch.setattr(settings, "lesson_lock_wait_seconds", 0)

        with lesson_lock.lesson_lock(LESSON_ID) as acquired:
            assert acquired is False

        fake_redis.eval.assert_not_called()

    def test_release_error_is_logged_not_raised(self, fake_redis) -> None:
        fake_redis.eval.side_effect = ConnectionError("redis down")

        lesson_lock.release_lesson_lock(LESSON_ID, TOKEN)


class TestRedisConnection:
    def test_connect_uses_short_timeout_and_backs_off_after_failure(self, monkeypatch) -> None:
        monkeypatch.setattr(settings, "redis_url", "redis://localhost:6390/0")
        client = MagicMock()
        client.ping.side_effect = ConnectionError("connection refused")
        from_url = MagicMock(return_value=client)
        monkeypatch.setattr(lesson_lock.Redis, "from_url", from_url)

        assert lesson_lock._get_sync_redis() is None
        assert lesson_lock._get_sync_redis() is None

        from_url.assert_called_once()
        assert from_url.call_args.kwargs["socket_connect_timeout"] == lesson_lock._CONNECT_TIMEOUT_S

    def test_reconnects_once_backoff_expires(self, monkeypatch) -> None:
        monkeypatch.setattr(settings, "redis_url", "redis://localhost:6390/0")
        monkeypatch.setattr(lesson_lock, "_RECONNECT_AFTER_S", 0.0)
        healthy = MagicMock()
        from_url = MagicMock(side_effect=[ConnectionError("connection refused"), healthy])
        monkeypatch.setattr(lesson_lock.Redis, "from_url", from_url)

        assert lesson_lock._get_sync_redis() is None
        assert lesson_lock._get_sync_redis() is healthy
