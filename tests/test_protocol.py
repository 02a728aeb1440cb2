"""
Unit tests for the acquire, watch and release protocols.
"""

import asyncio

import pytest
import pytest_asyncio

from consul_mutex.acquire import LockAcquirer
from consul_mutex.exceptions import ConsulError
from consul_mutex.keys import KeySnapshot
from consul_mutex.release import ReleaseProtocol
from consul_mutex.watch import LockWatcher
from tests.fixtures.mock_consul import SESSION, key_reply, not_found


@pytest.fixture
def acquirer(lock_key, sessions):
    return LockAcquirer(lock_key, sessions, "host-1")


@pytest.mark.unit
class TestLockAcquirer:
    """Tests for LockAcquirer."""

    @pytest.mark.asyncio
    async def test_uncontended(self, acquirer, fake_consul):
        fake_consul.get_key()
        fake_consul.create_session()
        fake_consul.acquire_lock()
        fake_consul.check_key(key_reply(SESSION, index="50"))

        snapshot = await acquirer.acquire()

        assert snapshot.session == SESSION
        assert snapshot.index == "50"
        assert acquirer.last_index == "50"
        assert fake_consul.requests[:2] == [
            "GET /v1/kv/some/lock?consistent",
            "PUT /v1/session/create",
        ]
        fake_consul.verify()

    @pytest.mark.asyncio
    async def test_blocks_on_last_index_while_held(self, acquirer, fake_consul):
        fake_consul.get_key(key_reply("other", index="10"))
        fake_consul.get_key_wait(key_reply("other", index="11"), index="10")
        fake_consul.get_key_wait(not_found(), index="11")
        fake_consul.create_session()
        fake_consul.acquire_lock()
        fake_consul.check_key()

        await acquirer.acquire()

        fake_consul.verify()

    @pytest.mark.asyncio
    async def test_refused_acquire_reads_again(self, acquirer, fake_consul):
        fake_consul.get_key()
        fake_consul.create_session()
        fake_consul.acquire_lock(result=False)
        fake_consul.get_key()
        fake_consul.acquire_lock()
        fake_consul.check_key()

        await acquirer.acquire()

        assert fake_consul.count("PUT /v1/session/create") == 1
        fake_consul.verify()

    @pytest.mark.asyncio
    async def test_reacquires_when_read_back_shows_no_session(self, acquirer, fake_consul):
        fake_consul.get_key()
        fake_consul.create_session()
        fake_consul.acquire_lock()
        fake_consul.check_key(key_reply(None))
        fake_consul.acquire_lock()
        fake_consul.check_key()

        await acquirer.acquire()

        fake_consul.verify()

    @pytest.mark.asyncio
    async def test_starts_over_when_read_back_shows_other_session(self, acquirer, fake_consul):
        fake_consul.get_key()
        fake_consul.create_session()
        fake_consul.acquire_lock()
        fake_consul.check_key(key_reply("other", index="43"))
        fake_consul.get_key_wait(not_found(), index="43")
        fake_consul.acquire_lock()
        fake_consul.check_key()

        await acquirer.acquire()

        fake_consul.verify()


@pytest.mark.unit
class TestLockWatcher:
    """Tests for LockWatcher."""

    @pytest.mark.asyncio
    async def test_key_deleted(self, lock_key, fake_consul):
        fake_consul.watch_key(not_found())

        assert await LockWatcher(lock_key, SESSION, "42").watch() is None

    @pytest.mark.asyncio
    async def test_follows_index_while_still_ours(self, lock_key, fake_consul):
        fake_consul.watch_key(key_reply(SESSION, index="43"))
        fake_consul.watch_key(key_reply(SESSION, index="44"), index="43")
        fake_consul.watch_key(key_reply("thief", index="45"), index="44")

        watcher = LockWatcher(lock_key, SESSION, "42")
        snapshot = await watcher.watch()

        assert snapshot.session == "thief"
        assert watcher.index == "42"
        fake_consul.verify()

    @pytest.mark.asyncio
    async def test_without_index(self, lock_key, fake_consul):
        with pytest.raises(ConsulError, match="cannot watch the lock"):
            await LockWatcher(lock_key, SESSION, None).watch()

        assert fake_consul.requests == []

    @pytest.mark.asyncio
    async def test_cancellable_while_blocked(self, lock_key, fake_consul):
        fake_consul.watch_key()

        task = asyncio.create_task(LockWatcher(lock_key, SESSION, "42").watch())
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task


@pytest.mark.unit
class TestReleaseProtocol:
    """Tests for ReleaseProtocol."""

    @pytest_asyncio.fixture
    async def held(self, sessions, fake_consul):
        fake_consul.create_session()
        await sessions.session_id()
        return sessions

    @pytest.mark.asyncio
    async def test_full_release(self, lock_key, held, fake_consul):
        fake_consul.release_sequence()

        await ReleaseProtocol(lock_key, held).release()

        assert not held.active
        fake_consul.verify()

    @pytest.mark.asyncio
    async def test_release_false(self, lock_key, held, fake_consul):
        fake_consul.release_lock(result=False)

        with pytest.raises(ConsulError, match="returned false"):
            await ReleaseProtocol(lock_key, held).release()

        assert held.active

    @pytest.mark.asyncio
    async def test_no_delete_when_reacquired(self, lock_key, held, fake_consul):
        fake_consul.release_lock()
        fake_consul.destroy_session()
        fake_consul.check_del_key(key_reply("someone-else"))

        await ReleaseProtocol(lock_key, held).release()

        fake_consul.verify()

    @pytest.mark.asyncio
    async def test_no_delete_without_index(self, lock_key, held, fake_consul):
        fake_consul.release_lock()
        fake_consul.destroy_session()
        fake_consul.check_del_key(key_reply(None, index=None))

        await ReleaseProtocol(lock_key, held).release()

        fake_consul.verify()

    @pytest.mark.asyncio
    async def test_delete_refused_is_not_an_error(self, lock_key, held, fake_consul):
        fake_consul.release_lock()
        fake_consul.destroy_session()
        fake_consul.check_del_key()
        fake_consul.delete_key(result=False)

        await ReleaseProtocol(lock_key, held).release()

        fake_consul.verify()


@pytest.mark.unit
class TestKeySnapshot:
    """Tests for KeySnapshot."""

    def test_held(self):
        assert KeySnapshot(index="1", session="abc").held
        assert not KeySnapshot(index="1", session=None).held
