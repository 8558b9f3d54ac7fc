"""Tests unitarios para los locks con lease de los jobs de sincronización."""

import asyncio
import json
import time
from unittest.mock import AsyncMock, MagicMock

import pytest

from fulfillment_sync.utils.distributed_lock import FileJobLock, RedisJobLock
from fulfillment_sync.utils.error_handler import SyncAlreadyRunningException


class TestFileJobLock:
    """Tests para el lock basado en archivo."""

    @pytest.mark.asyncio
    async def test_second_acquire_fails_while_held(self, tmp_path):
        """Debe rechazar un segundo dueño mientras el lease está vigente."""
        first = FileJobLock("inventory-sync", ttl_seconds=60, lock_dir=str(tmp_path))
        second = FileJobLock("inventory-sync", ttl_seconds=60, lock_dir=str(tmp_path))

        assert await first.acquire() is True
        assert await second.acquire() is False
        assert await second.is_locked() is True

        await first.release()
        assert await first.is_locked() is False
        assert await second.acquire() is True

    @pytest.mark.asyncio
    async def test_expired_lease_is_reclaimed(self, tmp_path):
        """Debe permitir tomar un lock cuyo lease expiró."""
        stale = FileJobLock("tracking-sync", ttl_seconds=60, lock_dir=str(tmp_path))
        with open(stale.lock_file, "w") as f:
            f.write(json.dumps({"token": "dead-process", "expires_at": time.time() - 1}))

        lock = FileJobLock("tracking-sync", ttl_seconds=60, lock_dir=str(tmp_path))

        assert await lock.is_locked() is False
        assert await lock.acquire() is True

    @pytest.mark.asyncio
    async def test_release_keeps_foreign_lease(self, tmp_path):
        """No debe borrar un lock que ya pertenece a otro dueño."""
        lock = FileJobLock("inventory-sync", ttl_seconds=60, lock_dir=str(tmp_path))
        assert await lock.acquire() is True

        with open(lock.lock_file, "w") as f:
            f.write(json.dumps({"token": "other-owner", "expires_at": time.time() + 60}))

        await lock.release()

        assert await lock.is_locked() is True

    @pytest.mark.asyncio
    async def test_context_manager_raises_when_held(self, tmp_path):
        """Debe lanzar SyncAlreadyRunningException si otro lo tiene tomado."""
        holder = FileJobLock("inventory-sync", ttl_seconds=60, lock_dir=str(tmp_path))
        await holder.acquire()

        with pytest.raises(SyncAlreadyRunningException) as exc_info:
            async with FileJobLock("inventory-sync", ttl_seconds=60, lock_dir=str(tmp_path)):
                pass

        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_context_manager_releases_on_error(self, tmp_path):
        """Debe liberar el lock aunque la pasada falle."""
        lock = FileJobLock("inventory-sync", ttl_seconds=60, lock_dir=str(tmp_path))

        with pytest.raises(RuntimeError):
            async with lock:
                raise RuntimeError("boom")

        assert await lock.is_locked() is False

    @pytest.mark.asyncio
    async def test_overdue_pass_keeps_newer_lease(self, tmp_path):
        """Una pasada que excedió su TTL no debe liberar el lease de la pasada siguiente."""
        lock = FileJobLock("inventory-sync", ttl_seconds=60, lock_dir=str(tmp_path))
        first_inside, second_inside = asyncio.Event(), asyncio.Event()
        first_may_exit, second_may_exit = asyncio.Event(), asyncio.Event()

        async def run_pass(inside: asyncio.Event, may_exit: asyncio.Event):
            async with lock:
                inside.set()
                await may_exit.wait()

        first = asyncio.create_task(run_pass(first_inside, first_may_exit))
        await first_inside.wait()

        with open(lock.lock_file, "r") as f:
            lease = json.loads(f.read())
        with open(lock.lock_file, "w") as f:
            f.write(json.dumps({**lease, "expires_at": time.time() - 1}))

        second = asyncio.create_task(run_pass(second_inside, second_may_exit))
        await second_inside.wait()

        first_may_exit.set()
        await first
        assert await lock.is_locked() is True

        second_may_exit.set()
        await second
        assert await lock.is_locked() is False


class TestRedisJobLock:
    """Tests para el lock en Redis."""

    @pytest.mark.asyncio
    async def test_acquire_uses_set_nx_px(self):
        """Debe tomar el lock con SET NX y TTL en milisegundos."""
        redis = MagicMock()
        redis.set = AsyncMock(return_value=True)
        lock = RedisJobLock("inventory-sync", ttl_seconds=30, redis_client=redis)

        assert await lock.acquire() is True

        args, kwargs = redis.set.call_args
        assert args[0] == "lock:fulfillment:inventory-sync"
        assert kwargs == {"nx": True, "px": 30000}

    @pytest.mark.asyncio
    async def test_acquire_fails_when_key_exists(self):
        """Debe devolver False si SET NX no escribe la llave."""
        redis = MagicMock()
        redis.set = AsyncMock(return_value=None)
        lock = RedisJobLock("inventory-sync", ttl_seconds=30, redis_client=redis)

        assert await lock.acquire() is False

    @pytest.mark.asyncio
    async def test_release_compares_token(self):
        """Debe liberar con el script que compara el token propio."""
        redis = MagicMock()
        redis.set = AsyncMock(return_value=True)
        redis.eval = AsyncMock(return_value=1)
        lock = RedisJobLock("tracking-sync", ttl_seconds=30, redis_client=redis)

        await lock.acquire()
        token = redis.set.call_args.args[1]
        await lock.release()

        eval_args = redis.eval.call_args.args
        assert eval_args[1:] == (1, "lock:fulfillment:tracking-sync", token)

    @pytest.mark.asyncio
    async def test_each_pass_releases_its_own_token(self):
        """Debe liberar cada pasada con el token que tomó, aunque compartan instancia."""
        redis = MagicMock()
        redis.set = AsyncMock(return_value=True)
        redis.eval = AsyncMock(return_value=0)
        lock = RedisJobLock("inventory-sync", ttl_seconds=30, redis_client=redis)
        first_inside, second_inside, first_done = asyncio.Event(), asyncio.Event(), asyncio.Event()

        async def first_pass():
            async with lock:
                first_inside.set()
                await second_inside.wait()
            first_done.set()

        async def second_pass():
            await first_inside.wait()
            async with lock:
                second_inside.set()
                await first_done.wait()

        await asyncio.gather(first_pass(), second_pass())

        first_token, second_token = (call.args[1] for call in redis.set.call_args_list)
        released = [call.args[3] for call in redis.eval.call_args_list]
        assert released == [first_token, second_token]
        assert first_token != second_token
