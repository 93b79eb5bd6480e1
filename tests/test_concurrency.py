"""
Lost races on the read-then-write paths.

Each test lets the service do its read, then commits the competing write
through a second session before the service commits, the way a concurrent
request on the same device or (user, device) pair would.
"""
import uuid
from datetime import timedelta

import pytest
from sqlalchemy import delete, func, select

from keystead.app.core.exceptions import (
    ConflictError,
    SecurityViolationError,
    TransientFailureError,
)
from keystead.app.models.auth_session import AuthSession
from keystead.app.models.device import Device, DeviceChallenge, UserDevice
from keystead.app.security.jwt import TokenScope
from keystead.app.security.keys import compute_fingerprint
from keystead.app.services.challenges import ChallengeManager
from keystead.app.services.credentials import CredentialVerifier
from keystead.app.services.devices import DeviceRegistry
from keystead.app.services.sessions import SessionManager


@pytest.fixture
async def user(db, new_user):
    return await CredentialVerifier(db, pepper="pepper").register(new_user())


@pytest.fixture
async def device(db, device_key):
    return await DeviceRegistry(db).find_or_register(device_key.public_pem)


@pytest.fixture
def manager(db, codec, clock):
    return ChallengeManager(db, codec, ttl=timedelta(minutes=2), clock=clock)


def after_first_call(monkeypatch, obj, name, competitor):
    """
    Run `competitor` right after the first call of `obj.name` returns,
    before the caller gets the result.
    """
    original = getattr(obj, name)
    calls = []

    async def wrapped(*args, **kwargs):
        result = await original(*args, **kwargs)
        if not calls:
            calls.append(args)
            await competitor(*args)
        return result

    monkeypatch.setattr(obj, name, wrapped)


async def test_losing_the_consume_race(
    monkeypatch, db, session_factory, manager, codec, user, device
):
    device_id = device.id
    issued = await manager.issue_challenge(device, user.id)
    token = codec.issue(TokenScope.SESSION_ACCESS, user.id, device_id)

    async def consumed_elsewhere(device_id):
        async with session_factory() as other:
            await other.execute(delete(DeviceChallenge).where(DeviceChallenge.device_id == device_id))
            await other.commit()

    after_first_call(monkeypatch, manager, "_pending", consumed_elsewhere)

    with pytest.raises(SecurityViolationError):
        await manager.verify_response(token, issued.plaintext.decode("utf-8"))

    # Nothing of the losing verification was applied
    links = await db.execute(select(func.count()).select_from(UserDevice))
    assert links.scalar_one() == 0
    last_seen = await db.execute(select(Device.last_seen).where(Device.id == device_id))
    assert last_seen.scalar_one() is None


async def test_losing_the_first_issuance_race(
    monkeypatch, db, session_factory, manager, clock, user, device
):
    async def issued_elsewhere(device_id):
        async with session_factory() as other:
            other.add(DeviceChallenge(device_id=device_id, challenge=b"winner", issued_at=clock()))
            await other.commit()

    after_first_call(monkeypatch, manager, "_pending", issued_elsewhere)

    with pytest.raises(TransientFailureError):
        await manager.issue_challenge(device, user.id)

    result = await db.execute(select(DeviceChallenge.challenge))
    assert result.scalars().all() == [b"winner"]


async def test_losing_the_device_insert_race(monkeypatch, db, session_factory, device_key):
    registry = DeviceRegistry(db)
    winner_id = uuid.uuid4()

    async def registered_elsewhere(fingerprint):
        async with session_factory() as other:
            other.add(Device(id=winner_id, fingerprint=fingerprint, public_key=device_key.public_pem))
            await other.commit()

    after_first_call(monkeypatch, registry, "get_by_fingerprint", registered_elsewhere)

    device = await registry.find_or_register(device_key.public_pem)

    assert device.id == winner_id
    assert device.fingerprint == compute_fingerprint(device_key.public_pem)
    count = await db.execute(select(func.count()).select_from(Device))
    assert count.scalar_one() == 1


async def test_losing_the_session_insert_race(
    monkeypatch, db, session_factory, codec, clock, user, device
):
    sessions = SessionManager(db, codec, clock=clock)
    winner_token = codec.issue(TokenScope.REFRESH, user.id, device.id)

    async def opened_elsewhere(user_id, device_id, lock=False):
        async with session_factory() as other:
            other.add(AuthSession(
                id=uuid.uuid4(),
                user_id=user_id,
                device_id=device_id,
                refresh_token=winner_token,
                ip_address="10.0.0.9",
            ))
            await other.commit()

    after_first_call(monkeypatch, sessions, "get", opened_elsewhere)

    with pytest.raises(ConflictError):
        await sessions.create_or_rotate(user.id, device.id, ip_address="10.0.0.1")

    stored = await db.execute(select(AuthSession.refresh_token))
    assert stored.scalars().all() == [winner_token]
