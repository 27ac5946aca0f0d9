import asyncio
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.config import settings
from app.models import Base, InviteCode
from app.models.invite_code import InviteCodeStatus
from app.repositories import InviteCodeRepository
from app.services.users import invite_code_service as invite_svc
from app.services.users.invite_code_service import (
    InviteCodeGenerationError,
    InviteCodeNotFoundError,
    InviteCodeNotUsableError,
    InviteCodeService,
    InviteCodeValidationError,
    UnusableReason,
    is_usable,
    unusable_reason,
)

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


def _invite(**overrides) -> InviteCode:
    data = {
        "code": "abc123",
        "name": "",
        "max_uses": 0,
        "used_count": 0,
        "status": InviteCodeStatus.ENABLED,
        "starts_at": None,
        "expires_at": None,
    }
    data.update(overrides)
    return InviteCode(**data)


@pytest.fixture
def service(async_session) -> InviteCodeService:
    return InviteCodeService(InviteCodeRepository(async_session))


# ===== 可用性判定 =====


def test_unlimited_code_never_exhausted():
    for used in (0, 1, 10_000):
        assert is_usable(_invite(max_uses=0, used_count=used), NOW)


def test_limited_code_exhausted_at_max_uses():
    assert is_usable(_invite(max_uses=3, used_count=2), NOW)
    assert unusable_reason(_invite(max_uses=3, used_count=3), NOW) == UnusableReason.EXHAUSTED


def test_window_bounds_are_start_inclusive_end_exclusive():
    start = NOW - timedelta(hours=1)
    end = NOW + timedelta(hours=1)
    invite = _invite(starts_at=start, expires_at=end)

    assert unusable_reason(invite, start - timedelta(seconds=1)) == UnusableReason.NOT_STARTED
    assert is_usable(invite, start)
    assert is_usable(invite, end - timedelta(microseconds=1))
    assert unusable_reason(invite, end) == UnusableReason.EXPIRED


def test_unusable_reason_order():
    invite = _invite(
        status=InviteCodeStatus.DISABLED,
        max_uses=1,
        used_count=1,
        expires_at=NOW - timedelta(days=1),
    )
    assert unusable_reason(invite, NOW) == UnusableReason.DISABLED

    invite.status = InviteCodeStatus.ENABLED
    assert unusable_reason(invite, NOW) == UnusableReason.EXHAUSTED

    invite.used_count = 0
    invite.starts_at = NOW + timedelta(days=1)
    assert unusable_reason(invite, NOW) == UnusableReason.NOT_STARTED


def test_naive_timestamps_are_treated_as_utc():
    invite = _invite(expires_at=datetime(2026, 1, 1, 12, 0))
    assert unusable_reason(invite, NOW) == UnusableReason.EXPIRED
    assert is_usable(invite, NOW - timedelta(seconds=1))


# ===== 兑换 =====


@pytest.mark.asyncio
async def test_redeem_increments_used_count(service):
    await service.create(code="welcome", max_uses=2)

    redeemed = await service.redeem("welcome")
    assert redeemed.used_count == 1

    redeemed = await service.redeem("welcome")
    assert redeemed.used_count == 2

    with pytest.raises(InviteCodeNotUsableError) as exc_info:
        await service.redeem("welcome")
    assert exc_info.value.reason == UnusableReason.EXHAUSTED

    stored = await service.repo.get_by_code("welcome")
    assert stored.used_count == 2
    # 次数耗尽不会自动禁用
    assert stored.status == InviteCodeStatus.ENABLED


@pytest.mark.asyncio
async def test_redeem_unknown_code(service):
    with pytest.raises(InviteCodeNotFoundError):
        await service.redeem("missing")


@pytest.mark.asyncio
async def test_redeem_reports_each_reason(service):
    now = datetime.now(UTC)
    await service.create(code="disabled", status=InviteCodeStatus.DISABLED)
    await service.create(code="future", starts_at=now + timedelta(days=1))
    await service.create(code="past", expires_at=now - timedelta(seconds=1))

    expected = {
        "disabled": UnusableReason.DISABLED,
        "future": UnusableReason.NOT_STARTED,
        "past": UnusableReason.EXPIRED,
    }
    for code, reason in expected.items():
        with pytest.raises(InviteCodeNotUsableError) as exc_info:
            await service.redeem(code, now)
        assert exc_info.value.reason == reason

    for code in expected:
        assert (await service.repo.get_by_code(code)).used_count == 0


@pytest.mark.asyncio
async def test_redeem_without_commit_is_rolled_back(service, async_session):
    await service.create(code="tx-code", max_uses=1)

    await service.redeem("tx-code", commit=False)
    await async_session.rollback()

    assert (await service.repo.get_by_code("tx-code")).used_count == 0


@pytest.mark.asyncio
async def test_check_does_not_consume(service):
    await service.create(code="peek", max_uses=1)

    checked = await service.check("peek")
    assert checked.code == "peek"
    assert (await service.repo.get_by_code("peek")).used_count == 0

    with pytest.raises(InviteCodeNotFoundError):
        await service.check("nope")


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """文件 SQLite + BEGIN IMMEDIATE，多连接下写事务串行，模拟数据库行锁。"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'invite.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
    await engine.dispose()


@pytest.mark.asyncio
async def test_concurrent_redeem_single_use_code(file_session_factory):
    async with file_session_factory() as session:
        await InviteCodeService(InviteCodeRepository(session)).create(code="only-once", max_uses=1)

    async def attempt():
        async with file_session_factory() as session:
            service = InviteCodeService(InviteCodeRepository(session))
            try:
                await service.redeem("only-once")
            except InviteCodeNotUsableError as exc:
                return exc.reason
            return "ok"

    results = await asyncio.gather(*(attempt() for _ in range(8)))

    assert results.count("ok") == 1
    assert results.count(UnusableReason.EXHAUSTED) == 7

    async with file_session_factory() as session:
        stored = await InviteCodeRepository(session).get_by_code("only-once")
        assert stored.used_count == 1


# ===== 生成与创建 =====


@pytest.mark.asyncio
async def test_generate_code_format(service):
    code = await service.generate_code()
    assert len(code) == settings.INVITE_CODE_LENGTH
    assert code.isalnum() and code.isascii()


@pytest.mark.asyncio
async def test_generate_code_gives_up_after_retries(service, monkeypatch):
    await service.create(code="AAAAAAAA")
    monkeypatch.setattr(invite_svc.secrets, "choice", lambda alphabet: "A")

    with pytest.raises(InviteCodeGenerationError):
        await service.generate_code()


@pytest.mark.asyncio
async def test_create_validates_input(service):
    await service.create(code="taken")

    with pytest.raises(InviteCodeValidationError):
        await service.create(code="taken")
    with pytest.raises(InviteCodeValidationError):
        await service.create(code="has space")
    with pytest.raises(InviteCodeValidationError):
        await service.create(code="ab")
    with pytest.raises(InviteCodeValidationError):
        await service.create(name="x" * 101)
    with pytest.raises(InviteCodeValidationError):
        await service.create(starts_at=NOW, expires_at=NOW)


@pytest.mark.asyncio
async def test_create_insert_conflict_depends_on_code_origin(service, monkeypatch):
    await service.create(code="taken")

    async def never_exists(code):
        return False

    # 存在性检查通过后，写入时才撞上唯一约束
    monkeypatch.setattr(service.repo, "code_exists", never_exists)
    with pytest.raises(InviteCodeValidationError):
        await service.create(code="taken")

    async def colliding_generate(*, exclude=None):
        return "taken"

    monkeypatch.setattr(service, "generate_code", colliding_generate)
    with pytest.raises(InviteCodeGenerationError):
        await service.create()

    assert [invite.code for invite in await service.list()] == ["taken"]


@pytest.mark.asyncio
async def test_create_batch_suffixes_names(service):
    invites = await service.create_batch(count=3, name="spring", max_uses=5)

    assert sorted(i.name for i in invites) == ["spring_1", "spring_2", "spring_3"]
    assert len({i.code for i in invites}) == 3
    assert all(i.max_uses == 5 for i in invites)

    single = await service.create_batch(count=1, name="solo")
    assert single[0].name == "solo"


@pytest.mark.asyncio
async def test_create_batch_rejects_bad_count(service):
    for count in (0, settings.INVITE_CODE_MAX_BATCH + 1):
        with pytest.raises(InviteCodeValidationError):
            await service.create_batch(count=count)


@pytest.mark.asyncio
async def test_create_batch_is_all_or_nothing(service, monkeypatch):
    generated = iter(["dupe0001", "fresh001", "dupe0001"])

    async def fake_generate(*, exclude=None):
        return next(generated)

    monkeypatch.setattr(service, "generate_code", fake_generate)

    with pytest.raises(InviteCodeGenerationError):
        await service.create_batch(count=3, name="batch")

    assert await service.list() == []


@pytest.mark.asyncio
async def test_has_any_usable(service):
    now = datetime.now(UTC)
    assert await service.has_any_usable(now) is False

    await service.create(code="expired", expires_at=now - timedelta(minutes=1))
    await service.create(code="off", status=InviteCodeStatus.DISABLED)
    assert await service.has_any_usable(now) is False

    await service.create(code="ready")
    assert await service.has_any_usable(now) is True


# ===== 编辑/删除/查询 =====


@pytest.mark.asyncio
async def test_update_rules(service):
    invite = await service.create(code="editme", max_uses=5)
    await service.redeem("editme")
    await service.redeem("editme")

    with pytest.raises(InviteCodeValidationError):
        await service.update(invite.id, {"code": "other"})
    with pytest.raises(InviteCodeValidationError):
        await service.update(invite.id, {"max_uses": 1})
    with pytest.raises(InviteCodeValidationError):
        await service.update(invite.id, {"max_uses": None})
    with pytest.raises(InviteCodeValidationError):
        await service.update(invite.id, {"status": None})

    updated = await service.update(invite.id, {"code": "editme", "max_uses": 0, "name": "renamed"})
    assert updated.max_uses == 0
    assert updated.name == "renamed"

    updated = await service.update(invite.id, {"status": InviteCodeStatus.DISABLED})
    assert updated.status == InviteCodeStatus.DISABLED


@pytest.mark.asyncio
async def test_update_window_validation(service):
    invite = await service.create(code="window", expires_at=NOW)

    with pytest.raises(InviteCodeValidationError):
        await service.update(invite.id, {"starts_at": NOW + timedelta(hours=1)})

    updated = await service.update(invite.id, {"starts_at": NOW + timedelta(hours=1), "expires_at": None})
    assert updated.expires_at is None
    assert updated.starts_at is not None


@pytest.mark.asyncio
async def test_delete_and_batch_delete(service):
    first = await service.create(code="first")
    second = await service.create(code="second")
    third = await service.create(code="third")

    await service.delete(first.id)
    with pytest.raises(InviteCodeNotFoundError):
        await service.get(first.id)
    with pytest.raises(InviteCodeNotFoundError):
        await service.delete(first.id)

    assert await service.batch_delete([second.id, third.id]) == 2
    assert await service.list() == []

    with pytest.raises(InviteCodeValidationError):
        await service.batch_delete([])


@pytest.mark.asyncio
async def test_list_filters(service):
    await service.create(code="alpha1", name="spring campaign")
    await service.create(code="beta22", name="partners", status=InviteCodeStatus.DISABLED)
    await service.create(
        code="gamma3",
        name="later",
        starts_at=NOW + timedelta(days=10),
        expires_at=NOW + timedelta(days=20),
    )

    assert {i.code for i in await service.list(keyword="spring")} == {"alpha1"}
    assert {i.code for i in await service.list(keyword="beta")} == {"beta22"}
    assert {i.code for i in await service.list(status=InviteCodeStatus.DISABLED)} == {"beta22"}

    window_hits = await service.list(starts_at_from=NOW + timedelta(days=15), starts_at_to=NOW + timedelta(days=16))
    assert {i.code for i in window_hits} == {"alpha1", "beta22", "gamma3"}

    early = await service.list(starts_at_from=NOW, starts_at_to=NOW + timedelta(days=1))
    assert {i.code for i in early} == {"alpha1", "beta22"}


@pytest.mark.asyncio
async def test_statistics(service):
    now = datetime.now(UTC)
    await service.create(code="usable", max_uses=2)
    await service.create(code="usedup", max_uses=1)
    await service.create(code="disabled", status=InviteCodeStatus.DISABLED)
    await service.create(code="expired", expires_at=now - timedelta(minutes=1))
    await service.redeem("usable")
    await service.redeem("usedup")

    stats = await service.statistics(now)
    assert stats == {
        "total": 4,
        "enabled": 3,
        "disabled": 1,
        "usable": 1,
        "exhausted": 1,
        "expired": 1,
        "total_used": 2,
    }
