import asyncio

import pytest

from vivarium.config.schema import Config
from vivarium.session.errors import CreationError, ManagerClosedError, ValidationError
from vivarium.session.manager import SessionManager
from vivarium.session.types import SessionState


# =============================================================================
# get_or_create / get
# =============================================================================

@pytest.mark.asyncio
async def test_repeat_request_returns_same_session_and_refreshes(manager, clock):
    """Second request: same created_at, later last_accessed_at."""
    first = await manager.get_or_create_session("s1")
    created, accessed = first.created_at_ms, first.last_accessed_at_ms
    clock.advance(1_500)

    second = await manager.get_or_create_session("s1")

    assert second == first
    assert second.created_at_ms == created
    assert second.last_accessed_at_ms == accessed + 1_500


@pytest.mark.asyncio
async def test_concurrent_requests_initialize_once(manager, factory):
    factory.init_delay = 0.01

    views = await asyncio.gather(*(manager.get_or_create_session("new") for _ in range(10)))

    assert factory.initialize_calls == 1
    assert len({v.created_at_ms for v in views}) == 1
    assert all(v == views[0] for v in views)
    assert manager.active_session_count() == 1


@pytest.mark.asyncio
async def test_get_session_does_not_create(manager, factory):
    assert manager.get_session("ghost") is None
    assert factory.calls == 0


@pytest.mark.asyncio
async def test_last_accessed_is_monotonic_across_lookups(manager, clock):
    view = await manager.get_or_create_session("s1")
    seen = []
    for step in (10, 0, 250, 5):
        clock.advance(step)
        manager.get_session("s1")
        seen.append(view.last_accessed_at_ms)

    assert seen == sorted(seen)


@pytest.mark.asyncio
@pytest.mark.parametrize("bad_id", ["", None, 42])
async def test_invalid_ids_are_rejected(manager, bad_id):
    with pytest.raises(ValidationError):
        await manager.get_or_create_session(bad_id)
    with pytest.raises(ValidationError):
        manager.get_session(bad_id)


@pytest.mark.asyncio
async def test_whitespace_id_is_an_ordinary_id(manager):
    view = await manager.get_or_create_session("  ")

    assert view.id == "  "
    assert manager.get_session("  ") == view


# =============================================================================
# creation failures
# =============================================================================

@pytest.mark.asyncio
async def test_creation_failure_leaves_no_entry_and_retries(manager, factory):
    factory.fail_initialize = True

    with pytest.raises(CreationError) as exc_info:
        await manager.get_or_create_session("bad")

    assert exc_info.value.session_id == "bad"
    assert manager.get_session("bad") is None
    assert manager.active_session_count() == 0

    factory.fail_initialize = False
    view = await manager.get_or_create_session("bad")

    assert view.is_active
    assert factory.calls == 2


# =============================================================================
# removal
# =============================================================================

@pytest.mark.asyncio
async def test_remove_missing_returns_false(manager):
    assert await manager.remove_session("missing") is False


@pytest.mark.asyncio
async def test_remove_tears_down_and_is_idempotent(manager, factory):
    view = await manager.get_or_create_session("s1")

    assert await manager.remove_session("s1") is True
    assert await manager.remove_session("s1") is False

    env = factory.created[0]
    assert env.terminate_calls == 1
    assert env.release_calls == 1
    assert view.state is SessionState.TERMINATED
    assert manager.get_session("s1") is None


@pytest.mark.asyncio
async def test_remove_absorbs_teardown_errors(manager, factory):
    factory.fail_teardown = True
    await manager.get_or_create_session("s1")

    assert await manager.remove_session("s1") is True

    report = manager.teardown_reports[-1]
    assert report.reason == "removed"
    assert [e.step for e in report.errors] == ["terminate", "release"]


@pytest.mark.asyncio
async def test_recreate_after_removal_builds_fresh_session(manager, factory, clock):
    old = await manager.get_or_create_session("s1")
    await manager.remove_session("s1")
    clock.advance(10)

    new = await manager.get_or_create_session("s1")

    assert new != old
    assert new.created_at_ms == old.created_at_ms + 10
    assert factory.calls == 2


@pytest.mark.asyncio
async def test_count_matches_registry_through_operations(manager):
    for sid in ("a", "b", "c"):
        await manager.get_or_create_session(sid)
    assert manager.active_session_count() == 3 == len(manager.list_sessions())

    await manager.remove_session("b")
    await manager.remove_session("zzz")
    assert manager.active_session_count() == 2 == len(manager.list_sessions())


# =============================================================================
# observability
# =============================================================================

@pytest.mark.asyncio
async def test_list_sessions_reports_age_and_idle(manager, clock):
    await manager.get_or_create_session("s1")
    clock.advance_minutes(2)
    manager.get_session("s1")
    clock.advance_minutes(1)

    [info] = manager.list_sessions()

    assert info.id == "s1"
    assert info.age_minutes == pytest.approx(3)
    assert info.idle_minutes == pytest.approx(1)


@pytest.mark.asyncio
async def test_list_sessions_does_not_refresh(manager, clock):
    view = await manager.get_or_create_session("s1")
    before = view.last_accessed_at_ms
    clock.advance(5_000)

    manager.list_sessions()

    assert view.last_accessed_at_ms == before


@pytest.mark.asyncio
async def test_teardown_history_is_bounded(factory, clock):
    manager = SessionManager(factory, teardown_history=2, clock=clock)
    for sid in ("a", "b", "c"):
        await manager.get_or_create_session(sid)
        await manager.remove_session(sid)

    assert [r.session_id for r in manager.teardown_reports] == ["b", "c"]


@pytest.mark.asyncio
async def test_health(manager):
    await manager.get_or_create_session("s1")
    assert manager.health() == {"status": "healthy", "activeSessions": 1}

    await manager.shutdown()
    assert manager.health() == {"status": "shutting_down", "activeSessions": 0}


@pytest.mark.asyncio
async def test_execute_runs_in_session(manager, factory):
    result = await manager.execute("s1", "print('hi')")

    assert result.success
    assert factory.created[0].executed == ["print('hi')"]
    assert manager.active_session_count() == 1


# =============================================================================
# shutdown
# =============================================================================

@pytest.mark.asyncio
async def test_shutdown_tears_down_everything(manager, factory):
    await manager.start()
    for sid in ("a", "b", "c"):
        await manager.get_or_create_session(sid)

    await manager.shutdown()

    assert manager.active_session_count() == 0
    assert all(env.terminate_calls == 1 and env.release_calls == 1 for env in factory.created)
    assert not manager.sweeper.running


@pytest.mark.asyncio
async def test_shutdown_completes_even_if_every_teardown_fails(manager, factory):
    factory.fail_teardown = True
    for sid in ("a", "b"):
        await manager.get_or_create_session(sid)

    await manager.shutdown()

    assert manager.active_session_count() == 0
    assert len(manager.teardown_reports) == 2
    assert all(not r.ok for r in manager.teardown_reports)


@pytest.mark.asyncio
async def test_shutdown_waits_for_in_flight_creation(manager, factory):
    factory.init_delay = 0.02
    pending = asyncio.create_task(manager.get_or_create_session("late"))
    await asyncio.sleep(0)

    await manager.shutdown()

    view = await pending
    assert view.state is SessionState.TERMINATED
    assert manager.active_session_count() == 0
    assert factory.created[0].release_calls == 1


@pytest.mark.asyncio
async def test_closed_manager_rejects_new_sessions(manager):
    await manager.shutdown()

    with pytest.raises(ManagerClosedError):
        await manager.get_or_create_session("s1")
    with pytest.raises(ManagerClosedError):
        await manager.start()


@pytest.mark.asyncio
async def test_shutdown_twice_is_a_no_op(manager, factory):
    await manager.get_or_create_session("s1")

    await asyncio.gather(manager.shutdown(), manager.shutdown())
    await manager.shutdown()

    assert factory.created[0].release_calls == 1


@pytest.mark.asyncio
async def test_cancelled_shutdown_still_completes(manager, factory):
    await manager.get_or_create_session("a")
    factory.init_delay = 0.05
    waiter = asyncio.create_task(manager.get_or_create_session("b"))
    await asyncio.sleep(0)

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(manager.shutdown(), timeout=0.01)

    view = await waiter
    assert view.id == "b"

    await manager.shutdown()

    assert manager.active_session_count() == 0
    assert len(factory.created) == 2
    assert all(env.release_calls == 1 for env in factory.created)
    assert not manager.sweeper.running


@pytest.mark.asyncio
async def test_context_manager_starts_and_shuts_down(factory, clock):
    async with SessionManager(factory, clock=clock) as manager:
        assert manager.sweeper.running
        await manager.get_or_create_session("s1")

    assert manager.closed
    assert manager.active_session_count() == 0
    assert not manager.sweeper.running


@pytest.mark.asyncio
async def test_independent_instances_do_not_share_state(factory, clock):
    one = SessionManager(factory, clock=clock)
    two = SessionManager(factory, clock=clock)

    await one.get_or_create_session("s1")

    assert two.get_session("s1") is None
    assert two.active_session_count() == 0


def test_from_config_uses_configured_timeouts(factory):
    config = Config.model_validate({"sessions": {"idle_timeout_minutes": 3, "sweep_interval_s": 15}})

    manager = SessionManager.from_config(config, environment_factory=factory)

    assert manager.sweeper.idle_timeout_ms == 3 * 60 * 1000
    assert manager.sweeper.interval_s == 15
