from __future__ import annotations

import asyncio
from dataclasses import replace

from conftest import FAST_SETTINGS
from privhelper_client.core.models import (
    ModeAction,
    OrchestratorState,
    Outcome,
    PendingInstall,
    RecoveryContext,
    ServiceStatus,
)


def test_install_without_mode(make_harness) -> None:
    h = make_harness()

    result = asyncio.run(h.orchestrator.request_install())

    assert result.outcome is Outcome.OK
    assert h.non_status_commands() == ["install"]
    assert h.cache.current().status is ServiceStatus.STOPPED
    assert h.orchestrator.state is OrchestratorState.IDLE
    assert h.orchestrator.pending_install is None
    assert not h.orchestrator.is_busy
    assert h.guides == []
    assert ("info", "Success", "Service installed successfully") in h.notices


def test_install_with_pending_mode_starts_and_enables(make_harness) -> None:
    h = make_harness()
    seen_pending: list[PendingInstall | None] = []
    h.orchestrator.subscribe(lambda _snap: seen_pending.append(h.orchestrator.pending_install))

    result = asyncio.run(h.orchestrator.request_install(ModeAction.SYSTEM_PROXY))

    assert result.outcome is Outcome.OK
    assert h.channel.calls == [
        ("install",),
        ("restart-core",),
        ("start",),
        ("restart-core",),
        ("set-system-proxy", "on"),
    ]
    assert h.modes.is_enabled(ModeAction.SYSTEM_PROXY)
    assert h.cache.current().status is ServiceStatus.RUNNING
    assert PendingInstall(ModeAction.SYSTEM_PROXY) in seen_pending
    assert h.orchestrator.pending_install is None


def test_install_states_are_sequential(make_harness) -> None:
    h = make_harness()
    states: list[OrchestratorState] = []
    h.orchestrator.subscribe(lambda snap: states.append(snap.state))

    asyncio.run(h.orchestrator.request_install(ModeAction.TUN))

    deduped = [s for i, s in enumerate(states) if i == 0 or states[i - 1] is not s]
    assert deduped == [
        OrchestratorState.INSTALLING,
        OrchestratorState.VERIFYING_INSTALL,
        OrchestratorState.STARTING_FOR_MODE,
        OrchestratorState.IDLE,
    ]


def test_install_timeout_offers_manual_recovery_once(make_harness) -> None:
    h = make_harness(settings=replace(FAST_SETTINGS, install_timeout_s=0.02))
    h.channel.delays["install"] = 0.1

    async def scenario():
        result = await h.orchestrator.request_install(ModeAction.TUN)
        after_flow = h.cache.current()
        # The abandoned install finishes in the background.
        await asyncio.sleep(0.15)
        eventual = await h.cache.refetch()
        return result, after_flow, eventual

    result, after_flow, eventual = asyncio.run(scenario())

    assert result.outcome is Outcome.TIMED_OUT
    assert h.orchestrator.state is OrchestratorState.IDLE
    assert h.orchestrator.pending_install is None
    assert [g.context for g in h.guides] == [RecoveryContext.INSTALL]
    assert "start" not in h.channel.commands()
    assert not h.modes.is_enabled(ModeAction.TUN)
    assert after_flow.status is ServiceStatus.NOT_INSTALLED
    assert eventual.status is ServiceStatus.STOPPED
    assert any("UAC" in message for _kind, _title, message in h.notices)


def test_install_failure_offers_manual_recovery(make_harness) -> None:
    h = make_harness()
    h.channel.fail("install", "access denied")

    result = asyncio.run(h.orchestrator.request_install())

    assert result.outcome is Outcome.FAILED
    assert result.error == "access denied"
    assert [g.context for g in h.guides] == [RecoveryContext.INSTALL]
    assert h.orchestrator.state is OrchestratorState.IDLE
    assert h.notices[-1][0] == "error"
    assert "access denied" in h.notices[-1][2]


def test_second_install_while_installing_is_rejected(make_harness) -> None:
    h = make_harness()
    h.channel.delays["install"] = 0.05

    async def scenario():
        first = asyncio.ensure_future(h.orchestrator.request_install())
        await asyncio.sleep(0.01)
        assert h.orchestrator.state is OrchestratorState.INSTALLING
        assert h.orchestrator.is_busy
        second = await h.orchestrator.request_install()
        uninstall = await h.orchestrator.request_uninstall()
        return await first, second, uninstall

    first, second, uninstall = asyncio.run(scenario())

    assert first.outcome is Outcome.OK
    assert second.outcome is Outcome.BUSY
    assert uninstall.outcome is Outcome.BUSY
    assert h.channel.commands().count("install") == 1
    assert "uninstall" not in h.channel.commands()


def test_verification_exhaustion_is_soft(make_harness) -> None:
    h = make_harness()
    # Helper still registering: status keeps reporting "not installed".
    h.channel.fail("status", "executable not found")

    result = asyncio.run(h.orchestrator.request_install(ModeAction.TUN))

    assert result.outcome is Outcome.OK
    assert h.non_status_commands() == ["install", "start", "set-tun"]
    assert h.channel.status_calls >= FAST_SETTINGS.verify_attempts


def test_mode_start_failure_does_not_roll_back_install(make_harness) -> None:
    h = make_harness()
    h.channel.fail("start", "service refused to start")

    result = asyncio.run(h.orchestrator.request_install(ModeAction.SYSTEM_PROXY))

    assert result.outcome is Outcome.FAILED
    assert "uninstall" not in h.channel.commands()
    assert "set-system-proxy" not in h.channel.commands()
    assert h.guides == []
    assert h.cache.current().status is ServiceStatus.STOPPED
    assert h.orchestrator.pending_install is None


def test_mode_toggle_timeout_after_install(make_harness) -> None:
    h = make_harness(settings=replace(FAST_SETTINGS, toggle_timeout_s=0.02))
    h.channel.delays["set-tun"] = 0.1

    result = asyncio.run(h.orchestrator.request_install(ModeAction.TUN))

    assert result.outcome is Outcome.TIMED_OUT
    assert h.guides == []
    assert h.orchestrator.state is OrchestratorState.IDLE


def test_cancel_during_verification_skips_pending_mode(make_harness) -> None:
    h = make_harness(settings=replace(FAST_SETTINGS, verify_attempts=100, verify_delay_s=0.01))
    h.channel.fail("status", "executable not found")

    async def scenario():
        flow = asyncio.ensure_future(h.orchestrator.request_install(ModeAction.TUN))
        while h.orchestrator.state is not OrchestratorState.VERIFYING_INSTALL:
            await asyncio.sleep(0.005)
        assert h.orchestrator.can_cancel
        assert h.orchestrator.cancel()
        assert not h.orchestrator.can_cancel
        return await flow

    result = asyncio.run(scenario())

    assert result.outcome is Outcome.OK
    assert "start" not in h.channel.commands()
    assert h.channel.status_calls < 100
    assert not h.orchestrator.cancel()


def test_uninstall_disables_modes_first_even_if_one_fails(make_harness) -> None:
    h = make_harness(status="stopped")

    async def scenario():
        await h.modes.set_enabled(ModeAction.SYSTEM_PROXY, True)
        await h.modes.set_enabled(ModeAction.TUN, True)
        h.channel.calls.clear()
        h.channel.fail("set-system-proxy", "proxy settings locked")
        return await h.orchestrator.request_uninstall()

    result = asyncio.run(scenario())

    assert result.outcome is Outcome.OK
    assert h.non_status_commands() == [
        "set-system-proxy",
        "set-tun",
        "uninstall",
    ]
    assert h.channel.calls[1] == ("set-tun", "off")
    assert not h.modes.is_enabled(ModeAction.TUN)
    assert h.cache.current().status is ServiceStatus.NOT_INSTALLED
    assert ("info", "Success", "Service uninstalled successfully") in h.notices


def test_uninstall_timeout_offers_manual_recovery(make_harness) -> None:
    h = make_harness(status="stopped", settings=replace(FAST_SETTINGS, uninstall_timeout_s=0.02))
    h.channel.delays["uninstall"] = 0.1

    result = asyncio.run(h.orchestrator.request_uninstall())

    assert result.outcome is Outcome.TIMED_OUT
    assert [g.context for g in h.guides] == [RecoveryContext.UNINSTALL]
    assert h.orchestrator.state is OrchestratorState.IDLE


def test_uninstall_failure_offers_manual_recovery(make_harness) -> None:
    h = make_harness(status="stopped")
    h.channel.fail("uninstall", "service is marked for deletion")

    result = asyncio.run(h.orchestrator.request_uninstall())

    assert result.outcome is Outcome.FAILED
    assert [g.context for g in h.guides] == [RecoveryContext.UNINSTALL]


def test_start_and_stop(make_harness) -> None:
    h = make_harness(status="stopped")

    async def scenario():
        started = await h.orchestrator.request_start()
        running = h.cache.current().status
        stopped = await h.orchestrator.request_stop()
        return started, running, stopped

    started, running, stopped = asyncio.run(scenario())

    assert started.ok and stopped.ok
    assert running is ServiceStatus.RUNNING
    assert h.cache.current().status is ServiceStatus.STOPPED
    assert h.guides == []


def test_start_failure_is_reported(make_harness) -> None:
    h = make_harness(status="stopped")
    h.channel.fail("start", "unit masked")

    result = asyncio.run(h.orchestrator.request_start())

    assert result.outcome is Outcome.FAILED
    assert h.notices[-1] == ("error", "Error", "Failed to start: unit masked")
    assert h.guides == []


def test_install_timeout_is_picked_up_by_background_polling(make_harness) -> None:
    h = make_harness(
        settings=replace(FAST_SETTINGS, install_timeout_s=0.02, status_interval_s=0.05)
    )
    h.channel.delays["install"] = 0.1

    async def scenario():
        h.cache.start()
        result = await h.orchestrator.request_install()
        after_flow = h.cache.current()
        await asyncio.sleep(0.25)
        eventual = h.cache.current()
        await h.cache.close()
        return result, after_flow, eventual

    result, after_flow, eventual = asyncio.run(scenario())

    assert result.outcome is Outcome.TIMED_OUT
    assert after_flow.status is ServiceStatus.NOT_INSTALLED
    assert eventual.status is ServiceStatus.STOPPED


def test_install_for_mode_turns_service_mode_on(make_harness) -> None:
    h = make_harness()

    asyncio.run(h.orchestrator.request_install(ModeAction.TUN))

    assert h.modes.service_mode is True


def test_install_without_mode_leaves_service_mode_off(make_harness) -> None:
    h = make_harness()

    asyncio.run(h.orchestrator.request_install())

    assert h.cache.current().status is ServiceStatus.STOPPED
    assert h.modes.service_mode is False


def test_uninstall_turns_service_mode_off(make_harness) -> None:
    h = make_harness(status="running")
    h.modes.set_service_mode(True)

    result = asyncio.run(h.orchestrator.request_uninstall())

    assert result.outcome is Outcome.OK
    assert h.cache.current().status is ServiceStatus.NOT_INSTALLED
    assert h.modes.service_mode is False


def test_hanging_core_restart_does_not_hold_the_lifecycle_lock(make_harness) -> None:
    h = make_harness(settings=replace(FAST_SETTINGS, toggle_timeout_s=0.02))
    h.channel.delays["restart-core"] = 0.3

    async def scenario():
        loop = asyncio.get_running_loop()
        started = loop.time()
        result = await h.orchestrator.request_install()
        elapsed = loop.time() - started
        busy = h.orchestrator.is_busy
        await asyncio.sleep(0.35)
        return result, elapsed, busy

    result, elapsed, busy = asyncio.run(scenario())

    assert result.outcome is Outcome.OK
    assert elapsed < 0.3
    assert busy is False
    assert h.orchestrator.state is OrchestratorState.IDLE
    assert ("info", "Success", "Service installed successfully") in h.notices
