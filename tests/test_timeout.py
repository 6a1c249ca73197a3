import asyncio
import pytest
from unittest.mock import MagicMock, patch
from plan_guard.errors import OperationTimeoutError
from plan_guard.timeout import TimeoutManager, with_timeout

# ---------------------------------------------------------------------------
# with_timeout
# ---------------------------------------------------------------------------

async def _value_after(delay: float, value):
    await asyncio.sleep(delay)
    return value

async def _boom():
    raise RuntimeError("boom")

def test_with_timeout_returns_value():
    result = asyncio.run(with_timeout(_value_after(0, 42), timeout_ms=500, operation_name="fast"))
    assert result == 42

def test_with_timeout_propagates_operation_error():
    with pytest.raises(RuntimeError, match="boom"):
        asyncio.run(with_timeout(_boom(), timeout_ms=500, operation_name="boom"))

def test_with_timeout_expires_and_fires_hook():
    on_timeout = MagicMock()

    async def scenario():
        await with_timeout(
            _value_after(1, "late"),
            timeout_ms=20,
            operation_name="slow op",
            on_timeout=on_timeout,
        )

    with pytest.raises(OperationTimeoutError) as exc_info:
        asyncio.run(scenario())

    assert 'Operation "slow op" timed out after 20ms' in str(exc_info.value)
    assert exc_info.value.aborted is False
    assert exc_info.value.timeout_ms == 20
    on_timeout.assert_called_once()

def test_operation_timeout_error_is_builtin_timeout():
    with pytest.raises(TimeoutError):
        asyncio.run(with_timeout(_value_after(1, None), timeout_ms=10, operation_name="slow"))

@patch("plan_guard.timeout.display")
def test_with_timeout_reports_expiry_through_display(mock_display):
    with pytest.raises(OperationTimeoutError):
        asyncio.run(with_timeout(_value_after(1, None), timeout_ms=10, operation_name="slow"))
    mock_display.operation_timeout.assert_called_once_with("slow", 10)

def test_with_timeout_pre_set_signal_never_starts_operation():
    started = MagicMock()

    async def operation():
        started()
        return "ran"

    async def scenario():
        signal = asyncio.Event()
        signal.set()
        await with_timeout(operation(), timeout_ms=500, operation_name="cancelled", cancel_signal=signal)

    with pytest.raises(OperationTimeoutError) as exc_info:
        asyncio.run(scenario())

    assert exc_info.value.aborted is True
    started.assert_not_called()

def test_with_timeout_abort_signal_mid_flight():
    on_timeout = MagicMock()

    async def scenario():
        signal = asyncio.Event()
        asyncio.get_running_loop().call_later(0.02, signal.set)
        await with_timeout(
            _value_after(1, None),
            timeout_ms=5000,
            operation_name="abortable",
            on_timeout=on_timeout,
            cancel_signal=signal,
        )

    with pytest.raises(OperationTimeoutError, match="was aborted") as exc_info:
        asyncio.run(scenario())

    assert exc_info.value.aborted is True
    on_timeout.assert_not_called()

def test_timed_out_operation_is_abandoned_not_cancelled():
    finished = []

    async def slow():
        await asyncio.sleep(0.05)
        finished.append(True)

    async def scenario():
        with pytest.raises(OperationTimeoutError):
            await with_timeout(slow(), timeout_ms=10, operation_name="abandoned")
        await asyncio.sleep(0.1)

    asyncio.run(scenario())
    assert finished == [True]

# ---------------------------------------------------------------------------
# TimeoutManager
# ---------------------------------------------------------------------------

def test_manager_tracks_and_releases_operations():
    manager = TimeoutManager()

    async def scenario():
        task = asyncio.ensure_future(
            manager.execute("op-1", _value_after(0.02, "done"), timeout_ms=500, operation_name="tracked")
        )
        await asyncio.sleep(0)
        assert manager.is_active("op-1")
        assert manager.active_operations() == ["op-1"]
        return await task

    assert asyncio.run(scenario()) == "done"
    assert manager.active_operations() == []

def test_manager_abort_by_id():
    manager = TimeoutManager()

    async def scenario():
        task = asyncio.ensure_future(
            manager.execute("op-1", _value_after(1, None), timeout_ms=5000, operation_name="tracked")
        )
        await asyncio.sleep(0)
        assert manager.abort("op-1") is True
        with pytest.raises(OperationTimeoutError) as exc_info:
            await task
        return exc_info.value

    error = asyncio.run(scenario())
    assert error.aborted is True
    assert manager.abort("op-1") is False

def test_manager_abort_all():
    manager = TimeoutManager()

    async def scenario():
        tasks = [
            asyncio.ensure_future(
                manager.execute(f"op-{i}", _value_after(1, None), timeout_ms=5000, operation_name="tracked")
            )
            for i in range(3)
        ]
        await asyncio.sleep(0)
        manager.abort_all()
        return await asyncio.gather(*tasks, return_exceptions=True)

    results = asyncio.run(scenario())
    assert all(isinstance(r, OperationTimeoutError) and r.aborted for r in results)
    assert manager.active_operations() == []

def test_manager_rejects_duplicate_active_id():
    manager = TimeoutManager()

    async def scenario():
        first = asyncio.ensure_future(
            manager.execute("dup", _value_after(0.02, 1), timeout_ms=500, operation_name="first")
        )
        await asyncio.sleep(0)
        with pytest.raises(ValueError, match="already active"):
            await manager.execute("dup", _value_after(0, 2), timeout_ms=500, operation_name="second")
        return await first

    assert asyncio.run(scenario()) == 1
