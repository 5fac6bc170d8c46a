"""
End-to-end tests over an in-process embedded runtime.
"""

import asyncio

import pytest

from embedlink.channel import Channel, ContextRegistry
from embedlink.exceptions import CallTimeoutError, RemoteProcedureError
from embedlink.transport.bus import MessageBus
from embedlink.transport.frame import Container, FrameState, LocalFrame
from embedlink.transport.guest import EmbeddedRuntime

ADDRESS = "https://example.com/embedded?clientId=cid123"


@pytest.fixture
def runtime():
    runtime = EmbeddedRuntime()

    @runtime.procedure("getUserStatus")
    def get_user_status(params):
        return {"status": "LOGGED_OUT"}

    @runtime.procedure()
    async def delayed_echo(params):
        await asyncio.sleep(params["delay"])
        return params["value"]

    @runtime.procedure("getInitVariables")
    def get_init_variables(params):
        return runtime.init_variables

    @runtime.procedure("fail")
    def fail(params):
        raise ValueError("wallet not initialized")

    return runtime


@pytest.fixture
def channel(runtime):
    return Channel(
        "local-frame",
        ADDRESS,
        initializer=lambda: {"clientId": "cid123", "authCookie": None},
        frame_factory=LocalFrame.factory(runtime),
        bus=MessageBus(),
        registry=ContextRegistry(),
    )


@pytest.mark.asyncio
async def test_round_trip(channel):
    """Test a call before readiness resolves once the runtime boots"""
    status = await channel.call("getUserStatus")

    assert status == {"status": "LOGGED_OUT"}
    assert channel.is_ready
    await channel.close()


@pytest.mark.asyncio
async def test_init_variables_delivered_once(channel, runtime):
    """Test the runtime sees the init payload before any call"""
    async with channel:
        variables = await channel.call("getInitVariables")

    assert variables == {"clientId": "cid123", "authCookie": None}
    assert runtime.init_count == 1


@pytest.mark.asyncio
async def test_concurrent_calls_resolve_out_of_order(channel):
    """Test responses finishing in reverse order reach the right callers"""
    async with channel:
        results = await asyncio.gather(
            channel.call("delayed_echo", {"delay": 0.05, "value": "slow"}),
            channel.call("delayed_echo", {"delay": 0.0, "value": "fast"}),
        )

    assert results == ["slow", "fast"]


@pytest.mark.asyncio
async def test_remote_exception(channel):
    """Test a raising procedure surfaces as RemoteProcedureError"""
    async with channel:
        with pytest.raises(RemoteProcedureError, match="wallet not initialized"):
            await channel.call("fail")


@pytest.mark.asyncio
async def test_unknown_procedure(channel):
    """Test calling an unregistered procedure"""
    async with channel:
        with pytest.raises(RemoteProcedureError, match="Unknown procedure: missing"):
            await channel.call("missing")


@pytest.mark.asyncio
async def test_mounted_frame(runtime):
    """Test the frame is attached under the container and removed on close"""
    container = Container("modal-root")
    channel = Channel(
        "mounted",
        ADDRESS,
        mount_point=container,
        styles={"border": "none"},
        frame_factory=LocalFrame.factory(runtime),
        bus=MessageBus(),
        registry=ContextRegistry(),
    )

    async with channel:
        frame = container.get_element_by_id("mounted")
        assert frame is channel.frame
        assert frame.styles == {"border": "none"}
        assert frame.state == FrameState.LOADED

    assert len(container) == 0
    assert frame.state == FrameState.REMOVED


@pytest.mark.asyncio
async def test_silent_runtime_never_ready(runtime):
    """Test a frame that never announces readiness keeps calls queued"""
    channel = Channel(
        "silent",
        ADDRESS,
        frame_factory=LocalFrame.factory(runtime, announce_ready=False),
        bus=MessageBus(),
        registry=ContextRegistry(),
    )
    task = asyncio.create_task(channel.call("getUserStatus", timeout=0.05))

    with pytest.raises(CallTimeoutError):
        await task
    assert runtime.received == []
    await channel.close()


@pytest.mark.asyncio
async def test_target_origin_mismatch_dropped(runtime):
    """Test post_message only delivers to the matching origin"""
    frame = LocalFrame("f", ADDRESS, MessageBus(), runtime=runtime)
    await frame.load()

    frame.post_message({"correlationId": "1", "procedureName": "getUserStatus"}, "https://evil.example")
    await asyncio.sleep(0.01)
    assert runtime.received == []

    frame.post_message({"correlationId": "1", "procedureName": "getUserStatus"}, "*")
    await asyncio.sleep(0.01)
    assert runtime.received == [
        {"correlationId": "1", "procedureName": "getUserStatus", "params": None}
    ]
    await frame.remove()
