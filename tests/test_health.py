import aiohttp
import pytest

from iotexec.health import HealthReporter, HealthServer


@pytest.mark.asyncio
async def test_health_reporter_snapshot():
    reporter = HealthReporter()

    await reporter.update("mqtt", True)
    await reporter.update("exec", False, "awaiting transport")

    snapshot = await reporter.snapshot()

    assert snapshot["status"] == "degraded"
    component_list = snapshot.get("components", [])
    assert isinstance(component_list, list)
    components = {item["name"]: item for item in component_list}
    assert components["mqtt"]["healthy"] is True
    assert components["exec"]["healthy"] is False
    assert components["exec"]["detail"] == "awaiting transport"


@pytest.mark.asyncio
async def test_health_reporter_tracks_loop_state_and_outcomes():
    reporter = HealthReporter()

    await reporter.set_loop_state("processing")
    await reporter.record_outcome("sent")
    await reporter.record_outcome("failed", "failed: spawn_failure")
    await reporter.record_outcome("failed", "failed: transport_send_error")

    snapshot = await reporter.snapshot()

    assert snapshot["status"] == "ok"
    assert snapshot["messages"] == {"sent": 1, "failed": 2}
    loop_state = snapshot.get("loopState")
    assert loop_state is not None
    assert loop_state["state"] == "processing"
    components = {item["name"]: item for item in snapshot["components"]}
    assert components["exec"]["detail"] == "failed: transport_send_error"


@pytest.mark.asyncio
async def test_health_server_serves_snapshot(unused_tcp_port):
    reporter = HealthReporter()
    await reporter.update("mqtt", True)

    host = "127.0.0.1"
    port = unused_tcp_port
    server = HealthServer(reporter, host, port)
    await server.start()

    try:
        async with aiohttp.ClientSession() as session:
            async with session.get(f"http://{host}:{port}/healthz") as response:
                payload = await response.json()
                assert response.status == 200
                assert payload["status"] == "ok"

            await reporter.update("mqtt", False, "disconnected (rc=7)")
            async with session.get(f"http://{host}:{port}/healthz") as response:
                assert response.status == 503
    finally:
        await server.stop()
