from typing import AsyncGenerator, Callable, List

import pytest
import pytest_asyncio
from build_server import BuildServer
from embr_build_client.models import BuildConfig, RefKind, RepositoryContext

BASE_URL_TEMPLATE = "http://localhost:{}"


@pytest_asyncio.fixture
async def start_server(unused_tcp_port_factory) -> AsyncGenerator[Callable, None]:
    """Start BuildServer instances on random ports and stop them after the test."""
    servers: List[BuildServer] = []

    async def _start(**kwargs):
        port = unused_tcp_port_factory()
        server_instance = BuildServer(**kwargs)
        await server_instance.start(port=port)
        servers.append(server_instance)
        return server_instance, BASE_URL_TEMPLATE.format(port)

    try:
        yield _start
    finally:
        for server_instance in servers:
            await server_instance.stop()


@pytest.fixture
def make_config() -> Callable[..., BuildConfig]:
    """Build a fast-polling configuration against ``base_url``."""

    def _make(base_url: str, **overrides) -> BuildConfig:
        values = dict(
            endpoint_base=base_url,
            project_id="proj-1",
            poll_interval_seconds=0.05,
            max_attempts=5,
            request_timeout_ms=2000,
        )
        values.update(overrides)
        return BuildConfig(**values)

    return _make


@pytest.fixture
def repo_context() -> RepositoryContext:
    return RepositoryContext(
        full_repository="octo/app",
        ref="main",
        ref_kind=RefKind.branch,
        branch_or_tag="main",
        commit_sha="a" * 40,
        actor="octocat",
        event_name="push",
        run_id="42",
    )

