import asyncio

from build_server import BuildServer
from embr_build_client.build_client import EmbrBuildClient
from embr_build_client.models import BuildConfig, RefKind, RepositoryContext
from embr_build_client.reporter import result_outputs


async def status_changed(attempt):
    print(f"Attempt {attempt.index}: status changed to {attempt.status.value}")


async def main():
    PORT = 8000
    server = BuildServer(completion_time=20.0, error_rate=0.05)
    await server.start(port=PORT)
    print(f"Server started on http://localhost:{PORT}")

    config = BuildConfig(
        endpoint_base=f"http://localhost:{PORT}",
        project_id="demo",
        poll_interval_seconds=2.0,
        max_attempts=15,
        request_timeout_ms=5000,
    )
    context = RepositoryContext(
        full_repository="octo/demo",
        ref="main",
        ref_kind=RefKind.branch,
        branch_or_tag="main",
        commit_sha="0123456789abcdef0123456789abcdef01234567",
    )

    client = EmbrBuildClient(config, on_status_change=status_changed)

    try:
        result = await client.run(context)
        for name, value in result_outputs(result).items():
            print(f"{name}: {value}")
    except Exception as e:
        print(f"Error occurred: {e}")

    await asyncio.sleep(1)


if __name__ == "__main__":
    asyncio.run(main())
