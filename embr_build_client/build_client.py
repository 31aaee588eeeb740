import asyncio
from typing import Any, Awaitable, Callable, Optional

import aiohttp
from loguru import logger

from embr_build_client.models import (
    BuildConfig,
    BuildMode,
    BuildResult,
    PollAttempt,
    RepositoryContext,
    TriggerResult,
)
from embr_build_client.poller import BuildPoller
from embr_build_client.reporter import build_log_url, report
from embr_build_client.transport import Transport
from embr_build_client.trigger import resolve_branch, trigger_build, trigger_upload


class EmbrBuildClient:
    def __init__(
        self,
        config: BuildConfig,
        on_status_change: Optional[Callable[[PollAttempt], Awaitable[Any]]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config
        self.on_status_change = on_status_change
        self.sleep = sleep
        self.logger = logger

    async def _trigger(
        self, transport: Transport, context: RepositoryContext
    ) -> TriggerResult:
        if self.config.mode == BuildMode.upload:
            return await trigger_upload(
                transport,
                self.config,
                self.config.environment_id,
                self.config.artifact_path,
            )
        branch = resolve_branch(context)
        self.logger.info(f"Using branch name: {branch}")
        return await trigger_build(transport, self.config, branch, context.commit_sha)

    async def run(self, context: RepositoryContext) -> BuildResult:
        """Trigger a build for ``context`` and wait until it finishes or polling gives up.

        Trigger failures raise; Failed and TimedOut builds are returned as results.
        """
        async with aiohttp.ClientSession() as session:
            transport = Transport(session)
            handle = await self._trigger(transport, context)
            self.logger.info(f"Build {handle.build_id} created")
            log_url = build_log_url(
                self.config.endpoint_base, self.config.project_id, handle.build_id
            )

            if handle.immediate_status is not None and handle.immediate_status.is_terminal:
                self.logger.info(
                    f"Build {handle.build_id} finished immediately: {handle.immediate_status.value}"
                )
                return report(handle, log_url=log_url)

            poller = BuildPoller(
                transport,
                self.config,
                sleep=self.sleep,
                on_status_change=self.on_status_change,
            )
            outcome = await poller.poll(handle)

        self.logger.info(
            f"Build {handle.build_id} {outcome.outcome.value} after "
            f"{len(outcome.attempts)} attempts ({outcome.elapsed_time:.1f}s)"
        )
        return report(handle, outcome, log_url=log_url)
