import asyncio
from typing import Any, Awaitable, Callable, Optional, Tuple
from urllib.parse import quote

from loguru import logger

from embr_build_client.models import (
    AttemptKind,
    BuildConfig,
    Outcome,
    PollAttempt,
    PollOutcome,
    StatusKind,
    TriggerResult,
)
from embr_build_client.status import interpret
from embr_build_client.transport import Transport

POLL_HEADERS = {"Accept": "application/json"}

_TERMINAL_OUTCOMES = {
    StatusKind.succeeded: Outcome.succeeded,
    StatusKind.failed: Outcome.failed,
}


class BuildPoller:
    """Polls a started build at a fixed interval until it finishes or the attempt budget runs out.

    Failed requests count as an attempt but never end the loop.
    """

    def __init__(
        self,
        transport: Transport,
        config: BuildConfig,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        on_status_change: Optional[Callable[[PollAttempt], Awaitable[Any]]] = None,
    ):
        self.transport = transport
        self.config = config
        self.sleep = sleep
        self.on_status_change = on_status_change
        self.logger = logger

    def status_url(self, build_id: str) -> str:
        build_path = quote(build_id, safe="")
        return f"{self.config.endpoint_base}/projects/{self.config.project_id}/builds/{build_path}"

    async def _poll_once(self, url: str, index: int) -> Tuple[PollAttempt, Any]:
        outcome = await self.transport.send(
            "GET", url, headers=POLL_HEADERS, timeout_ms=self.config.request_timeout_ms
        )
        if not outcome.ok:
            self.logger.warning(f"Attempt {index}: error polling status: {outcome}")
            return PollAttempt(index=index, kind=AttemptKind.transient, error=str(outcome)), None

        status = interpret(outcome.body, self.config.vocabulary)
        if status.is_terminal:
            kind = AttemptKind.terminal
        else:
            kind = AttemptKind.continue_
        if status == StatusKind.unknown:
            self.logger.warning(f"Attempt {index}: unreadable status response: {outcome.body!r}")
        else:
            self.logger.info(f"Attempt {index}: build status is {status.value}")
        return PollAttempt(index=index, kind=kind, status=status), outcome.body

    async def _handle_status_change(
        self, attempt: PollAttempt, last_status: Optional[StatusKind]
    ) -> None:
        """Invoke the status change callback if the status has changed"""
        if attempt.status is None or attempt.status == last_status:
            return
        self.logger.debug(f"Build status changed to {attempt.status.value}")
        if self.on_status_change is not None:
            await self.on_status_change(attempt)

    async def _wait_before_retry(self, index: int) -> None:
        self.logger.debug(
            f"Build not finished after attempt {index}/{self.config.max_attempts}, "
            f"waiting {self.config.poll_interval_seconds}s before next attempt"
        )
        await self.sleep(self.config.poll_interval_seconds)

    async def poll(self, handle: TriggerResult) -> PollOutcome:
        """Poll the build's status endpoint until a terminal status or the budget is exhausted"""
        loop = asyncio.get_running_loop()
        start_time = loop.time()
        url = self.status_url(handle.build_id)
        attempts = []
        last_payload = None
        last_status = handle.immediate_status

        self.logger.info(f"Polling build {handle.build_id} at: {url}")
        self.logger.debug(
            f"Polling for at most {self.config.max_attempts} attempts "
            f"(worst case {self.config.worst_case_seconds:.0f}s)"
        )
        for index in range(1, self.config.max_attempts + 1):
            attempt, body = await self._poll_once(url, index)
            attempts.append(attempt)
            await self._handle_status_change(attempt, last_status)

            if attempt.status is not None:
                last_status = attempt.status
            if isinstance(body, dict):
                last_payload = body

            if attempt.kind == AttemptKind.terminal:
                return PollOutcome(
                    outcome=_TERMINAL_OUTCOMES[attempt.status],
                    raw_response=body,
                    attempts=attempts,
                    elapsed_time=loop.time() - start_time,
                )

            if index < self.config.max_attempts:
                await self._wait_before_retry(index)

        self.logger.warning(
            f"Build {handle.build_id} did not finish within {self.config.max_attempts} attempts"
        )
        return PollOutcome(
            outcome=Outcome.timed_out,
            raw_response=last_payload,
            attempts=attempts,
            elapsed_time=loop.time() - start_time,
        )
