import asyncio
import random
from datetime import datetime
from typing import Any, List, Optional

from aiohttp import web
from loguru import logger


class Reply:
    """One canned response: a JSON body (or raw text or bytes), an HTTP status and an optional delay."""

    def __init__(self, body: Any = None, status: int = 200, delay: float = 0.0, text: Optional[str] = None, raw: Optional[bytes] = None):
        self.body = body
        self.status = status
        self.delay = delay
        self.text = text
        self.raw = raw

    async def render(self) -> web.Response:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.raw is not None:
            return web.Response(body=self.raw, status=self.status, content_type="application/json")
        if self.text is not None:
            return web.Response(text=self.text, status=self.status)
        return web.json_response(self.body, status=self.status)


class BuildServer:
    """Fake Embr API.

    Status polls replay ``status_replies`` in order (the last one repeats). With
    no script the build stays pending until ``completion_time`` has passed and
    fails at random with probability ``error_rate``.
    """

    def __init__(
        self,
        trigger_reply: Optional[Reply] = None,
        status_replies: Optional[List[Reply]] = None,
        completion_time: float = 10.0,
        error_rate: float = 0.0,
    ):
        self.trigger_reply = trigger_reply or Reply({"build": {"id": "b1", "status": "Queued"}})
        self.status_replies = list(status_replies or [])
        self.completion_time = completion_time
        self.error_rate = error_rate
        self.start_time = None
        self.requests = []
        self.poll_count = 0
        self.runner = None
        self.app = web.Application()
        self.app.router.add_post("/projects/{project_id}/builds", self.handle_trigger)
        self.app.router.add_post(
            "/projects/{project_id}/environments/{environment_id}/builds/upload",
            self.handle_trigger,
        )
        self.app.router.add_get("/projects/{project_id}/builds/{build_id}", self.handle_status)
        self.logger = logger

    async def _record(self, request: web.Request) -> None:
        self.requests.append(
            {
                "method": request.method,
                "path": request.path,
                "headers": dict(request.headers),
                "body": await request.read(),
            }
        )

    async def handle_trigger(self, request: web.Request) -> web.Response:
        await self._record(request)
        self.start_time = datetime.now()
        self.logger.info(f"Build triggered via {request.path}")
        return await self.trigger_reply.render()

    async def handle_status(self, request: web.Request) -> web.Response:
        await self._record(request)
        self.poll_count += 1
        build_id = request.match_info["build_id"]

        if self.status_replies:
            index = min(self.poll_count, len(self.status_replies)) - 1
            return await self.status_replies[index].render()

        if self.start_time is None:
            self.start_time = datetime.now()

        if random.random() < self.error_rate:
            self.logger.info("Returning failed status")
            return web.json_response({"build": {"id": build_id, "status": "Failed"}})

        elapsed = (datetime.now() - self.start_time).total_seconds()
        if elapsed >= self.completion_time:
            self.logger.info("Returning succeeded status")
            return web.json_response(
                {
                    "build": {"id": build_id, "buildNumber": self.poll_count, "status": "Succeeded"},
                    "deployment": {"url": f"https://{build_id}.embr.example", "status": "Running"},
                }
            )
        self.logger.info(f"Returning running status (elapsed: {elapsed:.1f}s)")
        return web.json_response({"build": {"id": build_id, "status": "Running"}})

    async def start(self, port: int = 8080):
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, "localhost", port)
        await site.start()
        self.logger.info(f"Server started on port {port}")
        return site

    async def stop(self) -> None:
        if self.runner is not None:
            await self.runner.cleanup()
            self.runner = None
