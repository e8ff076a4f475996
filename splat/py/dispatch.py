import asyncio
import logging

from enum import Enum
from typing import Optional

from fastapi import BackgroundTasks
from fastapi import Response as HTTPResponse
from fastapi.responses import JSONResponse

from splat.py.registry import Command, CommandRegistry
from splat.py.slack.client import DeliveryError, ResponseUrlClient
from splat.py.slack.models import Response, SlackPayload

logger = logging.getLogger("uvicorn")


class DispatchMode(str, Enum):
    # answer in the body of the command request
    SYNC = "sync"
    # ack right away, answer later through the response_url
    ASYNC = "async"


def render_response(response: Optional[Response]) -> HTTPResponse:
    """Writes a handler's reply as the HTTP response to Slack. No reply is
    still a 200, just with nothing in it."""
    if response is None:
        return HTTPResponse(status_code=200)
    return JSONResponse(response.to_payload(), status_code=200)


class Dispatcher:
    """Routes a verified `SlackPayload` to its command handler.

    In sync mode the handler runs while Slack waits, and whatever it returns
    becomes the body of the HTTP response. In async mode the request is
    acknowledged straight away and the handler runs as a background task
    after the response has gone out; its reply is POSTed to the payload's
    `response_url`. Background runs are fire-and-forget: nothing joins them,
    failures are only logged. `run_deferred` is what that task awaits, so it
    can be awaited directly when the outcome matters.

    A command nobody registered isn't an error, Slack just gets an empty 200."""

    def __init__(
        self,
        commands: CommandRegistry,
        client: ResponseUrlClient,
        mode: DispatchMode = DispatchMode.SYNC,
        handler_timeout: Optional[float] = None
    ):
        self.commands = commands
        self.client = client
        self.mode = DispatchMode(mode)
        self.handler_timeout = handler_timeout

    def lookup(self, payload: SlackPayload) -> Optional[Command]:
        command = self.commands.get(payload.command)
        if command is None:
            logger.info(f"No handler for command {payload.command!r}, ignoring")
        return command

    async def _run(
        self,
        command: Command,
        payload: SlackPayload
    ) -> Optional[Response]:
        if self.handler_timeout is None:
            response = await command.invoke(payload)
        else:
            response = await asyncio.wait_for(
                command.invoke(payload),
                timeout=self.handler_timeout
            )
        if response is not None and not isinstance(response, Response):
            raise TypeError(
                f"{command!r} returned {type(response).__name__}, "
                "expected a Response or None"
            )
        return response

    async def run_inline(
        self,
        command: Command,
        payload: SlackPayload
    ) -> Optional[Response]:
        """Runs the handler and returns its reply. Handler errors (and
        timeouts) propagate to the caller."""
        return await self._run(command, payload)

    async def run_deferred(
        self,
        command: Command,
        payload: SlackPayload
    ) -> Optional[Response]:
        """Runs the handler and delivers its reply to the response_url.

        Returns the handler's reply, or None when the handler failed or had
        nothing to say. Delivery is attempted once."""
        try:
            response = await self._run(command, payload)
        except asyncio.TimeoutError:
            logger.error(
                f"{command!r} timed out after {self.handler_timeout}s, "
                "no reply sent"
            )
            return None
        except Exception:
            logger.exception(f"{command!r} failed, no reply sent")
            return None

        try:
            await self.client.post_response(payload.response_url, response)
        except DeliveryError:
            logger.exception(f"Couldn't deliver reply for {command!r}")
        return response

    async def dispatch(
        self,
        payload: SlackPayload,
        background_tasks: BackgroundTasks
    ) -> Optional[Response]:
        """Returns the reply to write to the HTTP response, which is always
        None in async mode."""
        command = self.lookup(payload)
        if command is None:
            return None

        if self.mode == DispatchMode.ASYNC:
            background_tasks.add_task(self.run_deferred, command, payload)
            return None
        return await self.run_inline(command, payload)
