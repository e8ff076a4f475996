from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Optional

import asyncio
import logging

from fastapi import BackgroundTasks, FastAPI, Request
from fastapi import Response as HTTPResponse
from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from splat.py.dispatch import Dispatcher, DispatchMode, render_response
from splat.py.registry import (
    DEFAULT_ACTION_CAPACITY,
    Action,
    ActionHandler,
    ActionRegistry,
    Command,
    CommandHandler,
    CommandRegistry,
)
from splat.py.slack.client import ResponseUrlClient
from splat.py.slack.form import FormDecodeError, decode_form, parse_form
from splat.py.slack.models import ActionPayload, Response
from splat.py.slack.util import VerificationStatus, verify_signature

logger = logging.getLogger("uvicorn")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env")

    slack_signing_secret: str
    endpoint: str = "/slack/command"
    dispatch_mode: DispatchMode = DispatchMode.SYNC
    action_capacity: int = DEFAULT_ACTION_CAPACITY
    response_timeout: float = 10.0
    handler_timeout: Optional[float] = None


@lru_cache
def get_settings() -> Settings:
    return Settings()


class MalformedBodyError(Exception):
    """Exception for an action request whose body isn't shaped like one"""


class SlackApp:
    """Receives slash commands and interactive actions from Slack.

    Register every command and action first, then call `build()` to get the
    FastAPI application to serve. Registration is closed once `build()` has
    been called, the routes for actions are fixed at that point and the
    registries are read concurrently by every request afterwards.

    The only thing the app needs to know about Slack is the signing secret;
    every request is checked against it (and against the 5 minute replay
    window) before anything else looks at the body."""

    def __init__(
        self,
        signing_secret: str,
        endpoint: str = "/slack/command",
        mode: DispatchMode = DispatchMode.SYNC,
        action_capacity: int = DEFAULT_ACTION_CAPACITY,
        response_timeout: float = 10.0,
        handler_timeout: Optional[float] = None
    ):
        self.signing_secret = signing_secret
        self.endpoint = "/" + endpoint.strip("/")
        self.response_timeout = response_timeout
        self.commands = CommandRegistry()
        self.actions = ActionRegistry(action_capacity)
        self.client = ResponseUrlClient()
        self.client.timeout = response_timeout
        self.dispatcher = Dispatcher(
            self.commands,
            self.client,
            mode=mode,
            handler_timeout=handler_timeout
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "SlackApp":
        return cls(
            settings.slack_signing_secret,
            endpoint=settings.endpoint,
            mode=settings.dispatch_mode,
            action_capacity=settings.action_capacity,
            response_timeout=settings.response_timeout,
            handler_timeout=settings.handler_timeout
        )

    def register_command(self, name: str, handler: CommandHandler) -> Command:
        """Routes the slash command `name` (as Slack sends it, e.g. `/ping`)
        to `handler`. A later registration of the same name replaces this
        one."""
        return self.commands.register(name, handler)

    def register_action(
        self,
        callback_id: str,
        endpoint: str,
        handler: ActionHandler
    ) -> Action:
        """Serves `handler` at `<endpoint>/<action endpoint>` for the
        interactive messages sent with `callback_id`. Raises `CapacityError`
        once the action table is full."""
        return self.actions.register(callback_id, endpoint, handler)

    def command(self, name: str):
        def decorator(handler: CommandHandler) -> CommandHandler:
            self.register_command(name, handler)
            return handler
        return decorator

    def action(self, callback_id: str, endpoint: str):
        def decorator(handler: ActionHandler) -> ActionHandler:
            self.register_action(callback_id, endpoint, handler)
            return handler
        return decorator

    async def reply(self, url: str, response: Optional[Response]) -> bool:
        """Sends `response` to a response_url outside of the usual command
        flow, e.g. from an action handler. Raises `DeliveryError` on
        failure."""
        return await self.client.post_response(url, response)

    def _verified(self, request: Request, body: bytes) -> bool:
        req_ts = request.headers.get("x-slack-request-timestamp")
        req_sig = request.headers.get("x-slack-signature")
        logger.debug(f"x-slack-request-timestamp={req_ts}")
        logger.debug(f"x-slack-signature={req_sig}")

        sig_ver = verify_signature(self.signing_secret, body, req_sig, req_ts)
        if sig_ver == VerificationStatus.VERIFIED:
            return True
        if sig_ver == VerificationStatus.OUTDATED_REQUEST:
            logger.warning(
                f"Old Slack call received on {request.url.path}. "
                "Possible replay attack seen!"
            )
        else:
            logger.warning(
                f"Slack call on {request.url.path} could not be verified: "
                f"{sig_ver.name}"
            )
        return False

    async def handle_command(
        self,
        request: Request,
        background_tasks: BackgroundTasks
    ) -> HTTPResponse:
        body = await request.body()
        logger.debug(body)

        if not self._verified(request, body):
            return HTTPResponse(status_code=400)

        try:
            payload = decode_form(body)
        except FormDecodeError:
            logger.exception("Couldn't decode slash command body")
            if self.dispatcher.mode == DispatchMode.ASYNC:
                # nothing would be sent back anyway, just ack it
                return HTTPResponse(status_code=200)
            return HTTPResponse(status_code=500)

        try:
            response = await self.dispatcher.dispatch(payload, background_tasks)
        except asyncio.TimeoutError:
            logger.error(
                f"Handler for {payload.command!r} timed out after "
                f"{self.dispatcher.handler_timeout}s"
            )
            return HTTPResponse(status_code=500)
        except Exception:
            logger.exception(f"Handler for {payload.command!r} failed")
            return HTTPResponse(status_code=500)

        return render_response(response)

    def _action_json(self, request: Request, body: bytes) -> bytes:
        if not body:
            raise MalformedBodyError("empty body")

        content_type = request.headers.get("content-type", "")
        if not content_type.startswith("application/x-www-form-urlencoded"):
            return body

        # this is how Slack actually delivers them: payload=<json>
        try:
            form = parse_form(body)
        except FormDecodeError as e:
            raise MalformedBodyError(str(e)) from e
        if "payload" not in form:
            raise MalformedBodyError("form body has no payload field")
        return form["payload"].encode("utf-8")

    async def _run_action(self, action: Action, payload: ActionPayload):
        try:
            await action.invoke(payload)
        except Exception:
            logger.exception(f"{action!r} failed")

    def _action_route(self, action: Action):
        async def handle_action(
            request: Request,
            background_tasks: BackgroundTasks
        ) -> HTTPResponse:
            body = await request.body()
            logger.debug(body)

            if not self._verified(request, body):
                return HTTPResponse(status_code=400)

            try:
                raw = self._action_json(request, body)
            except MalformedBodyError as e:
                logger.warning(f"Malformed body for {action!r}: {e}")
                return HTTPResponse(status_code=400)

            try:
                payload = ActionPayload.model_validate_json(raw)
            except ValidationError:
                logger.exception(f"Couldn't decode payload for {action!r}")
                return HTTPResponse(status_code=500)

            if payload.callback_id and payload.callback_id != action.callback_id:
                logger.info(
                    f"Callback {payload.callback_id!r} doesn't match "
                    f"{action!r}, ignoring"
                )
                return HTTPResponse(status_code=200)

            background_tasks.add_task(self._run_action, action, payload)
            return HTTPResponse(status_code=200)

        return handle_action

    def build(self) -> FastAPI:
        """Closes registration and returns the app serving the command
        endpoint and one endpoint per registered action."""
        self.commands.close()
        self.actions.close()

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            self.client.configure(self.response_timeout)
            yield
            await self.client.cleanup()

        app = FastAPI(lifespan=lifespan)
        app.add_api_route(
            self.endpoint,
            self.handle_command,
            methods=["POST"]
        )
        for action in self.actions:
            app.add_api_route(
                f"{self.endpoint.rstrip('/')}/{action.endpoint}",
                self._action_route(action),
                methods=["POST"]
            )
        return app
