import asyncio
import inspect

from typing import Awaitable, Callable, Dict, List, Optional, Union

from starlette.concurrency import run_in_threadpool

from splat.py.slack.models import ActionPayload, Response, SlackPayload

CommandHandler = Callable[
    [SlackPayload],
    Union[Optional[Response], Awaitable[Optional[Response]]]
]
ActionHandler = Callable[[ActionPayload], Union[None, Awaitable[None]]]

DEFAULT_ACTION_CAPACITY = 5


class CapacityError(Exception):
    """Exception for registering an action when the table is full"""


class DuplicateActionError(Exception):
    """Exception for registering two actions on the same endpoint"""


class RegistrationClosedError(Exception):
    """Exception for registering anything after the app started serving"""


def _is_async(handler: Callable) -> bool:
    return inspect.iscoroutinefunction(handler) or inspect.iscoroutinefunction(
        getattr(handler, "__call__", None)
    )


async def _call(handler: Callable, arg):
    # plain functions run in the threadpool so they can't stall the loop
    if _is_async(handler):
        return await handler(arg)
    result = await run_in_threadpool(handler, arg)
    if asyncio.iscoroutine(result):
        result = await result
    return result


class Command:
    def __init__(self, name: str, handler: CommandHandler):
        self.name = name
        self.handler = handler

    async def invoke(self, payload: SlackPayload) -> Optional[Response]:
        return await _call(self.handler, payload)

    def __repr__(self) -> str:
        return f"Command({self.name!r})"


class Action:
    def __init__(self, callback_id: str, endpoint: str, handler: ActionHandler):
        self.callback_id = callback_id
        self.endpoint = endpoint
        self.handler = handler

    async def invoke(self, payload: ActionPayload) -> None:
        await _call(self.handler, payload)

    def __repr__(self) -> str:
        return f"Action({self.callback_id!r}, {self.endpoint!r})"


class _Registry:
    closed: bool = False

    def close(self):
        self.closed = True

    def _check_open(self):
        if self.closed:
            raise RegistrationClosedError(
                "handlers must be registered before the app starts serving"
            )


class CommandRegistry(_Registry):
    """Slash commands keyed by their name as Slack sends it (`/ping`, with
    the slash). Registering a name twice replaces the earlier handler."""

    def __init__(self):
        self._commands: Dict[str, Command] = {}

    def register(self, name: str, handler: CommandHandler) -> Command:
        self._check_open()
        command = Command(name, handler)
        self._commands[name] = command
        return command

    def get(self, name: str) -> Optional[Command]:
        return self._commands.get(name)

    def __len__(self) -> int:
        return len(self._commands)


class ActionRegistry(_Registry):
    """A bounded table of interactive actions, each served on its own
    endpoint. A full table refuses new entries instead of replacing one."""

    def __init__(self, capacity: int = DEFAULT_ACTION_CAPACITY):
        self.capacity = capacity
        self._actions: List[Action] = []

    def register(
        self,
        callback_id: str,
        endpoint: str,
        handler: ActionHandler
    ) -> Action:
        self._check_open()
        if len(self._actions) >= self.capacity:
            raise CapacityError(
                f"cannot add another action (exceeded limit of {self.capacity})"
            )

        endpoint = endpoint.strip("/")
        if not endpoint:
            raise ValueError("action endpoint must not be empty")
        if any(a.endpoint == endpoint for a in self._actions):
            raise DuplicateActionError(
                f"an action is already registered on endpoint {endpoint!r}"
            )

        action = Action(callback_id, endpoint, handler)
        self._actions.append(action)
        return action

    def __iter__(self):
        return iter(list(self._actions))

    def __len__(self) -> int:
        return len(self._actions)
