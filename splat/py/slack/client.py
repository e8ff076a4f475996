import asyncio

from typing import Optional

import aiohttp

from splat.py.slack.models import Response


class DeliveryError(Exception):
    """Exception for a response that couldn't be delivered to Slack"""


class ResponseUrlClient:
    """Posts deferred replies to the `response_url` Slack hands out with each
    command and action. Nothing is retried, a failed POST raises
    `DeliveryError` and it's up to the caller to decide what happens next."""
    session: aiohttp.ClientSession = None
    timeout: float = 10.0

    def configure(self, timeout: Optional[float] = None):
        if timeout is not None:
            self.timeout = timeout
        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout)
        )

    async def cleanup(self):
        if self.session is not None:
            await self.session.close()
            self.session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.configure()
        return self.session

    async def post_response(
        self,
        url: str,
        response: Optional[Response]
    ) -> bool:
        """POSTs `response` to `url` as JSON.

        A `None` response means there's nothing to say, so no request is made
        and this returns False. Returns True once Slack accepted the message."""
        if response is None:
            return False
        if not isinstance(response, Response):
            raise TypeError(
                f"expected a Response, got {type(response).__name__}"
            )
        if not url:
            raise DeliveryError("no response_url to deliver to")

        headers = {"content-type": "application/json"}
        try:
            async with self._get_session().post(
                url,
                json=response.to_payload(),
                headers=headers
            ) as rsp:
                if rsp.status >= 400:
                    text = await rsp.text()
                    raise DeliveryError(
                        f"response_url returned {rsp.status}: {text}"
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DeliveryError(f"POST to response_url failed: {e}") from e
        return True
