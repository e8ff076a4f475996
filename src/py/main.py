import argparse
import logging

import uvicorn

from splat.py.main import SlackApp, get_settings
from splat.py.slack.models import (
    ActionPayload, Attachment, AttachmentAction, AttachmentField, Response,
    SlackPayload
)

logger = logging.getLogger("uvicorn")


class CommandArgumentParser(argparse.ArgumentParser):
    """Slash command text is user input, a bad one gets a usage reply
    rather than exiting the process."""

    def error(self, message):
        raise argparse.ArgumentError(None, message)


def create_parser():
    parser = CommandArgumentParser(
        prog="/ticket",
        description="Parse ticket request command",
        add_help=False,
        exit_on_error=False
    )
    parser.add_argument("-v", dest="verbose", action="store_true")
    parser.add_argument("-p", dest="private", action="store_true")
    parser.add_argument("ticket")
    return parser


async def ping(payload: SlackPayload) -> Response:
    return Response(text="pong", response_type="ephemeral")


async def ticket_info(payload: SlackPayload) -> Response:
    """This responds to the following Slack command:

    /ticket [-v] [-p] TICKET

    * -v - verbose mode, return more info about the ticket
    * -p - show the information privately to requester, rather than publicly
    * TICKET - a number/identifier for the ticket"""
    parser = create_parser()
    if not payload.text.strip():
        return Response(text=f"Usage: {parser.format_usage()}",
                        response_type="ephemeral")
    try:
        command_args, _ = parser.parse_known_args(payload.text.split())
    except argparse.ArgumentError as e:
        return Response(text=f"Usage: {parser.format_usage()}{e}",
                        response_type="ephemeral")

    fields = [AttachmentField(title="Ticket", value=command_args.ticket,
                              short=True)]
    if command_args.verbose:
        fields.extend([
            AttachmentField(title="Requested by", value=payload.user_name,
                            short=True),
            AttachmentField(title="Channel", value=payload.channel_name,
                            short=True)
        ])

    return Response(
        text=f"Ticket {command_args.ticket}",
        response_type="ephemeral" if command_args.private else "in_channel",
        attachments=[
            Attachment(
                fallback=f"Ticket {command_args.ticket}",
                callback_id="approve",
                color="#3cba54",
                fields=fields,
                actions=[
                    AttachmentAction(name="approve", text="Approve",
                                     type="button", value="approve",
                                     style="primary"),
                    AttachmentAction(name="approve", text="Reject",
                                     type="button", value="reject",
                                     style="danger")
                ],
                mrkdwn_in=["text"]
            )
        ]
    )


def create_app(slack: SlackApp):
    slack.register_command("/ping", ping)
    slack.register_command("/ticket", ticket_info)

    @slack.action("approve", "approve")
    async def approve(payload: ActionPayload):
        chosen = ", ".join(a.value for a in payload.actions) or "nothing"
        logger.info(f"{payload.user.name} picked {chosen}")
        await slack.reply(
            payload.response_url,
            Response(text=f"<@{payload.user.id}> picked {chosen}",
                     replace_original=False)
        )

    app = slack.build()

    @app.get("/")
    async def root():
        """Returns info about this bot."""
        return {"name": "splat-bot", "version": "1.0"}

    return app


def main():
    parser = argparse.ArgumentParser(description="Run the example Slack bot")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()

    app = create_app(SlackApp.from_settings(get_settings()))
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
