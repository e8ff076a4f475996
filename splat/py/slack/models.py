from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field


class SlackPayload(BaseModel):
    """This payload is documented in Slack's command API.

    Slack doesn't send every field on every request (the enterprise ones only
    show up on Enterprise Grid, for instance), so everything defaults to an
    empty string and unknown keys are dropped.

    See:
    https://api.slack.com/interactivity/slash-commands#app_command_handling"""
    model_config = ConfigDict(frozen=True, extra="ignore")

    token: str = ""
    team_id: str = ""
    team_domain: str = ""
    enterprise_id: str = ""
    enterprise_name: str = ""
    channel_id: str = ""
    channel_name: str = ""
    user_id: str = ""
    user_name: str = ""
    command: str = ""
    text: str = ""
    response_url: str = ""
    trigger_id: str = ""
    api_app_id: str = ""


class Reference(BaseModel):
    """The `{"id": ..., "name": ...}` blocks Slack nests inside action
    payloads for the team, channel and user."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = ""
    name: str = ""
    domain: str = ""


class SelectedOption(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    value: str = ""


class ActionItem(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = ""
    type: str = ""
    value: str = ""
    selected_options: List[SelectedOption] = []


class ActionPayload(BaseModel):
    """Sent when a user clicks a button or picks a menu option on a message
    that was posted with interactive attachments.

    See:
    https://api.slack.com/legacy/interactive-messages"""
    model_config = ConfigDict(frozen=True, extra="ignore")

    type: str = ""
    callback_id: str = ""
    action_ts: str = ""
    message_ts: str = ""
    attachment_id: str = ""
    token: str = ""
    response_url: str = ""
    trigger_id: str = ""
    is_app_unfurl: bool = False
    team: Reference = Reference()
    channel: Reference = Reference()
    user: Reference = Reference()
    actions: List[ActionItem] = []


class AttachmentField(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str = ""
    value: str = ""
    short: bool = False


class AttachmentAction(BaseModel):
    """A button or menu on a legacy interactive attachment."""
    model_config = ConfigDict(frozen=True)

    name: str = ""
    text: str = ""
    type: str = ""
    value: str = ""
    style: str = ""


class Attachment(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    fallback: str = ""
    title: str = ""
    title_link: str = ""
    color: str = ""
    author_name: str = ""
    author_link: str = ""
    author_icon: str = ""
    pretext: str = ""
    text: str = ""
    fields: List[AttachmentField] = []
    image_url: str = ""
    thumb_url: str = ""
    footer: str = ""
    footer_icon: str = ""
    mrkdwn_in: List[str] = []
    timestamp: int = Field(0, alias="ts")
    callback_id: str = ""
    actions: List[AttachmentAction] = []


class Response(BaseModel):
    """The message sent back to Slack, either as the body of the command
    request or POSTed to the request's `response_url`.

    Anything left at its default is omitted from the JSON, Slack treats a
    missing key and an empty one differently in a few places (an empty
    `attachments` list wipes the original message's attachments when
    replacing it)."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    text: str = ""
    response_type: str = ""
    markdown: bool = Field(False, alias="mrkdwn")
    replace_original: bool = False
    delete_original: bool = False
    attachments: List[Attachment] = []

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_defaults=True)
