import json

import pytest

from fastapi.testclient import TestClient

from splat.py.main import SlackApp
from src.py.main import create_app

from slack_helpers import SECRET, signed_headers


@pytest.fixture
def bot(monkeypatch):
    slack = SlackApp(SECRET)
    posts = []

    async def fake_post(url, response):
        posts.append((url, response))
        return True

    monkeypatch.setattr(slack.client, "post_response", fake_post)
    with TestClient(create_app(slack)) as client:
        yield client, posts


def command(client, body):
    return client.post("/slack/command", content=body,
                       headers=signed_headers(body))


def test_index(bot):
    client, _ = bot
    assert client.get("/").json() == {"name": "splat-bot", "version": "1.0"}


def test_ping(bot):
    client, _ = bot
    rsp = command(client, "command=%2Fping&user_id=U1")
    assert rsp.json() == {"text": "pong", "response_type": "ephemeral"}


def test_ticket_verbose(bot):
    client, _ = bot
    rsp = command(
        client,
        "command=%2Fticket&text=-v+1234&user_name=roadrunner"
        "&channel_name=general"
    )

    body = rsp.json()
    assert body["text"] == "Ticket 1234"
    assert body["response_type"] == "in_channel"
    attachment = body["attachments"][0]
    assert attachment["callback_id"] == "approve"
    assert [f["title"] for f in attachment["fields"]] == [
        "Ticket", "Requested by", "Channel"
    ]
    assert [a["value"] for a in attachment["actions"]] == ["approve", "reject"]


def test_ticket_private(bot):
    client, _ = bot
    body = command(client, "command=%2Fticket&text=-p+99").json()

    assert body["response_type"] == "ephemeral"
    assert len(body["attachments"][0]["fields"]) == 1


def test_ticket_without_args_shows_usage(bot):
    client, _ = bot
    body = command(client, "command=%2Fticket&text=").json()

    assert body["text"].startswith("Usage: ")
    assert body["response_type"] == "ephemeral"


def test_approve_action_replies_to_response_url(bot):
    client, posts = bot
    body = json.dumps({
        "callback_id": "approve",
        "actions": [{"name": "approve", "value": "reject"}],
        "user": {"id": "U1", "name": "roadrunner"},
        "response_url": "https://hooks.slack.com/actions/T1/1/abc",
    })

    rsp = client.post(
        "/slack/command/approve",
        content=body,
        headers=signed_headers(body, content_type="application/json")
    )

    assert rsp.status_code == 200
    assert len(posts) == 1
    url, response = posts[0]
    assert url == "https://hooks.slack.com/actions/T1/1/abc"
    assert response.text == "<@U1> picked reject"


def test_ticket_missing_number_shows_usage(bot):
    client, _ = bot
    rsp = command(client, "command=%2Fticket&text=-v")

    assert rsp.status_code == 200
    body = rsp.json()
    assert body["text"].startswith("Usage: ")
    assert "ticket" in body["text"]
    assert body["response_type"] == "ephemeral"
