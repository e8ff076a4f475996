import urllib.parse

from typing import Dict, Union

from splat.py.slack.models import SlackPayload


class FormDecodeError(ValueError):
    """Raised when a command body can't be decoded at all"""


def parse_form(body: Union[str, bytes]) -> Dict[str, str]:
    """Splits an `application/x-www-form-urlencoded` body into a dict.

    Pairs are split on the first `=` only, so values may contain `=`. Pairs
    without any `=` and empty segments are skipped rather than failing the
    whole body. When a key repeats, the last value wins."""
    fields = {}
    try:
        if isinstance(body, bytes):
            body = body.decode("utf-8")
        for pair in body.split("&"):
            key, sep, value = pair.partition("=")
            if not sep:
                continue
            key = urllib.parse.unquote_plus(key, errors="strict")
            fields[key] = urllib.parse.unquote_plus(value, errors="strict")
    except UnicodeDecodeError as e:
        raise FormDecodeError(f"body is not valid UTF-8: {e}") from e
    return fields


def decode_form(body: Union[str, bytes]) -> SlackPayload:
    """Decodes a slash command body into a `SlackPayload`.

    Only the fields Slack documents are kept, anything missing is left empty.
    A successful decode says nothing about whether the command is one we
    actually handle."""
    return SlackPayload.model_validate(parse_form(body))
