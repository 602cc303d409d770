"""Prompt templates for reply drafting and todo extraction."""

from __future__ import annotations

from datetime import date
from textwrap import dedent

from draftwatch.core.models import ReplyContext

_APPROVAL_PHRASES = (
    "approved",
    "looks good",
    "go ahead",
    "let's move to next phase",
    "proceed",
    "sounds good",
    "I am happy with this",
    "ready for next step",
    "move forward",
    "all set",
)


def build_reply_prompt(message: str, context: ReplyContext) -> str:
    """Compose a JSON-only prompt asking for a structured reply."""
    approvals = ", ".join(f'"{phrase}"' for phrase in _APPROVAL_PHRASES)

    instructions = f"""
    You are an assistant for a creative studio replying to its clients.
    Respond ONLY with a JSON object using this schema, with no extra text:
    {{
      "subject": string,     # reply subject line
      "body": string,        # reply body without the closing or signature
      "closing": string,     # e.g. "Best regards,"
      "signature": string,   # sender signature
      "trigger": "client_approved" | "client_left_feedback" | null
    }}

    Write in a {context.tone} tone using the "{context.template}" template.
    Address the client as {context.client_name} and sign as {context.signature}.

    Set trigger to "client_approved" when the client clearly approves or wants
    to move forward (for example {approvals}).
    Set trigger to "client_left_feedback" when the client gives feedback
    without clear approval, otherwise null.
    """

    return f"{dedent(instructions).strip()}\n\nClient message:\n{message.strip()}"


def build_todo_prompt(message: str, *, today: date) -> str:
    """Compose a JSON-only prompt asking for action items."""
    instructions = f"""
    Extract the action items the recipient must do from the client email below.
    Respond ONLY with a JSON array, with no extra text:
    [
      {{
        "task": string,          # imperative, at most 120 characters
        "dueDate": string|null,  # YYYY-MM-DD when a deadline is stated
        "confidence": number     # between 0 and 1
      }}
    ]

    Today is {today.strftime("%A")} {today.isoformat()}; resolve relative
    deadlines such as "by Friday" to a calendar date.
    Return [] when the email asks for nothing.
    """

    return f"{dedent(instructions).strip()}\n\nEmail:\n{message.strip()}"


__all__ = ["build_reply_prompt", "build_todo_prompt"]
