"""Branch naming for task workspaces.

Names follow conventional-commit types: ``<type>/<slug>``. The name comes from
the first of these that yields a valid result:

1. an explicit ``{type, slug}`` hint supplied by the calling agent,
2. AI inference through a ``NamingClient``, when one is supplied,
3. a deterministic name built from the task id and title.

Invalid hints and failed AI calls are logged and fall through to the next
stage; ``generate_branch_name`` never raises.
"""

import json
import logging
import re
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from transmute.constants import BRANCH_TYPES, DEFAULT_SLUG_LENGTH
from transmute.models import BranchNameHint, BranchNameResult, BranchType, TaskContext

logger = logging.getLogger(__name__)

FALLBACK_SLUG = "task"
NAMING_SESSION_TITLE = "transmute: branch naming"
AI_RESPONSE_PREFIX = '{"type": "'

_PROMPT_TEMPLATE = """\
Generate a git branch name for the task below.

Reply with a single JSON object and nothing else:
{{"type": "<one of: {types}>", "slug": "<3-6 lowercase words joined by hyphens, max {max_length} chars>"}}

Task id: {id}
Title: {title}
Description: {description}
Priority: {priority}
Suggested type: {type}

{prefix}"""


class BranchNamingError(Exception):
    """AI naming produced nothing usable."""


class NamingClient(Protocol):
    """Text-generation backend used for branch naming.

    Each naming request runs in its own short-lived conversation so that it
    never touches the caller's conversation.
    """

    def create_session(self, title: str) -> str: ...

    def prompt(self, session_id: str, text: str) -> str: ...

    def delete_session(self, session_id: str) -> None: ...


class OpenCodeClient:
    """NamingClient backed by a local OpenCode server's HTTP API."""

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:4096",
        *,
        directory: str | None = None,
        timeout_seconds: float = 60.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._params = {"directory": directory} if directory else {}
        self._client = httpx.Client(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds, connect=5.0),
            transport=transport,
        )

    def create_session(self, title: str) -> str:
        response = self._client.post("/session", json={"title": title}, params=self._params)
        response.raise_for_status()
        return response.json()["id"]

    def prompt(self, session_id: str, text: str) -> str:
        response = self._client.post(
            f"/session/{session_id}/message",
            json={"parts": [{"type": "text", "text": text}]},
            params=self._params,
        )
        response.raise_for_status()
        parts = response.json().get("parts", [])
        return "".join(part.get("text", "") for part in parts if part.get("type") == "text")

    def delete_session(self, session_id: str) -> None:
        response = self._client.delete(f"/session/{session_id}", params=self._params)
        response.raise_for_status()

    def close(self) -> None:
        self._client.close()


def sanitize_branch_name(name: str, max_length: int = DEFAULT_SLUG_LENGTH) -> str:
    """Lowercase, keep only ``[a-z0-9-/]``, collapse and trim hyphens, truncate."""
    name = re.sub(r"[^a-z0-9\-/]", "-", name.lower())
    name = re.sub(r"-+", "-", name).strip("-")
    return name[:max_length].strip("-")


def _slugify(text: str, max_length: int) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug[:max_length].strip("-")


def _strip_id_prefix(task_id: str, title: str) -> str:
    """Drop one leading occurrence of the task id from the title."""
    if not task_id:
        return title
    pattern = rf"^\s*{re.escape(task_id)}(?:[\s:\-]+|$)"
    return re.sub(pattern, "", title, count=1, flags=re.IGNORECASE)


def generate_fallback_branch_name(
    context: TaskContext,
    max_length: int = DEFAULT_SLUG_LENGTH,
    default_type: BranchType = "feat",
) -> BranchNameResult:
    """Deterministic ``<type>/<task-id>-<slugified-title>``."""
    branch_type = context.type if context.type in BRANCH_TYPES else default_type
    title = _strip_id_prefix(context.id, context.title)
    slug = _slugify(f"{context.id}-{title}", max_length) or FALLBACK_SLUG
    return BranchNameResult(branch=f"{branch_type}/{slug}", type=branch_type, slug=slug)


def _result_from_hint(hint: BranchNameHint | dict, max_length: int) -> BranchNameResult | None:
    if isinstance(hint, dict):
        try:
            hint = BranchNameHint.model_validate(hint)
        except ValidationError:
            return None
    slug = sanitize_branch_name(hint.slug, max_length)
    if not slug:
        return None
    return BranchNameResult(branch=f"{hint.type}/{slug}", type=hint.type, slug=slug)


def _candidate_payloads(text: str) -> Iterator[str]:
    cleaned = text.strip()
    fenced = re.search(r"```(?:json)?\s*(.*?)```", cleaned, re.DOTALL)
    if fenced:
        cleaned = fenced.group(1).strip()
    yield cleaned
    yield AI_RESPONSE_PREFIX + cleaned
    yield "{" + cleaned
    embedded = re.search(r"\{.*\}", cleaned, re.DOTALL)
    if embedded:
        yield embedded.group(0)


def parse_branch_name_response(text: str) -> BranchNameHint:
    """Parse an AI reply into a hint.

    Accepts a bare JSON object, one wrapped in a code fence, or the
    continuation of the ``{"type": "`` prefix the prompt ends with.
    """
    for payload in _candidate_payloads(text):
        try:
            data: Any = json.loads(payload)
        except json.JSONDecodeError:
            continue
        if not isinstance(data, dict):
            continue
        try:
            return BranchNameHint.model_validate(data)
        except ValidationError as e:
            raise BranchNamingError(f"Invalid branch name in response: {e}") from e
    raise BranchNamingError(f"Could not parse branch name response: {text[:200]!r}")


@contextmanager
def ephemeral_session(client: NamingClient, title: str = NAMING_SESSION_TITLE) -> Iterator[str]:
    """Open a throwaway conversation and always delete it afterwards."""
    session_id = client.create_session(title)
    try:
        yield session_id
    finally:
        try:
            client.delete_session(session_id)
        except Exception as e:
            logger.warning("Failed to delete naming session", extra={"session_id": session_id, "error": str(e)})


def build_naming_prompt(context: TaskContext, max_length: int = DEFAULT_SLUG_LENGTH) -> str:
    return _PROMPT_TEMPLATE.format(
        types=", ".join(BRANCH_TYPES),
        max_length=max_length,
        id=context.id,
        title=context.title,
        description=context.description or "(none)",
        priority=context.priority or "(none)",
        type=context.type or "(none)",
        prefix=AI_RESPONSE_PREFIX,
    )


def generate_branch_name_with_ai(
    context: TaskContext,
    client: NamingClient,
    max_length: int = DEFAULT_SLUG_LENGTH,
) -> BranchNameResult:
    """Ask the AI backend for a name. Raises on any failure."""
    with ephemeral_session(client) as session_id:
        reply = client.prompt(session_id, build_naming_prompt(context, max_length))
    hint = parse_branch_name_response(reply)
    result = _result_from_hint(hint, max_length)
    if result is None:
        raise BranchNamingError(f"AI slug {hint.slug!r} is empty after sanitizing")
    return result


def generate_branch_name(
    context: TaskContext,
    hint: BranchNameHint | dict | None = None,
    client: NamingClient | None = None,
    max_length: int = DEFAULT_SLUG_LENGTH,
    default_type: BranchType = "feat",
) -> BranchNameResult:
    if hint is not None:
        result = _result_from_hint(hint, max_length)
        if result is not None:
            return result
        logger.warning("Ignoring invalid branch name hint", extra={"task_id": context.id, "hint": str(hint)})

    if client is not None:
        try:
            return generate_branch_name_with_ai(context, client, max_length)
        except Exception as e:
            logger.warning(
                "AI branch naming failed, using fallback",
                extra={"task_id": context.id, "error": str(e)},
            )

    return generate_fallback_branch_name(context, max_length, default_type)
