"""
Default task handler.

Echoes the text of the user's message back as a ``response.txt`` artifact, one
word-chunk at a time, and checks for cancellation between chunks. An empty
message asks the caller for input instead.
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, List

from .a2a.models import Message, TaskState, TextPart, agent_text_message
from .models import ArtifactUpdate, StatusUpdate, TaskContext, TaskUpdate

ARTIFACT_NAME = "response.txt"
CHUNK_WORDS = 8


def message_text(message: Message) -> str:
    """Concatenate the text parts of ``message``."""
    return " ".join(part.text for part in message.parts if isinstance(part, TextPart)).strip()


def _chunks(text: str, size: int = CHUNK_WORDS) -> List[str]:
    words = text.split()
    return [" ".join(words[start:start + size]) for start in range(0, len(words), size)]


async def echo_agent(context: TaskContext) -> AsyncIterator[TaskUpdate]:
    text = message_text(context.user_message)
    if not text:
        yield StatusUpdate(
            state=TaskState.INPUT_REQUIRED,
            message=agent_text_message("Send a message with some text to echo."),
        )
        return

    yield StatusUpdate(state=TaskState.WORKING, message=agent_text_message("Echoing your message."))

    chunks = _chunks(text)
    for position, chunk in enumerate(chunks):
        if context.is_cancelled():
            yield StatusUpdate(state=TaskState.CANCELED, message=agent_text_message("Echo cancelled."))
            return
        yield ArtifactUpdate(
            name=ARTIFACT_NAME,
            index=0,
            parts=[TextPart(text=chunk if position == 0 else f" {chunk}")],
            append=position > 0,
            lastChunk=position == len(chunks) - 1,
        )
        # yield control so a concurrent tasks/cancel can land between chunks
        await asyncio.sleep(0)

    yield StatusUpdate(state=TaskState.COMPLETED, message=agent_text_message(text))
