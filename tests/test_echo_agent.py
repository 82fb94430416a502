"""
Tests for the default echo task handler.
"""

import pytest

from a2a_service.a2a.models import Message, Task, TaskState, TaskStatus, TextPart
from a2a_service.echo_agent import echo_agent, message_text
from a2a_service.models import ArtifactUpdate, StatusUpdate, TaskContext


def context_for(text, cancelled=False):
    message = Message(role="user", parts=[TextPart(text=text)] if text is not None else [])
    return TaskContext(
        task=Task(id="t1", status=TaskStatus(state=TaskState.SUBMITTED)),
        user_message=message,
        history=[message],
        cancellation_check=lambda: cancelled,
    )


async def run(context):
    return [update async for update in echo_agent(context)]


def test_message_text_joins_text_parts():
    message = Message(
        role="user",
        parts=[TextPart(text="hello"), {"type": "data", "data": {"k": 1}}, TextPart(text="world")],
    )
    assert message_text(message) == "hello world"


@pytest.mark.asyncio
async def test_echo_sequence():
    updates = await run(context_for("hello there"))

    assert isinstance(updates[0], StatusUpdate) and updates[0].state == TaskState.WORKING
    assert isinstance(updates[1], ArtifactUpdate)
    assert updates[1].parts[0].text == "hello there"
    assert updates[1].lastChunk is True
    assert updates[-1].state == TaskState.COMPLETED


@pytest.mark.asyncio
async def test_long_message_is_chunked_with_append():
    words = " ".join(str(i) for i in range(20))
    artifacts = [u for u in await run(context_for(words)) if isinstance(u, ArtifactUpdate)]

    assert len(artifacts) == 3
    assert [a.append for a in artifacts] == [False, True, True]
    assert [a.lastChunk for a in artifacts] == [False, False, True]
    assert "".join(a.parts[0].text for a in artifacts) == words


@pytest.mark.asyncio
async def test_empty_message_requires_input():
    updates = await run(context_for("   "))
    assert len(updates) == 1
    assert updates[0].state == TaskState.INPUT_REQUIRED


@pytest.mark.asyncio
async def test_cancellation_is_honoured():
    updates = await run(context_for("stop me", cancelled=True))
    assert updates[-1].state == TaskState.CANCELED
    assert not any(isinstance(u, ArtifactUpdate) for u in updates)
