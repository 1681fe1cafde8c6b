"""Bounded, role-tagged message history sent to a participant for one call."""

import base64
from collections.abc import Iterable, Sequence

from roundtable.models import (
    MODERATOR,
    CallMessage,
    ContentBlock,
    Message,
    MessageKind,
    ReferenceFile,
    SessionConfig,
)

DEFAULT_WINDOW = 15

DISCUSSION_OPENER = "Please begin the exchange. Start by giving your view on the topic."
ARTWORK_OPENER = "Please evaluate this work. Analyse the attached image and give your feedback."

MODERATOR_LABEL = "Moderator"


def file_blocks(files: Iterable[ReferenceFile]) -> tuple[ContentBlock, ...]:
    """Convert files into image/document content blocks. Other types are dropped."""
    blocks: list[ContentBlock] = []
    for f in files:
        if f.is_image:
            kind = "image"
        elif f.is_document:
            kind = "document"
        else:
            continue
        blocks.append(
            ContentBlock(
                kind=kind,
                mime_type=f.mime_type,
                data_b64=base64.b64encode(f.data).decode("ascii"),
                filename=f.filename,
            )
        )
    return tuple(blocks)


def speaker_label(speaker: str, config: SessionConfig) -> str:
    if speaker == MODERATOR:
        return MODERATOR_LABEL
    return config.label_for(speaker)


def _trailing(messages: Sequence[Message], size: int) -> list[Message]:
    if size <= 0:
        return []
    return list(messages[-size:])


def _user_message(text: str, blocks: tuple[ContentBlock, ...]) -> CallMessage:
    if blocks:
        return CallMessage(role="user", content=(ContentBlock(kind="text", text=text), *blocks))
    return CallMessage(role="user", content=text)


def build_context(
    messages: Sequence[Message],
    participant: str,
    config: SessionConfig,
    attachable_files: Sequence[ReferenceFile] = (),
    *,
    is_first_call: bool,
    is_artwork: bool = False,
    window: int = DEFAULT_WINDOW,
) -> list[CallMessage]:
    """Build the call context for a regular (non-judge) turn.

    Args:
        messages: The host's full message log, oldest first.
        participant: The participant about to speak.
        config: Session configuration (used for speaker labels).
        attachable_files: Reference files, sent only on the participant's first call.
        is_first_call: True until the participant has had a successful call.
        is_artwork: Selects the artwork opener when there is no history yet.
        window: Maximum number of messages returned.

    Returns:
        Ordered call messages; never more than `window` entries.
    """
    recent = _trailing(messages, window)
    reference_blocks = file_blocks(attachable_files) if is_first_call else ()

    if not recent:
        opener = ARTWORK_OPENER if is_artwork else DISCUSSION_OPENER
        return [_user_message(opener, reference_blocks)]

    context: list[CallMessage] = []
    if reference_blocks and all(m.speaker == participant for m in recent):
        # No incoming message to carry the files: make room for an opener.
        recent = _trailing(recent, window - 1)
        opener = ARTWORK_OPENER if is_artwork else DISCUSSION_OPENER
        context.append(_user_message(opener, reference_blocks))
        reference_blocks = ()

    for msg in recent:
        if msg.speaker == participant:
            context.append(CallMessage(role="assistant", content=msg.content))
            continue
        prefix = f"[{speaker_label(msg.speaker, config)}]"
        if msg.kind == MessageKind.JUDGE_EVALUATION:
            prefix += " (judge evaluation)"
        blocks = reference_blocks + file_blocks(msg.files)
        reference_blocks = ()
        context.append(_user_message(f"{prefix}: {msg.content}", blocks))

    return context


def build_judge_context(
    messages: Sequence[Message],
    round_number: int,
    judge: str,
    config: SessionConfig,
    *,
    window: int = DEFAULT_WINDOW * 2,
) -> list[CallMessage]:
    """Build the call context for a judge turn.

    The judge sees the whole moderated transcript (debaters, moderator and its
    own earlier evaluations) tagged with round numbers, followed by an explicit
    request to evaluate `round_number`. Never more than `window` entries.
    """
    relevant = [
        m for m in messages
        if m.speaker != judge or m.kind == MessageKind.JUDGE_EVALUATION
    ]
    recent = _trailing(relevant, window - 1)

    context: list[CallMessage] = []
    for msg in recent:
        if msg.speaker == judge:
            context.append(CallMessage(role="assistant", content=msg.content))
            continue
        text = f"[{speaker_label(msg.speaker, config)}] (round {msg.round}): {msg.content}"
        context.append(_user_message(text, file_blocks(msg.files)))

    contributions = sum(
        1 for m in messages
        if m.round == round_number and m.speaker not in (judge, MODERATOR)
    )
    request = f"Based on the debate above, evaluate round {round_number}."
    if contributions:
        request += f" ({contributions} debater contributions were made this round.)"
    context.append(CallMessage(role="user", content=request))
    return context
