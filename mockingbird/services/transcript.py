from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterator, Optional

from mockingbird.core.clock import Clock
from mockingbird.utils.enums import TranscriptRole

SPEAKER_LABELS = {
    TranscriptRole.ASSISTANT: "AI",
    TranscriptRole.USER: "User",
}


@dataclass(frozen=True)
class Utterance:
    role: TranscriptRole
    text: str
    timestamp: datetime


@dataclass
class SpeakerTurn:
    role: TranscriptRole
    utterances: list[Utterance] = field(default_factory=list)

    @property
    def lines(self) -> list[str]:
        return [u.text for u in self.utterances]


def utterance_from_message(message: dict[str, Any], clock: Clock) -> Optional[Utterance]:
    """Final transcript messages become utterances; partials and other messages are dropped."""
    if message.get("type") != "transcript":
        return None
    if message.get("transcriptType") != "final":
        return None

    text = (message.get("transcript") or "").strip()
    if not text:
        return None
    try:
        role = TranscriptRole(message.get("role"))
    except ValueError:
        return None
    return Utterance(role=role, text=text, timestamp=clock.utcnow())


class TranscriptAssembler:
    """
    Ordered, append-only log of final utterances for one call.

    Entries keep their arrival order; grouping consecutive lines of the
    same speaker is done on read by turns() and never changes storage.
    Once closed the assembler rejects appends, a new call gets a new one.
    """

    def __init__(self) -> None:
        self._entries: list[Utterance] = []
        self._closed = False

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Utterance]:
        index = 0
        while index < len(self._entries):
            yield self._entries[index]
            index += 1

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def entries(self) -> tuple[Utterance, ...]:
        return tuple(self._entries)

    def append(self, utterance: Utterance) -> None:
        if self._closed:
            raise RuntimeError("transcript is closed")
        self._entries.append(utterance)

    def turns(self) -> list[SpeakerTurn]:
        turns: list[SpeakerTurn] = []
        for utterance in self._entries:
            if not turns or turns[-1].role != utterance.role:
                turns.append(SpeakerTurn(role=utterance.role))
            turns[-1].utterances.append(utterance)
        return turns

    def render(self) -> str:
        return "\n".join(f"{SPEAKER_LABELS[u.role]}: {u.text}" for u in self._entries)

    def close(self) -> str:
        self._closed = True
        return self.render()
