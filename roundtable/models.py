"""Pure dataclasses and enums for the Roundtable orchestration engine."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

# Speaker id used for messages typed by the human host.
MODERATOR = "moderator"

# Pacing tick value meaning "waiting for the host to advance".
AWAITING_ADVANCE = -1


class InteractionMode(str, Enum):
    SEQUENTIAL = "sequential"
    OPEN = "open"
    ROLES = "roles"
    ADVERSARIAL = "adversarial"
    ARTWORK = "artwork"


class ArtworkVariant(str, Enum):
    DISCUSSION = "discussion"   # participants critique together, seeing each other
    INDIVIDUAL = "individual"   # one independent critique per assigned role
    SCORED = "scored"           # rubric table, total out of 60


class PacingMode(str, Enum):
    TIMED = "timed"
    MANUAL = "manual"


class SessionState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


class RunOutcome(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class MessageKind(str, Enum):
    JUDGE_EVALUATION = "judge-evaluation"
    ARTWORK_CRITIQUE = "artwork-critique"
    ARTWORK_SCORE = "artwork-score"


class StopReason(str, Enum):
    OK = "ok"
    ERROR = "error"


@dataclass(frozen=True)
class PacingConfig:
    mode: PacingMode = PacingMode.MANUAL
    delay_seconds: int = 5


@dataclass(frozen=True)
class ReferenceFile:
    filename: str
    mime_type: str
    data: bytes
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")

    @property
    def is_document(self) -> bool:
        return self.mime_type == "application/pdf"


@dataclass(frozen=True)
class RoleAssignment:
    participant: str
    role: str              # role catalog key ("pro", "critic", ...) or free text


@dataclass(frozen=True)
class SessionConfig:
    topic: str
    mode: InteractionMode
    participants: tuple[str, ...]
    round_limit: int = 3
    judge: str | None = None
    roles: tuple[RoleAssignment, ...] = ()
    pacing: PacingConfig = field(default_factory=PacingConfig)
    reference_text: str = ""
    use_reference: bool = False
    reference_files: tuple[ReferenceFile, ...] = ()
    artwork: ReferenceFile | None = None
    artwork_context: str = ""
    artwork_variant: ArtworkVariant = ArtworkVariant.DISCUSSION
    participant_labels: tuple[tuple[str, str], ...] = ()

    def role_for(self, participant: str) -> str | None:
        for assignment in self.roles:
            if assignment.participant == participant:
                return assignment.role
        return None

    def label_for(self, participant: str) -> str:
        for pid, label in self.participant_labels:
            if pid == participant:
                return label
        return participant.title()


@dataclass(frozen=True)
class ParticipantCredentials:
    sdk: str               # "anthropic", "openai", "gemini", "xai"
    model: str
    api_key: str
    base_url: str | None = None
    timeout_sec: int = 60
    max_tokens: int = 2048

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key.strip())


@dataclass(frozen=True)
class Message:
    speaker: str           # participant id or MODERATOR
    content: str
    round: int
    created_at: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    error: str | None = None
    role_label: str | None = None
    kind: MessageKind | None = None
    files: tuple[ReferenceFile, ...] = ()


@dataclass(frozen=True)
class TurnSlot:
    round: int
    turn_index: int
    participant: str
    is_judge: bool = False


@dataclass(frozen=True)
class ContentBlock:
    kind: str              # "text", "image" or "document"
    text: str | None = None
    mime_type: str | None = None
    data_b64: str | None = None
    filename: str | None = None


@dataclass(frozen=True)
class CallMessage:
    role: str              # "user" or "assistant"
    content: str | tuple[ContentBlock, ...]

    @property
    def text(self) -> str:
        """Concatenated text of the message, ignoring attachments."""
        if isinstance(self.content, str):
            return self.content
        return "\n".join(b.text for b in self.content if b.kind == "text" and b.text)


@dataclass
class ProviderResult:
    content: str
    stop_reason: StopReason
    model: str = ""
    latency_sec: float = 0.0
    token_count: int | None = None


@dataclass
class SessionRecord:
    config: SessionConfig
    status: str            # "completed" or "stopped"
    rounds_reached: int
    started_at: datetime
    finished_at: datetime
