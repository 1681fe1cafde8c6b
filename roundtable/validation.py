"""Session configuration checks performed before a run is allowed to start."""

from roundtable.models import InteractionMode, PacingMode, SessionConfig

MIN_TOPIC_LENGTH = 3
MIN_PARTICIPANTS = 2
MAX_ROUNDS = 10
MIN_DELAY_SECONDS = 1
MAX_DELAY_SECONDS = 60
REFERENCE_MAX_LENGTH = 10_000
MAX_FILES = 5
MAX_FILE_SIZE = 10 * 1024 * 1024
ACCEPTED_MIME_TYPES = frozenset({"image/png", "image/jpeg", "image/gif", "image/webp", "application/pdf"})


class SessionConfigError(ValueError):
    """Raised when a session configuration cannot be run."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__("; ".join(errors))


def collect_errors(config: SessionConfig, max_rounds: int = MAX_ROUNDS) -> list[str]:
    """Return every problem found in `config`; empty when it is valid."""
    errors: list[str] = []
    is_artwork = config.mode == InteractionMode.ARTWORK

    if is_artwork:
        if config.artwork is None:
            errors.append("artwork: an artwork image is required in artwork mode")
        elif not config.artwork.is_image:
            errors.append(f"artwork: expected an image, got {config.artwork.mime_type}")
    elif len(config.topic.strip()) < MIN_TOPIC_LENGTH:
        errors.append(f"topic: must be at least {MIN_TOPIC_LENGTH} characters")

    participants = list(config.participants)
    if len(set(participants)) != len(participants):
        errors.append("participants: duplicates are not allowed")
    min_participants = 1 if is_artwork else MIN_PARTICIPANTS
    if len(participants) < min_participants:
        errors.append(f"participants: at least {min_participants} required")

    if config.judge is not None:
        if config.mode != InteractionMode.ADVERSARIAL:
            errors.append("judge: only adversarial mode has a judge")
        elif config.judge not in participants:
            errors.append(f"judge: {config.judge!r} is not a participant")
        elif len([p for p in participants if p != config.judge]) < MIN_PARTICIPANTS:
            errors.append(f"judge: adversarial mode needs at least {MIN_PARTICIPANTS} debaters besides the judge")

    for assignment in config.roles:
        if assignment.participant not in participants:
            errors.append(f"roles: {assignment.participant!r} is not a participant")
        if not assignment.role.strip():
            errors.append(f"roles: empty role for {assignment.participant!r}")

    if not 1 <= config.round_limit <= max_rounds:
        errors.append(f"round_limit: must be between 1 and {max_rounds}")

    if config.pacing.mode == PacingMode.TIMED and not (
        MIN_DELAY_SECONDS <= config.pacing.delay_seconds <= MAX_DELAY_SECONDS
    ):
        errors.append(f"pacing: delay must be between {MIN_DELAY_SECONDS} and {MAX_DELAY_SECONDS} seconds")

    if len(config.reference_text) > REFERENCE_MAX_LENGTH:
        errors.append(f"reference_text: at most {REFERENCE_MAX_LENGTH} characters")

    files = list(config.reference_files)
    if config.artwork is not None:
        files.append(config.artwork)
    if len(config.reference_files) > MAX_FILES:
        errors.append(f"reference_files: at most {MAX_FILES} files")
    for f in files:
        if f.mime_type not in ACCEPTED_MIME_TYPES:
            errors.append(f"{f.filename}: unsupported type {f.mime_type}")
        if len(f.data) > MAX_FILE_SIZE:
            errors.append(f"{f.filename}: larger than {MAX_FILE_SIZE // (1024 * 1024)} MB")

    return errors


def validate_session_config(config: SessionConfig, max_rounds: int = MAX_ROUNDS) -> SessionConfig:
    """Return `config` unchanged if it can be run.

    Raises:
        SessionConfigError: Listing every problem found.
    """
    errors = collect_errors(config, max_rounds)
    if errors:
        raise SessionConfigError(errors)
    return config
