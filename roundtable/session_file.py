"""Markdown session files: the body is the topic, YAML frontmatter holds settings.

Example::

    ---
    mode: adversarial
    participants: [gpt, claude, gemini]
    judge: gemini
    rounds: 2
    roles:
      gpt: pro
      claude: con
    pacing: timed
    delay: 10
    ---
    Should cities ban cars from their centres?
"""

import mimetypes
from pathlib import Path
from typing import Any

import frontmatter

from roundtable.models import (
    ArtworkVariant,
    InteractionMode,
    PacingConfig,
    PacingMode,
    ReferenceFile,
    RoleAssignment,
    SessionConfig,
)


def parse_file(file_path: Path) -> tuple[str, dict]:
    """Parse a markdown file with optional YAML frontmatter.

    Returns:
        (content, metadata) where content is the body text. If there is no
        frontmatter, metadata is {}.
    """
    post = frontmatter.load(str(file_path))
    content = post.content.strip()
    metadata = dict(post.metadata)
    return content, metadata


def load_reference_file(path: Path) -> ReferenceFile:
    """Read a file from disk, guessing its MIME type from the extension."""
    mime_type, _ = mimetypes.guess_type(path.name)
    return ReferenceFile(
        filename=path.name,
        mime_type=mime_type or "application/octet-stream",
        data=path.read_bytes(),
    )


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return [str(v).strip() for v in value]


def _resolve(base: Path, value: str) -> Path:
    path = Path(value)
    return path if path.is_absolute() else base / path


def session_from_file(
    file_path: Path,
    *,
    default_mode: str = "sequential",
    default_participants: list[str] | None = None,
    default_rounds: int = 3,
    default_pacing: PacingConfig | None = None,
    labels: dict[str, str] | None = None,
) -> SessionConfig:
    """Build a SessionConfig from a session file; missing keys fall back to the defaults.

    Relative `artwork`, `files` and `reference_file` paths are resolved
    against the session file's directory.

    Raises:
        ValueError: If `mode`, `variant` or `pacing` is not a known value,
            or `roles` is not a mapping.
    """
    topic, meta = parse_file(file_path)
    base = file_path.parent

    mode = InteractionMode(str(meta.get("mode", default_mode)).lower())
    participants = _as_list(meta.get("participants")) or list(default_participants or [])

    raw_roles = meta.get("roles") or {}
    if not isinstance(raw_roles, dict):
        raise ValueError("roles must be a mapping of participant: role")
    roles = tuple(RoleAssignment(participant=str(p), role=str(r)) for p, r in raw_roles.items())

    pacing = default_pacing or PacingConfig()
    if "pacing" in meta or "delay" in meta:
        pacing = PacingConfig(
            mode=PacingMode(str(meta.get("pacing", pacing.mode.value)).lower()),
            delay_seconds=int(meta.get("delay", pacing.delay_seconds)),
        )

    reference_text = str(meta.get("reference", "") or "")
    if "reference_file" in meta:
        reference_text = _resolve(base, str(meta["reference_file"])).read_text(encoding="utf-8")

    artwork = None
    if meta.get("artwork"):
        artwork = load_reference_file(_resolve(base, str(meta["artwork"])))

    return SessionConfig(
        topic=topic,
        mode=mode,
        participants=tuple(participants),
        round_limit=int(meta.get("rounds", default_rounds)),
        judge=meta.get("judge"),
        roles=roles,
        pacing=pacing,
        reference_text=reference_text,
        use_reference=bool(meta.get("use_reference", bool(reference_text))),
        reference_files=tuple(load_reference_file(_resolve(base, f)) for f in _as_list(meta.get("files"))),
        artwork=artwork,
        artwork_context=str(meta.get("artwork_context", "") or ""),
        artwork_variant=ArtworkVariant(str(meta.get("variant", ArtworkVariant.DISCUSSION.value)).lower()),
        participant_labels=tuple((labels or {}).items()),
    )
