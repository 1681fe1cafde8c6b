"""Rich console output and session bundle storage for finished exchanges."""

import json
import logging
import os
import re
import shutil
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.text import Text

from roundtable.context import speaker_label
from roundtable.models import MODERATOR, Message, ReferenceFile, SessionConfig, SessionRecord, SessionState

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

MODE_LABELS = {
    "sequential": "Sequential turns",
    "open": "Open discussion",
    "roles": "Assigned roles",
    "adversarial": "Adversarial with judge",
    "artwork": "Artwork critique",
}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len] or "session"


def _speaker_title(message: Message, config: SessionConfig) -> str:
    title = speaker_label(message.speaker, config)
    if message.role_label:
        title += f" ({message.role_label})"
    return title


def print_message(message: Message, config: SessionConfig) -> None:
    """Print one message as a panel; errors in red, moderator in cyan."""
    if message.error:
        border = "red"
        body: Text | Markdown = Text(message.error, style="red")
    else:
        border = "cyan" if message.speaker == MODERATOR else "dim"
        body = Markdown(message.content)
    subtitle = f"round {message.round}"
    if message.kind:
        subtitle += f" | {message.kind.value}"
    console.print(
        Panel(
            body,
            title=f"[bold]{_speaker_title(message, config)}[/bold]",
            subtitle=subtitle,
            border_style=border,
        )
    )


def print_state(state: SessionState) -> None:
    styles = {
        SessionState.RUNNING: "green",
        SessionState.PAUSED: "yellow",
        SessionState.COMPLETED: "bold green",
        SessionState.FAILED: "bold red",
    }
    console.print(Rule(f"[{styles.get(state, 'dim')}]{state.value}[/]"))


def build_markdown(record: SessionRecord, messages: Sequence[Message]) -> str:
    """Render the transcript grouped by round. Error messages are left out."""
    config = record.config
    is_artwork = config.mode.value == "artwork"
    participants = ", ".join(config.label_for(p) for p in config.participants)
    status = "Completed" if record.status == "completed" else "Stopped"

    lines: list[str] = [
        "# Artwork critique" if is_artwork else "# Roundtable transcript",
        "",
        "| Field | Value |",
        "|-------|-------|",
        f"| **Topic** | {config.topic} |",
        f"| **Mode** | {MODE_LABELS.get(config.mode.value, config.mode.value)} |",
        f"| **Status** | {status} |",
        f"| **Participants** | {participants} |",
        f"| **Rounds** | {record.rounds_reached}/{config.round_limit} |",
        f"| **Date** | {record.started_at.strftime('%Y-%m-%d %H:%M')} |",
        "",
        "---",
        "",
    ]

    last_round = 0
    for msg in messages:
        if msg.error:
            continue
        if msg.round != last_round:
            if last_round:
                lines.append("")
            lines.append(f"## Round {msg.round}")
            lines.append("")
            last_round = msg.round
        lines.append(f"### {_speaker_title(msg, config)}")
        lines.append("")
        lines.append(msg.content)
        lines.append("")

    lines += ["---", "*Generated by Roundtable*"]
    return "\n".join(lines)


def _message_to_dict(message: Message) -> dict:
    return {
        "id": message.id,
        "speaker": message.speaker,
        "content": message.content,
        "round": message.round,
        "created_at": message.created_at.isoformat(),
        "error": message.error,
        "role_label": message.role_label,
        "kind": message.kind.value if message.kind else None,
        "files": [f.filename for f in message.files],
    }


class SessionArchive(ABC):
    """Persistence collaborator: stores a finished or stopped session."""

    @abstractmethod
    def save(
        self,
        record: SessionRecord,
        messages: Sequence[Message],
        reference_files: Sequence[ReferenceFile],
    ) -> Path:
        ...


class MarkdownArchive(SessionArchive):
    """Writes `<timestamp>_<slug>/` with transcript.md, messages.json and files/.

    The bundle is staged in a temporary directory next to the target and
    renamed into place, so a partially written bundle is never visible.
    """

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = output_dir

    def save(
        self,
        record: SessionRecord,
        messages: Sequence[Message],
        reference_files: Sequence[ReferenceFile],
    ) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        timestamp = record.started_at.strftime("%Y%m%d_%H%M%S")
        target = self.output_dir / f"{timestamp}_{_slug(record.config.topic)}"
        suffix = 2
        while target.exists():
            target = self.output_dir / f"{timestamp}_{_slug(record.config.topic)}-{suffix}"
            suffix += 1

        staging = Path(tempfile.mkdtemp(prefix=".staging-", dir=self.output_dir))
        try:
            (staging / "transcript.md").write_text(build_markdown(record, messages), encoding="utf-8")
            payload = {
                "topic": record.config.topic,
                "mode": record.config.mode.value,
                "status": record.status,
                "participants": list(record.config.participants),
                "judge": record.config.judge,
                "round_limit": record.config.round_limit,
                "rounds_reached": record.rounds_reached,
                "started_at": record.started_at.isoformat(),
                "finished_at": record.finished_at.isoformat(),
                "messages": [_message_to_dict(m) for m in messages],
            }
            (staging / "messages.json").write_text(
                json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8",
            )
            if reference_files:
                files_dir = staging / "files"
                files_dir.mkdir()
                for f in reference_files:
                    (files_dir / f"{f.id[:8]}_{Path(f.filename).name}").write_bytes(f.data)
            os.replace(staging, target)
        except Exception:
            shutil.rmtree(staging, ignore_errors=True)
            raise

        logger.info("Session saved to: %s", target)
        return target
