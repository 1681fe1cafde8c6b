"""Click CLI: loads config, builds the session, runs it and renders it with rich."""

import asyncio
import dataclasses
import logging
import signal
import sys
import threading
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.logging import RichHandler
from rich.table import Table

from config.config_loader import AppConfig, RetryConfig, build_credentials, load_config
from roundtable.control import SessionController
from roundtable.models import (
    AWAITING_ADVANCE,
    ArtworkVariant,
    InteractionMode,
    Message,
    PacingConfig,
    PacingMode,
    RoleAssignment,
    RunOutcome,
    SessionConfig,
    SessionState,
)
from roundtable.orchestrator import Orchestrator, effective_round_limit
from roundtable.output import MarkdownArchive, console, print_message, print_state
from roundtable.pacing import PacingController
from roundtable.providers.anthropic import AnthropicProvider
from roundtable.providers.base import ProviderClient, ProviderRouter
from roundtable.providers.gemini import GeminiProvider
from roundtable.providers.openai_provider import OpenAIProvider
from roundtable.providers.xai import XAIProvider
from roundtable.roles import ARTWORK_ROLES, DEBATE_ROLES
from roundtable.session_file import load_reference_file, session_from_file
from roundtable.validation import SessionConfigError

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: dict[str, type[ProviderClient]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
    "gemini": GeminiProvider,
    "xai": XAIProvider,
}

HELP_TEXT = (
    "[dim]Enter: next turn (manual pacing) | text: moderator message | "
    "/attach PATH [text] | /pause | /resume | /stop[/dim]"
)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def build_router(retry: RetryConfig) -> ProviderRouter:
    """One adapter per supported SDK, all sharing the configured retry policy."""
    return ProviderRouter({sdk: cls(retry) for sdk, cls in PROVIDER_CLASSES.items()})


def parse_roles(values: tuple[str, ...]) -> tuple[RoleAssignment, ...]:
    """Parse repeated `participant=role` options.

    Raises:
        click.BadParameter: If a value has no `=` or an empty side.
    """
    roles: list[RoleAssignment] = []
    for value in values:
        participant, sep, role = value.partition("=")
        if not sep or not participant.strip() or not role.strip():
            raise click.BadParameter(f"expected participant=role, got {value!r}", param_hint="--role")
        roles.append(RoleAssignment(participant=participant.strip(), role=role.strip()))
    return tuple(roles)


def build_session(
    config: AppConfig,
    *,
    topic: str | None = None,
    session_file: Path | None = None,
    mode: str | None = None,
    participants: str | None = None,
    judge: str | None = None,
    rounds: int | None = None,
    pacing: str | None = None,
    delay: int | None = None,
    roles: tuple[str, ...] = (),
    reference: str | None = None,
    reference_file: Path | None = None,
    artwork: Path | None = None,
    artwork_context: str | None = None,
    variant: str | None = None,
    attachments: tuple[Path, ...] = (),
) -> SessionConfig:
    """Combine settings: CLI flag > session file frontmatter > config default."""
    if session_file is not None:
        session = session_from_file(
            session_file,
            default_mode=config.defaults.mode,
            default_participants=config.defaults.participants,
            default_rounds=config.defaults.rounds,
            default_pacing=config.defaults.pacing,
            labels=dict(config.labels()),
        )
    else:
        session = SessionConfig(
            topic="",
            mode=InteractionMode(config.defaults.mode),
            participants=tuple(config.defaults.participants),
            round_limit=config.defaults.rounds,
            pacing=config.defaults.pacing,
            participant_labels=config.labels(),
        )

    changes: dict = {}
    if topic:
        changes["topic"] = topic
    if mode:
        changes["mode"] = InteractionMode(mode)
    if participants:
        changes["participants"] = tuple(p.strip() for p in participants.split(",") if p.strip())
    if judge:
        changes["judge"] = judge
    if rounds is not None:
        changes["round_limit"] = rounds
    if pacing or delay is not None:
        changes["pacing"] = PacingConfig(
            mode=PacingMode(pacing) if pacing else session.pacing.mode,
            delay_seconds=delay if delay is not None else session.pacing.delay_seconds,
        )
    if roles:
        changes["roles"] = parse_roles(roles)
    if reference_file is not None:
        changes["reference_text"] = reference_file.read_text(encoding="utf-8")
        changes["use_reference"] = True
    elif reference:
        changes["reference_text"] = reference
        changes["use_reference"] = True
    if artwork is not None:
        changes["artwork"] = load_reference_file(artwork)
        changes.setdefault("mode", InteractionMode.ARTWORK)
    if artwork_context:
        changes["artwork_context"] = artwork_context
    if variant:
        changes["artwork_variant"] = ArtworkVariant(variant)
    if attachments:
        changes["reference_files"] = tuple(load_reference_file(p) for p in attachments)

    session = dataclasses.replace(session, **changes)
    if not session.topic.strip() and session.mode == InteractionMode.ARTWORK and session.artwork:
        session = dataclasses.replace(session, topic=f"Artwork: {session.artwork.filename}")
    return session


class ConsoleHost(SessionController):
    """SessionController that renders every event to the rich console."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._user_paused = False

    def on_state_change(self, state: SessionState) -> None:
        super().on_state_change(state)
        print_state(state)
        if state == SessionState.PAUSED and not self._user_paused:
            console.print(
                "[yellow]Paused after repeated failures.[/yellow] "
                "Type /resume to continue or /stop to end the session."
            )

    def on_turn_advance(self, round_number: int, turn_index: int) -> None:
        if round_number != self.round:
            console.rule(f"[bold]Round {round_number}[/bold]", style="dim")
        super().on_turn_advance(round_number, turn_index)

    def on_active_participant_change(self, participant: str | None) -> None:
        super().on_active_participant_change(participant)
        if participant is not None and self.config is not None:
            console.print(f"[dim]{self.config.label_for(participant)} is thinking...[/dim]")

    def on_message(self, message: Message) -> None:
        super().on_message(message)
        if self.config is not None:
            print_message(message, self.config)

    def on_pacing_tick(self, seconds_remaining: int) -> None:
        previous = self.seconds_remaining
        super().on_pacing_tick(seconds_remaining)
        if seconds_remaining == AWAITING_ADVANCE:
            console.print("[dim]Press Enter for the next turn.[/dim]")
        elif seconds_remaining > 0 and previous in (None, 0, AWAITING_ADVANCE):
            console.print(f"[dim]Next turn in {seconds_remaining}s...[/dim]")

    def pause(self) -> None:
        self._user_paused = True
        super().pause()

    def resume(self) -> None:
        self._user_paused = False
        super().resume()

    def inject_message(self, text: str, files=()) -> Message:
        message = super().inject_message(text, files)
        if self.config is not None:
            print_message(message, self.config)
        return message


def handle_command(host: SessionController, line: str) -> None:
    """Apply one line typed by the user to the running session."""
    text = line.strip()
    if not text:
        host.advance()
        return

    command, _, rest = text.partition(" ")
    command = command.lower()
    if command == "/pause":
        host.pause()
    elif command == "/resume":
        host.resume()
    elif command in ("/stop", "/quit"):
        host.stop()
    elif command == "/attach":
        path_str, _, note = rest.strip().partition(" ")
        path = Path(path_str)
        if not path_str or not path.is_file():
            console.print(f"[red]No such file:[/red] {path_str or '(missing path)'}")
            return
        host.inject_message(note, [load_reference_file(path)])
    elif text.startswith("/"):
        console.print(f"[red]Unknown command:[/red] {command}")
        console.print(HELP_TEXT)
    else:
        host.inject_message(text)


def _start_stdin_reader(loop: asyncio.AbstractEventLoop, lines: asyncio.Queue) -> None:
    # Daemon thread: a pending input() must not keep the process alive.
    def read() -> None:
        for line in sys.stdin:
            loop.call_soon_threadsafe(lines.put_nowait, line)

    threading.Thread(target=read, name="stdin-reader", daemon=True).start()


async def _command_loop(host: SessionController, lines: asyncio.Queue) -> None:
    while True:
        line = await lines.get()
        try:
            handle_command(host, line)
        except (ValueError, OSError) as exc:
            console.print(f"[red]{exc}[/red]")


async def _run_session(host: ConsoleHost, session: SessionConfig, credentials: dict) -> RunOutcome:
    loop = asyncio.get_running_loop()
    lines: asyncio.Queue = asyncio.Queue()
    _start_stdin_reader(loop, lines)

    try:
        loop.add_signal_handler(signal.SIGINT, host.stop)
        handles_sigint = True
    except (NotImplementedError, RuntimeError):
        handles_sigint = False

    commands = asyncio.create_task(_command_loop(host, lines))
    try:
        return await host.run(session, credentials)
    finally:
        commands.cancel()
        if handles_sigint:
            loop.remove_signal_handler(signal.SIGINT)


def _print_roles() -> None:
    for title, catalog in (("Debate roles", DEBATE_ROLES), ("Artwork roles", ARTWORK_ROLES)):
        table = Table(title=title, show_lines=False)
        table.add_column("Key", style="cyan")
        table.add_column("Label")
        table.add_column("Description", style="dim")
        for role in catalog.values():
            table.add_row(role.key, role.label, role.description)
        console.print(table)


@click.command()
@click.argument("topic", required=False)
@click.option("--file", "session_file", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Read topic and settings from a markdown session file")
@click.option("--mode", type=click.Choice([m.value for m in InteractionMode]), default=None,
              help="Interaction mode (default: from config)")
@click.option("--participants", default=None, help="Comma-separated participant list, in turn order")
@click.option("--judge", default=None, help="Participant acting as judge (adversarial mode)")
@click.option("--rounds", default=None, type=int, help="Number of rounds (default: from config)")
@click.option("--pacing", type=click.Choice([p.value for p in PacingMode]), default=None,
              help="timed: countdown between turns; manual: wait for Enter")
@click.option("--delay", default=None, type=int, help="Seconds between turns for timed pacing")
@click.option("--role", "roles", multiple=True, help="Role assignment as participant=role (repeatable)")
@click.option("--reference", default=None, help="Reference text participants should rely on")
@click.option("--reference-file", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Read reference text from a file")
@click.option("--artwork", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Image to critique (implies --mode artwork)")
@click.option("--artwork-context", default=None, help="Note from the artist about the work")
@click.option("--variant", type=click.Choice([v.value for v in ArtworkVariant]), default=None,
              help="Artwork critique variant")
@click.option("--attach", "attachments", multiple=True,
              type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Reference file (image or PDF) sent with first turns (repeatable)")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--no-save", is_flag=True, default=False, help="Do not write the session to disk")
@click.option("--list-roles", is_flag=True, default=False, help="Show the role catalog and exit")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def main(
    topic: str | None,
    session_file: Path | None,
    mode: str | None,
    participants: str | None,
    judge: str | None,
    rounds: int | None,
    pacing: str | None,
    delay: int | None,
    roles: tuple[str, ...],
    reference: str | None,
    reference_file: Path | None,
    artwork: Path | None,
    artwork_context: str | None,
    variant: str | None,
    attachments: tuple[Path, ...],
    output_path: str | None,
    no_save: bool,
    list_roles: bool,
    verbose: bool,
) -> None:
    """Roundtable -- turn-based discussions between AI models.

    \b
    Examples:
      python -m roundtable.cli "Is remote work here to stay?" --rounds 2
      python -m roundtable.cli "Nuclear power?" --mode adversarial --participants gpt,claude,gemini --judge gemini
      python -m roundtable.cli "Tabs or spaces?" --mode roles --role gpt=pro --role claude=con
      python -m roundtable.cli --artwork painting.png --variant scored --participants claude
      python -m roundtable.cli --file session.md --pacing timed --delay 10
    """
    if list_roles:
        _print_roles()
        return

    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    if not topic and session_file is None and artwork is None:
        console.print("[bold red]Error:[/bold red] Provide a TOPIC argument, --file, or --artwork.")
        sys.exit(1)

    try:
        session = build_session(
            config,
            topic=topic,
            session_file=session_file,
            mode=mode,
            participants=participants,
            judge=judge,
            rounds=rounds,
            pacing=pacing,
            delay=delay,
            roles=roles,
            reference=reference,
            reference_file=reference_file,
            artwork=artwork,
            artwork_context=artwork_context,
            variant=variant,
            attachments=attachments,
        )
    except (ValueError, OSError) as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)

    unknown = [p for p in session.participants if p not in config.participants]
    if unknown:
        console.print(f"[bold red]Error:[/bold red] Unknown participant(s): {', '.join(unknown)}")
        sys.exit(1)
    missing = [p for p in session.participants if p not in config.available_participants]
    if missing:
        console.print(f"[yellow]No API key for {', '.join(missing)}; their turns will be skipped.[/yellow]")

    orchestrator = Orchestrator(
        build_router(config.retry),
        pacing=PacingController(),
        failure_threshold=config.defaults.failure_threshold,
        context_window=config.defaults.context_window,
    )
    archive = None if no_save else MarkdownArchive(Path(output_path) if output_path else config.defaults.output_dir)
    host = ConsoleHost(orchestrator, archive, max_rounds=config.defaults.max_rounds)

    console.print(
        f"\n[bold cyan]Roundtable[/bold cyan] -- {session.mode.value}, "
        f"{effective_round_limit(session)} round(s), {session.pacing.mode.value} pacing"
    )
    console.print(f"Participants: {', '.join(session.label_for(p) for p in session.participants)}")
    if session.judge:
        console.print(f"Judge: {session.label_for(session.judge)}")
    console.print(f"Topic: [italic]{session.topic[:80]}{'...' if len(session.topic) > 80 else ''}[/italic]")
    console.print(HELP_TEXT + "\n")

    try:
        outcome = asyncio.run(_run_session(host, session, build_credentials(config)))
    except SessionConfigError as exc:
        console.print("[bold red]Invalid session:[/bold red]")
        for error in exc.errors:
            console.print(f"  - {error}")
        sys.exit(1)

    if host.saved_path:
        console.print(f"\n[dim]Saved to: {host.saved_path}[/dim]")
    if outcome == RunOutcome.FAILED:
        sys.exit(1)


if __name__ == "__main__":
    main()
