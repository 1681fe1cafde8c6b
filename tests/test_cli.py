"""Tests for session building and command handling in roundtable/cli.py."""

import asyncio
from pathlib import Path

import click
import pytest
from click.testing import CliRunner

from roundtable.cli import _command_loop, build_router, build_session, handle_command, main, parse_roles
from roundtable.models import (
    MODERATOR,
    ArtworkVariant,
    InteractionMode,
    PacingMode,
    RoleAssignment,
    SessionState,
)
from roundtable.providers.anthropic import AnthropicProvider
from roundtable.providers.xai import XAIProvider
from tests.conftest import PNG_BYTES, TickRecorder, wait_until


def test_parse_roles():
    assert parse_roles(("gpt=pro", " claude = devils_advocate ")) == (
        RoleAssignment("gpt", "pro"),
        RoleAssignment("claude", "devils_advocate"),
    )


@pytest.mark.parametrize("value", ["gpt", "=pro", "gpt="])
def test_parse_roles_rejects_malformed(value):
    with pytest.raises(click.BadParameter):
        parse_roles((value,))


def test_build_session_from_config_defaults(sample_app_config):
    session = build_session(sample_app_config, topic="Tabs or spaces?")
    assert session.topic == "Tabs or spaces?"
    assert session.mode == InteractionMode.SEQUENTIAL
    assert session.participants == ("gpt", "claude")
    assert session.round_limit == 2
    assert session.label_for("gpt") == "GPT"


def test_build_session_cli_flags_override(sample_app_config):
    session = build_session(
        sample_app_config,
        topic="Nuclear?",
        mode="adversarial",
        participants="gpt, claude, gemini",
        judge="gemini",
        rounds=4,
        pacing="timed",
        delay=9,
        roles=("gpt=pro",),
        reference="Use the IEA numbers.",
    )
    assert session.mode == InteractionMode.ADVERSARIAL
    assert session.participants == ("gpt", "claude", "gemini")
    assert session.judge == "gemini"
    assert session.round_limit == 4
    assert session.pacing.mode == PacingMode.TIMED
    assert session.pacing.delay_seconds == 9
    assert session.roles == (RoleAssignment("gpt", "pro"),)
    assert session.use_reference is True


def test_build_session_cli_overrides_file(sample_app_config, tmp_path: Path):
    f = tmp_path / "s.md"
    f.write_text("---\nmode: open\nrounds: 5\n---\nFrom the file", encoding="utf-8")

    session = build_session(sample_app_config, session_file=f, rounds=1)

    assert session.topic == "From the file"
    assert session.mode == InteractionMode.OPEN
    assert session.round_limit == 1


def test_build_session_artwork_implies_mode_and_topic(sample_app_config, tmp_path: Path):
    art = tmp_path / "sketch.png"
    art.write_bytes(PNG_BYTES)

    session = build_session(sample_app_config, artwork=art, variant="individual")

    assert session.mode == InteractionMode.ARTWORK
    assert session.artwork_variant == ArtworkVariant.INDIVIDUAL
    assert session.topic == "Artwork: sketch.png"
    assert session.artwork.data == PNG_BYTES


def test_build_router_covers_every_sdk(sample_app_config):
    router = build_router(sample_app_config.retry)
    assert set(router._adapters) == {"anthropic", "openai", "gemini", "xai"}
    assert isinstance(router._adapters["anthropic"], AnthropicProvider)
    assert isinstance(router._adapters["xai"], XAIProvider)


@pytest.fixture
def host(orchestrator) -> TickRecorder:
    h = TickRecorder(orchestrator)
    h.on_state_change(SessionState.RUNNING)
    return h


def test_handle_command_pause_resume_stop(host):
    handle_command(host, "/pause\n")
    assert host.state == SessionState.PAUSED
    handle_command(host, "/resume")
    assert host.state == SessionState.RUNNING
    handle_command(host, "/stop")
    assert host.state == SessionState.IDLE


def test_handle_command_text_is_moderator_message(host):
    handle_command(host, "What about buses?\n")
    assert host.messages[-1].speaker == MODERATOR
    assert host.messages[-1].content == "What about buses?"


def test_handle_command_attach(host, tmp_path: Path):
    img = tmp_path / "map.png"
    img.write_bytes(PNG_BYTES)
    handle_command(host, f"/attach {img} see the map")
    message = host.messages[-1]
    assert message.content == "see the map"
    assert message.files[0].filename == "map.png"


def test_handle_command_attach_missing_file(host, tmp_path: Path):
    handle_command(host, f"/attach {tmp_path / 'nope.png'}")
    assert host.messages == []


def test_handle_command_unknown_is_ignored(host):
    handle_command(host, "/dance")
    assert host.messages == []
    assert host.state == SessionState.RUNNING


def test_cli_list_roles():
    result = CliRunner().invoke(main, ["--list-roles"])
    assert result.exit_code == 0
    assert "devils_advocate" in result.output
    assert "curator" in result.output


def test_cli_requires_topic():
    result = CliRunner().invoke(main, [])
    assert result.exit_code == 1


async def test_command_loop_survives_unreadable_attachment(host, tmp_path: Path, monkeypatch):
    img = tmp_path / "locked.png"
    img.write_bytes(PNG_BYTES)

    def deny(path):
        raise PermissionError(f"Permission denied: {path}")

    monkeypatch.setattr("roundtable.cli.load_reference_file", deny)
    lines: asyncio.Queue = asyncio.Queue()
    commands = asyncio.create_task(_command_loop(host, lines))
    lines.put_nowait(f"/attach {img}\n")
    lines.put_nowait("/pause\n")

    await wait_until(lambda: host.state == SessionState.PAUSED)
    assert not commands.done()
    assert host.messages == []
    commands.cancel()
    await asyncio.gather(commands, return_exceptions=True)
