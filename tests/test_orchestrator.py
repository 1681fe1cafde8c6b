"""Tests for roundtable/orchestrator.py."""

import asyncio
import dataclasses

from roundtable.models import (
    AWAITING_ADVANCE,
    ArtworkVariant,
    InteractionMode,
    MessageKind,
    PacingConfig,
    PacingMode,
    RunOutcome,
    SessionConfig,
    SessionState,
)
from roundtable.observer import CancellationToken
from roundtable.orchestrator import (
    Orchestrator,
    attachable_files,
    build_schedule,
    effective_round_limit,
)
from roundtable.pacing import PacingController
from roundtable.providers.base import ProviderClient, ProviderError
from tests.conftest import ScriptedProvider, TickRecorder, make_credentials, wait_until


def _artwork_config(png_file, variant=ArtworkVariant.DISCUSSION, rounds=3):
    return SessionConfig(
        topic="Artwork: chart.png",
        mode=InteractionMode.ARTWORK,
        participants=("gpt", "claude"),
        round_limit=rounds,
        artwork=png_file,
        artwork_variant=variant,
        pacing=PacingConfig(mode=PacingMode.TIMED, delay_seconds=1),
    )


# -- schedule ---------------------------------------------------------------

def test_build_schedule_follows_participant_order(sequential_config):
    slots = build_schedule(sequential_config)
    assert [(s.round, s.turn_index, s.participant) for s in slots] == [
        (1, 0, "gpt"), (1, 1, "claude"), (1, 2, "gemini"),
        (2, 0, "gpt"), (2, 1, "claude"), (2, 2, "gemini"),
    ]
    assert not any(s.is_judge for s in slots)


def test_build_schedule_puts_judge_last_in_each_round(adversarial_config):
    slots = build_schedule(adversarial_config)
    assert [s.participant for s in slots] == ["gpt", "claude", "gemini"] * 2
    judge_slots = [s for s in slots if s.is_judge]
    assert [(s.round, s.turn_index) for s in judge_slots] == [(1, 2), (2, 2)]


def test_build_schedule_without_judge_in_adversarial_mode(adversarial_config):
    config = dataclasses.replace(adversarial_config, judge=None)
    slots = build_schedule(config)
    assert len(slots) == 6
    assert not any(s.is_judge for s in slots)


def test_artwork_individual_and_scored_run_one_round(png_file):
    assert effective_round_limit(_artwork_config(png_file, ArtworkVariant.SCORED)) == 1
    assert effective_round_limit(_artwork_config(png_file, ArtworkVariant.INDIVIDUAL)) == 1
    assert effective_round_limit(_artwork_config(png_file, ArtworkVariant.DISCUSSION)) == 3


def test_attachable_files_sends_artwork_first(png_file):
    pdf = dataclasses.replace(png_file, filename="notes.pdf", mime_type="application/pdf", id="pdf")
    config = dataclasses.replace(_artwork_config(png_file), reference_files=(pdf,))
    files = attachable_files(config)
    assert [f.filename for f in files] == ["chart.png", "notes.pdf"]


# -- runs -------------------------------------------------------------------

async def test_run_produces_one_message_per_turn(controller, sequential_config, credentials):
    outcome = await controller.run(sequential_config, credentials)

    assert outcome == RunOutcome.COMPLETED
    assert controller.state == SessionState.COMPLETED
    assert [m.speaker for m in controller.messages] == ["gpt", "claude", "gemini"] * 2
    assert [m.round for m in controller.messages] == [1, 1, 1, 2, 2, 2]
    assert all(m.error is None for m in controller.messages)


async def test_pacing_not_applied_after_final_turn(controller, sequential_config, credentials):
    await controller.run(sequential_config, credentials)
    # delay 1: one countdown tick plus the closing 0 tick between each pair of turns
    assert controller.ticks == [1, 0] * 5


async def test_adversarial_judge_speaks_last_and_is_tagged(controller, adversarial_config, credentials):
    outcome = await controller.run(adversarial_config, credentials)

    assert outcome == RunOutcome.COMPLETED
    messages = controller.messages
    assert [m.speaker for m in messages] == ["gpt", "claude", "gemini"] * 2
    verdicts = [m for m in messages if m.speaker == "gemini"]
    assert all(m.kind == MessageKind.JUDGE_EVALUATION for m in verdicts)
    assert all(m.role_label == "Judge" for m in verdicts)
    assert all(m.kind is None for m in messages if m.speaker != "gemini")


async def test_judge_receives_evaluation_request(controller, provider, adversarial_config, credentials):
    await controller.run(adversarial_config, credentials)

    judge_calls = provider.calls_for("gemini")
    assert len(judge_calls) == 2
    _, instruction, context = judge_calls[1]
    assert "judge" in instruction.lower()
    assert context[-1].role == "user"
    assert context[-1].text.startswith("Based on the debate above, evaluate round 2.")


async def test_single_failure_is_recorded_and_run_completes(fast_pacing, sequential_config, credentials):
    provider = ScriptedProvider({"claude": [ProviderError("claude", "rate limited")]})
    controller = TickRecorder(Orchestrator(provider, pacing=fast_pacing))

    outcome = await controller.run(sequential_config, credentials)

    assert outcome == RunOutcome.COMPLETED
    assert len(controller.messages) == 6
    errors = [m for m in controller.messages if m.error]
    assert len(errors) == 1
    assert errors[0].speaker == "claude"
    assert "rate limited" in errors[0].content
    assert SessionState.PAUSED not in controller.states


async def test_two_consecutive_failures_pause_until_resumed(fast_pacing, sequential_config, credentials):
    provider = ScriptedProvider({
        "gpt": [ProviderError("gpt", "down")],
        "claude": [ProviderError("claude", "down")],
    })
    controller = TickRecorder(Orchestrator(provider, pacing=fast_pacing))

    run = asyncio.create_task(controller.run(sequential_config, credentials))
    await wait_until(lambda: controller.state == SessionState.PAUSED)

    assert len(controller.messages) == 2
    await asyncio.sleep(0.02)
    assert len(controller.messages) == 2
    assert len(provider.calls) == 2

    controller.resume()
    outcome = await run

    assert outcome == RunOutcome.COMPLETED
    assert [m.speaker for m in controller.messages] == ["gpt", "claude", "gemini"] * 2
    assert sum(1 for m in controller.messages if m.error) == 2
    # the countdown after the second failure is skipped on resume
    assert controller.ticks == [1, 0] * 4


async def test_failure_counter_resets_after_success(fast_pacing, sequential_config, credentials):
    provider = ScriptedProvider({
        "gpt": [ProviderError("gpt", "down")],
        "gemini": [ProviderError("gemini", "down")],
    })
    controller = TickRecorder(Orchestrator(provider, pacing=fast_pacing))

    outcome = await controller.run(sequential_config, credentials)

    assert outcome == RunOutcome.COMPLETED
    assert SessionState.PAUSED not in controller.states


async def test_unconfigured_participant_is_skipped(controller, provider, sequential_config):
    credentials = make_credentials("gpt", "claude", "gemini", missing=["claude"])

    outcome = await controller.run(sequential_config, credentials)

    assert outcome == RunOutcome.COMPLETED
    assert [m.speaker for m in controller.messages] == ["gpt", "gemini"] * 2
    assert not provider.calls_for("claude")


async def test_no_countdown_after_last_configured_turn(controller, sequential_config):
    credentials = make_credentials("gpt", "claude", "gemini", missing=["gemini"])

    outcome = await controller.run(sequential_config, credentials)

    assert outcome == RunOutcome.COMPLETED
    assert [m.speaker for m in controller.messages] == ["gpt", "claude"] * 2
    assert controller.ticks == [1, 0] * 3


async def test_skips_do_not_count_as_failures(fast_pacing, sequential_config):
    credentials = make_credentials("gpt", "claude", "gemini", missing=["claude"])
    provider = ScriptedProvider({"gpt": [ProviderError("gpt", "down")]})
    controller = TickRecorder(Orchestrator(provider, pacing=fast_pacing))

    await controller.run(sequential_config, credentials)

    assert SessionState.PAUSED not in controller.states


async def test_all_participants_unconfigured_completes_silently(controller, provider, sequential_config):
    credentials = make_credentials("gpt", "claude", "gemini", missing=["gpt", "claude", "gemini"])

    outcome = await controller.run(sequential_config, credentials)

    assert outcome == RunOutcome.COMPLETED
    assert controller.messages == []
    assert provider.calls == []


async def test_stop_during_countdown_prevents_further_turns(provider, sequential_config, credentials):
    slow = dataclasses.replace(sequential_config, pacing=PacingConfig(mode=PacingMode.TIMED, delay_seconds=5))
    controller = TickRecorder(Orchestrator(provider, pacing=PacingController(tick_seconds=0.05)))

    run = asyncio.create_task(controller.run(slow, credentials))
    await wait_until(lambda: bool(controller.ticks))
    controller.stop()
    outcome = await run
    ticks_at_stop = list(controller.ticks)
    await asyncio.sleep(0.1)

    assert outcome == RunOutcome.CANCELLED
    assert len(controller.messages) == 1
    assert controller.ticks == ticks_at_stop
    assert 0 not in controller.ticks
    assert controller.state == SessionState.IDLE


async def test_stop_during_provider_call_discards_reply(fast_pacing, sequential_config, credentials):
    provider = ScriptedProvider(delay=5)
    controller = TickRecorder(Orchestrator(provider, pacing=fast_pacing))

    run = asyncio.create_task(controller.run(sequential_config, credentials))
    await wait_until(lambda: controller.active_participant == "gpt")
    controller.stop()
    outcome = await asyncio.wait_for(run, timeout=1)

    assert outcome == RunOutcome.CANCELLED
    assert controller.messages == []


async def test_host_pause_suspends_between_turns(controller, provider, sequential_config, credentials):
    slow = dataclasses.replace(sequential_config, pacing=PacingConfig(mode=PacingMode.MANUAL))

    run = asyncio.create_task(controller.run(slow, credentials))
    await wait_until(lambda: controller.awaiting_advance)
    controller.pause()
    controller.advance()
    await asyncio.sleep(0.02)
    assert len(provider.calls) == 1

    controller.resume()
    await wait_until(lambda: len(controller.messages) == 2)
    controller.stop()
    assert await run == RunOutcome.CANCELLED


async def test_manual_pacing_waits_for_advance(controller, sequential_config, credentials):
    manual = dataclasses.replace(sequential_config, pacing=PacingConfig(mode=PacingMode.MANUAL))

    run = asyncio.create_task(controller.run(manual, credentials))
    await wait_until(lambda: controller.awaiting_advance)
    await asyncio.sleep(0.02)

    assert len(controller.messages) == 1
    assert controller.seconds_remaining == AWAITING_ADVANCE

    controller.advance()
    await wait_until(lambda: len(controller.messages) == 2)
    controller.stop()
    assert await run == RunOutcome.CANCELLED


async def test_cancelled_token_returns_without_state_change(orchestrator, sequential_config, credentials, controller):
    token = CancellationToken()
    token.cancel()

    outcome = await orchestrator.run(sequential_config, credentials, controller, token)

    assert outcome == RunOutcome.CANCELLED
    assert controller.states == []
    assert controller.messages == []


async def test_internal_fault_marks_session_failed(fast_pacing, sequential_config, credentials):
    class BrokenProvider(ProviderClient):
        async def _send(self, credentials, instruction, context):
            raise RuntimeError("bug")

    controller = TickRecorder(Orchestrator(BrokenProvider(), pacing=fast_pacing))

    outcome = await controller.run(sequential_config, credentials)

    assert outcome == RunOutcome.FAILED
    assert controller.state == SessionState.FAILED
    assert controller.messages == []


async def test_reference_files_only_on_first_successful_call(
    controller, provider, sequential_config, credentials, png_file
):
    config = dataclasses.replace(sequential_config, reference_files=(png_file,))

    await controller.run(config, credentials)

    gpt_calls = provider.calls_for("gpt")
    first_blocks = [b for m in gpt_calls[0][2] if not isinstance(m.content, str) for b in m.content]
    later_blocks = [b for m in gpt_calls[1][2] if not isinstance(m.content, str) for b in m.content]
    assert any(b.kind == "image" for b in first_blocks)
    assert not any(b.kind == "image" for b in later_blocks)


async def test_failed_first_call_resends_reference_files(fast_pacing, sequential_config, credentials, png_file):
    provider = ScriptedProvider({"gpt": [ProviderError("gpt", "down")]})
    controller = TickRecorder(Orchestrator(provider, pacing=fast_pacing))
    config = dataclasses.replace(sequential_config, reference_files=(png_file,))

    await controller.run(config, credentials)

    second = provider.calls_for("gpt")[1][2]
    blocks = [b for m in second if not isinstance(m.content, str) for b in m.content]
    assert any(b.kind == "image" for b in blocks)


async def test_context_never_exceeds_window(fast_pacing, sequential_config, credentials):
    provider = ScriptedProvider()
    controller = TickRecorder(Orchestrator(provider, pacing=fast_pacing, context_window=4))
    config = dataclasses.replace(sequential_config, round_limit=4)

    await controller.run(config, credentials)

    assert all(len(context) <= 4 for _, _, context in provider.calls)


async def test_artwork_scored_runs_single_round(controller, png_file, credentials):
    config = _artwork_config(png_file, ArtworkVariant.SCORED, rounds=3)

    outcome = await controller.run(config, credentials)

    assert outcome == RunOutcome.COMPLETED
    assert len(controller.messages) == 2
    assert all(m.kind == MessageKind.ARTWORK_SCORE for m in controller.messages)


async def test_artwork_first_call_carries_image(controller, provider, png_file, credentials):
    await controller.run(_artwork_config(png_file, rounds=1), credentials)

    first = provider.calls_for("gpt")[0][2]
    assert len(first) == 1
    blocks = first[0].content
    assert blocks[0].kind == "text"
    assert blocks[1].kind == "image"
    assert blocks[1].data_b64 is not None
