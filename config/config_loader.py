"""Load settings.yaml into typed dataclasses. Resolves API keys from the environment."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from roundtable.models import PacingConfig, PacingMode, ParticipantCredentials

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class ParticipantConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    label: str
    timeout_sec: int = 60
    max_tokens: int = 2048
    base_url: str | None = None


@dataclass
class RetryConfig:
    max_retries: int = 3
    initial_delay_sec: float = 1.0
    max_delay_sec: float = 10.0
    backoff_multiplier: float = 2.0


@dataclass
class DefaultsConfig:
    rounds: int
    max_rounds: int
    output_dir: Path
    mode: str = "sequential"
    participants: list[str] = field(default_factory=list)
    pacing: PacingConfig = field(default_factory=PacingConfig)
    context_window: int = 15
    failure_threshold: int = 2


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    participants: dict[str, ParticipantConfig]
    retry: RetryConfig = field(default_factory=RetryConfig)
    available_participants: set[str] = field(default_factory=set)

    def labels(self) -> tuple[tuple[str, str], ...]:
        return tuple((name, p.label) for name, p in self.participants.items())


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Logs participants whose API key is missing but does not raise; the
    orchestrator skips them as configuration gaps.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    pacing_raw = defaults_raw.get("pacing", {})
    defaults = DefaultsConfig(
        rounds=int(defaults_raw["rounds"]),
        max_rounds=int(defaults_raw["max_rounds"]),
        output_dir=Path(defaults_raw["output_dir"]),
        mode=str(defaults_raw.get("mode", "sequential")),
        participants=list(defaults_raw.get("participants", [])),
        pacing=PacingConfig(
            mode=PacingMode(pacing_raw.get("mode", PacingMode.MANUAL.value)),
            delay_seconds=int(pacing_raw.get("delay_seconds", 5)),
        ),
        context_window=int(defaults_raw.get("context_window", 15)),
        failure_threshold=int(defaults_raw.get("failure_threshold", 2)),
    )

    retry_raw = raw.get("retry", {})
    retry = RetryConfig(
        max_retries=int(retry_raw.get("max_retries", 3)),
        initial_delay_sec=float(retry_raw.get("initial_delay_sec", 1.0)),
        max_delay_sec=float(retry_raw.get("max_delay_sec", 10.0)),
        backoff_multiplier=float(retry_raw.get("backoff_multiplier", 2.0)),
    )

    participants: dict[str, ParticipantConfig] = {}
    available: set[str] = set()

    for name, p_raw in raw["participants"].items():
        participants[name] = ParticipantConfig(
            name=name,
            sdk=p_raw["sdk"],
            model=p_raw["model"],
            api_key_env=p_raw["api_key_env"],
            label=str(p_raw.get("label", name.title())),
            timeout_sec=int(p_raw.get("timeout_sec", 60)),
            max_tokens=int(p_raw.get("max_tokens", 2048)),
            base_url=p_raw.get("base_url"),
        )

        if os.environ.get(p_raw["api_key_env"], "").strip():
            available.add(name)
            logger.info("Participant available: %s", name)
        else:
            logger.info(
                "Participant unavailable (no API key): %s (set %s in .env)",
                name,
                p_raw["api_key_env"],
            )

    return AppConfig(
        defaults=defaults,
        participants=participants,
        retry=retry,
        available_participants=available,
    )


def build_credentials(config: AppConfig) -> dict[str, ParticipantCredentials]:
    """Read API keys from the environment. Missing keys yield empty credentials."""
    return {
        name: ParticipantCredentials(
            sdk=p.sdk,
            model=p.model,
            api_key=os.environ.get(p.api_key_env, "").strip(),
            base_url=p.base_url,
            timeout_sec=p.timeout_sec,
            max_tokens=p.max_tokens,
        )
        for name, p in config.participants.items()
    }
