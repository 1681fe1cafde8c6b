"""Instruction text per interaction mode, one strategy class per mode."""

from abc import ABC, abstractmethod
from types import MappingProxyType

from roundtable.models import ArtworkVariant, InteractionMode, MessageKind, SessionConfig
from roundtable.roles import (
    DEFAULT_ARTWORK_ROLE,
    NEUTRAL,
    artwork_role_description,
    artwork_role_label,
    role_description,
    role_label,
)

JUDGE_LABEL = "Judge"

ACCURACY_RULES = """Accuracy and honesty (mandatory):
- Cite a source or link whenever you state a fact.
- Never invent facts, names, tools, features, dates, statistics, quotes, sources or examples.
- If you do not know something, say "I don't know" or "this needs verification". Saying you don't know beats a wrong answer.
- Base your answer on the most recent information you have and state its date when it may be outdated.
- Avoid exaggeration, persuasion, speculation or storytelling unless explicitly asked for.
- Do not infer the user's intent, constraints or preferences. Ask instead of guessing.
- Flag any statement you are less than 95% sure of, e.g. "needs verification" or "I believe so, but this should be checked"."""

_REFERENCE_TEXT_TEMPLATE = '''Reference material:
"""
{text}
"""

Ground your contribution in the reference material above. Quote or analyse it where relevant.'''

_REFERENCE_FILES_HINT = (
    "Attached images/documents are provided as reference material. "
    "Analyse them and use them in the discussion."
)

_JUDGE_RUBRIC = """After each round, evaluate it in exactly this format:

**Round [N] evaluation**

| Participant | Score (out of 10) | Assessment |
|-------------|-------------------|------------|
| [name] | X | one-line assessment |

**Judge's comments**: the key points of contention this round and each participant's strengths and weaknesses.
**Round winner**: [name]

Scoring criteria: logic (3), quality of evidence (3), rebuttal (2), persuasiveness (2).

In the final round also give:
**Overall winner**: [name]
**Overall assessment**: a summary of the whole debate and each participant's overall performance."""

_ARTWORK_RUBRIC = """Answer in exactly this format:

**Scores**

| Criterion | Score (out of 10) | Comment |
|-----------|-------------------|---------|
| Composition | X | one-line comment |
| Colour | X | one-line comment |
| Originality | X | one-line comment |
| Technique | X | one-line comment |
| Emotional impact | X | one-line comment |
| Finish | X | one-line comment |

**Total**: XX / 60

**Overall feedback**: (a short paragraph with your overall assessment and suggestions)

**Strengths**: (the 2-3 most striking)

**To improve**: (2-3 things to develop)"""


def _roster(config: SessionConfig, participants: tuple[str, ...] | list[str] | None = None) -> str:
    names = config.participants if participants is None else participants
    return ", ".join(config.label_for(p) for p in names)


def _debaters(config: SessionConfig) -> list[str]:
    return [p for p in config.participants if p != config.judge]


def _conversation_rules(config: SessionConfig) -> str:
    return f"""Rules:
- Be concise and to the point (roughly 100-200 words).
- Refer to the other participants' points specifically and build on them.
- Messages prefixed with a bracketed name such as "[{config.label_for(config.participants[0])}]:" come from other participants.
- Messages prefixed with "[Moderator]:" come from the human moderator watching the exchange. Answer their questions or requests first."""


class PromptStrategy(ABC):
    """Builds the instruction text framing one participant's call."""

    @abstractmethod
    def build(self, config: SessionConfig, participant: str) -> str:
        ...

    def preamble(self, config: SessionConfig, participant: str) -> str:
        return (
            f'You are "{config.label_for(participant)}". You are taking part in a discussion between several AIs.\n'
            f'Topic: "{config.topic}"\n'
            f"Participants: {_roster(config)}\n\n"
            f"{_conversation_rules(config)}\n\n"
            f"{ACCURACY_RULES}"
        )

    def append_references(self, prompt: str, config: SessionConfig) -> str:
        if config.use_reference and config.reference_text.strip():
            prompt += "\n\n" + _REFERENCE_TEXT_TEMPLATE.format(text=config.reference_text.strip())
        if config.reference_files or config.artwork is not None:
            prompt += "\n\n" + _REFERENCE_FILES_HINT
        return prompt


class SequentialTurnsStrategy(PromptStrategy):
    def build(self, config: SessionConfig, participant: str) -> str:
        directive = (
            "Format: sequential turns (each participant speaks in order).\n"
            "Consider what the previous speaker said; agree, rebut or extend it and then give your own view."
        )
        return self.append_references(f"{self.preamble(config, participant)}\n\n{directive}", config)


class OpenDiscussionStrategy(PromptStrategy):
    def build(self, config: SessionConfig, participant: str) -> str:
        directive = (
            "Format: open discussion.\n"
            "Freely rebut, agree with, question or extend anything the others have said.\n"
            "Bringing in an entirely new angle is welcome too."
        )
        return self.append_references(f"{self.preamble(config, participant)}\n\n{directive}", config)


class AssignedRolesStrategy(PromptStrategy):
    def build(self, config: SessionConfig, participant: str) -> str:
        role = config.role_for(participant) or NEUTRAL
        directive = (
            "Format: assigned roles.\n"
            f"Your assigned role: **{role_label(role)}**\n"
            f"{role_description(role)}\n"
            "Keep this role's perspective and tone consistently throughout the discussion."
        )
        return self.append_references(f"{self.preamble(config, participant)}\n\n{directive}", config)


class AdversarialStrategy(PromptStrategy):
    """Debate with an optional judge; the judge gets a scoring rubric instead of a side."""

    def build(self, config: SessionConfig, participant: str) -> str:
        if config.judge is not None and participant == config.judge:
            return self._build_judge(config, participant)
        return self._build_debater(config, participant)

    def _build_judge(self, config: SessionConfig, participant: str) -> str:
        matchup = " vs ".join(config.label_for(p) for p in _debaters(config))
        directive = (
            "Format: adversarial debate (judge).\n"
            "You are the **judge** of this debate. You do not take part in it.\n"
            f"Matchup: {matchup}\n\n"
            f"{_JUDGE_RUBRIC}"
        )
        return self.append_references(f"{self.preamble(config, participant)}\n\n{directive}", config)

    def _build_debater(self, config: SessionConfig, participant: str) -> str:
        me = config.label_for(participant)
        opponents = ", ".join(config.label_for(p) for p in _debaters(config) if config.label_for(p) != me)
        judge = config.label_for(config.judge) if config.judge else JUDGE_LABEL
        directive = (
            "Format: adversarial debate (debater).\n"
            f"This is a competitive debate. Your opponents: {opponents}\n"
            f"Judge: {judge} (scores every round)\n\n"
            "Goal: win by earning high scores from the judge.\n"
            "- Present strong arguments backed by concrete evidence.\n"
            "- Point out and rebut your opponents' weaknesses precisely.\n"
            "- Scoring criteria are logic, quality of evidence, rebuttal and persuasiveness.\n"
            "- Adjust your strategy to the judge's earlier feedback."
        )
        role = config.role_for(participant)
        if role and role != NEUTRAL:
            directive += (
                f"\n\nYour character: **{role_label(role)}**\n"
                f"{role_description(role)}\n"
                "Keep this character's voice and temperament while you debate."
            )
        return self.append_references(f"{self.preamble(config, participant)}\n\n{directive}", config)


class ArtworkCritiqueStrategy(PromptStrategy):
    """Artwork evaluation with three variants selected by config.artwork_variant."""

    def build(self, config: SessionConfig, participant: str) -> str:
        builders = {
            ArtworkVariant.DISCUSSION: self._build_discussion,
            ArtworkVariant.INDIVIDUAL: self._build_individual,
            ArtworkVariant.SCORED: self._build_scored,
        }
        prompt = builders[config.artwork_variant](config, participant)
        return self.append_references(prompt, config)

    @staticmethod
    def _context_note(config: SessionConfig) -> str:
        if not config.artwork_context.strip():
            return ""
        return f'\nNote from the artist/user: "{config.artwork_context.strip()}"'

    def _build_discussion(self, config: SessionConfig, participant: str) -> str:
        return f"""You are "{config.label_for(participant)}". You are taking part in an artwork critique with several AIs.
Participants: {_roster(config)}{self._context_note(config)}

The attached image is the illustration/drawing under review.

Rules:
- Give specific, constructive critique of the work (roughly 100-200 words).
- Refer to the other participants' points specifically and build on them.
- Messages prefixed with "[Moderator]:" come from the user. Answer their questions or requests first.
- Cover composition, colour, technique, originality, emotional impact and finish.
- Balance strengths and points to improve.
- Mention relevant art theory or historical references where they apply.

{ACCURACY_RULES}"""

    def _build_individual(self, config: SessionConfig, participant: str) -> str:
        role = config.role_for(participant) or DEFAULT_ARTWORK_ROLE
        return f"""You are "{config.label_for(participant)}" acting as "{artwork_role_label(role)}".
The attached image is the illustration/drawing under review.{self._context_note(config)}

{artwork_role_description(role)}

Rules:
- Evaluate the work independently from the perspective of your specialty.
- Do not rely on the other AIs' opinions; give your own critique.
- State strengths and points to improve concretely (roughly 150-250 words).
- Combine professional depth with explanations that are easy to follow.

{ACCURACY_RULES}"""

    def _build_scored(self, config: SessionConfig, participant: str) -> str:
        return f"""You are "{config.label_for(participant)}", a professional art assessor.
Score the attached image against the criteria below and give feedback.{self._context_note(config)}

{_ARTWORK_RUBRIC}

Rules:
- Follow the format above exactly.
- Give each criterion an integer score from 1 to 10.
- Keep comments specific and constructive.

{ACCURACY_RULES}"""


STRATEGIES = MappingProxyType({
    InteractionMode.SEQUENTIAL: SequentialTurnsStrategy(),
    InteractionMode.OPEN: OpenDiscussionStrategy(),
    InteractionMode.ROLES: AssignedRolesStrategy(),
    InteractionMode.ADVERSARIAL: AdversarialStrategy(),
    InteractionMode.ARTWORK: ArtworkCritiqueStrategy(),
})


def resolve_prompt(config: SessionConfig, participant: str) -> str:
    """Return the instruction text for `participant` under the session's mode.

    Raises:
        KeyError: If the mode has no registered strategy.
    """
    return STRATEGIES[config.mode].build(config, participant)


def role_label_for(config: SessionConfig, participant: str) -> str | None:
    """Role label attached to a participant's messages, or None for the default role."""
    if config.mode == InteractionMode.ADVERSARIAL and config.judge == participant:
        return JUDGE_LABEL
    role = config.role_for(participant)
    if config.mode in (InteractionMode.ROLES, InteractionMode.ADVERSARIAL):
        if role and role != NEUTRAL:
            return role_label(role)
    if config.mode == InteractionMode.ARTWORK and config.artwork_variant == ArtworkVariant.INDIVIDUAL:
        if role:
            return artwork_role_label(role)
    return None


def message_kind_for(config: SessionConfig, participant: str) -> MessageKind | None:
    if config.mode == InteractionMode.ADVERSARIAL and config.judge == participant:
        return MessageKind.JUDGE_EVALUATION
    if config.mode == InteractionMode.ARTWORK:
        if config.artwork_variant == ArtworkVariant.SCORED:
            return MessageKind.ARTWORK_SCORE
        return MessageKind.ARTWORK_CRITIQUE
    return None
