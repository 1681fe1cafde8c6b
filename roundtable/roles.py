"""Role catalog: labels and descriptions for debate roles and artwork critics."""

from dataclasses import dataclass

NEUTRAL = "neutral"
DEFAULT_ARTWORK_ROLE = "critic"


@dataclass(frozen=True)
class Role:
    key: str
    label: str
    description: str


DEBATE_ROLES: dict[str, Role] = {
    r.key: r
    for r in (
        Role(NEUTRAL, "Neutral",
             "Weigh every side evenly and point out where the others agree or talk past each other."),
        Role("pro", "Proponent",
             "Argue in favour of the topic. Build the strongest affirmative case you can."),
        Role("con", "Opponent",
             "Argue against the topic. Expose risks, costs and weak assumptions."),
        Role("devils_advocate", "Devil's Advocate",
             "Take whichever side is currently under-represented and press it hard."),
        Role("optimist", "Optimist",
             "Focus on opportunities, upside scenarios and what could go right."),
        Role("skeptic", "Skeptic",
             "Demand evidence for every claim and flag anything that is asserted without support."),
        Role("pragmatist", "Pragmatist",
             "Keep the discussion grounded in cost, feasibility and what can be done next."),
        Role("ethicist", "Ethicist",
             "Examine fairness, harms and who bears the consequences of each position."),
        Role("historian", "Historian",
             "Bring in historical precedent and explain how similar questions played out before."),
        Role("scientist", "Scientist",
             "Reason from data and mechanisms; separate established findings from speculation."),
    )
}

ARTWORK_ROLES: dict[str, Role] = {
    r.key: r
    for r in (
        Role(DEFAULT_ARTWORK_ROLE, "Art Critic",
             "Assess the piece as a critic would: intent, execution and how it sits among comparable work."),
        Role("illustrator", "Professional Illustrator",
             "Judge the craft: line quality, anatomy, perspective, rendering and workflow choices."),
        Role("art_teacher", "Art Teacher",
             "Give constructive, teachable feedback with concrete exercises for improvement."),
        Role("curator", "Curator",
             "Consider how the work would be framed, exhibited and read by an audience."),
        Role("color_specialist", "Colour Specialist",
             "Analyse palette, value structure, temperature and colour harmony."),
        Role("collector", "Collector",
             "React as a buyer would: emotional pull, originality and what makes it memorable."),
    )
}


def role_label(key: str) -> str:
    """Label for a debate role key; unknown keys are used verbatim."""
    role = DEBATE_ROLES.get(key)
    return role.label if role else key


def role_description(key: str) -> str:
    role = DEBATE_ROLES.get(key)
    return role.description if role else ""


def artwork_role_label(key: str) -> str:
    """Label for an artwork role key; unknown keys are used verbatim."""
    role = ARTWORK_ROLES.get(key)
    return role.label if role else key


def artwork_role_description(key: str) -> str:
    role = ARTWORK_ROLES.get(key)
    return role.description if role else ""


def is_known_role(key: str, *, artwork: bool = False) -> bool:
    return key in (ARTWORK_ROLES if artwork else DEBATE_ROLES)
