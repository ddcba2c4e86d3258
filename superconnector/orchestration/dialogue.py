"""
Dialogue script - Menus, prompts and branch plans for the guided chat.

Everything the bot says lives here so the transition engine only decides
*which* line comes next.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from superconnector.orchestration.state import Choice, Step


# ============================================================================
# Menus
# ============================================================================

ROLE_OPTIONS: tuple[Choice, ...] = (
    Choice("founder", "I'm a Founder", "🚀"),
    Choice("investor", "I'm an Investor", "💼"),
    Choice("researcher", "AI Researcher/Engineer", "🔬"),
    Choice("talent", "Looking for opportunities", "⭐"),
    Choice("other", "Other", "✨"),
)

FOUNDER_GOALS: tuple[Choice, ...] = (
    Choice("fundraise", "Raise a round", "💰"),
    Choice("hire", "Hire talent", "👥"),
    Choice("cofounder", "Find a co-founder", "🤝"),
)

INVESTOR_FOCUS: tuple[Choice, ...] = (
    Choice("deal-flow", "Deal flow", "📊"),
    Choice("ai-startups", "AI startups", "🤖"),
    Choice("coinvest", "Co-invest", "💎"),
)

OTHER_NEEDS: tuple[Choice, ...] = (
    Choice("connect", "Network", "🌐"),
    Choice("explore", "Explore", "🔍"),
)

UPSELL_OPTIONS: tuple[Choice, ...] = (
    Choice("pay", "Unlock Premium", "💎"),
    Choice("skip", "Maybe later", "👋"),
)


# role -> (goal step, goal menu, prompt)
GOAL_MENUS: dict[str, tuple[Step, tuple[Choice, ...], str]] = {
    "founder": (Step.FOUNDER_GOAL, FOUNDER_GOALS, "Love it! 🔥 What are you looking for?"),
    "investor": (Step.INVESTOR_FOCUS, INVESTOR_FOCUS, "Great! What's most valuable for you?"),
    "other": (Step.OTHER_INTAKE, OTHER_NEEDS, "Awesome! What brings you here?"),
}


def role_group(role: str | None) -> str:
    """Collapse the role menu onto the three goal menus."""
    if role in ("founder", "investor"):
        return role
    return "other"


# ============================================================================
# Lines
# ============================================================================

GREETING = (
    "Hey! ✨ I'm Star, your AI superconnector.\n\n"
    "I help founders connect with investors, VCs, and the right people to scale."
)
ROLE_PROMPT = "How would you describe yourself?"

ANALYZING = "On it! Taking a quick look at {website}... 🔎"

UPSELL = (
    "Want warm intros to all of them, plus more hand-picked matches? ⭐\n\n"
    "Unlock Premium for {price}."
)
CHECKOUT = "Opening secure checkout... 🔒"
PAYMENT_CONFIRMED = "Payment confirmed! 🎉 Premium unlocked."
PAYMENT_FAILED = "Payment didn't go through ({reason}). Proceeding without the unlock."
FALLBACK_RESULTS = "No worries, your free matches are still yours:"
BONUS_RESULTS = "Your bonus matches: 💎"
BONUS_EXHAUSTED = "You've seen every match I have right now. More are on the way by email! 💌"

SUBMITTING = "Submitting your info... ⏳"
CONFIRMATION = (
    "You're in! 🚀✨\n\n"
    "We'll reach out within 24-48hrs with your first introductions.\n\n"
    "Welcome to OpenStars! 🌟"
)

# Used when enrichment fails or answers are missing
FALLBACK_INDUSTRY = "Emerging Tech"
PLACEHOLDERS: dict[str, str] = {
    "industry": "your space",
    "stage": "your stage",
    "first_name": "there",
    "website": "your site",
}


@dataclass(frozen=True)
class FieldPrompt:
    """A free-text question and the hint shown in the input box."""
    text: str
    placeholder: str = "Type here..."


FIELD_PROMPTS: dict[str, FieldPrompt] = {
    "website": FieldPrompt(
        "Drop your startup's website and I'll take a look. 🔎",
        "https://...",
    ),
    "traction": FieldPrompt(
        "Looks like you're building in {industry}. 🔥\n\nWhat traction do you have so far?",
        "$20k MRR, 5k users...",
    ),
    "stage": FieldPrompt(
        "Nice! 📈\n\nWhat stage are you at?",
        "Pre-Seed, Seed, Series A...",
    ),
    "hiring_for": FieldPrompt(
        "Who's the key hire you need most?",
        "Founding ML engineer...",
    ),
    "pitch": FieldPrompt(
        "One-liner about what you're building?",
        "Building AI for...",
    ),
    "thesis": FieldPrompt(
        "What's your thesis and typical check size?",
        "Pre-seed AI infra, $250k...",
    ),
    "interest": FieldPrompt(
        "Tell me a bit about what you're looking for.",
        "Meeting AI founders...",
    ),
    "name": FieldPrompt(
        "Let's get you connected.\n\nWhat's your full name?",
        "Your name...",
    ),
    "email": FieldPrompt(
        "Nice, {first_name}! 👋\n\nYour email?",
        "email@example.com",
    ),
    "phone": FieldPrompt(
        "Got it! 📧\n\nPhone? (for warm intros)",
        "+1 (555) 000-0000",
    ),
    "linkedin": FieldPrompt(
        "Perfect! 📱\n\nLinkedIn URL?",
        "linkedin.com/in/...",
    ),
}

CONTACT_FIELDS: tuple[str, ...] = ("name", "email", "phone", "linkedin")


# ============================================================================
# Branch plans
# ============================================================================

@dataclass(frozen=True)
class Branch:
    """
    What one (role, goal) pair asks and which pool it matches against.

    Attributes:
        capture: Free-text fields asked in order.
        pool: Name of the candidate pool sampled for results.
        results_intro: Text of the results message.
        analyze_field: Field whose value is sent to content analysis.
    """
    capture: tuple[str, ...]
    pool: str
    results_intro: str
    analyze_field: str | None = None


BRANCHES: dict[tuple[str, str], Branch] = {
    ("founder", "fundraise"): Branch(
        capture=("website", "traction", "stage"),
        pool="investors",
        results_intro="Here are {count} investors backing {industry} at {stage}: ✨",
        analyze_field="website",
    ),
    ("founder", "hire"): Branch(
        capture=("hiring_for",),
        pool="talents",
        results_intro="Here are {count} builders who could be your next hire: ✨",
    ),
    ("founder", "cofounder"): Branch(
        capture=("pitch",),
        pool="talents",
        results_intro="Here are {count} potential co-founders worth a coffee: 🤝",
    ),
    ("investor", "deal-flow"): Branch(
        capture=("thesis",),
        pool="startups",
        results_intro="Here are {count} startups from this week's deal flow: 📊",
    ),
    ("investor", "ai-startups"): Branch(
        capture=("thesis",),
        pool="startups",
        results_intro="Here are {count} AI startups that fit your thesis: 🤖",
    ),
    ("investor", "coinvest"): Branch(
        capture=("thesis",),
        pool="startups",
        results_intro="Here are {count} rounds with co-invest allocation open: 💎",
    ),
    ("other", "connect"): Branch(
        capture=("interest",),
        pool="talents",
        results_intro="Here are {count} people worth meeting: 🌐",
    ),
    ("other", "explore"): Branch(
        capture=("interest",),
        pool="startups",
        results_intro="Here are {count} startups to explore: 🔍",
    ),
}


def branch_for(answers: Mapping[str, str]) -> Branch:
    """Pick the branch purely from the captured role and goal."""
    key = (role_group(answers.get("role")), answers.get("goal", ""))
    try:
        return BRANCHES[key]
    except KeyError:
        raise ValueError(f"No branch for role/goal {key}") from None


class _Defaults(dict):
    def __missing__(self, key: str) -> str:
        return PLACEHOLDERS.get(key, "")


def fill(template: str, answers: Mapping[str, str], **extra: str) -> str:
    """Interpolate captured answers verbatim, with placeholders for gaps."""
    values = _Defaults({k: v for k, v in answers.items() if v})
    name = answers.get("name", "").strip()
    if name:
        values["first_name"] = name.split()[0]
    values.update({k: v for k, v in extra.items() if v})
    return template.format_map(values)


def format_price(cents: int, currency: str = "usd") -> str:
    amount = cents / 100
    text = f"{amount:,.0f}" if cents % 100 == 0 else f"{amount:,.2f}"
    if currency.lower() == "usd":
        return f"${text}"
    return f"{text} {currency.upper()}"


def placeholder_for(field_name: str | None) -> str:
    """Input hint for the presentation layer."""
    if field_name and field_name in FIELD_PROMPTS:
        return FIELD_PROMPTS[field_name].placeholder
    return "Type here..."
