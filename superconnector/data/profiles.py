"""
Candidate profile pools shown as match results.

Records are immutable; the engine samples from these pools and attaches
the chosen records to a bot message.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Startup:
    id: str
    name: str
    description: str
    industry: str
    stage: str
    traction: str
    founder: str

    kind = "startup"

    def headline(self) -> str:
        return f"{self.name} ({self.industry}, {self.stage}) - {self.traction}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "industry": self.industry,
            "stage": self.stage,
            "traction": self.traction,
            "founder": self.founder,
        }


@dataclass(frozen=True)
class Talent:
    id: str
    name: str
    role: str
    company: str
    location: str
    skills: tuple[str, ...] = field(default_factory=tuple)
    bio: str = ""
    linkedin: str = ""

    kind = "talent"

    def headline(self) -> str:
        return f"{self.name}, {self.role} @ {self.company} ({self.location})"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "id": self.id,
            "name": self.name,
            "role": self.role,
            "company": self.company,
            "location": self.location,
            "skills": list(self.skills),
            "bio": self.bio,
            "linkedin": self.linkedin,
        }


@dataclass(frozen=True)
class Investor:
    id: str
    name: str
    firm: str
    focus: str
    check_size: str
    stages: tuple[str, ...] = field(default_factory=tuple)

    kind = "investor"

    def headline(self) -> str:
        return f"{self.name} @ {self.firm} - {self.focus}, checks {self.check_size}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "id": self.id,
            "name": self.name,
            "firm": self.firm,
            "focus": self.focus,
            "check_size": self.check_size,
            "stages": list(self.stages),
        }


Profile = Startup | Talent | Investor


STARTUPS: tuple[Startup, ...] = (
    Startup(
        id="s1",
        name="QuantumFlow AI",
        description="Next-gen optimization for quantum-resistant cryptography.",
        industry="GenAI Infrastructure",
        stage="Seed",
        traction="$200k ARR",
        founder="Sarah Chen",
    ),
    Startup(
        id="s2",
        name="NeoBanker",
        description="Autonomous financial agents for cross-border settlements.",
        industry="Fintech",
        stage="Pre-Seed",
        traction="Waitlist: 50k users",
        founder="James Wilson",
    ),
    Startup(
        id="s3",
        name="BioSynthetix",
        description="Using LLMs to design new protein structures for anti-aging.",
        industry="BioTech",
        stage="Series A",
        traction="Clinical Trial Phase 1",
        founder="Dr. Elena Rossi",
    ),
    Startup(
        id="s4",
        name="SkyNode",
        description="Decentralized drone delivery network for remote areas.",
        industry="Logistics",
        stage="Seed",
        traction="10,000 deliveries completed",
        founder="Marcus Thorne",
    ),
    Startup(
        id="s5",
        name="EtherShield",
        description="Real-time threat detection for decentralized applications.",
        industry="Security",
        stage="Series A",
        traction="$1.2M ARR",
        founder="Anya Volk",
    ),
)

TALENTS: tuple[Talent, ...] = (
    Talent(
        id="t1",
        name="Alex Rivera",
        role="Senior AI Engineer",
        company="Neuralink",
        location="Austin, TX",
        skills=("PyTorch", "Rust", "LLM Ops"),
        bio="Spearheaded the integration of real-time neural decoding algorithms. Expert in low-latency AI.",
        linkedin="linkedin.com/in/arivera-ai",
    ),
    Talent(
        id="t2",
        name="Jordan Smith",
        role="Founding Engineer",
        company="Scale AI",
        location="San Francisco, CA",
        skills=("TypeScript", "Kubernetes", "Python"),
        bio="Built the core data pipeline that scales to millions of tasks per day. High-growth specialist.",
        linkedin="linkedin.com/in/jsmith-eng",
    ),
    Talent(
        id="t3",
        name="Elena Varkova",
        role="Principal Security Researcher",
        company="OpenAI",
        location="San Francisco, CA",
        skills=("Cybersecurity", "C++", "Go"),
        bio="Focused on alignment and adversarial robustness. Former head of security at a top fintech.",
        linkedin="linkedin.com/in/evarkova",
    ),
    Talent(
        id="t4",
        name="Chen Wei",
        role="Staff Product Engineer",
        company="Ramp",
        location="New York, NY",
        skills=("React", "PostgreSQL", "Design Systems"),
        bio="Master of UX performance and product velocity. Lead architect for high-complexity financial dashboards.",
        linkedin="linkedin.com/in/cwei-ramp",
    ),
)

INVESTORS: tuple[Investor, ...] = (
    Investor(
        id="i1",
        name="Priya Natarajan",
        firm="Lattice Ventures",
        focus="AI infrastructure",
        check_size="$250k-$1M",
        stages=("Pre-Seed", "Seed"),
    ),
    Investor(
        id="i2",
        name="Tom Okafor",
        firm="Northbound Capital",
        focus="Fintech and payments",
        check_size="$1M-$3M",
        stages=("Seed", "Series A"),
    ),
    Investor(
        id="i3",
        name="Mei Lin",
        firm="Helix Bio Fund",
        focus="Computational biology",
        check_size="$2M-$5M",
        stages=("Series A",),
    ),
    Investor(
        id="i4",
        name="Daniel Brooks",
        firm="Angel (ex-Stripe)",
        focus="Developer tools",
        check_size="$25k-$100k",
        stages=("Pre-Seed",),
    ),
    Investor(
        id="i5",
        name="Sofia Marquez",
        firm="Frontier Syndicate",
        focus="Security and defense tech",
        check_size="$500k-$2M",
        stages=("Seed", "Series A"),
    ),
)


POOLS: dict[str, tuple[Profile, ...]] = {
    "startups": STARTUPS,
    "talents": TALENTS,
    "investors": INVESTORS,
}


def get_pool(name: str) -> tuple[Profile, ...]:
    """Look up a candidate pool by name."""
    try:
        return POOLS[name]
    except KeyError:
        raise ValueError(f"Unknown candidate pool: {name}") from None
