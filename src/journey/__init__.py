"""
BoldMove Journey - guided discovery and action pipeline.

Stages:
1. Profile reconciliation - onboarding draft into Supabase (eventually consistent)
2. Five Whys - fixed-depth reflective interview, one generated question per round
3. Synthesis - root motivation, finalizes session / dream / profile
4. Roadmap - concrete actions for the dream, generated once after synthesis
5. Tiny steps - action broken into 3-5 sub-two-minute steps, resumable
6. Progress - completions, current and longest streak
"""

from .models import (
    Action,
    DeepDive,
    Dream,
    Identity,
    OnboardingDraft,
    Profile,
    ProgressSnapshot,
    ReflectionExchange,
    ReflectionSession,
    Roadmap,
    TinyStep,
)
from .pipeline import JourneyPipeline, JourneyProgress

__all__ = [
    "Action",
    "DeepDive",
    "Dream",
    "Identity",
    "OnboardingDraft",
    "Profile",
    "ProgressSnapshot",
    "ReflectionExchange",
    "ReflectionSession",
    "Roadmap",
    "TinyStep",
    "JourneyPipeline",
    "JourneyProgress",
]
