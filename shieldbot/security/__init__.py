"""shieldbot security layer.

Exports the three filtering stages of the inbound pipeline: Shield
(structural validation), Sanitizer (content normalization) and AntiSpam
(flood control).
"""

from shieldbot.security.antispam import (
    ActivityTracker,
    AntiSpam,
    AntiSpamConfig,
    SlidingWindowTracker,
)
from shieldbot.security.sanitizer import (
    Sanitizer,
    SanitizerConfig,
)
from shieldbot.security.shield import (
    Shield,
    ShieldConfig,
    ShieldDecision,
    ShieldVerdict,
)

__all__ = [
    # antispam
    "ActivityTracker",
    "AntiSpam",
    "AntiSpamConfig",
    "SlidingWindowTracker",
    # sanitizer
    "Sanitizer",
    "SanitizerConfig",
    # shield
    "Shield",
    "ShieldConfig",
    "ShieldDecision",
    "ShieldVerdict",
]
