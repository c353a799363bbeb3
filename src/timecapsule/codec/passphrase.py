"""
Passphrase generation and strength checks.

Passphrases are never stored or recovered; these helpers only help a sender
pick one worth sharing with the receiver.
"""

import re
import secrets
from dataclasses import dataclass, field

PASSPHRASE_ALPHABET = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789!@#$%^&*"
)
MIN_PASSPHRASE_LENGTH = 8
COMMON_FRAGMENTS = ("password", "123456", "qwerty", "letmein")


@dataclass
class PassphraseStrength:
    """
    Result of a passphrase strength check.

    Attributes:
        score: Heuristic score, higher is stronger
        is_valid: Whether the passphrase is acceptable for a capsule
        suggestions: Human-readable hints
    """

    score: int = 0
    is_valid: bool = False
    suggestions: list[str] = field(default_factory=list)

    @property
    def label(self) -> str:
        """Short strength label."""
        if self.score < 2:
            return "very weak"
        if self.score < 4:
            return "weak"
        if self.score < 6:
            return "good"
        return "excellent"


def generate_passphrase(length: int = 16) -> str:
    """Generate a random passphrase from a CSPRNG."""
    if length < MIN_PASSPHRASE_LENGTH:
        raise ValueError(f"length must be at least {MIN_PASSPHRASE_LENGTH}")
    return "".join(secrets.choice(PASSPHRASE_ALPHABET) for _ in range(length))


def check_passphrase_strength(passphrase: str) -> PassphraseStrength:
    """
    Score a passphrase by length, character variety and common patterns.

    A passphrase is valid at score >= 4 with at least 8 characters.
    """
    result = PassphraseStrength()
    if not passphrase:
        result.suggestions.append("Passphrase is required")
        return result

    if len(passphrase) < MIN_PASSPHRASE_LENGTH:
        result.suggestions.append(f"Use at least {MIN_PASSPHRASE_LENGTH} characters")
    elif len(passphrase) >= 12:
        result.score += 2
    else:
        result.score += 1

    for pattern in (r"[a-z]", r"[A-Z]", r"[0-9]", r"[^a-zA-Z0-9]"):
        if re.search(pattern, passphrase):
            result.score += 1

    lowered = passphrase.lower()
    if (
        any(fragment in lowered for fragment in COMMON_FRAGMENTS)
        or passphrase == lowered
        or passphrase == passphrase.upper()
    ):
        result.score -= 2
        result.suggestions.append("Avoid common patterns and single-case passphrases")

    result.is_valid = result.score >= 4 and len(passphrase) >= MIN_PASSPHRASE_LENGTH

    if result.score < 2:
        result.suggestions.append("Very weak - add more character variety")
    elif result.score < 4:
        result.suggestions.append("Weak - consider adding special characters")

    return result
