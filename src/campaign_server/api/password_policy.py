"""
Password policy enforcement for account creation.

Three levels are available, selected by ``[auth] password_policy``:

    - BASIC: 8 characters, common password check
    - STANDARD: 12 characters, common password, sequence and repeat checks
    - STRICT: 16 characters, all checks plus every character class

All failures are collected (not fail-fast) so a caller can show the full list.

Usage:
    from campaign_server.api.password_policy import validate_password_strength

    result = validate_password_strength("correct horse battery staple")
    if not result.is_valid:
        print(result.errors)
"""

import re
from dataclasses import dataclass, field
from enum import Enum

# Lowercase-normalized passwords that always fail, regardless of level.
COMMON_PASSWORDS: frozenset[str] = frozenset(
    [
        "123456",
        "12345678",
        "123456789",
        "1234567890",
        "password",
        "password1",
        "password123",
        "passw0rd",
        "qwerty",
        "qwertyuiop",
        "abc123",
        "111111",
        "000000",
        "letmein",
        "welcome",
        "iloveyou",
        "admin",
        "administrator",
        "monkey",
        "dragon",
        "master",
        "sunshine",
        "princess",
        "football",
        "baseball",
        "trustno1",
        "changeme",
        "dungeonmaster",
        "dungeons",
        "dungeonsanddragons",
    ]
)

_SUBSTITUTIONS = str.maketrans({"@": "a", "4": "a", "3": "e", "1": "i", "0": "o", "$": "s", "5": "s"})


class PolicyLevel(Enum):
    """Predefined password policy levels."""

    BASIC = "basic"
    STANDARD = "standard"
    STRICT = "strict"


@dataclass
class ValidationResult:
    """
    Outcome of a password check.

    Attributes:
        is_valid: True when no rule failed.
        errors: Human-readable failure messages, in rule order.
    """

    is_valid: bool
    errors: list[str] = field(default_factory=list)


@dataclass
class PasswordPolicy:
    """
    Configurable password rules.

    Attributes:
        min_length: Minimum number of characters.
        max_length: Maximum number of characters.
        require_classes: Require upper, lower, digit and special characters.
        check_common: Reject passwords found in ``COMMON_PASSWORDS``,
            including simple character substitutions (``p@ssw0rd``).
        check_sequences: Reject runs like ``abc`` or ``321``.
        max_repeated: Longest allowed run of one character; 0 disables.
    """

    min_length: int = 12
    max_length: int = 128
    require_classes: bool = False
    check_common: bool = True
    check_sequences: bool = True
    max_repeated: int = 3

    def validate(self, password: str) -> ValidationResult:
        """Check ``password`` against every configured rule."""
        errors: list[str] = []

        if len(password) < self.min_length:
            errors.append(
                f"Password must be at least {self.min_length} characters long "
                f"(currently {len(password)})"
            )
        if len(password) > self.max_length:
            errors.append(f"Password must be at most {self.max_length} characters long")

        if self.require_classes:
            classes = {
                "an uppercase letter": r"[A-Z]",
                "a lowercase letter": r"[a-z]",
                "a digit": r"[0-9]",
                "a special character": r"[^A-Za-z0-9]",
            }
            for description, pattern in classes.items():
                if not re.search(pattern, password):
                    errors.append(f"Password must contain {description}")

        if self.check_common:
            normalized = password.lower().strip()
            if normalized in COMMON_PASSWORDS or normalized.translate(_SUBSTITUTIONS) in COMMON_PASSWORDS:
                errors.append("This password is too common. Please choose a more unique password.")

        if self.check_sequences and (run := find_sequence(password)):
            errors.append(f"Password contains sequential characters ({run})")

        if self.max_repeated and (run := find_repeat(password, self.max_repeated)):
            errors.append(
                f"Password repeats a character more than {self.max_repeated} times ({run})"
            )

        return ValidationResult(is_valid=not errors, errors=errors)


def find_sequence(password: str, length: int = 3) -> str | None:
    """Return the first ascending or descending run of ``length`` characters."""
    lowered = password.lower()
    for start in range(len(lowered) - length + 1):
        window = lowered[start : start + length]
        steps = {ord(b) - ord(a) for a, b in zip(window, window[1:])}
        if steps in ({1}, {-1}):
            return window
    return None


def find_repeat(password: str, max_allowed: int) -> str | None:
    """Return the first run of one character longer than ``max_allowed``."""
    match = re.search(r"(.)\1{%d,}" % max_allowed, password)
    return match.group(0) if match else None


_POLICIES: dict[PolicyLevel, PasswordPolicy] = {
    PolicyLevel.BASIC: PasswordPolicy(
        min_length=8, check_sequences=False, max_repeated=0
    ),
    PolicyLevel.STANDARD: PasswordPolicy(),
    PolicyLevel.STRICT: PasswordPolicy(min_length=16, require_classes=True, max_repeated=2),
}


def get_policy(level: PolicyLevel = PolicyLevel.STANDARD) -> PasswordPolicy:
    """Return the policy instance for ``level``."""
    return _POLICIES[level]


def configured_level() -> PolicyLevel:
    """Return the level selected in ``[auth] password_policy``."""
    from campaign_server.config import config

    return PolicyLevel(config.auth.password_policy)


def validate_password_strength(
    password: str, level: PolicyLevel | None = None
) -> ValidationResult:
    """Validate ``password`` against ``level`` (default: the configured level)."""
    return _POLICIES[level or configured_level()].validate(password)


def get_password_requirements(level: PolicyLevel | None = None) -> str:
    """Return a human-readable description of the rules for ``level``."""
    policy = _POLICIES[level or configured_level()]
    lines = ["Password Requirements:", f"- At least {policy.min_length} characters long"]
    if policy.require_classes:
        lines.append("- Must mix uppercase, lowercase, digits and special characters")
    if policy.check_common:
        lines.append("- Cannot be a commonly used password")
    if policy.check_sequences:
        lines.append("- Cannot contain sequential characters (abc, 123)")
    if policy.max_repeated:
        lines.append(f"- Cannot repeat the same character more than {policy.max_repeated} times")
    return "\n".join(lines)
