"""
Shared test constants.

This module provides constants that are used across multiple test files.
It ensures consistency in test data and makes it easy to update values
that must meet policy requirements (like password complexity).
"""

# Standard test password that meets the STANDARD password policy requirements:
# - At least 12 characters (STANDARD requires 12)
# - Not a common password
# - No sequential characters (abc, 123, xyz)
# - No repeated characters (aaa)
TEST_PASSWORD = "Lantern#Quest72"

# Accounts created by the ``db_with_users`` fixture, keyed by fixture name.
TEST_USERS = {
    "admin": ("admin@example.com", "ADMIN"),
    "architect": ("architect@example.com", "USER"),
    "gm": ("gm@example.com", "USER"),
    "player": ("player@example.com", "USER"),
    "outsider": ("outsider@example.com", "USER"),
}
