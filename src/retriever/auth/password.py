"""argon2id password hashes and the registration password policy."""

from __future__ import annotations

from collections.abc import Callable

import argon2
from argon2.exceptions import InvalidHashError, VerifyMismatchError

from retriever.auth.errors import AuthError, AuthErrorKind
from retriever.config import Settings, get_settings

_hasher = argon2.PasswordHasher(
    time_cost=2,
    memory_cost=64 * 1024,
    parallelism=1,
    hash_len=32,
    salt_len=16,
    type=argon2.Type.ID,
)


class PasswordStrengthError(AuthError):
    def __init__(self, reason: str) -> None:
        super().__init__(AuthErrorKind.WEAK_PASSWORD, reason)


def hash_password(password: str) -> str:
    return _hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """False on mismatch and on a stored value that is not an argon2 hash."""
    try:
        return _hasher.verify(password_hash, password)
    except (VerifyMismatchError, InvalidHashError):
        return False


def check_needs_rehash(password_hash: str) -> bool:
    return _hasher.check_needs_rehash(password_hash)


# (failing check, message) pairs, evaluated in order
_Rule = tuple[Callable[[str, Settings], bool], Callable[[Settings], str]]

_RULES: tuple[_Rule, ...] = (
    (lambda p, _s: not p.strip(), lambda _s: "Password cannot be empty"),
    (
        lambda p, s: len(p) < s.password_min_length,
        lambda s: f"Password must be at least {s.password_min_length} characters",
    ),
    (
        lambda p, s: len(p) > s.password_max_length,
        lambda s: f"Password must not exceed {s.password_max_length} characters",
    ),
    (lambda p, _s: not any(c.isalpha() for c in p), lambda _s: "Password must contain at least one letter"),
    (lambda p, _s: not any(c.isdigit() for c in p), lambda _s: "Password must contain at least one digit"),
)


def validate_password_strength(password: str) -> None:
    """Raise PasswordStrengthError naming the first policy rule the password breaks."""
    settings = get_settings()
    for fails, message in _RULES:
        if fails(password, settings):
            raise PasswordStrengthError(message(settings))
