"""Temporary password generation for new and reset accounts."""

import secrets

UPPERCASE = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
LOWERCASE = "abcdefghijklmnopqrstuvwxyz"
DIGITS = "0123456789"
SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"

TEMPORARY_PASSWORD_LENGTH = 16


def generate_temporary_password(length: int = TEMPORARY_PASSWORD_LENGTH) -> str:
    """Random password with at least one upper, lower, digit and symbol.

    One character is drawn from each class, the rest from all classes
    combined, then the whole thing is Fisher-Yates shuffled so the class
    seeds do not sit at fixed positions.
    """
    if length < 4:
        raise ValueError("Temporary password needs at least 4 characters")

    chars = [
        secrets.choice(UPPERCASE),
        secrets.choice(LOWERCASE),
        secrets.choice(DIGITS),
        secrets.choice(SYMBOLS),
    ]
    pool = UPPERCASE + LOWERCASE + DIGITS + SYMBOLS
    chars.extend(secrets.choice(pool) for _ in range(length - 4))

    for i in range(len(chars) - 1, 0, -1):
        j = secrets.randbelow(i + 1)
        chars[i], chars[j] = chars[j], chars[i]

    return "".join(chars)
