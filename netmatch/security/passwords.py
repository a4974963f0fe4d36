"""Password hashing."""

import bcrypt

# bcrypt only consumes the first 72 bytes of its input.
_BCRYPT_MAX_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


class PasswordHasher:
    """One-way bcrypt hashing with a fixed cost factor."""

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds

    def hash(self, password: str) -> str:
        """Hash a password. The salt and cost are embedded in the result."""
        return bcrypt.hashpw(_encode(password), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, password: str, password_hash: str | None) -> bool:
        """Check a password against a stored hash. Malformed hashes never match."""
        if not password or not password_hash:
            return False
        try:
            return bcrypt.checkpw(_encode(password), password_hash.encode("utf-8"))
        except ValueError:
            return False
