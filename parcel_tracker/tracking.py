import secrets
import string

ALPHABET = string.ascii_uppercase + string.digits


class TrackingIdGenerator:
    """Builds candidate tracking codes such as ``PX7K2M9Q4ZA``.

    Codes are collision resistant, not collision proof: the store's unique
    index has the final say and the caller regenerates on conflict.
    """

    def __init__(self, prefix: str = "PX", length: int = 9):
        if length < 1:
            raise ValueError("length must be positive")
        self.prefix = prefix.strip().upper()
        self.length = length

    def generate(self) -> str:
        suffix = "".join(secrets.choice(ALPHABET) for _ in range(self.length))
        return f"{self.prefix}{suffix}"
