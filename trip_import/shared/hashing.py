import hashlib


class ContentHashUtil:
    """Utility for deterministic content hashing (deduplication)."""

    @staticmethod
    def file_hash(content: bytes) -> str:
        """SHA-256 of the raw file bytes, hex encoded."""
        return hashlib.sha256(content).hexdigest()

    @staticmethod
    def user_bucket(user_id: str) -> int:
        """Stable 0-99 bucket for percentage rollouts.

        FNV-1a variant; independent of time and process so a user stays in
        (or out of) a rollout without persisting the assignment.
        """
        value = 2166136261
        for char in user_id:
            value ^= ord(char)
            value = (
                value
                + (value << 1)
                + (value << 4)
                + (value << 7)
                + (value << 8)
                + (value << 24)
            ) & 0xFFFFFFFF
        return value % 100


__all__ = ["ContentHashUtil"]
