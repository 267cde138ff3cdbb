"""In-memory record of who is connected and who is typing"""


class PresenceRegistry:
    """Tracks connected and typing usernames for the lifetime of the app

    Every operation is a plain set mutation with no await, so callers on the
    event loop get atomic updates without locking. Two sessions sharing a
    username collapse to one entry; size() is a display count, not a ledger.
    """

    def __init__(self) -> None:
        self.connected_users: set[str] = set()
        self.typing_users: set[str] = set()

    def join(self, username: str) -> None:
        self.connected_users.add(username)

    def leave(self, username: str) -> None:
        """Forget a username entirely; absent usernames are ignored"""
        self.connected_users.discard(username)
        self.typing_users.discard(username)

    def start_typing(self, username: str) -> bool:
        """Mark username as typing

        Returns:
            True if the username was not already typing (a notification is due)
        """
        if username in self.typing_users:
            return False
        self.typing_users.add(username)
        return True

    def stop_typing(self, username: str) -> bool:
        """Clear the typing mark

        Returns:
            True if the username was typing (a notification is due)
        """
        if username not in self.typing_users:
            return False
        self.typing_users.discard(username)
        return True

    def size(self) -> int:
        return len(self.connected_users)

