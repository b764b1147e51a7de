from datetime import datetime

from genbatch.models import CredentialEntry


class InMemoryCredentialLibrary:
    def __init__(self, entries: list[CredentialEntry]) -> None:
        self.entries = entries
        self.touched: list[tuple[str, datetime]] = []

    def list_credentials(self) -> list[CredentialEntry]:
        return list(self.entries)

    def touch(self, name: str, used_at: datetime) -> None:
        self.touched.append((name, used_at))
