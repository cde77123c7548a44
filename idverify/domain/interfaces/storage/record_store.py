"""Enrolled record store interface."""
from abc import ABC, abstractmethod
from typing import List, Optional

from ...entities.identity import EnrolledRecord


class RecordStore(ABC):
    """Read-only view over the enrolled records.

    Implementations may refresh their contents between calls; callers must not
    assume two calls observe the same snapshot.
    """

    @abstractmethod
    def get(self, identifier: str) -> Optional[EnrolledRecord]:
        """
        Look up an enrolled record.

        Args:
            identifier: Identifier in any form; it is canonicalized before lookup

        Returns:
            The record, or None when the identifier is not enrolled
        """
        pass

    @abstractmethod
    def list_identifiers(self) -> List[str]:
        """Return every known canonical identifier in store order."""
        pass
