"""Mapping between configured library names and Plex library sections."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from defaulter.plex.models import LibrarySection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MappedLibrary:
    """A configured library and the server section it resolved to.

    ``name`` is the name used in the configuration, which may differ in
    case from the section title.
    """

    name: str
    section: LibrarySection

    @property
    def key(self) -> str:
        return self.section.key

    @property
    def type(self) -> str:
        return self.section.type


class LibraryRegistry:
    """Configured libraries found on the server, keyed by section key.

    Library names are matched case-insensitively against section titles.
    Owned by one run service.
    """

    def __init__(self) -> None:
        self._by_key: dict[str, MappedLibrary] = {}

    def update(
        self, sections: Iterable[LibrarySection], configured: Iterable[str]
    ) -> None:
        """Map every configured library to its section.

        Libraries missing on the server or of an unsupported type are logged
        and left unmapped.
        """
        by_title = {section.title.lower(): section for section in sections}
        for name in configured:
            section = by_title.get(name.lower())
            if section is None:
                logger.error("Library '%s' not found in Plex response", name)
                continue
            if not section.is_supported:
                logger.error(
                    "Invalid library type '%s' for '%s'. Must be 'movie' or 'show'",
                    section.type,
                    name,
                )
                continue
            self._by_key[section.key] = MappedLibrary(name=name, section=section)
            logger.debug(
                "Mapped library: %s (ID: %s, Type: %s)",
                section.title,
                section.key,
                section.type,
            )

    def get(self, key: object) -> MappedLibrary | None:
        """Look up by section key; webhook ids may arrive as int or str."""
        return self._by_key.get(str(key))

    def find(self, name: str) -> MappedLibrary | None:
        """Look up by configured library name (case-insensitive)."""
        lowered = name.lower()
        for library in self._by_key.values():
            if library.name.lower() == lowered:
                return library
        return None

    def __len__(self) -> int:
        return len(self._by_key)
