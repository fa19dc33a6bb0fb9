"""
Forwarding destination resolution.

Given the (keyword, target name) pair parsed from a subject, pick the active
destination to forward to:

1. Exact name match, accepted only if the keyword matches the destination's
   keyword list.
2. Otherwise the first active destination whose name contains the target
   name (case-insensitive) and whose keyword list matches.
3. Otherwise DestinationNotFoundError.
"""

import logging
from typing import Iterable, List, Optional, Protocol

from .models import Destination, split_keywords

logger = logging.getLogger(__name__)


class DestinationNotFoundError(Exception):
    """Raised when no active destination matches a (keyword, target name) pair."""

    def __init__(self, keyword: str, target_name: str):
        self.keyword = keyword
        self.target_name = target_name
        super().__init__(
            f"No matching destination for keyword='{keyword}', target='{target_name}'"
        )


class DestinationLookup(Protocol):
    """The two read patterns the resolver needs from the destination store."""

    def find_active_by_name(self, name: str) -> Optional[Destination]:
        ...

    def list_active(self) -> List[Destination]:
        ...


def match_keyword(keyword: str, destination_keywords: str) -> bool:
    """
    Check whether a subject keyword matches a destination's keyword list.

    Each comma-separated entry is trimmed; the keyword matches when it
    contains any entry, ignoring case. "投诉咨询" matches "客户,投诉".

    Args:
        keyword: Keyword parsed from the subject
        destination_keywords: Comma-separated keywords of a destination

    Returns:
        True if any entry is contained in the keyword
    """
    lowered = keyword.lower()
    return any(entry.lower() in lowered for entry in split_keywords(destination_keywords))


def _first_fuzzy_match(
    keyword: str,
    target_name: str,
    candidates: Iterable[Destination]
) -> Optional[Destination]:
    lowered_target = target_name.lower()
    for destination in candidates:
        if not destination.is_active or destination.is_deleted:
            continue
        if lowered_target in destination.name.lower() and match_keyword(keyword, destination.keywords):
            return destination
    return None


class TargetResolver:
    """Resolves subject routing directives against the destination registry."""

    def __init__(self, destinations: DestinationLookup):
        self.destinations = destinations

    def resolve(self, keyword: str, target_name: str) -> Destination:
        """
        Find the destination for a routing directive.

        Args:
            keyword: Keyword parsed from the subject
            target_name: Target name parsed from the subject

        Returns:
            Destination: The matched active destination

        Raises:
            DestinationNotFoundError: If neither exact nor fuzzy matching succeeds
        """
        exact = self.destinations.find_active_by_name(target_name)
        if exact is not None:
            if match_keyword(keyword, exact.keywords):
                logger.info(f"Exact destination match: {exact.name} <{exact.email}>")
                return exact
            logger.info(
                f"Destination '{exact.name}' matched by name but not by keyword "
                f"'{keyword}', trying fuzzy match"
            )

        fuzzy = _first_fuzzy_match(keyword, target_name, self.destinations.list_active())
        if fuzzy is not None:
            logger.info(f"Fuzzy destination match: '{target_name}' -> {fuzzy.name} <{fuzzy.email}>")
            return fuzzy

        raise DestinationNotFoundError(keyword, target_name)
