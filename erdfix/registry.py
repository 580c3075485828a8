# File: erdfix/registry.py
"""
NexaFlow ERDFix - Known-Entity Registry
=========================================
In-memory catalogue of the canonical, platform-owned entities (Account,
Contact, ...) that a diagram may reference instead of defining from scratch.

Matching is case-insensitive and separator-insensitive:

    exact  → the entity name equals a logical or display name   (1.0)
    alias  → the entity name equals a registered alias           (0.8)

Entities the registry recognises are flagged by the service's suppression
pass so that the engine never tries to rename or restructure them.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from erdfix.models import (
    Entity,
    KnownEntityDefinition,
    KnownEntityDetection,
    KnownEntityMatch,
    MatchType,
)
from erdfix.utils import normalize_key

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("erdfix.registry")

# ---------------------------------------------------------------------------
# Confidence scores
# ---------------------------------------------------------------------------

EXACT_CONFIDENCE: float = 1.0
ALIAS_CONFIDENCE: float = 0.8

# ---------------------------------------------------------------------------
# Built-in catalogue
# ---------------------------------------------------------------------------


def _definition(
    logical: str,
    display: str,
    description: str,
    keys: Sequence[str],
    aliases: Sequence[str] = (),
) -> KnownEntityDefinition:
    return KnownEntityDefinition(
        logical_name=logical,
        display_name=display,
        description=description,
        key_attributes=list(keys),
        aliases=list(aliases),
    )


DEFAULT_DEFINITIONS: Tuple[KnownEntityDefinition, ...] = (
    _definition(
        "account", "Account",
        "Business or organization the platform tracks.",
        ("accountid", "name", "accountnumber"),
        ("Customer", "Company", "Organization"),
    ),
    _definition(
        "contact", "Contact",
        "Person the platform tracks, usually linked to an account.",
        ("contactid", "fullname", "emailaddress1"),
        ("Person", "Individual"),
    ),
    _definition(
        "lead", "Lead",
        "Potential customer not yet qualified.",
        ("leadid", "fullname", "companyname"),
        ("Prospect",),
    ),
    _definition(
        "opportunity", "Opportunity",
        "Potential revenue-generating event.",
        ("opportunityid", "name", "estimatedvalue"),
        ("Deal", "Sale"),
    ),
    _definition("incident", "Case", "Customer service case.", ("incidentid", "title"), ("Ticket",)),
    _definition("task", "Task", "Generic to-do activity.", ("activityid", "subject")),
    _definition("appointment", "Appointment", "Scheduled meeting.", ("activityid", "subject")),
    _definition("email", "Email", "Email activity.", ("activityid", "subject")),
    _definition("phonecall", "Phone Call", "Phone call activity.", ("activityid", "subject")),
    _definition("systemuser", "System User", "Platform user account.", ("systemuserid", "fullname")),
    _definition("team", "Team", "Group of users sharing records.", ("teamid", "name")),
    _definition("businessunit", "Business Unit", "Security boundary.", ("businessunitid", "name")),
    _definition("product", "Product", "Catalogue item.", ("productid", "name", "productnumber")),
    _definition("quote", "Quote", "Formal price offer.", ("quoteid", "name")),
    _definition("invoice", "Invoice", "Billing document.", ("invoiceid", "name")),
    _definition("campaign", "Campaign", "Marketing campaign.", ("campaignid", "name")),
    _definition("competitor", "Competitor", "Competing business.", ("competitorid", "name")),
)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class KnownEntityRegistry:
    """
    Lookup table from normalized names to canonical definitions.

    Built once per engine; ``detect`` itself is a pure function of its input.
    """

    __slots__ = ("_definitions", "_exact", "_alias")

    def __init__(
        self,
        definitions: Optional[Iterable[KnownEntityDefinition]] = None,
        *,
        extra: Iterable[KnownEntityDefinition] = (),
    ) -> None:
        base: List[KnownEntityDefinition] = list(
            DEFAULT_DEFINITIONS if definitions is None else definitions
        )
        self._definitions: List[KnownEntityDefinition] = base + list(extra)
        self._exact: Dict[str, KnownEntityDefinition] = {}
        self._alias: Dict[str, KnownEntityDefinition] = {}

        for definition in self._definitions:
            for name in (definition.logical_name, definition.display_name):
                self._exact.setdefault(normalize_key(name), definition)
        for definition in self._definitions:
            for alias in definition.aliases:
                key: str = normalize_key(alias)
                if key not in self._exact:
                    self._alias.setdefault(key, definition)

        logger.debug(
            "KnownEntityRegistry: %d definitions, %d exact keys, %d alias keys.",
            len(self._definitions),
            len(self._exact),
            len(self._alias),
        )

    @property
    def definitions(self) -> List[KnownEntityDefinition]:
        return list(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.match(name) is not None

    def match(self, name: str) -> Optional[KnownEntityMatch]:
        """Match one entity name, or ``None``. O(1)."""
        key: str = normalize_key(name)
        if not key:
            return None

        definition: Optional[KnownEntityDefinition] = self._exact.get(key)
        if definition is not None:
            return KnownEntityMatch(
                original_entity=name,
                canonical_entity=definition.display_name,
                match_type=MatchType.EXACT,
                confidence=EXACT_CONFIDENCE,
                match_reasons=[f"Name matches platform entity '{definition.logical_name}'."],
            )

        definition = self._alias.get(key)
        if definition is not None:
            return KnownEntityMatch(
                original_entity=name,
                canonical_entity=definition.display_name,
                match_type=MatchType.ALIAS,
                confidence=ALIAS_CONFIDENCE,
                match_reasons=[
                    f"'{name}' is a common alias of platform entity "
                    f"'{definition.logical_name}'."
                ],
            )
        return None

    def detect(self, entities: Sequence[Entity]) -> KnownEntityDetection:
        """
        Match every entity of a diagram.

        Overall confidence is ``high`` when every match is exact, ``medium``
        when some are aliases, and ``low`` when nothing matched.

        Complexity: O(E).
        """
        matches: List[KnownEntityMatch] = []
        for entity in entities:
            found: Optional[KnownEntityMatch] = self.match(entity.name)
            if found is not None:
                matches.append(found)

        total: int = len(entities)
        if not matches:
            confidence: str = "low"
        elif all(m.match_type == MatchType.EXACT.value for m in matches):
            confidence = "high"
        else:
            confidence = "medium"

        logger.debug(
            "detect: %d/%d entities matched (%s confidence).",
            len(matches),
            total,
            confidence,
        )
        return KnownEntityDetection(
            matches=matches,
            total_entities=total,
            known_entities=len(matches),
            custom_entities=total - len(matches),
            confidence=confidence,
        )


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "EXACT_CONFIDENCE",
    "ALIAS_CONFIDENCE",
    "DEFAULT_DEFINITIONS",
    "KnownEntityRegistry",
]

logger.debug("erdfix.registry loaded — %d public symbols.", len(__all__))
