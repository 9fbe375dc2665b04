from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Sequence, Tuple

from volunteer_hours.data_processing.schemas import (
    NAME_COLLISION,
    UNUSABLE_NAME,
    CanonicalIdentity,
    Diagnostic,
)

log = logging.getLogger(__name__)


def canonicalize(name: str, aliases: Mapping[str, str]) -> str:
    """Alias-table lookup (case-insensitive); unknown names come back verbatim."""
    return aliases.get(name.lower(), name)


def choose_canonical_name(names: Sequence[str], aliases: Mapping[str, str]) -> str:
    """First observed name with an alias-table hit wins, else the first observed name."""
    for name in names:
        hit = aliases.get(name.lower())
        if hit:
            return hit
    return names[0] if names else ""


@dataclass(frozen=True)
class IdentityResolution:
    identities: Dict[str, CanonicalIdentity]  # identity_key -> identity, first-seen order
    excluded_keys: Tuple[str, ...]
    diagnostics: Tuple[Diagnostic, ...]


def resolve_identities(
    names: Sequence[Tuple[str, str]],
    aliases: Mapping[str, str],
) -> IdentityResolution:
    """
    `names` holds (identity_key, display_name) pairs in row order. Groups by key,
    keeps each group's distinct display names in first-seen order, picks the canonical
    name and drops groups whose name is empty or a single character.
    """
    seen: Dict[str, List[str]] = {}
    for key, name in names:
        group = seen.setdefault(key, [])
        if name and name not in group:
            group.append(name)

    identities: Dict[str, CanonicalIdentity] = {}
    excluded: List[str] = []
    diagnostics: List[Diagnostic] = []
    taken: Dict[str, str] = {}

    for key, observed in seen.items():
        canonical = choose_canonical_name(observed, aliases).strip()
        if len(canonical) < 2:
            excluded.append(key)
            diagnostics.append(Diagnostic(UNUSABLE_NAME, f"unusable name {canonical!r}", identity_key=key))
            log.debug("Excluding identity %s: unusable name %r", key, canonical)
            continue

        if canonical in taken:
            # Two identifiers resolving to one display name stay separate records
            disambiguated = f"{canonical} [{key}]"
            diagnostics.append(
                Diagnostic(
                    NAME_COLLISION,
                    f"{canonical!r} already used by {taken[canonical]}; reported as {disambiguated!r}",
                    identity_key=key,
                )
            )
            log.warning("Name collision for %r (ids %s, %s)", canonical, taken[canonical], key)
            canonical = disambiguated
        taken[canonical] = key

        identities[key] = CanonicalIdentity(
            canonical_name=canonical,
            identity_key=key,
            alias_names_seen=tuple(observed),
        )

    log.info("Resolved identities: kept=%d excluded=%d", len(identities), len(excluded))
    return IdentityResolution(identities=identities, excluded_keys=tuple(excluded), diagnostics=tuple(diagnostics))
