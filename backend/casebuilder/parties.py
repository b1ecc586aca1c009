from __future__ import annotations

import re
from typing import Sequence

from casebuilder.errors import InvalidPairError, UnknownPartyError
from casebuilder.models import Party, PartyInput

PAIR_KEY_SEPARATOR = "|"
_PARTY_ID_PATTERN = re.compile(r"^party-(\d+)$")


def party_identity(name: str) -> str:
    return " ".join(name.split()).casefold()


def pair_key(party1_id: str, party2_id: str) -> str:
    first = (party1_id or "").strip()
    second = (party2_id or "").strip()
    if not first or not second:
        raise InvalidPairError("A party pair needs two party ids.")
    if PAIR_KEY_SEPARATOR in first or PAIR_KEY_SEPARATOR in second:
        raise InvalidPairError(f"Party ids must not contain '{PAIR_KEY_SEPARATOR}'.")
    if first == second:
        raise InvalidPairError(f"A party pair needs two different parties (got '{first}' twice).")
    return f"{first}{PAIR_KEY_SEPARATOR}{second}"


def split_pair_key(key: str) -> tuple[str, str]:
    parts = (key or "").split(PAIR_KEY_SEPARATOR)
    if len(parts) != 2:
        raise InvalidPairError(f"Malformed pair key '{key}'.")
    pair_key(parts[0], parts[1])
    return parts[0].strip(), parts[1].strip()


def get_party(parties: Sequence[Party], party_id: str) -> Party | None:
    for party in parties:
        if party.id == party_id:
            return party
    return None


def primary_pair_key(parties: Sequence[Party]) -> str | None:
    if len(parties) < 2 or not (parties[0].is_primary and parties[1].is_primary):
        return None
    return pair_key(parties[0].id, parties[1].id)


def _with_roles(ordered: list[Party]) -> list[Party]:
    return [
        party.model_copy(update={"is_primary": index < 2, "is_user_side": index == 0})
        for index, party in enumerate(ordered)
    ]


def normalize_parties(inputs: Sequence[PartyInput], existing: Sequence[Party] = ()) -> list[Party]:
    """Build the party list: unique by case-insensitive name, primary pair first.

    Ids of parties already known by name are reused so pair keys stay stable
    when parties are identified again.
    """
    unique: list[PartyInput] = []
    positions: dict[str, int] = {}
    for item in inputs:
        name = item.name.strip()
        if not name:
            continue
        identity = party_identity(name)
        if identity in positions:
            if item.is_primary:
                index = positions[identity]
                unique[index] = unique[index].model_copy(update={"is_primary": True})
            continue
        positions[identity] = len(unique)
        unique.append(item.model_copy(update={"name": name}))

    pair_indexes = [index for index, item in enumerate(unique) if item.is_primary][:2]
    for index in range(len(unique)):
        if len(pair_indexes) >= 2:
            break
        if index not in pair_indexes:
            pair_indexes.append(index)
    order = pair_indexes + [index for index in range(len(unique)) if index not in pair_indexes]

    known = {party_identity(party.name): party for party in existing}
    used_numbers = {
        int(match.group(1))
        for match in (_PARTY_ID_PATTERN.match(party.id) for party in existing)
        if match
    }
    next_number = 1

    def mint_id() -> str:
        nonlocal next_number
        while next_number in used_numbers:
            next_number += 1
        used_numbers.add(next_number)
        return f"party-{next_number}"

    parties: list[Party] = []
    for index in order:
        item = unique[index]
        previous = known.get(party_identity(item.name))
        parties.append(
            Party(
                id=previous.id if previous else mint_id(),
                name=item.name,
                description=item.description,
                ideal_outcomes=list(previous.ideal_outcomes) if previous else [],
            )
        )
    return _with_roles(parties)


def promote_pair(parties: Sequence[Party], party1_id: str, party2_id: str) -> list[Party]:
    """Reorder so the chosen pair leads the list; no party is dropped."""
    pair_key(party1_id, party2_id)
    first = get_party(parties, party1_id)
    if first is None:
        raise UnknownPartyError(party1_id)
    second = get_party(parties, party2_id)
    if second is None:
        raise UnknownPartyError(party2_id)
    rest = [party for party in parties if party.id not in {party1_id, party2_id}]
    return _with_roles([first, second, *rest])
