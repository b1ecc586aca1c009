from __future__ import annotations

import pytest

from casebuilder.errors import InvalidPairError, UnknownPartyError
from casebuilder.models import Party, PartyInput
from casebuilder.parties import (
    get_party,
    normalize_parties,
    pair_key,
    primary_pair_key,
    promote_pair,
    split_pair_key,
)


def test_primary_pair_leads_and_first_is_user_side() -> None:
    parties = normalize_parties(
        [
            PartyInput(name="Village council"),
            PartyInput(name="Relief NGO", is_primary=True),
            PartyInput(name="Armed group", is_primary=True),
        ]
    )

    assert [party.name for party in parties] == ["Relief NGO", "Armed group", "Village council"]
    assert [party.is_primary for party in parties] == [True, True, False]
    assert [party.is_user_side for party in parties] == [True, False, False]
    assert [party.id for party in parties] == ["party-1", "party-2", "party-3"]


def test_missing_primaries_are_filled_in_input_order() -> None:
    parties = normalize_parties([PartyInput(name="A"), PartyInput(name="B", is_primary=True), PartyInput(name="C")])
    assert [party.name for party in parties] == ["B", "A", "C"]
    assert primary_pair_key(parties) == f"{parties[0].id}|{parties[1].id}"


def test_names_are_unique_case_insensitively() -> None:
    parties = normalize_parties(
        [PartyInput(name="Relief NGO"), PartyInput(name="  relief   ngo ", is_primary=True), PartyInput(name="B")]
    )
    assert [party.name for party in parties] == ["Relief NGO", "B"]
    assert parties[0].is_primary


def test_reidentified_parties_keep_their_ids() -> None:
    first = normalize_parties([PartyInput(name="A"), PartyInput(name="B")])
    again = normalize_parties([PartyInput(name="C"), PartyInput(name="b"), PartyInput(name="a")], first)

    by_name = {party.name.lower(): party.id for party in again}
    assert by_name["a"] == "party-1"
    assert by_name["b"] == "party-2"
    assert by_name["c"] == "party-3"


def test_single_party_has_no_pair() -> None:
    parties = normalize_parties([PartyInput(name="Alone", is_primary=True)])
    assert primary_pair_key(parties) is None


def test_pair_keys_reject_same_party_and_separator() -> None:
    assert pair_key("party-1", "party-2") == "party-1|party-2"
    assert split_pair_key("party-1|party-2") == ("party-1", "party-2")
    with pytest.raises(InvalidPairError):
        pair_key("party-1", "party-1")
    with pytest.raises(InvalidPairError):
        pair_key("party|1", "party-2")
    with pytest.raises(InvalidPairError):
        split_pair_key("party-1")


def test_promote_pair_reorders_without_dropping() -> None:
    parties = normalize_parties([PartyInput(name="A"), PartyInput(name="B"), PartyInput(name="C")])

    promoted = promote_pair(parties, "party-3", "party-1")

    assert [party.id for party in promoted] == ["party-3", "party-1", "party-2"]
    assert promoted[0].is_user_side and promoted[0].is_primary
    assert promoted[1].is_primary and not promoted[2].is_primary
    assert get_party(promoted, "party-2") is not None


def test_promote_pair_rejects_unknown_party() -> None:
    parties = [Party(id="party-1", name="A"), Party(id="party-2", name="B")]
    with pytest.raises(UnknownPartyError):
        promote_pair(parties, "party-1", "party-9")
