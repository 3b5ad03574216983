"""Team rosters: the per-team mirror of pub ownership.

``team.pubs`` must always equal the set of pubs whose ``owner`` is that team.
Only the conquest transaction moves pubs between rosters, and it does so in
the same database transaction that changes ``Pub.owner``.
"""

from typing import Dict, List

from subrisk.models import Game, Pub, Team


def add_to_roster(team: Team, pub: Pub) -> bool:
    """Add ``pub`` to the roster. Returns False if it was already there."""
    if pub in team.pubs:
        return False
    team.pubs.append(pub)
    return True


def remove_from_roster(team: Team, pub: Pub) -> bool:
    if pub not in team.pubs:
        return False
    team.pubs.remove(pub)
    return True


def transfer(pub: Pub, new_owner: Team, previous_owner: Team = None) -> None:
    """Move ``pub`` from ``previous_owner``'s roster into ``new_owner``'s."""
    # Remove first so the pub is never listed on two rosters at flush time
    if previous_owner is not None and previous_owner.id != new_owner.id:
        remove_from_roster(previous_owner, pub)
    add_to_roster(new_owner, pub)


def mirror_mismatches(game: Game) -> List[Dict]:
    """Describe every place where a roster disagrees with pub ownership."""
    mismatches = []
    for team in game.teams:
        rostered = {p.id for p in team.pubs}
        owned = {p.id for p in game.pubs if p.owner_id == team.id}
        if rostered != owned:
            mismatches.append({
                'team_id': team.id,
                'rostered_only': sorted(rostered - owned),
                'owned_only': sorted(owned - rostered),
            })
    return mismatches
