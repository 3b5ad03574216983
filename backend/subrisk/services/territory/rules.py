from enum import Enum
from typing import Optional

from subrisk.errors import ValidationError
from subrisk.models import Game, Pub, Team
from subrisk.services.territory.graph import is_adjacent


class DenialReason(str, Enum):
    ALREADY_OWNED = 'already_owned'
    NO_FOOTHOLD = 'no_foothold'
    NOT_ADJACENT = 'not_adjacent'

    @property
    def message(self) -> str:
        return _DENIAL_MESSAGES[self]


_DENIAL_MESSAGES = {
    DenialReason.ALREADY_OWNED: 'This pub is already owned by your team',
    DenialReason.NO_FOOTHOLD: 'Your team must claim an unowned pub before attacking another team',
    DenialReason.NOT_ADJACENT: 'You can only conquer pubs next to ones your team owns',
}


def validate_attempt(game: Game, team: Team, pub: Pub) -> None:
    """Raise ValidationError unless the attempt is well formed for this game."""
    if game.status != 'active':
        raise ValidationError('Game is not active')
    if team.game_id != game.id:
        raise ValidationError('Team is not part of this game')
    if pub.game_id != game.id:
        raise ValidationError('Pub is not part of this game')


def can_conquer(game: Game, team: Team, pub: Pub) -> Optional[DenialReason]:
    """Return None when ``team`` may take ``pub``, otherwise the reason it may not.

    A team without pubs may only claim an unowned pub (its foothold). Once it
    owns something, it may take any unowned or enemy pub adjacent to one of
    its own. Reads state only.
    """
    if pub.owner_id == team.id:
        return DenialReason.ALREADY_OWNED

    owned = team.pubs
    if not owned:
        if pub.owner_id is None:
            return None
        return DenialReason.NO_FOOTHOLD

    if any(is_adjacent(own, pub) for own in owned):
        return None
    return DenialReason.NOT_ADJACENT


def is_locked_out(game: Game, team: Team) -> bool:
    """True when the team has no pubs and there is nothing unowned left to claim."""
    if team.pubs:
        return False
    return all(p.owner_id is not None for p in game.pubs)
