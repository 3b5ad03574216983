from typing import Iterable, List, Optional, Tuple

from flask import current_app

from subrisk import db
from subrisk.errors import ValidationError
from subrisk.models import Game, Pub
from subrisk.services.territory.locks import serialized


def add_pub(game: Game, name: str, position: Optional[dict] = None,
            neighbor_ids: Optional[Iterable[int]] = None) -> Pub:
    """Create a pub in ``game`` and link it to ``neighbor_ids`` in both directions.

    Pubs can only be added while the game is in setup, and every neighbor
    must already belong to the same game.
    """
    if not name or not str(name).strip():
        raise ValidationError('Pub name is required')

    position = position or {}
    if not isinstance(position, dict):
        raise ValidationError('Pub position must be an object with x and y')
    try:
        x = float(position.get('x', 0) or 0)
        y = float(position.get('y', 0) or 0)
    except (TypeError, ValueError):
        raise ValidationError('Pub position must be numeric')

    wanted = {int(n) for n in (neighbor_ids or [])}
    with serialized(game.id):
        db.session.expire_all()
        if game.status != 'setup':
            raise ValidationError('Pubs can only be added while the game is in setup')
        neighbors = []
        if wanted:
            neighbors = Pub.query.filter(Pub.id.in_(wanted), Pub.game_id == game.id).all()
            if len(neighbors) != len(wanted):
                raise ValidationError('Neighbor pubs must belong to this game')

        pub = Pub(name=str(name).strip(), game=game, x=x, y=y)
        db.session.add(pub)
        for neighbor in neighbors:
            link(pub, neighbor)
        db.session.commit()

    current_app.logger.info(f"[pub-add] game={game.id} pub={pub.id} neighbors={sorted(wanted)}")
    return pub


def link(a: Pub, b: Pub) -> None:
    """Record adjacency on both pubs; repeated calls are no-ops."""
    if b not in a.neighbors:
        a.neighbors.append(b)
    if a not in b.neighbors:
        b.neighbors.append(a)


def is_adjacent(a: Pub, b: Pub) -> bool:
    # Either side's list counts, so a one-sided edge still connects
    return b in a.neighbors or a in b.neighbors


def asymmetric_edges(game: Game) -> List[Tuple[int, int]]:
    """Edges (a, b) where a lists b but b does not list a."""
    broken = []
    for pub in game.pubs:
        for neighbor in pub.neighbors:
            if pub not in neighbor.neighbors:
                broken.append((pub.id, neighbor.id))
    return broken


def game_snapshot(game: Game) -> dict:
    """Full graph plus rosters, as sent to a client joining the game."""
    return {
        'id': game.id,
        'name': game.name,
        'status': game.status,
        'winner_id': game.winner_id,
        'settings': game.settings_dict(),
        'pubs': [p.to_dict() for p in game.pubs],
        'teams': [t.to_dict() for t in game.teams],
    }
