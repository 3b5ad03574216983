from typing import Optional

from flask import current_app

from subrisk import db
from subrisk.models import Game, GameEvent, Team, utcnow
from subrisk.services.territory.events import GameEnded


def check_win(game: Game) -> Optional[Team]:
    """Return the team owning every pub of the game, if there is one.

    A game without pubs never has a winner.
    """
    pubs = game.pubs
    if not pubs:
        return None
    owners = {p.owner_id for p in pubs}
    if None in owners or len(owners) != 1:
        return None
    owner_id = owners.pop()
    return next((t for t in game.teams if t.id == owner_id), None)


def finalize_win(game: Game, team: Team) -> GameEnded:
    """Mark the game completed with ``team`` as winner. Does not commit."""
    end_time = utcnow()
    game.status = 'completed'
    game.winner = team
    game.end_time = end_time
    db.session.add(GameEvent(
        game_id=game.id,
        kind='game_end',
        team_id=team.id,
        timestamp=end_time,
        message=f"Game ended. Team {team.name} won by conquering all pubs",
    ))
    for member in team.members:
        member.games_won = (member.games_won or 0) + 1

    current_app.logger.info(f"[game-end] game={game.id} winner={team.id} members={[m.id for m in team.members]}")
    return GameEnded(
        game_id=game.id,
        team_id=team.id,
        team_name=team.name,
        team_color=team.color,
        end_time=end_time,
    )
