from dataclasses import dataclass
from typing import Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from subrisk import db
from subrisk.errors import ConsistencyError
from subrisk.models import ConquestRecord, Game, GameEvent, Pub, Team, User, utcnow
from subrisk.services.territory import ledger
from subrisk.services.territory.events import ConquestApplied


@dataclass
class ConquestResult:
    pub_id: int
    team_id: int
    previous_owner_id: Optional[int]
    event: ConquestApplied


def apply_conquest(game: Game, team: Team, pub: Pub, user: Optional[User], commit: bool = True) -> ConquestResult:
    """Hand ``pub`` to ``team`` and record it everywhere, as one database transaction.

    Callers must have checked ``rules.can_conquer`` first. Ownership, both
    rosters, the conquest history and the game event log are written
    together: on any failure the session is rolled back and nothing from this
    conquest survives. With ``commit=False`` the changes are only flushed and
    the caller commits (or rolls back) the unit.
    """
    try:
        previous_owner = pub.owner
        previous_owner_id = previous_owner.id if previous_owner is not None else None
        now = utcnow()

        pub.owner = team
        db.session.add(ConquestRecord(pub=pub, team_id=team.id, timestamp=now))
        ledger.transfer(pub, team, previous_owner)

        username = user.username if user is not None else None
        if username:
            message = f"{username} from team {team.name} conquered {pub.name}"
        else:
            message = f"{team.name} conquered {pub.name}"
        db.session.add(GameEvent(
            game_id=game.id,
            kind='conquest',
            team_id=team.id,
            pub_id=pub.id,
            user_id=user.id if user is not None else None,
            timestamp=now,
            message=message,
        ))
        # Touch the game row so its version guards against a concurrent writer
        game.last_conquest_at = now

        if commit:
            db.session.commit()
        else:
            db.session.flush()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[conquest-rollback] game={game.id} team={team.id} pub={pub.id} error={exc}")
        raise ConsistencyError('Conquest could not be saved; nothing was changed') from exc
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        f"[conquest] game={game.id} team={team.id} pub={pub.id} previous_owner={previous_owner_id} user={user.id if user else None}"
    )
    return ConquestResult(
        pub_id=pub.id,
        team_id=team.id,
        previous_owner_id=previous_owner_id,
        event=ConquestApplied(
            game_id=game.id,
            pub_id=pub.id,
            pub_name=pub.name,
            team_id=team.id,
            team_name=team.name,
            team_color=team.color,
            user_id=user.id if user is not None else None,
            username=username,
            previous_owner_id=previous_owner_id,
            timestamp=now,
        ),
    )
