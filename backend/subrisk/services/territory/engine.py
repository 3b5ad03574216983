"""Serialized entry point for conquest attempts.

Every attempt on a game runs rule check, transaction and win evaluation
while holding that game's lock, then commits once. Events are published
after the lock is released so slow clients never hold up other players.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from subrisk import db
from subrisk.errors import ConsistencyError, NotFoundError, ValidationError
from subrisk.models import Game, Pub, Team, User
from subrisk.services.territory import rules
from subrisk.services.territory.events import EventBroadcaster
from subrisk.services.territory.locks import serialized
from subrisk.services.territory.transaction import ConquestResult, apply_conquest
from subrisk.services.territory.win import check_win, finalize_win


@dataclass
class ConquestOutcome:
    game_id: int
    pub_id: int
    team_id: int
    denial: Optional[rules.DenialReason] = None
    result: Optional[ConquestResult] = None
    events: List = field(default_factory=list)

    @property
    def committed(self) -> bool:
        return self.result is not None

    @property
    def game_ended(self):
        return next((e for e in self.events if e.kind == 'game_end'), None)

    def to_dict(self):
        data = {
            'game_id': self.game_id,
            'pub_id': self.pub_id,
            'team_id': self.team_id,
            'conquered': self.committed,
            'events': [e.to_dict() for e in self.events],
        }
        if self.denial is not None:
            data['reason'] = self.denial.value
            data['message'] = self.denial.message
        return data


def _resolve(model, ident, label):
    obj = db.session.get(model, ident) if ident is not None else None
    if obj is None:
        raise NotFoundError(f'{label} not found')
    return obj


def attempt_conquest(game_id: int, team_id: int, pub_id: int, user_id: Optional[int] = None,
                     broadcaster: Optional[EventBroadcaster] = None) -> ConquestOutcome:
    """Try to conquer ``pub_id`` for ``team_id``.

    Raises NotFoundError / ValidationError for bad requests and
    ConsistencyError if the commit fails. A rule denial is returned in the
    outcome, not raised.
    """
    with serialized(game_id):
        # Drop anything this session read before the lock was ours
        db.session.expire_all()

        game = _resolve(Game, game_id, 'Game')
        team = _resolve(Team, team_id, 'Team')
        pub = _resolve(Pub, pub_id, 'Pub')
        user = _resolve(User, user_id, 'User') if user_id is not None else None

        rules.validate_attempt(game, team, pub)
        if user is not None and user not in team.members:
            raise ValidationError('You are not in a team for this game')

        outcome = ConquestOutcome(game_id=game.id, pub_id=pub.id, team_id=team.id)
        denial = rules.can_conquer(game, team, pub)
        if denial is not None:
            current_app.logger.info(
                f"[conquest-denied] game={game.id} team={team.id} pub={pub.id} reason={denial.value}"
            )
            outcome.denial = denial
            return outcome

        result = apply_conquest(game, team, pub, user, commit=False)
        outcome.result = result
        outcome.events.append(result.event)
        try:
            winner = check_win(game)
            if winner is not None:
                outcome.events.append(finalize_win(game, winner))
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.error(f"[conquest-rollback] game={game_id} team={team_id} pub={pub_id} error={exc}")
            raise ConsistencyError('Conquest could not be saved; nothing was changed') from exc

    if broadcaster is not None:
        for event in outcome.events:
            try:
                broadcaster.publish(event)
            except Exception:
                current_app.logger.exception(f"[broadcast-failed] game={game_id} event={event.kind}")
    return outcome
