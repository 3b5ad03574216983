import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from conftest import conquer
from subrisk import db
from subrisk.errors import ConsistencyError
from subrisk.models import ConquestRecord, Game, GameEvent, Pub, Team
from subrisk.services.territory import graph, ledger
from subrisk.services.territory.events import EventBroadcaster
from subrisk.services.territory.rules import DenialReason
from subrisk.services.territory.transaction import apply_conquest


def _roster(team_id):
    return [p.id for p in db.session.get(Team, team_id).pubs]


def _assert_mirror(world):
    game = db.session.get(Game, world.game_id)
    assert ledger.mirror_mismatches(game) == []
    for team in game.teams:
        assert {p.id for p in team.pubs} == {p.id for p in game.pubs if p.owner_id == team.id}


def test_line_scenario(line_world):
    ids = line_world.pub_ids
    t1, t2 = line_world.team_ids
    assert conquer(line_world, 0, 'A').committed
    assert conquer(line_world, 1, 'D').committed

    denied = conquer(line_world, 0, 'C')
    assert denied.denial == DenialReason.NOT_ADJACENT

    assert conquer(line_world, 0, 'B').committed
    assert _roster(t1) == [ids['A'], ids['B']]

    assert conquer(line_world, 0, 'C').committed
    assert _roster(t1) == [ids['A'], ids['B'], ids['C']]
    assert db.session.get(Pub, ids['B']).owner_id == t1
    assert _roster(t2) == [ids['D']]
    _assert_mirror(line_world)


def test_capturing_enemy_pub_moves_it_between_rosters(line_world):
    ids = line_world.pub_ids
    t1, t2 = line_world.team_ids
    conquer(line_world, 0, 'B')
    conquer(line_world, 1, 'C')

    outcome = conquer(line_world, 0, 'C')

    assert outcome.committed
    assert outcome.result.previous_owner_id == t2
    assert db.session.get(Pub, ids['C']).owner_id == t1
    assert ids['C'] in _roster(t1)
    assert ids['C'] not in _roster(t2)
    _assert_mirror(line_world)


def test_history_grows_by_one_per_conquest_and_keeps_old_entries(line_world):
    t1, t2 = line_world.team_ids
    conquer(line_world, 0, 'B')
    conquer(line_world, 1, 'C')
    first = [(r.id, r.team_id, r.timestamp) for r in db.session.get(Pub, line_world.pub_ids['C']).conquest_history]
    assert len(first) == 1

    conquer(line_world, 0, 'C')

    history = db.session.get(Pub, line_world.pub_ids['C']).conquest_history
    assert len(history) == 2
    assert [(r.id, r.team_id, r.timestamp) for r in history[:1]] == first
    assert [r.team_id for r in history] == [t2, t1]
    assert [r.to_dict()['team'] for r in history] == [t2, t1]


def test_conquest_appends_game_event(line_world, broadcaster):
    outcome = conquer(line_world, 0, 'A', broadcaster=broadcaster)

    events = GameEvent.query.filter_by(game_id=line_world.game_id, kind='conquest').all()
    assert len(events) == 1
    event = events[0]
    assert event.team_id == line_world.team_ids[0]
    assert event.pub_id == line_world.pub_ids['A']
    assert event.user_id == line_world.member_ids[0]
    assert event.message == 'player1 from team Red conquered A'

    assert [e.kind for e in broadcaster.events] == ['conquest']
    published = broadcaster.events[0].to_dict()
    assert published['game_id'] == line_world.game_id
    assert published['team_name'] == 'Red'
    assert published['team_color'] == '#000000'
    assert published['username'] == 'player1'
    assert published['previous_owner_id'] is None
    assert outcome.to_dict()['conquered'] is True


def test_broadcaster_must_implement_publish():
    class Silent(EventBroadcaster):
        pass

    with pytest.raises(TypeError):
        Silent()


def test_denial_publishes_nothing(line_world, broadcaster):
    conquer(line_world, 0, 'A')
    outcome = conquer(line_world, 0, 'C', broadcaster=broadcaster)
    assert outcome.denial == DenialReason.NOT_ADJACENT
    assert broadcaster.events == []
    payload = outcome.to_dict()
    assert payload['conquered'] is False
    assert payload['reason'] == 'not_adjacent'


def test_failed_commit_leaves_no_partial_state(line_world, monkeypatch):
    conquer(line_world, 0, 'B')
    conquer(line_world, 1, 'C')

    def boom(self):
        raise OperationalError('COMMIT', {}, Exception('disk I/O error'))

    monkeypatch.setattr(Session, 'commit', boom)
    with pytest.raises(ConsistencyError):
        conquer(line_world, 0, 'C')
    monkeypatch.undo()

    db.session.expire_all()
    pub = db.session.get(Pub, line_world.pub_ids['C'])
    assert pub.owner_id == line_world.team_ids[1]
    assert len(pub.conquest_history) == 1
    assert line_world.pub_ids['C'] in _roster(line_world.team_ids[1])
    assert line_world.pub_ids['C'] not in _roster(line_world.team_ids[0])
    assert GameEvent.query.filter_by(game_id=line_world.game_id, kind='conquest').count() == 2
    _assert_mirror(line_world)


def test_apply_conquest_commits_by_itself(line_world):
    game = db.session.get(Game, line_world.game_id)
    team = db.session.get(Team, line_world.team_ids[0])
    pub = db.session.get(Pub, line_world.pub_ids['A'])

    result = apply_conquest(game, team, pub, None)

    db.session.expire_all()
    assert result.previous_owner_id is None
    assert result.event.username is None
    assert db.session.get(Pub, line_world.pub_ids['A']).owner_id == team.id
    assert ConquestRecord.query.filter_by(pub_id=pub.id).count() == 1
    assert GameEvent.query.filter_by(kind='conquest').one().message == 'Red conquered A'


def test_roster_add_is_idempotent(line_world):
    team = db.session.get(Team, line_world.team_ids[0])
    pub = db.session.get(Pub, line_world.pub_ids['A'])
    assert ledger.add_to_roster(team, pub) is True
    assert ledger.add_to_roster(team, pub) is False
    assert team.pubs == [pub]
    db.session.rollback()


def test_adjacency_is_symmetric_after_setup(line_world):
    game = db.session.get(Game, line_world.game_id)
    assert graph.asymmetric_edges(game) == []
    for pub in game.pubs:
        for neighbor in pub.neighbors:
            assert pub in neighbor.neighbors
    b = db.session.get(Pub, line_world.pub_ids['B'])
    assert sorted(b.neighbor_ids) == sorted([line_world.pub_ids['A'], line_world.pub_ids['C']])
