from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Optional

from subrisk import socketio


@dataclass(frozen=True)
class ConquestApplied:
    game_id: int
    pub_id: int
    pub_name: str
    team_id: int
    team_name: str
    team_color: str
    user_id: Optional[int]
    username: Optional[str]
    previous_owner_id: Optional[int]
    timestamp: datetime
    kind: str = field(default='conquest', init=False)

    def to_dict(self):
        data = asdict(self)
        data['timestamp'] = self.timestamp.isoformat()
        return data


@dataclass(frozen=True)
class GameEnded:
    game_id: int
    team_id: int
    team_name: str
    team_color: str
    end_time: datetime
    kind: str = field(default='game_end', init=False)

    def to_dict(self):
        data = asdict(self)
        data['end_time'] = self.end_time.isoformat()
        return data


class EventBroadcaster(ABC):
    """Delivers domain events to whoever watches a game."""

    @abstractmethod
    def publish(self, event) -> None:
        ...


class SocketIOBroadcaster(EventBroadcaster):
    """Emits events to the ``game:<id>`` room on the ``/ws`` namespace."""

    event_names = {
        'conquest': 'pub_conquered',
        'game_end': 'game_over',
    }

    def __init__(self, namespace: str = '/ws'):
        self.namespace = namespace

    def publish(self, event) -> None:
        socketio.emit(
            self.event_names[event.kind],
            event.to_dict(),
            to=room_for(event.game_id),
            namespace=self.namespace,
        )


def room_for(game_id: int) -> str:
    return f"game:{game_id}"
