from quizroom.client.api import RoomApiClient
from quizroom.client.pollers import HostPoller, PlayerPoller, PollingTask

__all__ = ["RoomApiClient", "HostPoller", "PlayerPoller", "PollingTask"]
