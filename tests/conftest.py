import random

import pytest

from brizzo.errors import RoomNotFound
from brizzo.rooms import Room


class GraphService:
    """隣接リストで与えたグラフを提供する部屋サービス"""

    def __init__(self, graph: dict[str, list[str]], start: str, fail_on=()):
        self.graph = graph
        self.start = start
        self.current: str | None = None
        # (移動元, 移動先) の組で失敗させる
        self.fail_on = set(fail_on)
        self.calls: list[tuple[str, str | None]] = []

    def room(self, xid: str) -> Room:
        return Room(xid=xid, see=tuple(self.graph[xid]))

    async def start_session(self) -> Room:
        self.calls.append(("start", None))
        self.current = self.start
        return self.room(self.start)

    async def move_to(self, xid: str) -> Room:
        self.calls.append(("move", xid))
        if (self.current, xid) in self.fail_on or xid not in self.graph[self.current]:
            raise RoomNotFound(f"illegal transition from {self.current} to {xid}")
        self.current = xid
        return self.room(xid)


class Recorder:
    def __init__(self):
        self.rooms: list[Room] = []

    def on_room_entered(self, room: Room) -> None:
        self.rooms.append(room)


def random_graph(rng: random.Random, n: int, extra: int) -> dict[str, list[str]]:
    """連結な無向グラフを作る (隣接順はランダム)"""
    names = [f"R{i}" for i in range(n)]
    edges = set()
    for i in range(1, n):
        j = rng.randrange(i)
        edges.add(frozenset((names[i], names[j])))
    for _ in range(extra if n > 1 else 0):
        a, b = rng.sample(names, 2)
        edges.add(frozenset((a, b)))
    graph: dict[str, list[str]] = {name: [] for name in names}
    for edge in edges:
        a, b = tuple(edge)
        graph[a].append(b)
        graph[b].append(a)
    for neighbors in graph.values():
        rng.shuffle(neighbors)
    return graph


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()
