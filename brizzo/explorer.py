"""
部屋グラフを深さ優先で探索する

未取得の隣接部屋があればそこへ移動し、無ければ来た道 (trail) を戻って
現在の部屋に隣接する直近の祖先まで引き返す。
未取得の部屋が無くなり trail が空になったら終了する。
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from brizzo.errors import ExplorationLimitExceeded
from brizzo.rooms import Room, RoomCache, RoomId

logger = logging.getLogger(__name__)


class RoomService(Protocol):
    async def start_session(self) -> Room: ...

    async def move_to(self, xid: RoomId) -> Room: ...


class RoomListener(Protocol):
    def on_room_entered(self, room: Room) -> None: ...


class Outcome(Enum):
    # 到達可能な部屋を全て取得した
    EXHAUSTED = "exhausted"
    # 戻れる祖先が見つからなかった (非対称な辺がある)
    DEAD_END = "dead_end"
    FAILED = "failed"


@dataclass
class Exploration:
    """1セッション分の探索結果"""

    outcome: Outcome
    entered: list[RoomId] = field(default_factory=list)
    requests: int = 0
    cache: RoomCache = field(default_factory=RoomCache)

    @property
    def rooms(self) -> list[Room]:
        return self.cache.known_rooms()


class Explorer:
    def __init__(
        self,
        service: RoomService,
        listener: RoomListener | None = None,
        max_steps: int | None = None,
    ):
        self.service = service
        self.listener = listener
        self.max_steps = max_steps
        self.cache = RoomCache()
        self.trail: list[RoomId] = []
        self.current: Room | None = None
        self.outcome: Outcome | None = None
        self.entered: list[RoomId] = []
        self.requests = 0
        self.moves = 0

    @property
    def terminated(self) -> bool:
        return self.outcome is not None

    async def begin(self) -> Room:
        """新しいセッションを開始して最初の部屋に入る"""
        self.cache = RoomCache()
        self.trail = []
        self.current = None
        self.outcome = None
        self.entered = []
        self.requests = 0
        self.moves = 0

        room = await self._request(self.service.start_session())
        self._enter(room)
        return room

    def next_unknown(self) -> RoomId | None:
        """現在の部屋の隣接部屋のうち、左から見て最初の未取得の部屋"""
        assert self.current is not None, "Session not started"
        for xid in self.current.see:
            if self.cache.is_unknown(xid):
                return xid
        return None

    async def step(self) -> bool:
        """探索を1ステップ進める

        Returns
        -------
            探索が続いていれば True, 終了していれば False
        """
        if self.terminated:
            return False
        assert self.current is not None, "Session not started"

        xid = self.next_unknown()
        if xid is not None:
            self.trail.append(self.current.xid)
            try:
                room = await self._move(xid)
            except Exception:
                self.trail.pop()
                raise
            self._enter(room)
            return True

        if not self.trail:
            logger.info("Explored %d rooms", len(self.cache.known_rooms()))
            self.outcome = Outcome.EXHAUSTED
            return False

        popped: list[RoomId] = []
        while self.trail:
            back = self.trail.pop()
            popped.append(back)
            if back not in self.current.see:
                continue
            try:
                room = await self._move(back)
            except Exception:
                self.trail.extend(reversed(popped))
                raise
            self._enter(room)
            return True

        logger.warning(
            "No room on the trail is adjacent to %s; the remote graph has asymmetric passages",
            self.current.xid,
        )
        self.outcome = Outcome.DEAD_END
        return False

    async def run(self) -> Exploration:
        await self.begin()
        while await self.step():
            pass
        return self.result()

    def result(self) -> Exploration:
        return Exploration(
            outcome=self.outcome or Outcome.FAILED,
            entered=list(self.entered),
            requests=self.requests,
            cache=self.cache,
        )

    async def _move(self, xid: RoomId) -> Room:
        # 移動は max_steps 回まで
        if self.max_steps is not None and self.moves >= self.max_steps:
            self.outcome = Outcome.FAILED
            raise ExplorationLimitExceeded(
                f"Exploration did not finish within {self.max_steps} moves"
            )
        self.moves += 1
        return await self._request(self.service.move_to(xid))

    async def _request(self, pending) -> Room:
        self.requests += 1
        try:
            return await pending
        except Exception as e:
            logger.error("Request failed: %s", e)
            self.outcome = Outcome.FAILED
            raise

    def _enter(self, room: Room) -> None:
        room = self.cache.record_fetched(room)
        self.current = room
        self.entered.append(room.xid)
        logger.debug("Entered %s (trail=%d)", room.xid, len(self.trail))
        if self.listener is not None:
            self.listener.on_room_entered(room)
