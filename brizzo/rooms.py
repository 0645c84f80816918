"""
部屋のデータモデルと、探索中に見つけた部屋のキャッシュ
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeAlias

logger = logging.getLogger(__name__)

RoomId: TypeAlias = str


def format_room_id(value: int) -> RoomId:
    """64bit整数を16桁の大文字hex文字列にする"""
    if not 0 <= value < 1 << 64:
        raise ValueError(f"部屋IDは64bitの範囲である必要があります: {value}")
    return f"{value:016X}"


def parse_room_id(source: str) -> RoomId:
    """hex文字列を正規化された部屋IDにする"""
    try:
        value = int(source, 16)
    except (TypeError, ValueError):
        raise ValueError(f"無効な部屋ID: {source!r}") from None
    return format_room_id(value)


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class Room:
    """部屋を表すクラス

    see は隣接する部屋IDの列で、順序は探索順のタイブレークにのみ使う
    pos, col は描画用で探索アルゴリズムからは不透明
    """

    xid: RoomId
    see: tuple[RoomId, ...] = ()
    pos: tuple[Point, ...] = ()
    col: str = ""

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "Room":
        try:
            return cls(
                xid=parse_room_id(data["xid"]),
                see=tuple(parse_room_id(xid) for xid in data.get("see", [])),
                pos=tuple(
                    Point(float(p["x"]), float(p["y"])) for p in data.get("pos", [])
                ),
                col=str(data.get("col", "")),
            )
        except (AttributeError, KeyError, TypeError) as e:
            raise ValueError(f"無効な部屋データ: {data!r}") from e

    def to_json(self) -> dict[str, Any]:
        return {
            "xid": self.xid,
            "see": list(self.see),
            "pos": [{"x": p.x, "y": p.y} for p in self.pos],
            "col": self.col,
        }


class CacheState(Enum):
    UNSEEN = "unseen"
    UNKNOWN = "unknown"
    KNOWN = "known"


class RoomCache:
    """これまでに参照された全ての部屋IDの状態を持つ

    状態は UNSEEN -> UNKNOWN -> KNOWN の順にしか進まない
    一度 KNOWN になった部屋のレコードは上書きしない
    """

    def __init__(self):
        # KNOWN の部屋は Room, UNKNOWN の部屋は None
        self._entries: dict[RoomId, Room | None] = {}

    def mark_referenced(self, xid: RoomId) -> None:
        if xid not in self._entries:
            self._entries[xid] = None

    def record_fetched(self, room: Room) -> Room:
        """取得した部屋を記録し、キャッシュ上のレコードを返す

        既に KNOWN の部屋は最初のレコードを返し、隣接部屋も参照済みにしない
        """
        known = self._entries.get(room.xid)
        if known is not None:
            if known.see != room.see:
                logger.warning(
                    "Room %s changed its neighbours during the session: %s -> %s",
                    room.xid,
                    known.see,
                    room.see,
                )
            return known
        self._entries[room.xid] = room
        for xid in room.see:
            self.mark_referenced(xid)
        return room

    def state(self, xid: RoomId) -> CacheState:
        if xid not in self._entries:
            return CacheState.UNSEEN
        if self._entries[xid] is None:
            return CacheState.UNKNOWN
        return CacheState.KNOWN

    def is_unknown(self, xid: RoomId) -> bool:
        return self.state(xid) is CacheState.UNKNOWN

    def get(self, xid: RoomId) -> Room | None:
        return self._entries.get(xid)

    def frontier(self) -> list[RoomId]:
        """まだ取得していない参照済みの部屋ID (参照順)"""
        return [xid for xid, room in self._entries.items() if room is None]

    def known_rooms(self) -> list[Room]:
        """取得済みの部屋 (最初に参照された順)"""
        return [room for room in self._entries.values() if room is not None]

    def __contains__(self, xid: object) -> bool:
        return xid in self._entries

    def __len__(self) -> int:
        return len(self._entries)
