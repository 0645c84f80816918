"""
モックサーバー用の迷路生成

全ての部屋に一意な64bit IDを振り、ランダムな全域木で通路を掘る。
通路は無向なので、AからBに移動できればBからAにも移動できる。
"""

import math
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterator, TypeAlias

import numpy as np
from matplotlib.textpath import TextPath

from brizzo.rooms import Point, Room, RoomId, format_room_id

Pos: TypeAlias = tuple[int, int]

# 1文字あたりの部屋数 (縦横)
CELLS_PER_CHAR = 4

TEXT_COLOR = (64, 64, 64)


class Shape(str, Enum):
    QUAD = "quad"
    HEX = "hex"

    def neighbors(self, pos: Pos) -> list[Pos]:
        c, r = pos
        if self is Shape.QUAD:
            return [(c, r - 1), (c + 1, r), (c, r + 1), (c - 1, r)]
        # odd-q の六角形グリッド
        if c % 2 == 0:
            offsets = [(0, -1), (1, -1), (1, 0), (0, 1), (-1, 0), (-1, -1)]
        else:
            offsets = [(0, -1), (1, 0), (1, 1), (0, 1), (-1, 1), (-1, 0)]
        return [(c + dc, r + dr) for dc, dr in offsets]

    def center(self, pos: Pos) -> Point:
        c, r = pos
        if self is Shape.QUAD:
            return Point(c + 0.5, r + 0.5)
        return Point(1.5 * c + 1.0, math.sqrt(3) * (r + 0.5 * (c % 2) + 0.5))

    def corners(self, pos: Pos) -> tuple[Point, ...]:
        if self is Shape.QUAD:
            c, r = pos
            return (
                Point(c, r),
                Point(c + 1, r),
                Point(c + 1, r + 1),
                Point(c, r + 1),
            )
        center = self.center(pos)
        return tuple(
            Point(
                round(center.x + math.cos(math.radians(60 * k)), 6),
                round(center.y + math.sin(math.radians(60 * k)), 6),
            )
            for k in range(6)
        )


@dataclass
class Maze:
    shape: Shape
    width: int
    height: int
    ids: dict[Pos, RoomId]
    passages: set[frozenset[Pos]] = field(default_factory=set)
    colors: dict[Pos, str] = field(default_factory=dict)

    @classmethod
    def generate(
        cls,
        shape: Shape,
        width: int,
        height: int,
        seed: int = 0,
        color: Callable[[Pos], str] | None = None,
    ) -> "Maze":
        """ランダムな迷路を生成する

        Parameters
        ----------
        shape
            部屋の形
        width, height
            部屋の数 (横, 縦)
        seed
            乱数シード。同じシードからは同じ迷路ができる
        color
            部屋の位置から色を決める関数
        """
        if width < 1 or height < 1:
            raise ValueError(f"迷路のサイズが不正です: {width}x{height}")
        rng = random.Random(seed)

        ids: dict[Pos, RoomId] = {}
        used: set[RoomId] = set()
        for r in range(height):
            for c in range(width):
                xid = format_room_id(rng.getrandbits(64))
                while xid in used:
                    xid = format_room_id(rng.getrandbits(64))
                used.add(xid)
                ids[(c, r)] = xid

        maze = cls(shape=shape, width=width, height=height, ids=ids)
        maze._carve(rng)
        if color is not None:
            maze.colors = {pos: color(pos) for pos in ids}
        return maze

    @classmethod
    def from_text(cls, text: str, shape: Shape = Shape.QUAD, seed: int = 0) -> "Maze":
        """文字列を部屋の色で描いた迷路を生成する"""
        if not text:
            raise ValueError("空の文字列から迷路は作れません")
        columns = math.ceil(math.sqrt(len(text)))
        rows = math.ceil(len(text) / columns)
        width = columns * CELLS_PER_CHAR
        height = rows * CELLS_PER_CHAR
        coverage = rasterize(text, columns)

        def color(pos: Pos) -> str:
            center = shape.center(pos)
            x = center.x / max(width, 1)
            y = center.y / max(height, 1)
            background = (
                120 + 10 * math.cos(3 * x),
                120 + 10 * math.cos(3 * (x + y)),
                120 + 10 * math.cos(3 * x * y),
            )
            return fade(TEXT_COLOR, background, coverage.get(pos, 0.0))

        return cls.generate(shape, width, height, seed, color)

    def _carve(self, rng: random.Random) -> None:
        # growing tree: 作業リストからランダムに選んで枝を伸ばす
        start = (0, 0)
        visited = {start}
        active = [start]
        while active:
            index = rng.randrange(len(active))
            pos = active[index]
            candidates = [
                n for n in self.shape.neighbors(pos) if n in self.ids and n not in visited
            ]
            if not candidates:
                active.pop(index)
                continue
            nxt = rng.choice(candidates)
            self.passages.add(frozenset((pos, nxt)))
            visited.add(nxt)
            active.append(nxt)

    def positions(self) -> Iterator[Pos]:
        for r in range(self.height):
            for c in range(self.width):
                yield (c, r)

    def neighbors(self, pos: Pos) -> list[Pos]:
        """通路で繋がっている隣の部屋"""
        return [
            n
            for n in self.shape.neighbors(pos)
            if frozenset((pos, n)) in self.passages
        ]

    def entry(self) -> RoomId:
        return self.ids[(0, 0)]

    def lookup(self, xid: RoomId) -> Pos | None:
        for pos, room_id in self.ids.items():
            if room_id == xid:
                return pos
        return None

    def describe(self, pos: Pos) -> Room | None:
        if pos not in self.ids:
            return None
        return Room(
            xid=self.ids[pos],
            see=tuple(self.ids[n] for n in self.neighbors(pos)),
            pos=self.shape.corners(pos),
            col=self.colors.get(pos, "#808080"),
        )

    def transition(self, pos: Pos, xid: RoomId) -> Pos | None:
        """pos から xid の部屋へ移動できれば移動先の位置を返す"""
        for n in self.neighbors(pos):
            if self.ids[n] == xid:
                return n
        return None

    def rooms(self) -> Iterator[Room]:
        for pos in self.positions():
            room = self.describe(pos)
            if room is not None:
                yield room


def rasterize(text: str, columns: int) -> dict[Pos, float]:
    """文字列をグリッドに描き、部屋ごとに文字で覆われている割合を返す"""
    coverage: dict[Pos, float] = {}
    samples = [(i + 0.5) / 3 for i in range(3)]
    for i, ch in enumerate(text):
        # 空白のグリフは TextPath にできない
        if ch.isspace():
            continue
        path = TextPath((0, 0), ch, size=1)
        if len(path.vertices) == 0:
            continue
        extents = path.get_extents()
        scale = max(extents.width, extents.height) * 1.2 or 1.0
        x0 = extents.x0 - (scale - extents.width) / 2
        y1 = extents.y1 + (scale - extents.height) / 2
        block_c = (i % columns) * CELLS_PER_CHAR
        block_r = (i // columns) * CELLS_PER_CHAR
        for lr in range(CELLS_PER_CHAR):
            for lc in range(CELLS_PER_CHAR):
                points = np.array(
                    [
                        (
                            x0 + (lc + sx) / CELLS_PER_CHAR * scale,
                            y1 - (lr + sy) / CELLS_PER_CHAR * scale,
                        )
                        for sy in samples
                        for sx in samples
                    ]
                )
                inside = path.contains_points(points)
                coverage[(block_c + lc, block_r + lr)] = float(np.mean(inside))
    return coverage


def fade(fg: tuple[int, int, int], bg: tuple[float, float, float], f: float) -> str:
    """fg を割合 f で bg に重ねた色を #rrggbb で返す"""
    f = min(max(f, 0.0), 1.0)
    r, g, b = (round(a * f + c * (1 - f)) for a, c in zip(fg, bg))
    return f"#{r:02x}{g:02x}{b:02x}"
