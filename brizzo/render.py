"""
入った部屋を描画する

Explorer からは on_room_entered が一方向に呼ばれるだけで、
描画側から探索に影響を与えることはない
"""

import click
from matplotlib.figure import Figure
from matplotlib.patches import Polygon

from brizzo.explorer import RoomListener
from brizzo.rooms import Room, RoomId

MARGIN = 1.0


class EchoRenderer:
    """入った部屋を1行ずつ出力する"""

    def __init__(self, err: bool = False):
        self.err = err
        self.count = 0

    def on_room_entered(self, room: Room) -> None:
        self.count += 1
        click.echo(
            f"[{self.count:4d}] {room.xid} {room.col or '-'} -> {len(room.see)} neighbours",
            err=self.err,
        )


class CanvasRenderer:
    """部屋のポリゴンを matplotlib の図に描く"""

    def __init__(self, figsize=(8, 8)):
        self.fig = Figure(figsize=figsize)
        self.ax = self.fig.subplots()
        self.ax.set_aspect("equal")
        self.ax.set_axis_off()
        # 描画範囲 (x, y, width, height)
        self.viewbox: tuple[float, float, float, float] | None = None
        self.painted: dict[RoomId, Polygon] = {}

    def on_room_entered(self, room: Room) -> None:
        if room.xid in self.painted or not room.pos:
            return
        patch = Polygon(
            [(p.x, p.y) for p in room.pos],
            closed=True,
            facecolor=room.col or "none",
            edgecolor="none",
        )
        self.ax.add_patch(patch)
        self.painted[room.xid] = patch
        self._grow(room)

    def _grow(self, room: Room) -> None:
        if self.viewbox is None:
            first = room.pos[0]
            x, y, width, height = first.x - MARGIN, first.y - MARGIN, 0.0, 0.0
        else:
            x, y, width, height = self.viewbox
        for p in room.pos:
            right, bottom = x + width, y + height
            x = min(x, p.x - MARGIN)
            y = min(y, p.y - MARGIN)
            width = max(right, p.x + MARGIN) - x
            height = max(bottom, p.y + MARGIN) - y
        self.viewbox = (x, y, width, height)
        self.ax.set_xlim(x, x + width)
        # SVG と同じく y 軸は下向き
        self.ax.set_ylim(y + height, y)

    def save(self, path) -> None:
        self.fig.savefig(path, bbox_inches="tight")


class Renderers:
    """複数の描画先にまとめて通知する"""

    def __init__(self, *listeners: RoomListener):
        self.listeners = list(listeners)

    def on_room_entered(self, room: Room) -> None:
        for listener in self.listeners:
            listener.on_room_entered(room)
