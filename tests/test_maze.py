import asyncio
import re

import pytest

from brizzo.explorer import Explorer, Outcome
from brizzo.maze import CELLS_PER_CHAR, Maze, Shape, fade, rasterize
from brizzo.server import LocalRoomService


def reachable(maze: Maze) -> set:
    start = (0, 0)
    seen = {start}
    stack = [start]
    while stack:
        pos = stack.pop()
        for n in maze.neighbors(pos):
            if n not in seen:
                seen.add(n)
                stack.append(n)
    return seen


@pytest.mark.parametrize("shape", list(Shape))
def test_shape_neighbours_are_symmetric(shape):
    for c in range(6):
        for r in range(6):
            for n in shape.neighbors((c, r)):
                assert (c, r) in shape.neighbors(n)


@pytest.mark.parametrize("shape", list(Shape))
def test_generated_maze_is_a_spanning_tree(shape):
    maze = Maze.generate(shape, 7, 5, seed=3)

    assert len(set(maze.ids.values())) == 35
    assert reachable(maze) == set(maze.positions())
    assert len(maze.passages) == 35 - 1
    for room in maze.rooms():
        pos = maze.lookup(room.xid)
        for xid in room.see:
            other = maze.describe(maze.lookup(xid))
            assert room.xid in other.see
        assert maze.transition(pos, room.see[0]) == maze.lookup(room.see[0])


def test_same_seed_same_maze():
    a = Maze.generate(Shape.HEX, 4, 4, seed=99)
    b = Maze.generate(Shape.HEX, 4, 4, seed=99)
    c = Maze.generate(Shape.HEX, 4, 4, seed=100)

    assert a.ids == b.ids and a.passages == b.passages
    assert a.ids != c.ids


def test_describe_and_transition():
    maze = Maze.generate(Shape.QUAD, 3, 3, seed=1)
    entry = maze.describe((0, 0))

    assert entry.xid == maze.entry()
    assert len(entry.pos) == 4
    assert maze.describe((5, 5)) is None
    assert maze.lookup("FFFFFFFFFFFFFFFF") is None
    not_adjacent = maze.ids[(2, 2)]
    assert maze.transition((0, 0), not_adjacent) is None


def test_hex_rooms_have_six_corners():
    maze = Maze.generate(Shape.HEX, 2, 2, seed=0)
    assert all(len(room.pos) == 6 for room in maze.rooms())


def test_invalid_sizes():
    with pytest.raises(ValueError):
        Maze.generate(Shape.QUAD, 0, 3)
    with pytest.raises(ValueError):
        Maze.from_text("")


def test_from_text_dimensions_and_colours():
    maze = Maze.from_text("HELLO", Shape.QUAD, seed=5)

    assert (maze.width, maze.height) == (3 * CELLS_PER_CHAR, 2 * CELLS_PER_CHAR)
    assert all(re.fullmatch(r"#[0-9a-f]{6}", room.col) for room in maze.rooms())
    assert len({room.col for room in maze.rooms()}) > 1


def test_rasterize_covers_glyphs_only():
    coverage = rasterize("H ", 2)

    assert max(coverage.values()) > 0.2
    # 空白は何も描かない
    assert all(c < CELLS_PER_CHAR for c, _ in coverage)


def test_from_text_with_spaces():
    maze = Maze.from_text("HI THERE", Shape.QUAD, seed=1)

    assert (maze.width, maze.height) == (3 * CELLS_PER_CHAR, 3 * CELLS_PER_CHAR)
    assert len(list(maze.rooms())) == 9 * CELLS_PER_CHAR**2
    assert reachable(maze) == set(maze.ids)


def test_fade():
    assert fade((0, 0, 0), (255, 255, 255), 0.0) == "#ffffff"
    assert fade((0, 0, 0), (255, 255, 255), 1.0) == "#000000"
    assert fade((64, 64, 64), (128, 128, 128), 2.0) == "#404040"


@pytest.mark.parametrize("shape", list(Shape))
def test_local_maze_is_fully_explored(shape):
    maze = Maze.generate(shape, 6, 5, seed=11)
    explorer = Explorer(LocalRoomService(maze))

    result = asyncio.run(explorer.run())

    assert result.outcome is Outcome.EXHAUSTED
    assert {room.xid for room in result.rooms} == set(maze.ids.values())
    # 木なので各通路をちょうど往復する
    assert result.requests == 1 + 2 * len(maze.passages)
