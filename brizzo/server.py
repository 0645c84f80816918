#!/usr/bin/env python3
"""
部屋探索 API のモックサーバー
FastAPIを使用して作成・開始・移動のプロトコルを実装
"""

import logging
import os
import time
from collections import OrderedDict

from dotenv import load_dotenv
from fastapi import APIRouter, Cookie, FastAPI, HTTPException, Request, Response
from pydantic import BaseModel

from brizzo.errors import RoomNotFound
from brizzo.maze import Maze, Pos, Shape
from brizzo.rooms import Room, RoomId, parse_room_id

logger = logging.getLogger("uvicorn")

# メッセージの最大長
MAX_LENGTH = 64
# 保持するメッセージの最大数 (超えたら古いものから捨てる)
MAX_MESSAGES = 64

XID_COOKIE = "xid"
DEFAULT_COOKIE_MAX_AGE = 10.0


# データモデル
class CreateRequest(BaseModel):
    name: str
    text: str
    shape: Shape = Shape.QUAD
    seed: int = 12345


class MoveRequest(BaseModel):
    xid: str


class MessageStore:
    """名前付きの迷路を保持する"""

    def __init__(self, max_messages: int = MAX_MESSAGES):
        self.max_messages = max_messages
        self._messages: OrderedDict[str, Maze] = OrderedDict()

    def store(self, name: str, maze: Maze) -> bool:
        """保存できれば True, 同名のメッセージがあれば False"""
        if name in self._messages:
            return False
        if len(self._messages) >= self.max_messages:
            evicted, _ = self._messages.popitem(last=False)
            logger.info(f"Evicted message {evicted}")
        self._messages[name] = maze
        return True

    def get(self, name: str) -> Maze | None:
        return self._messages.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._messages

    def __len__(self) -> int:
        return len(self._messages)


class SessionCookie:
    """部屋IDにタイムスタンプを付けたクッキー値

    形式は "{XID}:{ミリ秒}" で、max_age 秒より古いものは期限切れとみなす
    """

    SEPARATOR = ":"

    class Expired(ValueError):
        pass

    @classmethod
    def dump(cls, xid: RoomId, now: float | None = None) -> str:
        millis = int((time.time() if now is None else now) * 1000)
        return f"{xid}{cls.SEPARATOR}{millis}"

    @classmethod
    def load(cls, value: str, max_age: float, now: float | None = None) -> RoomId:
        xid_part, sep, millis_part = value.partition(cls.SEPARATOR)
        if not sep or not millis_part.isdigit():
            raise ValueError(f"無効なクッキー: {value!r}")
        xid = parse_room_id(xid_part)
        age = (time.time() if now is None else now) - int(millis_part) / 1000
        if age >= max_age:
            raise cls.Expired(f"クッキーの期限切れ: {value!r}")
        return xid


def create_app(
    store: MessageStore | None = None, cookie_max_age: float | None = None
) -> FastAPI:
    load_dotenv()
    if cookie_max_age is None:
        cookie_max_age = float(
            os.environ.get("BRIZZO_COOKIE_MAX_AGE", DEFAULT_COOKIE_MAX_AGE)
        )
    messages = store if store is not None else MessageStore()
    router = APIRouter(prefix="/api")

    def find_message(name: str) -> Maze:
        maze = messages.get(name)
        if maze is None:
            logger.info(f"Message {name} does not exist")
            raise HTTPException(status_code=404, detail="unknown message")
        return maze

    def describe(maze: Maze, pos: Pos, response: Response) -> dict:
        room = maze.describe(pos)
        if room is None:
            raise HTTPException(status_code=404, detail="unknown room")
        response.set_cookie(
            XID_COOKIE, SessionCookie.dump(room.xid), httponly=True, samesite="strict"
        )
        return room.to_json()

    @router.post("/", status_code=201)
    async def create(request: CreateRequest, raw: Request, response: Response):
        """メッセージの迷路を作成する"""
        if not 1 <= len(request.text) <= MAX_LENGTH:
            logger.info(f"Invalid message: {request.text}")
            raise HTTPException(status_code=400, detail="message invalid")
        if request.name in messages:
            raise HTTPException(status_code=409, detail="already exists")
        messages.store(
            request.name, Maze.from_text(request.text, request.shape, request.seed)
        )
        location = f"{raw.url}{request.name}"
        logger.info(f"Created message with location {location}")
        response.headers["Location"] = location
        return {"name": request.name}

    @router.get("/{message_name}")
    async def read(
        message_name: str, response: Response, xid: str | None = Cookie(default=None)
    ):
        """現在の部屋を返す。セッションが無ければ入口の部屋から始める"""
        maze = find_message(message_name)
        current = maze.entry()
        if xid is not None:
            try:
                current = SessionCookie.load(xid, cookie_max_age)
            except SessionCookie.Expired:
                pass
            except ValueError:
                raise HTTPException(status_code=404, detail="unknown room")
        pos = maze.lookup(current)
        if pos is None:
            raise HTTPException(status_code=404, detail="unknown room")
        return describe(maze, pos, response)

    @router.put("/{message_name}")
    async def update(
        message_name: str,
        request: MoveRequest,
        response: Response,
        xid: str | None = Cookie(default=None),
    ):
        """隣の部屋へ移動する"""
        maze = find_message(message_name)
        current = maze.entry()
        if xid is not None:
            try:
                current = SessionCookie.load(xid, cookie_max_age)
            except ValueError:
                raise HTTPException(status_code=404, detail="unknown room")
        try:
            target = parse_room_id(request.xid)
        except ValueError:
            raise HTTPException(status_code=404, detail="unknown room")

        pos = maze.lookup(current)
        nxt = maze.transition(pos, target) if pos is not None else None
        if nxt is None:
            logger.info(f"Cannot transition from {current} to {target}")
            raise HTTPException(status_code=404, detail="illegal transition")
        return describe(maze, nxt, response)

    app = FastAPI(title="部屋探索 API", version="1.0.0")
    app.state.messages = messages
    app.include_router(router)

    @app.get("/health")
    async def health():
        """ヘルスチェックエンドポイント"""
        return {"status": "healthy"}

    return app


class LocalRoomService:
    """HTTPを介さずに迷路を直接探索するための部屋サービス"""

    def __init__(self, maze: Maze):
        self.maze = maze
        self.pos: Pos | None = None

    async def start_session(self) -> Room:
        self.pos = self.maze.lookup(self.maze.entry())
        assert self.pos is not None, "Entry room not found"
        room = self.maze.describe(self.pos)
        assert room is not None
        return room

    async def move_to(self, xid: RoomId) -> Room:
        if self.pos is None:
            raise RoomNotFound("unknown room")
        nxt = self.maze.transition(self.pos, xid)
        if nxt is None:
            raise RoomNotFound(f"illegal transition from {self.maze.ids[self.pos]} to {xid}")
        self.pos = nxt
        room = self.maze.describe(nxt)
        assert room is not None
        return room


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
