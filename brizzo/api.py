#!/usr/bin/env python3
"""
部屋探索ツール
部屋サービスのクライアントと、探索・作成・モックサーバー起動用CLI
"""

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Any, Mapping

import aiohttp
import click
from dotenv import load_dotenv

from brizzo.errors import (
    AlreadyExists,
    ApiError,
    BrizzoError,
    InvalidRequest,
    RoomNotFound,
)
from brizzo.explorer import Explorer, Outcome
from brizzo.maze import Maze, Shape
from brizzo.render import CanvasRenderer, EchoRenderer, Renderers
from brizzo.rooms import Room, RoomId

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:8000/api"
DEFAULT_MAX_RETRIES = 10


class MazeClient:
    @staticmethod
    def build(message: str, base_url: str | None = None) -> "MazeClient":
        """環境変数からAPIクライアントを構築する

        - BRIZZO_API_URL が設定されていればそこに接続 (無ければローカルのモックサーバ)
        - BRIZZO_MAX_RETRIES で500系エラーのリトライ回数を変えられる
        """
        load_dotenv()
        base_url = base_url or os.environ.get("BRIZZO_API_URL", DEFAULT_API_URL)
        max_retries = int(os.environ.get("BRIZZO_MAX_RETRIES", DEFAULT_MAX_RETRIES))
        logger.info("Using room API at %s", base_url)
        return MazeClient(base_url, message, max_retries=max_retries)

    def __init__(
        self,
        base_url: str,
        message: str,
        max_retries: int = DEFAULT_MAX_RETRIES,
        timeout: float = 30.0,
    ):
        """API client

        Parameters
        ----------
        base_url
            API のベースURL (例: http://localhost:8000/api)
        message
            探索するメッセージ名
        max_retries
            500系エラーのときのリトライ回数
        timeout
            1リクエストあたりのタイムアウト (秒)
        """
        self.base_url = base_url.rstrip("/")
        self.message = message
        self.max_retries = max_retries
        self.timeout = timeout
        self._session: aiohttp.ClientSession | None = None

    @property
    def url(self) -> str:
        return f"{self.base_url}/{self.message}"

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                # モックサーバは IP アドレスで動かすことが多いので unsafe にする
                cookie_jar=aiohttp.CookieJar(unsafe=True),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "MazeClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def make_request(
        self, method: str, url: str, data: dict[str, Any] | None = None
    ) -> tuple[Any, Mapping[str, str]]:
        """APIリクエストを送信し、(レスポンスのJSON, ヘッダ) を返す

        500系エラーに限って max_retries 回までリトライする
        """
        for i_try in range(self.max_retries):
            try:
                async with self.session.request(method, url, json=data) as response:
                    text = await response.text()
                    if response.status >= 500:
                        click.secho(
                            f"{method} {url}: {response.status} {text}",
                            err=True,
                            fg="red",
                        )
                        click.secho(
                            f"Retrying... [{i_try}/{self.max_retries}]",
                            err=True,
                            fg="yellow",
                        )
                        await asyncio.sleep(0.1 * (1.6**i_try))
                        continue
                    if response.status >= 400:
                        raise self._error(method, url, response.status, text)
                    try:
                        payload = await response.json(content_type=None) if text else None
                    except ValueError as e:
                        raise ApiError(
                            f"{method} {url}: invalid JSON response: {text[:80]!r}",
                            response.status,
                        ) from e
                    return payload, response.headers.copy()
            except aiohttp.ClientError as e:
                raise ApiError(f"{method} {url}: {e}") from e
            except asyncio.TimeoutError as e:
                raise ApiError(f"{method} {url}: timed out") from e
        raise ApiError(f"{method} {url}: gave up after {self.max_retries} attempts")

    @staticmethod
    def _error(method: str, url: str, status: int, text: str) -> ApiError:
        message = f"{method} {url}: {status} {text}"
        if status == 404:
            return RoomNotFound(message, status)
        if status == 409:
            return AlreadyExists(message, status)
        if status == 400 or status == 422:
            return InvalidRequest(message, status)
        return ApiError(message, status)

    async def start_session(self) -> Room:
        """新しいセッションを開始して入口の部屋を返す

        以前のセッションのクッキーは捨てる
        """
        self.session.cookie_jar.clear()
        payload, _ = await self.make_request("GET", self.url)
        return self._room(payload)

    async def move_to(self, xid: RoomId) -> Room:
        payload, _ = await self.make_request("PUT", self.url, {"xid": xid})
        return self._room(payload)

    @staticmethod
    def _room(payload: Any) -> Room:
        try:
            return Room.from_json(payload)
        except ValueError as e:
            raise ApiError(str(e)) from e

    async def create(self, text: str, shape: Shape = Shape.QUAD, seed: int = 12345) -> str:
        """メッセージの迷路を作成し、その場所 (URL) を返す"""
        data = {"name": self.message, "text": text, "shape": shape.value, "seed": seed}
        _, headers = await self.make_request("POST", f"{self.base_url}/", data)
        return headers.get("Location", self.url)


def build_listener(quiet: bool, canvas_path: Path | None):
    listeners = []
    if not quiet:
        listeners.append(EchoRenderer())
    canvas = CanvasRenderer() if canvas_path is not None else None
    if canvas is not None:
        listeners.append(canvas)
    return Renderers(*listeners), canvas


def report(explorer: Explorer, canvas, canvas_path: Path | None) -> None:
    result = explorer.result()
    if canvas is not None and canvas_path is not None:
        canvas.save(canvas_path)
        click.echo(f"地図を保存しました: {canvas_path}")
    click.echo(
        f"部屋数: {len(result.rooms)}, 入室回数: {len(result.entered)}, "
        f"リクエスト数: {result.requests}"
    )
    if result.outcome is Outcome.EXHAUSTED:
        click.echo("🎉 探索完了! 到達可能な部屋を全て訪れました")
    elif result.outcome is Outcome.DEAD_END:
        click.secho(
            "❌ 戻れる部屋が見つかりませんでした (通路が一方通行になっています)",
            fg="yellow",
        )


async def run_explorer(explorer: Explorer) -> None:
    try:
        await explorer.run()
    finally:
        close = getattr(explorer.service, "close", None)
        if close is not None:
            await close()


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="デバッグログを出力する")
def cli(verbose: bool):
    """部屋探索ツール"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.argument("name")
@click.option("--api-url", default=None, help="APIのベースURL (BRIZZO_API_URL より優先)")
@click.option("--canvas", "canvas_path", type=click.Path(path_type=Path), help="地図の画像の保存先")
@click.option("--quiet", "-q", is_flag=True, help="部屋ごとの出力をしない")
@click.option("--max-steps", type=int, default=None, help="移動回数の上限")
def explore(
    name: str,
    api_url: str | None,
    canvas_path: Path | None,
    quiet: bool,
    max_steps: int | None,
):
    """メッセージの迷路を探索する

    NAME: 探索するメッセージ名
    """
    client = MazeClient.build(name, api_url)
    listener, canvas = build_listener(quiet, canvas_path)
    explorer = Explorer(client, listener, max_steps=max_steps)
    click.echo(f"メッセージ '{name}' を探索中...")
    try:
        asyncio.run(run_explorer(explorer))
    except BrizzoError as e:
        click.secho(f"エラー: {e}", err=True, fg="red")
        sys.exit(1)
    report(explorer, canvas, canvas_path)


@cli.command()
@click.argument("name")
@click.argument("text")
@click.option("--api-url", default=None, help="APIのベースURL (BRIZZO_API_URL より優先)")
@click.option(
    "--shape",
    type=click.Choice([s.value for s in Shape]),
    default=Shape.QUAD.value,
    help="部屋の形",
)
@click.option("--seed", type=int, default=12345, help="乱数シード")
def create(name: str, text: str, api_url: str | None, shape: str, seed: int):
    """メッセージの迷路を作成する

    \b
    例:
      brizzo create hello "HELLO" --shape hex
    """

    async def _create() -> str:
        async with MazeClient.build(name, api_url) as client:
            return await client.create(text, Shape(shape), seed)

    try:
        location = asyncio.run(_create())
    except AlreadyExists:
        click.secho(
            "エラー: 同じ名前のメッセージが既にあります。別の名前を指定してください",
            err=True,
            fg="red",
        )
        sys.exit(1)
    except BrizzoError as e:
        click.secho(f"エラー: メッセージの作成に失敗しました: {e}", err=True, fg="red")
        sys.exit(1)
    click.echo(f"✓ メッセージが作成されました: {location}")


@cli.command()
@click.argument("text")
@click.option(
    "--shape",
    type=click.Choice([s.value for s in Shape]),
    default=Shape.QUAD.value,
    help="部屋の形",
)
@click.option("--seed", type=int, default=12345, help="乱数シード")
@click.option("--canvas", "canvas_path", type=click.Path(path_type=Path), help="地図の画像の保存先")
@click.option("--quiet", "-q", is_flag=True, help="部屋ごとの出力をしない")
def local(text: str, shape: str, seed: int, canvas_path: Path | None, quiet: bool):
    """サーバーを使わずに迷路を生成して探索する"""
    from brizzo.server import LocalRoomService

    try:
        maze = Maze.from_text(text, Shape(shape), seed)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="TEXT")
    listener, canvas = build_listener(quiet, canvas_path)
    explorer = Explorer(LocalRoomService(maze), listener)
    try:
        asyncio.run(run_explorer(explorer))
    except BrizzoError as e:
        click.secho(f"エラー: {e}", err=True, fg="red")
        sys.exit(1)
    report(explorer, canvas, canvas_path)


@cli.command()
@click.option("--host", default="127.0.0.1")
@click.option("--port", type=int, default=8000)
def serve(host: str, port: int):
    """モックサーバーを起動する"""
    import uvicorn

    from brizzo.server import app

    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    cli()
