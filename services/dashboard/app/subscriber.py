"""
Dashboard Service — フィード購読 (WebSocket サブスクライバー)

Feed Service の /ws に接続し、受信したイベントを Ingestion Engine に渡す。
新着が FLUSH_INTERVAL 秒途切れたとき、および接続終了時にバッファを flush する。

注意: 配信は fire-and-forget。接続が切れた後の resume はなく、
再接続すればインデックス 0 から全件が再送される (= 重複になる)。
そのため本サブスクライバーは再接続しない。
"""

import asyncio
import logging

import httpx
import websockets

from services.shared.events import Restaurant, parse_restaurants

from .ingestion import IngestionEngine

logger = logging.getLogger(__name__)

FLUSH_INTERVAL = 0.1


async def fetch_restaurants(
    base_url: str, transport: httpx.AsyncBaseTransport | None = None
) -> tuple[Restaurant, ...]:
    """
    レストラン一覧を一度だけ取得する。

    HTTP エラーはそのまま送出する (参照データ提供元がダウンしているとみなす)。
    """
    async with httpx.AsyncClient(base_url=base_url, timeout=10.0, transport=transport) as client:
        resp = await client.get("/restaurants")
        resp.raise_for_status()
        return tuple(parse_restaurants(resp.content))


async def run_subscriber(
    feed_ws_url: str,
    engine: IngestionEngine,
    shutdown_event: asyncio.Event,
    connect=websockets.connect,
) -> None:
    """
    フィードを購読し、イベントを engine に取り込む。

    フィード側が接続を閉じた場合は購読の正常終了として扱う。
    shutdown_event がセットされると接続を閉じて終了する。
    """
    async with connect(feed_ws_url) as ws:
        logger.info("Connected to feed %s", feed_ws_url)
        try:
            while not shutdown_event.is_set():
                try:
                    message = await asyncio.wait_for(ws.recv(), timeout=FLUSH_INTERVAL)
                except asyncio.TimeoutError:
                    engine.flush()
                    continue
                engine.ingest_raw(message)
        except websockets.ConnectionClosed as exc:
            logger.info("Feed connection closed: %s", exc)
        finally:
            applied = engine.flush()
            logger.info(
                "Subscriber stopped (%d orders, %d flushed on exit, %d dropped)",
                len(engine), applied, engine.dropped,
            )
