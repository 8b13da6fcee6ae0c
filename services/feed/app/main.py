"""
Feed Service — FastAPI エントリーポイント

履歴イベントログをオブザーバーごとにリプレイして配信するサーバー側。

  GET /restaurants  レストラン一覧 (参照データ)
  WS  /ws           イベント配信チャネル (1 メッセージ = 1 イベント)

┌──────────────┐  events.json  ┌──────────────┐   WebSocket /ws   ┌───────────────────┐
│  Event Log   │ ────────────▶ │    Pacing    │ ────────────────▶ │ Dashboard Service │
│  (起動時読込) │               │  Scheduler   │  (オブザーバー毎)   │ (Ingestion)       │
└──────────────┘               └──────────────┘                   └───────────────────┘

再接続したオブザーバーにはインデックス 0 から全件を再送する (resume はしない)。
/ws 以外のパスへの WebSocket 接続はアップグレードせずに拒否する。
"""

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from services.shared.events import OrderEvent, Restaurant, serialize_event

from . import event_store, pacing

DATA_DIR = Path(__file__).resolve().parents[3] / "data"

EVENTS_PATH = os.environ.get("EVENTS_PATH", str(DATA_DIR / "events.json"))
RESTAURANTS_PATH = os.environ.get("RESTAURANTS_PATH", str(DATA_DIR / "restaurants.json"))
PACING_TAIL_SIZE = int(os.environ.get("PACING_TAIL_SIZE", pacing.DEFAULT_TAIL_SIZE))
PACING_INTERVAL_MS = int(os.environ.get("PACING_INTERVAL_MS", 1000))

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

event_log: event_store.EventLog | None = None
observers: set[pacing.ReplayHandle] = set()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """起動時にイベントログを一度だけ読み込み、終了時に全リプレイを止める。"""
    global event_log
    event_log = event_store.load_event_log(EVENTS_PATH, RESTAURANTS_PATH)
    logger.info(
        "Loaded %d events and %d restaurants", len(event_log.events), len(event_log.restaurants)
    )
    yield
    for handle in list(observers):
        handle.cancel()
    observers.clear()


app = FastAPI(title="Feed Service", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["Content-Type"],
)


# ── 参照データ ──────────────────────────────────


@app.get("/restaurants", response_model=list[Restaurant])
async def get_restaurants():
    """レストラン一覧を返す (ページング・フィルタなし)"""
    return list(event_log.restaurants)


# ── イベント配信チャネル ──────────────────────────


@app.websocket("/ws")
async def feed_events(websocket: WebSocket):
    """
    接続ごとに独立したリプレイを開始する。

    クライアントからのメッセージは読み捨てる (実質受信専用)。
    どちらかが接続を閉じた時点でリプレイをキャンセルする。
    """
    await websocket.accept()
    logger.info("New connection (%d active)", len(observers) + 1)

    async def send(event: OrderEvent) -> None:
        await websocket.send_text(serialize_event(event))

    handle = pacing.start_replay(
        event_log.events,
        send,
        tail_size=PACING_TAIL_SIZE,
        interval=PACING_INTERVAL_MS / 1000,
    )
    observers.add(handle)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        handle.cancel()
        observers.discard(handle)
        logger.info("Connection closed after %d events (%d active)", handle.sent, len(observers))


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "service": "feed-service",
        "events": len(event_log) if event_log else 0,
        "observers": len(observers),
    }
