"""
Dashboard Service — FastAPI エントリーポイント

Feed Service の WebSocket を購読し、受信したイベントから
ダッシュボード用のビューを提供する。CQRS の Read 側のみ。

┌──────────────┐   WebSocket /ws   ┌──────────────────────────────────┐
│ Feed Service │ ────────────────▶ │ Dashboard Service                │
│              │                   │  subscriber → IngestionEngine    │
│              │ ◀── GET ───────── │  → projections (毎回再計算)       │
└──────────────┘   /restaurants    └──────────────┬───────────────────┘
                                                  │ /queries/...
                                           (外部の表示レイヤー)

Ingestion Engine はセッション (プロセス起動) ごとに 1 つ生成し、
ビューへは参照として渡す。ビューは読み取りのたびにスナップショットから再計算する。
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from zoneinfo import ZoneInfo

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from services.shared.events import Restaurant

from . import projections, queries
from .aggregate import OrderCardAggregate
from .ingestion import DEFAULT_FLUSH_THRESHOLD, IngestionEngine
from .subscriber import fetch_restaurants, run_subscriber

FEED_URL = os.environ.get("FEED_URL", "http://localhost:8014")
FEED_WS_URL = os.environ.get("FEED_WS_URL", "ws://localhost:8014/ws")
INGEST_FLUSH_THRESHOLD = int(os.environ.get("INGEST_FLUSH_THRESHOLD", DEFAULT_FLUSH_THRESHOLD))
DASHBOARD_TIMEZONE = os.environ.get("DASHBOARD_TIMEZONE")

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

engine = IngestionEngine(INGEST_FLUSH_THRESHOLD)
restaurants: tuple[Restaurant, ...] = ()
dashboard_tz = ZoneInfo(DASHBOARD_TIMEZONE) if DASHBOARD_TIMEZONE else None


def _log_subscriber_exit(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error("Subscriber failed", exc_info=task.exception())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """起動時に参照データを取得し、フィード購読をバックグラウンドタスクとして開始する。"""
    global engine, restaurants
    restaurants = await fetch_restaurants(FEED_URL)
    logger.info("Fetched %d restaurants", len(restaurants))
    engine = IngestionEngine(INGEST_FLUSH_THRESHOLD)

    shutdown_event = asyncio.Event()
    subscriber_task = asyncio.create_task(run_subscriber(FEED_WS_URL, engine, shutdown_event))
    subscriber_task.add_done_callback(_log_subscriber_exit)
    yield
    shutdown_event.set()
    if not subscriber_task.done():
        subscriber_task.cancel()
        try:
            await subscriber_task
        except asyncio.CancelledError:
            pass


app = FastAPI(title="Dashboard Service", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Query Endpoints (Read 側のみ) ─────────────────


@app.get("/queries/orders")
async def query_orders(
    restaurant: str | None = None,
    driver: str | None = None,
    kind: str | None = None,
    day: str | None = None,
):
    """注文カード一覧 (新しい順)。レストラン名・ドライバー名・種別・作成日で絞り込み可"""
    cards = projections.order_cards(engine.snapshot(), restaurants)
    return queries.filter_order_cards(cards, restaurant, driver, kind, day, dashboard_tz)


@app.get("/queries/orders/{order_id}")
async def query_order(order_id: str):
    events = engine.record(order_id)
    if not events:
        raise HTTPException(404, "Order not found")
    return OrderCardAggregate.from_events(events, restaurants).to_view()


@app.get("/queries/drivers")
async def query_drivers():
    """フィルタ用のドライバー名一覧"""
    return queries.driver_names(projections.order_cards(engine.snapshot(), restaurants))


@app.get("/queries/daily")
async def query_daily(day: str | None = None, ordering: projections.DayOrdering = "chronological"):
    """日別の作成・配達・キャンセル件数"""
    days = projections.daily_counts(engine.snapshot(), dashboard_tz, ordering)
    return queries.filter_daily_counts(days, day)


@app.get("/queries/restaurants")
async def query_restaurants(sort: str = "revenue", descending: bool = True):
    """レストラン別集計"""
    stats = projections.restaurant_stats(engine.snapshot(), restaurants)
    try:
        return queries.sort_restaurant_stats(stats, sort, descending)
    except ValueError as exc:
        raise HTTPException(400, str(exc))


@app.get("/queries/overview")
async def query_overview():
    """ダッシュボード概要 (1 つのスナップショットから集計)"""
    snap = engine.snapshot()
    return queries.overview(
        projections.restaurant_stats(snap, restaurants),
        projections.daily_counts(snap, dashboard_tz),
    )


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "service": "dashboard-service",
        "orders": len(engine),
        "pending": engine.pending,
        "dropped": engine.dropped,
    }
