"""
Dashboard Service — イベント投影 (Projection)

CQRS の Read 側: Ingestion Engine のスナップショットから
ダッシュボード用のビューを投影する。

ビューは保存せず、読み取りのたびにスナップショット全体から再計算する
(差分パッチはしない)。同じ状態に対して何度呼んでも同じ結果になる。

  1. 注文ステータスカード   order_cards()
  2. 日別件数               daily_counts()
  3. レストラン別集計       restaurant_stats()
"""

from collections.abc import Mapping
from datetime import datetime, tzinfo
from decimal import Decimal, InvalidOperation
from typing import Annotated, Literal, assert_never

from pydantic import BaseModel, ConfigDict, PlainSerializer

from services.shared.events import (
    UNKNOWN_RESTAURANT,
    OrderCancelled,
    OrderCreated,
    OrderDelivered,
    OrderEnRoute,
    OrderEvent,
    Restaurant,
)

from .aggregate import OrderCard, OrderCardAggregate

Snapshot = Mapping[str, tuple[OrderEvent, ...]]
DayOrdering = Literal["chronological", "first_seen"]

# 集計は Decimal で行い、JSON には数値として出す
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class DailyCount(BaseModel):
    """1 日分の件数"""
    model_config = ConfigDict(frozen=True)

    date: str
    created_orders: int = 0
    delivered_orders: int = 0
    cancelled_orders: int = 0


class RestaurantStats(BaseModel):
    """レストラン別の売上・損失・件数"""
    model_config = ConfigDict(frozen=True)

    restaurant_id: str
    name: str
    rating: float | None = None
    created: int = 0
    delivered: int = 0
    cancelled: int = 0
    revenue: Money = Decimal(0)
    lost_revenue: Money = Decimal(0)


class AggregateSnapshot(BaseModel):
    """1 つのスナップショットから計算した全ビュー"""
    model_config = ConfigDict(frozen=True)

    orders: list[OrderCard]
    daily: list[DailyCount]
    restaurants: list[RestaurantStats]


def parse_amount(raw: str | None) -> Decimal:
    """文字列エンコードされた金額をパースする。不正値・欠損は 0。"""
    if raw is None:
        return Decimal(0)
    try:
        amount = Decimal(raw.strip())
    except (InvalidOperation, AttributeError):
        return Decimal(0)
    if not amount.is_finite():
        return Decimal(0)
    return amount


# ── 1. 注文ステータスカード ──────────────────────


def order_cards(snapshot: Snapshot, restaurants: tuple[Restaurant, ...] = ()) -> list[OrderCard]:
    """全注文のカード。新しく現れた注文が先頭 (ライブフィード順)。"""
    cards = [
        OrderCardAggregate.from_events(events, restaurants).to_view()
        for events in snapshot.values()
        if events
    ]
    cards.reverse()
    return cards


# ── 2. 日別件数 ─────────────────────────────────


def day_key(timestamp: datetime, tz: tzinfo | None) -> str:
    # tz=None はシステムのローカルタイムゾーン
    return timestamp.astimezone(tz).date().isoformat()


def daily_counts(
    snapshot: Snapshot,
    tz: tzinfo | None = None,
    ordering: DayOrdering = "chronological",
) -> list[DailyCount]:
    """
    全イベントを timestamp の暦日でグループ化して件数を数える。

    ordering="first_seen" は最初に現れた日の順 (旧来の挙動)、
    既定の "chronological" は日付順。
    """
    buckets: dict[str, dict[str, int]] = {}
    for events in snapshot.values():
        for event in events:
            bucket = buckets.setdefault(
                day_key(event.timestamp, tz),
                {"created_orders": 0, "delivered_orders": 0, "cancelled_orders": 0},
            )
            match event:
                case OrderCreated():
                    bucket["created_orders"] += 1
                case OrderDelivered():
                    bucket["delivered_orders"] += 1
                case OrderCancelled():
                    bucket["cancelled_orders"] += 1
                case OrderEnRoute():
                    pass
                case _:
                    assert_never(event)

    keys = list(buckets)
    if ordering == "chronological":
        keys.sort()
    elif ordering != "first_seen":
        raise ValueError(f"unknown day ordering: {ordering}")
    return [DailyCount(date=key, **buckets[key]) for key in keys]


# ── 3. レストラン別集計 ──────────────────────────


def restaurant_stats(
    snapshot: Snapshot, restaurants: tuple[Restaurant, ...] = ()
) -> list[RestaurantStats]:
    """
    レストランごとの集計。

    参照データの全レストランを (注文 0 件でも) 参照データの順に出力し、
    その後にイベントにしか現れないレストランを "Unknown" として続ける。

    金額は後続イベントには含まれないため、注文自身の OrderCreated から引く。
    OrderCreated の無い注文の終端イベントは集計しない。
    """
    stats: dict[str, dict] = {
        r.id: {"name": r.name, "rating": r.rating, "created": 0, "delivered": 0,
               "cancelled": 0, "revenue": Decimal(0), "lost_revenue": Decimal(0)}
        for r in restaurants
    }

    for events in snapshot.values():
        restaurant_id: str | None = None
        amount = Decimal(0)
        for event in events:
            match event:
                case OrderCreated():
                    restaurant_id = event.restaurant_id
                    amount = parse_amount(event.total_amount)
                    row = stats.setdefault(
                        restaurant_id,
                        {"name": UNKNOWN_RESTAURANT, "rating": None, "created": 0, "delivered": 0,
                         "cancelled": 0, "revenue": Decimal(0), "lost_revenue": Decimal(0)},
                    )
                    row["created"] += 1
                case OrderDelivered():
                    if restaurant_id is not None:
                        stats[restaurant_id]["delivered"] += 1
                        stats[restaurant_id]["revenue"] += amount
                case OrderCancelled():
                    if restaurant_id is not None:
                        stats[restaurant_id]["cancelled"] += 1
                        stats[restaurant_id]["lost_revenue"] += amount
                case OrderEnRoute():
                    pass
                case _:
                    assert_never(event)

    return [RestaurantStats(restaurant_id=rid, **row) for rid, row in stats.items()]


def build_snapshot(
    snapshot: Snapshot,
    restaurants: tuple[Restaurant, ...] = (),
    tz: tzinfo | None = None,
    ordering: DayOrdering = "chronological",
) -> AggregateSnapshot:
    """1 つの一貫したスナップショットから全ビューを計算する。"""
    return AggregateSnapshot(
        orders=order_cards(snapshot, restaurants),
        daily=daily_counts(snapshot, tz, ordering),
        restaurants=restaurant_stats(snapshot, restaurants),
    )
