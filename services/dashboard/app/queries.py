"""
Dashboard Service — クエリヘルパー (CQRS の Read 側)

投影済みのビューに対するフィルタ・ソート。
すべて純粋関数で、状態を持たず、元のビューを変更しない。
"""

from datetime import tzinfo
from decimal import Decimal

from services.shared.events import Restaurant

from .aggregate import OrderCard
from .projections import DailyCount, RestaurantStats, day_key

RESTAURANT_STATS_SORT_KEYS = ("name", "created", "delivered", "cancelled", "revenue", "lost_revenue")
RESTAURANT_SORT_KEYS = ("name", "rating")


def filter_order_cards(
    cards: list[OrderCard],
    restaurant_name: str | None = None,
    driver_name: str | None = None,
    kind: str | None = None,
    day: str | None = None,
    tz: tzinfo | None = None,
) -> list[OrderCard]:
    """
    レストラン名・ドライバー名・最新イベント種別・作成日で絞り込む。

    ドライバー名は大文字小文字を区別しない部分一致。
    day は作成時刻の暦日 (YYYY-MM-DD, tz 基準)。作成イベントの無い注文は一致しない。
    """
    return [
        card
        for card in cards
        if (not restaurant_name or card.restaurant_name == restaurant_name)
        and (not driver_name or driver_name.lower() in (card.driver_name or "").lower())
        and (not kind or card.kind == kind)
        and (not day or (card.created_time is not None and day_key(card.created_time, tz) == day))
    ]


def driver_names(cards: list[OrderCard]) -> list[str]:
    """カードに現れるドライバー名 (重複なし・出現順)"""
    return list(dict.fromkeys(card.driver_name for card in cards if card.driver_name))


def sort_restaurant_stats(
    stats: list[RestaurantStats], key: str = "revenue", descending: bool = True
) -> list[RestaurantStats]:
    if key not in RESTAURANT_STATS_SORT_KEYS:
        raise ValueError(f"unknown sort key: {key}")
    return sorted(stats, key=lambda row: getattr(row, key), reverse=descending)


def sort_restaurants(
    restaurants: list[Restaurant], key: str = "rating", descending: bool = True
) -> list[Restaurant]:
    if key not in RESTAURANT_SORT_KEYS:
        raise ValueError(f"unknown sort key: {key}")
    return sorted(restaurants, key=lambda r: getattr(r, key), reverse=descending)


def filter_daily_counts(days: list[DailyCount], day: str | None = None) -> list[DailyCount]:
    if not day:
        return list(days)
    return [d for d in days if d.date == day]


def overview(stats: list[RestaurantStats], days: list[DailyCount], top: int = 5) -> dict:
    """ダッシュボード概要 — 合計値と売上上位レストラン"""
    return {
        "summary": {
            "created_orders": sum(s.created for s in stats),
            "delivered_orders": sum(s.delivered for s in stats),
            "cancelled_orders": sum(s.cancelled for s in stats),
            "total_revenue": float(sum((s.revenue for s in stats), Decimal(0))),
            "total_lost_revenue": float(sum((s.lost_revenue for s in stats), Decimal(0))),
            "days": len(days),
        },
        "top_restaurants": sort_restaurant_stats(stats, "revenue")[:top],
    }
