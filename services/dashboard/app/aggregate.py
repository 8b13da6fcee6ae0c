"""
Dashboard Service — 注文カード集約 (Order Card Aggregate)

集約の状態は保存しない。注文のイベント列を左から順にリプレイして
現在の表示状態 (ステータスカード) を復元する。

apply_xxx メソッド: 各イベントを適用して状態を変更する
"""

from datetime import datetime
from typing import assert_never

from pydantic import BaseModel, ConfigDict

from services.shared.events import (
    UNKNOWN_RESTAURANT,
    OrderCancelled,
    OrderCreated,
    OrderDelivered,
    OrderEnRoute,
    OrderEvent,
    Restaurant,
    resolve_restaurant_name,
)

IN_PROGRESS = "In Progress"
PENDING = "Pending"


class OrderCard(BaseModel):
    """注文ステータスカード (読み取り専用ビュー)"""
    model_config = ConfigDict(frozen=True)

    order_id: str
    kind: str
    created_time: datetime | None
    restaurant_id: str | None
    restaurant_name: str
    user_id: str | None
    total_amount: str | None
    driver_id: str | None
    driver_name: str | None
    delivery_time: datetime | None
    status: str | None
    display_status: str
    display_delivery_time: str


class OrderCardAggregate:
    """
    注文カード集約 — イベントから現在の表示状態を再構築する。

    状態遷移:
        (作成)   → In Progress
        EnRoute  → In Progress  (ドライバー・配達開始時刻を記録)
        Delivered / Cancelled → 終端 (配達時刻は終端イベントの時刻で上書き)

    kind は status からではなく、最後に適用したイベントの種類で決まる。
    """

    def __init__(self, restaurants=()) -> None:
        self.restaurants = restaurants
        self.order_id: str = ""
        self.kind: str = ""
        self.created_time: datetime | None = None
        self.restaurant_id: str | None = None
        self.restaurant_name: str = UNKNOWN_RESTAURANT
        self.user_id: str | None = None
        self.total_amount: str | None = None
        self.driver_id: str | None = None
        self.driver_name: str | None = None
        self.delivery_time: datetime | None = None
        self.status: str | None = None

    # ── イベント適用メソッド ──────────────────────────

    def apply_order_created(self, event: OrderCreated) -> None:
        self.created_time = event.timestamp
        self.restaurant_id = event.restaurant_id
        self.restaurant_name = resolve_restaurant_name(self.restaurants, event.restaurant_id)
        self.user_id = event.user_id
        self.total_amount = event.total_amount

    def apply_order_en_route(self, event: OrderEnRoute) -> None:
        self.driver_id = event.driver_id
        self.driver_name = event.driver_name
        self.delivery_time = event.timestamp

    def apply_order_delivered(self, event: OrderDelivered) -> None:
        self.status = "Delivered"
        self.delivery_time = event.timestamp

    def apply_order_cancelled(self, event: OrderCancelled) -> None:
        self.status = "Cancelled"
        self.delivery_time = event.timestamp

    # ── イベントリプレイ ─────────────────────────────

    def apply_event(self, event: OrderEvent) -> None:
        """イベントの種類に応じた apply メソッドを呼び出す。"""
        match event:
            case OrderCreated():
                self.apply_order_created(event)
            case OrderEnRoute():
                self.apply_order_en_route(event)
            case OrderDelivered():
                self.apply_order_delivered(event)
            case OrderCancelled():
                self.apply_order_cancelled(event)
            case _:
                assert_never(event)
        self.order_id = event.order_id
        self.kind = event.kind

    @classmethod
    def from_events(
        cls, events: list[OrderEvent] | tuple[OrderEvent, ...], restaurants: tuple[Restaurant, ...] = ()
    ) -> "OrderCardAggregate":
        """イベント列から集約を再構築する。"""
        agg = cls(restaurants)
        for e in events:
            agg.apply_event(e)
        return agg

    # ── 表示用 ──────────────────────────────────────

    @property
    def display_status(self) -> str:
        return self.status or IN_PROGRESS

    @property
    def display_delivery_time(self) -> str:
        return self.delivery_time.isoformat() if self.delivery_time else PENDING

    def to_view(self) -> OrderCard:
        return OrderCard(
            order_id=self.order_id,
            kind=self.kind,
            created_time=self.created_time,
            restaurant_id=self.restaurant_id,
            restaurant_name=self.restaurant_name,
            user_id=self.user_id,
            total_amount=self.total_amount,
            driver_id=self.driver_id,
            driver_name=self.driver_name,
            delivery_time=self.delivery_time,
            status=self.status,
            display_status=self.display_status,
            display_delivery_time=self.display_delivery_time,
        )
