"""
Shared — 注文ライフサイクルイベント定義

Feed Service (送信側) と Dashboard Service (受信側) の両方が使う
イベントのスキーマ。イベントは過去形で命名し、不変(immutable)として扱う。

ワイヤーフォーマット:
  1 メッセージ = 1 イベントの JSON。フィールド名は camelCase、
  `kind` タグでイベントの種類を判別する (tagged union)。

  {"kind": "orderCreated", "orderId": "...", "timestamp": "...Z", ...}
"""

from datetime import datetime, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

UNKNOWN_RESTAURANT = "Unknown"


class _EventBase(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    order_id: str = Field(min_length=1)
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        # タイムゾーン無しは UTC とみなす
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class OrderCreated(_EventBase):
    """注文が作成された"""
    kind: Literal["orderCreated"] = "orderCreated"
    restaurant_id: str
    user_id: str
    # 金額 (£) は文字列エンコードされた数値。パースは集計側で行う
    total_amount: str


class OrderEnRoute(_EventBase):
    """注文がドライバーに渡され配達中になった"""
    kind: Literal["orderEnRoute"] = "orderEnRoute"
    driver_id: str
    driver_name: str


class OrderDelivered(_EventBase):
    """注文が配達された"""
    kind: Literal["orderDelivered"] = "orderDelivered"


class OrderCancelled(_EventBase):
    """注文が顧客によってキャンセルされた"""
    kind: Literal["orderCancelled"] = "orderCancelled"


OrderEvent = Annotated[
    Union[OrderCreated, OrderEnRoute, OrderDelivered, OrderCancelled],
    Field(discriminator="kind"),
]

TERMINAL_EVENTS = (OrderDelivered, OrderCancelled)


class Restaurant(BaseModel):
    """レストラン (参照データ)"""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    rating: float


_event_adapter = TypeAdapter(OrderEvent)
_event_list_adapter = TypeAdapter(list[OrderEvent])
_restaurant_list_adapter = TypeAdapter(list[Restaurant])


# ── パース / シリアライズ ───────────────────────────


def parse_event(raw: str | bytes | dict) -> OrderEvent:
    """
    1 メッセージをイベントに変換する。

    形式が不正な場合は pydantic.ValidationError を送出する。
    """
    if isinstance(raw, (str, bytes)):
        return _event_adapter.validate_json(raw)
    return _event_adapter.validate_python(raw)


def parse_events(raw: str | bytes | list[dict]) -> list[OrderEvent]:
    if isinstance(raw, (str, bytes)):
        return _event_list_adapter.validate_json(raw)
    return _event_list_adapter.validate_python(raw)


def serialize_event(event: OrderEvent) -> str:
    """イベントをワイヤー用 JSON (camelCase) に変換する。"""
    return event.model_dump_json(by_alias=True)


def parse_restaurants(raw: str | bytes | list[dict]) -> list[Restaurant]:
    if isinstance(raw, (str, bytes)):
        return _restaurant_list_adapter.validate_json(raw)
    return _restaurant_list_adapter.validate_python(raw)


def resolve_restaurant_name(restaurants, restaurant_id: str | None) -> str:
    """restaurantId → 名前。見つからなければ "Unknown" (エラーにはしない)。"""
    if restaurant_id is None:
        return UNKNOWN_RESTAURANT
    for restaurant in restaurants:
        if restaurant.id == restaurant_id:
            return restaurant.name
    return UNKNOWN_RESTAURANT
