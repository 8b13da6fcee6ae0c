from datetime import datetime, timedelta, timezone

from services.shared.events import (
    OrderCancelled,
    OrderCreated,
    OrderDelivered,
    OrderEnRoute,
    Restaurant,
)

BASE_TIME = datetime(2024, 10, 1, 12, 0, tzinfo=timezone.utc)

RESTAURANTS = (
    Restaurant(id="r1", name="Dishoom", rating=4.7),
    Restaurant(id="r2", name="Bao", rating=4.5),
    Restaurant(id="r3", name="Franco Manca", rating=4.1),
)


def at(minutes: float = 0) -> datetime:
    return BASE_TIME + timedelta(minutes=minutes)


def created(order_id, restaurant_id="r1", amount="10", minutes=0, user_id="u1"):
    return OrderCreated(
        order_id=order_id,
        timestamp=at(minutes),
        restaurant_id=restaurant_id,
        user_id=user_id,
        total_amount=amount,
    )


def en_route(order_id, driver_name="Sam", minutes=1, driver_id="d1"):
    return OrderEnRoute(
        order_id=order_id, timestamp=at(minutes), driver_id=driver_id, driver_name=driver_name
    )


def delivered(order_id, minutes=2):
    return OrderDelivered(order_id=order_id, timestamp=at(minutes))


def cancelled(order_id, minutes=2):
    return OrderCancelled(order_id=order_id, timestamp=at(minutes))
