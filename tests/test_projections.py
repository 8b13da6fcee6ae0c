from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from helpers import RESTAURANTS, cancelled, created, delivered, en_route
from services.dashboard.app import projections
from services.dashboard.app.ingestion import IngestionEngine
from services.shared.events import OrderCreated


def build_engine(events):
    engine = IngestionEngine(flush_threshold=0)
    for event in events:
        engine.ingest(event)
    return engine


def stats_by_id(snapshot):
    return {row.restaurant_id: row for row in projections.restaurant_stats(snapshot, RESTAURANTS)}


def test_delivered_order_contributes_revenue():
    engine = build_engine([created("o1", "r1", "10"), en_route("o1", "Sam"), delivered("o1")])
    r1 = stats_by_id(engine.snapshot())["r1"]
    assert (r1.created, r1.delivered, r1.cancelled) == (1, 1, 0)
    assert r1.revenue == Decimal("10")
    assert r1.lost_revenue == Decimal("0")


def test_cancelled_order_contributes_lost_revenue():
    engine = build_engine([
        created("o1", "r1", "10"), en_route("o1", "Sam"), delivered("o1"),
        created("o2", "r1", "20"), cancelled("o2"),
    ])
    r1 = stats_by_id(engine.snapshot())["r1"]
    assert (r1.created, r1.delivered, r1.cancelled) == (2, 1, 1)
    assert r1.revenue == Decimal("10")
    assert r1.lost_revenue == Decimal("20")


def test_order_without_terminal_event_only_counts_as_created():
    engine = build_engine([created("o3", "r2", "15.50")])
    snap = engine.snapshot()
    r2 = stats_by_id(snap)["r2"]
    assert r2.created == 1
    assert r2.revenue == Decimal(0)
    assert r2.lost_revenue == Decimal(0)

    days = projections.daily_counts(snap, timezone.utc)
    assert [(d.created_orders, d.delivered_orders, d.cancelled_orders) for d in days] == [(1, 0, 0)]


def test_revenue_sums_only_delivered_orders_per_restaurant():
    engine = build_engine([
        created("a", "r1", "12.25"), delivered("a"),
        created("b", "r1", "7.75"), delivered("b"),
        created("c", "r1", "100"), cancelled("c"),
        created("d", "r1", "3"),
        created("e", "r2", "40"), delivered("e"),
    ])
    stats = stats_by_id(engine.snapshot())
    assert stats["r1"].delivered == 2
    assert stats["r1"].revenue == Decimal("20.00")
    assert stats["r2"].revenue == Decimal("40")


def test_restaurants_without_orders_still_appear_with_zero_stats():
    rows = projections.restaurant_stats(build_engine([created("o1", "r1")]).snapshot(), RESTAURANTS)
    assert [row.restaurant_id for row in rows] == ["r1", "r2", "r3"]
    r3 = rows[2]
    assert (r3.created, r3.delivered, r3.cancelled, r3.revenue, r3.lost_revenue) == (0, 0, 0, 0, 0)
    assert r3.name == "Franco Manca"


def test_restaurant_only_seen_in_events_is_listed_as_unknown():
    rows = projections.restaurant_stats(build_engine([created("o1", "r9", "5")]).snapshot(), RESTAURANTS)
    assert rows[-1].restaurant_id == "r9"
    assert rows[-1].name == "Unknown"
    assert rows[-1].created == 1


def test_unparsable_amounts_contribute_zero():
    engine = build_engine([
        created("a", "r1", "abc"), delivered("a"),
        created("b", "r1", ""), cancelled("b"),
        created("c", "r1", "NaN"), delivered("c"),
        created("d", "r1", " 4.50 "), delivered("d"),
    ])
    r1 = stats_by_id(engine.snapshot())["r1"]
    assert r1.delivered == 3
    assert r1.revenue == Decimal("4.50")
    assert r1.lost_revenue == Decimal(0)


def test_terminal_event_without_creation_is_ignored():
    stats = stats_by_id(build_engine([delivered("ghost")]).snapshot())
    assert all(row.delivered == 0 for row in stats.values())


@pytest.mark.parametrize(
    "raw, expected",
    [("10", Decimal("10")), ("12.34", Decimal("12.34")), ("x", Decimal(0)), (None, Decimal(0)), ("Infinity", Decimal(0))],
)
def test_parse_amount(raw, expected):
    assert projections.parse_amount(raw) == expected


def test_recomputing_views_is_idempotent():
    engine = build_engine([created("o1", "r1", "10"), delivered("o1"), created("o2", "r2", "5")])
    snap = engine.snapshot()
    assert projections.build_snapshot(snap, RESTAURANTS) == projections.build_snapshot(snap, RESTAURANTS)
    assert engine.snapshot() == snap


def _created_on(order_id, day):
    return OrderCreated(
        order_id=order_id,
        timestamp=datetime(2024, 10, day, 12, 0, tzinfo=timezone.utc),
        restaurant_id="r1",
        user_id="u1",
        total_amount="1",
    )


def test_daily_created_counts_sum_to_number_of_created_events():
    days = [3, 1, 2, 3, 1, 3]
    engine = build_engine([_created_on(f"o{i}", d) for i, d in enumerate(days)])
    buckets = projections.daily_counts(engine.snapshot(), timezone.utc)
    assert len(buckets) == 3
    assert sum(b.created_orders for b in buckets) == len(days)


def test_daily_counts_default_to_chronological_order():
    engine = build_engine([_created_on("a", 3), _created_on("b", 1), _created_on("c", 2)])
    buckets = projections.daily_counts(engine.snapshot(), timezone.utc)
    assert [b.date for b in buckets] == ["2024-10-01", "2024-10-02", "2024-10-03"]


def test_daily_counts_first_seen_ordering_matches_legacy_behaviour():
    engine = build_engine([_created_on("a", 3), _created_on("b", 1), _created_on("c", 2)])
    buckets = projections.daily_counts(engine.snapshot(), timezone.utc, ordering="first_seen")
    assert [b.date for b in buckets] == ["2024-10-03", "2024-10-01", "2024-10-02"]


def test_daily_counts_reject_unknown_ordering():
    with pytest.raises(ValueError):
        projections.daily_counts({}, timezone.utc, ordering="random")


def test_daily_counts_terminal_kinds_and_ignore_en_route():
    engine = build_engine([
        created("a"), en_route("a"), delivered("a"),
        created("b"), cancelled("b"),
    ])
    (bucket,) = projections.daily_counts(engine.snapshot(), timezone.utc)
    assert (bucket.created_orders, bucket.delivered_orders, bucket.cancelled_orders) == (2, 1, 1)


def test_daily_counts_use_the_given_time_zone():
    late = OrderCreated(
        order_id="o1",
        timestamp=datetime(2024, 10, 1, 23, 30, tzinfo=timezone.utc),
        restaurant_id="r1",
        user_id="u1",
        total_amount="1",
    )
    snap = build_engine([late]).snapshot()
    assert projections.daily_counts(snap, timezone.utc)[0].date == "2024-10-01"
    assert projections.daily_counts(snap, timezone(timedelta(hours=9)))[0].date == "2024-10-02"


def test_order_cards_are_newest_first():
    engine = build_engine([created("o1"), created("o2", minutes=1), delivered("o1")])
    cards = projections.order_cards(engine.snapshot(), RESTAURANTS)
    assert [c.order_id for c in cards] == ["o2", "o1"]
    assert cards[1].status == "Delivered"
