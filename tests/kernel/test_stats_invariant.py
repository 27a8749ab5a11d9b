"""
Property tests: the stats row always matches the items it summarizes.

Random sequences of add / reserve / complete / cancel / validate are applied
to a fresh ledger; after every step the committed stats must satisfy
available + reserved + sold == total and agree with a simple model.
"""

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from sqlalchemy.orm import sessionmaker

from inventory_kernel.db.engine import build_engine, create_tables
from inventory_kernel.domain.clock import DeterministicClock
from inventory_kernel.exceptions import InsufficientStockError, OrderNotFoundError
from inventory_kernel.services.ledger_service import InventoryLedger

PRODUCTS = ("P1", "P2")

operations = st.lists(
    st.one_of(
        st.tuples(st.just("add"), st.sampled_from(PRODUCTS), st.integers(1, 5)),
        st.tuples(st.just("reserve"), st.sampled_from(PRODUCTS), st.integers(1, 4)),
        st.tuples(st.just("complete"), st.integers(0, 5)),
        st.tuples(st.just("cancel"), st.integers(0, 5)),
        st.tuples(st.just("validate"), st.integers(0, 30), st.floats(0, 1)),
    ),
    min_size=1,
    max_size=25,
)


def _fresh_ledger() -> InventoryLedger:
    engine = build_engine("sqlite:///:memory:")
    create_tables(engine)
    return InventoryLedger(
        sessionmaker(bind=engine, expire_on_commit=False), clock=DeterministicClock(),
    )


class TestStatsInvariant:
    @settings(max_examples=40, deadline=None, suppress_health_check=[HealthCheck.too_slow])
    @given(ops=operations)
    def test_stats_match_model_after_every_step(self, ops):
        ledger = _fresh_ledger()
        # product -> {"available", "reserved", "sold"}
        model = {p: {"available": 0, "reserved": 0, "sold": 0} for p in PRODUCTS}
        open_orders: dict[str, dict[str, int]] = {}
        item_ids: list[int] = []
        order_seq = 0

        for op in ops:
            kind = op[0]
            if kind == "add":
                _, product, n = op
                ledger.add_items(product, [f"{product}-{len(item_ids) + i}" for i in range(n)])
                model[product]["available"] += n
                item_ids.extend(i.item_id for i in ledger.get_available_items(product, limit=1000))
            elif kind == "reserve":
                _, product, n = op
                order_id = f"O{order_seq}"
                order_seq += 1
                try:
                    ledger.reserve_items(product, order_id, n)
                except InsufficientStockError:
                    assert model[product]["available"] < n
                else:
                    model[product]["available"] -= n
                    model[product]["reserved"] += n
                    open_orders[order_id] = {product: n}
            elif kind in ("complete", "cancel"):
                order_id = f"O{op[1]}"
                settle = ledger.complete_order if kind == "complete" else ledger.cancel_order
                try:
                    settle(order_id)
                except OrderNotFoundError:
                    assert order_id not in open_orders
                else:
                    for product, n in open_orders.pop(order_id).items():
                        model[product]["reserved"] -= n
                        model[product]["sold" if kind == "complete" else "available"] += n
            else:
                _, index, score = op
                if item_ids:
                    ledger.add_validity_check(item_ids[index % len(item_ids)], "checked", score, "prop")

            for product in PRODUCTS:
                stats = ledger.get_stats(product)
                assert stats.is_consistent
                assert stats.available_items == model[product]["available"]
                assert stats.reserved_items == model[product]["reserved"]
                assert stats.sold_items == model[product]["sold"]
