from decimal import Decimal
from pathlib import Path

import pytest

from conftest import FakeRemote, build_core, make_sale
from opos.domain.errors import NotFoundError, StorageUnavailable
from opos.domain.models import Product
from opos.repositories.contracts import PENDING_SALES, SYNCED_SALES
from opos.repositories.memory_repo import MemoryStore
from opos.repositories.sqlite_repo import SqliteStore
from opos.services.cart_service import CartService
from opos.services.event_bus import SALE_SYNC_FAILED, SALE_SYNCED, SYNC_COMPLETED
from opos.services.sales_service import MSG_QUEUED, SalesService


def _sqlite(tmp_path: Path) -> SqliteStore:
    store = SqliteStore(tmp_path / "pos.db")
    store.init_db()
    return store


def test_offline_checkout_then_reconnect_drain_moves_sale_to_synced(tmp_path: Path):
    store, remote, connectivity, recorder, reconciler = build_core(_sqlite(tmp_path), online=False)
    cart = CartService(store)
    sales = SalesService(cart, reconciler)

    cart.add(Product(id=1, name="Coffee", price=Decimal("3.50"), stock=100, category="Beverages"), 2)
    result = sales.checkout("cash")

    assert result.synced is False
    assert result.message == MSG_QUEUED
    assert result.sale.total_amount == Decimal("7.00")
    assert result.sale.payment_method.value == "cash"
    assert [s.id for s in reconciler.pending_sales()] == [result.sale.id]
    assert remote.calls == []

    connectivity.set_online(True)
    assert reconciler.drain() is True

    assert reconciler.pending_sales() == []
    synced = reconciler.synced_sales()
    assert [s.id for s in synced] == [result.sale.id]
    assert synced[0].synced is True
    assert recorder.of(SALE_SYNCED) == [{"saleId": result.sale.id}]
    assert list(remote.records) == [result.sale.id]


def test_duplicate_response_relocates_sale_to_synced():
    store, remote, _conn, recorder, reconciler = build_core(online=True)
    sale = make_sale("offline_1700000000000_abcdefghi")
    store.put(PENDING_SALES, sale.to_dict())
    remote.records[sale.id] = object()

    reconciler.drain()

    assert store.get_all(PENDING_SALES) == []
    assert [row["id"] for row in store.get_all(SYNCED_SALES)] == [sale.id]
    assert recorder.of(SALE_SYNCED) == [{"saleId": sale.id}]


def test_failed_sale_does_not_roll_back_successful_one():
    store, remote, _conn, recorder, reconciler = build_core(online=True)
    a = make_sale("offline_1_aaaaaaaaa", created_at="2024-01-01T10:00:00.000Z")
    b = make_sale("offline_2_bbbbbbbbb", created_at="2024-01-01T11:00:00.000Z")
    store.put(PENDING_SALES, a.to_dict())
    store.put(PENDING_SALES, b.to_dict())
    remote.fail_ids.add(a.id)

    reconciler.drain()

    assert [s.id for s in reconciler.pending_sales()] == [a.id]
    assert [s.id for s in reconciler.synced_sales()] == [b.id]
    assert recorder.of(SALE_SYNC_FAILED)[0]["saleId"] == a.id
    assert recorder.of(SYNC_COMPLETED)[-1] == {"synced": 1, "failed": 1}


def test_repeated_drains_leave_single_synced_entry():
    store, remote, _conn, recorder, reconciler = build_core(online=True)
    sale = make_sale()
    store.put(PENDING_SALES, sale.to_dict())

    reconciler.drain()
    reconciler.drain()
    reconciler.drain()

    assert store.count(PENDING_SALES) == 0
    assert store.count(SYNCED_SALES) == 1
    assert remote.calls == [sale.id]
    assert len(recorder.of(SALE_SYNCED)) == 1


def test_drain_started_during_a_drain_returns_immediately():
    store, remote, _conn, _rec, reconciler = build_core(online=True)
    for i in range(3):
        store.put(PENDING_SALES, make_sale(f"offline_{i}_reentrant").to_dict())

    nested = []
    remote.on_create = lambda _cid: nested.append(reconciler.drain())

    assert reconciler.drain() is True
    assert nested == [False, False, False]
    assert sorted(remote.calls) == sorted(set(remote.calls))
    assert store.count(SYNCED_SALES) == 3
    assert reconciler.is_draining() is False


def test_drain_is_noop_while_offline():
    store, remote, _conn, _rec, reconciler = build_core(online=False)
    store.put(PENDING_SALES, make_sale().to_dict())

    assert reconciler.drain() is False
    assert reconciler.force_sync_now() is False
    assert remote.calls == []
    assert store.count(PENDING_SALES) == 1


def test_transport_failures_keep_sale_pending_without_retry_ceiling():
    store, remote, _conn, recorder, reconciler = build_core(online=True)
    sale = make_sale()
    store.put(PENDING_SALES, sale.to_dict())
    remote.fail_all = True

    for _ in range(25):
        reconciler.drain()

    assert [s.id for s in reconciler.pending_sales()] == [sale.id]
    assert store.count(SYNCED_SALES) == 0
    assert len(recorder.of(SALE_SYNC_FAILED)) == 25

    remote.fail_all = False
    reconciler.drain()
    assert reconciler.pending_count() == 0


def test_offline_sales_survive_store_restart(tmp_path: Path):
    _store, _remote, _conn, _rec, reconciler = build_core(_sqlite(tmp_path), online=False)
    ids = {make_sale().id for _ in range(3)}
    for sale_id in ids:
        assert reconciler.submit_new_sale(make_sale(sale_id)) is False

    reopened = SqliteStore(tmp_path / "pos.db")
    reopened.init_db()
    _s, _r, _c, _e, after_restart = build_core(reopened, online=False)

    assert {s.id for s in after_restart.pending_sales()} == ids
    assert after_restart.drain() is False
    assert after_restart.pending_count() == 3


def test_checkout_race_with_drain_yields_one_remote_record():
    store, remote, _conn, _rec, reconciler = build_core(online=True)
    sale = make_sale()
    store.put(PENDING_SALES, sale.to_dict())

    raced = []

    def immediate_attempt_during_drain(_cid):
        if remote.on_create is None:
            return
        remote.on_create = None
        raced.append(reconciler.submit_new_sale(sale))

    remote.on_create = immediate_attempt_during_drain
    reconciler.drain()

    assert raced == [True]
    assert remote.calls == [sale.id, sale.id]
    assert list(remote.records) == [sale.id]
    assert store.count(PENDING_SALES) == 0
    assert [row["id"] for row in store.get_all(SYNCED_SALES)] == [sale.id]


def test_interrupted_relocation_converges_on_next_drain():
    store, remote, _conn, _rec, reconciler = build_core(online=True)
    sale = make_sale()
    remote.records[sale.id] = object()
    store.put(SYNCED_SALES, sale.mark_synced().to_dict())
    store.put(PENDING_SALES, sale.to_dict())

    assert reconciler.pending_sales() == []

    reconciler.drain()

    assert store.count(PENDING_SALES) == 0
    assert store.count(SYNCED_SALES) == 1


def test_history_is_sorted_newest_first():
    store, _remote, _conn, _rec, reconciler = build_core(online=False)
    for stamp in ("2024-01-02T00:00:00.000Z", "2024-03-01T00:00:00.000Z", "2024-02-01T00:00:00.000Z"):
        store.put(PENDING_SALES, make_sale(created_at=stamp).to_dict())

    stamps = [s.created_at for s in reconciler.pending_sales()]
    assert stamps == sorted(stamps, reverse=True)


def test_manual_removal_of_pending_sale():
    store, _remote, _conn, _rec, reconciler = build_core(online=False)
    sale = make_sale()
    store.put(PENDING_SALES, sale.to_dict())

    reconciler.remove_pending(sale.id)

    assert reconciler.pending_count() == 0
    with pytest.raises(NotFoundError):
        reconciler.remove_pending(sale.id)


def test_drain_records_last_sync_time():
    _store, _remote, _conn, _rec, reconciler = build_core(online=True)
    assert reconciler.last_sync_at() is None

    reconciler.drain()

    assert reconciler.last_sync_at() is not None


def test_unreadable_pending_row_is_skipped_not_deleted():
    store, remote, _conn, _rec, reconciler = build_core(MemoryStore(), online=True, remote=FakeRemote())
    store.put(PENDING_SALES, {"id": "offline_broken", "payment_method": "barter"})
    good = make_sale()
    store.put(PENDING_SALES, good.to_dict())

    reconciler.drain()

    assert store.get(PENDING_SALES, "offline_broken") is not None
    assert remote.calls == [good.id]


def test_unavailable_store_degrades_drain_and_history(tmp_path: Path):
    broken = SqliteStore(tmp_path)
    _store, remote, _conn, recorder, reconciler = build_core(broken, online=True)

    assert reconciler.drain() is True
    assert reconciler.pending_sales() == []
    assert reconciler.synced_sales() == []
    assert reconciler.pending_count() == 0
    assert reconciler.last_sync_at() is None
    assert remote.calls == []
    assert recorder.of(SYNC_COMPLETED) == []


def test_manual_sync_reports_busy_drain():
    store, remote, _conn, _rec, reconciler = build_core(online=True)
    store.put(PENDING_SALES, make_sale().to_dict())

    nested = []
    remote.on_create = lambda _cid: nested.append(reconciler.force_sync_now())

    assert reconciler.force_sync_now() is True
    assert nested == [False]


class SyncedWritesFail(MemoryStore):
    def put(self, partition, entity):
        if partition == SYNCED_SALES:
            raise StorageUnavailable("disk full")
        super().put(partition, entity)


def test_unstored_immediate_success_is_not_announced_as_synced():
    store, remote, _conn, recorder, reconciler = build_core(SyncedWritesFail(), online=True)
    sale = make_sale()

    assert reconciler.submit_new_sale(sale) is True

    assert list(remote.records) == [sale.id]
    assert store.count(PENDING_SALES) == 0
    assert recorder.of(SALE_SYNCED) == []
