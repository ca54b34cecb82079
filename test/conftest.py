import sys
from decimal import Decimal
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


class FakeRemote:
    """In-process system of record honouring the offline_id dedup contract."""

    def __init__(self, products=None):
        from opos.domain.models import Product

        self.products = [p if isinstance(p, Product) else Product.from_dict(p) for p in (products or [])]
        self.records = {}
        self.calls = []
        self.fail_ids = set()
        self.fail_all = False
        self.healthy = True
        self.on_create = None

    def create_sale(self, payload, correlation_id):
        from opos.domain.errors import DuplicateError, TransportError
        from opos.domain.models import RemoteSaleRecord

        self.calls.append(correlation_id)
        if self.on_create is not None:
            self.on_create(correlation_id)
        if self.fail_all or correlation_id in self.fail_ids:
            raise TransportError("network down")
        if correlation_id in self.records:
            raise DuplicateError("Sale already synced")
        record = RemoteSaleRecord(
            id=len(self.records) + 1,
            offline_id=correlation_id,
            total_amount=Decimal(str(payload["total_amount"])),
            payment_method=payload["payment_method"],
        )
        self.records[correlation_id] = record
        return record

    def fetch_catalog(self):
        from opos.domain.errors import TransportError

        if self.fail_all:
            raise TransportError("network down")
        return list(self.products)

    def fetch_sales(self):
        return list(self.records.values())

    def create_product(self, payload):
        from opos.domain.models import Product

        product = Product.from_dict({**payload, "id": 100 + len(self.products)})
        self.products.append(product)
        return product

    def health(self):
        from opos.domain.errors import TransportError

        if not self.healthy:
            raise TransportError("unreachable")
        return {"status": "OK"}


class EventRecorder:
    def __init__(self, events):
        self.seen = []
        events.subscribe("*", lambda topic, payload: self.seen.append((topic, payload)))

    def of(self, topic):
        return [payload for t, payload in self.seen if t == topic]


def build_core(store=None, online=True, remote=None):
    from opos.repositories.memory_repo import MemoryStore
    from opos.services.connectivity_service import ConnectivityMonitor
    from opos.services.event_bus import EventBus
    from opos.services.settings_service import SettingsService
    from opos.services.sync_service import SyncReconciler

    store = store if store is not None else MemoryStore()
    remote = remote if remote is not None else FakeRemote()
    events = EventBus()
    recorder = EventRecorder(events)
    connectivity = ConnectivityMonitor(events, gateway=remote)
    connectivity.set_online(online)
    reconciler = SyncReconciler(store, remote, connectivity, events, settings=SettingsService(store))
    return store, remote, connectivity, recorder, reconciler


def make_sale(sale_id=None, price="3.50", quantity=2, method="cash", created_at=None):
    from opos.domain.models import CartLine, Product, Sale

    product = Product(id=1, name="Coffee", price=Decimal(price), stock=100, category="Beverages")
    return Sale.create(
        [CartLine.from_product(product, quantity)],
        method,
        sale_id=sale_id,
        created_at=created_at,
    )
