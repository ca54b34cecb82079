from decimal import Decimal

import pytest

from conftest import FakeRemote, build_core
from opos.domain.errors import NotFoundError, TransportError, ValidationError
from opos.domain.models import Product
from opos.repositories.contracts import PRODUCTS
from opos.repositories.memory_repo import MemoryStore
from opos.services.cart_service import CartService
from opos.services.catalog_service import SAMPLE_PRODUCTS, CatalogService

COFFEE = Product(id=1, name="Coffee", price=Decimal("3.50"), stock=100, category="Beverages", barcode="1234567890123")


def _catalog(online=True, products=None, store=None):
    remote = FakeRemote(products or SAMPLE_PRODUCTS)
    store, remote, connectivity, _rec, _sync = build_core(store, online=online, remote=remote)
    return store, remote, connectivity, CatalogService(store, remote, connectivity)


# ---------- Cart ----------
def test_adding_same_product_increments_quantity():
    cart = CartService(MemoryStore())
    cart.add(COFFEE)
    line = cart.add(COFFEE, 2)

    assert line.quantity == 3
    assert len(cart.lines()) == 1
    assert cart.total() == Decimal("10.50")
    assert cart.item_count() == 3


def test_update_quantity_zero_removes_line():
    cart = CartService(MemoryStore())
    cart.add(COFFEE, 2)

    assert cart.update_quantity(1, 5).quantity == 5
    assert cart.update_quantity(1, 0) is None
    assert cart.lines() == []


def test_cart_rejects_bad_quantities():
    cart = CartService(MemoryStore())
    with pytest.raises(ValidationError):
        cart.add(COFFEE, 0)
    cart.add(COFFEE)
    with pytest.raises(ValidationError):
        cart.update_quantity(1, -1)
    with pytest.raises(NotFoundError):
        cart.update_quantity(99, 1)


def test_cart_survives_new_service_instance():
    store = MemoryStore()
    CartService(store).add(COFFEE, 2)

    reopened = CartService(store)
    assert [(line.id, line.quantity) for line in reopened.lines()] == [(1, 2)]

    reopened.remove(1)
    assert CartService(store).lines() == []


# ---------- Catalog ----------
def test_online_load_refreshes_cache():
    store, _remote, _conn, catalog = _catalog(online=True)

    products = catalog.load_products()

    assert [p.name for p in products] == ["Chips", "Coffee", "Energy Bar", "Sandwich", "Water Bottle"]
    assert store.count(PRODUCTS) == 5


def test_offline_load_serves_cache():
    store, remote, connectivity, catalog = _catalog(online=True)
    catalog.load_products()
    remote.products = []

    connectivity.set_online(False)

    assert len(catalog.load_products()) == 5


def test_transport_failure_falls_back_to_cache():
    _store, remote, _conn, catalog = _catalog(online=True)
    catalog.load_products()
    remote.fail_all = True

    assert len(catalog.load_products()) == 5


def test_search_by_name_barcode_and_category():
    _store, _remote, _conn, catalog = _catalog()
    catalog.load_products()

    assert [p.name for p in catalog.search("co")] == ["Coffee"]
    assert [p.name for p in catalog.search("890126")] == ["Chips"]
    assert [p.name for p in catalog.search("", "Snacks")] == ["Chips", "Energy Bar"]
    assert len(catalog.search("", "all")) == 5
    assert catalog.categories() == ["all", "Snacks", "Beverages", "Food"]


def test_get_product_and_low_stock():
    _store, _remote, _conn, catalog = _catalog()
    catalog.load_products()

    assert catalog.get_product(3).name == "Water Bottle"
    with pytest.raises(NotFoundError):
        catalog.get_product(42)
    assert [p.name for p in catalog.low_stock(40)] == ["Energy Bar"]


def test_seed_sample_products_only_into_empty_cache():
    _store, _remote, _conn, catalog = _catalog(online=False)

    assert catalog.seed_sample_products() == 5
    assert catalog.seed_sample_products() == 0
    assert len(catalog.cached_products()) == 5


def test_add_product_creates_remotely_and_caches():
    store, remote, _conn, catalog = _catalog()
    catalog.load_products()

    created = catalog.add_product("Tea", "2.25", 40, "Beverages", barcode="1234567890199")

    assert created.id == 105
    assert store.get(PRODUCTS, created.id)["name"] == "Tea"
    assert remote.products[-1].barcode == "1234567890199"


def test_add_product_validation():
    _store, _remote, _conn, catalog = _catalog()
    catalog.load_products()

    with pytest.raises(ValidationError):
        catalog.add_product("", 1, 1, "Food")
    with pytest.raises(ValidationError):
        catalog.add_product("Tea", -1, 1, "Beverages")
    with pytest.raises(ValidationError):
        catalog.add_product("Tea", 1, -1, "Beverages")
    with pytest.raises(ValidationError):
        catalog.add_product("Tea", 1, 1, "Beverages", barcode="1234567890123")


def test_add_product_surfaces_transport_errors():
    class DownRemote(FakeRemote):
        def create_product(self, payload):
            raise TransportError("network down")

    store = MemoryStore()
    _s, remote, connectivity, _rec, _sync = build_core(store, remote=DownRemote())
    catalog = CatalogService(store, remote, connectivity)

    with pytest.raises(TransportError):
        catalog.add_product("Tea", 1, 1, "Beverages")
    assert store.count(PRODUCTS) == 0


@pytest.mark.parametrize(
    "price, stock",
    [("abc", 1), ("1.00", "many"), ("nan", 1), ("1.00", 2.5e400)],
)
def test_add_product_rejects_unreadable_numbers(price, stock):
    _store, remote, _conn, catalog = _catalog()

    with pytest.raises(ValidationError):
        catalog.add_product("Tea", price, stock, "Beverages")
    assert len(remote.products) == 5


def test_non_string_product_name_is_a_validation_error():
    with pytest.raises(ValidationError):
        Product.from_dict({"id": 1, "name": 123, "price": 1, "stock": 1, "category": "Food"})


@pytest.mark.parametrize("online", [True, False])
def test_catalog_degrades_to_empty_when_store_is_unavailable(tmp_path, online):
    from opos.repositories.sqlite_repo import SqliteStore

    broken = SqliteStore(tmp_path)
    _store, remote, _conn, catalog = _catalog(online=online, store=broken)
    remote.products = []

    assert catalog.load_products() == []
    assert catalog.cached_products() == []
    assert catalog.search("coffee") == []
    assert catalog.seed_sample_products() == 0


def test_online_catalog_is_served_when_cache_cannot_be_written(tmp_path):
    from opos.repositories.sqlite_repo import SqliteStore

    _store, _remote, _conn, catalog = _catalog(online=True, store=SqliteStore(tmp_path))

    assert len(catalog.load_products()) == 5
