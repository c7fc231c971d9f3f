import json

import pytest

from conftest import make_product
from storefront_search.catalog import InMemoryCatalog, is_active, load_json_catalog
from storefront_search.exceptions import NotFoundError

pytestmark = pytest.mark.asyncio


async def test_pages_only_active_products_in_id_order():
    catalog = InMemoryCatalog.from_records(
        [
            make_product("c", "C"),
            make_product("a", "A"),
            make_product("b", "B", isActive=False),
            make_product("d", "D"),
        ]
    )

    first = await catalog.list_active_products(None, 2)
    second = await catalog.list_active_products(first.next_cursor, 2)

    assert [p["id"] for p in first.products] == ["a", "c"]
    assert [p["id"] for p in second.products] == ["d"]
    assert second.next_cursor is None
    assert await catalog.count_active_products() == 3


async def test_missing_active_flag_counts_as_active():
    product = make_product("x", "X")
    del product["isActive"]
    assert is_active(product)


async def test_get_unknown_product_raises():
    with pytest.raises(NotFoundError):
        await InMemoryCatalog().get_product("nope")


async def test_load_json_catalog_accepts_wrapped_list(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps({"products": [{"id": "p1", "name": "Kohl"}, {"name": "no id"}]}), encoding="utf-8")

    catalog = load_json_catalog(path)

    assert list(catalog.products) == ["p1"]


async def test_git_lfs_pointer_yields_empty_catalog(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text("version https://git-lfs.github.com/spec/v1\noid sha256:abc\nsize 12\n", encoding="utf-8")

    assert load_json_catalog(path).products == {}
    assert load_json_catalog(tmp_path / "missing.json").products == {}
