# Overview: Pytest coverage for catalog browsing and recently viewed products.

"""
Catalog Tests

Verifies:
- Listing shows active products only, with search, category, price,
  stock and featured filters, sorting and pagination
- Every product card carries the best product discount and final price
- Featured and related products
- Recently viewed products are kept per user or per session, move to
  the front on a repeat view and are capped per viewer
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from storefront.models import Category, RecentlyViewedProduct
from storefront.services import catalog_service
from storefront.services.catalog_service import MAX_RECENTLY_VIEWED, ProductNotFound
from storefront.services.identity_service import PRINCIPAL_USER, Principal, RequestIdentity
from storefront.time_utils import utcnow
from storefront.validation import ValidationError

from conftest import auth_headers, login, make_discount, make_product


def guest(session_id="session_browser"):
    return RequestIdentity(principal=None, session_id=session_id)


def signed_in(user, session_id="session_browser"):
    return RequestIdentity(principal=Principal(kind=PRINCIPAL_USER, user=user), session_id=session_id)


@pytest.fixture
def shelf(db_session, category):
    """Three active shirts, one inactive shirt and one uncategorized mug."""
    cheap = make_product(db_session, "TEE-CHEAP", "10.00", category=category)
    mid = make_product(db_session, "TEE-MID", "40.00", category=category, sale_price="25.00")
    dear = make_product(db_session, "TEE-DEAR", "30.00", category=category)
    hidden = make_product(db_session, "TEE-HIDDEN", "5.00", category=category)
    mug = make_product(db_session, "MUG-1", "12.00")

    cheap.description = "Plain cotton tee"
    dear.is_featured = True
    mug.is_featured = True
    hidden.is_active = False
    hidden.is_featured = True
    mug.in_stock = False
    db_session.commit()
    return {"cheap": cheap, "mid": mid, "dear": dear, "hidden": hidden, "mug": mug}


def _skus(result):
    return [item["sku"] for item in result["items"]]


# =============================================================================
# LISTING
# =============================================================================


class TestListProducts:

    def test_only_active_products(self, db_session, shelf):
        result = catalog_service.list_products()

        assert "TEE-HIDDEN" not in _skus(result)
        assert result["pagination"]["total"] == 4

    def test_search_matches_name_description_and_sku(self, db_session, shelf):
        assert _skus(catalog_service.list_products(search="cotton")) == ["TEE-CHEAP"]
        assert _skus(catalog_service.list_products(search="mug-1")) == ["MUG-1"]

    def test_category_by_id_or_slug(self, db_session, shelf, category):
        by_id = catalog_service.list_products(category=str(category.id), sort_by="name", sort_order="asc")
        by_slug = catalog_service.list_products(category="shirts", sort_by="name", sort_order="asc")

        assert _skus(by_id) == _skus(by_slug) == ["TEE-CHEAP", "TEE-DEAR", "TEE-MID"]

    def test_price_bounds_use_list_price(self, db_session, shelf):
        result = catalog_service.list_products(min_price="20", max_price="40", sort_by="name", sort_order="asc")
        assert _skus(result) == ["TEE-DEAR", "TEE-MID"]

    def test_stock_and_featured_filters(self, db_session, shelf):
        assert _skus(catalog_service.list_products(in_stock=False)) == ["MUG-1"]
        assert set(_skus(catalog_service.list_products(featured=True))) == {"TEE-DEAR", "MUG-1"}

    def test_price_sort_uses_shelf_price(self, db_session, shelf):
        result = catalog_service.list_products(sort_by="price", sort_order="asc")
        assert _skus(result) == ["TEE-CHEAP", "MUG-1", "TEE-MID", "TEE-DEAR"]

    def test_pagination(self, db_session, shelf):
        result = catalog_service.list_products(sort_by="name", sort_order="asc", page=2, per_page=3)

        assert result["count"] == 1
        assert result["pagination"] == {
            "page": 2,
            "per_page": 3,
            "total": 4,
            "total_pages": 2,
            "has_next": False,
            "has_prev": True,
        }

    @pytest.mark.parametrize("kwargs", [
        {"sort_by": "stock_quantity"},
        {"sort_order": "sideways"},
        {"min_price": "cheap"},
        {"max_price": "-1"},
    ])
    def test_bad_arguments(self, db_session, shelf, kwargs):
        with pytest.raises(ValidationError):
            catalog_service.list_products(**kwargs)


# =============================================================================
# PRODUCT CARDS
# =============================================================================


class TestProductCard:

    def test_best_discount_and_final_price(self, db_session, product):
        make_discount(db_session, value=Decimal("10"), products=[product])
        best = make_discount(db_session, name="Big", type="fixed", value=Decimal("25"), products=[product])

        card = catalog_service.product_card(product)

        assert card["discount_info"]["discount_id"] == best.id
        assert card["discount_info"]["display_text"] == "$25.00 OFF"
        assert card["final_price"] == "75.00"
        assert card["category"]["slug"] == "shirts"

    def test_without_discount_final_price_is_shelf_price(self, db_session, category):
        on_sale = make_product(db_session, "SALE-1", "80.00", category=category, sale_price="60.00")

        card = catalog_service.product_card(on_sale)

        assert card["discount_info"] is None
        assert card["final_price"] == "60.00"

    def test_expired_discount_is_ignored(self, db_session, product):
        make_discount(db_session, value=Decimal("50"), products=[product], end_date=utcnow() - timedelta(days=1))

        assert catalog_service.product_card(product)["discount_info"] is None


# =============================================================================
# FEATURED / RELATED / CATEGORIES
# =============================================================================


class TestBrowsing:

    def test_featured_skips_inactive(self, db_session, shelf):
        skus = [p["sku"] for p in catalog_service.featured_products()]
        assert skus == ["MUG-1", "TEE-DEAR"]

    def test_related_is_same_category_without_itself(self, db_session, shelf):
        related = catalog_service.related_products(shelf["cheap"])
        assert {p["sku"] for p in related} == {"TEE-MID", "TEE-DEAR"}

    def test_uncategorized_product_has_no_related(self, db_session, shelf):
        assert catalog_service.related_products(shelf["mug"]) == []

    def test_get_product_by_uuid_or_id(self, db_session, shelf):
        assert catalog_service.get_product(shelf["cheap"].uuid).id == shelf["cheap"].id
        assert catalog_service.get_product(str(shelf["cheap"].id)).id == shelf["cheap"].id
        with pytest.raises(ProductNotFound):
            catalog_service.get_product(shelf["hidden"].uuid)

    def test_categories_active_and_sorted(self, db_session, category):
        db_session.add_all([
            Category(name="Accessories", slug="accessories", is_active=True),
            Category(name="Archive", slug="archive", is_active=False),
        ])
        db_session.commit()

        names = [c["name"] for c in catalog_service.list_categories()]
        assert names == ["Accessories", "Shirts"]
        assert [c["name"] for c in catalog_service.list_categories(search="shi")] == ["Shirts"]


# =============================================================================
# RECENTLY VIEWED
# =============================================================================


class TestRecentlyViewed:

    def test_repeat_view_moves_to_front_without_duplicate(self, db_session, shelf):
        viewer = guest()
        catalog_service.track_view(viewer, shelf["cheap"].uuid)
        catalog_service.track_view(viewer, shelf["dear"].uuid)
        catalog_service.track_view(viewer, shelf["cheap"].uuid)

        skus = [p["sku"] for p in catalog_service.recently_viewed(viewer)]
        assert skus == ["TEE-CHEAP", "TEE-DEAR"]
        assert db_session.query(RecentlyViewedProduct).count() == 2

    def test_guests_and_users_are_kept_apart(self, db_session, shelf, customer):
        catalog_service.track_view(guest("session_a"), shelf["cheap"].uuid)
        catalog_service.track_view(guest("session_b"), shelf["dear"].uuid)
        catalog_service.track_view(signed_in(customer, "session_a"), shelf["mid"].uuid)

        assert [p["sku"] for p in catalog_service.recently_viewed(guest("session_a"))] == ["TEE-CHEAP"]
        assert [p["sku"] for p in catalog_service.recently_viewed(guest("session_b"))] == ["TEE-DEAR"]
        assert [p["sku"] for p in catalog_service.recently_viewed(signed_in(customer, "session_z"))] == ["TEE-MID"]

        row = db_session.query(RecentlyViewedProduct).filter_by(user_id=customer.id).one()
        assert row.session_id is None

    def test_capped_per_viewer(self, db_session, category):
        viewer = guest()
        products = [make_product(db_session, f"CAP-{n:02d}", "5.00", category=category) for n in range(MAX_RECENTLY_VIEWED + 2)]
        for p in products:
            catalog_service.track_view(viewer, p.uuid)

        rows = db_session.query(RecentlyViewedProduct).filter_by(session_id=viewer.session_id).count()
        assert rows == MAX_RECENTLY_VIEWED
        newest = catalog_service.recently_viewed(viewer, limit=MAX_RECENTLY_VIEWED)
        assert newest[0]["sku"] == products[-1].sku
        assert products[0].sku not in {p["sku"] for p in newest}

    def test_default_limit_and_inactive_products_hidden(self, db_session, category):
        viewer = guest()
        products = [make_product(db_session, f"LIM-{n:02d}", "5.00", category=category) for n in range(12)]
        for p in products:
            catalog_service.track_view(viewer, p.uuid)
        products[-1].is_active = False
        db_session.commit()

        seen = catalog_service.recently_viewed(viewer)
        assert len(seen) == catalog_service.RECENTLY_VIEWED_LIMIT
        assert seen[0]["sku"] == products[-2].sku

    def test_inactive_product_is_not_tracked(self, db_session, shelf):
        with pytest.raises(ProductNotFound):
            catalog_service.track_view(guest(), shelf["hidden"].uuid)

    def test_remove_and_clear(self, db_session, shelf):
        viewer = guest()
        catalog_service.track_view(viewer, shelf["cheap"].uuid)
        catalog_service.track_view(viewer, shelf["dear"].uuid)
        catalog_service.track_view(guest("session_other"), shelf["dear"].uuid)

        assert catalog_service.remove_recently_viewed(viewer, shelf["cheap"].uuid) is True
        assert catalog_service.remove_recently_viewed(viewer, shelf["cheap"].uuid) is False
        with pytest.raises(ProductNotFound):
            catalog_service.remove_recently_viewed(viewer, "no-such-product")

        assert catalog_service.clear_recently_viewed(viewer) == 1
        assert catalog_service.recently_viewed(viewer) == []
        assert len(catalog_service.recently_viewed(guest("session_other"))) == 1


# =============================================================================
# HTTP
# =============================================================================


class TestCatalogApi:

    def test_list_and_detail(self, client, db_session, shelf):
        make_discount(db_session, value=Decimal("10"), products=[shelf["dear"]])

        listed = client.get("/api/products?category=shirts&sort_by=price&sort_order=desc&per_page=2")
        assert listed.status_code == 200
        body = listed.get_json()
        assert _skus(body) == ["TEE-DEAR", "TEE-MID"]
        assert body["items"][0]["discount_info"]["final_price"] == "27.00"
        assert body["items"][0]["final_price"] == "27.00"
        assert body["pagination"]["has_next"] is True

        detail = client.get(f"/api/products/{shelf['dear'].uuid}")
        assert detail.status_code == 200
        assert detail.get_json()["product"]["discount_info"]["discount_amount"] == "3.00"

        assert client.get(f"/api/products/{shelf['hidden'].uuid}").status_code == 404

    def test_bad_sort_is_400(self, client, db_session, shelf):
        resp = client.get("/api/products?sort_by=password_hash")
        assert resp.status_code == 400

    def test_featured_related_and_categories(self, client, db_session, shelf):
        featured = client.get("/api/products/featured").get_json()
        assert featured["count"] == 2

        related = client.get(f"/api/products/{shelf['cheap'].uuid}/related").get_json()
        assert {p["sku"] for p in related["items"]} == {"TEE-MID", "TEE-DEAR"}

        categories = client.get("/api/categories").get_json()
        assert [c["slug"] for c in categories["items"]] == ["shirts"]

    def test_guest_recently_viewed_follows_session_cookie(self, client, db_session, shelf):
        tracked = client.post("/api/products/recently-viewed", json={"product_id": shelf["cheap"].uuid})
        assert tracked.status_code == 200
        session_id = tracked.get_json()["session_id"]
        client.post("/api/products/recently-viewed", json={"product_id": shelf["dear"].uuid})

        seen = client.get("/api/products/recently-viewed").get_json()
        assert seen["session_id"] == session_id
        assert _skus(seen) == ["TEE-DEAR", "TEE-CHEAP"]

        removed = client.delete(f"/api/products/recently-viewed/{shelf['dear'].uuid}")
        assert removed.status_code == 200
        again = client.delete(f"/api/products/recently-viewed/{shelf['dear'].uuid}")
        assert again.status_code == 404

        cleared = client.delete("/api/products/recently-viewed")
        assert cleared.get_json()["deleted_count"] == 1

    def test_signed_in_views_are_keyed_by_user(self, client, db_session, shelf, customer):
        token = login(client, customer.email, login_type="app")["token"]
        headers = {**auth_headers(token), "X-Session-ID": "session_phone"}
        client.post("/api/products/recently-viewed", json={"product_id": shelf["mid"].uuid}, headers=headers)

        elsewhere = {**auth_headers(token), "X-Session-ID": "session_tablet"}
        seen = client.get("/api/products/recently-viewed", headers=elsewhere).get_json()
        assert _skus(seen) == ["TEE-MID"]

    @pytest.mark.parametrize("body", [{}, {"product_id": True}, {"product_id": ["x"]}])
    def test_track_requires_product_id(self, client, db_session, body):
        resp = client.post("/api/products/recently-viewed", json=body)
        assert resp.status_code == 400

    def test_track_unknown_product(self, client, db_session):
        resp = client.post("/api/products/recently-viewed", json={"product_id": "no-such-product"})
        assert resp.status_code == 404
