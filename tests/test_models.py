"""Tests for entity encoding, choice normalization and the in-memory repositories."""

from __future__ import annotations

import pytest

from autocars_mcp.constants import STATUS_AVAILABLE, STATUS_SOLD
from autocars_mcp.data.models import (
    Expense,
    License,
    Sale,
    StoreProfile,
    User,
    Vehicle,
    normalize_customer_status,
    normalize_expense_category,
    normalize_fuel,
    normalize_vehicle_status,
)
from autocars_mcp.data.repository import (
    DealershipData,
    Repository,
    decode_changes,
    decode_collection,
    encode_changes,
)
from autocars_mcp.errors import ValidationError


# ── Encoding ───────────────────────────────────────────────────


class TestEncoding:
    def test_vehicle_uses_camel_case_keys(self, vehicle_factory):
        payload = vehicle_factory().to_dict()
        assert payload["pricePurchase"] == 10000.0
        assert payload["priceSelling"] == 15000.0
        assert "price_purchase" not in payload

    def test_vehicle_from_dict_coerces_numbers(self):
        vehicle = Vehicle.from_dict(
            {"id": "v1", "make": "Fiat", "model": "Uno", "year": "2012", "mileage": "90000"}
        )
        assert vehicle.year == 2012
        assert vehicle.mileage == 90000
        assert vehicle.status == STATUS_AVAILABLE

    def test_vehicle_from_dict_maps_english_status(self):
        vehicle = Vehicle.from_dict({"id": "v1", "status": "sold", "fuel": "electric"})
        assert vehicle.status == STATUS_SOLD
        assert vehicle.fuel == "Elétrico"

    def test_entry_without_id_is_rejected(self):
        with pytest.raises(ValueError):
            Vehicle.from_dict({"make": "Fiat"})

    def test_non_object_entry_is_rejected(self):
        with pytest.raises(ValueError):
            Expense.from_dict("not-a-dict")  # type: ignore[arg-type]

    def test_expense_omits_missing_vehicle_link(self):
        expense = Expense(id="e1", description="Aluguel", category="Aluguel", amount=1, date="")
        assert "vehicleId" not in expense.to_dict()
        linked = Expense.from_dict({**expense.to_dict(), "vehicleId": "v1"})
        assert linked.vehicle_id == "v1"

    def test_sale_keeps_stored_profit(self):
        sale = Sale.from_dict(
            {"id": "s1", "vehicleId": "v1", "customerId": "c1", "salePrice": 14000, "profit": 4000}
        )
        assert sale.profit == 4000.0

    def test_store_profile_defaults_target_margin(self):
        assert StoreProfile.from_dict({"name": "Loja"}).target_margin == 20.0

    def test_profile_for_user(self):
        user = User(id="u1", email="a@b.com", secret="secret1", store_name="Loja A")
        profile = StoreProfile.for_user(user)
        assert profile.name == "Loja A"
        assert profile.email == "a@b.com"
        assert profile.phone == ""

    def test_user_serializes_secret_as_password(self):
        user = User(id="u1", email="a@b.com", secret="secret1", store_name="Loja A")
        assert user.to_dict()["password"] == "secret1"
        assert "password" not in user.public_dict()

    def test_license_round_trip_drops_empty_usage(self):
        lic = License(key="SAAS-AAAA-BBBB-CCCC", created_at="2024-01-01")
        payload = lic.to_dict()
        assert "usedBy" not in payload
        assert License.from_dict(payload) == lic


class TestNormalization:
    def test_aliases_map_to_stored_labels(self):
        assert normalize_vehicle_status("reserved") == "Reservado"
        assert normalize_fuel("Diesel") == "Diesel"
        assert normalize_customer_status("negotiating") == "Negociação"
        assert normalize_expense_category("maintenance") == "Manutenção"

    def test_unknown_choice_raises_validation_error(self):
        with pytest.raises(ValidationError, match="fuel"):
            normalize_fuel("steam")


# ── Repositories ───────────────────────────────────────────────


class TestRepository:
    def test_add_puts_newest_first(self, vehicle_factory):
        repo: Repository[Vehicle] = Repository()
        repo.replace(repo.with_added(vehicle_factory("a")))
        repo.replace(repo.with_added(vehicle_factory("b")))
        assert [v.id for v in repo] == ["b", "a"]

    def test_remove_keeps_order_of_the_rest(self, vehicle_factory):
        repo = Repository([vehicle_factory("c"), vehicle_factory("b"), vehicle_factory("a")])
        repo.replace(repo.with_removed("b"))
        assert [v.id for v in repo] == ["c", "a"]

    def test_with_methods_do_not_mutate(self, vehicle_factory):
        repo = Repository([vehicle_factory("a")])
        repo.with_added(vehicle_factory("b"))
        repo.with_removed("a")
        assert len(repo) == 1

    def test_update_replaces_in_place(self, vehicle_factory):
        repo = Repository([vehicle_factory("b"), vehicle_factory("a")])
        repo.replace(repo.with_updated(vehicle_factory("a", color="Azul")))
        assert [v.id for v in repo] == ["b", "a"]
        assert repo.get("a").color == "Azul"

    def test_get_missing_returns_none(self):
        assert Repository().get("nope") is None


class TestCollectionCodec:
    def test_missing_collection_decodes_empty(self):
        assert decode_collection("vehicles", None) == []

    def test_index_keyed_object_decodes_in_order(self, vehicle_factory):
        raw = {"1": vehicle_factory("b").to_dict(), "0": vehicle_factory("a").to_dict()}
        assert [v.id for v in decode_collection("vehicles", raw)] == ["a", "b"]

    def test_non_list_collection_is_rejected(self):
        with pytest.raises(ValueError):
            decode_collection("sales", "oops")

    def test_decode_changes_only_returns_present_keys(self, vehicle_factory):
        changes = decode_changes({"vehicles": [vehicle_factory().to_dict()]})
        assert set(changes) == {"vehicles"}

    def test_encode_changes_encodes_profile(self):
        payload = encode_changes({"storeProfile": StoreProfile(name="Loja")})
        assert payload["storeProfile"]["name"] == "Loja"


class TestDealershipData:
    def test_apply_replaces_named_collections_only(self, vehicle_factory, customer_factory):
        data = DealershipData()
        data.apply({"vehicles": [vehicle_factory()], "customers": [customer_factory()]})
        data.apply({"vehicles": []})
        assert len(data.vehicles) == 0
        assert len(data.customers) == 1

    def test_document_contains_every_collection_and_profile(self):
        document = DealershipData().to_document()
        assert set(document) == {"vehicles", "customers", "sales", "expenses", "storeProfile"}

    def test_clear_resets_profile(self):
        data = DealershipData()
        data.apply({"storeProfile": StoreProfile(name="Loja")})
        data.clear()
        assert data.profile == StoreProfile()
