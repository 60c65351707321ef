"""Tests for PricingService — fallback to defaults, admin writes, quotes."""
import pytest

from app.models.price import PriceRecord
from app.paywall.keys import GLOBAL_PRICING_KEY
from app.paywall.models import Scope
from app.services.errors import ValidationError
from app.services.pricing.service import PricingService, usable_price


class TestResolvePrice:
    def test_defaults_when_no_records(self, db):
        service = PricingService(db)
        assert service.resolve_price(Scope.MODULE, "sql_basics") == 499
        assert service.resolve_price(Scope.GLOBAL) == 1999

    def test_module_and_global_defaults_are_distinct(self, db):
        service = PricingService(db)
        assert service.resolve_price(Scope.MODULE, "x") != service.resolve_price(Scope.GLOBAL)

    def test_stored_module_price(self, db):
        db.add(PriceRecord(key="sql_basics", scope="module", title="SQL Basics", price=299))
        db.commit()
        assert PricingService(db).resolve_price(Scope.MODULE, "sql_basics") == 299

    def test_stored_global_price_uses_sentinel(self, db):
        db.add(PriceRecord(key=GLOBAL_PRICING_KEY, scope="global", price=2499))
        db.commit()
        service = PricingService(db)
        assert service.resolve_price(Scope.GLOBAL) == 2499
        # Global record never leaks into module lookups
        assert service.resolve_price(Scope.MODULE, "globalpricing") == 499

    @pytest.mark.parametrize("bad", [0, -10])
    def test_unusable_stored_price_falls_back(self, db, bad):
        db.add(PriceRecord(key="graphs", scope="module", price=bad))
        db.commit()
        assert PricingService(db).resolve_price(Scope.MODULE, "graphs") == 499

    def test_missing_key_uses_default_module(self, db):
        db.add(PriceRecord(key="general", scope="module", price=99))
        db.commit()
        assert PricingService(db).resolve_price(Scope.MODULE, None) == 99

    @pytest.mark.parametrize("legacy", [0.004, 0.5, 199.5, float("inf"), float("nan"), "abc"])
    def test_legacy_non_whole_price_falls_back(self, db, monkeypatch, legacy):
        service = PricingService(db)
        monkeypatch.setattr(
            service, "get_record", lambda key: PriceRecord(key=key, scope="module", price=legacy)
        )
        assert service.resolve_price(Scope.MODULE, "graphs") == 499

    def test_whole_float_price_is_returned_as_int(self, db, monkeypatch):
        service = PricingService(db)
        monkeypatch.setattr(
            service, "get_record", lambda key: PriceRecord(key=key, scope="global", price=2499.0)
        )
        price = service.resolve_price(Scope.GLOBAL)
        assert price == 2499
        assert isinstance(price, int)


class TestUsablePrice:
    @pytest.mark.parametrize("value,expected", [(1, 1), (499, 499), ("2999", 2999), (" 15 ", 15), (100.0, 100)])
    def test_whole_amounts(self, value, expected):
        assert usable_price(value) == expected

    @pytest.mark.parametrize("value", [0, -1, 0.004, 0.99, 1.5, "12.5", None, True, "", "abc", float("nan")])
    def test_rejected_amounts(self, value):
        assert usable_price(value) is None


class TestSetPrice:
    def test_module_price_is_keyed_by_normalized_title(self, db):
        service = PricingService(db)
        record = service.set_price(Scope.MODULE, 349, "  SQL   Basics ")
        assert record.key == "sql_basics"
        assert record.title == "SQL Basics"
        assert service.resolve_price(Scope.MODULE, "sql_basics") == 349

    def test_global_price(self, db):
        service = PricingService(db)
        record = service.set_price(Scope.GLOBAL, "2999")
        assert record.key == GLOBAL_PRICING_KEY
        assert service.resolve_price(Scope.GLOBAL) == 2999

    def test_overwrite_keeps_single_record(self, db):
        service = PricingService(db)
        service.set_price(Scope.MODULE, 100, "Graphs")
        service.set_price(Scope.MODULE, 150, "graphs")
        assert db.query(PriceRecord).count() == 1
        assert service.resolve_price(Scope.MODULE, "graphs") == 150

    @pytest.mark.parametrize("bad", [0, -1, None, "abc", True, float("nan"), float("inf"), 0.004, 199.5, "12.5"])
    def test_rejects_unusable_amounts(self, db, bad):
        with pytest.raises(ValidationError):
            PricingService(db).set_price(Scope.MODULE, bad, "Graphs")
        assert db.query(PriceRecord).count() == 0

    def test_list_prices(self, db):
        service = PricingService(db)
        service.set_price(Scope.MODULE, 100, "Graphs")
        service.set_price(Scope.GLOBAL, 1500)
        keys = [r.key for r in service.list_prices()]
        assert sorted(keys) == sorted(["graphs", GLOBAL_PRICING_KEY])


class TestQuote:
    def test_each_price_falls_back_independently(self, db):
        service = PricingService(db)
        service.set_price(Scope.GLOBAL, 1499)
        quote = service.quote("SQL Basics")
        assert quote["moduleKey"] == "sql_basics"
        assert quote["moduleTitle"] == "SQL Basics"
        assert quote["modulePrice"] == 499
        assert quote["globalPrice"] == 1499
        assert quote["currency"] == "INR"
        assert quote["modulePriceLabel"] == "₹499"
        assert quote["globalPriceLabel"] == "₹1499"

    def test_empty_title_quotes_default_module(self, db):
        quote = PricingService(db).quote("")
        assert quote["moduleTitle"] == "General"
        assert quote["moduleKey"] == "general"
