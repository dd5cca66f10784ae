"""
Tests de utilidades comunes: conversión de montos y numeración por empresa
"""

import logging
import pytest
from datetime import datetime
from decimal import Decimal

from app.common.sequences import DocumentSequence
from app.common.tenancy import TenantScope
from app.common.validators import round_money, to_decimal


class TestToDecimal:

    def test_numeric_inputs(self):
        assert to_decimal(5) == Decimal("5")
        assert to_decimal("12.50") == Decimal("12.50")
        assert to_decimal(0.1) == Decimal("0.1")
        assert to_decimal(None) == Decimal("0")
        assert to_decimal("", default=Decimal("7")) == Decimal("7")

    def test_unparseable_text_falls_back_with_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="app.common.validators"):
            assert to_decimal("doce", default=Decimal("1")) == Decimal("1")
        assert "doce" in caplog.text

    def test_unsupported_type_falls_back_with_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="app.common.validators"):
            assert to_decimal(object()) == Decimal("0")
        assert [r.levelname for r in caplog.records if r.name == "app.common.validators"] == ["WARNING"]

    def test_round_money(self):
        assert round_money("10.005") == Decimal("10.01")


class TestDocumentNumbering:

    def test_series_per_prefix_and_year(self, db_session, tenant_id):
        scope = TenantScope(db_session, tenant_id)
        assert scope.next_number("PAY", datetime(2024, 1, 5)) == "PAY-2024-0001"
        assert scope.next_number("PAY", datetime(2024, 9, 1)) == "PAY-2024-0002"
        assert scope.next_number("PAY", datetime(2025, 1, 1)) == "PAY-2025-0001"
        assert scope.next_number("ORD", datetime(2024, 1, 5)) == "ORD-2024-0001"

    def test_one_counter_row_per_series(self, db_session, tenant_id, other_tenant_id):
        TenantScope(db_session, tenant_id).next_number("RET", datetime(2024, 2, 1))
        TenantScope(db_session, tenant_id).next_number("RET", datetime(2024, 3, 1))
        TenantScope(db_session, other_tenant_id).next_number("RET", datetime(2024, 3, 1))
        db_session.commit()

        rows = db_session.query(DocumentSequence).filter(DocumentSequence.name == "RET-2024").all()
        assert sorted(row.current_value for row in rows) == [1, 2]

    def test_counter_row_created_concurrently(self, db_session, tenant_id, monkeypatch):
        """El primer incremento no encuentra la fila, pero otra unidad ya la insertó"""
        scope = TenantScope(db_session, tenant_id)
        scope.next_number("PAY", datetime(2024, 1, 5))
        db_session.commit()

        original_bump = TenantScope._bump_sequence
        calls = {"count": 0}

        def missed_bump(self, name):
            calls["count"] += 1
            if calls["count"] == 1:
                return None
            return original_bump(self, name)

        monkeypatch.setattr(TenantScope, "_bump_sequence", missed_bump)
        assert scope.next_number("PAY", datetime(2024, 6, 1)) == "PAY-2024-0002"
        assert calls["count"] == 2
