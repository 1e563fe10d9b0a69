"""Tests for canonical record normalization."""

import datetime

import pytest
from pydantic import ValidationError

from metrics_hub.models import DailyInstalls, DailyProviderCosts
from metrics_hub.records import (
    RECORD_TYPES,
    EmailMetricsRecord,
    InstallsRecord,
    ProviderCostRecord,
    RevenueRecord,
    UmamiStatsRecord,
)

DAY = datetime.date(2024, 1, 15)


class TestPlaceholders:
    """None dimensions and measures fall back to their defaults."""

    @pytest.mark.parametrize("field", ["country", "platform"])
    def test_missing_dimension_becomes_empty_string(self, field):
        values = {"app_id": "app-1", "date": DAY, "platform": "ios", "country": "US"}
        values[field] = None
        record = InstallsRecord(**values)
        assert getattr(record, field) == ""

    def test_missing_measure_becomes_zero(self):
        record = InstallsRecord(app_id="app-1", date=DAY, platform="ios", installs=None, updates=None)
        assert record.installs == 0
        assert record.updates == 0

    def test_currency_defaults_to_usd(self):
        record = RevenueRecord(app_id="app-1", date=DAY, platform="ios", currency=None)
        assert record.currency == "USD"

    def test_nullable_fields_stay_none(self):
        record = EmailMetricsRecord(email_type="support", date=DAY, avg_response_time_minutes=None)
        assert record.avg_response_time_minutes is None

    def test_breakdowns_default_to_empty_maps(self):
        record = ProviderCostRecord(provider_id="p-1", date=DAY, cost_breakdown=None, raw_data=None)
        assert record.cost_breakdown == {}
        assert record.raw_data == {}

    def test_unknown_fields_rejected(self):
        with pytest.raises(ValidationError):
            InstallsRecord(app_id="app-1", date=DAY, platform="ios", downloads=3)

    def test_date_is_required(self):
        with pytest.raises(ValidationError):
            InstallsRecord(app_id="app-1", platform="ios")


class TestNaturalKeys:
    def test_key_fields_come_from_table(self):
        assert InstallsRecord.natural_key_fields() == DailyInstalls.__natural_key__
        assert ProviderCostRecord.natural_key_fields() == DailyProviderCosts.__natural_key__

    def test_provider_costs_key_uses_empty_app(self):
        record = ProviderCostRecord(provider_id="p-1", date=DAY, app_id=None)
        assert record.natural_key() == ("p-1", "", DAY)

    def test_missing_refs(self):
        assert InstallsRecord(date=DAY).missing_refs() == ["app_id", "platform"]
        assert UmamiStatsRecord(app_id="a", date=DAY).missing_refs() == ["website_id"]
        assert EmailMetricsRecord(date=DAY, email_type="other").missing_refs() == []

    def test_every_table_has_a_record_type(self):
        tables = {cls.table.__tablename__ for cls in RECORD_TYPES.values()}
        assert len(tables) == 10

    def test_record_fields_match_table_columns(self):
        """Every record field maps onto a column of its table."""
        for record_type in RECORD_TYPES.values():
            columns = set(record_type.table.__table__.columns.keys())
            assert set(record_type.model_fields) <= columns, record_type.kind
