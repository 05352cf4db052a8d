"""Tests for backlog aggregations over the analysis set."""

import asyncio
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest

from ap_backlog.analytics import (
    Analytics,
    aging_buckets,
    backlog_trend,
    compare_batches,
    included,
    monthly_aging,
    po_breakdown,
    process_state_breakdown,
    process_state_trend,
    stuck_invoices,
    summarize,
    top_vendors,
)
from ap_backlog.batches import BatchManager
from ap_backlog.errors import NoCurrentBatchError
from ap_backlog.importer import import_extract
from ap_backlog.ingest import ingest_text
from ap_backlog.models import ImportBatch, InvoiceRecord
from ap_backlog.profiles import get_profile
from ap_backlog.store.memory import MemoryStore

FIXTURES_DIR = Path(__file__).parent / "fixtures"
TODAY = date(2025, 12, 1)


def _load_fixture(name: str) -> str:
    path = FIXTURES_DIR / name
    if not path.exists():
        pytest.skip(f"Fixture {name} not found")
    return path.read_text()


def _fixture_records():
    result = ingest_text(_load_fixture("aging_extract.csv"), "batch-1", get_profile("aging-v3"))
    return [record.model_copy(update={"id": record.invoice_number}) for record in result.records]


def _batch(batch_id: str, minutes: int = 0) -> ImportBatch:
    return ImportBatch(
        id=batch_id,
        filename=f"{batch_id}.csv",
        imported_at=datetime(2025, 12, 1, tzinfo=timezone.utc) + timedelta(minutes=minutes),
    )


def _record(number, state, amount=10.0, invoice_id=None, include=True):
    return InvoiceRecord(
        import_batch_id="x",
        invoice_number=number,
        invoice_id=invoice_id or number,
        amount=amount,
        overall_process_state=state,
        include_in_analysis=include,
    )


def _bucket_map(buckets):
    return {bucket.label: (bucket.count, round(bucket.value, 2)) for bucket in buckets}


# ---------------------------------------------------------------------------
# Single-batch aggregations over the fixture extract
# ---------------------------------------------------------------------------

class TestFixtureAggregations:
    @pytest.fixture(autouse=True)
    def records(self):
        self.records = _fixture_records()

    def test_analysis_set_excludes_default_outliers(self):
        assert sorted(r.invoice_number for r in included(self.records)) == [
            "INV-1001",
            "INV-1007",
            "INV-1008",
            "INV-1009",
        ]

    def test_aging_buckets(self):
        buckets = aging_buckets(self.records, TODAY)
        assert [b.label for b in buckets] == ["90-120", "120-180", "180-270", "270+"]
        assert [b.count for b in buckets] == [1, 1, 0, 2]
        assert buckets[0].value == pytest.approx(750.25)
        assert buckets[1].value == pytest.approx(1234.56)
        assert buckets[3].value == pytest.approx(122_000.0)

    def test_bucket_bounds_are_lower_inclusive(self):
        # INV-1009 is 91 days old; two days earlier it is 89 and unbucketed.
        buckets = aging_buckets(self.records, TODAY - timedelta(days=2))
        assert buckets[0].count == 0

    def test_monthly_aging(self):
        buckets = monthly_aging(self.records, TODAY)
        assert buckets[0].label == "90-120 days"
        assert buckets[-1].label == "360+ days"
        counts = {b.label: b.count for b in buckets}
        assert counts["90-120 days"] == 1
        assert counts["120-150 days"] == 1
        assert counts["270-300 days"] == 1
        assert counts["360+ days"] == 1
        assert sum(counts.values()) == 4

    def test_process_state_breakdown_sorted_by_count(self):
        states = process_state_breakdown(self.records)
        assert [(s.state, s.count) for s in states] == [
            ("02 - In Progress", 2),
            ("03 - Requires Investigation", 1),
            ("08 - Ready for Payment", 1),
        ]
        assert states[0].value == pytest.approx(121_234.56)

    def test_blank_state_reported_as_unknown(self):
        states = process_state_breakdown([_record("A", None), _record("B", "")])
        assert [(s.state, s.count) for s in states] == [("Unknown", 2)]

    def test_top_vendors(self):
        vendors = top_vendors(self.records)
        assert [v.supplier for v in vendors] == ["Globex", "Hooli", "Acme Supplies", "Stark, Industries"]
        assert len(top_vendors(self.records, limit=2)) == 2

    def test_po_breakdown(self):
        summary = po_breakdown(self.records)
        assert [(p.po_type, p.count) for p in summary] == [("Non-PO", 1), ("PO", 3)]
        assert summary[1].value == pytest.approx(3984.81)

    def test_stuck_invoices(self):
        stuck = stuck_invoices(self.records, TODAY)
        assert [s.invoice_number for s in stuck] == ["INV-1008", "INV-1009"]
        assert stuck[0].days_old == 395

    def test_dashboard_summary(self):
        summary = summarize(_batch("batch-1"), self.records, TODAY)
        assert summary.total_count == 4
        assert summary.total_value == pytest.approx(123_984.81)
        assert summary.ready_for_payment_count == 1
        assert summary.ready_for_payment_value == pytest.approx(2000.0)
        assert summary.investigation_count == 1
        assert summary.backlog_count == 3
        assert summary.average_days_old == pytest.approx(202.7)
        assert (summary.outliers.total, summary.outliers.included, summary.outliers.excluded) == (2, 0, 2)


def test_toggle_changes_only_the_affected_buckets():
    records = _fixture_records()
    before_aging = _bucket_map(aging_buckets(records, TODAY))
    before_states = {s.state: s.count for s in process_state_breakdown(records)}

    toggled = [
        r.model_copy(update={"include_in_analysis": True}) if r.invoice_number == "INV-1002" else r
        for r in records
    ]
    after_aging = _bucket_map(aging_buckets(toggled, TODAY))
    after_states = {s.state: s.count for s in process_state_breakdown(toggled)}

    # INV-1002: -500.00, 169 days old, "03 - Requires Investigation".
    assert after_aging["120-180"] == (2, 734.56)
    for label in ("90-120", "180-270", "270+"):
        assert after_aging[label] == before_aging[label]
    assert after_states["03 - Requires Investigation"] == before_states["03 - Requires Investigation"] + 1
    assert after_states["02 - In Progress"] == before_states["02 - In Progress"]


def test_unset_inclusion_counts_in_aggregations():
    records = [_record("A", "02 - In Progress", include=None), _record("B", "02 - In Progress", include=False)]
    assert [r.invoice_number for r in included(records)] == ["A"]


# ---------------------------------------------------------------------------
# Multi-batch views
# ---------------------------------------------------------------------------

def test_backlog_trend_needs_two_batches():
    assert backlog_trend([(_batch("only"), [_record("A", "02 - In Progress")])]) == []


def test_backlog_trend_counts_ready_and_backlog():
    history = [
        (_batch("b1", 0), [_record("A", "02 - In Progress"), _record("B", "08 - Ready for Payment")]),
        (_batch("b2", 5), [_record("A", "08 - Ready for Payment"), _record("C", "02 - In Progress", include=False)]),
    ]
    points = backlog_trend(history)
    assert [(p.batch_id, p.total, p.ready_for_payment, p.backlog) for p in points] == [
        ("b1", 2, 1, 1),
        ("b2", 1, 1, 0),
    ]


def test_process_state_trend():
    history = [
        (_batch("b1", 0), [_record("A", "02 - In Progress"), _record("B", "02 - In Progress")]),
        (_batch("b2", 5), [_record("A", "08 - Ready for Payment")]),
    ]
    trends = {t.state: (t.counts, t.change) for t in process_state_trend(history)}
    assert trends == {
        "02 - In Progress": ([2, 0], -2),
        "08 - Ready for Payment": ([0, 1], 1),
    }


def test_compare_batches():
    previous = [
        _record("A", "02 - In Progress", 100.0),
        _record("B", "02 - In Progress", 50.0),
        _record("C", "Custom Hold", 5.0),
    ]
    current = [
        _record("A", "08 - Ready for Payment", 100.0),
        _record("D", "02 - In Progress", 30.0),
        _record("E", "02 - In Progress", 20.0, include=False),
    ]
    result = compare_batches(_batch("cur", 5), current, _batch("prev", 0), previous)

    assert (result.current_count, result.previous_count) == (2, 3)
    assert result.current_value == pytest.approx(130.0)
    assert result.previous_value == pytest.approx(155.0)
    assert result.new_invoices == 1
    assert result.resolved_invoices == 2
    assert [(c.state, c.current, c.previous, c.change) for c in result.state_changes] == [
        ("02 - In Progress", 1, 2, -1),
        ("08 - Ready for Payment", 1, 0, 1),
        ("Custom Hold", 0, 1, -1),
    ]


# ---------------------------------------------------------------------------
# Store-backed facade
# ---------------------------------------------------------------------------

def test_analytics_over_store():
    data = _load_fixture("aging_extract.csv").encode()
    second = b"INVOICE_NUM,INVOICE_ID,INVOICE_AMOUNT,INVOICE_PROCESS_STATUS\nINV-1001,5001,10,08 - Ready for Payment\nINV-2000,6000,20,02 - In Progress\n"

    async def scenario():
        manager = BatchManager(MemoryStore())
        analytics = Analytics(manager)
        with pytest.raises(NoCurrentBatchError):
            await analytics.dashboard(TODAY)
        await import_extract(manager, "first.csv", data, profile=get_profile("aging-v3"))
        assert await analytics.backlog_trend() == []
        assert await analytics.compare_batches() is None
        await import_extract(manager, "second.csv", second, profile=get_profile("aging-v3"))
        return (
            await analytics.dashboard(TODAY),
            await analytics.backlog_trend(),
            await analytics.compare_batches(),
            await analytics.process_state_trend(),
        )

    dashboard, trend, comparison, states = asyncio.run(scenario())
    assert dashboard.filename == "second.csv"
    assert dashboard.total_count == 2
    assert [(p.filename, p.total, p.ready_for_payment) for p in trend] == [
        ("first.csv", 4, 1),
        ("second.csv", 2, 1),
    ]
    assert comparison.previous_count == 4
    assert comparison.new_invoices == 1
    assert comparison.resolved_invoices == 3
    assert {s.state for s in states} >= {"02 - In Progress", "08 - Ready for Payment"}
