from ybstats.core.kinds import EndpointKind, get_spec
from ybstats.core.models import StoredRecord
from ybstats.diff.engine import DiffOptions, DiffStatus, diff_records

from conftest import T0, later, metric_record, structured_record


METRICS = get_spec(EndpointKind.METRICS)
HOST = "10.0.0.1:9000"


def test_self_diff_is_empty():
    records = [
        metric_record(HOST, "rows_inserted", 100),
        metric_record(HOST, "threads_running", 12, stat_type="gauge"),
    ]
    result = diff_records(METRICS, records, records, DiffOptions(include_gauges=True))
    assert result.metric_rows == []

    result = diff_records(METRICS, records, records,
                          DiffOptions(include_gauges=True, include_unchanged=True))
    assert len(result.metric_rows) == 2
    assert all(r.delta == 0 for r in result.metric_rows)


def test_counter_reset_reports_end_value():
    begin = [metric_record(HOST, "rows_inserted", 100)]
    end = [metric_record(HOST, "rows_inserted", 10, when=later(10))]
    [row] = diff_records(METRICS, begin, end).metric_rows
    assert row.delta == 10
    assert row.counter_reset


def test_rate_over_elapsed_seconds():
    begin = [metric_record(HOST, "rows_inserted", 0)]
    end = [metric_record(HOST, "rows_inserted", 120, when=later(60))]
    [row] = diff_records(METRICS, begin, end).metric_rows
    assert row.delta == 120
    assert row.rate == 2.0
    assert row.elapsed_seconds == 60


def test_no_rate_without_elapsed_time():
    begin = [metric_record(HOST, "rows_inserted", 0)]
    end = [metric_record(HOST, "rows_inserted", 5)]
    [row] = diff_records(METRICS, begin, end).metric_rows
    assert row.rate is None


def test_swap_negates_gauge_deltas():
    a = [metric_record(HOST, "threads_running", 10, stat_type="gauge")]
    b = [metric_record(HOST, "threads_running", 25, stat_type="gauge", when=later(5))]
    options = DiffOptions(include_gauges=True)
    [forward] = diff_records(METRICS, a, b, options).metric_rows
    [backward] = diff_records(METRICS, b, a, options).metric_rows
    assert forward.delta == 15
    assert backward.delta == -15
    assert not backward.counter_reset


def test_gauges_hidden_by_default():
    begin = [metric_record(HOST, "threads_running", 10, stat_type="gauge")]
    end = [metric_record(HOST, "threads_running", 11, stat_type="gauge", when=later(5))]
    assert diff_records(METRICS, begin, end).metric_rows == []


def test_metric_new_in_end_starts_from_zero():
    end = [metric_record(HOST, "rows_inserted", 30, when=later(30))]
    [row] = diff_records(METRICS, [], end, begin_time=T0).metric_rows
    assert row.begin_value == 0
    assert row.delta == 30
    assert row.rate == 1.0


def test_metric_only_in_begin_produces_no_row():
    begin = [metric_record(HOST, "rows_inserted", 30)]
    assert diff_records(METRICS, begin, []).metric_rows == []


def test_tables_summed_without_details():
    begin = [
        metric_record(HOST, "rows_inserted", 10, table="a", metric_id="m1"),
        metric_record(HOST, "rows_inserted", 20, table="b", metric_id="m2"),
    ]
    end = [
        metric_record(HOST, "rows_inserted", 15, table="a", metric_id="m1", when=later(1)),
        metric_record(HOST, "rows_inserted", 40, table="b", metric_id="m2", when=later(1)),
    ]
    [row] = diff_records(METRICS, begin, end).metric_rows
    assert row.delta == 25
    assert row.identity == {"metric_type": "table", "name": "rows_inserted"}

    detailed = diff_records(METRICS, begin, end, DiffOptions(details=True)).metric_rows
    assert sorted(r.delta for r in detailed) == [5, 20]
    assert {r.identity["table_name"] for r in detailed} == {"a", "b"}


def test_entity_dropped_between_passes_is_not_a_reset():
    begin = [
        metric_record(HOST, "rows_inserted", 1000, table="a", metric_id="m1"),
        metric_record(HOST, "rows_inserted", 500, table="b", metric_id="m2"),
    ]
    end = [metric_record(HOST, "rows_inserted", 1010, table="a", metric_id="m1", when=later(10))]

    [detailed] = diff_records(METRICS, begin, end, DiffOptions(details=True)).metric_rows
    [summed] = diff_records(METRICS, begin, end).metric_rows
    assert detailed.delta == summed.delta == 10
    assert not summed.counter_reset
    assert summed.begin_value == 1000
    assert summed.end_value == 1010
    assert summed.rate == 1.0


def test_reset_of_one_entity_is_summed_with_the_others():
    begin = [
        metric_record(HOST, "rows_inserted", 100, table="a", metric_id="m1"),
        metric_record(HOST, "rows_inserted", 50, table="b", metric_id="m2"),
    ]
    end = [
        metric_record(HOST, "rows_inserted", 20, table="a", metric_id="m1", when=later(10)),
        metric_record(HOST, "rows_inserted", 80, table="b", metric_id="m2", when=later(10)),
        metric_record(HOST, "rows_inserted", 5, table="c", metric_id="m3", when=later(10)),
    ]
    [row] = diff_records(METRICS, begin, end).metric_rows
    assert row.delta == 20 + 30 + 5
    assert row.counter_reset
    assert row.rate == 5.5


def test_unavailable_host_is_not_zero():
    begin = [metric_record(HOST, "rows_inserted", 100)]
    end = [StoredRecord.synthetic_for(METRICS, HOST, later(10))]
    result = diff_records(METRICS, begin, end, DiffOptions(include_unchanged=True))
    assert result.metric_rows == []
    assert result.unavailable_hosts == [HOST]


def test_statements_diff_each_value_field():
    spec = get_spec("statements")
    begin = [structured_record("statements", "10.0.0.1:13000",
                               query="select 1", calls=1.0, total_time=0.5, rows=1.0)]
    end = [structured_record("statements", "10.0.0.1:13000", when=later(2),
                             query="select 1", calls=5.0, total_time=0.5, rows=5.0)]
    rows = diff_records(spec, begin, end).metric_rows
    assert [(r.field, r.delta) for r in rows] == [("calls", 4.0), ("rows", 4.0)]


def test_structured_added_removed_changed():
    spec = get_spec("vars")
    begin = [
        structured_record("vars", "10.0.0.1:7000", name="a", value="1", type="Default"),
        structured_record("vars", "10.0.0.1:7000", name="b", value="1", type="Default"),
        structured_record("vars", "10.0.0.1:7000", name="c", value="1", type="Default"),
    ]
    end = [
        structured_record("vars", "10.0.0.1:7000", name="b", value="2", type="Custom"),
        structured_record("vars", "10.0.0.1:7000", name="c", value="1", type="Default"),
        structured_record("vars", "10.0.0.1:7000", name="d", value="1", type="Default"),
    ]
    rows = diff_records(spec, begin, end).structured_rows
    assert [(r.key["name"], r.status) for r in rows] == [
        ("a", DiffStatus.REMOVED),
        ("b", DiffStatus.CHANGED),
        ("d", DiffStatus.ADDED),
    ]
    assert rows[1].changed_fields == ["value", "type"]

    swapped = diff_records(spec, end, begin).structured_rows
    assert [(r.key["name"], r.status) for r in swapped] == [
        ("a", DiffStatus.ADDED),
        ("b", DiffStatus.CHANGED),
        ("d", DiffStatus.REMOVED),
    ]


def test_structured_self_diff_and_volatile_fields():
    spec = get_spec("tablet-servers")
    begin = [structured_record("tablet-servers", "10.0.0.1:7000", server="10.0.0.4:9000",
                               status="ALIVE", uptime_seconds="100")]
    end = [structured_record("tablet-servers", "10.0.0.1:7000", server="10.0.0.4:9000",
                             status="ALIVE", uptime_seconds="160", when=later(60))]
    assert diff_records(spec, begin, begin).structured_rows == []
    assert diff_records(spec, begin, end).structured_rows == []


def test_structured_unavailable_host_is_not_removed():
    spec = get_spec("masters")
    begin = [structured_record("masters", "10.0.0.1:7000", permanent_uuid="u1", role="LEADER")]
    end = [StoredRecord.synthetic_for(spec, "10.0.0.1:7000", later(5))]
    result = diff_records(spec, begin, end)
    assert result.structured_rows == []
    assert result.unavailable_hosts == ["10.0.0.1:7000"]
