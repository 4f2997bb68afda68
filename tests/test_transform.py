from datetime import datetime, timezone

from polymarket_mirror.fields import REGISTRY
from polymarket_mirror.transform import (iter_child_records, row_to_fields,
                                         transform_record)


def test_every_column_present(events_schema):
    row = transform_record(events_schema, {"id": "1", "title": "Rain?"})
    assert set(row) == set(events_schema.column_names)
    assert row["id"] == "1"
    assert row["title"] == "Rain?"
    assert row["volume"] is None
    assert row["created_at"] is None


def test_renamed_upstream_keys(events_schema):
    row = transform_record(
        events_schema,
        {"id": "1", "published_at": "2024-01-01 00:00:00+00", "parentEvent": "77"},
    )
    assert row["published_at"] == "2024-01-01 00:00:00+00"
    assert row["parent_event_id"] == "77"


def test_dates_are_permissive(events_schema):
    row = transform_record(
        events_schema,
        {"id": "1", "startDate": "2024-05-01T10:00:00Z", "endDate": "whenever"},
    )
    assert row["start_date"] == datetime(2024, 5, 1, 10, tzinfo=timezone.utc)
    assert row["end_date"] is None


def test_dates_outside_utc_range_become_null(events_schema):
    row = transform_record(
        events_schema,
        {
            "id": "1",
            "startDate": "9999-12-31T23:00:00-05:00",
            "endDate": "0001-01-01T00:00:00+01:00",
        },
    )
    assert row["start_date"] is None
    assert row["end_date"] is None


def test_json_is_copied_and_bad_json_is_null(events_schema):
    payload = {"imageUrlOptimized": "x", "nested": [1, 2]}
    row = transform_record(
        events_schema,
        {"id": "1", "imageOptimized": payload, "iconOptimized": {"bad": object()}},
    )
    assert row["image_optimized"] == payload
    assert row["image_optimized"] is not payload
    assert row["icon_optimized"] is None


def test_typed_coercion(events_schema):
    row = transform_record(
        events_schema,
        {"id": "1", "volume": "12.5", "active": "true", "closed": "perhaps"},
    )
    assert row["volume"] == 12.5
    assert row["active"] is True
    assert row["closed"] is None


def test_non_mapping_record_gives_null_row(events_schema):
    row = transform_record(events_schema, ["not", "a", "record"])
    assert all(value is None for value in row.values())


def test_overrides_take_precedence(markets_schema):
    row = transform_record(
        markets_schema, {"id": "m1", "eventId": "wrong"}, {"eventId": "e1"}
    )
    assert row["event_id"] == "e1"


def test_iter_child_records():
    relation = REGISTRY.entity("events").children[0]
    record = {"id": "e1", "markets": [{"id": "m1"}, "junk", {"id": "m2"}]}
    children = list(iter_child_records(relation, "e1", record))
    assert children == [
        ({"id": "m1"}, {"eventId": "e1"}),
        ({"id": "m2"}, {"eventId": "e1"}),
    ]
    assert list(iter_child_records(relation, "e1", {"id": "e1"})) == []
    assert list(iter_child_records(relation, "e1", {"markets": "abc"})) == []


def test_row_to_fields_rekeys_by_field_name(events_schema):
    row = transform_record(events_schema, {"id": "1", "title": "t", "volume": 3})
    fields = row_to_fields(events_schema, row)
    assert fields["id"] == "1"
    assert fields["title"] == "t"
    assert fields["volume"] == 3.0
    assert set(fields) == set(events_schema.fields)
