"""
Tests for the board records.

Covers timestamp coercion and lenient decoding of stored documents.
"""

import pytest
from datetime import datetime, timedelta, timezone

from models.board import EPOCH, Post, to_datetime


class TestToDatetime:
    """Tests for reading stored timestamps."""

    @pytest.mark.parametrize("value", [None, "not a timestamp", ["2024"], object()])
    def test_unreadable_values_fall_back_to_epoch(self, value):
        assert to_datetime(value) == EPOCH

    def test_fallback_is_stable_across_snapshots(self):
        first = to_datetime("garbage")
        second = to_datetime("garbage")

        assert first == second == EPOCH

    @pytest.mark.parametrize("value", [
        "2024-03-01T12:00:00+00:00",
        "2024-03-01T12:00:00",
        datetime(2024, 3, 1, 12, 0),
        datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc),
        1709294400,
        1709294400.0,
        {"seconds": 1709294400},
    ])
    def test_readable_values(self, value):
        assert to_datetime(value) == datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def test_offset_is_kept(self):
        parsed = to_datetime("2024-03-01T14:00:00+02:00")

        assert parsed.utcoffset() == timedelta(hours=2)
        assert parsed == datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestPostDecoding:
    """Tests for Post.from_dict on incomplete documents."""

    def test_missing_created_at_decodes_the_same_each_time(self):
        data = {'title': "Old post", 'created_at': "yesterday-ish"}

        first = Post.from_dict("p1", "b1", data)
        second = Post.from_dict("p1", "b1", data)

        assert first.created_at == second.created_at == EPOCH

    def test_round_trip_keeps_created_at(self):
        data = {'title': "Fresh", 'created_at': "2024-03-01T12:00:00+00:00"}

        post = Post.from_dict("p1", "b1", data)

        assert post.to_dict()['created_at'] == "2024-03-01T12:00:00+00:00"
