"""
Tests for metrics path normalization.
"""
from app.middleware.metrics_middleware import normalize_path


class TestNormalizePath:
    """Tests for normalize_path."""

    def test_history_event_id(self):
        path = "/api/history/3f2b8c1e-9a4d-4e7b-8c2a-1d5e6f7a8b9c"
        assert normalize_path(path) == "/api/history/{id}"

    def test_numeric_segment(self):
        assert normalize_path("/api/items/42/detail") == "/api/items/{id}/detail"

    def test_static_path_unchanged(self):
        assert normalize_path("/api/generate/multi-edit") == "/api/generate/multi-edit"
