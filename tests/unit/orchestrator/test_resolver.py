"""
Unit tests for image resolution.

Covers first-seen deduplication and rejection of steps without an image.
"""

import pytest

from run_orchestrator.orchestrator.errors import ErrorKind, ValidationError
from run_orchestrator.orchestrator.images import resolve_images
from tests.fakes import make_pipeline


class TestResolveImages:
    """Tests for resolve_images."""

    def test_deduplicates_in_first_seen_order(self):
        """Test that repeated images appear once, in first-occurrence order."""
        pipeline = make_pipeline("imgA", "imgB", "imgA")

        assert resolve_images(pipeline) == ["imgA", "imgB"]

    def test_preserves_order_of_distinct_images(self):
        pipeline = make_pipeline("imgC", "imgA", "imgB", "imgC", "imgB")

        assert resolve_images(pipeline) == ["imgC", "imgA", "imgB"]

    def test_empty_pipeline_needs_no_images(self):
        assert resolve_images(make_pipeline()) == []

    def test_missing_image_raises_validation_error(self):
        """Test that a step without an image fails with its index and id."""
        pipeline = make_pipeline("imgA", None)

        with pytest.raises(ValidationError) as exc_info:
            resolve_images(pipeline)

        assert exc_info.value.kind is ErrorKind.VALIDATION
        assert exc_info.value.context["step_index"] == 1
        assert exc_info.value.context["step_id"] == "step-1"

    def test_blank_image_raises_validation_error(self):
        with pytest.raises(ValidationError):
            resolve_images(make_pipeline("   "))
