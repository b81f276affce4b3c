"""
Unit tests for the property path grammar.
"""

from kvgraph.convert import paths


class TestPaths:
    """Tests for path helpers."""

    def test_child(self):
        assert paths.child("", "address") == "address"
        assert paths.child("address", "city") == "address.city"

    def test_element(self):
        assert paths.element("tags", 0) == "tags[0]"
        assert paths.element("attributes", "color") == "attributes[color]"

    def test_has_prefix_ignores_siblings(self):
        """A property named like a prefix is not beneath it."""
        record = {"addressLine": b"x", "homes[0].city": b"y"}

        assert not paths.has_prefix(record, "address")
        assert paths.has_prefix(record, "homes")
        assert paths.has_prefix(record, "homes[0]")

    def test_element_segments(self):
        """Segments directly beneath a property are collected once."""
        record = [
            "coworkers[0].firstname",
            "coworkers[0].nicknames[0]",
            "coworkers[1].firstname",
            "coworkersCount",
        ]

        segments = paths.element_segments(record, "coworkers")

        assert segments == {"0": "coworkers[0]", "1": "coworkers[1]"}

    def test_element_segments_keeps_raw_keys(self):
        """Map keys keep their text, including dots."""
        record = ["attributes[eye.color]", "attributes[hair]"]

        segments = paths.element_segments(record, "attributes")

        assert segments == {
            "eye.color": "attributes[eye.color]",
            "hair": "attributes[hair]",
        }

    def test_positional_is_numeric(self):
        """Positions sort numerically, not lexically."""
        segments = {str(i): f"tags[{i}]" for i in (10, 2, 1, 0, 11)}
        segments["x"] = "tags[x]"

        assert paths.positional(segments) == [
            "tags[0]",
            "tags[1]",
            "tags[2]",
            "tags[10]",
            "tags[11]",
        ]

    def test_positional_requires_ascii_digits(self):
        segments = {"1": "tags[1]", "²": "tags[²]", "٣": "tags[٣]"}

        assert paths.positional(segments) == ["tags[1]"]
