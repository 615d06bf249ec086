import pytest

from app.core.bypass import should_bypass_compression, should_compress


class TestShouldCompress:
    def test_valid_images(self, config):
        assert should_compress("image/jpeg", 5000, False, config)
        assert should_compress("image/png", 150000, False, config)

    def test_too_small(self, config):
        assert not should_compress("image/jpeg", 1000, False, config)

    def test_too_large(self, config):
        assert not should_compress("image/jpeg", 6 * 1024 * 1024, False, config)

    def test_unsupported_type(self, config):
        assert not should_compress("image/svg+xml", 5000, False, config)

    def test_empty_type(self, config):
        assert not should_compress("", 50000, True, config)

    def test_type_is_case_insensitive(self, config):
        assert should_compress("IMAGE/JPEG", 50000, False, config)

    def test_transparent(self, config):
        assert should_compress("image/png", 50000, True, config)
        assert not should_compress("image/png", 5000 // 4, True, config)

    def test_png_and_gif_need_higher_floor_without_transparency(self, config):
        assert not should_compress("image/png", 50000, False, config)
        assert not should_compress("image/gif", 102399, False, config)
        assert should_compress("image/gif", 102400, False, config)


class TestShouldBypass:
    @pytest.mark.parametrize("content_type", ["image/jpeg", "text/html", "", "image/svg+xml"])
    def test_small_payloads_are_already_small(self, config, content_type):
        assert should_bypass_compression(10239, content_type, True, config) == "already_small"
        assert should_bypass_compression(0, content_type, False, config) == "already_small"

    @pytest.mark.parametrize("size", [10240, 50000, 6 * 1024 * 1024])
    def test_svg_never_meets_criteria(self, config, size):
        assert should_bypass_compression(size, "image/svg+xml", True, config) == "criteria_not_met"

    def test_transparent_png(self, config):
        assert should_bypass_compression(50000, "image/png", True, config) is None
        assert should_bypass_compression(5000, "image/png", True, config) is not None

    def test_non_image_is_rejected_by_criteria_first(self, config):
        assert should_bypass_compression(50000, "text/html", True, config) == "criteria_not_met"

    def test_jpeg_proceeds(self, config):
        assert should_bypass_compression(50000, "image/jpeg", False, config) is None

    def test_threshold_comes_from_config(self, config):
        config.BYPASS_THRESHOLD = 100000
        assert should_bypass_compression(50000, "image/jpeg", False, config) == "already_small"
