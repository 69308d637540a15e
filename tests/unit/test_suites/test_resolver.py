"""
Unit tests for suite resolution.

Covers enumeration of configured suites, explicit selections by file
reference or bare name, platform filtering and the fail-fast errors.
"""

import pytest

from uirunner.models.runtime import Platform
from uirunner.suites.resolver import parse_platform, resolve_targets
from uirunner.validation import ResolutionError

APP_NAME = "kitchensink"


@pytest.mark.unit
class TestEnumeration:
    """Resolution without an explicit suite selection."""

    def test_all_configured_pairs_in_order(self, suites_config, ui_tests_tree):
        """Every (platform, suite) pair is produced in configuration order."""
        targets = resolve_targets(APP_NAME, suites_config, ui_tests_tree)

        assert [(t.suite, t.platform) for t in targets] == [
            ("login", Platform.ANDROID),
            ("settings", Platform.ANDROID),
            ("login", Platform.IOS),
        ]

    def test_capability_defaults_are_not_suites(self, suites_config, ui_tests_tree):
        targets = resolve_targets(APP_NAME, suites_config, ui_tests_tree)
        assert all(t.suite != "desiredCapabilities" for t in targets)

    def test_platform_filter(self, suites_config, ui_tests_tree):
        """Only suites of the requested platform are enumerated."""
        targets = resolve_targets(APP_NAME, suites_config, ui_tests_tree, platform="ios")

        assert [str(t) for t in targets] == ["login/ios"]

    def test_source_paths_are_absolute(self, suites_config, ui_tests_tree):
        targets = resolve_targets(APP_NAME, suites_config, ui_tests_tree, platform="android")

        for target in targets:
            assert target.source_path.is_absolute()
            assert target.source_path == (ui_tests_tree / APP_NAME / target.suite / "android.py").absolute()


@pytest.mark.unit
class TestExplicitSelection:
    """Resolution of a requested suite list."""

    def test_file_reference(self, suites_config, ui_tests_tree):
        targets = resolve_targets(APP_NAME, suites_config, ui_tests_tree, suites=["login/android.py"])

        assert len(targets) == 1
        assert targets[0].suite == "login"
        assert targets[0].platform is Platform.ANDROID

    def test_request_order_is_kept(self, suites_config, ui_tests_tree):
        targets = resolve_targets(
            APP_NAME, suites_config, ui_tests_tree, suites=["login/ios.py", "settings/android.py"]
        )
        assert [str(t) for t in targets] == ["login/ios", "settings/android"]

    def test_bare_name_expands_to_every_platform(self, suites_config, ui_tests_tree):
        targets = resolve_targets(APP_NAME, suites_config, ui_tests_tree, suites=["login"])
        assert [str(t) for t in targets] == ["login/android", "login/ios"]

    def test_bare_name_with_platform_filter(self, suites_config, ui_tests_tree):
        targets = resolve_targets(APP_NAME, suites_config, ui_tests_tree, suites=["login"], platform="android")
        assert [str(t) for t in targets] == ["login/android"]

    def test_bare_name_without_variant_for_platform_is_skipped(self, suites_config, ui_tests_tree):
        targets = resolve_targets(APP_NAME, suites_config, ui_tests_tree, suites=["settings"], platform="ios")
        assert targets == []

    def test_duplicates_are_dropped(self, suites_config, ui_tests_tree):
        """The first occurrence of a (suite, platform) pair wins."""
        targets = resolve_targets(
            APP_NAME, suites_config, ui_tests_tree, suites=["login/android.py", "login"]
        )
        assert [str(t) for t in targets] == ["login/android", "login/ios"]


@pytest.mark.unit
class TestResolutionErrors:
    """Fail-fast behavior for invalid selections."""

    def test_missing_suite_file(self, suites_config, ui_tests_tree):
        with pytest.raises(ResolutionError) as exc_info:
            resolve_targets(APP_NAME, suites_config, ui_tests_tree, suites=["checkout/android.py"])

        assert "checkout/android.py" in str(exc_info.value)
        assert "doesn't exist" in str(exc_info.value)

    def test_invalid_platform_token(self, suites_config, ui_tests_tree):
        (ui_tests_tree / APP_NAME / "login" / "blackberry.py").write_text("")

        with pytest.raises(ResolutionError) as exc_info:
            resolve_targets(APP_NAME, suites_config, ui_tests_tree, suites=["login/blackberry.py"])

        assert "'blackberry' is not a valid platform" in str(exc_info.value)

    def test_reference_with_wrong_depth(self, suites_config, ui_tests_tree):
        nested = ui_tests_tree / APP_NAME / "login" / "extra"
        nested.mkdir()
        (nested / "android.py").write_text("")

        with pytest.raises(ResolutionError):
            resolve_targets(APP_NAME, suites_config, ui_tests_tree, suites=["login/extra/android.py"])

    def test_existing_file_for_undeclared_suite(self, suites_config, ui_tests_tree):
        (ui_tests_tree / APP_NAME / "settings" / "ios.py").write_text("")

        with pytest.raises(ResolutionError) as exc_info:
            resolve_targets(APP_NAME, suites_config, ui_tests_tree, suites=["settings/ios.py"])

        assert exc_info.value.suite == "settings"
        assert exc_info.value.platform == "ios"

    def test_unknown_bare_name(self, suites_config, ui_tests_tree):
        with pytest.raises(ResolutionError):
            resolve_targets(APP_NAME, suites_config, ui_tests_tree, suites=["checkout"])

    def test_invalid_platform_filter(self, suites_config, ui_tests_tree):
        with pytest.raises(ResolutionError):
            resolve_targets(APP_NAME, suites_config, ui_tests_tree, platform="symbian")

    def test_parse_platform(self):
        assert parse_platform("windows") is Platform.WINDOWS
        with pytest.raises(ResolutionError):
            parse_platform("Android")
