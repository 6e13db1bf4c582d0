# tests/test_settings.py

"""Tests for the Settings configuration class."""

import os
import unittest
from pathlib import Path
from unittest.mock import patch

from src.config.settings import Settings, _env_bool, _env_float, _env_int


class TestSettings(unittest.TestCase):
    """Verify Settings constants."""

    def test_scrape_interval_default(self) -> None:
        """Products are re-scraped every 30 minutes by default."""
        self.assertEqual(Settings.SCRAPE_INTERVAL_MINUTES, 30)

    def test_history_retention_default(self) -> None:
        """Price history keeps 14 days by default."""
        self.assertEqual(Settings.HISTORY_RETENTION_DAYS, 14)

    def test_max_concurrent_scrapes_default(self) -> None:
        """At most 50 scrapes run at once."""
        self.assertEqual(Settings.MAX_CONCURRENT_SCRAPES, 50)

    def test_task_name(self) -> None:
        """The recurring task name is stable across restarts."""
        self.assertEqual(Settings.SCRAPE_TASK_NAME, "scrape product price")

    def test_launch_retries_positive(self) -> None:
        """BROWSER_LAUNCH_RETRIES must be >= 1."""
        self.assertGreaterEqual(Settings.BROWSER_LAUNCH_RETRIES, 1)

    def test_navigation_timeout_positive(self) -> None:
        """NAVIGATION_TIMEOUT must be > 0."""
        self.assertGreater(Settings.NAVIGATION_TIMEOUT, 0)

    def test_blocked_resource_types(self) -> None:
        """Images, stylesheets, fonts and media are blocked."""
        self.assertEqual(
            Settings.BLOCKED_RESOURCE_TYPES,
            frozenset({"image", "stylesheet", "font", "media"}),
        )

    def test_fingerprint_pools_not_empty(self) -> None:
        """UA, viewport and language pools have entries to pick from."""
        self.assertTrue(Settings.USER_AGENTS)
        self.assertTrue(Settings.VIEWPORTS)
        self.assertTrue(Settings.ACCEPT_LANGUAGES)

    def test_unavailable_phrases_lowercase(self) -> None:
        """Availability phrases are matched against lowercased text."""
        for phrase in Settings.UNAVAILABLE_PHRASES:
            with self.subTest(phrase=phrase):
                self.assertEqual(phrase, phrase.lower())

    def test_path_constants_are_paths(self) -> None:
        """Path-typed settings are Path instances."""
        self.assertIsInstance(Settings.BASE_DIR, Path)
        self.assertIsInstance(Settings.SELECTORS_PATH, Path)
        self.assertIsInstance(Settings.TRACKER_DB_PATH, Path)
        self.assertIsInstance(Settings.UPLOADS_DIR, Path)
        self.assertIsInstance(Settings.LOGS_DIR, Path)

    def test_selectors_path_exists(self) -> None:
        """The selectors.json file must exist on disk."""
        self.assertTrue(Settings.SELECTORS_PATH.exists())

    def test_impersonate_browser_is_string(self) -> None:
        """IMPERSONATE_BROWSER must be a non-empty string."""
        self.assertIsInstance(Settings.IMPERSONATE_BROWSER, str)
        self.assertTrue(len(Settings.IMPERSONATE_BROWSER) > 0)


class TestEnvHelpers(unittest.TestCase):
    """Environment parsing helpers."""

    @patch.dict(os.environ, {"PP_TEST_INT": "7"})
    def test_env_int_reads_value(self) -> None:
        """A set variable overrides the default."""
        self.assertEqual(_env_int("PP_TEST_INT", 3), 7)

    @patch.dict(os.environ, {"PP_TEST_INT": ""})
    def test_env_int_blank_uses_default(self) -> None:
        """An empty variable falls back to the default."""
        self.assertEqual(_env_int("PP_TEST_INT", 3), 3)

    def test_env_float_missing_uses_default(self) -> None:
        """An unset variable falls back to the default."""
        os.environ.pop("PP_TEST_FLOAT", None)
        self.assertEqual(_env_float("PP_TEST_FLOAT", 2.5), 2.5)

    @patch.dict(os.environ, {"PP_TEST_BOOL": "false"})
    def test_env_bool_false(self) -> None:
        """'false' disables a flag."""
        self.assertFalse(_env_bool("PP_TEST_BOOL", True))

    @patch.dict(os.environ, {"PP_TEST_BOOL": "Yes"})
    def test_env_bool_true_case_insensitive(self) -> None:
        """Truthy words are matched case-insensitively."""
        self.assertTrue(_env_bool("PP_TEST_BOOL", False))


if __name__ == "__main__":
    unittest.main()
