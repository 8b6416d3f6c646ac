import os
import unittest
from unittest.mock import patch

from printmap.utils.app_config import (
    DEFAULT_MODEL_SIZE_MM,
    DEFAULT_OVERPASS_SERVERS,
    get_cors_origins,
    get_default_model_size_mm,
    get_file_ttl_seconds,
    get_overpass_servers,
    get_overpass_timeout_seconds,
    parse_env_bool,
    parse_env_float,
    parse_env_int,
)


class ParseEnvBoolTests(unittest.TestCase):
    def test_true_values(self):
        for value in ["1", "true", "TRUE", " yes ", "On", "y"]:
            self.assertTrue(parse_env_bool(value, default=False))

    def test_false_values(self):
        for value in ["0", "false", "FALSE", " no ", "Off", "n"]:
            self.assertFalse(parse_env_bool(value, default=True))

    def test_unknown_value_uses_default(self):
        self.assertTrue(parse_env_bool("maybe", default=True))
        self.assertFalse(parse_env_bool("maybe", default=False))

    def test_none_uses_default(self):
        self.assertTrue(parse_env_bool(None, default=True))
        self.assertFalse(parse_env_bool(None, default=False))


class ParseEnvNumberTests(unittest.TestCase):
    def test_int_and_float(self):
        with patch.dict(os.environ, {"PRINTMAP_TEST_INT": "12", "PRINTMAP_TEST_FLOAT": "2.5"}, clear=False):
            self.assertEqual(parse_env_int("PRINTMAP_TEST_INT", 1), 12)
            self.assertEqual(parse_env_float("PRINTMAP_TEST_FLOAT", 1.0), 2.5)

    def test_invalid_numbers_use_default(self):
        with patch.dict(os.environ, {"PRINTMAP_TEST_INT": "twelve", "PRINTMAP_TEST_FLOAT": "x"}, clear=False):
            self.assertEqual(parse_env_int("PRINTMAP_TEST_INT", 7), 7)
            self.assertEqual(parse_env_float("PRINTMAP_TEST_FLOAT", 1.5), 1.5)


class CorsOriginsTests(unittest.TestCase):
    def test_default_origins_are_localhost_only_patterns(self):
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("PRINTMAP_CORS_ORIGINS", None)
            origins = get_cors_origins()
        self.assertEqual(
            origins,
            [r"^http://localhost(:\d+)?$", r"^http://127\.0\.0\.1(:\d+)?$"],
        )

    def test_env_override_parses_csv_and_trims(self):
        with patch.dict(
            os.environ,
            {"PRINTMAP_CORS_ORIGINS": " http://localhost:3000,https://example.com , "},
            clear=False,
        ):
            origins = get_cors_origins()
        self.assertEqual(origins, ["http://localhost:3000", "https://example.com"])


class AppConfigTests(unittest.TestCase):
    def test_default_overpass_servers(self):
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("PRINTMAP_OVERPASS_SERVERS", None)
            self.assertEqual(get_overpass_servers(), DEFAULT_OVERPASS_SERVERS)

    def test_overpass_servers_override(self):
        with patch.dict(os.environ, {"PRINTMAP_OVERPASS_SERVERS": "http://a, http://b"}, clear=False):
            self.assertEqual(get_overpass_servers(), ["http://a", "http://b"])

    def test_timeouts_have_floors(self):
        with patch.dict(
            os.environ,
            {
                "PRINTMAP_FILE_TTL_SECONDS": "5",
                "PRINTMAP_OVERPASS_TIMEOUT_SECONDS": "0",
            },
            clear=False,
        ):
            self.assertEqual(get_file_ttl_seconds(), 60)
            self.assertEqual(get_overpass_timeout_seconds(), 1)

    def test_model_size_default_and_override(self):
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("PRINTMAP_DEFAULT_MODEL_SIZE_MM", None)
            self.assertEqual(get_default_model_size_mm(), DEFAULT_MODEL_SIZE_MM)
        with patch.dict(os.environ, {"PRINTMAP_DEFAULT_MODEL_SIZE_MM": "150"}, clear=False):
            self.assertEqual(get_default_model_size_mm(), 150.0)
        with patch.dict(os.environ, {"PRINTMAP_DEFAULT_MODEL_SIZE_MM": "-3"}, clear=False):
            self.assertEqual(get_default_model_size_mm(), DEFAULT_MODEL_SIZE_MM)


if __name__ == "__main__":
    unittest.main()
