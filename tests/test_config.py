import os
from unittest import TestCase
from unittest.mock import patch

from pydantic import ValidationError

from file_center.config import MAX_FILE_SIZE_THRESHOLD, Settings, get_settings


class SettingsTests(TestCase):
    def setUp(self):
        get_settings.cache_clear()
        self.addCleanup(get_settings.cache_clear)

    def load(self, **env):
        with patch.dict(os.environ, env, clear=True):
            return Settings(_env_file=None)

    def test_defaults(self):
        s = self.load(FILE_CENTER_CODEC_KEY="k")
        self.assertEqual(s.mongodb_db, "file_center")
        self.assertEqual(s.temporary_file_lifetime, 60.0)
        self.assertEqual(s.effective_chunk_size, s.file_size_threshold)

    def test_codec_key_is_required(self):
        with self.assertRaises(ValidationError):
            self.load()
        with self.assertRaises(ValidationError):
            self.load(FILE_CENTER_CODEC_KEY="")

    def test_threshold_bounds(self):
        for bad in ("0", str(MAX_FILE_SIZE_THRESHOLD + 1)):
            with self.assertRaises(ValidationError):
                self.load(FILE_CENTER_CODEC_KEY="k", FILE_SIZE_THRESHOLD=bad)
        s = self.load(FILE_CENTER_CODEC_KEY="k", FILE_SIZE_THRESHOLD=str(MAX_FILE_SIZE_THRESHOLD))
        self.assertEqual(s.file_size_threshold, MAX_FILE_SIZE_THRESHOLD)

    def test_chunk_size_override(self):
        s = self.load(FILE_CENTER_CODEC_KEY="k", FILE_SIZE_THRESHOLD="10", CHUNK_SIZE="4")
        self.assertEqual(s.effective_chunk_size, 4)

    def test_lifetime_must_be_positive(self):
        with self.assertRaises(ValidationError):
            self.load(FILE_CENTER_CODEC_KEY="k", TEMPORARY_FILE_LIFETIME="0")

    def test_get_settings_is_cached(self):
        with patch.dict(os.environ, {"FILE_CENTER_CODEC_KEY": "k"}, clear=True):
            self.assertIs(get_settings(), get_settings())
