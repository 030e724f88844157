import os
import unittest

import pytest

from workdesk.config import NotionConfig, SyncConfig, load_config
from workdesk.config._validators import normalize_page_id

PAGE_HEX = "0123456789abcdef0123456789abcdef"
PAGE_UUID = "01234567-89ab-cdef-0123-456789abcdef"


class TestNormalizePageId(unittest.TestCase):
    def test_accepts_common_forms(self) -> None:
        forms = [
            PAGE_HEX,
            PAGE_UUID,
            PAGE_HEX.upper(),
            f"https://www.notion.so/workspace/Workdesk-{PAGE_HEX}",
            f"https://www.notion.so/Workdesk-{PAGE_HEX}?pvs=4",
            f"  {PAGE_UUID}  ",
        ]

        for form in forms:
            assert normalize_page_id(form) == PAGE_UUID, form

    def test_empty_input(self) -> None:
        assert normalize_page_id(None) == ""
        assert normalize_page_id("") == ""

    def test_rejects_garbage(self) -> None:
        for value in ["not-a-page", "1234", "z" * 32, "https://www.notion.so/Workdesk"]:
            with pytest.raises(ValueError):
                normalize_page_id(value)


class TestSectionValidation(unittest.TestCase):
    def test_notion_defaults(self) -> None:
        cfg = NotionConfig()

        assert cfg.api_key == ""
        assert cfg.is_configured is False
        assert cfg.api_url == "https://api.notion.com/v1"
        assert cfg.notion_version == "2022-06-28"
        assert cfg.timeout_sec == 30.0
        assert cfg.max_retries == 3

    def test_api_key_with_whitespace_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            NotionConfig(api_key="secret token")

    def test_bounds(self) -> None:
        with pytest.raises(ValueError):
            NotionConfig(max_retries=11)
        with pytest.raises(ValueError):
            NotionConfig(timeout_sec=0)
        with pytest.raises(ValueError):
            SyncConfig(batch_width=0)
        with pytest.raises(ValueError):
            SyncConfig(batch_delay_sec="soon")

    def test_sections_are_frozen(self) -> None:
        cfg = SyncConfig()
        with pytest.raises(ValueError):
            cfg.batch_width = 5  # type: ignore[misc]


class TestLoadConfig(unittest.TestCase):
    def setUp(self) -> None:
        self._old_env = os.environ.copy()
        os.environ.clear()

    def tearDown(self) -> None:
        os.environ.clear()
        os.environ.update(self._old_env)

    def test_defaults_without_environment(self) -> None:
        cfg = load_config()

        assert cfg.notion.is_configured is False
        assert cfg.sync.batch_width == 3
        assert cfg.sync.batch_delay_sec == 0.4
        assert cfg.runtime.db_path == "workdesk.db"
        assert cfg.runtime.log_level == "INFO"
        assert cfg.runtime.log_file is None

    def test_reads_flat_environment(self) -> None:
        os.environ["NOTION_API_KEY"] = "secret_" + "a" * 40
        os.environ["NOTION_ROOT_PAGE_ID"] = f"https://www.notion.so/Workdesk-{PAGE_HEX}"
        os.environ["NOTION_MAX_RETRIES"] = "5"
        os.environ["SYNC_BATCH_WIDTH"] = "4"
        os.environ["SYNC_BATCH_DELAY_SEC"] = "1.5"
        os.environ["DB_PATH"] = "/tmp/workdesk-test.db"
        os.environ["LOG_LEVEL"] = "debug"

        cfg = load_config()

        assert cfg.notion.is_configured is True
        assert cfg.notion.root_page_id == PAGE_UUID
        assert cfg.notion.max_retries == 5
        assert cfg.sync.batch_width == 4
        assert cfg.sync.batch_delay_sec == 1.5
        assert cfg.runtime.db_path == "/tmp/workdesk-test.db"
        assert cfg.runtime.log_level == "DEBUG"

    def test_overrides_win_over_environment(self) -> None:
        os.environ["SYNC_BATCH_WIDTH"] = "2"

        cfg = load_config(SYNC_BATCH_WIDTH="7")

        assert cfg.sync.batch_width == 7

    def test_invalid_values_raise_runtime_error(self) -> None:
        os.environ["SYNC_BATCH_WIDTH"] = "0"

        with pytest.raises(RuntimeError, match="Sync batch width"):
            load_config()

    def test_invalid_root_page_raises_runtime_error(self) -> None:
        os.environ["NOTION_ROOT_PAGE_ID"] = "my workspace"

        with pytest.raises(RuntimeError, match="Invalid Notion page id"):
            load_config()

    def test_invalid_log_level(self) -> None:
        os.environ["LOG_LEVEL"] = "chatty"

        with pytest.raises(RuntimeError):
            load_config()


if __name__ == "__main__":
    unittest.main()
