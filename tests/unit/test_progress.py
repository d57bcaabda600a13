from __future__ import annotations

from unittest.mock import Mock, patch

from sheet_sync.services.progress import ProgressTracker, is_tty_enabled


def test_is_tty_enabled_returns_stdout_isatty():
    with patch("sys.stdout.isatty", return_value=True):
        assert is_tty_enabled() is True
    with patch("sys.stdout.isatty", return_value=False):
        assert is_tty_enabled() is False


class TestProgressTracker:
    def test_init_with_tty_enabled(self):
        with patch("sheet_sync.services.progress.is_tty_enabled", return_value=True), \
             patch("sheet_sync.services.progress.tqdm") as mock_tqdm:
            tracker = ProgressTracker(5, description="Test rows")

            assert tracker.total_rows == 5
            assert tracker.current_row == 0
            assert tracker.enabled is True
            mock_tqdm.assert_called_once_with(
                total=5,
                desc="Test rows",
                unit="row",
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )

    def test_init_with_tty_disabled(self):
        with patch("sheet_sync.services.progress.is_tty_enabled", return_value=False), \
             patch("sheet_sync.services.progress.tqdm") as mock_tqdm:
            tracker = ProgressTracker(5)
            assert tracker.enabled is False
            assert tracker.pbar is None
            mock_tqdm.assert_not_called()

    def test_row_updates_with_tty_enabled(self):
        mock_pbar = Mock()
        with patch("sheet_sync.services.progress.is_tty_enabled", return_value=True), \
             patch("sheet_sync.services.progress.tqdm", return_value=mock_pbar):
            tracker = ProgressTracker(2)
            tracker.start_row("AA1")
            tracker.finish_row()
            tracker.start_row(None)
            tracker.set_postfix(created=1, errors=0)

        assert tracker.current_row == 2
        mock_pbar.set_description.assert_any_call("Syncing rows (AA1)")
        mock_pbar.set_description.assert_any_call("Syncing rows (-)")
        mock_pbar.update.assert_called_once_with(1)
        mock_pbar.set_postfix.assert_called_once_with(created=1, errors=0)

    def test_row_updates_with_tty_disabled_are_noops(self):
        with patch("sheet_sync.services.progress.is_tty_enabled", return_value=False):
            tracker = ProgressTracker(1)
            tracker.start_row("AA1")
            tracker.finish_row()
            tracker.set_postfix(created=1)
            tracker.close()
        assert tracker.current_row == 1

    def test_context_manager_closes(self):
        mock_pbar = Mock()
        with patch("sheet_sync.services.progress.is_tty_enabled", return_value=True), \
             patch("sheet_sync.services.progress.tqdm", return_value=mock_pbar):
            with ProgressTracker(1) as tracker:
                tracker.start_row("AA1")
        mock_pbar.close.assert_called_once()
        assert tracker.pbar is None
