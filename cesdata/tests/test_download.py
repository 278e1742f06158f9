"""
Unit tests for the download manager.
"""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

from cesdata.config import CESConfig
from cesdata.download import (
    CONNECTION, EMPTY, FILESYSTEM, HOST_RESOLUTION, HTTP_ERROR, TIMEOUT,
    DownloadFailed, DownloadManager, DownloadResult, EmptyDownload,
    classify_failure,
)
from cesdata.logging import CESLogger


URL = "https://borealisdata.ca/api/access/datafile/563748"


def make_response(chunks):
    response = MagicMock()
    response.iter_content.return_value = chunks
    response.raise_for_status = MagicMock()
    response.__enter__.return_value = response
    response.__exit__.return_value = False
    return response


@pytest.fixture
def manager():
    return DownloadManager(CESConfig(), CESLogger(name='cesdata.tests.download'))


class TestRetryLoop:
    """Tests for retry and backoff behaviour."""

    @patch('cesdata.download.time.sleep')
    @patch('requests.Session.get')
    def test_succeeds_on_third_attempt(self, mock_get, mock_sleep, manager, tmp_path):
        mock_get.side_effect = [
            requests.exceptions.ConnectionError("connection reset"),
            requests.exceptions.ConnectionError("connection reset"),
            make_response([b'abc', b'def']),
        ]
        destination = tmp_path / 'ces.sav'

        result = manager.fetch(URL, destination)

        assert result == destination
        assert destination.read_bytes() == b'abcdef'
        assert mock_get.call_count == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [2.0, 4.0]

    @patch('cesdata.download.time.sleep')
    @patch('requests.Session.get')
    def test_gives_up_after_max_retries(self, mock_get, mock_sleep, manager, tmp_path):
        mock_get.side_effect = requests.exceptions.ConnectionError("connection refused")
        destination = tmp_path / 'ces.sav'

        with pytest.raises(DownloadFailed) as exc_info:
            manager.fetch(URL, destination)

        assert exc_info.value.attempts == 3
        assert exc_info.value.cause == CONNECTION
        assert exc_info.value.url == URL
        assert mock_get.call_count == 3
        assert mock_sleep.call_count == 2
        assert not destination.exists()

    @patch('cesdata.download.time.sleep')
    @patch('requests.Session.get')
    def test_single_attempt_does_not_sleep(self, mock_get, mock_sleep, manager, tmp_path):
        mock_get.side_effect = requests.exceptions.ConnectionError("connection refused")

        with pytest.raises(DownloadFailed) as exc_info:
            manager.fetch(URL, tmp_path / 'ces.sav', max_retries=1)

        assert exc_info.value.attempts == 1
        mock_sleep.assert_not_called()

    @patch('cesdata.download.time.sleep')
    @patch('requests.Session.get')
    def test_timeout_cause(self, mock_get, mock_sleep, manager, tmp_path):
        mock_get.side_effect = requests.exceptions.ReadTimeout("Read timed out")

        with pytest.raises(DownloadFailed) as exc_info:
            manager.fetch(URL, tmp_path / 'ces.sav')

        assert exc_info.value.cause == TIMEOUT

    @patch('cesdata.download.time.sleep')
    @patch('requests.Session.get')
    def test_host_resolution_cause(self, mock_get, mock_sleep, manager, tmp_path):
        mock_get.side_effect = requests.exceptions.ConnectionError(
            "Failed to resolve 'borealisdata.ca' ([Errno -2] Name or service not known)"
        )

        with pytest.raises(DownloadFailed) as exc_info:
            manager.fetch(URL, tmp_path / 'ces.sav')

        assert exc_info.value.cause == HOST_RESOLUTION

    @patch('cesdata.download.time.sleep')
    @patch('requests.Session.get')
    def test_http_error_is_retried(self, mock_get, mock_sleep, manager, tmp_path):
        response = make_response([b'data'])
        response.raise_for_status.side_effect = requests.exceptions.HTTPError("503 Server Error")
        mock_get.return_value = response

        with pytest.raises(DownloadFailed) as exc_info:
            manager.fetch(URL, tmp_path / 'ces.sav')

        assert exc_info.value.cause == HTTP_ERROR
        assert mock_get.call_count == 3

    @patch('cesdata.download.time.sleep')
    @patch('requests.Session.get')
    def test_empty_transfer_consumes_attempts(self, mock_get, mock_sleep, manager, tmp_path):
        mock_get.return_value = make_response([])
        destination = tmp_path / 'ces.sav'

        with pytest.raises(EmptyDownload) as exc_info:
            manager.fetch(URL, destination)

        assert exc_info.value.cause == EMPTY
        assert exc_info.value.attempts == 3
        assert mock_get.call_count == 3
        assert not destination.exists()

    @patch('cesdata.download.time.sleep')
    @patch('requests.Session.get')
    def test_empty_then_success(self, mock_get, mock_sleep, manager, tmp_path):
        mock_get.side_effect = [make_response([]), make_response([b'data'])]

        result = manager.fetch(URL, tmp_path / 'ces.sav')

        assert result.read_bytes() == b'data'
        assert mock_get.call_count == 2

    @patch('cesdata.download.time.sleep')
    @patch('requests.Session.get')
    def test_filesystem_error_is_terminal(self, mock_get, mock_sleep, manager, tmp_path):
        mock_get.return_value = make_response([b'data'])
        destination = tmp_path / 'missing_dir' / 'ces.sav'

        with pytest.raises(DownloadFailed) as exc_info:
            manager.fetch(URL, destination)

        assert exc_info.value.cause == FILESYSTEM
        assert exc_info.value.attempts == 1
        assert mock_get.call_count == 1
        mock_sleep.assert_not_called()

    @patch('requests.Session.get')
    def test_request_arguments(self, mock_get, manager, tmp_path):
        mock_get.return_value = make_response([b'data'])

        manager.fetch(URL, tmp_path / 'ces.sav', timeout=30)

        kwargs = mock_get.call_args.kwargs
        assert kwargs['stream'] is True
        assert kwargs['timeout'] == 30
        assert kwargs['verify'] is True

    @patch('cesdata.download.time.sleep')
    @patch('requests.Session.get')
    def test_append_retry_discards_partial_bytes(self, mock_get, mock_sleep, manager, tmp_path):
        def broken_stream(chunk_size=None):
            yield b'abc'
            raise requests.exceptions.ChunkedEncodingError("Connection broken")

        broken = make_response([])
        broken.iter_content.side_effect = broken_stream
        mock_get.side_effect = [broken, make_response([b'abcdef'])]
        destination = tmp_path / 'ces.sav'
        destination.write_bytes(b'HEAD')

        manager.fetch(URL, destination, mode='ab')

        assert destination.read_bytes() == b'HEADabcdef'
        assert mock_get.call_count == 2

    @patch('cesdata.download.time.sleep')
    @patch('requests.Session.get')
    def test_append_failure_keeps_existing_bytes(self, mock_get, mock_sleep, manager, tmp_path):
        def broken_stream(chunk_size=None):
            yield b'partial'
            raise requests.exceptions.ChunkedEncodingError("Connection broken")

        broken = make_response([])
        broken.iter_content.side_effect = broken_stream
        mock_get.return_value = broken
        destination = tmp_path / 'ces.sav'
        destination.write_bytes(b'HEAD')

        with pytest.raises(DownloadFailed):
            manager.fetch(URL, destination, mode='ab')

        assert destination.read_bytes() == b'HEAD'

    @patch('cesdata.download.time.sleep')
    @patch('requests.Session.get')
    def test_append_requires_new_bytes(self, mock_get, mock_sleep, manager, tmp_path):
        mock_get.return_value = make_response([])
        destination = tmp_path / 'ces.sav'
        destination.write_bytes(b'HEAD')

        with pytest.raises(EmptyDownload):
            manager.fetch(URL, destination, mode='ab')

        assert destination.read_bytes() == b'HEAD'

    @patch('cesdata.download.time.sleep')
    @patch('requests.Session.get')
    def test_attempts_recorded_in_stage_metrics(self, mock_get, mock_sleep, manager, tmp_path):
        mock_get.side_effect = [
            requests.exceptions.ConnectionError("connection reset"),
            make_response([b'data']),
        ]

        with manager.logger.stage('retrieve') as metrics:
            manager.fetch(URL, tmp_path / 'ces.sav')

        assert metrics.attempts == 2

    def test_text_mode_rejected(self, manager, tmp_path):
        with pytest.raises(ValueError):
            manager.fetch(URL, tmp_path / 'ces.sav', mode='w')

    def test_user_agent_header(self, manager):
        assert manager.session.headers['User-Agent'].startswith('cesdata/')


class TestBackoff:
    """Tests for delay calculation."""

    def test_exponential_delays(self, manager):
        assert manager._calculate_delay(1) == 2.0
        assert manager._calculate_delay(2) == 4.0
        assert manager._calculate_delay(3) == 8.0

    def test_delay_capped(self):
        config = CESConfig.from_dict({'download': {'retry': {'max_delay': 5.0}}})
        manager = DownloadManager(config, CESLogger(name='cesdata.tests.download'))

        assert manager._calculate_delay(10) == 5.0


class TestClassifyFailure:
    """Tests for failure classification."""

    def test_timeout(self):
        assert classify_failure(requests.exceptions.ConnectTimeout("timed out")) == TIMEOUT

    def test_chained_resolution_error(self):
        try:
            try:
                raise OSError("getaddrinfo failed")
            except OSError as inner:
                raise requests.exceptions.ConnectionError("connection aborted") from inner
        except requests.exceptions.ConnectionError as e:
            assert classify_failure(e) == HOST_RESOLUTION

    def test_plain_connection_error(self):
        assert classify_failure(requests.exceptions.ConnectionError("reset by peer")) == CONNECTION


class TestDownloadResult:
    """Tests for download result."""

    def test_download_result_str(self):
        assert "SUCCESS" in str(DownloadResult("2019", "web", success=True, path=Path("x")))
        assert "FAILED" in str(DownloadResult("2019", "web", success=False))
        assert "SKIPPED" in str(DownloadResult("2019", "web", success=True, skipped=True))
