"""Tests for the acquisition resolver: upload validation, remote retry/backoff,
error classification and title fallback."""

import io
import random

import pytest

from app import config
from app.acquisition import (
    REQUEST_HEADERS,
    USER_AGENTS,
    AcquisitionResolver,
    backoff_delay,
    classify_download_error,
    display_name_from_filename,
    sanitize_display_name,
    validate_remote_url,
    validate_upload_name,
)
from app.errors import AcquisitionCategory, AcquisitionError, ValidationError
from app.jobs import RemoteSource, UploadSource
from app.workspace import WorkspaceManager

URL = "https://www.youtube.com/watch?v=abc123"


@pytest.fixture
def workspace(data_dirs):
    manager = WorkspaceManager(data_dirs["scratch"])
    with manager.open("job42") as ws:
        yield ws


class TestUploadValidation:
    @pytest.mark.parametrize("name", ["track.mp3", "TRACK.MP3", "My Song.Mp3"])
    def test_accepts_mp3_any_case(self, name):
        assert validate_upload_name(name) == name

    @pytest.mark.parametrize("name", ["track.wav", "track.mp3.exe", "mp3", ""])
    def test_rejects_other_extensions(self, name):
        with pytest.raises(ValidationError):
            validate_upload_name(name)

    def test_rejection_never_touches_filesystem(self, resolver, workspace):
        source = UploadSource(stream=io.BytesIO(b"data"), filename="track.flac")

        with pytest.raises(ValidationError):
            resolver.validate(source)

        assert list(workspace.path.iterdir()) == []


class TestDisplayNames:
    def test_strips_extension(self):
        assert display_name_from_filename("track.mp3") == "track"
        assert display_name_from_filename("Track.MP3") == "Track"

    def test_replaces_path_separators(self):
        assert sanitize_display_name("AC/DC \\ Live", "x") == "AC-DC - Live"

    def test_truncates_to_limit(self):
        name = sanitize_display_name("a" * 250, "x")
        assert len(name) == config.MAX_DISPLAY_NAME_LENGTH

    def test_empty_falls_back(self):
        assert display_name_from_filename(".mp3") == config.DEFAULT_UPLOAD_NAME
        assert sanitize_display_name("   ", "fallback") == "fallback"


class TestRemoteUrlValidation:
    def test_accepts_http_urls(self):
        assert validate_remote_url(f"  {URL}  ") == URL

    @pytest.mark.parametrize("url", ["", "   ", None, "ftp://host/file", "not a url"])
    def test_rejects_bad_urls(self, url):
        with pytest.raises(ValidationError):
            validate_remote_url(url)

    def test_validate_returns_normalized_source(self, resolver):
        source = RemoteSource(f"  {URL}\n")

        validated = resolver.validate(source)

        assert validated.url == URL
        assert source.url == f"  {URL}\n"


class TestResolveUpload:
    def test_stages_stream_in_workspace(self, resolver, workspace):
        source = UploadSource(stream=io.BytesIO(b"mp3 bytes"), filename="track.mp3")

        acquired = resolver.resolve(source, workspace)

        assert acquired.path == workspace.source_dir / "job42.mp3"
        assert acquired.path.read_bytes() == b"mp3 bytes"
        assert acquired.display_name == "track"

    def test_stream_failure_is_acquisition_error(self, resolver, workspace):
        class BrokenStream:
            def read(self, size):
                raise OSError("client went away")

        source = UploadSource(stream=BrokenStream(), filename="track.mp3")

        with pytest.raises(AcquisitionError) as exc_info:
            resolver.resolve(source, workspace)

        assert exc_info.value.category == AcquisitionCategory.STORAGE
        assert "client went away" not in exc_info.value.message

    def test_empty_upload_is_rejected(self, resolver, workspace):
        source = UploadSource(stream=io.BytesIO(b""), filename="track.mp3")

        with pytest.raises(AcquisitionError) as exc_info:
            resolver.resolve(source, workspace)

        assert exc_info.value.category == AcquisitionCategory.EMPTY_FILE
        assert exc_info.value.message == "Audio file is empty"


class TestRemoteRetry:
    def test_succeeds_on_third_attempt(self, resolver, engines, engine_error, sleeps, workspace):
        """Two failures then success: 3 attempts, sleeps after 1 and 2 only."""
        engines.extract_outcomes = [engine_error("timeout"), engine_error("timeout")]

        acquired = resolver.resolve(RemoteSource(URL), workspace)

        assert len(engines.extract_calls) == 3
        assert len(sleeps) == 2
        assert 1 <= sleeps[0] < 2
        assert 4 <= sleeps[1] < 5
        assert acquired.path == workspace.download_dir / "job42.mp3"
        assert acquired.path.read_bytes() == b"downloaded audio"

    def test_stops_after_first_success(self, resolver, engines, sleeps, workspace):
        resolver.resolve(RemoteSource(URL), workspace)

        assert len(engines.extract_calls) == 1
        assert sleeps == []

    def test_exhaustion(self, resolver, engines, engine_error, sleeps, workspace):
        """Three failures: AcquisitionError, 2 sleeps, no files left behind."""
        engines.extract_outcomes = [engine_error("boom")] * 3

        with pytest.raises(AcquisitionError) as exc_info:
            resolver.resolve(RemoteSource(URL), workspace)

        assert len(engines.extract_calls) == 3
        assert len(sleeps) == 2
        assert exc_info.value.attempts == 3
        assert exc_info.value.last_error == "boom"
        assert list(workspace.download_dir.iterdir()) == []

    def test_backoff_formula(self):
        rng = random.Random(1)
        for attempt in (1, 2, 3):
            delay = backoff_delay(attempt, rng)
            assert attempt**2 <= delay < attempt**2 + 1

    def test_rotates_identity_each_attempt(self, resolver, engines, engine_error, workspace):
        engines.extract_outcomes = [engine_error("x"), engine_error("x")]

        resolver.resolve(RemoteSource(URL), workspace)

        agents = [call["user_agent"] for call in engines.extract_calls]
        assert all(agent in USER_AGENTS for agent in agents)
        assert len(set(agents)) == 3

    def test_sends_browser_headers_and_template(self, resolver, engines, workspace):
        resolver.resolve(RemoteSource(URL), workspace)

        call = engines.extract_calls[0]
        assert call["url"] == URL
        assert call["headers"] == REQUEST_HEADERS
        assert call["template"] == str(workspace.download_dir / "job42.%(ext)s")

    def test_max_attempts_must_be_positive(self, engines):
        with pytest.raises(ValueError):
            AcquisitionResolver(engines, max_attempts=0)


class TestErrorClassification:
    @pytest.mark.parametrize(
        "raw, category",
        [
            ("ERROR: Unable to download: network is unreachable", AcquisitionCategory.NETWORK),
            ("Connection reset by peer", AcquisitionCategory.NETWORK),
            ("HTTP Error 403: Forbidden", AcquisitionCategory.PERMISSION),
            ("ERROR: Private video. Permission denied", AcquisitionCategory.PERMISSION),
            ("HTTP Error 404", AcquisitionCategory.NOT_FOUND),
            ("Video not found", AcquisitionCategory.NOT_FOUND),
            ("Sign in to confirm your age", AcquisitionCategory.RESTRICTED),
            ("login required", AcquisitionCategory.RESTRICTED),
            (
                "ERROR: Unable to download webpage: <urlopen error timed out>",
                AcquisitionCategory.NETWORK,
            ),
            ("ERROR: Unable to download webpage: HTTP Error 500", AcquisitionCategory.UNKNOWN),
            ("Postprocessing: error writing to storage", AcquisitionCategory.UNKNOWN),
            ("This video is age-restricted", AcquisitionCategory.RESTRICTED),
            ("something else entirely", AcquisitionCategory.UNKNOWN),
            (None, AcquisitionCategory.UNKNOWN),
        ],
    )
    def test_classifies(self, raw, category):
        assert classify_download_error(raw) == category

    def test_exhaustion_uses_category_message(self, resolver, engines, engine_error, workspace):
        raw = "ERROR: [youtube] abc123: HTTP Error 403: Forbidden (raw internals)"
        engines.extract_outcomes = [engine_error(raw)] * 3

        with pytest.raises(AcquisitionError) as exc_info:
            resolver.resolve(RemoteSource(URL), workspace)

        err = exc_info.value
        assert err.category == AcquisitionCategory.PERMISSION
        assert "raw internals" not in err.message
        assert err.detail == raw


class TestDownloadOutput:
    def test_no_file_is_an_error(self, resolver, engines, workspace):
        engines.download_count = 0

        with pytest.raises(AcquisitionError) as exc_info:
            resolver.resolve(RemoteSource(URL), workspace)

        assert exc_info.value.category == AcquisitionCategory.MISSING_OUTPUT

    def test_several_files_is_an_error(self, resolver, engines, workspace):
        engines.download_count = 2

        with pytest.raises(AcquisitionError) as exc_info:
            resolver.resolve(RemoteSource(URL), workspace)

        assert exc_info.value.category == AcquisitionCategory.AMBIGUOUS_OUTPUT

    def test_empty_file_is_an_error(self, resolver, engines, workspace):
        engines.download_bytes = b""

        with pytest.raises(AcquisitionError) as exc_info:
            resolver.resolve(RemoteSource(URL), workspace)

        assert exc_info.value.category == AcquisitionCategory.EMPTY_FILE


class TestTitleLookup:
    def test_uses_sanitized_title(self, resolver, engines, workspace):
        engines.title = "  Artist / Song  "

        acquired = resolver.resolve(RemoteSource(URL), workspace)

        assert acquired.display_name == "Artist - Song"

    def test_failure_falls_back(self, resolver, engines, engine_error, workspace):
        engines.title_error = engine_error("ERROR: unable to extract title")

        acquired = resolver.resolve(RemoteSource(URL), workspace)

        assert acquired.display_name == config.DEFAULT_REMOTE_NAME
        assert acquired.path.exists()

    def test_empty_title_falls_back(self, resolver, engines, workspace):
        engines.title = ""

        acquired = resolver.resolve(RemoteSource(URL), workspace)

        assert acquired.display_name == config.DEFAULT_REMOTE_NAME

    def test_not_called_when_download_fails(self, resolver, engines, engine_error, workspace):
        engines.extract_outcomes = [engine_error("x")] * 3

        with pytest.raises(AcquisitionError):
            resolver.resolve(RemoteSource(URL), workspace)

        assert engines.title_calls == []
