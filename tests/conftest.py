"""Shared pytest fixtures for Drummer tests.

External tools never run in tests: FakeEngines implements the MediaEngines
interface in-process and records every call.
"""

import random
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from app import config
from app.acquisition import AcquisitionResolver
from app.db import init_db
from app.errors import EngineError
from app.pipeline import JobPipeline
from app.stems import StemRemover
from app.store import SqlSongStore
from app.workspace import WorkspaceManager

FIVE_STEMS = ("vocals", "drums", "bass", "piano", "other")


class FakeEngines:
    """In-process stand-in for spleeter, ffmpeg and yt-dlp.

    Knobs:
        produced_stems: stems `separate` writes (defaults to all five).
        separate_error / mix_error: EngineError to raise from that call.
        extract_outcomes: per-attempt results for `extract_audio`; None means
            success, an exception is raised. Attempts beyond the list succeed.
        download_count: files written by a successful `extract_audio`.
        download_bytes: content of each downloaded file.
        title / title_error: result of `fetch_title`.
    """

    def __init__(self, produced_stems=FIVE_STEMS):
        self.produced_stems = list(produced_stems)
        self.separate_error = None
        self.mix_error = None
        self.extract_outcomes = []
        self.download_count = 1
        self.download_bytes = b"downloaded audio"
        self.title = "Remote Song"
        self.title_error = None

        self.separate_calls = []
        self.mix_calls = []
        self.extract_calls = []
        self.title_calls = []

    def separate(self, input_file, output_dir):
        self.separate_calls.append((Path(input_file), Path(output_dir)))
        if self.separate_error is not None:
            raise self.separate_error
        track_dir = Path(output_dir) / Path(input_file).stem
        track_dir.mkdir(parents=True, exist_ok=True)
        for stem in self.produced_stems:
            (track_dir / f"{stem}.wav").write_bytes(f"{stem}-audio".encode())

    def mix(self, input_files, filter_graph, output_file):
        input_files = [Path(p) for p in input_files]
        self.mix_calls.append((input_files, filter_graph, Path(output_file)))
        if self.mix_error is not None:
            raise self.mix_error
        for path in input_files:
            if not path.exists():
                raise EngineError(["ffmpeg"], 1, f"{path}: No such file or directory")
        Path(output_file).write_bytes(b"|".join(p.read_bytes() for p in input_files))

    def extract_audio(self, url, output_template, user_agent, headers):
        self.extract_calls.append(
            {"url": url, "template": output_template, "user_agent": user_agent, "headers": headers}
        )
        target = Path(output_template.replace("%(ext)s", "mp3"))
        outcome = self.extract_outcomes.pop(0) if self.extract_outcomes else None
        if outcome is not None:
            # Aborted downloads leave partial files behind
            target.with_name(target.name + ".part").write_bytes(b"partial")
            raise outcome
        for i in range(self.download_count):
            name = target.name if i == 0 else f"extra-{i}.mp3"
            (target.parent / name).write_bytes(self.download_bytes)
        return "[download] 100%"

    def fetch_title(self, url, user_agent):
        self.title_calls.append((url, user_agent))
        if self.title_error is not None:
            raise self.title_error
        return self.title


def engine_failure(output="ERROR: something broke", returncode=1, program="yt-dlp"):
    return EngineError([program], returncode, output)


@pytest.fixture
def engine_error():
    """Factory for EngineError instances."""
    return engine_failure


@pytest.fixture
def data_dirs():
    """Temporary uploads/processed/scratch roots and database path.

    Yields:
        dict: keys uploads, processed, scratch, db
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        dirs = {
            "uploads": root / "uploads",
            "processed": root / "processed",
            "scratch": root / "temp",
            "db": root / "songs.db",
        }
        for key in ("uploads", "processed", "scratch"):
            dirs[key].mkdir()
        yield dirs


@pytest.fixture
def store(data_dirs):
    """SQLite-backed store in the temporary data directory."""
    engine, SessionFactory = init_db(data_dirs["db"])
    yield SqlSongStore(SessionFactory)
    engine.dispose()


@pytest.fixture
def engines():
    """Fresh FakeEngines producing the five Spleeter stems."""
    return FakeEngines()


@pytest.fixture
def sleeps():
    """Records the delays the resolver asked to sleep."""
    return []


@pytest.fixture
def resolver(engines, sleeps):
    """Resolver with a recorded, non-blocking sleep and seeded randomness."""
    return AcquisitionResolver(engines, max_attempts=3, sleep=sleeps.append, rng=random.Random(7))


@pytest.fixture
def pipeline(store, engines, resolver, data_dirs):
    """JobPipeline over fake engines and temporary directories."""
    return JobPipeline(
        store=store,
        resolver=resolver,
        stem_remover=StemRemover(engines, stem_names=FIVE_STEMS, excluded_stem="drums"),
        workspaces=WorkspaceManager(data_dirs["scratch"]),
        uploads_dir=data_dirs["uploads"],
        processed_dir=data_dirs["processed"],
    )


@pytest.fixture
def client(monkeypatch, data_dirs, store, pipeline):
    """FastAPI test client wired to the temporary store and fake pipeline.

    Yields:
        tuple: (test_client, store)
    """
    from services.drummer_api.main import app, get_pipeline, override_store

    monkeypatch.setattr(config, "UPLOADS_DIR", data_dirs["uploads"])
    monkeypatch.setattr(config, "PROCESSED_DIR", data_dirs["processed"])
    monkeypatch.setattr(config, "SCRATCH_DIR", data_dirs["scratch"])

    override_store(store)
    app.dependency_overrides[get_pipeline] = lambda: pipeline

    with TestClient(app) as test_client:
        yield test_client, store

    app.dependency_overrides.clear()
    override_store(None)
