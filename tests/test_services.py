# tests/test_services.py
from fractions import Fraction
import os

import pytest

from sourceprint.facade import SourcePrintFacade
from sourceprint.models import EncoderSettings, MediaRole
from sourceprint.processing import BlankRushService, ImportService, LinkingService
from sourceprint.project_state import ProjectSettings, ProjectState
from tests.fakes import FakeAnalyzer, FakeBackendFactory

CATALOGUE = {
    "A001C001.mov": dict(resolution=(1920, 1080), frame_rate=Fraction(25),
                         source_timecode="10:00:00:00", duration_in_frames=250),
    "SH010_v1.mov": dict(resolution=(1920, 1080), frame_rate=Fraction(25),
                         source_timecode="10:00:02:00", duration_in_frames=50),
}


@pytest.mark.parametrize("service_cls", [ImportService, LinkingService, BlankRushService])
def test_services_require_project_state(service_cls):
    with pytest.raises(TypeError):
        service_cls({"not": "a state"})


def test_project_settings_defaults():
    settings = ProjectSettings()
    assert settings.analysis_max_workers == 16
    assert settings.blank_rush_max_workers == 1
    assert settings.pause_between_files == 0.0
    assert settings.encode_timeout == 3600
    assert settings.progress_interval == 0.1
    assert settings.encoder_settings == EncoderSettings()


def test_encoder_settings_options():
    options = EncoderSettings().to_codec_options()
    assert options["profile"] == "4"
    assert options["color_range"] == "tv"
    assert options["colorspace"] == "bt709"


def test_import_merges_by_path_and_records_failures():
    state = ProjectState()
    analyzer = FakeAnalyzer(CATALOGUE)
    service = ImportService(state, analyzer)

    batch = service.import_ocf_files(["/media/A001C001.mov", "/media/unreadable.mov"])
    assert [f.file_name for f in batch.files] == ["A001C001.mov"]
    assert [f.media_role for f in state.ocf_files] == [MediaRole.ORIGINAL_CAMERA_FILE]
    assert state.import_failures == [(os.path.abspath("/media/unreadable.mov"), "ffprobe failed")]

    service.import_segments(["/media/SH010_v1.mov"])
    state.segment_files[0].is_vfx_shot = True
    service.import_segments(["/media/SH010_v1.mov"])
    assert len(state.segment_files) == 1
    assert state.segment_files[0].is_vfx_shot is True


def test_import_invalidates_derived_results():
    state = ProjectState()
    ImportService(state, FakeAnalyzer(CATALOGUE)).import_ocf_files(["/media/A001C001.mov"])
    LinkingService(state).run_linking()
    assert state.linking_result is not None

    ImportService(state, FakeAnalyzer(CATALOGUE)).import_segments(["/media/SH010_v1.mov"])
    assert state.linking_result is None


def test_linking_service_requires_order():
    state = ProjectState()
    with pytest.raises(RuntimeError):
        LinkingService(state).run_ownership_analysis()
    with pytest.raises(RuntimeError):
        BlankRushService(state, FakeBackendFactory()).create_blank_rushes()


def test_blank_rush_service_requires_output_directory():
    state = ProjectState()
    LinkingService(state).run_linking()
    with pytest.raises(RuntimeError, match="output directory"):
        BlankRushService(state, FakeBackendFactory()).create_blank_rushes()


def test_clear_all_resets_state():
    state = ProjectState()
    state.settings.project_name = "Feature"
    state.import_failures.append(("/x.mov", "bad"))
    state.is_dirty = True
    state.clear_all()
    assert state == ProjectState()


# --- Facade ---

@pytest.fixture
def facade():
    return SourcePrintFacade(analyzer=FakeAnalyzer(CATALOGUE), backend_factory=FakeBackendFactory())


def test_facade_setters_mark_dirty(facade, tmp_path):
    assert not facade.is_project_dirty()
    facade.set_ocf_search_paths([str(tmp_path), str(tmp_path / "missing")])
    assert facade.get_project_state_snapshot().settings.ocf_search_paths == [str(tmp_path)]
    assert facade.is_project_dirty()

    facade.mark_project_dirty(False)
    facade.set_ocf_search_paths([str(tmp_path)])
    assert not facade.is_project_dirty()

    facade.set_blank_rush_pacing(max_workers=0, pause_between_files=-1, encode_timeout=600)
    settings = facade.get_project_state_snapshot().settings
    assert (settings.blank_rush_max_workers, settings.pause_between_files, settings.encode_timeout) == (1, 0.0, 600)
    assert facade.is_project_dirty()


def test_facade_ignores_missing_font(facade):
    facade.set_font_file("/no/such/font.ttf")
    assert facade.get_project_state_snapshot().settings.font_file is None
    assert not facade.is_project_dirty()


def test_facade_workflow(facade, tmp_path):
    assert facade.import_ocf_files(["/media/A001C001.mov"])
    assert facade.import_segments(["/media/SH010_v1.mov"])
    assert facade.run_linking()
    assert facade.run_ownership_analysis()

    # no output directory yet
    assert not facade.create_blank_rushes()

    facade.set_blank_rush_directory(str(tmp_path / "rushes"))
    assert facade.create_blank_rushes()
    results = facade.get_blank_rush_results()
    assert len(results) == 1 and results[0].success
    assert os.path.exists(results[0].blank_rush_path)


def test_facade_reports_existing_blank_rushes(facade, tmp_path):
    assert facade.get_existing_blank_rushes() == {}
    facade.import_ocf_files(["/media/A001C001.mov"])
    facade.import_segments(["/media/SH010_v1.mov"])
    facade.run_linking()
    rushes = tmp_path / "rushes"
    facade.set_blank_rush_directory(str(rushes))
    assert facade.get_existing_blank_rushes() == {}

    rushes.mkdir()
    (rushes / "A001C001_blankRush.mov").write_bytes(b"")
    assert facade.get_existing_blank_rushes() == {"A001C001.mov": str(rushes / "A001C001_blankRush.mov")}


def test_facade_reports_import_failures(facade):
    assert not facade.import_ocf_files(["/media/unknown.mov"])
    assert facade.get_ocf_files() == []


def test_facade_vfx_override_clears_results(facade):
    facade.import_ocf_files(["/media/A001C001.mov"])
    facade.import_segments(["/media/SH010_v1.mov"])
    facade.run_linking()
    assert facade.set_segment_vfx("/media/SH010_v1.mov", True)
    assert facade.get_segment_files()[0].is_vfx
    assert facade.get_linking_result() is None
    assert not facade.set_segment_vfx("/media/other.mov", True)


def test_facade_ownership_needs_linking(facade):
    assert not facade.run_ownership_analysis()


def test_new_project_resets(facade):
    facade.import_ocf_files(["/media/A001C001.mov"])
    facade.new_project()
    assert facade.get_ocf_files() == []
    assert not facade.is_project_dirty()


# --- Ambient helpers ---

def test_configure_logging_writes_file(tmp_path):
    import logging
    from sourceprint.log_setup import configure_logging

    log_file = tmp_path / "sourceprint.log"
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        configure_logging(str(log_file), level=logging.INFO)
        logging.getLogger("sourceprint.test").info("hello from the test")
        for handler in root.handlers:
            handler.flush()
        text = log_file.read_text(encoding="utf-8")
        assert "Logging configured (level INFO)" in text
        assert "INFO - [sourceprint.test.test_configure_logging_writes_file] hello from the test" in text
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            if handler not in saved_handlers:
                handler.close()
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)


def test_version_info():
    from sourceprint import __version__
    from sourceprint.about import SOURCEPRINT_VERSION, get_version_info

    info = get_version_info()
    assert info["sourceprint"] == SOURCEPRINT_VERSION == __version__
    assert set(info) == {"sourceprint", "python", "opentimelineio", "av"}
