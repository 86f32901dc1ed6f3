import logging

import pytest
import torch

from core.device import NumericEngine
from core.errors import BackendUnavailableError, ModelLoadError, SetupTimeoutError

from conftest import FailingModel, FakeCamera, FixedScores


def _broken_probe():
    raise RuntimeError("no device")


class TestSessionSetup:
    def test_happy_path(self, make_session, fake_camera, display):
        session = make_session()
        session.setup()

        assert session.ready
        assert fake_camera.started
        assert session.engine.backend.name == "cpu"
        assert display.fields["status"] == "Running on cpu"
        assert session.labels == ["Big Lot", "C Press", "Snyders"]

    def test_backend_failure_stops_before_camera(self, make_session, fake_camera):
        engine = NumericEngine(["cpu"], probes={"cpu": _broken_probe})
        session = make_session(engine=engine)
        with pytest.raises(BackendUnavailableError):
            session.setup()
        assert not fake_camera.started
        assert session.model is None

    def test_camera_never_ready(self, make_session):
        module = FixedScores([0.1, 0.2, 0.7])
        session = make_session(module=module, camera=FakeCamera(ready=False))
        with pytest.raises(SetupTimeoutError):
            session.setup()
        assert session.model is None
        assert module.calls == 0

    def test_model_load_failure(self, test_config, display, fake_camera):
        from core.session import Session

        def loader(path, **kw):
            raise ModelLoadError(f"Model file not found: {path}")

        session = Session(test_config, display, camera_factory=lambda: fake_camera, model_loader=loader)
        with pytest.raises(ModelLoadError):
            session.setup()
        assert not session.ready

    def test_warmup_failure_is_a_model_load_error(self, make_session):
        session = make_session(module=FailingModel([1.0, 0.0, 0.0]))
        with pytest.raises(ModelLoadError, match="warm-up"):
            session.setup()

    def test_warmup_can_be_disabled(self, make_session, test_config):
        test_config.model.warmup = False
        module = FixedScores([0.1, 0.2, 0.7])
        session = make_session(module=module)
        session.setup()
        assert module.calls == 0

    def test_warmup_leaves_no_live_tensors(self, make_session):
        session = make_session()
        session.setup()
        assert session.engine.num_tensors == 0


class TestLabelParity:
    def test_mismatch_warns_but_continues(self, make_session, caplog):
        session = make_session(module=FixedScores([0.4, 0.6]))
        with caplog.at_level(logging.WARNING, logger="shelfsight.session"):
            session.setup()
        assert session.ready
        assert any("2 scores but 3 labels" in r.getMessage() for r in caplog.records)

    def test_match_is_silent(self, make_session, caplog):
        session = make_session()
        with caplog.at_level(logging.WARNING, logger="shelfsight.session"):
            session.setup()
        assert not [r for r in caplog.records if r.name == "shelfsight.session"]


class TestTeardown:
    def test_releases_everything_once(self, make_session, fake_camera, display):
        session = make_session()
        session.setup()
        model = session.model

        session.teardown()
        session.teardown()

        assert fake_camera.stopped
        assert model.disposed
        assert session.camera is None
        assert session.invoker is None
        assert not session.ready
        assert not session.engine.ready
        assert display.closed
        assert display.fields["status"] == "Stopped"

    def test_teardown_after_partial_setup(self, make_session, fake_camera, display):
        session = make_session(camera=FakeCamera(ready=False))
        with pytest.raises(SetupTimeoutError):
            session.setup()
        session.teardown()
        assert display.closed

    def test_backend_switch_moves_model(self, make_session, display):
        session = make_session()
        session.setup()
        session.on_backend_switched()
        assert session.model.device == torch.device("cpu")
        assert display.fields["status"] == "Running on cpu (fallback)"
