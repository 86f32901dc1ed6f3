import pytest
import torch


class TestTensorScope:
    def test_close_releases_all(self, cpu_engine):
        base = cpu_engine.num_tensors
        with cpu_engine.scope() as scope:
            scope.track(torch.zeros(2))
            scope.track(torch.ones(2))
            assert cpu_engine.num_tensors == base + 2
        assert cpu_engine.num_tensors == base

    def test_release_on_exception(self, cpu_engine):
        base = cpu_engine.num_tensors
        with pytest.raises(RuntimeError):
            with cpu_engine.scope() as scope:
                scope.track(torch.zeros(3))
                raise RuntimeError("boom")
        assert cpu_engine.num_tensors == base

    def test_keep_moves_to_parent(self, cpu_engine):
        with cpu_engine.scope() as outer:
            with outer.child() as inner:
                a = inner.track(torch.zeros(1))
                inner.track(torch.zeros(1))
                kept = inner.keep(a)
            assert kept is a
            assert len(outer) == 1
            assert cpu_engine.num_tensors == 1
        assert cpu_engine.num_tensors == 0

    def test_keep_from_top_level_needs_dispose(self, cpu_engine):
        with cpu_engine.scope() as scope:
            t = scope.keep(scope.track(torch.zeros(1)))
        assert cpu_engine.num_tensors == 1
        cpu_engine.dispose(t)
        assert cpu_engine.num_tensors == 0

    def test_keep_unknown_tensor_rejected(self, cpu_engine):
        with cpu_engine.scope() as scope:
            with pytest.raises(ValueError):
                scope.keep(torch.zeros(1))

    def test_keep_uses_identity_not_equality(self, cpu_engine):
        with cpu_engine.scope() as scope:
            a = scope.track(torch.zeros(2))
            b = scope.track(torch.zeros(2))
            assert scope.keep(b) is b
            assert len(scope) == 1
            cpu_engine.dispose(b)
            del a

    def test_track_after_close_rejected(self, cpu_engine):
        scope = cpu_engine.scope()
        scope.close()
        with pytest.raises(RuntimeError):
            scope.track(torch.zeros(1))

    def test_close_is_idempotent(self, cpu_engine):
        scope = cpu_engine.scope()
        scope.track(torch.zeros(1))
        scope.close()
        scope.close()
        assert cpu_engine.num_tensors == 0
