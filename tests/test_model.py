"""
Tests for the torch model builder and handle lifecycle.
"""

import numpy as np
import pytest

from playground.config import InitializerKind, TrainingConfig
from playground.datasets import make_xor
from playground.errors import ModelDisposedError
from playground.model import ModelHandle, build_model


@pytest.fixture
def handle():
    model = build_model(
        (2,), [3, 2], InitializerKind.GLOROT_UNIFORM, 1, "sigmoid", TrainingConfig(seed=1)
    )
    yield model
    model.dispose()


class TestBuild:
    def test_layer_order_and_shapes(self, handle):
        layers = handle.layers()

        assert [p.weights.shape for p in layers] == [(3, 2), (2, 3), (1, 2)]
        assert [p.activation for p in layers] == ["relu", "relu", "sigmoid"]
        assert handle.layer_widths() == [2, 3, 2, 1]

    def test_param_count(self, handle):
        assert handle.num_params == (2 * 3 + 3) + (3 * 2 + 2) + (2 * 1 + 1)

    def test_biases_start_at_zero(self, handle):
        for params in handle.layers():
            assert np.all(params.biases == 0.0)

    def test_zeros_initializer(self):
        model = build_model((2,), [4], InitializerKind.ZEROS, 1, "sigmoid")
        try:
            assert all(np.all(p.weights == 0.0) for p in model.layers())
        finally:
            model.dispose()

    def test_softmax_head_sums_to_one(self):
        model = build_model((4,), [3], InitializerKind.HE_NORMAL, 5, "softmax")
        try:
            output = model.predict(np.ones(4))
            assert output.shape == (1, 5)
            assert output.sum() == pytest.approx(1.0, abs=1e-5)
        finally:
            model.dispose()

    def test_unknown_activation_rejected(self):
        with pytest.raises(ValueError, match="Unsupported activation"):
            build_model((2,), [2], InitializerKind.ZEROS, 1, "tanhish")

    def test_same_seed_same_weights(self):
        config = TrainingConfig(seed=3)
        a = build_model((2,), [3], InitializerKind.RANDOM_NORMAL, 1, "sigmoid", config)
        b = build_model((2,), [3], InitializerKind.RANDOM_NORMAL, 1, "sigmoid", config)
        try:
            for pa, pb in zip(a.layers(), b.layers()):
                np.testing.assert_array_equal(pa.weights, pb.weights)
        finally:
            a.dispose()
            b.dispose()


class TestTraining:
    def test_fit_epoch_changes_weights(self, handle):
        data = make_xor()
        before = handle.layers()[-1].biases.copy()

        metrics = handle.fit_epoch(data.inputs, data.labels)

        assert metrics.loss >= 0.0
        assert 0.0 <= metrics.accuracy <= 1.0
        assert not np.array_equal(before, handle.layers()[-1].biases)

    def test_layer_outputs_follow_widths(self, handle):
        outputs = handle.layer_outputs(make_xor().inputs)

        assert [o.shape for o in outputs] == [(4, 3), (4, 2), (4, 1)]
        assert np.all(outputs[0] >= 0.0)


class TestDispose:
    def test_live_count_tracks_dispose(self):
        before = ModelHandle.live_count()
        model = build_model((2,), [2], InitializerKind.ZEROS, 1, "sigmoid")
        assert ModelHandle.live_count() == before + 1

        model.dispose()
        model.dispose()
        assert ModelHandle.live_count() == before
        assert model.disposed

    def test_use_after_dispose_raises(self):
        model = build_model((2,), [2], InitializerKind.ZEROS, 1, "sigmoid")
        model.dispose()

        with pytest.raises(ModelDisposedError):
            model.layers()
        with pytest.raises(ModelDisposedError):
            model.predict([0.0, 1.0])
