"""
Tests for the playground orchestrator: rebuild pipeline, run phases,
dataset selection and history bookkeeping.
"""

import asyncio

import numpy as np
import pytest

from playground.config import DatasetId, InitializerKind, PlaygroundConfig
from playground.errors import DatasetLoadError, PhaseError
from playground.model import ModelHandle, build_model
from playground.orchestrator import Playground
from playground.topology import RunPhase


def select(pg, dataset_id):
    return asyncio.run(pg.select_dataset(dataset_id))


class TestDatasetSelection:
    def test_initial_state(self, config, provider):
        pg = Playground(config, provider=provider)

        assert pg.run_phase == RunPhase.IDLE
        assert pg.neurons() == []
        assert pg.connections() == []
        assert not pg.has_model

    def test_select_builds_default_plan(self, playground):
        topology = playground.topology

        assert topology.dataset_id == DatasetId.XOR
        assert topology.hidden_widths == [3]
        assert playground.run_phase == RunPhase.READY
        assert len(playground.neurons()) == 2 + 3 + 1
        assert len(playground.connections()) == 2 * 3 + 3 * 1

    def test_unknown_dataset_is_ignored(self, playground, provider):
        calls = len(provider.calls)

        assert not select(playground, "cifar")
        assert len(provider.calls) == calls
        assert playground.topology.dataset_id == DatasetId.XOR

    def test_load_failure_leaves_state_unchanged(self, playground, provider):
        provider.failing.add(DatasetId.SINE)
        rebuilds = playground.rebuild_count
        neurons = playground.neurons()

        with pytest.raises(DatasetLoadError, match="network unreachable"):
            select(playground, "sine")

        assert playground.topology.dataset_id == DatasetId.XOR
        assert playground.rebuild_count == rebuilds
        assert playground.neurons() == neurons

    def test_stale_load_is_discarded(self, config, provider):
        pg = Playground(config, provider=provider)

        async def scenario():
            provider.hold("xor")
            slow = asyncio.create_task(pg.select_dataset("xor"))
            await asyncio.sleep(0)
            fast = await pg.select_dataset("sine")
            provider.release("xor")
            return await slow, fast

        slow, fast = asyncio.run(scenario())

        assert provider.calls == [DatasetId.XOR, DatasetId.SINE]
        assert slow is False
        assert fast is True
        assert pg.topology.dataset_id == DatasetId.SINE
        assert pg.topology.hidden_widths == [8, 8]
        assert pg.rebuild_count == 1
        pg.teardown()

    def test_stale_failure_is_discarded(self, config, provider):
        pg = Playground(config, provider=provider)
        provider.failing.add(DatasetId.MNIST)

        async def scenario():
            provider.hold("mnist")
            slow = asyncio.create_task(pg.select_dataset("mnist"))
            await asyncio.sleep(0)
            await pg.select_dataset("xor")
            provider.release("mnist")
            return await slow

        assert asyncio.run(scenario()) is False
        assert pg.topology.dataset_id == DatasetId.XOR
        pg.teardown()

    def test_digits_use_softmax_head(self, config, provider):
        pg = Playground(config, provider=provider)
        assert select(pg, "mnist")

        widths = pg.topology.layer_widths
        assert widths == [784, 8, 10]
        output = pg.neuron_table.layer(2)
        assert all(n.activation_kind == "softmax" for n in output)

        pg.train(2)
        result = pg.interpret(np.zeros(784, dtype=np.float32))
        assert 0 <= result["prediction"] <= 9
        assert sum(result["confidences"]) == pytest.approx(100.0, rel=1e-4)
        pg.teardown()


class TestTopologyEdits:
    def test_add_layer(self, playground):
        assert playground.add_layer()

        topology = playground.topology
        assert topology.hidden_widths == [3, 1]
        assert [layer.label for layer in topology.hidden_layers] == ["Layer 1", "Layer 2"]
        assert len(playground.neurons()) == 7
        assert len(playground.connections()) == 10
        assert len(playground.layout) == 7

    def test_resize_out_of_bounds_is_rejected(self, playground):
        rebuilds = playground.rebuild_count
        before = playground.topology

        assert not playground.resize_layer(0, 9)
        assert not playground.resize_layer(0, 0)
        assert not playground.resize_layer(3, 2)

        assert playground.topology == before
        assert playground.rebuild_count == rebuilds

    def test_layer_limit(self, playground):
        for _ in range(4):
            assert playground.add_layer()
        rebuilds = playground.rebuild_count

        assert not playground.add_layer()
        assert len(playground.topology.hidden_layers) == 5
        assert playground.rebuild_count == rebuilds

    def test_last_layer_cannot_be_removed(self, playground):
        assert not playground.remove_layer()
        assert playground.topology.hidden_widths == [3]

    def test_add_and_remove_neuron(self, playground):
        assert playground.add_neuron(0)
        assert playground.topology.hidden_widths == [4]
        assert playground.remove_neuron(0)
        assert playground.remove_neuron(0)
        assert playground.topology.hidden_widths == [2]
        assert not playground.add_neuron(5)

    def test_set_initializer_rebuilds(self, playground):
        rebuilds = playground.rebuild_count

        assert playground.set_initializer("zeros")

        assert playground.topology.initializer == InitializerKind.ZEROS
        assert playground.rebuild_count == rebuilds + 1
        assert all(c["raw_weight"] == 0.0 for c in playground.connections())
        assert not playground.set_initializer("orthogonal")

    def test_builtin_plan_clamped_to_policy(self, provider):
        config = PlaygroundConfig(layers={"max_layer_width": 6, "max_hidden_layers": 1})
        pg = Playground(config, provider=provider)

        assert select(pg, "sine")

        assert pg.topology.hidden_widths == [6]
        assert not pg.add_layer()
        pg.teardown()

    def test_edits_before_dataset_only_touch_topology(self, config, provider):
        pg = Playground(config, provider=provider)

        assert pg.add_layer()
        assert pg.set_initializer("he_normal")

        assert pg.topology.hidden_widths == [1]
        assert pg.rebuild_count == 0
        assert not pg.has_model

        assert select(pg, "xor")
        assert pg.topology.hidden_widths == [3]
        assert pg.topology.initializer == InitializerKind.HE_NORMAL
        pg.teardown()

    def test_layout_matches_neurons(self, playground):
        playground.add_layer()
        playground.resize_layer(1, 4)

        ids = {n["id"] for n in playground.neurons()}
        assert set(playground.layout) == ids
        for connection in playground.connections():
            assert connection["source_id"] in ids
            assert connection["dest_id"] in ids


class TestModelLifecycle:
    def test_single_live_model(self, config, provider):
        base = ModelHandle.live_count()
        pg = Playground(config, provider=provider)

        select(pg, "xor")
        pg.add_layer()
        pg.resize_layer(0, 5)
        select(pg, "sine")
        pg.remove_layer()
        select(pg, "xor")
        pg.reset_training()
        assert ModelHandle.live_count() == base + 1

        pg.teardown()
        assert ModelHandle.live_count() == base
        assert pg.run_phase == RunPhase.IDLE
        assert pg.neurons() == []

    def test_failed_rebuild_restores_previous(self, config, provider):
        def builder(input_shape, hidden_widths, *args):
            if 4 in hidden_widths:
                raise RuntimeError("out of memory")
            return build_model(input_shape, hidden_widths, *args)

        base = ModelHandle.live_count()
        pg = Playground(config, provider=provider, builder=builder)
        select(pg, "xor")

        with pytest.raises(RuntimeError, match="out of memory"):
            pg.resize_layer(0, 4)

        assert pg.topology.hidden_widths == [3]
        assert pg.run_phase == RunPhase.READY
        assert pg.has_model
        assert len(pg.neurons()) == 6
        assert ModelHandle.live_count() == base + 1
        pg.teardown()


class TestTraining:
    def test_train_reaches_trained(self, playground):
        reports = playground.train(5)

        assert [r.epoch for r in reports] == [1, 2, 3, 4, 5]
        assert all(r.last_epoch == 5 for r in reports)
        assert playground.run_phase == RunPhase.TRAINED
        assert playground.current_epoch == 5

    def test_training_refreshes_in_place(self, playground):
        neurons_before = list(playground.neuron_table)
        layout_before = dict(playground.layout)
        weights_before = [c["raw_weight"] for c in playground.connections()]
        rebuilds = playground.rebuild_count

        playground.train(3)

        assert list(playground.neuron_table) == neurons_before
        assert all(a is b for a, b in zip(playground.neuron_table, neurons_before))
        assert dict(playground.layout) == layout_before
        assert playground.rebuild_count == rebuilds
        weights_after = [c["raw_weight"] for c in playground.connections()]
        assert len(weights_after) == len(weights_before)
        assert weights_after != weights_before

    def test_train_only_from_ready(self, config, provider, playground):
        with pytest.raises(PhaseError):
            Playground(config, provider=provider).train(1)

        playground.train(1)
        with pytest.raises(PhaseError):
            playground.train(1)

    def test_predict_only_when_trained(self, playground):
        with pytest.raises(PhaseError):
            playground.predict([1.0, 0.0])

        playground.train(2)
        output = playground.predict([1.0, 0.0])

        assert len(output) == 1
        assert 0.0 <= output[0] <= 1.0
        assert playground.interpret([1.0, 0.0])["prediction"] in (0, 1)

    def test_stop_from_callback(self, playground):
        def on_epoch(report):
            if report.epoch == 2:
                assert playground.stop_training()

        reports = playground.train(10, on_epoch=on_epoch)

        assert len(reports) == 2
        assert playground.run_phase == RunPhase.READY
        assert not playground.stop_training()

        reports = playground.train(3)
        assert [r.epoch for r in reports] == [3, 4, 5]

    @pytest.mark.parametrize("error", [KeyboardInterrupt, RuntimeError])
    def test_interrupted_run_returns_to_ready(self, playground, error):
        def on_epoch(report):
            if report.epoch == 2:
                raise error("interrupted")

        with pytest.raises(error):
            playground.train(10, on_epoch=on_epoch)

        assert playground.run_phase == RunPhase.READY
        assert playground.current_epoch == 2
        assert playground.add_layer()
        playground.reset_training()
        assert len(playground.train(1)) == 1

    def test_edits_rejected_while_training(self, playground):
        results = []

        def on_epoch(report):
            results.append(playground.add_layer())
            results.append(playground.resize_layer(0, 2))
            results.append(asyncio.run(playground.select_dataset("sine")))

        playground.train(1, on_epoch=on_epoch)

        assert results == [False, False, False]
        assert playground.topology.hidden_widths == [3]

    def test_reset_training(self, playground):
        playground.train(3)
        rebuilds = playground.rebuild_count

        playground.reset_training()

        assert playground.run_phase == RunPhase.READY
        assert playground.current_epoch == 0
        assert playground.rebuild_count == rebuilds + 1

    def test_edit_after_training_returns_to_ready(self, playground):
        playground.train(2)

        assert playground.add_layer()
        assert playground.run_phase == RunPhase.READY
        assert playground.current_epoch == 0

    def test_summary(self, playground):
        playground.train(2)
        info = playground.summary()

        assert info["dataset"] == "xor"
        assert info["num_neurons"] == 6
        assert info["num_layers"] == 1
        assert info["layers"] == [{"name": "Layer 1", "neurons": 3}]
        assert info["num_params"] == (2 * 3 + 3) + (3 * 1 + 1)
        assert info["curr_phase"] == "trained"
        assert info["curr_epoch"] == 2
        assert 0.0 <= info["curr_acc"] <= 1.0


class TestHistory:
    def test_sampling_during_training(self, playground):
        assert playground.inspect_neuron("neuron-1-0")

        playground.train(23)

        samples = playground.history_of("neuron-1-0")
        assert [s.epoch for s in samples] == [0, 5, 10, 15, 20, 23]
        assert samples[-1].bias == playground.neuron_table.get("neuron-1-0").bias

    def test_unknown_neuron_cannot_be_inspected(self, playground):
        assert not playground.inspect_neuron("neuron-9-9")

    def test_removed_neuron_is_pruned(self, playground):
        playground.inspect_neuron("neuron-1-2")
        playground.train(5)

        playground.remove_neuron(0)

        assert not playground.history.is_tracked("neuron-1-2")
        assert playground.history_of("neuron-1-2") == []

    def test_rebuild_clears_history(self, playground):
        playground.inspect_neuron("neuron-2-0")
        playground.inspect_neuron("neuron-0-0")
        playground.train(5)

        playground.add_neuron(0)

        assert playground.history.tracked == ["neuron-2-0", "neuron-0-0"]
        assert playground.history_of("neuron-2-0") == []
        assert playground.history_of("neuron-0-0") == []

    @pytest.mark.parametrize(
        "rebuild",
        [
            lambda pg: pg.set_initializer("he_normal"),
            lambda pg: pg.reset_training(),
        ],
        ids=["set_initializer", "reset_training"],
    )
    def test_fresh_model_starts_fresh_history(self, playground, rebuild):
        playground.inspect_neuron("neuron-1-0")
        playground.train(23)

        rebuild(playground)
        playground.train(23)

        samples = playground.history_of("neuron-1-0")
        assert [s.epoch for s in samples] == [0, 5, 10, 15, 20, 23]
        assert samples[-1].bias == playground.neuron_table.get("neuron-1-0").bias

    def test_dataset_switch_clears_history(self, playground):
        playground.inspect_neuron("neuron-0-0")
        playground.train(5)

        select(playground, "sine")

        assert playground.history_of("neuron-0-0") == []


class TestInputBox:
    def test_narrow_input_has_no_box(self, playground):
        assert playground.input_box() is None

    def test_wide_input_gets_box(self, config, provider):
        pg = Playground(config, provider=provider)
        assert pg.input_box() is None
        select(pg, "mnist")

        box = pg.input_box()

        assert box is not None
        assert box.center.x == pg.layout["neuron-0-0"].x
        pg.teardown()
