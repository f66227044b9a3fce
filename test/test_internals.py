import numpy as np
import pytest
from scipy import stats
from mimc.index import Index
from mimc.index_set import ML, TD, AD, U
from mimc.sample_method import MC, QMC
from mimc.internals import SampleAccumulator, IndexData, IndexArena, ADInternals, UInternals, EstimatorInternals
from mimc.options import parse_options


@pytest.mark.parametrize("nb_of_qoi", [1, 3])
@pytest.mark.parametrize("batch_sizes", [[1], [5, 1, 20], [2, 2, 2, 2], [100]])
def test_accumulator(nb_of_qoi, batch_sizes):
    rng = np.random.default_rng(3)
    acc = SampleAccumulator(nb_of_qoi, keep_samples=True)
    all_values = []
    count = 0
    for n in batch_sizes:
        values = rng.normal(5, 2, size=(n, nb_of_qoi))
        acc.append(values)
        all_values.append(values)
        assert acc.count >= count
        count = acc.count
        assert len(acc.samples) == acc.count

    all_values = np.concatenate(all_values)
    assert acc.count == len(all_values)
    assert np.allclose(acc.mean, np.mean(all_values, axis=0))
    assert np.allclose(acc.samples, all_values)
    if len(all_values) > 1:
        assert np.allclose(acc.var, np.var(all_values, axis=0, ddof=1))
    else:
        assert np.all(acc.var == 0)


def test_accumulator_merged():
    rng = np.random.default_rng(5)
    first, second = SampleAccumulator(2), SampleAccumulator(2)
    a = rng.random((30, 2))
    b = rng.random((7, 2)) + 1
    first.append(a)
    second.append(b)
    merged = SampleAccumulator.merged([first, second, SampleAccumulator(2)])

    values = np.concatenate([a, b])
    assert merged.count == 37
    assert np.allclose(merged.mean, np.mean(values, axis=0))
    assert np.allclose(merged.var, np.var(values, axis=0, ddof=1))
    assert first.samples is None

    # Scalars are single samples of one quantity
    acc = SampleAccumulator(1)
    acc.append(2.0)
    acc.append([])
    assert acc.count == 1


def test_index_data():
    data = IndexData(nb_of_qoi=1, nb_of_shifts=3)
    assert data.nb_of_samples == 0
    for shift in range(3):
        data.append(shift, np.ones((4, 1)), np.zeros((4, 1)), work=2.0, time=0.5)
    data.append(0, np.ones((1, 1)), np.zeros((1, 1)), work=0.5, time=0.1)
    assert data.nb_of_samples == 4
    assert data.nb_of_evaluations == 13
    assert np.isclose(data.total_work, 6.5)
    assert np.isclose(data.total_time, 1.6)


def test_index_arena():
    arena = IndexArena(TD(2).get_index_set(1), lambda index: IndexData(1, 1))
    assert len(arena) == 3
    assert arena.position(Index(0, 0)) == 0
    assert arena.position(Index(0, 1)) == 1
    assert arena.position(Index(1, 0)) == 2
    assert Index(2, 0) not in arena

    # Sparse fallback
    assert arena.position(Index(2, 0)) == 3
    assert Index(2, 0) in arena
    assert arena.sampled_keys() == []

    arena[Index(1, 0)].append(0, np.ones((2, 1)), np.ones((2, 1)), 1, 1)
    assert arena.sampled_keys() == [Index(1, 0)]


def test_adaptive_internals():
    ad = ADInternals(2, TD(2))
    assert ad.active_set == {Index(0, 0)}
    ad.remove_from_active_set(Index(0, 0))
    ad.add_to_old_set(Index(0, 0))
    for index in Index(0, 0).successors():
        assert ad.is_admissible(index)
        ad.add_to_active_set(index)
    assert ad.max_index_set == {Index(0, 0), Index(1, 0), Index(0, 1)}
    assert not ad.is_admissible(Index(2, 1))

    ad.clear()
    assert ad.active_set == {Index(0, 0)}
    assert not ad.old_set and not ad.max_index_set and not ad.logbook


def test_estimator_internals():
    rng = np.random.default_rng(1)
    method = QMC()
    options = parse_options(ML(), method, dict(max_index_set_param=3, nb_of_shifts=4))
    method.configure(options)
    internals = EstimatorInternals(ML(), method, options, rng, nb_of_uncertainties=2)

    assert len(internals.arena) == 4
    assert len(internals.sample_method_internals.generators) == 4
    assert len(internals.sample_method_internals.generators[Index(2)]) == 4
    points = internals.points(Index(1), 3, 8)
    assert points.shape == (8, 2)
    assert np.all((points >= 0) & (points < 1))
    # Generators of indices outside the search space are created on demand
    assert internals.points(Index(6), 0, 2).shape == (2, 2)

    internals.current_index_set.add(Index(0))
    internals.index_set_size.set(2)
    internals.clear()
    assert not internals.current_index_set
    assert internals.index_set_size.current == 0

    method = MC()
    options = parse_options(AD(2), method, dict(max_index_set_param=2))
    internals = EstimatorInternals(AD(2), method, options, rng, nb_of_uncertainties=1)
    assert len(internals.arena) == 6
    assert isinstance(internals.index_set_internals, ADInternals)
    assert internals.points(Index(0, 0), 0, 5).shape == (5, 1)


def test_qmc_variance():
    method = QMC()
    accumulators = [SampleAccumulator(1) for _ in range(4)]
    shift_means = [1.0, 2.0, 3.0, 4.0]
    for acc, mean in zip(accumulators, shift_means):
        acc.append([[mean - 1], [mean + 1]])
    assert np.allclose(method.estimate_variance(accumulators), np.var(shift_means, ddof=1) / 4)

    mc = MC()
    acc = SampleAccumulator(1)
    acc.append(stats.norm.ppf(np.linspace(0.01, 0.99, 50))[:, None])
    assert np.allclose(mc.estimate_variance([acc]), acc.var / 50)


def test_unbiased_internals():
    u = UInternals(2, ML(), keep_samples=True)
    assert len(u.accumulator) == 1
    assert u.min_draws == 2

    u = UInternals(2, ML(), keep_samples=True, nb_of_shifts=4)
    assert u.min_draws == 1
    u.accumulator[0].append(np.ones((3, 2)))
    u.probabilities = {Index(0): 1.0}
    u.clear()
    assert len(u.accumulator) == 4
    assert all(acc.count == 0 and acc.keeps_samples for acc in u.accumulator)
    assert not u.probabilities

    # Fewest shifts over the search space
    method = QMC()
    options = parse_options(U(1), method, dict(max_index_set_param=3, nb_of_shifts=lambda index: 6 - index[0]))
    method.configure(options)
    internals = EstimatorInternals(U(1), method, options, np.random.default_rng(2), nb_of_uncertainties=1)
    assert isinstance(internals.index_set_internals, UInternals)
    assert len(internals.index_set_internals.accumulator) == 3
