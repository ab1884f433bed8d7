"""Smoke tests for the experiment harness."""
import json
from types import SimpleNamespace

import numpy as np
import pandas as pd
import pytest

import run_experiments
from run_experiments import (
    amortized_cost_analysis,
    build_config,
    check_invariants,
    generate_access_pattern,
    pattern_comparison,
    run_workload,
    save_results,
    sequential_access_analysis,
    stability_over_multiple_runs,
    traverse_tree,
)
from splay_tree import Node, SplayTree


@pytest.fixture
def small_config(tmp_path):
    return build_config({
        'key_space': 50,
        'n_accesses': 300,
        'patterns': ['uniform', 'sequential', 'skewed'],
        'sizes': [8, 16, 32],
        'n_runs': 2,
        'results_dir': str(tmp_path),
    })


def test_build_config_keeps_defaults():
    config = build_config({'n_runs': 1})
    assert config['n_runs'] == 1
    assert config['key_space'] == run_experiments.DEFAULT_CONFIG['key_space']
    assert run_experiments.DEFAULT_CONFIG['n_runs'] == 5


@pytest.mark.parametrize("pattern", [
    'uniform', 'sequential', 'skewed', 'zipfian', 'temporal', 'cluster', 'random_walk', 'bursty', 'unknown',
])
def test_generate_access_pattern_stays_in_range(pattern):
    keys = generate_access_pattern(pattern, 40, 200, np.random.default_rng(0))
    assert len(keys) == 200
    assert all(isinstance(k, int) and 0 <= k < 40 for k in keys)


def test_sequential_pattern_cycles():
    assert generate_access_pattern('sequential', 3, 7) == [0, 1, 2, 0, 1, 2, 0]


def test_run_workload_metrics():
    tree = SplayTree()
    keys = [1, 2, 1, 3, 2, 1]
    metrics = run_workload(tree, keys)
    # three first-time misses, three hits
    assert metrics['hit_rate'] == pytest.approx(0.5)
    assert metrics['n_operations'] == 9
    assert metrics['final_size'] == 3
    assert metrics['total_rotations'] == tree.total_rotations
    check_invariants(tree)


def test_run_workload_with_deletes_keeps_order():
    rng = np.random.default_rng(1)
    tree = SplayTree()
    metrics = run_workload(tree, generate_access_pattern('uniform', 60, 500, rng), 0.3, rng)
    assert metrics['final_size'] == tree.size() <= 60
    assert check_invariants(tree)


def test_check_invariants_detects_disorder():
    tree = SplayTree()
    tree.root = Node(5)
    tree.root.left = Node(7)
    with pytest.raises(AssertionError):
        check_invariants(tree)


def test_traverse_tree_in_order():
    tree = SplayTree()
    for key in [4, 2, 6, 1, 3, 5, 7]:
        tree.insert(key)
    assert [node.key for node in traverse_tree(tree.root)] == [1, 2, 3, 4, 5, 6, 7]


def test_pattern_comparison(small_config):
    df = pattern_comparison(small_config)
    assert isinstance(df, pd.DataFrame)
    assert list(df.index) == ['uniform', 'sequential', 'skewed']
    assert (df['final_size'] <= 50).all()


def test_amortized_cost_analysis(small_config):
    analysis = amortized_cost_analysis(small_config)
    assert analysis['sizes'] == [8, 16, 32]
    assert len(analysis['rotations_per_op']) == 3
    assert all(cost > 0 for cost in analysis['rotations_per_op'])
    assert not np.isnan(analysis['slope'])


def test_sequential_access_analysis():
    results = sequential_access_analysis(100)
    assert results['height_after_insert'] == 99
    assert results['search_rotations'] > 0
    assert results['height_after_search'] <= 99


def test_stability_over_multiple_runs(small_config):
    results = stability_over_multiple_runs(small_config)
    assert results['n_runs'] == 2
    assert results['mean_rotations_per_op'] > 0


def test_save_results_converts_numpy(tmp_path):
    path = tmp_path / "out.json"
    save_results({'mean': np.float64(1.5), 'values': np.arange(3), 'n': np.int64(4)}, str(path))
    assert json.loads(path.read_text()) == {'mean': 1.5, 'values': [0, 1, 2], 'n': 4}


def test_save_results_logs_failures(tmp_path, caplog):
    missing = tmp_path / "missing" / "out.json"
    save_results({'a': 1}, str(missing))
    assert not missing.exists()
    assert "Failed to save results" in caplog.text


def test_check_invariants_uses_tree_comparator():
    tree = SplayTree(cmp=lambda a, b: (b > a) - (b < a))
    for key in range(20):
        tree.insert(key)
    assert check_invariants(tree)


def test_sequential_access_analysis_on_long_path():
    results = sequential_access_analysis(3000)
    assert results['height_after_insert'] == 2999
    assert results['search_rotations'] > 0
    # Sequential access costs a linear number of rotations in total
    assert results['rotations_per_search'] < 15


def test_runtime_measurement_uses_perf_counter(monkeypatch):
    ticks = iter([1.0, 3.5])
    monkeypatch.setattr(run_experiments, 'time', SimpleNamespace(perf_counter=lambda: next(ticks)))
    assert run_experiments.runtime_performance_measurement([3, 1, 2]) == pytest.approx(2.5)
