# run_experiments.py

import numpy as np
from tqdm import tqdm
from splay_tree import SplayTree
import pandas as pd
import os
import json
import logging
import gc
import time
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
from typing import List, Optional
import scipy.stats as stats
import psutil
import cProfile
import pstats
from io import StringIO

# ==========================
# 1. Logging and Configuration
# ==========================

def setup_logging(log_file: str):
    """
    Sets up logging to both console and file with detailed formatting.

    Parameters:
        log_file (str): Path to the log file.
    """
    logger = logging.getLogger('ExperimentLogger')
    logger.setLevel(logging.DEBUG)  # Capture all levels

    # Formatter for detailed logs
    formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s')

    # Console handler for INFO level and above
    ch = logging.StreamHandler()
    ch.setLevel(logging.INFO)
    ch.setFormatter(formatter)

    # File handler for DEBUG level and above
    fh = logging.FileHandler(log_file)
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(formatter)

    # Avoid duplicate logs
    if not logger.handlers:
        logger.addHandler(ch)
        logger.addHandler(fh)

    return logger

# Handlers are attached by main(); until then records go to the root logger
logger = logging.getLogger('ExperimentLogger')

DEFAULT_CONFIG = {
    'key_space': 1000,
    'n_accesses': 5000,
    'patterns': ['uniform', 'sequential', 'skewed', 'temporal', 'random_walk', 'bursty'],
    'sizes': [64, 128, 256, 512, 1024],
    'n_runs': 5,
    'seed': 42,
    'delete_fraction': 0.1,
    'results_dir': 'results',
}

def build_config(overrides: Optional[dict] = None) -> dict:
    """Returns a copy of DEFAULT_CONFIG with the given overrides applied."""
    config = DEFAULT_CONFIG.copy()
    config.update(overrides or {})
    return config

# ==========================
# 2. Utility Functions
# ==========================

def _to_builtin(value):
    """Converts numpy scalars and arrays so they can be serialized as JSON."""
    if isinstance(value, dict):
        return {str(k): _to_builtin(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_builtin(v) for v in value]
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, np.ndarray):
        return value.tolist()
    return value

def save_results(data, filepath: str):
    """
    Saves data to a JSON file.

    Parameters:
        data (dict): The data to save.
        filepath (str): The path to the JSON file.
    """
    try:
        with open(filepath, 'w') as f:
            json.dump(_to_builtin(data), f, indent=4)
        logger.info(f"Results saved successfully to '{filepath}'.")
    except Exception as e:
        logger.error(f"Failed to save results to '{filepath}': {e}")

def check_invariants(tree: SplayTree) -> bool:
    """
    Verifies the binary-search-tree order invariant over the whole tree.

    Parameters:
        tree (SplayTree): The tree to check.

    Returns:
        bool: True if every node separates its left and right subtrees.

    Raises:
        AssertionError: If the order invariant is violated.
    """
    previous = None
    for node in traverse_tree(tree.root):
        if previous is not None and tree.cmp(previous.key, node.key) >= 0:
            logger.error(f"Order invariant violated between keys {previous.key!r} and {node.key!r}.")
            raise AssertionError(f"keys out of order: {previous.key!r} before {node.key!r}")
        previous = node
    return True

def traverse_tree(node):
    """
    Generator to traverse the splay tree in-order.

    Parameters:
        node (Node): The current node.

    Yields:
        Node: The next node in the traversal.
    """
    stack = []
    while stack or node is not None:
        while node is not None:
            stack.append(node)
            node = node.left
        node = stack.pop()
        yield node
        node = node.right

# ==========================
# 3. Tree Construction and Workloads
# ==========================

def initialize_splay_tree(config: dict) -> SplayTree:
    """
    Initializes a SplayTree with the given configuration.

    Parameters:
        config (dict): Configuration parameters; 'cmp' may hold a three-way comparator.

    Returns:
        SplayTree: An initialized splay tree instance.
    """
    try:
        tree = SplayTree(cmp=config.get('cmp'))
        logger.info("Splay tree initialized with provided configuration.")
        return tree
    except Exception as e:
        logger.error(f"Failed to initialize splay tree: {e}")
        raise e

def generate_access_pattern(pattern_type: str, size: int, n: int, rng=None) -> List[int]:
    """
    Generates different types of access patterns for experimentation.

    Parameters:
        pattern_type (str): Type of access pattern to generate.
        size (int): Range of keys (0 to size-1).
        n (int): Number of accesses to generate.
        rng (numpy.random.Generator): Source of randomness; a fresh one is used if omitted.

    Returns:
        List[int]: List of access keys.
    """
    rng = rng if rng is not None else np.random.default_rng()
    logger.debug(f"Generating access pattern: {pattern_type}, Size: {size}, Number of accesses: {n}")
    if pattern_type == 'uniform':
        pattern = rng.integers(0, size, n)
    elif pattern_type == 'sequential':
        pattern = np.arange(n) % size
    elif pattern_type in ('skewed', 'zipfian'):
        weights = 1.0 / np.arange(1, size + 1)
        probabilities = weights / weights.sum()
        pattern = rng.choice(size, n, p=probabilities)
    elif pattern_type == 'temporal':
        access_pattern = []
        recent_items = []
        for _ in range(n):
            if recent_items and rng.random() < 0.7:
                access_pattern.append(recent_items[rng.integers(len(recent_items))])
            else:
                key = int(rng.integers(0, size))
                access_pattern.append(key)
                recent_items.append(key)
                if len(recent_items) > 100:
                    recent_items.pop(0)
        pattern = np.array(access_pattern)
    elif pattern_type == 'cluster':
        cluster_center = int(rng.integers(0, size))
        low, high = max(0, cluster_center - 10), min(size, cluster_center + 10)
        pattern = rng.integers(low, high, n)
    elif pattern_type == 'random_walk':
        access_pattern = [int(rng.integers(0, size))]
        for _ in range(n - 1):
            next_node = access_pattern[-1] + int(rng.choice([-1, 1]))
            access_pattern.append(max(0, min(size - 1, next_node)))
        pattern = np.array(access_pattern[:n])
    elif pattern_type == 'bursty':
        burst_prob = 0.8
        access_pattern = []
        last_accessed = None
        for _ in range(n):
            if last_accessed is not None and rng.random() < burst_prob:
                access_pattern.append(last_accessed)
            else:
                last_accessed = int(rng.integers(0, size))
                access_pattern.append(last_accessed)
        pattern = np.array(access_pattern)
    else:
        logger.warning(f"Unknown pattern type: {pattern_type}. Defaulting to uniform pattern.")
        pattern = rng.integers(0, size, n)
    logger.debug(f"Access pattern generated with {len(pattern)} accesses.")
    return [int(k) for k in pattern]

def run_workload(tree: SplayTree, access_pattern: List[int], delete_fraction: float = 0.0, rng=None) -> dict:
    """
    Replays an access pattern against the tree and collects cost metrics.

    Every access searches for its key; keys that are missing get inserted, and
    a delete_fraction of accesses delete the key instead of searching for it.

    Parameters:
        tree (SplayTree): The tree to drive.
        access_pattern (List[int]): The sequence of keys to access.
        delete_fraction (float): Share of accesses turned into deletions.
        rng (numpy.random.Generator): Source of randomness for picking deletions.

    Returns:
        dict: Workload metrics.
    """
    rng = rng if rng is not None else np.random.default_rng()
    rotations_before = tree.total_rotations
    searches = 0
    hits = 0
    n_operations = 0
    start_time = time.perf_counter()
    for key in tqdm(access_pattern, desc="Running Workload", disable=len(access_pattern) < 1000):
        if delete_fraction and rng.random() < delete_fraction:
            tree.delete(key)
            n_operations += 1
            continue
        searches += 1
        n_operations += 1
        if tree.search(key) is not None:
            hits += 1
        else:
            tree.insert(key, str(key))
            n_operations += 1
    runtime = time.perf_counter() - start_time
    total_rotations = tree.total_rotations - rotations_before
    metrics = {
        'n_operations': n_operations,
        'total_rotations': total_rotations,
        'rotations_per_op': total_rotations / n_operations if n_operations else 0.0,
        'final_size': tree.size(),
        'final_height': tree.height(),
        'hit_rate': hits / searches if searches else 0.0,
        'runtime_seconds': runtime,
    }
    logger.debug(f"Workload metrics: {metrics}")
    return metrics

# ==========================
# 4. Experiments
# ==========================

def pattern_comparison(config: dict) -> pd.DataFrame:
    """
    Runs one workload per access pattern and tabulates the resulting metrics.

    Parameters:
        config (dict): Experiment configuration.

    Returns:
        pd.DataFrame: One row per pattern.
    """
    logger.info("Comparing access patterns.")
    rng = np.random.default_rng(config.get('seed'))
    rows = []
    for pattern in config.get('patterns', DEFAULT_CONFIG['patterns']):
        logger.info(f"Testing pattern: {pattern}")
        access_pattern = generate_access_pattern(pattern, config.get('key_space', 1000),
                                                 config.get('n_accesses', 5000), rng)
        tree = initialize_splay_tree(config)
        metrics = run_workload(tree, access_pattern, config.get('delete_fraction', 0.0), rng)
        check_invariants(tree)
        metrics['pattern'] = pattern
        rows.append(metrics)
        logger.info(f"Results for {pattern}: Rotations/Op = {metrics['rotations_per_op']:.4f}, "
                    f"Final Height = {metrics['final_height']}, Hit Rate = {metrics['hit_rate']:.4f}")
        del tree
        gc.collect()
    df = pd.DataFrame(rows).set_index('pattern')
    logger.info("Pattern comparison completed.")
    return df

def amortized_cost_analysis(config: dict) -> dict:
    """
    Measures rotations per operation for growing key spaces under a uniform
    pattern and fits them against log2(size).

    Parameters:
        config (dict): Experiment configuration.

    Returns:
        dict: Per-size costs and the linear regression of cost on log2(size).
    """
    logger.info("Performing amortized cost analysis.")
    rng = np.random.default_rng(config.get('seed'))
    sizes = config.get('sizes', DEFAULT_CONFIG['sizes'])
    costs = []
    for size in sizes:
        tree = initialize_splay_tree(config)
        for key in rng.permutation(size):
            tree.insert(int(key), str(key))
        tree.reset_stats()
        access_pattern = generate_access_pattern('uniform', size, 4 * size, rng)
        metrics = run_workload(tree, access_pattern, 0.0, rng)
        costs.append(metrics['rotations_per_op'])
        logger.debug(f"Size {size}: {metrics['rotations_per_op']:.4f} rotations per operation.")
    log_sizes = np.log2(np.array(sizes, dtype=float))
    if len(sizes) > 1:
        fit = stats.linregress(log_sizes, costs)
        slope, intercept, r_value = fit.slope, fit.intercept, fit.rvalue
    else:
        slope, intercept, r_value = float('nan'), float('nan'), float('nan')
    logger.info(f"Amortized cost fit: slope = {slope:.4f}, intercept = {intercept:.4f}, r = {r_value:.4f}")
    return {
        'sizes': list(sizes),
        'rotations_per_op': costs,
        'slope': slope,
        'intercept': intercept,
        'r_value': r_value,
    }

def sequential_access_analysis(size: int) -> dict:
    """
    Inserts keys in ascending order, then searches them in ascending order.
    The insertions build a path of height size-1; the full sequential pass
    afterwards costs a linear number of rotations in total.

    Parameters:
        size (int): Number of keys.

    Returns:
        dict: Heights and rotation counts for both phases.
    """
    logger.info(f"Running sequential access analysis with {size} keys.")
    tree = SplayTree()
    for key in range(size):
        tree.insert(key, key)
    height_after_insert = tree.height()
    tree.reset_stats()
    for key in range(size):
        tree.search(key)
    results = {
        'size': size,
        'height_after_insert': height_after_insert,
        'search_rotations': tree.total_rotations,
        'rotations_per_search': tree.total_rotations / size if size else 0.0,
        'height_after_search': tree.height(),
    }
    logger.info(f"Sequential access: {results['search_rotations']} rotations for {size} searches.")
    return results

def runtime_performance_measurement(access_pattern: List[int]) -> float:
    """
    Measures the runtime performance of tree operations.

    Parameters:
        access_pattern (List[int]): The sequence of keys to access.

    Returns:
        float: Total runtime in seconds.
    """
    logger.info("Measuring runtime performance.")
    start_time = time.perf_counter()
    tree = SplayTree()
    for key in tqdm(access_pattern, desc="Runtime Measurement"):
        if tree.search(key) is None:
            tree.insert(key, key)
    end_time = time.perf_counter()
    runtime = end_time - start_time
    logger.info(f"Runtime Performance: {runtime:.4f} seconds.")
    return runtime

def memory_usage_analysis(access_pattern: List[int]) -> float:
    """
    Analyzes memory usage during tree operations.

    Parameters:
        access_pattern (List[int]): The sequence of keys to access.

    Returns:
        float: Memory used in MB.
    """
    logger.info("Analyzing memory usage.")
    process = psutil.Process(os.getpid())
    mem_before = process.memory_info().rss / (1024 ** 2)  # in MB
    tree = SplayTree()
    for key in tqdm(access_pattern, desc="Memory Usage Measurement"):
        tree.insert(key, key)
    mem_after = process.memory_info().rss / (1024 ** 2)  # in MB
    memory_used = mem_after - mem_before
    logger.info(f"Memory Usage: {memory_used:.4f} MB for {tree.size()} nodes.")
    return memory_used

def profiling_analysis(access_pattern: List[int], report_path: str):
    """
    Profiles the tree operations to identify performance bottlenecks.

    Parameters:
        access_pattern (List[int]): The sequence of keys to access.
        report_path (str): Where to write the profiling report.

    Returns:
        None
    """
    logger.info("Starting profiling analysis.")
    profiler = cProfile.Profile()
    profiler.enable()

    tree = SplayTree()
    for key in access_pattern:
        tree.insert(key, key)
    for key in access_pattern:
        tree.search(key)
    for key in access_pattern[::2]:
        tree.delete(key)

    profiler.disable()
    s = StringIO()
    sortby = 'cumulative'
    ps = pstats.Stats(profiler, stream=s).sort_stats(sortby)
    ps.print_stats(10)  # Print top 10 functions

    with open(report_path, 'w') as f:
        f.write(s.getvalue())

    logger.info(f"Profiling analysis completed and report saved as '{report_path}'.")

def stability_over_multiple_runs(config: dict) -> dict:
    """
    Checks that rotations per operation stay consistent across seeds.

    Parameters:
        config (dict): Experiment configuration.

    Returns:
        dict: Mean and standard deviation of rotations per operation.
    """
    n_runs = config.get('n_runs', 5)
    logger.info(f"Assessing stability over {n_runs} runs.")
    scores = []
    for run in range(1, n_runs + 1):
        rng = np.random.default_rng(config.get('seed', 0) + run)
        access_pattern = generate_access_pattern('uniform', config.get('key_space', 1000),
                                                 config.get('n_accesses', 5000), rng)
        tree = initialize_splay_tree(config)
        metrics = run_workload(tree, access_pattern, config.get('delete_fraction', 0.0), rng)
        scores.append(metrics['rotations_per_op'])
        logger.info(f"Run {run}: Rotations/Op = {metrics['rotations_per_op']:.4f}")
        del tree
        gc.collect()

    mean_score = np.mean(scores) if scores else 0.0
    std_score = np.std(scores) if scores else 0.0
    logger.info(f"Stability assessment completed. Mean: {mean_score:.4f}, Std Dev: {std_score:.4f}")
    return {'n_runs': n_runs, 'mean_rotations_per_op': mean_score, 'std_rotations_per_op': std_score}

# ==========================
# 5. Visualizations
# ==========================

def amortized_cost_visualization(analysis: dict, output_path: str):
    """
    Plots rotations per operation against key space size on a log2 axis.

    Parameters:
        analysis (dict): Output of amortized_cost_analysis.
        output_path (str): Where to save the PNG.
    """
    logger.info("Generating amortized cost visualization.")
    sizes = np.array(analysis['sizes'], dtype=float)
    plt.figure(figsize=(10,6))
    plt.plot(sizes, analysis['rotations_per_op'], marker='o', label='Measured')
    if not np.isnan(analysis['slope']):
        plt.plot(sizes, analysis['intercept'] + analysis['slope'] * np.log2(sizes),
                 linestyle='--', label='Fit on log2(n)')
    plt.xscale('log', base=2)
    plt.title('Amortized Rotations per Operation')
    plt.xlabel('Number of Keys')
    plt.ylabel('Rotations per Operation')
    plt.legend()
    plt.tight_layout()
    plt.savefig(output_path)
    plt.close()
    logger.info(f"Amortized cost visualization saved as '{output_path}'.")

def height_over_time_visualization(access_pattern: List[int], output_path: str):
    """
    Plots the tree height after each access of the pattern.

    Parameters:
        access_pattern (List[int]): The sequence of keys to access.
        output_path (str): Where to save the PNG.
    """
    logger.info("Generating height over time visualization.")
    tree = SplayTree()
    heights = []
    for key in tqdm(access_pattern, desc="Height Over Time"):
        if tree.search(key) is None:
            tree.insert(key, key)
        heights.append(tree.height())

    plt.figure(figsize=(10,6))
    plt.plot(heights, label='Tree Height')
    plt.title('Splay Tree Height Over Time')
    plt.xlabel('Number of Accesses')
    plt.ylabel('Height')
    plt.legend()
    plt.tight_layout()
    plt.savefig(output_path)
    plt.close()
    logger.info(f"Height over time visualization saved as '{output_path}'.")

# ==========================
# 6. Main Execution Flow
# ==========================

def main(overrides: Optional[dict] = None):
    """
    Main function to run all experiments and generate visualizations and logs.
    """
    config = build_config(overrides)
    results_dir = config['results_dir']
    os.makedirs(os.path.join(results_dir, 'visualizations'), exist_ok=True)
    os.makedirs(os.path.join(results_dir, 'logs'), exist_ok=True)
    setup_logging(os.path.join(results_dir, 'logs', 'experiment.log'))

    logger.info("=== Starting Splay Tree Experiments ===")

    patterns_df = pattern_comparison(config)
    patterns_df.to_csv(os.path.join(results_dir, 'pattern_comparison.csv'))

    amortized = amortized_cost_analysis(config)
    save_results(amortized, os.path.join(results_dir, 'amortized_cost.json'))
    amortized_cost_visualization(amortized, os.path.join(results_dir, 'visualizations', 'amortized_cost.png'))

    sequential = sequential_access_analysis(config['key_space'])
    save_results(sequential, os.path.join(results_dir, 'sequential_access.json'))

    rng = np.random.default_rng(config['seed'])
    access_pattern = generate_access_pattern('skewed', config['key_space'], config['n_accesses'], rng)

    runtime = runtime_performance_measurement(access_pattern)
    save_results({'runtime_seconds': runtime}, os.path.join(results_dir, 'runtime_performance.json'))

    memory_used = memory_usage_analysis(access_pattern)
    save_results({'memory_used_mb': memory_used}, os.path.join(results_dir, 'memory_usage.json'))

    profiling_analysis(access_pattern, os.path.join(results_dir, 'profiling_report.txt'))

    stability = stability_over_multiple_runs(config)
    save_results(stability, os.path.join(results_dir, 'stability.json'))

    height_over_time_visualization(access_pattern, os.path.join(results_dir, 'visualizations', 'height_over_time.png'))

    logger.info("=== All experiments and analyses completed successfully! ===")

if __name__ == "__main__":
    main()
