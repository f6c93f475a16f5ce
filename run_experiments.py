# run_experiments.py

import gc
import json
import logging
import os
import time
from typing import List, Optional

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import psutil
import scipy.stats as stats
import seaborn as sns
from tqdm import tqdm

from balance_via_rotation import Algorithm, make_almost_complete_bst, run_algorithm
from rotation_tree import RotationTree

# ==========================
# 1. Logging and Configuration
# ==========================

LOGGER_NAME = 'RotationLogger'

logger = logging.getLogger(LOGGER_NAME)

DEFAULT_CONFIG = {
    'sizes': [1000, 1100, 1200],
    'trials': 5,
    'seed': 310,
    'skip_probability': 0.01,
    'rotate_probability': 0.5,
    'algorithms': ['A1', 'A2', 'A3'],
    'results_dir': 'results',
}


def setup_logging(log_file: str):
    """
    Sets up logging to both console and file with detailed formatting.

    Parameters:
        log_file (str): Path to the log file.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)  # Capture all levels

    # Avoid duplicate logs
    if logger.handlers:
        return logger

    formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s')

    # Console handler for INFO level and above
    ch = logging.StreamHandler()
    ch.setLevel(logging.INFO)
    ch.setFormatter(formatter)

    # File handler for DEBUG level and above
    fh = logging.FileHandler(log_file)
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(formatter)

    logger.addHandler(ch)
    logger.addHandler(fh)
    return logger


def load_config(path: Optional[str] = None, overrides: Optional[dict] = None) -> dict:
    """
    Builds the experiment configuration from the defaults, an optional JSON file and overrides.

    Parameters:
        path (str): Optional path to a JSON file with configuration values.
        overrides (dict): Optional values applied last.

    Returns:
        dict: The merged configuration.
    """
    config = DEFAULT_CONFIG.copy()
    updates = {}
    if path is not None:
        with open(path) as f:
            updates.update(json.load(f))
    if overrides:
        updates.update(overrides)

    unknown = set(updates) - set(DEFAULT_CONFIG)
    if unknown:
        raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")
    config.update(updates)

    if not config['sizes'] or min(config['sizes']) < 1:
        raise ValueError("sizes must be a non-empty list of positive integers")
    if config['trials'] < 1:
        raise ValueError("trials must be at least 1")
    for name in ('skip_probability', 'rotate_probability'):
        if not 0.0 <= config[name] <= 1.0:
            raise ValueError(f"{name} must lie in [0, 1]")
    for algorithm in config['algorithms']:
        Algorithm(algorithm)
    return config


def save_results(data, filepath: str):
    """
    Saves data to a JSON file.

    Parameters:
        data (dict): The data to save.
        filepath (str): The path to the JSON file.
    """
    try:
        with open(filepath, 'w') as f:
            json.dump(data, f, indent=4, default=float)
        logger.info(f"Results saved successfully to '{filepath}'.")
    except (OSError, TypeError) as e:
        logger.error(f"Failed to save results to '{filepath}': {e}")

# ==========================
# 2. Input Perturbation
# ==========================

def randomly_rotate(tree: RotationTree, rng: np.random.Generator,
                    skip_probability: float = 0.01, rotate_probability: float = 0.5) -> int:
    """
    Randomly rotates edges of a tree in place, keeping its key set.

    Parameters:
        tree (RotationTree): The tree to perturb.
        rng (np.random.Generator): Source of randomness.
        skip_probability (float): Probability of never considering a node.
        rotate_probability (float): Probability of rotating a considered node.

    Returns:
        int: Number of rotations applied.
    """
    # Leaves cannot be rotated, so only inner nodes are candidates.
    candidates = [node for node in tree.in_order_nodes() if node.left is not None or node.right is not None]
    keep = rng.random(len(candidates)) >= skip_probability
    rotate = rng.random(len(candidates)) < rotate_probability

    rotations = 0
    for node, kept, rotated in zip(candidates, keep, rotate):
        if not (kept and rotated):
            continue
        # Earlier rotations may have moved children around.
        if node.left is not None:
            tree.rotate_right(node)
        elif node.right is not None:
            tree.rotate_left(node)
        else:
            continue
        rotations += 1
    logger.debug(f"Perturbed tree of size {tree.size()} with {rotations} rotations.")
    return rotations

# ==========================
# 3. Experiments
# ==========================

def perform_experiments(algorithm: str, n: int, trials: int, rng: np.random.Generator,
                        skip_probability: float = 0.01, rotate_probability: float = 0.5) -> List[dict]:
    """
    Runs several trials of one algorithm on perturbed near-complete trees of n keys.

    Parameters:
        algorithm (str): 'A1', 'A2' or 'A3'.
        n (int): Number of keys.
        trials (int): Number of trials.
        rng (np.random.Generator): Source of randomness for the perturbation.

    Returns:
        List[dict]: One row per trial.
    """
    if n < 1:
        raise ValueError("n must be at least 1")
    keys = range(n)
    rows = []
    logger.info(f"{algorithm} with n={n}")
    for trial in tqdm(range(trials), desc=f"{algorithm} n={n}", leave=False):
        S = make_almost_complete_bst(keys)
        T = make_almost_complete_bst(keys)
        perturbations = randomly_rotate(S, rng, skip_probability, rotate_probability)

        start_time = time.perf_counter()
        try:
            stat = run_algorithm(algorithm, S, T)
        except (ValueError, RuntimeError) as e:
            logger.error(f"{algorithm} failed on trial {trial} with n={n}: {e}")
            raise
        seconds = time.perf_counter() - start_time

        rows.append({
            'algorithm': algorithm,
            'n': n,
            'trial': trial,
            'perturbations': perturbations,
            'rotations_actual': stat.rotations_actual,
            'rotations_expected': stat.rotations_expected,
            'slack': stat.rotations_expected - stat.rotations_actual,
            'seconds': seconds,
        })
        logger.info(f"rotations actual = {stat.rotations_actual}, expected = {stat.rotations_expected}")
    return rows


def run_all(config: dict) -> pd.DataFrame:
    """
    Runs every configured algorithm for every configured size.

    Parameters:
        config (dict): Experiment configuration (see DEFAULT_CONFIG).

    Returns:
        pd.DataFrame: One row per trial.
    """
    rng = np.random.default_rng(config['seed'])
    rows = []
    for n in config['sizes']:
        for algorithm in config['algorithms']:
            rows.extend(perform_experiments(
                algorithm, n, config['trials'], rng,
                skip_probability=config['skip_probability'],
                rotate_probability=config['rotate_probability'],
            ))
            gc.collect()
    return pd.DataFrame(rows)

# ==========================
# 4. Analysis
# ==========================

def summarize_results(df: pd.DataFrame) -> pd.DataFrame:
    """
    Aggregates rotation counts per algorithm and size.

    Parameters:
        df (pd.DataFrame): Output of run_all.

    Returns:
        pd.DataFrame: Mean, standard deviation, minimum and maximum per group.
    """
    summary = df.groupby(['algorithm', 'n'])[['rotations_actual', 'rotations_expected', 'slack']].agg(
        ['mean', 'std', 'min', 'max'])
    summary.columns = ['_'.join(column) for column in summary.columns]
    return summary.reset_index()


def bound_violation_tests(df: pd.DataFrame) -> dict:
    """
    Measures how often each algorithm exceeds its predicted rotation count and tests
    whether the slack differs from zero.

    Parameters:
        df (pd.DataFrame): Output of run_all.

    Returns:
        dict: Per-algorithm violation rate, mean slack and one-sample t-test.
    """
    logger.info("Performing bound violation tests.")
    results = {}
    for algorithm, group in df.groupby('algorithm'):
        slack = group['slack'].to_numpy(dtype=float)
        entry = {
            'trials': int(len(slack)),
            'violation_rate': float(np.mean(slack < 0)),
            'mean_slack': float(np.mean(slack)),
        }
        # A t-test needs variation in the sample.
        if len(slack) > 1 and np.std(slack) > 0:
            t_stat, p_value = stats.ttest_1samp(slack, 0.0)
            entry.update({'t_stat': float(t_stat), 'p_value': float(p_value)})
        else:
            entry.update({'t_stat': None, 'p_value': None})
        results[algorithm] = entry
        logger.debug(f"Bound test for {algorithm}: {entry}")
    logger.info("Bound violation tests completed.")
    return results


def plot_rotations(df: pd.DataFrame, filepath: str):
    """
    Plots actual against expected rotation counts per algorithm and size.

    Parameters:
        df (pd.DataFrame): Output of run_all.
        filepath (str): Where to save the figure.
    """
    logger.info("Generating rotation count visualization.")
    long_df = df.melt(id_vars=['algorithm', 'n'], value_vars=['rotations_actual', 'rotations_expected'],
                      var_name='measure', value_name='rotations')
    plt.figure(figsize=(10, 6))
    sns.barplot(data=long_df, x='algorithm', y='rotations', hue='measure', errorbar='sd')
    plt.title('Rotations Performed vs. Predicted')
    plt.xlabel('Algorithm')
    plt.ylabel('Rotations')
    plt.legend()
    plt.tight_layout()
    plt.savefig(filepath)
    plt.close()
    logger.info(f"Rotation count visualization saved as '{filepath}'.")


def resource_usage_analysis(algorithm: str, n: int, rng: np.random.Generator) -> dict:
    """
    Measures runtime and memory of a single run of an algorithm.

    Returns:
        dict: Runtime in seconds and memory growth in MB.
    """
    process = psutil.Process(os.getpid())
    mem_before = process.memory_info().rss / (1024 ** 2)  # in MB
    start_time = time.perf_counter()
    perform_experiments(algorithm, n, 1, rng)
    runtime = time.perf_counter() - start_time
    mem_after = process.memory_info().rss / (1024 ** 2)
    logger.info(f"{algorithm} n={n}: runtime {runtime:.4f} s, memory {mem_after - mem_before:.4f} MB.")
    return {'runtime_seconds': runtime, 'memory_used_mb': mem_after - mem_before}

# ==========================
# 5. Main Execution Flow
# ==========================

def main(config_path: Optional[str] = None):
    """
    Main function to run all experiments and save results, plots and logs.
    """
    config = load_config(config_path or os.environ.get('ROTATION_CONFIG'))
    results_dir = config['results_dir']
    os.makedirs(os.path.join(results_dir, 'visualizations'), exist_ok=True)
    os.makedirs(os.path.join(results_dir, 'logs'), exist_ok=True)
    setup_logging(os.path.join(results_dir, 'logs', 'experiment.log'))

    logger.info("=== Starting Rotation Experiments ===")
    logger.info(f"Configuration: {config}")

    df = run_all(config)
    df.to_csv(os.path.join(results_dir, 'rotations.csv'), index=False)

    summary = summarize_results(df)
    save_results(summary.to_dict(orient='records'), os.path.join(results_dir, 'summary.json'))
    save_results(bound_violation_tests(df), os.path.join(results_dir, 'bound_tests.json'))
    plot_rotations(df, os.path.join(results_dir, 'visualizations', 'rotations.png'))

    rng = np.random.default_rng(config['seed'])
    usage = {algorithm: resource_usage_analysis(algorithm, max(config['sizes']), rng)
             for algorithm in config['algorithms']}
    save_results(usage, os.path.join(results_dir, 'resource_usage.json'))

    logger.info("=== All experiments completed successfully! ===")


if __name__ == "__main__":
    main()
