"""
Pipeline config loader — concurrency limits, retry policy, gate thresholds.

YAML file with in-memory cache and hardcoded fallback if the file is missing,
same as the other stage configs.
"""
import copy
import logging
import os

import yaml

from leaddrip.services.retry import RetryPolicy

logger = logging.getLogger('pipeline.config')


_pipeline_config = None


def _default_config():
    """Hardcoded fallback if YAML is missing."""
    return {
        'version': 'default',
        'limits': {
            'search_concurrency': 5,
            'candidate_concurrency': 5,
            'max_queries': 50,
            'max_leads_per_run': 50,
        },
        'retry': {'max_attempts': 3, 'base_delay': 1.0, 'backoff_factor': 2.0},
        'run': {'budget_seconds': 280, 'launch_cutoff_seconds': 20, 'grace_seconds': 5},
        'search': {'max_results': 10, 'search_depth': 'basic', 'exclude_domains': []},
        'extraction': {'batch_size': 20, 'min_candidate_confidence': 0.6, 'max_attempts': 3},
        'evidence': {
            'pages': ['/', '/about', '/blog', '/careers'],
            'max_search_results_per_domain': 5,
            'max_chunks_per_page': 8,
            'max_chunks_per_signal': 8,
        },
        'gate': {
            'min_confidence': 0.45,
            'disqualifier_confidence': 0.5,
            'signal_confidence_floor': 0.5,
        },
    }


def load_pipeline_config() -> dict:
    """Load pipeline config from YAML, falling back to defaults section by section."""
    global _pipeline_config
    if _pipeline_config is not None:
        return _pipeline_config

    config = _default_config()
    config_path = os.path.join(os.path.dirname(__file__), 'pipeline_config.yaml')
    try:
        with open(config_path, 'r') as f:
            loaded = yaml.safe_load(f) or {}
        for section, values in loaded.items():
            if isinstance(values, dict) and isinstance(config.get(section), dict):
                config[section].update(values)
            else:
                config[section] = values
        logger.info("Pipeline config loaded from YAML (version=%s)", config.get('version', '?'))
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Pipeline config YAML unavailable (%s), using defaults", e)

    _pipeline_config = config
    return _pipeline_config


def get_section(name: str) -> dict:
    return copy.deepcopy(load_pipeline_config().get(name, {}))


def get_retry_policy() -> RetryPolicy:
    cfg = get_section('retry')
    return RetryPolicy(
        max_attempts=int(cfg.get('max_attempts', 3)),
        base_delay=float(cfg.get('base_delay', 1.0)),
        backoff_factor=float(cfg.get('backoff_factor', 2.0)),
    )


def reset_cache():
    """Reset the in-memory cache (useful for testing)."""
    global _pipeline_config
    _pipeline_config = None
