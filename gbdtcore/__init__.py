"""Histogram split search, objectives and TCP collectives for gradient boosted trees."""

__version__ = "0.1.0"

__all__ = [
    "data_partition",
    "feature_histogram",
    "leaf_splits",
    "linkers",
    "network",
    "objectives",
    "sockets",
    "split_info",
    "topology",
]