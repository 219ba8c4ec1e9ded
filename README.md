# gbdtcore

`gbdtcore` provides the core pieces of a histogram-based gradient boosted
decision tree learner. It covers split search over binned features, row
partitioning by leaf, loss gradients, and the collective communication
(all-reduce, all-gather, reduce-scatter) that is needed to run these steps
across several machines over TCP.

## Installation

```
pip install .
```

To install the test dependencies and run the tests:

```
pip install ".[test]"
pytest
```

## Modules

### `gbdtcore.split_info`

- `SplitInfo` is a dataclass that records a candidate split: `feature`,
  `threshold`, `left_output`, `right_output`, `gain`, `left_count`,
  `right_count`, and the gradient and hessian sums of each side.
  `reset()` sets `feature` to -1 and `gain` to minus infinity.
  `a > b` compares by gain. A NaN gain counts as minus infinity. When the
  gains are equal, the smaller feature index wins, and feature -1 counts
  as the largest.
- `to_bytes()` and `SplitInfo.from_bytes(data)` convert a split to and
  from a fixed-size record of `SplitInfo.SIZE` bytes.
- `max_reducer(src, dst)` compares packed split records one by one and
  writes into the writable buffer `dst` each record of `src` that is better
  than the one already there.

### `gbdtcore.feature_histogram`

`FeatureHistogram(bins, num_bins, feature_idx, min_num_data_one_leaf,
min_sum_hessian_one_leaf)` holds the per-bin gradient sums, hessian sums
and counts for one feature. `bins` gives the bin of every row.

- `construct(data_indices, num_data, sum_gradients, sum_hessians,
  ordered_gradients, ordered_hessians)` builds the histogram.
  `data_indices=None` means the first `num_data` rows.
- `set_sumup(...)` sets the leaf totals.
- `subtract(other)` derives a sibling's histogram from its parent's.
- `find_best_threshold()` scans the bins from right to left and returns a
  `SplitInfo`. Bins `<= threshold` go left. The histogram's `is_splittable`
  flag is updated as it scans.
- `size_of_histogram()`, `to_bytes()` and `from_bytes(data)` serialise the
  bin entries.

### `gbdtcore.data_partition`

`DataPartition(num_data, num_leaves)` keeps the row indices grouped by leaf.

- `init()` puts every row on leaf 0. If a bagged subset was given through
  `set_used_data_indices(...)`, only those rows are placed.
- `split(leaf, bins, threshold, right_leaf)` moves the rows whose bin is
  greater than `threshold` to `right_leaf`.
- `indices_on_leaf(leaf)`, `leaf_count(leaf)`, `leaf_begin(leaf)` and the
  `indices` property read the current layout.

### `gbdtcore.leaf_splits`

`LeafSplits(num_features, num_data)` holds the gradient and hessian sums of
one leaf and a `best_split_per_feature` list. It offers these ways to start
work on a leaf:

- `init_root(gradients, hessians)`
- `init_leaf(leaf, partition, gradients, hessians)`
- `init_from_partition(leaf, partition, sum_gradients, sum_hessians)`
- `init_sums(sum_gradients, sum_hessians)`

`reset()` marks the leaf as absent, with `leaf_index == -1`.

### `gbdtcore.objectives`

`create_objective_function(name, config)` accepts `"regression"`,
`"binary"` or `"multiclass"` and raises `ValueError` for any other name.
`ObjectiveConfig` has the fields `is_unbalance`, `sigmoid` and `num_class`.

- `RegressionL2Loss` is squared error.
- `BinaryLogloss` takes labels 0 and 1 and a `sigmoid` that must be greater
  than zero. `is_unbalance` reweights the negative class by
  positives / negatives.
- `MulticlassLogloss` uses softmax. Its scores are laid out class by class,
  in `num_class * num_data` entries.

Call `init(labels, weights)` first. After that, `get_gradients(score)`
returns `(gradients, hessians)` as NumPy arrays. `softmax(values)` is
exported as well.

### `gbdtcore.topology`

- `BruckMap.construct(rank, num_machines)` gives the peers for each step of
  a Bruck all-gather.
- `RecursiveHalvingMap.construct(rank, num_machines)` gives the peers and
  block ranges for recursive-halving reduce-scatter. When the number of
  machines is not a power of two, trailing machines are paired. The roles
  are given by `RecursiveHalvingNodeType`: `NORMAL`, `GROUP_LEADER` or
  `OTHER`.

### `gbdtcore.sockets`

`TcpSocket` wraps a TCP socket. It sets 10 MiB send and receive buffers and
`TCP_NODELAY`.

- `bind` and `connect` return `False` on failure.
- `set_timeout` takes milliseconds.
- The class also offers `listen`, `accept`, `send`, `recv` and `close`, and
  it works as a context manager.

`get_local_ip_list()` returns this machine's IPv4 addresses.

### `gbdtcore.linkers`

- `NetworkConfig` has the fields `num_machines`, `local_listen_port`
  (default 12400), `time_out` (in minutes, default 120),
  `machine_list_filename`, `connect_retries` (default 20) and
  `connect_retry_delay` (in seconds, default 10.0).
- `parse_machine_list(path, num_machines)` reads the machine list.
- `Linkers` is the abstract byte transport. It has the members `rank`,
  `num_machines`, `bruck_map` and `recursive_halving_map`.
- `SocketLinkers(config)` opens the TCP connections that the two maps need.
  The smaller rank connects to the larger one. Each connection exchanges
  ranks first. It provides:
  - `send`
  - `recv`, which receives exactly the requested size
  - `send_recv`
  - `check_linker`
  - `close`, which is also called when it is used as a context manager

### `gbdtcore.network`

`Network(linkers)` provides the collectives:

- `allreduce(data, type_size, reducer)`
- `allgather(data)`
- `allgather_blocks(data, block_start, block_len)`
- `reduce_scatter(data, block_start, block_len, reducer)`

A reducer is called as `reducer(src_bytes, dst_view)` and must fold `src`
into the writable `dst` in place. Payloads smaller than 4096 bytes, or with
fewer elements than machines, are all-reduced through an all-gather.

## Example: objective gradients

```python
import numpy as np
from gbdtcore.objectives import ObjectiveConfig, create_objective_function

objective = create_objective_function("binary", ObjectiveConfig(sigmoid=1.0))
objective.init(labels=np.array([0.0, 1.0, 1.0, 0.0]), weights=None)
gradients, hessians = objective.get_gradients(np.zeros(4))
```

## Example: finding a split

```python
import numpy as np
from gbdtcore.feature_histogram import FeatureHistogram

bins = np.array([0, 1, 2, 3, 0, 1, 2, 3])
gradients = np.array([-1.0, -1.0, 1.0, 1.0, -1.0, -1.0, 1.0, 1.0])
hessians = np.ones(8)

histogram = FeatureHistogram(bins, num_bins=4, feature_idx=0,
                             min_num_data_one_leaf=1,
                             min_sum_hessian_one_leaf=1e-3)
histogram.construct(None, 8, gradients.sum(), hessians.sum(),
                    gradients, hessians)
best = histogram.find_best_threshold()
print(best.threshold, best.gain)
```

## Distributed use

Each machine reads a machine list file with one `ip port` line per machine.
A line containing `rank=N` sets the local rank. Without such a line, the
rank is found by matching the local addresses and `local_listen_port`
against the list, and a `ValueError` is raised if there is no match.

```python
from gbdtcore.linkers import NetworkConfig, SocketLinkers
from gbdtcore.network import Network
from gbdtcore.split_info import SplitInfo, max_reducer

config = NetworkConfig(num_machines=2, machine_list_filename="machines.txt")
with SocketLinkers(config) as linkers:
    network = Network(linkers)
    best = network.allreduce(SplitInfo().to_bytes(), SplitInfo.SIZE, max_reducer)
```

Every machine must call the same collectives in the same order.

## What this package does not do

The package provides building blocks only. It does not include:

- a tree learner or a training loop
- a tree model or prediction
- dataset loading or feature binning
- a ranking objective
- a command-line program

A caller has to combine `DataPartition`, `LeafSplits`, `FeatureHistogram`
and an objective into a training loop. The transport is TCP only.