[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "gbdtcore"
version = "0.1.0"
description = "Building blocks for histogram-based gradient boosted decision trees: split search, objectives and collective communication over TCP."
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = [
    "gradient boosting",
    "decision trees",
    "histogram",
    "allreduce",
    "reduce-scatter",
    "distributed training",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Artificial Intelligence",
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["gbdtcore"]

[tool.hatch.build.targets.sdist]
include = ["gbdtcore", "tests", "README.md", "pyproject.toml"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
