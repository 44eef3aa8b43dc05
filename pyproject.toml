[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "opsuccinct"
version = "0.1.0"
description = "Host-side utilities for OP Stack validity proving: boot info, witnesses, block ranges, chain data fetching and execution statistics"
requires-python = ">=3.10"
keywords = ["optimism", "op-stack", "rollup", "ethereum", "json-rpc", "abi"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries",
]
dependencies = [
    "httpx",
    "pycryptodome",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["opsuccinct"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
