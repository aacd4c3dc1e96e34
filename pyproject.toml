[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "wasmbus"
version = "0.1.0"
description = "Data types, msgpack serialization, logging and an rpc client for wasmbus messages between actors and capability providers"
requires-python = ">=3.10"
dependencies = [
    "msgpack",
]
keywords = ["rpc", "msgpack", "actors", "capability-provider", "lattice", "wasmbus"]
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
    "Topic :: System :: Distributed Computing",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["wasmbus"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
