[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "logplumb"
version = "0.1.0"
description = "Collects application logs from container task sockets and routes log envelopes to app and firehose sinks."
requires-python = ">=3.10"
dependencies = []
keywords = [
    "logging",
    "log-routing",
    "firehose",
    "sinks",
    "containers",
    "agent",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Logging",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
logplumb-deaagent = "logplumb.deaagent_cli:main"

[tool.hatch.build.targets.wheel]
packages = ["logplumb"]

[tool.hatch.build.targets.sdist]
include = ["logplumb", "tests", "pyproject.toml", "README.md"]

[tool.pytest.ini_options]
addopts = "-ra"
