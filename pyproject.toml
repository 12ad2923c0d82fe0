[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "yinx"
version = "0.1.0"
description = "Penetration testing companion core: content-addressed capture storage, sessions and hybrid retrieval"
requires-python = ">=3.10"
keywords = [
    "pentest",
    "security",
    "capture",
    "blob-storage",
    "blake3",
    "sqlite",
    "hybrid-search",
    "reciprocal-rank-fusion",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Information Technology",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Security",
    "Topic :: Database",
    "Typing :: Typed",
]
dependencies = [
    "zstandard",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["yinx"]

[tool.hatch.build.targets.sdist]
include = ["yinx", "tests"]

[tool.pytest.ini_options]
addopts = "-ra"
