[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "boltproto"
version = "0.1.0"
description = "Bolt protocol building blocks: PackStream encoding, message hydration, connection pooling and transaction retry logic"
requires-python = ">=3.10"
dependencies = []
keywords = ["bolt", "packstream", "graph database", "connection pool", "retry"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["boltproto"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
