[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "authoperator"
version = "0.1.0"
description = "Health checks, proxy matching and configuration helpers for a cluster OAuth server"
requires-python = ">=3.10"
keywords = ["oauth", "authentication", "proxy", "no_proxy", "readiness", "cluster"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration :: Authentication/Directory",
]
dependencies = [
    "httpx",
    "idna",
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["authoperator"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
