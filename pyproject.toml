[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ocistore"
version = "0.1.0"
description = "A small in-memory OCI distribution registry served over HTTP"
requires-python = ">=3.10"
keywords = ["oci", "registry", "containers", "distribution", "http"]
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
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    "Framework :: AsyncIO",
]
dependencies = [
    "h11",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
ocistore = "ocistore.server:main"

[tool.hatch.build.targets.wheel]
packages = ["ocistore"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
