[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "csirotation"
version = "1.2.4"
description = "Secret rotation building blocks: service account token caching, a labelled secret cache, a rate-limited work queue and rotation metrics"
requires-python = ">=3.10"
dependencies = []
keywords = ["kubernetes", "csi", "secrets", "rotation", "tokens", "workqueue", "metrics"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["csirotation"]

[tool.pytest.ini_options]
addopts = "-ra"
