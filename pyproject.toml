[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "cinegestion"
version = "0.1.0"
description = "Cinema management client and server speaking a simple line-based protocol"
requires-python = ">=3.10"
dependencies = []
keywords = ["cinema", "tickets", "booking", "sessions", "client-server"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: End Users/Desktop",
    "Natural Language :: Spanish",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business :: Scheduling",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
cinegestion-client = "cinegestion.menu:main"

[tool.hatch.build.targets.wheel]
packages = ["cinegestion"]

[tool.pytest.ini_options]
addopts = "-ra"
