[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "relarchive"
version = "0.1.0"
description = "Aligned byte buffers, archive validation contexts and a trait-object implementation registry"
requires-python = ">=3.10"
dependencies = []
keywords = ["archive", "serialization", "zero-copy", "validation", "alignment", "relative-pointer"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Typing :: Typed",
    "Topic :: Software Development :: Libraries",
]

[project.optional-dependencies]
test = ["pytest", "hypothesis"]

[tool.hatch.build.targets.wheel]
packages = ["relarchive"]

[tool.pytest.ini_options]
addopts = "-ra"
