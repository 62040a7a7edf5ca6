[build-system]
requires = ["setuptools>=64"]
build-backend = "setuptools.build_meta"

[project]
name = "segmem"
version = "0.1.0"
description = "Segmented memory server for a teaching operating-system simulator"
requires-python = ">=3.10"
dependencies = []
keywords = ["segmentation", "memory", "operating-system", "simulator", "compaction"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Operating System",
    "Topic :: Education",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
segmem = "segmem.server:main"

[tool.setuptools.packages.find]
include = ["segmem*"]

[tool.pytest.ini_options]
addopts = "-ra"
