[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "webpcompressor"
version = "2.0.0"
description = "Recompress animated WebP files frame by frame with the libwebp command-line tools"
requires-python = ">=3.10"
dependencies = []
keywords = ["webp", "animation", "compression", "cwebp", "webpmux", "image"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: End Users/Desktop",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Multimedia :: Graphics :: Graphics Conversion",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
webpcompressor = "webpcompressor.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["webpcompressor"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
