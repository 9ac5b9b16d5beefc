# webpcompressor

Recompresses animated WebP files. `webpmux` pulls each frame out of the
animation. `cwebp` then re-encodes each frame at the quality you choose, and
`webpmux` puts the frames back together into a new animation. The new
animation keeps the frame offsets, durations, dispose methods and blend
methods of the original.

## Requirements

- Python 3.10 or newer
- The libwebp command-line tools `webpmux` and `cwebp`. They must be on your
  `PATH` or in the directory named by `WEBP_TOOLS_PATH`. The program checks for
  both tools at start-up and stops if either one is missing.

## Installation

```
pip install .
```

## Usage

```
webpcompressor <input.webp> <quality[0-100]> <output.webp>
```

Example:

```
webpcompressor animation.webp 40 compressed.webp
```

A quality between 30 and 50 usually makes the file much smaller. Each frame is
encoded with method 6, filter strength 100 and the `photo` preset. The alpha
quality is half the quality you give. Metadata is removed. Up to four frames
are encoded at the same time.

When the run finishes, the command prints four things:

- the original size and the compressed size
- the compressed size as a percentage of the original
- the processing time
- the number of frames processed

The command exits with status 1 in any of these cases:

- there are too few arguments (the usage text is printed)
- the quality is not a whole number, or is outside 0-100
- the input file is missing or larger than 100 MB
- a tool fails

Each tool call may run for at most 300 seconds.

## Configuration

The program reads these environment variables at start-up:

| Variable         | Effect                                                     |
|------------------|------------------------------------------------------------|
| `WEBP_TOOLS_PATH`| Directory in which `webpmux` and `cwebp` are looked for    |
| `WEBP_LOG_LEVEL` | `debug`, `info`, `warn` or `error`; any other value stops the program |
| `WEBP_LOG_FILE`  | Append the log to this file instead of writing it to stdout |

Some other variables are read into `Config` and checked, but the compression
command does not use them:

- `WEBP_MAX_CONCURRENCY`
- `WEBP_DEFAULT_QUALITY`
- `WEBP_COMMAND_TIMEOUT`
- `WEBP_ENABLE_PARALLEL`
- `WEBP_PRESERVE_METADATA`
- `WEBP_DEFAULT_PRESET`
- `WEBP_MAX_MEMORY`

If `WEBP_DEFAULT_PRESET` is not one of `default`, `photo`, `picture`,
`drawing`, `icon` or `text`, the program stops at start-up.

## Using it as a library

```python
from webpcompressor.cli import build_application

app = build_application()
result = app.run(["in.webp", "40", "out.webp"])
print(result.original_size, result.compressed_size, result.compression_ratio)
```

The parts can also be used on their own:

- `webpcompressor.config.default_config()` returns a `Config`.
  `Config.load_from_env()` applies the environment variables to it, and
  `Config.validate()` checks it.
- `webpcompressor.service.WebPService` runs the compression steps one at a time:
  `parse_animation`, `extract_frames`, `compress_frames` and
  `assemble_animation`. `compress_animation` runs all of them and returns a
  `CompressResult`.
- `webpcompressor.tool_executor.ToolExecutorFactory` builds the object that
  runs the tools. `webpcompressor.file_manager.FileManagerFactory` builds the
  object that handles files.
- `webpcompressor.domain.default_compression_config(quality)` gives the encoder
  settings that the command uses.

When something fails, the package raises `webpcompressor.errors.AppError`. It
has a `type`, a `code`, a `message` and, where one exists, a `cause`.

## What it does not do

The package does not include the WebP tools; you must install them separately.
The command compresses one file per run. It has no command for showing
information about a file.

## Tests

```
pip install .[test]
pytest
```