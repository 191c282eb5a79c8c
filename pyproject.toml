[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "errscope"
version = "0.24.0"
description = "Error-reporting building blocks: scopes and events, source context, a sampling profiler, span bookkeeping, OpenTelemetry span mapping and a logging handler."
requires-python = ">=3.10"
dependencies = []
keywords = ["error-reporting", "events", "breadcrumbs", "profiling", "spans", "opentelemetry", "logging"]
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
    "Topic :: Software Development :: Bug Tracking",
    "Topic :: System :: Logging",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["errscope"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
