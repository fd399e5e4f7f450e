[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "gatewayd"
version = "0.1.0"
description = "Plugin registry, hook chaining and object pool for a database gateway"
requires-python = ">=3.10"
keywords = ["plugins", "hooks", "registry", "pool", "gateway", "middleware"]
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
    "Topic :: Software Development :: Libraries :: Application Frameworks",
]
dependencies = [
    "packaging",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["gatewayd"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
