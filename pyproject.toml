[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "virtprov"
version = "0.1.0"
description = "Helpers for provisioning virtual machines: volume definitions, disk images, host capabilities, networking and XSLT transforms"
requires-python = ">=3.10"
dependencies = [
    "lxml",
    "requests",
]
keywords = ["virtualization", "qemu", "kvm", "qcow2", "storage-volume", "xslt", "provisioning"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
    "Topic :: System :: Emulators",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["virtprov"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
