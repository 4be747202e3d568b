[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "scckit"
version = "0.1.0"
description = "Security context constraint matching, defaulting and validation for pod specifications"
requires-python = ">=3.10"
dependencies = []
keywords = ["security", "security-context", "constraints", "seccomp", "selinux", "sysctl", "pods"]
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
    "Topic :: Security",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["scckit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
