[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tng"
version = "2.2.1"
description = "Tunnel gateway utilities: endpoint matching, stream forwarding, HTTP request inspection, HTTP/2 streams and iptables rule management"
requires-python = ">=3.10"
dependencies = [
    "h2",
]
keywords = ["tunnel", "gateway", "proxy", "iptables", "http2", "asyncio"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["tng"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
