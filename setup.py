#!/usr/bin/env python3
"""
Setup script for pqstream - parquet and topic streaming pipes.
"""

from pathlib import Path
from setuptools import setup, find_packages

# Read README for long description
this_directory = Path(__file__).parent
readme_path = this_directory / "README.md"
long_description = ""
if readme_path.exists():
    long_description = readme_path.read_text()

setup(
    name="pqstream",
    version="0.1.0",
    description="Stream parquet rows as JSON and forward topic records to topics, OTLP collectors and tables",
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="Apache-2.0",

    packages=find_packages(exclude=["tests*", "examples*", "docs*"]),
    include_package_data=True,

    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ],

    python_requires=">=3.9",

    install_requires=[
        "pyarrow>=10.0.0",  # Parquet decoding and chunk writing
        "aiokafka>=0.8.0",  # Topic source and sink
        "duckdb>=0.9.0",  # Analytical table sink
        "httpx>=0.24.0",  # OTLP/HTTP client
        "protobuf>=4.0.0",
        "opentelemetry-proto>=1.20.0",  # OTLP metrics messages
        "orjson>=3.9.0",
        "prometheus-client>=0.19.0",
        "rich>=12.0.0",
        "typer>=0.7.0",
    ],

    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
        ],
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ],
    },

    # Entry points for command-line scripts
    entry_points={
        "console_scripts": [
            "pqstream = pqstream.cli:main",
        ],
    },

    zip_safe=False,
)
