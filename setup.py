#!/usr/bin/env python3
"""Setup script for ddp_telemetry package."""

from setuptools import setup, find_packages

setup(
    name="ddp-telemetry",
    version="0.1.0",
    description="Metric synchronization, status logging and checkpoint selection for distributed training",
    author="DDP Telemetry Team",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.8",
    install_requires=[
        "torch>=2.4.0",
        "numpy>=1.26.4",
        "pandas>=2.2.2",
    ],
    extras_require={
        "dev": [
            "pytest>=6.0.0",
            "black>=21.0.0",
            "flake8>=3.8.0",
            "mypy>=0.800",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
)
