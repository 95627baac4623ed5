#!/usr/bin/env python3
"""Setup script for the work item revision import tool.
"""

from setuptools import find_namespace_packages, setup

# Read requirements from requirements.txt file
with open("requirements.txt") as f:
    requirements = f.read().splitlines()

# Remove any comments or blank lines from requirements
requirements = [line for line in requirements if line and not line.startswith("#")]

setup(
    name="workitem-import",
    version="0.1.0",
    description="Replay exported work item revision histories into Azure DevOps / TFS",
    packages=find_namespace_packages(include=["src", "src.*"]),
    include_package_data=True,
    python_requires=">=3.11,<4.0",
    install_requires=requirements,
    extras_require={
        "test": [
            "pytest>=8.0",
        ],
    },
    license="MIT",  # SPDX license identifier
    entry_points={
        "console_scripts": [
            "wi-import=src.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: System Administrators",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
    ],
)
