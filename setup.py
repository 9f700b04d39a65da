#!/usr/bin/env python3
"""
Setup script for vnc-desktop-keeper package
"""
from setuptools import setup
import os

# Read README for long description
readme_path = os.path.join(os.path.dirname(__file__), "README.md")
long_description = ""
if os.path.exists(readme_path):
    with open(readme_path, "r", encoding="utf-8") as f:
        long_description = f.read()

setup(
    name="vnc-desktop-keeper",
    version="0.1.0",
    description="Keeps a Docker VNC desktop container alive and runs a workload inside it",
    long_description=long_description,
    long_description_content_type="text/markdown",
    py_modules=[
        "desktop_config",
        "desktop_deploy",
        "docker_cli",
        "engine_setup",
        "lifecycle",
        "readiness",
        "retry",
        "supervisord_conf",
        "view_container_logs",
        "workload",
    ],
    python_requires=">=3.9",
    install_requires=[
        "httpx>=0.24.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    entry_points={
        "console_scripts": [
            "desktop-keeper=desktop_deploy:cli",
            "desktop-keeper-logs=view_container_logs:main",
        ],
    },
)
