#!/usr/bin/env python3
"""vmctl - Setup"""

from setuptools import setup, find_packages

with open("requirements.txt") as f:
    requirements = [line for line in f.read().splitlines() if line and not line.startswith("#")]

setup(
    name="vmctl",
    version="1.0.0",
    description="VM lifecycle control and per-user quotas for KVM/libvirt hosts",
    author="vmctl Team",
    packages=find_packages(include=["vmctl", "vmctl.*"]),
    package_data={"vmctl": ["stubs/instances/*.j2"]},
    include_package_data=True,
    install_requires=requirements,
    extras_require={
        "libvirt": ["libvirt-python>=9.0"],
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "vmctl=vmctl.main:main",
        ],
    },
    python_requires=">=3.9",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
)
