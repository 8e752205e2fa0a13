#!/usr/bin/env python

from setuptools import setup, find_namespace_packages

setup(
    name="beacon-discovery",
    version="1.0.0",
    description="Multicast service announcement and discovery for local networks",
    author="Intangible Realities Lab",
    author_email="m.oconnor@bristol.ac.uk",
    url="https://gitlab.com/intangiblerealities/",
    packages=find_namespace_packages("src", include="beacon.*"),
    package_dir={"": "src"},
    package_data={"": ["py.typed"]},
    python_requires=">=3.10",
    install_requires=("psutil<7",),
    extras_require={
        "test": ("pytest", "pytest-timeout", "hypothesis", "mock"),
    },
    entry_points={
        "console_scripts": ["beacon-list=beacon.discovery.list_cli:main"],
    },
)
