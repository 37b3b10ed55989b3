"""Packaging for fim: board persistence, crash recovery and text export."""

from setuptools import find_packages, setup

setup(
    name="fim-board",
    version="0.1.0",
    description="Board document container codec, crash recovery and text/RTF/OPML export",
    python_requires=">=3.11",
    package_dir={"": "src"},
    packages=find_packages("src"),
    install_requires=[
        "click>=8.1",
        "rich>=13.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": ["fim=fim.cli:cli"],
    },
)
