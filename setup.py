#!/usr/bin/env python3
"""
Setup configuration for Versualizer
Time-synchronized karaoke lyrics for the music you are playing
"""

from pathlib import Path

from setuptools import setup, find_packages

# Read README for long description (absent in some source checkouts)
readme = Path(__file__).parent / "README.md"
long_description = readme.read_text(encoding="utf-8") if readme.exists() else ""

# Core requirements (always installed)
core_requirements = [
    "spotipy>=2.23.0",
    "pyyaml>=6.0.1",
    "colorama>=0.4.6",
    "python-dotenv>=1.0.0",
    "aiohttp>=3.9.1",
]

setup(
    name="versualizer",
    version="0.1.0",
    author="Versualizer Team",
    description="Time-synchronized lyrics for the music you are playing",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["versualizer", "versualizer.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Environment :: Console",
        "Intended Audience :: End Users/Desktop",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Multimedia :: Sound/Audio",
    ],
    python_requires=">=3.10",
    install_requires=core_requirements,
    extras_require={
        "dev": [
            "pytest>=7.4.3",
            "pytest-asyncio>=0.21.1",
            "black>=23.11.0",
            "flake8>=6.1.0",
            "mypy>=1.7.0",
        ],
    },
    include_package_data=True,
    keywords="spotify lyrics karaoke lrc lrclib synced-lyrics",
)
