#!/usr/bin/env python3
"""
Setup configuration for playdeck
A multi-user music library server with a line-based TCP protocol
"""

from setuptools import setup, find_packages

# Read README for long description
with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

# Core requirements (always installed)
core_requirements = [
    "bcrypt>=4.0.1",
    "click>=8.1.7",
    "mutagen>=1.47.0",
    "rich-click>=1.7.0",
    "pyyaml>=6.0.1",
    "tqdm>=4.66.1",
]

setup(
    name="playdeck",
    version="1.0.0",
    author="playdeck Team",
    description="Multi-user music library server: catalog, playlists, social sharing and per-connection playback",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["playdeck", "playdeck.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Environment :: No Input/Output (Daemon)",
        "Intended Audience :: End Users/Desktop",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Multimedia :: Sound/Audio",
        "Topic :: Multimedia :: Sound/Audio :: Players",
    ],
    python_requires=">=3.10",
    install_requires=core_requirements,
    extras_require={
        "dev": [
            "pytest>=7.4.3",
            "black>=23.11.0",
            "flake8>=6.1.0",
            "mypy>=1.7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "playdeck=playdeck.cli:main",
        ],
    },
    include_package_data=True,
    keywords="music library server playlists tcp protocol",
)
