"""Setup script for the Sequence Progress Engine."""

from setuptools import setup, find_packages

setup(
    name="sequence-progress-engine",
    version="0.1.0",
    description="Completion ledger, unlock rules, streaks and experiments for ordered daily content",
    author="ML Roadmap Bootcamp",
    python_requires=">=3.10",
    packages=find_packages(include=["sequence_progress", "sequence_progress.*"]),
    install_requires=[
        line.strip()
        for line in open("requirements.txt")
        if line.strip() and not line.startswith("#") and not line.startswith("git+")
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.23.0",
            "httpx>=0.27.0",
        ],
        "dev": [
            "black>=23.0.0",
            "isort>=5.12.0",
            "flake8>=6.0.0",
            "mypy>=1.4.0",
            "pytest-cov>=4.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "sequence-progress-api=sequence_progress.api.main:main",
        ]
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
