"""
Setup script for proficiency-engine.

Proficiency Engine tracks how well a typist knows each key. It serves
three roles:

1. Estimator - Bayesian accuracy and speed per key with credible intervals
2. Coach - Learning-state classification and practice interventions
3. Scheduler - Thompson-sampled priority and spaced-repetition intervals

The 'proficiency' command replays recorded sessions and prints reports.
"""

from setuptools import find_namespace_packages, setup

setup(
    name="proficiency-engine",
    version="1.0.0",
    description="Per-key typing proficiency engine with Bayesian estimates and spaced repetition",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_namespace_packages(include=["src", "src.*"]),
    py_modules=["config"],
    python_requires=">=3.11",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Database
        "sqlalchemy>=2.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "proficiency=src.cli.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Intended Audience :: Education",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
    ],
    keywords="typing proficiency bayesian spaced-repetition thompson-sampling",
)
