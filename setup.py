"""
Taskflow setup.py — Package configuration and CLI entry point.
"""

from setuptools import find_packages, setup

setup(
    name="taskflow",
    version="0.3.0",
    description="Taskflow — task lifecycle, time tracking and weekly planning core",
    packages=find_packages(include=["taskflow", "taskflow.*"]),
    python_requires=">=3.11",
    entry_points={
        "console_scripts": [
            "taskflow=taskflow.cli:main",
        ],
    },
    install_requires=[
        "sqlalchemy>=2.0",
        "psycopg2-binary>=2.9",
        "pydantic>=2.5",
        "redis>=5.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
        ],
    },
)
