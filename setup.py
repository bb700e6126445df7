"""
doccatalog setup.py — Package configuration and CLI entry point.
"""

from setuptools import find_packages, setup

setup(
    name="doccatalog",
    version="1.0.0",
    description="doccatalog — role-aware live document catalog",
    packages=find_packages(include=["doccatalog", "doccatalog.*"]),
    python_requires=">=3.11",
    entry_points={
        "console_scripts": [
            "doccatalog=doccatalog.cli:main",
        ],
    },
    install_requires=[
        "sqlalchemy>=2.0",
        "pydantic>=2.5",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
        ],
    },
)
