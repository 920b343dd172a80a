"""Setup configuration for the tangram-engine package."""

from setuptools import find_packages, setup

setup(
    name="tangram-engine",
    version="0.1.0",
    packages=find_packages(include=["tangram_engine", "tangram_engine.*"]),
    install_requires=[
        "numpy",
        "fastapi",
        "uvicorn",
        "pydantic",
        "pydantic-settings",
    ],
    extras_require={
        "dev": [
            "pytest",
            "pytest-cov",
            "httpx",
            "black",
            "flake8",
            "mypy",
            "isort",
        ],
    },
)
