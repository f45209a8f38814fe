import os
import tomllib
from setuptools import setup, find_packages

PROJECT_ROOT = os.path.abspath(os.path.dirname(__file__))

# Parse version from pyproject.toml so release bumps need only modify that file
PYPROJECT_PATH = os.path.join(PROJECT_ROOT, "pyproject.toml")
with open(PYPROJECT_PATH, "rb") as fp:
    VERSION = tomllib.load(fp)["project"]["version"]

setup(
    name="milvue-batch",
    version=VERSION,
    packages=find_packages(include=["milvue_batch", "milvue_batch.*"]),
    python_requires=">=3.11",
    install_requires=[
        "requests>=2.20",
        "urllib3>=1.26",
        "PyYAML>=5.4",
        "pydantic>=2.0",
        "pydicom>=3.0",
        "click>=8.0",
        "structlog>=23.1",
        "rich>=13.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "milvue-batch=milvue_batch.cli:main",
        ],
    },
)
