"""Setup configuration for secret-rotator."""

import os
import sys

from setuptools import find_packages, setup

# Get version from package
here = os.path.abspath(os.path.dirname(__file__))
sys.path.insert(0, here)
try:
    from secretrotator import __author__, __version__
except ImportError:
    __version__ = "0.1.0"
    __author__ = "Secret Rotator Team"

# Get the long description from the README file
with open(os.path.join(here, "README.md"), encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="secret-rotator",
    version=__version__,
    description="Automatic secret rotation for HashiCorp Vault, AWS Secrets Manager and local files",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author=__author__,
    keywords="secrets rotation vault aws secretsmanager cli",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"secretrotator": ["templates/*.j2"]},
    python_requires=">=3.9",
    install_requires=[
        "click>=8.0.0",
        "pyyaml>=6.0",
        "jinja2>=3.0.0",
        "jsonschema>=4.0.0",
        "hvac>=1.0.0",
        "requests>=2.25.0",
        "boto3>=1.26.0",
        "botocore>=1.29.0",
        "psycopg2-binary>=2.9",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "moto[secretsmanager]>=5.0.0",
            "responses>=0.23.0",
            "ruff>=0.12.0",
            "mypy>=0.991",
        ],
    },
    entry_points={
        "console_scripts": [
            "secret-rotator=secretrotator.cli:cli",
        ],
    },
)
