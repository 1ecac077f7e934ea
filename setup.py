"""Setup script for pgsession."""

from setuptools import find_packages, setup

setup(
    name="pgsession",
    version="1.0.0",
    description="Resilient PostgreSQL connection and session management for ETL loaders",
    packages=find_packages(include=["pgsession", "pgsession.*"]),
    python_requires=">=3.11",
    install_requires=[
        "psycopg2-binary>=2.9.9",
        "python-dotenv>=1.0.0",
        "structlog>=24.1.0",
        "pyyaml>=6.0.1",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "tenacity>=8.2.3",
        "prometheus-client>=0.19.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
        ],
    },
)
