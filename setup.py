"""Setup script for the Account Quota Service"""

from setuptools import setup, find_packages

setup(
    name="account-quota-service",
    version="1.0.0",
    description="Plan quota and container resource accounting service",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.100.0",
        "uvicorn[standard]>=0.23.0",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "sqlalchemy[asyncio]>=2.0.0",
        "alembic>=1.12.0",
        "aiosqlite>=0.19.0",
        "redis>=5.0.0",
        "celery>=5.3.0",
        "structlog>=23.1.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.1.0",
            "hypothesis>=6.82.0",
            "httpx>=0.24.0",
        ]
    },
)
