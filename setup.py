# setup.py
from setuptools import find_packages, setup

setup(
    name="coffee-finder",
    version="0.1.0",
    packages=find_packages(include=["coffee_finder", "coffee_finder.*"]),
    include_package_data=True,
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.110",
        "uvicorn[standard]>=0.27",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "SQLAlchemy[asyncio]>=2.0",
        "asyncpg>=0.29",
        "alembic>=1.13",
        "psycopg[binary]>=3.1",
        "httpx>=0.27",
        "structlog>=24.1",
        "sentry-sdk>=1.40",
        "python-dotenv>=1.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
            "aiosqlite>=0.19",
        ],
    },
)
