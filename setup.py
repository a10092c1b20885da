#!/usr/bin/env python
"""
Merchandising Insights Engine Setup
"""

from setuptools import setup, find_packages

requirements = [
    "polars>=0.20.0",
    "fastexcel>=0.9.0",
    "numpy>=1.26.0",
    "pydantic>=2.5.0",
    "pydantic-settings>=2.1.0",
    "structlog>=23.2.0",
    "fastapi>=0.109.0",
    "uvicorn[standard]>=0.25.0",
    "gunicorn>=21.2.0",
    "python-multipart>=0.0.6",
    "sqlalchemy[asyncio]>=2.0.23",
    "asyncpg>=0.29.0",
    "redis>=5.0.1",
    "openai>=1.12.0",
]

setup(
    name="merch-insights",
    version="1.0.0",
    description="Merchandising insights engine for marketplace sales reports",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Framework :: FastAPI",
        "Topic :: Scientific/Engineering :: Information Analysis",
    ],
    python_requires=">=3.11",
    install_requires=requirements,
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
            "pytest-asyncio>=0.21.0",
            "aiosqlite>=0.19.0",
            "httpx>=0.26.0",
        ],
    },
    include_package_data=True,
    zip_safe=False,
    keywords=[
        "ecommerce",
        "merchandising",
        "analytics",
        "fastapi",
        "polars",
        "redis",
    ],
)
