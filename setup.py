"""Offline order queue for point-of-sale order entry.

Orders created while offline, or rejected by the backend, are stored locally
and delivered exactly once with bounded, exponentially backed-off retries.
"""

from pathlib import Path

from setuptools import find_packages, setup

setup(
    name="posqueue",
    packages=find_packages(include=["posqueue"]),
    version="0.1.0",
    description="Offline order queue with guaranteed delivery for POS order entry",
    long_description=Path("README.md").read_text(encoding="utf-8"),
    long_description_content_type="text/markdown",
    license="MIT",
    python_requires=">=3.12",
    install_requires=[
        "pydantic>=2.10.0",
        "pydantic-settings>=2.6.0",
        "structlog>=25.5.0",
        "aiosqlite>=0.20.0",
        "orjson>=3.10.0",
        "httpx>=0.27.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.24.0",
            "hypothesis>=6.100.0",
        ],
    },
    entry_points={
        "console_scripts": ["posqueue=posqueue.__main__:main"],
    },
    setup_requires=[],
    test_suite="tests",
)
