"""
Setup script for announce-bot
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="announce-bot",
    version="1.0.0",
    description="Chat announcement relay with per-user subscriptions",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["announce_bot", "announce_bot.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.10",
    install_requires=[
        "redis[hiredis]>=5.0.1",
        "pydantic>=2.5.0",
        "PyYAML>=6.0",
        "fastapi>=0.110.0",
        "uvicorn>=0.27.0",
        "httpx>=0.27.0",
        "slixmpp>=1.10.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.23.0",
            "pytest-cov>=4.1.0",
            "black>=23.0.0",
            "isort>=5.12.0",
            "mypy>=1.7.0",
            "flake8>=6.1.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "announce-bot=announce_bot.app:cli",
        ],
    },
    include_package_data=True,
    zip_safe=False,
)
