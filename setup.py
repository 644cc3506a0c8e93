"""Setup configuration for videoctl."""

from setuptools import setup, find_packages

setup(
    name="videoctl",
    version="1.0.0",
    description="Batch CLI for xAI Grok Imagine Video generation and editing",
    author="Your Name",
    packages=find_packages(include=["videoctl", "videoctl.*"]),
    install_requires=[
        "click>=8.1.7",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "httpx>=0.25.0",
        "boto3>=1.28.0",
        "mcp>=1.2.0,<2",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.21",
        ],
    },
    entry_points={
        "console_scripts": [
            "videoctl=videoctl.cli:cli",
            "videoctl-mcp=videoctl.server:main",
        ],
    },
    python_requires=">=3.10",
)
