"""
Setup script for UDL Webhooks
"""
from setuptools import setup, find_packages

setup(
    name="udl-webhooks",
    version="0.1.0",
    packages=find_packages(include=["udl", "udl.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.115.0",
        "starlette>=0.40.0",
        "uvicorn>=0.30.0",
        "pydantic>=2.8.0",
        "python-dotenv>=1.0.1",
        "httpx>=0.27.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0.0",
            "pytest-asyncio>=0.23.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "udl-webhooks=udl.server:main",
        ],
    },
    description="UDL Webhooks - inbound plugin webhooks, debounced batching and outbound notifications",
    author="UDL Team",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
