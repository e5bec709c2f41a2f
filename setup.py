"""
Setup script for serial-ingestor and the bundled queue-client library
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="serial-ingestor",
    version="1.0.0",
    author="YuDev",
    description="Frames telegrams out of a serial byte stream and publishes them to Redis Streams",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["queue_client", "queue_client.*", "serial_ingestor", "serial_ingestor.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
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
        "pyserial>=3.5",
        "prometheus-client>=0.17.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.1.0",
            "black>=23.0.0",
            "isort>=5.12.0",
            "mypy>=1.7.0",
            "flake8>=6.1.0",
        ],
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "serial-ingestor=serial_ingestor.app:cli",
        ],
    },
    include_package_data=True,
    zip_safe=False,
)
