"""
logshades - Query and tail logs from Graylog, Elasticsearch and Google Cloud Logging
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="logshades",
    version="1.0.0",
    author="logshades",
    description="Query and tail logs from Graylog, Elasticsearch and Google Cloud Logging",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/logshades/logshades",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        "aiohttp>=3.9.0",
        "click>=8.1.0",
        "rich>=13.0.0",
        "jinja2>=3.1.0",
        "keyring>=24.0.0",
        "grpcio>=1.60.0",
        "google-auth>=2.25.0",
        "google-cloud-logging>=3.9.0",
        "google-cloud-audit-log>=0.2.5",
        "protobuf>=4.21.0",
        "requests>=2.31.0",
        "certifi>=2023.7.22",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "black>=23.0.0",
            "ruff>=0.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "logshades=logshades.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: System :: Logging",
        "Topic :: System :: Monitoring",
    ],
    keywords="logs graylog elasticsearch google-cloud-logging tail cli",
)
