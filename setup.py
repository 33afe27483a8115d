"""
Solana Token Intel - Setup Configuration
Token data aggregation, gem and risk scoring, and recommender trust tracking for Solana
"""

from setuptools import setup, find_namespace_packages
import os

# Read the README file
with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

# Read requirements
def read_requirements(file):
    """Read requirements from file"""
    if os.path.exists(file):
        with open(file, 'r') as f:
            return [line.strip() for line in f if line.strip() and not line.startswith('#')]
    return []

setup(
    name="solana-token-intel",
    version="1.0.0",
    description="Solana token intelligence: multi-source aggregation, scoring and trust tracking",
    long_description=long_description,
    long_description_content_type="text/markdown",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Financial and Insurance Industry",
        "Topic :: Office/Business :: Financial :: Investment",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: OS Independent",
        "Framework :: AsyncIO",
    ],
    packages=find_namespace_packages(include=["analysis*", "config*", "data*", "monitoring*", "trading*", "utils*"]),
    py_modules=["main"],
    python_requires=">=3.11",
    install_requires=read_requirements("requirements.txt"),
    extras_require={
        "dev": read_requirements("test-requirements.txt"),
    },
    entry_points={
        "console_scripts": [
            "token-intel=main:main",
        ],
    },
    include_package_data=True,
    package_data={
        "config": ["*.yaml"],
    },
    zip_safe=False,
    keywords=[
        "solana", "cryptocurrency", "dex", "defi",
        "birdeye", "dexscreener", "helius", "trust-score",
    ],
)
