from setuptools import setup, find_packages

setup(
    name="unified-replication-operator",
    version="0.1.0",
    packages=find_packages(include=["unified_replication", "unified_replication.*"]),
    install_requires=[
        "kubernetes>=24.2.0",
        "prometheus_client>=0.16.0",
        "python-dotenv>=0.21.0",
        "aiohttp>=3.8.0",
    ],
    extras_require={
        "tests": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.18.0",
        ],
    },
    python_requires=">=3.9",
)
