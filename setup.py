# setup.py
from setuptools import setup, find_packages

setup(
    name="primalbet",
    version="0.1.0",
    packages=find_packages(include=["primalbet", "primalbet.*"]),
    python_requires=">=3.9",
    install_requires=[
        "PyNaCl",             # ed25519
        "base58",             # addresses and blockhashes
        "solders",            # keys, PDAs, instructions and transactions
        "solana<0.40",        # async chain RPC client
        "httpx",              # HTTP layer under the RPC client
        "requests",           # fairness oracle
        "fastapi",            # read API and relay websocket
        "pydantic",           # request models
        "uvicorn",            # API server
        "prometheus_client",  # metrics
        "psutil",             # monitoring
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
            "hypothesis",
        ],
    },
    entry_points={
        "console_scripts": [
            "primalbet-node=primalbet.node:run",
            "primalbet-keygen=primalbet.keygen:main",
        ],
    },
)
