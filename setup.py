# setup.py
from setuptools import setup, find_packages

setup(
    name="burn_engine",
    version="0.1.0",
    packages=find_packages(),
    install_requires=[
        "msgpack",             # record encoding
        "plyvel",              # LevelDB state store
        "PyNaCl",              # ed25519 curve checks for derived addresses
        "cryptography",        # operator instruction signatures
        "pycryptodome",        # keccak-256
        "prometheus_client",   # metrics
        "psutil",              # monitoring
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "burn-engine=burn_engine.deploy_tool:main",
        ],
    },
)
