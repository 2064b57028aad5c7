from setuptools import setup, find_packages

setup(
    name="platformq-blockchain-access-layer",
    version="1.0.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "web3>=6.5.0",
        "eth-account>=0.9.0",
        "eth-utils>=2.1.0",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "tenacity>=8.2.0",
        "prometheus-client>=0.17.0",
        "python-json-logger>=2.0.7",
        "click>=8.0",
    ],
    extras_require={
        "fabric": ["fabric-sdk-py>=0.9.0"],
        "test": ["pytest>=7.4.0", "pytest-asyncio>=0.21.0"],
    },
    entry_points={
        "console_scripts": [
            "platformq-bal = platformq_bal.cli:cli",
        ],
    },
    python_requires=">=3.9",
    author="PlatformQ Team",
    description="Blockchain access layer: smart contract invocation and event subscription for PlatformQ services",
)
