from setuptools import setup, find_packages

setup(
    name="lan-inventory-exporter",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "aiohttp>=3.9.0",
        "prometheus-client>=0.19.0",
        "psutil>=5.9.0",
        "PyYAML>=6.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "lan-inventory-exporter=lan_inventory.exporter_service:main",
        ],
    },
    python_requires=">=3.11",
)
