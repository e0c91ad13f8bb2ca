from setuptools import setup, find_packages

setup(
    name="deslack",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "fastapi",
        "uvicorn",
        "pydantic>=2",
        "pydantic-settings",
        "structlog",
        "pycryptodome>=3.15",
        "prometheus-client",
        "click",
        "requests",
    ],
    extras_require={
        "test": [
            "pytest",
            "httpx",
        ],
    },
    python_requires=">=3.10",
    entry_points={
        "console_scripts": [
            "deslack=deslack.cli:cli",
        ],
    }
)
