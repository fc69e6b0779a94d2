"""Session Harness - authenticated-session test harness."""
from setuptools import setup, find_packages

setup(
    name="session-harness",
    version="1.0.0",
    description="Login bypass, network stubbing and eventual assertions for browser/HTTP tests",
    packages=find_packages(include=["session_harness", "session_harness.*"]),
    install_requires=[
        "click>=8.1.0",
        "rich>=13.0.0",
        "questionary>=2.0.0",
        "httpx>=0.27.0",
        "playwright>=1.40.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.23.0",
        ],
        "demo": [
            "flask>=3.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "session-harness=session_harness.cli:main",
        ],
    },
    python_requires=">=3.10",
)
