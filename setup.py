from setuptools import setup, find_packages

setup(
    name="bosstimer",
    version="0.1.0",
    description="Boss respawn tracker with Discord announcements",
    python_requires=">=3.10",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "apscheduler>=3.10.0,<4",
        "python-dotenv>=1.0.0",
        "pydantic>=2.0.0",
        "loguru>=0.7.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "discord": ["discord.py>=2.0"],
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
        "all": [
            "discord.py>=2.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "bosstimer=bosstimer.main:main",
        ],
    },
)
