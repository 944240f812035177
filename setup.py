from setuptools import setup, find_packages

setup(
    name="micscribe",
    version="0.1.0",
    description="Microphone recorder with chunked real-time transcription",
    author="",
    python_requires=">=3.8",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "numpy>=1.21.0",
        "scipy>=1.7.0",
        "rich>=12.5.0",
        "click>=8.1.0",
        "pydantic>=2.0.0",
        "pyyaml>=6.0.0",
        "pypubsub>=4.0.3",
    ],
    extras_require={
        "audio": [
            "pyaudio>=0.2.11",
        ],
        "engines": [
            "vosk>=0.3.45",
            "faster-whisper>=1.0.0",
        ],
        "test": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "micscribe=micscribe.main:main",
        ],
    },
)
